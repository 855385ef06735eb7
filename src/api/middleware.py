from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Request
from starlette import status
from starlette.responses import PlainTextResponse, Response

from src.core.context import reset_current_resolved_host, set_current_resolved_host
from src.core.records import HostClassification
from src.core.services import get_services

logger = logging.getLogger(__name__)

_UNRESOLVED_PREFIXES = ("/api/", "/health", "/ready", "/docs", "/openapi.json")


def is_static_asset_path(path: str) -> bool:
    return path.startswith("/_next/") or path.startswith("/favicon") or "." in path.rsplit("/", 1)[-1]


async def host_resolution_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    path = request.url.path
    if path.startswith(_UNRESOLVED_PREFIXES):
        return await call_next(request)

    services = get_services(request)
    host = request.headers.get("host", "")

    classification = services.resolver.classify_raw(host)
    if classification == HostClassification.CUSTOM and is_static_asset_path(path):
        # Assets are served from the primary domain only; skip the lookup.
        return PlainTextResponse("Not found", status_code=status.HTTP_404_NOT_FOUND)

    resolved = await services.resolver.resolve(host)
    if resolved.absent:
        logger.debug("No portfolio for host %s", resolved.host or "<empty>")
        return PlainTextResponse("Not found", status_code=status.HTTP_404_NOT_FOUND)

    request.state.resolved_host = resolved
    request.state.tenant_id = resolved.tenant_id
    token = set_current_resolved_host(resolved)
    try:
        return await call_next(request)
    finally:
        reset_current_resolved_host(token)
