from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.core.auth import AuthContext, require_auth_context
from src.core.cache import tenant_keys
from src.core.resolver import ResolvedHost
from src.core.services import CoreServices, get_services
from src.schemas.sites import InvalidateResponse, ResolveResponse

router = APIRouter(prefix="/sites", tags=["sites"])


def resolve_response(resolved: ResolvedHost, services: CoreServices) -> ResolveResponse:
    tenant = resolved.tenant
    return ResolveResponse(
        host=resolved.host,
        classification=resolved.classification.value,
        found=tenant is not None,
        tenant_id=resolved.tenant_id,
        username=tenant.username if tenant is not None else None,
        show_branding=not services.entitlements.is_record_entitled(tenant),
    )


@router.get("/resolve", response_model=ResolveResponse)
async def resolve_host(
    host: str = Query(min_length=1, max_length=260),
    services: CoreServices = Depends(get_services),
) -> ResolveResponse:
    return resolve_response(await services.resolver.resolve(host), services)


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate_site(
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> InvalidateResponse:
    """Drop cached resolutions and rendered pages after a portfolio content change."""
    tenant = await services.directory.get(auth.tenant_id)
    keys = tenant_keys(tenant) if tenant is not None else []
    await services.invalidator.invalidate(*keys)
    return InvalidateResponse(keys=[key.encode() for key in keys])
