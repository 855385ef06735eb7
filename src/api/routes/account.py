from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from src.api.errors import raise_for_outcome
from src.core.auth import AuthContext, require_auth_context
from src.core.domains import normalize_username
from src.core.results import ErrorCode
from src.core.services import CoreServices, get_services
from src.schemas.account import (
    AccountDeletedResponse,
    UsernameAvailabilityResponse,
    UsernameRequest,
    UsernameResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/account", tags=["account"])


@router.put("/username", response_model=UsernameResponse)
async def set_username(
    payload: UsernameRequest,
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> UsernameResponse:
    tenant = raise_for_outcome(await services.directory.assign_username(auth.tenant_id, payload.username))
    return UsernameResponse(tenant_id=tenant.id, username=tenant.username)


@router.get("/username-availability", response_model=UsernameAvailabilityResponse)
async def username_availability(
    username: str = Query(min_length=1, max_length=64),
    _: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> UsernameAvailabilityResponse:
    available = await services.directory.is_username_available(username)
    return UsernameAvailabilityResponse(username=normalize_username(username), available=available)


@router.delete("", response_model=AccountDeletedResponse)
async def delete_account(
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> AccountDeletedResponse:
    removed = await services.bindings.remove_binding(auth.tenant_id)
    if not removed.ok and removed.error != ErrorCode.NOT_BOUND:
        raise_for_outcome(removed)

    raise_for_outcome(await services.directory.delete_tenant(auth.tenant_id))
    logger.info("Account deleted for tenant=%s", auth.tenant_id)
    return AccountDeletedResponse(
        tenant_id=auth.tenant_id,
        deleted=True,
        removed_domain=removed.value if removed.ok else None,
    )
