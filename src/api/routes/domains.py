from __future__ import annotations

from fastapi import APIRouter, Depends

from src.api.errors import raise_for_outcome
from src.core.auth import AuthContext, require_auth_context
from src.core.records import VerificationRecord
from src.core.services import CoreServices, get_services
from src.schemas.domain import (
    DomainRemovedResponse,
    DomainRequest,
    DomainStatusResponse,
    VerificationResponse,
)

router = APIRouter(prefix="/pro/domain", tags=["domains"])


def _verification_response(record: VerificationRecord) -> VerificationResponse:
    return VerificationResponse(
        domain=record.domain,
        state=record.state.value,
        requested_at=record.requested_at,
        last_checked_at=record.last_checked_at,
        completed_at=record.completed_at,
        failure_reason=record.failure_reason,
    )


@router.post("", response_model=VerificationResponse, status_code=202)
async def request_domain(
    payload: DomainRequest,
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> VerificationResponse:
    record = raise_for_outcome(await services.bindings.request_binding(auth.tenant_id, payload.domain))
    return _verification_response(record)


@router.get("", response_model=DomainStatusResponse)
async def domain_status(
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> DomainStatusResponse:
    current = raise_for_outcome(await services.bindings.status(auth.tenant_id))
    return DomainStatusResponse(
        domain=current.domain,
        state=current.state.value if current.state else None,
        verified_at=current.verified_at,
        failure_reason=current.failure_reason,
        entitled=current.entitled,
        serving=current.serving,
    )


@router.post("/verify", response_model=VerificationResponse)
async def verify_domain(
    payload: DomainRequest,
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> VerificationResponse:
    record = raise_for_outcome(
        await services.bindings.check_verification(payload.domain, tenant_id=auth.tenant_id)
    )
    return _verification_response(record)


@router.delete("", response_model=DomainRemovedResponse)
async def remove_domain(
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> DomainRemovedResponse:
    domain = raise_for_outcome(await services.bindings.remove_binding(auth.tenant_id))
    return DomainRemovedResponse(domain=domain, removed=True)
