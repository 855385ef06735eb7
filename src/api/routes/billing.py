from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from src.api.errors import raise_for_outcome
from src.core.auth import AuthContext, require_auth_context
from src.core.entitlements import EntitlementSummary
from src.core.services import CoreServices, get_services
from src.schemas.billing import BillingEventResponse, EntitlementResponse

router = APIRouter(prefix="/billing", tags=["billing"])


def _entitlement_response(summary: EntitlementSummary) -> EntitlementResponse:
    return EntitlementResponse(
        tenant_id=summary.tenant_id,
        entitled=summary.entitled,
        status=summary.status.value,
        current_period_end=summary.current_period_end,
        product_ref=summary.product_ref,
        synced_at=summary.synced_at,
        show_branding=summary.show_branding,
    )


@router.get("/entitlement", response_model=EntitlementResponse)
async def get_entitlement(
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> EntitlementResponse:
    return _entitlement_response(raise_for_outcome(await services.entitlements.summary(auth.tenant_id)))


@router.post("/sync", response_model=EntitlementResponse)
async def sync_subscription(
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> EntitlementResponse:
    return _entitlement_response(raise_for_outcome(await services.entitlements.reconcile(auth.tenant_id)))


@router.get("/events", response_model=list[BillingEventResponse])
async def list_billing_events(
    limit: int = Query(default=50, ge=1, le=200),
    auth: AuthContext = Depends(require_auth_context),
    services: CoreServices = Depends(get_services),
) -> list[BillingEventResponse]:
    events = await services.entitlements.list_events(auth.tenant_id, limit=limit)
    return [
        BillingEventResponse(
            event_id=event.event_id,
            event_type=event.event_type,
            source=event.source,
            subscription_status=event.subscription_status,
            occurred_at=event.occurred_at,
        )
        for event in events
    ]
