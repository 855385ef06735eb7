from src.schemas.account import (
    AccountDeletedResponse,
    UsernameAvailabilityResponse,
    UsernameRequest,
    UsernameResponse,
)
from src.schemas.billing import BillingEventResponse, BillingWebhookResponse, EntitlementResponse
from src.schemas.domain import (
    DomainRemovedResponse,
    DomainRequest,
    DomainStatusResponse,
    VerificationResponse,
)
from src.schemas.sites import InvalidateResponse, ResolveResponse

__all__ = [
    "UsernameRequest",
    "UsernameResponse",
    "UsernameAvailabilityResponse",
    "AccountDeletedResponse",
    "EntitlementResponse",
    "BillingWebhookResponse",
    "BillingEventResponse",
    "DomainRequest",
    "DomainStatusResponse",
    "DomainRemovedResponse",
    "VerificationResponse",
    "ResolveResponse",
    "InvalidateResponse",
]
