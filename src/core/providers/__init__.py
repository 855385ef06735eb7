from src.core.providers.base import ProviderError, call_provider
from src.core.providers.billing import ProviderSubscription, StripeBillingClient
from src.core.providers.edge import EdgeDomainStatus, EdgeRegistration, VercelEdgeClient

__all__ = [
    "ProviderError",
    "call_provider",
    "ProviderSubscription",
    "StripeBillingClient",
    "EdgeDomainStatus",
    "EdgeRegistration",
    "VercelEdgeClient",
]
