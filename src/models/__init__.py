from src.models.base import Base, RecordBase, TenantScopedBase
from src.models.billing_event import BillingEventEntry
from src.models.domain_verification import DomainVerification
from src.models.tenant import Tenant

__all__ = [
    "Base",
    "RecordBase",
    "TenantScopedBase",
    "Tenant",
    "DomainVerification",
    "BillingEventEntry",
]
