from src.core.repositories.base import Repository
from src.core.repositories.billing_events import BillingEventRepository
from src.core.repositories.domain_verifications import DomainVerificationRepository
from src.core.repositories.store import SqlTenantStore
from src.core.repositories.tenants import TenantRepository

__all__ = [
    "Repository",
    "BillingEventRepository",
    "DomainVerificationRepository",
    "SqlTenantStore",
    "TenantRepository",
]
