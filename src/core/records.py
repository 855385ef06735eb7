from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"
    NONE = "none"

    @classmethod
    def coerce(cls, value: str | None) -> "SubscriptionStatus":
        if not value:
            return cls.NONE
        try:
            return cls(value)
        except ValueError:
            return cls.INACTIVE


class HostClassification(str, Enum):
    PRIMARY = "primary"
    SUBDOMAIN = "subdomain"
    CUSTOM = "custom"


class BindingState(str, Enum):
    REQUESTED = "requested"
    PROVIDER_REGISTERING = "provider_registering"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    FAILED = "failed"

    @property
    def in_flight(self) -> bool:
        return self in IN_FLIGHT_STATES

    @property
    def terminal(self) -> bool:
        return self in (BindingState.VERIFIED, BindingState.FAILED)


IN_FLIGHT_STATES = frozenset(
    {
        BindingState.REQUESTED,
        BindingState.PROVIDER_REGISTERING,
        BindingState.PENDING_VERIFICATION,
    }
)


@dataclass(slots=True, frozen=True)
class TenantRecord:
    id: str
    email: str
    name: str | None = None
    username: str | None = None
    custom_domain: str | None = None
    domain_verified_at: datetime | None = None
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    billing_customer_ref: str | None = None
    subscription_ref: str | None = None
    subscription_product_ref: str | None = None
    current_period_end: datetime | None = None
    subscription_synced_at: datetime | None = None


@dataclass(slots=True)
class VerificationRecord:
    id: str
    tenant_id: str
    domain: str
    state: BindingState
    requested_at: datetime
    last_checked_at: datetime | None = None
    completed_at: datetime | None = None
    failure_reason: str | None = None


@dataclass(slots=True, frozen=True)
class SubscriptionUpdate:
    status: SubscriptionStatus
    observed_at: datetime
    current_period_end: datetime | None = None
    product_ref: str | None = None
    subscription_ref: str | None = None


@dataclass(slots=True, frozen=True)
class BillingEvent:
    event_id: str
    event_type: str
    occurred_at: datetime
    customer_ref: str | None = None
    status: SubscriptionStatus | None = None
    product_ref: str | None = None
    subscription_ref: str | None = None
    current_period_end: datetime | None = None
    email: str | None = None
    source: str = "webhook"
    payload: dict = field(default_factory=dict)

    def subscription_update(self) -> SubscriptionUpdate | None:
        if self.status is None:
            return None
        return SubscriptionUpdate(
            status=self.status,
            observed_at=self.occurred_at,
            current_period_end=self.current_period_end,
            product_ref=self.product_ref,
            subscription_ref=self.subscription_ref,
        )


@dataclass(slots=True, frozen=True)
class BillingEventRecord:
    event_id: str
    tenant_id: str
    event_type: str
    source: str
    subscription_status: str | None
    occurred_at: datetime
    created_at: datetime


@dataclass(slots=True, frozen=True)
class SubscriptionWrite:
    recorded: bool
    before: TenantRecord
    after: TenantRecord

    @property
    def changed(self) -> bool:
        return self.before != self.after
