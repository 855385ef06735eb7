from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import TenantScopedBase

IN_FLIGHT = text("state IN ('requested', 'provider_registering', 'pending_verification')")


class DomainVerification(TenantScopedBase):
    __tablename__ = "domain_verifications"
    __table_args__ = (
        Index("uq_domain_verifications_tenant_in_flight", "tenant_id", unique=True, postgresql_where=IN_FLIGHT),
        Index("uq_domain_verifications_domain_in_flight", "domain", unique=True, postgresql_where=IN_FLIGHT),
    )

    domain: Mapped[str] = mapped_column(String(253), nullable=False, index=True)
    state: Mapped[str] = mapped_column(String(32), nullable=False, default="requested", index=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
