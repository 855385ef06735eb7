from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import RecordBase


class Tenant(RecordBase):
    __tablename__ = "tenants"

    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    username: Mapped[str | None] = mapped_column(String(20), unique=True, nullable=True, index=True)

    custom_domain: Mapped[str | None] = mapped_column(String(253), unique=True, nullable=True, index=True)
    domain_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    billing_customer_ref: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    subscription_status: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    subscription_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subscription_product_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    subscription_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
