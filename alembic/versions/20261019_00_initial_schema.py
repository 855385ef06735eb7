"""create tenant, domain verification and billing ledger tables

Revision ID: 20261019_00
Revises: 
Create Date: 2026-10-19 09:10:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_00"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("username", sa.String(length=20), nullable=True),
        sa.Column("custom_domain", sa.String(length=253), nullable=True),
        sa.Column("domain_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("billing_customer_ref", sa.String(length=255), nullable=True),
        sa.Column("subscription_status", sa.String(length=20), nullable=False, server_default="none"),
        sa.Column("subscription_ref", sa.String(length=255), nullable=True),
        sa.Column("subscription_product_ref", sa.String(length=255), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subscription_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenants_email", "tenants", ["email"], unique=True)
    op.create_index("ix_tenants_username", "tenants", ["username"], unique=True)
    op.create_index("ix_tenants_custom_domain", "tenants", ["custom_domain"], unique=True)
    op.create_index("ix_tenants_billing_customer_ref", "tenants", ["billing_customer_ref"], unique=True)

    op.create_table(
        "domain_verifications",
        sa.Column("domain", sa.String(length=253), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_domain_verifications_tenant_id", "domain_verifications", ["tenant_id"], unique=False)
    op.create_index("ix_domain_verifications_domain", "domain_verifications", ["domain"], unique=False)
    op.create_index("ix_domain_verifications_state", "domain_verifications", ["state"], unique=False)
    op.create_index(
        "uq_domain_verifications_tenant_in_flight",
        "domain_verifications",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("state IN ('requested', 'provider_registering', 'pending_verification')"),
    )
    op.create_index(
        "uq_domain_verifications_domain_in_flight",
        "domain_verifications",
        ["domain"],
        unique=True,
        postgresql_where=sa.text("state IN ('requested', 'provider_registering', 'pending_verification')"),
    )

    op.create_table(
        "billing_events",
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=80), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False, server_default="webhook"),
        sa.Column("subscription_status", sa.String(length=20), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_billing_events_event_id", "billing_events", ["event_id"], unique=True)
    op.create_index("ix_billing_events_tenant_id", "billing_events", ["tenant_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_billing_events_tenant_id", table_name="billing_events")
    op.drop_index("ix_billing_events_event_id", table_name="billing_events")
    op.drop_table("billing_events")

    op.drop_index("uq_domain_verifications_domain_in_flight", table_name="domain_verifications")
    op.drop_index("uq_domain_verifications_tenant_in_flight", table_name="domain_verifications")
    op.drop_index("ix_domain_verifications_state", table_name="domain_verifications")
    op.drop_index("ix_domain_verifications_domain", table_name="domain_verifications")
    op.drop_index("ix_domain_verifications_tenant_id", table_name="domain_verifications")
    op.drop_table("domain_verifications")

    op.drop_index("ix_tenants_billing_customer_ref", table_name="tenants")
    op.drop_index("ix_tenants_custom_domain", table_name="tenants")
    op.drop_index("ix_tenants_username", table_name="tenants")
    op.drop_index("ix_tenants_email", table_name="tenants")
    op.drop_table("tenants")
