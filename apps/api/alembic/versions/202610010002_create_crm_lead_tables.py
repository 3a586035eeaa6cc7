"""create crm lead tables

Revision ID: 202610010002
Revises: 202610010001
Create Date: 2026-10-01 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010002"
down_revision: str | None = "202610010001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _lead_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="CASCADE")


def upgrade() -> None:
    op.create_table(
        "crm_lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("document", sa.String(length=32), nullable=True),
        sa.Column("stage", sa.String(length=64), nullable=False, server_default="cloud"),
        sa.Column("source", sa.String(length=64), nullable=False),
        sa.Column("source_integration_id", sa.Uuid(), nullable=True),
        sa.Column("owner_user_id", sa.String(length=128), nullable=True),
        sa.Column("observations", sa.Text(), nullable=True),
        sa.Column("custom_fields", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_lead_tenant_phone", "crm_lead", ["tenant_id", "phone"], unique=False)
    op.create_index("ix_crm_lead_tenant_created", "crm_lead", ["tenant_id", "created_at"], unique=False)

    op.create_table(
        "crm_lead_address",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("label", sa.String(length=64), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("street", sa.Text(), nullable=True),
        sa.Column("street_number", sa.String(length=32), nullable=True),
        sa.Column("complement", sa.Text(), nullable=True),
        sa.Column("neighborhood", sa.Text(), nullable=True),
        sa.Column("city", sa.Text(), nullable=True),
        sa.Column("state", sa.String(length=64), nullable=True),
        sa.Column("postal_code", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _lead_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_lead_address_lead", "crm_lead_address", ["lead_id"], unique=False)

    op.create_table(
        "crm_lead_responsible",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _lead_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_lead_responsible_lead", "crm_lead_responsible", ["lead_id"], unique=False)

    op.create_table(
        "crm_lead_followup",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_type", sa.String(length=32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _lead_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_crm_lead_followup_schedule",
        "crm_lead_followup",
        ["tenant_id", "user_id", "scheduled_at"],
        unique=False,
    )

    op.create_table(
        "crm_lead_product_interest",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _lead_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_lead_product_interest_lead", "crm_lead_product_interest", ["lead_id"], unique=False)

    op.create_table(
        "crm_lead_non_purchase",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("reason_id", sa.Uuid(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        _lead_fk(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_lead_non_purchase_lead", "crm_lead_non_purchase", ["lead_id"], unique=False)


def downgrade() -> None:
    for table in ("crm_lead_non_purchase", "crm_lead_product_interest", "crm_lead_responsible", "crm_lead_address"):
        op.drop_index(f"ix_{table}_lead", table_name=table)
        op.drop_table(table)
    op.drop_index("ix_crm_lead_followup_schedule", table_name="crm_lead_followup")
    op.drop_table("crm_lead_followup")
    op.drop_index("ix_crm_lead_tenant_created", table_name="crm_lead")
    op.drop_index("ix_crm_lead_tenant_phone", table_name="crm_lead")
    op.drop_table("crm_lead")
