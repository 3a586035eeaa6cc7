"""create integrations tables

Revision ID: 202610010001
Revises:
Create Date: 2026-10-01 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "integrations_integration",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("auth_token", sa.String(length=128), nullable=False),
        sa.Column("default_stage", sa.String(length=64), nullable=True),
        sa.Column("default_responsible_user_ids", sa.JSON(), nullable=False),
        sa.Column("default_product_id", sa.Uuid(), nullable=True),
        sa.Column("auto_followup_days", sa.Integer(), nullable=True),
        sa.Column("non_purchase_reason_id", sa.Uuid(), nullable=True),
        sa.Column("event_mode", sa.String(length=16), nullable=False, server_default="lead"),
        sa.Column("sale_status_on_create", sa.String(length=32), nullable=True),
        sa.Column("sale_tag", sa.String(length=64), nullable=True),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("auth_token", name="uq_integrations_integration_auth_token"),
    )
    op.create_index(
        "ix_integrations_integration_tenant",
        "integrations_integration",
        ["tenant_id", "status"],
        unique=False,
    )

    op.create_table(
        "integrations_field_mapping",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("integration_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("source_field", sa.String(length=255), nullable=False),
        sa.Column("target_field", sa.String(length=64), nullable=False),
        sa.Column("transform_type", sa.String(length=32), nullable=False, server_default="trim"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["integration_id"], ["integrations_integration.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_integrations_field_mapping_integration",
        "integrations_field_mapping",
        ["integration_id"],
        unique=False,
    )

    op.create_table(
        "integrations_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("integration_id", sa.Uuid(), nullable=True),
        sa.Column("tenant_id", sa.String(length=128), nullable=True),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=True),
        sa.Column("request_payload", sa.JSON(), nullable=True),
        sa.Column("response_payload", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("lead_id", sa.Uuid(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=False),
        sa.Column("correlation_id", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_integrations_log_integration_created",
        "integrations_log",
        ["integration_id", "created_at"],
        unique=False,
    )
    op.create_index("ix_integrations_log_tenant_status", "integrations_log", ["tenant_id", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_integrations_log_tenant_status", table_name="integrations_log")
    op.drop_index("ix_integrations_log_integration_created", table_name="integrations_log")
    op.drop_table("integrations_log")
    op.drop_index("ix_integrations_field_mapping_integration", table_name="integrations_field_mapping")
    op.drop_table("integrations_field_mapping")
    op.drop_index("ix_integrations_integration_tenant", table_name="integrations_integration")
    op.drop_table("integrations_integration")
