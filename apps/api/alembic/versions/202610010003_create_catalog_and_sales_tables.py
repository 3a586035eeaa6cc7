"""create catalog and sales tables

Revision ID: 202610010003
Revises: 202610010002
Create Date: 2026-10-01 00:03:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610010003"
down_revision: str | None = "202610010002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "catalog_product",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("sku", sa.String(length=128), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_catalog_product_sku"),
    )
    op.create_index("ix_catalog_product_scope", "catalog_product", ["tenant_id", "is_active"], unique=False)

    op.create_table(
        "sales_sale",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.String(length=128), nullable=False),
        sa.Column("lead_id", sa.Uuid(), nullable=False),
        sa.Column("seller_user_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("delivery_type", sa.String(length=32), nullable=False),
        sa.Column("shipping_address_id", sa.Uuid(), nullable=True),
        sa.Column("external_order_id", sa.String(length=128), nullable=True),
        sa.Column("external_order_url", sa.Text(), nullable=True),
        sa.Column("external_source", sa.String(length=255), nullable=True),
        sa.Column("observation_1", sa.Text(), nullable=True),
        sa.Column("observation_2", sa.Text(), nullable=True),
        sa.Column("payment_notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["lead_id"], ["crm_lead.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_sale_scope", "sales_sale", ["tenant_id", "created_at"], unique=False)
    op.create_index("ix_sales_sale_lead", "sales_sale", ["lead_id"], unique=False)

    op.create_table(
        "sales_sale_item",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("sale_id", sa.Uuid(), nullable=False),
        sa.Column("product_id", sa.Uuid(), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["sale_id"], ["sales_sale.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_sale_item_sale", "sales_sale_item", ["sale_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_sales_sale_item_sale", table_name="sales_sale_item")
    op.drop_table("sales_sale_item")
    op.drop_index("ix_sales_sale_lead", table_name="sales_sale")
    op.drop_index("ix_sales_sale_scope", table_name="sales_sale")
    op.drop_table("sales_sale")
    op.drop_index("ix_catalog_product_scope", table_name="catalog_product")
    op.drop_table("catalog_product")
