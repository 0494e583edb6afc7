"""Edition ledger: orders, per-unit line items with edition numbering, edition events

Revision ID: e1a2b3c4d5f6
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "e1a2b3c4d5f6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "orders",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("order_name", sa.String(length=64), nullable=True),
        sa.Column("financial_status", sa.String(length=32), nullable=True),
        sa.Column("fulfillment_status", sa.String(length=32), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("customer_email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_orders_order_name", "orders", ["order_name"], unique=False)
    op.create_index("ix_orders_financial_status", "orders", ["financial_status"], unique=False)
    op.create_index("ix_orders_customer_email", "orders", ["customer_email"], unique=False)

    op.create_table(
        "line_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("shopify_line_item_id", sa.String(length=64), nullable=False),
        sa.Column("unit_index", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=True),
        sa.Column("variant_id", sa.String(length=64), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("vendor_name", sa.String(length=255), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("removed_reason", sa.String(length=32), nullable=True),
        sa.Column("edition_number", sa.Integer(), nullable=True),
        sa.Column("edition_total", sa.Integer(), nullable=True),
        sa.Column("refund_status", sa.String(length=16), nullable=False, server_default="none"),
        sa.Column("restocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("owner_email", sa.String(length=255), nullable=True),
        sa.Column("owner_name", sa.String(length=255), nullable=True),
        sa.Column("certificate_url", sa.String(length=512), nullable=True),
        sa.Column("certificate_token", sa.String(length=64), nullable=True),
        sa.Column("certificate_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], name="fk_line_items_order_id_orders"),
        sa.UniqueConstraint("shopify_line_item_id", "unit_index", name="uq_line_items_shopify_unit"),
        sa.UniqueConstraint("certificate_token", name="uq_line_items_certificate_token"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_line_items_order_id", "line_items", ["order_id"], unique=False)
    op.create_index("ix_line_items_product_id", "line_items", ["product_id"], unique=False)
    op.create_index("ix_line_items_status", "line_items", ["status"], unique=False)
    op.create_index("ix_line_items_vendor_name", "line_items", ["vendor_name"], unique=False)
    op.create_index("ix_line_items_owner_email", "line_items", ["owner_email"], unique=False)
    op.create_index(
        "ix_line_items_product_status_created",
        "line_items",
        ["product_id", "status", "created_at", "id"],
        unique=False,
    )

    op.create_table(
        "edition_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("line_item_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.String(length=64), nullable=True),
        sa.Column("edition_number", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False, server_default="system"),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["line_item_id"], ["line_items.id"], name="fk_edition_events_line_item_id_line_items"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_edition_events_line_item_id", "edition_events", ["line_item_id"], unique=False)
    op.create_index("ix_edition_events_product_id", "edition_events", ["product_id"], unique=False)
    op.create_index("ix_edition_events_event_type", "edition_events", ["event_type"], unique=False)
    op.create_index("ix_edition_events_occurred_at", "edition_events", ["occurred_at"], unique=False)
    op.create_index(
        "ix_edition_events_line_item_occurred",
        "edition_events",
        ["line_item_id", "occurred_at"],
        unique=False,
    )


def downgrade():
    op.drop_table("edition_events")
    op.drop_table("line_items")
    op.drop_table("orders")
