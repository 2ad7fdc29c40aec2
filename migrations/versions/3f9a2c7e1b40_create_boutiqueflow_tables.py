"""create_boutiqueflow_tables

Revision ID: 3f9a2c7e1b40
Revises:
Create Date: 2026-10-17 09:12:44.518203

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f9a2c7e1b40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create event, profile, status, snapshot and sync log tables."""
    # Receiving lines, one row per (item, receipt)
    op.create_table(
        "receive_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("item_id", sa.String(64), nullable=False),
        sa.Column("receipt_id", sa.String(64), nullable=False),
        sa.Column("received_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("qty_received", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unit_cost", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("item_name", sa.String(255), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("vendor", sa.String(255), nullable=True),
        sa.Column("color", sa.String(100), nullable=True),
        sa.Column("size", sa.String(50), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.UniqueConstraint("item_id", "receipt_id", name="uq_receive_events_item_receipt"),
    )
    op.create_index(
        "idx_receive_events_item_received",
        "receive_events",
        ["item_id", "received_at"],
    )

    # Sales lines, one row per (ticket, line)
    op.create_table(
        "sale_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("ticket_id", sa.String(64), nullable=False),
        sa.Column("line_id", sa.String(64), nullable=False, server_default="0"),
        sa.Column("customer_id", sa.String(64), nullable=True),
        sa.Column("item_id", sa.String(64), nullable=False),
        sa.Column("sold_at", postgresql.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("day_of_week", sa.SmallInteger, nullable=False),
        sa.Column("hour_of_day", sa.SmallInteger, nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("unit_price", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("total_amount", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("vendor", sa.String(255), nullable=True),
        sa.Column("brand", sa.String(255), nullable=True),
        sa.Column("item_name", sa.String(255), nullable=True),
        sa.Column("size", sa.String(50), nullable=True),
        sa.Column("color", sa.String(100), nullable=True),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.UniqueConstraint("ticket_id", "line_id", name="uq_sale_events_ticket_line"),
    )
    op.create_index("idx_sale_events_item_sold", "sale_events", ["item_id", "sold_at"])
    op.create_index("idx_sale_events_customer", "sale_events", ["customer_id"])
    # BRIN suits the append-mostly sold_at column
    op.create_index(
        "idx_sale_events_sold_at",
        "sale_events",
        ["sold_at"],
        postgresql_using="brin",
    )

    op.create_table(
        "customer_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("customer_id", sa.String(64), unique=True, nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("total_purchases", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "lifetime_value",
            sa.Numeric(precision=12, scale=2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("avg_purchase_value", sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column("first_purchase_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_purchase_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("preferred_brands", sa.JSON, nullable=True),
        sa.Column("preferred_sizes", sa.JSON, nullable=True),
        sa.Column("preferred_categories", sa.JSON, nullable=True),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_customer_profiles_customer_id",
        "customer_profiles",
        ["customer_id"],
        unique=True,
    )
    op.create_index(
        "ix_customer_profiles_last_purchase_at",
        "customer_profiles",
        ["last_purchase_at"],
    )

    op.create_table(
        "processing_statuses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("entity_type", sa.String(10), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        sa.Column("receipt_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column(
            "processed_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=True,
        ),
        sa.Column("processed_by", sa.String(100), nullable=True),
        sa.UniqueConstraint("entity_type", "entity_id", name="uq_processing_statuses_entity"),
        sa.CheckConstraint("entity_type IN ('item', 'grid')", name="ck_processing_statuses_type"),
        sa.CheckConstraint(
            "status IN ('new', 'completed', 'skipped')",
            name="ck_processing_statuses_status",
        ),
    )

    op.create_table(
        "analysis_cache",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("cache_key", sa.String(50), unique=True, nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column(
            "synced_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
    )
    op.create_index("ix_analysis_cache_cache_key", "analysis_cache", ["cache_key"], unique=True)

    op.create_table(
        "sync_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("sync_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column(
            "started_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column("completed_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("records_synced", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.CheckConstraint(
            "status IN ('running', 'success', 'partial', 'failed')",
            name="ck_sync_logs_status",
        ),
    )
    op.create_index("idx_sync_logs_type_started", "sync_logs", ["sync_type", "started_at"])


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_index("idx_sync_logs_type_started", table_name="sync_logs")
    op.drop_table("sync_logs")
    op.drop_index("ix_analysis_cache_cache_key", table_name="analysis_cache")
    op.drop_table("analysis_cache")
    op.drop_table("processing_statuses")
    op.drop_index("ix_customer_profiles_last_purchase_at", table_name="customer_profiles")
    op.drop_index("ix_customer_profiles_customer_id", table_name="customer_profiles")
    op.drop_table("customer_profiles")
    op.drop_index("idx_sale_events_sold_at", table_name="sale_events")
    op.drop_index("idx_sale_events_customer", table_name="sale_events")
    op.drop_index("idx_sale_events_item_sold", table_name="sale_events")
    op.drop_table("sale_events")
    op.drop_index("idx_receive_events_item_received", table_name="receive_events")
    op.drop_table("receive_events")
