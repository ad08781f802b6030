"""Initial HempTrack schema: items, pallets, quads, locations, stocktakes.

Revision ID: 0001
Revises:
Create Date: 2026-10-17
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "locations",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("zone", sa.String(10), nullable=False),
        sa.Column("rack", sa.String(10), nullable=False),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("position", sa.String(10)),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("is_occupied", sa.Boolean(), server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_locations_code", "locations", ["code"], unique=True)

    op.create_table(
        "batches",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("sort", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("total_weight", sa.Float(), nullable=False, server_default="0"),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.id")),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("closed_at", sa.DateTime()),
        sa.Column("shipped_at", sa.DateTime()),
    )
    op.create_index("ix_batches_sort", "batches", ["sort"])
    op.create_index("ix_batches_status", "batches", ["status"])

    op.create_table(
        "quads",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("product_name", sa.String(100), nullable=False),
        sa.Column("sort", sa.String(50), nullable=False),
        sa.Column("total_weight", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="created"),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("warehouse_at", sa.DateTime()),
        sa.Column("shipped_at", sa.DateTime()),
    )
    op.create_index("ix_quads_product_name", "quads", ["product_name"])
    op.create_index("ix_quads_status", "quads", ["status"])

    op.create_table(
        "production_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("barcode", sa.String(120), nullable=False),
        sa.Column("serial_number", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(100), nullable=False),
        sa.Column("sku", sa.String(50), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="created"),
        sa.Column("sort", sa.String(50)),
        sa.Column("graded_at", sa.DateTime()),
        sa.Column("lab_user_id", sa.String(36)),
        sa.Column("batch_id", sa.String(20), sa.ForeignKey("batches.id")),
        sa.Column("palletized_at", sa.DateTime()),
        sa.Column("quad_id", sa.String(20), sa.ForeignKey("quads.id")),
        sa.Column("packed_at", sa.DateTime()),
        sa.Column("location_id", sa.String(36), sa.ForeignKey("locations.id")),
        sa.Column("shipped_at", sa.DateTime()),
        sa.Column("shipped_from", sa.String(20)),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("product_name", "date", "serial_number", name="uq_items_product_date_serial"),
        sa.UniqueConstraint("sku", "date", "serial_number", name="uq_items_sku_date_serial"),
        sa.UniqueConstraint("batch_id", "serial_number", name="uq_items_batch_serial"),
    )
    op.create_index("ix_production_items_barcode", "production_items", ["barcode"])
    op.create_index("ix_production_items_serial_number", "production_items", ["serial_number"])
    op.create_index("ix_production_items_product_name", "production_items", ["product_name"])
    op.create_index("ix_production_items_status", "production_items", ["status"])
    op.create_index("ix_production_items_sort", "production_items", ["sort"])
    op.create_index("ix_production_items_batch_id", "production_items", ["batch_id"])
    op.create_index("ix_production_items_quad_id", "production_items", ["quad_id"])
    op.create_index("ix_production_items_location_id", "production_items", ["location_id"])

    op.create_table(
        "inventory_sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("total_expected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_scanned", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_missing", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_extra", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("user_id", sa.String(36)),
        sa.Column("started_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )
    # At most one active stocktake
    op.create_index(
        "uq_inventory_sessions_single_active",
        "inventory_sessions",
        ["status"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "inventory_scan_records",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("session_id", sa.String(36), sa.ForeignKey("inventory_sessions.id"), nullable=False),
        sa.Column("production_item_id", sa.String(36), sa.ForeignKey("production_items.id")),
        sa.Column("barcode", sa.String(120), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("serial_number", sa.Integer()),
        sa.Column("product_name", sa.String(100)),
        sa.Column("weight", sa.Float()),
        sa.Column("sort", sa.String(50)),
        sa.Column("expected_location", sa.String(50)),
        sa.Column("actual_location", sa.String(50)),
        sa.Column("scanned_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("session_id", "barcode", name="uq_scan_records_session_barcode"),
    )
    op.create_index("ix_inventory_scan_records_session_id", "inventory_scan_records", ["session_id"])
    op.create_index("ix_inventory_scan_records_production_item_id", "inventory_scan_records", ["production_item_id"])
    op.create_index("ix_inventory_scan_records_status", "inventory_scan_records", ["status"])

    op.create_table(
        "daily_counters",
        sa.Column("scope", sa.String(30), primary_key=True),
        sa.Column("day", sa.Date(), primary_key=True),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("actor_id", sa.String(36)),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(36)),
        sa.Column("old_value", sa.JSON()),
        sa.Column("new_value", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_activity_logs_actor_id", "activity_logs", ["actor_id"])
    op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
    op.create_index("ix_activity_logs_entity_type", "activity_logs", ["entity_type"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("daily_counters")
    op.drop_table("inventory_scan_records")
    op.drop_index("uq_inventory_sessions_single_active", table_name="inventory_sessions")
    op.drop_table("inventory_sessions")
    op.drop_table("production_items")
    op.drop_table("quads")
    op.drop_table("batches")
    op.drop_table("locations")
