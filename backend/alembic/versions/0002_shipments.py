"""Shipments: pallets loaded for one destination.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17
"""

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    op.create_table(
        "shipments",
        sa.Column("id", sa.String(20), primary_key=True),
        sa.Column("destination", sa.String(200), nullable=False),
        sa.Column("destination_address", sa.Text()),
        sa.Column("carrier", sa.String(200)),
        sa.Column("truck_number", sa.String(50)),
        sa.Column("driver_name", sa.String(200)),
        sa.Column("driver_phone", sa.String(50)),
        sa.Column("cmr_number", sa.String(50)),
        sa.Column("scheduled_date", sa.Date()),
        sa.Column("notes", sa.Text()),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("total_weight", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_pallets", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(36)),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("shipped_at", sa.DateTime()),
        sa.Column("delivered_at", sa.DateTime()),
    )
    op.create_index("ix_shipments_destination", "shipments", ["destination"])
    op.create_index("ix_shipments_status", "shipments", ["status"])

    op.create_table(
        "shipment_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "shipment_id", sa.String(20),
            sa.ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("batch_id", sa.String(20), sa.ForeignKey("batches.id"), nullable=False),
        sa.Column("pallet_weight", sa.Float(), nullable=False),
        sa.Column("pallet_item_count", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(100), nullable=False),
        sa.Column("sort", sa.String(50), nullable=False),
        sa.Column("added_by", sa.String(36)),
        sa.Column("added_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("batch_id", name="uq_shipment_items_batch"),
    )
    op.create_index("ix_shipment_items_shipment_id", "shipment_items", ["shipment_id"])


def downgrade() -> None:
    op.drop_table("shipment_items")
    op.drop_table("shipments")
