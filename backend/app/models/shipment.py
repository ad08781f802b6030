"""Shipment: closed pallets loaded onto one truck for one destination.

The shipment number (SH-YYYYMMDD-NNN) is the primary key and goes on the
loading sheet.  Pallet weight and count are copied into ShipmentItem when
the pallet is added, so the sheet keeps its numbers after the bales leave
their pallets on dispatch.

Lifecycle:
    draft ⇄ loading ──▶ shipped ──▶ in_transit ──▶ delivered
      └────────┴──▶ cancelled
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ShipmentStatus(str, enum.Enum):
    DRAFT = "draft"
    LOADING = "loading"
    SHIPPED = "shipped"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Pallets can be added or removed only while the truck is being planned
EDITABLE_STATUSES = (ShipmentStatus.DRAFT.value, ShipmentStatus.LOADING.value)


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)

    # ── Destination & transport ──────────────────────────────
    destination: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    destination_address: Mapped[str | None] = mapped_column(Text)
    carrier: Mapped[str | None] = mapped_column(String(200))
    truck_number: Mapped[str | None] = mapped_column(String(50))
    driver_name: Mapped[str | None] = mapped_column(String(200))
    driver_phone: Mapped[str | None] = mapped_column(String(50))
    cmr_number: Mapped[str | None] = mapped_column(String(50))
    scheduled_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)

    # ── Status ───────────────────────────────────────────────
    # draft | loading | shipped | in_transit | delivered | cancelled
    status: Mapped[str] = mapped_column(
        String(20), default=ShipmentStatus.DRAFT.value, nullable=False, index=True
    )

    # Recomputed from shipment_items after every pallet change
    total_weight: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_pallets: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # ── Metadata ─────────────────────────────────────────────
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Relationships ────────────────────────────────────────
    items = relationship(
        "ShipmentItem",
        back_populates="shipment",
        order_by="ShipmentItem.added_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ShipmentItem(Base):
    """One pallet on a shipment.  A pallet can be on one shipment only."""

    __tablename__ = "shipment_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    shipment_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    batch_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("batches.id"), nullable=False, unique=True
    )

    # ── Pallet snapshot ──────────────────────────────────────
    pallet_weight: Mapped[float] = mapped_column(Float, nullable=False)
    pallet_item_count: Mapped[int] = mapped_column(Integer, nullable=False)
    product_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sort: Mapped[str] = mapped_column(String(50), nullable=False)

    added_by: Mapped[str | None] = mapped_column(String(36))
    added_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    shipment = relationship("Shipment", back_populates="items")
