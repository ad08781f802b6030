"""ProductionItem: one physical bale.

Created by an operator at the baler, graded by the lab, then aggregated
into a Batch (pallet) or a Quad and finally shipped.

Lifecycle:  created → graded → palletized | packed → (warehouse) → shipped

Container membership and status move together: batch_id is set only while
palletized, quad_id only while packed / warehouse.  Every UPDATE is
conditioned on ``version`` so concurrent devices cannot overwrite each
other's transitions.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ItemStatus(str, enum.Enum):
    CREATED = "created"
    GRADED = "graded"
    PALLETIZED = "palletized"
    PACKED = "packed"
    SHIPPED = "shipped"
    WAREHOUSE = "warehouse"


# Items physically on the warehouse floor, regardless of container
IN_STOCK_STATUSES = (ItemStatus.GRADED.value, ItemStatus.PALLETIZED.value)


class ProductionItem(Base):
    __tablename__ = "production_items"
    __table_args__ = (
        UniqueConstraint("product_name", "date", "serial_number", name="uq_items_product_date_serial"),
        UniqueConstraint("sku", "date", "serial_number", name="uq_items_sku_date_serial"),
        UniqueConstraint("batch_id", "serial_number", name="uq_items_batch_serial"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    barcode: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    # ── Identity (from the label) ────────────────────────────
    serial_number: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    product_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sku: Mapped[str] = mapped_column(String(50), nullable=False)
    production_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False)

    # ── Status ───────────────────────────────────────────────
    # created | graded | palletized | packed | shipped | warehouse
    status: Mapped[str] = mapped_column(
        String(20), default=ItemStatus.CREATED.value, nullable=False, index=True
    )

    # ── Lab ──────────────────────────────────────────────────
    sort: Mapped[str | None] = mapped_column(String(50), index=True)
    graded_at: Mapped[datetime | None] = mapped_column(DateTime)
    lab_user_id: Mapped[str | None] = mapped_column(String(36))

    # ── Containers ───────────────────────────────────────────
    batch_id: Mapped[str | None] = mapped_column(
        String(20), ForeignKey("batches.id"), index=True
    )
    palletized_at: Mapped[datetime | None] = mapped_column(DateTime)
    quad_id: Mapped[str | None] = mapped_column(
        String(20), ForeignKey("quads.id"), index=True
    )
    packed_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Warehouse slot ───────────────────────────────────────
    location_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("locations.id"), index=True
    )

    # ── Shipping ─────────────────────────────────────────────
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime)
    shipped_from: Mapped[str | None] = mapped_column(String(20))

    # ── Metadata ─────────────────────────────────────────────
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    location = relationship("Location", lazy="selectin")

    __mapper_args__ = {"version_id_col": version}

    @property
    def location_code(self) -> str | None:
        return self.location.code if self.location else None
