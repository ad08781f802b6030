"""Batch: a pallet of graded bales of one sort.

Built at the palletizing station by scanning labels one at a time.
The pallet number (P-YYYYMMDD-NNN) is the primary key and is printed on
the pallet sheet.

Lifecycle:  open → closed   (disband deletes it from either state)
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class BatchStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class Batch(Base):
    __tablename__ = "batches"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    sort: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ── Status ───────────────────────────────────────────────
    # open | closed
    status: Mapped[str] = mapped_column(
        String(20), default=BatchStatus.OPEN.value, nullable=False, index=True
    )

    # Recomputed from members after every change, never edited directly
    total_weight: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    location_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("locations.id")
    )

    # ── Metadata ─────────────────────────────────────────────
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Relationships ────────────────────────────────────────
    # Read-only: membership is written through ProductionItem.batch_id only
    items = relationship(
        "ProductionItem",
        primaryjoin="Batch.id == foreign(ProductionItem.batch_id)",
        order_by="ProductionItem.palletized_at",
        viewonly=True,
        lazy="selectin",
    )
