"""Stocktake sessions and their scan records.

An InventorySession is one scanning pass through the warehouse.  Every
scan produces exactly one InventoryScanRecord; completing the session adds
one "missing" record per expected item that was never seen.

Only one session may be active at a time, enforced by a unique partial
index so two devices starting a stocktake simultaneously cannot both win.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint, text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ScanStatus(str, enum.Enum):
    FOUND = "found"
    MISSING = "missing"
    EXTRA = "extra"
    MISMATCH = "mismatch"


class InventorySession(Base):
    __tablename__ = "inventory_sessions"
    __table_args__ = (
        Index(
            "uq_inventory_sessions_single_active",
            "status",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # active | completed | cancelled
    status: Mapped[str] = mapped_column(
        String(20), default=SessionStatus.ACTIVE.value, nullable=False
    )

    # ── Counters ─────────────────────────────────────────────
    total_expected: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_scanned: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_missing: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_extra: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    user_id: Mapped[str | None] = mapped_column(String(36))
    started_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class InventoryScanRecord(Base):
    __tablename__ = "inventory_scan_records"
    __table_args__ = (
        UniqueConstraint("session_id", "barcode", name="uq_scan_records_session_barcode"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("inventory_sessions.id"), nullable=False, index=True
    )
    production_item_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("production_items.id"), index=True
    )
    barcode: Mapped[str] = mapped_column(String(120), nullable=False)

    # found | missing | extra | mismatch
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # ── Resolved item snapshot ───────────────────────────────
    serial_number: Mapped[int | None] = mapped_column(Integer)
    product_name: Mapped[str | None] = mapped_column(String(100))
    weight: Mapped[float | None] = mapped_column(Float)
    sort: Mapped[str | None] = mapped_column(String(50))

    expected_location: Mapped[str | None] = mapped_column(String(50))
    actual_location: Mapped[str | None] = mapped_column(String(50))
    scanned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
