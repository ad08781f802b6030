"""ActivityLog: immutable audit trail of committed state changes.

Written by the notification sink after the business transaction has
committed, so a failing audit write never rolls back a transition.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Who ────────────────────────────────────────────────────
    actor_id: Mapped[str | None] = mapped_column(String(36), index=True)

    # ── What ───────────────────────────────────────────────────
    # created | graded | grade_reverted | palletized | unpalletized | packed |
    # unpacked | sent_to_warehouse | shipped | located | item_added |
    # item_removed | closed | disbanded | started | scanned | completed |
    # cancelled | updated | pallet_added | pallet_removed | status_changed |
    # deleted | cleared
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ── Target ─────────────────────────────────────────────────
    # item | batch | quad | shipment | inventory_session | location
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(36))

    # ── Change ─────────────────────────────────────────────────
    old_value: Mapped[dict | None] = mapped_column(JSON)
    new_value: Mapped[dict | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
