"""Downstream locking: an item referenced by a container cannot be edited.

Each check returns a LockInfo describing why the item is locked and how to
unlock it, without raising.  The caller decides whether the operation it is
about to perform is blocked.

flush_versioned() turns the ORM's optimistic version check into a
ConflictError: two devices grading the same bale at the same time cannot
both succeed.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.middleware.exceptions import ConflictError, InvalidStateError
from app.models.item import ItemStatus, ProductionItem


@dataclass
class LockInfo:
    """Lock state for an item.  None reason means nothing locked."""
    reason: str | None = None
    blocker_type: str | None = None   # "batch", "quad", "shipment"
    blocker_ref: str | None = None    # e.g. "P-20260301-014"
    unlock_hint: str | None = None

    @property
    def is_locked(self) -> bool:
        return self.reason is not None

    def raise_if_locked(self, action: str) -> None:
        if self.is_locked:
            raise InvalidStateError(
                f"Cannot {action}: {self.reason}. {self.unlock_hint}",
                error_code=f"ITEM_LOCKED_BY_{self.blocker_type.upper()}",
            )


def get_item_lock(item: ProductionItem) -> LockInfo:
    """Check whether an item sits in a container or has left the building."""
    if item.batch_id:
        return LockInfo(
            reason=f"bale {item.serial_number} is on pallet {item.batch_id}",
            blocker_type="batch",
            blocker_ref=item.batch_id,
            unlock_hint="Remove it from the pallet or disband the pallet first.",
        )
    if item.quad_id:
        return LockInfo(
            reason=f"bale {item.serial_number} is packed in quad {item.quad_id}",
            blocker_type="quad",
            blocker_ref=item.quad_id,
            unlock_hint="Disband the quad first.",
        )
    if item.status == ItemStatus.SHIPPED:
        return LockInfo(
            reason=f"bale {item.serial_number} was shipped",
            blocker_type="shipment",
            blocker_ref=item.shipped_from,
            unlock_hint="Shipped bales can only be corrected manually.",
        )
    return LockInfo()


async def flush_versioned(db: AsyncSession, what: str) -> None:
    """Flush pending item updates; a stale version means someone else won."""
    try:
        await db.flush()
    except StaleDataError as exc:
        raise ConflictError(
            f"{what} was changed by another device; reload and retry",
            error_code="CONCURRENT_MODIFICATION",
        ) from exc
