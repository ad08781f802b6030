"""Batch aggregator: pallets of graded bales of one sort.

The palletizing station scans bales onto an open pallet one at a time.
Invariants kept here:

  - every member has the pallet's sort,
  - no serial number appears twice on one pallet (also a DB constraint),
  - total_weight is the SQL SUM of member weights, recomputed after every
    membership change,
  - item.status == "palletized" exactly when item.batch_id is set.
"""

import logging
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.batch import Batch, BatchStatus
from app.models.item import ItemStatus, ProductionItem
from app.models.shipment import ShipmentItem
from app.services.items import get_item, item_snapshot, resolve_barcode
from app.utils.activity import record_change
from app.utils.barcode import parse_barcode
from app.utils.locks import flush_versioned, get_item_lock
from app.utils.numbering import generate_code

logger = logging.getLogger("hemptrack.batches")


# ── Helpers ──────────────────────────────────────────────────

async def recompute_total(db: AsyncSession, batch: Batch) -> int:
    """Set batch.total_weight from its current members; return member count."""
    row = (await db.execute(
        select(
            func.count(ProductionItem.id),
            func.coalesce(func.sum(ProductionItem.weight), 0.0),
        ).where(ProductionItem.batch_id == batch.id)
    )).one()
    batch.total_weight = float(row[1])
    return int(row[0])


async def _refresh_members(db: AsyncSession, batch: Batch) -> Batch:
    await db.flush()
    await db.refresh(batch, ["items"])
    return batch


def _ensure_open(batch: Batch) -> None:
    if batch.status != BatchStatus.OPEN.value:
        raise InvalidStateError(
            f"Pallet {batch.id} is closed",
            error_code="BATCH_CLOSED",
        )


# ── Queries ──────────────────────────────────────────────────

async def get_batch(
    db: AsyncSession,
    batch_id: str,
    for_update: bool = False,
) -> Batch:
    stmt = select(Batch).where(Batch.id == batch_id)
    if for_update:
        stmt = stmt.with_for_update()
    batch = (await db.execute(stmt)).scalar_one_or_none()
    if not batch:
        raise NotFoundError("Batch", batch_id)
    return batch


async def list_batches(
    db: AsyncSession,
    status: str | None = None,
    sort: str | None = None,
) -> list[Batch]:
    stmt = select(Batch)
    if status:
        stmt = stmt.where(Batch.status == status)
    if sort:
        stmt = stmt.where(Batch.sort == sort)
    result = await db.execute(stmt.order_by(Batch.created_at.desc(), Batch.id.desc()))
    return list(result.scalars().all())


# ── Lifecycle ────────────────────────────────────────────────

async def create_batch(
    db: AsyncSession,
    sort: str,
    actor_id: str | None = None,
    location_id: str | None = None,
    today: date | None = None,
) -> Batch:
    """Open an empty pallet for one sort, numbered P-YYYYMMDD-NNN."""
    sort = (sort or "").strip()
    if not sort:
        raise ValidationError("Sort is required", error_code="SORT_REQUIRED")

    batch = Batch(
        id=await generate_code(db, "batch", today),
        sort=sort,
        status=BatchStatus.OPEN.value,
        total_weight=0.0,
        location_id=location_id,
        created_by=actor_id,
    )
    db.add(batch)
    await db.flush()
    await db.refresh(batch, ["items"])

    record_change(
        db, action="created", entity_type="batch", entity_id=batch.id,
        new_value={"sort": sort, "status": batch.status}, actor_id=actor_id,
    )
    logger.info("Opened pallet %s for sort %s", batch.id, sort)
    return batch


async def add_item(
    db: AsyncSession,
    batch_id: str,
    item_id: str,
    actor_id: str | None = None,
) -> Batch:
    """graded → palletized: put a bale on an open pallet."""
    batch = await get_batch(db, batch_id, for_update=True)
    item = await get_item(db, item_id)
    _ensure_open(batch)

    duplicate = await db.scalar(
        select(ProductionItem.id).where(
            ProductionItem.batch_id == batch.id,
            ProductionItem.serial_number == item.serial_number,
        )
    )
    if duplicate:
        raise ConflictError(
            f"Serial {item.serial_number} is already on pallet {batch.id}",
            error_code="DUPLICATE_SERIAL_IN_BATCH",
        )

    if item.status != ItemStatus.GRADED.value:
        get_item_lock(item).raise_if_locked("add to pallet")
        raise InvalidStateError(
            f"Bale {item.serial_number} must be graded before palletizing "
            f"(status '{item.status}')",
            error_code="ITEM_NOT_GRADED",
        )
    if item.sort != batch.sort:
        raise ValidationError(
            f"Bale {item.serial_number} is sort '{item.sort}', "
            f"pallet {batch.id} is sort '{batch.sort}'",
            error_code="SORT_MISMATCH",
        )

    old = item_snapshot(item)
    item.status = ItemStatus.PALLETIZED.value
    item.batch_id = batch.id
    item.palletized_at = datetime.utcnow()
    try:
        await flush_versioned(db, f"Bale {item.serial_number}")
    except IntegrityError as exc:
        raise ConflictError(
            f"Serial {item.serial_number} is already on pallet {batch.id}",
            error_code="DUPLICATE_SERIAL_IN_BATCH",
        ) from exc
    await recompute_total(db, batch)

    record_change(
        db, action="palletized", entity_type="item", entity_id=item.id,
        old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
    )
    record_change(
        db, action="item_added", entity_type="batch", entity_id=batch.id,
        old_value=old, new_value={"item_id": item.id, "serial_number": item.serial_number,
                                  "total_weight": batch.total_weight},
        actor_id=actor_id,
    )
    logger.info("Added bale %s to pallet %s", item.serial_number, batch.id)
    return await _refresh_members(db, batch)


async def add_item_by_barcode(
    db: AsyncSession,
    batch_id: str,
    barcode: str,
    actor_id: str | None = None,
) -> Batch:
    parse_barcode(barcode)
    item = await resolve_barcode(db, barcode)
    if item is None:
        raise NotFoundError("Item", barcode)
    return await add_item(db, batch_id, item.id, actor_id)


async def remove_item(
    db: AsyncSession,
    batch_id: str,
    serial_number: int,
    actor_id: str | None = None,
) -> Batch:
    """palletized → graded for one member.  Unknown serial is a no-op."""
    batch = await get_batch(db, batch_id, for_update=True)
    _ensure_open(batch)

    result = await db.execute(
        select(ProductionItem).where(
            ProductionItem.batch_id == batch.id,
            ProductionItem.serial_number == serial_number,
        )
    )
    item = result.scalars().first()
    if item is None:
        return batch

    old = item_snapshot(item)
    item.status = ItemStatus.GRADED.value
    item.batch_id = None
    item.palletized_at = None
    await flush_versioned(db, f"Bale {serial_number}")
    await recompute_total(db, batch)

    record_change(
        db, action="unpalletized", entity_type="item", entity_id=item.id,
        old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
    )
    record_change(
        db, action="item_removed", entity_type="batch", entity_id=batch.id,
        old_value=old, new_value={"item_id": item.id, "serial_number": serial_number,
                                  "total_weight": batch.total_weight},
        actor_id=actor_id,
    )
    logger.info("Removed bale %s from pallet %s", serial_number, batch.id)
    return await _refresh_members(db, batch)


async def close_batch(
    db: AsyncSession,
    batch_id: str,
    actor_id: str | None = None,
) -> Batch:
    batch = await get_batch(db, batch_id, for_update=True)
    if batch.status == BatchStatus.CLOSED.value:
        return batch

    batch.status = BatchStatus.CLOSED.value
    batch.closed_at = datetime.utcnow()
    await db.flush()

    record_change(
        db, action="closed", entity_type="batch", entity_id=batch.id,
        old_value={"status": BatchStatus.OPEN.value},
        new_value={"status": batch.status, "total_weight": batch.total_weight},
        actor_id=actor_id,
    )
    logger.info("Closed pallet %s (%.1f kg)", batch.id, batch.total_weight)
    return batch


async def disband_batch(
    db: AsyncSession,
    batch_id: str,
    actor_id: str | None = None,
) -> list[ProductionItem]:
    """Return every member to graded (sort intact) and delete the pallet."""
    batch = await get_batch(db, batch_id, for_update=True)
    on_shipment = await db.scalar(
        select(ShipmentItem.shipment_id).where(ShipmentItem.batch_id == batch.id)
    )
    if on_shipment:
        raise InvalidStateError(
            f"Pallet {batch.id} is loaded on shipment {on_shipment}",
            error_code="BATCH_IN_SHIPMENT",
        )

    result = await db.execute(
        select(ProductionItem)
        .where(ProductionItem.batch_id == batch.id)
        .order_by(ProductionItem.palletized_at)
    )
    members = list(result.scalars().all())
    olds = [item_snapshot(item) for item in members]
    for item in members:
        item.status = ItemStatus.GRADED.value
        item.batch_id = None
        item.palletized_at = None
    await flush_versioned(db, f"Pallet {batch.id}")

    await db.delete(batch)
    await db.flush()

    for item, old in zip(members, olds):
        record_change(
            db, action="unpalletized", entity_type="item", entity_id=item.id,
            old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
        )

    record_change(
        db, action="disbanded", entity_type="batch", entity_id=batch_id,
        old_value={"status": batch.status, "item_ids": [i.id for i in members]},
        actor_id=actor_id,
    )
    logger.info("Disbanded pallet %s, %d bale(s) returned", batch_id, len(members))
    return members
