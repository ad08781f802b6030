"""Shipment aggregator: closed pallets loaded for one destination.

A shipment collects whole pallets while it is planned (draft / loading).
Dispatching it (status → shipped) ships every bale on its pallets through
items.ship_items(), so the item state machine stays the single place where
bales become "shipped".  The shipment keeps a per-pallet snapshot of weight
and bale count because the pallets themselves are emptied on dispatch.
"""

import logging
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.batch import Batch, BatchStatus
from app.models.item import ProductionItem
from app.models.shipment import (
    EDITABLE_STATUSES,
    Shipment,
    ShipmentItem,
    ShipmentStatus,
)
from app.services.items import ship_items
from app.services.locations import release_if_empty
from app.utils.activity import record_change
from app.utils.numbering import generate_code

logger = logging.getLogger("hemptrack.shipments")

TRANSITIONS = {
    ShipmentStatus.DRAFT.value: {
        ShipmentStatus.LOADING.value, ShipmentStatus.SHIPPED.value, ShipmentStatus.CANCELLED.value,
    },
    ShipmentStatus.LOADING.value: {
        ShipmentStatus.DRAFT.value, ShipmentStatus.SHIPPED.value, ShipmentStatus.CANCELLED.value,
    },
    ShipmentStatus.SHIPPED.value: {ShipmentStatus.IN_TRANSIT.value, ShipmentStatus.DELIVERED.value},
    ShipmentStatus.IN_TRANSIT.value: {ShipmentStatus.DELIVERED.value},
    ShipmentStatus.DELIVERED.value: set(),
    ShipmentStatus.CANCELLED.value: set(),
}

DELETABLE_STATUSES = EDITABLE_STATUSES + (ShipmentStatus.CANCELLED.value,)
LOCKED_STATUSES = (ShipmentStatus.DELIVERED.value, ShipmentStatus.CANCELLED.value)

UPDATABLE_FIELDS = (
    "destination", "destination_address", "carrier", "truck_number",
    "driver_name", "driver_phone", "cmr_number", "scheduled_date", "notes",
)


# ── Helpers ──────────────────────────────────────────────────

async def recalculate_totals(db: AsyncSession, shipment: Shipment) -> None:
    """Set total_weight / total_pallets from the shipment's pallet rows."""
    await db.flush()
    row = (await db.execute(
        select(
            func.count(ShipmentItem.id),
            func.coalesce(func.sum(ShipmentItem.pallet_weight), 0.0),
        ).where(ShipmentItem.shipment_id == shipment.id)
    )).one()
    shipment.total_pallets = int(row[0])
    shipment.total_weight = float(row[1])


def _ensure_editable(shipment: Shipment) -> None:
    if shipment.status not in EDITABLE_STATUSES:
        raise InvalidStateError(
            f"Shipment {shipment.id} is {shipment.status}, pallets can no longer change",
            error_code="SHIPMENT_NOT_EDITABLE",
        )


def _product_label(members: list[ProductionItem]) -> str:
    names = {item.product_name for item in members}
    return names.pop() if len(names) == 1 else "Mixed"


# ── Queries ──────────────────────────────────────────────────

async def get_shipment(
    db: AsyncSession,
    shipment_id: str,
    for_update: bool = False,
) -> Shipment:
    stmt = select(Shipment).where(Shipment.id == shipment_id)
    if for_update:
        stmt = stmt.with_for_update()
    shipment = (await db.execute(stmt)).scalar_one_or_none()
    if not shipment:
        raise NotFoundError("Shipment", shipment_id)
    return shipment


async def list_shipments(db: AsyncSession, status: str | None = None) -> list[Shipment]:
    stmt = select(Shipment)
    if status:
        stmt = stmt.where(Shipment.status == status)
    result = await db.execute(stmt.order_by(Shipment.created_at.desc(), Shipment.id.desc()))
    return list(result.scalars().all())


async def list_available_pallets(db: AsyncSession) -> list[Batch]:
    """Closed, unshipped pallets that are not on any shipment yet."""
    taken = select(ShipmentItem.batch_id)
    result = await db.execute(
        select(Batch)
        .where(
            Batch.status == BatchStatus.CLOSED.value,
            Batch.shipped_at.is_(None),
            Batch.id.not_in(taken),
        )
        .order_by(Batch.created_at.desc(), Batch.id.desc())
    )
    return list(result.scalars().all())


async def get_summary(db: AsyncSession) -> dict:
    """Counts for the shipping report: totals, per status, per destination."""
    totals = (await db.execute(
        select(
            func.count(Shipment.id),
            func.coalesce(func.sum(Shipment.total_pallets), 0),
            func.coalesce(func.sum(Shipment.total_weight), 0.0),
        )
    )).one()

    by_status = {s.value: 0 for s in ShipmentStatus}
    rows = await db.execute(
        select(Shipment.status, func.count(Shipment.id)).group_by(Shipment.status)
    )
    for status, count in rows.all():
        by_status[status] = count

    rows = await db.execute(
        select(Shipment.destination, func.count(Shipment.id))
        .group_by(Shipment.destination)
        .order_by(Shipment.destination)
    )
    by_destination = {destination: count for destination, count in rows.all()}

    return {
        "total_shipments": int(totals[0]),
        "total_pallets": int(totals[1]),
        "total_weight": float(totals[2]),
        "by_status": by_status,
        "by_destination": by_destination,
    }


# ── Lifecycle ────────────────────────────────────────────────

async def create_shipment(
    db: AsyncSession,
    *,
    destination: str,
    actor_id: str | None = None,
    today: date | None = None,
    **details,
) -> Shipment:
    """Open a draft shipment numbered SH-YYYYMMDD-NNN."""
    destination = (destination or "").strip()
    if not destination:
        raise ValidationError("Destination is required", error_code="DESTINATION_REQUIRED")

    shipment = Shipment(
        id=await generate_code(db, "shipment", today),
        destination=destination,
        status=ShipmentStatus.DRAFT.value,
        total_weight=0.0,
        total_pallets=0,
        created_by=actor_id,
        **{k: v for k, v in details.items() if k in UPDATABLE_FIELDS},
    )
    db.add(shipment)
    await db.flush()
    await db.refresh(shipment, ["items"])

    record_change(
        db, action="created", entity_type="shipment", entity_id=shipment.id,
        new_value={"destination": destination, "status": shipment.status},
        actor_id=actor_id,
    )
    logger.info("Opened shipment %s to %s", shipment.id, destination)
    return shipment


async def update_shipment(
    db: AsyncSession,
    shipment_id: str,
    changes: dict,
    actor_id: str | None = None,
) -> Shipment:
    """Edit transport details.  Delivered and cancelled shipments are final."""
    shipment = await get_shipment(db, shipment_id, for_update=True)
    if shipment.status in LOCKED_STATUSES:
        raise InvalidStateError(
            f"Shipment {shipment.id} is {shipment.status} and can no longer be edited",
            error_code="SHIPMENT_NOT_EDITABLE",
        )

    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
    if "destination" in changes:
        changes["destination"] = (changes["destination"] or "").strip()
        if not changes["destination"]:
            raise ValidationError("Destination is required", error_code="DESTINATION_REQUIRED")

    old = {field: getattr(shipment, field) for field in changes}
    for field, value in changes.items():
        setattr(shipment, field, value)
    await db.flush()

    record_change(
        db, action="updated", entity_type="shipment", entity_id=shipment.id,
        old_value={k: str(v) if isinstance(v, date) else v for k, v in old.items()},
        new_value={k: str(v) if isinstance(v, date) else v for k, v in changes.items()},
        actor_id=actor_id,
    )
    return shipment


async def delete_shipment(
    db: AsyncSession,
    shipment_id: str,
    actor_id: str | None = None,
) -> None:
    """Delete a shipment that never left; its pallets become available again."""
    shipment = await get_shipment(db, shipment_id, for_update=True)
    if shipment.status not in DELETABLE_STATUSES:
        raise InvalidStateError(
            f"Shipment {shipment.id} is {shipment.status} and cannot be deleted",
            error_code="SHIPMENT_NOT_DELETABLE",
        )

    batch_ids = [row.batch_id for row in shipment.items]
    await db.delete(shipment)
    await db.flush()

    record_change(
        db, action="deleted", entity_type="shipment", entity_id=shipment_id,
        old_value={"status": shipment.status, "batch_ids": batch_ids},
        actor_id=actor_id,
    )
    logger.info("Deleted shipment %s (%d pallet(s) released)", shipment_id, len(batch_ids))


# ── Pallets ──────────────────────────────────────────────────

async def add_pallet(
    db: AsyncSession,
    shipment_id: str,
    batch_id: str,
    actor_id: str | None = None,
) -> Shipment:
    """Load a closed pallet.  Adding the same pallet twice is a no-op."""
    shipment = await get_shipment(db, shipment_id, for_update=True)
    batch = await db.scalar(select(Batch).where(Batch.id == batch_id).with_for_update())
    if batch is None:
        raise NotFoundError("Batch", batch_id)

    on_shipment = await db.scalar(
        select(ShipmentItem.shipment_id).where(ShipmentItem.batch_id == batch.id)
    )
    if on_shipment == shipment.id:
        return shipment
    if on_shipment:
        raise ConflictError(
            f"Pallet {batch.id} is already on shipment {on_shipment}",
            error_code="PALLET_IN_OTHER_SHIPMENT",
        )
    _ensure_editable(shipment)

    if batch.status != BatchStatus.CLOSED.value:
        raise InvalidStateError(
            f"Pallet {batch.id} must be closed before loading",
            error_code="BATCH_NOT_CLOSED",
        )
    if batch.shipped_at is not None:
        raise InvalidStateError(
            f"Pallet {batch.id} has already been shipped",
            error_code="BATCH_SHIPPED",
        )
    members = list(batch.items)
    if not members:
        raise InvalidStateError(f"Pallet {batch.id} is empty", error_code="BATCH_EMPTY")

    shipment.items.append(ShipmentItem(
        batch_id=batch.id,
        pallet_weight=batch.total_weight,
        pallet_item_count=len(members),
        product_name=_product_label(members),
        sort=batch.sort,
        added_by=actor_id,
    ))
    await recalculate_totals(db, shipment)

    record_change(
        db, action="pallet_added", entity_type="shipment", entity_id=shipment.id,
        new_value={"batch_id": batch.id, "total_pallets": shipment.total_pallets,
                   "total_weight": shipment.total_weight},
        actor_id=actor_id,
    )
    logger.info("Loaded pallet %s onto shipment %s", batch.id, shipment.id)
    return shipment


async def remove_pallet(
    db: AsyncSession,
    shipment_id: str,
    batch_id: str,
    actor_id: str | None = None,
) -> Shipment:
    """Unload a pallet.  A pallet that is not on the shipment is a no-op."""
    shipment = await get_shipment(db, shipment_id, for_update=True)
    row = next((r for r in shipment.items if r.batch_id == batch_id), None)
    if row is None:
        return shipment
    _ensure_editable(shipment)

    shipment.items.remove(row)
    await recalculate_totals(db, shipment)

    record_change(
        db, action="pallet_removed", entity_type="shipment", entity_id=shipment.id,
        new_value={"batch_id": batch_id, "total_pallets": shipment.total_pallets,
                   "total_weight": shipment.total_weight},
        actor_id=actor_id,
    )
    logger.info("Unloaded pallet %s from shipment %s", batch_id, shipment.id)
    return shipment


# ── Status ───────────────────────────────────────────────────

async def _dispatch(db: AsyncSession, shipment: Shipment, actor_id: str | None) -> int:
    """Ship every bale on the shipment's pallets; return the bale count."""
    batch_ids = [row.batch_id for row in shipment.items]
    if not batch_ids:
        raise ValidationError(
            f"Shipment {shipment.id} has no pallets", error_code="EMPTY_SHIPMENT"
        )

    result = await db.execute(
        select(Batch).where(Batch.id.in_(batch_ids)).with_for_update()
    )
    batches = list(result.scalars().all())
    for batch in batches:
        if batch.shipped_at is not None:
            raise InvalidStateError(
                f"Pallet {batch.id} has already been shipped",
                error_code="BATCH_SHIPPED",
            )

    result = await db.execute(
        select(ProductionItem)
        .where(ProductionItem.batch_id.in_(batch_ids))
        .order_by(ProductionItem.batch_id, ProductionItem.palletized_at)
    )
    members = list(result.scalars().all())
    slots = {item.location_id for item in members if item.location_id}
    slots |= {batch.location_id for batch in batches if batch.location_id}

    await ship_items(db, [item.id for item in members], actor_id)
    for location_id in sorted(slots):
        await release_if_empty(db, location_id)
    return len(members)


async def update_status(
    db: AsyncSession,
    shipment_id: str,
    status: str,
    actor_id: str | None = None,
) -> Shipment:
    """Move a shipment along its lifecycle.

    Dispatching (→ shipped) ships all bales on the shipment's pallets in the
    same transaction; cancelling releases the pallets for other shipments.
    """
    shipment = await get_shipment(db, shipment_id, for_update=True)
    old_status = shipment.status
    if status == old_status:
        return shipment
    if status not in TRANSITIONS:
        raise ValidationError(f"Unknown shipment status '{status}'")
    if status not in TRANSITIONS[old_status]:
        raise InvalidStateError(
            f"Shipment {shipment.id} cannot go from {old_status} to {status}",
            error_code="INVALID_SHIPMENT_TRANSITION",
        )

    now = datetime.utcnow()
    new_value = {"status": status}
    if status == ShipmentStatus.SHIPPED.value:
        new_value["items_shipped"] = await _dispatch(db, shipment, actor_id)
        shipment.shipped_at = now
    elif status == ShipmentStatus.DELIVERED.value:
        shipment.delivered_at = now
    elif status == ShipmentStatus.CANCELLED.value:
        new_value["released_batch_ids"] = [row.batch_id for row in shipment.items]
        shipment.items.clear()
        await recalculate_totals(db, shipment)

    shipment.status = status
    await db.flush()

    record_change(
        db, action="status_changed", entity_type="shipment", entity_id=shipment.id,
        old_value={"status": old_status}, new_value=new_value, actor_id=actor_id,
    )
    logger.info("Shipment %s: %s → %s", shipment.id, old_status, status)
    return shipment
