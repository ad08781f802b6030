"""Warehouse slots and the placement of bales and pallets."""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.batch import Batch
from app.models.item import ItemStatus, ProductionItem
from app.models.location import Location
from app.services.batches import get_batch
from app.services.items import get_item
from app.utils.activity import record_change
from app.utils.locks import flush_versioned, get_item_lock

logger = logging.getLogger("hemptrack.locations")


def location_code(zone: str, rack: str, level: str, position: str | None = None) -> str:
    """Slot code as printed on the rack, e.g. "A-01-2-L"."""
    parts = [zone, rack, level]
    if position:
        parts.append(position)
    return "-".join(parts)


async def create_location(
    db: AsyncSession,
    *,
    zone: str,
    rack: str,
    level: str,
    position: str | None = None,
    description: str | None = None,
) -> Location:
    zone, rack, level = zone.strip(), rack.strip(), level.strip()
    position = (position or "").strip() or None
    segments = [("zone", zone), ("rack", rack), ("level", level)]
    if position is not None:
        segments.append(("position", position))
    for name, value in segments:
        if not value or "-" in value:
            raise ValidationError(
                f"Location {name} must be non-empty and must not contain '-'",
                error_code="INVALID_LOCATION",
            )

    code = location_code(zone, rack, level, position)
    existing = await db.scalar(select(Location.id).where(Location.code == code))
    if existing:
        raise ConflictError(f"Location {code} already exists", error_code="LOCATION_EXISTS")

    location = Location(
        zone=zone, rack=rack, level=level, position=position,
        code=code, description=description, is_occupied=False,
    )
    db.add(location)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError(f"Location {code} already exists", error_code="LOCATION_EXISTS") from exc

    record_change(
        db, action="created", entity_type="location", entity_id=location.id,
        new_value={"code": code},
    )
    return location


async def list_locations(db: AsyncSession) -> list[Location]:
    result = await db.execute(select(Location).order_by(Location.code))
    return list(result.scalars().all())


async def get_location_by_code(db: AsyncSession, code: str) -> Location:
    location = await db.scalar(select(Location).where(Location.code == code))
    if not location:
        raise NotFoundError("Location", code)
    return location


async def release_if_empty(db: AsyncSession, location_id: str) -> bool:
    """Mark a slot free once no bale or pallet still sits there."""
    items_left = await db.scalar(
        select(func.count(ProductionItem.id)).where(
            ProductionItem.location_id == location_id,
            ProductionItem.status != ItemStatus.SHIPPED.value,
        )
    )
    pallets_left = await db.scalar(
        select(func.count(Batch.id)).where(
            Batch.location_id == location_id,
            Batch.shipped_at.is_(None),
        )
    )
    if items_left or pallets_left:
        return False
    location = await db.get(Location, location_id)
    location.is_occupied = False
    return True


async def assign_item(
    db: AsyncSession,
    item_id: str,
    code: str,
    actor_id: str | None = None,
) -> ProductionItem:
    """Record where a bale physically sits.  Frees the previous slot if empty."""
    item = await get_item(db, item_id)
    if item.status == ItemStatus.SHIPPED.value:
        get_item_lock(item).raise_if_locked("move")
    location = await get_location_by_code(db, code)

    previous_id = item.location_id
    old_code = item.location_code
    item.location_id = location.id
    await flush_versioned(db, f"Bale {item.serial_number}")
    location.is_occupied = True

    if previous_id and previous_id != location.id:
        await release_if_empty(db, previous_id)

    await db.flush()
    await db.refresh(item, ["location"])

    record_change(
        db, action="located", entity_type="item", entity_id=item.id,
        old_value={"location": old_code}, new_value={"location": location.code},
        actor_id=actor_id,
    )
    logger.info("Bale %s placed at %s", item.serial_number, location.code)
    return item


async def assign_batch(
    db: AsyncSession,
    batch_id: str,
    code: str,
    actor_id: str | None = None,
) -> Batch:
    """Record where a whole pallet stands.  Frees the previous slot if empty."""
    batch = await get_batch(db, batch_id, for_update=True)
    if batch.shipped_at is not None:
        raise InvalidStateError(
            f"Pallet {batch.id} has already been shipped",
            error_code="BATCH_SHIPPED",
        )
    location = await get_location_by_code(db, code)

    previous_id = batch.location_id
    batch.location_id = location.id
    location.is_occupied = True
    await db.flush()

    old_code = None
    if previous_id and previous_id != location.id:
        old_code = (await db.get(Location, previous_id)).code
        await release_if_empty(db, previous_id)
        await db.flush()

    record_change(
        db, action="located", entity_type="batch", entity_id=batch.id,
        old_value={"location": old_code}, new_value={"location": location.code},
        actor_id=actor_id,
    )
    logger.info("Pallet %s placed at %s", batch.id, location.code)
    return batch


async def search_location(
    db: AsyncSession,
    code: str,
) -> tuple[Location, list[ProductionItem], list[Batch]]:
    """Bales and pallets currently recorded at a slot."""
    location = await get_location_by_code(db, code)
    items = await db.execute(
        select(ProductionItem)
        .where(
            ProductionItem.location_id == location.id,
            ProductionItem.status != ItemStatus.SHIPPED.value,
        )
        .order_by(ProductionItem.serial_number)
    )
    pallets = await db.execute(
        select(Batch)
        .where(Batch.location_id == location.id, Batch.shipped_at.is_(None))
        .order_by(Batch.id)
    )
    return location, list(items.scalars().all()), list(pallets.scalars().all())


async def clear_location(
    db: AsyncSession,
    code: str,
    actor_id: str | None = None,
) -> Location:
    """Empty a slot: detach every bale and pallet recorded there."""
    location, items, pallets = await search_location(db, code)

    for item in items:
        item.location_id = None
    if items:
        await flush_versioned(db, f"Location {location.code}")
    for batch in pallets:
        batch.location_id = None
    location.is_occupied = False
    await db.flush()
    for item in items:
        await db.refresh(item, ["location"])

    record_change(
        db, action="cleared", entity_type="location", entity_id=location.id,
        old_value={
            "code": location.code,
            "item_ids": [i.id for i in items],
            "batch_ids": [b.id for b in pallets],
        },
        actor_id=actor_id,
    )
    logger.info(
        "Cleared %s: %d bale(s), %d pallet(s) detached",
        location.code, len(items), len(pallets),
    )
    return location
