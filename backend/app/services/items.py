"""Item state machine: the single source of truth for bale status.

    created ──grade──▶ graded ──(batches)──▶ palletized ──ship──▶ shipped
       ▲                 │  ▲                                       ▲
       └──revert_grade───┘  └──(quads)──▶ packed ──────ship─────────┘
                                            │
                                            └──(send_to_warehouse)──▶ warehouse

Only the aggregators (services.batches, services.quads) move items in and
out of containers; this module never touches batch_id / quad_id except when
shipping, where the container reference is cleared and kept in
shipped_from.

Every transition is conditioned on the item's version (optimistic lock), so
two devices acting on the same bale cannot both succeed.
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
from app.models.batch import Batch
from app.models.item import ItemStatus, ProductionItem
from app.models.quad import Quad, QuadStatus
from app.utils.activity import record_change
from app.utils.barcode import build_barcode, parse_barcode, try_parse_barcode
from app.utils.locks import flush_versioned, get_item_lock

logger = logging.getLogger("hemptrack.items")

SHIPPABLE_STATUSES = (ItemStatus.PALLETIZED.value, ItemStatus.PACKED.value)


def item_snapshot(item: ProductionItem) -> dict:
    """Mutable part of an item, as recorded in change events."""
    return {
        "status": item.status,
        "sort": item.sort,
        "batch_id": item.batch_id,
        "quad_id": item.quad_id,
    }


async def get_item(db: AsyncSession, item_id: str) -> ProductionItem:
    item = await db.get(ProductionItem, item_id)
    if not item:
        raise NotFoundError("Item", item_id)
    return item


async def list_items(
    db: AsyncSession,
    *,
    status: str | None = None,
    product_name: str | None = None,
    sort: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ProductionItem], int]:
    """Production journal, newest first.  Returns (page, total)."""
    stmt = select(ProductionItem)
    if status:
        stmt = stmt.where(ProductionItem.status == status)
    if product_name:
        stmt = stmt.where(ProductionItem.product_name == product_name)
    if sort:
        stmt = stmt.where(ProductionItem.sort == sort)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    result = await db.execute(
        stmt.order_by(ProductionItem.created_at.desc(), ProductionItem.serial_number.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def resolve_barcode(db: AsyncSession, barcode: str) -> ProductionItem | None:
    """Find the item a scanned label belongs to.

    Exact barcode match first; otherwise the (sku, date, serial) encoded in
    the label, which tolerates a reprinted label whose weight was rounded
    differently.  Returns None for unknown or unparseable labels.
    """
    result = await db.execute(
        select(ProductionItem).where(ProductionItem.barcode == barcode).limit(1)
    )
    item = result.scalars().first()
    if item:
        return item

    parsed = try_parse_barcode(barcode)
    if parsed is None or parsed.production_date is None:
        return None

    result = await db.execute(
        select(ProductionItem).where(
            ProductionItem.sku == parsed.sku,
            ProductionItem.production_date == parsed.production_date,
            ProductionItem.serial_number == parsed.serial,
        ).limit(1)
    )
    return result.scalars().first()


# ── Create ───────────────────────────────────────────────────

async def create_item(
    db: AsyncSession,
    *,
    product_name: str,
    sku: str,
    serial_number: int,
    weight: float,
    production_date: date | None = None,
    actor_id: str | None = None,
) -> ProductionItem:
    """Register a freshly baled item (status=created) and derive its barcode."""
    production_date = production_date or date.today()
    if weight <= 0:
        raise ValidationError("Weight must be positive", error_code="INVALID_WEIGHT")
    if "-" in sku:
        raise ValidationError(
            f"SKU '{sku}' must not contain '-'", error_code="INVALID_SKU"
        )

    existing = await db.scalar(
        select(ProductionItem.id).where(
            ProductionItem.product_name == product_name,
            ProductionItem.production_date == production_date,
            ProductionItem.serial_number == serial_number,
        )
    )
    if existing:
        raise ConflictError(
            f"Bale {serial_number} of {product_name} already exists for "
            f"{production_date.isoformat()}",
            error_code="DUPLICATE_ITEM",
        )

    # The label carries sku, date and serial, so those must identify one bale
    label_taken = await db.scalar(
        select(ProductionItem.product_name).where(
            ProductionItem.sku == sku,
            ProductionItem.production_date == production_date,
            ProductionItem.serial_number == serial_number,
        )
    )
    if label_taken:
        raise ConflictError(
            f"Label {sku} {serial_number} for {production_date.isoformat()} is "
            f"already used by {label_taken}",
            error_code="DUPLICATE_ITEM",
        )

    item = ProductionItem(
        product_name=product_name,
        sku=sku,
        serial_number=serial_number,
        production_date=production_date,
        weight=weight,
        barcode=build_barcode(production_date, sku, serial_number, weight),
        status=ItemStatus.CREATED.value,
        created_by=actor_id,
    )
    db.add(item)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError(
            f"Bale {serial_number} of {product_name} was registered concurrently",
            error_code="DUPLICATE_ITEM",
        ) from exc
    await db.refresh(item, ["location"])

    record_change(
        db, action="created", entity_type="item", entity_id=item.id,
        new_value=item_snapshot(item), actor_id=actor_id,
    )
    logger.info("Created item %s (%s)", item.id, item.barcode)
    return item


# ── Grading ──────────────────────────────────────────────────

async def grade_item(
    db: AsyncSession,
    item_id: str,
    sort: str,
    lab_user_id: str | None = None,
) -> ProductionItem:
    """created → graded.  Re-grading a graded item is a correction.

    Items inside a container (or shipped) are rejected: changing the sort
    there would break the container's single-sort rule.
    """
    sort = (sort or "").strip()
    if not sort:
        raise ValidationError("Sort is required", error_code="SORT_REQUIRED")

    item = await get_item(db, item_id)
    if item.status not in (ItemStatus.CREATED.value, ItemStatus.GRADED.value):
        get_item_lock(item).raise_if_locked("grade")
        raise InvalidStateError(
            f"Cannot grade bale {item.serial_number} in status '{item.status}'"
        )

    old = item_snapshot(item)
    item.status = ItemStatus.GRADED.value
    item.sort = sort
    item.graded_at = datetime.utcnow()
    item.lab_user_id = lab_user_id
    await flush_versioned(db, f"Bale {item.serial_number}")

    record_change(
        db, action="graded", entity_type="item", entity_id=item.id,
        old_value=old, new_value=item_snapshot(item), actor_id=lab_user_id,
    )
    logger.info("Graded item %s as %s", item.id, sort)
    return item


async def grade_by_barcode(
    db: AsyncSession,
    barcode: str,
    sort: str,
    lab_user_id: str | None = None,
) -> ProductionItem:
    parse_barcode(barcode)
    item = await resolve_barcode(db, barcode)
    if item is None:
        raise NotFoundError("Item", barcode)
    return await grade_item(db, item.id, sort, lab_user_id)


async def revert_grade(
    db: AsyncSession,
    item_id: str,
    actor_id: str | None = None,
) -> ProductionItem:
    """graded → created: send the bale back to the lab queue."""
    item = await get_item(db, item_id)
    if item.status != ItemStatus.GRADED.value:
        get_item_lock(item).raise_if_locked("revert grade")
        raise InvalidStateError(
            f"Bale {item.serial_number} is not graded (status '{item.status}')"
        )

    old = item_snapshot(item)
    item.status = ItemStatus.CREATED.value
    item.sort = None
    item.graded_at = None
    item.lab_user_id = None
    await flush_versioned(db, f"Bale {item.serial_number}")

    record_change(
        db, action="grade_reverted", entity_type="item", entity_id=item.id,
        old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
    )
    logger.info("Reverted grade of item %s", item.id)
    return item


# ── Shipping ─────────────────────────────────────────────────

async def ship_items(
    db: AsyncSession,
    item_ids: list[str],
    actor_id: str | None = None,
) -> list[ProductionItem]:
    """palletized | packed → shipped for a set of items, all or nothing.

    Packed items ship with their whole quad: every member of the quad must
    be in the request.
    """
    ids = list(dict.fromkeys(item_ids))
    if not ids:
        raise ValidationError("No items to ship", error_code="EMPTY_SHIPMENT")

    result = await db.execute(
        select(ProductionItem).where(ProductionItem.id.in_(ids)).with_for_update()
    )
    by_id = {item.id: item for item in result.scalars().all()}
    for item_id in ids:
        if item_id not in by_id:
            raise NotFoundError("Item", item_id)
    items = [by_id[item_id] for item_id in ids]

    for item in items:
        if item.status not in SHIPPABLE_STATUSES:
            raise InvalidStateError(
                f"Bale {item.serial_number} cannot be shipped from status "
                f"'{item.status}'"
            )

    # Quads leave as a unit
    quad_ids = {item.quad_id for item in items if item.quad_id}
    quads: dict[str, Quad] = {}
    for quad_id in sorted(quad_ids):
        quad = await db.get(Quad, quad_id)
        member_ids = {member.id for member in quad.items}
        if not member_ids <= set(ids):
            raise InvalidStateError(
                f"Quad {quad_id} must be shipped complete",
                error_code="QUAD_PARTIAL_SHIPMENT",
            )
        quads[quad_id] = quad

    batch_ids = {item.batch_id for item in items if item.batch_id}
    now = datetime.utcnow()
    events = []
    for item in items:
        old = item_snapshot(item)
        item.shipped_from = item.batch_id or item.quad_id
        item.batch_id = None
        item.quad_id = None
        item.status = ItemStatus.SHIPPED.value
        item.shipped_at = now
        events.append((item, old))
    await flush_versioned(db, "Shipment")

    for item, old in events:
        record_change(
            db, action="shipped", entity_type="item", entity_id=item.id,
            old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
        )

    for quad in quads.values():
        old_status = quad.status
        quad.status = QuadStatus.SHIPPED.value
        quad.shipped_at = now
        record_change(
            db, action="shipped", entity_type="quad", entity_id=quad.id,
            old_value={"status": old_status}, new_value={"status": quad.status},
            actor_id=actor_id,
        )

    # A pallet is shipped once its last member left
    from app.services.batches import recompute_total  # deferred to avoid circular

    for batch_id in sorted(batch_ids):
        batch = await db.get(Batch, batch_id)
        remaining = await recompute_total(db, batch)
        if not remaining:
            batch.shipped_at = now
            record_change(
                db, action="shipped", entity_type="batch", entity_id=batch.id,
                new_value={"shipped_at": now.isoformat()}, actor_id=actor_id,
            )

    await db.flush()
    logger.info("Shipped %d item(s) by %s", len(items), actor_id)
    return items
