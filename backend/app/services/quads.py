"""Quad aggregator: fixed units of exactly four bales.

The operator picks four graded bales of the same product and sort from
list_available(); create_quad() validates the chosen set and packs all four
in the same transaction that inserts the quad row, so a quad is never seen
with fewer members.
"""

import logging
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.models.item import ItemStatus, ProductionItem
from app.models.quad import QUAD_SIZE, Quad, QuadStatus
from app.services.items import item_snapshot
from app.utils.activity import record_change
from app.utils.barcode import format_date
from app.utils.locks import flush_versioned, get_item_lock
from app.utils.numbering import generate_code

logger = logging.getLogger("hemptrack.quads")


async def get_quad(db: AsyncSession, quad_id: str, for_update: bool = False) -> Quad:
    stmt = select(Quad).where(Quad.id == quad_id)
    if for_update:
        stmt = stmt.with_for_update()
    quad = (await db.execute(stmt)).scalar_one_or_none()
    if not quad:
        raise NotFoundError("Quad", quad_id)
    return quad


async def list_quads(db: AsyncSession, status: str | None = None) -> list[Quad]:
    stmt = select(Quad)
    if status:
        stmt = stmt.where(Quad.status == status)
    result = await db.execute(stmt.order_by(Quad.created_at.desc(), Quad.id.desc()))
    return list(result.scalars().all())


async def list_available(
    db: AsyncSession,
    product_name: str,
    sort: str | None = None,
) -> list[ProductionItem]:
    """Graded bales not in any container: the pool the operator picks from."""
    stmt = select(ProductionItem).where(
        ProductionItem.product_name == product_name,
        ProductionItem.status == ItemStatus.GRADED.value,
        ProductionItem.quad_id.is_(None),
        ProductionItem.batch_id.is_(None),
    )
    if sort:
        stmt = stmt.where(ProductionItem.sort == sort)
    result = await db.execute(
        stmt.order_by(ProductionItem.sort, ProductionItem.serial_number)
    )
    return list(result.scalars().all())


async def create_quad(
    db: AsyncSession,
    item_ids: list[str],
    actor_id: str | None = None,
    today: date | None = None,
) -> Quad:
    ids = list(dict.fromkeys(item_ids))
    if len(ids) != QUAD_SIZE:
        raise ValidationError(
            f"A quad needs exactly {QUAD_SIZE} bales, got {len(ids)}",
            error_code="QUAD_WRONG_COUNT",
        )

    result = await db.execute(
        select(ProductionItem).where(ProductionItem.id.in_(ids)).with_for_update()
    )
    by_id = {item.id: item for item in result.scalars().all()}
    for item_id in ids:
        if item_id not in by_id:
            raise NotFoundError("Item", item_id)
    items = [by_id[item_id] for item_id in ids]

    for item in items:
        if item.status != ItemStatus.GRADED.value:
            get_item_lock(item).raise_if_locked("pack into quad")
            raise InvalidStateError(
                f"Bale {item.serial_number} must be graded before packing "
                f"(status '{item.status}')",
                error_code="ITEM_NOT_GRADED",
            )

    products = {item.product_name for item in items}
    if len(products) > 1:
        raise ValidationError(
            f"All bales of a quad must be the same product, got {sorted(products)}",
            error_code="QUAD_MIXED_PRODUCT",
        )
    sorts = {item.sort for item in items}
    if len(sorts) > 1:
        raise ValidationError(
            f"All bales of a quad must be the same sort, got {sorted(sorts)}",
            error_code="QUAD_MIXED_SORT",
        )

    day = today or date.today()
    quad = Quad(
        id=await generate_code(db, "quad", day),
        date=format_date(day),
        product_name=items[0].product_name,
        sort=items[0].sort,
        total_weight=sum(item.weight for item in items),
        status=QuadStatus.CREATED.value,
        created_by=actor_id,
    )
    db.add(quad)
    await db.flush()  # quad row before the item FKs pointing at it

    now = datetime.utcnow()
    olds = [item_snapshot(item) for item in items]
    for item in items:
        item.status = ItemStatus.PACKED.value
        item.quad_id = quad.id
        item.packed_at = now
    await flush_versioned(db, "Quad bales")
    await db.refresh(quad, ["items"])

    for item, old in zip(items, olds):
        record_change(
            db, action="packed", entity_type="item", entity_id=item.id,
            old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
        )

    record_change(
        db, action="created", entity_type="quad", entity_id=quad.id,
        new_value={
            "item_ids": ids,
            "product_name": quad.product_name,
            "sort": quad.sort,
            "total_weight": quad.total_weight,
        },
        actor_id=actor_id,
    )
    logger.info("Packed quad %s (%s, sort %s)", quad.id, quad.product_name, quad.sort)
    return quad


async def send_to_warehouse(
    db: AsyncSession,
    quad_id: str,
    actor_id: str | None = None,
) -> Quad:
    """created → warehouse for the quad and all of its bales at once."""
    quad = await get_quad(db, quad_id, for_update=True)
    if quad.status != QuadStatus.CREATED.value:
        raise InvalidStateError(
            f"Quad {quad.id} is already '{quad.status}'",
            error_code="QUAD_NOT_CREATED",
        )

    members = list(quad.items)
    olds = [item_snapshot(item) for item in members]
    quad.status = QuadStatus.WAREHOUSE.value
    quad.warehouse_at = datetime.utcnow()
    for item in members:
        item.status = ItemStatus.WAREHOUSE.value
    await flush_versioned(db, f"Quad {quad.id}")

    for item, old in zip(members, olds):
        record_change(
            db, action="sent_to_warehouse", entity_type="item", entity_id=item.id,
            old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
        )

    record_change(
        db, action="sent_to_warehouse", entity_type="quad", entity_id=quad.id,
        old_value={"status": QuadStatus.CREATED.value},
        new_value={"status": quad.status},
        actor_id=actor_id,
    )
    logger.info("Quad %s sent to warehouse", quad.id)
    return quad


async def disband_quad(
    db: AsyncSession,
    quad_id: str,
    actor_id: str | None = None,
) -> list[ProductionItem]:
    """Return all four bales to graded and delete the quad (created only)."""
    quad = await get_quad(db, quad_id, for_update=True)
    if quad.status != QuadStatus.CREATED.value:
        raise InvalidStateError(
            f"Quad {quad.id} is '{quad.status}' and can no longer be disbanded",
            error_code="QUAD_NOT_CREATED",
        )

    members = list(quad.items)
    olds = [item_snapshot(item) for item in members]
    for item in members:
        item.status = ItemStatus.GRADED.value
        item.quad_id = None
        item.packed_at = None
    await flush_versioned(db, f"Quad {quad.id}")

    await db.delete(quad)
    await db.flush()

    for item, old in zip(members, olds):
        record_change(
            db, action="unpacked", entity_type="item", entity_id=item.id,
            old_value=old, new_value=item_snapshot(item), actor_id=actor_id,
        )

    record_change(
        db, action="disbanded", entity_type="quad", entity_id=quad_id,
        old_value={"status": quad.status, "items": olds},
        actor_id=actor_id,
    )
    logger.info("Disbanded quad %s", quad_id)
    return members
