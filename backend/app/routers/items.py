"""Production item router: the bale journal, lab grading and shipping.

Endpoints:
    POST /api/items/                      Register a bale (status=created)
    GET  /api/items/                      Production journal (filters, paged)
    GET  /api/items/by-barcode/{barcode}  Resolve a scanned label
    GET  /api/items/{item_id}             Single bale
    POST /api/items/{item_id}/grade       Lab grading (created/graded → graded)
    POST /api/items/grade-by-barcode      Lab grading from a scanned label
    POST /api/items/{item_id}/revert-grade  graded → created
    POST /api/items/ship                  Bulk shipment (palletized/packed → shipped)
    PUT  /api/items/{item_id}/location    Place a bale in a warehouse slot
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor_id
from app.database import get_db
from app.middleware.exceptions import NotFoundError
from app.schemas.common import PaginatedResponse
from app.schemas.item import (
    GradeByBarcodeRequest,
    GradeRequest,
    ItemCreate,
    ItemOut,
    LocationAssign,
    ShipRequest,
)
from app.services import items as item_service
from app.services import locations as location_service

router = APIRouter()


# ── Journal ──────────────────────────────────────────────────

@router.post("/", response_model=ItemOut, status_code=201)
async def create_item(
    body: ItemCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = await item_service.create_item(
        db,
        product_name=body.product_name,
        sku=body.sku,
        serial_number=body.serial_number,
        weight=body.weight,
        production_date=body.production_date,
        actor_id=actor_id,
    )
    return ItemOut.model_validate(item)


@router.get("/", response_model=PaginatedResponse[ItemOut])
async def list_items(
    status: str | None = Query(None),
    product_name: str | None = Query(None),
    sort: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    items, total = await item_service.list_items(
        db, status=status, product_name=product_name, sort=sort,
        limit=limit, offset=offset,
    )
    return PaginatedResponse(
        items=[ItemOut.model_validate(i) for i in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/by-barcode/{barcode}", response_model=ItemOut)
async def get_item_by_barcode(
    barcode: str,
    db: AsyncSession = Depends(get_db),
):
    item = await item_service.resolve_barcode(db, barcode)
    if item is None:
        raise NotFoundError("Item", barcode)
    return ItemOut.model_validate(item)


@router.get("/{item_id}", response_model=ItemOut)
async def get_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
):
    return ItemOut.model_validate(await item_service.get_item(db, item_id))


# ── Lab ──────────────────────────────────────────────────────

@router.post("/grade-by-barcode", response_model=ItemOut)
async def grade_by_barcode(
    body: GradeByBarcodeRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = await item_service.grade_by_barcode(
        db, body.barcode, body.sort, body.lab_user_id or actor_id
    )
    return ItemOut.model_validate(item)


@router.post("/{item_id}/grade", response_model=ItemOut)
async def grade_item(
    item_id: str,
    body: GradeRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = await item_service.grade_item(
        db, item_id, body.sort, body.lab_user_id or actor_id
    )
    return ItemOut.model_validate(item)


@router.post("/{item_id}/revert-grade", response_model=ItemOut)
async def revert_grade(
    item_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = await item_service.revert_grade(db, item_id, actor_id)
    return ItemOut.model_validate(item)


# ── Shipping & placement ─────────────────────────────────────

@router.post("/ship", response_model=list[ItemOut])
async def ship_items(
    body: ShipRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    items = await item_service.ship_items(db, body.item_ids, actor_id)
    return [ItemOut.model_validate(i) for i in items]


@router.put("/{item_id}/location", response_model=ItemOut)
async def assign_location(
    item_id: str,
    body: LocationAssign,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = await location_service.assign_item(db, item_id, body.location_code, actor_id)
    return ItemOut.model_validate(item)
