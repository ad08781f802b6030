"""Pallet (batch) router.

Endpoints:
    POST   /api/batches/                         Open an empty pallet for a sort
    GET    /api/batches/                         List pallets (status, sort filters)
    GET    /api/batches/{batch_id}               Pallet with members
    POST   /api/batches/{batch_id}/items         Add a bale (item_id or barcode)
    DELETE /api/batches/{batch_id}/items/{serial}  Remove a bale by serial
    POST   /api/batches/{batch_id}/close         Close for editing
    POST   /api/batches/{batch_id}/disband       Return all bales to graded, delete
    PUT    /api/batches/{batch_id}/location      Place the pallet in a warehouse slot
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor_id
from app.database import get_db
from app.schemas.batch import BatchAddItem, BatchCreate, BatchOut
from app.schemas.item import ItemOut, LocationAssign
from app.services import batches as batch_service
from app.services import locations as location_service

router = APIRouter()


@router.post("/", response_model=BatchOut, status_code=201)
async def create_batch(
    body: BatchCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    batch = await batch_service.create_batch(
        db, body.sort, actor_id, location_id=body.location_id
    )
    return BatchOut.model_validate(batch)


@router.get("/", response_model=list[BatchOut])
async def list_batches(
    status: str | None = Query(None),
    sort: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    batches = await batch_service.list_batches(db, status=status, sort=sort)
    return [BatchOut.model_validate(b) for b in batches]


@router.get("/{batch_id}", response_model=BatchOut)
async def get_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
):
    return BatchOut.model_validate(await batch_service.get_batch(db, batch_id))


# ── Membership ───────────────────────────────────────────────

@router.post("/{batch_id}/items", response_model=BatchOut)
async def add_item(
    batch_id: str,
    body: BatchAddItem,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    if body.barcode:
        batch = await batch_service.add_item_by_barcode(db, batch_id, body.barcode, actor_id)
    else:
        batch = await batch_service.add_item(db, batch_id, body.item_id, actor_id)
    return BatchOut.model_validate(batch)


@router.delete("/{batch_id}/items/{serial_number}", response_model=BatchOut)
async def remove_item(
    batch_id: str,
    serial_number: int,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    batch = await batch_service.remove_item(db, batch_id, serial_number, actor_id)
    return BatchOut.model_validate(batch)


# ── Lifecycle ────────────────────────────────────────────────

@router.post("/{batch_id}/close", response_model=BatchOut)
async def close_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return BatchOut.model_validate(await batch_service.close_batch(db, batch_id, actor_id))


@router.post("/{batch_id}/disband", response_model=list[ItemOut])
async def disband_batch(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    freed = await batch_service.disband_batch(db, batch_id, actor_id)
    return [ItemOut.model_validate(i) for i in freed]


@router.put("/{batch_id}/location", response_model=BatchOut)
async def assign_location(
    batch_id: str,
    body: LocationAssign,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    batch = await location_service.assign_batch(db, batch_id, body.location_code, actor_id)
    return BatchOut.model_validate(batch)
