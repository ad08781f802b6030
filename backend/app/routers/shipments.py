"""Shipment router.

Endpoints:
    POST   /api/shipments/                              Open a draft shipment
    GET    /api/shipments/                              List shipments (status filter)
    GET    /api/shipments/summary                       Totals per status and destination
    GET    /api/shipments/available-pallets             Closed pallets not yet loaded
    GET    /api/shipments/{shipment_id}                 Shipment with pallets
    PATCH  /api/shipments/{shipment_id}                 Edit transport details
    DELETE /api/shipments/{shipment_id}                 Delete (draft, loading, cancelled)
    POST   /api/shipments/{shipment_id}/pallets         Load a closed pallet
    DELETE /api/shipments/{shipment_id}/pallets/{batch_id}  Unload a pallet
    POST   /api/shipments/{shipment_id}/status          Move along the lifecycle
"""

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor_id
from app.database import get_db
from app.schemas.batch import BatchOut
from app.schemas.shipment import (
    ShipmentAddPallet,
    ShipmentCreate,
    ShipmentOut,
    ShipmentStatusUpdate,
    ShipmentSummary,
    ShipmentUpdate,
)
from app.services import shipments as shipment_service

router = APIRouter()


@router.post("/", response_model=ShipmentOut, status_code=201)
async def create_shipment(
    body: ShipmentCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    shipment = await shipment_service.create_shipment(
        db, actor_id=actor_id, **body.model_dump()
    )
    return ShipmentOut.model_validate(shipment)


@router.get("/", response_model=list[ShipmentOut])
async def list_shipments(
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    shipments = await shipment_service.list_shipments(db, status)
    return [ShipmentOut.model_validate(s) for s in shipments]


@router.get("/summary", response_model=ShipmentSummary)
async def shipment_summary(db: AsyncSession = Depends(get_db)):
    return ShipmentSummary(**await shipment_service.get_summary(db))


@router.get("/available-pallets", response_model=list[BatchOut])
async def available_pallets(db: AsyncSession = Depends(get_db)):
    pallets = await shipment_service.list_available_pallets(db)
    return [BatchOut.model_validate(b) for b in pallets]


@router.get("/{shipment_id}", response_model=ShipmentOut)
async def get_shipment(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
):
    return ShipmentOut.model_validate(await shipment_service.get_shipment(db, shipment_id))


@router.patch("/{shipment_id}", response_model=ShipmentOut)
async def update_shipment(
    shipment_id: str,
    body: ShipmentUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    shipment = await shipment_service.update_shipment(
        db, shipment_id, body.model_dump(exclude_unset=True), actor_id
    )
    return ShipmentOut.model_validate(shipment)


@router.delete("/{shipment_id}", status_code=204)
async def delete_shipment(
    shipment_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    await shipment_service.delete_shipment(db, shipment_id, actor_id)
    return Response(status_code=204)


# ── Pallets ──────────────────────────────────────────────────

@router.post("/{shipment_id}/pallets", response_model=ShipmentOut)
async def add_pallet(
    shipment_id: str,
    body: ShipmentAddPallet,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    shipment = await shipment_service.add_pallet(db, shipment_id, body.batch_id, actor_id)
    return ShipmentOut.model_validate(shipment)


@router.delete("/{shipment_id}/pallets/{batch_id}", response_model=ShipmentOut)
async def remove_pallet(
    shipment_id: str,
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    shipment = await shipment_service.remove_pallet(db, shipment_id, batch_id, actor_id)
    return ShipmentOut.model_validate(shipment)


# ── Lifecycle ────────────────────────────────────────────────

@router.post("/{shipment_id}/status", response_model=ShipmentOut)
async def update_status(
    shipment_id: str,
    body: ShipmentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    shipment = await shipment_service.update_status(db, shipment_id, body.status, actor_id)
    return ShipmentOut.model_validate(shipment)
