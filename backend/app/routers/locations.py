"""Warehouse location router.

Endpoints:
    POST /api/locations/                 Create a slot (code = zone-rack-level[-position])
    GET  /api/locations/                 All slots, ordered by code
    GET  /api/locations/{code}/contents  Bales and pallets at a slot
    POST /api/locations/{code}/clear     Detach everything and free the slot
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor_id
from app.database import get_db
from app.schemas.batch import BatchOut
from app.schemas.item import ItemOut
from app.schemas.location import LocationContents, LocationCreate, LocationOut
from app.services import locations as location_service

router = APIRouter()


@router.post("/", response_model=LocationOut, status_code=201)
async def create_location(
    body: LocationCreate,
    db: AsyncSession = Depends(get_db),
    _actor_id: str = Depends(get_actor_id),
):
    location = await location_service.create_location(
        db,
        zone=body.zone,
        rack=body.rack,
        level=body.level,
        position=body.position,
        description=body.description,
    )
    return LocationOut.model_validate(location)


@router.get("/", response_model=list[LocationOut])
async def list_locations(db: AsyncSession = Depends(get_db)):
    return [LocationOut.model_validate(loc) for loc in await location_service.list_locations(db)]


@router.get("/{code}/contents", response_model=LocationContents)
async def location_contents(code: str, db: AsyncSession = Depends(get_db)):
    location, items, pallets = await location_service.search_location(db, code)
    return LocationContents(
        location=LocationOut.model_validate(location),
        items=[ItemOut.model_validate(i) for i in items],
        pallets=[BatchOut.model_validate(b) for b in pallets],
    )


@router.post("/{code}/clear", response_model=LocationOut)
async def clear_location(
    code: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    location = await location_service.clear_location(db, code, actor_id)
    return LocationOut.model_validate(location)
