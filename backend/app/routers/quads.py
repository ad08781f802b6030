"""Quad router.

Endpoints:
    POST /api/quads/                     Pack four graded bales into a quad
    GET  /api/quads/                     List quads (status filter)
    GET  /api/quads/available            Selection pool for the operator
    GET  /api/quads/{quad_id}            Quad with members
    POST /api/quads/{quad_id}/warehouse  created → warehouse
    POST /api/quads/{quad_id}/disband    Return bales to graded (created only)
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor_id
from app.database import get_db
from app.schemas.item import ItemOut
from app.schemas.quad import QuadCreate, QuadOut
from app.services import quads as quad_service

router = APIRouter()


@router.post("/", response_model=QuadOut, status_code=201)
async def create_quad(
    body: QuadCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    quad = await quad_service.create_quad(db, body.item_ids, actor_id)
    return QuadOut.model_validate(quad)


@router.get("/", response_model=list[QuadOut])
async def list_quads(
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return [QuadOut.model_validate(q) for q in await quad_service.list_quads(db, status)]


@router.get("/available", response_model=list[ItemOut])
async def list_available(
    product_name: str = Query(...),
    sort: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    items = await quad_service.list_available(db, product_name, sort)
    return [ItemOut.model_validate(i) for i in items]


@router.get("/{quad_id}", response_model=QuadOut)
async def get_quad(
    quad_id: str,
    db: AsyncSession = Depends(get_db),
):
    return QuadOut.model_validate(await quad_service.get_quad(db, quad_id))


@router.post("/{quad_id}/warehouse", response_model=QuadOut)
async def send_to_warehouse(
    quad_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    quad = await quad_service.send_to_warehouse(db, quad_id, actor_id)
    return QuadOut.model_validate(quad)


@router.post("/{quad_id}/disband", response_model=list[ItemOut])
async def disband_quad(
    quad_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    freed = await quad_service.disband_quad(db, quad_id, actor_id)
    return [ItemOut.model_validate(i) for i in freed]
