"""Stocktake (inventory session) router.

Endpoints:
    POST /api/inventory/sessions                       Start a session
    GET  /api/inventory/sessions                       List sessions (paged)
    GET  /api/inventory/sessions/active                The active session, or null
    GET  /api/inventory/sessions/{session_id}          Single session
    POST /api/inventory/sessions/{session_id}/scan     Record one scanned label
    GET  /api/inventory/sessions/{session_id}/records  Scan records (status filter)
    POST /api/inventory/sessions/{session_id}/complete Compute missing, close
    POST /api/inventory/sessions/{session_id}/cancel   Close without computing
    GET  /api/inventory/sessions/{session_id}/summary  Found / missing / extra
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor_id
from app.database import get_db
from app.schemas.common import PaginatedResponse
from app.schemas.inventory import (
    InventorySummary,
    ScanRecordOut,
    ScanRequest,
    SessionCreate,
    SessionOut,
)
from app.services import inventory as inventory_service

router = APIRouter()


# ── Sessions ─────────────────────────────────────────────────

@router.post("/sessions", response_model=SessionOut, status_code=201)
async def start_session(
    body: SessionCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    session = await inventory_service.start_session(db, body.name, actor_id)
    return SessionOut.model_validate(session)


@router.get("/sessions", response_model=PaginatedResponse[SessionOut])
async def list_sessions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    sessions, total = await inventory_service.list_sessions(db, limit=limit, offset=offset)
    return PaginatedResponse(
        items=[SessionOut.model_validate(s) for s in sessions],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/sessions/active", response_model=SessionOut | None)
async def get_active_session(db: AsyncSession = Depends(get_db)):
    session = await inventory_service.get_active_session(db)
    return SessionOut.model_validate(session) if session else None


@router.get("/sessions/{session_id}", response_model=SessionOut)
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
):
    return SessionOut.model_validate(await inventory_service.get_session(db, session_id))


# ── Scanning ─────────────────────────────────────────────────

@router.post("/sessions/{session_id}/scan", response_model=ScanRecordOut)
async def scan(
    session_id: str,
    body: ScanRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    record = await inventory_service.scan(
        db, session_id, body.barcode, body.actual_location, actor_id
    )
    return ScanRecordOut.model_validate(record)


@router.get("/sessions/{session_id}/records", response_model=list[ScanRecordOut])
async def list_records(
    session_id: str,
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    records = await inventory_service.list_records(db, session_id, status)
    return [ScanRecordOut.model_validate(r) for r in records]


# ── Closing ──────────────────────────────────────────────────

@router.post("/sessions/{session_id}/complete", response_model=InventorySummary)
async def complete_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await inventory_service.complete_session(db, session_id, actor_id)


@router.post("/sessions/{session_id}/cancel", response_model=SessionOut)
async def cancel_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    session = await inventory_service.cancel_session(db, session_id, actor_id)
    return SessionOut.model_validate(session)


@router.get("/sessions/{session_id}/summary", response_model=InventorySummary)
async def get_summary(
    session_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await inventory_service.get_summary(db, session_id)
