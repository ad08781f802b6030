"""Reconciliation engine: stocktake sessions.

A session compares what the scanners see against what the database says is
on the floor (items in IN_STOCK_STATUSES):

  start_session     snapshot total_expected, at most one active session
  scan              one record per (session, barcode):
                      unknown / malformed label          → extra
                      known, scanned at another location → mismatch
                      known                              → found
                    repeated scans return the first record unchanged
  complete_session  every in-stock item not seen gets a "missing" record;
                    the expected set is taken at completion time, so bales
                    graded mid-session are expected too
  cancel_session    keep the records, compute nothing

Completed sessions never change, so their summaries are cached in Redis.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.models.inventory import (
    InventoryScanRecord,
    InventorySession,
    ScanStatus,
    SessionStatus,
)
from app.models.item import IN_STOCK_STATUSES, ProductionItem
from app.schemas.inventory import InventorySummary, ScanRecordOut, SessionOut
from app.services.items import resolve_barcode
from app.utils.activity import record_change
from app.utils.cache import cache_get_json, cache_set_json, summary_key

logger = logging.getLogger("hemptrack.inventory")

SEEN_STATUSES = (ScanStatus.FOUND.value, ScanStatus.MISMATCH.value)


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Scan de-duplication is not supported on dialect '{dialect}'")


# ── Queries ──────────────────────────────────────────────────

async def get_session(
    db: AsyncSession,
    session_id: str,
    for_update: bool = False,
) -> InventorySession:
    stmt = select(InventorySession).where(InventorySession.id == session_id)
    if for_update:
        stmt = stmt.with_for_update()
    session = (await db.execute(stmt)).scalar_one_or_none()
    if not session:
        raise NotFoundError("Inventory session", session_id)
    return session


async def get_active_session(db: AsyncSession) -> InventorySession | None:
    return await db.scalar(
        select(InventorySession).where(
            InventorySession.status == SessionStatus.ACTIVE.value
        )
    )


async def list_sessions(
    db: AsyncSession,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[InventorySession], int]:
    total = await db.scalar(select(func.count(InventorySession.id)))
    result = await db.execute(
        select(InventorySession)
        .order_by(InventorySession.started_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def list_records(
    db: AsyncSession,
    session_id: str,
    status: str | None = None,
) -> list[InventoryScanRecord]:
    await get_session(db, session_id)
    stmt = select(InventoryScanRecord).where(InventoryScanRecord.session_id == session_id)
    if status:
        stmt = stmt.where(InventoryScanRecord.status == status)
    result = await db.execute(
        stmt.order_by(InventoryScanRecord.scanned_at, InventoryScanRecord.id)
    )
    return list(result.scalars().all())


def _ensure_active(session: InventorySession) -> None:
    if session.status != SessionStatus.ACTIVE.value:
        raise InvalidStateError(
            f"Inventory session {session.id} is {session.status}",
            error_code="SESSION_NOT_ACTIVE",
        )


# ── Start ────────────────────────────────────────────────────

async def start_session(
    db: AsyncSession,
    name: str,
    actor_id: str | None = None,
) -> InventorySession:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Session name is required", error_code="NAME_REQUIRED")

    active = await get_active_session(db)
    if active:
        raise ConflictError(
            f"Inventory session '{active.name}' is already active",
            error_code="ACTIVE_SESSION_EXISTS",
        )

    expected = await db.scalar(
        select(func.count(ProductionItem.id)).where(
            ProductionItem.status.in_(IN_STOCK_STATUSES)
        )
    )
    session = InventorySession(
        name=name,
        status=SessionStatus.ACTIVE.value,
        total_expected=expected or 0,
        total_scanned=0,
        total_missing=0,
        total_extra=0,
        user_id=actor_id,
    )
    db.add(session)
    try:
        await db.flush()
    except IntegrityError as exc:
        # Lost the race against another device starting a session
        raise ConflictError(
            "Another inventory session was started concurrently",
            error_code="ACTIVE_SESSION_EXISTS",
        ) from exc

    record_change(
        db, action="started", entity_type="inventory_session", entity_id=session.id,
        new_value={"name": name, "total_expected": session.total_expected},
        actor_id=actor_id,
    )
    logger.info("Started inventory session %s (%d expected)", session.id, session.total_expected)
    return session


# ── Scan ─────────────────────────────────────────────────────

async def _existing_record(
    db: AsyncSession,
    session_id: str,
    barcode: str,
) -> InventoryScanRecord | None:
    return await db.scalar(
        select(InventoryScanRecord).where(
            InventoryScanRecord.session_id == session_id,
            InventoryScanRecord.barcode == barcode,
        )
    )


async def _existing_item_record(
    db: AsyncSession,
    session_id: str,
    item_id: str,
) -> InventoryScanRecord | None:
    """Record of a bale already seen under another label variant."""
    result = await db.execute(
        select(InventoryScanRecord)
        .where(
            InventoryScanRecord.session_id == session_id,
            InventoryScanRecord.production_item_id == item_id,
        )
        .order_by(InventoryScanRecord.scanned_at)
        .limit(1)
    )
    return result.scalars().first()


async def scan(
    db: AsyncSession,
    session_id: str,
    barcode: str,
    actual_location: str | None = None,
    actor_id: str | None = None,
) -> InventoryScanRecord:
    """Classify one scanned label.  Repeated scans are no-ops."""
    barcode = (barcode or "").strip()
    if not barcode:
        raise ValidationError("Barcode is required", error_code="BARCODE_REQUIRED")
    actual_location = (actual_location or "").strip() or None

    session = await get_session(db, session_id, for_update=True)
    _ensure_active(session)

    existing = await _existing_record(db, session.id, barcode)
    if existing:
        return existing

    item = await resolve_barcode(db, barcode)
    if item is not None:
        # "...-50.5" and "...-50.50" are the same bale
        seen = await _existing_item_record(db, session.id, item.id)
        if seen:
            return seen

    values = {
        "id": str(uuid.uuid4()),
        "session_id": session.id,
        "barcode": barcode,
        "actual_location": actual_location,
        "scanned_at": datetime.utcnow(),
    }
    if item is None:
        values["status"] = ScanStatus.EXTRA.value
    else:
        expected_location = item.location_code
        # A bale with no recorded slot cannot be misplaced
        if (
            actual_location
            and item.location_id
            and actual_location not in (item.location_id, expected_location)
        ):
            values["status"] = ScanStatus.MISMATCH.value
        else:
            values["status"] = ScanStatus.FOUND.value
        values.update(
            production_item_id=item.id,
            serial_number=item.serial_number,
            product_name=item.product_name,
            weight=item.weight,
            sort=item.sort,
            expected_location=expected_location,
        )

    insert = _insert_for(db)
    inserted_id = (await db.execute(
        insert(InventoryScanRecord)
        .values(**values)
        .on_conflict_do_nothing(index_elements=["session_id", "barcode"])
        .returning(InventoryScanRecord.id)
    )).scalar_one_or_none()

    if inserted_id is None:
        # A duplicate hardware event won the insert
        return await _existing_record(db, session.id, barcode)

    if values["status"] == ScanStatus.EXTRA.value:
        session.total_extra = InventorySession.total_extra + 1
    else:
        session.total_scanned = InventorySession.total_scanned + 1
    await db.flush()
    await db.refresh(session)

    record = await db.get(InventoryScanRecord, inserted_id)
    record_change(
        db, action="scanned", entity_type="inventory_session", entity_id=session.id,
        new_value={"barcode": barcode, "status": record.status,
                   "production_item_id": record.production_item_id},
        actor_id=actor_id,
    )
    logger.debug("Scan %s in session %s: %s", barcode, session.id, record.status)
    return record


# ── Complete / cancel ────────────────────────────────────────

async def build_summary(db: AsyncSession, session: InventorySession) -> InventorySummary:
    records = await list_records(db, session.id)
    return InventorySummary(
        session=SessionOut.model_validate(session),
        found_items=[ScanRecordOut.model_validate(r) for r in records if r.status in SEEN_STATUSES],
        missing_items=[ScanRecordOut.model_validate(r) for r in records
                       if r.status == ScanStatus.MISSING.value],
        extra_items=[ScanRecordOut.model_validate(r) for r in records
                     if r.status == ScanStatus.EXTRA.value],
    )


async def complete_session(
    db: AsyncSession,
    session_id: str,
    actor_id: str | None = None,
) -> InventorySummary:
    """Record every expected-but-unseen bale as missing and close the session."""
    session = await get_session(db, session_id, for_update=True)
    _ensure_active(session)

    records = (await db.execute(
        select(InventoryScanRecord.production_item_id, InventoryScanRecord.barcode)
        .where(InventoryScanRecord.session_id == session.id)
    )).all()
    seen_ids = {row[0] for row in records if row[0]}
    recorded_barcodes = {row[1] for row in records}

    expected = (await db.execute(
        select(ProductionItem)
        .where(ProductionItem.status.in_(IN_STOCK_STATUSES))
        .order_by(ProductionItem.product_name, ProductionItem.serial_number)
    )).scalars().all()

    # A label already recorded in this session counts as seen
    missing = [
        item for item in expected
        if item.id not in seen_ids and item.barcode not in recorded_barcodes
    ]
    now = datetime.utcnow()
    for item in missing:
        db.add(InventoryScanRecord(
            session_id=session.id,
            production_item_id=item.id,
            barcode=item.barcode,
            status=ScanStatus.MISSING.value,
            serial_number=item.serial_number,
            product_name=item.product_name,
            weight=item.weight,
            sort=item.sort,
            expected_location=item.location_code,
            scanned_at=now,
        ))

    session.total_missing = len(missing)
    session.status = SessionStatus.COMPLETED.value
    session.completed_at = now
    await db.flush()

    record_change(
        db, action="completed", entity_type="inventory_session", entity_id=session.id,
        old_value={"status": SessionStatus.ACTIVE.value},
        new_value={
            "status": session.status,
            "total_expected": session.total_expected,
            "total_scanned": session.total_scanned,
            "total_missing": session.total_missing,
            "total_extra": session.total_extra,
        },
        actor_id=actor_id,
    )
    logger.info(
        "Completed inventory session %s: %d scanned, %d missing, %d extra",
        session.id, session.total_scanned, session.total_missing, session.total_extra,
    )
    return await build_summary(db, session)


async def cancel_session(
    db: AsyncSession,
    session_id: str,
    actor_id: str | None = None,
) -> InventorySession:
    session = await get_session(db, session_id, for_update=True)
    _ensure_active(session)

    session.status = SessionStatus.CANCELLED.value
    session.completed_at = datetime.utcnow()
    await db.flush()

    record_change(
        db, action="cancelled", entity_type="inventory_session", entity_id=session.id,
        old_value={"status": SessionStatus.ACTIVE.value},
        new_value={"status": session.status},
        actor_id=actor_id,
    )
    logger.info("Cancelled inventory session %s", session.id)
    return session


async def get_summary(db: AsyncSession, session_id: str) -> InventorySummary:
    """Summary of a session; completed sessions are served from Redis."""
    session = await get_session(db, session_id)
    if session.status != SessionStatus.COMPLETED.value:
        return await build_summary(db, session)

    key = summary_key(session.id)
    cached = await cache_get_json(key)
    if cached is not None:
        return InventorySummary.model_validate(cached)

    summary = await build_summary(db, session)
    await cache_set_json(key, summary.model_dump(mode="json"), settings.summary_cache_ttl)
    return summary
