"""Daily sequential codes for pallets, quads and shipments.

Format:
  batch:     P-{YYYYMMDD}-{seq:03d}
  quad:      Q-{YYYYMMDD}-{seq:03d}
  shipment:  SH-{YYYYMMDD}-{seq:03d}

The sequence restarts at 1 on the first code of each calendar day and is
counted independently per scope (quads are numbered across all products).

The counter lives in the daily_counters table and is advanced with a single
INSERT … ON CONFLICT DO UPDATE … RETURNING statement, so concurrent callers
are serialized by the database instead of by a read-modify-write in Python.
"""

from datetime import date

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.daily_counter import DailyCounter

PREFIXES = {
    "batch": "P",
    "quad": "Q",
    "shipment": "SH",
}


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Daily counters are not supported on dialect '{dialect}'")


async def next_sequence(db: AsyncSession, scope: str, day: date) -> int:
    """Atomically advance and return the counter for (scope, day)."""
    insert = _insert_for(db)
    stmt = (
        insert(DailyCounter)
        .values(scope=scope, day=day, value=1)
        .on_conflict_do_update(
            index_elements=["scope", "day"],
            set_={"value": DailyCounter.value + 1},
        )
        .returning(DailyCounter.value)
    )
    result = await db.execute(stmt)
    return result.scalar_one()


def format_code(entity: str, day: date, seq: int) -> str:
    return f"{PREFIXES[entity]}-{day.strftime('%Y%m%d')}-{seq:03d}"


async def generate_code(
    db: AsyncSession,
    entity: str,
    today: date | None = None,
) -> str:
    """Generate the next code for an entity.

    Args:
        db: Database session
        entity: One of "batch", "quad", "shipment"
        today: Override the calendar day (defaults to date.today())

    Returns:
        Generated code string, e.g. "P-20260219-001"
    """
    if entity not in PREFIXES:
        raise ValueError(f"Unknown numbering entity: {entity}")
    day = today or date.today()
    seq = await next_sequence(db, entity, day)
    return format_code(entity, day, seq)
