"""Management CLI.

Usage:
    python -m app.cli create-tables    # metadata.create_all (dev / fresh DB)
    python -m app.cli migrate          # alembic upgrade head
    python -m app.cli active-session   # Show the active stocktake, if any
"""

import subprocess
import sys

from sqlalchemy import create_engine, select

from app.config import settings
from app.database import Base
from app.models import InventorySession, SessionStatus


def create_tables():
    engine = create_engine(settings.database_url_sync)
    Base.metadata.create_all(engine)
    for name in sorted(Base.metadata.tables):
        print(f"  {name}")
    print(f"\n{len(Base.metadata.tables)} table(s) ensured")


def migrate():
    """Run Alembic upgrade head."""
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        capture_output=True, text=True,
    )
    if result.returncode != 0:
        print(f"  FAILED: {result.stderr}")
        sys.exit(result.returncode)
    print("  OK")


def active_session():
    engine = create_engine(settings.database_url_sync)
    with engine.connect() as conn:
        row = conn.execute(
            select(
                InventorySession.id,
                InventorySession.name,
                InventorySession.started_at,
                InventorySession.total_expected,
                InventorySession.total_scanned,
                InventorySession.total_extra,
            ).where(InventorySession.status == SessionStatus.ACTIVE.value)
        ).first()
    if row is None:
        print("No active inventory session.")
        return
    print(f"  {row.name} ({row.id})")
    print(f"  started   {row.started_at:%Y-%m-%d %H:%M}")
    print(f"  expected  {row.total_expected}")
    print(f"  scanned   {row.total_scanned}")
    print(f"  extra     {row.total_extra}")


if __name__ == "__main__":
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "create-tables":
        create_tables()
    elif cmd == "migrate":
        migrate()
    elif cmd == "active-session":
        active_session()
    else:
        print("Usage: python -m app.cli [create-tables|migrate|active-session]")
