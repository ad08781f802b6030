"""Pytest configuration and fixtures for HempTrack tests.

Tests run against a throw-away SQLite file (aiosqlite) per test so that two
independent sessions can race each other like two terminals would.
"""

import itertools
import os
from datetime import date
from typing import AsyncGenerator

# Settings are read at import time
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("WEBHOOK_URLS", "")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app import database
from app.database import Base
from app.main import app
from app.services import items as item_service
from app.services.notifications import NotificationSink, set_sink

PRODUCTION_DATE = date(2025, 12, 24)


class RecordingSink(NotificationSink):
    """Keeps published change events in memory."""

    def __init__(self):
        self.events = []

    async def publish(self, events) -> None:
        self.events.extend(events)

    def names(self) -> list[str]:
        return [e.name for e in self.events]


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create test database engine with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'hemptrack_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def sink():
    """Capture change events instead of writing audit rows / webhooks."""
    recording = RecordingSink()
    set_sink(recording)
    yield recording
    set_sink(None)


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """Test client whose get_db() opens sessions on the test database."""
    monkeypatch.setattr(database, "async_session", session_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def actor_headers() -> dict:
    return {"X-Actor-Id": "operator-1"}


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest.fixture
def make_item(db_session):
    """Create a bale; pass ``sort`` to have it graded as well."""
    serials = itertools.count(101)

    async def _make(
        *,
        sort: str | None = None,
        product_name: str = "Hemp fiber",
        sku: str = "LF",
        weight: float = 50.5,
        serial_number: int | None = None,
        production_date: date = PRODUCTION_DATE,
    ):
        item = await item_service.create_item(
            db_session,
            product_name=product_name,
            sku=sku,
            serial_number=serial_number or next(serials),
            weight=weight,
            production_date=production_date,
            actor_id="operator-1",
        )
        if sort is not None:
            await item_service.grade_item(db_session, item.id, sort, "lab-1")
        return item

    return _make


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "cache: Redis cache tests")
    config.addinivalue_line("markers", "integration: Integration tests")
