"""Database engine, session factory, and declarative base.

One request = one transaction:
  - get_db() yields a session, commits when the handler returns and rolls
    back on any exception.
  - Change events recorded during the transaction are published to the
    notification sink only after the commit succeeded.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


# ── Session dependency ──────────────────────────────────────

async def get_db() -> AsyncSession:
    """Yield a transactional session and publish its change events on commit."""
    from app.utils.activity import discard_changes, publish_changes  # deferred to avoid circular

    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            discard_changes(session)
            raise
        await publish_changes(session)
