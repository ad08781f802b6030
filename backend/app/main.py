import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import engine
from app.middleware.exceptions import register_exception_handlers
from app.routers import batches, health, inventory, items, locations, quads, shipments
from app.services.notifications import get_sink
from app.utils.cache import close_redis

logger = logging.getLogger("hemptrack")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Flush webhook deliveries and release connections on shutdown."""
    logger.info("HempTrack API starting (%s)", settings.environment)
    try:
        yield
    finally:
        await get_sink().drain()
        await close_redis()
        await engine.dispose()
        logger.info("HempTrack API stopped")


app = FastAPI(
    title="HempTrack",
    description="Hemp bale production lifecycle & warehouse reconciliation",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(items.router, prefix="/api/items", tags=["items"])
app.include_router(batches.router, prefix="/api/batches", tags=["batches"])
app.include_router(quads.router, prefix="/api/quads", tags=["quads"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["inventory"])
app.include_router(locations.router, prefix="/api/locations", tags=["locations"])
app.include_router(shipments.router, prefix="/api/shipments", tags=["shipments"])
