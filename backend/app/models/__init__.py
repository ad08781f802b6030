"""Aggregate model imports for Alembic auto-detection and metadata.create_all."""

from app.models.location import Location  # noqa: F401
from app.models.batch import Batch, BatchStatus  # noqa: F401
from app.models.quad import Quad, QuadStatus, QUAD_SIZE  # noqa: F401
from app.models.item import ProductionItem, ItemStatus, IN_STOCK_STATUSES  # noqa: F401
from app.models.inventory import (  # noqa: F401
    InventorySession,
    InventoryScanRecord,
    ScanStatus,
    SessionStatus,
)
from app.models.daily_counter import DailyCounter  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.shipment import (  # noqa: F401
    EDITABLE_STATUSES,
    Shipment,
    ShipmentItem,
    ShipmentStatus,
)
