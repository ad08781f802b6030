"""Pydantic schemas for production items (bales)."""

from datetime import date, datetime

from pydantic import BaseModel, Field


# ── Create ───────────────────────────────────────────────────

class ItemCreate(BaseModel):
    """Payload for POST /api/items: what the operator keys in at the baler."""
    product_name: str = Field(..., min_length=1, max_length=100)
    sku: str = Field(..., min_length=1, max_length=50)
    serial_number: int = Field(..., ge=1)
    weight: float = Field(..., gt=0)
    production_date: date | None = None  # defaults to today


# ── Transitions ──────────────────────────────────────────────

class GradeRequest(BaseModel):
    sort: str = Field(..., min_length=1, max_length=50)
    lab_user_id: str | None = None


class GradeByBarcodeRequest(GradeRequest):
    barcode: str = Field(..., min_length=1)


class ShipRequest(BaseModel):
    item_ids: list[str] = Field(..., min_length=1)


class LocationAssign(BaseModel):
    location_code: str = Field(..., min_length=1)


# ── Response ─────────────────────────────────────────────────

class ItemOut(BaseModel):
    id: str
    barcode: str
    serial_number: int
    product_name: str
    sku: str
    production_date: date
    weight: float
    status: str
    sort: str | None = None
    graded_at: datetime | None = None
    lab_user_id: str | None = None
    batch_id: str | None = None
    palletized_at: datetime | None = None
    quad_id: str | None = None
    packed_at: datetime | None = None
    location_id: str | None = None
    location_code: str | None = None
    shipped_at: datetime | None = None
    shipped_from: str | None = None
    version: int
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
