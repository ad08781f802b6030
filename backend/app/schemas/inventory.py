"""Pydantic schemas for stocktake sessions and scan records."""

from datetime import datetime

from pydantic import BaseModel, Field


class SessionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class ScanRequest(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=120)
    actual_location: str | None = None  # location code reported by the scanner


class SessionOut(BaseModel):
    id: str
    name: str
    status: str
    total_expected: int
    total_scanned: int
    total_missing: int
    total_extra: int
    user_id: str | None = None
    started_at: datetime
    completed_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScanRecordOut(BaseModel):
    id: str
    session_id: str
    production_item_id: str | None = None
    barcode: str
    status: str
    serial_number: int | None = None
    product_name: str | None = None
    weight: float | None = None
    sort: str | None = None
    expected_location: str | None = None
    actual_location: str | None = None
    scanned_at: datetime

    model_config = {"from_attributes": True}


class InventorySummary(BaseModel):
    """Result of a completed stocktake.  Found includes mismatches."""
    session: SessionOut
    found_items: list[ScanRecordOut]
    missing_items: list[ScanRecordOut]
    extra_items: list[ScanRecordOut]
