"""Pydantic schemas for batches (pallets)."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from app.schemas.item import ItemOut


class BatchCreate(BaseModel):
    sort: str = Field(..., min_length=1, max_length=50)
    location_id: str | None = None


class BatchAddItem(BaseModel):
    """Payload for POST /api/batches/{id}/items.

    The palletizing station normally sends the scanned ``barcode``; the
    journal screen sends ``item_id``.  Exactly one must be given.
    """
    item_id: str | None = None
    barcode: str | None = None

    @model_validator(mode="after")
    def exactly_one_reference(self):
        if bool(self.item_id) == bool(self.barcode):
            raise ValueError("Provide exactly one of item_id or barcode")
        return self


class BatchOut(BaseModel):
    id: str
    sort: str
    status: str
    total_weight: float
    location_id: str | None = None
    created_by: str | None = None
    created_at: datetime
    closed_at: datetime | None = None
    shipped_at: datetime | None = None
    items: list[ItemOut] = []

    model_config = {"from_attributes": True}
