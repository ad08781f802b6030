"""Pydantic schemas for quads."""

from datetime import datetime

from pydantic import BaseModel

from app.schemas.item import ItemOut


class QuadCreate(BaseModel):
    # Count is checked by the service so the caller gets QUAD_WRONG_COUNT
    item_ids: list[str]


class QuadOut(BaseModel):
    id: str
    date: str
    product_name: str
    sort: str
    total_weight: float
    status: str
    created_by: str | None = None
    created_at: datetime
    warehouse_at: datetime | None = None
    shipped_at: datetime | None = None
    items: list[ItemOut] = []

    model_config = {"from_attributes": True}
