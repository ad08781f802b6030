"""Pydantic schemas for warehouse locations."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.batch import BatchOut
from app.schemas.item import ItemOut


class LocationCreate(BaseModel):
    zone: str = Field(..., min_length=1, max_length=10)
    rack: str = Field(..., min_length=1, max_length=10)
    level: str = Field(..., min_length=1, max_length=10)
    position: str | None = Field(None, max_length=10)
    description: str | None = None


class LocationOut(BaseModel):
    id: str
    zone: str
    rack: str
    level: str
    position: str | None = None
    code: str
    description: str | None = None
    is_occupied: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class LocationContents(BaseModel):
    """Bales and pallets recorded at one slot."""
    location: LocationOut
    items: list[ItemOut] = []
    pallets: list[BatchOut] = []
