"""Pydantic schemas for shipments."""

from datetime import date, datetime

from pydantic import BaseModel, Field


class ShipmentCreate(BaseModel):
    destination: str = Field(..., min_length=1, max_length=200)
    destination_address: str | None = None
    carrier: str | None = Field(None, max_length=200)
    truck_number: str | None = Field(None, max_length=50)
    driver_name: str | None = Field(None, max_length=200)
    driver_phone: str | None = Field(None, max_length=50)
    cmr_number: str | None = Field(None, max_length=50)
    scheduled_date: date | None = None
    notes: str | None = None


class ShipmentUpdate(BaseModel):
    """PATCH body: only the fields that are sent are changed."""
    destination: str | None = Field(None, min_length=1, max_length=200)
    destination_address: str | None = None
    carrier: str | None = Field(None, max_length=200)
    truck_number: str | None = Field(None, max_length=50)
    driver_name: str | None = Field(None, max_length=200)
    driver_phone: str | None = Field(None, max_length=50)
    cmr_number: str | None = Field(None, max_length=50)
    scheduled_date: date | None = None
    notes: str | None = None


class ShipmentAddPallet(BaseModel):
    batch_id: str = Field(..., min_length=1)


class ShipmentStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class ShipmentItemOut(BaseModel):
    id: str
    batch_id: str
    pallet_weight: float
    pallet_item_count: int
    product_name: str
    sort: str
    added_by: str | None = None
    added_at: datetime

    model_config = {"from_attributes": True}


class ShipmentOut(BaseModel):
    id: str
    destination: str
    destination_address: str | None = None
    carrier: str | None = None
    truck_number: str | None = None
    driver_name: str | None = None
    driver_phone: str | None = None
    cmr_number: str | None = None
    scheduled_date: date | None = None
    notes: str | None = None
    status: str
    total_weight: float
    total_pallets: int
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    items: list[ShipmentItemOut] = []

    model_config = {"from_attributes": True}


class ShipmentSummary(BaseModel):
    total_shipments: int
    total_pallets: int
    total_weight: float
    by_status: dict[str, int]
    by_destination: dict[str, int]
