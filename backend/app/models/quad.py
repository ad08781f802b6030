"""Quad: exactly four bales of the same product and sort.

A stricter shipping unit than a Batch: the operator picks four graded
bales, the quad is created with all four at once and is never observed
partially filled.

Lifecycle:  created → warehouse → shipped   (disband only while created)
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

QUAD_SIZE = 4


class QuadStatus(str, enum.Enum):
    CREATED = "created"
    WAREHOUSE = "warehouse"
    SHIPPED = "shipped"


class Quad(Base):
    __tablename__ = "quads"

    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    date: Mapped[str] = mapped_column(String(10), nullable=False)  # DD.MM.YYYY
    product_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    sort: Mapped[str] = mapped_column(String(50), nullable=False)
    total_weight: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # created | warehouse | shipped
    status: Mapped[str] = mapped_column(
        String(20), default=QuadStatus.CREATED.value, nullable=False, index=True
    )

    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    warehouse_at: Mapped[datetime | None] = mapped_column(DateTime)
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime)

    items = relationship(
        "ProductionItem",
        primaryjoin="Quad.id == foreign(ProductionItem.quad_id)",
        order_by="ProductionItem.serial_number",
        viewonly=True,
        lazy="selectin",
    )
