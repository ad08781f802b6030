"""DailyCounter: per-day sequence state for human-visible ids.

One row per (scope, day).  Incremented with a single upsert statement so
two devices creating a pallet at the same moment never get the same number.
"""

from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class DailyCounter(Base):
    __tablename__ = "daily_counters"

    scope: Mapped[str] = mapped_column(String(30), primary_key=True)
    day: Mapped[date] = mapped_column(Date, primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
