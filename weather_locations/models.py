"""
ORM models.

One row per location. Coordinates are stored as the strings read from the
workbook; the 5 day-slots are stored as a JSON list (null for empty slots):
    [{"day":1,"rain":"10","Tmax":"32","Tmin":"24","RH":"70","Wind_Speed":"4"}, null, ...]
"""

from sqlalchemy import String, Integer, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from .db import Base


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Administrative names ("" when the workbook had none)
    state: Mapped[str] = mapped_column(String(128), default="")
    district: Mapped[str] = mapped_column(String(128), default="")
    block: Mapped[str] = mapped_column(String(128), default="")
    village: Mapped[str] = mapped_column(String(128), default="")

    latitude: Mapped[str] = mapped_column(String(32))
    longitude: Mapped[str] = mapped_column(String(32))

    daily_data_json: Mapped[str] = mapped_column(Text, default="[]")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_locations_admin", "state", "district", "block", "village"),
    )
