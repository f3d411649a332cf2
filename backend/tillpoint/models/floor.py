"""Floor plan models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from tillpoint.db.base import Base
from tillpoint.models.validators import positive


class TableStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"


# A new dine-in order may only claim a table in one of these states
CLAIMABLE_TABLE_STATUSES = (TableStatus.AVAILABLE.value, TableStatus.RESERVED.value)


class Table(Base):
    """A physical table. Status is only changed through conditional updates."""

    __tablename__ = "tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TableStatus.AVAILABLE.value, nullable=False, index=True
    )

    @validates("capacity")
    def _validate_capacity(self, key, value):
        return positive(key, value)
