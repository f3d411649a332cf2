"""SQLAlchemy declarative base and common column types."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Integer, Numeric, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from tillpoint.core.money import STORAGE_EXPONENT, to_decimal


class Money(TypeDecorator):
    """Monetary column: Numeric(12, 2) in, quantized Decimal out.

    Used for every amount in the schema so values never round-trip through
    floats, whatever the backend returns for NUMERIC.
    """

    impl = Numeric(12, STORAGE_EXPONENT)
    cache_ok = True

    _QUANT = Decimal(10) ** -STORAGE_EXPONENT

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return to_decimal(value).quantize(self._QUANT)

    def process_result_value(self, value, dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return to_decimal(value).quantize(self._QUANT)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def utcnow() -> datetime:
    """Timezone-aware current UTC time, with microseconds."""
    return datetime.now(timezone.utc)


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps.

    Set from Python rather than the server clock so rows written in the same
    second still order correctly (SQLite CURRENT_TIMESTAMP has 1s resolution).
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


class VersionMixin:
    """Optimistic locking via a version counter.

    Models using this mixin gain a ``version`` column that starts at 1.
    Conditional updates match on the version they read and bump it, so a
    concurrent writer that read the same row loses the race.
    """

    version: Mapped[int] = mapped_column(Integer, default=1, server_default="1", nullable=False)


