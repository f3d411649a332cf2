"""Cash-handling shifts."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, validates

from tillpoint.db.base import Base, Money, utcnow
from tillpoint.models.validators import non_negative


class ShiftStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class Shift(Base):
    """A staff member's cash session.

    Aggregates are written once, when the shift closes. A partial unique
    index keeps at most one active shift per staff member.
    """

    __tablename__ = "shifts"
    __table_args__ = (
        Index(
            "uq_shifts_one_active_per_staff",
            "staff_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    staff_id: Mapped[int] = mapped_column(
        ForeignKey("staff_users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default=ShiftStatus.ACTIVE.value, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    starting_cash: Mapped[Decimal] = mapped_column(Money, nullable=False)
    ending_cash: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    total_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_tips: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    cash_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    card_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    mobile_sales: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    cash_tips: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    expected_cash: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    # Negative when the drawer is short
    cash_variance: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @validates("starting_cash", "ending_cash")
    def _validate_cash(self, key, value):
        return non_negative(key, value)
