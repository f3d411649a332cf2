"""Payment and receipt models. Both are immutable once written."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tillpoint.db.base import Base, Money, TimestampMixin, utcnow
from tillpoint.models.validators import non_negative, validate_dict


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MOBILE = "mobile"


# Methods that settle through an external processor and need its reference
REFERENCED_METHODS = frozenset({PaymentMethod.CARD, PaymentMethod.MOBILE})


class Payment(Base, TimestampMixin):
    """A completed charge. ``order_id`` is unique: one payment per order."""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    method: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tip_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    tendered_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    change_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    card_last_four: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="completed", nullable=False)
    processed_by: Mapped[Optional[int]] = mapped_column(
        ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True
    )
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="payment")

    @validates("amount", "tip_amount", "tendered_amount", "change_amount")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)


class Receipt(Base, TimestampMixin):
    """Stored snapshot of a paid order, rendered by clients."""

    __tablename__ = "receipts"

    id: Mapped[int] = mapped_column(primary_key=True)
    receipt_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="RESTRICT"), unique=True, nullable=False
    )
    receipt_type: Mapped[str] = mapped_column(String(20), default="customer", nullable=False)
    receipt_data: Mapped[dict] = mapped_column(JSON, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    @validates("receipt_data")
    def _validate_receipt_data(self, key, value):
        return validate_dict(key, value)


# Forward references
from tillpoint.models.order import Order  # noqa: E402
