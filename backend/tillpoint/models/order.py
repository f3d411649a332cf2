"""Order models and the order status state machine."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from tillpoint.db.base import Base, Money, TimestampMixin, VersionMixin
from tillpoint.models.validators import non_negative, percentage, positive, validate_list_of_dicts


class OrderStatus(str, Enum):
    OPEN = "open"
    SENT_TO_KITCHEN = "sent_to_kitchen"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"


class OrderType(str, Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"
    BAR = "bar"


class OrderPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CANCELLED})

# Forward kitchen workflow. ``paid`` is absent: only a payment sets it.
KITCHEN_FLOW = {
    OrderStatus.OPEN: OrderStatus.SENT_TO_KITCHEN,
    OrderStatus.SENT_TO_KITCHEN: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.SERVED,
}

# Statuses from which a payment is accepted under the strict policy
PAYABLE_STATUSES = frozenset({OrderStatus.READY, OrderStatus.SERVED})

# Statuses during which a dine-in order holds its table
ACTIVE_STATUSES = frozenset(s for s in OrderStatus if s not in TERMINAL_STATUSES)


def allowed_transitions(current: OrderStatus) -> frozenset:
    """Statuses reachable from ``current`` through a staff transition."""
    if current in TERMINAL_STATUSES:
        return frozenset()
    targets = {OrderStatus.CANCELLED}
    nxt = KITCHEN_FLOW.get(current)
    if nxt is not None:
        targets.add(nxt)
    return frozenset(targets)


class Order(Base, TimestampMixin, VersionMixin):
    """One customer transaction from cart to payment.

    ``version`` is bumped by every status write; writers match on the
    (status, version) they read so a concurrent change is detected.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    table_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("tables.id", ondelete="SET NULL"), nullable=True, index=True
    )
    order_type: Mapped[str] = mapped_column(String(20), default=OrderType.DINE_IN.value, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.OPEN.value, nullable=False, index=True
    )

    customer_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    customer_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False)
    discount_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    tip_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    priority: Mapped[str] = mapped_column(String(20), default=OrderPriority.NORMAL.value, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    kitchen_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    estimated_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # minutes
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    server_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id"
    )
    table: Mapped[Optional["Table"]] = relationship("Table")
    server: Mapped[Optional["StaffUser"]] = relationship("StaffUser")
    payment: Mapped[Optional["Payment"]] = relationship("Payment", back_populates="order", uselist=False)

    @validates("subtotal", "discount_amount", "tax_amount", "tip_amount", "total_amount")
    def _validate_amounts(self, key, value):
        return non_negative(key, value)

    @validates("tax_rate")
    def _validate_tax_rate(self, key, value):
        return percentage(key, value)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class OrderItem(Base):
    """A single line of an order, with its price snapshot."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    menu_item_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("menu_items.id", ondelete="SET NULL"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Money, nullable=False)
    # [{"modifier_id", "option_id", "name", "price_adjustment"}], adjustments as strings
    modifiers: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    @validates("quantity")
    def _validate_quantity(self, key, value):
        return positive(key, value)

    @validates("unit_price", "line_total")
    def _validate_prices(self, key, value):
        return non_negative(key, value)

    @validates("modifiers")
    def _validate_modifiers(self, key, value):
        return validate_list_of_dicts(key, value)


# Forward references
from tillpoint.models.floor import Table  # noqa: E402
from tillpoint.models.staff import StaffUser  # noqa: E402
from tillpoint.models.payment import Payment  # noqa: E402
