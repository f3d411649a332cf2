"""Database models."""

from tillpoint.models.staff import StaffRole, StaffUser
from tillpoint.models.menu import (
    BusinessSettings,
    MenuCategory,
    MenuItem,
    Modifier,
    ModifierOption,
    item_modifiers,
)
from tillpoint.models.floor import CLAIMABLE_TABLE_STATUSES, Table, TableStatus
from tillpoint.models.order import (
    ACTIVE_STATUSES,
    PAYABLE_STATUSES,
    TERMINAL_STATUSES,
    DiscountType,
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    OrderType,
    allowed_transitions,
)
from tillpoint.models.payment import REFERENCED_METHODS, Payment, PaymentMethod, Receipt
from tillpoint.models.shift import Shift, ShiftStatus
from tillpoint.models.audit import AuditEvent
from tillpoint.models.sequence import SequenceCounter

__all__ = [
    "StaffRole", "StaffUser",
    "BusinessSettings", "MenuCategory", "MenuItem", "Modifier", "ModifierOption", "item_modifiers",
    "CLAIMABLE_TABLE_STATUSES", "Table", "TableStatus",
    "ACTIVE_STATUSES", "PAYABLE_STATUSES", "TERMINAL_STATUSES",
    "DiscountType", "Order", "OrderItem", "OrderPriority", "OrderStatus", "OrderType",
    "allowed_transitions",
    "REFERENCED_METHODS", "Payment", "PaymentMethod", "Receipt",
    "Shift", "ShiftStatus",
    "AuditEvent",
    "SequenceCounter",
]
