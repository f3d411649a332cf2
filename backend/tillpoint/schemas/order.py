"""Order schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from tillpoint.models.order import DiscountType, OrderPriority, OrderStatus, OrderType


class ModifierSelection(BaseModel):
    modifier_id: Optional[int] = None
    option_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=100)
    price_adjustment: Decimal = Decimal("0")


class OrderItemCreate(BaseModel):
    menu_item_id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=100)
    quantity: int
    unit_price: Decimal
    modifiers: List[ModifierSelection] = Field(default_factory=list)
    special_instructions: Optional[str] = None


class DiscountIn(BaseModel):
    type: DiscountType
    value: Decimal


class OrderCreate(BaseModel):
    """New order. Quantity, price and discount ranges are checked by the service."""

    items: List[OrderItemCreate]
    order_type: OrderType = OrderType.DINE_IN
    table_id: Optional[int] = None
    discount: Optional[DiscountIn] = None
    customer_name: Optional[str] = Field(default=None, max_length=100)
    customer_phone: Optional[str] = Field(default=None, max_length=20)
    customer_count: int = 1
    priority: OrderPriority = OrderPriority.NORMAL
    notes: Optional[str] = None
    special_requests: Optional[str] = None
    kitchen_notes: Optional[str] = None
    estimated_time: Optional[int] = None
    reference: Optional[str] = Field(default=None, max_length=100)
    send_to_kitchen: bool = False


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: Optional[int] = None
    name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    modifiers: List[dict] = Field(default_factory=list)
    special_instructions: Optional[str] = None

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    order_number: str
    table_id: Optional[int] = None
    order_type: str
    status: str
    version: int
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_count: int
    subtotal: Decimal
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    discount_amount: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    tip_amount: Decimal
    total_amount: Decimal
    currency: str
    priority: str
    notes: Optional[str] = None
    special_requests: Optional[str] = None
    kitchen_notes: Optional[str] = None
    estimated_time: Optional[int] = None
    reference: Optional[str] = None
    server_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    items: List[OrderItemResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}
