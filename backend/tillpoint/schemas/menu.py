"""Menu, floor, settings and dashboard response schemas.

Menu responses are built from the business snapshot's frozen dataclasses,
which ``from_attributes`` reads like ORM rows.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ModifierOptionResponse(BaseModel):
    id: int
    name: str
    price_adjustment: Decimal

    model_config = {"from_attributes": True}


class ModifierResponse(BaseModel):
    id: int
    name: str
    type: str
    required: bool
    max_selections: Optional[int] = None
    options: List[ModifierOptionResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class MenuItemResponse(BaseModel):
    id: int
    name: str
    price: Decimal
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    modifiers: List[ModifierResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class CategoryResponse(BaseModel):
    id: int
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None
    business_type: Optional[str] = None
    sort_order: int

    model_config = {"from_attributes": True}


class BusinessSettingsResponse(BaseModel):
    business_name: str
    currency: str
    tax_rate: Decimal
    receipt_footer: str = ""
    loaded_at: Optional[datetime] = None


class TableResponse(BaseModel):
    id: int
    number: int
    name: Optional[str] = None
    capacity: int
    status: str

    model_config = {"from_attributes": True}


class DashboardStatsResponse(BaseModel):
    today_sales: Decimal
    today_orders: int
    active_orders: int
    available_tables: int
    occupied_tables: int
    total_tips: Decimal
    average_order_value: Decimal
    currency: str

    model_config = {"from_attributes": True}
