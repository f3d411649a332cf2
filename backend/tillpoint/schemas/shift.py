"""Shift schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class ShiftStart(BaseModel):
    starting_cash: Decimal
    notes: Optional[str] = None


class ShiftEnd(BaseModel):
    ending_cash: Decimal
    notes: Optional[str] = None


class ShiftResponse(BaseModel):
    id: int
    staff_id: int
    status: str
    start_time: datetime
    end_time: Optional[datetime] = None
    starting_cash: Decimal
    ending_cash: Optional[Decimal] = None
    total_sales: Decimal
    total_tips: Decimal
    total_orders: int
    cash_sales: Decimal
    card_sales: Decimal
    mobile_sales: Decimal
    cash_tips: Decimal
    expected_cash: Optional[Decimal] = None
    cash_variance: Optional[Decimal] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}
