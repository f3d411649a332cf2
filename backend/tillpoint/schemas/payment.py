"""Payment and receipt schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from tillpoint.models.payment import PaymentMethod


class PaymentCreate(BaseModel):
    method: PaymentMethod
    amount: Decimal
    tip_amount: Decimal = Decimal("0")
    reference_number: Optional[str] = Field(default=None, max_length=100)
    tendered_amount: Optional[Decimal] = None
    card_last_four: Optional[str] = Field(default=None, max_length=4)


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    method: str
    amount: Decimal
    tip_amount: Decimal
    tendered_amount: Optional[Decimal] = None
    change_amount: Decimal
    reference_number: Optional[str] = None
    card_last_four: Optional[str] = None
    status: str
    processed_by: Optional[int] = None
    processed_at: datetime

    model_config = {"from_attributes": True}


class ReceiptResponse(BaseModel):
    id: int
    receipt_number: str
    order_id: int
    receipt_type: str
    receipt_data: Dict[str, Any]
    total_amount: Decimal
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentResultResponse(BaseModel):
    payment: PaymentResponse
    receipt: ReceiptResponse

    model_config = {"from_attributes": True}
