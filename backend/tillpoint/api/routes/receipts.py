"""Receipt routes."""

from fastapi import APIRouter

from tillpoint.api.deps import CurrentStaff, Payments
from tillpoint.schemas.payment import ReceiptResponse

router = APIRouter()


@router.get("/{order_id}", response_model=ReceiptResponse)
def get_receipt(order_id: int, staff: CurrentStaff, payments: Payments):
    return payments.get_receipt(order_id)
