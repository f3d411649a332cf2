"""Payment routes."""

from fastapi import APIRouter, Request, status

from tillpoint.api.deps import CurrentStaff, Payments, client_ip
from tillpoint.core.rate_limit import limiter
from tillpoint.schemas.payment import PaymentCreate, PaymentResultResponse

router = APIRouter()


@router.post("/{order_id}/payment", response_model=PaymentResultResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
def pay_order(request: Request, order_id: int, data: PaymentCreate, staff: CurrentStaff, payments: Payments):
    """Pay an order in full; returns the payment and the stored receipt."""
    result = payments.pay(
        order_id,
        method=data.method.value,
        amount=data.amount,
        tip_amount=data.tip_amount,
        reference=data.reference_number,
        actor_id=staff.id,
        tendered_amount=data.tendered_amount,
        card_last_four=data.card_last_four,
        ip_address=client_ip(request),
    )
    return PaymentResultResponse.model_validate(result)
