"""Order routes: create, list, fetch and move through the kitchen workflow."""

from typing import List, Optional

from fastapi import APIRouter, Query, Request, status

from tillpoint.api.deps import CurrentStaff, OrderService, client_ip
from tillpoint.core.rate_limit import limiter
from tillpoint.schemas.order import OrderCreate, OrderResponse, OrderStatusUpdate
from tillpoint.services.pricing_service import DiscountSpec, LineInput, ModifierAdjustment

router = APIRouter()


def _lines(data: OrderCreate) -> List[LineInput]:
    return [
        LineInput(
            quantity=item.quantity,
            unit_price=item.unit_price,
            modifiers=tuple(
                ModifierAdjustment(
                    name=m.name,
                    price_adjustment=m.price_adjustment,
                    modifier_id=m.modifier_id,
                    option_id=m.option_id,
                )
                for m in item.modifiers
            ),
            menu_item_id=item.menu_item_id,
            name=item.name,
            special_instructions=item.special_instructions,
        )
        for item in data.items
    ]


@router.get("", response_model=List[OrderResponse])
def list_orders(
    staff: CurrentStaff,
    orders: OrderService,
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    mine: bool = False,
    limit: int = Query(100, ge=1, le=500),
):
    """Orders newest first; cancelled ones are hidden unless asked for."""
    return orders.list(server_id=staff.id if mine else None, statuses=status_filter, limit=limit)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, staff: CurrentStaff, orders: OrderService):
    return orders.get(order_id)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("120/minute")
def create_order(request: Request, data: OrderCreate, staff: CurrentStaff, orders: OrderService):
    return orders.create(
        items=_lines(data),
        order_type=data.order_type.value,
        server_id=staff.id,
        table_id=data.table_id,
        discount=DiscountSpec(type=data.discount.type.value, value=data.discount.value) if data.discount else None,
        customer_name=data.customer_name,
        customer_phone=data.customer_phone,
        customer_count=data.customer_count,
        priority=data.priority.value,
        notes=data.notes,
        special_requests=data.special_requests,
        kitchen_notes=data.kitchen_notes,
        estimated_time=data.estimated_time,
        reference=data.reference,
        send_to_kitchen=data.send_to_kitchen,
        ip_address=client_ip(request),
    )


@router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    request: Request,
    order_id: int,
    data: OrderStatusUpdate,
    staff: CurrentStaff,
    orders: OrderService,
):
    return orders.transition(
        order_id, data.status.value, staff.id, notes=data.notes, ip_address=client_ip(request)
    )
