"""Order lifecycle: creation and status transitions.

State machine::

    open -> sent_to_kitchen -> preparing -> ready -> served
    ready | served -> paid          (payment service only)
    any non-terminal -> cancelled
    paid, cancelled: terminal

Atomicity lives in the database, not in this process. A dine-in order claims
its table with a conditional UPDATE (``status IN (available, reserved)``) in
the same transaction as the order insert, and every status write is a
compare-and-swap on ``(id, status, version)``. Notifications and audit
entries go out only after the commit and can never undo it.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from tillpoint.core.config import Settings, settings as default_settings
from tillpoint.core.exceptions import (
    ConflictError,
    InvalidTransition,
    OrderAlreadyFinalized,
    OrderNotFound,
    OrderValidationError,
    PosError,
    StorageError,
    TableNotFound,
    TableUnavailable,
)
from tillpoint.core.money import format_amount
from tillpoint.core.snapshot_cache import BusinessSnapshotCache
from tillpoint.db.base import utcnow
from tillpoint.models.floor import CLAIMABLE_TABLE_STATUSES, Table, TableStatus
from tillpoint.models.order import (
    TERMINAL_STATUSES,
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    OrderType,
    allowed_transitions,
)
from tillpoint.services import audit_service
from tillpoint.services.audit_service import AuditSink
from tillpoint.services.notification_service import EventType, NotificationBus
from tillpoint.services.pricing_service import DiscountSpec, LineInput, compute_totals
from tillpoint.services.sequence_service import SequenceService
from tillpoint.services.shift_ledger_service import enforce_shift_policy

logger = logging.getLogger(__name__)

# Re-reads after losing a status compare-and-swap before giving up
MAX_TRANSITION_ATTEMPTS = 3


def ordering_key(order_id: int) -> str:
    return f"order:{order_id}"


def order_event_payload(order: Order) -> Dict[str, Any]:
    """JSON-safe summary of an order for push events."""
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "version": order.version,
        "order_type": order.order_type,
        "table_id": order.table_id,
        "priority": order.priority,
        "server_id": order.server_id,
        "kitchen_notes": order.kitchen_notes,
        "total_amount": format_amount(order.total_amount, order.currency),
        "currency": order.currency,
        "items": [
            {
                "name": item.name,
                "quantity": item.quantity,
                "modifiers": [m.get("name") for m in item.modifiers or []],
                "special_instructions": item.special_instructions,
            }
            for item in order.items
        ],
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }


def _parse_enum(enum_cls, value, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise OrderValidationError(f"Invalid {what} '{value}': must be one of {allowed}")


class OrderLifecycleService:
    """Creates orders and moves them through the kitchen workflow."""

    def __init__(
        self,
        db: Session,
        snapshot_cache: BusinessSnapshotCache,
        bus: Optional[NotificationBus] = None,
        audit: Optional[AuditSink] = None,
        config: Optional[Settings] = None,
    ):
        self.db = db
        self.snapshot_cache = snapshot_cache
        self.bus = bus
        self.audit = audit
        self.config = config or default_settings

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, order_id: int) -> Order:
        order = self.db.execute(
            select(Order).options(selectinload(Order.items)).where(Order.id == order_id)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def list(
        self,
        server_id: Optional[int] = None,
        statuses: Optional[Iterable[str]] = None,
        limit: int = 100,
    ) -> List[Order]:
        """Orders newest first. By default every status except cancelled."""
        query = select(Order).options(selectinload(Order.items))
        if statuses:
            wanted = [_parse_enum(OrderStatus, s, "status").value for s in statuses]
            query = query.where(Order.status.in_(wanted))
        else:
            query = query.where(Order.status != OrderStatus.CANCELLED.value)
        if server_id is not None:
            query = query.where(Order.server_id == server_id)
        query = query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
        return list(self.db.execute(query).scalars().all())

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(
        self,
        items: Sequence[LineInput],
        order_type: str = OrderType.DINE_IN.value,
        server_id: Optional[int] = None,
        table_id: Optional[int] = None,
        discount: Optional[DiscountSpec] = None,
        customer_name: Optional[str] = None,
        customer_phone: Optional[str] = None,
        customer_count: int = 1,
        priority: str = OrderPriority.NORMAL.value,
        notes: Optional[str] = None,
        special_requests: Optional[str] = None,
        kitchen_notes: Optional[str] = None,
        estimated_time: Optional[int] = None,
        reference: Optional[str] = None,
        send_to_kitchen: bool = False,
        ip_address: Optional[str] = None,
    ) -> Order:
        """Validate, price and persist a new order.

        Raises:
            OrderValidationError / InvalidDiscount: bad input, nothing written.
            TableNotFound: ``table_id`` does not exist.
            TableUnavailable: the table is not available or reserved.
            NoActiveShift: ``shift_enforcement`` is ``require`` and the
                server has no active shift.
            StorageError: the transaction failed and was rolled back.
        """
        order_type = _parse_enum(OrderType, order_type, "order type")
        priority = _parse_enum(OrderPriority, priority, "priority")
        if customer_count is not None and customer_count < 1:
            raise OrderValidationError("Customer count must be at least 1")
        if estimated_time is not None and estimated_time < 0:
            raise OrderValidationError("Estimated time cannot be negative")
        if order_type == OrderType.DINE_IN:
            if table_id is None:
                raise OrderValidationError("Dine-in orders require a table")
        else:
            # Only dine-in orders hold a table
            table_id = None

        snapshot = self.snapshot_cache.get()
        business = snapshot.business
        pricing = compute_totals(
            items,
            discount,
            business.tax_rate,
            business.currency,
            clamp_fixed_discount=self.config.clamp_fixed_discount,
        )

        names = []
        for i, priced in enumerate(pricing.lines):
            line = priced.line
            name = line.name
            if not name and line.menu_item_id is not None:
                menu_item = snapshot.menu_item(line.menu_item_id)
                name = menu_item.name if menu_item else None
            if not name:
                raise OrderValidationError(f"Item {i + 1}: unknown menu item, a name is required")
            names.append(name)

        enforce_shift_policy(self.db, server_id, "order creation", self.config.shift_enforcement)

        table = None
        if table_id is not None:
            table = self.db.get(Table, table_id)
            if table is None:
                raise TableNotFound(table_id)

        status = OrderStatus.SENT_TO_KITCHEN if send_to_kitchen else OrderStatus.OPEN
        currency = business.currency

        try:
            if table is not None:
                # Claim first: the row lock serializes competing orders for the table
                claimed = self.db.execute(
                    update(Table)
                    .where(Table.id == table_id, Table.status.in_(CLAIMABLE_TABLE_STATUSES))
                    .values(status=TableStatus.OCCUPIED.value)
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount == 0:
                    self.db.rollback()
                    current = self.db.get(Table, table_id, populate_existing=True)
                    raise TableUnavailable(table_id, current.status if current else None)

            order = Order(
                order_number=SequenceService(self.db, self.config.timezone).next_order_number(),
                table_id=table_id,
                order_type=order_type.value,
                status=status.value,
                customer_name=customer_name,
                customer_phone=customer_phone,
                customer_count=customer_count or 1,
                subtotal=pricing.subtotal,
                discount_type=discount.type if discount and pricing.discount_amount else None,
                discount_value=discount.value if discount and pricing.discount_amount else None,
                discount_amount=pricing.discount_amount,
                tax_rate=business.tax_rate,
                tax_amount=pricing.tax_amount,
                tip_amount=0,
                total_amount=pricing.total,
                currency=currency,
                priority=priority.value,
                notes=notes,
                special_requests=special_requests,
                kitchen_notes=kitchen_notes,
                estimated_time=estimated_time,
                reference=reference,
                server_id=server_id,
            )
            for priced, name in zip(pricing.lines, names):
                line = priced.line
                order.items.append(OrderItem(
                    menu_item_id=line.menu_item_id,
                    name=name,
                    quantity=line.quantity,
                    unit_price=priced.unit_price,
                    line_total=priced.line_total,
                    modifiers=[
                        {
                            "modifier_id": m.modifier_id,
                            "option_id": m.option_id,
                            "name": m.name,
                            "price_adjustment": format_amount(m.price_adjustment, currency),
                        }
                        for m in line.modifiers
                    ],
                    special_instructions=line.special_instructions,
                ))
            self.db.add(order)
            self.db.commit()
        except PosError:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create order: {e}")
            raise StorageError("Could not create order, please retry") from e

        self.db.refresh(order)
        logger.info(
            f"Order {order.order_number} created ({order.order_type}, "
            f"table {order.table_id}, total {order.total_amount} {currency})"
        )

        self._publish(EventType.ORDER_CREATED, order)
        self._record(
            server_id,
            audit_service.ORDER_CREATED,
            f"Order {order.order_number} created",
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "table_id": order.table_id,
                "total_amount": str(order.total_amount),
                "item_count": len(order.items),
            },
            ip_address,
        )
        return order

    # ------------------------------------------------------------------
    # Transition
    # ------------------------------------------------------------------

    def transition(
        self,
        order_id: int,
        target_status: str,
        actor_id: Optional[int],
        notes: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Order:
        """Move an order to ``target_status``.

        ``paid`` is never reachable here; only a payment sets it. Cancelling a
        dine-in order frees its table in the same transaction.
        """
        target = _parse_enum(OrderStatus, target_status, "status")

        for _ in range(MAX_TRANSITION_ATTEMPTS):
            order = self.db.get(Order, order_id, populate_existing=True)
            if order is None:
                raise OrderNotFound(order_id)
            current = OrderStatus(order.status)
            if current in TERMINAL_STATUSES:
                raise OrderAlreadyFinalized(order_id, current.value)
            if target not in allowed_transitions(current):
                raise InvalidTransition(order_id, current.value, target.value)

            values = {
                "status": target.value,
                "version": order.version + 1,
                "updated_at": utcnow(),
            }
            if notes is not None:
                values["kitchen_notes"] = notes

            try:
                result = self.db.execute(
                    update(Order)
                    .where(
                        Order.id == order_id,
                        Order.status == current.value,
                        Order.version == order.version,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    # Someone else moved it; re-evaluate against the fresh row
                    self.db.rollback()
                    logger.info(f"Order {order_id} changed concurrently, re-reading")
                    continue
                if (
                    target == OrderStatus.CANCELLED
                    and order.order_type == OrderType.DINE_IN.value
                    and order.table_id is not None
                ):
                    self._release_table(order.table_id)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to update order {order_id} status: {e}")
                raise StorageError("Could not update order status, please retry") from e

            self.db.refresh(order)
            logger.info(f"Order {order.order_number}: {current.value} -> {target.value}")
            self._publish(EventType.ORDER_STATUS_UPDATED, order, previous_status=current.value)
            self._record(
                actor_id,
                audit_service.ORDER_STATUS_UPDATED,
                f"Order status changed to {target.value}",
                {
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "from": current.value,
                    "to": target.value,
                    "version": order.version,
                },
                ip_address,
            )
            return order

        raise ConflictError(f"Order {order_id} is being modified concurrently, please retry")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _release_table(self, table_id: int) -> None:
        self.db.execute(
            update(Table)
            .where(Table.id == table_id, Table.status == TableStatus.OCCUPIED.value)
            .values(status=TableStatus.AVAILABLE.value)
            .execution_options(synchronize_session=False)
        )

    def _publish(self, event: EventType, order: Order, **extra) -> None:
        if self.bus is None:
            return
        payload = order_event_payload(order)
        payload.update(extra)
        try:
            self.bus.publish(event.value, payload, ordering_key(order.id), order.version)
        except Exception:
            logger.exception(f"Failed to publish {event.value} for order {order.id}")

    def _record(self, actor_id, action, description, metadata, ip_address=None) -> None:
        if self.audit is not None:
            self.audit.record(actor_id, action, description, metadata, ip_address)
