"""Payment processing and receipts.

One payment per order. Applying it is a single transaction:

1. insert the Payment row (``payments.order_id`` is unique)
2. compare-and-swap the order to ``paid`` with the tip and ``paid_at``
3. free the dine-in table
4. allocate a receipt number and store the receipt snapshot

A concurrent duplicate loses either on the unique constraint or on the
compare-and-swap, and is reported as OrderAlreadyFinalized. The
``payment_processed`` event and the audit entry follow the commit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tillpoint.core.config import Settings, settings as default_settings
from tillpoint.core.exceptions import (
    AmountMismatch,
    ConflictError,
    InvalidTransition,
    OrderAlreadyFinalized,
    OrderNotFound,
    PaymentValidationError,
    ReceiptNotFound,
    StorageError,
)
from tillpoint.core.money import ZERO, format_amount, quantize, to_decimal
from tillpoint.core.snapshot_cache import BusinessInfo, BusinessSnapshotCache
from tillpoint.db.base import utcnow
from tillpoint.models.floor import Table, TableStatus
from tillpoint.models.order import PAYABLE_STATUSES, TERMINAL_STATUSES, Order, OrderStatus, OrderType
from tillpoint.models.payment import REFERENCED_METHODS, Payment, PaymentMethod, Receipt
from tillpoint.services import audit_service
from tillpoint.services.audit_service import AuditSink
from tillpoint.services.notification_service import EventType, NotificationBus
from tillpoint.services.order_lifecycle_service import ordering_key
from tillpoint.services.sequence_service import SequenceService
from tillpoint.services.shift_ledger_service import enforce_shift_policy

logger = logging.getLogger(__name__)

CUSTOMER_RECEIPT = "customer"


@dataclass
class PaymentResult:
    payment: Payment
    receipt: Receipt


def build_receipt_data(
    order: Order,
    payment: Payment,
    receipt_number: str,
    business: BusinessInfo,
    issued_at: datetime,
) -> Dict[str, Any]:
    """Snapshot of everything a receipt printer needs. Amounts are strings."""
    currency = order.currency

    def money(value: Optional[Decimal]) -> Optional[str]:
        return None if value is None else format_amount(value, currency)

    table = order.table
    return {
        "business_name": business.business_name,
        "currency": currency,
        "receipt_number": receipt_number,
        "order_number": order.order_number,
        "order_type": order.order_type,
        "table_number": table.number if table else None,
        "table_name": table.name if table else None,
        "server_name": order.server.full_name if order.server else None,
        "customer_name": order.customer_name,
        "items": [
            {
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": money(item.unit_price),
                "line_total": money(item.line_total),
                "modifiers": list(item.modifiers or []),
                "special_instructions": item.special_instructions,
            }
            for item in order.items
        ],
        "subtotal": money(order.subtotal),
        "discount_amount": money(order.discount_amount),
        "tax_rate": str(order.tax_rate),
        "tax_amount": money(order.tax_amount),
        "tip_amount": money(payment.tip_amount),
        "total_amount": money(order.total_amount),
        "grand_total": money(order.total_amount + payment.tip_amount),
        "payment_method": payment.method,
        "reference_number": payment.reference_number,
        "card_last_four": payment.card_last_four,
        "tendered_amount": money(payment.tendered_amount),
        "change_amount": money(payment.change_amount),
        "footer": business.receipt_footer,
        "timestamp": issued_at.isoformat(),
    }


class PaymentService:
    """Applies payments and serves stored receipts."""

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

    def _amount(self, value, what: str, currency: str) -> Decimal:
        try:
            return quantize(to_decimal(value), currency)
        except ValueError as e:
            raise PaymentValidationError(f"{what}: {e}") from e

    def pay(
        self,
        order_id: int,
        method: str,
        amount,
        tip_amount=ZERO,
        reference: Optional[str] = None,
        actor_id: Optional[int] = None,
        tendered_amount=None,
        card_last_four: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> PaymentResult:
        """Pay an order in full.

        Raises:
            OrderNotFound: no such order.
            OrderAlreadyFinalized: the order is paid or cancelled, including a
                concurrent duplicate payment.
            InvalidTransition: the order is not ready or served yet (unless
                ``allow_early_payment`` is on).
            AmountMismatch: ``amount`` differs from the order total.
            PaymentValidationError: bad method, tip, reference or tendered cash.
            StorageError: the transaction failed and was rolled back.
        """
        order = self.db.get(Order, order_id, populate_existing=True)
        if order is None:
            raise OrderNotFound(order_id)

        current = OrderStatus(order.status)
        if current in TERMINAL_STATUSES:
            raise OrderAlreadyFinalized(order_id, current.value)
        if not self.config.allow_early_payment and current not in PAYABLE_STATUSES:
            raise InvalidTransition(order_id, current.value, OrderStatus.PAID.value)

        try:
            method = PaymentMethod(method)
        except ValueError:
            raise PaymentValidationError(
                f"Invalid payment method '{method}': must be one of cash, card, mobile"
            )

        currency = order.currency
        # Compared before rounding: 21.995 must not pass as 22.00
        try:
            received = to_decimal(amount)
        except ValueError as e:
            raise PaymentValidationError(f"Amount: {e}") from e
        if received != order.total_amount:
            raise AmountMismatch(order.total_amount, received)
        amount = self._amount(received, "Amount", currency)

        tip = self._amount(tip_amount if tip_amount is not None else ZERO, "Tip", currency)
        if tip < 0:
            raise PaymentValidationError("Tip amount cannot be negative")

        reference = (reference or "").strip() or None
        if method in REFERENCED_METHODS and not reference:
            raise PaymentValidationError(f"A reference number is required for {method.value} payments")

        if card_last_four is not None:
            card_last_four = card_last_four.strip()
            if method != PaymentMethod.CARD:
                card_last_four = None
            elif len(card_last_four) != 4 or not card_last_four.isdigit():
                raise PaymentValidationError("card_last_four must be exactly 4 digits")

        change = ZERO
        tendered = None
        if method == PaymentMethod.CASH and tendered_amount is not None:
            tendered = self._amount(tendered_amount, "Tendered amount", currency)
            if tendered < amount + tip:
                raise PaymentValidationError(
                    f"Tendered amount {tendered} does not cover {amount + tip}"
                )
            change = tendered - amount - tip

        enforce_shift_policy(self.db, actor_id, "payment", self.config.shift_enforcement)

        business = self.snapshot_cache.get().business
        # Load what the receipt needs before the write transaction begins
        _ = list(order.items), order.table, order.server
        now = utcnow()

        payment = Payment(
            order_id=order.id,
            method=method.value,
            amount=amount,
            tip_amount=tip,
            tendered_amount=tendered,
            change_amount=change,
            reference_number=reference,
            card_last_four=card_last_four,
            status="completed",
            processed_by=actor_id,
            processed_at=now,
        )
        try:
            try:
                self.db.add(payment)
                self.db.flush()
            except IntegrityError as e:
                self.db.rollback()
                existing = self.db.execute(
                    select(Payment.id).where(Payment.order_id == order_id)
                ).scalar_one_or_none()
                if existing is None:
                    raise StorageError("Could not record payment, please retry") from e
                logger.info(f"Duplicate payment rejected for order {order_id}")
                raise OrderAlreadyFinalized(order_id, OrderStatus.PAID.value)

            result = self.db.execute(
                update(Order)
                .where(
                    Order.id == order.id,
                    Order.status == current.value,
                    Order.version == order.version,
                )
                .values(
                    status=OrderStatus.PAID.value,
                    tip_amount=tip,
                    paid_at=now,
                    version=order.version + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                fresh = self.db.get(Order, order_id, populate_existing=True)
                if fresh is not None and fresh.status in TERMINAL_STATUSES:
                    raise OrderAlreadyFinalized(order_id, fresh.status)
                raise ConflictError(f"Order {order_id} changed while processing payment, please retry")

            if order.order_type == OrderType.DINE_IN.value and order.table_id is not None:
                self.db.execute(
                    update(Table)
                    .where(Table.id == order.table_id, Table.status == TableStatus.OCCUPIED.value)
                    .values(status=TableStatus.AVAILABLE.value)
                    .execution_options(synchronize_session=False)
                )

            receipt_number = SequenceService(self.db, self.config.timezone).next_receipt_number(now)
            receipt = Receipt(
                receipt_number=receipt_number,
                order_id=order.id,
                receipt_type=CUSTOMER_RECEIPT,
                receipt_data=build_receipt_data(order, payment, receipt_number, business, now),
                total_amount=order.total_amount,
            )
            self.db.add(receipt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to process payment for order {order_id}: {e}")
            raise StorageError("Could not process payment, please retry") from e

        self.db.refresh(order)
        self.db.refresh(payment)
        self.db.refresh(receipt)
        logger.info(
            f"Order {order.order_number} paid by {method.value}: "
            f"{amount} + tip {tip} {currency}, receipt {receipt_number}"
        )

        if self.bus is not None:
            try:
                self.bus.publish(
                    EventType.PAYMENT_PROCESSED.value,
                    {
                        "order_id": order.id,
                        "order_number": order.order_number,
                        "status": order.status,
                        "version": order.version,
                        "table_id": order.table_id,
                        "payment_id": payment.id,
                        "method": payment.method,
                        "amount": format_amount(payment.amount, currency),
                        "tip_amount": format_amount(payment.tip_amount, currency),
                        "receipt_number": receipt.receipt_number,
                    },
                    ordering_key(order.id),
                    order.version,
                )
            except Exception:
                logger.exception(f"Failed to publish payment_processed for order {order.id}")

        if self.audit is not None:
            self.audit.record(
                actor_id,
                audit_service.PAYMENT_PROCESSED,
                f"Payment processed for order {order.order_number}",
                {
                    "order_id": order.id,
                    "payment_id": payment.id,
                    "method": payment.method,
                    "amount": str(payment.amount),
                    "tip_amount": str(payment.tip_amount),
                    "receipt_number": receipt.receipt_number,
                },
                ip_address,
            )
        return PaymentResult(payment=payment, receipt=receipt)

    def get_receipt(self, order_id: int) -> Receipt:
        receipt = self.db.execute(
            select(Receipt).where(Receipt.order_id == order_id, Receipt.receipt_type == CUSTOMER_RECEIPT)
        ).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFound(order_id)
        return receipt
