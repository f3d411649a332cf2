"""Shift ledger: open and close cash-handling shifts.

Closing a shift reduces the staff member's paid orders created inside the
shift window into sales, tips and a per-method breakdown, then reconciles
the counted drawer against the expected cash. The reduction is a
point-in-time snapshot: orders paid after the close are never added later.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tillpoint.core.config import settings
from tillpoint.core.exceptions import (
    NoActiveShift,
    ShiftAlreadyActive,
    ShiftValidationError,
    StaffNotFound,
    StorageError,
)
from tillpoint.core.money import ZERO, format_amount, quantize, to_decimal
from tillpoint.core.snapshot_cache import BusinessSnapshotCache
from tillpoint.db.base import utcnow
from tillpoint.models.order import Order, OrderStatus
from tillpoint.models.payment import Payment, PaymentMethod
from tillpoint.models.shift import Shift, ShiftStatus
from tillpoint.models.staff import StaffUser
from tillpoint.services import audit_service
from tillpoint.services.audit_service import AuditSink

logger = logging.getLogger(__name__)


def find_active_shift(db: Session, staff_id: int) -> Optional[Shift]:
    return db.execute(
        select(Shift).where(Shift.staff_id == staff_id, Shift.status == ShiftStatus.ACTIVE.value)
    ).scalars().first()


def enforce_shift_policy(db: Session, staff_id: Optional[int], action: str, mode: Optional[str] = None) -> None:
    """Apply the ``shift_enforcement`` setting before an order or payment.

    ``off`` skips the check, ``warn`` logs when the staff member has no
    active shift and ``require`` raises NoActiveShift.
    """
    mode = mode or settings.shift_enforcement
    if mode == "off" or staff_id is None:
        return
    if find_active_shift(db, staff_id) is not None:
        return
    if mode == "require":
        raise NoActiveShift(staff_id)
    logger.warning(f"Staff {staff_id} performed {action} without an active shift")


@dataclass
class ShiftTotals:
    """Reduction of the paid orders in a shift window."""

    total_sales: Decimal = ZERO
    total_tips: Decimal = ZERO
    total_orders: int = 0
    by_method: Dict[str, Decimal] = field(
        default_factory=lambda: {m.value: ZERO for m in PaymentMethod}
    )
    cash_tips: Decimal = ZERO

    def add(self, total_amount: Decimal, tip_amount: Decimal, method: str) -> None:
        self.total_sales += total_amount
        self.total_tips += tip_amount
        self.total_orders += 1
        self.by_method[method] = self.by_method.get(method, ZERO) + total_amount
        if method == PaymentMethod.CASH.value:
            self.cash_tips += tip_amount


class ShiftLedgerService:
    """Start, end and look up shifts."""

    def __init__(
        self,
        db: Session,
        snapshot_cache: Optional[BusinessSnapshotCache] = None,
        audit: Optional[AuditSink] = None,
    ):
        self.db = db
        self.snapshot_cache = snapshot_cache
        self.audit = audit

    def _currency(self) -> str:
        if self.snapshot_cache is None:
            return settings.default_currency
        return self.snapshot_cache.get().business.currency

    def _cash(self, value, field_name: str) -> Decimal:
        try:
            amount = to_decimal(value)
        except ValueError as e:
            raise ShiftValidationError(f"{field_name}: {e}") from e
        if amount < 0:
            raise ShiftValidationError(f"{field_name} cannot be negative")
        return quantize(amount, self._currency())

    def current(self, staff_id: int) -> Optional[Shift]:
        """The staff member's active shift, or None."""
        return find_active_shift(self.db, staff_id)

    def start(self, staff_id: int, starting_cash, notes: Optional[str] = None) -> Shift:
        starting_cash = self._cash(starting_cash, "Starting cash")

        staff = self.db.get(StaffUser, staff_id)
        if staff is None or not staff.is_active:
            raise StaffNotFound(staff_id)
        if self.current(staff_id) is not None:
            raise ShiftAlreadyActive(staff_id)

        shift = Shift(
            staff_id=staff_id,
            status=ShiftStatus.ACTIVE.value,
            start_time=utcnow(),
            starting_cash=starting_cash,
            notes=notes,
        )
        try:
            self.db.add(shift)
            self.db.commit()
        except IntegrityError:
            # Lost the race on the one-active-shift index
            self.db.rollback()
            raise ShiftAlreadyActive(staff_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to start shift for staff {staff_id}: {e}")
            raise StorageError("Could not start shift, please retry") from e

        self.db.refresh(shift)
        logger.info(f"Shift {shift.id} started for staff {staff_id}")
        if self.audit:
            self.audit.record(
                staff_id,
                audit_service.SHIFT_STARTED,
                f"Shift started with {format_amount(starting_cash, self._currency())}",
                {"shift_id": shift.id, "starting_cash": str(starting_cash)},
            )
        return shift

    def aggregate(self, staff_id: int, start: datetime, end: datetime) -> ShiftTotals:
        """Reduce paid orders served by ``staff_id`` created within [start, end]."""
        rows = self.db.execute(
            select(Order.total_amount, Order.tip_amount, Payment.method)
            .join(Payment, Payment.order_id == Order.id)
            .where(
                Order.server_id == staff_id,
                Order.status == OrderStatus.PAID.value,
                Order.created_at >= start,
                Order.created_at <= end,
            )
        ).all()
        totals = ShiftTotals()
        for total_amount, tip_amount, method in rows:
            totals.add(total_amount, tip_amount or ZERO, method)
        return totals

    def end(self, staff_id: int, ending_cash, notes: Optional[str] = None) -> Shift:
        ending_cash = self._cash(ending_cash, "Ending cash")

        shift = self.current(staff_id)
        if shift is None:
            raise NoActiveShift(staff_id)

        now = utcnow()
        totals = self.aggregate(staff_id, shift.start_time, now)
        expected_cash = shift.starting_cash + totals.by_method[PaymentMethod.CASH.value] + totals.cash_tips
        values = {
            "status": ShiftStatus.CLOSED.value,
            "end_time": now,
            "ending_cash": ending_cash,
            "total_sales": totals.total_sales,
            "total_tips": totals.total_tips,
            "total_orders": totals.total_orders,
            "cash_sales": totals.by_method[PaymentMethod.CASH.value],
            "card_sales": totals.by_method[PaymentMethod.CARD.value],
            "mobile_sales": totals.by_method[PaymentMethod.MOBILE.value],
            "cash_tips": totals.cash_tips,
            "expected_cash": expected_cash,
            "cash_variance": ending_cash - expected_cash,
        }
        if notes is not None:
            values["notes"] = notes

        try:
            result = self.db.execute(
                update(Shift)
                .where(Shift.id == shift.id, Shift.status == ShiftStatus.ACTIVE.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                raise NoActiveShift(staff_id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to end shift {shift.id}: {e}")
            raise StorageError("Could not end shift, please retry") from e

        self.db.refresh(shift)
        logger.info(
            f"Shift {shift.id} closed: {totals.total_orders} orders, "
            f"sales {totals.total_sales}, variance {shift.cash_variance}"
        )
        if self.audit:
            self.audit.record(
                staff_id,
                audit_service.SHIFT_ENDED,
                f"Shift ended with {totals.total_orders} orders",
                {
                    "shift_id": shift.id,
                    "total_sales": str(shift.total_sales),
                    "total_tips": str(shift.total_tips),
                    "cash_variance": str(shift.cash_variance),
                },
            )
        return shift
