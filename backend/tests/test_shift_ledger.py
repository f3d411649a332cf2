"""Tests for shift start/end and cash reconciliation."""

import pytest
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select, update

from tillpoint.core.exceptions import (
    NoActiveShift,
    ShiftAlreadyActive,
    ShiftValidationError,
    StaffNotFound,
)
from tillpoint.db.base import utcnow
from tillpoint.models import AuditEvent, Order, Shift
from tillpoint.services import audit_service


def _paid_order(order_service, payment_service, cart, staff_id, method="cash", tip="0", reference=None):
    order = order_service.create(cart, order_type="takeaway", server_id=staff_id, send_to_kitchen=True)
    order_service.transition(order.id, "preparing", staff_id)
    order_service.transition(order.id, "ready", staff_id)
    payment_service.pay(order.id, method, "22.00", tip_amount=tip, reference=reference, actor_id=staff_id)
    return order


class TestStartShift:

    def test_start(self, shift_service, db_session, staff):
        shift = shift_service.start(staff.id, "100.00", notes="Morning")

        assert shift.status == "active"
        assert shift.starting_cash == Decimal("100.00")
        assert shift.start_time is not None
        assert shift_service.current(staff.id).id == shift.id

        entry = db_session.execute(
            select(AuditEvent).where(AuditEvent.action == audit_service.SHIFT_STARTED)
        ).scalar_one()
        assert entry.details["shift_id"] == shift.id

    def test_second_start_rejected(self, shift_service, db_session, staff):
        shift_service.start(staff.id, "100.00")

        with pytest.raises(ShiftAlreadyActive):
            shift_service.start(staff.id, "50.00")

        assert db_session.query(Shift).filter(Shift.staff_id == staff.id).count() == 1

    def test_each_staff_has_own_shift(self, shift_service, staff, other_staff):
        shift_service.start(staff.id, "100.00")
        shift_service.start(other_staff.id, "80.00")

        assert shift_service.current(staff.id).starting_cash == Decimal("100.00")
        assert shift_service.current(other_staff.id).starting_cash == Decimal("80.00")

    def test_negative_starting_cash(self, shift_service, staff):
        with pytest.raises(ShiftValidationError):
            shift_service.start(staff.id, "-1.00")

    def test_unknown_staff(self, shift_service):
        with pytest.raises(StaffNotFound):
            shift_service.start(999, "10.00")

    def test_inactive_staff(self, shift_service, db_session, staff):
        staff.is_active = False
        db_session.commit()
        with pytest.raises(StaffNotFound):
            shift_service.start(staff.id, "10.00")

    def test_can_start_again_after_end(self, shift_service, staff):
        first = shift_service.start(staff.id, "100.00")
        shift_service.end(staff.id, "100.00")

        second = shift_service.start(staff.id, "50.00")

        assert second.id != first.id
        assert shift_service.current(staff.id).id == second.id


class TestEndShift:

    def test_no_active_shift(self, shift_service, staff):
        with pytest.raises(NoActiveShift):
            shift_service.end(staff.id, "0")
        assert shift_service.current(staff.id) is None

    def test_empty_shift(self, shift_service, staff):
        shift_service.start(staff.id, "100.00")

        shift = shift_service.end(staff.id, "100.00")

        assert shift.status == "closed"
        assert shift.end_time is not None
        assert shift.total_orders == 0
        assert shift.total_sales == Decimal("0.00")
        assert shift.expected_cash == Decimal("100.00")
        assert shift.cash_variance == Decimal("0.00")

    def test_reconciles_paid_orders_in_window(
        self, shift_service, order_service, payment_service, db_session, staff, other_staff, cart
    ):
        shift_service.start(staff.id, "100.00")

        _paid_order(order_service, payment_service, cart, staff.id, "cash", tip="3.00")
        _paid_order(order_service, payment_service, cart, staff.id, "card", tip="2.00", reference="CARD-1")
        _paid_order(order_service, payment_service, cart, staff.id, "mobile", reference="MM-1")

        # Paid, but created before the shift started
        early = _paid_order(order_service, payment_service, cart, staff.id, "cash")
        db_session.execute(
            update(Order).where(Order.id == early.id).values(created_at=utcnow() - timedelta(days=1))
        )
        db_session.commit()

        # Another server's sale and an unpaid order
        _paid_order(order_service, payment_service, cart, other_staff.id, "cash")
        order_service.create(cart, order_type="takeaway", server_id=staff.id)

        shift = shift_service.end(staff.id, "120.00", notes="Drawer short")

        assert shift.status == "closed"
        assert shift.total_orders == 3
        assert shift.total_sales == Decimal("66.00")
        assert shift.total_tips == Decimal("5.00")
        assert shift.cash_sales == Decimal("22.00")
        assert shift.card_sales == Decimal("22.00")
        assert shift.mobile_sales == Decimal("22.00")
        assert shift.cash_tips == Decimal("3.00")
        assert shift.expected_cash == Decimal("125.00")
        assert shift.ending_cash == Decimal("120.00")
        assert shift.cash_variance == Decimal("-5.00")
        assert shift.notes == "Drawer short"

        entry = db_session.execute(
            select(AuditEvent).where(AuditEvent.action == audit_service.SHIFT_ENDED)
        ).scalar_one()
        assert entry.details["total_sales"] == "66.00"

    def test_end_twice_rejected(self, shift_service, staff):
        shift_service.start(staff.id, "100.00")
        shift_service.end(staff.id, "100.00")

        with pytest.raises(NoActiveShift):
            shift_service.end(staff.id, "100.00")

    def test_totals_are_not_revised_later(
        self, shift_service, order_service, payment_service, db_session, staff, cart
    ):
        shift_service.start(staff.id, "0")
        order = order_service.create(cart, order_type="takeaway", server_id=staff.id, send_to_kitchen=True)
        closed = shift_service.end(staff.id, "0")

        order_service.transition(order.id, "preparing", staff.id)
        order_service.transition(order.id, "ready", staff.id)
        payment_service.pay(order.id, "cash", "22.00", actor_id=staff.id)

        db_session.expire_all()
        assert db_session.get(Shift, closed.id).total_sales == Decimal("0.00")
