"""Publishing and auditing happen after commit and never fail the operation."""

import pytest
from decimal import Decimal

from sqlalchemy import select

from tillpoint.models import Order, Payment, Table
from tillpoint.services.audit_service import AuditSink
from tillpoint.services.order_lifecycle_service import OrderLifecycleService
from tillpoint.services.payment_service import PaymentService


class BrokenBus:
    def __init__(self):
        self.calls = 0

    def publish(self, *args, **kwargs):
        self.calls += 1
        raise RuntimeError("bus is down")


class BrokenSession:
    """Accepts the add, then loses its connection."""

    def add(self, obj):
        pass

    def commit(self):
        raise RuntimeError("connection gone")

    def rollback(self):
        raise RuntimeError("connection gone")

    def close(self):
        raise RuntimeError("connection gone")


def _unreachable_database():
    raise RuntimeError("database unreachable")


@pytest.fixture
def broken_bus():
    return BrokenBus()


@pytest.fixture(params=["factory_raises", "session_raises"])
def broken_audit(request):
    if request.param == "factory_raises":
        return AuditSink(_unreachable_database)
    return AuditSink(BrokenSession)


class TestAuditSink:

    def test_record_survives_failed_commit_and_rollback(self):
        AuditSink(BrokenSession).record(1, "ORDER_CREATED", "created", {"order_id": 1})

    def test_record_survives_unreachable_database(self):
        AuditSink(_unreachable_database).record(None, "LOGIN_FAILED")


class TestBestEffortSideEffects:

    def _services(self, db_session, snapshot_cache, bus, audit):
        return (
            OrderLifecycleService(db_session, snapshot_cache, bus=bus, audit=audit),
            PaymentService(db_session, snapshot_cache, bus=bus, audit=audit),
        )

    def _check_full_flow(self, db_session, session_factory, orders, payments, table, staff, cart):
        order = orders.create(cart, order_type="dine_in", table_id=table.id, server_id=staff.id)
        assert order.status == "open"

        for status in ("sent_to_kitchen", "preparing", "ready"):
            order = orders.transition(order.id, status, staff.id)
            assert order.status == status

        result = payments.pay(order.id, "cash", "22.00", actor_id=staff.id)
        assert result.receipt.receipt_number.startswith("REC-")

        # Committed: visible from a fresh session
        other = session_factory()
        try:
            assert other.get(Order, order.id).status == "paid"
            assert other.execute(select(Payment).where(Payment.order_id == order.id)).scalar_one().amount == Decimal("22.00")
            assert other.get(Table, table.id).status == "available"
        finally:
            other.close()

    def test_publish_failure_does_not_undo_writes(self, db_session, session_factory, snapshot_cache, broken_bus, audit_sink, table, staff, cart):
        orders, payments = self._services(db_session, snapshot_cache, broken_bus, audit_sink)

        self._check_full_flow(db_session, session_factory, orders, payments, table, staff, cart)

        # create, three transitions, payment
        assert broken_bus.calls == 5

    def test_audit_failure_does_not_fail_operations(self, db_session, session_factory, snapshot_cache, bus, broken_audit, table, staff, cart):
        orders, payments = self._services(db_session, snapshot_cache, bus, broken_audit)

        self._check_full_flow(db_session, session_factory, orders, payments, table, staff, cart)

    def test_cancel_with_broken_bus_and_audit(self, db_session, snapshot_cache, broken_bus, table, staff, cart):
        orders, _ = self._services(db_session, snapshot_cache, broken_bus, AuditSink(BrokenSession))
        order = orders.create(cart, order_type="dine_in", table_id=table.id)

        cancelled = orders.transition(order.id, "cancelled", staff.id)

        db_session.expire_all()
        assert cancelled.status == "cancelled"
        assert db_session.get(Table, table.id).status == "available"
