"""Races between concurrent writers on a file-backed SQLite database."""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from tillpoint.core.exceptions import OrderAlreadyFinalized, TableUnavailable
from tillpoint.core.snapshot_cache import BusinessInfo, BusinessSnapshot, BusinessSnapshotCache
from tillpoint.db.base import Base
from tillpoint.db.session import build_engine
from tillpoint.models import Order, Payment, Table
from tillpoint.services.order_lifecycle_service import OrderLifecycleService
from tillpoint.services.payment_service import PaymentService
from tillpoint.services.pricing_service import LineInput

WORKERS = 4


def _cart():
    return [
        LineInput(quantity=1, unit_price=Decimal("12.00"), name="Burger"),
        LineInput(quantity=1, unit_price=Decimal("8.00"), name="Fries"),
    ]


@pytest.fixture
def file_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    engine.dispose()


@pytest.fixture
def stub_cache():
    business = BusinessInfo(business_name="Race Bar", currency="USD", tax_rate=Decimal("10"))
    return BusinessSnapshotCache(lambda: BusinessSnapshot(business=business), refresh_seconds=60)


def _run_concurrently(factory, work):
    """Run ``work(session)`` in WORKERS threads released together."""
    barrier = threading.Barrier(WORKERS)
    outcomes = []
    lock = threading.Lock()

    def worker():
        db = factory()
        try:
            barrier.wait(timeout=10)
            try:
                result = ("ok", work(db))
            except Exception as e:
                result = ("error", e)
            with lock:
                outcomes.append(result)
        finally:
            db.close()

    threads = [threading.Thread(target=worker) for _ in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_one_order_claims_the_table(file_factory, stub_cache):
    with file_factory() as db:
        table = Table(number=7, name="T7", capacity=2, status="available")
        db.add(table)
        db.commit()
        table_id = table.id

    def claim(db):
        return OrderLifecycleService(db, stub_cache).create(_cart(), order_type="dine_in", table_id=table_id).id

    outcomes = _run_concurrently(file_factory, claim)

    assert len(outcomes) == WORKERS
    winners = [value for kind, value in outcomes if kind == "ok"]
    losers = [value for kind, value in outcomes if kind == "error"]
    assert len(winners) == 1
    assert all(isinstance(e, TableUnavailable) for e in losers)

    with file_factory() as db:
        assert db.execute(select(func.count(Order.id))).scalar_one() == 1
        assert db.get(Table, table_id).status == "occupied"


def test_one_payment_per_order(file_factory, stub_cache):
    with file_factory() as db:
        service = OrderLifecycleService(db, stub_cache)
        order = service.create(_cart(), order_type="takeaway", send_to_kitchen=True)
        service.transition(order.id, "preparing", None)
        service.transition(order.id, "ready", None)
        order_id = order.id

    def pay(db):
        return PaymentService(db, stub_cache).pay(order_id, "cash", "22.00").payment.id

    outcomes = _run_concurrently(file_factory, pay)

    assert len(outcomes) == WORKERS
    winners = [value for kind, value in outcomes if kind == "ok"]
    losers = [value for kind, value in outcomes if kind == "error"]
    assert len(winners) == 1
    assert all(isinstance(e, OrderAlreadyFinalized) for e in losers)

    with file_factory() as db:
        assert db.execute(select(func.count(Payment.id))).scalar_one() == 1
        assert db.get(Order, order_id).status == "paid"
