"""Pytest configuration and fixtures."""

import os

# Settings are read at import time; pin them before tillpoint is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SHIFT_ENFORCEMENT", "warn")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tillpoint.core.security import create_access_token, get_pin_hash
from tillpoint.core.snapshot_cache import BusinessSnapshotCache, database_loader
from tillpoint.db.base import Base
from tillpoint.db.session import get_db
from tillpoint.api.deps import get_audit_sink, get_bus, get_session_factory, get_snapshot_cache
from tillpoint.main import app
# Import all models to ensure they're registered with Base.metadata
from tillpoint.models import *  # noqa: F401,F403
from tillpoint.models import BusinessSettings, MenuCategory, MenuItem, Modifier, ModifierOption, StaffUser, Table
from tillpoint.services.audit_service import AuditSink
from tillpoint.services.notification_service import NotificationBus
from tillpoint.services.order_lifecycle_service import OrderLifecycleService
from tillpoint.services.payment_service import PaymentService
from tillpoint.services.pricing_service import LineInput
from tillpoint.services.shift_ledger_service import ShiftLedgerService

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_PIN = "1234"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ==================== Reference data ====================

@pytest.fixture
def business_settings(db_session: Session) -> BusinessSettings:
    """USD business with 10% tax."""
    row = BusinessSettings(
        business_name="Test Bistro",
        currency="USD",
        tax_rate=Decimal("10.00"),
        receipt_footer="Thank you!",
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture
def menu(db_session: Session) -> dict:
    """Two dishes and a priced modifier."""
    mains = MenuCategory(name="Mains", color="#ff0000", sort_order=1)
    burger = MenuItem(name="Burger", price=Decimal("12.00"), category=mains)
    fries = MenuItem(name="Fries", price=Decimal("8.00"), category=mains)
    hidden = MenuItem(name="Seasonal Soup", price=Decimal("6.00"), category=mains, is_available=False)
    extras = Modifier(name="Extras", type="multiple", max_selections=3)
    cheese = ModifierOption(name="Extra cheese", price_adjustment=Decimal("1.50"))
    extras.options.append(cheese)
    burger.modifiers.append(extras)
    db_session.add_all([mains, burger, fries, hidden, extras])
    db_session.commit()
    return {"burger": burger, "fries": fries, "hidden": hidden, "extras": extras, "cheese": cheese}


@pytest.fixture
def snapshot_cache(session_factory, business_settings, menu) -> BusinessSnapshotCache:
    """Cache loaded from the seeded test database (no refresh thread)."""
    cache = BusinessSnapshotCache(database_loader(session_factory), refresh_seconds=300)
    cache.refresh()
    return cache


@pytest.fixture
def staff(db_session: Session) -> StaffUser:
    user = StaffUser(
        staff_code="S001",
        pin_hash=get_pin_hash(TEST_PIN),
        full_name="Sam Server",
        role="server",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def other_staff(db_session: Session) -> StaffUser:
    user = StaffUser(
        staff_code="S002",
        pin_hash=get_pin_hash("5678"),
        full_name="Casey Cashier",
        role="cashier",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def table(db_session: Session) -> Table:
    t = Table(number=1, name="T1", capacity=4, status="available")
    db_session.add(t)
    db_session.commit()
    db_session.refresh(t)
    return t


# ==================== Collaborators and services ====================

@pytest.fixture
def bus() -> Generator[NotificationBus, None, None]:
    b = NotificationBus(queue_size=100)
    yield b
    b.close()


@pytest.fixture
def audit_sink(session_factory) -> AuditSink:
    return AuditSink(session_factory)


@pytest.fixture
def order_service(db_session, snapshot_cache, bus, audit_sink) -> OrderLifecycleService:
    return OrderLifecycleService(db_session, snapshot_cache, bus=bus, audit=audit_sink)


@pytest.fixture
def payment_service(db_session, snapshot_cache, bus, audit_sink) -> PaymentService:
    return PaymentService(db_session, snapshot_cache, bus=bus, audit=audit_sink)


@pytest.fixture
def shift_service(db_session, snapshot_cache, audit_sink) -> ShiftLedgerService:
    return ShiftLedgerService(db_session, snapshot_cache, audit=audit_sink)


def two_item_cart() -> list:
    """12.00 + 8.00 = 20.00 subtotal."""
    return [
        LineInput(quantity=1, unit_price=Decimal("12.00"), menu_item_id=None, name="Burger"),
        LineInput(quantity=1, unit_price=Decimal("8.00"), menu_item_id=None, name="Fries"),
    ]


@pytest.fixture
def cart():
    return two_item_cart()


# ==================== HTTP ====================

@pytest.fixture(scope="function")
def client(db_session: Session, session_factory, snapshot_cache, bus, audit_sink) -> Generator[TestClient, None, None]:
    """Create a test client wired to the test database and collaborators."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_snapshot_cache] = lambda: snapshot_cache
    app.dependency_overrides[get_bus] = lambda: bus
    app.dependency_overrides[get_audit_sink] = lambda: audit_sink
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    # The lifespan starts and stops whatever is on app.state. Its refresh thread
    # re-serves the loaded snapshot so it never shares the test connection.
    app.state.snapshot_cache = BusinessSnapshotCache(snapshot_cache.get, refresh_seconds=300)
    app.state.bus = bus
    app.state.audit = audit_sink
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_token(staff: StaffUser) -> str:
    return create_access_token(data={"sub": str(staff.id), "role": staff.role})


@pytest.fixture
def auth_headers(auth_token: str) -> dict:
    """Get authentication headers."""
    return {"Authorization": f"Bearer {auth_token}"}
