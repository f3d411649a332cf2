"""Shared route dependencies.

The long-lived collaborators (notification bus, snapshot cache, audit sink)
live on ``app.state`` and are reached through these functions so tests can
swap them with ``app.dependency_overrides``.
"""

from typing import Annotated, Optional

from fastapi import Depends
from starlette.requests import HTTPConnection

from tillpoint.core.exceptions import AuthenticationError
from tillpoint.core.security import staff_id_from_token
from tillpoint.core.snapshot_cache import BusinessSnapshotCache
from tillpoint.db.session import DbSession, SessionLocal
from tillpoint.models.staff import StaffUser
from tillpoint.services.audit_service import AuditSink
from tillpoint.services.auth_service import AuthService
from tillpoint.services.dashboard_service import DashboardService
from tillpoint.services.notification_service import NotificationBus
from tillpoint.services.order_lifecycle_service import OrderLifecycleService
from tillpoint.services.payment_service import PaymentService
from tillpoint.services.shift_ledger_service import ShiftLedgerService


def get_bus(conn: HTTPConnection) -> NotificationBus:
    return conn.app.state.bus


def get_snapshot_cache(conn: HTTPConnection) -> BusinessSnapshotCache:
    return conn.app.state.snapshot_cache


def get_audit_sink(conn: HTTPConnection) -> AuditSink:
    return conn.app.state.audit


def get_session_factory():
    """Factory for short-lived sessions outside the request session."""
    return SessionLocal


Bus = Annotated[NotificationBus, Depends(get_bus)]
SnapshotCache = Annotated[BusinessSnapshotCache, Depends(get_snapshot_cache)]
Audit = Annotated[AuditSink, Depends(get_audit_sink)]


def client_ip(conn: HTTPConnection) -> Optional[str]:
    return conn.client.host if conn.client else None


def get_current_staff(conn: HTTPConnection, db: DbSession) -> StaffUser:
    """Resolve the Bearer token to an active staff account."""
    auth_header = conn.headers.get("Authorization", "")
    token = auth_header.split(" ", 1)[1] if auth_header.startswith("Bearer ") else None
    staff_id = staff_id_from_token(token)
    if staff_id is None:
        raise AuthenticationError("Not authenticated")
    staff = db.get(StaffUser, staff_id)
    if staff is None or not staff.is_active:
        raise AuthenticationError("Staff account not found or inactive")
    return staff


CurrentStaff = Annotated[StaffUser, Depends(get_current_staff)]


# ==================== Service factories ====================

def get_order_service(db: DbSession, cache: SnapshotCache, bus: Bus, audit: Audit) -> OrderLifecycleService:
    return OrderLifecycleService(db, cache, bus=bus, audit=audit)


def get_payment_service(db: DbSession, cache: SnapshotCache, bus: Bus, audit: Audit) -> PaymentService:
    return PaymentService(db, cache, bus=bus, audit=audit)


def get_shift_service(db: DbSession, cache: SnapshotCache, audit: Audit) -> ShiftLedgerService:
    return ShiftLedgerService(db, cache, audit=audit)


def get_auth_service(db: DbSession, audit: Audit) -> AuthService:
    return AuthService(db, audit=audit)


def get_dashboard_service(db: DbSession, cache: SnapshotCache) -> DashboardService:
    return DashboardService(db, cache)


OrderService = Annotated[OrderLifecycleService, Depends(get_order_service)]
Payments = Annotated[PaymentService, Depends(get_payment_service)]
ShiftLedger = Annotated[ShiftLedgerService, Depends(get_shift_service)]
Auth = Annotated[AuthService, Depends(get_auth_service)]
Dashboard = Annotated[DashboardService, Depends(get_dashboard_service)]
