"""Staff accounts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from tillpoint.db.base import Base, TimestampMixin


class StaffRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    SERVER = "server"
    BARTENDER = "bartender"
    KITCHEN = "kitchen"
    CASHIER = "cashier"


class StaffUser(Base, TimestampMixin):
    """A staff member who logs in with a staff code and PIN.

    Accounts are provisioned elsewhere; this service only reads them and
    stamps ``last_login``.
    """

    __tablename__ = "staff_users"

    id: Mapped[int] = mapped_column(primary_key=True)
    staff_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    pin_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=StaffRole.SERVER.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
