"""Staff login by staff code and PIN."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tillpoint.core.exceptions import InvalidCredentials, StorageError
from tillpoint.core.security import create_access_token, get_pin_hash, verify_pin
from tillpoint.db.base import utcnow
from tillpoint.models.staff import StaffUser
from tillpoint.services import audit_service
from tillpoint.services.audit_service import AuditSink

logger = logging.getLogger("auth")

# Compared against when the staff code is unknown so both paths cost a bcrypt check
_DUMMY_HASH = get_pin_hash("0000")


@dataclass
class LoginResult:
    access_token: str
    staff: StaffUser
    token_type: str = "bearer"


class AuthService:
    def __init__(self, db: Session, audit: Optional[AuditSink] = None):
        self.db = db
        self.audit = audit

    def login(self, staff_code: str, pin: str, ip_address: Optional[str] = None) -> LoginResult:
        """Check credentials and issue a session token.

        Unknown codes, wrong PINs and inactive accounts all fail with the same
        InvalidCredentials so the response does not reveal which it was.
        """
        staff = self.db.execute(
            select(StaffUser).where(StaffUser.staff_code == staff_code)
        ).scalar_one_or_none()

        pin_ok = verify_pin(pin, staff.pin_hash if staff else _DUMMY_HASH)
        if staff is None or not pin_ok or not staff.is_active:
            logger.warning(f"Failed login for staff code {staff_code!r} from {ip_address}")
            if self.audit:
                self.audit.record(
                    staff.id if staff else None,
                    audit_service.LOGIN_FAILED,
                    "Invalid login attempt",
                    {"staff_code": staff_code},
                    ip_address,
                )
            raise InvalidCredentials()

        try:
            staff.last_login = utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record login for staff {staff.id}: {e}")
            raise StorageError("Could not complete login, please retry") from e

        token = create_access_token({"sub": str(staff.id), "role": staff.role})
        logger.info(f"Staff {staff.staff_code} (ID: {staff.id}, role: {staff.role}) logged in from {ip_address}")
        if self.audit:
            self.audit.record(
                staff.id, audit_service.LOGIN, "User logged in",
                {"staff_code": staff.staff_code, "role": staff.role}, ip_address,
            )
        return LoginResult(access_token=token, staff=staff)
