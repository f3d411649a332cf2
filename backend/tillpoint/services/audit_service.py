"""Audit trail writer.

Entries are written after the business transaction commits, through a
short-lived session of their own, so a failed audit write can never roll
back or fail the operation that triggered it. Failures are logged to the
``audit`` logger and dropped.
"""

import logging
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from tillpoint.models.audit import AuditEvent

logger = logging.getLogger("audit")

# Action kinds
LOGIN = "LOGIN"
LOGIN_FAILED = "LOGIN_FAILED"
ORDER_CREATED = "ORDER_CREATED"
ORDER_STATUS_UPDATED = "ORDER_STATUS_UPDATED"
PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
SHIFT_STARTED = "SHIFT_STARTED"
SHIFT_ENDED = "SHIFT_ENDED"


class AuditSink:
    """Best-effort, append-only audit writer.

    ``session_factory`` is any zero-argument callable returning a Session
    (a ``sessionmaker`` in practice).
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def record(
        self,
        actor_id: Optional[int],
        action: str,
        description: str = "",
        metadata: Optional[dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        """Write one audit entry. Never raises."""
        db = None
        try:
            db = self.session_factory()
            db.add(AuditEvent(
                actor_id=actor_id,
                action=action,
                description=description,
                details=metadata or {},
                ip_address=ip_address,
            ))
            db.commit()
        except Exception:
            logger.exception("Failed to write audit entry %s for actor %s", action, actor_id)
            if db is not None:
                try:
                    db.rollback()
                except Exception:
                    logger.exception("Audit session rollback failed")
        finally:
            if db is not None:
                try:
                    db.close()
                except Exception:
                    logger.exception("Audit session close failed")
