"""Date-scoped sequential numbers for orders and receipts.

Numbers look like ``ORD-20260314-0042``. The counter row for (name, day) is
bumped with a single UPDATE inside the caller's transaction, so the row lock
serializes concurrent allocators and a rollback gives the number back.
"""

import logging
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from tillpoint.core.config import settings
from tillpoint.db.base import utcnow
from tillpoint.models.sequence import SequenceCounter

logger = logging.getLogger(__name__)

ORDER_PREFIX = "ORD"
RECEIPT_PREFIX = "REC"


class SequenceService:
    """Allocates numbers; never commits. The caller owns the transaction."""

    def __init__(self, db: Session, timezone: Optional[str] = None):
        self.db = db
        self.tz = ZoneInfo(timezone or settings.timezone)

    def business_day(self, now: Optional[datetime] = None) -> date:
        return (now or utcnow()).astimezone(self.tz).date()

    def next_value(self, name: str, day: date) -> int:
        result = self.db.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == name, SequenceCounter.day == day)
            .values(value=SequenceCounter.value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # First number of the day. A concurrent first insert fails on the
            # primary key and surfaces to the caller as a retryable storage error.
            self.db.add(SequenceCounter(name=name, day=day, value=1))
            self.db.flush()
            return 1
        return self.db.execute(
            select(SequenceCounter.value).where(
                SequenceCounter.name == name, SequenceCounter.day == day
            )
        ).scalar_one()

    def next_number(self, prefix: str, now: Optional[datetime] = None) -> str:
        day = self.business_day(now)
        value = self.next_value(prefix, day)
        return f"{prefix}-{day:%Y%m%d}-{value:04d}"

    def next_order_number(self, now: Optional[datetime] = None) -> str:
        return self.next_number(ORDER_PREFIX, now)

    def next_receipt_number(self, now: Optional[datetime] = None) -> str:
        return self.next_number(RECEIPT_PREFIX, now)
