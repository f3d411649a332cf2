"""Tests for date-scoped order and receipt numbering."""

import re
from datetime import datetime, timezone

from tillpoint.models import SequenceCounter
from tillpoint.services.sequence_service import SequenceService

NUMBER_PATTERN = re.compile(r"^ORD-\d{8}-\d{4}$")


def test_numbers_are_sequential(db_session):
    seq = SequenceService(db_session, "UTC")
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

    numbers = [seq.next_order_number(now) for _ in range(3)]
    db_session.commit()

    assert numbers == ["ORD-20260314-0001", "ORD-20260314-0002", "ORD-20260314-0003"]


def test_counter_restarts_each_day(db_session):
    seq = SequenceService(db_session, "UTC")

    seq.next_order_number(datetime(2026, 3, 14, 23, 59, tzinfo=timezone.utc))
    first_next_day = seq.next_order_number(datetime(2026, 3, 15, 0, 1, tzinfo=timezone.utc))

    assert first_next_day == "ORD-20260315-0001"


def test_orders_and_receipts_count_separately(db_session):
    seq = SequenceService(db_session, "UTC")
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)

    seq.next_order_number(now)
    seq.next_order_number(now)

    assert seq.next_receipt_number(now) == "REC-20260314-0001"


def test_business_day_uses_configured_timezone(db_session):
    # 22:30 UTC is already the next day in Kampala (UTC+3)
    seq = SequenceService(db_session, "Africa/Kampala")
    number = seq.next_order_number(datetime(2026, 3, 14, 22, 30, tzinfo=timezone.utc))
    assert number == "ORD-20260315-0001"


def test_rollback_returns_number(db_session):
    seq = SequenceService(db_session, "UTC")
    now = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)
    seq.next_order_number(now)
    db_session.commit()

    seq.next_order_number(now)
    db_session.rollback()

    assert seq.next_order_number(now) == "ORD-20260314-0002"
    assert db_session.query(SequenceCounter).count() == 1


def test_default_format(db_session):
    assert NUMBER_PATTERN.match(SequenceService(db_session).next_order_number())
