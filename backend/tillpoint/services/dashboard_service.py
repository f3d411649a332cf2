"""Today's numbers for the POS dashboard."""

from dataclasses import dataclass
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from tillpoint.core.config import settings
from tillpoint.core.money import ZERO, quantize
from tillpoint.core.snapshot_cache import BusinessSnapshotCache
from tillpoint.db.base import utcnow
from tillpoint.models.floor import Table, TableStatus
from tillpoint.models.order import ACTIVE_STATUSES, Order, OrderStatus


@dataclass
class DashboardStats:
    today_sales: Decimal
    today_orders: int
    active_orders: int
    available_tables: int
    occupied_tables: int
    total_tips: Decimal
    average_order_value: Decimal
    currency: str


class DashboardService:
    def __init__(self, db: Session, snapshot_cache: BusinessSnapshotCache):
        self.db = db
        self.snapshot_cache = snapshot_cache

    def start_of_day(self, now: Optional[datetime] = None) -> datetime:
        """Midnight of the current business day, as UTC."""
        tz = ZoneInfo(settings.timezone)
        local = (now or utcnow()).astimezone(tz)
        return datetime.combine(local.date(), time.min, tzinfo=tz).astimezone(timezone.utc)

    def stats(self, now: Optional[datetime] = None) -> DashboardStats:
        currency = self.snapshot_cache.get().business.currency
        since = self.start_of_day(now)

        paid = self.db.execute(
            select(Order.total_amount, Order.tip_amount).where(
                Order.status == OrderStatus.PAID.value,
                Order.created_at >= since,
            )
        ).all()
        sales = sum((row.total_amount for row in paid), ZERO)
        tips = sum((row.tip_amount for row in paid), ZERO)

        active = self.db.execute(
            select(func.count(Order.id)).where(Order.status.in_([s.value for s in ACTIVE_STATUSES]))
        ).scalar_one()
        table_counts = dict(
            self.db.execute(select(Table.status, func.count(Table.id)).group_by(Table.status)).all()
        )

        return DashboardStats(
            today_sales=sales,
            today_orders=len(paid),
            active_orders=active,
            available_tables=table_counts.get(TableStatus.AVAILABLE.value, 0),
            occupied_tables=table_counts.get(TableStatus.OCCUPIED.value, 0),
            total_tips=tips,
            average_order_value=quantize(sales / len(paid), currency) if paid else ZERO,
            currency=currency,
        )
