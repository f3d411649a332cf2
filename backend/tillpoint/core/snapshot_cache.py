"""
Business snapshot cache.

Business settings and the menu are read on nearly every request but change
rarely, so they are served from an immutable in-memory snapshot that a
background thread reloads every ``refresh_seconds``. That interval is the
staleness bound: an edit to the menu or tax rate is visible to pricing
within one interval.

Reads never wait for a refresh. Only the very first read of a cache that
has never loaded blocks, and if that load fails the defaults are served.
A failed periodic refresh keeps the previous snapshot.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from tillpoint.core.config import settings
from tillpoint.core.money import to_decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusinessInfo:
    business_name: str
    currency: str
    tax_rate: Decimal
    receipt_footer: str = ""


@dataclass(frozen=True)
class ModifierOptionView:
    id: int
    name: str
    price_adjustment: Decimal


@dataclass(frozen=True)
class ModifierView:
    id: int
    name: str
    type: str
    required: bool
    max_selections: Optional[int]
    options: Tuple[ModifierOptionView, ...] = ()


@dataclass(frozen=True)
class CategoryView:
    id: int
    name: str
    color: Optional[str]
    icon: Optional[str]
    business_type: Optional[str]
    sort_order: int


@dataclass(frozen=True)
class MenuItemView:
    id: int
    name: str
    price: Decimal
    category_id: Optional[int]
    category_name: Optional[str]
    modifiers: Tuple[ModifierView, ...] = ()


@dataclass(frozen=True)
class BusinessSnapshot:
    business: BusinessInfo
    menu_items: Tuple[MenuItemView, ...] = ()
    categories: Tuple[CategoryView, ...] = ()
    modifiers: Tuple[ModifierView, ...] = ()
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_default: bool = False

    def menu_item(self, item_id: int) -> Optional[MenuItemView]:
        return self._items_by_id.get(item_id)

    @property
    def _items_by_id(self) -> Dict[int, MenuItemView]:
        index = self.__dict__.get("_index")
        if index is None:
            index = {item.id: item for item in self.menu_items}
            object.__setattr__(self, "_index", index)
        return index


def default_business() -> BusinessInfo:
    return BusinessInfo(
        business_name=settings.default_business_name,
        currency=settings.default_currency,
        tax_rate=to_decimal(settings.default_tax_rate),
        receipt_footer="",
    )


def load_snapshot(db: Session) -> BusinessSnapshot:
    """Read settings and the available menu into an immutable snapshot."""
    from tillpoint.models.menu import BusinessSettings, MenuCategory, MenuItem, Modifier

    row = db.execute(select(BusinessSettings).order_by(BusinessSettings.id).limit(1)).scalar_one_or_none()
    if row is None:
        business = default_business()
    else:
        business = BusinessInfo(
            business_name=row.business_name,
            currency=(row.currency or settings.default_currency).upper(),
            tax_rate=row.tax_rate,
            receipt_footer=row.receipt_footer or "",
        )

    def modifier_view(m: Modifier) -> ModifierView:
        return ModifierView(
            id=m.id,
            name=m.name,
            type=m.type,
            required=m.required,
            max_selections=m.max_selections,
            options=tuple(
                ModifierOptionView(id=o.id, name=o.name, price_adjustment=o.price_adjustment)
                for o in sorted(m.options, key=lambda o: o.id)
            ),
        )

    modifiers = db.execute(
        select(Modifier).options(selectinload(Modifier.options)).order_by(Modifier.id)
    ).scalars().all()

    categories = db.execute(
        select(MenuCategory)
        .where(MenuCategory.is_active.is_(True))
        .order_by(MenuCategory.sort_order, MenuCategory.id)
    ).scalars().all()

    items = db.execute(
        select(MenuItem)
        .options(
            selectinload(MenuItem.category),
            selectinload(MenuItem.modifiers).selectinload(Modifier.options),
        )
        .where(MenuItem.is_available.is_(True))
        .order_by(MenuItem.name, MenuItem.id)
    ).scalars().all()

    return BusinessSnapshot(
        business=business,
        menu_items=tuple(
            MenuItemView(
                id=i.id,
                name=i.name,
                price=i.price,
                category_id=i.category_id,
                category_name=i.category.name if i.category else None,
                modifiers=tuple(modifier_view(m) for m in sorted(i.modifiers, key=lambda m: m.id)),
            )
            for i in items
        ),
        categories=tuple(
            CategoryView(
                id=c.id,
                name=c.name,
                color=c.color,
                icon=c.icon,
                business_type=c.business_type,
                sort_order=c.sort_order,
            )
            for c in categories
        ),
        modifiers=tuple(modifier_view(m) for m in modifiers),
        is_default=row is None,
    )


def database_loader(session_factory: Callable[[], Session]) -> Callable[[], BusinessSnapshot]:
    """Loader that reads the snapshot through a fresh short-lived session."""
    def load() -> BusinessSnapshot:
        db = session_factory()
        try:
            return load_snapshot(db)
        finally:
            db.close()
    return load


class BusinessSnapshotCache:
    """Periodically refreshed read-through cache of a BusinessSnapshot.

    ``loader`` is any zero-argument callable returning a snapshot, so tests
    can hand in a stub instead of a database.
    """

    def __init__(
        self,
        loader: Callable[[], BusinessSnapshot],
        refresh_seconds: Optional[float] = None,
    ):
        self.loader = loader
        self.refresh_seconds = refresh_seconds or settings.cache_refresh_seconds
        self._snapshot: Optional[BusinessSnapshot] = None
        self._load_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_error: Optional[str] = None

    def get(self) -> BusinessSnapshot:
        """Current snapshot. Only blocks if nothing has ever been loaded."""
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot
        with self._load_lock:
            if self._snapshot is None:
                self._load()
            return self._snapshot

    def refresh(self) -> bool:
        """Reload now. Returns False (keeping the old snapshot) on failure."""
        with self._load_lock:
            return self._load()

    def _load(self) -> bool:
        try:
            snapshot = self.loader()
        except Exception as e:
            self.last_error = str(e)
            if self._snapshot is None:
                logger.exception("Initial snapshot load failed, serving defaults")
                self._snapshot = BusinessSnapshot(business=default_business(), is_default=True)
            else:
                logger.exception(
                    f"Snapshot refresh failed, keeping snapshot from {self._snapshot.loaded_at.isoformat()}"
                )
            return False
        self._snapshot = snapshot
        self.last_error = None
        logger.debug(f"Snapshot loaded: {len(snapshot.menu_items)} menu items")
        return True

    @property
    def loaded_at(self) -> Optional[datetime]:
        snapshot = self._snapshot
        return snapshot.loaded_at if snapshot else None

    def start(self) -> None:
        """Start the background refresh thread (idempotent)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="snapshot-refresh", daemon=True)
        self._thread.start()
        logger.info(f"Snapshot cache refreshing every {self.refresh_seconds}s")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        self.refresh()
        while not self._stop.wait(self.refresh_seconds):
            self.refresh()
