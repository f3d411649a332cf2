"""
Notification Bus
Fan-out of order lifecycle events to kitchen displays and dashboards
"""
import itertools
import logging
import queue
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"


class EventType(str, Enum):
    """Lifecycle events published by the services"""
    CONNECTED = "connected"
    ORDER_CREATED = "order_created"
    ORDER_STATUS_UPDATED = "order_status_updated"
    PAYMENT_PROCESSED = "payment_processed"


@dataclass
class Message:
    """Standard event envelope, also the WebSocket frame format"""
    event: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Handler = Callable[[Message], None]

_STOP = object()


class Subscription:
    """
    One subscriber: a bounded queue drained by its own delivery thread.
    A slow handler only backs up its own queue.
    """

    _ids = itertools.count(1)

    def __init__(self, bus: "NotificationBus", event_name: str, handler: Handler, maxsize: int):
        self.id = next(self._ids)
        self.event_name = event_name
        self.handler = handler
        self.active = True
        self.dropped = 0
        self._bus = bus
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=maxsize)
        self._thread = threading.Thread(
            target=self._run, name=f"notify-{event_name}-{self.id}", daemon=True
        )
        self._thread.start()

    def matches(self, event_name: str) -> bool:
        return self.active and self.event_name in (ALL_EVENTS, event_name)

    def offer(self, message: Message) -> bool:
        try:
            self._queue.put_nowait(message)
            return True
        except queue.Full:
            self.dropped += 1
            logger.warning(
                f"Subscriber {self.id} queue full, dropped {message.event} "
                f"({self.dropped} dropped so far)"
            )
            return False

    @property
    def pending(self) -> int:
        return self._queue.unfinished_tasks

    def stop(self) -> None:
        self.active = False
        try:
            self._queue.put_nowait(_STOP)
        except queue.Full:
            # Worker exits on its next dequeue once inactive
            pass

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP or not self.active:
                    return
                try:
                    self.handler(item)
                except Exception as e:
                    logger.warning(f"Subscriber {self.id} failed on {item.event}, dropping it: {e}")
                    self.active = False
                    self._bus.unsubscribe(self)
                    return
            finally:
                self._queue.task_done()
            if not self.active:
                return


class NotificationBus:
    """
    Publish/subscribe fan-out.

    Delivery is at-most-once with no persistence: a subscriber that is not
    registered when an event is published never sees it. ``publish`` never
    waits on subscribers.

    Events for one order carry ``ordering_key`` (the order) and ``sequence``
    (its version). An event older than the last one published for the same
    key is discarded, so subscribers never observe a status going backwards.
    """

    def __init__(self, queue_size: int = 1000, max_tracked_keys: int = 10000):
        self.queue_size = queue_size
        self.max_tracked_keys = max_tracked_keys
        self._subscriptions: List[Subscription] = []
        self._last_sequence: "OrderedDict[str, int]" = OrderedDict()
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self, event_name: str, handler: Handler) -> Subscription:
        """Register ``handler`` for ``event_name`` (or ``"*"`` for all events)."""
        with self._lock:
            if self._closed:
                raise RuntimeError("NotificationBus is closed")
            sub = Subscription(self, event_name, handler, self.queue_size)
            self._subscriptions.append(sub)
        logger.debug(f"Subscriber {sub.id} registered for {event_name}")
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
        subscription.stop()

    def publish(
        self,
        event_name: str,
        payload: Dict[str, Any],
        ordering_key: Optional[str] = None,
        sequence: Optional[int] = None,
    ) -> int:
        """Queue an event for every matching subscriber.

        Returns the number of subscribers the event was queued for. Never
        raises on delivery problems.
        """
        message = Message(event=event_name, data=payload)
        with self._lock:
            if self._closed:
                return 0
            if ordering_key is not None and sequence is not None:
                last = self._last_sequence.get(ordering_key)
                if last is not None and sequence < last:
                    logger.info(
                        f"Skipping stale {event_name} for {ordering_key}: "
                        f"sequence {sequence} < {last}"
                    )
                    return 0
                self._last_sequence[ordering_key] = sequence
                self._last_sequence.move_to_end(ordering_key)
                while len(self._last_sequence) > self.max_tracked_keys:
                    self._last_sequence.popitem(last=False)
            targets = [s for s in self._subscriptions if s.matches(event_name)]
            # Enqueue under the lock so per-key order is the queue order
            delivered = sum(1 for s in targets if s.offer(message))
        return delivered

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every queued event has been handled. Mainly for tests."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                subs = list(self._subscriptions)
            if all(s.pending == 0 for s in subs):
                return True
            time.sleep(0.01)
        return False

    def close(self, timeout: float = 2.0) -> None:
        """Stop every delivery thread. Pending events are discarded."""
        with self._lock:
            self._closed = True
            subs = list(self._subscriptions)
            self._subscriptions.clear()
        for sub in subs:
            sub.stop()
        for sub in subs:
            sub.join(timeout)
        logger.info(f"NotificationBus closed ({len(subs)} subscribers)")
