"""Best-effort broadcast of title availability changes.

Publishing never blocks and never fails the caller: every subscription has
its own bounded buffer and the oldest event is dropped when it overflows.
"""
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from libris.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityEvent:
    title_id: str
    title: str
    is_available: bool
    published_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "book_id": self.title_id,
            "title": self.title,
            "is_available": self.is_available,
            "published_at": self.published_at.isoformat(),
        }


class Subscription:
    def __init__(self, notifier: "AvailabilityNotifier", buffer_size: int) -> None:
        self._notifier = notifier
        self._events: "queue.Queue[AvailabilityEvent]" = queue.Queue(maxsize=buffer_size)
        self.dropped = 0

    def _offer(self, event: AvailabilityEvent) -> None:
        while True:
            try:
                self._events.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._events.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> Optional[AvailabilityEvent]:
        """Wait for the next event; None if nothing arrived within ``timeout``."""
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[AvailabilityEvent]:
        """Return every buffered event without waiting."""
        events = []
        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        self._notifier.unsubscribe(self)


class AvailabilityNotifier:
    def __init__(self, buffer_size: Optional[int] = None) -> None:
        self.buffer_size = buffer_size or settings.notifier_buffer_size
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.buffer_size)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, title_id: str, title: str, is_available: bool) -> None:
        event = AvailabilityEvent(title_id=title_id, title=title, is_available=is_available)
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription._offer(event)
        logger.debug("Published availability of '%s': %s to %d subscriber(s)",
                     title, is_available, len(subscriptions))
