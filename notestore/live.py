"""Observer registry behind the live note listing."""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned by ``NoteStore.observe_all``; cancel it to stop deliveries."""

    def __init__(self, registry: "ObserverRegistry", callback: Callable[[list], None]):
        self._registry = registry
        self.callback = callback
        self.active = True

    def cancel(self):
        if self.active:
            self.active = False
            self._registry.remove(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.cancel()


class ObserverRegistry:
    """Subscriptions interested in one table.

    ``lock`` is held by the store while it re-runs the query and publishes,
    so deliveries never interleave and the last one seen by an observer
    matches the last committed write. It is re-entrant so a callback may
    write to the store.
    """

    def __init__(self, table: str):
        self.table = table
        self.lock = threading.RLock()
        self._subscriptions: list[Subscription] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add(self, callback: Callable[[list], None]) -> Subscription:
        sub = Subscription(self, callback)
        with self.lock:
            self._subscriptions.append(sub)
        return sub

    def remove(self, sub: Subscription):
        with self.lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def clear(self):
        with self.lock:
            for sub in self._subscriptions:
                sub.active = False
            self._subscriptions.clear()

    def deliver(self, sub: Subscription, snapshot: list):
        if not sub.active:
            return
        try:
            sub.callback(list(snapshot))
        except Exception:
            logger.exception("Observer of %s failed; keeping it subscribed", self.table)

    def publish(self, snapshot: list):
        with self.lock:
            for sub in list(self._subscriptions):
                self.deliver(sub, snapshot)
