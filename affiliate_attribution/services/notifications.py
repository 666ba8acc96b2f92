"""
Identifier Change Notifications.

WHAT:
    Broadcasts the new attribution identifier to every subscriber whenever
    AttributionStore performs a real (non-idempotent) write.

WHY:
    Purchase and event tracking code in the host needs to know the moment
    attribution changes. Older integrations registered a single callback,
    newer ones subscribe like an event; both are served from one list where
    the single-slot callback is always index 0.

USAGE:
    notifier = IdentifierChangeNotifier()
    unsubscribe = notifier.subscribe(lambda identifier: print(identifier))
    notifier.set_primary(legacy_callback)
    notifier.notify("PROMO99-A1B2C3")
    unsubscribe()
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

IdentifierListener = Callable[[str], None]


class IdentifierChangeNotifier:
    """Multi-subscriber broadcast with one replaceable primary slot."""

    def __init__(self):
        self._primary: Optional[IdentifierListener] = None
        self._subscribers: List[IdentifierListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: IdentifierListener) -> Callable[[], None]:
        """Add a listener. Returns a function that removes it again."""
        with self._lock:
            self._subscribers.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: IdentifierListener) -> None:
        with self._lock:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

    def set_primary(self, listener: Optional[IdentifierListener]) -> None:
        """Replace (or clear with None) the single-slot callback."""
        with self._lock:
            self._primary = listener

    def listeners(self) -> List[IdentifierListener]:
        """Snapshot in delivery order: primary first, then subscribers."""
        with self._lock:
            head = [self._primary] if self._primary is not None else []
            return head + list(self._subscribers)

    def notify(self, identifier: str) -> int:
        """Deliver identifier synchronously to every listener.

        A listener that raises is logged and skipped; the rest still run.

        Returns:
            Number of listeners that completed without raising
        """
        delivered = 0
        for listener in self.listeners():
            try:
                listener(identifier)
                delivered += 1
            except Exception as e:
                logger.exception(f"[NOTIFY] Identifier listener {listener!r} failed: {e}")
        return delivered
