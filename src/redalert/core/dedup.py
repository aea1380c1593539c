"""Bounded memory of already-dispatched alerts.

Lives for the lifetime of one poller; a restart forgets everything, so an
alert seen just before shutdown can be delivered again afterwards.
"""

from collections import OrderedDict

from ..config import FEED
from .alerts import Alert


class AlertDeduplicator:
    """Insertion-ordered set of alert keys with FIFO eviction."""

    def __init__(self, capacity: int = FEED.dedup_capacity) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def should_dispatch(self, alert: Alert | str) -> bool:
        """True the first time a key is seen; records it and evicts the oldest past capacity."""
        key = alert if isinstance(alert, str) else alert.key
        if key in self._seen:
            return False
        self._seen[key] = None
        while len(self._seen) > self.capacity:
            self._seen.popitem(last=False)
        return True

    def clear(self) -> None:
        self._seen.clear()
