from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Protocol

from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class CooldownCache(Protocol):
    """Last-alert timestamps keyed by user id.

    Advisory only: two concurrent dispatches for one user may both pass the
    check. A multi-process deployment should back this with a shared TTL store.
    """

    def get(self, key: int) -> Optional[datetime]: ...

    def set(self, key: int, timestamp: datetime) -> None: ...

    def sweep(self, max_age: timedelta) -> int: ...


class InMemoryCooldownCache:
    """Process-local cooldown cache. Reset on restart."""

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._entries: Dict[int, datetime] = {}
        # The sweep runs on the scheduler thread, dispatch on the event loop
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: int) -> Optional[datetime]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: int, timestamp: datetime) -> None:
        with self._lock:
            self._entries[key] = timestamp

    def sweep(self, max_age: timedelta) -> int:
        cutoff = self._clock() - max_age
        with self._lock:
            stale = [k for k, ts in self._entries.items() if ts < cutoff]
            for k in stale:
                del self._entries[k]
        if stale:
            logger.info("[alerts] Cooldown sweep removed %d entries", len(stale))
        return len(stale)
