"""Time-windowed seen-set for paste keys (core domain)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

from pastescope.core.config import DEFAULT_RETENTION

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SeenCache:
    """Remember paste keys for a limited time.

    The cache is owned by a single polling loop and is not thread-safe. Expiry
    only happens when ``evict_expired``/``evict_older_than`` is called, so an
    entry can outlive ``retention`` by up to one poll interval.
    """

    def __init__(
        self,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._retention = retention
        self._clock = clock
        self._entries: Dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def has(self, key: str) -> bool:
        return key in self._entries

    def mark(self, key: str) -> None:
        """Record ``key`` as seen. Marking twice keeps the first timestamp."""

        self._entries.setdefault(key, self._clock())

    def evict_older_than(self, threshold: datetime) -> int:
        """Drop every entry marked before ``threshold`` and return the count."""

        expired = [key for key, first_seen in self._entries.items() if first_seen < threshold]
        for key in expired:
            LOGGER.debug("deleting expired entry %s", key)
            del self._entries[key]
        return len(expired)

    def evict_expired(self) -> int:
        return self.evict_older_than(self._clock() - self._retention)
