"""Process-local TTL cache for client views.

Keys are namespaced by view:
- ``db_view:*``    relational-store views, invalidated right after each write
- ``sheet_view:*`` spreadsheet views, invalidated after a successful mirror
  write plus a short settling delay

The cache is per process. Replicated deployments need an external cache.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DB_VIEW_PREFIX = "db_view:"
SHEET_VIEW_PREFIX = "sheet_view:"


@dataclass
class CacheEntry:
    key: str
    payload: Any
    stored_at: float


class TTLCache:
    """Key/value cache with a fixed time-to-live and substring invalidation.

    Payloads are deep-copied on write and on read so callers never share
    mutable state with the cache.
    """

    def __init__(self, ttl_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._pending: set[Any] = set()

    def get(self, key: str) -> Any | None:
        """Return the payload for ``key`` if it is younger than the TTL."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at < self.ttl_seconds:
                return copy.deepcopy(entry.payload)
            # Expired; drop it so the key set stays small
            del self._entries[key]
            return None

    def set(self, key: str, payload: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                payload=copy.deepcopy(payload),
                stored_at=self._clock(),
            )

    def invalidate(self, pattern: str | None = None) -> int:
        """Remove entries whose key contains ``pattern`` (all entries when None).

        Returns the number of removed entries.
        """
        with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                keys = [key for key in self._entries if pattern in key]
                for key in keys:
                    del self._entries[key]
                removed = len(keys)
        if removed:
            logger.debug("Cache invalidated pattern=%s removed=%s", pattern, removed)
        return removed

    def invalidate_later(self, pattern: str | None, delay: float) -> None:
        """Schedule ``invalidate(pattern)`` after ``delay`` seconds.

        Runs on the current event loop when there is one, otherwise on a
        timer thread.
        """
        if delay <= 0:
            self.invalidate(pattern)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            handle: Any = None

            def _fire() -> None:
                self._pending.discard(handle)
                self.invalidate(pattern)

            handle = loop.call_later(delay, _fire)
            self._pending.add(handle)
            return

        timer: threading.Timer

        def _fire_thread() -> None:
            self._pending.discard(timer)
            self.invalidate(pattern)

        timer = threading.Timer(delay, _fire_thread)
        timer.daemon = True
        self._pending.add(timer)
        timer.start()

    @property
    def pending_invalidations(self) -> int:
        return len(self._pending)

    def cancel_pending(self) -> None:
        """Cancel scheduled invalidations (used on shutdown)."""
        for handle in list(self._pending):
            handle.cancel()
        self._pending.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
