"""Short-TTL in-memory cache for read-mostly PMS reference data.

Design decisions
────────────────
• **Expiry checked at read time** (``now < expiry``).  There is no sweeper
  thread; an expired entry is a miss and gets overwritten by the next
  ``set``.
• **threading.Lock** around every dict operation so reads and writes are
  never torn, even when the adapter is shared by concurrent requests.
  Concurrent misses may both fetch and both ``set``; the writes are
  idempotent (same key, equivalent data).
• **One instance per capability and per adapter** (locations, operatories,
  providers).  Nothing is shared across adapters, so one tenant can never
  read another tenant's entries.
• Purely ephemeral: the cache dies with its adapter.

Usage in the CareStack adapter
──────────────────────────────
>>> cache = TTLCache()
>>> cache.set("all", [location1, location2])
>>> cache.get("all")
[location1, location2]
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

# Default time-to-live: 5 minutes
DEFAULT_TTL_MS = 300_000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    expiry: float


class TTLCache:
    """Time-bounded key/value cache with lazy expiry."""

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        *,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self._default_ttl_ms = default_ttl_ms
        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    # ── Core operations ──────────────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` when absent or expired."""
        with self._lock:
            entry = self._store.get(key)
        if entry is None or self._clock() >= entry.expiry:
            return None
        return entry.data

    def set(self, key: str, data: Any, ttl_ms: int | None = None) -> None:
        """Insert or overwrite *key* for *ttl_ms* (default TTL if omitted)."""
        ttl = self._default_ttl_ms if ttl_ms is None else ttl_ms
        entry = CacheEntry(data=data, expiry=self._clock() + ttl)
        with self._lock:
            self._store[key] = entry

