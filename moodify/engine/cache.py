"""
moodify.engine.cache — In-Memory Ledger Snapshot Cache
=======================================================

The remote database is the single source of truth for XP.  This cache only
spares repeat reads of it:

    * ``get_ledger`` consults the cache first and fills it on a miss.
    * An award **invalidates** the user's entry once its transaction has
      committed; the next read reloads the total from the database.
    * A fill started before an invalidation is discarded, so a slow read can
      never re-cache a total that an award has already superseded.
    * Entries expire after ``ttl_seconds`` so awards written by other
      processes (other API workers, the app talking to the database
      directly) become visible.

Thread-safe; one instance is shared by the API process.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from moodify.constants import LEDGER_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """Point-in-time copy of one user's XP ledger."""

    current_xp: int = 0
    streak: int = 0
    last_updated: datetime | None = None

    def to_dict(self) -> dict:
        return {"current_xp": self.current_xp, "streak": self.streak}


class LedgerCache:
    """Dictionary of ``user_id → (LedgerSnapshot, stored_at)`` guarded by a lock.

    ``generation`` increases on every invalidation.  Readers note it before
    going to the database and hand it back to :meth:`put`; a stale
    generation means the read may predate an award and the fill is skipped.
    """

    def __init__(
        self,
        max_entries: int = 10_000,
        ttl_seconds: float = LEDGER_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[LedgerSnapshot, float]] = {}
        self._lock = threading.Lock()
        self._generation = 0
        self.hits = 0
        self.misses = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, user_id: str) -> LedgerSnapshot | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is not None and self._clock() - entry[1] >= self.ttl_seconds:
                del self._entries[user_id]
                entry = None
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
            return entry[0]

    def put(
        self,
        user_id: str,
        snapshot: LedgerSnapshot,
        *,
        generation: int | None = None,
    ) -> bool:
        """Store *snapshot*.  Returns False if *generation* is out of date."""
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug("Dropped stale ledger fill for %s", user_id)
                return False
            if user_id not in self._entries and len(self._entries) >= self.max_entries:
                # Evict the oldest insertion (dicts keep insertion order)
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[user_id] = (snapshot, self._clock())
            return True

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)
            self._generation += 1
        logger.debug("Ledger cache invalidated for %s", user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
