"""
moodify.engine.locks — Per-Key Lock Registry
=============================================

Serialises work on the same claim key ``(user_id, source, day)`` inside one
process.  Different keys never wait on each other.  Entries are reference
counted and dropped as soon as no thread holds or waits on them, so the
registry stays as small as the number of in-flight claims.

The database unique constraint remains the guard across processes; this
lock only keeps two threads of the same process from racing into it.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class KeyedLock:
    """A dictionary of locks, created on demand and freed when idle."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Block until *key* is free, then hold it for the ``with`` body."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.refs -= 1
                if entry.refs == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


# Module-level singleton, one per process
claim_locks = KeyedLock()
