"""Per-key mutual exclusion for check-and-commit sequences."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager

from app.domain.errors import TransientStoreFailure
from app.utils.logger import get_logger


logger = get_logger(__name__)


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class KeyedLocks:
    """Hands out one lock per key, e.g. ``("venue", "Main Hall", date(2024, 6, 1))``.

    ``hold`` acquires several keys in a stable order so two callers asking
    for overlapping key sets cannot deadlock. Locks are reentrant for the
    holding thread. A key's entry lives only while some caller holds or
    waits for it.
    """

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        self._locks: dict[Hashable, _KeyLock] = {}
        self._guard = threading.Lock()

    def _checkout(self, key: Hashable) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, *keys: Hashable, timeout: float | None = None) -> Iterator[None]:
        wait = self.timeout_seconds if timeout is None else timeout
        acquired: list[tuple[Hashable, threading.RLock]] = []
        try:
            for key in sorted(set(keys), key=repr):
                lock = self._checkout(key)
                if not lock.acquire(timeout=wait):
                    self._checkin(key)
                    logger.warning("Timed out after %.1fs waiting for %r", wait, key)
                    raise TransientStoreFailure(
                        "The booking store is busy, please retry",
                        {"key": [str(part) for part in key] if isinstance(key, tuple) else str(key)},
                    )
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)
