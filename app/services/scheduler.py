"""Ticker with an explicit cancellation token for periodic background work."""

from __future__ import annotations

import threading
from typing import Any, Callable

from app.utils.logger import get_logger


logger = get_logger(__name__)


class PeriodicTask:
    """Runs ``action`` immediately and then every ``interval_seconds`` until stopped.

    ``run_once`` executes a single tick synchronously so callers and tests
    can drive the task without waiting on the wall clock.
    """

    def __init__(self, name: str, interval_seconds: float, action: Callable[[], Any]) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self.name = name
        self.interval_seconds = interval_seconds
        self.action = action
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Any:
        try:
            return self.action()
        except Exception:
            # A failed tick must not kill the ticker; the next tick retries.
            logger.exception("Periodic task %s failed", self.name)
            return None

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            if self._stop.wait(self.interval_seconds):
                break

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Started %s every %.0fs", self.name, self.interval_seconds)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Stopped %s", self.name)
