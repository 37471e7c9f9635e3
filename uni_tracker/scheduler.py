"""Periodic execution for the reminder checker."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CheckerHandle:
    """
    Owns one background thread that runs a cycle now and then every `interval_seconds`.

    Cancelling stops future ticks only; a cycle already running finishes.
    """

    def __init__(self, name: str, interval_seconds: float, cycle: Callable[[], None]):
        self.name = name
        self.interval_seconds = float(interval_seconds)
        self.cycle = cycle
        self.cycles_run = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> "CheckerHandle":
        if self._thread is not None:
            raise RuntimeError(f"Checker {self.name} already started")
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.cycle()
            except Exception as e:
                # Keep ticking; the next cycle may succeed
                logger.exception(f"Periodic cycle {self.name} failed: {e}")
            self.cycles_run += 1
            if self._stop.wait(self.interval_seconds):
                break
        logger.debug(f"Checker {self.name} stopped after {self.cycles_run} cycle(s)")

    def cancel(self) -> None:
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
