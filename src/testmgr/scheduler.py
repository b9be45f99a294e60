# src/testmgr/scheduler.py

"""
Debounced callback scheduling on the asyncio event loop.

Used by the catalog (batched change notifications) and the watch engine
(batched file-change handling).
"""

import asyncio
from collections.abc import Callable

import structlog

from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("scheduler")


class DebouncedNotifier:
    """
    Runs ``callback`` once, ``interval`` seconds after the most recent trigger.

    Every ``trigger()`` inside the window re-arms the timer, so a burst of
    triggers produces a single call. ``flush()`` fires a pending call now.

    When no event loop is running (plain synchronous use) there is nothing to
    batch against and ``trigger()`` calls the callback straight away.
    """

    def __init__(self, interval: float, callback: Callable[[], None], name: str = "debounce"):
        if interval < 0:
            raise ValueError(f"Debounce interval must not be negative, got {interval}")
        self.interval = interval
        self._callback = callback
        self._name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        """True while a call is scheduled but has not fired yet."""
        return self._handle is not None

    def trigger(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._fire()
            return

        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.interval, self._fire)

    def flush(self) -> None:
        """Fires immediately if a call is pending; no-op otherwise."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        """Drops a pending call without firing it."""
        if self._handle is not None:
            log.debug("Debounced call cancelled", notifier=self._name)
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        try:
            self._callback()
        except Exception:
            log.exception("Debounced callback raised", notifier=self._name)


# 🔼⚙️
