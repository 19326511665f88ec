"""Cancellable timers used to debounce filter input and throttle filter clicks."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional, Protocol

FILTER_DEBOUNCE_SECONDS = 0.5
FILTER_CLICK_INTERVAL_SECONDS = 2.0


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Clock(Protocol):
    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class LoopClock:
    """Clock backed by the running asyncio event loop."""

    def now(self) -> float:
        return asyncio.get_running_loop().time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)


class FilterPhase(str, Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    FETCHING = "fetching"


class Debouncer:
    """Runs ``callback`` once ``delay`` seconds after the most recent trigger."""

    def __init__(self, clock: Clock, delay: float, callback: Callable[[], None]) -> None:
        self.clock = clock
        self.delay = delay
        self._callback = callback
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        self._handle = self.clock.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class ClickThrottle:
    """Accepts a click only if ``interval`` seconds passed since the last accepted one."""

    def __init__(self, clock: Clock, interval: float) -> None:
        self.clock = clock
        self.interval = interval
        self._last_accepted: Optional[float] = None

    def accept(self) -> bool:
        now = self.clock.now()
        if self._last_accepted is not None and now - self._last_accepted < self.interval:
            return False
        self._last_accepted = now
        return True
