"""
Tick Scheduler
==============

Abstraction over "call me back periodically with a timestamp".

The capture loop never sleeps itself; it registers a callback and is
driven by whatever scheduler it is handed. Production uses the asyncio
event loop, tests drive ticks by hand.

Design Rules:
    - Timestamps are monotonic milliseconds
    - stop() cancels the pending callback synchronously
    - stop() is idempotent
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol


logger = logging.getLogger(__name__)


TickCallback = Callable[[float], None]


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class TickScheduler(Protocol):
    """Drives a callback with monotonic millisecond timestamps."""

    def on_tick(self, callback: TickCallback) -> None: ...

    def start(self, tick_interval_hint_ms: float) -> None: ...

    def stop(self) -> None: ...


class AsyncioTickScheduler:
    """
    TickScheduler backed by `loop.call_later`.

    Each tick re-arms the next one after the callback returns, so a slow
    callback delays the following tick rather than piling ticks up.

    Example:
        scheduler = AsyncioTickScheduler()
        scheduler.on_tick(lambda now_ms: print(now_ms))
        scheduler.start(1000 / 60)
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        self._loop = loop
        self._clock = clock
        self._callback: Optional[TickCallback] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._interval_sec: float = 0.0
        self._running: bool = False

    @property
    def running(self) -> bool:
        return self._running

    def on_tick(self, callback: TickCallback) -> None:
        self._callback = callback

    def start(self, tick_interval_hint_ms: float) -> None:
        if self._running:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._interval_sec = max(tick_interval_hint_ms, 1.0) / 1000.0
        self._running = True
        self._handle = self._loop.call_later(self._interval_sec, self._fire)

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if not self._running:
            return
        try:
            if self._callback is not None:
                self._callback(self._clock())
        except Exception:
            logger.exception("Tick callback raised")
        # The callback may have stopped us
        if self._running:
            self._handle = self._loop.call_later(self._interval_sec, self._fire)
