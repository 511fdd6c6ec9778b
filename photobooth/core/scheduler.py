"""Control lane and cancellable scheduled calls.

The control lane is a single thread that owns the session state: every
transition, timer tick and oracle result is marshalled onto it, so the
session state has exactly one writer and needs no locks.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, Optional

from .constants import COUNTDOWN_INTERVAL_S, COUNTDOWN_TICKS

logger = logging.getLogger(__name__)


class ScheduledCall:
    """Handle for a callback queued on a lane. Cancelling is idempotent."""

    __slots__ = ("due", "callback", "args", "_cancelled")

    def __init__(self, due: float, callback: Callable, args: tuple):
        self.due = due
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def run(self) -> None:
        if not self._cancelled:
            self.callback(*self.args)


class ControlLane:
    """Single worker thread executing posted and delayed callbacks in order."""

    def __init__(self, name: str = "control-lane", clock: Callable[[], float] = time.monotonic):
        self.name = name
        self._clock = clock
        self._queue: list = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def start(self) -> None:
        with self._cond:
            if self._running:
                return
            self._running = True
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug("Control lane '%s' started", self.name)

    def stop(self, timeout: float = 2.0) -> None:
        with self._cond:
            if not self._running:
                return
            self._running = False
            self._cond.notify_all()
        if self._thread and self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=timeout)
        self._thread = None
        logger.debug("Control lane '%s' stopped", self.name)

    def is_running(self) -> bool:
        return self._running

    def in_lane(self) -> bool:
        return threading.current_thread() is self._thread

    def post(self, callback: Callable, *args) -> ScheduledCall:
        return self.call_later(0.0, callback, *args)

    def call_later(self, delay: float, callback: Callable, *args) -> ScheduledCall:
        call = ScheduledCall(self._clock() + max(0.0, delay), callback, args)
        with self._cond:
            heapq.heappush(self._queue, (call.due, next(self._seq), call))
            self._cond.notify()
        return call

    def _run(self) -> None:
        while True:
            with self._cond:
                while self._running:
                    if self._queue:
                        wait = self._queue[0][0] - self._clock()
                        if wait <= 0:
                            break
                        self._cond.wait(timeout=wait)
                    else:
                        self._cond.wait()
                if not self._running:
                    return
                _, _, call = heapq.heappop(self._queue)

            try:
                call.run()
            except Exception as e:
                logger.exception(f"Error in control lane callback: {e}")


class CountdownTimer:
    """Repeating one-second countdown scheduled on a lane.

    ``on_tick`` receives the remaining count after each interval. The timer
    invalidates itself before delivering the final tick (0), so the final
    callback runs exactly once and a late ``cancel()`` is harmless.
    """

    def __init__(self, lane, ticks: int = COUNTDOWN_TICKS, interval: float = COUNTDOWN_INTERVAL_S):
        self._lane = lane
        self.ticks = ticks
        self.interval = interval
        self._remaining = 0
        self._pending: Optional[ScheduledCall] = None
        self._on_tick: Optional[Callable[[int], None]] = None

    @property
    def active(self) -> bool:
        return self._pending is not None

    @property
    def remaining(self) -> int:
        return self._remaining

    def start(self, on_tick: Callable[[int], None]) -> None:
        self.cancel()
        self._on_tick = on_tick
        self._remaining = self.ticks
        self._pending = self._lane.call_later(self.interval, self._tick)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _tick(self) -> None:
        self._remaining -= 1
        callback = self._on_tick
        if self._remaining <= 0:
            self._remaining = 0
            self.cancel()
            self._on_tick = None
        else:
            self._pending = self._lane.call_later(self.interval, self._tick)
        if callback is not None:
            callback(self._remaining)
