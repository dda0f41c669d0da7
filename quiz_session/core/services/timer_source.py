"""Clocks and repeating one-second timers.

A timer source is the only thing that moves quiz time forward. Every
implementation exposes ``schedule(interval_seconds, callback)`` and returns a
handle whose ``cancel()`` guarantees the callback is not invoked again.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Protocol

from PySide6.QtCore import QTimer

Clock = Callable[[], int]


def system_clock() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def is_active(self) -> bool: ...


class TimerSource(Protocol):
    def schedule(self, interval_seconds: int, callback: Callable[[], None]) -> TimerHandle: ...


class QtTimerHandle:
    def __init__(self, timer: QTimer) -> None:
        self._timer: QTimer | None = timer

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._timer.deleteLater()
        self._timer = None

    def is_active(self) -> bool:
        return self._timer is not None and self._timer.isActive()


class QtTimerSource:
    """Repeating timers driven by the Qt event loop of the calling thread."""

    def schedule(self, interval_seconds: int, callback: Callable[[], None]) -> QtTimerHandle:
        timer = QTimer()
        timer.setInterval(int(interval_seconds * 1000))
        timer.timeout.connect(callback)
        timer.start()
        return QtTimerHandle(timer)


class AsyncioTimerHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop, interval_seconds: float, callback: Callable[[], None]) -> None:
        self._loop = loop
        self._interval = interval_seconds
        self._callback = callback
        self._pending: asyncio.TimerHandle | None = loop.call_later(interval_seconds, self._fire)

    def _fire(self) -> None:
        # Re-arm first so a callback that cancels the handle wins.
        self._pending = self._loop.call_later(self._interval, self._fire)
        self._callback()

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def is_active(self) -> bool:
        return self._pending is not None


class AsyncioTimerSource:
    """Repeating timers on the running asyncio loop (used under uvicorn)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def schedule(self, interval_seconds: int, callback: Callable[[], None]) -> AsyncioTimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return AsyncioTimerHandle(loop, interval_seconds, callback)


class ManualClock:
    """Clock whose time only moves when told to."""

    def __init__(self, start_millis: int = 0) -> None:
        self.now_millis = start_millis

    def __call__(self) -> int:
        return self.now_millis

    def advance(self, millis: int) -> None:
        self.now_millis += millis


class ManualTimerHandle:
    def __init__(self, interval_seconds: int, callback: Callable[[], None]) -> None:
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.elapsed_seconds = 0
        self._active = True

    def cancel(self) -> None:
        self._active = False

    def is_active(self) -> bool:
        return self._active


class ManualTimerSource:
    """Deterministic timer source for headless runs and tests.

    ``advance(seconds)`` moves the attached clock one second at a time and
    fires every active timer whose interval has elapsed.
    """

    def __init__(self, clock: ManualClock | None = None) -> None:
        self.clock = clock or ManualClock()
        self._handles: list[ManualTimerHandle] = []

    def schedule(self, interval_seconds: int, callback: Callable[[], None]) -> ManualTimerHandle:
        handle = ManualTimerHandle(interval_seconds, callback)
        self._handles.append(handle)
        return handle

    def active_handles(self) -> list[ManualTimerHandle]:
        self._handles = [handle for handle in self._handles if handle.is_active()]
        return list(self._handles)

    def advance(self, seconds: int = 1) -> None:
        for _ in range(seconds):
            self.clock.advance(1000)
            for handle in self.active_handles():
                if not handle.is_active():
                    continue
                handle.elapsed_seconds += 1
                if handle.elapsed_seconds >= handle.interval_seconds:
                    handle.elapsed_seconds = 0
                    handle.callback()
