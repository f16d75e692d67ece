"""Injectable time sources and timer scheduling.

The engine never calls ``time`` or creates timers on its own. It asks a
:class:`Clock` for timestamps and a :class:`Scheduler` for repeating
callbacks, so production runs on the system clock and Qt timers while
tests drive a virtual clock deterministically.

Usage:
    clock = ManualClock()
    scheduler = ManualScheduler(clock)
    handle = scheduler.call_repeating(0.1, on_tick)
    scheduler.advance(1.0)   # on_tick fires 10 times
    handle.cancel()
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def monotonic(self) -> float:
        """Seconds from an arbitrary origin; never jumps backwards."""
        ...

    def wall(self) -> float:
        """Seconds since the epoch."""
        ...


class SystemClock:
    """Real clock. Falls back to wall time when no monotonic source exists."""

    def __init__(self) -> None:
        source = getattr(time, "monotonic", None)
        if source is None:
            logger.warning("[clock] Monotonic clock unavailable; phase timing will follow wall-clock time")
            source = time.time
        self._monotonic: Callable[[], float] = source

    def monotonic(self) -> float:
        return self._monotonic()

    def wall(self) -> float:
        return time.time()


class ManualClock:
    """Virtual clock for tests. Monotonic and wall time advance together."""

    def __init__(self, start: float = 0.0, wall_offset: float = 1_700_000_000.0) -> None:
        self._now = float(start)
        self._wall_offset = float(wall_offset)

    def monotonic(self) -> float:
        return self._now

    def wall(self) -> float:
        return self._now + self._wall_offset

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += seconds

    def set(self, now: float) -> None:
        if now < self._now:
            raise ValueError("ManualClock cannot move backwards")
        self._now = float(now)


class TimerHandle(Protocol):
    @property
    def active(self) -> bool:
        ...

    def cancel(self) -> None:
        """Stop the timer. Safe to call more than once."""
        ...


class Scheduler(Protocol):
    def call_repeating(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        """Invoke *callback* every *interval_s* seconds until cancelled."""
        ...


class _ManualTimer:
    __slots__ = ("interval", "callback", "due", "seq", "_active")

    def __init__(self, interval: float, callback: Callable[[], None], due: float, seq: int) -> None:
        self.interval = interval
        self.callback = callback
        self.due = due
        self.seq = seq
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False


class ManualScheduler:
    """Deterministic scheduler bound to a :class:`ManualClock`.

    ``advance`` moves the clock to each due timer in order (ties fire in
    creation order) and runs it, so callbacks observe the exact virtual time
    they were scheduled for.
    """

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self._timers: list[_ManualTimer] = []
        self._seq = 0

    def call_repeating(self, interval_s: float, callback: Callable[[], None]) -> _ManualTimer:
        if interval_s <= 0:
            raise ValueError("interval must be positive")
        self._seq += 1
        timer = _ManualTimer(interval_s, callback, self.clock.monotonic() + interval_s, self._seq)
        self._timers.append(timer)
        return timer

    @property
    def active_timers(self) -> int:
        return sum(1 for t in self._timers if t.active)

    def advance(self, seconds: float) -> None:
        target = self.clock.monotonic() + seconds
        while True:
            due = [t for t in self._timers if t.active and t.due <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            if timer.due > self.clock.monotonic():
                self.clock.set(timer.due)
            timer.due += timer.interval
            timer.callback()
        if target > self.clock.monotonic():
            self.clock.set(target)
        self._timers = [t for t in self._timers if t.active]


class _QtTimerHandle:
    def __init__(self, timer) -> None:
        self._timer = timer

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    def cancel(self) -> None:
        if self._timer is None:
            return
        self._timer.stop()
        self._timer.deleteLater()
        self._timer = None


class QtScheduler:
    """Production scheduler backed by ``QTimer``.

    Requires a running Qt event loop (QCoreApplication is enough). Timers use
    ``PreciseTimer`` so the ~16 ms phase clock stays close to frame cadence.
    """

    def __init__(self, parent: Optional[object] = None) -> None:
        from PyQt6.QtCore import Qt, QTimer

        self._qtimer_cls = QTimer
        self._precise = Qt.TimerType.PreciseTimer
        self._parent = parent

    def call_repeating(self, interval_s: float, callback: Callable[[], None]) -> _QtTimerHandle:
        timer = self._qtimer_cls(self._parent)
        timer.setInterval(max(1, int(round(interval_s * 1000))))
        timer.setTimerType(self._precise)
        timer.timeout.connect(callback)
        timer.start()
        return _QtTimerHandle(timer)
