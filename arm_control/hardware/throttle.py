"""Rate limiting for slider-driven commands.

``GripperThrottle``
    At most one gripper command per interval.  A change inside the
    interval only marks the channel *pending*; the next ``tick()``
    after the interval flushes one send carrying the value read fresh
    from the provider, so the latest state always wins and no queue of
    stale intermediate values ever reaches the controller.

``JointRateGate``
    Slider drags on the joints are simply dropped inside the interval
    (the drag keeps producing events, and the final value goes out
    through an explicit send when the drag settles).

Both take an injectable monotonic clock.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GripperThrottle:
    """Last-value-wins throttle for one command channel.

    Parameters
    ----------
    send : callable
        Issues one command (fire-and-forget) with the given value.
    read_value : callable
        Returns the *current* value at flush time.
    interval : float
        Minimum spacing between sends, in seconds.
    clock : callable
        Monotonic time source (seconds).
    """

    def __init__(
        self,
        send: Callable[[T], object],
        read_value: Callable[[], T],
        interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._send = send
        self._read_value = read_value
        self.interval = interval
        self._clock = clock

        self._lock = threading.Lock()
        self._last_send: float | None = None
        self._pending = False
        self.sent_count = 0

    @property
    def pending(self) -> bool:
        return self._pending

    def _due(self, now: float) -> bool:
        return self._last_send is None or now - self._last_send >= self.interval

    def submit(self) -> bool:
        """Note that the value changed.  Returns ``True`` if it was sent now."""
        with self._lock:
            now = self._clock()
            if not self._due(now):
                self._pending = True
                return False
            self._mark_sent(now)
        self._emit()
        return True

    def tick(self) -> bool:
        """Flush a pending change once the interval has elapsed.

        Called from the host's periodic loop.  Returns ``True`` if a
        command was sent.
        """
        with self._lock:
            if not self._pending:
                return False
            now = self._clock()
            if not self._due(now):
                return False
            self._mark_sent(now)
        self._emit()
        return True

    def cancel(self) -> None:
        """Forget a pending change (teaching / homing took over)."""
        with self._lock:
            self._pending = False

    def _mark_sent(self, now: float) -> None:
        self._last_send = now
        self._pending = False
        self.sent_count += 1

    def _emit(self) -> None:
        value = self._read_value()
        logger.debug("Throttled send: %s", value)
        self._send(value)


class JointRateGate:
    """Drop-style gate: ``allow()`` is ``True`` at most once per interval."""

    def __init__(
        self,
        interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = interval
        self._clock = clock
        self._last: float | None = None
        self._lock = threading.Lock()

    def allow(self) -> bool:
        with self._lock:
            now = self._clock()
            if self._last is not None and now - self._last < self.interval:
                return False
            self._last = now
            return True
