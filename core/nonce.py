"""
Nonce Sequencer

Exchanges reject a signed request whose nonce is not larger than the last one
they accepted for the same API key. A Nonce instance hands out strictly
increasing integers for one credential.

Seeding:
    The first value comes from the wall clock (nanoseconds by default), so a
    restarted process keeps producing values above the ones a previous run
    already consumed. After that the counter is incremented by one per call.

    Exchanges that interpret the nonce as a timestamp (Binance, Gemini) use
    track_clock=True: each value is max(previous + 1, clock()), which stays
    strictly increasing while following the wall clock.

Concurrency:
    next() is serialized by a short per-instance lock. Instances for
    different credentials never contend with each other. The lock is a
    threading.Lock and is never held across an await.
"""

import threading
import time
from typing import Callable


class Nonce:
    """
    Strictly increasing integer generator for one credential.

    Args:
        clock: Returns the seed value (default: time.time_ns)
        track_clock: Follow the wall clock instead of plain incrementing

    Example:
        >>> nonce = Nonce()
        >>> first = nonce.next()
        >>> nonce.next() == first + 1
        True
    """

    def __init__(self, clock: Callable[[], int] = time.time_ns, track_clock: bool = False):
        self._clock = clock
        self._track_clock = track_clock
        self._value = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return the next nonce value. Never fails; may block briefly."""
        with self._lock:
            if self._value == 0:
                self._value = int(self._clock())
            elif self._track_clock:
                self._value = max(self._value + 1, int(self._clock()))
            else:
                self._value += 1
            return self._value

    def get(self) -> int:
        """Last value handed out (0 if next() was never called)."""
        with self._lock:
            return self._value

    def set(self, value: int) -> None:
        """
        Move the counter to value.

        Used when an exchange reports the nonce it expects. The counter never
        moves backwards; a smaller value is ignored.
        """
        with self._lock:
            if value > self._value:
                self._value = int(value)

    def __str__(self) -> str:
        return str(self.get())

    def __repr__(self) -> str:
        return f"<Nonce(value={self.get()}, track_clock={self._track_clock})>"
