"""
Frame Clock
===========
Turns the host's per-frame timestamps (milliseconds, variable rate) into
delta times for the phase state machine.

- The first tick after start/reset only anchors the clock (delta 0).
- Duplicate timestamps give delta 0; large gaps are passed through unclamped.
- `resume(t)` re-anchors at the resume time so paused time is never counted.
"""

import math
import time
from typing import Callable, Optional


ClockFn = Callable[[], float]


class HostClockError(RuntimeError):
    """The host clock produced an unusable timestamp or failed outright."""


def perf_counter_ms() -> float:
    """Default host clock: monotonic milliseconds."""
    return time.perf_counter() * 1000.0


def _check_timestamp(timestamp) -> float:
    if isinstance(timestamp, bool):
        raise HostClockError(f"Invalid frame timestamp: {timestamp!r}")
    try:
        value = float(timestamp)
    except (TypeError, ValueError) as e:
        raise HostClockError(f"Invalid frame timestamp: {timestamp!r}") from e
    if not math.isfinite(value):
        raise HostClockError(f"Non-finite frame timestamp: {timestamp!r}")
    return value


class FrameClock:
    """Delta-time accumulator fed by per-frame timestamps."""

    def __init__(self):
        self.last_timestamp: Optional[float] = None
        self.session_start: Optional[float] = None
        self.frame_count = 0

    def reset(self):
        """Forget all anchors; the next tick re-initializes the session start."""
        self.last_timestamp = None
        self.session_start = None
        self.frame_count = 0

    @property
    def started(self) -> bool:
        return self.session_start is not None

    def tick(self, timestamp: float) -> float:
        """
        Register one frame.

        Returns:
            Milliseconds since the previous frame (0.0 on the anchoring frame)

        Raises:
            HostClockError: If the timestamp is not a finite number
        """
        now = _check_timestamp(timestamp)
        self.frame_count += 1

        if self.last_timestamp is None:
            self.last_timestamp = now
            if self.session_start is None:
                self.session_start = now
            return 0.0

        delta = now - self.last_timestamp
        self.last_timestamp = now
        # Out-of-order frames never move time backwards
        return max(delta, 0.0)

    def resume(self, timestamp: float):
        """Re-anchor after a pause; the next delta is measured from `timestamp`."""
        value = _check_timestamp(timestamp)
        if self.session_start is None:
            # paused before the first frame: let the next tick anchor normally
            return
        self.last_timestamp = value

    def session_time(self, timestamp: float) -> float:
        """Milliseconds since the session start (0.0 before the first tick)."""
        if self.session_start is None:
            return 0.0
        return _check_timestamp(timestamp) - self.session_start
