"""Broadcast clock - where in its loop a station is "right now".

Every session derives the position from the same three inputs (epoch, the
track's offset seed, the track duration), so no session ever has to talk to
another one to land on the same spot of the loop.
"""
import math
import time
from typing import Optional


def now_ms() -> float:
    return time.time() * 1000


def duration_known(duration: Optional[float]) -> bool:
    """True once the audio primitive has reported a usable duration."""
    if duration is None:
        return False
    try:
        return math.isfinite(duration) and duration > 0
    except TypeError:
        return False


def drift(a: float, b: float, duration: Optional[float]) -> float:
    """Distance between two in-loop positions, measured around the loop."""
    d = abs(a - b)
    if duration_known(duration):
        d = d % duration
        d = min(d, duration - d)
    return d


class BroadcastClock:
    def __init__(self, epoch_ms: Optional[float] = None):
        """epoch_ms: wall-clock instant the station came on air (ms since Unix epoch)."""
        self.epoch_ms: float = now_ms() if epoch_ms is None else float(epoch_ms)

    def elapsed(self, now: Optional[float] = None) -> float:
        """Seconds on air since the epoch."""
        if now is None:
            now = now_ms()
        return (now - self.epoch_ms) / 1000

    def position(self, track, duration: Optional[float], now: Optional[float] = None) -> float:
        """Seconds into the loop for `track` at `now` (ms). 0.0 while duration is unknown."""
        if not duration_known(duration):
            return 0.0
        pointer = self.elapsed(now) + track.offset_seed
        pos = pointer % duration
        # float modulo of a tiny negative pointer can round up to duration itself
        if pos >= duration or pos < 0:
            return 0.0
        return pos
