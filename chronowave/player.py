"""Module 4 - Audio primitive: the browser's <audio> element, driven over a WebSocket.

The engine only ever talks to an AudioOutput. BrowserAudio implements it by
emitting commands for the page to apply and mirroring what the page reports
back (duration metadata, position, paused flag, play rejections).
"""
import logging
import time
from typing import Callable, Optional

from .clock import duration_known

logger = logging.getLogger(__name__)


class AudioOutput:
    """What the engine needs from a playback device. Looping is always on."""

    loop = True

    source: str = ""
    volume: float = 1.0
    last_error: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        raise NotImplementedError

    @property
    def position(self) -> float:
        raise NotImplementedError

    @property
    def paused(self) -> bool:
        raise NotImplementedError

    def load(self, ref: str):
        raise NotImplementedError

    def seek(self, position: float):
        raise NotImplementedError

    async def play(self):
        """Start playback. Raises PlaybackRejected when the device refuses."""
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def set_volume(self, level: float):
        raise NotImplementedError

    def errored(self, detail: str):
        self.last_error = detail


class BrowserAudio(AudioOutput):
    def __init__(self, send: Callable[[dict], None]):
        """send: pushes one command dict to the session's WebSocket writer."""
        self._send = send
        self.source: str = ""
        self.volume: float = 1.0
        self._duration: Optional[float] = None
        self._paused: bool = True
        self._position: float = 0.0
        self._reported_at: float = time.monotonic()
        self.last_error: Optional[str] = None

    # ── Commands ───────────────────────────────────────────────────────────────

    def load(self, ref: str):
        """Point the element at a new source. Duration is unknown until the page reports it."""
        self.source = ref
        self._duration = None
        self._paused = True
        self._mark(0.0)
        self.last_error = None
        self._send({"op": "load", "src": ref, "loop": self.loop})

    def seek(self, position: float):
        self._mark(position)
        self._send({"op": "seek", "position": round(position, 3)})

    async def play(self):
        # The page answers with play_rejected if the autoplay policy blocks it
        self._mark(self.position)
        self._paused = False
        self._send({"op": "play"})

    def pause(self):
        if self._paused:
            return
        self._mark(self.position)
        self._paused = True
        self._send({"op": "pause"})

    def set_volume(self, level: float):
        if level == self.volume:
            return
        self.volume = level
        self._send({"op": "volume", "level": level})

    # ── Reports from the page ─────────────────────────────────────────────────

    def metadata_loaded(self, duration, src: Optional[str] = None) -> bool:
        """loadedmetadata fired. Returns False for a stale report about an old source."""
        if src and src != self.source:
            return False
        self._duration = _as_float(duration)
        return True

    def status(self, position, paused: bool, src: Optional[str] = None):
        """Periodic timeupdate report."""
        if src and src != self.source:
            return
        pos = _as_float(position)
        if pos is not None:
            self._mark(pos)
        self._paused = bool(paused)

    def rejected(self):
        self._mark(self.position)
        self._paused = True

    def errored(self, detail: str):
        self.last_error = detail
        self._paused = True

    # ── State ─────────────────────────────────────────────────────────────────

    def _mark(self, position: float):
        self._position = position
        self._reported_at = time.monotonic()

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def position(self) -> float:
        """Last known position, extrapolated while playing, wrapped at the loop point."""
        if self._paused:
            return self._position
        pos = self._position + (time.monotonic() - self._reported_at)
        if duration_known(self._duration):
            pos %= self._duration
        return pos


def _as_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
