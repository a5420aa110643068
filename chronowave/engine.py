"""Core radio engine - one per listening session.

Owns the session's PlayerState (power / tuning / dial index / volume) and keeps
the audio primitive in step with the broadcast clock. Receives intents via
methods, reports state through the notify callback.
"""
import asyncio
import logging
import random
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable, Optional

from .catalog import BlobRegistry, RefScope, Track
from .clock import BroadcastClock, drift, duration_known
from .config import (
    DEFAULT_VOLUME,
    FREQ_BASE_MHZ,
    FREQ_STEP_MHZ,
    RESYNC_THRESHOLD_S,
    TUNING_DELAY_MS,
    VOLUME_FLOOR,
    VOLUME_STEP,
)
from .errors import PlaybackRejected, format_error
from .player import AudioOutput
from .tracks import TrackRegistry

logger = logging.getLogger(__name__)

Notify = Callable[[str, dict], Awaitable[None]]


@dataclass
class PlayerState:
    power: bool = False
    current_index: int = 0
    volume: float = DEFAULT_VOLUME
    tuning: bool = False
    playing: bool = False


def next_volume(volume: float) -> float:
    """One click of the volume knob: up a step, wrapping to the floor instead of zero."""
    if volume >= 1:
        return VOLUME_FLOOR
    return round(min(1.0, volume + VOLUME_STEP), 1)


def frequency_for(index: int) -> str:
    return f"{FREQ_BASE_MHZ + index * FREQ_STEP_MHZ:.1f}"


class RadioEngine:
    def __init__(
        self,
        registry: TrackRegistry,
        clock: BroadcastClock,
        audio: AudioOutput,
        blobs: BlobRegistry,
        rng: Optional[random.Random] = None,
        tuning_delay: float = TUNING_DELAY_MS / 1000,
        notify: Optional[Notify] = None,
    ):
        self.registry = registry
        self.clock = clock
        self.audio = audio
        self.blobs = blobs
        self.state = PlayerState()
        self.tracks: list[Track] = []
        self.tuning_delay = tuning_delay

        self._rng = rng or random.Random()
        self._notify = notify
        self._refs: Optional[RefScope] = None
        # All PlayerState mutations go through this lock
        self._lock = asyncio.Lock()
        self._pending_tunes = 0
        self._tune_tasks: set[asyncio.Task] = set()

    @property
    def current_track(self) -> Optional[Track]:
        if 0 <= self.state.current_index < len(self.tracks):
            return self.tracks[self.state.current_index]
        return None

    # ── Public API (called from WebSocket handlers) ──────────────────────────

    async def load_tracks(self):
        """Re-read the station list with fresh playback references for this session."""
        scope = self.blobs.scope()
        tracks = await self.registry.list_tracks(scope.mint)
        old, self._refs = self._refs, scope
        await self.set_tracks(tracks)
        if old:
            old.release()

    async def set_tracks(self, tracks: list[Track]):
        async with self._lock:
            self.tracks = list(tracks)
            self._clamp_index()
            await self._sync()
        await self._emit()

    async def power(self):
        async with self._lock:
            if not self.state.power:
                self.state.power = True
                if self.tracks:
                    self.state.current_index = self._rng.randrange(len(self.tracks))
                    self.state.playing = True
                else:
                    self.state.playing = False
            else:
                self.state.power = False
                self.state.playing = False
            logger.info("Power %s", "on" if self.state.power else "off")
            await self._sync()
        await self._emit()

    async def tune(self, delta: int) -> Optional[asyncio.Task]:
        """Start a channel change. Returns the pending settle task, None when off."""
        async with self._lock:
            if not self.state.power:
                return None
            self.state.tuning = True
            self._pending_tunes += 1
            await self._sync()
            task = asyncio.create_task(self._settle(delta))
            self._tune_tasks.add(task)
            task.add_done_callback(self._tune_tasks.discard)
        await self._emit()
        return task

    async def tune_up(self) -> Optional[asyncio.Task]:
        return await self.tune(1)

    async def tune_down(self) -> Optional[asyncio.Task]:
        return await self.tune(-1)

    async def cycle_volume(self):
        async with self._lock:
            self.state.volume = next_volume(self.state.volume)
            self.audio.set_volume(self.state.volume)
        await self._emit()

    async def media_ready(self):
        """Duration metadata just became available on the primitive."""
        async with self._lock:
            await self._sync()
        await self._emit()

    async def play_rejected(self, reason: str = ""):
        """The page refused to start audio. Logged only; the next power/tune retries."""
        self._report_rejection(PlaybackRejected(reason or "play() rejected"))

    async def media_error(self, detail: str):
        """The page could not decode or fetch the current source."""
        self.audio.errored(detail)
        track = self.current_track
        format_error("media", track.name if track else "", {"src": self.audio.source}, detail)
        await self._emit()

    async def close(self):
        """Session over: drop pending settles and this session's playback references."""
        for task in list(self._tune_tasks):
            task.cancel()
        if self._tune_tasks:
            await asyncio.gather(*self._tune_tasks, return_exceptions=True)
        if self._refs:
            self._refs.release()
            self._refs = None

    # ── Transitions ──────────────────────────────────────────────────────────

    async def _settle(self, delta: int):
        await asyncio.sleep(self.tuning_delay)
        async with self._lock:
            self._pending_tunes = max(0, self._pending_tunes - 1)
            n = len(self.tracks)
            if n:
                self.state.current_index = (self.state.current_index + delta + n) % n
            self.state.tuning = self._pending_tunes > 0
            await self._sync()
        await self._emit()

    def _clamp_index(self):
        if self.state.current_index >= len(self.tracks) or self.state.current_index < 0:
            self.state.current_index = 0

    async def _sync(self):
        """Bring the primitive in line with the state and the broadcast clock."""
        audio = self.audio
        audio.set_volume(self.state.volume)
        track = self.current_track
        if not (self.state.power and not self.state.tuning and track):
            audio.pause()
            return

        if audio.source != track.playback_ref:
            audio.load(track.playback_ref)

        duration = audio.duration
        position = self.clock.position(track, duration)
        if audio.paused:
            if duration_known(duration):
                audio.seek(position)
            try:
                await audio.play()
            except PlaybackRejected as e:
                self._report_rejection(e)
        elif duration_known(duration) and drift(audio.position, position, duration) > RESYNC_THRESHOLD_S:
            logger.debug("Resync %s: %.1fs -> %.1fs", track.name, audio.position, position)
            audio.seek(position)

    def _report_rejection(self, err: PlaybackRejected):
        track = self.current_track
        format_error("playback", track.name if track else "", raw=str(err))

    # ── Snapshot ─────────────────────────────────────────────────────────────

    async def _emit(self):
        if self._notify:
            await self._notify("state", self.get_state())

    def get_state(self) -> dict:
        track = self.current_track
        return {
            **asdict(self.state),
            "frequency": frequency_for(self.state.current_index),
            "display": self.display_text(),
            "track": track.to_public() if track else None,
            "media_error": self.audio.last_error,
        }

    def display_text(self) -> str:
        if not self.state.power:
            return "OFF AIR"
        if self.state.tuning:
            return "SEARCHING SIGNAL..."
        track = self.current_track
        if not track:
            return "NO SIGNAL DETECTED"
        return f"/// NOW PLAYING: {track.name} /// STEREO FM /// "

    def get_snapshot(self) -> dict:
        """Full state snapshot for initial WebSocket sync."""
        return {
            "state": self.get_state(),
            "tracks": [t.to_public() for t in self.tracks],
            "epoch_ms": self.clock.epoch_ms,
            "tuning_delay_ms": int(self.tuning_delay * 1000),
        }
