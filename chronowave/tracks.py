"""Module 3 - Track Registry: the one station list the player sees."""
import logging
import random
import re
import time
import uuid
from pathlib import PurePath
from typing import Optional

from .catalog import CatalogStore, Mint, Origin, Track, TrackRecord
from .config import (
    ALLOWED_MIME_TYPES,
    DEFAULT_SEED_RANGE,
    DEFAULT_STATIONS,
    LOCAL_SEED_RANGE,
    NAME_MAX_LEN,
    SUGGESTED_NAME_LEN,
)
from .errors import InvalidInput, StorageError, format_error

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """'demo tape!' -> 'DEMO_TAPE_'"""
    return re.sub(r"[^A-Z0-9_]", "_", name.upper())[:NAME_MAX_LEN]


def suggest_name(filename: str) -> str:
    """Station name derived from an uploaded file name, extension dropped."""
    stem = PurePath(filename).stem
    return re.sub(r"[^a-zA-Z0-9]", "_", stem).upper()[:SUGGESTED_NAME_LEN]


class TrackRegistry:
    def __init__(self, store: CatalogStore, rng: Optional[random.Random] = None):
        self.store = store
        self._rng = rng or random.Random()
        # Seeds are rolled once per process and never persisted
        self._defaults = [
            {**s, "offset_seed": self._rng.randrange(DEFAULT_SEED_RANGE)} for s in DEFAULT_STATIONS
        ]

    def default_tracks(self) -> list[Track]:
        return [
            Track(
                id=s["id"],
                name=s["name"],
                origin=Origin.REMOTE,
                offset_seed=s["offset_seed"],
                playback_ref=s["address"],
                address=s["address"],
            )
            for s in self._defaults
        ]

    def is_default(self, tracks: list[Track]) -> bool:
        return [t.id for t in tracks] == [s["id"] for s in self._defaults] and all(
            not t.is_local for t in tracks
        )

    async def list_tracks(self, mint: Mint) -> list[Track]:
        """Stored tracks, or the house stations when there are none or storage is down."""
        try:
            stored = await self.store.get_all(mint)
        except StorageError as e:
            format_error("catalog_read", raw=str(e))
            return self.default_tracks()
        if not stored:
            return self.default_tracks()
        return stored

    async def add_track(
        self,
        name: str,
        data: Optional[bytes],
        mint: Mint,
        mime_type: str = "audio/mpeg",
    ) -> list[Track]:
        """Store an uploaded recording. Storage failures propagate to the caller."""
        if not name or not name.strip():
            raise InvalidInput("a station name is required")
        if not data:
            raise InvalidInput("an audio file is required")
        mime_type = (mime_type or "").split(";")[0].strip().lower()
        if mime_type not in ALLOWED_MIME_TYPES:
            raise InvalidInput(f"unsupported audio type: {mime_type or 'unknown'}")

        record = TrackRecord(
            id=uuid.uuid4().hex,
            name=normalize_name(name),
            origin=Origin.LOCAL,
            offset_seed=self._rng.randrange(LOCAL_SEED_RANGE),
            created_at=time.time_ns(),
            mime_type=mime_type,
            payload=data,
        )
        await self.store.add(record)
        return await self.list_tracks(mint)

    async def remove_track(self, track_id: str, mint: Mint) -> list[Track]:
        await self.store.remove(track_id)
        return await self.list_tracks(mint)
