"""Module 2 - Media Catalog Store

Durable track records (metadata + optional audio payload) on disk, and the
transient playback references handed to the browser for them.
"""
import asyncio
import enum
import json
import logging
import shutil
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .config import CATALOG_DIR, CATALOG_MAX_MB, CATALOG_SCHEMA_VERSION, MIN_FREE_MB
from .errors import StorageError

logger = logging.getLogger(__name__)

BLOB_ROUTE = "/audio/blob"

# mint(track_id, payload, mime_type) -> playback reference
Mint = Callable[[str, bytes, str], str]


class Origin(str, enum.Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass
class TrackRecord:
    """Persisted form of a track. Playback references are never part of it."""
    id: str
    name: str
    origin: Origin
    offset_seed: int
    created_at: int
    address: str = ""
    mime_type: str = ""
    payload: Optional[bytes] = field(default=None, repr=False)

    def to_json(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "origin": self.origin.value,
            "offset_seed": self.offset_seed,
            "created_at": self.created_at,
            "address": self.address,
            "mime_type": self.mime_type,
            "has_payload": self.payload is not None,
        }

    @staticmethod
    def from_json(data: dict, payload: Optional[bytes] = None) -> "TrackRecord":
        if not isinstance(data, dict):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        if not isinstance(data["name"], str):
            raise ValueError("name must be a string")
        return TrackRecord(
            id=str(data["id"]),
            name=data["name"],
            origin=Origin(data.get("origin", Origin.REMOTE.value)),
            offset_seed=int(data["offset_seed"]),
            created_at=int(data.get("created_at", 0)),
            address=data.get("address", "") or "",
            mime_type=data.get("mime_type", "") or "",
            payload=payload,
        )


@dataclass
class Track:
    """A catalog entry loaded into memory, ready for the audio primitive."""
    id: str
    name: str
    origin: Origin
    offset_seed: int
    playback_ref: str
    created_at: int = 0
    address: str = ""
    mime_type: str = ""
    payload: Optional[bytes] = field(default=None, repr=False)

    @property
    def is_local(self) -> bool:
        return self.origin is Origin.LOCAL

    def to_public(self, include_ref: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "origin": self.origin.value,
            "source_label": "LOCAL STORAGE" if self.is_local else "NETWORK STREAM",
            "offset_seed": self.offset_seed,
        }
        if include_ref:
            data["playback_ref"] = self.playback_ref
        if self.payload is not None:
            data["size_bytes"] = len(self.payload)
        return data


def playback_ref_for(record: TrackRecord, mint: Mint) -> str:
    """Derive a playback reference: a fresh blob handle for local payloads, else the address."""
    if record.payload is not None:
        return mint(record.id, record.payload, record.mime_type)
    return record.address or ""


def track_from_record(record: TrackRecord, mint: Mint) -> Track:
    return Track(
        id=record.id,
        name=record.name,
        origin=record.origin,
        offset_seed=record.offset_seed,
        playback_ref=playback_ref_for(record, mint),
        created_at=record.created_at,
        address=record.address,
        mime_type=record.mime_type,
        payload=record.payload,
    )


# ── Playback references ──────────────────────────────────────────────────────

class BlobRegistry:
    """Process-local token -> payload table behind the /audio/blob/<token> route."""

    def __init__(self):
        self._blobs: dict[str, tuple[bytes, str]] = {}

    def mint(self, track_id: str, payload: bytes, mime_type: str = "") -> str:
        token = uuid.uuid4().hex
        self._blobs[token] = (payload, mime_type or "application/octet-stream")
        return f"{BLOB_ROUTE}/{token}"

    def resolve(self, token: str) -> Optional[tuple[bytes, str]]:
        return self._blobs.get(token)

    def revoke(self, ref: str):
        token = ref.rsplit("/", 1)[-1]
        self._blobs.pop(token, None)

    def scope(self) -> "RefScope":
        return RefScope(self)

    def __len__(self) -> int:
        return len(self._blobs)


class RefScope:
    """References minted for one session or request. release() revokes them all."""

    def __init__(self, blobs: BlobRegistry):
        self._blobs = blobs
        self._refs: list[str] = []

    def mint(self, track_id: str, payload: bytes, mime_type: str = "") -> str:
        ref = self._blobs.mint(track_id, payload, mime_type)
        self._refs.append(ref)
        return ref

    def release(self):
        for ref in self._refs:
            self._blobs.revoke(ref)
        self._refs.clear()


# ── Persistence backend ──────────────────────────────────────────────────────

class CatalogHandle:
    """An opened catalog directory: one <id>.json per record, payload in <id>.audio."""

    def __init__(self, path: Path, max_bytes: int, min_free_bytes: int):
        self.path = path
        self.max_bytes = max_bytes
        self.min_free_bytes = min_free_bytes

    def get_all(self, with_payloads: bool = True) -> list[TrackRecord]:
        """Every readable record. Malformed or half-written ones are skipped with a warning."""
        records = []
        for meta_path in self.path.glob("*.json"):
            try:
                data = json.loads(meta_path.read_text())
                record = TrackRecord.from_json(data)
                if with_payloads and data.get("has_payload"):
                    record.payload = meta_path.with_suffix(".audio").read_bytes()
                records.append(record)
            except (KeyError, ValueError, TypeError, FileNotFoundError) as e:
                logger.warning("Skipping unreadable catalog record %s: %s", meta_path.name, e)
        return records

    def remaining_bytes(self) -> int:
        """How much payload the catalog still accepts, by quota and by free disk."""
        by_quota = self.max_bytes - self.used_bytes()
        by_disk = shutil.disk_usage(self.path).free - self.min_free_bytes
        return max(0, min(by_quota, by_disk))

    def put(self, record: TrackRecord):
        incoming = len(record.payload or b"")
        if self.used_bytes() + incoming > self.max_bytes:
            raise StorageError(f"quota exceeded: catalog limit is {self.max_bytes // (1024 * 1024)}MB")
        if shutil.disk_usage(self.path).free - incoming < self.min_free_bytes:
            raise StorageError("quota exceeded: not enough free disk space")

        meta_path = self.path / f"{record.id}.json"
        audio_path = meta_path.with_suffix(".audio")
        # Payload first: a record is only visible once its JSON lands
        if record.payload is not None:
            _atomic_write(audio_path, record.payload)
        try:
            _atomic_write(meta_path, json.dumps(record.to_json(), indent=2).encode())
        except OSError:
            audio_path.unlink(missing_ok=True)
            raise

    def delete(self, track_id: str):
        meta_path = self.path / f"{track_id}.json"
        meta_path.unlink(missing_ok=True)
        meta_path.with_suffix(".audio").unlink(missing_ok=True)

    def used_bytes(self) -> int:
        return sum(p.stat().st_size for p in self.path.glob("*.audio"))


class DirectoryBackend:
    def __init__(
        self,
        path: Path = CATALOG_DIR,
        max_mb: int = CATALOG_MAX_MB,
        min_free_mb: int = MIN_FREE_MB,
    ):
        self.path = Path(path)
        self.max_bytes = max_mb * 1024 * 1024
        self.min_free_bytes = min_free_mb * 1024 * 1024

    def open(self) -> CatalogHandle:
        """Create the directory and schema marker if missing. Safe to call repeatedly."""
        self.path.mkdir(parents=True, exist_ok=True)
        schema = self.path / ".schema"
        if schema.exists():
            version = int(schema.read_text().strip() or "0")
            if version > CATALOG_SCHEMA_VERSION:
                raise StorageError(f"catalog schema v{version} is newer than this build")
        else:
            _atomic_write(schema, str(CATALOG_SCHEMA_VERSION).encode())
        return CatalogHandle(self.path, self.max_bytes, self.min_free_bytes)

    def disk_free_mb(self) -> float:
        path = self.path
        while not path.exists() and path != path.parent:
            path = path.parent
        return shutil.disk_usage(path).free / (1024 * 1024)


def _atomic_write(path: Path, data: bytes):
    """Atomic write: write to tmp then replace."""
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(data)
    tmp.replace(path)


# ── Store ────────────────────────────────────────────────────────────────────

class CatalogStore:
    def __init__(self, backend: Optional[DirectoryBackend] = None):
        self.backend = backend or DirectoryBackend()
        self._handle: Optional[CatalogHandle] = None
        self._open_lock = asyncio.Lock()

    async def _ensure_open(self) -> CatalogHandle:
        if self._handle is not None:
            return self._handle
        async with self._open_lock:
            if self._handle is None:
                self._handle = await self._run(self.backend.open)
                logger.info("Catalog opened at %s", self.backend.path)
        return self._handle

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn, *args)
        except StorageError:
            raise
        except (OSError, ValueError) as e:
            raise StorageError(str(e)) from e

    async def get_all(self, mint: Mint) -> list[Track]:
        """Every persisted track, with freshly minted playback references."""
        handle = await self._ensure_open()
        records = await self._run(handle.get_all)
        records.sort(key=lambda r: (r.created_at, r.id))
        return [track_from_record(r, mint) for r in records]

    async def count(self) -> int:
        """Number of readable records, from metadata alone."""
        handle = await self._ensure_open()
        return len(await self._run(handle.get_all, False))

    async def remaining_bytes(self) -> int:
        handle = await self._ensure_open()
        return await self._run(handle.remaining_bytes)

    async def add(self, record: TrackRecord):
        handle = await self._ensure_open()
        await self._run(handle.put, record)
        logger.info("Stored track %s (%s)", record.id, record.name)

    async def remove(self, track_id: str):
        """Delete by id. Unknown ids are a no-op."""
        handle = await self._ensure_open()
        await self._run(handle.delete, track_id)
        logger.info("Removed track %s", track_id)
