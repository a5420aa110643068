"""Starlette app - HTTP routes + WebSocket sessions + blob serving."""
import asyncio
import contextlib
import logging
import random
import re
import uuid
from pathlib import Path
from typing import Optional

from starlette.applications import Starlette
from starlette.responses import JSONResponse, Response
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

from ..catalog import BlobRegistry, CatalogStore, DirectoryBackend, Track
from ..clock import BroadcastClock
from ..config import APP_VERSION, CATALOG_DIR, CATALOG_MAX_MB, MIN_FREE_MB
from ..engine import RadioEngine
from ..errors import InvalidInput, StorageError, format_error, friendly
from ..player import BrowserAudio
from ..tracks import TrackRegistry, suggest_name
from .state import RadioState

logger = logging.getLogger(__name__)

# Shared state, built by create_app()
_state = RadioState()
_blobs = BlobRegistry()
_clock: BroadcastClock | None = None
_store: CatalogStore | None = None
_registry: TrackRegistry | None = None

_RANGE_RE = re.compile(r"bytes=(\d*)-(\d*)")


def _listing(tracks: list[Track]) -> dict:
    return {
        "tracks": [t.to_public(include_ref=False) for t in tracks],
        "is_default": _registry.is_default(tracks),
    }


# ── Health ───────────────────────────────────────────────────────────────────

async def health(request):
    checks = {}

    free_mb = _store.backend.disk_free_mb()
    checks["disk"] = {"ok": free_mb >= MIN_FREE_MB, "free_mb": round(free_mb)}

    try:
        checks["catalog"] = {"ok": True, "tracks": await _store.count()}
    except StorageError as e:
        checks["catalog"] = {"ok": False, "error": str(e)}

    all_ok = all(c["ok"] for c in checks.values())
    return JSONResponse({
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "epoch_ms": _clock.epoch_ms,
        "listeners": _state.client_count,
        "checks": checks,
    })


# ── Catalog ──────────────────────────────────────────────────────────────────

async def list_tracks(request):
    scope = _blobs.scope()
    try:
        tracks = await _registry.list_tracks(scope.mint)
    finally:
        scope.release()
    return JSONResponse(_listing(tracks))


async def upload_track(request):
    """Raw-body upload: ?name=...&filename=..., Content-Type is the audio MIME type."""
    name = request.query_params.get("name", "").strip()
    filename = request.query_params.get("filename", "").strip()
    if not name and filename:
        name = suggest_name(filename)
    mime_type = request.headers.get("content-type", "")

    try:
        room = await _store.remaining_bytes()
    except StorageError as e:
        return _write_failed(e, name, mime_type, 0)

    # Refuse oversized bodies before buffering them
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > room:
        return _write_failed(StorageError("quota exceeded: upload is larger than the space left"),
                             name, mime_type, int(declared))
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > room:
            return _write_failed(StorageError("quota exceeded: upload is larger than the space left"),
                                 name, mime_type, received)
        chunks.append(chunk)
    data = b"".join(chunks)

    scope = _blobs.scope()
    try:
        tracks = await _registry.add_track(name, data, scope.mint, mime_type=mime_type)
    except InvalidInput as e:
        return JSONResponse({"error": f"{friendly('upload')} {e}"}, status_code=400)
    except StorageError as e:
        return _write_failed(e, name, mime_type, len(data))
    finally:
        scope.release()

    await _state.broadcast("catalog_changed", {})
    return JSONResponse(_listing(tracks), status_code=201)


def _write_failed(err: StorageError, name: str, mime_type: str, size: int) -> JSONResponse:
    msg = format_error("catalog_write", name, {"size_bytes": size, "mime_type": mime_type}, str(err))
    status = 507 if "quota" in str(err) else 503
    return JSONResponse({"error": msg}, status_code=status)


async def delete_track(request):
    track_id = request.path_params["track_id"]
    scope = _blobs.scope()
    try:
        tracks = await _registry.remove_track(track_id, scope.mint)
    except StorageError as e:
        msg = format_error("catalog_remove", track_id, raw=str(e))
        return JSONResponse({"error": msg}, status_code=503)
    finally:
        scope.release()

    await _state.broadcast("catalog_changed", {})
    return JSONResponse(_listing(tracks))


# ── Audio serving ────────────────────────────────────────────────────────────

async def serve_blob(request):
    """Serve an uploaded payload with Range header support (required for Safari)."""
    blob = _blobs.resolve(request.path_params["token"])
    if blob is None:
        return Response("Not found", status_code=404)
    data, media_type = blob
    size = len(data)
    headers = {"Accept-Ranges": "bytes"}

    match = _RANGE_RE.fullmatch(request.headers.get("range", "").strip())
    if not match or not any(match.groups()):
        return Response(data, media_type=media_type, headers=headers)

    first, last = match.groups()
    if first:
        start = int(first)
        end = min(int(last), size - 1) if last else size - 1
    else:
        # Suffix range: the last N bytes
        start = max(0, size - int(last))
        end = size - 1
    if start >= size or start > end:
        return Response(status_code=416, headers={"Content-Range": f"bytes */{size}"})

    headers["Content-Range"] = f"bytes {start}-{end}/{size}"
    return Response(data[start:end + 1], status_code=206, media_type=media_type, headers=headers)


# ── WebSocket ────────────────────────────────────────────────────────────────

async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    client_id = str(uuid.uuid4())
    queue = _state.subscribe(client_id)
    logger.info("WS connected: %s", client_id)

    async def _notify(event: str, data: dict):
        _state.push(client_id, event, data)

    audio = BrowserAudio(lambda cmd: _state.push(client_id, "audio", cmd))
    engine = RadioEngine(_registry, _clock, audio, _blobs, notify=_notify)

    async def _reader():
        try:
            while True:
                data = await websocket.receive_json()
                await _handle_ws_message(client_id, engine, audio, data)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error("WS reader error: %s", e)

    async def _writer():
        try:
            while True:
                event, data = await queue.get()
                if event == "catalog_changed":
                    await engine.load_tracks()
                    await websocket.send_json({
                        "type": "tracks",
                        "data": [t.to_public() for t in engine.tracks],
                    })
                    continue
                await websocket.send_json({"type": event, "data": data})
        except Exception as e:
            logger.debug("WS writer stopped: %s", e)

    reader_task = writer_task = None
    try:
        await engine.load_tracks()
        await websocket.send_json({"type": "sync", "data": engine.get_snapshot()})

        reader_task = asyncio.create_task(_reader())
        writer_task = asyncio.create_task(_writer())
        done, pending = await asyncio.wait(
            [reader_task, writer_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        _state.unsubscribe(client_id)
        await engine.close()
        logger.info("WS disconnected: %s", client_id)


async def _handle_ws_message(client_id: str, engine: RadioEngine, audio: BrowserAudio, data: dict):
    """Route incoming WebSocket messages to engine methods."""
    msg_type = data.get("type", "")

    if msg_type == "power":
        await engine.power()

    elif msg_type == "tune":
        direction = data.get("direction", "up")
        if direction == "down":
            await engine.tune_down()
        else:
            await engine.tune_up()

    elif msg_type == "volume":
        await engine.cycle_volume()

    elif msg_type == "media_ready":
        if audio.metadata_loaded(data.get("duration"), data.get("src")):
            await engine.media_ready()

    elif msg_type == "media_status":
        audio.status(data.get("position"), data.get("paused", True), data.get("src"))

    elif msg_type == "play_rejected":
        audio.rejected()
        await engine.play_rejected(data.get("reason", ""))
        _state.push(client_id, "toast", {"message": friendly("playback")})

    elif msg_type == "media_error":
        await engine.media_error(str(data.get("detail", "unknown")))
        _state.push(client_id, "toast", {"message": friendly("media")})

    elif msg_type == "refresh":
        await engine.load_tracks()

    else:
        logger.warning("Unknown WS message type: %s", msg_type)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(
    catalog_dir: Optional[Path] = None,
    epoch_ms: Optional[float] = None,
    rng: Optional[random.Random] = None,
    max_mb: Optional[int] = None,
) -> Starlette:
    global _clock, _store, _registry

    # The station goes on air when the app is built
    _clock = BroadcastClock(epoch_ms)
    _store = CatalogStore(DirectoryBackend(
        catalog_dir or CATALOG_DIR,
        max_mb=CATALOG_MAX_MB if max_mb is None else max_mb,
    ))
    _registry = TrackRegistry(_store, rng=rng)

    routes = [
        Route("/api/health", health),
        Route("/api/tracks", list_tracks, methods=["GET"]),
        Route("/api/tracks", upload_track, methods=["POST"]),
        Route("/api/tracks/{track_id}", delete_track, methods=["DELETE"]),
        Route("/audio/blob/{token}", serve_blob),
        WebSocketRoute("/ws", websocket_endpoint),
    ]

    return Starlette(routes=routes, lifespan=_lifespan)


@contextlib.asynccontextmanager
async def _lifespan(app):
    logger.info("On air since epoch %d", _clock.epoch_ms)
    yield
    logger.info("Off air (%d listeners dropped)", _state.client_count)
