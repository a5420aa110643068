"""Error types + structured error logging (JSON to errors.log, no terminal formatting)."""
import json
import logging
import sys
from datetime import datetime
from typing import Optional

from .config import ERRORS_LOG, OUTPUT_DIR, DEV_MODE

logger = logging.getLogger(__name__)

_FRIENDLY_MESSAGES = {
    "catalog_read": "Couldn't read your recordings, playing the house stations.",
    "catalog_write": "Storage limit reached or error saving.",
    "catalog_remove": "Couldn't eject that frequency.",
    "upload": "Upload rejected.",
    "playback": "Playback blocked, press power to try again.",
    "media": "Audio source error.",
    "preflight": "Startup check failed.",
}


class ChronoWaveError(Exception):
    """Base class for errors raised by the radio core."""


class StorageError(ChronoWaveError):
    """Catalog backend unreachable, quota exceeded or schema failure."""


class PlaybackRejected(ChronoWaveError):
    """The audio primitive refused to start (autoplay policy and friends)."""


class InvalidInput(ChronoWaveError):
    """Upload rejected before reaching storage."""


def format_error(
    stage: str,
    user_msg: str = "",
    params: Optional[dict] = None,
    raw: str = "",
) -> str:
    entry = {
        "timestamp": datetime.now().isoformat(),
        "stage": stage,
        "input": user_msg,
        "params": params,
        "error": raw,
        "python": sys.version.split()[0],
    }

    _append_to_log(entry)
    logger.error("Error at %s: %s", stage, raw)

    if DEV_MODE:
        return json.dumps(entry, indent=2)
    return _FRIENDLY_MESSAGES.get(stage, f"Something went wrong ({stage}).")


def friendly(stage: str) -> str:
    return _FRIENDLY_MESSAGES.get(stage, f"Something went wrong ({stage}).")


def _append_to_log(entry: dict):
    try:
        OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
        with open(ERRORS_LOG, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError:
        pass
