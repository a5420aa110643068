"""Module 1 - Config & Constants"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root (two levels up from chronowave/)
_ROOT = Path(__file__).parent.parent
load_dotenv(_ROOT / ".env")

# ─── Paths ────────────────────────────────────────────────────────────────────
ROOT_DIR = _ROOT
DATA_DIR = ROOT_DIR / os.getenv("DATA_DIR", "data")
CATALOG_DIR = DATA_DIR / "catalog"
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "output")
ERRORS_LOG = OUTPUT_DIR / "errors.log"

# ─── Catalog storage ──────────────────────────────────────────────────────────
CATALOG_SCHEMA_VERSION = 1
CATALOG_MAX_MB = int(os.getenv("CATALOG_MAX_MB", "512"))
MIN_FREE_MB = int(os.getenv("MIN_FREE_MB", "50"))

# ─── Tracks ───────────────────────────────────────────────────────────────────
NAME_MAX_LEN = 25
SUGGESTED_NAME_LEN = 20
LOCAL_SEED_RANGE = 7200     # seconds, uploaded tracks
DEFAULT_SEED_RANGE = 3600   # seconds, built-in stations
ALLOWED_MIME_TYPES = ["audio/mp3", "audio/mpeg", "audio/wav", "audio/x-wav", "audio/ogg"]

DEFAULT_STATIONS = [
    {
        "id": "1",
        "name": "SYNTHWAVE_MIX_VOL1",
        "address": "https://commondatastorage.googleapis.com/codeskulptor-demos/DDR_assets/Sevish_-__nbsp_.mp3",
    },
    {
        "id": "2",
        "name": "LATE_NIGHT_TALK",
        "address": "https://commondatastorage.googleapis.com/codeskulptor-assets/Epoq-Lepidoptera.ogg",
    },
    {
        "id": "3",
        "name": "JAZZ_CAFE_85",
        "address": "https://commondatastorage.googleapis.com/codeskulptor-demos/pyman_assets/intromusic.ogg",
    },
    {
        "id": "4",
        "name": "NEWS_BROADCAST_AM",
        "address": "https://commondatastorage.googleapis.com/codeskulptor-demos/riceracer_assets/music/win.ogg",
    },
]

# ─── Player ───────────────────────────────────────────────────────────────────
TUNING_DELAY_MS = int(os.getenv("TUNING_DELAY_MS", "800"))
RESYNC_THRESHOLD_S = 2.0
DEFAULT_VOLUME = 0.5
VOLUME_STEP = 0.2
VOLUME_FLOOR = 0.2   # wrap target, the volume control never mutes

# LCD dial: 88.1 MHz for the first station, 1.2 MHz apart
FREQ_BASE_MHZ = 88.1
FREQ_STEP_MHZ = 1.2

APP_VERSION = "0.1.0"

# ─── Web server ──────────────────────────────────────────────────────────────
WEB_HOST = os.getenv("WEB_HOST", "127.0.0.1")
WEB_PORT = int(os.getenv("WEB_PORT", "8888"))

# ─── Dev mode ─────────────────────────────────────────────────────────────────
DEV_MODE = os.getenv("DEV_MODE", "1").strip() in ("1", "true", "yes")
