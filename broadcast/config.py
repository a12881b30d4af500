import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")

# Managed media layout. Uploaded videos live under PUBLIC_DIR/videos and are
# referenced by playlist entries as "/videos/<name>" URLs or bare filenames.
PUBLIC_DIR = Path(os.getenv("PUBLIC_DIR", str(BASE_DIR / "public")))
VIDEOS_DIR = Path(os.getenv("VIDEOS_DIR", str(PUBLIC_DIR / "videos")))
BACKGROUND_AUDIO_PATH = Path(
    os.getenv("BACKGROUND_AUDIO_PATH", str(PUBLIC_DIR / "rain.mp3"))
)

RESUME_CHECKPOINT_PATH = Path(
    os.getenv("RESUME_CHECKPOINT_PATH", str(BASE_DIR / "resume_checkpoint.json"))
)

# Config store. When SUPABASE_URL is unset the JSON file at CONFIG_PATH is
# polled instead.
CONFIG_PATH = Path(os.getenv("CONFIG_PATH", str(BASE_DIR / "stream_config.json")))
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")
STREAM_CONFIG_TABLE = os.getenv("STREAM_CONFIG_TABLE", "stream_config")
STORE_TIMEOUT_SEC = float(os.getenv("STORE_TIMEOUT_SEC", "10"))

# Timing (seconds)
POLL_INTERVAL_SEC = float(os.getenv("POLL_INTERVAL_SEC", "10"))
FEEDER_RETRY_BACKOFF_SEC = float(os.getenv("FEEDER_RETRY_BACKOFF_SEC", "1"))
EMPTY_PLAYLIST_RETRY_SEC = float(os.getenv("EMPTY_PLAYLIST_RETRY_SEC", "5"))
# RTMP ingest servers reject reconnects that come too quickly.
MIN_RESTART_SETTLE_SEC = 2.0
RESTART_SETTLE_SEC = max(MIN_RESTART_SETTLE_SEC, float(os.getenv("RESTART_SETTLE_SEC", "2")))

PRUNE_MISSING_ENTRIES = os.getenv("PRUNE_MISSING_ENTRIES", "false").lower() in (
    "1",
    "true",
    "yes",
)

# Encoding defaults, used when the config record leaves a field empty.
DEFAULT_VIDEO_BITRATE_KBPS = 8000
DEFAULT_AUDIO_BITRATE_KBPS = 128
DEFAULT_FRAME_RATE = 30
DEFAULT_AUDIO_VOLUME = 35
OUTPUT_AUDIO_RATE = 44100
VIDEO_PRESET = os.getenv("VIDEO_PRESET", "veryfast")

LOG_BUFFER_SIZE = int(os.getenv("LOG_BUFFER_SIZE", "300"))
