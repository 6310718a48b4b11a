"""Configuration: env, data paths, poll/debounce timing, Spotify credentials."""
import os
from pathlib import Path

from dotenv import load_dotenv

# Base paths (project root = parent of cdchanger package)
BASE_DIR = Path(__file__).resolve().parent.parent

# Load .env from project root so SPOTIFY_CLIENT_ID etc. are set
load_dotenv(BASE_DIR / ".env")

DATA_DIR = Path(os.getenv("CDCHANGER_DATA_DIR", str(BASE_DIR / "data")))
STATE_PATH = DATA_DIR / "state.json"
SPOTIFY_TOKEN_CACHE = DATA_DIR / ".spotify-token"

# API
API_HOST = os.getenv("CDCHANGER_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("CDCHANGER_API_PORT", "8000"))

# Spotify (OAuth; tokens stored on device after first connect)
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "http://localhost:8000/api/spotify/callback")
SPOTIFY_SCOPES = "user-read-playback-state user-modify-playback-state user-read-currently-playing"
# Optional device to target; empty = whatever device Spotify considers active
SPOTIFY_DEVICE_ID = os.getenv("SPOTIFY_DEVICE_ID", "")
# After OAuth callback, redirect here (e.g. http://localhost:5173 for Vite dev)
CDCHANGER_WEB_ORIGIN = os.getenv("CDCHANGER_WEB_ORIGIN", "")

# Now-playing poll and persistence
POLL_INTERVAL_SEC = float(os.getenv("CDCHANGER_POLL_INTERVAL", "1.0"))
SAVE_DEBOUNCE_SEC = 0.2
SEARCH_DEBOUNCE_SEC = 0.35
SEARCH_MIN_CHARS = 2
SEARCH_LIMIT = 12

# Mechanical disc-swap latency for 5-disc shuffle (seconds)
DISC_SWAP_MIN_DELAY = 0.35
DISC_SWAP_MAX_DELAY = 0.7

# Playlist label prefix shown in the external player
PLAYLIST_LABEL_PREFIX = "CD Changer"

# Spotify rejects start_playback with more URIs than this; longer discs play their first 500
MAX_PLAY_TRACKS = 500

# Worker threads for blocking player calls
BRIDGE_WORKERS = int(os.getenv("CDCHANGER_BRIDGE_WORKERS", "4"))

# Debug builds show raw bridge diagnostics in status messages
DEBUG = os.getenv("CDCHANGER_DEBUG", "0").lower() in ("1", "true", "yes")


def ensure_data_dir() -> None:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
