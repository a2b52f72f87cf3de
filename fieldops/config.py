"""
Centralised configuration constants and environment helpers.
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# ── Access control ───────────────────────────────────────────────────
# The single role that reads every programme regardless of its flags.
UNRESTRICTED_ROLE = "chief-admin"

PROGRAMME_FIELD = "programme"
USERS_PATH = "users"
KNOWN_PROGRAMMES = ("KPMD", "RANGE")

# ── Collections (store path -> canonical entity type) ────────────────
COLLECTION_ENTITIES = {
    "farmers": "farmer",
    "capacityBuilding": "training",
    "offtakes": "offtake",
    "requisitions": "requisition",
    "AnimalHealthActivities": "animal_health",
}

# ── Cache ────────────────────────────────────────────────────────────
CACHE_TTL_SECONDS = 5 * 60

# ── Statistics ───────────────────────────────────────────────────────
DEFAULT_TOP_N = 5
UNKNOWN_LABEL = "Unknown"
YEAR_SERIES_SPAN = 5
LOCAL_TIMEZONE = os.getenv("FIELDOPS_TIMEZONE", "Africa/Nairobi")

# ── Persisted local state (pricing inputs) ───────────────────────────
PRICING_STORAGE_KEY = "sales-metrics-inputs-v1"
LOCAL_STATE_FILE = Path(
    os.getenv("FIELDOPS_STATE_FILE", str(Path.home() / ".fieldops" / "local_state.json"))
)

# ── Remote store ─────────────────────────────────────────────────────
STORE_BACKEND = os.getenv("FIELDOPS_STORE", "sql").strip().lower()
DB_URI = os.getenv("DB_URI", "sqlite:///fieldops.db")
FIREBASE_DATABASE_URL = os.getenv("FIREBASE_DATABASE_URL", "")
FIREBASE_AUTH_TOKEN = os.getenv("FIREBASE_AUTH_TOKEN") or None
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "20"))

# ── API server ───────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = 24
MAX_RESULTS_RETURN = 1000


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
