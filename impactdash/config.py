"""Environment-driven settings for the Impact Dashboard."""
from __future__ import annotations

import os
from pathlib import Path

PACKAGE_DIR = Path(__file__).parent
DEFAULT_DATA_DIR = PACKAGE_DIR / "data"

SEED_STRATEGIES = ("checksum", "last_char")


def data_dir() -> Path:
    return Path(os.environ.get("IMPACTDASH_DATA_DIR") or DEFAULT_DATA_DIR)


def challenges_path() -> Path:
    """Flat JSON file holding the raw initiative records."""
    override = os.environ.get("IMPACTDASH_CHALLENGES_FILE", "").strip()
    return Path(override) if override else data_dir() / "challenges.json"


def users_path() -> Path:
    override = os.environ.get("IMPACTDASH_USERS_FILE", "").strip()
    return Path(override) if override else data_dir() / "users.json"


def db_path() -> Path:
    override = os.environ.get("IMPACTDASH_DB_PATH", "").strip()
    return Path(override) if override else data_dir() / "client_store.db"


def initiatives_url() -> str | None:
    """Optional HTTP location of the initiatives document (replaces the file source)."""
    return os.environ.get("IMPACTDASH_INITIATIVES_URL", "").strip() or None


def seed_strategy() -> str:
    value = os.environ.get("IMPACTDASH_SEED_STRATEGY", "checksum").strip().lower()
    return value if value in SEED_STRATEGIES else "checksum"


def http_timeout() -> float:
    try:
        return float(os.environ.get("IMPACTDASH_HTTP_TIMEOUT", "15"))
    except ValueError:
        return 15.0
