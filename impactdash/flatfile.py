"""Flat-file persistence: the challenges array and the users document.

Both files are read and rewritten wholesale.  Appends are serialized by a
process-local lock; writers in other processes are not coordinated and can
still lose updates.
"""
from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any

from impactdash.schemas import (
    CALL_TO_ACTION_KEY,
    CHALLENGE_KEY,
    COMPANY_KEY,
    LINKS_KEY,
    REWARD_KEY,
    SOLUTION_KEY,
    TITLE_KEY,
)
from impactdash.utils import read_json, write_json

log = logging.getLogger(__name__)

_write_lock = threading.Lock()

_CHALLENGE_ID_RE = re.compile(r"^challenge-(\d+)$")

# Request field -> record key
CHALLENGE_FIELDS = {
    "virgin_company": COMPANY_KEY,
    "initiative": TITLE_KEY,
    "challenge": CHALLENGE_KEY,
    "what_virgin_is_doing": SOLUTION_KEY,
    "call_to_action": CALL_TO_ACTION_KEY,
    "links": LINKS_KEY,
    "reward": REWARD_KEY,
}

PUBLIC_USER_FIELDS = ("id", "email", "points", "participatedInitiatives")


class ChallengeValidationError(ValueError):
    """A new challenge is missing required fields."""
    def __init__(self, missing: list[str]):
        super().__init__("All fields are required")
        self.missing = missing


class DuplicateUserError(ValueError):
    """A user with the same email already exists."""


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


def read_challenges(path: Path) -> list[dict]:
    """Raw initiative records. Raises on I/O or parse errors."""
    data = read_json(path)
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a JSON array")
    return data


def next_challenge_id(challenges: list[dict]) -> str:
    """``challenge-<n+1>`` where n is the numeric suffix of the last record."""
    last = 0
    if challenges:
        match = _CHALLENGE_ID_RE.match(str(challenges[-1].get("uid", "")))
        if match:
            last = int(match.group(1))
        else:
            numbered = [
                int(m.group(1)) for c in challenges
                if (m := _CHALLENGE_ID_RE.match(str(c.get("uid", ""))))
            ]
            last = max(numbered, default=len(challenges))
    return f"challenge-{last + 1}"


def build_challenge(fields: dict[str, Any]) -> dict:
    """Map request fields onto a record (without uid). Raises ChallengeValidationError."""
    missing = [name for name in CHALLENGE_FIELDS if not str(fields.get(name) or "").strip()]
    if missing:
        raise ChallengeValidationError(missing)
    return {key: fields[name] for name, key in CHALLENGE_FIELDS.items()}


def append_records(path: Path, records: list[dict]) -> list[dict]:
    """Assign sequential ids to *records*, append them, and rewrite the file once."""
    with _write_lock:
        challenges = read_challenges(path) if path.exists() else []
        added = []
        for record in records:
            new = {"uid": next_challenge_id(challenges), **record}
            challenges.append(new)
            added.append(new)
        write_json(path, challenges)
    for new in added:
        log.info("Added %s (%s)", new["uid"], new[TITLE_KEY])
    return added


def append_challenge(path: Path, fields: dict[str, Any], extras: dict[str, Any] | None = None) -> dict:
    """Validate, assign the next id, append, and rewrite the file. Returns the new record.

    *extras* carries optional classification keys (theme, region, phase,
    impactScore...) that are stored alongside the required fields.
    """
    record = build_challenge(fields)
    record.update({k: v for k, v in (extras or {}).items() if v not in (None, "")})
    return append_records(path, [record])[0]


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def read_users(path: Path) -> dict:
    try:
        data = read_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        log.error("Error reading users file: %s", exc)
        return {"users": []}
    if not isinstance(data, dict) or not isinstance(data.get("users"), list):
        log.error("Users file %s has no users list", path)
        return {"users": []}
    return data


def write_users(path: Path, data: dict) -> bool:
    try:
        write_json(path, data)
        return True
    except OSError as exc:
        log.error("Error writing users file: %s", exc)
        return False


def find_user(data: dict, *, user_id: int | None = None, email: str | None = None) -> dict | None:
    for user in data.get("users", []):
        if user_id is not None and user.get("id") == user_id:
            return user
        if email is not None and user.get("email") == email:
            return user
    return None


def public_user(user: dict) -> dict:
    """User fields safe to return to other clients (no password, no friend list)."""
    return {f: user.get(f) for f in PUBLIC_USER_FIELDS}


def create_user(path: Path, fields: dict[str, Any]) -> tuple[dict, bool]:
    """Add a user. Returns (user, written). Raises DuplicateUserError."""
    with _write_lock:
        data = read_users(path)
        if find_user(data, email=fields["email"]):
            raise DuplicateUserError("User already exists")
        next_id = max((u.get("id") or 0 for u in data["users"]), default=0) + 1
        user = {
            "id": next_id,
            "email": fields["email"],
            "password": fields["password"],
            "points": 0,
            "friends": [],
            "participatedInitiatives": [],
        }
        for extra in ("userType", "firstName", "lastName", "company", "position"):
            if fields.get(extra):
                user[extra] = fields[extra]
        data["users"].append(user)
        return user, write_users(path, data)


def friends_of(data: dict, email: str) -> list[dict] | None:
    """Friend summaries for the user with *email*, or None if the user is unknown."""
    user = find_user(data, email=email)
    if user is None:
        return None
    friend_ids = set(user.get("friends") or [])
    return [
        {"id": u.get("id"), "email": u.get("email"), "points": u.get("points")}
        for u in data["users"] if u.get("id") in friend_ids
    ]
