"""Key-value stores standing in for a browser's local storage.

Callers never talk to a store directly; they go through
:func:`get_from_storage` / :func:`set_to_storage`, which serialize each
bucket as one JSON blob and turn every failure into a default value or a
``False`` result.  Passing ``None`` as the store means "no client context"
(the equivalent of rendering on the server).
"""
from __future__ import annotations

import copy
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from impactdash.models import StorageEntry

log = logging.getLogger(__name__)

T = TypeVar("T")

# Bucket keys
INITIATIVES_STORAGE_KEY = "virgin_initiatives"
DASHBOARD_LAYOUT_KEY = "dashboard_layout"
USER_PREFERENCES_KEY = "user_preferences"
USER_NOTIFICATIONS_KEY = "user_notifications"
COLLABORATION_DATA_KEY = "collaboration_data"
METRICS_HISTORY_KEY = "metrics_history"

BUCKET_KEYS = (
    INITIATIVES_STORAGE_KEY,
    DASHBOARD_LAYOUT_KEY,
    USER_PREFERENCES_KEY,
    USER_NOTIFICATIONS_KEY,
    COLLABORATION_DATA_KEY,
    METRICS_HISTORY_KEY,
)


# ---------------------------------------------------------------------------
# Store implementations
# ---------------------------------------------------------------------------


class KeyValueStore(ABC):
    """String-to-string store with local-storage semantics."""

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...


class MemoryStore(KeyValueStore):
    """Dict-backed store, optionally capped to mimic a storage quota."""

    def __init__(self, quota: int | None = None):
        self._data: dict[str, str] = {}
        self.quota = quota

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota is not None:
            used = sum(len(v) for k, v in self._data.items() if k != key)
            if used + len(value) > self.quota:
                raise OSError(f"Storage quota exceeded writing '{key}'")
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class SqlStore(KeyValueStore):
    """Store persisted in the ``storage_entries`` table, namespaced by client id.

    Each write commits immediately, so a bucket write is visible to the next
    request regardless of which session reads it.
    """

    def __init__(self, session: Session, client_id: str):
        self.session = session
        self.client_id = client_id

    def _entry(self, key: str) -> StorageEntry | None:
        return self.session.execute(
            select(StorageEntry).where(
                StorageEntry.client_id == self.client_id, StorageEntry.key == key,
            )
        ).scalars().first()

    def get_item(self, key: str) -> str | None:
        entry = self._entry(key)
        return entry.value if entry else None

    def set_item(self, key: str, value: str) -> None:
        entry = self._entry(key)
        if entry is None:
            self.session.add(StorageEntry(client_id=self.client_id, key=key, value=value))
        else:
            entry.value = value
        self._commit()

    def remove_item(self, key: str) -> None:
        self.session.execute(delete(StorageEntry).where(
            StorageEntry.client_id == self.client_id, StorageEntry.key == key,
        ))
        self._commit()

    def clear(self) -> None:
        self.session.execute(delete(StorageEntry).where(StorageEntry.client_id == self.client_id))
        self._commit()

    def _commit(self) -> None:
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def keys(self) -> list[str]:
        return list(self.session.execute(
            select(StorageEntry.key).where(StorageEntry.client_id == self.client_id)
            .order_by(StorageEntry.key)
        ).scalars())


# ---------------------------------------------------------------------------
# Safe accessors
# ---------------------------------------------------------------------------


def get_from_storage(store: KeyValueStore | None, key: str, default: T) -> T:
    """Return the decoded value under *key*, or a copy of *default*.

    The default is used when there is no store, the key is missing or empty,
    or the stored blob is not valid JSON.
    """
    if store is None:
        return copy.deepcopy(default)
    try:
        item = store.get_item(key)
        return json.loads(item) if item else copy.deepcopy(default)
    except Exception as exc:
        log.error("Error getting item %s from storage: %s", key, exc)
        return copy.deepcopy(default)


def set_to_storage(store: KeyValueStore | None, key: str, value: Any) -> bool:
    if store is None:
        return False
    try:
        store.set_item(key, json.dumps(value))
        return True
    except Exception as exc:
        log.error("Error setting item %s to storage: %s", key, exc)
        return False


def remove_from_storage(store: KeyValueStore | None, key: str) -> bool:
    if store is None:
        return False
    try:
        store.remove_item(key)
        return True
    except Exception as exc:
        log.error("Error removing item %s from storage: %s", key, exc)
        return False


def clear_storage(store: KeyValueStore | None) -> bool:
    if store is None:
        return False
    try:
        store.clear()
        return True
    except Exception as exc:
        log.error("Error clearing storage: %s", exc)
        return False
