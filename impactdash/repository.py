"""Asynchronous initiative repository with a cache-or-fetch policy.

The repository separates *where* raw records come from (a source) from
*where* they are cached (a client key-value store).  Every call returns a
:class:`Result` instead of raising, so callers decide how to present a
failed load.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Generic, Protocol, TypeVar

import httpx

from impactdash.enhancer import enhance_initiative, enhance_initiatives
from impactdash.flatfile import read_challenges
from impactdash.storage import (
    INITIATIVES_STORAGE_KEY,
    KeyValueStore,
    get_from_storage,
    set_to_storage,
)

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Result(Generic[T]):
    ok: bool
    value: T
    error: str | None = None
    source: str = ""

    @classmethod
    def success(cls, value: T, source: str = "") -> Result[T]:
        return cls(ok=True, value=value, source=source)

    @classmethod
    def failure(cls, error: str, default: T) -> Result[T]:
        return cls(ok=False, value=default, error=error)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class InitiativeSource(Protocol):
    name: str

    async def fetch(self) -> list[dict]: ...


@dataclass
class FileInitiativeSource:
    path: Path
    name: str = "file"

    async def fetch(self) -> list[dict]:
        return await asyncio.to_thread(read_challenges, self.path)


@dataclass
class HttpInitiativeSource:
    url: str
    timeout: float = 15.0
    name: str = "http"
    client: httpx.AsyncClient | None = field(default=None, repr=False)

    async def fetch(self) -> list[dict]:
        if self.client is not None:
            return await self._get(self.client)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await self._get(client)

    async def _get(self, client: httpx.AsyncClient) -> list[dict]:
        resp = await client.get(self.url)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"Expected a JSON array from {self.url}")
        return data


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class InitiativeRepository:
    """Loads raw initiatives through the client cache, falling back to the source."""

    def __init__(
        self, source: InitiativeSource, store: KeyValueStore | None = None,
        seed_strategy: str = "checksum",
    ):
        self.source = source
        self.store = store
        self.seed_strategy = seed_strategy

    async def load_initiatives(self) -> Result[list[dict]]:
        cached = get_from_storage(self.store, INITIATIVES_STORAGE_KEY, [])
        if cached:
            return Result.success(cached, source="cache")
        return await self.refresh()

    async def refresh(self) -> Result[list[dict]]:
        """Read the source, bypassing the cache, and cache the result."""
        try:
            data = await self.source.fetch()
        except Exception as exc:
            log.error("Error loading initiatives from %s: %s", self.source.name, exc)
            return Result.failure(str(exc), [])
        if self.store is not None and not set_to_storage(self.store, INITIATIVES_STORAGE_KEY, data):
            log.warning("Loaded %d initiatives but could not cache them", len(data))
        return Result.success(data, source=self.source.name)

    async def load_enhanced(self, now: datetime | None = None) -> Result[list[dict[str, Any]]]:
        loaded = await self.load_initiatives()
        enhanced = enhance_initiatives(loaded.value, now, self.seed_strategy)
        return Result(ok=loaded.ok, value=enhanced, error=loaded.error, source=loaded.source)

    async def get_initiative_by_id(
        self, uid: str, now: datetime | None = None,
    ) -> Result[dict[str, Any] | None]:
        loaded = await self.load_initiatives()
        if not loaded.ok:
            return Result(ok=False, value=None, error=loaded.error)
        raw = next((i for i in loaded.value if i.get("uid") == uid), None)
        if raw is None:
            return Result.success(None, source=loaded.source)
        return Result.success(enhance_initiative(raw, now, self.seed_strategy), source=loaded.source)
