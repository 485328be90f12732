"""Tests for the initiative repository and its sources."""
from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import AsyncMock

import httpx
import pytest

from impactdash.repository import (
    FileInitiativeSource,
    HttpInitiativeSource,
    InitiativeRepository,
    Result,
)
from impactdash.storage import INITIATIVES_STORAGE_KEY, MemoryStore, get_from_storage
from impactdash.utils import write_json

NOW = datetime(2024, 6, 1, tzinfo=UTC)

RECORDS = [
    {"uid": "challenge-1", "Virgin Company": "Virgin Atlantic", "Initiaitive": "SAF",
     "theme": "Climate Action"},
    {"uid": "challenge-2", "Virgin Company": "Virgin Unite", "Initiaitive": "Ocean Unite"},
]


@pytest.fixture()
def challenges_file(tmp_path: Path) -> Path:
    path = tmp_path / "challenges.json"
    write_json(path, RECORDS)
    return path


def _http_source(handler) -> HttpInitiativeSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpInitiativeSource("https://data.example.com/initiatives.json", client=client)


class TestResult:
    def test_success(self):
        r = Result.success([1], source="file")
        assert r.ok and r.value == [1] and r.error is None and r.source == "file"

    def test_failure(self):
        r = Result.failure("boom", [])
        assert not r.ok and r.value == [] and r.error == "boom"


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class TestSources:
    @pytest.mark.asyncio
    async def test_file_source(self, challenges_file):
        assert await FileInitiativeSource(challenges_file).fetch() == RECORDS

    @pytest.mark.asyncio
    async def test_file_source_missing(self, tmp_path):
        with pytest.raises(OSError):
            await FileInitiativeSource(tmp_path / "missing.json").fetch()

    @pytest.mark.asyncio
    async def test_http_source(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/initiatives.json"
            return httpx.Response(200, json=RECORDS)

        assert await _http_source(handler).fetch() == RECORDS

    @pytest.mark.asyncio
    async def test_http_source_error_status(self):
        source = _http_source(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            await source.fetch()

    @pytest.mark.asyncio
    async def test_http_source_rejects_non_array(self):
        source = _http_source(lambda request: httpx.Response(200, json={"items": []}))
        with pytest.raises(ValueError):
            await source.fetch()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TestInitiativeRepository:
    @pytest.mark.asyncio
    async def test_fetches_and_caches(self, challenges_file):
        store = MemoryStore()
        repo = InitiativeRepository(FileInitiativeSource(challenges_file), store)
        result = await repo.load_initiatives()
        assert result.ok
        assert result.source == "file"
        assert result.value == RECORDS
        assert get_from_storage(store, INITIATIVES_STORAGE_KEY, []) == RECORDS

    @pytest.mark.asyncio
    async def test_cache_hit_skips_source(self, challenges_file):
        store = MemoryStore()
        repo = InitiativeRepository(FileInitiativeSource(challenges_file), store)
        await repo.load_initiatives()
        challenges_file.unlink()
        result = await repo.load_initiatives()
        assert result.ok
        assert result.source == "cache"
        assert result.value == RECORDS

    @pytest.mark.asyncio
    async def test_empty_cache_is_a_miss(self, challenges_file):
        store = MemoryStore()
        store.set_item(INITIATIVES_STORAGE_KEY, "[]")
        result = await InitiativeRepository(FileInitiativeSource(challenges_file), store).load_initiatives()
        assert result.source == "file"

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self, challenges_file):
        store = MemoryStore()
        store.set_item(INITIATIVES_STORAGE_KEY, json.dumps([{"uid": "stale"}]))
        repo = InitiativeRepository(FileInitiativeSource(challenges_file), store)
        result = await repo.refresh()
        assert result.value == RECORDS
        assert get_from_storage(store, INITIATIVES_STORAGE_KEY, []) == RECORDS

    @pytest.mark.asyncio
    async def test_failure_returns_empty_result(self, tmp_path, caplog):
        repo = InitiativeRepository(FileInitiativeSource(tmp_path / "missing.json"), MemoryStore())
        result = await repo.load_initiatives()
        assert not result.ok
        assert result.value == []
        assert result.error
        assert "Error loading initiatives from file" in caplog.text

    @pytest.mark.asyncio
    async def test_cache_write_failure_still_returns_data(self, challenges_file, caplog):
        repo = InitiativeRepository(FileInitiativeSource(challenges_file), MemoryStore(quota=5))
        result = await repo.load_initiatives()
        assert result.ok
        assert result.value == RECORDS
        assert "could not cache" in caplog.text

    @pytest.mark.asyncio
    async def test_without_store(self):
        source = AsyncMock()
        source.name = "mock"
        source.fetch.return_value = RECORDS
        repo = InitiativeRepository(source)
        await repo.load_initiatives()
        await repo.load_initiatives()
        assert source.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_http_failure(self):
        repo = InitiativeRepository(_http_source(lambda request: httpx.Response(500)), MemoryStore())
        result = await repo.load_initiatives()
        assert not result.ok
        assert result.value == []

    @pytest.mark.asyncio
    async def test_load_enhanced(self, challenges_file):
        repo = InitiativeRepository(FileInitiativeSource(challenges_file))
        result = await repo.load_enhanced(NOW)
        assert result.ok
        assert [i["uid"] for i in result.value] == ["challenge-1", "challenge-2"]
        assert result.value[0]["milestones"][0]["title"] == "Project Initiation"

    @pytest.mark.asyncio
    async def test_load_enhanced_failure(self, tmp_path):
        repo = InitiativeRepository(FileInitiativeSource(tmp_path / "missing.json"))
        result = await repo.load_enhanced(NOW)
        assert not result.ok
        assert result.value == []

    @pytest.mark.asyncio
    async def test_get_initiative_by_id(self, challenges_file):
        repo = InitiativeRepository(FileInitiativeSource(challenges_file), seed_strategy="last_char")
        result = await repo.get_initiative_by_id("challenge-2", NOW)
        assert result.ok
        assert result.value["uid"] == "challenge-2"
        assert result.value["seed"] == ord("2")
        assert result.value["Initiaitive"] == "Ocean Unite"

    @pytest.mark.asyncio
    async def test_get_initiative_by_id_unknown(self, challenges_file):
        repo = InitiativeRepository(FileInitiativeSource(challenges_file))
        result = await repo.get_initiative_by_id("challenge-99", NOW)
        assert result.ok
        assert result.value is None

    @pytest.mark.asyncio
    async def test_get_initiative_by_id_failure(self, tmp_path):
        repo = InitiativeRepository(FileInitiativeSource(tmp_path / "missing.json"))
        result = await repo.get_initiative_by_id("challenge-1", NOW)
        assert not result.ok
        assert result.value is None
