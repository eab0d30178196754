"""Unit tests for llmstxtkit.cache."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from llmstxtkit.cache import LlmsTxtCache, normalize_key
from llmstxtkit.config import CacheSettings
from llmstxtkit.errors import ErrorCode, LlmsTxtKitError
from tests.factories import FakeClock, make_record, make_success

if TYPE_CHECKING:
    from llmstxtkit.models.cache import CacheRecord


class InMemoryBackingStore:
    """Dict-backed CacheBackingStore that records every call."""

    def __init__(self) -> None:
        self.records: dict[str, CacheRecord] = {}
        self.saved: list[str] = []
        self.removed: list[str] = []
        self.cleared = 0
        self.fail_loads = False

    async def save(self, key: str, record: CacheRecord) -> None:
        self.saved.append(key)
        self.records[key] = record

    async def load(self, key: str) -> CacheRecord | None:
        if self.fail_loads:
            raise OSError("disk on fire")
        return self.records.get(key)

    async def remove(self, key: str) -> None:
        self.removed.append(key)
        self.records.pop(key, None)

    async def clear(self) -> None:
        self.cleared += 1
        self.records.clear()


def _cache(clock: FakeClock, backing_store: InMemoryBackingStore | None = None, **settings):
    return LlmsTxtCache(CacheSettings(**settings), backing_store, clock=clock)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


class TestNormalizeKey:
    def test_trims_and_lowercases(self) -> None:
        assert normalize_key("  Docs.Example.COM ") == "docs.example.com"

    @pytest.mark.parametrize("domain", ["", "   "])
    def test_blank_rejected(self, domain: str) -> None:
        with pytest.raises(LlmsTxtKitError) as exc_info:
            normalize_key(domain)
        assert exc_info.value.code == ErrorCode.INVALID_DOMAIN


# ---------------------------------------------------------------------------
# get / set
# ---------------------------------------------------------------------------


class TestGetSet:
    async def test_set_then_get_fresh(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        record = make_record(fetched_at=clock())
        await cache.set("docs.example.com", record)

        got = await cache.get("docs.example.com")
        assert got is record
        assert got.last_accessed_at >= clock()
        assert cache.is_stale(got) is False

    async def test_keys_are_case_insensitive(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        await cache.set("Docs.Example.com", make_record(fetched_at=clock()))
        assert await cache.get("docs.example.COM ") is not None
        assert "DOCS.example.com" in cache
        assert len(cache) == 1

    async def test_miss_returns_none(self, clock: FakeClock) -> None:
        assert await _cache(clock).get("nowhere.example.com") is None

    async def test_set_replaces_existing(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        await cache.set("a.example.com", make_record("a.example.com", fetched_at=clock()))
        newer = make_record("a.example.com", fetched_at=clock.advance(seconds=5), body="# New\n")
        await cache.set("a.example.com", newer)
        got = await cache.get("a.example.com")
        assert got is newer
        assert cache.count == 1

    async def test_get_touches_access_time(self, clock: FakeClock) -> None:
        cache = _cache(clock)
        await cache.set("a.example.com", make_record(fetched_at=clock()))
        later = clock.advance(minutes=10)
        got = await cache.get("a.example.com")
        assert got is not None
        assert got.last_accessed_at == later

    async def test_set_from_outcome_uses_configured_ttl(self, clock: FakeClock) -> None:
        cache = _cache(clock, ttl_seconds=60)
        record = await cache.set_from_outcome("docs.example.com", make_success())
        assert record.fetched_at == clock()
        assert record.expires_at == clock() + timedelta(seconds=60)
        assert record.http_headers == {"content-type": "text/plain"}


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


class TestExpiry:
    async def test_stale_served_when_enabled(self, clock: FakeClock) -> None:
        cache = _cache(clock, stale_while_revalidate=True)
        await cache.set("a.example.com", make_record(fetched_at=clock(), ttl=timedelta(seconds=30)))
        clock.advance(seconds=31)

        got = await cache.get("a.example.com")
        assert got is not None
        assert cache.is_stale(got) is True

    async def test_stale_hidden_when_disabled(self, clock: FakeClock) -> None:
        cache = _cache(clock, stale_while_revalidate=False)
        await cache.set("a.example.com", make_record(fetched_at=clock(), ttl=timedelta(seconds=30)))
        clock.advance(seconds=30)

        assert await cache.get("a.example.com") is None
        # Still present until evicted or invalidated
        assert "a.example.com" in cache

    async def test_zero_ttl_is_immediately_stale(self, clock: FakeClock) -> None:
        cache = _cache(clock, ttl_seconds=0)
        record = await cache.set_from_outcome("a.example.com", make_success())
        assert cache.is_stale(record) is True


# ---------------------------------------------------------------------------
# Eviction
# ---------------------------------------------------------------------------


class TestEviction:
    async def test_oldest_access_evicted(self, clock: FakeClock) -> None:
        cache = _cache(clock, max_entries=2)
        await cache.set("a.example.com", make_record("a.example.com", fetched_at=clock()))
        clock.advance(seconds=1)
        await cache.set("b.example.com", make_record("b.example.com", fetched_at=clock()))
        clock.advance(seconds=1)
        await cache.set("c.example.com", make_record("c.example.com", fetched_at=clock()))

        assert len(cache) == 2
        assert "a.example.com" not in cache
        assert "b.example.com" in cache
        assert "c.example.com" in cache

    async def test_recent_read_protects_entry(self, clock: FakeClock) -> None:
        cache = _cache(clock, max_entries=2)
        await cache.set("a.example.com", make_record("a.example.com", fetched_at=clock()))
        clock.advance(seconds=1)
        await cache.set("b.example.com", make_record("b.example.com", fetched_at=clock()))
        clock.advance(seconds=1)
        await cache.get("a.example.com")
        clock.advance(seconds=1)
        await cache.set("c.example.com", make_record("c.example.com", fetched_at=clock()))

        assert "a.example.com" in cache
        assert "b.example.com" not in cache

    async def test_eviction_keeps_backing_store_copy(self, clock: FakeClock) -> None:
        store = InMemoryBackingStore()
        cache = _cache(clock, store, max_entries=1)
        await cache.set("a.example.com", make_record("a.example.com", fetched_at=clock()))
        clock.advance(seconds=1)
        await cache.set("b.example.com", make_record("b.example.com", fetched_at=clock()))

        assert "a.example.com" not in cache
        assert "a.example.com" in store.records


# ---------------------------------------------------------------------------
# Backing store
# ---------------------------------------------------------------------------


class TestBackingStore:
    async def test_set_writes_through(self, clock: FakeClock) -> None:
        store = InMemoryBackingStore()
        cache = _cache(clock, store)
        await cache.set("Docs.Example.com", make_record(fetched_at=clock()))
        assert store.saved == ["docs.example.com"]

    async def test_memory_miss_promotes_from_store(self, clock: FakeClock) -> None:
        store = InMemoryBackingStore()
        store.records["docs.example.com"] = make_record(fetched_at=clock())
        cache = _cache(clock, store)

        got = await cache.get("docs.example.com")
        assert got is not None
        assert got.document.title == "Example Docs"
        assert "docs.example.com" in cache

    async def test_promotion_respects_max_entries(self, clock: FakeClock) -> None:
        store = InMemoryBackingStore()
        store.records["old.example.com"] = make_record("old.example.com", fetched_at=clock())
        cache = _cache(clock, store, max_entries=1)
        clock.advance(seconds=1)
        await cache.set("new.example.com", make_record("new.example.com", fetched_at=clock()))
        clock.advance(seconds=1)

        assert await cache.get("old.example.com") is not None
        assert len(cache) == 1
        assert "old.example.com" in cache

    async def test_read_failure_is_a_miss(self, clock: FakeClock) -> None:
        store = InMemoryBackingStore()
        store.fail_loads = True
        cache = _cache(clock, store)
        assert await cache.get("docs.example.com") is None

    async def test_invalidate_removes_everywhere(self, clock: FakeClock) -> None:
        store = InMemoryBackingStore()
        cache = _cache(clock, store)
        await cache.set("a.example.com", make_record(fetched_at=clock()))

        await cache.invalidate("A.example.com")
        await cache.invalidate("a.example.com")

        assert "a.example.com" not in cache
        assert store.records == {}
        assert store.removed == ["a.example.com", "a.example.com"]

    async def test_clear_removes_everywhere(self, clock: FakeClock) -> None:
        store = InMemoryBackingStore()
        cache = _cache(clock, store)
        await cache.set("a.example.com", make_record("a.example.com", fetched_at=clock()))
        await cache.set("b.example.com", make_record("b.example.com", fetched_at=clock()))

        await cache.clear()

        assert len(cache) == 0
        assert store.records == {}
        assert store.cleared == 1
