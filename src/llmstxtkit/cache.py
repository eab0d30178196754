"""Domain-keyed in-memory llms.txt cache with TTL, LRU eviction and stale serving.

The in-memory map is authoritative for the lifetime of the process. An
optional backing store is written through on every ``set`` and consulted
only on an in-memory miss; a hit there is promoted into memory.

Backing-store read failures never fail ``get``: they are logged with
``exc_info=True`` and treated as a miss. Write failures are absorbed by the
backing stores themselves (see ``llmstxtkit.backing_store``).

Eviction is a full scan for the oldest ``last_accessed_at``. That is fine at
the configured entry ceiling (default 1000); a much larger cache would want
an ordered structure with the same "oldest goes first" behaviour.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from llmstxtkit.config import CacheSettings
from llmstxtkit.errors import ErrorCode, LlmsTxtKitError
from llmstxtkit.models.cache import CacheRecord

if TYPE_CHECKING:
    from collections.abc import Callable

    from llmstxtkit.models.fetch import FetchSuccess
    from llmstxtkit.protocols import CacheBackingStore

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_key(domain: str) -> str:
    """Cache key for a domain: trimmed and lower-cased."""
    if not isinstance(domain, str) or not domain.strip():
        raise LlmsTxtKitError(
            code=ErrorCode.INVALID_DOMAIN,
            message="domain must be a non-empty string",
            suggestion="Pass a bare host name such as 'docs.example.com'.",
        )
    return domain.strip().lower()


class LlmsTxtCache:
    """In-memory cache implementing CacheProtocol."""

    def __init__(
        self,
        settings: CacheSettings | None = None,
        backing_store: CacheBackingStore | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings or CacheSettings()
        self._backing_store = backing_store
        self._clock = clock
        self._store: dict[str, CacheRecord] = {}
        # Serialises eviction scans only; get/set never take it.
        self._eviction_lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._settings.max_entries

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._settings.ttl_seconds)

    @property
    def count(self) -> int:
        return len(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and domain.strip().lower() in self._store

    def is_stale(self, record: CacheRecord) -> bool:
        """True once the record is past ``expires_at``. Callers decide whether to re-fetch."""
        return record.is_expired(self._clock())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, domain: str) -> CacheRecord | None:
        """Return the cached record, or None on a miss.

        Expired records are returned only when stale serving is enabled.
        """
        key = normalize_key(domain)

        record = self._store.get(key)
        if record is None and self._backing_store is not None:
            record = await self._load_from_backing_store(key)
            if record is not None:
                record.access.touch(self._clock())
                # Another task may have populated the key while we awaited.
                record = self._store.setdefault(key, record)
                log.debug("cache_promoted", key=key)
                self._evict_if_needed()

        if record is None:
            log.debug("cache_miss", key=key)
            return None

        now = self._clock()
        if not record.is_expired(now):
            record.access.touch(now)
            return record

        if self._settings.stale_while_revalidate:
            record.access.touch(now)
            log.debug("cache_hit", key=key, stale=True)
            return record

        log.debug("cache_expired", key=key)
        return None

    async def _load_from_backing_store(self, key: str) -> CacheRecord | None:
        if self._backing_store is None:
            return None
        try:
            return await self._backing_store.load(key)
        except Exception:
            log.warning("cache_backing_read_error", key=key, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def set(self, domain: str, record: CacheRecord) -> None:
        """Insert or replace the record for ``domain``, write through, then evict."""
        key = normalize_key(domain)
        record.access.touch(self._clock())
        self._store[key] = record

        if self._backing_store is not None:
            await self._backing_store.save(key, record)

        self._evict_if_needed()

    async def set_from_outcome(self, domain: str, outcome: FetchSuccess) -> CacheRecord:
        """Wrap a successful fetch in a record using the configured TTL and store it."""
        record = CacheRecord.from_outcome(outcome, self.ttl, now=self._clock())
        await self.set(domain, record)
        return record

    async def invalidate(self, domain: str) -> None:
        """Remove ``domain`` from memory and the backing store. Idempotent."""
        key = normalize_key(domain)
        self._store.pop(key, None)
        if self._backing_store is not None:
            await self._backing_store.remove(key)
        log.debug("cache_invalidated", key=key)

    async def clear(self) -> None:
        """Remove every entry from memory and the backing store. Idempotent."""
        self._store.clear()
        if self._backing_store is not None:
            await self._backing_store.clear()
        log.debug("cache_cleared")

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def _evict_if_needed(self) -> None:
        if len(self._store) <= self._settings.max_entries:
            return

        with self._eviction_lock:
            # Re-check under the lock: a concurrent eviction may already have run.
            while len(self._store) > self._settings.max_entries:
                oldest_key, _ = min(
                    list(self._store.items()),
                    key=lambda item: item[1].last_accessed_at,
                )
                self._store.pop(oldest_key, None)
                log.debug("cache_evicted", key=oldest_key)
