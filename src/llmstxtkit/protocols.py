"""Protocol interfaces for swappable components.

Tool handlers and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory implementations
- Other durable backends to be plugged into the cache without changing it
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from llmstxtkit.models.cache import CacheRecord
    from llmstxtkit.models.fetch import FetchOutcome, FetchSuccess


class CacheBackingStore(Protocol):
    """Durable write-through store behind the in-memory cache.

    ``load`` returns None for a missing, unreadable or corrupted entry; it
    never raises for bad data on disk.
    """

    async def save(self, key: str, record: CacheRecord) -> None: ...

    async def load(self, key: str) -> CacheRecord | None: ...

    async def remove(self, key: str) -> None: ...

    async def clear(self) -> None: ...


class CacheProtocol(Protocol):
    """Interface for the domain-keyed llms.txt cache."""

    async def get(self, domain: str) -> CacheRecord | None: ...

    async def set(self, domain: str, record: CacheRecord) -> None: ...

    async def set_from_outcome(self, domain: str, outcome: FetchSuccess) -> CacheRecord: ...

    async def invalidate(self, domain: str) -> None: ...

    async def clear(self) -> None: ...

    def is_stale(self, record: CacheRecord) -> bool: ...


class FetcherProtocol(Protocol):
    """Interface for the llms.txt fetcher."""

    async def fetch(self, domain: str) -> FetchOutcome: ...
