from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from llmstxtkit.models.document import LlmsDocument
    from llmstxtkit.models.fetch import FetchOutcome, FetchSuccess


class AccessStamp:
    """Last-access timestamp shared by every reader of a cache record.

    Only ever moves forward. Updates are guarded by a lock so a record can be
    touched in place without being replaced.
    """

    __slots__ = ("_lock", "_value")

    def __init__(self, value: datetime) -> None:
        self._lock = threading.Lock()
        self._value = value

    @property
    def value(self) -> datetime:
        return self._value

    def touch(self, now: datetime) -> datetime:
        with self._lock:
            if now > self._value:
                self._value = now
            return self._value

    def __repr__(self) -> str:
        return f"AccessStamp({self._value.isoformat()})"


@dataclass(frozen=True)
class CacheRecord:
    """Cached llms.txt fetch for one domain.

    Immutable apart from the access stamp, which the cache store touches on
    every read and write for LRU ordering.
    """

    document: LlmsDocument
    outcome: FetchOutcome
    fetched_at: datetime
    expires_at: datetime
    http_headers: Mapping[str, str] | None = None
    access: AccessStamp = field(default=None, compare=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.expires_at < self.fetched_at:
            raise ValueError("expires_at must not be earlier than fetched_at")
        if self.http_headers is not None:
            object.__setattr__(self, "http_headers", MappingProxyType(dict(self.http_headers)))
        if self.access is None:
            object.__setattr__(self, "access", AccessStamp(self.fetched_at))

    @property
    def last_accessed_at(self) -> datetime:
        return self.access.value

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now(UTC)) >= self.expires_at

    @classmethod
    def from_outcome(
        cls,
        outcome: FetchSuccess,
        ttl: timedelta,
        *,
        now: datetime | None = None,
    ) -> CacheRecord:
        """Wrap a successful fetch into a record that expires after ``ttl``."""
        fetched_at = now or datetime.now(UTC)
        return cls(
            document=outcome.document,
            outcome=outcome,
            fetched_at=fetched_at,
            expires_at=fetched_at + ttl,
            http_headers=dict(outcome.headers) or None,
        )
