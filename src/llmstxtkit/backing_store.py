"""Durable write-through backing stores for LlmsTxtCache.

Both stores persist the same serialised record and never persist the parsed
document: it is rebuilt by re-running the parser over ``raw_content`` on load.

Failure policy, shared by both stores:
- Reads of a missing, unreadable or corrupted entry return ``None``. The entry
  is logged and left alone; the next successful ``save`` overwrites it.
- Write failures are logged with ``exc_info=True`` and swallowed. The
  in-memory cache has already been updated, so the caller still gets a
  working cache for the rest of the process lifetime.
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from contextlib import suppress
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from pydantic import AwareDatetime, BaseModel, Field

from llmstxtkit.config import _DEFAULT_CACHE_DIR
from llmstxtkit.models.cache import AccessStamp, CacheRecord
from llmstxtkit.models.fetch import FetchStatus, fetch_outcome_adapter
from llmstxtkit.parser import parse

if TYPE_CHECKING:
    from llmstxtkit.classifier import DocumentParser

log = structlog.get_logger()

FILE_EXTENSION = ".json"
_UNSAFE_FILENAME_CHARS = (".", ":", "/", "\\")


class CacheRecordDto(BaseModel):
    """Serialised form of a CacheRecord."""

    domain: str
    raw_content: str
    # Naive timestamps cannot be ordered against the cache clock
    fetched_at: AwareDatetime
    expires_at: AwareDatetime
    last_accessed_at: AwareDatetime
    http_headers: dict[str, str] | None = None
    outcome_kind: FetchStatus
    status_code: int | None = None
    duration_ms: float = Field(ge=0)

    @classmethod
    def from_record(cls, key: str, record: CacheRecord) -> CacheRecordDto:
        outcome = record.outcome
        return cls(
            domain=key,
            raw_content=record.document.raw_content,
            fetched_at=record.fetched_at,
            expires_at=record.expires_at,
            last_accessed_at=record.last_accessed_at,
            http_headers=dict(record.http_headers) if record.http_headers is not None else None,
            outcome_kind=outcome.status,
            status_code=getattr(outcome, "status_code", None),
            duration_ms=outcome.duration.total_seconds() * 1000,
        )

    def to_record(self, parser: DocumentParser) -> CacheRecord:
        """Rebuild the record, re-parsing the document from ``raw_content``.

        Raises ValueError (including pydantic's ValidationError) when the stored
        fields cannot form a valid record.
        """
        document, _ = parser(self.raw_content)
        outcome_payload: dict[str, object] = {
            "kind": self.outcome_kind,
            "domain": self.domain,
            "duration": timedelta(milliseconds=self.duration_ms),
            "document": document,
            "raw_body": self.raw_content,
            "headers": dict(self.http_headers or {}),
        }
        if self.status_code is not None:
            outcome_payload["status_code"] = self.status_code
        outcome = fetch_outcome_adapter.validate_python(outcome_payload)

        return CacheRecord(
            document=document,
            outcome=outcome,
            fetched_at=self.fetched_at,
            expires_at=self.expires_at,
            http_headers=dict(self.http_headers) if self.http_headers is not None else None,
            access=AccessStamp(self.last_accessed_at),
        )


# ----------------------------------------------------------------------
# File store
# ----------------------------------------------------------------------


def file_name_for(key: str) -> str:
    """``docs.example.com`` → ``docs_example_com.json``."""
    sanitized = key
    for char in _UNSAFE_FILENAME_CHARS:
        sanitized = sanitized.replace(char, "_")
    return sanitized + FILE_EXTENSION


def _write_bytes_fsync(path: Path, data: bytes) -> None:
    with path.open("wb") as file_obj:
        file_obj.write(data)
        file_obj.flush()
        os.fsync(file_obj.fileno())


def _write_atomic(path: Path, data: bytes) -> None:
    tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        _write_bytes_fsync(tmp_path, data)
        os.replace(tmp_path, path)
    finally:
        with suppress(OSError):
            tmp_path.unlink(missing_ok=True)


class FileCacheBackingStore:
    """One JSON file per domain under a cache directory dedicated to the store."""

    def __init__(
        self,
        directory: str | Path | None = None,
        *,
        parser: DocumentParser = parse,
    ) -> None:
        self._directory = Path(directory or _DEFAULT_CACHE_DIR).expanduser()
        self._directory.mkdir(parents=True, exist_ok=True)
        self._parser = parser

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        return self._directory / file_name_for(key)

    async def save(self, key: str, record: CacheRecord) -> None:
        """Write the record atomically (temp file, then rename). Non-fatal on failure."""
        path = self.path_for(key)
        payload = CacheRecordDto.from_record(key, record).model_dump_json(indent=2).encode("utf-8")
        try:
            await asyncio.to_thread(_write_atomic, path, payload)
        except OSError:
            log.warning("cache_write_error", key=key, path=str(path), exc_info=True)

    async def load(self, key: str) -> CacheRecord | None:
        """Read a record. Returns ``None`` when missing, unreadable or corrupted."""
        path = self.path_for(key)
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError:
            log.warning("cache_read_error", key=key, path=str(path), exc_info=True)
            return None

        try:
            dto = CacheRecordDto.model_validate_json(raw)
        except ValueError:
            log.warning("cache_entry_corrupted", key=key, path=str(path), exc_info=True)
            return None

        # Distinct domains can share a file name ("a.b.com" and "a_b.com")
        if dto.domain != key:
            log.warning(
                "cache_entry_key_mismatch", key=key, stored_domain=dto.domain, path=str(path)
            )
            return None

        try:
            return dto.to_record(self._parser)
        except ValueError:
            log.warning("cache_entry_corrupted", key=key, path=str(path), exc_info=True)
            return None

    async def remove(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError:
            log.warning("cache_remove_error", key=key, path=str(path), exc_info=True)

    async def clear(self) -> None:
        """Delete every entry file and any temp file left by an interrupted write.

        The directory must be dedicated to this store: any ``*.json`` file in
        it is treated as a cache entry.
        """
        await asyncio.to_thread(self._clear_sync)

    def _clear_sync(self) -> None:
        patterns = (f"*{FILE_EXTENSION}", f"*{FILE_EXTENSION}.*.tmp")
        for pattern in patterns:
            for path in self._directory.glob(pattern):
                try:
                    path.unlink(missing_ok=True)
                except OSError:
                    log.warning("cache_remove_error", path=str(path), exc_info=True)


# ----------------------------------------------------------------------
# SQLite store
# ----------------------------------------------------------------------

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS llms_txt_cache (
    domain           TEXT PRIMARY KEY,
    raw_content      TEXT NOT NULL,
    fetched_at       TEXT NOT NULL,
    expires_at       TEXT NOT NULL,
    last_accessed_at TEXT NOT NULL,
    http_headers     TEXT,
    outcome_kind     TEXT NOT NULL,
    status_code      INTEGER,
    duration_ms      REAL NOT NULL
)
"""

_CREATE_EXPIRES_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_llms_txt_expires ON llms_txt_cache(expires_at)"
)


class SqliteCacheBackingStore:
    """One row per domain in a SQLite database.

    Receives an ``aiosqlite.Connection`` via constructor injection; the
    caller owns the connection lifecycle.
    """

    def __init__(self, db: aiosqlite.Connection, *, parser: DocumentParser = parse) -> None:
        self._db = db
        self._parser = parser

    async def init_db(self) -> None:
        """Create the table and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_TABLE)
        await self._db.execute(_CREATE_EXPIRES_INDEX)
        await self._db.commit()

    async def save(self, key: str, record: CacheRecord) -> None:
        """Upsert a record. Non-fatal on failure."""
        dto = CacheRecordDto.from_record(key, record)
        try:
            await self._db.execute(
                "INSERT OR REPLACE INTO llms_txt_cache "
                "(domain, raw_content, fetched_at, expires_at, last_accessed_at, "
                "http_headers, outcome_kind, status_code, duration_ms) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    dto.domain,
                    dto.raw_content,
                    dto.fetched_at.isoformat(),
                    dto.expires_at.isoformat(),
                    dto.last_accessed_at.isoformat(),
                    json.dumps(dto.http_headers) if dto.http_headers is not None else None,
                    str(dto.outcome_kind),
                    dto.status_code,
                    dto.duration_ms,
                ),
            )
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_write_error", key=key, exc_info=True)

    async def load(self, key: str) -> CacheRecord | None:
        """Read a record. Returns ``None`` on miss, read failure or corrupted row."""
        try:
            cursor = await self._db.execute(
                "SELECT domain, raw_content, fetched_at, expires_at, last_accessed_at, "
                "http_headers, outcome_kind, status_code, duration_ms "
                "FROM llms_txt_cache WHERE domain = ?",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None

        if row is None:
            return None

        try:
            dto = CacheRecordDto(
                domain=row[0],
                raw_content=row[1],
                fetched_at=row[2],
                expires_at=row[3],
                last_accessed_at=row[4],
                http_headers=json.loads(row[5]) if row[5] else None,
                outcome_kind=row[6],
                status_code=row[7],
                duration_ms=row[8],
            )
            return dto.to_record(self._parser)
        except ValueError:
            log.warning("cache_entry_corrupted", key=key, exc_info=True)
            return None

    async def remove(self, key: str) -> None:
        try:
            await self._db.execute("DELETE FROM llms_txt_cache WHERE domain = ?", (key,))
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_remove_error", key=key, exc_info=True)

    async def clear(self) -> None:
        try:
            await self._db.execute("DELETE FROM llms_txt_cache")
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_clear_error", exc_info=True)

    async def cleanup_expired(self, grace: timedelta = timedelta(days=7)) -> int:
        """Delete rows that expired more than ``grace`` ago. Non-fatal on failure.

        Returns the number of rows deleted (0 on failure).
        """
        try:
            cutoff = (datetime.now(UTC) - grace).isoformat()
            cursor = await self._db.execute(
                "DELETE FROM llms_txt_cache WHERE expires_at < ?", (cutoff,)
            )
            deleted = cursor.rowcount
            await self._db.commit()
        except aiosqlite.Error:
            log.warning("cache_cleanup_error", exc_info=True)
            return 0
        log.info("cache_cleanup_complete", deleted=deleted)
        return deleted
