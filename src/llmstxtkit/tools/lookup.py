"""Cache-or-fetch lookup shared by the tool handlers.

Fresh cache hits are served directly. Stale hits are served immediately and
refreshed in the background; a failed refresh keeps the stale record. A miss
goes to the network, and only successful fetches are cached.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from llmstxtkit.models.fetch import FetchBlocked, FetchRateLimited, FetchSuccess

if TYPE_CHECKING:
    from llmstxtkit.models.cache import CacheRecord
    from llmstxtkit.models.fetch import FetchOutcome
    from llmstxtkit.state import AppState


@dataclass
class DocumentLookup:
    domain: str
    record: CacheRecord | None = None
    failure: FetchOutcome | None = None  # Set only when nothing could be served
    cached: bool = False
    stale: bool = False


def failure_fields(outcome: FetchOutcome) -> dict[str, Any]:
    """Output fields describing a non-success outcome."""
    fields: dict[str, Any] = {"message": getattr(outcome, "message", None) or None}
    if isinstance(outcome, FetchBlocked):
        fields["block_reason"] = outcome.block_reason
        fields["message"] = outcome.block_reason
    if isinstance(outcome, FetchRateLimited) and outcome.retry_after is not None:
        fields["retry_after_seconds"] = outcome.retry_after.total_seconds()
    return fields


async def lookup_document(domain: str, state: AppState, *, tool: str) -> DocumentLookup:
    log = structlog.get_logger().bind(tool=tool, domain=domain)

    if state.cache is None or state.fetcher is None:
        raise RuntimeError("cache and fetcher not initialized")

    record = await state.cache.get(domain)
    if record is not None:
        stale = state.cache.is_stale(record)
        log.info("cache_hit", stale=stale)
        if stale:
            schedule_refresh(domain, state, tool=tool)
        return DocumentLookup(domain=domain, record=record, cached=True, stale=stale)

    log.info("cache_miss_fetching")
    outcome = await state.fetcher.fetch(domain)
    if not isinstance(outcome, FetchSuccess):
        log.info("fetch_unsuccessful", status=outcome.status)
        return DocumentLookup(domain=domain, failure=outcome)

    record = await _store(domain, outcome, state)
    return DocumentLookup(domain=domain, record=record)


async def _store(domain: str, outcome: FetchSuccess, state: AppState) -> CacheRecord:
    if state.cache is None:
        raise RuntimeError("cache not initialized")
    return await state.cache.set_from_outcome(domain, outcome)


def schedule_refresh(domain: str, state: AppState, *, tool: str) -> None:
    """Start a background refresh for ``domain`` unless one is already running."""
    if domain in state.refreshing:
        return
    state.refreshing.add(domain)
    task = asyncio.create_task(_background_refresh(domain, state, tool=tool))
    state.background_tasks.add(task)
    task.add_done_callback(state.background_tasks.discard)


async def _background_refresh(domain: str, state: AppState, *, tool: str) -> None:
    """Re-fetch a stale entry. Fire-and-forget; all exceptions are caught and logged."""
    log = structlog.get_logger().bind(tool=tool, domain=domain)
    log.info("stale_refresh_started")
    try:
        if state.fetcher is None:
            log.warning("stale_refresh_skipped", reason="fetcher_not_initialized")
            return
        outcome = await state.fetcher.fetch(domain)
        if isinstance(outcome, FetchSuccess):
            await _store(domain, outcome, state)
            log.info("stale_refresh_complete")
        else:
            log.info("stale_refresh_unsuccessful", status=outcome.status)
    except Exception:
        log.warning("stale_refresh_failed", exc_info=True)
    finally:
        state.refreshing.discard(domain)
