"""Integration tests for MCP tool handlers.

Tests the full path through each handler: input validation → cache/fetch
→ output serialisation. Uses a real AppState with respx-mocked HTTP.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import httpx
import pytest
import respx

from llmstxtkit.errors import ErrorCode, LlmsTxtKitError
from llmstxtkit.tools.lookup import DocumentLookup
from llmstxtkit.tools.discover import handle as discover_handle
from llmstxtkit.tools.fetch_section import handle as fetch_section_handle

if TYPE_CHECKING:
    from llmstxtkit.state import AppState
    from tests.factories import FakeClock

URL = "https://docs.example.com/llms.txt"


async def _drain(state: AppState) -> None:
    """Wait for background refreshes started by the handlers."""
    while state.background_tasks:
        await asyncio.gather(*state.background_tasks)


class TestDiscoverHandler:
    @respx.mock
    async def test_cache_miss_fetches_from_network(
        self, app_state: AppState, sample_llms_txt: str
    ) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text=sample_llms_txt))

        result = await discover_handle("docs.example.com", app_state)

        assert result["status"] == "success"
        assert result["title"] == "Example Docs"
        assert result["summary"] == "Example is a library for building examples."
        assert result["sections"] == [
            {"name": "Docs", "is_optional": False, "entry_count": 2},
            {"name": "Optional", "is_optional": True, "entry_count": 1},
        ]
        assert result["diagnostics"] == []
        assert result["cached"] is False
        assert result["cached_at"] is None
        assert result["stale"] is False

    @respx.mock
    async def test_second_call_served_from_cache(
        self, app_state: AppState, sample_llms_txt: str
    ) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200, text=sample_llms_txt))

        await discover_handle("docs.example.com", app_state)
        result = await discover_handle("DOCS.example.com", app_state)

        assert route.call_count == 1
        assert result["cached"] is True
        assert result["cached_at"] is not None
        assert result["stale"] is False

    @respx.mock
    async def test_stale_hit_served_and_refreshed(
        self, app_state: AppState, clock: FakeClock, sample_llms_txt: str
    ) -> None:
        route = respx.get(URL).mock(
            side_effect=[
                httpx.Response(200, text=sample_llms_txt),
                httpx.Response(200, text="# Refreshed Docs\n"),
            ]
        )
        await discover_handle("docs.example.com", app_state)
        clock.advance(hours=2)

        result = await discover_handle("docs.example.com", app_state)
        assert result["stale"] is True
        assert result["title"] == "Example Docs"

        await _drain(app_state)
        assert route.call_count == 2
        refreshed = await discover_handle("docs.example.com", app_state)
        assert refreshed["title"] == "Refreshed Docs"

    @respx.mock
    async def test_failed_refresh_keeps_stale_entry(
        self, app_state: AppState, clock: FakeClock, sample_llms_txt: str
    ) -> None:
        respx.get(URL).mock(
            side_effect=[
                httpx.Response(200, text=sample_llms_txt),
                httpx.Response(404),
                httpx.Response(404),
            ]
        )
        await discover_handle("docs.example.com", app_state)
        clock.advance(hours=2)

        await discover_handle("docs.example.com", app_state)
        await _drain(app_state)

        result = await discover_handle("docs.example.com", app_state)
        assert result["title"] == "Example Docs"
        assert result["stale"] is True
        await _drain(app_state)

    @respx.mock
    async def test_not_found(self, app_state: AppState) -> None:
        respx.get(URL).mock(return_value=httpx.Response(404))

        result = await discover_handle("docs.example.com", app_state)

        assert result["status"] == "not_found"
        assert "HTTP 404" in result["message"]
        assert result["sections"] == []

    @respx.mock
    async def test_blocked_reports_reason(self, app_state: AppState) -> None:
        respx.get(URL).mock(return_value=httpx.Response(403, headers={"cf-ray": "abc"}))

        result = await discover_handle("docs.example.com", app_state)

        assert result["status"] == "blocked"
        assert "Cloudflare" in result["block_reason"]

    @respx.mock
    async def test_rate_limited_reports_retry_after(self, app_state: AppState) -> None:
        respx.get(URL).mock(return_value=httpx.Response(429, headers={"retry-after": "120"}))

        result = await discover_handle("docs.example.com", app_state)

        assert result["status"] == "rate_limited"
        assert result["retry_after_seconds"] == 120.0

    @respx.mock
    async def test_failures_are_not_cached(self, app_state: AppState) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(404))

        await discover_handle("docs.example.com", app_state)
        await discover_handle("docs.example.com", app_state)

        assert route.call_count == 2

    @pytest.mark.parametrize("domain", ["", "https://docs.example.com", "docs.example.com/x"])
    async def test_invalid_domain_raises_invalid_input(
        self, app_state: AppState, domain: str
    ) -> None:
        with pytest.raises(LlmsTxtKitError) as exc_info:
            await discover_handle(domain, app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert exc_info.value.recoverable is False


class TestFetchSectionHandler:
    @respx.mock
    async def test_returns_entries(self, app_state: AppState, sample_llms_txt: str) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text=sample_llms_txt))

        result = await fetch_section_handle("docs.example.com", "docs", app_state)

        assert result["status"] == "success"
        assert result["section"] == "Docs"
        assert result["is_optional"] is False
        assert result["entries"][0] == {
            "url": "https://docs.example.com/quickstart.md",
            "title": "Quickstart",
            "description": "Install and run your first example",
        }
        assert len(result["entries"]) == 2

    @respx.mock
    async def test_optional_section(self, app_state: AppState, sample_llms_txt: str) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text=sample_llms_txt))

        result = await fetch_section_handle("docs.example.com", "Optional", app_state)

        assert result["is_optional"] is True
        assert [e["title"] for e in result["entries"]] == ["Changelog"]

    @respx.mock
    async def test_unknown_section_lists_available(
        self, app_state: AppState, sample_llms_txt: str
    ) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text=sample_llms_txt))

        with pytest.raises(LlmsTxtKitError) as exc_info:
            await fetch_section_handle("docs.example.com", "Tutorials", app_state)

        assert exc_info.value.code == ErrorCode.SECTION_NOT_FOUND
        assert "Docs, Optional" in exc_info.value.suggestion

    @respx.mock
    async def test_fetch_failure_reported(self, app_state: AppState) -> None:
        respx.get(URL).mock(side_effect=httpx.ConnectError("Name or service not known"))

        result = await fetch_section_handle("docs.example.com", "Docs", app_state)

        assert result["status"] == "dns_failure"
        assert result["entries"] == []

    async def test_empty_section_raises_invalid_input(self, app_state: AppState) -> None:
        with pytest.raises(LlmsTxtKitError) as exc_info:
            await fetch_section_handle("docs.example.com", "  ", app_state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT


class TestEmptyLookup:
    """A lookup with neither a record nor a failure is a programming error."""

    async def _empty_lookup(self, domain: str, _state: AppState, *, tool: str) -> DocumentLookup:
        return DocumentLookup(domain=domain)

    async def test_discover_raises_runtime_error(
        self, app_state: AppState, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("llmstxtkit.tools.discover.lookup_document", self._empty_lookup)
        with pytest.raises(RuntimeError, match="neither a record nor a failure"):
            await discover_handle("docs.example.com", app_state)

    async def test_fetch_section_raises_runtime_error(
        self, app_state: AppState, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("llmstxtkit.tools.fetch_section.lookup_document", self._empty_lookup)
        with pytest.raises(RuntimeError, match="neither a record nor a failure"):
            await fetch_section_handle("docs.example.com", "Docs", app_state)
