"""Integration test fixtures.

Provides a fully wired AppState: in-memory cache on a manual clock, a
fetcher on a real httpx client (mocked per test with respx) and a no-op
retry sleep.
"""

from __future__ import annotations

import asyncio
import os
from typing import TYPE_CHECKING

import httpx
import pytest

from llmstxtkit.cache import LlmsTxtCache
from llmstxtkit.config import CacheSettings, Settings
from llmstxtkit.fetcher import LlmsTxtFetcher
from llmstxtkit.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from tests.factories import FakeClock


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture()
def subprocess_env(tmp_path: Path) -> dict[str, str]:
    """Baseline env for subprocess-based MCP tests; isolates cache paths in tmp."""
    env = os.environ.copy()
    env["LLMSTXTKIT__CACHE__BACKEND"] = "memory"
    env["LLMSTXTKIT__CACHE__DIRECTORY"] = str(tmp_path / "cache")
    env["LLMSTXTKIT__CACHE__DB_PATH"] = str(tmp_path / "cache.db")
    return env


@pytest.fixture()
async def app_state(clock: FakeClock) -> AsyncGenerator[AppState, None]:
    settings = Settings(cache=CacheSettings(ttl_seconds=3600))
    async with httpx.AsyncClient() as client:
        state = AppState(
            settings=settings,
            http_client=client,
            cache=LlmsTxtCache(settings.cache, clock=clock),
            fetcher=LlmsTxtFetcher(client, settings.fetcher, sleep=_no_sleep),
        )
        yield state
        for task in list(state.background_tasks):
            task.cancel()
        await asyncio.gather(*state.background_tasks, return_exceptions=True)
