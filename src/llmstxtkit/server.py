"""MCP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the FastMCP lifespan context manager
- Register tools
- Start the stdio transport
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from contextlib import AsyncExitStack, asynccontextmanager, suppress
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from mcp.server.fastmcp import Context, FastMCP
from mcp.types import CallToolResult, TextContent

import llmstxtkit.tools.discover as t_discover
import llmstxtkit.tools.fetch_section as t_fetch_section
from llmstxtkit import __version__
from llmstxtkit.backing_store import FileCacheBackingStore, SqliteCacheBackingStore
from llmstxtkit.cache import LlmsTxtCache
from llmstxtkit.config import Settings
from llmstxtkit.errors import LlmsTxtKitError
from llmstxtkit.fetcher import LlmsTxtFetcher, build_http_client
from llmstxtkit.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from llmstxtkit.protocols import CacheBackingStore

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout is reserved for the MCP JSON-RPC stream
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


async def open_backing_store(
    settings: Settings, stack: AsyncExitStack
) -> CacheBackingStore | None:
    """Build the backing store selected by ``settings.cache.backend``.

    Resources it opens are registered on ``stack`` and released with it.
    """
    backend = settings.cache.backend
    if backend == "file":
        return FileCacheBackingStore(settings.cache.directory)

    if backend == "sqlite":
        db_path = Path(settings.cache.db_path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(db_path))
        stack.push_async_callback(db.close)
        store = SqliteCacheBackingStore(db)
        await store.init_db()
        await store.cleanup_expired()
        return store

    return None


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncGenerator[AppState, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings = Settings()
    setup_logging(settings)

    log.info("server_starting", version=__version__, cache_backend=settings.cache.backend)

    async with AsyncExitStack() as stack:
        http_client = build_http_client(settings.fetcher)
        stack.push_async_callback(http_client.aclose)

        backing_store = await open_backing_store(settings, stack)
        cache = LlmsTxtCache(settings.cache, backing_store)
        fetcher = LlmsTxtFetcher(http_client, settings.fetcher)

        state = AppState(
            settings=settings,
            http_client=http_client,
            cache=cache,
            fetcher=fetcher,
        )

        log.info("server_started", version=__version__)
        try:
            yield state
        finally:
            for task in list(state.background_tasks):
                task.cancel()
            for task in list(state.background_tasks):
                with suppress(asyncio.CancelledError):
                    await task
            await fetcher.aclose()
            log.info("server_stopping")


# ---------------------------------------------------------------------------
# FastMCP instance and tool registration
# ---------------------------------------------------------------------------

mcp = FastMCP("llmstxtkit", lifespan=lifespan)
# FastMCP doesn't expose a version kwarg; set it on the underlying Server
# so the MCP initialize handshake reports our version, not the SDK's.
mcp._mcp_server.version = __version__  # pyright: ignore[reportPrivateUsage]


def _serialise_tool_error(error: LlmsTxtKitError) -> CallToolResult:
    """Convert an LlmsTxtKitError to the MCP tool error result envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=json.dumps(error.to_dict()))],
        isError=True,
    )


@mcp.tool()
async def llmstxt_discover(domain: str, ctx: Context) -> object:
    """Fetch and summarise a site's llms.txt.

    Returns the title, summary, section names with entry counts and any parse
    diagnostics. When the file cannot be retrieved, returns the classified
    status (not_found, blocked, rate_limited, dns_failure, timeout, error)
    with the block reason or retry-after hint where known.
    """
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_discover.handle(domain, state)
    except LlmsTxtKitError as exc:
        log.warning(
            "tool_error",
            tool="llmstxt_discover",
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="llmstxt_discover", exc_info=True)
        raise


@mcp.tool()
async def llmstxt_fetch_section(domain: str, section: str, ctx: Context) -> object:
    """Return the link entries of one llms.txt section (name matched case-insensitively)."""
    state: AppState = ctx.request_context.lifespan_context
    try:
        return await t_fetch_section.handle(domain, section, state)
    except LlmsTxtKitError as exc:
        log.warning(
            "tool_error",
            tool="llmstxt_fetch_section",
            code=exc.code,
            message=exc.message,
            recoverable=exc.recoverable,
        )
        return _serialise_tool_error(exc)
    except Exception:
        log.error("tool_unexpected_error", tool="llmstxt_fetch_section", exc_info=True)
        raise


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    mcp.run()


if __name__ == "__main__":
    main()
