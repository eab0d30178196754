"""Tool handler for llmstxt_discover.

Receives AppState, looks the domain up through the cache (fetching on a miss)
and returns a structured dict. No MCP or FastMCP imports; server.py handles
the MCP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from llmstxtkit.errors import ErrorCode, LlmsTxtKitError
from llmstxtkit.models.fetch import FetchStatus
from llmstxtkit.models.tools import DiscoverInput, DiscoverOutput, SectionSummary
from llmstxtkit.tools.lookup import failure_fields, lookup_document

if TYPE_CHECKING:
    from llmstxtkit.state import AppState


async def handle(domain: str, state: AppState) -> dict:
    """Handle a llmstxt_discover tool call."""
    log = structlog.get_logger().bind(tool="llmstxt_discover", domain=domain)
    log.info("handler_called")

    try:
        validated = DiscoverInput(domain=domain)
    except ValueError as exc:
        raise LlmsTxtKitError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a bare host name such as 'docs.example.com'.",
        ) from exc

    lookup = await lookup_document(validated.domain, state, tool="llmstxt_discover")

    if lookup.failure is not None:
        output = DiscoverOutput(
            domain=validated.domain,
            status=lookup.failure.status,
            **failure_fields(lookup.failure),
        )
        return output.model_dump(mode="json")

    if lookup.record is None:
        raise RuntimeError("lookup returned neither a record nor a failure")
    document = lookup.record.document
    output = DiscoverOutput(
        domain=validated.domain,
        status=FetchStatus.SUCCESS,
        cached=lookup.cached,
        cached_at=lookup.record.fetched_at if lookup.cached else None,
        stale=lookup.stale,
        title=document.title,
        summary=document.summary,
        sections=[
            SectionSummary(
                name=section.name,
                is_optional=section.is_optional,
                entry_count=len(section.entries),
            )
            for section in document.sections
        ],
        diagnostics=list(document.diagnostics),
    )
    return output.model_dump(mode="json")
