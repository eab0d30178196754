"""Tool handler for llmstxt_fetch_section.

Returns the entries of a single llms.txt section. Section names match
case-insensitively; an unknown name raises SECTION_NOT_FOUND listing the
sections that do exist.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from llmstxtkit.errors import ErrorCode, LlmsTxtKitError
from llmstxtkit.models.fetch import FetchStatus
from llmstxtkit.models.tools import FetchSectionInput, FetchSectionOutput
from llmstxtkit.tools.lookup import failure_fields, lookup_document

if TYPE_CHECKING:
    from llmstxtkit.state import AppState


async def handle(domain: str, section: str, state: AppState) -> dict:
    """Handle a llmstxt_fetch_section tool call."""
    log = structlog.get_logger().bind(tool="llmstxt_fetch_section", domain=domain, section=section)
    log.info("handler_called")

    try:
        validated = FetchSectionInput(domain=domain, section=section)
    except ValueError as exc:
        raise LlmsTxtKitError(
            code=ErrorCode.INVALID_INPUT,
            message=str(exc),
            suggestion="Provide a bare host name and a non-empty section name.",
        ) from exc

    lookup = await lookup_document(validated.domain, state, tool="llmstxt_fetch_section")

    if lookup.failure is not None:
        output = FetchSectionOutput(
            domain=validated.domain,
            status=lookup.failure.status,
            **failure_fields(lookup.failure),
        )
        return output.model_dump(mode="json")

    if lookup.record is None:
        raise RuntimeError("lookup returned neither a record nor a failure")
    document = lookup.record.document
    found = document.find_section(validated.section)
    if found is None:
        available = [s.name for s in document.sections]
        raise LlmsTxtKitError(
            code=ErrorCode.SECTION_NOT_FOUND,
            message=f"Section '{validated.section}' not found in llms.txt for {validated.domain}.",
            suggestion=(
                f"Available sections: {', '.join(available)}."
                if available
                else "This llms.txt has no sections; call llmstxt_discover to inspect it."
            ),
            recoverable=False,
        )

    output = FetchSectionOutput(
        domain=validated.domain,
        status=FetchStatus.SUCCESS,
        cached=lookup.cached,
        cached_at=lookup.record.fetched_at if lookup.cached else None,
        stale=lookup.stale,
        section=found.name,
        is_optional=found.is_optional,
        entries=list(found.entries),
    )
    return output.model_dump(mode="json")
