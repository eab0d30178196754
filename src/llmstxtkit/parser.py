"""llms.txt parser.

Single-pass algorithm over the Markdown subset used by llms.txt: one H1
title, an optional blockquote summary, free-form text, then H2 sections of
link entries. Never rejects input: anything unexpected becomes a diagnostic
on the returned document. Lines inside fenced code blocks are never treated
as structure.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

import structlog

from llmstxtkit.models.document import (
    DiagnosticSeverity,
    LlmsDocument,
    LlmsEntry,
    LlmsSection,
    ParseDiagnostic,
)

log = structlog.get_logger()

_H1_RE = re.compile(r"^#\s+(.+)$")
_H2_RE = re.compile(r"^##\s+(.+)$")
_BLOCKQUOTE_RE = re.compile(r"^>\s*(.+)$")
_ENTRY_RE = re.compile(r"^-\s*\[([^\]]+)\]\(([^)]+)\)(?::\s*(.*))?$")

OPTIONAL_SECTION = "Optional"


def _is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


def parse(content: str) -> tuple[LlmsDocument, tuple[ParseDiagnostic, ...]]:
    """Parse llms.txt content into a document plus its diagnostics.

    The diagnostics are also available as ``document.diagnostics``; they are
    returned separately so callers can treat them as a side channel.
    """
    diagnostics: list[ParseDiagnostic] = []

    title: str | None = None
    summary: str | None = None
    freeform: list[str] = []
    sections: list[LlmsSection] = []

    in_freeform = False
    section_name: str | None = None
    entries: list[LlmsEntry] = []

    in_code_block = False
    fence: str | None = None

    for lineno, raw_line in enumerate(content.split("\n"), start=1):
        line = raw_line.rstrip("\r")
        stripped = line.strip()

        # Rule 1: code block tracking
        if stripped.startswith("```") or stripped.startswith("~~~"):
            current_fence = stripped[:3]
            if not in_code_block:
                in_code_block = True
                fence = current_fence
            elif current_fence == fence:
                in_code_block = False
                fence = None
            if in_freeform:
                freeform.append(line)
            continue

        if in_code_block:
            if in_freeform:
                freeform.append(line)
            continue

        # Rule 2: title
        h1 = _H1_RE.match(line)
        if h1:
            if title is not None:
                diagnostics.append(
                    ParseDiagnostic(
                        severity=DiagnosticSeverity.ERROR,
                        message="Multiple H1 headings found; llms.txt allows exactly one title.",
                        line=lineno,
                    )
                )
                continue
            title = h1.group(1).strip()
            continue

        # Rule 3: first blockquote after the title, before any section
        if title is not None and summary is None and section_name is None:
            quote = _BLOCKQUOTE_RE.match(line)
            if quote:
                summary = quote.group(1).strip()
                in_freeform = True
                continue

        # Rule 4: section delimiter
        h2 = _H2_RE.match(line)
        if h2:
            in_freeform = False
            if section_name is not None:
                sections.append(_finish_section(section_name, entries))
                entries = []
            section_name = h2.group(1).strip()
            continue

        # Rule 5: entries inside a section; other lines are section prose
        if section_name is not None:
            if not stripped:
                continue
            entry = _ENTRY_RE.match(line)
            if entry is None:
                continue
            url = entry.group(2).strip()
            if not _is_absolute_url(url):
                diagnostics.append(
                    ParseDiagnostic(
                        severity=DiagnosticSeverity.WARNING,
                        message=f'Entry URL is not a valid absolute URL: "{url}".',
                        line=lineno,
                    )
                )
                continue
            description = (entry.group(3) or "").strip() or None
            entries.append(LlmsEntry(url=url, title=entry.group(1).strip(), description=description))
            continue

        # Rule 6: free-form content between the title block and the first section
        if title is not None and stripped:
            in_freeform = True
        if in_freeform:
            freeform.append(line)

    if section_name is not None:
        sections.append(_finish_section(section_name, entries))

    if title is None:
        diagnostics.append(
            ParseDiagnostic(
                severity=DiagnosticSeverity.ERROR,
                message="No H1 title found; llms.txt requires an H1 heading as the document title.",
            )
        )

    freeform_content = "\n".join(freeform).strip() or None

    if diagnostics:
        log.debug(
            "parse_diagnostics",
            errors=sum(d.severity == DiagnosticSeverity.ERROR for d in diagnostics),
            warnings=sum(d.severity == DiagnosticSeverity.WARNING for d in diagnostics),
        )

    document = LlmsDocument(
        title=title or "",
        summary=summary,
        freeform_content=freeform_content,
        sections=tuple(sections),
        diagnostics=tuple(diagnostics),
        raw_content=content,
    )
    return document, document.diagnostics


def parse_document(content: str) -> LlmsDocument:
    """Convenience wrapper around :func:`parse` that drops the side channel."""
    document, _ = parse(content)
    return document


def _finish_section(name: str, entries: list[LlmsEntry]) -> LlmsSection:
    return LlmsSection(name=name, is_optional=name == OPTIONAL_SECTION, entries=tuple(entries))
