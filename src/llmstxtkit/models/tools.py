"""Input and output models for the MCP tools."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, field_validator

from llmstxtkit.models.document import LlmsEntry, ParseDiagnostic
from llmstxtkit.models.fetch import FetchStatus

_MAX_DOMAIN_LENGTH = 253


def _clean_domain(v: str) -> str:
    v = v.strip().lower()
    if not v:
        raise ValueError("domain must not be empty")
    if len(v) > _MAX_DOMAIN_LENGTH:
        raise ValueError(f"domain must not exceed {_MAX_DOMAIN_LENGTH} characters")
    if "://" in v or "/" in v:
        raise ValueError("domain must be a bare host name, without scheme or path")
    return v


class DiscoverInput(BaseModel):
    domain: str

    @field_validator("domain")
    @classmethod
    def _validate_domain(cls, v: str) -> str:
        return _clean_domain(v)


class FetchSectionInput(BaseModel):
    domain: str
    section: str

    @field_validator("domain")
    @classmethod
    def _validate_domain(cls, v: str) -> str:
        return _clean_domain(v)

    @field_validator("section")
    @classmethod
    def _validate_section(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("section must not be empty")
        return v


class SectionSummary(BaseModel):
    name: str
    is_optional: bool
    entry_count: int


class _ToolOutputBase(BaseModel):
    domain: str
    status: FetchStatus
    cached: bool = False
    cached_at: datetime | None = None
    stale: bool = False
    # Populated only when status != success
    block_reason: str | None = None
    retry_after_seconds: float | None = None
    message: str | None = None


class DiscoverOutput(_ToolOutputBase):
    title: str | None = None
    summary: str | None = None
    sections: list[SectionSummary] = []
    diagnostics: list[ParseDiagnostic] = []


class FetchSectionOutput(_ToolOutputBase):
    section: str | None = None
    is_optional: bool = False
    entries: list[LlmsEntry] = []
