from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class DiagnosticSeverity(StrEnum):
    WARNING = "warning"
    ERROR = "error"


class ParseDiagnostic(BaseModel):
    """A problem noticed while parsing. Never fatal."""

    model_config = ConfigDict(frozen=True)

    severity: DiagnosticSeverity
    message: str
    line: int | None = None  # 1-based; None for document-level findings


class LlmsEntry(BaseModel):
    """One ``- [title](url): description`` link inside a section."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str | None = None
    description: str | None = None


class LlmsSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    is_optional: bool = False  # True only for the "## Optional" section
    entries: tuple[LlmsEntry, ...] = ()


class LlmsDocument(BaseModel):
    """Parsed llms.txt file."""

    model_config = ConfigDict(frozen=True)

    title: str  # Empty string when the file has no H1
    summary: str | None = None
    freeform_content: str | None = None
    sections: tuple[LlmsSection, ...] = ()
    diagnostics: tuple[ParseDiagnostic, ...] = ()
    raw_content: str = ""

    def find_section(self, name: str) -> LlmsSection | None:
        """Case-insensitive section lookup."""
        wanted = name.strip().casefold()
        for section in self.sections:
            if section.name.casefold() == wanted:
                return section
        return None
