from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_DOMAIN = "INVALID_DOMAIN"
    FETCHER_CLOSED = "FETCHER_CLOSED"
    INVALID_INPUT = "INVALID_INPUT"
    SECTION_NOT_FOUND = "SECTION_NOT_FOUND"


class LlmsTxtKitError(Exception):
    """Raised for programmer errors and invalid tool input.

    Network and HTTP conditions are never reported through this exception;
    they come back as a ``FetchOutcome`` variant. The tool layer catches it
    and serialises it into the MCP error response.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }
