from __future__ import annotations

from llmstxtkit.models.cache import AccessStamp, CacheRecord
from llmstxtkit.models.document import (
    DiagnosticSeverity,
    LlmsDocument,
    LlmsEntry,
    LlmsSection,
    ParseDiagnostic,
)
from llmstxtkit.models.fetch import (
    FetchBlocked,
    FetchDnsFailure,
    FetchError,
    FetchNotFound,
    FetchOutcome,
    FetchRateLimited,
    FetchStatus,
    FetchSuccess,
    FetchTimeout,
)

__all__ = [
    # document
    "DiagnosticSeverity",
    "LlmsDocument",
    "LlmsEntry",
    "LlmsSection",
    "ParseDiagnostic",
    # fetch
    "FetchStatus",
    "FetchOutcome",
    "FetchSuccess",
    "FetchNotFound",
    "FetchBlocked",
    "FetchRateLimited",
    "FetchDnsFailure",
    "FetchTimeout",
    "FetchError",
    # cache
    "AccessStamp",
    "CacheRecord",
]
