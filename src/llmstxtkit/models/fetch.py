"""Classified result of fetching one domain's llms.txt.

``FetchOutcome`` is a discriminated union on ``kind``: exactly one variant is
ever populated, so callers branch with ``match`` or ``isinstance`` rather than
checking which optional fields happen to be set.
"""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from llmstxtkit.models.document import LlmsDocument


class FetchStatus(StrEnum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    RATE_LIMITED = "rate_limited"
    DNS_FAILURE = "dns_failure"
    TIMEOUT = "timeout"
    ERROR = "error"


class _OutcomeBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain: str
    duration: timedelta = timedelta(0)  # Whole retry sequence, not one attempt

    @field_validator("duration")
    @classmethod
    def _duration_not_negative(cls, v: timedelta) -> timedelta:
        if v < timedelta(0):
            raise ValueError("duration must not be negative")
        return v

    @property
    def status(self) -> FetchStatus:
        return FetchStatus(self.kind)  # type: ignore[attr-defined]

    def with_duration(self, duration: timedelta) -> FetchOutcome:
        return self.model_copy(update={"duration": max(duration, timedelta(0))})  # type: ignore[return-value]


class FetchSuccess(_OutcomeBase):
    kind: Literal[FetchStatus.SUCCESS] = FetchStatus.SUCCESS
    document: LlmsDocument
    raw_body: str
    status_code: int
    headers: dict[str, str] = {}


class FetchNotFound(_OutcomeBase):
    kind: Literal[FetchStatus.NOT_FOUND] = FetchStatus.NOT_FOUND
    status_code: int = 404
    headers: dict[str, str] = {}
    message: str = ""


class FetchBlocked(_OutcomeBase):
    kind: Literal[FetchStatus.BLOCKED] = FetchStatus.BLOCKED
    status_code: int
    headers: dict[str, str] = {}
    raw_body: str | None = None
    block_reason: str | None = None


class FetchRateLimited(_OutcomeBase):
    kind: Literal[FetchStatus.RATE_LIMITED] = FetchStatus.RATE_LIMITED
    status_code: int = 429
    headers: dict[str, str] = {}
    retry_after: timedelta | None = None  # None when the header is absent or unparseable
    message: str = ""


class FetchDnsFailure(_OutcomeBase):
    kind: Literal[FetchStatus.DNS_FAILURE] = FetchStatus.DNS_FAILURE
    message: str = ""


class FetchTimeout(_OutcomeBase):
    kind: Literal[FetchStatus.TIMEOUT] = FetchStatus.TIMEOUT
    message: str = ""


class FetchError(_OutcomeBase):
    kind: Literal[FetchStatus.ERROR] = FetchStatus.ERROR
    status_code: int | None = None  # None for transport failures
    headers: dict[str, str] | None = None
    raw_body: str | None = None
    message: str = ""


FetchOutcome = Annotated[
    FetchSuccess
    | FetchNotFound
    | FetchBlocked
    | FetchRateLimited
    | FetchDnsFailure
    | FetchTimeout
    | FetchError,
    Field(discriminator="kind"),
]

fetch_outcome_adapter: TypeAdapter[FetchOutcome] = TypeAdapter(FetchOutcome)
