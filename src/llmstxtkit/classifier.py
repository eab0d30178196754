"""Map a completed or failed HTTP exchange onto a ``FetchOutcome``.

Decision table for responses, in priority order:
  2xx → Success (body handed to the parser)
  404 → NotFound
  429 → RateLimited (Retry-After parsed)
  403 → Blocked (vendor diagnosis, generic reason if none matched)
  503 → Blocked if a vendor fingerprint matched, otherwise Error (transient)
  any other status → Error

Transport exceptions become DnsFailure, Timeout or Error. Caller cancellation
is never passed in here; it propagates past the classifier untouched.
"""

from __future__ import annotations

import email.utils
import socket
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta

import httpx

from llmstxtkit.models.document import LlmsDocument, ParseDiagnostic
from llmstxtkit.models.fetch import (
    FetchBlocked,
    FetchDnsFailure,
    FetchError,
    FetchNotFound,
    FetchOutcome,
    FetchRateLimited,
    FetchSuccess,
    FetchTimeout,
)
from llmstxtkit.waf import identify_block

DocumentParser = Callable[[str], tuple[LlmsDocument, tuple[ParseDiagnostic, ...]]]

GENERIC_BLOCK_REASON = (
    "Request blocked (HTTP 403 Forbidden). WAF vendor could not be identified."
)

_DNS_ERRNOS: frozenset[int] = frozenset(
    code
    for code in (
        getattr(socket, "EAI_NONAME", None),
        getattr(socket, "EAI_AGAIN", None),
        getattr(socket, "EAI_NODATA", None),  # Not defined on every platform
        getattr(socket, "EAI_FAIL", None),
    )
    if code is not None
)

_DNS_MESSAGE_MARKERS: tuple[str, ...] = (
    "name or service not known",
    "nodename nor servname provided",
    "no such host is known",
    "temporary failure in name resolution",
    "no address associated with hostname",
    "getaddrinfo failed",
)


def llms_txt_url(domain: str) -> str:
    return f"https://{domain}/llms.txt"


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> timedelta | None:
    """Convert a Retry-After header into a wait.

    Accepts delta-seconds or an HTTP date. Dates in the past yield zero.
    Returns None for a missing or unparseable header.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None

    # isdigit() alone accepts non-ASCII digits such as "²" that int() rejects
    if value.isascii() and value.isdigit():
        try:
            return timedelta(seconds=int(value))
        except OverflowError:
            return timedelta.max

    try:
        when = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)

    return max(when - (now or datetime.now(UTC)), timedelta(0))


def is_dns_failure(exc: BaseException) -> bool:
    """Return True if the exception (or anything in its cause chain) is a resolver failure."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror) and current.errno in _DNS_ERRNOS:
            return True
        message = str(current).lower()
        if any(marker in message for marker in _DNS_MESSAGE_MARKERS):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_response(
    domain: str,
    status_code: int,
    headers: Mapping[str, str],
    body: str | None,
    *,
    parser: DocumentParser,
    duration: timedelta = timedelta(0),
) -> FetchOutcome:
    """Classify a response whose status line and headers were received."""
    url = llms_txt_url(domain)
    headers = dict(headers)

    if 200 <= status_code < 300:
        raw_body = body or ""
        document, _ = parser(raw_body)
        return FetchSuccess(
            domain=domain,
            duration=duration,
            document=document,
            raw_body=raw_body,
            status_code=status_code,
            headers=headers,
        )

    if status_code == 404:
        return FetchNotFound(
            domain=domain,
            duration=duration,
            status_code=status_code,
            headers=headers,
            message=f"No llms.txt file found at {url} (HTTP 404).",
        )

    if status_code == 429:
        return FetchRateLimited(
            domain=domain,
            duration=duration,
            status_code=status_code,
            headers=headers,
            retry_after=parse_retry_after(headers.get("retry-after")),
            message=f"Rate limited by {domain} (HTTP 429).",
        )

    if status_code == 403:
        return FetchBlocked(
            domain=domain,
            duration=duration,
            status_code=status_code,
            headers=headers,
            raw_body=body,
            block_reason=identify_block(headers, body) or GENERIC_BLOCK_REASON,
        )

    if status_code == 503:
        block_reason = identify_block(headers, body)
        if block_reason is not None:
            return FetchBlocked(
                domain=domain,
                duration=duration,
                status_code=status_code,
                headers=headers,
                raw_body=body,
                block_reason=block_reason,
            )
        return FetchError(
            domain=domain,
            duration=duration,
            status_code=status_code,
            headers=headers,
            raw_body=body,
            message=f"Server returned 503 Service Unavailable for {url}.",
        )

    return FetchError(
        domain=domain,
        duration=duration,
        status_code=status_code,
        headers=headers,
        raw_body=body,
        message=f"Unexpected HTTP {status_code} from {url}.",
    )


def classify_exception(
    domain: str,
    exc: Exception,
    *,
    timeout_seconds: float,
    duration: timedelta = timedelta(0),
) -> FetchOutcome:
    """Classify a transport failure that happened before a response was received."""
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return FetchTimeout(
            domain=domain,
            duration=duration,
            message=f"Request timed out after {timeout_seconds:g} seconds.",
        )

    if is_dns_failure(exc):
        return FetchDnsFailure(
            domain=domain,
            duration=duration,
            message=f'DNS resolution failed for "{domain}": {exc}',
        )

    status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
    return FetchError(
        domain=domain,
        duration=duration,
        status_code=status_code,
        message=f"HTTP request failed: {exc}",
    )
