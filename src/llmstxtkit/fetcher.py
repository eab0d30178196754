"""HTTP fetcher for ``https://{domain}/llms.txt``.

All network I/O goes through one LlmsTxtFetcher, which either receives an
httpx.AsyncClient via constructor injection (the caller owns its lifecycle)
or builds and owns its own. Every outcome, including network failure, comes
back as a ``FetchOutcome``; only programmer errors raise.
"""

from __future__ import annotations

import asyncio
import time
from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import structlog

from llmstxtkit.classifier import (
    DocumentParser,
    classify_exception,
    classify_response,
    llms_txt_url,
)
from llmstxtkit.config import DEFAULT_ACCEPT, FetcherSettings
from llmstxtkit.errors import ErrorCode, LlmsTxtKitError
from llmstxtkit.models.fetch import FetchBlocked, FetchSuccess
from llmstxtkit.parser import parse
from llmstxtkit.retry import RetryPolicy, Sleep, is_transient, run_with_retries

if TYPE_CHECKING:
    import random
    from collections.abc import Callable

    from llmstxtkit.models.fetch import FetchOutcome

log = structlog.get_logger()


def build_http_client(settings: FetcherSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx client.

    No client-level timeout: the fetcher applies its own per-attempt deadline.
    """
    settings = settings or FetcherSettings()
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(None),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def _extract_headers(response: httpx.Response) -> dict[str, str]:
    """Flatten response headers to lower-cased names, joining repeats with ``", "``."""
    headers: dict[str, str] = {}
    for name, value in response.headers.multi_items():
        key = name.lower()
        headers[key] = f"{headers[key]}, {value}" if key in headers else value
    return headers


def _decode(payload: bytes, response: httpx.Response) -> str:
    try:
        return payload.decode(response.encoding or "utf-8", errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


class LlmsTxtFetcher:
    """Fetches llms.txt files with per-attempt timeouts, size limits and retries."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        settings: FetcherSettings | None = None,
        *,
        parser: DocumentParser = parse,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or FetcherSettings()
        self._owns_client = client is None
        self._client = client if client is not None else build_http_client(self._settings)
        self._parser = parser
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self._closed = False
        self.retry_policy = RetryPolicy(
            max_retries=self._settings.max_retries,
            base_delay_ms=self._settings.retry_delay_ms,
        )

    @property
    def settings(self) -> FetcherSettings:
        return self._settings

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> LlmsTxtFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release the client if this fetcher created it. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, domain: str) -> FetchOutcome:
        """Fetch and classify ``https://{domain}/llms.txt``.

        Transient failures are retried internally; only the final outcome is
        returned. Cancelling the calling task aborts the whole operation and
        raises ``asyncio.CancelledError`` instead of returning an outcome.
        """
        if not isinstance(domain, str) or not domain.strip():
            raise LlmsTxtKitError(
                code=ErrorCode.INVALID_DOMAIN,
                message="domain must be a non-empty string",
                suggestion="Pass a bare host name such as 'docs.example.com'.",
            )
        if self._closed:
            raise LlmsTxtKitError(
                code=ErrorCode.FETCHER_CLOSED,
                message="fetch() called on a closed LlmsTxtFetcher",
                suggestion="Create a new fetcher; a closed one cannot be reused.",
            )

        domain = domain.strip()
        url = self._validated_url(domain)
        fetch_log = log.bind(domain=domain)
        fetch_log.debug(
            "fetch_started",
            url=url,
            timeout_seconds=self._settings.timeout_seconds,
            max_retries=self.retry_policy.max_retries,
        )

        started = self._clock()

        async def attempt(_index: int) -> FetchOutcome:
            return await self._fetch_once(url, domain)

        outcome = await run_with_retries(
            attempt,
            self.retry_policy,
            sleep=self._sleep,
            rng=self._rng,
            domain=domain,
        )
        outcome = outcome.with_duration(timedelta(seconds=self._clock() - started))

        if isinstance(outcome, FetchSuccess):
            fetch_log.info(
                "fetch_complete",
                status_code=outcome.status_code,
                duration_ms=round(outcome.duration.total_seconds() * 1000, 1),
                body_size=len(outcome.raw_body),
            )
        elif isinstance(outcome, FetchBlocked):
            fetch_log.warning(
                "fetch_blocked",
                status_code=outcome.status_code,
                block_reason=outcome.block_reason,
            )
        elif not is_transient(outcome):
            fetch_log.debug("fetch_non_transient_result", status=outcome.status)
        return outcome

    def _validated_url(self, domain: str) -> str:
        url = llms_txt_url(domain)
        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise LlmsTxtKitError(
                code=ErrorCode.INVALID_DOMAIN,
                message=f"Invalid domain {domain!r}: {exc}",
                suggestion="Pass a bare host name without scheme or path.",
            ) from exc
        if not parsed.host or parsed.path != "/llms.txt":
            raise LlmsTxtKitError(
                code=ErrorCode.INVALID_DOMAIN,
                message=f"Invalid domain {domain!r}",
                suggestion="Pass a bare host name without scheme or path.",
            )
        return url

    def _request_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._settings.user_agent,
            "Accept": self._settings.accept or DEFAULT_ACCEPT,
        }

    async def _fetch_once(self, url: str, domain: str) -> FetchOutcome:
        """One HTTP exchange: send, read a bounded body, classify."""
        try:
            async with asyncio.timeout(self._settings.timeout_seconds):
                async with self._client.stream(
                    "GET", url, headers=self._request_headers()
                ) as response:
                    headers = _extract_headers(response)
                    body = await self._read_body(response, domain)
                    status_code = response.status_code
        except TimeoutError as exc:
            # Our own deadline fired; caller cancellation is CancelledError and passes through.
            log.warning(
                "fetch_attempt_timeout",
                domain=domain,
                timeout_seconds=self._settings.timeout_seconds,
            )
            return classify_exception(domain, exc, timeout_seconds=self._settings.timeout_seconds)
        except httpx.HTTPError as exc:
            log.warning("fetch_attempt_failed", domain=domain, error=str(exc))
            return classify_exception(domain, exc, timeout_seconds=self._settings.timeout_seconds)

        return classify_response(domain, status_code, headers, body, parser=self._parser)

    async def _read_body(self, response: httpx.Response, domain: str) -> str | None:
        """Read at most ``max_response_size_bytes`` of the body.

        Returns None when Content-Length already exceeds the limit or the body
        is empty. An oversized streamed body is cut at the limit.
        """
        limit = self._settings.max_response_size_bytes

        content_length = response.headers.get("content-length", "")
        if content_length.isdigit() and int(content_length) > limit:
            log.warning(
                "response_too_large",
                domain=domain,
                content_length=int(content_length),
                limit=limit,
            )
            return None

        buffer = bytearray()
        async for chunk in response.aiter_bytes():
            remaining = limit - len(buffer)
            if len(chunk) > remaining:
                buffer.extend(chunk[:remaining])
                log.warning("response_truncated", domain=domain, limit=limit)
                break
            buffer.extend(chunk)

        if not buffer:
            return None
        return _decode(bytes(buffer), response)
