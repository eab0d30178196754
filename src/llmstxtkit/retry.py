"""Retry engine: exponential backoff with jitter around a single fetch attempt.

The loop is an explicit state machine over the attempt index
``i = 0..max_retries``: wait (skipped for ``i == 0``), execute, decide.
Sleep and randomness are injected so the schedule is testable without real
time passing.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum

import structlog

from llmstxtkit.models.fetch import FetchError, FetchOutcome, FetchTimeout

log = structlog.get_logger()

JITTER_FRACTION = 0.1

Sleep = Callable[[float], Awaitable[object]]


class RetryDecision(StrEnum):
    RETURN = "return"
    RETRY = "retry"


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 2
    base_delay_ms: int = 1000

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


def backoff_delay(
    attempt: int,
    base_delay_ms: int,
    rng: random.Random | None = None,
) -> float:
    """Seconds to wait before attempt ``attempt`` (0-based).

    ``base * 2^(attempt-1)`` milliseconds with ±10% uniform jitter, never
    negative. The first attempt never waits.
    """
    if attempt <= 0:
        return 0.0
    nominal_ms = base_delay_ms * (2 ** (attempt - 1))
    jitter_ms = (rng or random).uniform(-JITTER_FRACTION, JITTER_FRACTION) * nominal_ms
    return max(0.0, nominal_ms + jitter_ms) / 1000.0


def is_transient(outcome: FetchOutcome) -> bool:
    """Timeouts and 5xx/transport errors are worth another attempt; nothing else is."""
    if isinstance(outcome, FetchTimeout):
        return True
    if isinstance(outcome, FetchError):
        return outcome.status_code is None or outcome.status_code >= 500
    return False


def decide(outcome: FetchOutcome, attempt: int, policy: RetryPolicy) -> RetryDecision:
    if is_transient(outcome) and attempt < policy.max_retries:
        return RetryDecision.RETRY
    return RetryDecision.RETURN


async def run_with_retries(
    attempt_fn: Callable[[int], Awaitable[FetchOutcome]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    rng: random.Random | None = None,
    domain: str = "",
) -> FetchOutcome:
    """Drive ``attempt_fn`` until it returns a non-transient outcome or attempts run out.

    Returns the last attempt's outcome unchanged. Cancellation raised by
    ``sleep`` or ``attempt_fn`` propagates to the caller.
    """
    attempt = 0
    while True:
        if attempt > 0:
            delay = backoff_delay(attempt, policy.base_delay_ms, rng)
            log.debug(
                "fetch_retry_backoff",
                domain=domain,
                attempt=attempt + 1,
                max_attempts=policy.max_attempts,
                delay_seconds=round(delay, 3),
            )
            await sleep(delay)

        outcome = await attempt_fn(attempt)

        if decide(outcome, attempt, policy) is RetryDecision.RETURN:
            if is_transient(outcome):
                log.warning(
                    "fetch_retries_exhausted",
                    domain=domain,
                    max_attempts=policy.max_attempts,
                    status=outcome.status,
                )
            return outcome

        log.debug(
            "fetch_transient_failure",
            domain=domain,
            attempt=attempt + 1,
            status=outcome.status,
        )
        attempt += 1
