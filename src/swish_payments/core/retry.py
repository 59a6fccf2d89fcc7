"""
Retry decisions for the transport attempt loop.

The policy is a pure function of the attempt number, the retry budget and the
outcome of the last attempt. It never sleeps; the transport does the waiting.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import FrozenSet, Optional, Protocol, Tuple, Type, Union

import requests

from .response import ResponseEnvelope

__all__ = [
    "RETRYABLE_STATUS_CODES",
    "RetryDecision",
    "RetryPolicy",
    "RetryState",
]

RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})
MAX_RETRY_AFTER_SECONDS = 30.0
BASE_DELAY_MS = 1000
JITTER_CEILING_MS = 500

Outcome = Union[ResponseEnvelope, BaseException]


class RandomSource(Protocol):
    def randrange(self, start: int, stop: int) -> int:
        ...


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay_ms: int = 0


@dataclass
class RetryState:
    """Attempt bookkeeping for a single ``send`` call."""

    max_retries: int
    attempt: int = 0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")

    def advance(self) -> None:
        if self.attempt >= self.max_retries:
            raise RuntimeError("Retry budget exhausted")
        self.attempt += 1


class RetryPolicy:
    def __init__(
        self,
        *,
        rng: Optional[RandomSource] = None,
        retryable_exceptions: Tuple[Type[BaseException], ...] = (requests.ConnectionError,),
    ) -> None:
        self._rng = rng or random.Random()
        self._retryable_exceptions = retryable_exceptions

    def should_retry(self, attempt: int, max_retries: int, outcome: Outcome) -> RetryDecision:
        if attempt >= max_retries:
            return RetryDecision(retry=False)
        if not self.is_retryable(outcome):
            return RetryDecision(retry=False)
        return RetryDecision(retry=True, delay_ms=self.delay_ms(attempt, outcome))

    def is_retryable(self, outcome: Outcome) -> bool:
        if isinstance(outcome, ResponseEnvelope):
            return outcome.status_code in RETRYABLE_STATUS_CODES
        return isinstance(outcome, self._retryable_exceptions)

    def delay_ms(self, attempt: int, outcome: Optional[Outcome] = None) -> int:
        if isinstance(outcome, ResponseEnvelope) and outcome.status_code == 429:
            retry_after = _parse_retry_after(outcome.header("Retry-After"))
            if retry_after is not None:
                return int(min(retry_after, MAX_RETRY_AFTER_SECONDS) * 1000)

        jitter = self._rng.randrange(0, JITTER_CEILING_MS)
        return BASE_DELAY_MS * (2 ** attempt) + jitter


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    # Only the delta-seconds form is honoured; HTTP dates fall back to backoff.
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds):
        return None
    return max(seconds, 0.0)
