"""Retry classification and exponential backoff."""

import asyncio
import random
import re
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from ibira.config import DEFAULT_RETRYABLE_STATUS_CODES, FetchConfig
from ibira.errors import (
    DecodingError,
    FetchTimeoutError,
    TransientNetworkError,
)

_STATUS_IN_MESSAGE = re.compile(r"status:\s*(\d{3})")

DEFAULT_MIN_DELAY_MS = 100
DEFAULT_JITTER = 0.25


def compute_delay(
    attempt: int,
    base_delay: float,
    multiplier: float,
    *,
    min_delay: float = DEFAULT_MIN_DELAY_MS,
    jitter: float = DEFAULT_JITTER,
    rand: Callable[[], float] = random.random,
) -> int:
    """Backoff in ms for a 0-based ``attempt``.

    ``base_delay * multiplier ** attempt``, shifted by a uniform factor in
    ``[-jitter, +jitter]`` and floored at ``min_delay``.
    """
    delay = base_delay * multiplier**attempt
    offset = delay * jitter * (2 * rand() - 1)
    return int(max(min_delay, delay + offset))


def extract_status_code(error: BaseException) -> int | None:
    """Find an HTTP status code on an error, if it carries one."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    match = _STATUS_IN_MESSAGE.search(str(error))
    if match:
        return int(match.group(1))
    return None


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Decides whether and when a failed attempt is retried."""

    max_retries: int = 3
    base_delay: int = 1000  # ms
    multiplier: float = 2.0
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES
    min_delay: int = DEFAULT_MIN_DELAY_MS
    jitter: float = DEFAULT_JITTER
    rand: Callable[[], float] = field(default=random.random, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "retryable_status_codes", frozenset(self.retryable_status_codes)
        )

    @classmethod
    def from_config(cls, config: FetchConfig, **kwargs: object) -> "RetryPolicy":
        return cls(
            max_retries=config.max_retries,
            base_delay=int(config.retry_delay),
            multiplier=config.retry_multiplier,
            retryable_status_codes=config.retryable_status_codes,
            **kwargs,  # type: ignore[arg-type]
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def is_retryable(self, error: BaseException) -> bool:
        """True for connection failures, timeouts and retryable statuses."""
        if isinstance(error, DecodingError):
            return False
        if isinstance(
            error,
            (
                TransientNetworkError,
                FetchTimeoutError,
                asyncio.TimeoutError,
                TimeoutError,
                ConnectionError,
                httpx.TransportError,
            ),
        ):
            return True
        if isinstance(error, asyncio.CancelledError):
            return False

        status = extract_status_code(error)
        if status is None:
            return "timeout" in str(error).lower()
        return status in self.retryable_status_codes

    def compute_delay(self, attempt: int) -> int:
        return compute_delay(
            attempt,
            self.base_delay,
            self.multiplier,
            min_delay=self.min_delay,
            jitter=self.jitter,
            rand=self.rand,
        )

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Whether a failure on 0-based ``attempt`` earns another try."""
        return attempt < self.max_retries and self.is_retryable(error)


__all__ = ["RetryPolicy", "compute_delay", "extract_status_code"]
