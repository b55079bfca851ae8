"""Fetch and cache configuration."""

import dataclasses
import re
from dataclasses import dataclass
from typing import Any

from ibira.errors import ConfigurationError

# "30s", "5m", "2h", "1d" or milliseconds
Duration = str | int

_DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_UNITS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}

DEFAULT_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset(
    {408, 429, 500, 502, 503, 504}
)


def parse_duration(duration: Duration) -> int:
    """Parse a duration string to milliseconds. Integers pass through."""
    if isinstance(duration, bool):
        raise ConfigurationError(f"Invalid duration: {duration!r}")
    if isinstance(duration, int):
        if duration < 0:
            raise ConfigurationError(f"Duration must not be negative: {duration}")
        return duration

    match = _DURATION_PATTERN.match(duration)
    if not match:
        raise ConfigurationError(f"Invalid duration: {duration!r}")

    value, unit = match.groups()
    return int(value) * _UNITS[unit]


@dataclass(frozen=True, slots=True)
class FetchConfig:
    """Immutable settings for fetching, retrying and caching.

    Durations are stored in milliseconds; the constructor also accepts
    strings such as ``"10s"``. Reconfiguring produces a new instance via
    :meth:`with_overrides`.
    """

    timeout: Duration = "10s"
    max_retries: int = 3
    retry_delay: Duration = "1s"
    retry_multiplier: float = 2.0
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES
    max_cache_entries: int = 100
    cache_ttl: Duration = "5m"
    maintenance_interval: Duration = "1m"

    def __post_init__(self) -> None:
        for name in ("timeout", "retry_delay", "cache_ttl", "maintenance_interval"):
            object.__setattr__(self, name, parse_duration(getattr(self, name)))
        object.__setattr__(
            self, "retryable_status_codes", frozenset(self.retryable_status_codes)
        )

        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")
        if self.max_cache_entries < 1:
            raise ConfigurationError("max_cache_entries must be at least 1")
        if self.retry_multiplier < 1:
            raise ConfigurationError("retry_multiplier must be at least 1")
        if self.timeout == 0:
            raise ConfigurationError("timeout must be positive")
        if self.maintenance_interval == 0:
            raise ConfigurationError("maintenance_interval must be positive")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def with_overrides(self, **overrides: Any) -> "FetchConfig":
        """Return a copy with the given fields replaced.

        ``None`` values are ignored so callers can forward optional kwargs.
        """
        known = {f.name for f in dataclasses.fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration option(s): {', '.join(sorted(unknown))}"
            )
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def retry_settings(self) -> dict[str, Any]:
        """Retry-related settings as a plain dict."""
        return {
            "max_retries": self.max_retries,
            "retry_delay": self.retry_delay,
            "retry_multiplier": self.retry_multiplier,
            "retryable_status_codes": sorted(self.retryable_status_codes),
        }


__all__ = [
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "Duration",
    "FetchConfig",
    "parse_duration",
]
