"""Exception hierarchy for ibira."""


class IbiraError(Exception):
    """Base exception for all ibira errors."""


class ConfigurationError(IbiraError, ValueError):
    """Raised when a fetch or cache setting is invalid."""


class TransientNetworkError(IbiraError):
    """Connection-level failure; no response was received."""


class FetchTimeoutError(IbiraError):
    """A single attempt exceeded its timeout and was aborted."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timeout after {timeout_ms}ms")


class HttpStatusError(IbiraError):
    """The server answered with a non-2xx status.

    Whether this is retryable depends on the retry policy's configured
    status codes.
    """

    def __init__(self, status_code: int, url: str | None = None) -> None:
        self.status_code = status_code
        self.url = url
        message = f"HTTP error! status: {status_code}"
        if url:
            message = f"{message} ({url})"
        super().__init__(message)


class DecodingError(IbiraError):
    """The response body could not be parsed."""


__all__ = [
    "ConfigurationError",
    "DecodingError",
    "FetchTimeoutError",
    "HttpStatusError",
    "IbiraError",
    "TransientNetworkError",
]
