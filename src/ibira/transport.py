"""HTTP transport built on httpx."""

from __future__ import annotations

from typing import Any

import httpx

from ibira.errors import (
    DecodingError,
    FetchTimeoutError,
    HttpStatusError,
    TransientNetworkError,
)
from ibira.types import NetworkOperation


class HttpTransport:
    """Performs JSON GET requests and maps failures onto ibira errors.

    Usage:
        async with HttpTransport() as transport:
            op = transport.operation("https://api.example.com/users")
            users = await op()
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"Accept": "application/json", **(headers or {})},
            timeout=timeout,
        )

    async def get_json(self, url: str) -> Any:
        """GET ``url`` and return the decoded JSON body."""
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            timeout_ms = _timeout_ms(self._client)
            raise FetchTimeoutError(timeout_ms) from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Network error fetching {url}: {e}") from e

        if not response.is_success:
            raise HttpStatusError(response.status_code, url)

        try:
            return response.json()
        except ValueError as e:
            raise DecodingError(f"Invalid JSON from {url}: {e}") from e

    def operation(self, url: str) -> NetworkOperation:
        """Zero-argument coroutine function fetching ``url``."""

        async def fetch() -> Any:
            return await self.get_json(url)

        return fetch

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def _timeout_ms(client: httpx.AsyncClient) -> int:
    read = client.timeout.read
    return int(read * 1000) if read is not None else 0


__all__ = ["HttpTransport"]
