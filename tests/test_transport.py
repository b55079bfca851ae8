"""Tests for the httpx transport using mocked HTTP responses."""

import httpx
import pytest
import respx

from ibira import (
    DecodingError,
    FetchTimeoutError,
    HttpStatusError,
    HttpTransport,
    TransientNetworkError,
)

URL = "https://api.test.dev/users"


@pytest.fixture
async def transport():
    """Create an HttpTransport and close it afterwards."""
    async with HttpTransport(timeout=5.0) as t:
        yield t


class TestHttpTransport:
    """Tests for HttpTransport with mocked responses."""

    @respx.mock
    async def test_returns_json(self, transport: HttpTransport) -> None:
        """Test that a successful response is decoded as JSON."""
        route = respx.get(URL).mock(
            return_value=httpx.Response(200, json=[{"id": "1"}])
        )

        result = await transport.get_json(URL)

        assert result == [{"id": "1"}]
        assert route.called
        assert route.calls[0].request.headers["Accept"] == "application/json"

    @respx.mock
    async def test_non_2xx_raises_status_error(self, transport: HttpTransport) -> None:
        """Test that a non-2xx response raises HttpStatusError."""
        respx.get(URL).mock(return_value=httpx.Response(503))

        with pytest.raises(HttpStatusError) as exc_info:
            await transport.get_json(URL)

        assert exc_info.value.status_code == 503
        assert "status: 503" in str(exc_info.value)

    @respx.mock
    async def test_invalid_json_raises_decoding_error(
        self, transport: HttpTransport
    ) -> None:
        """Test that an invalid body raises DecodingError."""
        respx.get(URL).mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(DecodingError):
            await transport.get_json(URL)

    @respx.mock
    async def test_connect_error_is_transient(self, transport: HttpTransport) -> None:
        """Test that connection errors become TransientNetworkError."""
        respx.get(URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(TransientNetworkError) as exc_info:
            await transport.get_json(URL)

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @respx.mock
    async def test_timeout_maps_to_fetch_timeout(self, transport: HttpTransport) -> None:
        """Test that client timeouts become FetchTimeoutError."""
        respx.get(URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(FetchTimeoutError) as exc_info:
            await transport.get_json(URL)

        assert exc_info.value.timeout_ms == 5000

    @respx.mock
    async def test_operation_is_zero_argument(self, transport: HttpTransport) -> None:
        """Test that operation() gives a zero-argument coroutine function."""
        respx.get(URL).mock(return_value=httpx.Response(200, json={"ok": True}))

        op = transport.operation(URL)

        assert await op() == {"ok": True}

    async def test_injected_client_is_not_closed(self) -> None:
        """Test that a caller-owned client is left open."""
        client = httpx.AsyncClient()
        transport = HttpTransport(client)

        await transport.aclose()

        assert not client.is_closed
        await client.aclose()
