"""
HTTP Transport Tests.

============================================================
PURPOSE
============================================================
Tests for the aiohttp transport without network access.

TEST CATEGORIES:
- Proxy validation
- URL / header / body assembly
- Status and network error handling

============================================================
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from exchange_gateway.errors import ErrorCategory, ExchangeException
from exchange_gateway.transport import HttpStatusError, HttpTransport


def make_session(status: int = 200, body: bytes = b"{}") -> MagicMock:
    resp = MagicMock()
    resp.status = status
    resp.read = AsyncMock(return_value=body)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=resp)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.request = MagicMock(return_value=context)
    return session


# ============================================================
# PROXY TESTS
# ============================================================

class TestProxy:
    """Tests for proxy configuration."""

    def test_http_proxy_accepted(self):
        """HTTP and HTTPS proxies are accepted."""
        transport = HttpTransport("https://api.binance.com", "binance", proxy="http://127.0.0.1:3128")
        assert transport.proxy == "http://127.0.0.1:3128"

        transport.set_proxy("https://proxy.local:443")
        assert transport.proxy == "https://proxy.local:443"

    @pytest.mark.parametrize("proxy", ["socks5://127.0.0.1:1080", "127.0.0.1:3128", "http://"])
    def test_invalid_proxy_rejected(self, proxy):
        """Other schemes or a missing host raise ValueError."""
        transport = HttpTransport("https://api.binance.com", "binance")
        with pytest.raises(ValueError):
            transport.set_proxy(proxy)


# ============================================================
# REQUEST TESTS
# ============================================================

class TestRequest:
    """Tests for request assembly."""

    @pytest.mark.asyncio
    async def test_query_and_headers(self):
        """Query is appended verbatim; persistent headers are merged."""
        transport = HttpTransport("https://www.okx.com/", "okx")
        transport.set_header("x-simulated-trading", "1")
        session = make_session(body=b'{"code":"0"}')

        with patch.object(transport, "_get_session", return_value=session):
            raw = await transport.request("GET", "/api/v5/market/ticker", "instId=BTC-USDT", "", {"A": "b"})

        assert raw == b'{"code":"0"}'
        args, kwargs = session.request.call_args
        assert args[0] == "GET"
        assert str(args[1]) == "https://www.okx.com/api/v5/market/ticker?instId=BTC-USDT"
        assert kwargs["headers"]["x-simulated-trading"] == "1"
        assert kwargs["headers"]["A"] == "b"
        assert kwargs["data"] is None

    @pytest.mark.asyncio
    async def test_body_sets_content_type(self):
        """JSON bodies are sent as bytes with a content type."""
        transport = HttpTransport("https://api.bybit.com", "bybit")
        session = make_session()

        with patch.object(transport, "_get_session", return_value=session):
            await transport.post("/v5/order/create", {"symbol": "BTCUSDT"})

        kwargs = session.request.call_args[1]
        assert kwargs["data"] == b'{"symbol":"BTCUSDT"}'
        assert kwargs["headers"]["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_get_encodes_params(self):
        """get() builds the canonical query string."""
        transport = HttpTransport("https://api.gateio.ws", "gate")
        session = make_session(body=b"[]")

        with patch.object(transport, "_get_session", return_value=session):
            await transport.get("/api/v4/spot/tickers", {"currency_pair": "BTC_USDT"})

        url = session.request.call_args[0][1]
        assert str(url).endswith("/api/v4/spot/tickers?currency_pair=BTC_USDT")


# ============================================================
# ERROR TESTS
# ============================================================

class TestErrors:
    """Tests for failure handling."""

    @pytest.mark.asyncio
    async def test_non_2xx_raises_status_error(self):
        """The raw body travels with the status error."""
        transport = HttpTransport("https://api.binance.com", "binance")
        body = b'{"code":-2010,"msg":"insufficient"}'
        session = make_session(status=400, body=body)

        with patch.object(transport, "_get_session", return_value=session):
            with pytest.raises(HttpStatusError) as exc_info:
                await transport.request("POST", "/api/v3/order")

        assert exc_info.value.status == 400
        assert exc_info.value.body == body
        assert "/api/v3/order" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_client_error_is_network_error(self):
        """aiohttp errors become network ExchangeExceptions."""
        transport = HttpTransport("https://api.binance.com", "binance")
        session = MagicMock()
        session.request = MagicMock(side_effect=aiohttp.ClientConnectionError("reset"))

        with patch.object(transport, "_get_session", return_value=session):
            with pytest.raises(ExchangeException) as exc_info:
                await transport.request("GET", "/api/v3/time", operation="fetch_time")

        assert exc_info.value.error.category == ErrorCategory.NETWORK
        assert exc_info.value.error.operation == "fetch_time"

    @pytest.mark.asyncio
    async def test_timeout_is_timeout_error(self):
        """Timeouts map to TIMEOUT with the configured limit."""
        transport = HttpTransport("https://api.binance.com", "binance", timeout_seconds=2.5)
        session = MagicMock()
        session.request = MagicMock(side_effect=asyncio.TimeoutError())

        with patch.object(transport, "_get_session", return_value=session):
            with pytest.raises(ExchangeException) as exc_info:
                await transport.request("GET", "/api/v3/time")

        assert exc_info.value.error.category == ErrorCategory.TIMEOUT
        assert "2500ms" in exc_info.value.error.message

    @pytest.mark.asyncio
    async def test_close_without_session(self):
        """Closing an unused transport is a no-op."""
        transport = HttpTransport("https://api.binance.com", "binance")
        await transport.close()
        assert not transport.is_open
