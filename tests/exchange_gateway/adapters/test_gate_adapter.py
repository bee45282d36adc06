"""
Gate Adapter Tests.

============================================================
PURPOSE
============================================================
End-to-end Gate API v4 adapter tests against a routed fake transport.

TEST CATEGORIES:
- Markets: spot pairs and USDT contracts sharing native ids
- Orders: quote-sized market buys, signed contract sizes, text prefix
- Candles: from/to window instead of limit
- Errors: label envelopes, unsupported margin mode
- Order queries: open orders and own fills

============================================================
"""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from exchange_gateway.adapters.gate import GateAdapter, interval_seconds
from exchange_gateway.config import ExchangeConfig
from exchange_gateway.errors import InsufficientBalance, InvalidOrderType, VenueError
from exchange_gateway.symbols import encode
from exchange_gateway.transport import HttpStatusError, HttpTransport
from exchange_gateway.translator import OrderOptions
from exchange_gateway.types import MarketType, OrderSide, OrderStatus, OrderType


CURRENCY_PAIRS = [{
    "id": "BTC_USDT",
    "base": "BTC",
    "quote": "USDT",
    "trade_status": "tradable",
    "amount_precision": 4,
    "precision": 1,
    "min_quote_amount": "3",
}, {
    "id": "OLD_USDT",
    "base": "OLD",
    "quote": "USDT",
    "trade_status": "untradable",
}]

CONTRACTS = [{
    "name": "BTC_USDT",
    "quanto_multiplier": "0.0001",
    "order_price_round": "0.1",
    "order_size_min": 1,
    "order_size_max": 1000000,
    "in_delisting": False,
}, {
    "name": "OLD_USDT",
    "quanto_multiplier": "1",
    "in_delisting": True,
}]


def make_transport(routes):
    """Fake transport answering (method, path) with JSON or raising."""

    async def router(method, path, query="", body="", headers=None, operation=None):
        response = routes[(method, path)]
        if isinstance(response, Exception):
            raise response
        return json.dumps(response).encode()

    transport = MagicMock(spec=HttpTransport)
    transport.request = AsyncMock(side_effect=router)
    return transport


def make_adapter(routes):
    routes.setdefault(("GET", "/api/v4/spot/currency_pairs"), CURRENCY_PAIRS)
    routes.setdefault(("GET", "/api/v4/futures/usdt/contracts"), CONTRACTS)
    transport = make_transport(routes)
    return GateAdapter(ExchangeConfig.for_testing("gate"), transport=transport), transport


def calls_for(transport, path):
    return [c.args for c in transport.request.call_args_list if c.args[1] == path]


# ============================================================
# MARKET TESTS
# ============================================================

class TestGateMarkets:
    """Tests for market loading."""

    @pytest.mark.asyncio
    async def test_same_native_id_two_registries(self):
        """BTC_USDT is both a spot pair and a contract."""
        adapter, _ = make_adapter({})

        markets = await adapter.load_markets()

        assert set(markets) == {"BTC/USDT", "BTC/USDT:USDT"}
        assert adapter.symbol_for("BTC_USDT") == "BTC/USDT"
        assert adapter.symbol_for("BTC_USDT", MarketType.SWAP) == "BTC/USDT:USDT"

        contract = adapter.market("BTC/USDT:USDT")
        assert contract.contract_multiplier == Decimal("0.0001")
        assert contract.precision.amount == 0
        assert adapter.market("BTC/USDT").precision.amount == 4

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol,market_type", [
        ("BTC/USDT", MarketType.SPOT),
        ("BTC/USDT:USDT", MarketType.SWAP),
    ])
    async def test_codec_round_trip(self, symbol, market_type):
        """The codec's native id decodes back through the loaded registry."""
        adapter, _ = make_adapter({})
        await adapter.load_markets()

        assert adapter.symbol_for(encode("gate", symbol), market_type) == symbol

    def test_interval_seconds(self):
        """Gate intervals convert to seconds."""
        assert interval_seconds("15m") == 900
        assert interval_seconds("7d") == 604800
        with pytest.raises(ValueError):
            interval_seconds("1x")

    @pytest.mark.asyncio
    async def test_ohlcv_since_uses_window(self):
        """A start time becomes from/to; limit is not sent."""
        routes = {("GET", "/api/v4/spot/candlesticks"): [
            ["1700000000", "1000", "2", "3", "1", "1.5", "500", "true"],
        ]}
        adapter, transport = make_adapter(routes)

        candles = await adapter.fetch_ohlcv("BTC/USDT", "1h", since=1700000000000, limit=3)

        query = calls_for(transport, "/api/v4/spot/candlesticks")[0][2]
        assert "from=1700000000" in query
        assert "to=1700007200" in query
        assert "limit" not in query
        assert candles[0].open == Decimal("1.5")
        assert candles[0].close == Decimal("2")
        assert candles[0].volume == Decimal("500")


# ============================================================
# ORDER TESTS
# ============================================================

class TestGateOrders:
    """Tests for order placement."""

    @pytest.mark.asyncio
    async def test_spot_market_buy_in_quote(self):
        """Spot market buys send quote cost with IOC."""
        routes = {
            ("GET", "/api/v4/spot/tickers"): [
                {"currency_pair": "BTC_USDT", "last": "50000", "lowest_ask": "50000", "change_percentage": "0"},
            ],
            ("POST", "/api/v4/spot/orders"): {
                "id": "123",
                "text": "t-gw-gate-x",
                "currency_pair": "BTC_USDT",
                "type": "market",
                "side": "buy",
                "amount": "500.0",
                "status": "open",
                "create_time_ms": 1700000000000,
            },
        }
        adapter, transport = make_adapter(routes)

        order = await adapter.create_order("BTC/USDT", "buy", "0.01")

        body = json.loads(calls_for(transport, "/api/v4/spot/orders")[0][3])
        assert body["amount"] == "500.0"
        assert body["type"] == "market"
        assert body["time_in_force"] == "ioc"
        assert body["text"].startswith("t-gw-gate-")
        assert order.id == "123"
        assert order.type == OrderType.MARKET

    @pytest.mark.asyncio
    async def test_blank_price_market_buy_fetches_ticker(self):
        """An empty price string is a market buy sized from the ask."""
        routes = {
            ("GET", "/api/v4/spot/tickers"): [
                {"currency_pair": "BTC_USDT", "last": "50000", "lowest_ask": "50000", "change_percentage": "0"},
            ],
            ("POST", "/api/v4/spot/orders"): {"id": "124", "side": "buy", "type": "market", "status": "open"},
        }
        adapter, transport = make_adapter(routes)

        await adapter.create_order("BTC/USDT", "buy", "0.01", OrderOptions(price="  "))

        body = json.loads(calls_for(transport, "/api/v4/spot/orders")[0][3])
        assert body["type"] == "market"
        assert body["amount"] == "500.0"
        assert len(calls_for(transport, "/api/v4/spot/tickers")) == 1

    @pytest.mark.asyncio
    async def test_contract_sell_negative_size(self):
        """Sells send a negative contract count."""
        routes = {("POST", "/api/v4/futures/usdt/orders"): {
            "id": 1,
            "contract": "BTC_USDT",
            "size": -100,
            "left": 0,
            "price": "0",
            "fill_price": "50000",
            "status": "finished",
            "finish_as": "filled",
            "create_time": 1700000000.1,
            "text": "t-gw-gate-y",
        }}
        adapter, transport = make_adapter(routes)

        order = await adapter.create_order("BTC/USDT:USDT", "sell", "0.01")

        body = json.loads(calls_for(transport, "/api/v4/futures/usdt/orders")[0][3])
        assert body["size"] == -100
        assert body["price"] == "0"
        assert body["tif"] == "ioc"
        assert body["reduce_only"] is False
        assert order.side == OrderSide.SELL
        assert order.amount == Decimal("0.01")
        assert order.status == OrderStatus.FILLED

    @pytest.mark.asyncio
    async def test_client_id_prefixed(self):
        """Caller ids get the mandatory t- prefix."""
        routes = {("POST", "/api/v4/spot/orders"): {"id": "5", "side": "buy", "type": "limit", "status": "open"}}
        adapter, transport = make_adapter(routes)

        await adapter.create_order(
            "BTC/USDT", "buy", "0.01", OrderOptions(price="50000", client_order_id="mine")
        )

        body = json.loads(calls_for(transport, "/api/v4/spot/orders")[0][3])
        assert body["text"] == "t-mine"
        assert body["price"] == "50000.0"
        assert body["amount"] == "0.0100"
        assert body["time_in_force"] == "gtc"

    @pytest.mark.asyncio
    async def test_label_error(self):
        """Gate label envelopes map to typed exceptions."""
        body = b'{"label":"BALANCE_NOT_ENOUGH","message":"Not enough balance"}'
        routes = {("POST", "/api/v4/spot/orders"): HttpStatusError(400, body, "/api/v4/spot/orders")}
        adapter, _ = make_adapter(routes)

        with pytest.raises(InsufficientBalance) as exc_info:
            await adapter.create_order("BTC/USDT", "sell", "0.01", OrderOptions(price="50000"))

        assert exc_info.value.error.code == "GATE_BALANCE_NOT_ENOUGH"

    @pytest.mark.asyncio
    async def test_cancel_spot_order_scoped_by_pair(self):
        """Spot cancels carry currency_pair."""
        routes = {("DELETE", "/api/v4/spot/orders/123"): {"id": "123", "status": "cancelled"}}
        adapter, transport = make_adapter(routes)

        await adapter.cancel_order("123", "BTC/USDT")

        args = calls_for(transport, "/api/v4/spot/orders/123")[0]
        assert args[0] == "DELETE"
        assert args[2] == "currency_pair=BTC_USDT"


# ============================================================
# ORDER QUERY TESTS
# ============================================================

class TestGateOrderQueries:
    """Tests for open orders and own fills."""

    @pytest.mark.asyncio
    async def test_fetch_open_orders_spot(self):
        """Spot open orders are the order list with status=open."""
        routes = {("GET", "/api/v4/spot/orders"): [{
            "id": "321",
            "text": "t-gw-gate-z",
            "currency_pair": "BTC_USDT",
            "type": "limit",
            "side": "buy",
            "amount": "0.01",
            "left": "0.004",
            "price": "49000",
            "status": "open",
            "create_time_ms": 1700000000000,
        }]}
        adapter, transport = make_adapter(routes)

        orders = await adapter.fetch_open_orders("BTC/USDT")

        assert orders[0].id == "321"
        assert orders[0].filled == Decimal("0.006")
        assert orders[0].status == OrderStatus.PARTIALLY_FILLED
        query = calls_for(transport, "/api/v4/spot/orders")[0][2]
        assert "currency_pair=BTC_USDT" in query
        assert "status=open" in query

    @pytest.mark.asyncio
    async def test_fetch_open_orders_contract(self):
        """Futures open orders are scoped by contract."""
        routes = {("GET", "/api/v4/futures/usdt/orders"): []}
        adapter, transport = make_adapter(routes)

        assert await adapter.fetch_open_orders("BTC/USDT:USDT") == []
        query = calls_for(transport, "/api/v4/futures/usdt/orders")[0][2]
        assert "contract=BTC_USDT" in query
        assert "status=open" in query

    @pytest.mark.asyncio
    async def test_fetch_my_trades_spot(self):
        """Spot fills send from in seconds and keep the fee currency."""
        routes = {("GET", "/api/v4/spot/my_trades"): [{
            "id": "1232893232",
            "order_id": "321",
            "side": "sell",
            "amount": "0.01",
            "price": "50000",
            "fee": "0.5",
            "fee_currency": "USDT",
            "create_time_ms": "1700000000123.456",
        }]}
        adapter, transport = make_adapter(routes)

        trades = await adapter.fetch_my_trades("BTC/USDT", since=1700000000000, limit=10)

        assert trades[0].side == OrderSide.SELL
        assert trades[0].order_id == "321"
        assert trades[0].fee == Decimal("0.5")
        assert trades[0].fee_currency == "USDT"
        query = calls_for(transport, "/api/v4/spot/my_trades")[0][2]
        assert "from=1700000000" in query
        assert "limit=10" in query

    @pytest.mark.asyncio
    async def test_fetch_my_trades_contract_filters_since(self):
        """Futures fills have no start parameter and are filtered locally."""
        routes = {("GET", "/api/v4/futures/usdt/my_trades"): [
            {"id": 1, "order_id": "9", "size": 100, "price": "50000", "create_time": 1699999999.0, "fee": "0.01"},
            {"id": 2, "order_id": "9", "size": -50, "price": "50100", "create_time": 1700000001.0, "fee": "0.01"},
        ]}
        adapter, transport = make_adapter(routes)

        trades = await adapter.fetch_my_trades("BTC/USDT:USDT", since=1700000000000)

        assert [t.id for t in trades] == ["2"]
        assert trades[0].amount == Decimal("0.0050")
        assert trades[0].side == OrderSide.SELL
        assert trades[0].fee_currency == "USDT"
        assert "from" not in calls_for(transport, "/api/v4/futures/usdt/my_trades")[0][2]


# ============================================================
# ACCOUNT TESTS
# ============================================================

class TestGateAccount:
    """Tests for account settings."""

    @pytest.mark.asyncio
    async def test_set_leverage(self):
        """Leverage goes in the query of the position endpoint."""
        path = "/api/v4/futures/usdt/positions/BTC_USDT/leverage"
        routes = {("POST", path): {"contract": "BTC_USDT", "leverage": "10"}}
        adapter, transport = make_adapter(routes)

        await adapter.set_leverage("BTC/USDT:USDT", 10)

        assert calls_for(transport, path)[0][2] == "leverage=10"

    @pytest.mark.asyncio
    async def test_set_margin_mode_unsupported(self):
        """Margin mode cannot be changed through the API."""
        adapter, transport = make_adapter({})

        with pytest.raises(VenueError) as exc_info:
            await adapter.set_margin_mode("BTC/USDT:USDT", "isolated")

        assert "not supported" in exc_info.value.error.message
        transport.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_margin_mode_invalid(self):
        """Unknown modes are rejected first."""
        adapter, _ = make_adapter({})

        with pytest.raises(InvalidOrderType):
            await adapter.set_margin_mode("BTC/USDT:USDT", "portfolio")

    @pytest.mark.asyncio
    async def test_futures_balance(self):
        """The futures account object becomes one balance."""
        routes = {("GET", "/api/v4/futures/usdt/accounts"): {
            "currency": "USDT", "total": "100", "available": "75",
        }}
        adapter, _ = make_adapter(routes)

        balances = await adapter.fetch_balance(MarketType.SWAP)

        assert balances["USDT"].free == Decimal("75")
        assert balances["USDT"].used == Decimal("25")
