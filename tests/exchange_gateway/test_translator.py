"""
Order Translator Tests.

============================================================
PURPOSE
============================================================
Tests for unified order -> venue payload translation.

TEST CATEGORIES:
- Inference: order type, position intent, reduce-only
- Lots: coin amount <-> contract conversion
- Payloads: Binance, Bybit, OKX, Gate
- Client order ids and pass-through extras
- Position mode cache

============================================================
"""

import re
from decimal import Decimal

import pytest

from exchange_gateway.errors import InvalidOrderType
from exchange_gateway.translator import (
    BinanceOrderTranslator,
    BybitOrderTranslator,
    GateOrderTranslator,
    OkxOrderTranslator,
    OrderOptions,
    PositionModeCache,
    contracts_from_amount,
    contracts_to_amount,
    format_decimal,
    get_translator,
    infer_order_type,
    infer_reduce_only,
    market_buy_cost,
    resolve_position_intent,
)
from exchange_gateway.types import (
    Market,
    MarketPrecision,
    MarketType,
    OrderSide,
    OrderType,
    PositionSide,
    Ticker,
)


def spot_market(native_id: str = "BTCUSDT") -> Market:
    return Market(
        symbol="BTC/USDT",
        id=native_id,
        base="BTC",
        quote="USDT",
        type=MarketType.SPOT,
        precision=MarketPrecision(amount=5, price=2),
    )


def perp_market(native_id: str = "BTCUSDT", multiplier: str = "0", amount_precision: int = 3) -> Market:
    return Market(
        symbol="BTC/USDT:USDT",
        id=native_id,
        base="BTC",
        quote="USDT",
        settle="USDT",
        type=MarketType.SWAP,
        contract=True,
        linear=True,
        contract_multiplier=Decimal(multiplier),
        precision=MarketPrecision(amount=amount_precision, price=1),
    )


# ============================================================
# INFERENCE TESTS
# ============================================================

class TestInference:
    """Tests for order type and position intent inference."""

    def test_market_without_price(self):
        """No price means a market order."""
        assert infer_order_type(None) == OrderType.MARKET
        assert infer_order_type(OrderOptions()) == OrderType.MARKET
        assert infer_order_type(OrderOptions(price="  ")) == OrderType.MARKET

    def test_limit_with_price(self):
        """Any non-empty price makes a limit order."""
        assert infer_order_type(OrderOptions(price="50000")) == OrderType.LIMIT

    def test_default_intent_opens(self):
        """Without an intent, buys open longs and sells open shorts."""
        assert resolve_position_intent(OrderSide.BUY, None) == PositionSide.LONG
        assert resolve_position_intent(OrderSide.SELL, OrderOptions()) == PositionSide.SHORT

    def test_explicit_intent(self):
        """Caller intent wins and accepts strings."""
        options = OrderOptions(position_side="long")
        assert resolve_position_intent(OrderSide.SELL, options) == PositionSide.LONG

    @pytest.mark.parametrize("side,intent,reduce", [
        (OrderSide.BUY, PositionSide.LONG, False),
        (OrderSide.SELL, PositionSide.SHORT, False),
        (OrderSide.SELL, PositionSide.LONG, True),
        (OrderSide.BUY, PositionSide.SHORT, True),
    ])
    def test_reduce_only(self, side, intent, reduce):
        """Only closing combinations are reduce-only."""
        assert infer_reduce_only(side, intent) is reduce


# ============================================================
# LOT CONVERSION TESTS
# ============================================================

class TestLots:
    """Tests for coin <-> contract conversion."""

    def test_coin_to_lots(self):
        """1 BTC at 0.01 BTC per contract is 100 contracts."""
        assert contracts_from_amount(Decimal("1.0"), Decimal("0.01"), 0) == Decimal("100")

    def test_lots_round_half_up(self):
        """Half a lot rounds up to one."""
        assert contracts_from_amount(Decimal("0.005"), Decimal("0.01"), 0) == Decimal("1")

    def test_sub_lot_raises(self):
        """Amounts that round to zero lots are rejected."""
        with pytest.raises(InvalidOrderType):
            contracts_from_amount(Decimal("0.001"), Decimal("0.01"), 0)

    def test_lots_to_coin(self):
        """Parsed contract sizes convert back to coin."""
        assert contracts_to_amount(Decimal("100"), Decimal("0.01")) == Decimal("1.00")
        assert contracts_to_amount(Decimal("3"), Decimal("0")) == Decimal("3")

    def test_format_decimal(self):
        """Fixed-point, half-up."""
        assert format_decimal(Decimal("0.123456"), 4) == "0.1235"
        assert format_decimal(Decimal("100"), 0) == "100"

    def test_market_buy_cost_reference_order(self):
        """Price, then ask, then last."""
        assert market_buy_cost(Decimal("2"), None, Decimal("10"), Decimal("9")) == Decimal("20")
        assert market_buy_cost(Decimal("2"), None, Decimal("0"), Decimal("9")) == Decimal("18")
        with pytest.raises(InvalidOrderType):
            market_buy_cost(Decimal("2"))


# ============================================================
# VENUE PAYLOAD TESTS
# ============================================================

class TestBinanceTranslator:
    """Tests for Binance order parameters."""

    def test_spot_limit(self):
        """Limit orders carry price and GTC."""
        request = BinanceOrderTranslator().translate(
            spot_market(), "buy", "0.001", OrderOptions(price="50000", client_order_id="cid-1")
        )

        assert request.order_type == OrderType.LIMIT
        assert request.params == {
            "symbol": "BTCUSDT",
            "side": "BUY",
            "type": "LIMIT",
            "quantity": "0.00100",
            "newClientOrderId": "cid-1",
            "price": "50000.00",
            "timeInForce": "GTC",
        }

    def test_contract_one_way_close(self):
        """One-way closes use BOTH plus reduceOnly."""
        request = BinanceOrderTranslator().translate(
            perp_market(), "sell", "0.01", OrderOptions(position_side="long"), hedge_mode=False
        )

        assert request.reduce_only is True
        assert request.params["positionSide"] == "BOTH"
        assert request.params["reduceOnly"] == "true"

    def test_contract_hedge(self):
        """Hedge mode names the position side and never sets reduceOnly."""
        request = BinanceOrderTranslator().translate(
            perp_market(), "sell", "0.01", OrderOptions(position_side="long"), hedge_mode=True
        )

        assert request.params["positionSide"] == "LONG"
        assert "reduceOnly" not in request.params

    @pytest.mark.parametrize("amount", ["abc", "0", "-1"])
    def test_invalid_amount(self, amount):
        """Non-positive or malformed amounts are rejected."""
        with pytest.raises(InvalidOrderType):
            BinanceOrderTranslator().translate(spot_market(), "buy", amount)

    def test_invalid_side(self):
        """Unknown sides are rejected."""
        with pytest.raises(InvalidOrderType):
            BinanceOrderTranslator().translate(spot_market(), "hold", "1")


class TestBybitTranslator:
    """Tests for Bybit order bodies."""

    def test_spot_market_buy_in_quote(self):
        """Spot market buys are sized by cost at the best ask."""
        ticker = Ticker(symbol="BTC/USDT", ask=Decimal("50000"), last=Decimal("49990"))
        request = BybitOrderTranslator().translate(spot_market(), "buy", "0.01", ticker=ticker)

        assert request.params["qty"] == "500.00"
        assert request.params["marketUnit"] == "quoteCoin"
        assert request.params["side"] == "Buy"
        assert request.params["orderType"] == "Market"

    def test_spot_market_buy_needs_reference(self):
        """Without a reference price the cost cannot be computed."""
        with pytest.raises(InvalidOrderType):
            BybitOrderTranslator().translate(spot_market(), "buy", "0.01")

    def test_spot_market_sell_in_base(self):
        """Market sells stay in base currency."""
        request = BybitOrderTranslator().translate(spot_market(), "sell", "0.01")

        assert request.params["qty"] == "0.01000"
        assert "marketUnit" not in request.params

    def test_contract_hedge_index(self):
        """Hedge mode maps intent to positionIdx 1/2."""
        request = BybitOrderTranslator().translate(
            perp_market(), "sell", "0.01", hedge_mode=True
        )

        assert request.params["category"] == "linear"
        assert request.params["positionIdx"] == 2
        assert "reduceOnly" not in request.params

    def test_contract_one_way_close(self):
        """One-way mode uses index 0 and reduceOnly when closing."""
        request = BybitOrderTranslator().translate(
            perp_market(), "buy", "0.01", OrderOptions(position_side="short"), hedge_mode=False
        )

        assert request.params["positionIdx"] == 0
        assert request.params["reduceOnly"] is True


class TestOkxTranslator:
    """Tests for OKX order bodies."""

    def test_client_id_alphanumeric(self):
        """OKX client ids are alphanumeric and namespaced."""
        request = OkxOrderTranslator().translate(spot_market("BTC-USDT"), "sell", "0.01")

        assert re.fullmatch(r"gwokx[0-9a-f]{16}", request.client_order_id)
        assert request.params["clOrdId"] == request.client_order_id

    def test_contract_sized_in_lots(self):
        """Swap sizes are converted to contracts."""
        market = perp_market("BTC-USDT-SWAP", multiplier="0.01", amount_precision=0)
        request = OkxOrderTranslator().translate(market, "buy", "1.0", hedge_mode=False)

        assert request.params["sz"] == "100"
        assert request.params["tdMode"] == "cross"
        assert request.params["posSide"] == "net"
        assert "reduceOnly" not in request.params

    def test_sub_lot_contract_rejected(self):
        """Amounts below one contract are rejected."""
        market = perp_market("BTC-USDT-SWAP", multiplier="0.01", amount_precision=0)
        with pytest.raises(InvalidOrderType):
            OkxOrderTranslator().translate(market, "buy", "0.001")

    def test_spot_market_in_base(self):
        """Spot market orders are sized in base currency."""
        request = OkxOrderTranslator().translate(spot_market("BTC-USDT"), "buy", "0.01")

        assert request.params["tdMode"] == "cash"
        assert request.params["tgtCcy"] == "base_ccy"

    def test_time_in_force_order_type(self):
        """IOC limit orders become ordType ioc."""
        request = OkxOrderTranslator().translate(
            spot_market("BTC-USDT"), "buy", "0.01", OrderOptions(price="50000", time_in_force="IOC")
        )

        assert request.params["ordType"] == "ioc"
        assert request.params["px"] == "50000.00"


class TestGateTranslator:
    """Tests for Gate order bodies."""

    def test_generated_text_prefix(self):
        """Generated ids carry Gate's t- prefix."""
        request = GateOrderTranslator().translate(spot_market("BTC_USDT"), "sell", "0.01")

        assert request.client_order_id.startswith("t-gw-gate-")
        assert request.params["text"] == request.client_order_id

    def test_caller_text_prefixed(self):
        """Caller ids get the prefix when missing."""
        request = GateOrderTranslator().translate(
            spot_market("BTC_USDT"), "sell", "0.01", OrderOptions(client_order_id="abc")
        )

        assert request.client_order_id == "t-abc"

    def test_contract_signed_size(self):
        """Sells are negative contract sizes."""
        market = perp_market("BTC_USDT", multiplier="0.0001", amount_precision=0)
        request = GateOrderTranslator().translate(market, "sell", "0.01")

        assert request.params["size"] == -100
        assert request.params["price"] == "0"
        assert request.params["tif"] == "ioc"
        assert request.params["reduce_only"] is False

    def test_spot_limit(self):
        """Limit orders carry price and amount in base."""
        request = GateOrderTranslator().translate(
            spot_market("BTC_USDT"), "buy", "0.01", OrderOptions(price="50000")
        )

        assert request.params["amount"] == "0.01000"
        assert request.params["price"] == "50000.00"
        assert request.params["time_in_force"] == "gtc"


# ============================================================
# CLIENT ID / EXTRAS TESTS
# ============================================================

class TestClientIdsAndExtras:
    """Tests for shared translator behaviour."""

    def test_generated_ids_unique(self):
        """Each order gets a fresh id."""
        translator = get_translator("binance")
        ids = {translator.new_client_order_id() for _ in range(50)}

        assert len(ids) == 50
        assert all(i.startswith("gw-binance-") for i in ids)

    def test_extras_pass_through(self):
        """Unreserved extras are copied verbatim."""
        request = BinanceOrderTranslator().translate(
            spot_market(), "buy", "0.01", OrderOptions(price="1", extra={"selfTradePreventionMode": "NONE"})
        )

        assert request.params["selfTradePreventionMode"] == "NONE"

    def test_extras_never_override_reserved(self):
        """Reserved keys keep the translated value."""
        request = BinanceOrderTranslator().translate(
            spot_market(), "buy", "0.01", OrderOptions(extra={"symbol": "ETHUSDT", "side": "SELL"})
        )

        assert request.params["symbol"] == "BTCUSDT"
        assert request.params["side"] == "BUY"


# ============================================================
# POSITION MODE CACHE TESTS
# ============================================================

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestPositionModeCache:
    """Tests for PositionModeCache."""

    def test_entry_expires(self):
        """Entries read as unknown after the TTL."""
        clock = FakeClock()
        cache = PositionModeCache(ttl_seconds=300, clock=clock)
        cache.set("BTC/USDT:USDT", True)

        clock.now += 299
        assert cache.get("BTC/USDT:USDT") is True

        clock.now += 1
        assert cache.get("BTC/USDT:USDT") is None

    def test_invalidate(self):
        """Invalidation drops one key or everything."""
        cache = PositionModeCache()
        cache.set("a", True)
        cache.set("b", False)

        cache.invalidate("a")
        assert cache.get("a") is None
        assert cache.get("b") is False

        cache.invalidate()
        assert cache.get("b") is None
