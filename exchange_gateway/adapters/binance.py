"""
Binance Exchange Adapter.

============================================================
PURPOSE
============================================================
Adapter for Binance spot (api.binance.com) and USDⓈ-M
perpetual futures (fapi.binance.com).

EXCHANGE SPECIFICS:
- HMAC-SHA256 signature appended to the query string
- Native ids are BASE+QUOTE for spot and perps alike
- Perp position mode read from /fapi/v1/positionSide/dual
- Hedge mode: positionSide LONG/SHORT; one-way: BOTH + reduceOnly

============================================================
API DOCUMENTATION
============================================================
https://developers.binance.com/docs/binance-spot-api-docs
https://developers.binance.com/docs/derivatives/usds-margined-futures

============================================================
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import ExchangeException
from ..markets import optional_decimal, precision_digits, to_decimal
from ..normalizer import (
    parse_binance_balance,
    parse_binance_my_trades,
    parse_binance_ohlcv,
    parse_binance_order,
    parse_binance_positions,
    parse_binance_ticker,
    parse_binance_trades,
)
from ..signing import BinanceSigner
from ..symbols import normalize_contract_symbol, normalize_symbol
from ..translator import BinanceOrderTranslator, OrderRequest
from ..types import (
    Balances,
    MarginMode,
    Market,
    MarketLimits,
    MarketPrecision,
    MarketType,
    MinMax,
    OHLCV,
    Order,
    Position,
    Ticker,
    Trade,
)
from .base import ExchangeAdapter


logger = logging.getLogger(__name__)


# ============================================================
# CONSTANTS
# ============================================================

BINANCE_SPOT_URL = "https://api.binance.com"
BINANCE_SPOT_SANDBOX_URL = "https://demo-api.binance.com"
BINANCE_FAPI_URL = "https://fapi.binance.com"
BINANCE_FAPI_SANDBOX_URL = "https://demo-fapi.binance.com"

# "No need to change" replies from the futures setters
BINANCE_NOT_MODIFIED = {-4046, -4059}

BINANCE_MARGIN_TYPES = {
    MarginMode.ISOLATED: "ISOLATED",
    MarginMode.CROSS: "CROSSED",
}

SPOT_PATHS = {
    "ticker": "/api/v3/ticker/24hr",
    "klines": "/api/v3/klines",
    "trades": "/api/v3/trades",
    "agg_trades": "/api/v3/aggTrades",
    "order": "/api/v3/order",
    "open_orders": "/api/v3/openOrders",
    "my_trades": "/api/v3/myTrades",
}

FAPI_PATHS = {
    "ticker": "/fapi/v1/ticker/24hr",
    "klines": "/fapi/v1/klines",
    "trades": "/fapi/v1/trades",
    "agg_trades": "/fapi/v1/aggTrades",
    "order": "/fapi/v1/order",
    "open_orders": "/fapi/v1/openOrders",
    "my_trades": "/fapi/v1/userTrades",
}


# ============================================================
# BINANCE ADAPTER
# ============================================================

class BinanceAdapter(ExchangeAdapter):
    """
    Binance spot + USDⓈ-M perpetual adapter.

    Both hosts share one signer; each gets its own transport.
    """

    exchange_id = "binance"

    BASE_URLS = {
        MarketType.SPOT: (BINANCE_SPOT_URL, BINANCE_SPOT_SANDBOX_URL),
        MarketType.SWAP: (BINANCE_FAPI_URL, BINANCE_FAPI_SANDBOX_URL),
    }

    # Binance intervals match the canonical vocabulary
    TIMEFRAMES = {}

    def _create_signer(self) -> BinanceSigner:
        return BinanceSigner(self._config.api_key, self._config.api_secret, self._config.recv_window_ms)

    def _create_translator(self) -> BinanceOrderTranslator:
        return BinanceOrderTranslator()

    def _paths(self, market: Market) -> Dict[str, str]:
        return FAPI_PATHS if market.contract else SPOT_PATHS

    def _extract_error(self, payload: Dict[str, Any]) -> Optional[Tuple[Any, str]]:
        code = payload.get("code")
        if isinstance(code, int) and code < 0:
            return code, payload.get("msg", "")
        return None

    # --------------------------------------------------------
    # MARKETS
    # --------------------------------------------------------

    async def _fetch_markets(self, market_type: MarketType) -> List[Market]:
        if market_type == MarketType.SWAP:
            data = await self._request(
                "GET", "/fapi/v1/exchangeInfo", market_type=MarketType.SWAP, operation="load_markets"
            )
        else:
            data = await self._request("GET", "/api/v3/exchangeInfo", operation="load_markets")

        markets = []
        for info in data.get("symbols", []):
            if info.get("status") != "TRADING":
                continue
            if market_type == MarketType.SWAP and info.get("contractType") != "PERPETUAL":
                continue
            markets.append(self._parse_market(info, market_type))
        return markets

    def _parse_market(self, info: Dict[str, Any], market_type: MarketType) -> Market:
        base = info.get("baseAsset", "")
        quote = info.get("quoteAsset", "")
        contract = market_type == MarketType.SWAP

        if contract:
            settle = info.get("marginAsset") or quote
            symbol = normalize_contract_symbol(base, quote, settle)
            amount_digits = info.get("quantityPrecision", 8)
            price_digits = info.get("pricePrecision", 8)
        else:
            settle = ""
            symbol = normalize_symbol(base, quote)
            amount_digits = info.get("baseAssetPrecision", 8)
            price_digits = info.get("quotePrecision", 8)

        limits = MarketLimits()
        for flt in info.get("filters", []):
            filter_type = flt.get("filterType")
            if filter_type == "LOT_SIZE":
                limits.amount = MinMax(optional_decimal(flt.get("minQty")), optional_decimal(flt.get("maxQty")))
                if to_decimal(flt.get("stepSize")) > 0:
                    amount_digits = precision_digits(flt["stepSize"])
            elif filter_type == "PRICE_FILTER":
                limits.price = MinMax(optional_decimal(flt.get("minPrice")), optional_decimal(flt.get("maxPrice")))
                if to_decimal(flt.get("tickSize")) > 0:
                    price_digits = precision_digits(flt["tickSize"])
            elif filter_type in ("MIN_NOTIONAL", "NOTIONAL"):
                minimum = flt.get("minNotional") or flt.get("notional")
                limits.cost = MinMax(optional_decimal(minimum), optional_decimal(flt.get("maxNotional")))

        return Market(
            symbol=symbol,
            id=info.get("symbol", ""),
            base=base,
            quote=quote,
            settle=settle,
            type=market_type,
            active=True,
            contract=contract,
            linear=contract,
            precision=MarketPrecision(amount=int(amount_digits), price=int(price_digits)),
            limits=limits,
            info=info,
        )

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    async def fetch_ticker(self, symbol: str) -> Ticker:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            self._paths(market)["ticker"],
            params={"symbol": market.id},
            market_type=market.type,
            operation="fetch_ticker",
            symbol=market.symbol,
        )
        return parse_binance_ticker(data, market.symbol)

    async def fetch_tickers(self, market_type: MarketType = MarketType.SPOT) -> Dict[str, Ticker]:
        await self.load_markets(market_type=market_type)
        path = FAPI_PATHS["ticker"] if market_type == MarketType.SWAP else SPOT_PATHS["ticker"]
        rows = await self._request("GET", path, market_type=market_type, operation="fetch_tickers")

        registry = self.registry(market_type)
        tickers = {}
        for row in rows:
            market = registry.get(row.get("symbol", ""))
            if market is not None:
                tickers[market.symbol] = parse_binance_ticker(row, market.symbol)
        return tickers

    async def fetch_ohlcv(self, symbol: str, timeframe: str = "1h", since: int = None, limit: int = 100) -> List[OHLCV]:
        market = await self._market(symbol)
        params = {
            "symbol": market.id,
            "interval": self.timeframe(timeframe),
            "limit": limit,
            "startTime": since,
        }
        rows = await self._request(
            "GET",
            self._paths(market)["klines"],
            params=params,
            market_type=market.type,
            operation="fetch_ohlcv",
            symbol=market.symbol,
        )
        return parse_binance_ohlcv(rows)

    async def fetch_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        market = await self._market(symbol)
        paths = self._paths(market)

        if since is None:
            rows = await self._request(
                "GET",
                paths["trades"],
                params={"symbol": market.id, "limit": limit},
                market_type=market.type,
                operation="fetch_trades",
                symbol=market.symbol,
            )
        else:
            # /trades has no time filter; aggTrades does
            agg = await self._request(
                "GET",
                paths["agg_trades"],
                params={"symbol": market.id, "limit": limit, "startTime": since},
                market_type=market.type,
                operation="fetch_trades",
                symbol=market.symbol,
            )
            rows = [
                {"id": r.get("a"), "price": r.get("p"), "qty": r.get("q"), "time": r.get("T"), "isBuyerMaker": r.get("m")}
                for r in agg
            ]
        return parse_binance_trades(rows, market.symbol)

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def fetch_balance(self, market_type: MarketType = MarketType.SPOT) -> Balances:
        if market_type == MarketType.SWAP:
            data = await self._request(
                "GET", "/fapi/v2/balance", signed=True, market_type=MarketType.SWAP, operation="fetch_balance"
            )
        else:
            data = await self._request("GET", "/api/v3/account", signed=True, operation="fetch_balance")
        return parse_binance_balance(data)

    async def fetch_positions(self, symbols: List[str] = None) -> List[Position]:
        await self.load_markets(market_type=MarketType.SWAP)
        params = None
        if symbols and len(symbols) == 1:
            params = {"symbol": self.market(symbols[0]).id}

        rows = await self._request(
            "GET",
            "/fapi/v2/positionRisk",
            params=params,
            signed=True,
            market_type=MarketType.SWAP,
            operation="fetch_positions",
        )
        positions = parse_binance_positions(rows, self._swap_markets.get)
        return self._filter_positions(positions, symbols)

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        market = await self._market(symbol)
        self._require_contract(market, "set_leverage")
        await self._request(
            "POST",
            "/fapi/v1/leverage",
            params={"symbol": market.id, "leverage": int(leverage)},
            signed=True,
            market_type=MarketType.SWAP,
            operation="set_leverage",
            symbol=market.symbol,
        )
        self._logger.info(f"Leverage set to {leverage}x for {market.symbol}")

    async def set_margin_mode(self, symbol: str, mode: Union[MarginMode, str]) -> None:
        margin_mode = self.parse_margin_mode(mode)
        market = await self._market(symbol)
        self._require_contract(market, "set_margin_mode")
        try:
            await self._request(
                "POST",
                "/fapi/v1/marginType",
                params={"symbol": market.id, "marginType": BINANCE_MARGIN_TYPES[margin_mode]},
                signed=True,
                market_type=MarketType.SWAP,
                operation="set_margin_mode",
                symbol=market.symbol,
            )
        except ExchangeException as e:
            if e.error.exchange_code and int(e.error.exchange_code) in BINANCE_NOT_MODIFIED:
                self._logger.debug(f"Margin mode already {margin_mode.value} for {market.symbol}")
                return
            raise

    async def _discover_position_mode(self, market: Market) -> bool:
        data = await self._request(
            "GET",
            "/fapi/v1/positionSide/dual",
            signed=True,
            market_type=MarketType.SWAP,
            operation="position_mode",
        )
        return bool(data.get("dualSidePosition", False))

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def _submit_order(self, market: Market, request: OrderRequest) -> Order:
        data = await self._request(
            "POST",
            self._paths(market)["order"],
            params=request.params,
            signed=True,
            market_type=market.type,
            operation="create_order",
            symbol=market.symbol,
        )
        return parse_binance_order(data, market.symbol)

    async def cancel_order(self, order_id: str, symbol: str) -> None:
        market = await self._market(symbol)
        await self._request(
            "DELETE",
            self._paths(market)["order"],
            params={"symbol": market.id, "orderId": order_id},
            signed=True,
            market_type=market.type,
            operation="cancel_order",
            symbol=market.symbol,
        )
        self._logger.log_order(operation="cancel", exchange_order_id=str(order_id), symbol=market.symbol)

    async def fetch_order(self, order_id: str, symbol: str) -> Order:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            self._paths(market)["order"],
            params={"symbol": market.id, "orderId": order_id},
            signed=True,
            market_type=market.type,
            operation="fetch_order",
            symbol=market.symbol,
        )
        order = parse_binance_order(data, market.symbol)
        self._log_order_query("fetch", order)
        return order

    async def fetch_open_orders(self, symbol: str) -> List[Order]:
        market = await self._market(symbol)
        rows = await self._request(
            "GET",
            self._paths(market)["open_orders"],
            params={"symbol": market.id},
            signed=True,
            market_type=market.type,
            operation="fetch_open_orders",
            symbol=market.symbol,
        )
        return [parse_binance_order(row, market.symbol) for row in rows]

    async def fetch_my_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        market = await self._market(symbol)
        rows = await self._request(
            "GET",
            self._paths(market)["my_trades"],
            params={"symbol": market.id, "startTime": since, "limit": limit},
            signed=True,
            market_type=market.type,
            operation="fetch_my_trades",
            symbol=market.symbol,
        )
        return parse_binance_my_trades(rows, market.symbol)
