"""
Gate Exchange Adapter.

============================================================
PURPOSE
============================================================
Adapter for Gate API v4 (spot + USDT-settled perpetuals).

EXCHANGE SPECIFICS:
- HMAC-SHA512 over method, path, query, body hash, timestamp
- Native ids: BTC_USDT for spot and futures alike
- Futures sizes are signed integers in contracts
  (quanto_multiplier base coin per contract)
- Spot market buys are sized in quote currency
- Failures come back as {"label": ..., "message": ...}
- Margin mode cannot be changed over the API

============================================================
API DOCUMENTATION
============================================================
https://www.gate.io/docs/developers/apiv4/

============================================================
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import VenueError
from ..markets import optional_decimal, precision_digits, to_decimal
from ..normalizer import (
    parse_gate_balance,
    parse_gate_ohlcv,
    parse_gate_order,
    parse_gate_positions,
    parse_gate_ticker,
    parse_gate_trades,
)
from ..signing import GATE_API_PREFIX, GateSigner
from ..symbols import normalize_contract_symbol, normalize_symbol
from ..translator import GateOrderTranslator, OrderRequest
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

GATE_REST_URL = "https://api.gateio.ws"
GATE_TESTNET_URL = "https://api-testnet.gateapi.io"

GATE_SETTLE = "usdt"

GATE_TIMEFRAMES = {
    "1w": "7d",
    "1M": "30d",
}

# interval suffix -> seconds
INTERVAL_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def interval_seconds(interval: str) -> int:
    """Length of a Gate interval such as "15m" or "7d"."""
    try:
        return int(interval[:-1]) * INTERVAL_UNITS[interval[-1]]
    except (KeyError, ValueError):
        raise ValueError(f"unknown interval: {interval!r}")


# ============================================================
# GATE ADAPTER
# ============================================================

class GateAdapter(ExchangeAdapter):
    """
    Gate spot + USDT perpetual adapter.

    Gate has no position-mode concept the order body depends on,
    so the default one-way resolution is used.
    """

    exchange_id = "gate"

    BASE_URLS = {
        MarketType.SPOT: (GATE_REST_URL, GATE_TESTNET_URL),
        MarketType.SWAP: (GATE_REST_URL, GATE_TESTNET_URL),
    }

    TIMEFRAMES = GATE_TIMEFRAMES
    QUOTE_PRICED_MARKET_BUY = True

    def _create_signer(self) -> GateSigner:
        return GateSigner(self._config.api_key, self._config.api_secret)

    def _create_translator(self) -> GateOrderTranslator:
        return GateOrderTranslator()

    def _extract_error(self, payload: Dict[str, Any]) -> Optional[Tuple[Any, str]]:
        label = payload.get("label")
        if label:
            return label, payload.get("message") or payload.get("detail", "")
        return None

    @staticmethod
    def _futures(path: str = "") -> str:
        return f"{GATE_API_PREFIX}/futures/{GATE_SETTLE}{path}"

    # --------------------------------------------------------
    # MARKETS
    # --------------------------------------------------------

    async def _fetch_markets(self, market_type: MarketType) -> List[Market]:
        if market_type == MarketType.SWAP:
            rows = await self._request(
                "GET", self._futures("/contracts"), market_type=MarketType.SWAP, operation="load_markets"
            )
            return [
                self._parse_contract(info)
                for info in rows
                if not info.get("in_delisting") and len(info.get("name", "").split("_")) == 2
            ]

        rows = await self._request("GET", f"{GATE_API_PREFIX}/spot/currency_pairs", operation="load_markets")
        return [self._parse_spot(info) for info in rows if info.get("trade_status") == "tradable"]

    def _parse_spot(self, info: Dict[str, Any]) -> Market:
        base = info.get("base", "")
        quote = info.get("quote", "")
        return Market(
            symbol=normalize_symbol(base, quote),
            id=info.get("id", ""),
            base=base,
            quote=quote,
            type=MarketType.SPOT,
            active=True,
            precision=MarketPrecision(
                amount=int(info.get("amount_precision", 8)),
                price=int(info.get("precision", 8)),
            ),
            limits=MarketLimits(
                amount=MinMax(optional_decimal(info.get("min_base_amount")), optional_decimal(info.get("max_base_amount"))),
                cost=MinMax(optional_decimal(info.get("min_quote_amount")), optional_decimal(info.get("max_quote_amount"))),
            ),
            info=info,
        )

    def _parse_contract(self, info: Dict[str, Any]) -> Market:
        base, quote = info["name"].split("_")
        settle = GATE_SETTLE.upper()
        return Market(
            symbol=normalize_contract_symbol(base, quote, settle),
            id=info["name"],
            base=base,
            quote=quote,
            settle=settle,
            type=MarketType.SWAP,
            active=True,
            contract=True,
            linear=True,
            contract_multiplier=to_decimal(info.get("quanto_multiplier")),
            # whole contracts only
            precision=MarketPrecision(amount=0, price=precision_digits(info.get("order_price_round"))),
            limits=MarketLimits(
                amount=MinMax(optional_decimal(info.get("order_size_min")), optional_decimal(info.get("order_size_max"))),
            ),
            info=info,
        )

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    async def fetch_ticker(self, symbol: str) -> Ticker:
        market = await self._market(symbol)
        if market.contract:
            path, params = self._futures("/tickers"), {"contract": market.id}
        else:
            path, params = f"{GATE_API_PREFIX}/spot/tickers", {"currency_pair": market.id}

        rows = await self._request(
            "GET", path, params=params, market_type=market.type, operation="fetch_ticker", symbol=market.symbol
        )
        return parse_gate_ticker(rows[0] if rows else {}, market)

    async def fetch_tickers(self, market_type: MarketType = MarketType.SPOT) -> Dict[str, Ticker]:
        await self.load_markets(market_type=market_type)
        if market_type == MarketType.SWAP:
            path, key = self._futures("/tickers"), "contract"
        else:
            path, key = f"{GATE_API_PREFIX}/spot/tickers", "currency_pair"
        rows = await self._request("GET", path, market_type=market_type, operation="fetch_tickers")

        registry = self.registry(market_type)
        tickers = {}
        for row in rows:
            market = registry.get(row.get(key, ""))
            if market is not None:
                tickers[market.symbol] = parse_gate_ticker(row, market)
        return tickers

    async def fetch_ohlcv(self, symbol: str, timeframe: str = "1h", since: int = None, limit: int = 100) -> List[OHLCV]:
        """
        Gate rejects `limit` together with `from`, so a start time is
        turned into a from/to window of `limit` intervals.
        """
        market = await self._market(symbol)
        interval = self.timeframe(timeframe)

        if market.contract:
            path, params = self._futures("/candlesticks"), {"contract": market.id, "interval": interval}
        else:
            path, params = f"{GATE_API_PREFIX}/spot/candlesticks", {"currency_pair": market.id, "interval": interval}

        if since is None:
            params["limit"] = limit
        else:
            start = since // 1000
            params["from"] = start
            params["to"] = start + interval_seconds(interval) * (limit - 1)

        rows = await self._request(
            "GET", path, params=params, market_type=market.type, operation="fetch_ohlcv", symbol=market.symbol
        )
        return parse_gate_ohlcv(rows, market)

    async def fetch_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        market = await self._market(symbol)
        if market.contract:
            path, params = self._futures("/trades"), {"contract": market.id, "limit": limit}
        else:
            path, params = f"{GATE_API_PREFIX}/spot/trades", {"currency_pair": market.id, "limit": limit}

        rows = await self._request(
            "GET", path, params=params, market_type=market.type, operation="fetch_trades", symbol=market.symbol
        )
        return self._trades_since(parse_gate_trades(rows, market), since)

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def fetch_balance(self, market_type: MarketType = MarketType.SPOT) -> Balances:
        if market_type == MarketType.SWAP:
            data = await self._request(
                "GET", self._futures("/accounts"), signed=True, market_type=MarketType.SWAP, operation="fetch_balance"
            )
        else:
            data = await self._request(
                "GET", f"{GATE_API_PREFIX}/spot/accounts", signed=True, operation="fetch_balance"
            )
        return parse_gate_balance(data)

    async def fetch_positions(self, symbols: List[str] = None) -> List[Position]:
        await self.load_markets(market_type=MarketType.SWAP)
        rows = await self._request(
            "GET",
            self._futures("/positions"),
            signed=True,
            market_type=MarketType.SWAP,
            operation="fetch_positions",
        )
        positions = parse_gate_positions(rows, self._swap_markets.get)
        return self._filter_positions(positions, symbols)

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        market = await self._market(symbol)
        self._require_contract(market, "set_leverage")
        await self._request(
            "POST",
            self._futures(f"/positions/{market.id}/leverage"),
            params={"leverage": str(leverage)},
            signed=True,
            market_type=MarketType.SWAP,
            operation="set_leverage",
            symbol=market.symbol,
        )
        self._logger.info(f"Leverage set to {leverage}x for {market.symbol}")

    async def set_margin_mode(self, symbol: str, mode: Union[MarginMode, str]) -> None:
        self.parse_margin_mode(mode)
        raise VenueError.from_message(
            "not supported: Gate margin mode can only be changed on the website",
            exchange_id=self.exchange_id,
            operation="set_margin_mode",
            symbol=symbol,
        )

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    def _order_path(self, market: Market, order_id: str = None) -> str:
        base = self._futures("/orders") if market.contract else f"{GATE_API_PREFIX}/spot/orders"
        return f"{base}/{order_id}" if order_id else base

    def _order_params(self, market: Market) -> Optional[Dict[str, Any]]:
        # spot order ids are only unique per currency pair
        return None if market.contract else {"currency_pair": market.id}

    async def _submit_order(self, market: Market, request: OrderRequest) -> Order:
        data = await self._request(
            "POST",
            self._order_path(market),
            body=request.params,
            signed=True,
            market_type=market.type,
            operation="create_order",
            symbol=market.symbol,
        )
        return parse_gate_order(data, market)

    async def cancel_order(self, order_id: str, symbol: str) -> None:
        market = await self._market(symbol)
        await self._request(
            "DELETE",
            self._order_path(market, order_id),
            params=self._order_params(market),
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
            self._order_path(market, order_id),
            params=self._order_params(market),
            signed=True,
            market_type=market.type,
            operation="fetch_order",
            symbol=market.symbol,
        )
        order = parse_gate_order(data, market)
        self._log_order_query("fetch", order)
        return order

    async def fetch_open_orders(self, symbol: str) -> List[Order]:
        market = await self._market(symbol)
        key = "contract" if market.contract else "currency_pair"
        rows = await self._request(
            "GET",
            self._order_path(market),
            params={key: market.id, "status": "open"},
            signed=True,
            market_type=market.type,
            operation="fetch_open_orders",
            symbol=market.symbol,
        )
        return [parse_gate_order(row, market) for row in rows]

    async def fetch_my_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        market = await self._market(symbol)
        if market.contract:
            path, params = self._futures("/my_trades"), {"contract": market.id, "limit": limit}
        else:
            path = f"{GATE_API_PREFIX}/spot/my_trades"
            params = {"currency_pair": market.id, "limit": limit, "from": since // 1000 if since else None}

        rows = await self._request(
            "GET",
            path,
            params=params,
            signed=True,
            market_type=market.type,
            operation="fetch_my_trades",
            symbol=market.symbol,
        )
        return self._trades_since(parse_gate_trades(rows, market), since)
