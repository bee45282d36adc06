"""
Bybit Exchange Adapter.

============================================================
PURPOSE
============================================================
Adapter for the Bybit V5 API (spot + linear perpetuals).

EXCHANGE SPECIFICS:
- HMAC-SHA256 over timestamp + key + recvWindow + payload
- Responses wrap data in {"retCode", "retMsg", "result"}
- Spot market buys are sized in quote currency (marketUnit)
- positionIdx: 0 one-way, 1 long / 2 short in hedge mode
- There is no read endpoint for the position mode. The mode is
  discovered by asking to switch to one-way: "not modified"
  (110025) means one-way already, success means the account was
  in hedge mode and it is switched straight back. The result is
  cached per symbol for the configured TTL.

============================================================
API DOCUMENTATION
============================================================
https://bybit-exchange.github.io/docs/v5/intro

============================================================
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..errors import BYBIT_NOT_MODIFIED, ExchangeException, OrderNotFound
from ..markets import optional_decimal, precision_digits, to_decimal
from ..normalizer import (
    parse_bybit_balance,
    parse_bybit_executions,
    parse_bybit_ohlcv,
    parse_bybit_order,
    parse_bybit_positions,
    parse_bybit_ticker,
    parse_bybit_trades,
)
from ..signing import BybitSigner
from ..symbols import infer_settle, normalize_contract_symbol, normalize_symbol
from ..translator import BybitOrderTranslator, OrderRequest
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

BYBIT_REST_URL = "https://api.bybit.com"
BYBIT_DEMO_URL = "https://api-demo.bybit.com"

BYBIT_POSITION_MODE_ONE_WAY = 0
BYBIT_POSITION_MODE_HEDGE = 3

BYBIT_PERPETUAL_TYPES = {"LinearPerpetual", "InversePerpetual"}

BYBIT_MARGIN_MODES = {
    MarginMode.ISOLATED: "ISOLATED_MARGIN",
    MarginMode.CROSS: "REGULAR_MARGIN",
}

BYBIT_TIMEFRAMES = {
    "1m": "1",
    "3m": "3",
    "5m": "5",
    "15m": "15",
    "30m": "30",
    "1h": "60",
    "2h": "120",
    "4h": "240",
    "6h": "360",
    "12h": "720",
    "1d": "D",
    "1w": "W",
    "1M": "M",
}


# ============================================================
# BYBIT ADAPTER
# ============================================================

class BybitAdapter(ExchangeAdapter):
    """Bybit V5 unified adapter."""

    exchange_id = "bybit"

    BASE_URLS = {
        MarketType.SPOT: (BYBIT_REST_URL, BYBIT_DEMO_URL),
        MarketType.SWAP: (BYBIT_REST_URL, BYBIT_DEMO_URL),
    }

    TIMEFRAMES = BYBIT_TIMEFRAMES
    QUOTE_PRICED_MARKET_BUY = True

    def _create_signer(self) -> BybitSigner:
        return BybitSigner(self._config.api_key, self._config.api_secret, self._config.recv_window_ms)

    def _create_translator(self) -> BybitOrderTranslator:
        return BybitOrderTranslator()

    def _extract_error(self, payload: Dict[str, Any]) -> Optional[Tuple[Any, str]]:
        code = payload.get("retCode")
        if code not in (None, 0, "0"):
            return code, payload.get("retMsg", "")
        return None

    @staticmethod
    def _category(market: Market) -> str:
        if not market.contract:
            return "spot"
        return "linear" if market.linear else "inverse"

    @property
    def account_type(self) -> str:
        return self._config.options.get("account_type", "UNIFIED")

    # --------------------------------------------------------
    # MARKETS
    # --------------------------------------------------------

    async def _fetch_markets(self, market_type: MarketType) -> List[Market]:
        category = "linear" if market_type == MarketType.SWAP else "spot"
        params: Dict[str, Any] = {"category": category, "limit": 1000}

        markets = []
        while True:
            data = await self._request(
                "GET", "/v5/market/instruments-info", params=params, operation="load_markets"
            )
            result = data.get("result", {})
            for info in result.get("list", []):
                if info.get("status") != "Trading":
                    continue
                if market_type == MarketType.SWAP and info.get("contractType") not in BYBIT_PERPETUAL_TYPES:
                    continue
                markets.append(self._parse_market(info, market_type))

            cursor = result.get("nextPageCursor")
            if not cursor:
                break
            params = dict(params, cursor=cursor)
        return markets

    def _parse_market(self, info: Dict[str, Any], market_type: MarketType) -> Market:
        base = info.get("baseCoin", "")
        quote = info.get("quoteCoin", "")
        lot = info.get("lotSizeFilter", {})
        price_filter = info.get("priceFilter", {})

        contract = market_type == MarketType.SWAP
        linear = contract and info.get("contractType") == "LinearPerpetual"
        inverse = contract and not linear

        if contract:
            settle = info.get("settleCoin") or infer_settle(quote, base, linear, inverse)
            symbol = normalize_contract_symbol(base, quote, settle)
            amount_step = lot.get("qtyStep")
        else:
            settle = ""
            symbol = normalize_symbol(base, quote)
            amount_step = lot.get("basePrecision")

        tick = price_filter.get("tickSize")
        if to_decimal(tick) > 0:
            price_digits = precision_digits(tick)
        else:
            price_digits = precision_digits(lot.get("quotePrecision"))

        return Market(
            symbol=symbol,
            id=info.get("symbol", ""),
            base=base,
            quote=quote,
            settle=settle,
            type=market_type,
            active=True,
            contract=contract,
            linear=linear,
            inverse=inverse,
            precision=MarketPrecision(amount=precision_digits(amount_step), price=price_digits),
            limits=MarketLimits(
                amount=MinMax(optional_decimal(lot.get("minOrderQty")), optional_decimal(lot.get("maxOrderQty"))),
                price=MinMax(optional_decimal(price_filter.get("minPrice")), optional_decimal(price_filter.get("maxPrice"))),
                cost=MinMax(
                    optional_decimal(lot.get("minOrderAmt") or lot.get("minNotionalValue")),
                    optional_decimal(lot.get("maxOrderAmt")),
                ),
            ),
            info=info,
        )

    # --------------------------------------------------------
    # MARKET DATA
    # --------------------------------------------------------

    async def fetch_ticker(self, symbol: str) -> Ticker:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/v5/market/tickers",
            params={"category": self._category(market), "symbol": market.id},
            operation="fetch_ticker",
            symbol=market.symbol,
        )
        rows = data.get("result", {}).get("list", [])
        return parse_bybit_ticker(rows[0] if rows else {}, market.symbol, data.get("time"))

    async def fetch_tickers(self, market_type: MarketType = MarketType.SPOT) -> Dict[str, Ticker]:
        await self.load_markets(market_type=market_type)
        category = "linear" if market_type == MarketType.SWAP else "spot"
        data = await self._request(
            "GET", "/v5/market/tickers", params={"category": category}, operation="fetch_tickers"
        )

        registry = self.registry(market_type)
        tickers = {}
        for row in data.get("result", {}).get("list", []):
            market = registry.get(row.get("symbol", ""))
            if market is not None:
                tickers[market.symbol] = parse_bybit_ticker(row, market.symbol, data.get("time"))
        return tickers

    async def fetch_ohlcv(self, symbol: str, timeframe: str = "1h", since: int = None, limit: int = 100) -> List[OHLCV]:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/v5/market/kline",
            params={
                "category": self._category(market),
                "symbol": market.id,
                "interval": self.timeframe(timeframe),
                "start": since,
                "limit": limit,
            },
            operation="fetch_ohlcv",
            symbol=market.symbol,
        )
        return parse_bybit_ohlcv(data.get("result", {}).get("list", []))

    async def fetch_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/v5/market/recent-trade",
            params={"category": self._category(market), "symbol": market.id, "limit": limit},
            operation="fetch_trades",
            symbol=market.symbol,
        )
        # recent-trade has no time filter
        trades = parse_bybit_trades(data.get("result", {}).get("list", []), market.symbol)
        return self._trades_since(trades, since)

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def fetch_balance(self, market_type: MarketType = MarketType.SPOT) -> Balances:
        account_type = self.account_type
        if market_type == MarketType.SWAP and account_type == "SPOT":
            account_type = "CONTRACT"
        data = await self._request(
            "GET",
            "/v5/account/wallet-balance",
            params={"accountType": account_type},
            signed=True,
            operation="fetch_balance",
        )
        return parse_bybit_balance(data.get("result", {}))

    async def fetch_positions(self, symbols: List[str] = None) -> List[Position]:
        await self.load_markets(market_type=MarketType.SWAP)
        params: Dict[str, Any] = {"category": "linear"}
        if symbols and len(symbols) == 1:
            params["symbol"] = self.market(symbols[0]).id
        else:
            params["settleCoin"] = self._config.options.get("settle_coin", "USDT")

        data = await self._request(
            "GET", "/v5/position/list", params=params, signed=True, operation="fetch_positions"
        )
        positions = parse_bybit_positions(data.get("result", {}).get("list", []), self._swap_markets.get)
        return self._filter_positions(positions, symbols)

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        market = await self._market(symbol)
        self._require_contract(market, "set_leverage")
        body = {
            "category": self._category(market),
            "symbol": market.id,
            "buyLeverage": str(leverage),
            "sellLeverage": str(leverage),
        }
        await self._post_ignoring_not_modified("/v5/position/set-leverage", body, "set_leverage", market.symbol)
        self._logger.info(f"Leverage set to {leverage}x for {market.symbol}")

    async def set_margin_mode(self, symbol: str, mode: Union[MarginMode, str]) -> None:
        """Margin mode is account-wide on unified accounts."""
        margin_mode = self.parse_margin_mode(mode)
        market = await self._market(symbol)
        self._require_contract(market, "set_margin_mode")
        await self._post_ignoring_not_modified(
            "/v5/account/set-margin-mode",
            {"setMarginMode": BYBIT_MARGIN_MODES[margin_mode]},
            "set_margin_mode",
            market.symbol,
        )

    async def _post_ignoring_not_modified(self, path: str, body: Dict[str, Any], operation: str, symbol: str) -> None:
        try:
            await self._request("POST", path, body=body, signed=True, operation=operation, symbol=symbol)
        except ExchangeException as e:
            if not self._is_not_modified(e):
                raise
            self._logger.debug(f"{operation} not modified for {symbol}")

    @staticmethod
    def _is_not_modified(error: ExchangeException) -> bool:
        code = error.error.exchange_code
        return code is not None and code.lstrip("-").isdigit() and int(code) in BYBIT_NOT_MODIFIED

    # --------------------------------------------------------
    # POSITION MODE
    # --------------------------------------------------------

    def position_mode_key(self, market: Market) -> str:
        return market.symbol

    async def _discover_position_mode(self, market: Market) -> bool:
        body = {
            "category": self._category(market),
            "symbol": market.id,
            "mode": BYBIT_POSITION_MODE_ONE_WAY,
        }
        try:
            await self._request(
                "POST", "/v5/position/switch-mode", body=body, signed=True,
                operation="position_mode", symbol=market.symbol,
            )
        except ExchangeException as e:
            if self._is_not_modified(e):
                return False
            raise

        # The switch succeeded, so the account was in hedge mode: restore it.
        self._logger.warning(f"Restoring hedge mode on {market.symbol} after mode check")
        await self._request(
            "POST",
            "/v5/position/switch-mode",
            body=dict(body, mode=BYBIT_POSITION_MODE_HEDGE),
            signed=True,
            operation="position_mode",
            symbol=market.symbol,
        )
        return True

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def _submit_order(self, market: Market, request: OrderRequest) -> Order:
        data = await self._request(
            "POST",
            "/v5/order/create",
            body=request.params,
            signed=True,
            operation="create_order",
            symbol=market.symbol,
        )
        result = data.get("result", {})
        order = self._acknowledged(market, request, result.get("orderId", ""), result)
        order.client_order_id = result.get("orderLinkId") or request.client_order_id
        return order

    async def cancel_order(self, order_id: str, symbol: str) -> None:
        market = await self._market(symbol)
        await self._request(
            "POST",
            "/v5/order/cancel",
            body={"category": self._category(market), "symbol": market.id, "orderId": order_id},
            signed=True,
            operation="cancel_order",
            symbol=market.symbol,
        )
        self._logger.log_order(operation="cancel", exchange_order_id=str(order_id), symbol=market.symbol)

    async def fetch_order(self, order_id: str, symbol: str) -> Order:
        """Open orders first, then order history."""
        market = await self._market(symbol)
        params = {"category": self._category(market), "symbol": market.id, "orderId": order_id}

        for path in ("/v5/order/realtime", "/v5/order/history"):
            data = await self._request(
                "GET", path, params=params, signed=True, operation="fetch_order", symbol=market.symbol
            )
            rows = data.get("result", {}).get("list", [])
            if rows:
                order = parse_bybit_order(rows[0], market.symbol)
                self._log_order_query("fetch", order)
                return order

        raise OrderNotFound.from_message(
            f"order {order_id} not found",
            exchange_id=self.exchange_id,
            operation="fetch_order",
            symbol=market.symbol,
        )

    async def fetch_open_orders(self, symbol: str) -> List[Order]:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/v5/order/realtime",
            params={"category": self._category(market), "symbol": market.id, "openOnly": 0},
            signed=True,
            operation="fetch_open_orders",
            symbol=market.symbol,
        )
        return [parse_bybit_order(row, market.symbol) for row in data.get("result", {}).get("list", [])]

    async def fetch_my_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/v5/execution/list",
            params={
                "category": self._category(market),
                "symbol": market.id,
                "startTime": since,
                "limit": limit,
            },
            signed=True,
            operation="fetch_my_trades",
            symbol=market.symbol,
        )
        return parse_bybit_executions(data.get("result", {}).get("list", []), market.symbol)
