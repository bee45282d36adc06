"""
OKX Exchange Adapter.

============================================================
PURPOSE
============================================================
Adapter for OKX V5 API (spot + USDT-margined swaps).

EXCHANGE SPECIFICS:
- Requires passphrase in addition to API key/secret
- Uses ISO timestamp format
- Native ids: BTC-USDT (spot), BTC-USDT-SWAP (swap)
- Swap sizes are in contracts (ctVal base coin per contract)
- Demo trading shares the live host; requests carry
  x-simulated-trading: 1
- Position mode is account-wide (/api/v5/account/config)

============================================================
API DOCUMENTATION
============================================================
https://www.okx.com/docs-v5/en/

============================================================
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import ExchangeConfig
from ..markets import optional_decimal, precision_digits, to_decimal
from ..normalizer import (
    parse_okx_balance,
    parse_okx_fills,
    parse_okx_ohlcv,
    parse_okx_order,
    parse_okx_positions,
    parse_okx_ticker,
    parse_okx_trades,
)
from ..signing import OkxSigner
from ..symbols import infer_settle, normalize_contract_symbol, normalize_symbol
from ..translator import OkxOrderTranslator, OrderRequest
from ..transport import HttpTransport
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

OKX_REST_URL = "https://www.okx.com"

OKX_SIMULATED_HEADER = "x-simulated-trading"

OKX_INST_TYPES = {
    MarketType.SPOT: "SPOT",
    MarketType.SWAP: "SWAP",
}

OKX_TIMEFRAMES = {
    "1h": "1H",
    "2h": "2H",
    "4h": "4H",
    "6h": "6H",
    "12h": "12H",
    "1d": "1D",
    "3d": "3D",
    "1w": "1W",
}


# ============================================================
# OKX ADAPTER
# ============================================================

class OkxAdapter(ExchangeAdapter):
    """OKX V5 adapter."""

    exchange_id = "okx"

    BASE_URLS = {
        MarketType.SPOT: (OKX_REST_URL, OKX_REST_URL),
        MarketType.SWAP: (OKX_REST_URL, OKX_REST_URL),
    }

    TIMEFRAMES = OKX_TIMEFRAMES

    def __init__(self, config: ExchangeConfig = None, transport: HttpTransport = None):
        super().__init__(config, transport)
        # symbol -> margin mode last set through set_margin_mode
        self._margin_modes: Dict[str, MarginMode] = {}

        if self._config.sandbox:
            for current in self._unique_transports():
                current.set_header(OKX_SIMULATED_HEADER, "1")

    def _create_signer(self) -> OkxSigner:
        return OkxSigner(
            self._config.api_key,
            self._config.api_secret,
            self._config.passphrase,
            simulated=self._config.sandbox,
        )

    def _create_translator(self) -> OkxOrderTranslator:
        return OkxOrderTranslator()

    def _extract_error(self, payload: Dict[str, Any]) -> Optional[Tuple[Any, str]]:
        code = payload.get("code")
        if code not in (None, "0", 0):
            message = payload.get("msg", "")
            # Batch-style endpoints put the real reason in data[0]
            data = payload.get("data")
            if isinstance(data, list) and data and isinstance(data[0], dict) and data[0].get("sCode") not in (None, "0"):
                return data[0]["sCode"], data[0].get("sMsg") or message
            return code, message
        return None

    # --------------------------------------------------------
    # MARKETS
    # --------------------------------------------------------

    async def _fetch_markets(self, market_type: MarketType) -> List[Market]:
        data = await self._request(
            "GET",
            "/api/v5/public/instruments",
            params={"instType": OKX_INST_TYPES[market_type]},
            operation="load_markets",
        )

        markets = []
        for info in data.get("data", []):
            if info.get("state") != "live":
                continue
            if market_type == MarketType.SWAP and info.get("ctType") != "linear":
                continue
            markets.append(self._parse_market(info, market_type))
        return markets

    def _parse_market(self, info: Dict[str, Any], market_type: MarketType) -> Market:
        contract = market_type == MarketType.SWAP
        base = info.get("baseCcy", "")
        quote = info.get("quoteCcy", "")

        if contract:
            # Swap listings leave baseCcy/quoteCcy empty; the underlying has them
            underlying = info.get("uly") or info.get("instFamily") or ""
            parts = underlying.split("-")
            if len(parts) == 2:
                base, quote = parts
            settle = info.get("settleCcy") or infer_settle(quote, base, linear=True)
            symbol = normalize_contract_symbol(base, quote, settle)
            multiplier = to_decimal(info.get("ctVal"))
        else:
            settle = ""
            symbol = normalize_symbol(base, quote)
            multiplier = to_decimal(0)

        return Market(
            symbol=symbol,
            id=info.get("instId", ""),
            base=base,
            quote=quote,
            settle=settle,
            type=market_type,
            active=True,
            contract=contract,
            linear=contract,
            contract_multiplier=multiplier,
            precision=MarketPrecision(
                amount=precision_digits(info.get("lotSz")),
                price=precision_digits(info.get("tickSz")),
            ),
            limits=MarketLimits(
                amount=MinMax(optional_decimal(info.get("minSz")), optional_decimal(info.get("maxMktSz"))),
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
            "/api/v5/market/ticker",
            params={"instId": market.id},
            operation="fetch_ticker",
            symbol=market.symbol,
        )
        rows = data.get("data", [])
        return parse_okx_ticker(rows[0] if rows else {}, market)

    async def fetch_tickers(self, market_type: MarketType = MarketType.SPOT) -> Dict[str, Ticker]:
        await self.load_markets(market_type=market_type)
        data = await self._request(
            "GET",
            "/api/v5/market/tickers",
            params={"instType": OKX_INST_TYPES[market_type]},
            operation="fetch_tickers",
        )

        registry = self.registry(market_type)
        tickers = {}
        for row in data.get("data", []):
            market = registry.get(row.get("instId", ""))
            if market is not None:
                tickers[market.symbol] = parse_okx_ticker(row, market)
        return tickers

    async def fetch_ohlcv(self, symbol: str, timeframe: str = "1h", since: int = None, limit: int = 100) -> List[OHLCV]:
        market = await self._market(symbol)
        params = {"instId": market.id, "bar": self.timeframe(timeframe), "limit": limit}
        if since is not None:
            # "before" returns records newer than the given ts
            params["before"] = since - 1
        data = await self._request(
            "GET",
            "/api/v5/market/candles",
            params=params,
            operation="fetch_ohlcv",
            symbol=market.symbol,
        )
        return parse_okx_ohlcv(data.get("data", []), market)

    async def fetch_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/api/v5/market/trades",
            params={"instId": market.id, "limit": limit},
            operation="fetch_trades",
            symbol=market.symbol,
        )
        return self._trades_since(parse_okx_trades(data.get("data", []), market), since)

    # --------------------------------------------------------
    # ACCOUNT
    # --------------------------------------------------------

    async def fetch_balance(self, market_type: MarketType = MarketType.SPOT) -> Balances:
        """Trading account balances (shared by spot and swaps)."""
        data = await self._request(
            "GET", "/api/v5/account/balance", signed=True, operation="fetch_balance"
        )
        return parse_okx_balance(data.get("data", []))

    async def fetch_positions(self, symbols: List[str] = None) -> List[Position]:
        await self.load_markets(market_type=MarketType.SWAP)
        params = {"instType": "SWAP"}
        if symbols and len(symbols) == 1:
            params["instId"] = self.market(symbols[0]).id

        data = await self._request(
            "GET", "/api/v5/account/positions", params=params, signed=True, operation="fetch_positions"
        )
        positions = parse_okx_positions(data.get("data", []), self._swap_markets.get)
        return self._filter_positions(positions, symbols)

    async def set_leverage(self, symbol: str, leverage: int) -> None:
        market = await self._market(symbol)
        self._require_contract(market, "set_leverage")
        margin_mode = self._margin_modes.get(market.symbol, MarginMode.CROSS)
        await self._request(
            "POST",
            "/api/v5/account/set-leverage",
            body={"instId": market.id, "lever": str(leverage), "mgnMode": margin_mode.value},
            signed=True,
            operation="set_leverage",
            symbol=market.symbol,
        )
        self._logger.info(f"Leverage set to {leverage}x for {market.symbol}")

    async def set_margin_mode(self, symbol: str, mode: Union[MarginMode, str]) -> None:
        margin_mode = self.parse_margin_mode(mode)
        market = await self._market(symbol)
        self._require_contract(market, "set_margin_mode")
        await self._request(
            "POST",
            "/api/v5/account/set-margin-mode",
            body={"instId": market.id, "mgnMode": margin_mode.value},
            signed=True,
            operation="set_margin_mode",
            symbol=market.symbol,
        )
        self._margin_modes[market.symbol] = margin_mode

    async def _discover_position_mode(self, market: Market) -> bool:
        data = await self._request(
            "GET", "/api/v5/account/config", signed=True, operation="position_mode"
        )
        rows = data.get("data", [])
        pos_mode = rows[0].get("posMode") if rows else None
        return pos_mode == "long_short_mode"

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def _submit_order(self, market: Market, request: OrderRequest) -> Order:
        data = await self._request(
            "POST",
            "/api/v5/trade/order",
            body=request.params,
            signed=True,
            operation="create_order",
            symbol=market.symbol,
        )
        rows = data.get("data", [])
        ack = rows[0] if rows else {}
        order = self._acknowledged(market, request, ack.get("ordId", ""), ack)
        order.client_order_id = ack.get("clOrdId") or request.client_order_id
        return order

    async def cancel_order(self, order_id: str, symbol: str) -> None:
        market = await self._market(symbol)
        await self._request(
            "POST",
            "/api/v5/trade/cancel-order",
            body={"instId": market.id, "ordId": order_id},
            signed=True,
            operation="cancel_order",
            symbol=market.symbol,
        )
        self._logger.log_order(operation="cancel", exchange_order_id=str(order_id), symbol=market.symbol)

    async def fetch_order(self, order_id: str, symbol: str) -> Order:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/api/v5/trade/order",
            params={"instId": market.id, "ordId": order_id},
            signed=True,
            operation="fetch_order",
            symbol=market.symbol,
        )
        rows = data.get("data", [])
        order = parse_okx_order(rows[0] if rows else {}, market)
        self._log_order_query("fetch", order)
        return order

    async def fetch_open_orders(self, symbol: str) -> List[Order]:
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/api/v5/trade/orders-pending",
            params={"instType": OKX_INST_TYPES[market.type], "instId": market.id},
            signed=True,
            operation="fetch_open_orders",
            symbol=market.symbol,
        )
        return [parse_okx_order(row, market) for row in data.get("data", [])]

    async def fetch_my_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        """Fills from the last three days; `begin` filters by fill time."""
        market = await self._market(symbol)
        data = await self._request(
            "GET",
            "/api/v5/trade/fills",
            params={
                "instType": OKX_INST_TYPES[market.type],
                "instId": market.id,
                "begin": since,
                "limit": min(limit, 100),
            },
            signed=True,
            operation="fetch_my_trades",
            symbol=market.symbol,
        )
        return parse_okx_fills(data.get("data", []), market)
