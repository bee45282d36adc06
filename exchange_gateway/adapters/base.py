"""
Exchange Gateway - Exchange Adapter Base.

============================================================
PURPOSE
============================================================
Abstract unified interface shared by every vendor adapter, and
the composition of registry, codec, signer, translator and
normalizer behind it.

DESIGN PRINCIPLES:
- One adapter instance per vendor account
- Separate spot and contract registries (native ids collide)
- Markets load lazily on first use, then never implicitly again
- Signing fails before any I/O when credentials are missing
- No retries: every vendor failure surfaces as ExchangeException

============================================================
"""

import json
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from ..config import ExchangeConfig
from ..errors import (
    ExchangeException,
    InvalidOrderType,
    InvalidSymbol,
    VenueError,
    create_decode_error,
    raise_venue_error,
)
from ..logging_utils import AdapterLogger
from ..markets import MarketRegistry
from ..signing import RequestSigner, build_query_string, serialize_body
from ..symbols import encode, is_contract_symbol
from ..translator import (
    ACCOUNT_WIDE,
    OrderOptions,
    OrderRequest,
    OrderTranslator,
    PositionModeCache,
    coerce_side,
    infer_order_type,
)
from ..transport import HttpStatusError, HttpTransport
from ..types import (
    Balances,
    MarginMode,
    Market,
    MarketType,
    OHLCV,
    Order,
    OrderSide,
    OrderType,
    Position,
    Ticker,
    Trade,
    from_millis,
)


logger = logging.getLogger(__name__)


class ExchangeAdapter(ABC):
    """
    Abstract base class for vendor adapters.

    Subclasses provide URLs, a signer, a translator, the payload
    envelope check and the vendor endpoints. Everything else
    (market loading, symbol routing, mode caching, order
    orchestration) lives here.
    """

    exchange_id = ""

    # market type -> (live URL, sandbox URL)
    BASE_URLS: Dict[MarketType, Tuple[str, str]] = {}

    # canonical timeframe -> vendor interval
    TIMEFRAMES: Dict[str, str] = {}

    # Spot market buys are sized in quote currency
    QUOTE_PRICED_MARKET_BUY = False

    def __init__(self, config: ExchangeConfig = None, transport: HttpTransport = None):
        """
        Initialize adapter.

        Args:
            config: Adapter configuration (defaults to public-only)
            transport: Transport used for every market type; when
                omitted one HttpTransport per distinct base URL is built
        """
        self._config = config or ExchangeConfig(exchange_id=self.exchange_id)
        self._logger = AdapterLogger(self.exchange_id)
        self._logger.set_debug(self._config.debug)

        self._spot_markets = MarketRegistry(self.exchange_id, "spot")
        self._swap_markets = MarketRegistry(self.exchange_id, "swap")
        self._position_modes = PositionModeCache(self._config.position_mode_ttl_seconds)

        self._signer = self._create_signer()
        self._translator = self._create_translator()
        self._transports = self._create_transports(transport)

    # --------------------------------------------------------
    # CONSTRUCTION HOOKS
    # --------------------------------------------------------

    @abstractmethod
    def _create_signer(self) -> RequestSigner:
        """Vendor signing strategy built from config."""

    @abstractmethod
    def _create_translator(self) -> OrderTranslator:
        """Vendor order translator."""

    def base_url(self, market_type: MarketType) -> str:
        if self._config.base_url_override:
            return self._config.base_url_override
        live, sandbox = self.BASE_URLS[market_type]
        return sandbox if self._config.sandbox else live

    def _create_transports(self, transport: Optional[HttpTransport]) -> Dict[MarketType, HttpTransport]:
        if transport is not None:
            return {market_type: transport for market_type in MarketType}

        by_url: Dict[str, HttpTransport] = {}
        transports = {}
        for market_type in MarketType:
            url = self.base_url(market_type)
            if url not in by_url:
                by_url[url] = HttpTransport(
                    url,
                    self.exchange_id,
                    timeout_seconds=self._config.timeout_seconds,
                    proxy=self._config.proxy_url,
                    adapter_logger=self._logger,
                )
            transports[market_type] = by_url[url]
        return transports

    # --------------------------------------------------------
    # PROPERTIES / LIFECYCLE
    # --------------------------------------------------------

    @property
    def config(self) -> ExchangeConfig:
        return self._config

    @property
    def has_credentials(self) -> bool:
        return self._signer.has_credentials

    def set_proxy(self, proxy_url: str) -> None:
        for transport in self._unique_transports():
            transport.set_proxy(proxy_url)

    def _unique_transports(self) -> List[HttpTransport]:
        unique = []
        for transport in self._transports.values():
            if all(transport is not seen for seen in unique):
                unique.append(transport)
        return unique

    async def close(self) -> None:
        """Close HTTP sessions."""
        for transport in self._unique_transports():
            await transport.close()

    async def __aenter__(self) -> "ExchangeAdapter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # --------------------------------------------------------
    # MARKETS
    # --------------------------------------------------------

    def registry(self, market_type: MarketType) -> MarketRegistry:
        return self._swap_markets if market_type == MarketType.SWAP else self._spot_markets

    @staticmethod
    def market_type_of(symbol: str) -> MarketType:
        return MarketType.SWAP if is_contract_symbol(symbol) else MarketType.SPOT

    async def load_markets(self, reload: bool = False, market_type: MarketType = None) -> Dict[str, Market]:
        """
        Load spot and/or contract listings.

        Args:
            reload: Refetch even if already loaded
            market_type: Load only this registry

        Returns:
            Markets keyed by canonical symbol
        """
        types = [market_type] if market_type else list(MarketType)
        markets: Dict[str, Market] = {}
        for current in types:
            loaded = await self.registry(current).load(
                lambda current=current: self._fetch_markets(current), reload
            )
            markets.update({m.symbol: m for m in loaded})
        return markets

    async def fetch_markets(self, market_type: MarketType = None) -> List[Market]:
        return list((await self.load_markets(market_type=market_type)).values())

    def market(self, symbol: str) -> Market:
        """Look up a loaded market by canonical symbol or native id."""
        return self.registry(self.market_type_of(symbol)).lookup(symbol)

    def market_id(self, symbol: str) -> str:
        """Native id from the registry, else the codec fallback."""
        market = self.registry(self.market_type_of(symbol)).get(symbol)
        return market.id if market else encode(self.exchange_id, symbol)

    def symbol_for(self, native_id: str, market_type: MarketType = MarketType.SPOT) -> str:
        return self.registry(market_type).symbol_for(native_id)

    async def _market(self, symbol: str) -> Market:
        market_type = self.market_type_of(symbol)
        await self.load_markets(market_type=market_type)
        return self.registry(market_type).lookup(symbol)

    def _require_contract(self, market: Market, operation: str) -> None:
        if not market.contract:
            raise InvalidSymbol.from_message(
                f"{operation} requires a contract market",
                exchange_id=self.exchange_id,
                operation=operation,
                symbol=market.symbol,
            )

    def timeframe(self, timeframe: str) -> str:
        return self.TIMEFRAMES.get(timeframe, timeframe)

    @staticmethod
    def parse_margin_mode(mode: Union[MarginMode, str]) -> MarginMode:
        if isinstance(mode, MarginMode):
            return mode
        try:
            return MarginMode(str(mode).lower())
        except ValueError:
            raise InvalidOrderType.from_message(f"invalid margin mode: {mode!r}")

    # --------------------------------------------------------
    # REQUEST HANDLING
    # --------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] = None,
        body: Any = None,
        signed: bool = False,
        market_type: MarketType = MarketType.SPOT,
        operation: str = None,
        symbol: str = None,
    ) -> Any:
        """
        Send a request and return the unwrapped vendor payload.

        Raises:
            AuthenticationRequired: signed call without credentials
            ExchangeException subclasses: venue or network failures
        """
        transport = self._transports[market_type]
        operation = operation or path.rsplit("/", 1)[-1]

        if signed:
            signed_request = self._signer.sign(method, path, params, body)
            query, body_str, headers = signed_request.query, signed_request.body, signed_request.headers
        else:
            query, body_str, headers = build_query_string(params), serialize_body(body), None

        try:
            raw = await transport.request(method, path, query, body_str, headers, operation)
        except HttpStatusError as e:
            self._raise_http_error(e, operation, symbol)
        except ExchangeException as e:
            raise e.with_context(operation, symbol)

        payload = self._decode(raw, operation)
        return self._unwrap(payload, operation, symbol)

    def _decode(self, raw: bytes, operation: str) -> Any:
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError as e:
            raise VenueError(create_decode_error(self.exchange_id, f"invalid JSON: {e}", operation))

    def _raise_http_error(self, error: HttpStatusError, operation: str, symbol: str = None) -> None:
        code: Any = error.status
        message = error.body.decode("utf-8", errors="replace")[:200] if error.body else f"HTTP {error.status}"
        try:
            payload = json.loads(error.body) if error.body else None
        except ValueError:
            payload = None

        if isinstance(payload, dict):
            extracted = self._extract_error(payload)
            if extracted is not None:
                code, message = extracted

        raise_venue_error(self.exchange_id, code, message, error.status, operation, symbol)

    @abstractmethod
    def _extract_error(self, payload: Dict[str, Any]) -> Optional[Tuple[Any, str]]:
        """(code, message) if the payload reports a failure, else None."""

    def _unwrap(self, payload: Any, operation: str, symbol: str = None) -> Any:
        """Check the vendor envelope and return the useful part."""
        if isinstance(payload, dict):
            extracted = self._extract_error(payload)
            if extracted is not None:
                code, message = extracted
                raise_venue_error(self.exchange_id, code, message, None, operation, symbol)
        return payload

    # --------------------------------------------------------
    # POSITION MODE
    # --------------------------------------------------------

    def position_mode_key(self, market: Market) -> str:
        return ACCOUNT_WIDE

    async def resolve_hedge_mode(self, market: Market, options: OrderOptions = None) -> bool:
        """
        Hedge (True) or one-way (False) for a contract market.

        Caller override, then configured option, then the cached
        answer, then a fresh venue query.
        """
        if options is not None and options.hedge_mode is not None:
            return options.hedge_mode
        configured = self._config.options.get("hedge_mode")
        if configured is not None:
            return bool(configured)

        key = self.position_mode_key(market)
        cached = self._position_modes.get(key)
        if cached is not None:
            return cached

        hedge = await self._discover_position_mode(market)
        self._position_modes.set(key, hedge)
        self._logger.debug(f"position mode for {key}: {'hedge' if hedge else 'one-way'}")
        return hedge

    async def _discover_position_mode(self, market: Market) -> bool:
        """Query the venue for its position mode. One-way by default."""
        return False

    # --------------------------------------------------------
    # ORDERS
    # --------------------------------------------------------

    async def create_order(
        self,
        symbol: str,
        side: Union[OrderSide, str],
        amount: Union[str, Decimal],
        options: OrderOptions = None,
    ) -> Order:
        """
        Place an order.

        Args:
            symbol: Canonical symbol
            side: buy / sell
            amount: Base-coin amount
            options: Price (makes it a limit order), client id,
                time in force, position intent, extras

        Returns:
            The venue's acknowledgement as an Order
        """
        options = options or OrderOptions()
        market = await self._market(symbol)

        hedge_mode = False
        if market.contract:
            hedge_mode = await self.resolve_hedge_mode(market, options)

        ticker = None
        if (
            self.QUOTE_PRICED_MARKET_BUY
            and not market.contract
            and infer_order_type(options) == OrderType.MARKET
            and coerce_side(side) == OrderSide.BUY
        ):
            ticker = await self.fetch_ticker(market.symbol)

        request = self._translator.translate(market, side, amount, options, hedge_mode, ticker)

        try:
            order = await self._submit_order(market, request)
        except ExchangeException as e:
            self._logger.log_order(
                operation="create",
                client_order_id=request.client_order_id,
                symbol=market.symbol,
                side=request.side.value,
                order_type=request.order_type.value,
                quantity=request.quantity,
                error_code=e.error.code,
                error_message=e.error.message,
            )
            raise e.with_context("create_order", market.symbol)

        self._logger.log_order(
            operation="create",
            client_order_id=order.client_order_id,
            exchange_order_id=order.id,
            symbol=market.symbol,
            side=order.side.value,
            order_type=order.type.value,
            quantity=request.quantity,
            price=str(request.price) if request.price is not None else None,
            status=order.status.value,
        )
        return order

    @abstractmethod
    async def _submit_order(self, market: Market, request: OrderRequest) -> Order:
        """Send a translated order and parse the acknowledgement."""

    def _acknowledged(self, market: Market, request: OrderRequest, order_id: str, info: Dict[str, Any]) -> Order:
        """Order built from the request for venues that only echo ids."""
        return Order(
            id=str(order_id),
            client_order_id=request.client_order_id,
            symbol=market.symbol,
            type=request.order_type,
            side=request.side,
            amount=request.amount,
            price=request.price or Decimal("0"),
            remaining=request.amount,
            info=info,
        )

    # --------------------------------------------------------
    # VENUE OPERATIONS
    # --------------------------------------------------------

    @abstractmethod
    async def _fetch_markets(self, market_type: MarketType) -> List[Market]:
        """Fetch and build the listing for one market type."""

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> Ticker:
        """24h ticker for one symbol."""

    @abstractmethod
    async def fetch_tickers(self, market_type: MarketType = MarketType.SPOT) -> Dict[str, Ticker]:
        """Tickers for every loaded market of a type."""

    @abstractmethod
    async def fetch_ohlcv(
        self,
        symbol: str,
        timeframe: str = "1h",
        since: int = None,
        limit: int = 100,
    ) -> List[OHLCV]:
        """Candles, oldest first. `since` is epoch milliseconds."""

    @abstractmethod
    async def fetch_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        """Recent public trades."""

    @abstractmethod
    async def fetch_balance(self, market_type: MarketType = MarketType.SPOT) -> Balances:
        """Account balances."""

    @abstractmethod
    async def cancel_order(self, order_id: str, symbol: str) -> None:
        """Cancel an open order."""

    @abstractmethod
    async def fetch_order(self, order_id: str, symbol: str) -> Order:
        """Query an order."""

    @abstractmethod
    async def fetch_open_orders(self, symbol: str) -> List[Order]:
        """Resting orders on one market."""

    @abstractmethod
    async def fetch_my_trades(self, symbol: str, since: int = None, limit: int = 100) -> List[Trade]:
        """The account's own fills, with fees. `since` is epoch milliseconds."""

    @abstractmethod
    async def fetch_positions(self, symbols: List[str] = None) -> List[Position]:
        """Open contract positions (never flat ones)."""

    @abstractmethod
    async def set_leverage(self, symbol: str, leverage: int) -> None:
        """Set contract leverage."""

    @abstractmethod
    async def set_margin_mode(self, symbol: str, mode: Union[MarginMode, str]) -> None:
        """Switch a contract between isolated and cross margin."""

    # --------------------------------------------------------
    # SHARED HELPERS
    # --------------------------------------------------------

    def _log_order_query(self, operation: str, order: Order) -> None:
        self._logger.log_order(
            operation=operation,
            client_order_id=order.client_order_id,
            exchange_order_id=order.id,
            symbol=order.symbol,
            side=order.side.value,
            order_type=order.type.value,
            status=order.status.value,
            filled_qty=str(order.filled),
        )

    def _filter_positions(self, positions: List[Position], symbols: Optional[List[str]]) -> List[Position]:
        if not symbols:
            return positions
        wanted = set(symbols)
        return [p for p in positions if p.symbol in wanted]

    @staticmethod
    def _trades_since(trades: List[Trade], since: Optional[int]) -> List[Trade]:
        """Client-side start filter for endpoints without one."""
        if since is None:
            return trades
        cutoff = from_millis(since)
        return [t for t in trades if t.timestamp >= cutoff]
