"""
Exchange Gateway - Order Translator.

============================================================
PURPOSE
============================================================
Turns a unified order request into a vendor order payload.
Translators are pure: market metadata, the resolved position
mode and (for quote-priced market buys) a reference ticker are
passed in by the adapter.

DECISION ORDER:
1. Type: price present -> limit, otherwise market
2. Quantity: base amount at amount precision, except spot
   market buys on quote-priced venues (cost at price precision)
3. Lots: amount / contract multiplier when the venue trades lots
4. Position side: hedge -> venue side vocabulary from the intent,
   one-way -> reduce-only when the order closes the intent
5. Client order id: caller's, else gw-<venue>-<16 hex>
6. Extra parameters pass through after reserved keys

============================================================
"""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from .errors import InvalidOrderType
from .types import Market, OrderSide, OrderType, PositionSide, Ticker


logger = logging.getLogger(__name__)

CLIENT_ID_NAMESPACE = "gw"
POSITION_MODE_TTL_SECONDS = 300.0
ACCOUNT_WIDE = "*"

Number = Union[str, int, float, Decimal]


# ============================================================
# REQUEST / OPTIONS
# ============================================================

@dataclass
class OrderOptions:
    """Optional order parameters."""

    price: Optional[Number] = None
    """Limit price. Presence makes the order a limit order."""

    client_order_id: str = ""
    """Caller-supplied id; generated when empty."""

    time_in_force: Optional[str] = None
    """GTC / IOC / FOK or a venue-specific value."""

    position_side: Optional[Union[PositionSide, str]] = None
    """Position intent for contracts (long/short)."""

    hedge_mode: Optional[bool] = None
    """Known account position mode; skips discovery when set."""

    extra: Dict[str, Any] = field(default_factory=dict)
    """Venue-specific parameters passed through verbatim."""


@dataclass
class OrderRequest:
    """Output of a translator: the native payload plus decisions taken."""

    order_type: OrderType
    side: OrderSide
    amount: Decimal
    params: Dict[str, Any]
    client_order_id: str
    price: Optional[Decimal] = None
    quantity: str = ""
    reduce_only: bool = False
    position_side: Optional[PositionSide] = None


# ============================================================
# SHARED HELPERS
# ============================================================

def parse_decimal(value: Number, field_name: str = "value") -> Decimal:
    """
    Parse a strictly positive Decimal.

    Raises:
        InvalidOrderType: malformed or non-positive input
    """
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidOrderType.from_message(f"invalid {field_name}: {value!r}")
    if not result.is_finite() or result <= 0:
        raise InvalidOrderType.from_message(f"{field_name} must be positive: {value!r}")
    return result


def format_decimal(value: Decimal, precision: int) -> str:
    """Fixed-point string rounded half-up to `precision` digits."""
    quantum = Decimal(1).scaleb(-max(precision, 0))
    return format(value.quantize(quantum, rounding=ROUND_HALF_UP), "f")


def coerce_side(side: Union[OrderSide, str]) -> OrderSide:
    if isinstance(side, OrderSide):
        return side
    try:
        return OrderSide(str(side).lower())
    except ValueError:
        raise InvalidOrderType.from_message(f"invalid order side: {side!r}")


def coerce_position_side(value: Union[PositionSide, str]) -> PositionSide:
    if isinstance(value, PositionSide):
        return value
    try:
        return PositionSide(str(value).lower())
    except ValueError:
        raise InvalidOrderType.from_message(f"invalid position side: {value!r}")


def infer_order_type(options: Optional[OrderOptions]) -> OrderType:
    """Limit when a non-empty price is supplied, otherwise market."""
    if options is None or options.price is None:
        return OrderType.MARKET
    if isinstance(options.price, str) and not options.price.strip():
        return OrderType.MARKET
    return OrderType.LIMIT


def resolve_position_intent(side: OrderSide, options: Optional[OrderOptions]) -> PositionSide:
    """Caller's intent, defaulting to opening in the order's direction."""
    if options is not None and options.position_side:
        return coerce_position_side(options.position_side)
    return PositionSide.LONG if side == OrderSide.BUY else PositionSide.SHORT


def infer_reduce_only(side: OrderSide, intent: PositionSide) -> bool:
    """Selling a long or buying back a short closes the position."""
    return (
        (side == OrderSide.SELL and intent == PositionSide.LONG)
        or (side == OrderSide.BUY and intent == PositionSide.SHORT)
    )


def contracts_from_amount(amount: Decimal, multiplier: Decimal, precision: int) -> Decimal:
    """
    Convert a coin amount into contract lots.

    Raises:
        InvalidOrderType: amount is smaller than one lot increment
    """
    if multiplier <= 0:
        raise InvalidOrderType.from_message(f"invalid contract multiplier: {multiplier}")
    quantum = Decimal(1).scaleb(-max(precision, 0))
    lots = (amount / multiplier).quantize(quantum, rounding=ROUND_HALF_UP)
    if lots <= 0:
        raise InvalidOrderType.from_message(
            f"amount {amount} is below the minimum lot ({multiplier} per contract)"
        )
    return lots


def contracts_to_amount(contracts: Decimal, multiplier: Decimal) -> Decimal:
    """Inverse of contracts_from_amount for parsed responses."""
    if multiplier and multiplier > 0:
        return contracts * multiplier
    return contracts


def market_buy_cost(
    amount: Decimal,
    price: Optional[Decimal] = None,
    ask: Optional[Decimal] = None,
    last: Optional[Decimal] = None,
) -> Decimal:
    """
    Quote-currency cost of a market buy.

    Uses the first positive of price, best ask, last trade.
    """
    for reference in (price, ask, last):
        if reference is not None and reference > 0:
            return amount * reference
    raise InvalidOrderType.from_message("no reference price available for market buy cost")


def generate_client_order_id(venue: str, prefix: str = "", separator: str = "-") -> str:
    """<prefix>gw<sep><venue><sep><16 hex chars>"""
    return f"{prefix}{CLIENT_ID_NAMESPACE}{separator}{venue}{separator}{secrets.token_hex(8)}"


def apply_extra(payload: Dict[str, Any], extra: Optional[Dict[str, Any]], reserved: Iterable[str]) -> Dict[str, Any]:
    """Copy caller extras into the payload, never overriding reserved keys."""
    if not extra:
        return payload
    reserved = set(reserved)
    for key, value in extra.items():
        if key in reserved:
            logger.debug(f"ignoring reserved order parameter: {key}")
            continue
        payload[key] = value
    return payload


# ============================================================
# POSITION MODE CACHE
# ============================================================

class PositionModeCache:
    """
    Hedge/one-way mode per key (symbol or ACCOUNT_WIDE) with a TTL.

    Thread-safe. Expired entries read as unknown.
    """

    def __init__(self, ttl_seconds: float = POSITION_MODE_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[bool, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bool]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            hedge, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return hedge

    def set(self, key: str, hedge: bool) -> None:
        with self._lock:
            self._entries[key] = (hedge, self._clock() + self._ttl)

    def invalidate(self, key: str = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)


# ============================================================
# TRANSLATOR BASE
# ============================================================

class OrderTranslator(ABC):
    """Per-vendor payload builder."""

    exchange_id = ""
    client_id_prefix = ""
    client_id_separator = "-"
    reserved_keys: Tuple[str, ...] = ()

    def new_client_order_id(self) -> str:
        return generate_client_order_id(
            self.exchange_id, self.client_id_prefix, self.client_id_separator
        )

    def quantity(self, market: Market, amount: Decimal) -> str:
        """Base quantity, in lots when the market trades lots."""
        if market.uses_lots:
            lots = contracts_from_amount(amount, market.contract_multiplier, market.precision.amount)
            return format_decimal(lots, market.precision.amount)
        return format_decimal(amount, market.precision.amount)

    def translate(
        self,
        market: Market,
        side: Union[OrderSide, str],
        amount: Number,
        options: OrderOptions = None,
        hedge_mode: bool = False,
        ticker: Ticker = None,
    ) -> OrderRequest:
        """
        Build the native order payload.

        Args:
            market: Target market
            side: buy / sell
            amount: Amount in base coin
            options: Optional order parameters
            hedge_mode: Resolved position mode (contracts only)
            ticker: Reference prices for quote-priced market buys

        Raises:
            InvalidOrderType: malformed amount, price or side
        """
        options = options or OrderOptions()
        side = coerce_side(side)
        amount = parse_decimal(amount, "amount")
        order_type = infer_order_type(options)
        price = parse_decimal(options.price, "price") if order_type == OrderType.LIMIT else None

        request = OrderRequest(
            order_type=order_type,
            side=side,
            amount=amount,
            price=price,
            params={},
            client_order_id=self.prepare_client_order_id(options.client_order_id),
        )

        if market.contract:
            request.position_side = resolve_position_intent(side, options)
            request.reduce_only = infer_reduce_only(side, request.position_side)
            self.build_contract(request, market, options, hedge_mode)
        else:
            self.build_spot(request, market, options, ticker)

        apply_extra(request.params, options.extra, self.reserved_keys)
        return request

    def prepare_client_order_id(self, client_order_id: str) -> str:
        return client_order_id or self.new_client_order_id()

    @abstractmethod
    def build_spot(self, request: OrderRequest, market: Market, options: OrderOptions, ticker: Optional[Ticker]) -> None:
        """Fill request.params for a spot order."""

    @abstractmethod
    def build_contract(self, request: OrderRequest, market: Market, options: OrderOptions, hedge_mode: bool) -> None:
        """Fill request.params for a contract order."""


def _ticker_prices(ticker: Optional[Ticker]) -> Tuple[Optional[Decimal], Optional[Decimal]]:
    if ticker is None:
        return None, None
    return ticker.ask, ticker.last


# ============================================================
# BINANCE
# ============================================================

class BinanceOrderTranslator(OrderTranslator):
    """POST /api/v3/order and /fapi/v1/order parameters."""

    exchange_id = "binance"
    reserved_keys = (
        "symbol", "side", "type", "quantity", "price",
        "newClientOrderId", "positionSide", "reduceOnly",
    )

    def _common(self, request: OrderRequest, market: Market, options: OrderOptions) -> None:
        request.quantity = self.quantity(market, request.amount)
        params = request.params
        params["symbol"] = market.id
        params["side"] = request.side.value.upper()
        params["type"] = request.order_type.value.upper()
        params["quantity"] = request.quantity
        params["newClientOrderId"] = request.client_order_id
        if request.order_type == OrderType.LIMIT:
            params["price"] = format_decimal(request.price, market.precision.price)
            params["timeInForce"] = (options.time_in_force or "GTC").upper()

    def build_spot(self, request, market, options, ticker):
        self._common(request, market, options)

    def build_contract(self, request, market, options, hedge_mode):
        self._common(request, market, options)
        if hedge_mode:
            request.params["positionSide"] = request.position_side.value.upper()
        else:
            request.params["positionSide"] = "BOTH"
            if request.reduce_only:
                request.params["reduceOnly"] = "true"


# ============================================================
# BYBIT
# ============================================================

BYBIT_POSITION_IDX = {
    PositionSide.LONG: 1,
    PositionSide.SHORT: 2,
}


class BybitOrderTranslator(OrderTranslator):
    """POST /v5/order/create body."""

    exchange_id = "bybit"
    reserved_keys = (
        "category", "symbol", "side", "orderType", "qty", "price",
        "orderLinkId", "positionIdx", "reduceOnly", "marketUnit",
    )

    def _common(self, request: OrderRequest, market: Market, options: OrderOptions, category: str) -> None:
        params = request.params
        params["category"] = category
        params["symbol"] = market.id
        params["side"] = request.side.value.capitalize()
        params["orderType"] = request.order_type.value.capitalize()
        params["orderLinkId"] = request.client_order_id
        if request.order_type == OrderType.LIMIT:
            params["price"] = format_decimal(request.price, market.precision.price)
            params["timeInForce"] = (options.time_in_force or "GTC").upper()
        elif options.time_in_force:
            params["timeInForce"] = options.time_in_force.upper()

    def build_spot(self, request, market, options, ticker):
        self._common(request, market, options, "spot")
        if request.order_type == OrderType.MARKET and request.side == OrderSide.BUY:
            ask, last = _ticker_prices(ticker)
            cost = market_buy_cost(request.amount, None, ask, last)
            request.quantity = format_decimal(cost, market.precision.price)
            request.params["marketUnit"] = "quoteCoin"
        else:
            request.quantity = self.quantity(market, request.amount)
        request.params["qty"] = request.quantity

    def build_contract(self, request, market, options, hedge_mode):
        self._common(request, market, options, "linear" if market.linear else "inverse")
        request.quantity = self.quantity(market, request.amount)
        request.params["qty"] = request.quantity
        if hedge_mode:
            request.params["positionIdx"] = BYBIT_POSITION_IDX[request.position_side]
        else:
            request.params["positionIdx"] = 0
            if request.reduce_only:
                request.params["reduceOnly"] = True


# ============================================================
# OKX
# ============================================================

OKX_TIF_ORDER_TYPES = {
    "IOC": "ioc",
    "FOK": "fok",
    "POST_ONLY": "post_only",
    "PO": "post_only",
}


class OkxOrderTranslator(OrderTranslator):
    """POST /api/v5/trade/order body."""

    exchange_id = "okx"
    client_id_separator = ""
    reserved_keys = (
        "instId", "side", "ordType", "sz", "px", "clOrdId", "posSide", "reduceOnly",
    )

    def _ord_type(self, request: OrderRequest, options: OrderOptions) -> str:
        if request.order_type == OrderType.MARKET:
            return "market"
        tif = (options.time_in_force or "GTC").upper()
        return OKX_TIF_ORDER_TYPES.get(tif, "limit")

    def _common(self, request: OrderRequest, market: Market, options: OrderOptions) -> None:
        request.quantity = self.quantity(market, request.amount)
        params = request.params
        params["instId"] = market.id
        params["side"] = request.side.value
        params["ordType"] = self._ord_type(request, options)
        params["sz"] = request.quantity
        params["clOrdId"] = request.client_order_id
        if request.order_type == OrderType.LIMIT:
            params["px"] = format_decimal(request.price, market.precision.price)

    def build_spot(self, request, market, options, ticker):
        self._common(request, market, options)
        request.params["tdMode"] = "cash"
        if request.order_type == OrderType.MARKET:
            request.params["tgtCcy"] = "base_ccy"

    def build_contract(self, request, market, options, hedge_mode):
        self._common(request, market, options)
        request.params["tdMode"] = options.extra.get("tdMode", "cross")
        if hedge_mode:
            request.params["posSide"] = request.position_side.value
        else:
            request.params["posSide"] = "net"
            if request.reduce_only:
                request.params["reduceOnly"] = True


# ============================================================
# GATE
# ============================================================

GATE_TEXT_PREFIX = "t-"


class GateOrderTranslator(OrderTranslator):
    """POST /api/v4/spot/orders and /api/v4/futures/usdt/orders bodies."""

    exchange_id = "gate"
    client_id_prefix = GATE_TEXT_PREFIX
    reserved_keys = (
        "currency_pair", "contract", "side", "type", "amount", "size",
        "price", "text", "reduce_only",
    )

    def prepare_client_order_id(self, client_order_id: str) -> str:
        if not client_order_id:
            return self.new_client_order_id()
        if client_order_id.startswith(GATE_TEXT_PREFIX):
            return client_order_id
        return f"{GATE_TEXT_PREFIX}{client_order_id}"

    def _tif(self, request: OrderRequest, options: OrderOptions) -> str:
        if request.order_type == OrderType.MARKET:
            return "ioc"
        return (options.time_in_force or "gtc").lower()

    def build_spot(self, request, market, options, ticker):
        params = request.params
        params["currency_pair"] = market.id
        params["side"] = request.side.value
        params["type"] = request.order_type.value
        params["text"] = request.client_order_id
        params["time_in_force"] = self._tif(request, options)

        if request.order_type == OrderType.LIMIT:
            params["price"] = format_decimal(request.price, market.precision.price)
            request.quantity = format_decimal(request.amount, market.precision.amount)
        elif request.side == OrderSide.BUY:
            # Market buys are sized in quote currency
            ask, last = _ticker_prices(ticker)
            cost = market_buy_cost(request.amount, None, ask, last)
            request.quantity = format_decimal(cost, market.precision.price)
        else:
            request.quantity = format_decimal(request.amount, market.precision.amount)
        params["amount"] = request.quantity

    def build_contract(self, request, market, options, hedge_mode):
        # Gate encodes direction in the sign of size; no mode-specific fields.
        if market.uses_lots:
            lots = contracts_from_amount(request.amount, market.contract_multiplier, market.precision.amount)
        else:
            lots = request.amount
        size = int(lots) if market.precision.amount == 0 else lots
        if size == 0:
            raise InvalidOrderType.from_message(
                f"amount {request.amount} is below one contract", symbol=market.symbol
            )
        if request.side == OrderSide.SELL:
            size = -size

        request.quantity = str(size)
        params = request.params
        params["contract"] = market.id
        params["size"] = size if isinstance(size, int) else format(size, "f")
        params["tif"] = self._tif(request, options)
        params["text"] = request.client_order_id
        params["reduce_only"] = request.reduce_only
        if request.order_type == OrderType.LIMIT:
            params["price"] = format_decimal(request.price, market.precision.price)
        else:
            params["price"] = "0"


TRANSLATORS = {
    "binance": BinanceOrderTranslator,
    "bybit": BybitOrderTranslator,
    "okx": OkxOrderTranslator,
    "gate": GateOrderTranslator,
}


def get_translator(exchange_id: str) -> OrderTranslator:
    return TRANSLATORS[exchange_id]()
