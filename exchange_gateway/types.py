"""
Exchange Gateway - Unified Data Model.

============================================================
PURPOSE
============================================================
Exchange-agnostic types shared by every vendor adapter.

All quantities are Decimal. All timestamps are timezone-aware
UTC datetimes. Raw vendor payloads are preserved in `info`.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


ZERO = Decimal("0")


def utc_now() -> datetime:
    """Current UTC time."""
    return datetime.now(timezone.utc)


def from_millis(value: Any) -> datetime:
    """Convert a millisecond epoch (int or numeric string) to UTC datetime."""
    if value in (None, "", 0, "0"):
        return utc_now()
    return datetime.fromtimestamp(int(Decimal(str(value))) / 1000, tz=timezone.utc)


def from_seconds(value: Any) -> datetime:
    """Convert a second epoch (int, float or numeric string) to UTC datetime."""
    if value in (None, "", 0, "0"):
        return utc_now()
    return datetime.fromtimestamp(float(Decimal(str(value))), tz=timezone.utc)


# ============================================================
# ENUMS
# ============================================================

class MarketType(Enum):
    """Instrument family."""
    SPOT = "spot"
    SWAP = "swap"


class OrderSide(Enum):
    """Order side."""
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """Order type. Inferred from the presence of a price."""
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(Enum):
    """
    Canonical order status.

    Adapters only ever produce the six lifecycle states; OPEN is
    part of the vocabulary but never emitted (Gate "open" is NEW).
    """
    NEW = "new"
    OPEN = "open"
    PARTIALLY_FILLED = "partially_filled"
    FILLED = "filled"
    CANCELED = "canceled"
    EXPIRED = "expired"
    REJECTED = "rejected"


class PositionSide(Enum):
    """Position direction / caller intent."""
    LONG = "long"
    SHORT = "short"


class TimeInForce(Enum):
    """Common time-in-force values."""
    GTC = "GTC"
    IOC = "IOC"
    FOK = "FOK"


class MarginMode(Enum):
    """Contract margin mode."""
    ISOLATED = "isolated"
    CROSS = "cross"


# ============================================================
# MARKET
# ============================================================

@dataclass
class MinMax:
    """Inclusive bounds; None means unbounded."""
    min: Optional[Decimal] = None
    max: Optional[Decimal] = None


@dataclass
class MarketPrecision:
    """Decimal digit counts."""
    amount: int = 8
    price: int = 8


@dataclass
class MarketLimits:
    """Order size limits."""
    amount: MinMax = field(default_factory=MinMax)
    price: MinMax = field(default_factory=MinMax)
    cost: MinMax = field(default_factory=MinMax)


@dataclass
class Market:
    """Tradable instrument metadata."""

    symbol: str
    """Canonical symbol (BASE/QUOTE or BASE/QUOTE:SETTLE)."""

    id: str
    """Vendor-native instrument identifier."""

    base: str
    quote: str
    type: MarketType

    settle: str = ""
    """Settlement currency. Non-empty iff contract."""

    active: bool = True
    contract: bool = False
    linear: bool = False
    inverse: bool = False

    contract_multiplier: Decimal = ZERO
    """Coin per contract lot. Zero when amounts are quoted in coin."""

    precision: MarketPrecision = field(default_factory=MarketPrecision)
    limits: MarketLimits = field(default_factory=MarketLimits)
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_spot(self) -> bool:
        return self.type == MarketType.SPOT

    @property
    def uses_lots(self) -> bool:
        """Whether order amounts must be converted to contract lots."""
        return self.contract_multiplier > 0


# ============================================================
# ORDER / TRADE
# ============================================================

@dataclass
class Order:
    """Unified order snapshot."""

    id: str
    symbol: str
    type: OrderType
    side: OrderSide
    amount: Decimal = ZERO
    price: Decimal = ZERO
    filled: Decimal = ZERO
    remaining: Decimal = ZERO
    status: OrderStatus = OrderStatus.NEW
    timestamp: datetime = field(default_factory=utc_now)
    client_order_id: str = ""
    average: Decimal = ZERO
    cost: Decimal = ZERO
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Trade:
    """Public trade print, or one of the account's own fills."""

    id: str
    symbol: str
    side: OrderSide
    price: Decimal
    amount: Decimal
    timestamp: datetime
    order_id: str = ""
    """Own fills only."""

    fee: Decimal = ZERO
    """Own fills only. Fee charged; negative is a rebate."""

    fee_currency: str = ""
    info: Dict[str, Any] = field(default_factory=dict)

    @property
    def cost(self) -> Decimal:
        return self.price * self.amount


# ============================================================
# ACCOUNT
# ============================================================

@dataclass
class Position:
    """Open contract position. Never returned when flat."""

    symbol: str
    side: PositionSide
    amount: Decimal
    """Non-negative size in coin units."""

    entry_price: Decimal = ZERO
    mark_price: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    liquidation_price: Decimal = ZERO
    leverage: Decimal = ZERO
    margin: Decimal = ZERO
    timestamp: datetime = field(default_factory=utc_now)
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Balance:
    """Per-currency balance."""

    currency: str
    free: Decimal = ZERO
    used: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        """Total balance (free + used)."""
        return self.free + self.used


Balances = Dict[str, Balance]


# ============================================================
# MARKET DATA
# ============================================================

@dataclass
class Ticker:
    """24h ticker snapshot. Fields the venue omits stay zero."""

    symbol: str
    timestamp: datetime = field(default_factory=utc_now)
    bid: Decimal = ZERO
    ask: Decimal = ZERO
    last: Decimal = ZERO
    open: Decimal = ZERO
    high: Decimal = ZERO
    low: Decimal = ZERO
    volume: Decimal = ZERO
    quote_volume: Decimal = ZERO
    change: Decimal = ZERO
    percentage: Decimal = ZERO
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OHLCV:
    """One candle."""

    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
