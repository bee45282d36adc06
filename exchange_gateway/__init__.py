"""
Exchange Gateway Package.

============================================================
PURPOSE
============================================================
One REST interface over Binance, Bybit, OKX and Gate for spot
and linear perpetual markets.

Callers speak canonical symbols (BTC/USDT, BTC/USDT:USDT) and
canonical types; each adapter translates to and from its venue.

============================================================
MODULES
============================================================
- types: Market, Order, Trade, Position, Balance, Ticker, OHLCV
- symbols: Canonical symbol grammar and native-id codec
- markets: Per-adapter market registry
- signing: Per-venue request signers
- translator: Unified order -> venue order parameters
- normalizer: Venue payloads -> unified types
- transport: aiohttp REST transport
- errors: Error taxonomy and venue code mapping
- logging_utils: Secure adapter logging
- config: Adapter configuration (env / .env)
- adapters: Vendor adapters and factory

============================================================
"""

from .config import ExchangeConfig
from .errors import (
    AuthenticationRequired,
    ErrorCategory,
    ExchangeError,
    ExchangeException,
    ExchangeNotSupported,
    InsufficientBalance,
    InvalidOrderType,
    InvalidSymbol,
    MarketNotFound,
    OrderNotFound,
    RateLimitExceeded,
    VenueError,
)
from .translator import OrderOptions
from .types import (
    OHLCV,
    Balance,
    Balances,
    MarginMode,
    Market,
    MarketType,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
    PositionSide,
    Ticker,
    TimeInForce,
    Trade,
)
from .adapters import (
    AdapterFactory,
    BinanceAdapter,
    BybitAdapter,
    ExchangeAdapter,
    GateAdapter,
    OkxAdapter,
    create_adapter,
    register_vendor,
)


__version__ = "0.1.0"


__all__ = [
    # Config
    "ExchangeConfig",
    # Errors
    "AuthenticationRequired",
    "ErrorCategory",
    "ExchangeError",
    "ExchangeException",
    "ExchangeNotSupported",
    "InsufficientBalance",
    "InvalidOrderType",
    "InvalidSymbol",
    "MarketNotFound",
    "OrderNotFound",
    "RateLimitExceeded",
    "VenueError",
    # Orders
    "OrderOptions",
    # Types
    "OHLCV",
    "Balance",
    "Balances",
    "MarginMode",
    "Market",
    "MarketType",
    "Order",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "Position",
    "PositionSide",
    "Ticker",
    "TimeInForce",
    "Trade",
    # Adapters
    "AdapterFactory",
    "BinanceAdapter",
    "BybitAdapter",
    "ExchangeAdapter",
    "GateAdapter",
    "OkxAdapter",
    "create_adapter",
    "register_vendor",
]
