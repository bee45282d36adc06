"""
Exchange Gateway - Adapters Package.

============================================================
PURPOSE
============================================================
Exchange adapter implementations.

AVAILABLE ADAPTERS:
- BinanceAdapter: Binance spot + USDⓈ-M perpetuals
- BybitAdapter: Bybit V5 (spot + linear)
- OkxAdapter: OKX V5 (spot + swap)
- GateAdapter: Gate API v4 (spot + USDT futures)

UTILITIES:
- AdapterFactory: Factory for creating adapters
- register_vendor: Extend the vendor registry

============================================================
"""

# Base
from .base import ExchangeAdapter

# Adapters
from .binance import BinanceAdapter
from .bybit import BybitAdapter
from .okx import OkxAdapter
from .gate import GateAdapter

# Factory
from .factory import (
    AdapterFactory,
    create_adapter,
    register_builtin_vendors,
    register_vendor,
    unregister_vendor,
)


register_builtin_vendors()


__all__ = [
    # Base
    "ExchangeAdapter",
    # Adapters
    "BinanceAdapter",
    "BybitAdapter",
    "OkxAdapter",
    "GateAdapter",
    # Factory
    "AdapterFactory",
    "create_adapter",
    "register_builtin_vendors",
    "register_vendor",
    "unregister_vendor",
]
