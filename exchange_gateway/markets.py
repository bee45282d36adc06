"""
Exchange Gateway - Market Registry.

============================================================
PURPOSE
============================================================
Per-adapter cache of tradable instruments, indexed both by
canonical symbol and by vendor-native id.

RULES:
- Fill-once: load(reload=False) is a no-op once data is present
- Reload replaces both indexes in one step
- Readers never wait on an in-flight network fetch
- Duplicate symbols/ids in a listing keep the first entry

============================================================
"""

import asyncio
import logging
import threading
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .errors import MarketNotFound
from .types import Market


logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 8

MarketFetcher = Callable[[], Awaitable[List[Market]]]


# ============================================================
# PRECISION
# ============================================================

def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """Lenient Decimal conversion for vendor payload fields."""
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def precision_digits(step: Any) -> int:
    """
    Number of decimal digits implied by a tick/step size.

    Examples:
        precision_digits("0.00010000") -> 4
        precision_digits("0.5")        -> 1
        precision_digits(1)            -> 0
        precision_digits(0)            -> 8
    """
    value = abs(to_decimal(step))
    if value == 0:
        return DEFAULT_PRECISION
    if value >= 1:
        return 0

    text = format(value.normalize(), "f")
    if "." not in text:
        return 0
    return len(text.split(".", 1)[1].rstrip("0"))


def optional_decimal(value: Any) -> Optional[Decimal]:
    """Decimal or None for absent / zero limit fields."""
    result = to_decimal(value)
    return result if result != 0 else None


# ============================================================
# REGISTRY
# ============================================================

class MarketRegistry:
    """
    Canonical symbol <-> native id <-> Market cache.

    Index swaps and reads hold a short RLock. Loads are serialized
    by an asyncio.Lock so concurrent first calls trigger a single
    fetch.
    """

    def __init__(self, exchange_id: str, name: str = ""):
        self._exchange_id = exchange_id
        self._name = name or exchange_id
        self._by_symbol: Dict[str, Market] = {}
        self._by_id: Dict[str, Market] = {}
        self._loaded = False
        self._index_lock = threading.RLock()
        self._load_lock: Optional[asyncio.Lock] = None

    @property
    def is_loaded(self) -> bool:
        with self._index_lock:
            return self._loaded

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._by_symbol)

    def _get_load_lock(self) -> asyncio.Lock:
        if self._load_lock is None:
            self._load_lock = asyncio.Lock()
        return self._load_lock

    # --------------------------------------------------------
    # LOADING
    # --------------------------------------------------------

    async def load(self, fetcher: MarketFetcher, reload: bool = False) -> List[Market]:
        """
        Populate the registry from an async fetcher.

        Args:
            fetcher: Coroutine function returning the full listing
            reload: Refetch even when data is present

        Returns:
            All markets now in the registry
        """
        if self.is_loaded and not reload:
            return self.all()

        async with self._get_load_lock():
            # Another task may have filled the registry while we waited
            if self.is_loaded and not reload:
                return self.all()

            markets = await fetcher()
            self.replace(markets)
            logger.info(f"[{self._exchange_id}] loaded {len(self)} {self._name} markets")
            return self.all()

    def replace(self, markets: List[Market]) -> None:
        """Swap in a new listing, dropping duplicate symbols/ids."""
        by_symbol: Dict[str, Market] = {}
        by_id: Dict[str, Market] = {}

        for market in markets:
            if market.symbol in by_symbol or market.id in by_id:
                logger.warning(
                    f"[{self._exchange_id}] duplicate market skipped: "
                    f"{market.symbol} ({market.id})"
                )
                continue
            by_symbol[market.symbol] = market
            by_id[market.id] = market

        with self._index_lock:
            self._by_symbol = by_symbol
            self._by_id = by_id
            self._loaded = True

    # --------------------------------------------------------
    # LOOKUP
    # --------------------------------------------------------

    def lookup(self, key: str) -> Market:
        """
        Find a market by canonical symbol, then by native id.

        Raises:
            MarketNotFound: no entry under either index
        """
        with self._index_lock:
            market = self._by_symbol.get(key) or self._by_id.get(key)
        if market is None:
            raise MarketNotFound.from_message(
                f"market not found: {key}",
                exchange_id=self._exchange_id,
                symbol=key,
            )
        return market

    def get(self, key: str) -> Optional[Market]:
        with self._index_lock:
            return self._by_symbol.get(key) or self._by_id.get(key)

    def symbol_for(self, native_id: str) -> str:
        """Decode a native id. Only succeeds through a loaded registry."""
        with self._index_lock:
            market = self._by_id.get(native_id)
        if market is None:
            raise MarketNotFound.from_message(
                f"unknown instrument id: {native_id}",
                exchange_id=self._exchange_id,
                symbol=native_id,
            )
        return market.symbol

    def all(self) -> List[Market]:
        with self._index_lock:
            return list(self._by_symbol.values())
