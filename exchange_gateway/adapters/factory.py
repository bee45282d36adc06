"""
Exchange Adapter Factory.

============================================================
PURPOSE
============================================================
Vendor registry and factory for adapter instances.

FEATURES:
- Explicit registration (no import-time side effects per vendor)
- Configuration injection
- Environment-based defaults
- Registry open for extension

============================================================
USAGE
============================================================
```python
# Create adapter by vendor name
adapter = AdapterFactory.create("binance", sandbox=True)

# Create with explicit config
config = ExchangeConfig(
    exchange_id="bybit",
    api_key="...",
    api_secret="...",
)
adapter = AdapterFactory.create("bybit", config=config)

# Add a vendor
register_vendor("myvenue", MyVenueAdapter)
```

============================================================
"""

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List

from ..config import ExchangeConfig
from ..errors import ExchangeNotSupported
from .base import ExchangeAdapter


logger = logging.getLogger(__name__)


# (config, transport=None) -> adapter; adapter classes qualify
AdapterConstructor = Callable[..., ExchangeAdapter]


# ============================================================
# VENDOR REGISTRY
# ============================================================

_vendors: Dict[str, AdapterConstructor] = {}
_vendors_lock = threading.Lock()
_builtins_registered = False


def _bind(name: str, constructor: AdapterConstructor) -> None:
    """Caller holds _vendors_lock."""
    existing = _vendors.get(name)
    if existing is not None:
        if existing is constructor:
            return
        raise ValueError(f"Vendor already registered: {name}")
    _vendors[name] = constructor


def register_vendor(name: str, constructor: AdapterConstructor) -> None:
    """
    Register an adapter constructor under a vendor name.

    Registering the same constructor twice is a no-op.

    Raises:
        ValueError: name already bound to a different constructor
    """
    name = name.lower()
    with _vendors_lock:
        _bind(name, constructor)
    logger.debug(f"Registered vendor {name}")


def unregister_vendor(name: str) -> None:
    with _vendors_lock:
        _vendors.pop(name.lower(), None)


def register_builtin_vendors() -> None:
    """Register binance, bybit, okx and gate (once)."""
    global _builtins_registered

    from .binance import BinanceAdapter
    from .bybit import BybitAdapter
    from .gate import GateAdapter
    from .okx import OkxAdapter

    with _vendors_lock:
        if _builtins_registered:
            return
        for adapter_class in (BinanceAdapter, BybitAdapter, OkxAdapter, GateAdapter):
            _bind(adapter_class.exchange_id, adapter_class)
        _builtins_registered = True


# ============================================================
# ADAPTER FACTORY
# ============================================================

class AdapterFactory:
    """
    Factory for creating exchange adapters.

    Provides centralized adapter creation with configuration
    injection on top of the vendor registry.
    """

    @classmethod
    def create(
        cls,
        exchange_id: str,
        config: ExchangeConfig = None,
        **overrides: Any,
    ) -> ExchangeAdapter:
        """
        Create an exchange adapter.

        Args:
            exchange_id: Vendor name
            config: Adapter configuration; None reads the environment
            **overrides: Config attributes to set; unknown keys go to
                config.options. `transport` is handed to the adapter.

        Returns:
            ExchangeAdapter instance

        Raises:
            ExchangeNotSupported: If the vendor is not registered
        """
        exchange_id = exchange_id.lower()
        with _vendors_lock:
            constructor = _vendors.get(exchange_id)
        if constructor is None:
            raise ExchangeNotSupported.from_message(
                f"Unsupported exchange: {exchange_id}", operation="create_adapter"
            )

        transport = overrides.pop("transport", None)
        sandbox = overrides.pop("sandbox", None)

        if config is None:
            config = ExchangeConfig.from_env(exchange_id, sandbox=sandbox)
        else:
            # Overrides never leak into the caller's config
            config = replace(config, options=dict(config.options))
            if sandbox is not None:
                config.sandbox = sandbox
        if not config.exchange_id:
            config.exchange_id = exchange_id

        # Merge overrides into config
        for key, value in overrides.items():
            if key == "options":
                config.options.update(value)
            elif hasattr(config, key):
                setattr(config, key, value)
            else:
                config.options[key] = value

        adapter = constructor(config, transport=transport)
        logger.info(f"Created {exchange_id} adapter (sandbox={config.sandbox})")
        return adapter

    @classmethod
    def list_supported(cls) -> List[str]:
        """List registered vendors."""
        with _vendors_lock:
            return sorted(_vendors)

    @classmethod
    def is_supported(cls, exchange_id: str) -> bool:
        with _vendors_lock:
            return exchange_id.lower() in _vendors


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def create_adapter(
    exchange_id: str,
    sandbox: bool = False,
    **kwargs: Any,
) -> ExchangeAdapter:
    """
    Create exchange adapter.

    Convenience wrapper for AdapterFactory.create().

    Args:
        exchange_id: Vendor name (binance, bybit, okx, gate)
        sandbox: Use the vendor's demo/testnet environment
        **kwargs: Additional config overrides

    Returns:
        ExchangeAdapter instance
    """
    return AdapterFactory.create(exchange_id, sandbox=sandbox, **kwargs)
