"""
Adapter Factory Tests.

============================================================
PURPOSE
============================================================
Tests for the vendor registry and adapter construction.

TEST CATEGORIES:
- Built-in vendors
- Registration contract, concurrent bootstrap
- Configuration injection and overrides

============================================================
"""

import os
import threading
from unittest.mock import MagicMock, patch

import pytest

from exchange_gateway.adapters import factory
from exchange_gateway.adapters import (
    AdapterFactory,
    BinanceAdapter,
    BybitAdapter,
    GateAdapter,
    OkxAdapter,
    create_adapter,
    register_builtin_vendors,
    register_vendor,
    unregister_vendor,
)
from exchange_gateway.config import ExchangeConfig
from exchange_gateway.errors import ExchangeNotSupported
from exchange_gateway.transport import HttpTransport


# ============================================================
# REGISTRY TESTS
# ============================================================

class TestVendorRegistry:
    """Tests for register_vendor and friends."""

    def test_builtin_vendors(self):
        """All four vendors are registered on import."""
        assert AdapterFactory.list_supported() == ["binance", "bybit", "gate", "okx"]
        assert AdapterFactory.is_supported("OKX")

    def test_builtin_registration_idempotent(self):
        """Calling the bootstrap again changes nothing."""
        register_builtin_vendors()
        assert AdapterFactory.list_supported() == ["binance", "bybit", "gate", "okx"]

    def test_concurrent_bootstrap(self):
        """Racing bootstraps on a fresh registry bind each vendor once."""
        with patch.dict(factory._vendors, clear=True), patch.object(factory, "_builtins_registered", False):
            threads = [threading.Thread(target=register_builtin_vendors) for _ in range(8)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            assert factory._builtins_registered
            assert AdapterFactory.list_supported() == ["binance", "bybit", "gate", "okx"]
            assert factory._vendors["okx"] is OkxAdapter

    def test_same_constructor_is_noop(self):
        """Re-registering the same constructor is allowed."""
        register_vendor("binance", BinanceAdapter)
        assert AdapterFactory.is_supported("binance")

    def test_conflicting_constructor_rejected(self):
        """A name cannot be rebound to another constructor."""
        with pytest.raises(ValueError):
            register_vendor("binance", BybitAdapter)

    def test_custom_vendor(self):
        """Any callable taking (config, transport=) can be registered."""
        constructor = MagicMock()
        register_vendor("MyVenue", constructor)
        try:
            adapter = AdapterFactory.create("myvenue", config=ExchangeConfig(api_key="k"))
        finally:
            unregister_vendor("myvenue")

        assert adapter is constructor.return_value
        config = constructor.call_args.args[0]
        assert config.exchange_id == "myvenue"
        assert constructor.call_args.kwargs == {"transport": None}
        assert not AdapterFactory.is_supported("myvenue")


# ============================================================
# CREATION TESTS
# ============================================================

class TestAdapterCreation:
    """Tests for AdapterFactory.create."""

    @pytest.mark.parametrize("name,adapter_class", [
        ("binance", BinanceAdapter),
        ("bybit", BybitAdapter),
        ("okx", OkxAdapter),
        ("gate", GateAdapter),
    ])
    def test_create_with_config(self, name, adapter_class):
        """Each vendor name builds its adapter."""
        adapter = AdapterFactory.create(name, config=ExchangeConfig.for_testing(name))

        assert isinstance(adapter, adapter_class)
        assert adapter.exchange_id == name
        assert adapter.has_credentials

    def test_unknown_vendor(self):
        """Unknown names raise ExchangeNotSupported."""
        with pytest.raises(ExchangeNotSupported):
            AdapterFactory.create("kraken", config=ExchangeConfig())

    def test_overrides(self):
        """Known keys set config attributes; others land in options."""
        transport = MagicMock(spec=HttpTransport)
        adapter = AdapterFactory.create(
            "bybit",
            config=ExchangeConfig.for_testing("bybit"),
            transport=transport,
            timeout_seconds=3.0,
            hedge_mode=True,
            options={"account_type": "CONTRACT"},
        )

        assert adapter.config.timeout_seconds == 3.0
        assert adapter.config.options == {"hedge_mode": True, "account_type": "CONTRACT"}
        assert adapter.account_type == "CONTRACT"

    @patch("exchange_gateway.config.load_dotenv")
    def test_config_from_environment(self, mock_load_dotenv):
        """A missing config is read from the environment."""
        env = {"GATE_API_KEY": "key", "GATE_API_SECRET": "secret"}
        with patch.dict(os.environ, env, clear=True):
            adapter = create_adapter("gate", sandbox=True)

        assert adapter.config.api_key == "key"
        assert adapter.config.sandbox is True
        assert adapter.base_url(adapter.market_type_of("BTC/USDT")) == "https://api-testnet.gateapi.io"

    def test_sandbox_override_on_explicit_config(self):
        """sandbox applies to an explicit config too."""
        config = ExchangeConfig.for_testing("binance")
        adapter = create_adapter("binance", config=config, sandbox=False)

        assert adapter.config.sandbox is False
        assert adapter.base_url(adapter.market_type_of("BTC/USDT")) == "https://api.binance.com"

    def test_caller_config_untouched(self):
        """Overrides apply to a copy of an explicit config."""
        config = ExchangeConfig.for_testing("okx")
        config.options["account_type"] = "SPOT"

        adapter = AdapterFactory.create(
            "okx",
            config=config,
            sandbox=False,
            timeout_seconds=1.0,
            hedge_mode=True,
            options={"td_mode": "isolated"},
        )

        assert config.sandbox is True
        assert config.timeout_seconds == 5.0
        assert config.options == {"account_type": "SPOT"}
        assert adapter.config is not config
        assert adapter.config.options == {
            "account_type": "SPOT", "hedge_mode": True, "td_mode": "isolated",
        }
