"""
Exchange Gateway - Configuration.

============================================================
PURPOSE
============================================================
Per-adapter configuration: credentials, sandbox switch, proxy,
timeouts and venue options.

ENVIRONMENT:
- {EXCHANGE}_API_KEY / {EXCHANGE}_API_SECRET / {EXCHANGE}_PASSPHRASE
- {EXCHANGE}_SANDBOX, {EXCHANGE}_PROXY
- EXCHANGE_GATEWAY_DEBUG

A .env file in the working directory is honoured via python-dotenv.

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv


TRUTHY = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in TRUTHY


# ============================================================
# EXCHANGE CONFIGURATION
# ============================================================

@dataclass
class ExchangeConfig:
    """Configuration for a single vendor adapter."""

    exchange_id: str = ""
    """Vendor name (binance, bybit, okx, gate)."""

    api_key: str = ""
    """API key. Empty means public endpoints only."""

    api_secret: str = ""
    """API secret. Signing fails fast when empty."""

    passphrase: str = ""
    """API passphrase (OKX only)."""

    sandbox: bool = False
    """Route requests to the vendor's demo/testnet environment."""

    proxy_url: Optional[str] = None
    """HTTP(S) proxy URL."""

    debug: bool = False
    """Emit request/response traces at DEBUG level."""

    timeout_seconds: float = 30.0
    """Total timeout per HTTP request."""

    base_url_override: Optional[str] = None
    """Replace the vendor base URL (spot and contract)."""

    recv_window_ms: int = 5000
    """Receive window sent to venues that support one."""

    position_mode_ttl_seconds: float = 300.0
    """How long a discovered hedge/one-way mode stays cached."""

    options: Dict[str, Any] = field(default_factory=dict)
    """Vendor-specific options (e.g. hedge_mode, account_type)."""

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)

    @classmethod
    def from_env(cls, exchange_id: str, sandbox: bool = None) -> "ExchangeConfig":
        """
        Load configuration from environment variables.

        Args:
            exchange_id: Vendor name; used as the variable prefix
            sandbox: Force sandbox on/off; None reads {EX}_SANDBOX

        Returns:
            ExchangeConfig
        """
        load_dotenv()
        prefix = exchange_id.upper()

        return cls(
            exchange_id=exchange_id.lower(),
            api_key=os.getenv(f"{prefix}_API_KEY", ""),
            api_secret=os.getenv(f"{prefix}_API_SECRET", ""),
            passphrase=os.getenv(f"{prefix}_PASSPHRASE", ""),
            sandbox=env_flag(f"{prefix}_SANDBOX") if sandbox is None else sandbox,
            proxy_url=os.getenv(f"{prefix}_PROXY") or None,
            debug=env_flag("EXCHANGE_GATEWAY_DEBUG"),
        )

    @classmethod
    def for_testing(cls, exchange_id: str) -> "ExchangeConfig":
        """Sandbox configuration with dummy credentials."""
        return cls(
            exchange_id=exchange_id.lower(),
            api_key="test-key",
            api_secret="test-secret",
            passphrase="test-passphrase",
            sandbox=True,
            timeout_seconds=5.0,
        )
