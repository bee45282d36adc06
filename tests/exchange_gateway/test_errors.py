"""
Error Mapping Tests.

============================================================
PURPOSE
============================================================
Tests for vendor error code mapping and the exception hierarchy.

TEST CATEGORIES:
- Vendor mapping: Binance, Bybit, OKX, Gate
- HTTP status fallback for unknown codes
- Exception classes per category
- Context attachment

============================================================
"""

import pytest

from exchange_gateway.errors import (
    AuthenticationRequired,
    ErrorCategory,
    ExchangeException,
    ExchangeNotSupported,
    InsufficientBalance,
    MarketNotFound,
    OrderNotFound,
    RateLimitExceeded,
    RetryEligibility,
    VenueError,
    create_network_error,
    create_timeout_error,
    exception_for,
    map_exchange_error,
    raise_venue_error,
)


# ============================================================
# VENDOR MAPPING TESTS
# ============================================================

class TestVendorMapping:
    """Tests for map_exchange_error routing."""

    def test_binance_insufficient_funds(self):
        """Binance -2010 is an insufficient funds error."""
        error = map_exchange_error("binance", -2010, "Account has insufficient balance")

        assert error.category == ErrorCategory.INSUFFICIENT_FUNDS
        assert error.code == "BINANCE_-2010"
        assert error.exchange_code == "-2010"
        assert error.exchange_id == "binance"

    def test_binance_string_code(self):
        """Numeric codes arriving as strings still map."""
        error = map_exchange_error("binance", "-1003", "Too many requests")

        assert error.category == ErrorCategory.RATE_LIMIT
        assert error.retry_eligible == RetryEligibility.BACKOFF
        assert error.is_retryable()

    def test_bybit_rate_limit(self):
        """Bybit 10006 is a rate limit."""
        error = map_exchange_error("bybit", 10006, "Too many visits")

        assert error.category == ErrorCategory.RATE_LIMIT
        assert error.code == "BYBIT_10006"

    def test_okx_order_not_found(self):
        """OKX codes are strings."""
        error = map_exchange_error("okx", "51603", "Order does not exist")

        assert error.category == ErrorCategory.ORDER_NOT_FOUND
        assert error.code == "OKX_51603"

    def test_gate_label(self):
        """Gate errors are keyed by label."""
        error = map_exchange_error("gate", "BALANCE_NOT_ENOUGH", "balance not enough")

        assert error.category == ErrorCategory.INSUFFICIENT_FUNDS
        assert error.code == "GATE_BALANCE_NOT_ENOUGH"

    def test_vendor_name_case_insensitive(self):
        """Vendor names are lower-cased before routing."""
        error = map_exchange_error("OKX", "50011", "Rate limit")

        assert error.exchange_id == "okx"
        assert error.category == ErrorCategory.RATE_LIMIT


class TestHttpFallback:
    """Unknown codes classify by HTTP status."""

    @pytest.mark.parametrize("status,category,retry", [
        (429, ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),
        (418, ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),
        (401, ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
        (503, ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
        (400, ErrorCategory.EXCHANGE_ERROR, RetryEligibility.NO_RETRY),
        (None, ErrorCategory.EXCHANGE_ERROR, RetryEligibility.NO_RETRY),
    ])
    def test_unknown_code(self, status, category, retry):
        """Fallback follows the HTTP status."""
        error = map_exchange_error("bybit", 99999999, "unknown", http_status=status)

        assert error.category == category
        assert error.retry_eligible == retry

    def test_non_numeric_binance_code(self):
        """Non-numeric codes for numeric vendors fall through to HTTP classification."""
        error = map_exchange_error("binance", "oops", "bad gateway", http_status=502)

        assert error.category == ErrorCategory.EXCHANGE_ERROR
        assert error.code == "BINANCE_oops"
        assert error.retry_eligible == RetryEligibility.RETRY


# ============================================================
# EXCEPTION TESTS
# ============================================================

class TestExceptions:
    """Tests for exception_for and friends."""

    @pytest.mark.parametrize("exchange_id,code,exc_class", [
        ("binance", -2015, AuthenticationRequired),
        ("binance", -1121, MarketNotFound),
        ("bybit", 110007, InsufficientBalance),
        ("okx", "51131", InsufficientBalance),
        ("okx", "50013", RateLimitExceeded),
        ("gate", "ORDER_NOT_FOUND", OrderNotFound),
        ("gate", "INVALID_AMOUNT", VenueError),
    ])
    def test_exception_class(self, exchange_id, code, exc_class):
        """Each category raises its dedicated class."""
        exc = exception_for(map_exchange_error(exchange_id, code, "msg"))

        assert type(exc) is exc_class
        assert isinstance(exc, ExchangeException)

    def test_raise_venue_error_carries_context(self):
        """raise_venue_error attaches operation and symbol."""
        with pytest.raises(InsufficientBalance) as exc_info:
            raise_venue_error("binance", -2010, "insufficient", 400, "create_order", "BTC/USDT")

        error = exc_info.value.error
        assert error.operation == "create_order"
        assert error.symbol == "BTC/USDT"
        assert error.http_status == 400
        assert "create_order" in str(exc_info.value)

    def test_from_message(self):
        """Local failures build errors with the class category."""
        exc = ExchangeNotSupported.from_message("unknown exchange: kraken")

        assert exc.error.category == ErrorCategory.UNSUPPORTED
        assert exc.error.code == "GATEWAY_UNSUPPORTED"
        assert "kraken" in str(exc)

    def test_with_context_keeps_existing(self):
        """with_context never overwrites context already set."""
        exc = MarketNotFound.from_message("missing", "okx", operation="fetch_ticker")
        exc.with_context(operation="create_order", symbol="BTC/USDT")

        assert exc.error.operation == "fetch_ticker"
        assert exc.error.symbol == "BTC/USDT"
        assert str(exc).startswith("fetch_ticker:")

    def test_to_dict(self):
        """to_dict exposes enum values."""
        data = map_exchange_error("gate", "TOO_MANY_REQUESTS", "slow down", 429).to_dict()

        assert data["category"] == "RATE_LIMIT"
        assert data["retry_eligible"] == "BACKOFF"
        assert data["http_status"] == 429


class TestNetworkErrors:
    """Tests for transport error helpers."""

    def test_network_error(self):
        """Network errors are retryable."""
        error = create_network_error("okx", "connection reset", "fetch_ticker")

        assert error.category == ErrorCategory.NETWORK
        assert error.code == "OKX_NETWORK_ERROR"
        assert error.is_retryable()

    def test_timeout_error(self):
        """Timeout errors mention the limit."""
        error = create_timeout_error("gate", 10000)

        assert error.category == ErrorCategory.TIMEOUT
        assert "10000ms" in error.message
        assert type(exception_for(error)) is VenueError
