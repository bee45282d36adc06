"""
Exchange Gateway - Error Handling and Mapping.

============================================================
PURPOSE
============================================================
Standardized error handling for exchange adapters with:
- Unified error taxonomy across exchanges
- Exchange-specific error code mapping
- Typed exception classes per failure kind
- Error context preservation (exchange, operation, symbol)

============================================================
EXCEPTION HIERARCHY
============================================================
ExchangeException
  MarketNotFound          - registry lookup / decode miss
  InvalidSymbol           - malformed canonical symbol
  AuthenticationRequired  - missing or rejected credentials
  InvalidOrderType        - malformed order input
  InsufficientBalance     - venue reports insufficient funds
  RateLimitExceeded       - venue throttled the request
  OrderNotFound           - venue has no such order
  ExchangeNotSupported    - unknown vendor name
  VenueError              - any other venue business error

Retry eligibility is informational. Nothing in this package
retries a request.

============================================================
"""

import logging
from enum import Enum
from typing import Optional, Dict, Any, Tuple, Type
from dataclasses import dataclass


logger = logging.getLogger(__name__)


# ============================================================
# ERROR TAXONOMY
# ============================================================

class ErrorCategory(Enum):
    """Standardized error categories."""

    NETWORK = "NETWORK"
    RATE_LIMIT = "RATE_LIMIT"
    AUTHENTICATION = "AUTHENTICATION"
    INVALID_ORDER = "INVALID_ORDER"
    INVALID_SYMBOL = "INVALID_SYMBOL"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INSUFFICIENT_MARGIN = "INSUFFICIENT_MARGIN"
    EXCHANGE_ERROR = "EXCHANGE_ERROR"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    SYMBOL_NOT_FOUND = "SYMBOL_NOT_FOUND"
    POSITION_NOT_FOUND = "POSITION_NOT_FOUND"
    INVALID_QUANTITY = "INVALID_QUANTITY"
    INVALID_PRICE = "INVALID_PRICE"
    MIN_NOTIONAL = "MIN_NOTIONAL"
    MAX_POSITION = "MAX_POSITION"
    MARKET_CLOSED = "MARKET_CLOSED"
    UNSUPPORTED = "UNSUPPORTED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class RetryEligibility(Enum):
    """Whether error is eligible for retry."""

    RETRY = "RETRY"
    NO_RETRY = "NO_RETRY"
    BACKOFF = "BACKOFF"


# ============================================================
# EXCHANGE ERROR
# ============================================================

@dataclass
class ExchangeError:
    """
    Standardized exchange error.

    Provides unified error representation across exchanges.
    """

    # Core fields
    category: ErrorCategory
    code: str               # Normalized error code
    message: str            # Human-readable message

    # Retry info
    retry_eligible: RetryEligibility = RetryEligibility.NO_RETRY
    retry_after_ms: Optional[int] = None

    # Original error info
    exchange_code: Optional[str] = None
    exchange_message: Optional[str] = None
    http_status: Optional[int] = None

    # Context
    exchange_id: Optional[str] = None
    operation: Optional[str] = None
    symbol: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "category": self.category.value,
            "code": self.code,
            "message": self.message,
            "retry_eligible": self.retry_eligible.value,
            "retry_after_ms": self.retry_after_ms,
            "exchange_code": self.exchange_code,
            "exchange_message": self.exchange_message,
            "http_status": self.http_status,
            "exchange_id": self.exchange_id,
            "operation": self.operation,
            "symbol": self.symbol,
        }

    def is_retryable(self) -> bool:
        """Check if error is retryable."""
        return self.retry_eligible in (RetryEligibility.RETRY, RetryEligibility.BACKOFF)

    def __str__(self) -> str:
        """String representation."""
        text = f"[{self.category.value}] {self.code}: {self.message}"
        if self.operation:
            text = f"{self.operation}: {text}"
        return text


# ============================================================
# EXCEPTIONS
# ============================================================

class ExchangeException(Exception):
    """Exception wrapper for ExchangeError."""

    category = ErrorCategory.UNKNOWN

    def __init__(self, error: ExchangeError):
        self.error = error
        super().__init__(str(error))

    @classmethod
    def from_message(
        cls,
        message: str,
        exchange_id: str = None,
        operation: str = None,
        symbol: str = None,
    ) -> "ExchangeException":
        """Build an exception of this class from a local failure message."""
        prefix = exchange_id.upper() if exchange_id else "GATEWAY"
        return cls(ExchangeError(
            category=cls.category,
            code=f"{prefix}_{cls.category.value}",
            message=message,
            exchange_id=exchange_id,
            operation=operation,
            symbol=symbol,
        ))

    def with_context(self, operation: str = None, symbol: str = None) -> "ExchangeException":
        """Attach operation/symbol context if not already present."""
        if operation and not self.error.operation:
            self.error.operation = operation
        if symbol and not self.error.symbol:
            self.error.symbol = symbol
        self.args = (str(self.error),)
        return self


class MarketNotFound(ExchangeException):
    """Symbol or native id is not in the loaded registry."""
    category = ErrorCategory.SYMBOL_NOT_FOUND


class InvalidSymbol(ExchangeException):
    """Canonical symbol does not parse."""
    category = ErrorCategory.INVALID_SYMBOL


class AuthenticationRequired(ExchangeException):
    """Credentials are missing or were rejected."""
    category = ErrorCategory.AUTHENTICATION


class InvalidOrderType(ExchangeException):
    """Order input is malformed (numbers, modes, sub-lot sizes)."""
    category = ErrorCategory.INVALID_ORDER


class InsufficientBalance(ExchangeException):
    category = ErrorCategory.INSUFFICIENT_FUNDS


class RateLimitExceeded(ExchangeException):
    category = ErrorCategory.RATE_LIMIT


class OrderNotFound(ExchangeException):
    category = ErrorCategory.ORDER_NOT_FOUND


class ExchangeNotSupported(ExchangeException):
    """Vendor name has no registered constructor."""
    category = ErrorCategory.UNSUPPORTED


class VenueError(ExchangeException):
    """Generic venue-reported failure."""
    category = ErrorCategory.EXCHANGE_ERROR


EXCEPTION_BY_CATEGORY: Dict[ErrorCategory, Type[ExchangeException]] = {
    ErrorCategory.SYMBOL_NOT_FOUND: MarketNotFound,
    ErrorCategory.INVALID_SYMBOL: InvalidSymbol,
    ErrorCategory.AUTHENTICATION: AuthenticationRequired,
    ErrorCategory.INSUFFICIENT_FUNDS: InsufficientBalance,
    ErrorCategory.INSUFFICIENT_MARGIN: InsufficientBalance,
    ErrorCategory.RATE_LIMIT: RateLimitExceeded,
    ErrorCategory.ORDER_NOT_FOUND: OrderNotFound,
    ErrorCategory.UNSUPPORTED: ExchangeNotSupported,
}


def exception_for(error: ExchangeError) -> ExchangeException:
    """
    Wrap an ExchangeError in the exception class matching its category.

    Categories without a dedicated class become VenueError.
    """
    exc_class = EXCEPTION_BY_CATEGORY.get(error.category, VenueError)
    return exc_class(error)


def _classify_http_status(http_status: Optional[int]) -> Tuple[ErrorCategory, RetryEligibility]:
    """Fallback classification when the vendor code is unknown."""
    if http_status in (429, 418):
        return ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF
    if http_status in (401, 403):
        return ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY
    if http_status and http_status >= 500:
        return ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY
    return ErrorCategory.EXCHANGE_ERROR, RetryEligibility.NO_RETRY


# ============================================================
# BINANCE ERROR MAPPING
# ============================================================

BINANCE_ERROR_MAP: Dict[int, Tuple[ErrorCategory, RetryEligibility]] = {
    # Rate limiting
    -1003: (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),
    -1015: (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),

    # Authentication
    -1002: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    -1022: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    -2014: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    -2015: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),

    # Order validation
    -1013: (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    -1021: (ErrorCategory.TIMEOUT, RetryEligibility.RETRY),
    -1100: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    -1102: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    -1111: (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    -1116: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    -1121: (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Insufficient funds/margin
    -2010: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    -2018: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    -2019: (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),

    # Order not found
    -2011: (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    -2013: (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Position
    -2022: (ErrorCategory.POSITION_NOT_FOUND, RetryEligibility.NO_RETRY),
    -4164: (ErrorCategory.MIN_NOTIONAL, RetryEligibility.NO_RETRY),

    # Exchange internal
    -1000: (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    -1001: (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    -1007: (ErrorCategory.TIMEOUT, RetryEligibility.RETRY),
}


def map_binance_error(
    code: int,
    message: str,
    http_status: int = None,
) -> ExchangeError:
    """
    Map Binance error to unified format.

    Args:
        code: Binance error code
        message: Binance error message
        http_status: HTTP status code

    Returns:
        Unified ExchangeError
    """
    if code in BINANCE_ERROR_MAP:
        category, retry = BINANCE_ERROR_MAP[code]
    else:
        category, retry = _classify_http_status(http_status)

    return ExchangeError(
        category=category,
        code=f"BINANCE_{code}",
        message=message,
        retry_eligible=retry,
        exchange_code=str(code),
        exchange_message=message,
        http_status=http_status,
        exchange_id="binance",
    )


# ============================================================
# OKX ERROR MAPPING
# ============================================================

OKX_ERROR_MAP: Dict[str, Tuple[ErrorCategory, RetryEligibility]] = {
    # Rate limiting
    "50011": (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),
    "50013": (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),

    # Authentication
    "50100": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "50101": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "50102": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "50103": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "50104": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "50105": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "50111": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "50113": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),

    # Order validation
    "51000": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "51001": (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),
    "51006": (ErrorCategory.INVALID_PRICE, RetryEligibility.NO_RETRY),
    "51008": (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    "51020": (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    "51121": (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    "51400": (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    "51603": (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Insufficient margin
    "51004": (ErrorCategory.MAX_POSITION, RetryEligibility.NO_RETRY),
    "51131": (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),

    # Exchange internal
    "50001": (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    "50004": (ErrorCategory.TIMEOUT, RetryEligibility.RETRY),
}


def map_okx_error(
    code: str,
    message: str,
    http_status: int = None,
) -> ExchangeError:
    """
    Map OKX error to unified format.

    Args:
        code: OKX error code (string, as sent by the venue)
        message: OKX error message
        http_status: HTTP status code

    Returns:
        Unified ExchangeError
    """
    if code in OKX_ERROR_MAP:
        category, retry = OKX_ERROR_MAP[code]
    else:
        category, retry = _classify_http_status(http_status)

    return ExchangeError(
        category=category,
        code=f"OKX_{code}",
        message=message,
        retry_eligible=retry,
        exchange_code=code,
        exchange_message=message,
        http_status=http_status,
        exchange_id="okx",
    )


# ============================================================
# BYBIT ERROR MAPPING
# ============================================================

# Bybit V5 retCode values
BYBIT_ERROR_MAP: Dict[int, Tuple[ErrorCategory, RetryEligibility]] = {
    # Rate limiting
    10006: (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),
    10018: (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),

    # Authentication
    10003: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    10004: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    10005: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    33004: (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),

    # Order validation
    10001: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    110001: (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    110003: (ErrorCategory.INVALID_PRICE, RetryEligibility.NO_RETRY),
    110004: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    110007: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    110008: (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    110012: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    110017: (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    110045: (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),
    170131: (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    170140: (ErrorCategory.MIN_NOTIONAL, RetryEligibility.NO_RETRY),
    170213: (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Symbol
    10029: (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),
    170121: (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),

    # Exchange internal
    10000: (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    10016: (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
}

# "Not modified" replies from position/margin setters
BYBIT_NOT_MODIFIED = {110025, 110026, 110043}


def map_bybit_error(
    code: int,
    message: str,
    http_status: int = None,
) -> ExchangeError:
    """
    Map Bybit error to unified format.

    Args:
        code: Bybit retCode
        message: Bybit retMsg
        http_status: HTTP status code

    Returns:
        Unified ExchangeError
    """
    if code in BYBIT_ERROR_MAP:
        category, retry = BYBIT_ERROR_MAP[code]
    else:
        category, retry = _classify_http_status(http_status)

    return ExchangeError(
        category=category,
        code=f"BYBIT_{code}",
        message=message,
        retry_eligible=retry,
        exchange_code=str(code),
        exchange_message=message,
        http_status=http_status,
        exchange_id="bybit",
    )


# ============================================================
# GATE ERROR MAPPING
# ============================================================

# Gate API v4 error labels
GATE_ERROR_MAP: Dict[str, Tuple[ErrorCategory, RetryEligibility]] = {
    "TOO_MANY_REQUESTS": (ErrorCategory.RATE_LIMIT, RetryEligibility.BACKOFF),

    "INVALID_KEY": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "INVALID_SIGNATURE": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "MISSING_REQUIRED_HEADER": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "REQUEST_EXPIRED": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "IP_FORBIDDEN": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),
    "FORBIDDEN": (ErrorCategory.AUTHENTICATION, RetryEligibility.NO_RETRY),

    "INVALID_PARAM_VALUE": (ErrorCategory.INVALID_ORDER, RetryEligibility.NO_RETRY),
    "INVALID_PRECISION": (ErrorCategory.INVALID_PRICE, RetryEligibility.NO_RETRY),
    "INVALID_AMOUNT": (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),
    "AMOUNT_TOO_LITTLE": (ErrorCategory.MIN_NOTIONAL, RetryEligibility.NO_RETRY),
    "AMOUNT_TOO_MUCH": (ErrorCategory.INVALID_QUANTITY, RetryEligibility.NO_RETRY),

    "BALANCE_NOT_ENOUGH": (ErrorCategory.INSUFFICIENT_FUNDS, RetryEligibility.NO_RETRY),
    "INSUFFICIENT_AVAILABLE": (ErrorCategory.INSUFFICIENT_MARGIN, RetryEligibility.NO_RETRY),

    "ORDER_NOT_FOUND": (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    "ORDER_CLOSED": (ErrorCategory.ORDER_NOT_FOUND, RetryEligibility.NO_RETRY),
    "INVALID_CURRENCY_PAIR": (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),
    "CONTRACT_NOT_FOUND": (ErrorCategory.SYMBOL_NOT_FOUND, RetryEligibility.NO_RETRY),
    "POSITION_EMPTY": (ErrorCategory.POSITION_NOT_FOUND, RetryEligibility.NO_RETRY),

    "SERVER_ERROR": (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
    "TOO_BUSY": (ErrorCategory.EXCHANGE_ERROR, RetryEligibility.RETRY),
}


def map_gate_error(
    label: str,
    message: str,
    http_status: int = None,
) -> ExchangeError:
    """
    Map Gate error to unified format.

    Gate reports failures as {"label": ..., "message": ...}.
    """
    if label in GATE_ERROR_MAP:
        category, retry = GATE_ERROR_MAP[label]
    else:
        category, retry = _classify_http_status(http_status)

    return ExchangeError(
        category=category,
        code=f"GATE_{label}",
        message=message,
        retry_eligible=retry,
        exchange_code=label,
        exchange_message=message,
        http_status=http_status,
        exchange_id="gate",
    )


# ============================================================
# ERROR MAPPER FACTORY
# ============================================================

def map_exchange_error(
    exchange_id: str,
    code: Any,
    message: str,
    http_status: int = None,
) -> ExchangeError:
    """
    Map exchange error to unified format.

    Factory function that routes to exchange-specific mapper.

    Args:
        exchange_id: Exchange identifier
        code: Exchange error code
        message: Error message
        http_status: HTTP status code

    Returns:
        Unified ExchangeError
    """
    exchange_id = exchange_id.lower()

    try:
        if exchange_id == "binance":
            return map_binance_error(int(code), message, http_status)
        elif exchange_id == "bybit":
            return map_bybit_error(int(code), message, http_status)
    except (TypeError, ValueError):
        logger.debug(f"Non-numeric {exchange_id} error code: {code!r}")

    if exchange_id == "okx":
        return map_okx_error(str(code), message, http_status)
    elif exchange_id == "gate":
        return map_gate_error(str(code), message, http_status)

    category, retry = _classify_http_status(http_status)
    return ExchangeError(
        category=category,
        code=f"{exchange_id.upper()}_{code}",
        message=message,
        retry_eligible=retry,
        exchange_code=str(code),
        exchange_message=message,
        http_status=http_status,
        exchange_id=exchange_id,
    )


def raise_venue_error(
    exchange_id: str,
    code: Any,
    message: str,
    http_status: int = None,
    operation: str = None,
    symbol: str = None,
) -> None:
    """Map a venue failure and raise the matching exception."""
    error = map_exchange_error(exchange_id, code, message, http_status)
    error.operation = operation
    error.symbol = symbol
    raise exception_for(error)


# ============================================================
# NETWORK ERROR HELPERS
# ============================================================

def create_network_error(
    exchange_id: str,
    message: str,
    operation: str = None,
) -> ExchangeError:
    """Create network error."""
    return ExchangeError(
        category=ErrorCategory.NETWORK,
        code=f"{exchange_id.upper()}_NETWORK_ERROR",
        message=message,
        retry_eligible=RetryEligibility.RETRY,
        exchange_id=exchange_id,
        operation=operation,
    )


def create_timeout_error(
    exchange_id: str,
    timeout_ms: int,
    operation: str = None,
) -> ExchangeError:
    """Create timeout error."""
    return ExchangeError(
        category=ErrorCategory.TIMEOUT,
        code=f"{exchange_id.upper()}_TIMEOUT",
        message=f"Request timed out after {timeout_ms}ms",
        retry_eligible=RetryEligibility.RETRY,
        exchange_id=exchange_id,
        operation=operation,
    )


def create_decode_error(
    exchange_id: str,
    message: str,
    operation: str = None,
) -> ExchangeError:
    """Create error for an unparseable venue response."""
    return ExchangeError(
        category=ErrorCategory.EXCHANGE_ERROR,
        code=f"{exchange_id.upper()}_DECODE_ERROR",
        message=message,
        exchange_id=exchange_id,
        operation=operation,
    )
