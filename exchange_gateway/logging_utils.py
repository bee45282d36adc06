"""
Exchange Gateway - Secure Logging Utilities.

============================================================
PURPOSE
============================================================
Secure logging for exchange adapter operations with:
- Credential masking (API keys, secrets, signatures)
- Request/response sanitization
- Structured JSON log entries

============================================================
SECURITY REQUIREMENTS
============================================================
1. NEVER log raw API keys or secrets
2. Mask every vendor's auth headers (Binance, Bybit, OKX, Gate)
3. Log a hash of request bodies, never the body itself

============================================================
"""

import logging
import re
import json
import hashlib
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from dataclasses import dataclass, asdict


logger = logging.getLogger(__name__)

LOGGER_PREFIX = "exchange_gateway.venue"


# ============================================================
# SENSITIVE DATA PATTERNS
# ============================================================

# Header names that should be masked (compared lower-case)
SENSITIVE_HEADERS = {
    "authorization",
    "x-mbx-apikey",
    "ok-access-key",
    "ok-access-passphrase",
    "ok-access-sign",
    "x-bapi-api-key",
    "x-bapi-sign",
    "key",
    "sign",
    "signature",
}

# Parameter names that should be masked
SENSITIVE_PARAMS = {
    "apikey",
    "api_key",
    "secret",
    "secret_key",
    "password",
    "passphrase",
    "signature",
    "sign",
    "token",
}

SENSITIVE_PATTERNS = [
    (re.compile(r'[a-f0-9]{64,128}', re.IGNORECASE), "***HMAC***"),
    (re.compile(r'[A-Za-z0-9]{32,}'), "***KEY***"),
]


# ============================================================
# MASKING FUNCTIONS
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only first few chars.

    Args:
        value: Value to mask
        show_chars: Number of chars to show at start

    Returns:
        Masked value
    """
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with credential values masked."""
    if not headers:
        return {}

    masked = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            masked[key] = mask_value(str(value))
        else:
            masked[key] = value
    return masked


def mask_params(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Mask sensitive parameters.

    Nested dicts are masked recursively; string values are scanned
    for key- and signature-shaped tokens.
    """
    if not params:
        return {}

    masked = {}
    for key, value in params.items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value)) if value else value
        elif isinstance(value, dict):
            masked[key] = mask_params(value)
        elif isinstance(value, str):
            masked_value = value
            for pattern, replacement in SENSITIVE_PATTERNS:
                masked_value = pattern.sub(replacement, masked_value)
            masked[key] = masked_value
        else:
            masked[key] = value
    return masked


def mask_url(url: str) -> str:
    """Mask sensitive query parameters in a URL or path."""
    if not url:
        return url

    for param in SENSITIVE_PARAMS:
        pattern = re.compile(f'({param}=)([^&]+)', re.IGNORECASE)
        url = pattern.sub(lambda m: f'{m.group(1)}***', url)

    return url


# ============================================================
# LOG ENTRY STRUCTURES
# ============================================================

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class RequestLogEntry:
    """Structured log entry for requests."""

    timestamp: str
    exchange_id: str
    operation: str
    method: str
    endpoint: str
    request_id: str

    # Request details (masked)
    headers: Optional[Dict[str, str]] = None
    query: Optional[str] = None
    body_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON logging."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class ResponseLogEntry:
    """Structured log entry for responses."""

    timestamp: str
    exchange_id: str
    operation: str
    request_id: str
    status_code: int
    latency_ms: float
    success: bool

    error_code: Optional[str] = None
    error_message: Optional[str] = None
    response_preview: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON logging."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class OrderLogEntry:
    """Structured log entry for orders."""

    timestamp: str
    exchange_id: str
    operation: str  # create, cancel, fetch

    client_order_id: Optional[str] = None
    exchange_order_id: Optional[str] = None
    symbol: Optional[str] = None
    side: Optional[str] = None
    order_type: Optional[str] = None
    quantity: Optional[str] = None
    price: Optional[str] = None
    status: Optional[str] = None
    filled_qty: Optional[str] = None

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON logging."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# ============================================================
# ADAPTER LOGGER
# ============================================================

class AdapterLogger:
    """
    Secure logger for exchange adapter operations.

    Provides structured logging with automatic credential masking.
    One instance per adapter; logger name is
    ``exchange_gateway.venue.<exchange_id>``.
    """

    def __init__(self, exchange_id: str, logger_name: str = None):
        self._exchange_id = exchange_id
        self._logger = logging.getLogger(
            logger_name or f"{LOGGER_PREFIX}.{exchange_id}"
        )
        self._request_counter = 0

    @property
    def exchange_id(self) -> str:
        return self._exchange_id

    def set_debug(self, enabled: bool) -> None:
        """Enable DEBUG output for this venue (request/response traces)."""
        self._logger.setLevel(logging.DEBUG if enabled else logging.NOTSET)

    def _generate_request_id(self) -> str:
        """Generate unique request ID."""
        self._request_counter += 1
        return f"{self._exchange_id}-{self._request_counter}"

    def _hash_body(self, body: Any) -> Optional[str]:
        """Short sha256 of the request body."""
        if not body:
            return None

        if isinstance(body, (dict, list)):
            body_str = json.dumps(body, sort_keys=True, default=str)
        elif isinstance(body, bytes):
            body_str = body.decode("utf-8", errors="replace")
        else:
            body_str = str(body)

        return hashlib.sha256(body_str.encode()).hexdigest()[:16]

    def log_request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        headers: Dict[str, str] = None,
        query: str = None,
        body: Any = None,
    ) -> str:
        """
        Log outgoing request.

        Args:
            operation: Operation name (e.g., "create_order")
            method: HTTP method
            endpoint: API path
            headers: Request headers (masked before logging)
            query: Encoded query string (masked before logging)
            body: Request body (only its hash is logged)

        Returns:
            Request ID for correlation
        """
        request_id = self._generate_request_id()

        entry = RequestLogEntry(
            timestamp=_now_iso(),
            exchange_id=self._exchange_id,
            operation=operation,
            method=method,
            endpoint=endpoint,
            request_id=request_id,
            headers=mask_headers(headers) if headers else None,
            query=mask_url(query) if query else None,
            body_hash=self._hash_body(body),
        )

        self._logger.debug(f"REQUEST: {entry.to_json()}")
        return request_id

    def log_response(
        self,
        operation: str,
        request_id: str,
        status_code: int,
        latency_ms: float,
        success: bool,
        error_code: str = None,
        error_message: str = None,
        response_body: Any = None,
    ) -> None:
        """Log incoming response; failures go out at WARNING."""
        preview = None
        if response_body:
            if isinstance(response_body, bytes):
                preview = response_body[:200].decode("utf-8", errors="replace")
            else:
                preview = str(response_body)[:200]

        entry = ResponseLogEntry(
            timestamp=_now_iso(),
            exchange_id=self._exchange_id,
            operation=operation,
            request_id=request_id,
            status_code=status_code,
            latency_ms=round(latency_ms, 2),
            success=success,
            error_code=error_code,
            error_message=error_message[:200] if error_message else None,
            response_preview=preview,
        )

        if success:
            self._logger.debug(f"RESPONSE: {entry.to_json()}")
        else:
            self._logger.warning(f"RESPONSE_ERROR: {entry.to_json()}")

    def log_order(
        self,
        operation: str,
        client_order_id: str = None,
        symbol: str = None,
        side: str = None,
        order_type: str = None,
        quantity: str = None,
        price: str = None,
        exchange_order_id: str = None,
        status: str = None,
        filled_qty: str = None,
        error_code: str = None,
        error_message: str = None,
    ) -> None:
        """Log order operation at INFO (WARNING when it failed)."""
        entry = OrderLogEntry(
            timestamp=_now_iso(),
            exchange_id=self._exchange_id,
            operation=operation,
            client_order_id=client_order_id,
            exchange_order_id=exchange_order_id,
            symbol=symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            price=price,
            status=status,
            filled_qty=filled_qty,
            error_code=error_code,
            error_message=error_message[:200] if error_message else None,
        )

        if error_code:
            self._logger.warning(f"ORDER_ERROR: {entry.to_json()}")
        else:
            self._logger.info(f"ORDER: {entry.to_json()}")

    def info(self, message: str) -> None:
        self._logger.info(f"[{self._exchange_id}] {message}")

    def warning(self, message: str) -> None:
        self._logger.warning(f"[{self._exchange_id}] {message}")

    def error(self, message: str, exc_info: bool = False) -> None:
        self._logger.error(f"[{self._exchange_id}] {message}", exc_info=exc_info)

    def debug(self, message: str) -> None:
        self._logger.debug(f"[{self._exchange_id}] {message}")
