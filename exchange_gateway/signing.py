"""
Exchange Gateway - Request Signing.

============================================================
PURPOSE
============================================================
One signing strategy per vendor plus the canonical query-string
builder shared with the HTTP transport.

SIGNATURE VARIANTS:
- Binance: HMAC-SHA256 hex over the sorted query string
- Bybit:   HMAC-SHA256 hex over ts + key + recvWindow + payload
- OKX:     HMAC-SHA256 base64 over iso_ts + METHOD + path + payload
- Gate:    HMAC-SHA512 hex over a newline-joined request digest

The query string and JSON body are produced once, signed, and
sent as-is. Re-encoding after signing invalidates the signature.

============================================================
"""

import base64
import hashlib
import hmac
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Union
from urllib.parse import quote_plus

from .errors import AuthenticationRequired


# ============================================================
# CANONICAL ENCODING
# ============================================================

def format_param(value: Any) -> str:
    """Render a query value the way every signer expects it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        value = Decimal(repr(value))
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if hasattr(value, "value"):
        # Enum members
        return str(value.value)
    return str(value)


def build_query_string(params: Optional[Dict[str, Any]]) -> str:
    """
    Canonical query string: keys sorted, None values dropped,
    keys and values escaped with quote_plus.
    """
    if not params:
        return ""
    parts = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            continue
        parts.append(f"{quote_plus(str(key))}={quote_plus(format_param(value))}")
    return "&".join(parts)


def serialize_body(body: Union[None, str, Dict[str, Any], list]) -> str:
    """Compact JSON body. Strings are assumed to be serialized already."""
    if body is None or body == "" or body == {}:
        return ""
    if isinstance(body, str):
        return body
    return json.dumps(body, separators=(",", ":"), default=format_param)


def now_millis() -> int:
    return int(time.time() * 1000)


# ============================================================
# SIGNED REQUEST
# ============================================================

@dataclass
class SignedRequest:
    """Everything the transport needs to send an authenticated call."""

    query: str = ""
    """Final URL query string (without leading '?')."""

    body: str = ""
    """Serialized request body, exactly as signed."""

    headers: Dict[str, str] = field(default_factory=dict)
    signature: str = ""


class RequestSigner(ABC):
    """Base class for vendor signing strategies."""

    exchange_id = ""

    def __init__(self, api_key: str, api_secret: str):
        self._api_key = api_key or ""
        self._api_secret = api_secret or ""

    @property
    def has_credentials(self) -> bool:
        return bool(self._api_secret)

    def _require_secret(self) -> None:
        if not self._api_secret:
            raise AuthenticationRequired.from_message(
                "api secret is required for private endpoints",
                exchange_id=self.exchange_id,
            )

    def _hmac(self, message: str, digestmod=hashlib.sha256) -> hmac.HMAC:
        return hmac.new(self._api_secret.encode(), message.encode(), digestmod)

    @abstractmethod
    def sign(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        timestamp: Optional[int] = None,
    ) -> SignedRequest:
        """
        Sign a request.

        Args:
            method: HTTP method
            path: Request path (no host, no query)
            params: Query parameters
            body: Dict body or pre-serialized JSON string
            timestamp: Milliseconds since epoch; defaults to now

        Raises:
            AuthenticationRequired: when no secret is configured
        """


# ============================================================
# BINANCE
# ============================================================

class BinanceSigner(RequestSigner):
    """Signature appended to the query string."""

    exchange_id = "binance"

    def __init__(self, api_key: str, api_secret: str, recv_window: int = None):
        super().__init__(api_key, api_secret)
        self._recv_window = recv_window

    def sign(self, method, path, params=None, body=None, timestamp=None) -> SignedRequest:
        self._require_secret()

        signed_params = dict(params or {})
        signed_params["timestamp"] = timestamp if timestamp is not None else now_millis()
        if self._recv_window:
            signed_params["recvWindow"] = self._recv_window

        query = build_query_string(signed_params)
        signature = self._hmac(query).hexdigest()

        return SignedRequest(
            query=f"{query}&signature={signature}",
            body=serialize_body(body),
            headers={"X-MBX-APIKEY": self._api_key},
            signature=signature,
        )


# ============================================================
# BYBIT
# ============================================================

class BybitSigner(RequestSigner):
    """timestamp + api_key + recv_window + (JSON body | query string)."""

    exchange_id = "bybit"

    def __init__(self, api_key: str, api_secret: str, recv_window: int = 5000):
        super().__init__(api_key, api_secret)
        self._recv_window = str(recv_window)

    def sign(self, method, path, params=None, body=None, timestamp=None) -> SignedRequest:
        self._require_secret()

        ts = str(timestamp if timestamp is not None else now_millis())
        query = build_query_string(params)
        body_str = serialize_body(body)
        payload = body_str if method.upper() in ("POST", "PUT") else query

        signature = self._hmac(f"{ts}{self._api_key}{self._recv_window}{payload}").hexdigest()

        return SignedRequest(
            query=query,
            body=body_str,
            headers={
                "X-BAPI-API-KEY": self._api_key,
                "X-BAPI-TIMESTAMP": ts,
                "X-BAPI-RECV-WINDOW": self._recv_window,
                "X-BAPI-SIGN": signature,
                "Content-Type": "application/json",
            },
            signature=signature,
        )


# ============================================================
# OKX
# ============================================================

def okx_timestamp(millis: int) -> str:
    """ISO-8601 UTC with milliseconds, e.g. 2024-01-01T00:00:00.000Z."""
    dt = datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class OkxSigner(RequestSigner):
    """BASE64(HMAC-SHA256(timestamp + METHOD + path[?query] + body))."""

    exchange_id = "okx"

    def __init__(self, api_key: str, api_secret: str, passphrase: str = "", simulated: bool = False):
        super().__init__(api_key, api_secret)
        self._passphrase = passphrase or ""
        self._simulated = simulated

    def sign(self, method, path, params=None, body=None, timestamp=None) -> SignedRequest:
        self._require_secret()

        ts = okx_timestamp(timestamp if timestamp is not None else now_millis())
        method = method.upper()
        query = build_query_string(params)
        body_str = serialize_body(body)

        request_path = path
        if method in ("GET", "DELETE") and query:
            request_path = f"{path}?{query}"
            payload = ""
        else:
            payload = body_str

        digest = self._hmac(f"{ts}{method}{request_path}{payload}").digest()
        signature = base64.b64encode(digest).decode()

        headers = {
            "OK-ACCESS-KEY": self._api_key,
            "OK-ACCESS-SIGN": signature,
            "OK-ACCESS-TIMESTAMP": ts,
            "OK-ACCESS-PASSPHRASE": self._passphrase,
            "Content-Type": "application/json",
        }
        if self._simulated:
            headers["x-simulated-trading"] = "1"

        return SignedRequest(query=query, body=body_str, headers=headers, signature=signature)


# ============================================================
# GATE
# ============================================================

GATE_API_PREFIX = "/api/v4"


class GateSigner(RequestSigner):
    """
    HMAC-SHA512 hex over:

        METHOD\\n/api/v4<path>\\n<query>\\n<sha512(body)>\\n<unix seconds>
    """

    exchange_id = "gate"

    def sign(self, method, path, params=None, body=None, timestamp=None) -> SignedRequest:
        self._require_secret()

        millis = timestamp if timestamp is not None else now_millis()
        ts = str(millis // 1000)
        query = build_query_string(params)
        body_str = serialize_body(body)

        relative = path[len(GATE_API_PREFIX):] if path.startswith(GATE_API_PREFIX) else path
        body_hash = hashlib.sha512(body_str.encode()).hexdigest()
        payload = "\n".join([method.upper(), f"{GATE_API_PREFIX}{relative}", query, body_hash, ts])

        signature = self._hmac(payload, hashlib.sha512).hexdigest()

        return SignedRequest(
            query=query,
            body=body_str,
            headers={
                "KEY": self._api_key,
                "Timestamp": ts,
                "SIGN": signature,
                "Content-Type": "application/json",
                "X-Gate-Channel-Id": "api",
            },
            signature=signature,
        )
