"""
Exchange Gateway - HTTP Transport.

============================================================
PURPOSE
============================================================
Thin aiohttp client used by every adapter:
- Lazily created ClientSession with a total timeout
- Persistent headers and optional HTTP(S) proxy
- Query strings sent byte-for-byte as signed
- Secure request/response logging

Non-2xx responses raise HttpStatusError with the raw body so the
adapter can map the vendor's error payload.

============================================================
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import aiohttp
from yarl import URL

from .errors import ExchangeException, create_network_error, create_timeout_error
from .logging_utils import AdapterLogger
from .signing import build_query_string, serialize_body


logger = logging.getLogger(__name__)

PROXY_SCHEMES = ("http", "https")


class HttpStatusError(Exception):
    """Non-2xx HTTP response."""

    def __init__(self, status: int, body: bytes, path: str = ""):
        self.status = status
        self.body = body
        self.path = path
        preview = body[:200].decode("utf-8", errors="replace") if body else ""
        super().__init__(f"HTTP {status} on {path}: {preview}")


class HttpTransport:
    """
    aiohttp-backed transport.

    Usage:
        transport = HttpTransport("https://api.binance.com", "binance")
        raw = await transport.get("/api/v3/time")
        await transport.close()
    """

    def __init__(
        self,
        base_url: str,
        exchange_id: str,
        timeout_seconds: float = 30.0,
        proxy: str = None,
        adapter_logger: AdapterLogger = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._exchange_id = exchange_id
        self._timeout = timeout_seconds
        self._headers: Dict[str, str] = {}
        self._proxy: Optional[str] = None
        self._session: Optional[aiohttp.ClientSession] = None
        self._logger = adapter_logger or AdapterLogger(exchange_id)

        if proxy:
            self.set_proxy(proxy)

    # --------------------------------------------------------
    # CONFIGURATION
    # --------------------------------------------------------

    def set_header(self, key: str, value: str) -> None:
        """Header sent with every request."""
        self._headers[key] = value

    def set_proxy(self, proxy_url: str) -> None:
        """
        Route requests through an HTTP(S) proxy.

        Raises:
            ValueError: unsupported scheme or missing host
        """
        parsed = urlparse(proxy_url)
        if parsed.scheme not in PROXY_SCHEMES or not parsed.netloc:
            raise ValueError(f"Unsupported proxy URL: {proxy_url}")
        self._proxy = proxy_url

    @property
    def proxy(self) -> Optional[str]:
        return self._proxy

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    def _get_session(self) -> aiohttp.ClientSession:
        if not self.is_open:
            timeout = aiohttp.ClientTimeout(total=self._timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    # --------------------------------------------------------
    # REQUESTS
    # --------------------------------------------------------

    async def get(self, path: str, params: Dict[str, Any] = None, headers: Dict[str, str] = None) -> bytes:
        return await self.request("GET", path, build_query_string(params), "", headers)

    async def post(
        self,
        path: str,
        body: Any = None,
        params: Dict[str, Any] = None,
        headers: Dict[str, str] = None,
    ) -> bytes:
        return await self.request("POST", path, build_query_string(params), serialize_body(body), headers)

    async def delete(
        self,
        path: str,
        params: Dict[str, Any] = None,
        body: Any = None,
        headers: Dict[str, str] = None,
    ) -> bytes:
        return await self.request("DELETE", path, build_query_string(params), serialize_body(body), headers)

    async def request(
        self,
        method: str,
        path: str,
        query: str = "",
        body: str = "",
        headers: Dict[str, str] = None,
        operation: str = None,
    ) -> bytes:
        """
        Send one request and return the raw response body.

        Args:
            method: HTTP method
            path: Path appended to the base URL
            query: Pre-encoded query string, sent verbatim
            body: Pre-serialized body, sent verbatim
            headers: Per-request headers (merged over persistent ones)
            operation: Name used in log entries

        Raises:
            HttpStatusError: non-2xx response
            ExchangeException: network failure or timeout
        """
        url = f"{self.base_url}{path}"
        if query:
            url = f"{url}?{query}"

        merged = dict(self._headers)
        if headers:
            merged.update(headers)
        if body and "Content-Type" not in merged:
            merged["Content-Type"] = "application/json"

        operation = operation or path.rsplit("/", 1)[-1]
        request_id = self._logger.log_request(
            operation=operation,
            method=method,
            endpoint=path,
            headers=merged,
            query=query,
            body=body,
        )

        start_time = time.time()
        session = self._get_session()

        try:
            async with session.request(
                method,
                URL(url, encoded=True),
                headers=merged,
                data=body.encode() if body else None,
                proxy=self._proxy,
            ) as resp:
                raw = await resp.read()
                status = resp.status
        except aiohttp.ClientError as e:
            raise ExchangeException(
                create_network_error(self._exchange_id, str(e), operation)
            )
        except asyncio.TimeoutError:
            raise ExchangeException(
                create_timeout_error(self._exchange_id, int(self._timeout * 1000), operation)
            )

        latency_ms = (time.time() - start_time) * 1000
        success = 200 <= status < 300

        self._logger.log_response(
            operation=operation,
            request_id=request_id,
            status_code=status,
            latency_ms=latency_ms,
            success=success,
            error_message=None if success else raw[:200].decode("utf-8", errors="replace"),
            response_body=raw if success else None,
        )

        if not success:
            raise HttpStatusError(status, raw, path)
        return raw
