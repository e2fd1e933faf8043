"""
Async REST Transport

Shared aiohttp client every exchange API client builds on. It handles:
- Session lifecycle (async context manager)
- Request/response logging
- Mapping HTTP failures onto the exchange error taxonomy
- JSON decoding

There is no retry loop here: a rate limit is reported as RateLimitedError so
the caller can decide to serve a cached snapshot, and every other failure
surfaces immediately as TransportError.

Error mapping:
    - HTTP 429 / 418              -> RateLimitedError
    - exchange error in the body  -> whatever check_payload() raises
    - other HTTP >= 400           -> TransportError
    - aiohttp.ClientError/timeout -> TransportError
    - body is not JSON            -> FormatError

Usage:
    class KrakenAPIClient(RestClient):
        BASE_URL = "https://api.kraken.com"

        def check_payload(self, status, payload):
            if payload.get("error"):
                raise ExchangeBusinessError(...)

    async with KrakenAPIClient() as client:
        data = await client.request("GET", "/0/public/Ticker", params={"pair": "XETHZUSD"})
"""

import asyncio
import json
import time
from typing import Any, Dict, Optional

import aiohttp

from core.config import settings
from core.errors import FormatError, RateLimitedError, TransportError
from core.logging import get_logger, log_api_request, log_api_response

RATE_LIMIT_STATUSES = (429, 418)


def _retry_after(headers) -> Optional[float]:
    value = headers.get("Retry-After") if headers else None
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class RestClient:
    """
    Async HTTP client for one exchange's REST API.

    Attributes:
        BASE_URL: Default base URL (overridden by subclasses)
        exchange: Exchange name used in errors and logs
        base_url: Base URL actually used (e.g. sandbox)
        timeout: Total request timeout in seconds
        verbose: Log raw response bodies
        session: aiohttp ClientSession (only inside "async with")

    Example:
        >>> async with RestClient("kraken", "https://api.kraken.com") as client:
        ...     data = await client.request("GET", "/0/public/Time")
    """

    BASE_URL = ""

    def __init__(
        self,
        exchange: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        verbose: bool = False,
    ):
        self.exchange = exchange
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.verbose = verbose
        self.logger = get_logger(f"http.{exchange}")
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession()
        self.logger.debug(f"{self.__class__.__name__} session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug(f"{self.__class__.__name__} session closed")

    # ============================================
    # Hooks
    # ============================================

    def check_payload(self, status: int, payload: Any) -> None:
        """
        Inspect a decoded body for exchange-level errors.

        Called for every decoded response, successful or not. Exchanges that
        embed errors in the body override this to raise ExchangeBusinessError
        or RateLimitedError. The default accepts everything.
        """

    # ============================================
    # HTTP Request Handler
    # ============================================

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        data: Any = None,
        headers: Optional[Dict[str, str]] = None,
        log_params: bool = True,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Args:
            method: HTTP method ("GET", "POST", "DELETE")
            path: Endpoint path appended to base_url
            params: Query string parameters
            data: Request body (already encoded string or form dict)
            headers: Extra headers (API key, signature)
            log_params: Include params in the debug log (False for signed requests)

        Returns:
            Decoded JSON

        Raises:
            RuntimeError: If used outside "async with"
            RateLimitedError: HTTP 429/418 or an exchange rate-limit payload
            ExchangeBusinessError: Structured exchange error (via check_payload)
            TransportError: Network failure, timeout or HTTP error status
            FormatError: Body is not valid JSON
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        url = f"{self.base_url}{path}"
        log_api_request(self.exchange, path, params if log_params else None)
        started = time.monotonic()

        try:
            async with self.session.request(
                method,
                url,
                params=params,
                data=data,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                status = resp.status
                text = await resp.text()
                log_api_response(self.exchange, path, status, time.monotonic() - started)

                if status in RATE_LIMIT_STATUSES:
                    self.logger.warning(f"{self.exchange}: rate limited (HTTP {status}) on {path}")
                    raise RateLimitedError(
                        f"HTTP {status} on {path}",
                        self.exchange,
                        retry_after=_retry_after(resp.headers),
                    )

        except asyncio.TimeoutError as e:
            self.logger.error(f"{self.exchange}: timeout on {path}")
            raise TransportError(f"Timeout on {path}", self.exchange) from e

        except aiohttp.ClientError as e:
            self.logger.error(f"{self.exchange}: request failed on {path}: {e}")
            raise TransportError(f"Request failed on {path}: {e}", self.exchange) from e

        if self.verbose:
            self.logger.debug(f"{self.exchange} {method} {path} -> {status}: {text}")

        try:
            payload = json.loads(text) if text else None
        except ValueError as e:
            if status >= 400:
                raise TransportError(f"HTTP {status} on {path}: {text[:200]}", self.exchange, status) from e
            raise FormatError(f"Invalid JSON from {path}", self.exchange) from e

        self.check_payload(status, payload)

        if status >= 400:
            self.logger.error(f"{self.exchange}: HTTP {status} on {path}: {text[:200]}")
            raise TransportError(f"HTTP {status} on {path}", self.exchange, status)

        return payload

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, data: Any = None, **kwargs) -> Any:
        return await self.request("POST", path, data=data, **kwargs)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(exchange='{self.exchange}', base_url='{self.base_url}')>"
