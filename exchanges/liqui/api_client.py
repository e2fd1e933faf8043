"""
Liqui REST API Client

Async client for the Liqui public API (v3) and trade API.

API Documentation:
    https://liqui.io/api

Public API:
    GET https://api.liqui.io/api/3/<method>/<pairs joined by "-">

Trade API:
    POST https://api.liqui.io/tapi with a form body "method=<Method>&nonce=<n>&...".
    Headers: Key (API key), Sign (hex HMAC-SHA512 of the body with the secret).
    The nonce must grow on every call and fits in 32 bits, so it is seeded
    from the clock in seconds.

Responses:
    Trade API answers {"success": 1, "return": {...}} or
    {"success": 0, "error": "..."}. "no orders" from ActiveOrders is not an
    error, it means an empty list.
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

from core.errors import ExchangeBusinessError, RateLimitedError
from core.http import RestClient
from core.nonce import Nonce
from core.signer import HEX, Credentials, RequestSigner, query_string_payload
from core.utils.time import current_utc_timestamp

LIQUI_API_URL = "https://api.liqui.io"
LIQUI_PUBLIC_PATH = "/api/3"
LIQUI_TRADE_PATH = "/tapi"

RATE_LIMIT_MARKERS = ("too often", "rate limit", "too many requests")
NO_ORDERS_MARKER = "no orders"

SIGNER = RequestSigner("sha512", query_string_payload, encoding=HEX)


class LiquiAPIClient(RestClient):
    """
    Async HTTP client for the Liqui API.

    Args:
        credentials: API key/secret (only needed for trade API methods)
        nonce: Nonce sequencer (seconds, incrementing)
        timeout: Request timeout in seconds
        verbose: Log raw responses
    """

    BASE_URL = LIQUI_API_URL

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        nonce: Optional[Nonce] = None,
        timeout: Optional[float] = None,
        verbose: bool = False,
    ):
        super().__init__("liqui", timeout=timeout, verbose=verbose)
        self.credentials = credentials or Credentials()
        self.nonce = nonce or Nonce(clock=current_utc_timestamp)

    def check_payload(self, status: int, payload: Any) -> None:
        if not isinstance(payload, dict) or payload.get("success", 1) != 0:
            return
        message = str(payload.get("error") or "unknown error")
        if NO_ORDERS_MARKER in message.lower():
            return
        if any(marker in message.lower() for marker in RATE_LIMIT_MARKERS):
            raise RateLimitedError(message, self.exchange)
        raise ExchangeBusinessError(message, self.exchange)

    # ============================================
    # Request Helpers
    # ============================================

    async def _public(self, method: str, pairs: Optional[str] = None) -> Any:
        path = f"{LIQUI_PUBLIC_PATH}/{method}"
        if pairs:
            path = f"{path}/{pairs}"
        return await self.get(path)

    async def _trade(self, method: str, values: Optional[Dict[str, Any]] = None) -> Any:
        """
        Signed POST to the trade API.

        Returns:
            The "return" member ({} for "no orders")

        Raises:
            CredentialsMissingError: Before any network call if keys are absent
        """
        self.credentials.require(self.exchange)

        params: Dict[str, Any] = {"method": method, "nonce": self.nonce.next()}
        params.update(values or {})
        body = urlencode(params)
        signed = SIGNER.sign_request(self.credentials, self.exchange, body)

        headers = {
            "Key": self.credentials.api_key,
            "Sign": signed.signature,
            "Content-Type": "application/x-www-form-urlencoded",
        }
        response = await self.post(LIQUI_TRADE_PATH, data=body, headers=headers, log_params=False)
        if not isinstance(response, dict):
            return response
        return response.get("return") or {}

    # ============================================
    # Public Endpoints
    # ============================================

    async def get_info(self) -> Dict[str, Any]:
        """
        GET /api/3/info

        Response Format:
            {"server_time": 1500000000,
             "pairs": {"eth_btc": {"decimal_places": 8, "min_price": 0.00001,
                                   "max_price": 100, "min_amount": 0.0001,
                                   "min_total": 0.0001, "hidden": 0, "fee": 0.25}}}
        """
        return await self._public("info")

    async def get_ticker(self, pairs: str) -> Dict[str, Any]:
        """
        GET /api/3/ticker/<eth_btc-ltc_btc>

        Response Format:
            {"eth_btc": {"high": 0.1, "low": 0.09, "avg": 0.095, "vol": 12.5,
                         "vol_cur": 130.2, "last": 0.097, "buy": 0.0969,
                         "sell": 0.0971, "updated": 1500000000}}
        """
        return await self._public("ticker", pairs)

    async def get_depth(self, pair: str) -> Dict[str, Any]:
        """GET /api/3/depth/<eth_btc> -> {"eth_btc": {"asks": [[price, amount]], "bids": [...]}}"""
        return await self._public("depth", pair)

    # ============================================
    # Trade API
    # ============================================

    async def get_account_info(self) -> Dict[str, Any]:
        """getInfo -> {"funds": {"eth": 325.0, "btc": 23.998}, "rights": {...}, ...}"""
        return await self._trade("getInfo")

    async def trade(self, pair: str, side: str, rate: str, amount: str) -> Dict[str, Any]:
        """Trade -> {"received": 0.1, "remains": 0, "order_id": 12345, "funds": {...}}"""
        return await self._trade("Trade", {"pair": pair, "type": side, "rate": rate, "amount": amount})

    async def get_active_orders(self, pair: Optional[str] = None) -> Dict[str, Any]:
        """
        ActiveOrders

        Response Format:
            {"12345": {"pair": "eth_btc", "type": "sell", "amount": 12.3,
                       "rate": 0.1, "timestamp_created": 1500000000, "status": 0}}
        """
        return await self._trade("ActiveOrders", {"pair": pair} if pair else None)

    async def get_order_info(self, order_id: str) -> Dict[str, Any]:
        """
        OrderInfo

        Response Format:
            {"12345": {"pair": "eth_btc", "type": "sell", "start_amount": 13.345,
                       "amount": 12.345, "rate": 0.1, "timestamp_created": 1500000000,
                       "status": 0}}
        """
        return await self._trade("OrderInfo", {"order_id": order_id})

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        """CancelOrder -> {"order_id": 12345, "funds": {...}}"""
        return await self._trade("CancelOrder", {"order_id": order_id})
