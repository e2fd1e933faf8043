"""
Gemini REST API Client

Async client for the Gemini REST API (v1).

API Documentation:
    https://docs.gemini.com/rest-api/

Rate Limits:
    - Public: 120 requests/minute
    - Private: 600 requests/minute
    - HTTP 429, or {"result": "error", "reason": "RateLimited"}, surfaces as
      RateLimitedError

Authentication:
    Private calls are POSTed with an empty body. The request itself travels in
    headers:

        X-GEMINI-PAYLOAD   = base64(JSON {"request": "/v1/<path>", "nonce": n, ...})
        X-GEMINI-SIGNATURE = hex(HMAC-SHA384(secret, X-GEMINI-PAYLOAD))
        X-GEMINI-APIKEY    = API key

Usage:
    async with GeminiAPIClient(credentials, nonce, sandbox=True) as client:
        symbols = await client.get_symbols()
        balances = await client.get_balances()
"""

from typing import Any, Dict, List, Optional

from core.errors import ExchangeBusinessError, RateLimitedError
from core.http import RestClient
from core.nonce import Nonce
from core.signer import HEX, Credentials, RequestSigner, base64_json_payload
from core.utils.time import current_utc_timestamp_ms

GEMINI_API_URL = "https://api.gemini.com"
GEMINI_SANDBOX_API_URL = "https://api.sandbox.gemini.com"
GEMINI_API_VERSION = "1"

RATE_LIMIT_REASONS = ("ratelimit", "ratelimited")

SIGNER = RequestSigner("sha384", base64_json_payload, encoding=HEX)


class GeminiAPIClient(RestClient):
    """
    Async HTTP client for the Gemini REST API.

    Args:
        credentials: API key/secret (only needed for private methods)
        nonce: Nonce sequencer (milliseconds, tracking the clock)
        sandbox: Use the sandbox environment
        timeout: Request timeout in seconds
        verbose: Log raw responses
    """

    BASE_URL = GEMINI_API_URL

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        nonce: Optional[Nonce] = None,
        sandbox: bool = False,
        timeout: Optional[float] = None,
        verbose: bool = False,
    ):
        super().__init__(
            "gemini",
            base_url=GEMINI_SANDBOX_API_URL if sandbox else GEMINI_API_URL,
            timeout=timeout,
            verbose=verbose,
        )
        self.credentials = credentials or Credentials()
        self.nonce = nonce or Nonce(clock=current_utc_timestamp_ms, track_clock=True)

    def check_payload(self, status: int, payload: Any) -> None:
        """Gemini errors look like {"result": "error", "reason": "InvalidNonce", "message": "..."}"""
        if not isinstance(payload, dict) or payload.get("result") != "error":
            return
        reason = payload.get("reason", "")
        message = payload.get("message") or reason or "unknown error"
        if str(reason).lower() in RATE_LIMIT_REASONS:
            raise RateLimitedError(message, self.exchange)
        raise ExchangeBusinessError(message, self.exchange, code=reason)

    # ============================================
    # Request Helpers
    # ============================================

    async def _public(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.get(f"/v{GEMINI_API_VERSION}/{path}", params=params)

    async def _private(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Signed POST to /v1/<path>.

        Raises:
            CredentialsMissingError: Before any network call if keys are absent
        """
        self.credentials.require(self.exchange)
        endpoint = f"/v{GEMINI_API_VERSION}/{path}"

        request: Dict[str, Any] = {"request": endpoint, "nonce": self.nonce.next()}
        request.update(params or {})
        signed = SIGNER.sign_request(self.credentials, self.exchange, request)

        headers = {
            "Content-Type": "text/plain",
            "Cache-Control": "no-cache",
            "X-GEMINI-APIKEY": self.credentials.api_key,
            "X-GEMINI-PAYLOAD": signed.payload.decode("ascii"),
            "X-GEMINI-SIGNATURE": signed.signature,
        }
        return await self.post(endpoint, data="", headers=headers, log_params=False)

    # ============================================
    # Public Endpoints
    # ============================================

    async def get_symbols(self) -> List[str]:
        """GET /v1/symbols -> ["btcusd", "ethbtc", "ethusd"]"""
        return await self._public("symbols")

    async def get_ticker(self, symbol: str) -> Dict[str, Any]:
        """
        GET /v1/pubticker/<symbol>

        Response Format:
            {"ask": "977.59", "bid": "977.35", "last": "977.65",
             "volume": {"BTC": "2210.50", "USD": "2135477.46", "timestamp": 1483018200000}}
        """
        return await self._public(f"pubticker/{symbol.lower()}")

    async def get_orderbook(self, symbol: str, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        GET /v1/book/<symbol>

        Response Format:
            {"bids": [{"price": "3607.85", "amount": "6.643373", "timestamp": "1547147541"}],
             "asks": [...]}
        """
        params = None
        if limit is not None:
            params = {"limit_bids": limit, "limit_asks": limit}
        return await self._public(f"book/{symbol.lower()}", params)

    # ============================================
    # Private Endpoints
    # ============================================

    async def get_balances(self) -> List[Dict[str, Any]]:
        """POST /v1/balances -> [{"currency": "BTC", "amount": "1154.6", "available": "1129.1", ...}]"""
        return await self._private("balances")

    async def new_order(
        self,
        symbol: str,
        amount: str,
        price: str,
        side: str,
        order_type: str = "exchange limit",
    ) -> Dict[str, Any]:
        """POST /v1/order/new -> order status object"""
        return await self._private("order/new", {
            "symbol": symbol.lower(),
            "amount": amount,
            "price": price,
            "side": side,
            "type": order_type,
        })

    async def cancel_order(self, order_id: int) -> Dict[str, Any]:
        """POST /v1/order/cancel (succeeds without effect on an already cancelled order)"""
        return await self._private("order/cancel", {"order_id": order_id})

    async def get_order_status(self, order_id: int) -> Dict[str, Any]:
        """
        POST /v1/order/status

        Response Format:
            {"order_id": "44375901", "symbol": "btcusd", "side": "buy",
             "type": "exchange limit", "price": "400.00", "is_live": true,
             "is_cancelled": false, "original_amount": "3", "executed_amount": "0",
             "remaining_amount": "3", "timestampms": 1494870642156}
        """
        return await self._private("order/status", {"order_id": order_id})

    async def get_active_orders(self) -> List[Dict[str, Any]]:
        """POST /v1/orders -> list of order status objects"""
        return await self._private("orders")

    async def get_past_trades(self, symbol: str, timestamp: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        POST /v1/mytrades

        Response Format:
            [{"price": "3648.09", "amount": "0.0027343246", "timestampms": 1547232911021,
              "type": "Buy", "order_id": "107317526", "tid": 107317527, ...}]
        """
        params: Dict[str, Any] = {"symbol": symbol.lower()}
        if timestamp:
            params["timestamp"] = timestamp
        return await self._private("mytrades", params)

    async def post_heartbeat(self) -> Dict[str, Any]:
        """POST /v1/heartbeat -> {"result": "ok"}"""
        return await self._private("heartbeat")
