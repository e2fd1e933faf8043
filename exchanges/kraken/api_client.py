"""
Kraken REST API Client

Async client for Kraken's public and private REST API.

API Documentation:
    https://docs.kraken.com/rest/

Authentication:
    Private calls are POSTed to /0/private/<Method> with a form body that
    includes a strictly increasing nonce. The signature is

        base64(HMAC-SHA512(base64decode(secret), path + SHA256(nonce + body)))

    sent in the API-Sign header next to API-Key.

Errors:
    Kraken answers HTTP 200 with {"error": [...], "result": {...}}. A non-empty
    error list is raised as ExchangeBusinessError, or RateLimitedError for
    "Rate limit exceeded" style messages.

Usage:
    async with KrakenAPIClient(credentials, nonce) as client:
        pairs = await client.get_asset_pairs()
        depth = await client.get_depth("XBTUSD")
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

from core.errors import ExchangeBusinessError, RateLimitedError
from core.http import RestClient
from core.nonce import Nonce
from core.signer import BASE64, Credentials, RequestSigner, base64_secret, path_hashed_payload

KRAKEN_API_URL = "https://api.kraken.com"
KRAKEN_API_VERSION = "0"

RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "throttled")

SIGNER = RequestSigner("sha512", path_hashed_payload, encoding=BASE64, secret_decoder=base64_secret)


def encode_values(values: Dict[str, Any]) -> str:
    """URL-encode form values sorted by key."""
    return urlencode(sorted(values.items()))


class KrakenAPIClient(RestClient):
    """
    Async HTTP client for the Kraken REST API.

    Public methods return the "result" member of Kraken's response envelope.

    Args:
        credentials: API key/secret (only needed for private methods)
        nonce: Nonce sequencer bound to the credentials
        timeout: Request timeout in seconds
        verbose: Log raw responses
    """

    BASE_URL = KRAKEN_API_URL

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        nonce: Optional[Nonce] = None,
        timeout: Optional[float] = None,
        verbose: bool = False,
    ):
        super().__init__("kraken", timeout=timeout, verbose=verbose)
        self.credentials = credentials or Credentials()
        self.nonce = nonce or Nonce()

    def check_payload(self, status: int, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        errors = payload.get("error") or []
        if not errors:
            return
        message = "; ".join(str(e) for e in errors)
        if any(marker in message.lower() for marker in RATE_LIMIT_MARKERS):
            raise RateLimitedError(message, self.exchange)
        raise ExchangeBusinessError(message, self.exchange, code=str(errors[0]).split(":")[0])

    # ============================================
    # Request Helpers
    # ============================================

    async def _public(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        path = f"/{KRAKEN_API_VERSION}/public/{method}"
        response = await self.get(path, params=params)
        return response.get("result", {}) if isinstance(response, dict) else response

    async def _private(self, method: str, values: Optional[Dict[str, Any]] = None) -> Any:
        """
        Signed POST to /0/private/<method>.

        Raises:
            CredentialsMissingError: Before any network call if keys are absent
        """
        self.credentials.require(self.exchange)
        path = f"/{KRAKEN_API_VERSION}/private/{method}"

        values = dict(values or {})
        values["nonce"] = str(self.nonce.next())
        body = encode_values(values)
        signed = SIGNER.sign_request(self.credentials, self.exchange, path, values["nonce"], body)

        headers = {
            "API-Key": self.credentials.api_key,
            "API-Sign": signed.signature,
            "Content-Type": "application/x-www-form-urlencoded",
        }
        response = await self.post(path, data=body, headers=headers, log_params=False)
        return response.get("result", {}) if isinstance(response, dict) else response

    # ============================================
    # Public Endpoints
    # ============================================

    async def get_server_time(self) -> Dict[str, Any]:
        """GET /0/public/Time"""
        return await self._public("Time")

    async def get_asset_pairs(self) -> Dict[str, Any]:
        """
        GET /0/public/AssetPairs

        Response Format:
            {"XETHZUSD": {"altname": "ETHUSD", "base": "XETH", "quote": "ZUSD",
                          "pair_decimals": 2, "lot_decimals": 8,
                          "ordermin": "0.01", "costmin": "0.5"}, ...}
        """
        return await self._public("AssetPairs")

    async def get_ticker(self, symbols: str) -> Dict[str, Any]:
        """
        GET /0/public/Ticker?pair=<comma separated symbols>

        Response Format:
            {"XETHZUSD": {"a": ["ask", "whole lot", "lot"], "b": [...],
                          "c": ["last", "lot"], "v": ["today", "24h"],
                          "l": ["today", "24h"], "h": ["today", "24h"], ...}}
        """
        return await self._public("Ticker", {"pair": symbols})

    async def get_depth(self, symbol: str, count: Optional[int] = None) -> Dict[str, Any]:
        """
        GET /0/public/Depth?pair=<symbol>

        Response Format:
            {"XETHZUSD": {"asks": [["price", "volume", timestamp], ...],
                          "bids": [...]}}
        """
        params: Dict[str, Any] = {"pair": symbol}
        if count is not None:
            params["count"] = count
        return await self._public("Depth", params)

    # ============================================
    # Private Endpoints
    # ============================================

    async def get_balance(self) -> Dict[str, str]:
        """POST /0/private/Balance -> {"ZUSD": "171.61", "XXBT": "0.0011", ...}"""
        return await self._private("Balance")

    async def add_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        volume: str,
        price: Optional[str] = None,
    ) -> Dict[str, Any]:
        """POST /0/private/AddOrder -> {"descr": {...}, "txid": ["OAVY7T-MV5VK-KHDF5X"]}"""
        values = {"pair": symbol, "type": side, "ordertype": order_type, "volume": volume}
        if price is not None:
            values["price"] = price
        return await self._private("AddOrder", values)

    async def cancel_order(self, txid: str) -> Dict[str, Any]:
        """POST /0/private/CancelOrder -> {"count": 1}"""
        return await self._private("CancelOrder", {"txid": txid})

    async def get_open_orders(self) -> Dict[str, Any]:
        """POST /0/private/OpenOrders -> {"open": {"<txid>": {...}}}"""
        return await self._private("OpenOrders")

    async def query_orders(self, txid: str) -> Dict[str, Any]:
        """POST /0/private/QueryOrders -> {"<txid>": {...}}"""
        return await self._private("QueryOrders", {"txid": txid})
