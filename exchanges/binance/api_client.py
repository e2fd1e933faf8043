"""
Binance REST API Client

This module provides an async HTTP client for the Binance spot REST API.

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Rate Limits:
    - Weight-based system (each endpoint has a weight)
    - HTTP 429 when the limit is hit, HTTP 418 once the IP is banned
    - Both surface as RateLimitedError; no retry happens here

Authentication (SIGNED endpoints):
    The query string, including a millisecond "timestamp", is signed with
    HMAC-SHA256 (hex) and appended as "signature". The API key goes in the
    X-MBX-APIKEY header.

Usage:
    async with BinanceAPIClient(credentials, nonce) as client:
        info = await client.get_exchange_info()
        depth = await client.get_depth("ETHBTC", limit=100)
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from core.errors import ExchangeBusinessError, RateLimitedError
from core.http import RestClient
from core.nonce import Nonce
from core.signer import HEX, Credentials, RequestSigner, query_string_payload
from core.utils.time import current_utc_timestamp_ms

BINANCE_API_URL = "https://api.binance.com"

# Binance error codes meaning "too many requests"
RATE_LIMIT_CODES = (-1003, -1015)

SIGNER = RequestSigner("sha256", query_string_payload, encoding=HEX)


class BinanceAPIClient(RestClient):
    """
    Async HTTP client for the Binance spot REST API.

    Methods return Binance's decoded JSON unchanged; normalization happens in
    BinanceExchange.

    Args:
        credentials: API key/secret (only needed for SIGNED endpoints)
        nonce: Timestamp sequencer (milliseconds, tracking the clock)
        timeout: Request timeout in seconds
        verbose: Log raw responses
    """

    BASE_URL = BINANCE_API_URL

    def __init__(
        self,
        credentials: Optional[Credentials] = None,
        nonce: Optional[Nonce] = None,
        timeout: Optional[float] = None,
        verbose: bool = False,
    ):
        super().__init__("binance", timeout=timeout, verbose=verbose)
        self.credentials = credentials or Credentials()
        self.nonce = nonce or Nonce(clock=current_utc_timestamp_ms, track_clock=True)

    def check_payload(self, status: int, payload: Any) -> None:
        """Binance errors look like {"code": -1013, "msg": "Filter failure: LOT_SIZE"}"""
        if not isinstance(payload, dict) or "code" not in payload or "msg" not in payload:
            return
        code = payload["code"]
        if code in RATE_LIMIT_CODES:
            raise RateLimitedError(payload["msg"], self.exchange)
        if status >= 400 or (isinstance(code, int) and code < 0):
            raise ExchangeBusinessError(payload["msg"], self.exchange, code=code)

    # ============================================
    # Request Helpers
    # ============================================

    async def _signed(self, method: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Send a SIGNED request.

        Raises:
            CredentialsMissingError: Before any network call if keys are absent
        """
        self.credentials.require(self.exchange)

        values = {k: v for k, v in (params or {}).items() if v is not None}
        values["timestamp"] = self.nonce.next()
        query = urlencode(values)
        signed = SIGNER.sign_request(self.credentials, self.exchange, query)

        headers = {"X-MBX-APIKEY": self.credentials.api_key}
        return await self.request(
            method,
            f"{path}?{query}&signature={signed.signature}",
            headers=headers,
            log_params=False,
        )

    # ============================================
    # Public Endpoints
    # ============================================

    async def ping(self) -> Dict[str, Any]:
        """GET /api/v3/ping"""
        return await self.get("/api/v3/ping")

    async def get_exchange_info(self) -> Dict[str, Any]:
        """
        GET /api/v3/exchangeInfo

        Response Format:
            {"symbols": [{"symbol": "ETHBTC", "baseAsset": "ETH", "quoteAsset": "BTC",
                          "filters": [{"filterType": "PRICE_FILTER", "tickSize": "0.00000100"},
                                      {"filterType": "LOT_SIZE", "minQty": "0.00100000",
                                       "stepSize": "0.00100000"},
                                      {"filterType": "MIN_NOTIONAL", "minNotional": "0.00100000"}]}]}
        """
        return await self.get("/api/v3/exchangeInfo")

    async def get_depth(self, symbol: str, limit: int = 100) -> Dict[str, Any]:
        """
        GET /api/v3/depth

        Response Format:
            {"lastUpdateId": 1027024, "bids": [["4.00000000", "431.00000000"]],
             "asks": [["4.00000200", "12.00000000"]]}
        """
        return await self.get("/api/v3/depth", params={"symbol": symbol.upper(), "limit": min(limit, 5000)})

    async def get_ticker_24hr(self, symbol: str) -> Dict[str, Any]:
        """
        GET /api/v3/ticker/24hr

        Response Format:
            {"symbol": "ETHBTC", "bidPrice": "4.00000000", "askPrice": "4.00000200",
             "lastPrice": "4.00000200", "highPrice": "100.00000000",
             "lowPrice": "0.10000000", "volume": "8913.30000000", ...}
        """
        return await self.get("/api/v3/ticker/24hr", params={"symbol": symbol.upper()})

    # ============================================
    # SIGNED Endpoints
    # ============================================

    async def get_account(self) -> Dict[str, Any]:
        """GET /api/v3/account -> {"balances": [{"asset": "BTC", "free": "4723846.89", "locked": "0.0"}]}"""
        return await self._signed("GET", "/api/v3/account")

    async def post_order(
        self,
        symbol: str,
        side: str,
        order_type: str,
        quantity: str,
        price: str,
        time_in_force: str = "GTC",
    ) -> Dict[str, Any]:
        """POST /api/v3/order (ACK response) -> {"symbol": "ETHBTC", "orderId": 28, ...}"""
        return await self._signed("POST", "/api/v3/order", {
            "symbol": symbol,
            "side": side,
            "type": order_type,
            "timeInForce": time_in_force,
            "quantity": quantity,
            "price": price,
            "newOrderRespType": "ACK",
        })

    async def delete_order(self, symbol: str, order_id: int) -> Dict[str, Any]:
        """DELETE /api/v3/order"""
        return await self._signed("DELETE", "/api/v3/order", {"symbol": symbol, "orderId": order_id})

    async def get_order(self, symbol: str, order_id: int) -> Dict[str, Any]:
        """GET /api/v3/order"""
        return await self._signed("GET", "/api/v3/order", {"symbol": symbol, "orderId": order_id})

    async def get_open_orders(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        GET /api/v3/openOrders (all symbols when symbol is None)

        Response Format:
            [{"symbol": "LTCBTC", "orderId": 1, "price": "0.1", "origQty": "1.0",
              "executedQty": "0.0", "status": "NEW", "type": "LIMIT", "side": "BUY",
              "time": 1499827319559}]
        """
        return await self._signed("GET", "/api/v3/openOrders", {"symbol": symbol})
