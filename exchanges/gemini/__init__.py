"""
Gemini Exchange Driver

Implements ExchangeInterface for Gemini spot markets.

API Documentation:
    https://docs.gemini.com/rest-api/

Endpoints Used:
    Public:
        - GET /v1/symbols - Listed symbols
        - GET /v1/pubticker/:symbol - Ticker
        - GET /v1/book/:symbol - Order book
    Private:
        - POST /v1/balances
        - POST /v1/order/new
        - POST /v1/order/cancel
        - POST /v1/order/status
        - POST /v1/orders
        - POST /v1/mytrades
        - POST /v1/heartbeat

Limits:
    Gemini publishes its minimums as a documentation table, not through the
    API, so GEMINI_LIMITS is static.

Order Status:
    Reported as flags: is_live -> ACTIVE; is_cancelled -> ABORTED; neither
    -> FILLED
"""

from typing import Dict, Iterable, List, Optional

from core.errors import ExchangeError, FormatError, UnsupportedError, parse_float
from core.exchange_interface import ExchangeInterface
from core.limits import CurrencyLimits, PairLimits
from core.logging import get_logger
from core.nonce import Nonce
from core.order_status import OrderStatusNormalizer, format_decimal, to_decimal
from core.pair import CurrencyPair, CurrencyPairFormat, parse_pair
from core.schemas import (
    SPOT,
    AccountCurrencyInfo,
    AccountInfo,
    CurrencyPairInfo,
    Order,
    OrderBook,
    OrderSide,
    OrderStatus,
    OrderType,
    Ticker,
    parse_levels,
)
from core.utils.time import current_utc_timestamp_ms, to_utc_datetime

from .api_client import GEMINI_API_URL, GEMINI_SANDBOX_API_URL, GeminiAPIClient
from .sessions import ROLE_FUND_MANAGER, ROLE_TRADER, GeminiSessionRegistry

logger = get_logger(__name__)

GEMINI_STATUSES = {
    "live": OrderStatus.ACTIVE,
    "cancelled": OrderStatus.ABORTED,
    "closed": OrderStatus.FILLED,
}

# https://docs.gemini.com/rest-api/#symbols-and-minimums
GEMINI_LIMITS: Dict[CurrencyPair, PairLimits] = {
    CurrencyPair("BTC", "USD"): PairLimits(price_decimal_places=2, amount_decimal_places=8, min_amount=0.00001),
    CurrencyPair("ETH", "USD"): PairLimits(price_decimal_places=2, amount_decimal_places=6, min_amount=0.001),
    CurrencyPair("ETH", "BTC"): PairLimits(price_decimal_places=5, amount_decimal_places=6, min_amount=0.001),
}

GEMINI_CURRENCY_PAIRS: List[CurrencyPairInfo] = [
    CurrencyPairInfo(pair=CurrencyPair("BTC", "USD"), base_name="Bitcoin", quote_name="US Dollar"),
    CurrencyPairInfo(pair=CurrencyPair("ETH", "USD"), base_name="Ether", quote_name="US Dollar"),
    CurrencyPairInfo(pair=CurrencyPair("ETH", "BTC"), base_name="Ether", quote_name="Bitcoin"),
]


def order_state(data: dict) -> str:
    """Collapse Gemini's is_live/is_cancelled flags into one raw status."""
    if data.get("is_live"):
        return "live"
    if data.get("is_cancelled"):
        return "cancelled"
    return "closed"


def _levels(entries) -> List[list]:
    # Gemini levels are objects: {"price": "...", "amount": "...", "timestamp": "..."}
    try:
        return [[e["price"], e["amount"]] for e in entries or []]
    except (KeyError, TypeError) as e:
        raise FormatError(f"Malformed Gemini order book level: {e}", "gemini") from e


class GeminiExchange(ExchangeInterface):
    """
    Gemini Exchange Driver

    Attributes:
        client: GeminiAPIClient (created in initialize())
        role: Role of the API key ("trader" or "fundmanager")
        requires_heartbeat: The key was created with "require heartbeat"

    Notes:
        - Only limit orders ("exchange limit") can be placed
        - Trading needs a key with the trader role
    """

    name = "gemini"

    capabilities = {
        "ticker": True,
        "orderbook": True,
        "account_info": True,
        "trading": True,
        "order_lookup": True,
        "currency_pairs": True,
    }

    REQUEST_FORMAT = CurrencyPairFormat(delimiter="", uppercase=False)
    CONFIG_FORMAT = CurrencyPairFormat(delimiter="", uppercase=True)

    def __init__(self, cache=None):
        super().__init__(cache)
        self.client: Optional[GeminiAPIClient] = None
        self.role = ROLE_TRADER
        self.requires_heartbeat = False
        self.normalizer = OrderStatusNormalizer(self.name, GEMINI_STATUSES, include_defaults=False)

    def create_nonce(self) -> Nonce:
        return Nonce(clock=current_utc_timestamp_ms, track_clock=True)

    # ============================================
    # Lifecycle
    # ============================================

    async def initialize(self) -> None:
        if self.client is None:
            self.client = GeminiAPIClient(
                self.context.credentials,
                self.context.nonce,
                sandbox=self.context.use_sandbox,
                verbose=self.context.verbose,
            )
            await self.client.__aenter__()
        try:
            await self.refresh_exchange_info()
        except ExchangeError as e:
            logger.error(f"gemini: failed to get symbols: {e}")

    def bind_client(self) -> None:
        super().bind_client()
        if self.client is not None:
            self.client.base_url = GEMINI_SANDBOX_API_URL if self.context.use_sandbox else GEMINI_API_URL

    async def shutdown(self) -> None:
        if self.client:
            await self.client.__aexit__(None, None, None)
            self.client = None

    async def health_check(self) -> bool:
        try:
            await self._api().get_symbols()
            return True
        except ExchangeError as e:
            logger.error(f"Gemini health check failed: {e}")
            return False

    def _api(self) -> GeminiAPIClient:
        if self.client is None:
            raise RuntimeError("GeminiExchange not initialized. Call initialize() first.")
        return self.client

    # ============================================
    # Sessions
    # ============================================

    def is_correct_session(self, role: str) -> bool:
        return self.role == role

    def require_role(self, role: str) -> None:
        """
        Raises:
            ExchangeError: If the API key was created with another role
        """
        if not self.is_correct_session(role):
            raise ExchangeError(f"API key role '{self.role}' cannot be used for this operation (needs '{role}')", self.name)

    async def post_heartbeat(self) -> bool:
        """Keep a heartbeat-enabled session alive. Returns True on "ok"."""
        self.context.require_credentials()
        result = await self._api().post_heartbeat()
        return isinstance(result, dict) and result.get("result") == "ok"

    # ============================================
    # Symbols
    # ============================================

    def format_symbol(self, pair: CurrencyPair) -> str:
        return self.context.format_currency(pair)

    def symbol_to_pair(self, symbol: str) -> CurrencyPair:
        """Gemini symbol ("ethbtc") -> canonical pair, split with the known currency codes."""
        known = {code for info in GEMINI_CURRENCY_PAIRS for code in (info.pair.base, info.pair.quote)}
        known |= self.context.known_currencies()
        try:
            return parse_pair(symbol, known_currencies=known)
        except FormatError:
            # listed symbols are three plus three letters
            if len(symbol.strip()) != 6:
                raise
            return parse_pair(symbol)

    async def refresh_exchange_info(self) -> None:
        """Load the listed symbols into the available pairs."""
        symbols = await self._api().get_symbols()

        pairs = []
        for symbol in symbols:
            try:
                pairs.append(self.symbol_to_pair(symbol))
            except FormatError:
                logger.debug(f"gemini: skipping symbol {symbol}")
        self.context.update_available_currencies(pairs)

    # ============================================
    # Market Data
    # ============================================

    async def update_ticker(self, pair: CurrencyPair, asset_type: str = SPOT) -> Ticker:
        asset_type = self.check_asset_type(asset_type)
        data = await self._api().get_ticker(self.format_symbol(pair))
        try:
            volume = data.get("volume") or {}
            ticker = Ticker(
                exchange=self.name,
                pair=pair,
                asset_type=asset_type,
                ask=parse_float(data["ask"], "ask", self.name),
                bid=parse_float(data["bid"], "bid", self.name),
                last=parse_float(data["last"], "last", self.name),
                volume=parse_float(volume[pair.base], "volume", self.name) if pair.base in volume else 0.0,
            )
        except KeyError as e:
            raise FormatError(f"Ticker field {e} missing for {pair}", self.name) from e
        return self.store_ticker(ticker)

    async def update_orderbook(self, pair: CurrencyPair, asset_type: str = SPOT) -> OrderBook:
        asset_type = self.check_asset_type(asset_type)
        data = await self._api().get_orderbook(self.format_symbol(pair))
        book = OrderBook(
            exchange=self.name,
            pair=pair,
            asset_type=asset_type,
            bids=parse_levels(_levels(data.get("bids")), self.name),
            asks=parse_levels(_levels(data.get("asks")), self.name),
        )
        return self.store_orderbook(book)

    # ============================================
    # Account & Trading
    # ============================================

    async def get_account_info(self) -> AccountInfo:
        """Balances; hold is amount minus available."""
        self.context.require_credentials()
        balances = await self._api().get_balances()

        currencies = []
        for balance in balances:
            amount = parse_float(balance.get("amount"), "amount", self.name)
            available = parse_float(balance.get("available"), "available", self.name)
            currencies.append(AccountCurrencyInfo(
                currency=balance.get("currency", ""),
                total_value=amount,
                hold=float(to_decimal(amount) - to_decimal(available)),
                available=available,
            ))
        return AccountInfo(exchange=self.name, currencies=currencies)

    async def new_order(
        self,
        pair: CurrencyPair,
        amount: float,
        price: float,
        side: OrderSide,
        order_type: OrderType = OrderType.LIMIT,
    ) -> str:
        self.context.require_credentials()
        self.require_role(ROLE_TRADER)
        if OrderType(order_type) != OrderType.LIMIT:
            raise UnsupportedError(f"{OrderType(order_type).value} orders", self.name)

        result = await self._api().new_order(
            self.format_symbol(pair),
            format_decimal(amount),
            format_decimal(price),
            OrderSide(side).value,
        )
        order_id = result.get("order_id")
        return str(order_id) if order_id is not None else ""

    @staticmethod
    def _order_id(order_id: str) -> int:
        try:
            return int(order_id)
        except (TypeError, ValueError) as e:
            raise FormatError(f"Invalid Gemini order id: {order_id!r}", "gemini") from e

    async def cancel_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> None:
        self.context.require_credentials()
        self.require_role(ROLE_TRADER)
        await self._api().cancel_order(self._order_id(order_id))

    def _convert_order(self, data: dict) -> Order:
        created = data.get("timestampms") or data.get("timestamp")
        return self.normalizer.build_order(
            order_id=data.get("order_id"),
            pair=self.symbol_to_pair(data.get("symbol", "")),
            side=data.get("side"),
            raw_status=order_state(data),
            amount=parse_float(data.get("original_amount"), "original_amount", self.name),
            filled_amount=parse_float(data.get("executed_amount", 0), "executed_amount", self.name),
            rate=parse_float(data.get("price", 0), "price", self.name),
            order_type=OrderType.LIMIT if "limit" in str(data.get("type", "")) else None,
            created_at=to_utc_datetime(created) if created else None,
            remaining=parse_float(data.get("remaining_amount", 0), "remaining_amount", self.name),
        )

    async def get_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> Order:
        """Any order of the account, including cancelled ones."""
        self.context.require_credentials()
        data = await self._api().get_order_status(self._order_id(order_id))
        return self._convert_order(data)

    async def get_orders(self, pairs: Optional[Iterable[CurrencyPair]] = None) -> List[Order]:
        self.context.require_credentials()
        raw_orders = await self._api().get_active_orders()

        wanted = set(pairs) if pairs else None
        orders = []
        for data in raw_orders:
            order = self._convert_order(data)
            if wanted is None or order.pair in wanted:
                orders.append(order)
        return orders

    async def get_trade_history(self, pair: CurrencyPair, since: Optional[int] = None) -> List[Order]:
        """
        Past trades of a pair as filled orders (one per trade).

        Cancelled orders never appear here.

        Args:
            pair: Currency pair
            since: Only trades at or after this timestamp (seconds or ms)
        """
        self.context.require_credentials()
        trades = await self._api().get_past_trades(self.format_symbol(pair), since)

        orders = []
        for trade in trades:
            amount = parse_float(trade.get("amount"), "amount", self.name)
            created = trade.get("timestampms") or trade.get("timestamp")
            orders.append(self.normalizer.build_order(
                order_id=trade.get("order_id"),
                pair=pair,
                side=trade.get("type"),
                raw_status="closed",
                amount=amount,
                filled_amount=amount,
                rate=parse_float(trade.get("price"), "price", self.name),
                created_at=to_utc_datetime(created) if created else None,
                remaining=0.0,
            ))
        return orders

    def get_limits(self) -> CurrencyLimits:
        return CurrencyLimits(self.name, GEMINI_LIMITS)

    async def get_currency_pairs(self) -> List[CurrencyPairInfo]:
        return list(GEMINI_CURRENCY_PAIRS)


__all__ = [
    "GeminiExchange",
    "GeminiSessionRegistry",
    "GEMINI_LIMITS",
    "ROLE_TRADER",
    "ROLE_FUND_MANAGER",
]
