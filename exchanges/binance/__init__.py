"""
Binance Exchange Driver

Implements ExchangeInterface for Binance spot markets.

API Documentation:
    https://binance-docs.github.io/apidocs/spot/en/

Endpoints Used:
    Public:
        - GET /api/v3/ping - Health check
        - GET /api/v3/exchangeInfo - Symbols and filters (limits)
        - GET /api/v3/depth - Order book
        - GET /api/v3/ticker/24hr - Ticker
    SIGNED:
        - GET /api/v3/account
        - POST /api/v3/order
        - DELETE /api/v3/order
        - GET /api/v3/order
        - GET /api/v3/openOrders

Limits:
    Taken from exchangeInfo filters: PRICE_FILTER tickSize (price decimal
    places), LOT_SIZE stepSize/minQty (amount decimal places, minimum amount),
    MIN_NOTIONAL/NOTIONAL minNotional (minimum total).

Order Status:
    NEW, PARTIALLY_FILLED -> ACTIVE; FILLED -> FILLED;
    CANCELED, PENDING_CANCEL, EXPIRED, REJECTED -> ABORTED
"""

from typing import Dict, Iterable, List, Optional

from core.errors import ExchangeError, FormatError, RateLimitedError, UnsupportedError, parse_float
from core.exchange_interface import ExchangeInterface
from core.limits import CurrencyLimits, PairLimits, decimal_places
from core.logging import get_logger
from core.nonce import Nonce
from core.order_status import OrderStatusNormalizer, format_decimal, to_decimal
from core.pair import CurrencyPair, CurrencyPairFormat
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

from .api_client import BinanceAPIClient

logger = get_logger(__name__)

BINANCE_STATUSES = {
    "NEW": OrderStatus.ACTIVE,
    "PARTIALLY_FILLED": OrderStatus.ACTIVE,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.ABORTED,
    "PENDING_CANCEL": OrderStatus.ABORTED,
    "EXPIRED": OrderStatus.ABORTED,
    "REJECTED": OrderStatus.ABORTED,
}


def parse_symbol_filters(filters: List[dict], exchange: str = "binance") -> PairLimits:
    """
    Build PairLimits from a symbol's exchangeInfo filters.

    Filters that are absent leave their fields at -1.
    """
    values = {}
    for item in filters or []:
        kind = item.get("filterType")
        if kind == "PRICE_FILTER" and "tickSize" in item:
            values["price_decimal_places"] = decimal_places(item["tickSize"])
        elif kind == "LOT_SIZE":
            if "stepSize" in item:
                values["amount_decimal_places"] = decimal_places(item["stepSize"])
            if "minQty" in item:
                values["min_amount"] = parse_float(item["minQty"], "minQty", exchange)
        elif kind in ("MIN_NOTIONAL", "NOTIONAL") and "minNotional" in item:
            values["min_total"] = parse_float(item["minNotional"], "minNotional", exchange)
    return PairLimits(**values)


class BinanceExchange(ExchangeInterface):
    """
    Binance Spot Exchange Driver

    Attributes:
        client: BinanceAPIClient (created in initialize())
        symbol_map: Binance symbol -> canonical pair (from exchangeInfo)
        pair_limits: Limits parsed from exchangeInfo filters
        normalizer: Binance order status vocabulary

    Notes:
        - Only LIMIT orders can be placed
        - get_orders() queries open orders per pair and reports a rate limit
          only when every pair was throttled
    """

    name = "binance"

    capabilities = {
        "ticker": True,
        "orderbook": True,
        "account_info": True,
        "trading": True,
        "order_lookup": True,
        "currency_pairs": True,
    }

    REQUEST_FORMAT = CurrencyPairFormat(delimiter="", uppercase=True)
    CONFIG_FORMAT = CurrencyPairFormat(delimiter="", uppercase=True)

    ORDERBOOK_DEPTH = 100

    def __init__(self, cache=None):
        super().__init__(cache)
        self.client: Optional[BinanceAPIClient] = None
        self.symbol_map: Dict[str, CurrencyPair] = {}
        self.pair_limits: Dict[CurrencyPair, PairLimits] = {}
        self.currency_pairs: Dict[CurrencyPair, CurrencyPairInfo] = {}
        self.last_open_orders: Dict[str, List[dict]] = {}
        self.normalizer = OrderStatusNormalizer(self.name, BINANCE_STATUSES)

    def create_nonce(self) -> Nonce:
        # Binance's "timestamp" must stay within recvWindow of server time
        return Nonce(clock=current_utc_timestamp_ms, track_clock=True)

    # ============================================
    # Lifecycle
    # ============================================

    async def initialize(self) -> None:
        """Open the HTTP session and load exchangeInfo."""
        if self.client is None:
            self.client = BinanceAPIClient(
                self.context.credentials,
                self.context.nonce,
                verbose=self.context.verbose,
            )
            await self.client.__aenter__()
        try:
            await self.refresh_exchange_info()
        except ExchangeError as e:
            logger.error(f"binance: failed to get exchange info: {e}")

    async def shutdown(self) -> None:
        if self.client:
            await self.client.__aexit__(None, None, None)
            self.client = None

    async def health_check(self) -> bool:
        try:
            await self._api().ping()
            return True
        except ExchangeError as e:
            logger.error(f"Binance health check failed: {e}")
            return False

    def _api(self) -> BinanceAPIClient:
        if self.client is None:
            raise RuntimeError("BinanceExchange not initialized. Call initialize() first.")
        return self.client

    # ============================================
    # Symbols
    # ============================================

    def format_symbol(self, pair: CurrencyPair) -> str:
        return self.context.format_currency(pair)

    def symbol_to_pair(self, symbol: str) -> CurrencyPair:
        pair = self.symbol_map.get(symbol.upper())
        if pair is not None:
            return pair
        return self.context.parse_symbol(symbol)

    async def refresh_exchange_info(self) -> None:
        """Load symbols, limits and available pairs from exchangeInfo."""
        info = await self._api().get_exchange_info()

        symbol_map: Dict[str, CurrencyPair] = {}
        limits: Dict[CurrencyPair, PairLimits] = {}
        infos: Dict[CurrencyPair, CurrencyPairInfo] = {}
        for symbol_info in info.get("symbols", []):
            try:
                pair = CurrencyPair(symbol_info["baseAsset"], symbol_info["quoteAsset"])
                symbol = symbol_info["symbol"].upper()
            except (KeyError, ValueError) as e:
                raise FormatError(f"Malformed exchangeInfo symbol: {symbol_info!r}", self.name) from e
            symbol_map[symbol] = pair
            limits[pair] = parse_symbol_filters(symbol_info.get("filters", []), self.name)
            infos[pair] = CurrencyPairInfo(pair=pair, base_name=pair.base, quote_name=pair.quote)

        self.symbol_map = symbol_map
        self.pair_limits = limits
        self.currency_pairs = infos
        self.context.update_available_currencies(infos.keys())
        logger.info(f"binance: loaded {len(infos)} symbol(s)")

    # ============================================
    # Market Data
    # ============================================

    async def update_ticker(self, pair: CurrencyPair, asset_type: str = SPOT) -> Ticker:
        asset_type = self.check_asset_type(asset_type)
        data = await self._api().get_ticker_24hr(self.format_symbol(pair))
        try:
            ticker = Ticker(
                exchange=self.name,
                pair=pair,
                asset_type=asset_type,
                ask=parse_float(data["askPrice"], "askPrice", self.name),
                bid=parse_float(data["bidPrice"], "bidPrice", self.name),
                last=parse_float(data["lastPrice"], "lastPrice", self.name),
                low=parse_float(data["lowPrice"], "lowPrice", self.name),
                high=parse_float(data["highPrice"], "highPrice", self.name),
                volume=parse_float(data["volume"], "volume", self.name),
            )
        except KeyError as e:
            raise FormatError(f"Ticker field {e} missing for {pair}", self.name) from e
        return self.store_ticker(ticker)

    async def update_orderbook(self, pair: CurrencyPair, asset_type: str = SPOT) -> OrderBook:
        asset_type = self.check_asset_type(asset_type)
        data = await self._api().get_depth(self.format_symbol(pair), limit=self.ORDERBOOK_DEPTH)
        book = OrderBook(
            exchange=self.name,
            pair=pair,
            asset_type=asset_type,
            bids=parse_levels(data.get("bids"), self.name),
            asks=parse_levels(data.get("asks"), self.name),
        )
        return self.store_orderbook(book)

    # ============================================
    # Account & Trading
    # ============================================

    async def get_account_info(self) -> AccountInfo:
        self.context.require_credentials()
        account = await self._api().get_account()

        currencies = []
        for balance in account.get("balances", []):
            free = parse_float(balance.get("free"), "free", self.name)
            locked = parse_float(balance.get("locked"), "locked", self.name)
            currencies.append(AccountCurrencyInfo(
                currency=balance.get("asset", ""),
                total_value=float(to_decimal(free) + to_decimal(locked)),
                hold=locked,
                available=free,
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
        if OrderType(order_type) != OrderType.LIMIT:
            raise UnsupportedError(f"{OrderType(order_type).value} orders", self.name)

        result = await self._api().post_order(
            symbol=self.format_symbol(pair),
            side=OrderSide(side).value.upper(),
            order_type="LIMIT",
            quantity=format_decimal(amount),
            price=format_decimal(price),
        )
        order_id = result.get("orderId")
        return str(order_id) if order_id is not None else ""

    @staticmethod
    def _order_id(order_id: str) -> int:
        try:
            return int(order_id)
        except (TypeError, ValueError) as e:
            raise FormatError(f"Invalid Binance order id: {order_id!r}", "binance") from e

    async def cancel_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> None:
        self.context.require_credentials()
        if pair is None:
            raise FormatError("Binance needs the currency pair to cancel an order", self.name)
        await self._api().delete_order(self.format_symbol(pair), self._order_id(order_id))

    def _convert_order(self, data: dict) -> Order:
        order_type = str(data.get("type", "")).lower()
        if order_type != OrderType.LIMIT.value:
            logger.warning(f"binance: unexpected '{data.get('type')}' order {data.get('orderId')}")

        return self.normalizer.build_order(
            order_id=data.get("orderId"),
            pair=self.symbol_to_pair(data.get("symbol", "")),
            side=data.get("side"),
            raw_status=data.get("status"),
            amount=parse_float(data.get("origQty"), "origQty", self.name),
            filled_amount=parse_float(data.get("executedQty"), "executedQty", self.name),
            rate=parse_float(data.get("price"), "price", self.name),
            order_type=OrderType.LIMIT if order_type == OrderType.LIMIT.value else None,
            created_at=to_utc_datetime(data["time"]) if data.get("time") else None,
        )

    async def get_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> Order:
        self.context.require_credentials()
        if pair is None:
            raise FormatError("Binance needs the currency pair to look up an order", self.name)
        data = await self._api().get_order(self.format_symbol(pair), self._order_id(order_id))
        return self._convert_order(data)

    async def get_orders(self, pairs: Optional[Iterable[CurrencyPair]] = None) -> List[Order]:
        """
        Open orders, per pair when pairs are given.

        The last successful result per symbol is remembered. A rate-limited
        symbol is answered from that memory; if every symbol was rate limited
        RateLimitedError is raised with the merged last-known orders as its
        fallback.
        """
        self.context.require_credentials()
        symbols = [self.format_symbol(p) for p in pairs or []] or [""]

        orders: List[Order] = []
        limited: List[str] = []
        for symbol in symbols:
            try:
                raw_orders = await self._api().get_open_orders(symbol or None)
            except RateLimitedError:
                limited.append(symbol or "all pairs")
                raw_orders = self.last_open_orders.get(symbol, [])
            else:
                self.last_open_orders[symbol] = raw_orders
            orders.extend(self._convert_order(o) for o in raw_orders)

        if len(limited) == len(symbols):
            raise RateLimitedError("open orders rate limited", self.name, fallback=orders)
        if limited:
            logger.warning(f"binance: open orders rate limited for {', '.join(limited)}, using last known")
        return orders

    def get_limits(self) -> CurrencyLimits:
        return CurrencyLimits(self.name, self.pair_limits)

    async def get_currency_pairs(self) -> List[CurrencyPairInfo]:
        if not self.currency_pairs:
            await self.refresh_exchange_info()
        return list(self.currency_pairs.values())
