"""
Liqui Exchange Driver

Implements ExchangeInterface for Liqui spot markets.

Endpoints Used:
    Public:
        - GET /api/3/info - Pairs and limits
        - GET /api/3/ticker/:pairs - Tickers (several pairs per request)
        - GET /api/3/depth/:pair - Order book
    Trade API (POST /tapi):
        - getInfo, Trade, ActiveOrders, OrderInfo, CancelOrder

Symbols:
    Requests use lower case with "_" ("eth_btc") and join several pairs
    with "-" ("eth_btc-ltc_btc").

Order Status:
    0 -> ACTIVE; 1 -> FILLED; 2 (cancelled), 3 (cancelled after a partial
    fill) -> ABORTED
"""

from typing import Dict, Iterable, List, Optional

from core.errors import ExchangeError, FormatError, UnsupportedError, parse_float
from core.exchange_interface import ExchangeInterface
from core.limits import CurrencyLimits, PairLimits
from core.logging import get_logger
from core.nonce import Nonce
from core.order_status import OrderStatusNormalizer, format_decimal, remaining_amount
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
from core.utils.time import current_utc_timestamp, to_utc_datetime

from .api_client import LiquiAPIClient

logger = get_logger(__name__)

LIQUI_STATUSES = {
    "0": OrderStatus.ACTIVE,
    "1": OrderStatus.FILLED,
    "2": OrderStatus.ABORTED,
    "3": OrderStatus.ABORTED,
}


class LiquiExchange(ExchangeInterface):
    """
    Liqui Exchange Driver

    Attributes:
        client: LiquiAPIClient (created in initialize())
        pair_limits: Limits loaded from /info
        normalizer: Liqui numeric status vocabulary

    Notes:
        - Only limit orders can be placed
        - new_order() returns "" when the order was filled immediately
    """

    name = "liqui"

    capabilities = {
        "ticker": True,
        "orderbook": True,
        "account_info": True,
        "trading": True,
        "order_lookup": True,
        "currency_pairs": True,
    }

    REQUEST_FORMAT = CurrencyPairFormat(delimiter="_", uppercase=False, separator="-")
    CONFIG_FORMAT = CurrencyPairFormat(delimiter="_", uppercase=True)

    def __init__(self, cache=None):
        super().__init__(cache)
        self.client: Optional[LiquiAPIClient] = None
        self.pair_limits: Dict[CurrencyPair, PairLimits] = {}
        self.currency_pairs: Dict[CurrencyPair, CurrencyPairInfo] = {}
        self.normalizer = OrderStatusNormalizer(self.name, LIQUI_STATUSES, include_defaults=False)

    def create_nonce(self) -> Nonce:
        # the trade API nonce is a 32-bit integer
        return Nonce(clock=current_utc_timestamp)

    # ============================================
    # Lifecycle
    # ============================================

    async def initialize(self) -> None:
        if self.client is None:
            self.client = LiquiAPIClient(
                self.context.credentials,
                self.context.nonce,
                verbose=self.context.verbose,
            )
            await self.client.__aenter__()
        try:
            await self.refresh_exchange_info()
        except ExchangeError as e:
            logger.error(f"liqui: unable to fetch info: {e}")

    async def shutdown(self) -> None:
        if self.client:
            await self.client.__aexit__(None, None, None)
            self.client = None

    async def health_check(self) -> bool:
        try:
            await self._api().get_info()
            return True
        except ExchangeError as e:
            logger.error(f"Liqui health check failed: {e}")
            return False

    def _api(self) -> LiquiAPIClient:
        if self.client is None:
            raise RuntimeError("LiquiExchange not initialized. Call initialize() first.")
        return self.client

    # ============================================
    # Symbols
    # ============================================

    def format_symbol(self, pair: CurrencyPair) -> str:
        return self.context.format_currency(pair)

    def symbol_to_pair(self, symbol: str) -> CurrencyPair:
        return self.context.parse_symbol(symbol)

    async def refresh_exchange_info(self) -> None:
        """Load pairs and limits from /info. Hidden pairs are skipped."""
        info = await self._api().get_info()

        limits: Dict[CurrencyPair, PairLimits] = {}
        infos: Dict[CurrencyPair, CurrencyPairInfo] = {}
        for symbol, data in (info.get("pairs") or {}).items():
            if data.get("hidden"):
                continue
            pair = self.symbol_to_pair(symbol)
            limits[pair] = PairLimits(
                price_decimal_places=int(data.get("decimal_places", -1)),
                min_amount=parse_float(data.get("min_amount", -1), "min_amount", self.name),
                min_total=parse_float(data.get("min_total", -1), "min_total", self.name),
            )
            infos[pair] = CurrencyPairInfo(pair=pair, base_name=pair.base, quote_name=pair.quote)

        self.pair_limits = limits
        self.currency_pairs = infos
        self.context.update_available_currencies(infos.keys())
        logger.info(f"liqui: loaded {len(infos)} pair(s)")

    # ============================================
    # Market Data
    # ============================================

    def _build_ticker(self, pair: CurrencyPair, asset_type: str, data: dict) -> Ticker:
        try:
            return Ticker(
                exchange=self.name,
                pair=pair,
                asset_type=asset_type,
                ask=parse_float(data["sell"], "sell", self.name),
                bid=parse_float(data["buy"], "buy", self.name),
                last=parse_float(data["last"], "last", self.name),
                low=parse_float(data["low"], "low", self.name),
                high=parse_float(data["high"], "high", self.name),
                volume=parse_float(data["vol_cur"], "vol_cur", self.name),
            )
        except (KeyError, TypeError) as e:
            raise FormatError(f"Malformed ticker for {pair}: {e}", self.name) from e

    async def update_ticker(self, pair: CurrencyPair, asset_type: str = SPOT) -> Ticker:
        tickers = await self.update_tickers([pair], asset_type)
        for ticker in tickers:
            if ticker.pair == pair:
                return ticker
        raise FormatError(f"Ticker for {pair} missing from response", self.name)

    async def update_tickers(
        self,
        pairs: Optional[Iterable[CurrencyPair]] = None,
        asset_type: str = SPOT,
    ) -> List[Ticker]:
        """Refresh several tickers with one request."""
        asset_type = self.check_asset_type(asset_type)
        pairs = list(pairs) if pairs is not None else list(self.enabled_pairs)
        if not pairs:
            return []

        result = await self._api().get_ticker(self.context.format_currencies(pairs))

        tickers = []
        for pair in pairs:
            data = result.get(self.format_symbol(pair))
            if data is None:
                logger.warning(f"liqui: no ticker returned for {pair}")
                continue
            tickers.append(self.store_ticker(self._build_ticker(pair, asset_type, data)))
        return tickers

    async def update_orderbook(self, pair: CurrencyPair, asset_type: str = SPOT) -> OrderBook:
        asset_type = self.check_asset_type(asset_type)
        symbol = self.format_symbol(pair)
        result = await self._api().get_depth(symbol)
        data = result.get(symbol)
        if data is None:
            raise FormatError(f"Order book for {pair} missing from response", self.name)

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
        """Liqui reports available funds only: total equals available, hold is 0."""
        self.context.require_credentials()
        info = await self._api().get_account_info()

        currencies = []
        for currency, amount in (info.get("funds") or {}).items():
            available = parse_float(amount, currency, self.name)
            currencies.append(AccountCurrencyInfo(
                currency=currency,
                total_value=available,
                hold=0.0,
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
        if OrderType(order_type) != OrderType.LIMIT:
            raise UnsupportedError(f"{OrderType(order_type).value} orders", self.name)

        result = await self._api().trade(
            self.format_symbol(pair),
            OrderSide(side).value,
            format_decimal(price),
            format_decimal(amount),
        )
        order_id = result.get("order_id")
        # order_id 0 means the order was filled as soon as it was placed
        if not order_id:
            return ""
        return str(order_id)

    async def cancel_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> None:
        self.context.require_credentials()
        await self._api().cancel_order(order_id)

    def _convert_order(self, order_id: str, data: dict) -> Order:
        """
        ActiveOrders reports only the remaining "amount"; OrderInfo also has
        "start_amount".
        """
        remaining = parse_float(data.get("amount"), "amount", self.name)
        start = data.get("start_amount")
        amount = parse_float(start, "start_amount", self.name) if start is not None else remaining
        created = data.get("timestamp_created")

        return self.normalizer.build_order(
            order_id=order_id,
            pair=self.symbol_to_pair(data.get("pair", "")),
            side=data.get("type"),
            raw_status=data.get("status"),
            amount=amount,
            filled_amount=remaining_amount(amount, remaining),
            rate=parse_float(data.get("rate", 0), "rate", self.name),
            order_type=OrderType.LIMIT,
            created_at=to_utc_datetime(created) if created else None,
            remaining=remaining,
        )

    async def get_orders(self, pairs: Optional[Iterable[CurrencyPair]] = None) -> List[Order]:
        self.context.require_credentials()
        result = await self._api().get_active_orders()

        wanted = set(pairs) if pairs else None
        orders = []
        for order_id, data in result.items():
            order = self._convert_order(order_id, data)
            if wanted is None or order.pair in wanted:
                orders.append(order)
        return orders

    async def get_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> Order:
        self.context.require_credentials()
        result = await self._api().get_order_info(order_id)
        data = result.get(str(order_id))
        if data is None:
            raise FormatError(f"Order {order_id} missing from response", self.name)
        return self._convert_order(str(order_id), data)

    def get_limits(self) -> CurrencyLimits:
        return CurrencyLimits(self.name, self.pair_limits)

    async def get_currency_pairs(self) -> List[CurrencyPairInfo]:
        if not self.currency_pairs:
            await self.refresh_exchange_info()
        return list(self.currency_pairs.values())
