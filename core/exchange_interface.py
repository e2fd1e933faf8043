"""
Exchange Interface: Abstract Contract for All Exchanges

This module defines the abstract base class that all exchange drivers must implement.
By enforcing a consistent interface, we ensure:
- A trading program talks to every exchange with the same calls
- Exchange-specific spelling, signing and status vocabulary stay inside the driver
- Capability gaps raise UnsupportedError instead of crashing the process

Design Philosophy:
    "Program to an interface, not an implementation"

    Callers work with ExchangeInterface, never with a concrete driver, and only
    ever see canonical values: CurrencyPair, OrderBook, Ticker, Order,
    AccountInfo and CurrencyLimits.

Example:
    class KrakenExchange(ExchangeInterface):
        name = "kraken"

        async def update_orderbook(self, pair, asset_type=SPOT):
            raw = await self.client.get_depth(self.format_symbol(pair))
            return self.store_orderbook(OrderBook(...))

    exchange = manager.get_exchange("kraken")
    book = await exchange.refresh_orderbook(CurrencyPair("ETH", "USD"))

Caching:
    update_ticker()/update_orderbook() always hit the exchange and write the
    result into the shared MarketDataCache through store_ticker()/
    store_orderbook(), the only write path. get_ticker()/get_orderbook() read
    the cache and fetch on a miss. refresh_ticker()/refresh_orderbook() fetch
    but fall back to the cached snapshot when rate limited.

Capabilities System:
    Each exchange declares which features it supports via the `capabilities` dict.

    Example:
        capabilities = {
            "ticker": True,
            "orderbook": True,
            "trading": True,
            "order_lookup": False,   # get_order() raises UnsupportedError
            "currency_pairs": True,
        }
"""

from abc import ABC, abstractmethod
from typing import ClassVar, Dict, Iterable, List, Optional

from core.cache import MarketDataCache
from core.config import ExchangeConfig
from core.errors import RateLimitedError, UnsupportedError
from core.exchange_base import ExchangeContext
from core.limits import CurrencyLimits
from core.logging import get_logger
from core.nonce import Nonce
from core.pair import CurrencyPair, CurrencyPairFormat
from core.schemas import (
    SPOT,
    AccountInfo,
    CurrencyPairInfo,
    Order,
    OrderBook,
    OrderSide,
    OrderType,
    Ticker,
)

logger = get_logger(__name__)


class ExchangeInterface(ABC):
    """
    Abstract Base Class for Exchange Drivers

    All exchange implementations (Kraken, Binance, Gemini, Liqui) must inherit
    from this class and implement all abstract methods.

    Class Attributes:
        name: Unique identifier for the exchange (lowercase, e.g., "kraken")
        capabilities: Dictionary indicating which features this exchange supports
        REQUEST_FORMAT: Pair format of outbound requests
        CONFIG_FORMAT: Pair format of persisted configuration
        ASSET_TYPES: Asset types the exchange trades

    Abstract Methods (MUST be implemented by all exchanges):
        - update_ticker: Fetch a ticker and store it in the cache
        - update_orderbook: Fetch an order book and store it in the cache
        - get_account_info: Balances per currency
        - new_order: Submit an order, return its id
        - cancel_order: Cancel an order by id
        - get_orders: Open orders with canonical status
        - get_limits: Per-pair precision and minimum constraints

    Optional Methods (can be overridden):
        - update_tickers: Batched ticker refresh
        - get_order: Look up a single order
        - get_currency_pairs: Pairs listed by the exchange
        - initialize / shutdown / health_check: Lifecycle
    """

    # ============================================
    # Class Attributes (must be set by subclasses)
    # ============================================

    name: ClassVar[str]
    """Unique exchange identifier (lowercase). Example: "kraken", "gemini" """

    capabilities: ClassVar[Dict[str, bool]] = {
        "ticker": False,
        "orderbook": False,
        "account_info": False,
        "trading": False,
        "order_lookup": False,
        "currency_pairs": False,
    }
    """Dictionary indicating which features this exchange supports"""

    REQUEST_FORMAT: ClassVar[CurrencyPairFormat] = CurrencyPairFormat()
    CONFIG_FORMAT: ClassVar[CurrencyPairFormat] = CurrencyPairFormat()
    ASSET_TYPES: ClassVar[tuple] = (SPOT,)

    def __init__(self, cache: Optional[MarketDataCache] = None):
        self.context = ExchangeContext(
            name=self.name,
            request_format=self.REQUEST_FORMAT,
            config_format=self.CONFIG_FORMAT,
            nonce=self.create_nonce(),
            cache=cache,
            asset_types=self.ASSET_TYPES,
        )

    def create_nonce(self) -> Nonce:
        """Nonce sequencer for this exchange's credentials (nanosecond clock by default)."""
        return Nonce()

    # ============================================
    # Context Shortcuts
    # ============================================

    @property
    def cache(self) -> MarketDataCache:
        return self.context.cache

    @property
    def enabled(self) -> bool:
        return self.context.enabled

    @property
    def enabled_pairs(self) -> List[CurrencyPair]:
        return self.context.enabled_pairs

    @property
    def polling_delay(self) -> float:
        return self.context.polling_delay

    def setup(self, config: ExchangeConfig) -> None:
        """
        Apply configuration (keys, flags, pairs, formats).

        Raises:
            FormatError: If a configured pair or format is malformed
        """
        self.context.setup(config)
        self.bind_client()

    def bind_client(self) -> None:
        """Point an already created API client at the context's current credentials."""
        client = getattr(self, "client", None)
        if client is not None:
            client.credentials = self.context.credentials

    def check_asset_type(self, asset_type: str) -> str:
        """
        Normalize an asset type and ensure the exchange trades it.

        Raises:
            UnsupportedError: For asset types the exchange doesn't trade
        """
        asset_type = asset_type.upper()
        if not self.context.supports_asset_type(asset_type):
            raise UnsupportedError(f"asset type {asset_type}", self.name)
        return asset_type

    # ============================================
    # Market Data (abstract)
    # ============================================

    @abstractmethod
    async def update_ticker(self, pair: CurrencyPair, asset_type: str = SPOT) -> Ticker:
        """
        Fetch the latest ticker from the exchange and store it in the cache.

        Args:
            pair: Canonical currency pair
            asset_type: Asset type (default SPOT)

        Returns:
            Ticker: The stored snapshot

        Raises:
            RateLimitedError: Throttled by the exchange (cache is left untouched)
            TransportError: Network or HTTP failure
            FormatError: Malformed response
        """
        ...

    @abstractmethod
    async def update_orderbook(self, pair: CurrencyPair, asset_type: str = SPOT) -> OrderBook:
        """
        Fetch the latest order book from the exchange and store it in the cache.

        Returns:
            OrderBook: bids sorted descending, asks ascending

        Raises:
            RateLimitedError: Throttled by the exchange (cache is left untouched)
            TransportError: Network or HTTP failure
            FormatError: Malformed response
        """
        ...

    # ============================================
    # Account & Trading (abstract)
    # ============================================

    @abstractmethod
    async def get_account_info(self) -> AccountInfo:
        """
        Balances of the authenticated account.

        Raises:
            CredentialsMissingError: Before any network call if keys are absent
        """
        ...

    @abstractmethod
    async def new_order(
        self,
        pair: CurrencyPair,
        amount: float,
        price: float,
        side: OrderSide,
        order_type: OrderType = OrderType.LIMIT,
    ) -> str:
        """
        Submit an order.

        Returns:
            str: Exchange order id ("" when the order was filled immediately
                 and the exchange reports no id)

        Raises:
            CredentialsMissingError: Before any network call if keys are absent
            UnsupportedError: Order type not supported by the exchange
            ExchangeBusinessError: Rejected by the exchange (insufficient funds, ...)
        """
        ...

    @abstractmethod
    async def cancel_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> None:
        """
        Cancel an order.

        Args:
            order_id: Exchange order id
            pair: Pair of the order (required by exchanges that key orders by pair)
        """
        ...

    @abstractmethod
    async def get_orders(self, pairs: Optional[Iterable[CurrencyPair]] = None) -> List[Order]:
        """
        Open orders with canonical status.

        Args:
            pairs: Restrict to these pairs (default: all / enabled pairs)

        Raises:
            RateLimitedError: Throttled; may carry the partial result as fallback
        """
        ...

    @abstractmethod
    def get_limits(self) -> CurrencyLimits:
        """
        Per-pair precision and minimum constraints.

        Missing values are -1, distinct from a declared 0.
        """
        ...

    # ============================================
    # Optional Operations
    # ============================================

    async def get_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> Order:
        """Look up a single order. Unsupported unless a driver overrides it."""
        raise UnsupportedError("get_order", self.name)

    async def get_currency_pairs(self) -> List[CurrencyPairInfo]:
        """Pairs listed by the exchange. Unsupported unless a driver overrides it."""
        raise UnsupportedError("get_currency_pairs", self.name)

    async def update_tickers(
        self,
        pairs: Optional[Iterable[CurrencyPair]] = None,
        asset_type: str = SPOT,
    ) -> List[Ticker]:
        """
        Refresh several tickers.

        The default issues one update_ticker() per pair; exchanges with a
        batched ticker endpoint override this.
        """
        pairs = list(pairs) if pairs is not None else list(self.enabled_pairs)
        return [await self.update_ticker(pair, asset_type) for pair in pairs]

    # ============================================
    # Cache Access
    # ============================================

    def store_ticker(self, ticker: Ticker) -> Ticker:
        self.cache.put_ticker(self.name, ticker.pair, ticker.asset_type, ticker)
        return ticker

    def store_orderbook(self, book: OrderBook) -> OrderBook:
        self.cache.put_orderbook(self.name, book.pair, book.asset_type, book)
        return book

    async def get_ticker(self, pair: CurrencyPair, asset_type: str = SPOT) -> Ticker:
        """Cached ticker, fetched from the exchange on a miss."""
        cached = self.cache.get_ticker(self.name, pair, asset_type)
        if cached is not None:
            return cached
        return await self.update_ticker(pair, asset_type)

    async def get_orderbook(self, pair: CurrencyPair, asset_type: str = SPOT) -> OrderBook:
        """Cached order book, fetched from the exchange on a miss."""
        cached = self.cache.get_orderbook(self.name, pair, asset_type)
        if cached is not None:
            return cached
        return await self.update_orderbook(pair, asset_type)

    async def refresh_ticker(self, pair: CurrencyPair, asset_type: str = SPOT) -> Ticker:
        """
        Fetch a fresh ticker, serving the cached one when rate limited.

        Raises:
            RateLimitedError: Rate limited and nothing cached yet
        """
        try:
            return await self.update_ticker(pair, asset_type)
        except RateLimitedError:
            cached = self.cache.get_ticker(self.name, pair, asset_type)
            if cached is None:
                raise
            logger.warning(f"{self.name}: rate limited, serving cached ticker for {pair}")
            return cached

    async def refresh_orderbook(self, pair: CurrencyPair, asset_type: str = SPOT) -> OrderBook:
        """
        Fetch a fresh order book, serving the cached one when rate limited.

        Raises:
            RateLimitedError: Rate limited and nothing cached yet
        """
        try:
            return await self.update_orderbook(pair, asset_type)
        except RateLimitedError:
            cached = self.cache.get_orderbook(self.name, pair, asset_type)
            if cached is None:
                raise
            logger.warning(f"{self.name}: rate limited, serving cached order book for {pair}")
            return cached

    # ============================================
    # Optional Lifecycle Methods
    # ============================================

    async def initialize(self) -> None:
        """
        Initialize the exchange driver (open HTTP sessions).

        Called by ExchangeManager; should be idempotent.
        """
        pass

    async def shutdown(self) -> None:
        """Close HTTP sessions and release resources."""
        pass

    async def health_check(self) -> bool:
        """
        Check if the exchange API is accessible.

        Returns False on errors instead of raising.
        """
        return True

    # ============================================
    # Helper Methods
    # ============================================

    def supports(self, feature: str) -> bool:
        """
        Check if this exchange supports a specific feature.

        Example:
            >>> if exchange.supports("order_lookup"):
            ...     order = await exchange.get_order("42", pair)
        """
        return self.capabilities.get(feature, False)

    def __repr__(self) -> str:
        """String representation of the exchange."""
        return f"<{self.__class__.__name__}(name='{self.name}')>"
