"""
Unit Tests for Exchange Interface and Manager

These tests verify that:
- ExchangeInterface is properly defined as an abstract class
- Dummy implementations can inherit and implement the interface
- Cache access falls back to the cached snapshot when rate limited
- ExchangeManager correctly manages exchange instances
- Lifecycle methods work as expected

Run with:
    pytest tests/unit/test_exchange_interface.py -v
"""

import pytest

from core.cache import MarketDataCache
from core.config import ExchangeConfig
from core.errors import RateLimitedError, UnsupportedError
from core.exchange_interface import ExchangeInterface
from core.exchange_manager import ExchangeManager
from core.limits import CurrencyLimits
from core.pair import CurrencyPair
from core.schemas import SPOT, AccountInfo, OrderBook, OrderBookItem, Ticker
from exchanges.binance import BinanceExchange
from exchanges.kraken import KrakenExchange

ETH_BTC = CurrencyPair("ETH", "BTC")


# ============================================
# Dummy Exchange for Testing
# ============================================

class DummyExchange(ExchangeInterface):
    """
    Minimal implementation of ExchangeInterface for testing purposes.

    Market data calls count how often they hit "the exchange" and raise
    `self.error` when it is set.
    """

    name = "dummy"
    capabilities = {
        "ticker": True,
        "orderbook": True,
        "trading": False,  # Intentionally not supported
    }

    def __init__(self, cache=None):
        super().__init__(cache)
        self.calls = 0
        self.error = None
        self.price = 1.0
        self.initialized = False

    async def update_ticker(self, pair, asset_type=SPOT):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.store_ticker(Ticker(exchange=self.name, pair=pair, asset_type=asset_type, last=self.price))

    async def update_orderbook(self, pair, asset_type=SPOT):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.store_orderbook(OrderBook(
            exchange=self.name,
            pair=pair,
            asset_type=asset_type,
            bids=[OrderBookItem(price=self.price, amount=1.0)],
        ))

    async def get_account_info(self):
        return AccountInfo(exchange=self.name)

    async def new_order(self, pair, amount, price, side, order_type=None):
        raise UnsupportedError("new_order", self.name)

    async def cancel_order(self, order_id, pair=None):
        raise UnsupportedError("cancel_order", self.name)

    async def get_orders(self, pairs=None):
        return []

    def get_limits(self):
        return CurrencyLimits(self.name)

    async def initialize(self):
        self.initialized = True


@pytest.fixture
def dummy():
    return DummyExchange()


# ============================================
# Interface Contract
# ============================================

class TestExchangeInterface:
    """Test the abstract contract"""

    def test_cannot_instantiate_abstract_class(self):
        with pytest.raises(TypeError):
            ExchangeInterface()

    def test_incomplete_driver_cannot_be_instantiated(self):
        class HalfExchange(ExchangeInterface):
            name = "half"

            async def update_ticker(self, pair, asset_type=SPOT):
                return None

        with pytest.raises(TypeError):
            HalfExchange()

    def test_dummy_implements_interface(self, dummy):
        assert isinstance(dummy, ExchangeInterface)
        assert dummy.context.name == "dummy"
        assert repr(dummy) == "<DummyExchange(name='dummy')>"

    def test_supports(self, dummy):
        assert dummy.supports("ticker") is True
        assert dummy.supports("trading") is False
        assert dummy.supports("no_such_feature") is False

    @pytest.mark.asyncio
    async def test_optional_operations_are_unsupported(self, dummy):
        with pytest.raises(UnsupportedError):
            await dummy.get_order("1", ETH_BTC)
        with pytest.raises(UnsupportedError):
            await dummy.get_currency_pairs()

    def test_unsupported_error_is_not_implemented_error(self):
        assert issubclass(UnsupportedError, NotImplementedError)

    def test_check_asset_type(self, dummy):
        assert dummy.check_asset_type("spot") == SPOT
        with pytest.raises(UnsupportedError):
            dummy.check_asset_type("futures")

    @pytest.mark.asyncio
    async def test_default_lifecycle(self, dummy):
        await dummy.initialize()
        assert await dummy.health_check() is True
        await dummy.shutdown()


# ============================================
# Cache Access
# ============================================

class TestCacheAccess:
    """Test store/get/refresh around the market data cache"""

    @pytest.mark.asyncio
    async def test_update_writes_cache(self, dummy):
        ticker = await dummy.update_ticker(ETH_BTC)
        assert dummy.cache.get_ticker("dummy", ETH_BTC, SPOT) is ticker

    @pytest.mark.asyncio
    async def test_get_fetches_only_on_miss(self, dummy):
        first = await dummy.get_orderbook(ETH_BTC)
        second = await dummy.get_orderbook(ETH_BTC)
        assert first is second
        assert dummy.calls == 1

    @pytest.mark.asyncio
    async def test_refresh_serves_cached_snapshot_when_rate_limited(self, dummy):
        cached = await dummy.update_ticker(ETH_BTC)
        dummy.error = RateLimitedError(exchange="dummy")

        assert await dummy.refresh_ticker(ETH_BTC) is cached

    @pytest.mark.asyncio
    async def test_refresh_reraises_when_nothing_cached(self, dummy):
        dummy.error = RateLimitedError(exchange="dummy")
        with pytest.raises(RateLimitedError):
            await dummy.refresh_orderbook(ETH_BTC)

    @pytest.mark.asyncio
    async def test_rate_limit_leaves_cache_untouched(self, dummy):
        cached = await dummy.update_orderbook(ETH_BTC)
        dummy.price = 2.0
        dummy.error = RateLimitedError(exchange="dummy")

        book = await dummy.refresh_orderbook(ETH_BTC)

        assert book is cached
        assert book.best_bid == 1.0

    @pytest.mark.asyncio
    async def test_default_update_tickers_uses_enabled_pairs(self, dummy):
        dummy.context.enabled_pairs = [ETH_BTC, CurrencyPair("LTC", "BTC")]
        tickers = await dummy.update_tickers()
        assert [t.pair for t in tickers] == dummy.enabled_pairs
        assert dummy.calls == 2


# ============================================
# Exchange Manager
# ============================================

class TestExchangeManager:
    """Test the driver registry"""

    def test_create_exchange(self):
        manager = ExchangeManager()
        exchange = manager.create_exchange(ExchangeConfig(name="kraken", enabled=True))
        assert isinstance(exchange, KrakenExchange)
        assert manager.get_exchange("KRAKEN") is exchange
        assert manager.has_exchange("kraken")
        assert exchange.cache is manager.cache

    def test_unknown_driver(self):
        with pytest.raises(ValueError):
            ExchangeManager().create_exchange(ExchangeConfig(name="mtgox", enabled=True))

    def test_duplicate_registration(self):
        manager = ExchangeManager()
        manager.register(DummyExchange())
        with pytest.raises(ValueError):
            manager.register(DummyExchange())

    def test_get_unknown_exchange(self):
        with pytest.raises(ValueError):
            ExchangeManager().get_exchange("nonexistent")

    def test_from_configs(self):
        manager = ExchangeManager.from_configs([
            ExchangeConfig(name="kraken", enabled=True),
            ExchangeConfig(name="binance", enabled=False),
        ])
        assert manager.list_exchanges() == ["kraken", "binance"]
        assert [e.name for e in manager.enabled_exchanges()] == ["kraken"]
        assert isinstance(manager.get_exchange("binance"), BinanceExchange)
        assert len(manager) == 2

    def test_drivers_share_cache(self):
        cache = MarketDataCache()
        manager = ExchangeManager.from_configs(
            [ExchangeConfig(name="kraken", enabled=True), ExchangeConfig(name="liqui", enabled=True)],
            cache=cache,
        )
        assert all(exchange.cache is cache for exchange in manager.exchanges.values())

    def test_capability_queries(self):
        manager = ExchangeManager()
        manager.register(DummyExchange())
        assert manager.get_exchanges_with_feature("ticker") == ["dummy"]
        assert manager.get_exchanges_with_feature("trading") == []
        assert manager.get_exchange_capabilities("dummy")["orderbook"] is True

    @pytest.mark.asyncio
    async def test_shutdown_tears_down_cache(self):
        manager = ExchangeManager()
        dummy = manager.register(DummyExchange(cache=manager.cache))
        await dummy.update_ticker(ETH_BTC)
        manager.cache.put_ticker("other", ETH_BTC, SPOT, Ticker(exchange="other", pair=ETH_BTC))

        await manager.shutdown_all()

        assert manager.cache.get_ticker("dummy", ETH_BTC, SPOT) is None
        assert manager.cache.get_ticker("other", ETH_BTC, SPOT) is not None

    @pytest.mark.asyncio
    async def test_initialize_all_continues_after_failure(self):
        class BrokenExchange(DummyExchange):
            name = "broken"

            async def initialize(self):
                raise RuntimeError("boom")

        manager = ExchangeManager()
        broken = manager.register(BrokenExchange())
        dummy = manager.register(DummyExchange())
        broken.context.enabled = True
        dummy.context.enabled = True

        await manager.initialize_all()

        assert dummy.initialized is True

    @pytest.mark.asyncio
    async def test_health_check_all(self):
        manager = ExchangeManager()
        manager.register(DummyExchange())
        assert await manager.health_check_all() == {"dummy": True}
