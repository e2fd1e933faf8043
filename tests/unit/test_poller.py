"""
Unit Tests for the Polling Loop

Run with:
    pytest tests/unit/test_poller.py -v
"""

import asyncio

import pytest

from core.errors import RateLimitedError, TransportError
from core.exchange_manager import ExchangeManager
from core.pair import CurrencyPair
from core.poller import ExchangePoller, PollingSupervisor
from core.schemas import SPOT

from tests.unit.test_exchange_interface import DummyExchange

ETH_BTC = CurrencyPair("ETH", "BTC")
LTC_BTC = CurrencyPair("LTC", "BTC")


class FlakyExchange(DummyExchange):
    """Fails the order book of chosen pairs with chosen errors."""

    name = "flaky"

    def __init__(self, failures=None):
        super().__init__()
        self.failures = failures or {}
        self.books = []

    async def update_orderbook(self, pair, asset_type=SPOT):
        if pair in self.failures:
            raise self.failures[pair]
        self.books.append(pair)
        return await super().update_orderbook(pair, asset_type)


def enabled(exchange, pairs, delay=0.01):
    exchange.context.enabled = True
    exchange.context.enabled_pairs = list(pairs)
    exchange.context.polling_delay = delay
    return exchange


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_refreshes_every_enabled_pair(self):
        exchange = enabled(FlakyExchange(), [ETH_BTC, LTC_BTC])
        poller = ExchangePoller(exchange)

        await poller.poll_once()

        assert exchange.cache.get_ticker("flaky", ETH_BTC, SPOT) is not None
        assert exchange.cache.get_orderbook("flaky", LTC_BTC, SPOT) is not None
        assert poller.cycles == 1

    @pytest.mark.asyncio
    async def test_rate_limited_pair_keeps_previous_snapshot(self):
        exchange = enabled(FlakyExchange(), [ETH_BTC, LTC_BTC])
        previous = await exchange.update_orderbook(ETH_BTC)
        exchange.failures[ETH_BTC] = RateLimitedError(exchange="flaky")

        await ExchangePoller(exchange).poll_once()

        assert exchange.cache.get_orderbook("flaky", ETH_BTC, SPOT) is previous
        assert exchange.books[-1] == LTC_BTC

    @pytest.mark.asyncio
    async def test_exchange_error_moves_on_to_next_pair(self):
        exchange = enabled(FlakyExchange({ETH_BTC: TransportError("down", "flaky")}), [ETH_BTC, LTC_BTC])

        await ExchangePoller(exchange).poll_once()

        assert exchange.books == [LTC_BTC]

    @pytest.mark.asyncio
    async def test_programming_errors_propagate(self):
        exchange = enabled(FlakyExchange({ETH_BTC: KeyError("bug")}), [ETH_BTC])
        with pytest.raises(KeyError):
            await ExchangePoller(exchange).poll_once()

    @pytest.mark.asyncio
    async def test_ticker_failure_does_not_skip_orderbooks(self):
        exchange = enabled(FlakyExchange(), [ETH_BTC])

        async def failing_tickers(pairs=None, asset_type=SPOT):
            raise RateLimitedError(exchange="flaky")

        exchange.update_tickers = failing_tickers
        await ExchangePoller(exchange).poll_once()

        assert exchange.books == [ETH_BTC]


class TestPollerLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        exchange = enabled(FlakyExchange(), [ETH_BTC])
        poller = ExchangePoller(exchange)

        poller.start()
        assert poller.running
        await asyncio.sleep(0.05)
        await poller.stop()

        assert not poller.running
        assert poller.cycles >= 1

    @pytest.mark.asyncio
    async def test_stop_wakes_long_delay(self):
        exchange = enabled(FlakyExchange(), [ETH_BTC], delay=3600)
        poller = ExchangePoller(exchange)

        poller.start()
        await asyncio.sleep(0.01)
        await asyncio.wait_for(poller.stop(), timeout=1)

        assert poller.cycles == 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await ExchangePoller(enabled(FlakyExchange(), [])).stop()


class TestPollingSupervisor:
    @pytest.mark.asyncio
    async def test_polls_only_enabled_exchanges(self):
        manager = ExchangeManager()
        manager.register(enabled(FlakyExchange(), [ETH_BTC]))
        manager.register(DummyExchange())

        supervisor = PollingSupervisor(manager)
        names = await supervisor.start_all()
        await asyncio.sleep(0.02)
        await supervisor.stop_all()

        assert names == ["flaky"]
        assert supervisor.pollers == {}
