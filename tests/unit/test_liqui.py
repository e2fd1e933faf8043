"""
Unit Tests for the Liqui Driver

Run with:
    pytest tests/unit/test_liqui.py -v
"""

import pytest

from core.config import ExchangeConfig
from core.errors import FormatError, UnsupportedError
from core.limits import LIMIT_UNSET
from core.pair import CurrencyPair
from core.schemas import SPOT, OrderSide, OrderStatus, OrderType
from exchanges.liqui import LiquiExchange
from exchanges.liqui.api_client import LiquiAPIClient

ETH_BTC = CurrencyPair("ETH", "BTC")
LTC_BTC = CurrencyPair("LTC", "BTC")


def ticker_entry(buy, sell):
    return {
        "high": 0.1, "low": 0.09, "avg": 0.095, "vol": 12.5, "vol_cur": 130.2,
        "last": 0.097, "buy": buy, "sell": sell, "updated": 1500000000,
    }


@pytest.fixture
def liqui():
    exchange = LiquiExchange()
    exchange.setup(ExchangeConfig(
        name="liqui",
        enabled=True,
        authenticated_api_support=True,
        api_key="key",
        api_secret="s3cr3t",
        enabled_pairs="ETH_BTC,LTC_BTC",
    ))
    exchange.client = LiquiAPIClient(exchange.context.credentials, exchange.context.nonce)
    return exchange


class TestSymbols:
    def test_config_pairs_use_underscore(self, liqui):
        assert liqui.enabled_pairs == [ETH_BTC, LTC_BTC]

    def test_request_format(self, liqui):
        assert liqui.format_symbol(ETH_BTC) == "eth_btc"
        assert liqui.context.format_currencies([ETH_BTC, LTC_BTC]) == "eth_btc-ltc_btc"

    def test_symbol_to_pair(self, liqui):
        assert liqui.symbol_to_pair("eth_btc") == ETH_BTC
        with pytest.raises(FormatError):
            liqui.symbol_to_pair("ethbtc")


class TestMarketData:
    @pytest.mark.asyncio
    async def test_batched_tickers(self, liqui, monkeypatch):
        requested = []

        async def mock_ticker(pairs):
            requested.append(pairs)
            return {"eth_btc": ticker_entry(0.0969, 0.0971), "ltc_btc": ticker_entry(0.011, 0.012)}

        monkeypatch.setattr(liqui.client, "get_ticker", mock_ticker)

        tickers = await liqui.update_tickers()

        assert requested == ["eth_btc-ltc_btc"]
        eth = tickers[0]
        assert eth.pair == ETH_BTC
        assert eth.ask == 0.0971
        assert eth.bid == 0.0969
        assert eth.volume == 130.2
        assert liqui.cache.get_ticker("liqui", LTC_BTC, SPOT).ask == 0.012

    @pytest.mark.asyncio
    async def test_missing_ticker(self, liqui, monkeypatch):
        async def mock_ticker(pairs):
            return {}

        monkeypatch.setattr(liqui.client, "get_ticker", mock_ticker)
        with pytest.raises(FormatError):
            await liqui.update_ticker(ETH_BTC)

    @pytest.mark.asyncio
    async def test_update_orderbook(self, liqui, monkeypatch):
        async def mock_depth(pair):
            return {"eth_btc": {"asks": [[0.0972, 1.5], [0.0971, 2.0]], "bids": [[0.0969, 3.0]]}}

        monkeypatch.setattr(liqui.client, "get_depth", mock_depth)

        book = await liqui.update_orderbook(ETH_BTC)

        assert book.best_ask == 0.0971
        assert book.best_bid == 0.0969

    @pytest.mark.asyncio
    async def test_orderbook_for_other_pair(self, liqui, monkeypatch):
        async def mock_depth(pair):
            return {"ltc_btc": {"asks": [], "bids": []}}

        monkeypatch.setattr(liqui.client, "get_depth", mock_depth)
        with pytest.raises(FormatError):
            await liqui.update_orderbook(ETH_BTC)


class TestTrading:
    @pytest.mark.asyncio
    async def test_account_info(self, liqui, monkeypatch):
        async def mock_info():
            return {"funds": {"eth": 325.0, "btc": 23.998}, "rights": {"info": 1, "trade": 1}}

        monkeypatch.setattr(liqui.client, "get_account_info", mock_info)

        account = await liqui.get_account_info()

        eth = account.get_currency("ETH")
        assert eth.currency == "ETH"
        assert eth.total_value == eth.available == 325.0
        assert eth.hold == 0.0

    @pytest.mark.asyncio
    async def test_new_order(self, liqui, monkeypatch):
        sent = []

        async def mock_trade(pair, side, rate, amount):
            sent.append((pair, side, rate, amount))
            return {"received": 0, "remains": 1.5, "order_id": 12345, "funds": {}}

        monkeypatch.setattr(liqui.client, "trade", mock_trade)

        assert await liqui.new_order(ETH_BTC, 1.5, 0.097, OrderSide.SELL) == "12345"
        assert sent == [("eth_btc", "sell", "0.097", "1.5")]

    @pytest.mark.asyncio
    async def test_immediately_filled_order_has_no_id(self, liqui, monkeypatch):
        async def mock_trade(pair, side, rate, amount):
            return {"received": 1.5, "remains": 0, "order_id": 0, "funds": {}}

        monkeypatch.setattr(liqui.client, "trade", mock_trade)

        assert await liqui.new_order(ETH_BTC, 1.5, 0.097, OrderSide.BUY) == ""

    @pytest.mark.asyncio
    async def test_market_orders_unsupported(self, liqui):
        with pytest.raises(UnsupportedError):
            await liqui.new_order(ETH_BTC, 1.5, 0, OrderSide.BUY, OrderType.MARKET)

    @pytest.mark.asyncio
    async def test_get_orders(self, liqui, monkeypatch):
        async def mock_active(pair=None):
            return {
                "12345": {"pair": "eth_btc", "type": "sell", "amount": 12.3, "rate": 0.1,
                          "timestamp_created": 1500000000, "status": 0},
                "12346": {"pair": "ltc_btc", "type": "buy", "amount": 1.0, "rate": 0.01,
                          "timestamp_created": 1500000001, "status": 0},
            }

        monkeypatch.setattr(liqui.client, "get_active_orders", mock_active)

        orders = await liqui.get_orders([ETH_BTC])

        assert len(orders) == 1
        order = orders[0]
        assert order.order_id == "12345"
        assert order.status == OrderStatus.ACTIVE
        assert order.remaining_amount == 12.3
        assert order.filled_amount == 0.0

    @pytest.mark.asyncio
    async def test_no_orders_is_empty(self, liqui, monkeypatch):
        async def mock_active(pair=None):
            return {}

        monkeypatch.setattr(liqui.client, "get_active_orders", mock_active)
        assert await liqui.get_orders() == []

    @pytest.mark.asyncio
    async def test_get_order_uses_start_amount(self, liqui, monkeypatch):
        async def mock_order_info(order_id):
            return {"12345": {"pair": "eth_btc", "type": "buy", "start_amount": 13.345,
                              "amount": 12.345, "rate": 0.1, "timestamp_created": 1500000000,
                              "status": 0}}

        monkeypatch.setattr(liqui.client, "get_order_info", mock_order_info)

        order = await liqui.get_order("12345")

        assert order.amount == 13.345
        assert order.filled_amount == 1.0
        assert order.remaining_amount == 12.345

    @pytest.mark.asyncio
    async def test_cancelled_order(self, liqui, monkeypatch):
        async def mock_order_info(order_id):
            return {"7": {"pair": "eth_btc", "type": "buy", "start_amount": 2, "amount": 1,
                          "rate": 0.1, "status": 2}}

        monkeypatch.setattr(liqui.client, "get_order_info", mock_order_info)

        order = await liqui.get_order("7")
        assert order.status == OrderStatus.ABORTED
        assert order.created_at is None


class TestLimits:
    @pytest.mark.asyncio
    async def test_info_loads_limits(self, liqui, monkeypatch):
        async def mock_info():
            return {"server_time": 1500000000, "pairs": {
                "eth_btc": {"decimal_places": 8, "min_price": 0.00001, "max_price": 100,
                            "min_amount": 0.0001, "min_total": 0.0001, "hidden": 0, "fee": 0.25},
                "old_btc": {"decimal_places": 8, "min_amount": 1, "hidden": 1},
            }}

        monkeypatch.setattr(liqui.client, "get_info", mock_info)

        await liqui.refresh_exchange_info()
        limits = liqui.get_limits()

        assert limits.get_price_decimal_places(ETH_BTC) == 8
        assert limits.get_min_amount(ETH_BTC) == 0.0001
        assert limits.get_min_total(ETH_BTC) == 0.0001
        assert limits.get_amount_decimal_places(ETH_BTC) == LIMIT_UNSET
        assert limits.get(CurrencyPair("OLD", "BTC")) is None
        assert [info.pair for info in await liqui.get_currency_pairs()] == [ETH_BTC]
