"""
Unit Tests for the Kraken Driver

API client methods are replaced with canned responses, so no request ever
leaves the process.

Run with:
    pytest tests/unit/test_kraken.py -v
"""

import pytest

from core.config import ExchangeConfig
from core.errors import CredentialsMissingError, FormatError, RateLimitedError
from core.limits import LIMIT_UNSET
from core.pair import CurrencyPair
from core.schemas import SPOT, OrderSide, OrderStatus, OrderType
from exchanges.kraken import (
    KrakenExchange,
    from_kraken_currency,
    normalize_symbol,
    to_kraken_currency,
)
from exchanges.kraken.api_client import KrakenAPIClient

ETH_USD = CurrencyPair("ETH", "USD")
BTC_USD = CurrencyPair("BTC", "USD")

ASSET_PAIRS = {
    "XETHZUSD": {
        "altname": "ETHUSD", "base": "XETH", "quote": "ZUSD",
        "pair_decimals": 2, "lot_decimals": 8, "ordermin": "0.01",
    },
    "XETHZUSD.d": {"altname": "ETHUSD.d", "base": "XETH", "quote": "ZUSD"},
    "XXBTZUSD": {
        "altname": "XBTUSD", "base": "XXBT", "quote": "ZUSD",
        "pair_decimals": 1, "lot_decimals": 8, "ordermin": "0.0001", "costmin": "0.5",
    },
}


def ticker_entry(ask, bid, last):
    return {
        "a": [ask, "1", "1.000"], "b": [bid, "1", "1.000"], "c": [last, "0.1"],
        "v": ["10.0", "250.5"], "l": ["90.0", "85.0"], "h": ["110.0", "120.0"],
    }


def returns(value):
    async def fake(*args, **kwargs):
        fake.calls.append((args, kwargs))
        return value
    fake.calls = []
    return fake


@pytest.fixture
def kraken():
    exchange = KrakenExchange()
    exchange.setup(ExchangeConfig(
        name="kraken",
        enabled=True,
        authenticated_api_support=True,
        api_key="key",
        api_secret="czNjcjN0",
        enabled_pairs="ETHUSD,BTCUSD",
    ))
    exchange.client = KrakenAPIClient(exchange.context.credentials, exchange.context.nonce)
    return exchange


class TestSymbols:
    @pytest.mark.parametrize(
        "symbol, expected",
        [
            ("XETHZUSD", ETH_USD),
            ("XXBTZEUR", CurrencyPair("BTC", "EUR")),
            ("XXBTZUSD", BTC_USD),
            ("ETHUSD", ETH_USD),
            ("xbtusd", BTC_USD),
        ],
    )
    def test_normalize_symbol(self, symbol, expected):
        assert normalize_symbol(symbol) == expected

    def test_known_currencies_split_long_codes(self):
        assert normalize_symbol("DASHUSD", ["DASH", "USD"]) == CurrencyPair("DASH", "USD")

    def test_currency_codes(self):
        assert from_kraken_currency("XXBT") == "BTC"
        assert from_kraken_currency("ZUSD") == "USD"
        assert from_kraken_currency("DASH") == "DASH"
        assert to_kraken_currency("btc") == "XBT"
        assert to_kraken_currency("ETH") == "ETH"

    def test_format_symbol_uses_kraken_codes(self, kraken):
        assert kraken.format_symbol(BTC_USD) == "XBTUSD"
        assert kraken.format_symbol(ETH_USD) == "ETHUSD"

    def test_unsplittable_symbol(self):
        with pytest.raises(FormatError):
            normalize_symbol("BTC")

    def test_setup_resolves_long_codes_with_base_currencies(self):
        exchange = KrakenExchange()
        exchange.setup(ExchangeConfig(
            name="kraken", enabled=True, base_currencies="USD", enabled_pairs="DASHUSD,ETHUSD",
        ))
        assert exchange.enabled_pairs == [CurrencyPair("DASH", "USD"), ETH_USD]

    def test_setup_rejects_ambiguous_pair(self):
        with pytest.raises(FormatError):
            KrakenExchange().setup(ExchangeConfig(name="kraken", enabled=True, enabled_pairs="DASHUSD,ETHUSD"))


class TestMarketData:
    @pytest.mark.asyncio
    async def test_update_tickers_batches_pairs(self, kraken, monkeypatch):
        fake = returns({
            "XETHZUSD": ticker_entry("101.0", "100.0", "100.5"),
            "XXBTZUSD": ticker_entry("20001.0", "20000.0", "20000.5"),
        })
        monkeypatch.setattr(kraken.client, "get_ticker", fake)

        tickers = await kraken.update_tickers()

        assert fake.calls[0][0] == ("ETHUSD,XBTUSD",)
        by_pair = {t.pair: t for t in tickers}
        assert by_pair[ETH_USD].ask == 101.0
        assert by_pair[ETH_USD].volume == 250.5
        assert by_pair[ETH_USD].high == 120.0
        assert by_pair[BTC_USD].last == 20000.5
        assert kraken.cache.get_ticker("kraken", BTC_USD, SPOT) is by_pair[BTC_USD]

    @pytest.mark.asyncio
    async def test_update_ticker_single_pair(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_ticker", returns({"XETHZUSD": ticker_entry("2", "1", "1.5")}))
        ticker = await kraken.update_ticker(ETH_USD)
        assert ticker.bid == 1.0
        assert ticker.low == 85.0

    @pytest.mark.asyncio
    async def test_malformed_ticker(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_ticker", returns({"XETHZUSD": {"a": []}}))
        with pytest.raises(FormatError):
            await kraken.update_ticker(ETH_USD)

    @pytest.mark.asyncio
    async def test_update_orderbook(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_depth", returns({
            "XETHZUSD": {
                "bids": [["99.0", "1.0", 1500000000], ["100.0", "2.0", 1500000000]],
                "asks": [["102.0", "1.0", 1500000000], ["101.0", "3.0", 1500000000]],
            },
        }))

        book = await kraken.update_orderbook(ETH_USD)

        assert book.best_bid == 100.0
        assert book.best_ask == 101.0
        assert kraken.cache.get_orderbook("kraken", ETH_USD, SPOT) is book

    @pytest.mark.asyncio
    async def test_rate_limited_refresh_keeps_cached_book(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_depth", returns({
            "XETHZUSD": {"bids": [["100.0", "1.0", 0]], "asks": [["101.0", "1.0", 0]]},
        }))
        cached = await kraken.update_orderbook(ETH_USD)

        async def throttled(*args, **kwargs):
            raise RateLimitedError("EAPI:Rate limit exceeded", "kraken")

        monkeypatch.setattr(kraken.client, "get_depth", throttled)
        assert await kraken.refresh_orderbook(ETH_USD) is cached

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        with pytest.raises(RuntimeError):
            await KrakenExchange().update_orderbook(ETH_USD)


class TestAccountAndOrders:
    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        exchange = KrakenExchange()
        exchange.setup(ExchangeConfig(name="kraken", enabled=True))
        with pytest.raises(CredentialsMissingError):
            await exchange.get_account_info()

    @pytest.mark.asyncio
    async def test_account_info(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_balance", returns({"ZUSD": "171.61", "XXBT": "0.0011"}))
        account = await kraken.get_account_info()
        assert account.get_currency("usd").total_value == 171.61
        assert account.get_currency("BTC").available == 0.0011
        assert account.get_currency("BTC").hold == 0.0

    @pytest.mark.asyncio
    async def test_new_limit_order(self, kraken, monkeypatch):
        fake = returns({"descr": {"order": "buy 1.5 ETHUSD @ limit 100"}, "txid": ["OAVY7T-MV5VK-KHDF5X"]})
        monkeypatch.setattr(kraken.client, "add_order", fake)

        order_id = await kraken.new_order(ETH_USD, 1.5, 100, OrderSide.BUY)

        assert order_id == "OAVY7T-MV5VK-KHDF5X"
        assert fake.calls[0][0] == ("ETHUSD", "buy", "limit", "1.5", "100")

    @pytest.mark.asyncio
    async def test_market_order_sends_no_price(self, kraken, monkeypatch):
        fake = returns({"txid": []})
        monkeypatch.setattr(kraken.client, "add_order", fake)

        assert await kraken.new_order(BTC_USD, 0.1, 0, OrderSide.SELL, OrderType.MARKET) == ""
        assert fake.calls[0][0] == ("XBTUSD", "sell", "market", "0.1", None)

    @pytest.mark.asyncio
    async def test_get_orders(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_open_orders", returns({"open": {
            "OABC": {
                "descr": {"pair": "ETHUSD", "type": "buy", "ordertype": "limit", "price": "100.0"},
                "status": "open", "vol": "1.5", "vol_exec": "0.5", "price": "0", "opentm": 1500000000.5,
            },
            "ODEF": {
                "descr": {"pair": "XBTUSD", "type": "sell", "ordertype": "limit", "price": "20000"},
                "status": "pending", "vol": "0.1", "vol_exec": "0", "opentm": 1500000001,
            },
        }}))

        orders = await kraken.get_orders()
        assert len(orders) == 2

        eth = await kraken.get_orders([ETH_USD])
        assert len(eth) == 1
        order = eth[0]
        assert order.order_id == "OABC"
        assert order.side == OrderSide.BUY
        assert order.status == OrderStatus.ACTIVE
        assert order.rate == 100.0
        assert order.remaining_amount == 1.0
        assert order.created_at is not None

    @pytest.mark.asyncio
    async def test_get_order_closed(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "query_orders", returns({
            "OABC": {
                "descr": {"pair": "ETHUSD", "type": "sell", "ordertype": "limit", "price": "100.0"},
                "status": "closed", "vol": "1.0", "vol_exec": "1.0", "price": "100.5",
            },
        }))
        order = await kraken.get_order("OABC")
        assert order.status == OrderStatus.FILLED
        assert order.rate == 100.5

    @pytest.mark.asyncio
    async def test_get_order_missing(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "query_orders", returns({}))
        with pytest.raises(FormatError):
            await kraken.get_order("OABC")


class TestLimits:
    @pytest.mark.asyncio
    async def test_asset_pairs_load_limits(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_asset_pairs", returns(ASSET_PAIRS))

        await kraken.refresh_exchange_info()
        limits = kraken.get_limits()

        assert limits.get_price_decimal_places(ETH_USD) == 2
        assert limits.get_amount_decimal_places(ETH_USD) == 8
        assert limits.get_min_amount(ETH_USD) == 0.01
        assert limits.get_min_total(ETH_USD) == LIMIT_UNSET
        assert limits.get_min_total(BTC_USD) == 0.5
        assert len(limits) == 2

    @pytest.mark.asyncio
    async def test_symbol_map_and_pairs(self, kraken, monkeypatch):
        monkeypatch.setattr(kraken.client, "get_asset_pairs", returns(ASSET_PAIRS))

        pairs = await kraken.get_currency_pairs()

        assert {info.pair for info in pairs} == {ETH_USD, BTC_USD}
        assert kraken.symbol_to_pair("XBTUSD") == BTC_USD
        assert set(kraken.context.available_pairs) == {ETH_USD, BTC_USD}
