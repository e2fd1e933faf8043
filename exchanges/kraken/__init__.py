"""
Kraken Exchange Driver

Implements ExchangeInterface for Kraken spot markets.

API Documentation:
    https://docs.kraken.com/rest/

Endpoints Used:
    Public:
        - GET /0/public/Time - Health check
        - GET /0/public/AssetPairs - Pairs and precision limits
        - GET /0/public/Ticker - Tickers (several pairs per request)
        - GET /0/public/Depth - Order book
    Private:
        - POST /0/private/Balance
        - POST /0/private/AddOrder
        - POST /0/private/CancelOrder
        - POST /0/private/OpenOrders
        - POST /0/private/QueryOrders

Symbols:
    Kraken pads legacy asset codes with an asset-class letter (X for crypto,
    Z for fiat) and calls bitcoin XBT: the ETH/USD market is keyed "XETHZUSD"
    in responses. normalize_symbol() undoes both, while outbound requests use
    the short form with Kraken's codes ("XBTUSD").

Order Status:
    pending, open -> ACTIVE; closed -> FILLED; canceled, expired -> ABORTED
"""

from typing import Dict, Iterable, List, Optional, Set

from core.errors import ExchangeError, FormatError, parse_float
from core.exchange_interface import ExchangeInterface
from core.limits import LIMIT_UNSET, CurrencyLimits, PairLimits
from core.logging import get_logger
from core.order_status import OrderStatusNormalizer, format_decimal
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
from core.utils.time import to_utc_datetime

from .api_client import KrakenAPIClient

logger = get_logger(__name__)

KRAKEN_ALIASES = {"XBT": "BTC", "XDG": "DOGE"}
KRAKEN_CODES = {canonical: kraken for kraken, canonical in KRAKEN_ALIASES.items()}

KRAKEN_STATUSES = {
    "pending": OrderStatus.ACTIVE,
    "open": OrderStatus.ACTIVE,
    "closed": OrderStatus.FILLED,
    "canceled": OrderStatus.ABORTED,
    "expired": OrderStatus.ABORTED,
}


def from_kraken_currency(code: str) -> str:
    """Kraken asset code -> canonical code ("XXBT" -> "BTC", "ZUSD" -> "USD")."""
    code = code.upper()
    if len(code) == 4 and code[0] in "XZ":
        code = code[1:]
    return KRAKEN_ALIASES.get(code, code)


def to_kraken_currency(code: str) -> str:
    """Canonical code -> the code Kraken expects in requests ("BTC" -> "XBT")."""
    code = code.upper()
    return KRAKEN_CODES.get(code, code)


def normalize_symbol(symbol: str, known_currencies: Optional[Iterable[str]] = None) -> CurrencyPair:
    """
    Kraken pair key -> canonical CurrencyPair.

    8-character keys with X/Z at positions 0 and 4 are asset-class padded
    ("XETHZUSD"); anything else is split with the known currency codes, or
    three plus three for six-letter keys when none are known.

    Raises:
        FormatError: If the symbol cannot be split

    Example:
        >>> normalize_symbol("XXBTZEUR")
        CurrencyPair('BTC', 'EUR')
        >>> normalize_symbol("DASHUSD", ["DASH", "USD"])
        CurrencyPair('DASH', 'USD')
    """
    key = symbol.strip().upper()
    if len(key) == 8 and key[0] in "XZ" and key[4] in "XZ":
        return CurrencyPair(from_kraken_currency(key[1:4]), from_kraken_currency(key[5:]))

    known: Optional[Set[str]] = None
    if known_currencies:
        known = {c.upper() for c in known_currencies}
        known |= {to_kraken_currency(c) for c in known}
    raw = parse_pair(key, known_currencies=known)
    return CurrencyPair(from_kraken_currency(raw.base), from_kraken_currency(raw.quote))


class KrakenExchange(ExchangeInterface):
    """
    Kraken Spot Exchange Driver

    Attributes:
        client: KrakenAPIClient (created in initialize())
        symbol_map: Kraken pair keys and altnames -> canonical pair
        pair_limits: Limits loaded from AssetPairs
        normalizer: Kraken order status vocabulary

    Example:
        >>> exchange = KrakenExchange()
        >>> exchange.setup(ExchangeConfig(name="kraken", enabled=True, enabled_pairs="ETHUSD"))
        >>> await exchange.initialize()
        >>> ticker = await exchange.update_ticker(CurrencyPair("ETH", "USD"))
    """

    name = "kraken"

    capabilities = {
        "ticker": True,
        "orderbook": True,
        "account_info": True,
        "trading": True,
        "order_lookup": True,
        "currency_pairs": True,
    }

    REQUEST_FORMAT = CurrencyPairFormat(delimiter="", uppercase=True, separator=",")
    CONFIG_FORMAT = CurrencyPairFormat(delimiter="", uppercase=True)

    def __init__(self, cache=None):
        super().__init__(cache)
        self.client: Optional[KrakenAPIClient] = None
        self.symbol_map: Dict[str, CurrencyPair] = {}
        self.pair_limits: Dict[CurrencyPair, PairLimits] = {}
        self.currency_pairs: Dict[CurrencyPair, CurrencyPairInfo] = {}
        self.normalizer = OrderStatusNormalizer(self.name, KRAKEN_STATUSES, include_defaults=False)

    # ============================================
    # Lifecycle
    # ============================================

    async def initialize(self) -> None:
        """Open the HTTP session and load AssetPairs."""
        if self.client is None:
            self.client = KrakenAPIClient(
                self.context.credentials,
                self.context.nonce,
                verbose=self.context.verbose,
            )
            await self.client.__aenter__()
        try:
            await self.refresh_exchange_info()
        except ExchangeError as e:
            logger.error(f"kraken: failed to load asset pairs: {e}")

    async def shutdown(self) -> None:
        if self.client:
            await self.client.__aexit__(None, None, None)
            self.client = None

    async def health_check(self) -> bool:
        try:
            await self._api().get_server_time()
            return True
        except ExchangeError as e:
            logger.error(f"Kraken health check failed: {e}")
            return False

    def _api(self) -> KrakenAPIClient:
        if self.client is None:
            raise RuntimeError("KrakenExchange not initialized. Call initialize() first.")
        return self.client

    # ============================================
    # Symbols
    # ============================================

    def format_symbol(self, pair: CurrencyPair) -> str:
        """Canonical pair -> Kraken request symbol (BTC/USD -> "XBTUSD")."""
        kraken_pair = CurrencyPair(to_kraken_currency(pair.base), to_kraken_currency(pair.quote))
        return self.context.format_currency(kraken_pair)

    def symbol_to_pair(self, symbol: str) -> CurrencyPair:
        pair = self.symbol_map.get(symbol.upper())
        if pair is not None:
            return pair
        return normalize_symbol(symbol, self.context.known_currencies())

    async def refresh_exchange_info(self) -> None:
        """
        Load AssetPairs: symbol map, limits and available pairs.

        Response Format:
            {"XETHZUSD": {"altname": "ETHUSD", "base": "XETH", "quote": "ZUSD",
                          "pair_decimals": 2, "lot_decimals": 8,
                          "ordermin": "0.01", "costmin": "0.5"}}
        """
        asset_pairs = await self._api().get_asset_pairs()

        symbol_map: Dict[str, CurrencyPair] = {}
        limits: Dict[CurrencyPair, PairLimits] = {}
        infos: Dict[CurrencyPair, CurrencyPairInfo] = {}
        for key, info in asset_pairs.items():
            if key.upper().endswith(".D"):
                # dark pool books share the pair of the regular one
                continue
            pair = CurrencyPair(
                from_kraken_currency(info.get("base", key[:4])),
                from_kraken_currency(info.get("quote", key[4:])),
            )
            symbol_map[key.upper()] = pair
            if info.get("altname"):
                symbol_map[info["altname"].upper()] = pair

            limits[pair] = PairLimits(
                price_decimal_places=int(info.get("pair_decimals", LIMIT_UNSET)),
                amount_decimal_places=int(info.get("lot_decimals", LIMIT_UNSET)),
                min_amount=parse_float(info["ordermin"], "ordermin", self.name) if "ordermin" in info else LIMIT_UNSET,
                min_total=parse_float(info["costmin"], "costmin", self.name) if "costmin" in info else LIMIT_UNSET,
            )
            infos[pair] = CurrencyPairInfo(pair=pair, base_name=pair.base, quote_name=pair.quote)

        self.symbol_map = symbol_map
        self.pair_limits = limits
        self.currency_pairs = infos
        self.context.update_available_currencies(infos.keys())
        logger.info(f"kraken: loaded {len(infos)} asset pair(s)")

    # ============================================
    # Market Data
    # ============================================

    def _build_ticker(self, pair: CurrencyPair, asset_type: str, data: dict) -> Ticker:
        try:
            return Ticker(
                exchange=self.name,
                pair=pair,
                asset_type=asset_type,
                ask=parse_float(data["a"][0], "ask", self.name),
                bid=parse_float(data["b"][0], "bid", self.name),
                last=parse_float(data["c"][0], "last", self.name),
                volume=parse_float(data["v"][1], "volume", self.name),
                low=parse_float(data["l"][1], "low", self.name),
                high=parse_float(data["h"][1], "high", self.name),
            )
        except (KeyError, IndexError, TypeError) as e:
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
        """Refresh several tickers with one Ticker request."""
        asset_type = self.check_asset_type(asset_type)
        pairs = list(pairs) if pairs is not None else list(self.enabled_pairs)
        if not pairs:
            return []

        symbols = self.REQUEST_FORMAT.separator.join(self.format_symbol(p) for p in pairs)
        result = await self._api().get_ticker(symbols)

        requested = set(pairs)
        tickers = []
        for key, data in result.items():
            if len(pairs) == 1 and len(result) == 1:
                pair = pairs[0]
            else:
                pair = self.symbol_to_pair(key)
            if pair not in requested:
                logger.debug(f"kraken: ignoring unrequested ticker {key}")
                continue
            tickers.append(self.store_ticker(self._build_ticker(pair, asset_type, data)))
        return tickers

    async def update_orderbook(self, pair: CurrencyPair, asset_type: str = SPOT) -> OrderBook:
        asset_type = self.check_asset_type(asset_type)
        result = await self._api().get_depth(self.format_symbol(pair))
        if not result:
            raise FormatError(f"Empty order book response for {pair}", self.name)

        data = next(iter(result.values()))
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
        """Kraken reports totals only, so hold is 0 and available equals total."""
        self.context.require_credentials()
        balances = await self._api().get_balance()

        currencies = []
        for asset, amount in balances.items():
            total = parse_float(amount, asset, self.name)
            currencies.append(AccountCurrencyInfo(
                currency=from_kraken_currency(asset),
                total_value=total,
                hold=0.0,
                available=total,
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
        side = OrderSide(side)
        order_type = OrderType(order_type)

        result = await self._api().add_order(
            self.format_symbol(pair),
            side.value,
            order_type.value,
            format_decimal(amount),
            format_decimal(price) if order_type == OrderType.LIMIT else None,
        )
        txids = result.get("txid") or []
        return str(txids[0]) if txids else ""

    async def cancel_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> None:
        self.context.require_credentials()
        await self._api().cancel_order(order_id)

    def _convert_order(self, txid: str, info: dict) -> Order:
        descr = info.get("descr") or {}
        order_type = descr.get("ordertype")
        price = info.get("price")
        if not price or parse_float(price, "price", self.name) == 0:
            price = descr.get("price", 0)

        return self.normalizer.build_order(
            order_id=txid,
            pair=self.symbol_to_pair(descr.get("pair", "")),
            side=descr.get("type"),
            raw_status=info.get("status"),
            amount=parse_float(info.get("vol"), "vol", self.name),
            filled_amount=parse_float(info.get("vol_exec", 0), "vol_exec", self.name),
            rate=parse_float(price, "price", self.name),
            order_type=OrderType(order_type) if order_type in ("limit", "market") else None,
            created_at=to_utc_datetime(info["opentm"]) if info.get("opentm") else None,
        )

    async def get_orders(self, pairs: Optional[Iterable[CurrencyPair]] = None) -> List[Order]:
        self.context.require_credentials()
        result = await self._api().get_open_orders()

        wanted = set(pairs) if pairs else None
        orders = []
        for txid, info in (result.get("open") or {}).items():
            order = self._convert_order(txid, info)
            if wanted is None or order.pair in wanted:
                orders.append(order)
        return orders

    async def get_order(self, order_id: str, pair: Optional[CurrencyPair] = None) -> Order:
        self.context.require_credentials()
        result = await self._api().query_orders(order_id)
        info = result.get(order_id)
        if info is None:
            raise FormatError(f"Order {order_id} missing from response", self.name)
        return self._convert_order(order_id, info)

    def get_limits(self) -> CurrencyLimits:
        return CurrencyLimits(self.name, self.pair_limits)

    async def get_currency_pairs(self) -> List[CurrencyPairInfo]:
        if not self.currency_pairs:
            await self.refresh_exchange_info()
        return list(self.currency_pairs.values())

