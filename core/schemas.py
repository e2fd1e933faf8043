"""
Normalized Data Schemas

This module defines Pydantic models for the canonical values the exchange
layer hands to callers.

Key Principle:
    Regardless of which exchange the data comes from (Kraken, Binance, Gemini,
    Liqui, ...), it gets normalized into these schemas. Strategy and portfolio
    code never sees an exchange's raw field names or status vocabulary.

Models:
    - OrderBook: bids/asks snapshot for one (exchange, pair, asset type)
    - Ticker: best bid/ask, last trade and 24h stats
    - Order: canonical order record with a canonical status
    - AccountInfo: balances per currency
    - CurrencyPairInfo: pair plus human-readable currency names

Snapshots (OrderBook, Ticker) and Orders are frozen: the cache hands the same
object to every reader, so nobody may mutate it in place.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.errors import FormatError, parse_float
from core.pair import CurrencyPair
from core.utils.time import current_utc_datetime

SPOT = "SPOT"


# ============================================
# Enumerations
# ============================================

class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    LIMIT = "limit"
    MARKET = "market"


class OrderStatus(str, Enum):
    """
    Canonical order state, independent of exchange vocabulary.

    ACTIVE:  resting on the book (new, open, partially filled)
    FILLED:  completely executed
    ABORTED: cancelled, expired or rejected
    UNKNOWN: the exchange reported something we don't recognise
    """

    ACTIVE = "active"
    FILLED = "filled"
    ABORTED = "aborted"
    UNKNOWN = "unknown"


# ============================================
# Base Market Data Model
# ============================================

class BaseMarketModel(BaseModel):
    """
    Common fields of every market data snapshot.

    All snapshots are keyed the same way in the cache:
    (exchange, pair, asset_type).
    """

    exchange: str = Field(
        ...,
        description="Source exchange identifier (lowercase)",
        examples=["kraken", "binance", "gemini"]
    )

    pair: CurrencyPair = Field(
        ...,
        description="Canonical currency pair"
    )

    asset_type: str = Field(
        default=SPOT,
        description="Asset type of the market",
        examples=["SPOT"]
    )

    timestamp: datetime = Field(
        default_factory=current_utc_datetime,
        description="Time the snapshot was taken (UTC)"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("exchange")
    @classmethod
    def validate_exchange(cls, v: str) -> str:
        """Ensure exchange is lowercase"""
        return v.lower()

    @field_validator("asset_type")
    @classmethod
    def validate_asset_type(cls, v: str) -> str:
        return v.upper()


# ============================================
# Order Book Schema
# ============================================

class OrderBookItem(BaseModel):
    """One price level of an order book."""

    price: float = Field(..., ge=0, description="Price level")
    amount: float = Field(..., ge=0, description="Amount available at this price")

    model_config = ConfigDict(frozen=True)


class OrderBook(BaseMarketModel):
    """
    Order Book Snapshot

    Bids are sorted by price descending (best bid first) and asks ascending
    (best ask first) on construction, whatever order the exchange used.

    Example:
        >>> book = OrderBook(
        ...     exchange="kraken",
        ...     pair=CurrencyPair("ETH", "USD"),
        ...     bids=[OrderBookItem(price=99.0, amount=1.0)],
        ...     asks=[OrderBookItem(price=101.0, amount=2.0)],
        ... )
        >>> book.best_bid
        99.0
    """

    bids: Tuple[OrderBookItem, ...] = Field(default=(), description="Bids, best (highest) first")
    asks: Tuple[OrderBookItem, ...] = Field(default=(), description="Asks, best (lowest) first")

    @field_validator("bids")
    @classmethod
    def sort_bids(cls, v: Tuple[OrderBookItem, ...]) -> Tuple[OrderBookItem, ...]:
        return tuple(sorted(v, key=lambda i: i.price, reverse=True))

    @field_validator("asks")
    @classmethod
    def sort_asks(cls, v: Tuple[OrderBookItem, ...]) -> Tuple[OrderBookItem, ...]:
        return tuple(sorted(v, key=lambda i: i.price))

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None


# ============================================
# Ticker Schema
# ============================================

class Ticker(BaseMarketModel):
    """
    Ticker Snapshot

    Exchanges that don't publish a field (e.g. Gemini has no 24h high/low)
    leave it at 0.0.
    """

    ask: float = Field(default=0.0, ge=0, description="Best ask price")
    bid: float = Field(default=0.0, ge=0, description="Best bid price")
    last: float = Field(default=0.0, ge=0, description="Last trade price")
    low: float = Field(default=0.0, ge=0, description="24h low")
    high: float = Field(default=0.0, ge=0, description="24h high")
    volume: float = Field(default=0.0, ge=0, description="24h volume in base currency")


# ============================================
# Order Schema
# ============================================

class Order(BaseModel):
    """
    Canonical Order Record

    Produced fresh on every poll by the OrderStatusNormalizer; never mutated.

    Attributes:
        order_id: Exchange-generated order id
        pair: Canonical currency pair
        side: buy or sell
        type: Order type, None if the exchange used one we don't model
        status: Canonical status
        amount: Original order amount (base currency)
        filled_amount: Executed amount
        remaining_amount: amount - filled_amount
        rate: Limit price
        created_at: Creation time (UTC), if reported
    """

    order_id: str
    pair: CurrencyPair
    side: OrderSide
    type: Optional[OrderType] = None
    status: OrderStatus = OrderStatus.UNKNOWN
    amount: float = 0.0
    filled_amount: float = 0.0
    remaining_amount: float = 0.0
    rate: float = 0.0
    created_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


# ============================================
# Account Schemas
# ============================================

class AccountCurrencyInfo(BaseModel):
    """Balance of one currency."""

    currency: str
    total_value: float = 0.0
    hold: float = 0.0
    available: float = 0.0

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return v.upper()


class AccountInfo(BaseModel):
    """Balances of an exchange account."""

    exchange: str
    currencies: List[AccountCurrencyInfo] = Field(default_factory=list)

    def get_currency(self, code: str) -> Optional[AccountCurrencyInfo]:
        code = code.upper()
        for info in self.currencies:
            if info.currency == code:
                return info
        return None


class CurrencyPairInfo(BaseModel):
    """A tradable pair and the names of its currencies."""

    pair: CurrencyPair
    base_name: str = ""
    quote_name: str = ""


def parse_levels(levels: Iterable[Any], exchange: Optional[str] = None) -> List[OrderBookItem]:
    """
    Convert raw [price, amount, ...] levels into OrderBookItems.

    Raises:
        FormatError: If a level is not a sequence or a field isn't numeric
    """
    items = []
    for level in levels or []:
        if not isinstance(level, (list, tuple)) or len(level) < 2:
            raise FormatError(f"Malformed order book level: {level!r}", exchange)
        items.append(OrderBookItem(
            price=parse_float(level[0], "price", exchange),
            amount=parse_float(level[1], "amount", exchange),
        ))
    return items
