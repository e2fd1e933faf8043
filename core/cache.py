"""
Market Data Cache

Holds the latest OrderBook and Ticker snapshot per (exchange, pair, asset type).

Exchange drivers are the only writers; strategy code only reads. A put()
replaces the previous snapshot for its key wholesale, and snapshots are frozen
pydantic models, so a reader either sees the old book or the new one, never a
half-written one.

Locking:
    Each key has its own lock, held only for the duration of a dictionary
    swap (no I/O, no await). A registry lock guards creation of key locks.
    Readers of one key never wait on writers of another key.

Lifecycle:
    There is no eviction. Snapshots live until superseded, or until the
    owning exchange driver is torn down (remove_exchange / teardown_exchange).

Usage:
    cache = MarketDataCache()
    cache.put_orderbook("kraken", pair, "SPOT", book)
    book = cache.get_orderbook("kraken", pair, "SPOT")   # None on a miss
"""

import threading
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

from core.logging import get_logger
from core.pair import CurrencyPair
from core.schemas import OrderBook, Ticker

logger = get_logger(__name__)

T = TypeVar("T")

CacheKey = Tuple[str, CurrencyPair, str]


def make_key(exchange: str, pair: CurrencyPair, asset_type: str) -> CacheKey:
    """
    Canonical cache key.

    The pair object itself is part of the key (its codes are already
    case-normalized), never a display string.
    """
    if not isinstance(pair, CurrencyPair):
        raise TypeError(f"Cache keys require a CurrencyPair, got {type(pair).__name__}")
    return exchange.lower(), pair, asset_type.upper()


class SnapshotStore(Generic[T]):
    """
    Per-key store of the latest snapshot of one kind.

    Args:
        kind: Label used in log messages ("orderbook", "ticker")
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._entries: Dict[CacheKey, T] = {}
        self._locks: Dict[CacheKey, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: CacheKey) -> threading.Lock:
        lock = self._locks.get(key)
        if lock is None:
            with self._registry_lock:
                lock = self._locks.setdefault(key, threading.Lock())
        return lock

    def get(self, exchange: str, pair: CurrencyPair, asset_type: str) -> Optional[T]:
        """
        Latest snapshot for the key, or None if nothing was stored yet.

        A miss is reported as None rather than an empty snapshot so callers
        can trigger a fresh fetch.
        """
        key = make_key(exchange, pair, asset_type)
        with self._lock_for(key):
            return self._entries.get(key)

    def put(self, exchange: str, pair: CurrencyPair, asset_type: str, snapshot: T) -> None:
        """Replace the snapshot for the key."""
        key = make_key(exchange, pair, asset_type)
        with self._lock_for(key):
            self._entries[key] = snapshot

    def remove_exchange(self, exchange: str) -> int:
        """
        Drop every snapshot of an exchange (driver teardown only).

        Returns:
            Number of snapshots removed
        """
        name = exchange.lower()
        with self._registry_lock:
            keys = [key for key in self._locks if key[0] == name]
        removed = 0
        for key in keys:
            with self._lock_for(key):
                if self._entries.pop(key, None) is not None:
                    removed += 1
        if removed:
            logger.debug(f"Removed {removed} {self.kind} snapshot(s) of {name}")
        return removed

    def keys(self) -> List[CacheKey]:
        with self._registry_lock:
            candidates = list(self._locks)
        return [key for key in candidates if key in self._entries]

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self.keys())


class MarketDataCache:
    """
    Latest order books and tickers of every exchange.

    One instance is created at startup and passed to every exchange driver.
    """

    def __init__(self):
        self.orderbooks: SnapshotStore[OrderBook] = SnapshotStore("orderbook")
        self.tickers: SnapshotStore[Ticker] = SnapshotStore("ticker")

    def get_orderbook(self, exchange: str, pair: CurrencyPair, asset_type: str) -> Optional[OrderBook]:
        return self.orderbooks.get(exchange, pair, asset_type)

    def put_orderbook(self, exchange: str, pair: CurrencyPair, asset_type: str, book: OrderBook) -> None:
        self.orderbooks.put(exchange, pair, asset_type, book)

    def get_ticker(self, exchange: str, pair: CurrencyPair, asset_type: str) -> Optional[Ticker]:
        return self.tickers.get(exchange, pair, asset_type)

    def put_ticker(self, exchange: str, pair: CurrencyPair, asset_type: str, ticker: Ticker) -> None:
        self.tickers.put(exchange, pair, asset_type, ticker)

    def teardown_exchange(self, exchange: str) -> None:
        """Forget everything cached for an exchange whose driver is shut down."""
        self.orderbooks.remove_exchange(exchange)
        self.tickers.remove_exchange(exchange)

    def __repr__(self) -> str:
        return f"<MarketDataCache(orderbooks={len(self.orderbooks)}, tickers={len(self.tickers)})>"
