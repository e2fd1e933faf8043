"""
Exchange Manager: Central Registry for Exchange Drivers

This module provides the registry and factory for exchange driver instances.

Design:
    - One ExchangeManager is created at startup and passed to whoever needs
      exchanges; there is no process-wide instance
    - All drivers created by a manager share the manager's MarketDataCache
    - Centralized lifecycle management (initialize/shutdown/health check)

Example Usage:
    manager = ExchangeManager.from_configs(settings.exchange_configs)
    await manager.initialize_all()

    kraken = manager.get_exchange("kraken")
    book = await kraken.refresh_orderbook(CurrencyPair("ETH", "USD"))

    await manager.shutdown_all()

    # Adding a new exchange:
    # 1. Create the driver class (e.g., BitstampExchange)
    # 2. Add it to EXCHANGE_CLASSES
"""

from typing import Dict, Iterable, List, Optional, Type

from core.cache import MarketDataCache
from core.config import ExchangeConfig
from core.exchange_interface import ExchangeInterface
from core.logging import logger
from exchanges.binance import BinanceExchange
from exchanges.gemini import GeminiExchange
from exchanges.kraken import KrakenExchange
from exchanges.liqui import LiquiExchange

EXCHANGE_CLASSES: Dict[str, Type[ExchangeInterface]] = {
    KrakenExchange.name: KrakenExchange,
    BinanceExchange.name: BinanceExchange,
    GeminiExchange.name: GeminiExchange,
    LiquiExchange.name: LiquiExchange,
}


class ExchangeManager:
    """
    Central Manager for Exchange Drivers

    Attributes:
        cache: Market data cache shared by every driver created here
        exchanges: Dictionary mapping exchange names to driver instances

    Example:
        >>> manager = ExchangeManager()
        >>> manager.create_exchange(ExchangeConfig(name="kraken", enabled=True))
        <KrakenExchange(name='kraken')>
        >>> manager.list_exchanges()
        ['kraken']
    """

    def __init__(self, cache: Optional[MarketDataCache] = None):
        self.cache = cache if cache is not None else MarketDataCache()
        self.exchanges: Dict[str, ExchangeInterface] = {}

    @classmethod
    def from_configs(
        cls,
        configs: Iterable[ExchangeConfig],
        cache: Optional[MarketDataCache] = None,
    ) -> "ExchangeManager":
        """
        Build a manager with one driver per configuration.

        Raises:
            ValueError: Unknown exchange name
            FormatError: Malformed pair in a configuration
        """
        manager = cls(cache)
        for config in configs:
            manager.create_exchange(config)
        logger.info(
            f"ExchangeManager initialized with {len(manager)} exchange(s): "
            f"{', '.join(manager.exchanges.keys())}"
        )
        return manager

    # ============================================
    # Registration
    # ============================================

    def register(self, exchange: ExchangeInterface) -> ExchangeInterface:
        """
        Add a driver instance to the registry.

        Raises:
            ValueError: If an exchange with the same name is already registered
        """
        name = exchange.name.lower()
        if name in self.exchanges:
            raise ValueError(f"Exchange '{name}' is already registered")
        self.exchanges[name] = exchange
        logger.debug(f"Registered exchange: {name}")
        return exchange

    def create_exchange(self, config: ExchangeConfig) -> ExchangeInterface:
        """
        Instantiate, configure and register the driver named by a configuration.

        Raises:
            ValueError: If no driver exists for config.name
        """
        exchange_class = EXCHANGE_CLASSES.get(config.name.lower())
        if exchange_class is None:
            available = ", ".join(EXCHANGE_CLASSES)
            raise ValueError(
                f"Exchange '{config.name}' is not supported. "
                f"Available exchanges: {available}"
            )
        exchange = exchange_class(cache=self.cache)
        exchange.setup(config)
        return self.register(exchange)

    # ============================================
    # Exchange Retrieval Methods
    # ============================================

    def get_exchange(self, name: str) -> ExchangeInterface:
        """
        Get an exchange driver by name.

        Raises:
            ValueError: If the exchange is not registered
        """
        name = name.lower()

        if name not in self.exchanges:
            available = ", ".join(self.exchanges.keys())
            logger.error(f"Exchange '{name}' not found. Available: {available}")
            raise ValueError(
                f"Exchange '{name}' is not supported. "
                f"Available exchanges: {available}"
            )

        return self.exchanges[name]

    def has_exchange(self, name: str) -> bool:
        return name.lower() in self.exchanges

    def list_exchanges(self) -> List[str]:
        return list(self.exchanges.keys())

    def enabled_exchanges(self) -> List[ExchangeInterface]:
        """Drivers whose configuration enabled them."""
        return [exchange for exchange in self.exchanges.values() if exchange.enabled]

    # ============================================
    # Lifecycle Management
    # ============================================

    async def initialize_all(self) -> None:
        """
        Initialize every enabled exchange.

        A failing exchange is logged and skipped; the others still start.
        """
        logger.info("Initializing all exchanges...")

        for exchange in self.enabled_exchanges():
            try:
                await exchange.initialize()
                logger.info(f"✓ {exchange.name.capitalize()} initialized successfully")
            except Exception as e:
                logger.error(f"✗ Failed to initialize {exchange.name}: {e}")

        logger.info("All exchanges initialized")

    async def shutdown_all(self) -> None:
        """
        Shutdown all exchanges and drop their cached snapshots.

        Errors are logged so every exchange gets a chance to shut down.
        """
        logger.info("Shutting down all exchanges...")

        for name, exchange in self.exchanges.items():
            try:
                await exchange.shutdown()
                logger.info(f"✓ {name.capitalize()} shut down successfully")
            except Exception as e:
                logger.error(f"✗ Error shutting down {name}: {e}")
            finally:
                exchange.cache.teardown_exchange(name)

        logger.info("All exchanges shut down")

    # ============================================
    # Health Check Methods
    # ============================================

    async def health_check_all(self) -> Dict[str, bool]:
        """
        Check health status of all exchanges.

        Returns:
            Dict[str, bool]: Exchange name -> healthy
        """
        health_status = {}
        for name, exchange in self.exchanges.items():
            try:
                health_status[name] = await exchange.health_check()
            except Exception as e:
                logger.error(f"Health check failed for {name}: {e}")
                health_status[name] = False

        return health_status

    # ============================================
    # Capability Queries
    # ============================================

    def get_exchanges_with_feature(self, feature: str) -> List[str]:
        """
        Names of the exchanges supporting a feature.

        Example:
            >>> manager.get_exchanges_with_feature("order_lookup")
            ['binance', 'gemini']
        """
        return [
            name for name, exchange in self.exchanges.items()
            if exchange.supports(feature)
        ]

    def get_exchange_capabilities(self, name: str) -> Dict[str, bool]:
        exchange = self.get_exchange(name)
        return dict(exchange.capabilities)

    # ============================================
    # Utility Methods
    # ============================================

    def __repr__(self) -> str:
        return f"<ExchangeManager(exchanges={list(self.exchanges.keys())})>"

    def __len__(self) -> int:
        return len(self.exchanges)
