"""
Exchange Polling Loop

Background tasks that keep the market data cache fresh: one ExchangePoller
per enabled exchange, each an independent asyncio task, so a slow or
throttled exchange never delays another one.

Each cycle refreshes the ticker and order book of every enabled pair, then
waits the exchange's polling delay. A rate-limited pair keeps its previous
snapshot; any other exchange error is logged and the cycle moves on to the
next pair. Programming errors are not caught.

Stopping is cooperative: stop() wakes the delay and the loop exits before the
next cycle. A REST call already in flight completes first.

Usage:
    supervisor = PollingSupervisor(manager)
    await supervisor.start_all()
    ...
    await supervisor.stop_all()
"""

import asyncio
from typing import Dict, List, Optional

from core.errors import ExchangeError, RateLimitedError
from core.exchange_interface import ExchangeInterface
from core.exchange_manager import ExchangeManager
from core.logging import get_logger
from core.schemas import SPOT


class ExchangePoller:
    """
    Polls one exchange's enabled pairs.

    Args:
        exchange: Exchange driver
        asset_type: Asset type to poll
        poll_tickers: Refresh tickers each cycle
        poll_orderbooks: Refresh order books each cycle
    """

    def __init__(
        self,
        exchange: ExchangeInterface,
        asset_type: str = SPOT,
        poll_tickers: bool = True,
        poll_orderbooks: bool = True,
    ) -> None:
        self.exchange = exchange
        self.asset_type = asset_type
        self.poll_tickers = poll_tickers
        self.poll_orderbooks = poll_orderbooks
        self.cycles = 0
        self._logger = get_logger(f"poller.{exchange.name}")
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def poll_once(self) -> None:
        """Refresh tickers and order books of every enabled pair once."""
        pairs = list(self.exchange.enabled_pairs)

        if self.poll_tickers and pairs:
            try:
                await self.exchange.update_tickers(pairs, self.asset_type)
            except RateLimitedError as e:
                self._logger.warning(f"{self.exchange.name}: tickers rate limited, keeping cached snapshots ({e})")
            except ExchangeError as e:
                self._logger.error(f"{self.exchange.name}: failed to update tickers: {e}")

        if self.poll_orderbooks:
            for pair in pairs:
                try:
                    await self.exchange.update_orderbook(pair, self.asset_type)
                except RateLimitedError as e:
                    self._logger.warning(f"{self.exchange.name}: {pair} order book rate limited, keeping cached snapshot ({e})")
                except ExchangeError as e:
                    self._logger.error(f"{self.exchange.name}: failed to update {pair} order book: {e}")

        self.cycles += 1

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._logger.info(
            f"Polling {self.exchange.name} every {self.exchange.polling_delay}s "
            f"({len(self.exchange.enabled_pairs)} pair(s))"
        )
        while not self._stop.is_set():
            cycle_start = asyncio.get_running_loop().time()
            await self.poll_once()
            elapsed = asyncio.get_running_loop().time() - cycle_start
            self._logger.debug(f"{self.exchange.name} poll cycle finished in {elapsed:.2f}s")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.exchange.polling_delay)
            except asyncio.TimeoutError:
                pass
        self._logger.info(f"Stopped polling {self.exchange.name}")

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop.clear()
        self._task = asyncio.create_task(self.run(), name=f"poller_{self.exchange.name}")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        await self._task
        self._task = None


class PollingSupervisor:
    """One ExchangePoller per enabled exchange of a manager."""

    def __init__(self, manager: ExchangeManager, asset_type: str = SPOT) -> None:
        self.manager = manager
        self.asset_type = asset_type
        self.pollers: Dict[str, ExchangePoller] = {}
        self._logger = get_logger("poller")

    async def start_all(self) -> List[str]:
        """
        Start polling every enabled exchange.

        Returns:
            Names of the exchanges being polled
        """
        for exchange in self.manager.enabled_exchanges():
            if exchange.name in self.pollers:
                continue
            poller = ExchangePoller(exchange, self.asset_type)
            poller.start()
            self.pollers[exchange.name] = poller
        self._logger.info(f"Polling {len(self.pollers)} exchange(s): {', '.join(self.pollers) or 'none'}")
        return list(self.pollers)

    async def stop_all(self) -> None:
        await asyncio.gather(*(poller.stop() for poller in self.pollers.values()))
        self.pollers.clear()
        self._logger.info("All pollers stopped")
