"""
Backfill scanner.

Walks market ids from 1 and dispatches every Ended, not-yet-processed
market to the shared handler, catching markets whose MarketEnded event was
missed.

Two enumeration modes:

* bounded (default) - scan ``1..marketCount()``; ids that do not exist are
  skipped and the walk continues.
* legacy - when the contract has no ``marketCount()`` accessor (or
  ``use_market_count`` is off), scan ``1..max_markets`` and stop at the
  first id the contract reports as missing. Any gap in the id sequence
  truncates the pass: later markets are not visited until the gap is filled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .guard import IdempotencyGuard
from .listener import MarketHandler
from ..chain.contract import OracleMarketsClient
from ..errors import ChainReadError, MarketNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_MAX_MARKETS = 100
DEFAULT_CONCURRENCY = 4


class BackfillScanner:

    def __init__(
        self,
        client: OracleMarketsClient,
        guard: IdempotencyGuard,
        handler: MarketHandler,
        *,
        max_markets: int = DEFAULT_MAX_MARKETS,
        use_market_count: bool = True,
        max_concurrency: int = DEFAULT_CONCURRENCY,
    ):
        self.client = client
        self.guard = guard
        self.handler = handler
        self.max_markets = max_markets
        self.use_market_count = use_market_count
        self.max_concurrency = max(1, max_concurrency)

    async def scan(self) -> list[int]:
        """Run one pass. Returns the ids dispatched to the handler, in id order."""
        bound = await self._market_count() if self.use_market_count else None
        if bound is None:
            logger.info("Scanning markets 1..%d (stop at first gap)", self.max_markets)
        else:
            logger.info("Scanning markets 1..%d", bound)

        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks: list[asyncio.Task] = []
        dispatched: list[int] = []

        last_id = bound if bound is not None else self.max_markets
        for market_id in range(1, last_id + 1):
            if self.guard.is_processed(market_id):
                continue
            try:
                market = await self.client.get_market(market_id)
            except MarketNotFoundError:
                if bound is None:
                    logger.info("Market #%d does not exist, ending scan", market_id)
                    break
                logger.warning("Market #%d missing below marketCount(), skipping", market_id)
                continue
            except ChainReadError as e:
                logger.error("Could not read market #%d: %s", market_id, e)
                continue

            if not market.is_ended:
                continue

            logger.info("Found ended market: #%d", market_id)
            dispatched.append(market_id)
            tasks.append(asyncio.create_task(self._run_handler(market_id, semaphore)))

        if tasks:
            await asyncio.gather(*tasks)
        logger.info("Scan complete: %d ended markets dispatched", len(dispatched))
        return dispatched

    async def _market_count(self) -> Optional[int]:
        count = await self.client.market_count()
        if count is None:
            logger.warning("Contract has no marketCount(); falling back to gap-terminated scan")
        return count

    async def _run_handler(self, market_id: int, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            try:
                await self.handler(market_id, "scan")
            except Exception as e:
                logger.error("Error processing market #%d during scan: %s", market_id, e)
