"""
MarketEnded event listener.

Polls the contract's MarketEnded logs and hands every market id to the
shared handler in its own task. No filtering happens here; the handler
checks idempotency and market state. A failing poll or handler is logged
and the listener keeps going; missed markets are picked up by backfill.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Optional

from ..chain.contract import OracleMarketsClient
from ..chain.models import MarketEndedEvent

logger = logging.getLogger(__name__)

MarketHandler = Callable[[int, str], Awaitable[Any]]

POLL_INTERVAL = 5.0
MAX_BLOCK_RANGE = 2000


class MarketEventListener:

    def __init__(
        self,
        client: OracleMarketsClient,
        poll_interval: float = POLL_INTERVAL,
        *,
        start_block: Optional[int] = None,
        max_block_range: int = MAX_BLOCK_RANGE,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.max_block_range = max_block_range
        self._next_block = start_block
        self._handler: Optional[MarketHandler] = None
        self._task: Optional[asyncio.Task] = None
        self._deliveries: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, handler: MarketHandler) -> None:
        """Start polling and deliver each MarketEnded id to ``handler(market_id, "event")``."""
        if self.running:
            raise RuntimeError("Listener already subscribed")
        self._handler = handler
        self._task = asyncio.create_task(self._poll_loop(), name="market-ended-listener")
        logger.info("Listening for MarketEnded events every %.1fs", self.poll_interval)

    async def unsubscribe(self) -> None:
        """Stop polling. Deliveries already running are left to the caller."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._handler = None
        logger.info("MarketEnded listener stopped")

    def cancel_pending(self) -> None:
        for task in list(self._deliveries):
            task.cancel()

    # ── Polling ──────────────────────────────────────────────────────

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.error("MarketEnded poll failed: %s", e)
            await asyncio.sleep(self.poll_interval)

    async def poll_once(self) -> list[MarketEndedEvent]:
        """Fetch logs since the last poll and dispatch them. Returns the events seen."""
        latest = await self.client.block_number()
        if self._next_block is None:
            self._next_block = latest
        if self._next_block > latest:
            return []

        from_block = self._next_block
        to_block = min(latest, from_block + self.max_block_range - 1)
        events = await self.client.get_market_ended_events(from_block, to_block)
        self._next_block = to_block + 1

        for event in events:
            logger.info(
                "MarketEnded event detected: market #%d (block %d)",
                event.market_id, event.block_number,
            )
            if self._handler is not None:
                self._dispatch(event, self._handler)
        return events

    def _dispatch(self, event: MarketEndedEvent, handler: MarketHandler) -> None:
        task = asyncio.create_task(
            self._deliver(event, handler), name=f"market-ended-{event.market_id}"
        )
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _deliver(self, event: MarketEndedEvent, handler: MarketHandler) -> None:
        try:
            await handler(event.market_id, "event")
        except Exception as e:
            logger.error("Error handling MarketEnded for market #%d: %s", event.market_id, e)
