"""
Oracle resolver service.

Defines the per-market pipeline shared by both triggers:
  claim -> read market -> collect evidence -> infer -> gate -> submit -> commit

The MarketEnded listener and the backfill scanner both call
``handle_market_ended``; the idempotency guard's claim makes sure only one
of them works on a given market at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Optional

from .database import DEFAULT_DB_PATH, Database
from .guard import IdempotencyGuard
from .listener import POLL_INTERVAL, MarketEventListener
from .scanner import DEFAULT_CONCURRENCY, DEFAULT_MAX_MARKETS, BackfillScanner
from .submitter import TransactionSubmitter
from ..chain.contract import RECEIPT_TIMEOUT, OracleMarketsClient
from ..evidence import coingecko, defillama
from ..evidence.aggregator import DataAggregator
from ..resolution.base import MAX_ODDS, MIN_ODDS
from ..resolution.engine import InferenceEngine
from ..resolution.gate import DEFAULT_CONFIDENCE_THRESHOLD, ConfidenceGate

logger = logging.getLogger(__name__)

DEFAULT_SCAN_INTERVAL = 300.0


class HandleResult(str, Enum):
    SKIPPED = "SKIPPED"        # already resolved or in flight
    NOT_ENDED = "NOT_ENDED"    # market state is not Ended
    DEFERRED = "DEFERRED"      # confidence below threshold
    RESOLVED = "RESOLVED"      # confirmed on-chain


class OracleResolver:
    """Long-running resolver: listener + periodic backfill over one handler."""

    def __init__(
        self,
        client: OracleMarketsClient,
        aggregator: DataAggregator,
        engine: InferenceEngine,
        gate: ConfidenceGate,
        submitter: TransactionSubmitter,
        guard: IdempotencyGuard,
        *,
        db: Optional[Database] = None,
        listener: Optional[MarketEventListener] = None,
        scan_interval: float = DEFAULT_SCAN_INTERVAL,
        max_markets: int = DEFAULT_MAX_MARKETS,
        use_market_count: bool = True,
        max_concurrency: int = DEFAULT_CONCURRENCY,
    ):
        self.client = client
        self.aggregator = aggregator
        self.engine = engine
        self.gate = gate
        self.submitter = submitter
        self.guard = guard
        self.db = db
        self.listener = listener or MarketEventListener(client)
        self.scanner = BackfillScanner(
            client,
            guard,
            self.handle_market_ended,
            max_markets=max_markets,
            use_market_count=use_market_count,
            max_concurrency=max_concurrency,
        )
        self.scan_interval = scan_interval
        self._scan_task: Optional[asyncio.Task] = None
        self._stopped = asyncio.Event()

    @classmethod
    def from_config(cls, config: dict) -> "OracleResolver":
        """Construct a fully wired resolver from a loaded config dict."""
        chain_cfg = config.get("chain", {})
        res_cfg = config.get("resolution", {})
        scan_cfg = config.get("scan", {})
        min_odds = res_cfg.get("min_odds", MIN_ODDS)
        max_odds = res_cfg.get("max_odds", MAX_ODDS)

        client = OracleMarketsClient.from_config(config)
        db = Database(config.get("database", {}).get("path", DEFAULT_DB_PATH))
        return cls(
            client=client,
            aggregator=DataAggregator(config.get("evidence", {})),
            engine=InferenceEngine(
                config.get("inference", {}), min_odds=min_odds, max_odds=max_odds
            ),
            gate=ConfidenceGate(
                res_cfg.get("confidence_threshold", DEFAULT_CONFIDENCE_THRESHOLD)
            ),
            submitter=TransactionSubmitter(
                client, chain_cfg.get("receipt_timeout", RECEIPT_TIMEOUT)
            ),
            guard=IdempotencyGuard(db),
            db=db,
            listener=MarketEventListener(
                client, config.get("listener", {}).get("poll_interval", POLL_INTERVAL)
            ),
            scan_interval=scan_cfg.get("interval_seconds", DEFAULT_SCAN_INTERVAL),
            max_markets=scan_cfg.get("max_markets", DEFAULT_MAX_MARKETS),
            use_market_count=scan_cfg.get("use_market_count", True),
            max_concurrency=scan_cfg.get("max_concurrency", DEFAULT_CONCURRENCY),
        )

    # ── Shared handler ───────────────────────────────────────────────

    async def handle_market_ended(self, market_id: int, trigger: str = "event") -> HandleResult:
        """
        Resolve one market if it is Ended and the candidate is confident enough.

        Raises:
            ChainReadError: the market could not be read
            ChainWriteError: submission or confirmation failed; the market
                stays unprocessed and is retried on the next trigger
        """
        market_id = int(market_id)
        if not await self.guard.claim(market_id):
            logger.info("Market #%d already processed or in flight, skipping", market_id)
            return HandleResult.SKIPPED

        committed = False
        try:
            market = await self.client.get_market(market_id)
            if not market.is_ended:
                logger.info(
                    "Market #%d is %s, not Ended; nothing to do",
                    market_id, market.state.name,
                )
                return HandleResult.NOT_ENDED

            logger.info("=" * 60)
            logger.info("Processing market #%d (%s)", market_id, trigger)
            logger.info("Title: %s", market.title)
            logger.info("Category: %s", market.category)

            snapshot = await self.aggregator.collect(market)
            candidate = await self.engine.infer(market, snapshot)
            admitted = self.gate.admits(candidate)

            logger.info(
                "Resolution: outcome=%s confidence=%.1f%% reasoning=%s",
                candidate.outcome.value, candidate.confidence * 100, candidate.reasoning,
            )
            await self._record_attempt(market_id, trigger, candidate, admitted, snapshot.to_json(indent=None))

            if not admitted:
                logger.warning(
                    "Confidence %.2f below threshold %.2f for market #%d; left for manual review",
                    candidate.confidence, self.gate.threshold, market_id,
                )
                return HandleResult.DEFERRED

            receipt = await self.submitter.submit(market_id, candidate)
            await self.guard.commit(market_id, receipt, candidate)
            committed = True
            return HandleResult.RESOLVED

        except Exception as e:
            logger.error("Error processing market #%d: %s", market_id, e)
            raise
        finally:
            if not committed:
                await self.guard.release(market_id)

    async def _record_attempt(self, market_id, trigger, candidate, admitted, evidence) -> None:
        if self.db is None:
            return
        try:
            await self.db.record_attempt(
                market_id,
                trigger=trigger,
                outcome=candidate.outcome.value,
                confidence=candidate.confidence,
                admitted=admitted,
                reasoning=candidate.reasoning,
                evidence=evidence,
            )
        except Exception as e:
            logger.warning("Could not record attempt for market #%d: %s", market_id, e)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        logger.info("Oracle resolver starting (contract %s)", self.client.address)
        if self.db is not None:
            await self.db.init_schema()
        await self.guard.load()

        self.listener.subscribe(self.handle_market_ended)
        await self.scan_once()

        if self.scan_interval > 0:
            self._scan_task = asyncio.create_task(self._scan_loop(), name="backfill-scan")
        logger.info("Oracle resolver is now listening for events")

    async def scan_once(self) -> list[int]:
        try:
            return await self.scanner.scan()
        except Exception as e:
            logger.error("Error scanning markets: %s", e)
            return []

    async def _scan_loop(self) -> None:
        while True:
            await asyncio.sleep(self.scan_interval)
            await self.scan_once()

    async def run_forever(self) -> None:
        await self.start()
        await self._stopped.wait()

    async def stop(self) -> None:
        """Unsubscribe and cancel background work; in-flight handling is not awaited."""
        logger.info("Stopping oracle resolver...")
        await self.listener.unsubscribe()
        self.listener.cancel_pending()

        task, self._scan_task = self._scan_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await coingecko.close()
        await defillama.close()
        self._stopped.set()
        logger.info("Oracle resolver stopped")
