"""
Idempotency guard.

Per-market state keyed by id: a market is either unclaimed, in flight
(one handler owns it) or resolved (confirmed on-chain by this resolver).
``claim`` is an atomic check-then-mark, so of several concurrent triggers
for the same market exactly one proceeds to any I/O. Resolved ids are
persisted and reloaded at start-up; the resolved set only ever grows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .database import Database
from .submitter import SubmissionReceipt
from ..resolution.base import ResolutionCandidate

logger = logging.getLogger(__name__)


class IdempotencyGuard:

    def __init__(self, db: Optional[Database] = None):
        self.db = db
        self._resolved: set[int] = set()
        self._in_flight: set[int] = set()
        self._lock = asyncio.Lock()

    async def load(self) -> int:
        """Seed the resolved set from the store. Returns how many ids were loaded."""
        if self.db is None:
            return 0
        ids = await self.db.get_resolved_market_ids()
        async with self._lock:
            self._resolved |= ids
        logger.info("Loaded %d previously resolved markets", len(ids))
        return len(ids)

    async def claim(self, market_id: int) -> bool:
        """Take ownership of ``market_id``; False if resolved or already in flight."""
        async with self._lock:
            if market_id in self._resolved or market_id in self._in_flight:
                return False
            self._in_flight.add(market_id)
            return True

    async def release(self, market_id: int) -> None:
        """Give up a claim without resolving (deferred or failed)."""
        async with self._lock:
            self._in_flight.discard(market_id)

    async def commit(
        self,
        market_id: int,
        receipt: SubmissionReceipt,
        candidate: ResolutionCandidate,
    ) -> None:
        """Mark ``market_id`` resolved. Call only after the transaction is confirmed."""
        async with self._lock:
            self._resolved.add(market_id)
            self._in_flight.discard(market_id)

        if self.db is not None:
            try:
                await self.db.record_resolution(
                    market_id,
                    outcome=candidate.outcome.value,
                    outcome_code=receipt.outcome_code,
                    confidence=candidate.confidence,
                    evidence_hash=receipt.evidence_hash,
                    tx_hash=receipt.tx_hash,
                    block_number=receipt.block_number,
                )
            except Exception as e:
                # in-memory set still blocks resubmission
                logger.error("Failed to persist resolution of market #%d: %s", market_id, e)

    def is_processed(self, market_id: int) -> bool:
        return market_id in self._resolved

    @property
    def processed(self) -> frozenset[int]:
        return frozenset(self._resolved)

    @property
    def in_flight(self) -> frozenset[int]:
        return frozenset(self._in_flight)
