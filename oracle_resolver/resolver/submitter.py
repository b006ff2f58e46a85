"""
Transaction submitter.

Encodes a ResolutionCandidate as a ``resolveMarket`` call, anchors the
rationale by its keccak-256 evidence hash, and waits for confirmation.
Only the hash goes on-chain; the full evidence JSON stays off-chain.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from web3 import Web3

from ..chain.contract import RECEIPT_TIMEOUT, OracleMarketsClient
from ..resolution.base import Outcome, ResolutionCandidate
from ..utils import canonical_json

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionReceipt:
    market_id: int
    outcome_code: int
    evidence_hash: str
    tx_hash: str
    block_number: int


def outcome_code(outcome: Outcome | str) -> int:
    """UNDECIDED=0, YES=1, NO=2."""
    return Outcome(outcome).code


def evidence_payload(candidate: ResolutionCandidate, timestamp_ms: int) -> dict:
    return {
        "outcome": candidate.outcome.value,
        "confidence": candidate.confidence,
        "reasoning": candidate.reasoning,
        "evidenceSources": list(candidate.evidence_sources),
        "timestamp": timestamp_ms,
    }


def compute_evidence_hash(candidate: ResolutionCandidate, timestamp_ms: int) -> str:
    """keccak-256 of the canonical evidence JSON, as 0x-prefixed hex."""
    encoded = canonical_json(evidence_payload(candidate, timestamp_ms)).encode("utf-8")
    return Web3.to_hex(Web3.keccak(encoded))


class TransactionSubmitter:
    """Submits and confirms resolutions. Does not touch the idempotency guard."""

    def __init__(
        self,
        client: OracleMarketsClient,
        receipt_timeout: float = RECEIPT_TIMEOUT,
    ):
        self.client = client
        self.receipt_timeout = receipt_timeout

    async def submit(
        self,
        market_id: int,
        candidate: ResolutionCandidate,
        timestamp_ms: Optional[int] = None,
    ) -> SubmissionReceipt:
        """
        Submit ``resolveMarket`` and wait for inclusion.

        Raises:
            ChainWriteError: submission failed, timed out or reverted
        """
        code = outcome_code(candidate.outcome)
        ts = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
        evidence_hash = compute_evidence_hash(candidate, ts)

        logger.info(
            "Submitting resolution for market #%d: outcome=%s (%d) evidence=%s",
            market_id, candidate.outcome.value, code, evidence_hash,
        )
        tx_hash = await self.client.resolve_market(market_id, code, evidence_hash)
        logger.info("Transaction hash: %s, waiting for confirmation...", tx_hash)

        block_number = await self.client.wait_for_receipt(tx_hash, timeout=self.receipt_timeout)

        link = self.client.explorer_url(tx_hash)
        logger.info(
            "Resolution confirmed for market #%d in block %d%s",
            market_id, block_number, f" ({link})" if link else "",
        )
        return SubmissionReceipt(
            market_id=market_id,
            outcome_code=code,
            evidence_hash=evidence_hash,
            tx_hash=tx_hash,
            block_number=block_number,
        )
