"""
Pydantic models for OracleMarkets contract data.

Shared type definitions used by the chain client, evidence layer and resolver.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional, Sequence

from pydantic import BaseModel


class MarketState(IntEnum):
    DRAFT = 0
    ACTIVE = 1
    ENDED = 2
    RESOLVED = 3
    CANCELLED = 4
    REFUNDED = 5


class Resolution(IntEnum):
    """On-chain resolution value; doubles as the ``resolveMarket`` outcome code."""
    UNDECIDED = 0
    YES = 1
    NO = 2


# Order of fields in the Market struct returned by ``getMarket``
MARKET_FIELDS = (
    "id",
    "creator",
    "title",
    "description",
    "category",
    "end_time",
    "created_at",
    "state",
    "resolution",
    "odds_yes",
    "odds_no",
    "total_yes_pool",
    "total_no_pool",
)


class Market(BaseModel):
    """
    Read-only view of a market as stored by the OracleMarkets contract.

    ``end_time`` / ``created_at`` are unix seconds; pools are in wei and
    odds in basis points (10000 = 100%).
    """
    id: int
    creator: str = ""
    title: str = ""
    description: str = ""
    category: str = ""
    end_time: int = 0
    created_at: int = 0
    state: MarketState = MarketState.DRAFT
    resolution: Resolution = Resolution.UNDECIDED
    odds_yes: int = 0
    odds_no: int = 0
    total_yes_pool: int = 0
    total_no_pool: int = 0

    @classmethod
    def from_tuple(cls, raw: Sequence[Any]) -> "Market":
        """Build a Market from the positional struct returned by web3."""
        if len(raw) < len(MARKET_FIELDS):
            raise ValueError(
                f"Market struct has {len(raw)} fields, expected {len(MARKET_FIELDS)}"
            )
        return cls(**dict(zip(MARKET_FIELDS, raw)))

    @property
    def is_ended(self) -> bool:
        return self.state == MarketState.ENDED


class MarketEndedEvent(BaseModel):
    """A decoded ``MarketEnded(marketId, timestamp)`` log."""
    market_id: int
    timestamp: int = 0
    block_number: int = 0
    tx_hash: Optional[str] = None
