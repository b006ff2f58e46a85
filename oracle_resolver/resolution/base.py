"""
Resolution types shared by the inference engine, gate and submitter.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..chain.models import Market, Resolution
from ..evidence.models import ExternalDataSnapshot

# Odds bounds in basis points (10000 = 100%)
MIN_ODDS = 9000
MAX_ODDS = 9500
ODDS_SCALE = 10000

MANUAL_REVIEW_REASONING = "Error querying AI - requires manual review"


class Outcome(str, Enum):
    YES = "YES"
    NO = "NO"
    UNDECIDED = "UNDECIDED"

    @property
    def code(self) -> int:
        """On-chain outcome code: UNDECIDED=0, YES=1, NO=2."""
        return int(Resolution[self.value])


# ── Resolution candidate ─────────────────────────────────────────────

class ResolutionCandidate(BaseModel):
    """
    A proposed outcome plus confidence and rationale, produced before any
    on-chain write. Field aliases match the reasoning service's JSON.
    """
    model_config = ConfigDict(populate_by_name=True)

    outcome: Outcome = Outcome.UNDECIDED
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    suggested_odds_yes: Optional[int] = Field(None, alias="suggestedOddsYes")
    suggested_odds_no: Optional[int] = Field(None, alias="suggestedOddsNo")
    reasoning: str = ""
    evidence_sources: list[str] = Field(default_factory=list, alias="evidenceSources")

    @field_validator("outcome", mode="before")
    @classmethod
    def _normalise_outcome(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("suggested_odds_yes", "suggested_odds_no", mode="before")
    @classmethod
    def _round_odds(cls, v: Any) -> Any:
        if isinstance(v, str):
            if not v.strip():
                return v
            v = float(v)
        if isinstance(v, float):
            if math.isnan(v):
                return None
            if math.isinf(v):
                return ODDS_SCALE if v > 0 else 0
            return round(v)
        return v

    def clamp_odds(self, min_odds: int = MIN_ODDS, max_odds: int = MAX_ODDS) -> "ResolutionCandidate":
        """Return a copy with both odds clamped into ``[min_odds, max_odds]``."""
        midpoint = (min_odds + max_odds) // 2

        def _clamp(v: Optional[int]) -> int:
            if v is None:
                return midpoint
            return max(min_odds, min(max_odds, v))

        return self.model_copy(update={
            "suggested_odds_yes": _clamp(self.suggested_odds_yes),
            "suggested_odds_no": _clamp(self.suggested_odds_no),
        })

    @classmethod
    def fallback(cls, min_odds: int = MIN_ODDS, max_odds: int = MAX_ODDS) -> "ResolutionCandidate":
        """Undecided, zero-confidence candidate used whenever inference fails."""
        midpoint = (min_odds + max_odds) // 2
        return cls(
            outcome=Outcome.UNDECIDED,
            confidence=0.0,
            suggested_odds_yes=midpoint,
            suggested_odds_no=midpoint,
            reasoning=MANUAL_REVIEW_REASONING,
            evidence_sources=[],
        )


# ── Prompt builder protocol ──────────────────────────────────────────

class PromptBuilder(Protocol):
    """Builds the reasoning-service prompt for one market."""

    def build_resolution_prompt(
        self,
        market: Market,
        snapshot: ExternalDataSnapshot,
        now: datetime,
    ) -> str:
        ...
