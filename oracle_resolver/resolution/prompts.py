"""
Prompt template for market resolution.

Implements the PromptBuilder protocol expected by ``resolution.engine.InferenceEngine``.
"""

from __future__ import annotations

from datetime import datetime, timezone

from .base import MAX_ODDS, MIN_ODDS
from ..chain.models import Market
from ..evidence.models import ExternalDataSnapshot


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ResolutionPromptBuilder:
    """Builds the oracle-resolution prompt for a single ended market."""

    def __init__(self, min_odds: int = MIN_ODDS, max_odds: int = MAX_ODDS):
        self.min_odds = min_odds
        self.max_odds = max_odds

    def build_resolution_prompt(
        self,
        market: Market,
        snapshot: ExternalDataSnapshot,
        now: datetime,
    ) -> str:
        """Deterministic for a given (market, snapshot, now)."""
        end_time = datetime.fromtimestamp(market.end_time, tz=timezone.utc)
        lo, hi = self.min_odds, self.max_odds

        prompt = f"""You are an oracle resolver for a prediction market. Analyze the following market and provide a resolution.

MARKET DETAILS:
Title: {market.title}
Description: {market.description}
Category: {market.category}
End Time: {_iso(end_time)}
Current Time: {_iso(now)}

EXTERNAL DATA:
{snapshot.to_json(indent=2)}

TASK:
1. Determine if the market should resolve to YES or NO
2. Provide a confidence score (0.0 to 1.0)
3. Suggest odds within the range {lo / 10000:.2f}-{hi / 10000:.2f} ({lo}-{hi} basis points)
4. Provide clear reasoning

Respond in JSON format:
{{
  "outcome": "YES" or "NO" or "UNDECIDED",
  "confidence": 0.0-1.0,
  "suggestedOddsYes": {lo}-{hi},
  "suggestedOddsNo": {lo}-{hi},
  "reasoning": "Clear explanation of your decision",
  "evidenceSources": ["list", "of", "sources"]
}}"""

        return prompt
