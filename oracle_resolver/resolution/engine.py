"""
Resolution inference engine.

Builds a prompt from the market and its evidence snapshot, calls a
reasoning service (OpenAI-compatible chat completions, OpenRouter by
default) and parses the first JSON object in the reply into a
ResolutionCandidate. Every call path ends in a valid candidate: failures
produce the Undecided / zero-confidence fallback.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx
from pydantic import ValidationError

from .base import MAX_ODDS, MIN_ODDS, PromptBuilder, ResolutionCandidate
from .prompts import ResolutionPromptBuilder
from ..chain.models import Market
from ..errors import InferenceError
from ..evidence.models import ExternalDataSnapshot
from ..utils import extract_json_object, with_retries

logger = logging.getLogger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL = "google/gemini-2.0-flash-001"


class InferenceEngine:
    """Turns (market, evidence) into a ResolutionCandidate via an LLM."""

    def __init__(
        self,
        config: dict,
        prompt_builder: Optional[PromptBuilder] = None,
        *,
        min_odds: int = MIN_ODDS,
        max_odds: int = MAX_ODDS,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Must include 'api_key'; optionally 'model', 'base_url',
                    'temperature', 'max_tokens', 'timeout', 'retry_attempts'.
            prompt_builder: Defaults to ResolutionPromptBuilder for the odds range.
            http_client: Optional shared client (not closed by the engine).
        """
        self.api_key = config["api_key"]
        self.model = config.get("model", DEFAULT_MODEL)
        self.base_url = config.get("base_url", OPENROUTER_URL)
        self.temperature = config.get("temperature", 0.2)
        self.max_tokens = config.get("max_tokens", 800)
        self.timeout = config.get("timeout", 60.0)
        self.retry_attempts = config.get("retry_attempts", 2)
        self.min_odds = min_odds
        self.max_odds = max_odds
        self.prompt_builder = prompt_builder or ResolutionPromptBuilder(min_odds, max_odds)
        self._http_client = http_client

    # ── Main entry ───────────────────────────────────────────────────

    async def infer(
        self,
        market: Market,
        snapshot: ExternalDataSnapshot,
        now: Optional[datetime] = None,
    ) -> ResolutionCandidate:
        """Resolve a market. Never raises; failures yield the fallback candidate."""
        now = now or datetime.now(timezone.utc)

        try:
            prompt = self.prompt_builder.build_resolution_prompt(market, snapshot, now)
            response_text = await with_retries(
                lambda: self._call_llm(prompt),
                attempts=self.retry_attempts,
                timeout=self.timeout,
                retry_on=(httpx.HTTPError,),
                label="reasoning service",
            )
            return self.parse_response(response_text)

        except Exception as e:
            logger.error("Inference error for market #%d: %s", market.id, e)
            return ResolutionCandidate.fallback(self.min_odds, self.max_odds)

    # ── LLM call ─────────────────────────────────────────────────────

    async def _call_llm(self, prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        if self._http_client is not None:
            response = await self._http_client.post(self.base_url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.base_url, json=payload, headers=headers)
        response.raise_for_status()
        data = response.json()
        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise InferenceError(f"Unexpected reasoning service payload: {data!r:.200}") from e

    # ── Response parser ──────────────────────────────────────────────

    def parse_response(self, response: str) -> ResolutionCandidate:
        """
        Parse the first JSON object in ``response`` and clamp its odds.

        Expected shape:
            {"outcome": "YES", "confidence": 0.85,
             "suggestedOddsYes": 9300, "suggestedOddsNo": 9100,
             "reasoning": "...", "evidenceSources": ["..."]}

        Raises:
            InferenceError: no JSON object, or one that fails validation
        """
        data = extract_json_object(response)
        if data is None:
            raise InferenceError("No JSON found in reasoning service response")
        try:
            candidate = ResolutionCandidate.model_validate(data)
        except ValidationError as e:
            raise InferenceError(f"Invalid resolution JSON: {e}") from e
        return candidate.clamp_odds(self.min_odds, self.max_odds)
