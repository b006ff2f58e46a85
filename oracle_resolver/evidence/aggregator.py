"""
External data aggregator.

Picks evidence sources from a market's category (case-insensitive
substring match) and fetches each one independently. A failing source is
logged and left out; ``collect`` itself never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from . import coingecko, defillama
from .models import EvidenceRecord, ExternalDataSnapshot
from ..chain.models import Market
from ..errors import EvidenceFetchError

logger = logging.getLogger(__name__)

DEFAULT_PRICE_COINS = ["bitcoin", "ethereum"]

SourceFetcher = Callable[[], Awaitable[EvidenceRecord]]


class DataAggregator:
    """Category-driven, best-effort evidence collection."""

    def __init__(self, config: Optional[dict] = None):
        """
        Args:
            config: The ``evidence`` config section; optional keys
                    'price_coins', 'tvl_top_n', 'coingecko_api', 'timeout'.
        """
        cfg = config or {}
        self.price_coins: list[str] = cfg.get("price_coins", DEFAULT_PRICE_COINS)
        self.tvl_top_n: int = cfg.get("tvl_top_n", 5)
        self.coingecko_api: Optional[str] = cfg.get("coingecko_api")
        self.timeout: float = cfg.get("timeout", 10.0)

        # (source name, category keywords, fetcher) in snapshot order
        self.rules: list[tuple[str, tuple[str, ...], SourceFetcher]] = [
            ("price_data", ("price", "crypto"), self._fetch_price_data),
            ("tvl_data", ("defi",), self._fetch_tvl_data),
        ]

    def sources_for(self, category: str) -> list[tuple[str, SourceFetcher]]:
        """Return the (name, fetcher) pairs whose keywords occur in ``category``."""
        cat = (category or "").lower()
        return [
            (name, fetcher)
            for name, keywords, fetcher in self.rules
            if any(kw in cat for kw in keywords)
        ]

    async def collect(self, market: Market) -> ExternalDataSnapshot:
        snapshot = ExternalDataSnapshot(timestamp=int(time.time() * 1000))
        selected = self.sources_for(market.category)
        if not selected:
            return snapshot

        results = await asyncio.gather(
            *(fetcher() for _, fetcher in selected), return_exceptions=True
        )
        for (name, _), result in zip(selected, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Evidence source %s failed for market #%d: %s",
                    name, market.id, result,
                )
                continue
            snapshot.sources.append(result)

        logger.info(
            "Collected %d/%d evidence sources for market #%d",
            len(snapshot.sources), len(selected), market.id,
        )
        return snapshot

    # ── Sources ──────────────────────────────────────────────────────

    async def _fetch_price_data(self) -> EvidenceRecord:
        results = await asyncio.gather(
            *(
                coingecko.get_price(
                    coin, base_url=self.coingecko_api, timeout=self.timeout
                )
                for coin in self.price_coins
            ),
            return_exceptions=True,
        )
        prices: list[Optional[float]] = []
        for coin, result in zip(self.price_coins, results):
            if isinstance(result, BaseException):
                logger.warning("Price fetch failed for %s: %s", coin, result)
                prices.append(None)
            else:
                prices.append(result)
        if results and all(isinstance(r, BaseException) for r in results):
            raise EvidenceFetchError("coingecko", "no prices available")
        return EvidenceRecord(type="price_data", **dict(zip(self.price_coins, prices)))

    async def _fetch_tvl_data(self) -> EvidenceRecord:
        tvls = await defillama.get_chain_tvls(self.tvl_top_n, timeout=self.timeout)
        return EvidenceRecord(type="tvl_data", source="defillama", chains=tvls)
