"""
CoinGecko API client for spot prices used as resolution evidence.

Endpoints used (public, no auth):
  GET /simple/price?ids=X&vs_currencies=usd   -- {"X": {"usd": 123.4}}
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Optional

import httpx

from ..errors import EvidenceFetchError
from ..utils import with_retries

logger = logging.getLogger(__name__)

COINGECKO_BASE = os.getenv("COINGECKO_API", "https://api.coingecko.com/api/v3")
TIMEOUT = 10.0


_client: httpx.AsyncClient | None = None

async def _get_client() -> httpx.AsyncClient:
    """Get or create shared HTTP client."""
    global _client
    if _client is None:
        _client = httpx.AsyncClient(timeout=TIMEOUT)
    return _client

async def close() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None

async def _get(
    path: str,
    params: dict[str, Any] | None = None,
    *,
    base_url: str | None = None,
    timeout: float = TIMEOUT,
    attempts: int = 2,
) -> Any:
    """Issue a GET to the CoinGecko API and return parsed JSON."""
    client = await _get_client()
    url = f"{(base_url or COINGECKO_BASE).rstrip('/')}{path}"
    logger.debug("GET %s params=%s", url, params)

    async def _request() -> Any:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()

    try:
        return await with_retries(
            _request,
            attempts=attempts,
            timeout=timeout,
            backoff=0.5,
            retry_on=(httpx.TransportError,),
            label=f"GET {path}",
        )
    except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
        raise EvidenceFetchError("coingecko", str(e) or type(e).__name__) from e


# ── Prices ───────────────────────────────────────────────────────────

async def get_price(
    coin_id: str,
    vs_currency: str = "usd",
    **kwargs: Any,
) -> Optional[float]:
    """
    Get the current spot price for a coin.

    Returns None when the response has no entry for the coin (price
    unavailable). Network and HTTP failures raise EvidenceFetchError.
    """
    data = await _get(
        "/simple/price",
        params={"ids": coin_id, "vs_currencies": vs_currency},
        **kwargs,
    )
    price = (data or {}).get(coin_id, {}).get(vs_currency)
    if price is None:
        logger.info("CoinGecko has no %s price for %s", vs_currency, coin_id)
        return None
    return float(price)
