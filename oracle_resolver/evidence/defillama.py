"""
DeFiLlama API client for total-value-locked evidence.

Endpoints used (public, no auth):
  GET /v2/chains   -- [{"name": "Ethereum", "tvl": 5.1e10, ...}, ...]
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..errors import EvidenceFetchError
from ..utils import with_retries

logger = logging.getLogger(__name__)

DEFILLAMA_BASE = "https://api.llama.fi"
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


async def get_chain_tvls(limit: int = 5, *, timeout: float = TIMEOUT) -> dict[str, float]:
    """Return the ``limit`` largest chains by TVL as ``{name: tvl_usd}``."""
    client = await _get_client()
    url = f"{DEFILLAMA_BASE}/v2/chains"

    async def _request() -> Any:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.json()

    try:
        chains = await with_retries(
            _request,
            attempts=2,
            timeout=timeout,
            backoff=0.5,
            retry_on=(httpx.TransportError,),
            label="GET /v2/chains",
        )
    except (httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
        raise EvidenceFetchError("defillama", str(e) or type(e).__name__) from e

    if not isinstance(chains, list):
        raise EvidenceFetchError("defillama", "unexpected /v2/chains payload")

    ranked = sorted(
        (c for c in chains if isinstance(c, dict) and c.get("name")),
        key=lambda c: float(c.get("tvl") or 0),
        reverse=True,
    )
    return {c["name"]: float(c.get("tvl") or 0) for c in ranked[:limit]}
