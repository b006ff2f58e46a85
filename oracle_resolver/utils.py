"""Shared utilities."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

API_TIMEOUT = 30.0
MAX_RETRIES = 3
RETRY_BACKOFF = 1.0


async def with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = MAX_RETRIES,
    timeout: Optional[float] = API_TIMEOUT,
    backoff: float = RETRY_BACKOFF,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    fatal: tuple[type[BaseException], ...] = (),
    label: str = "call",
) -> T:
    """
    Await ``fn()`` with a per-attempt timeout and capped exponential backoff.

    ``fn`` is a zero-argument coroutine factory so each attempt gets a fresh
    coroutine. Errors in ``fatal`` or outside ``retry_on`` are raised
    immediately; after the last attempt the final error is re-raised for
    the caller's fallback path.
    """
    attempts = max(1, attempts)
    last_error: BaseException | None = None

    for attempt in range(attempts):
        try:
            if timeout:
                return await asyncio.wait_for(fn(), timeout=timeout)
            return await fn()
        except fatal:
            raise
        except asyncio.TimeoutError as e:
            last_error = e
            logger.warning("%s timed out after %.1fs (attempt %d/%d)",
                           label, timeout, attempt + 1, attempts)
        except retry_on as e:
            last_error = e
            logger.warning("%s failed (attempt %d/%d): %s",
                           label, attempt + 1, attempts, e)

        if attempt + 1 < attempts:
            await asyncio.sleep(backoff * (2 ** attempt))

    assert last_error is not None
    raise last_error


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """Return the first JSON object embedded in ``text``, or None."""
    if not text:
        return None
    decoder = json.JSONDecoder()
    idx = text.find("{")
    while idx != -1:
        try:
            obj, _ = decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict):
            return obj
        idx = text.find("{", idx + 1)
    return None


def canonical_json(data: Any) -> str:
    """Serialize ``data`` deterministically (sorted keys, no whitespace)."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
