"""
Oracle resolver entry point.

    python -m oracle_resolver.resolver.main [--config config.yaml] [--once] [--market ID]

Without flags the resolver listens for MarketEnded events and rescans
periodically until SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Optional

from .config import load_config
from .service import OracleResolver

logger = logging.getLogger(__name__)

_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "web3")


def install_signal_handlers(
    loop: asyncio.AbstractEventLoop, resolver: OracleResolver
) -> set[asyncio.Task]:
    """Stop the resolver on SIGINT/SIGTERM. Returns the live set of stop tasks."""
    stop_tasks: set[asyncio.Task] = set()

    def _request_stop() -> None:
        task = asyncio.create_task(resolver.stop(), name="resolver-stop")
        stop_tasks.add(task)
        task.add_done_callback(stop_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except NotImplementedError:
            # not supported on Windows event loops
            pass
    return stop_tasks


async def run(
    config_path: Optional[str] = "config.yaml",
    once: bool = False,
    market_id: Optional[int] = None,
) -> None:
    """High-level entry: load config, build resolver, run it."""
    config = load_config(config_path)
    resolver = OracleResolver.from_config(config)

    if once or market_id is not None:
        if resolver.db is not None:
            await resolver.db.init_schema()
        await resolver.guard.load()
        try:
            if market_id is not None:
                result = await resolver.handle_market_ended(market_id, trigger="manual")
                logger.info("Market #%d: %s", market_id, result.value)
            else:
                await resolver.scan_once()
        finally:
            await resolver.stop()
        return

    stop_tasks = install_signal_handlers(asyncio.get_running_loop(), resolver)
    await resolver.run_forever()
    if stop_tasks:
        await asyncio.gather(*stop_tasks)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="OracleMarkets resolution oracle")
    parser.add_argument(
        "--config", default="config.yaml", help="Config file path (default: config.yaml)"
    )
    parser.add_argument(
        "--once", action="store_true", help="Run a single backfill scan and exit"
    )
    parser.add_argument(
        "--market", type=int, default=None, help="Resolve a single market id and exit"
    )
    parser.add_argument(
        "--log-level", default="INFO", help="Logging level (default: INFO)"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    asyncio.run(
        run(
            config_path=args.config,
            once=args.once,
            market_id=args.market,
        )
    )


if __name__ == "__main__":
    main()
