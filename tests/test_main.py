"""Tests for the CLI's signal wiring."""

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock

import pytest

from oracle_resolver.resolver.main import install_signal_handlers


@pytest.mark.asyncio
async def test_signal_schedules_tracked_stop():
    loop = MagicMock()
    resolver = MagicMock()
    resolver.stop = AsyncMock()

    stop_tasks = install_signal_handlers(loop, resolver)

    registered = {call.args[0]: call.args[1] for call in loop.add_signal_handler.call_args_list}
    assert set(registered) == {signal.SIGINT, signal.SIGTERM}

    registered[signal.SIGTERM]()
    assert len(stop_tasks) == 1
    await asyncio.gather(*stop_tasks)
    await asyncio.sleep(0)

    resolver.stop.assert_awaited_once()
    assert not stop_tasks


@pytest.mark.asyncio
async def test_loops_without_signal_support():
    loop = MagicMock()
    loop.add_signal_handler.side_effect = NotImplementedError
    assert install_signal_handlers(loop, MagicMock()) == set()
