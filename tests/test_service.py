"""End-to-end tests for the shared handler and the resolver lifecycle."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from oracle_resolver.chain.models import MarketState
from oracle_resolver.errors import ChainWriteError
from oracle_resolver.evidence.models import ExternalDataSnapshot
from oracle_resolver.resolution.base import Outcome
from oracle_resolver.resolution.engine import InferenceEngine
from oracle_resolver.resolution.gate import ConfidenceGate
from oracle_resolver.resolver.database import Database
from oracle_resolver.resolver.guard import IdempotencyGuard
from oracle_resolver.resolver.service import HandleResult, OracleResolver
from oracle_resolver.resolver.submitter import TransactionSubmitter
from tests.factories import make_candidate, make_market


def _build(chain_client, candidate=None, db=None, **kwargs) -> OracleResolver:
    aggregator = MagicMock()
    aggregator.collect = AsyncMock(return_value=ExternalDataSnapshot(timestamp=1))
    engine = MagicMock()
    engine.infer = AsyncMock(return_value=candidate or make_candidate())
    listener = MagicMock()
    listener.unsubscribe = AsyncMock()
    return OracleResolver(
        client=chain_client,
        aggregator=aggregator,
        engine=engine,
        gate=ConfidenceGate(0.7),
        submitter=TransactionSubmitter(chain_client),
        guard=IdempotencyGuard(db),
        db=db,
        listener=listener,
        scan_interval=0,
        **kwargs,
    )


class TestHandleMarketEnded:

    @pytest.mark.asyncio
    async def test_confident_yes_is_submitted_and_committed(self, chain_client):
        resolver = _build(chain_client, make_candidate(Outcome.YES, confidence=0.85))

        result = await resolver.handle_market_ended(12)

        assert result is HandleResult.RESOLVED
        chain_client.resolve_market.assert_awaited_once()
        market_id, code, evidence_hash = chain_client.resolve_market.await_args.args
        assert (market_id, code) == (12, 1)
        assert evidence_hash.startswith("0x") and len(evidence_hash) == 66
        assert resolver.guard.is_processed(12)

    @pytest.mark.asyncio
    async def test_below_threshold_defers_without_write(self, chain_client):
        resolver = _build(chain_client, make_candidate(confidence=0.5))

        result = await resolver.handle_market_ended(12)

        assert result is HandleResult.DEFERRED
        chain_client.resolve_market.assert_not_awaited()
        assert not resolver.guard.is_processed(12)
        assert resolver.guard.in_flight == frozenset()

    @pytest.mark.asyncio
    async def test_fallback_candidate_is_gated_out(self, chain_client):
        engine = InferenceEngine({"api_key": "k", "retry_attempts": 1})
        engine._call_llm = AsyncMock(return_value="No structured answer, sorry.")
        resolver = _build(chain_client)
        resolver.engine = engine

        result = await resolver.handle_market_ended(3)

        assert result is HandleResult.DEFERRED
        chain_client.resolve_market.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_processed_market_skipped_without_io(self, chain_client):
        resolver = _build(chain_client)
        await resolver.handle_market_ended(12)
        chain_client.get_market.reset_mock()
        resolver.engine.infer.reset_mock()

        result = await resolver.handle_market_ended(12)

        assert result is HandleResult.SKIPPED
        chain_client.get_market.assert_not_awaited()
        resolver.engine.infer.assert_not_awaited()
        assert chain_client.resolve_market.await_count == 1

    @pytest.mark.parametrize("state", [MarketState.ACTIVE, MarketState.RESOLVED, MarketState.CANCELLED])
    @pytest.mark.asyncio
    async def test_market_not_ended_is_ignored(self, chain_client, state):
        chain_client.get_market = AsyncMock(return_value=make_market(4, state=state))
        resolver = _build(chain_client)

        result = await resolver.handle_market_ended(4)

        assert result is HandleResult.NOT_ENDED
        resolver.engine.infer.assert_not_awaited()
        chain_client.resolve_market.assert_not_awaited()
        assert not resolver.guard.is_processed(4)
        assert resolver.guard.in_flight == frozenset()

    @pytest.mark.asyncio
    async def test_concurrent_triggers_submit_once(self, chain_client):
        async def slow_read(market_id):
            await asyncio.sleep(0.01)
            return make_market(market_id)

        chain_client.get_market = AsyncMock(side_effect=slow_read)
        resolver = _build(chain_client)

        results = await asyncio.gather(
            resolver.handle_market_ended(8, "event"),
            resolver.handle_market_ended(8, "scan"),
            resolver.handle_market_ended(8, "event"),
        )

        assert sorted(r.value for r in results) == ["RESOLVED", "SKIPPED", "SKIPPED"]
        assert chain_client.resolve_market.await_count == 1
        assert chain_client.get_market.await_count == 1

    @pytest.mark.asyncio
    async def test_write_failure_propagates_and_allows_retry(self, chain_client):
        chain_client.resolve_market.side_effect = [ChainWriteError("rpc down"), "0x" + "ab" * 32]
        resolver = _build(chain_client)

        with pytest.raises(ChainWriteError):
            await resolver.handle_market_ended(6)
        assert not resolver.guard.is_processed(6)
        assert 6 not in resolver.guard.in_flight

        assert await resolver.handle_market_ended(6) is HandleResult.RESOLVED
        assert resolver.guard.is_processed(6)

    @pytest.mark.asyncio
    async def test_unconfirmed_transaction_not_committed(self, chain_client):
        chain_client.wait_for_receipt.side_effect = ChainWriteError("timeout")
        resolver = _build(chain_client)

        with pytest.raises(ChainWriteError):
            await resolver.handle_market_ended(6)
        assert resolver.guard.processed == frozenset()

    @pytest.mark.asyncio
    async def test_attempts_recorded(self, chain_client, tmp_path):
        db = Database(str(tmp_path / "r.db"))
        await db.init_schema()
        resolver = _build(chain_client, make_candidate(confidence=0.4), db=db)

        await resolver.handle_market_ended(2, "scan")

        attempts = await db.get_attempts(2)
        assert len(attempts) == 1
        assert attempts[0]["trigger"] == "scan"
        assert attempts[0]["admitted"] == 0
        assert await db.get_resolved_market_ids() == set()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_deferred_market_reappears_in_next_scan(self, chain_client):
        chain_client.get_market = AsyncMock(side_effect=lambda i: (
            make_market(i) if i == 1 else make_market(i, state=MarketState.ACTIVE)
        ))
        chain_client.market_count = AsyncMock(return_value=3)
        resolver = _build(chain_client, make_candidate(confidence=0.5))

        assert await resolver.scan_once() == [1]
        assert await resolver.scan_once() == [1]
        chain_client.resolve_market.assert_not_awaited()
        assert resolver.engine.infer.await_count == 2

    @pytest.mark.asyncio
    async def test_start_loads_guard_subscribes_and_scans(self, chain_client, tmp_path):
        db = Database(str(tmp_path / "r.db"))
        await db.init_schema()
        await db.record_resolution(1, outcome="YES", outcome_code=1, confidence=0.9,
                                   evidence_hash="0x00", tx_hash="0x01", block_number=1)
        chain_client.market_count = AsyncMock(return_value=2)
        resolver = _build(chain_client, db=db)

        await resolver.start()

        resolver.listener.subscribe.assert_called_once_with(resolver.handle_market_ended)
        # market 1 was resolved before the restart
        chain_client.resolve_market.assert_awaited_once()
        assert chain_client.resolve_market.await_args.args[0] == 2
        assert resolver.guard.processed == {1, 2}

        await resolver.stop()
        resolver.listener.unsubscribe.assert_awaited_once()
        resolver.listener.cancel_pending.assert_called_once()
