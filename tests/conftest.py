"""Shared fixtures for resolver tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from oracle_resolver.evidence.models import EvidenceRecord, ExternalDataSnapshot
from tests.factories import CONTRACT_ADDRESS, make_market


@pytest.fixture
def snapshot():
    return ExternalDataSnapshot(
        timestamp=1_760_000_100_000,
        sources=[EvidenceRecord(type="price_data", bitcoin=104250.0, ethereum=3900.0)],
    )


@pytest.fixture
def chain_client():
    """OracleMarketsClient double: every market id exists and is Ended."""
    client = MagicMock()
    client.address = CONTRACT_ADDRESS
    client.get_market = AsyncMock(side_effect=lambda market_id: make_market(market_id))
    client.market_count = AsyncMock(return_value=None)
    client.resolve_market = AsyncMock(return_value="0x" + "cd" * 32)
    client.wait_for_receipt = AsyncMock(return_value=4242)
    client.explorer_url = MagicMock(return_value=None)
    return client
