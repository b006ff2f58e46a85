"""Tests for evidence clients and the category-driven aggregator."""

from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio

from oracle_resolver.errors import EvidenceFetchError
from oracle_resolver.evidence import aggregator as aggregator_module
from oracle_resolver.evidence import coingecko, defillama
from oracle_resolver.evidence.aggregator import DataAggregator
from tests.factories import make_market


@pytest_asyncio.fixture
async def mock_http(monkeypatch):
    """Route the shared CoinGecko / DeFiLlama clients through a MockTransport."""
    routes = {}

    def handler(request: httpx.Request) -> httpx.Response:
        return routes[request.url.path](request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    monkeypatch.setattr(coingecko, "_client", client)
    monkeypatch.setattr(defillama, "_client", client)
    yield routes
    await client.aclose()


class TestCoinGecko:

    @pytest.mark.asyncio
    async def test_get_price(self, mock_http):
        def price(request):
            assert request.url.params["ids"] == "bitcoin"
            assert request.url.params["vs_currencies"] == "usd"
            return httpx.Response(200, json={"bitcoin": {"usd": 104250.5}})

        mock_http["/api/v3/simple/price"] = price
        assert await coingecko.get_price("bitcoin") == 104250.5

    @pytest.mark.asyncio
    async def test_missing_key_is_unavailable(self, mock_http):
        mock_http["/api/v3/simple/price"] = lambda r: httpx.Response(200, json={})
        assert await coingecko.get_price("notacoin") is None

    @pytest.mark.asyncio
    async def test_http_error_raises_fetch_error(self, mock_http):
        mock_http["/api/v3/simple/price"] = lambda r: httpx.Response(429, json={"error": "rate limited"})
        with pytest.raises(EvidenceFetchError):
            await coingecko.get_price("bitcoin")


class TestDefiLlama:

    @pytest.mark.asyncio
    async def test_top_chains_by_tvl(self, mock_http):
        mock_http["/v2/chains"] = lambda r: httpx.Response(200, json=[
            {"name": "Tron", "tvl": 5.0e9},
            {"name": "Ethereum", "tvl": 6.0e10},
            {"name": "Solana", "tvl": 9.0e9},
            {"name": "Tiny", "tvl": None},
        ])
        assert await defillama.get_chain_tvls(limit=2) == {"Ethereum": 6.0e10, "Solana": 9.0e9}

    @pytest.mark.asyncio
    async def test_bad_payload_raises(self, mock_http):
        mock_http["/v2/chains"] = lambda r: httpx.Response(200, json={"oops": True})
        with pytest.raises(EvidenceFetchError):
            await defillama.get_chain_tvls()


class TestDataAggregator:

    @pytest.mark.parametrize("category,expected", [
        ("Crypto Price", ["price_data"]),
        ("PRICE prediction", ["price_data"]),
        ("crypto listing", ["price_data"]),
        ("DeFi", ["tvl_data"]),
        ("DeFi crypto", ["price_data", "tvl_data"]),
        ("Politics", []),
        ("", []),
    ])
    def test_sources_for_category(self, category, expected):
        names = [name for name, _ in DataAggregator().sources_for(category)]
        assert names == expected

    @pytest.mark.asyncio
    async def test_collects_price_data(self, monkeypatch):
        prices = {"bitcoin": 104000.0, "ethereum": None}
        monkeypatch.setattr(
            aggregator_module.coingecko, "get_price",
            AsyncMock(side_effect=lambda coin, **kw: prices[coin]),
        )
        snap = await DataAggregator().collect(make_market(category="Crypto Price"))

        assert len(snap.sources) == 1
        record = snap.sources[0].model_dump()
        assert record == {"type": "price_data", "bitcoin": 104000.0, "ethereum": None}
        assert snap.timestamp > 0

    @pytest.mark.asyncio
    async def test_one_coin_failing_keeps_the_others(self, monkeypatch):
        async def get_price(coin, **kwargs):
            if coin == "bitcoin":
                raise EvidenceFetchError("coingecko", "timed out")
            return 3900.0

        monkeypatch.setattr(aggregator_module.coingecko, "get_price", get_price)
        snap = await DataAggregator().collect(make_market(category="crypto"))

        assert len(snap.sources) == 1
        assert snap.sources[0].model_dump() == {
            "type": "price_data", "bitcoin": None, "ethereum": 3900.0,
        }

    @pytest.mark.asyncio
    async def test_failing_source_is_omitted(self, monkeypatch):
        monkeypatch.setattr(
            aggregator_module.coingecko, "get_price",
            AsyncMock(side_effect=EvidenceFetchError("coingecko", "unreachable")),
        )
        monkeypatch.setattr(
            aggregator_module.defillama, "get_chain_tvls",
            AsyncMock(return_value={"Ethereum": 6.0e10}),
        )
        snap = await DataAggregator().collect(make_market(category="DeFi crypto"))

        assert [s.type for s in snap.sources] == ["tvl_data"]

    @pytest.mark.asyncio
    async def test_all_sources_failing_yields_empty_snapshot(self, monkeypatch):
        monkeypatch.setattr(
            aggregator_module.coingecko, "get_price",
            AsyncMock(side_effect=RuntimeError("anything")),
        )
        snap = await DataAggregator().collect(make_market(category="crypto"))
        assert snap.sources == []

    @pytest.mark.asyncio
    async def test_unmatched_category_fetches_nothing(self, monkeypatch):
        get_price = AsyncMock()
        monkeypatch.setattr(aggregator_module.coingecko, "get_price", get_price)
        snap = await DataAggregator().collect(make_market(category="Sports"))
        assert snap.sources == []
        get_price.assert_not_awaited()
