"""Tests for MarketDirectory and MarketFilter."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

from polycopy.discovery.market_directory import MarketDirectory
from polycopy.discovery.market_filter import MarketFilter
from polycopy.models.market import Market
from polycopy.models.trade import Outcome


def _directory(market=None) -> MarketDirectory:
    gamma = MagicMock()
    gamma.get_market = AsyncMock(return_value=market)
    gamma.get_market_by_token = AsyncMock(return_value=market)
    return MarketDirectory(gamma)


def _market(market_id: str, volume: float = 0.0, active: bool = True, gamma_id: str = "") -> Market:
    return Market(
        id=market_id,
        question=f"Q {market_id}",
        yes_token_id=f"{market_id}-y",
        no_token_id=f"{market_id}-n",
        volume_24h=volume,
        active=active,
        gamma_id=gamma_id,
    )


class TestMarketDirectory:
    def test_register_and_lookup_token(self, sample_market):
        directory = _directory()
        assert directory.register([sample_market]) == 1
        assert sample_market.id in directory
        assert directory.lookup_token("111") == (sample_market, Outcome.YES)
        assert directory.lookup_token("222") == (sample_market, Outcome.NO)
        assert directory.lookup_token("333") is None

    async def test_resolve_cached_without_network(self, sample_market):
        directory = _directory()
        directory.register([sample_market])
        assert await directory.resolve(sample_market.id) is sample_market
        directory.gamma.get_market.assert_not_awaited()

    async def test_resolve_fetches_and_aliases_gamma_id(self, sample_market):
        directory = _directory(sample_market)
        assert await directory.resolve("12345") is sample_market
        assert directory.get("12345") is sample_market
        assert len(directory) == 1

        await directory.resolve("12345")
        directory.gamma.get_market.assert_awaited_once_with("12345")

    async def test_miss_is_remembered(self):
        directory = _directory(None)
        assert await directory.resolve("0xgone") is None
        assert await directory.resolve("0xgone") is None
        directory.gamma.get_market.assert_awaited_once()

    async def test_transient_failure_retried_after_ttl(self, sample_market):
        directory = _directory()
        directory.gamma.get_market.side_effect = [None, sample_market]

        with patch("polycopy.discovery.market_directory._monotonic", return_value=100.0):
            assert await directory.resolve(sample_market.id) is None
            assert await directory.resolve(sample_market.id) is None
        with patch("polycopy.discovery.market_directory._monotonic", return_value=161.0):
            assert await directory.resolve(sample_market.id) is sample_market
        assert directory.gamma.get_market.await_count == 2

    async def test_token_miss_retried_after_ttl(self, sample_market):
        directory = _directory()
        directory.gamma.get_market_by_token.side_effect = [None, sample_market]
        with patch("polycopy.discovery.market_directory._monotonic", return_value=100.0):
            assert await directory.resolve_token("111") is None
        with patch("polycopy.discovery.market_directory._monotonic", return_value=161.0):
            assert await directory.resolve_token("111") == (sample_market, Outcome.YES)

    async def test_resolve_token_falls_back_to_gamma(self, sample_market):
        directory = _directory(sample_market)
        assert await directory.resolve_token("222") == (sample_market, Outcome.NO)
        assert directory.market_ids() == [sample_market.id]

    async def test_resolve_token_unknown(self):
        directory = _directory(None)
        assert await directory.resolve_token("999") is None
        assert await directory.resolve_token("999") is None
        directory.gamma.get_market_by_token.assert_awaited_once()


class TestMarketFilter:
    def test_no_allow_list_passes_all_active(self):
        f = MarketFilter()
        markets = [_market("a"), _market("b", active=False)]
        assert [m.id for m in f.apply(markets)] == ["a"]

    def test_allow_list_by_condition_or_gamma_id(self):
        f = MarketFilter(enabled_markets=["0xa", "777"])
        assert f.is_allowed(_market("0xa"))
        assert f.is_allowed(_market("0xb", gamma_id="777"))
        assert not f.is_allowed(_market("0xc"))

    def test_min_volume_and_sort(self):
        f = MarketFilter(min_volume_24h=1000)
        markets = [_market("low", 500), _market("mid", 2000), _market("high", 9000)]
        assert [m.id for m in f.apply(markets)] == ["high", "mid"]

    def test_empty_allow_list_blocks_all(self):
        assert MarketFilter(enabled_markets=[]).apply([_market("a")]) == []
