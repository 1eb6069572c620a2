"""Tests for ReplicationEngine (copy pipeline)."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import MARKET_ID, make_event, make_opportunity

from polycopy.config import RiskConfig
from polycopy.execution.order_gateway import OrderGateway
from polycopy.execution.replication import (
    ReplicationEngine,
    ReplicationOutcome,
    dedup_key,
)
from polycopy.models.opportunity import OpportunityType
from polycopy.models.trade import Outcome, Side
from polycopy.risk.exposure_ledger import ExposureLedger


def _gateway(fail_outcomes: tuple = ()) -> OrderGateway:
    client = MagicMock()
    counter = iter(range(1, 10_000))

    async def _place(market_id, outcome, side, price, size):
        if outcome in fail_outcomes:
            return None
        return {"order_id": f"o-{next(counter)}"}

    client.place_order = AsyncMock(side_effect=_place)
    client.cancel_order = AsyncMock(return_value=True)
    return OrderGateway(client)


def _detector(opportunity=None) -> MagicMock:
    detector = MagicMock()
    detector.has_opportunity.return_value = opportunity is not None
    detector.get_opportunity.return_value = opportunity
    return detector


def _engine(config, risk=None, opportunity=None, gateway=None) -> ReplicationEngine:
    return ReplicationEngine(
        config,
        _detector(opportunity),
        ExposureLedger(risk or RiskConfig()),
        gateway or _gateway(),
    )


def _whale_trade(**kwargs):
    # $50,000 관측 거래 (100,000 shares @ 0.50)
    kwargs.setdefault("price", 0.5)
    kwargs.setdefault("size", 100_000)
    return make_event(**kwargs)


class TestSizing:
    def test_scaled_and_capped(self, wallet_config):
        engine = _engine(wallet_config)
        assert engine.size_position(_whale_trade()) == pytest.approx(500.0)
        big = _whale_trade(size=1_000_000)   # $500k → $5k → cap $2k
        assert engine.size_position(big) == 2000.0

    def test_below_minimum_is_zero(self, wallet_config):
        engine = _engine(wallet_config)
        assert engine.size_position(make_event(price=0.5, size=1000)) == 0.0


class TestDirectional:
    async def test_copies_whale_trade(self, wallet_config):
        engine = _engine(wallet_config)
        result = await engine.process(_whale_trade())

        assert result.outcome is ReplicationOutcome.COPIED
        assert result.size_usd == pytest.approx(500.0)
        order = result.orders[0]
        assert order.price == 0.5
        assert order.size == pytest.approx(1000.0)

        snap = engine.ledger.snapshot()
        assert snap.total_exposure_usd == pytest.approx(500.0)
        assert snap.market_exposures[MARKET_ID] == pytest.approx(500.0)

    async def test_small_trade_skipped(self, wallet_config):
        engine = _engine(wallet_config)
        result = await engine.process(make_event(price=0.5, size=1000))   # $500 → $5
        assert result.outcome is ReplicationOutcome.SKIPPED
        engine.gateway.client.place_order.assert_not_awaited()
        assert engine.ledger.snapshot().open_positions == 0

    async def test_order_failure_leaves_ledger_untouched(self, wallet_config):
        engine = _engine(wallet_config, gateway=_gateway(fail_outcomes=(Outcome.YES,)))
        result = await engine.process(_whale_trade())
        assert result.outcome is ReplicationOutcome.FAILED
        assert engine.ledger.snapshot().total_exposure_usd == 0
        assert not engine.is_copied(_whale_trade())

    async def test_exception_becomes_failed(self, wallet_config):
        engine = _engine(wallet_config)
        engine.gateway.place = AsyncMock(side_effect=RuntimeError("boom"))
        result = await engine.process(_whale_trade())
        assert result.outcome is ReplicationOutcome.FAILED
        assert engine.stats()["failed"] == 1


class TestGates:
    async def test_duplicate_not_copied_twice(self, wallet_config):
        engine = _engine(wallet_config)
        first = await engine.process(_whale_trade())
        second = await engine.process(_whale_trade())
        assert first.copied
        assert second.outcome is ReplicationOutcome.SKIPPED
        assert second.reason == "already copied"
        assert engine.gateway.client.place_order.await_count == 1

    async def test_disabled_wallet(self, wallet_config):
        engine = _engine(replace(wallet_config, enabled=False))
        assert (await engine.process(_whale_trade())).outcome is ReplicationOutcome.SKIPPED

    async def test_market_allow_list(self, wallet_config):
        engine = _engine(replace(wallet_config, markets_filter=("0xother",)))
        result = await engine.process(_whale_trade())
        assert result.reason == "market not in allow-list"

    async def test_arb_gate_without_signal(self, wallet_config):
        engine = _engine(replace(wallet_config, require_arb_signal=True))
        result = await engine.process(_whale_trade())
        assert result.outcome is ReplicationOutcome.SKIPPED
        assert result.reason == "no arbitrage signal"

    async def test_risk_gate(self, wallet_config):
        engine = _engine(wallet_config, risk=RiskConfig(max_position_per_market_usd=400))
        result = await engine.process(_whale_trade())
        assert result.outcome is ReplicationOutcome.SKIPPED
        assert result.reason == "risk limits"
        engine.gateway.client.place_order.assert_not_awaited()

    async def test_daily_loss_blocks(self, wallet_config):
        engine = _engine(wallet_config)
        engine.ledger.record_realized_pnl(-500)
        result = await engine.process(_whale_trade())
        assert result.reason == "risk limits"

    async def test_concurrent_events_respect_market_ceiling(self, wallet_config):
        engine = _engine(wallet_config, risk=RiskConfig(max_position_per_market_usd=600))
        results = await asyncio.gather(
            engine.process(_whale_trade(tx_hash="0xa")),
            engine.process(_whale_trade(tx_hash="0xb")),
        )
        assert sorted(r.outcome.value for r in results) == ["copied", "skipped"]
        assert engine.ledger.snapshot().market_exposures[MARKET_ID] == pytest.approx(500.0)


class TestHedged:
    async def test_internal_opportunity_places_pair(self, wallet_config):
        config = replace(wallet_config, require_arb_signal=True)
        engine = _engine(config, opportunity=make_opportunity(yes_price=0.48, no_price=0.49))
        result = await engine.process(_whale_trade())

        assert result.copied
        assert result.reason == "hedged pair"
        yes, no = result.orders
        assert (yes.outcome, yes.price) == (Outcome.YES, 0.48)
        assert (no.outcome, no.price) == (Outcome.NO, 0.49)
        assert yes.size == pytest.approx(250 / 0.48)
        assert no.size == pytest.approx(250 / 0.49)

        positions = engine.ledger.positions(MARKET_ID)
        assert sorted(p.outcome.value for p in positions) == ["NO", "YES"]
        assert all(p.size_usd == pytest.approx(250.0) for p in positions)
        assert all(p.side is Side.BUY for p in positions)

    async def test_half_placed_pair_is_unwound(self, wallet_config):
        config = replace(wallet_config, require_arb_signal=True)
        gateway = _gateway(fail_outcomes=(Outcome.NO,))
        engine = _engine(config, opportunity=make_opportunity(), gateway=gateway)

        result = await engine.process(_whale_trade())

        assert result.outcome is ReplicationOutcome.FAILED
        assert "unwound" in result.reason
        gateway.client.cancel_order.assert_awaited_once()
        assert engine.ledger.snapshot().total_exposure_usd == 0
        assert not engine.is_copied(_whale_trade())

    async def test_cross_platform_opportunity_goes_directional(self, wallet_config):
        config = replace(wallet_config, require_arb_signal=True)
        opp = make_opportunity(opportunity_type=OpportunityType.CROSS_PLATFORM)
        engine = _engine(config, opportunity=opp)
        result = await engine.process(_whale_trade())
        assert result.reason == "directional"
        assert len(result.orders) == 1


class TestStats:
    async def test_counts(self, wallet_config):
        engine = _engine(wallet_config)
        await engine.process(_whale_trade(tx_hash="0xa"))
        await engine.process(_whale_trade(tx_hash="0xa"))
        await engine.process(make_event(tx_hash="0xc", price=0.5, size=10))
        stats = engine.stats()
        assert stats["wallet"] == "whale"
        assert stats["copied"] == 1
        assert stats["skipped"] == 2
        assert stats["copied_volume_usd"] == 500.0

    def test_dedup_key_falls_back(self):
        event = make_event(tx_hash=None, position_id="pos-9")
        assert dedup_key(event) == ("pos-9", MARKET_ID, "YES", "buy")
        event = make_event(tx_hash=None)
        assert dedup_key(event)[0] == event.timestamp.isoformat()
