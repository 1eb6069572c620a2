"""Shared test fixtures for polycopy."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from polycopy.config import ArbitrageConfig, RiskConfig, WalletWatchConfig
from polycopy.models.market import Market
from polycopy.models.opportunity import ArbitrageOpportunity, OpportunityType
from polycopy.models.orderbook import BookLevel, BookSide, OrderBook
from polycopy.models.trade import Outcome, RawTrade, Side, TradeEvent

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
WALLET = "0x7f69983eb28245bba0d5083502a78744a8f66162"
MARKET_ID = "0xmarket1"


def make_raw(
    market_id: str = MARKET_ID,
    outcome: Outcome = Outcome.YES,
    side: Side = Side.BUY,
    price: float = 0.5,
    size: float = 100.0,
    seconds: float = 0,
    tx_hash: str | None = None,
    position_id: str | None = None,
) -> RawTrade:
    return RawTrade(
        market_id=market_id,
        outcome=outcome,
        side=side,
        price=price,
        size=size,
        timestamp=T0 + timedelta(seconds=seconds),
        market_question="Will it rain tomorrow?",
        tx_hash=tx_hash,
        position_id=position_id,
        source="test",
    )


def make_event(
    market_id: str = MARKET_ID,
    outcome: Outcome = Outcome.YES,
    side: Side = Side.BUY,
    price: float = 0.5,
    size: float = 100.0,
    seconds: float = 0,
    tx_hash: str | None = "0xtx1",
    position_id: str | None = None,
    wallet: str = WALLET,
) -> TradeEvent:
    return TradeEvent.from_raw(
        make_raw(market_id, outcome, side, price, size, seconds, tx_hash, position_id),
        wallet_address=wallet,
        wallet_name="whale",
    )


def make_book(
    yes_ask: float,
    no_ask: float,
    yes_depth: float = 5000.0,
    no_depth: float = 5000.0,
    market_id: str = MARKET_ID,
) -> OrderBook:
    return OrderBook(
        market_id=market_id,
        outcomes={
            Outcome.YES: BookSide(asks=[BookLevel(yes_ask, yes_depth)]),
            Outcome.NO: BookSide(asks=[BookLevel(no_ask, no_depth)]),
        },
        market_question="Will it rain tomorrow?",
    )


def make_opportunity(
    market_id: str = MARKET_ID,
    yes_price: float = 0.48,
    no_price: float = 0.49,
    opportunity_type: OpportunityType = OpportunityType.INTERNAL,
) -> ArbitrageOpportunity:
    total = yes_price + no_price
    fee_adjusted = total * 1.01
    profit = (1 - fee_adjusted) / fee_adjusted
    return ArbitrageOpportunity(
        market_id=market_id,
        market_question="Will it rain tomorrow?",
        opportunity_type=opportunity_type,
        yes_price=yes_price,
        no_price=no_price,
        total_cost=total,
        fee_adjusted_cost=fee_adjusted,
        profit_pct=profit,
        profit_usd=profit,
        liquidity_yes=5000.0,
        liquidity_no=5000.0,
        detected_at=T0,
    )


@pytest.fixture
def wallet_config() -> WalletWatchConfig:
    return WalletWatchConfig(
        address=WALLET,
        name="whale",
        position_size_multiplier=0.01,
        max_position_size_usd=2000.0,
        require_arb_signal=False,
    )


@pytest.fixture
def arb_config() -> ArbitrageConfig:
    return ArbitrageConfig(min_profit_pct=0.01, max_profit_pct=0.05, min_liquidity_usd=1000.0)


@pytest.fixture
def risk_config() -> RiskConfig:
    return RiskConfig(
        max_total_exposure_usd=10_000.0,
        max_position_per_market_usd=2_000.0,
        max_daily_loss_usd=500.0,
    )


@pytest.fixture
def sample_market() -> Market:
    return Market(
        id=MARKET_ID,
        question="Will it rain tomorrow?",
        yes_token_id="111",
        no_token_id="222",
        volume_24h=10_000.0,
        liquidity_usd=50_000.0,
        gamma_id="12345",
    )
