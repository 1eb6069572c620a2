"""Internal arbitrage detector (YES_ask + NO_ask < $1 after fees).

오더북 best ask 기반. 수수료 1% 가정:
    fee_adjusted_cost = (yes_ask + no_ask) * 1.01
    기회 존재 조건: fee_adjusted_cost < 0.99
    profit_pct = (1 - fee_adjusted_cost) / fee_adjusted_cost

유효성 (캐시 대상):
    min_profit_pct <= profit_pct <= max_profit_pct
    (비정상적으로 큰 수익 = stale/bad data)
    양쪽 leg 유동성 (ask * depth) >= min_liquidity_usd
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol

from polycopy.config import ArbitrageConfig
from polycopy.models.opportunity import ArbitrageOpportunity, OpportunityType
from polycopy.models.orderbook import OrderBook
from polycopy.models.trade import Outcome
from polycopy.strategy.opportunity_cache import OpportunityCache

logger = logging.getLogger(__name__)

FEE_MULTIPLIER = 1.01
MAX_FEE_ADJUSTED_COST = 0.99


class OrderBookSource(Protocol):
    async def get_order_book(self, market_id: str) -> Optional[OrderBook]: ...


def detect_internal_arbitrage(book: OrderBook) -> Optional[ArbitrageOpportunity]:
    """오더북 → 내부 아비트라지 기회. 유효성 검사 전 단계.

    Returns:
        ArbitrageOpportunity if fee-adjusted cost < 0.99, None otherwise.
    """
    yes_ask = book.best_ask(Outcome.YES)
    no_ask = book.best_ask(Outcome.NO)
    if yes_ask is None or no_ask is None:
        return None
    if yes_ask.price <= 0 or no_ask.price <= 0:
        return None

    total_cost = yes_ask.price + no_ask.price
    fee_adjusted_cost = total_cost * FEE_MULTIPLIER
    if fee_adjusted_cost >= MAX_FEE_ADJUSTED_COST:
        return None

    profit_pct = (1.0 - fee_adjusted_cost) / fee_adjusted_cost

    return ArbitrageOpportunity(
        market_id=book.market_id,
        market_question=book.market_question or book.market_id,
        opportunity_type=OpportunityType.INTERNAL,
        yes_price=yes_ask.price,
        no_price=no_ask.price,
        total_cost=total_cost,
        fee_adjusted_cost=fee_adjusted_cost,
        profit_pct=profit_pct,
        profit_usd=profit_pct * 1.0,
        liquidity_yes=yes_ask.value_usd,
        liquidity_no=no_ask.value_usd,
        detected_at=datetime.now(tz=timezone.utc),
    )


class ArbitrageDetector:
    """Scan markets, validate opportunities and publish them to the cache.

    Args:
        config: 아비트라지 임계값.
        book_source: get_order_book(market_id)를 제공하는 오더북 소스.
        cache: 결과를 기록할 OpportunityCache.
    """

    def __init__(
        self,
        config: ArbitrageConfig,
        book_source: OrderBookSource,
        cache: OpportunityCache,
    ):
        self.config = config
        self.book_source = book_source
        self.cache = cache
        self._semaphore = asyncio.Semaphore(max(1, config.scan_concurrency))

    def is_valid(self, opp: ArbitrageOpportunity) -> bool:
        """수익률 범위 + 양쪽 유동성 체크."""
        if opp.profit_pct < self.config.min_profit_pct:
            return False
        if opp.profit_pct > self.config.max_profit_pct:
            return False
        if opp.liquidity_yes < self.config.min_liquidity_usd:
            return False
        if opp.liquidity_no < self.config.min_liquidity_usd:
            return False
        return True

    async def scan(self, market_id: str) -> Optional[ArbitrageOpportunity]:
        """단일 마켓 스캔. 유효한 기회만 반환 + 캐시 갱신.

        오더북 조회 실패 시 캐시는 건드리지 않음 (기존 항목은 max_age로 만료).
        """
        try:
            book = await self.book_source.get_order_book(market_id)
        except Exception as exc:
            logger.warning("[ARB] order book fetch failed for %s: %s", market_id, exc)
            return None
        if book is None:
            return None

        opportunity = self._evaluate(book)
        self.cache.put(market_id, opportunity)
        return opportunity

    def _evaluate(self, book: OrderBook) -> Optional[ArbitrageOpportunity]:
        if self.config.internal_enabled:
            opp = detect_internal_arbitrage(book)
            if opp is not None:
                if self.is_valid(opp):
                    return opp
                logger.debug(
                    "[ARB] discarded %s: profit=%.4f liq_yes=$%.2f liq_no=$%.2f",
                    book.market_id, opp.profit_pct, opp.liquidity_yes, opp.liquidity_no,
                )

        if self.config.cross_platform_enabled:
            opp = self._detect_cross_platform(book)
            if opp is not None and self.is_valid(opp):
                return opp

        return None

    def _detect_cross_platform(self, book: OrderBook) -> Optional[ArbitrageOpportunity]:
        """Cross-venue matching is not supported; always None."""
        return None

    async def scan_markets(self, market_ids: list[str]) -> list[ArbitrageOpportunity]:
        """Scan all markets concurrently (semaphore-limited). 성공한 결과만 수익률 순 반환."""
        if not market_ids:
            return []

        results = await asyncio.gather(
            *(self._scan_limited(mid) for mid in market_ids),
            return_exceptions=True,
        )

        opportunities: list[ArbitrageOpportunity] = []
        for market_id, result in zip(market_ids, results):
            if isinstance(result, ArbitrageOpportunity):
                opportunities.append(result)
            elif isinstance(result, Exception):
                logger.warning("[ARB] scan error for %s: %s", market_id, result)

        opportunities.sort(key=lambda o: o.profit_pct, reverse=True)
        return opportunities

    async def _scan_limited(self, market_id: str) -> Optional[ArbitrageOpportunity]:
        async with self._semaphore:
            return await self.scan(market_id)

    def has_opportunity(self, market_id: str) -> bool:
        """캐시에 유효한(만료되지 않은) 기회가 있는지."""
        opp = self.cache.get(market_id)
        return opp is not None and self.is_valid(opp)

    def get_opportunity(self, market_id: str) -> Optional[ArbitrageOpportunity]:
        return self.cache.get(market_id)
