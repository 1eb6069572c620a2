"""Replication engine — decides whether and how to mirror one wallet's trade.

TradeEvent 하나당 파이프라인 (첫 실패 단계에서 종료):
    1) dedup        — (tx id, market, outcome, side) 이미 복사했으면 skip
    2) eligibility  — 지갑 enabled, 마켓 allow-list
    3) arb gate     — require_arb_signal이면 캐시에 유효한 기회 필수
    4) sizing       — min(size_usd * multiplier, max_position), $10 미만이면 skip
    5) risk gate    — ledger.can_open (마켓 락 안에서)
    6) execution    — hedged pair (내부 아비트라지) 또는 directional
    7) copied 표시  — 성공한 경우에만

엔진 내부 재시도 없음.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from polycopy.config import WalletWatchConfig
from polycopy.execution.hedged_pair import HedgedPairTransaction, PairState
from polycopy.models.opportunity import ArbitrageOpportunity
from polycopy.models.order import Order
from polycopy.models.trade import Outcome, Side, TradeEvent
from polycopy.recency import RecencySet

if TYPE_CHECKING:
    from polycopy.execution.order_gateway import OrderGateway
    from polycopy.risk.exposure_ledger import ExposureLedger
    from polycopy.strategy.arbitrage_detector import ArbitrageDetector

logger = logging.getLogger(__name__)

# 최소 주문 크기 (USD) — 미만이면 "할 일 없음"
MIN_POSITION_USD = 10.0
DEFAULT_COPIED_WINDOW = 10_000


class ReplicationOutcome(Enum):
    COPIED = "copied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ReplicationResult:
    """Terminal result of processing one TradeEvent."""

    outcome: ReplicationOutcome
    reason: str
    size_usd: float = 0.0
    orders: list[Order] = field(default_factory=list)

    @property
    def copied(self) -> bool:
        return self.outcome is ReplicationOutcome.COPIED

    def __str__(self) -> str:
        return f"{self.outcome.value}: {self.reason} (${self.size_usd:.2f})"


def dedup_key(event: TradeEvent) -> tuple[str, str, str, str]:
    """(tx id, market, outcome, side). tx id 없으면 position id → timestamp."""
    tx_id = event.tx_hash or event.position_id or event.timestamp.isoformat()
    return (tx_id, event.market_id, event.outcome.value, event.side.value)


class ReplicationEngine:
    """Per-wallet copy trader.

    Args:
        config: 대상 지갑 설정.
        detector: 아비트라지 게이트 (캐시 조회).
        ledger: 노출 한도 / 포지션 기록.
        gateway: 주문 게이트웨이.
        copied_window: 복사 완료 키 보존 개수.
    """

    def __init__(
        self,
        config: WalletWatchConfig,
        detector: ArbitrageDetector,
        ledger: ExposureLedger,
        gateway: OrderGateway,
        copied_window: int = DEFAULT_COPIED_WINDOW,
    ):
        self.config = config
        self.detector = detector
        self.ledger = ledger
        self.gateway = gateway
        self._copied = RecencySet(max_items=copied_window)
        self._stats: dict[str, int] = {"copied": 0, "skipped": 0, "failed": 0}
        self._copied_volume_usd: float = 0.0

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def process(self, event: TradeEvent) -> ReplicationResult:
        """TradeEvent 처리. 예외는 failed 결과로 변환."""
        try:
            result = await self._process(event)
        except Exception as exc:
            logger.exception(
                "[COPY] error processing trade from %s in %s: %s",
                event.wallet_name, event.market_id, exc,
            )
            result = ReplicationResult(ReplicationOutcome.FAILED, f"error: {exc}")

        self._stats[result.outcome.value] += 1
        if result.copied:
            self._copied_volume_usd += result.size_usd
        return result

    async def _process(self, event: TradeEvent) -> ReplicationResult:
        key = dedup_key(event)
        if key in self._copied:
            return self._skip("already copied", event)

        if not self.config.enabled:
            return self._skip("wallet disabled", event)
        if not self.config.allows_market(event.market_id):
            return self._skip("market not in allow-list", event)

        opportunity: Optional[ArbitrageOpportunity] = None
        if self.config.require_arb_signal:
            if not self.detector.has_opportunity(event.market_id):
                return self._skip("no arbitrage signal", event)
            opportunity = self.detector.get_opportunity(event.market_id)
            if opportunity is not None:
                logger.info(
                    "[ARB] %.2f%% opportunity for %s",
                    opportunity.profit_pct * 100,
                    opportunity.market_question[:50],
                )

        size_usd = self.size_position(event)
        if size_usd <= 0:
            return self._skip(f"size below ${MIN_POSITION_USD:.0f} minimum", event)

        async with self.ledger.market_lock(event.market_id):
            if not self.ledger.can_open(event.market_id, size_usd):
                return self._skip("risk limits", event, size_usd)

            if opportunity is not None and opportunity.is_internal:
                result = await self._execute_hedged(opportunity, size_usd)
            else:
                result = await self._execute_directional(event, size_usd)

        if result.copied:
            self._copied.add(key)
            logger.info(
                "[COPY] copied trade from %s: %s $%.2f of %s @ %.4f (%s)",
                event.wallet_name, event.side.value, size_usd,
                event.outcome.value, event.price, result.reason,
            )
        else:
            logger.error(
                "[COPY] failed to copy trade from %s in %s: %s",
                event.wallet_name, event.market_id, result.reason,
            )
        return result

    def size_position(self, event: TradeEvent) -> float:
        """관측 거래 USD × multiplier, max_position 상한, $10 미만이면 0."""
        scaled = event.size_usd * self.config.position_size_multiplier
        size = min(scaled, self.config.max_position_size_usd)
        if size < MIN_POSITION_USD:
            return 0.0
        return size

    # ------------------------------------------------------------------
    # Execution branches
    # ------------------------------------------------------------------

    async def _execute_directional(
        self, event: TradeEvent, size_usd: float,
    ) -> ReplicationResult:
        if event.price <= 0:
            return ReplicationResult(ReplicationOutcome.FAILED, "invalid price", size_usd)

        shares = size_usd / event.price
        order = await self.gateway.place(
            event.market_id, event.outcome, event.side, event.price, shares,
        )
        if order is None:
            return ReplicationResult(
                ReplicationOutcome.FAILED, "order not placed", size_usd,
            )

        self.ledger.open(
            event.market_id, size_usd, event.outcome, event.side,
            entry_price=event.price,
        )
        return ReplicationResult(
            ReplicationOutcome.COPIED, "directional", size_usd, [order],
        )

    async def _execute_hedged(
        self, opportunity: ArbitrageOpportunity, size_usd: float,
    ) -> ReplicationResult:
        half = size_usd * 0.5
        txn = HedgedPairTransaction(market_id=opportunity.market_id)
        txn.submit(
            yes_price=opportunity.yes_price,
            no_price=opportunity.no_price,
            yes_shares=half / opportunity.yes_price,
            no_shares=half / opportunity.no_price,
        )
        state = await txn.execute(self.gateway)

        if state is not PairState.COMMITTED:
            return ReplicationResult(
                ReplicationOutcome.FAILED,
                f"hedged pair {state.name.lower()}",
                size_usd,
                txn.orders,
            )

        self.ledger.open(
            opportunity.market_id, half, Outcome.YES, Side.BUY,
            entry_price=opportunity.yes_price,
        )
        self.ledger.open(
            opportunity.market_id, half, Outcome.NO, Side.BUY,
            entry_price=opportunity.no_price,
        )
        logger.info(
            "[COPY] executed arbitrage pair: $%.2f YES + $%.2f NO for %.2f%% profit",
            half, half, opportunity.profit_pct * 100,
        )
        return ReplicationResult(
            ReplicationOutcome.COPIED, "hedged pair", size_usd, txn.orders,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _skip(
        self, reason: str, event: TradeEvent, size_usd: float = 0.0,
    ) -> ReplicationResult:
        logger.debug(
            "[COPY] skip %s trade in %s: %s",
            event.wallet_name, event.market_id, reason,
        )
        return ReplicationResult(ReplicationOutcome.SKIPPED, reason, size_usd)

    def is_copied(self, event: TradeEvent) -> bool:
        return dedup_key(event) in self._copied

    def stats(self) -> dict:
        return {
            "wallet": self.config.name,
            **self._stats,
            "copied_volume_usd": round(self._copied_volume_usd, 2),
        }
