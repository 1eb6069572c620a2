"""Exposure ledger — open positions, exposure ceilings, daily realized PnL.

모든 신규 포지션 진입을 게이트한다 (admission control).

can_open 체크 순서 (첫 실패에서 거절):
    1) 일일 실현 손익 > -max_daily_loss (한 번 넘으면 당일 하드 스톱)
    2) total exposure + size <= max_total_exposure
    3) market exposure + size <= max_position_per_market
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import date, datetime, timezone
from typing import Optional

from polycopy.config import RiskConfig
from polycopy.models.position import ExposureSnapshot, Position
from polycopy.models.trade import Outcome, Side

logger = logging.getLogger(__name__)

# YES/NO 노출 불균형이 합계의 20%를 넘으면 헤지 시그널
HEDGE_IMBALANCE_THRESHOLD = 0.2
MAX_MARKET_LOCKS = 256


def _utc_today() -> date:
    """현재 UTC 날짜."""
    return datetime.now(tz=timezone.utc).date()


class ExposureLedger:
    """Track open positions and enforce exposure limits.

    Positions are grouped by market id. Exposure figures are always derived
    from the stored positions under one lock, so a snapshot never observes a
    half-applied open or close.

    Args:
        config: 리스크 한도 설정.
    """

    def __init__(self, config: RiskConfig):
        self.config = config
        self._lock = threading.Lock()
        self._positions: dict[str, list[Position]] = {}
        self._daily_pnl: float = 0.0
        self._last_reset_date: date = _utc_today()
        self._market_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Admission control
    # ------------------------------------------------------------------

    def can_open(self, market_id: str, size_usd: float) -> bool:
        """신규 포지션 진입 가능 여부. 순수 조회, 용량 예약 없음."""
        with self._lock:
            self._maybe_reset_daily()

            if self._daily_pnl <= -self.config.max_daily_loss_usd:
                logger.warning(
                    "Cannot open position - daily loss limit reached: $%.2f",
                    self._daily_pnl,
                )
                return False

            new_total = self._total_exposure() + size_usd
            if new_total > self.config.max_total_exposure_usd:
                logger.warning(
                    "Cannot open position - total exposure limit would be exceeded: "
                    "$%.2f > $%.2f",
                    new_total, self.config.max_total_exposure_usd,
                )
                return False

            new_market = self._market_exposure(market_id) + size_usd
            if new_market > self.config.max_position_per_market_usd:
                logger.warning(
                    "Cannot open position - market %s exposure limit would be exceeded: "
                    "$%.2f > $%.2f",
                    market_id, new_market, self.config.max_position_per_market_usd,
                )
                return False

            return True

    def market_lock(self, market_id: str) -> asyncio.Lock:
        """Per-market lock for running can_open ... open as one critical section.

        포지션 없는 마켓의 유휴 lock은 MAX_MARKET_LOCKS를 넘으면 정리.
        """
        lock = self._market_locks.get(market_id)
        if lock is None:
            if len(self._market_locks) >= MAX_MARKET_LOCKS:
                self._prune_market_locks()
            lock = self._market_locks[market_id] = asyncio.Lock()
        return lock

    def _prune_market_locks(self) -> None:
        with self._lock:
            held = set(self._positions)
        for market_id, lock in list(self._market_locks.items()):
            if not lock.locked() and market_id not in held:
                del self._market_locks[market_id]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def open(
        self,
        market_id: str,
        size_usd: float,
        outcome: Outcome,
        side: Side,
        entry_price: float = 0.0,
    ) -> Position:
        """포지션 기록."""
        if size_usd < 0:
            raise ValueError(f"size_usd must be non-negative: {size_usd}")

        position = Position(
            market_id=market_id,
            outcome=outcome,
            side=side,
            size_usd=size_usd,
            entry_price=entry_price,
        )
        with self._lock:
            self._positions.setdefault(market_id, []).append(position)
            total = self._total_exposure()

        logger.debug(
            "Recorded position: $%.2f %s %s in market %s. Total exposure: $%.2f",
            size_usd, side.value, outcome.value, market_id, total,
        )
        return position

    def close(
        self,
        market_id: str,
        outcome: Outcome,
        exit_price: Optional[float] = None,
    ) -> Optional[float]:
        """가장 오래된 buy 포지션 청산 (FIFO per outcome).

        PnL = (exit - entry) * size_usd / entry  (선형 근사, 정산 payoff 미반영)

        Returns:
            realized PnL, or None if no matching position.
        """
        with self._lock:
            self._maybe_reset_daily()
            positions = self._positions.get(market_id)
            if not positions:
                return None

            match = next(
                (p for p in positions if p.outcome is outcome and p.side is Side.BUY),
                None,
            )
            if match is None:
                return None

            positions.remove(match)
            if not positions:
                del self._positions[market_id]

            pnl = 0.0
            if exit_price and match.entry_price > 0:
                pnl = (exit_price - match.entry_price) * match.size_usd / match.entry_price

            self._daily_pnl += pnl
            daily = self._daily_pnl

        logger.info(
            "Closed position: $%.2f %s in market %s. PnL: $%.2f. Daily PnL: $%.2f",
            match.size_usd, outcome.value, market_id, pnl, daily,
        )
        return pnl

    def record_realized_pnl(self, amount: float) -> None:
        """외부에서 정산된 손익 반영."""
        with self._lock:
            self._maybe_reset_daily()
            self._daily_pnl += amount

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def snapshot(self) -> ExposureSnapshot:
        """현재 노출 스냅샷. 날짜가 바뀌었으면 일일 PnL 리셋."""
        with self._lock:
            self._maybe_reset_daily()
            market_exposures = {
                mid: sum(p.size_usd for p in positions)
                for mid, positions in self._positions.items()
            }
            total = sum(market_exposures.values())
            return ExposureSnapshot(
                total_exposure_usd=total,
                daily_pnl_usd=self._daily_pnl,
                market_exposures=market_exposures,
                open_positions=sum(len(p) for p in self._positions.values()),
                available_exposure_usd=self.config.max_total_exposure_usd - total,
            )

    def positions(self, market_id: Optional[str] = None) -> list[Position]:
        """오픈 포지션 복사본 (market_id 지정 시 해당 마켓만)."""
        with self._lock:
            if market_id is not None:
                return list(self._positions.get(market_id, []))
            return [p for positions in self._positions.values() for p in positions]

    def should_hedge(self, market_id: str) -> bool:
        """YES/NO 노출 불균형이 20%를 넘는지. 헤지 주문은 내지 않음 (시그널만)."""
        if not self.config.enable_auto_hedge:
            return False

        with self._lock:
            positions = list(self._positions.get(market_id, []))
        if len(positions) < 2:
            return False

        yes_exposure = sum(p.size_usd for p in positions if p.outcome is Outcome.YES)
        no_exposure = sum(p.size_usd for p in positions if p.outcome is Outcome.NO)
        total = yes_exposure + no_exposure
        if total == 0:
            return False

        imbalance = abs(yes_exposure - no_exposure) / total
        return imbalance > HEDGE_IMBALANCE_THRESHOLD

    def markets(self) -> list[str]:
        with self._lock:
            return list(self._positions.keys())

    # ------------------------------------------------------------------
    # Internal (lock held)
    # ------------------------------------------------------------------

    def _total_exposure(self) -> float:
        return sum(p.size_usd for positions in self._positions.values() for p in positions)

    def _market_exposure(self, market_id: str) -> float:
        return sum(p.size_usd for p in self._positions.get(market_id, []))

    def _maybe_reset_daily(self) -> None:
        """자정(UTC) 경과 시 일일 PnL 리셋."""
        today = _utc_today()
        if self._last_reset_date != today:
            logger.info("New day, resetting daily PnL (was $%.2f)", self._daily_pnl)
            self._daily_pnl = 0.0
            self._last_reset_date = today
