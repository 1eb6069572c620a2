"""Wallet watcher — polls target wallets and emits deduplicated TradeEvents.

지갑별 상태:
    watermark   : 마지막으로 방출한 이벤트의 timestamp (이벤트 단위로 갱신)
    known_ids   : 한 번 본 position id (RecencySet, 보존 윈도우 내 영구 skip).
                  2차 dedup으로 걸러진 이벤트의 id도 기록.
    history     : 최근 방출 이벤트 (deque) — 2차 dedup + 통계용

2차 dedup (fallback identity):
    같은 market + outcome + side 인 이전 이벤트에 대해
    - tx hash가 같으면 중복
    - timestamp 차이 5초 이내면 중복 (tx hash가 달라도)
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

from polycopy.config import WalletWatchConfig
from polycopy.models.trade import RawTrade, Side, TradeEvent
from polycopy.recency import RecencySet

logger = logging.getLogger(__name__)

DEDUP_WINDOW_SECONDS = 5.0
DEFAULT_HISTORY_SIZE = 1000
DEFAULT_KNOWN_IDS_SIZE = 10_000
HEARTBEAT_EVERY_CHECKS = 60


class TradeSource(Protocol):
    async def get_trades(
        self, wallet_address: str, since: Optional[datetime] = None,
    ) -> list[RawTrade]: ...


@dataclass
class _WalletState:
    history: deque
    known_ids: RecencySet
    watermark: Optional[datetime] = None
    checks: int = 0
    errors: int = 0
    emitted: int = 0
    last_error: Optional[str] = None


class WalletWatcher:
    """Poll wallets through a TradeSource and deduplicate their activity.

    Args:
        source: get_trades(wallet, since)를 제공하는 거래 소스.
        history_size: 지갑별 이벤트 히스토리 최대 길이.
        known_ids_size: 지갑별 position id 보존 개수.
        dedup_window_seconds: fallback dedup 허용 오차 (초).
    """

    def __init__(
        self,
        source: TradeSource,
        history_size: int = DEFAULT_HISTORY_SIZE,
        known_ids_size: int = DEFAULT_KNOWN_IDS_SIZE,
        dedup_window_seconds: float = DEDUP_WINDOW_SECONDS,
    ):
        self.source = source
        self.history_size = history_size
        self.known_ids_size = known_ids_size
        self.dedup_window_seconds = dedup_window_seconds
        self._wallets: dict[str, _WalletState] = {}

    def _state(self, address: str) -> _WalletState:
        key = address.lower()
        state = self._wallets.get(key)
        if state is None:
            state = _WalletState(
                history=deque(maxlen=self.history_size),
                known_ids=RecencySet(max_items=self.known_ids_size),
            )
            self._wallets[key] = state
        return state

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll(self, config: WalletWatchConfig) -> list[TradeEvent]:
        """지갑 1회 폴링. 실패 시 빈 리스트 (예외 전파 없음)."""
        state = self._state(config.address)
        state.checks += 1
        if state.checks % HEARTBEAT_EVERY_CHECKS == 0:
            logger.info(
                "[WATCH] %s: %d checks, %d events, %d errors",
                config.name, state.checks, state.emitted, state.errors,
            )

        try:
            raw_trades = await self.source.get_trades(config.address, state.watermark)
        except Exception as exc:
            state.errors += 1
            state.last_error = str(exc)
            logger.warning("[WATCH] %s: trade fetch failed: %s", config.name, exc)
            return []

        events: list[TradeEvent] = []
        for raw in raw_trades or []:
            try:
                event = TradeEvent.from_raw(raw, config.address, config.name)
            except (AttributeError, TypeError) as exc:
                logger.debug("[WATCH] %s: malformed trade skipped: %s", config.name, exc)
                continue

            if event.position_id:
                if event.position_id in state.known_ids:
                    continue
                state.known_ids.add(event.position_id)
            if self._is_duplicate(state, event):
                continue

            state.history.append(event)
            state.watermark = event.timestamp
            state.emitted += 1
            events.append(event)

            logger.info("[WATCH] %s: %s", config.name, event.describe())

        return events

    def _is_duplicate(self, state: _WalletState, event: TradeEvent) -> bool:
        for prior in state.history:
            if (
                prior.market_id != event.market_id
                or prior.outcome is not event.outcome
                or prior.side is not event.side
            ):
                continue
            if prior.tx_hash and prior.tx_hash == event.tx_hash:
                return True
            delta = abs((prior.timestamp - event.timestamp).total_seconds())
            if delta <= self.dedup_window_seconds:
                return True
        return False

    async def poll_all(self, configs: Sequence[WalletWatchConfig]) -> list[TradeEvent]:
        """활성 지갑 전체를 동시에 폴링. 한 지갑의 실패는 다른 지갑에 영향 없음."""
        enabled = [c for c in configs if c.enabled]
        if not enabled:
            return []

        results = await asyncio.gather(
            *(self.poll(c) for c in enabled), return_exceptions=True,
        )
        events: list[TradeEvent] = []
        for config, result in zip(enabled, results):
            if isinstance(result, BaseException):
                logger.error("[WATCH] %s: poll error: %s", config.name, result)
                continue
            events.extend(result)
        return events

    async def run(
        self,
        configs: Sequence[WalletWatchConfig],
        queue: asyncio.Queue,
        stop_event: asyncio.Event,
        interval: float,
    ) -> None:
        """폴링 루프. stop_event가 set될 때까지 반복."""
        logger.info("[WATCH] monitoring %d wallets every %.1fs", len(configs), interval)
        while not stop_event.is_set():
            events = await self.poll_all(configs)
            for event in events:
                self._enqueue(queue, event)

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    @staticmethod
    def _enqueue(queue: asyncio.Queue, event: TradeEvent) -> None:
        """큐가 가득 차면 가장 오래된 이벤트를 버림 (drop-oldest)."""
        if queue.full():
            try:
                dropped = queue.get_nowait()
                queue.task_done()
            except asyncio.QueueEmpty:
                dropped = None
            if dropped is not None:
                logger.warning(
                    "[WATCH] event queue full, dropped %s trade in %s",
                    dropped.wallet_name, dropped.market_id,
                )
        queue.put_nowait(event)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def watermark(self, address: str) -> Optional[datetime]:
        state = self._wallets.get(address.lower())
        return state.watermark if state else None

    def history(self, address: str) -> list[TradeEvent]:
        state = self._wallets.get(address.lower())
        return list(state.history) if state else []

    def wallet_stats(self, address: str) -> Optional[dict]:
        """지갑 통계 (히스토리 윈도우 기준). 모르는 지갑이면 None."""
        state = self._wallets.get(address.lower())
        if state is None:
            return None

        history = list(state.history)
        by_market: dict[str, dict] = {}
        for event in history:
            entry = by_market.setdefault(
                event.market_id,
                {"question": event.market_question, "trades": 0, "volume_usd": 0.0},
            )
            entry["trades"] += 1
            entry["volume_usd"] += event.size_usd

        return {
            "total_trades": len(history),
            "buy_trades": sum(1 for e in history if e.side is Side.BUY),
            "sell_trades": sum(1 for e in history if e.side is Side.SELL),
            "total_volume_usd": sum(e.size_usd for e in history),
            "markets_traded": len(by_market),
            "by_market": by_market,
            "last_trade_at": history[-1].timestamp if history else None,
            "checks": state.checks,
            "errors": state.errors,
        }
