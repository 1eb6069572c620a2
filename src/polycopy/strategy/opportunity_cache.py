"""In-memory table of the latest valid arbitrage opportunity per market.

market_id → ArbitrageOpportunity. 다음 스캔 결과가 항목을 통째로 대체 (merge 없음).
max_age_seconds보다 오래된 항목은 조회 시 만료된 것으로 취급.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from polycopy.models.opportunity import ArbitrageOpportunity


class OpportunityCache:
    """Lock-guarded opportunity table.

    Args:
        max_age_seconds: 이 시간 동안 재스캔이 없으면 만료. None이면 만료 없음.
        clock: monotonic 시계 (테스트용 주입).
    """

    def __init__(
        self,
        max_age_seconds: Optional[float] = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[ArbitrageOpportunity, float]] = {}
        self._hits: int = 0
        self._misses: int = 0

    def put(self, market_id: str, opportunity: Optional[ArbitrageOpportunity]) -> None:
        """스캔 결과 기록. None이면 기존 항목 삭제."""
        with self._lock:
            if opportunity is None:
                self._entries.pop(market_id, None)
            else:
                self._entries[market_id] = (opportunity, self._clock())

    def get(self, market_id: str) -> Optional[ArbitrageOpportunity]:
        """유효(fresh)한 기회 조회. 없거나 만료면 None."""
        with self._lock:
            entry = self._entries.get(market_id)
            if entry is None:
                self._misses += 1
                return None
            opportunity, stored_at = entry
            if self._is_expired(stored_at):
                del self._entries[market_id]
                self._misses += 1
                return None
            self._hits += 1
            return opportunity

    def has_valid(self, market_id: str) -> bool:
        return self.get(market_id) is not None

    def age_seconds(self, market_id: str) -> Optional[float]:
        with self._lock:
            entry = self._entries.get(market_id)
            if entry is None:
                return None
            return self._clock() - entry[1]

    def active(self) -> dict[str, ArbitrageOpportunity]:
        """만료되지 않은 모든 항목의 복사본."""
        with self._lock:
            expired = [
                mid for mid, (_, ts) in self._entries.items() if self._is_expired(ts)
            ]
            for mid in expired:
                del self._entries[mid]
            return {mid: opp for mid, (opp, _) in self._entries.items()}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def _is_expired(self, stored_at: float) -> bool:
        if self.max_age_seconds is None:
            return False
        return (self._clock() - stored_at) > self.max_age_seconds

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "opportunities_cached": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
            }
