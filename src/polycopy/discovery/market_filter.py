"""Market filtering logic — allow-list, active flag, 24h volume."""

from __future__ import annotations

from typing import Iterable, Optional

from polycopy.models.market import Market


class MarketFilter:
    """Select which discovered markets the arbitrage scanner watches.

    Args:
        enabled_markets: 허용 마켓 ID 목록. None이면 전체 허용.
        min_volume_24h: 최소 24시간 거래량 (USD).
    """

    def __init__(
        self,
        enabled_markets: Optional[Iterable[str]] = None,
        min_volume_24h: float = 0.0,
    ):
        self.enabled_markets = (
            frozenset(enabled_markets) if enabled_markets is not None else None
        )
        self.min_volume_24h = min_volume_24h

    @staticmethod
    def is_active(market: Market) -> bool:
        """active=True, closed=False인 마켓만."""
        return market.active

    def is_allowed(self, market: Market) -> bool:
        """Allow-list 체크 (condition id 또는 Gamma id)."""
        if self.enabled_markets is None:
            return True
        return market.id in self.enabled_markets or market.gamma_id in self.enabled_markets

    def meets_min_volume(self, market: Market) -> bool:
        """최소 24h 거래량 필터."""
        return market.volume_24h >= self.min_volume_24h

    def accepts(self, market: Market) -> bool:
        return (
            self.is_active(market)
            and self.is_allowed(market)
            and self.meets_min_volume(market)
        )

    def apply(self, markets: Iterable[Market]) -> list[Market]:
        """필터 통과 마켓, 24h 거래량 내림차순."""
        selected = [m for m in markets if self.accepts(m)]
        selected.sort(key=lambda m: m.volume_24h, reverse=True)
        return selected
