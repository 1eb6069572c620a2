"""Order book snapshot models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from polycopy.models.trade import Outcome


@dataclass
class BookLevel:
    """오더북 한 레벨 (가격 + 수량)."""

    price: float
    size: float  # shares

    @property
    def value_usd(self) -> float:
        """이 레벨의 달러 가치 (price * size)."""
        return self.price * self.size


@dataclass
class BookSide:
    """One outcome's asks and bids."""

    asks: list[BookLevel] = field(default_factory=list)
    bids: list[BookLevel] = field(default_factory=list)

    @property
    def best_ask(self) -> Optional[BookLevel]:
        """최저 ask. asks가 정렬되어 있지 않을 수 있음."""
        if not self.asks:
            return None
        return min(self.asks, key=lambda lv: lv.price)

    @property
    def best_bid(self) -> Optional[BookLevel]:
        if not self.bids:
            return None
        return max(self.bids, key=lambda lv: lv.price)

    @staticmethod
    def from_clob(data: dict) -> BookSide:
        """CLOB /book 응답 → BookSide. 잘못된 레벨은 건너뜀."""
        return BookSide(
            asks=_parse_levels(data.get("asks")),
            bids=_parse_levels(data.get("bids")),
        )


def _parse_levels(raw_levels) -> list[BookLevel]:
    levels: list[BookLevel] = []
    if not isinstance(raw_levels, list):
        return levels
    for raw in raw_levels:
        if not isinstance(raw, dict):
            continue
        try:
            price = float(raw["price"])
            size = float(raw.get("size", 0) or 0)
        except (KeyError, TypeError, ValueError):
            continue
        if price <= 0:
            continue
        levels.append(BookLevel(price=price, size=size))
    return levels


@dataclass
class OrderBook:
    """Order book snapshot for a binary market: outcome → BookSide."""

    market_id: str
    outcomes: dict[Outcome, BookSide] = field(default_factory=dict)
    market_question: str = ""

    def side(self, outcome: Outcome) -> BookSide:
        return self.outcomes.get(outcome) or BookSide()

    def best_ask(self, outcome: Outcome) -> Optional[BookLevel]:
        return self.side(outcome).best_ask
