"""ArbitrageOpportunity and OpportunityType data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class OpportunityType(Enum):
    """아비트라지 유형."""

    INTERNAL = "internal"              # YES + NO < $1.00 (same venue)
    CROSS_PLATFORM = "cross_platform"  # 다른 venue와의 가격차 (미구현)


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """감지된 아비트라지 기회. 같은 마켓의 다음 스캔이 통째로 대체한다."""

    market_id: str
    market_question: str
    opportunity_type: OpportunityType
    yes_price: float          # best ask YES
    no_price: float           # best ask NO
    total_cost: float         # yes + no
    fee_adjusted_cost: float  # total_cost * fee multiplier
    profit_pct: float         # (1 - fee_adjusted) / fee_adjusted
    profit_usd: float         # profit for $1 notional
    liquidity_yes: float      # ask price * depth (USD)
    liquidity_no: float
    detected_at: datetime

    @property
    def is_internal(self) -> bool:
        return self.opportunity_type is OpportunityType.INTERNAL
