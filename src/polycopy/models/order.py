"""Order data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from polycopy.models.trade import Outcome, Side


class OrderStatus(Enum):
    """로컬에서 관측한 주문 상태.

    체결 확인 채널이 없으므로 배치 성공 = PENDING, 취소 성공 = CANCELLED.
    """

    PENDING = "pending"
    CANCELLED = "cancelled"


@dataclass
class Order:
    """An order placed through the OrderGateway."""

    order_id: str
    market_id: str
    outcome: Outcome
    side: Side
    price: float
    size: float  # shares
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = field(
        default_factory=lambda: datetime.now(tz=timezone.utc)
    )

    @property
    def notional_usd(self) -> float:
        return self.price * self.size
