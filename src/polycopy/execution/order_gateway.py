"""Order gateway — places/cancels orders and tracks their lifecycle locally.

PENDING  : placement가 order id를 반환한 시점
CANCELLED: cancel 성공 시점
체결(fill) 추적은 하지 않음.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from polycopy.models.order import Order, OrderStatus
from polycopy.models.trade import Outcome, Side

logger = logging.getLogger(__name__)


class OrderClient(Protocol):
    async def place_order(
        self, market_id: str, outcome: Outcome, side: Side, price: float, size: float,
    ) -> Optional[dict]: ...

    async def cancel_order(self, order_id: str) -> bool: ...


class OrderGateway:
    """Local order table in front of the venue order client."""

    def __init__(self, client: OrderClient):
        self.client = client
        self._orders: dict[str, Order] = {}

    async def place(
        self,
        market_id: str,
        outcome: Outcome,
        side: Side,
        price: float,
        size: float,
    ) -> Optional[Order]:
        """주문 제출. 실패 시 None (예외 전파 없음)."""
        try:
            response = await self.client.place_order(market_id, outcome, side, price, size)
        except Exception as exc:
            logger.error("[ORDER] place failed for %s: %s", market_id, exc)
            return None

        order_id = response.get("order_id") if isinstance(response, dict) else None
        if not order_id:
            logger.warning(
                "[ORDER] not placed: %s %s %.2f @ %.4f in %s",
                side.value, outcome.value, size, price, market_id,
            )
            return None

        order = Order(
            order_id=str(order_id),
            market_id=market_id,
            outcome=outcome,
            side=side,
            price=price,
            size=size,
        )
        self._orders[order.order_id] = order
        logger.info(
            "[ORDER] placed %s: %s %.2f %s @ %.4f ($%.2f)",
            order.order_id, side.value, size, outcome.value, price, order.notional_usd,
        )
        return order

    async def cancel(self, order_id: str) -> bool:
        """주문 취소. 모르는 order id면 venue 호출 없이 False."""
        order = self._orders.get(order_id)
        if order is None:
            logger.warning("[ORDER] cancel requested for unknown order %s", order_id)
            return False
        if order.status is OrderStatus.CANCELLED:
            return True

        try:
            cancelled = await self.client.cancel_order(order_id)
        except Exception as exc:
            logger.error("[ORDER] cancel failed for %s: %s", order_id, exc)
            return False

        if cancelled:
            order.status = OrderStatus.CANCELLED
            logger.info("[ORDER] cancelled %s", order_id)
        else:
            logger.warning("[ORDER] venue refused cancel for %s", order_id)
        return bool(cancelled)

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def orders(self) -> list[Order]:
        return list(self._orders.values())

    def market_orders(self, market_id: str) -> list[Order]:
        return [o for o in self._orders.values() if o.market_id == market_id]

    def pending_orders(self) -> list[Order]:
        return [o for o in self._orders.values() if o.status is OrderStatus.PENDING]
