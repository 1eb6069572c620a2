"""CLOB order client — py-clob-client (live) or simulator (dry run).

dry_run=True: 시뮬레이션 (CLOB 미호출), 가짜 order id 발급.
dry_run=False: ClobClient로 실제 GTC 지정가 주문 제출.

py-clob-client는 블로킹 HTTP — asyncio.to_thread로 워커 스레드에서 실행.
절대 예외를 밖으로 던지지 않는다 (실패 = None / False).
"""

from __future__ import annotations

import asyncio
import logging
import math
import uuid
from typing import Optional

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, OrderArgs, OrderType

from polycopy.config import VenueConfig
from polycopy.discovery.market_directory import MarketDirectory
from polycopy.models.trade import Outcome, Side

logger = logging.getLogger(__name__)

# CLOB 최소 tick
PRICE_DECIMALS = 2
SIZE_DECIMALS = 2


def round_to_tick(price: float, side: Side) -> float:
    """tick 단위로 정렬. BUY는 올림, SELL은 내림 (기록된 호가보다 불리하게 걸리지 않도록)."""
    scale = 10 ** PRICE_DECIMALS
    # 0.07 * 100 = 7.000000000000001 같은 float 오차 제거 후 올림/내림
    ticks = round(price * scale, 6)
    ticks = math.ceil(ticks) if side is Side.BUY else math.floor(ticks)
    return round(ticks / scale, PRICE_DECIMALS)


class ClobOrderClient:
    """Place and cancel limit orders on the Polymarket CLOB.

    Args:
        directory: market id → 토큰 ID 해석용.
        dry_run: True면 주문을 시뮬레이션.
        clob_client: live 모드에서 사용할 ClobClient.
    """

    def __init__(
        self,
        directory: MarketDirectory,
        dry_run: bool = True,
        clob_client: Optional[ClobClient] = None,
    ):
        if not dry_run and clob_client is None:
            raise ValueError("live mode requires a ClobClient")
        self.directory = directory
        self.dry_run = dry_run
        self._client = clob_client
        self._simulated: dict[str, dict] = {}

    @classmethod
    def from_config(
        cls,
        venue: VenueConfig,
        directory: MarketDirectory,
        dry_run: bool = True,
    ) -> ClobOrderClient:
        """VenueConfig로 ClobClient 초기화 후 생성."""
        if dry_run:
            return cls(directory, dry_run=True)

        client = ClobClient(
            host=venue.clob_api_url,
            chain_id=venue.chain_id,
            key=venue.private_key,
            signature_type=2,  # POLY_PROXY
            funder=venue.funder,
        )
        if venue.has_api_creds:
            client.set_api_creds(ApiCreds(
                api_key=venue.api_key,
                api_secret=venue.api_secret,
                api_passphrase=venue.api_passphrase,
            ))
        else:
            client.set_api_creds(client.create_or_derive_api_creds())

        return cls(directory, dry_run=False, clob_client=client)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def place_order(
        self,
        market_id: str,
        outcome: Outcome,
        side: Side,
        price: float,
        size: float,
    ) -> Optional[dict]:
        """지정가 주문 제출.

        Returns:
            {"order_id": ...} on acceptance, None on any failure.
        """
        market = await self.directory.resolve(market_id)
        if market is None:
            logger.warning("[ORDER] Unknown market %s — order not placed", market_id)
            return None

        token_id = market.token_for(outcome)
        price = round_to_tick(price, side)
        size = round(size, SIZE_DECIMALS)
        if price <= 0 or price >= 1 or size <= 0:
            logger.warning(
                "[ORDER] Rejected invalid order: %s %s %.2f @ %.4f",
                side.value, outcome.value, size, price,
            )
            return None

        if self.dry_run:
            return self._place_dry_run(market_id, token_id, outcome, side, price, size)

        try:
            return await asyncio.to_thread(
                self._place_live, token_id, side, price, size,
            )
        except Exception as exc:
            logger.error(
                "[LIVE ORDER] Failed: %s | token=%s price=$%.4f size=%.2f",
                exc, token_id[:16], price, size,
            )
            return None

    async def cancel_order(self, order_id: str) -> bool:
        """주문 취소. 성공 여부 반환."""
        if self.dry_run:
            removed = self._simulated.pop(order_id, None)
            if removed is not None:
                logger.info("[DRY RUN] Would cancel: %s", order_id)
            return removed is not None

        try:
            return await asyncio.to_thread(self._cancel_live, order_id)
        except Exception as exc:
            logger.error("[LIVE ORDER] Cancel failed for %s: %s", order_id, exc)
            return False

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def _place_dry_run(
        self,
        market_id: str,
        token_id: str,
        outcome: Outcome,
        side: Side,
        price: float,
        size: float,
    ) -> dict:
        """Dry-run simulation — no CLOB calls."""
        order_id = f"dry-{uuid.uuid4().hex[:12]}"
        self._simulated[order_id] = {
            "market_id": market_id,
            "token_id": token_id,
            "outcome": outcome.value,
            "side": side.value,
            "price": price,
            "size": size,
        }
        logger.info(
            "[DRY RUN] Would submit: %s %s %.2f shares @ $%.4f | token=%s",
            side.value.upper(), outcome.value, size, price, token_id[:12],
        )
        return {"order_id": order_id, "dry_run": True}

    # ------------------------------------------------------------------
    # Live (worker thread)
    # ------------------------------------------------------------------

    def _place_live(self, token_id: str, side: Side, price: float, size: float) -> Optional[dict]:
        logger.info(
            "[LIVE ORDER] Submitting: %s %.2f shares @ $%.4f | token=%s",
            side.value.upper(), size, price, token_id[:16],
        )
        order_args = OrderArgs(
            token_id=token_id,
            price=price,
            size=size,
            side=side.value.upper(),
        )
        signed_order = self._client.create_order(order_args)
        response = self._client.post_order(signed_order, OrderType.GTC)

        if not isinstance(response, dict):
            logger.warning(
                "[LIVE ORDER] Invalid response type: %s", type(response).__name__,
            )
            return None
        if response.get("success") is False:
            logger.warning("[LIVE ORDER] Rejected: %s", response.get("errorMsg"))
            return None

        order_id = response.get("orderID") or response.get("order_id")
        if not order_id:
            logger.warning("[LIVE ORDER] No order id in response: %s", response)
            return None

        logger.info("[LIVE ORDER] Submitted: order_id=%s", order_id)
        return {"order_id": order_id, "dry_run": False, "status": response.get("status")}

    def _cancel_live(self, order_id: str) -> bool:
        response = self._client.cancel(order_id=order_id)
        if not isinstance(response, dict):
            return False
        canceled = response.get("canceled") or []
        if order_id in canceled:
            logger.info("[LIVE ORDER] Cancelled: %s", order_id)
            return True
        logger.warning(
            "[LIVE ORDER] Cancel not confirmed for %s: %s",
            order_id, response.get("not_canceled"),
        )
        return False
