"""Market data model."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from polycopy.models.trade import Outcome

logger = logging.getLogger(__name__)


def _as_list(value) -> Optional[list]:
    """Gamma API는 배열을 JSON 문자열로 반환할 수 있음."""
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return None
        return parsed if isinstance(parsed, list) else None
    return None


def _as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Market:
    """A single Polymarket binary market.

    ``id`` is the condition id when Gamma provides one, so the same key is
    shared by wallet activity (Data API) and order book scans.
    """

    id: str
    question: str
    yes_token_id: str
    no_token_id: str
    volume_24h: float = 0.0
    liquidity_usd: float = 0.0
    active: bool = True
    gamma_id: str = ""

    def token_for(self, outcome: Outcome) -> str:
        """아웃컴 → CLOB 토큰 ID."""
        return self.yes_token_id if outcome is Outcome.YES else self.no_token_id

    def outcome_for_token(self, token_id: str) -> Optional[Outcome]:
        if token_id == self.yes_token_id:
            return Outcome.YES
        if token_id == self.no_token_id:
            return Outcome.NO
        return None

    @staticmethod
    def from_gamma_response(raw_mkt: dict) -> Optional[Market]:
        """Gamma API raw dict → Market 객체. 파싱 실패 시 None."""
        if not isinstance(raw_mkt, dict):
            return None

        token_ids = _as_list(raw_mkt.get("clobTokenIds"))
        if not token_ids or len(token_ids) < 2:
            return None

        market_id = raw_mkt.get("conditionId") or raw_mkt.get("id")
        if not market_id:
            return None

        volume = raw_mkt.get("volume24hr")
        if volume is None:
            volume = raw_mkt.get("volume24h", raw_mkt.get("volume_24h", 0))

        return Market(
            id=str(market_id),
            question=raw_mkt.get("question", "") or "",
            yes_token_id=str(token_ids[0]),
            no_token_id=str(token_ids[1]),
            volume_24h=_as_float(volume),
            liquidity_usd=_as_float(raw_mkt.get("liquidity")),
            active=bool(raw_mkt.get("active", True)) and not raw_mkt.get("closed", False),
            gamma_id=str(raw_mkt.get("id", "")),
        )
