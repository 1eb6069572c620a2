"""Trade data models — Outcome, Side, RawTrade, TradeEvent.

RawTrade는 venue payload를 정규화한 결과 (provider 공통 타입).
TradeEvent는 WalletWatcher가 지갑 정보를 붙여 방출하는 불변 이벤트.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class Outcome(Enum):
    """바이너리 마켓 아웃컴."""

    YES = "YES"
    NO = "NO"

    @classmethod
    def parse(cls, value) -> Optional[Outcome]:
        """'Yes', 'yes', 'YES' → Outcome.YES. 알 수 없으면 None."""
        if isinstance(value, Outcome):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None

    @property
    def opposite(self) -> Outcome:
        return Outcome.NO if self is Outcome.YES else Outcome.YES


class Side(Enum):
    """주문 방향."""

    BUY = "buy"
    SELL = "sell"

    @classmethod
    def parse(cls, value) -> Optional[Side]:
        if isinstance(value, Side):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a venue timestamp into a tz-aware UTC datetime.

    Accepts datetimes, epoch seconds or milliseconds (int/float/numeric str)
    and ISO-8601 strings (with or without a trailing ``Z``).

    Returns:
        datetime (UTC) or None if the value cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)

    if isinstance(value, (int, float)):
        seconds = float(value)
        # 1e12 이상이면 밀리초 단위
        if seconds > 1e12:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


@dataclass(frozen=True)
class RawTrade:
    """Normalized wallet activity record returned by every trade provider."""

    market_id: str
    outcome: Outcome
    side: Side
    price: float
    size: float             # shares
    timestamp: datetime
    market_question: str = ""
    tx_hash: Optional[str] = None
    position_id: Optional[str] = None
    source: str = ""


@dataclass(frozen=True)
class TradeEvent:
    """감지된 지갑 거래 (WalletWatcher → ReplicationEngine)."""

    wallet_address: str
    wallet_name: str
    market_id: str
    market_question: str
    outcome: Outcome
    side: Side
    price: float
    size: float             # shares
    timestamp: datetime
    tx_hash: Optional[str] = None
    position_id: Optional[str] = None

    @property
    def size_usd(self) -> float:
        """Quote-currency size = shares × price."""
        return self.size * self.price

    @classmethod
    def from_raw(
        cls, raw: RawTrade, wallet_address: str, wallet_name: str,
    ) -> TradeEvent:
        return cls(
            wallet_address=wallet_address,
            wallet_name=wallet_name,
            market_id=raw.market_id,
            market_question=raw.market_question,
            outcome=raw.outcome,
            side=raw.side,
            price=raw.price,
            size=raw.size,
            timestamp=raw.timestamp,
            tx_hash=raw.tx_hash,
            position_id=raw.position_id,
        )

    def describe(self) -> str:
        """로그용 한 줄 요약."""
        return (
            f"{self.side.value} ${self.size_usd:.2f} of {self.outcome.value} "
            f"@ {self.price:.4f} in {self.market_question[:50] or self.market_id}"
        )
