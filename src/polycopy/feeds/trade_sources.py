"""Wallet activity sources — Data API providers + ordered fallback.

Provider 순서 (첫 번째 non-empty 결과 채택):
    1) PositionsProvider  — /positions?user=   (새 포지션 = buy 거래)
    2) ChainLogProvider   — Polygon OrderFilled 로그 (feeds/chain_log.py)
    3) ActivityProvider   — /activity?user=&type=TRADE
    4) TradesProvider     — /trades?user=

각 provider의 실패는 빈 리스트로 취급 — 다음 provider로 넘어감.
페이로드 형태는 보장되지 않으므로 normalizer는 관대하게 파싱하고
시장 ID 없음 / 알 수 없는 outcome·side / price <= 0 레코드는 버린다.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence

import aiohttp

from polycopy.config import DATA_API_URL
from polycopy.models.trade import Outcome, RawTrade, Side, parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds
DEFAULT_LIMIT = 100


class TradeProvider(Protocol):
    name: str

    async def fetch(
        self, wallet_address: str, since: Optional[datetime],
    ) -> list[RawTrade]: ...


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------


def _first(record: dict, *keys):
    """첫 번째로 비어있지 않은 값."""
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _to_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _market_fields(record: dict) -> tuple[Optional[str], str]:
    """(market_id, question). market 필드는 dict 또는 문자열일 수 있음."""
    market = record.get("market")
    nested = market if isinstance(market, dict) else {}

    market_id = _first(record, "conditionId", "marketId", "market_id")
    if market_id is None:
        market_id = _first(nested, "conditionId", "id")
    if market_id is None and isinstance(market, str) and market:
        market_id = market

    question = _first(record, "title", "question") or _first(nested, "question") or ""
    return (str(market_id) if market_id is not None else None), str(question)


def _outcome_of(record: dict) -> Optional[Outcome]:
    outcome = Outcome.parse(record.get("outcome"))
    if outcome is not None:
        return outcome
    index = record.get("outcomeIndex")
    if index in (0, "0"):
        return Outcome.YES
    if index in (1, "1"):
        return Outcome.NO
    return None


def normalize_position(
    record: dict, since: Optional[datetime] = None,
) -> Optional[RawTrade]:
    """Data API position → RawTrade (side=buy). since 이전 포지션은 None."""
    if not isinstance(record, dict):
        return None

    market_id, question = _market_fields(record)
    outcome = _outcome_of(record)
    price = _to_float(_first(record, "avgPrice", "price", "pricePerShare"))
    size = _to_float(_first(record, "size", "amount", "quantity"))
    if market_id is None or outcome is None or price is None or price <= 0:
        return None

    opened_at = parse_timestamp(_first(record, "createdAt", "timestamp", "openedAt"))
    if since is not None and opened_at is not None and opened_at <= since:
        return None

    position_id = _first(record, "id", "positionId", "asset")
    tx_hash = _first(record, "transactionHash", "txHash")
    return RawTrade(
        market_id=market_id,
        outcome=outcome,
        side=Side.BUY,
        price=price,
        size=size or 0.0,
        timestamp=opened_at or datetime.now(tz=timezone.utc),
        market_question=question,
        tx_hash=str(tx_hash) if tx_hash else None,
        position_id=str(position_id) if position_id else None,
        source="positions",
    )


def normalize_trade(record: dict, source: str) -> Optional[RawTrade]:
    """Data API activity/trade 레코드 → RawTrade."""
    if not isinstance(record, dict):
        return None

    record_type = str(record.get("type") or "").upper()
    if record_type and record_type not in ("TRADE", "BUY", "SELL"):
        return None

    market_id, question = _market_fields(record)
    outcome = _outcome_of(record)
    side = Side.parse(record.get("side"))
    if side is None and record_type in ("BUY", "SELL"):
        side = Side.parse(record_type)
    price = _to_float(_first(record, "price", "pricePerShare"))
    size = _to_float(_first(record, "size", "amount"))
    if (
        market_id is None
        or outcome is None
        or side is None
        or price is None
        or price <= 0
    ):
        return None

    timestamp = parse_timestamp(_first(record, "timestamp", "createdAt", "time"))
    tx_hash = _first(record, "transactionHash", "txHash", "hash")
    return RawTrade(
        market_id=market_id,
        outcome=outcome,
        side=side,
        price=price,
        size=size or 0.0,
        timestamp=timestamp or datetime.now(tz=timezone.utc),
        market_question=question,
        tx_hash=str(tx_hash) if tx_hash else None,
        source=source,
    )


# ---------------------------------------------------------------------------
# Data API providers
# ---------------------------------------------------------------------------


class DataApiProvider:
    """Shared aiohttp plumbing for Data API providers."""

    name = "data_api"
    MAX_RETRIES = 2
    BACKOFF_BASE = 0.5  # seconds

    def __init__(
        self,
        base_url: str = DATA_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = DEFAULT_TIMEOUT,
        limit: int = DEFAULT_LIMIT,
    ):
        self.base_url = base_url.rstrip("/")
        self.limit = limit
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _get_records(self, path: str, params: dict) -> list[dict]:
        """GET → 레코드 리스트. {"data": [...]} 래핑 허용. 실패 시 빈 리스트."""
        url = f"{self.base_url}{path}"
        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                session = await self._ensure_session()
                async with session.get(url, params=params) as resp:
                    if resp.status == 429:
                        wait = self.BACKOFF_BASE * (2 ** (attempt - 1))
                        logger.warning(
                            "Data API 429 %s (attempt %d/%d), backing off %.1fs",
                            path, attempt, self.MAX_RETRIES, wait,
                        )
                        await asyncio.sleep(wait)
                        continue
                    if resp.status == 400:
                        # 인증이 필요한 엔드포인트 — 정상적인 상황
                        logger.debug("Data API %s returned 400", path)
                        return []
                    if resp.status != 200:
                        logger.warning("Data API %s returned %d", path, resp.status)
                        return []
                    data = await resp.json(content_type=None)
            except Exception as exc:
                logger.debug("Data API %s error: %s", path, exc)
                return []

            if isinstance(data, dict):
                data = data.get("data")
            if not isinstance(data, list):
                return []
            return [r for r in data if isinstance(r, dict)]
        return []

    async def close(self) -> None:
        """Close owned aiohttp session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class PositionsProvider(DataApiProvider):
    """현재 포지션 조회 — 새 포지션을 buy 거래로 간주."""

    name = "positions"

    async def fetch(
        self, wallet_address: str, since: Optional[datetime],
    ) -> list[RawTrade]:
        records = await self._get_records(
            "/positions", {"user": wallet_address.lower()},
        )
        trades = []
        for record in records:
            trade = normalize_position(record, since)
            if trade is not None:
                trades.append(trade)
        return trades


class ActivityProvider(DataApiProvider):
    """/activity — 지갑 활동 중 TRADE 레코드."""

    name = "activity"

    async def fetch(
        self, wallet_address: str, since: Optional[datetime],
    ) -> list[RawTrade]:
        params = {
            "user": wallet_address.lower(),
            "type": "TRADE",
            "limit": str(self.limit),
        }
        if since is not None:
            params["start"] = str(int(since.timestamp()))
        records = await self._get_records("/activity", params)
        return [t for t in (normalize_trade(r, self.name) for r in records) if t]


class TradesProvider(DataApiProvider):
    """/trades — 체결 내역."""

    name = "trades"

    async def fetch(
        self, wallet_address: str, since: Optional[datetime],
    ) -> list[RawTrade]:
        params = {"user": wallet_address.lower(), "limit": str(self.limit)}
        if since is not None:
            params["start"] = str(int(since.timestamp()))
        records = await self._get_records("/trades", params)
        return [t for t in (normalize_trade(r, self.name) for r in records) if t]


# ---------------------------------------------------------------------------
# Fallback composition
# ---------------------------------------------------------------------------


class FallbackTradeSource:
    """Try providers in order; the first non-empty result wins.

    Args:
        providers: 우선순위 순서의 provider 목록.
    """

    def __init__(self, providers: Sequence[TradeProvider]):
        self.providers = list(providers)

    async def get_trades(
        self, wallet_address: str, since: Optional[datetime] = None,
    ) -> list[RawTrade]:
        for provider in self.providers:
            name = getattr(provider, "name", type(provider).__name__)
            try:
                trades = await provider.fetch(wallet_address, since)
            except Exception as exc:
                logger.debug(
                    "Trade provider %s failed for %s: %s", name, wallet_address, exc,
                )
                trades = []
            if trades:
                logger.debug(
                    "Trade provider %s returned %d records for %s",
                    name, len(trades), wallet_address,
                )
                return trades
        return []

    async def close(self) -> None:
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()
