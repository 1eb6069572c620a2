"""Cached market resolution: market id → Market, token id → (market, outcome)."""

from __future__ import annotations

import logging
import time
from typing import Iterable, Optional

from polycopy.discovery.gamma_client import GammaClient
from polycopy.models.market import Market
from polycopy.models.trade import Outcome

logger = logging.getLogger(__name__)

MISS_TTL_SECONDS = 60.0


def _monotonic() -> float:
    return time.monotonic()


class MarketDirectory:
    """Market lookup table backed by GammaClient.

    스캔 루프가 register()로 채우고, 오더북 소스와 체인 로그 provider가
    resolve()/resolve_token()으로 조회한다. 캐시 miss일 때만 Gamma 호출.
    """

    def __init__(self, gamma: GammaClient, miss_ttl: float = MISS_TTL_SECONDS):
        self.gamma = gamma
        self.miss_ttl = miss_ttl
        self._markets: dict[str, Market] = {}
        self._tokens: dict[str, tuple[str, Outcome]] = {}
        self._aliases: dict[str, str] = {}
        self._misses: dict[str, float] = {}  # key → 만료 시각 (monotonic)

    def register(self, markets: Iterable[Market]) -> int:
        """마켓 등록 (덮어쓰기). 등록 개수 반환."""
        count = 0
        for market in markets:
            self._markets[market.id] = market
            self._tokens[market.yes_token_id] = (market.id, Outcome.YES)
            self._tokens[market.no_token_id] = (market.id, Outcome.NO)
            self._misses.pop(market.id, None)
            count += 1
        return count

    def get(self, market_id: str) -> Optional[Market]:
        """캐시 조회만 (네트워크 없음)."""
        market_id = self._aliases.get(market_id, market_id)
        return self._markets.get(market_id)

    async def resolve(self, market_id: str) -> Optional[Market]:
        """캐시 → Gamma 순으로 조회. 실패한 id는 miss_ttl 동안 다시 묻지 않음."""
        market = self.get(market_id)
        if market is not None:
            return market
        if self._recent_miss(market_id):
            return None

        market = await self.gamma.get_market(market_id)
        if market is None:
            logger.debug("Market %s not found on Gamma", market_id)
            self._remember_miss(market_id)
            return None

        self.register([market])
        # Gamma 숫자 id로 조회한 경우에도 같은 키로 찾을 수 있게
        if market.id != market_id:
            self._aliases[market_id] = market.id
        return market

    def lookup_token(self, token_id: str) -> Optional[tuple[Market, Outcome]]:
        entry = self._tokens.get(token_id)
        if entry is None:
            return None
        market_id, outcome = entry
        return self._markets[market_id], outcome

    async def resolve_token(self, token_id: str) -> Optional[tuple[Market, Outcome]]:
        """토큰 ID → (Market, Outcome). 캐시 miss 시 Gamma 역조회."""
        found = self.lookup_token(token_id)
        if found is not None:
            return found
        if self._recent_miss(token_id):
            return None

        market = await self.gamma.get_market_by_token(token_id)
        if market is None:
            self._remember_miss(token_id)
            return None
        self.register([market])
        return self.lookup_token(token_id)

    # Gamma 오류(5xx, 타임아웃)도 None으로 오므로 miss는 TTL 동안만 유지
    def _recent_miss(self, key: str) -> bool:
        expires = self._misses.get(key)
        if expires is None:
            return False
        if _monotonic() >= expires:
            del self._misses[key]
            return False
        return True

    def _remember_miss(self, key: str) -> None:
        now = _monotonic()
        for stale in [k for k, exp in self._misses.items() if exp <= now]:
            del self._misses[stale]
        self._misses[key] = now + self.miss_ttl

    def market_ids(self) -> list[str]:
        return list(self._markets.keys())

    def __len__(self) -> int:
        return len(self._markets)

    def __contains__(self, market_id: object) -> bool:
        return market_id in self._markets
