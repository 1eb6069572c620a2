"""Gamma API client with retry and error handling."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from polycopy.config import GAMMA_API_URL
from polycopy.models.market import Market

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds
DEFAULT_MAX_RETRIES = 3


class GammaClient:
    """Async client for Polymarket Gamma API (market discovery).

    Usage:
        async with GammaClient() as client:
            markets = await client.list_markets(limit=100)
    """

    def __init__(
        self,
        base_url: str = GAMMA_API_URL,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_retries = max_retries
        self._session = session
        self._owns_session = session is None

    async def open(self) -> None:
        """Open aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True

    async def close(self) -> None:
        """Close owned aiohttp session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> GammaClient:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_markets(
        self,
        active_only: bool = True,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Market]:
        """GET /markets — 마켓 목록. 파싱 불가 항목은 제외. 실패 시 빈 리스트."""
        params = {"limit": str(limit), "offset": str(offset)}
        if active_only:
            params["active"] = "true"
            params["closed"] = "false"

        raw_markets = await self._get_list(f"{self.base_url}/markets", params)
        markets = []
        for raw in raw_markets:
            market = Market.from_gamma_response(raw)
            if market is None:
                continue
            if active_only and not market.active:
                continue
            markets.append(market)
        return markets

    async def get_market(self, market_id: str) -> Optional[Market]:
        """단일 마켓 조회.

        condition id(0x...)는 /markets?condition_ids= 로,
        Gamma 숫자 id는 /markets/{id} 로 조회한다.
        """
        if market_id.startswith("0x"):
            markets = await self.get_markets_by_condition_ids([market_id])
            return markets[0] if markets else None

        raw = await self._get_dict(f"{self.base_url}/markets/{market_id}", {})
        if raw is None:
            return None
        return Market.from_gamma_response(raw)

    async def get_markets_by_condition_ids(
        self, condition_ids: list[str],
    ) -> list[Market]:
        """GET /markets?condition_ids=... — condition id 일괄 조회."""
        if not condition_ids:
            return []
        params = [("condition_ids", cid) for cid in condition_ids]
        raw_markets = await self._get_list(f"{self.base_url}/markets", params)
        markets = []
        for raw in raw_markets:
            market = Market.from_gamma_response(raw)
            if market is not None:
                markets.append(market)
        return markets

    async def get_market_by_token(self, token_id: str) -> Optional[Market]:
        """GET /markets?clob_token_ids= — CLOB 토큰 ID로 마켓 역조회."""
        raw_markets = await self._get_list(
            f"{self.base_url}/markets", {"clob_token_ids": token_id},
        )
        for raw in raw_markets:
            market = Market.from_gamma_response(raw)
            if market is not None and market.outcome_for_token(token_id) is not None:
                return market
        return None

    # ------------------------------------------------------------------
    # HTTP helpers with retry
    # ------------------------------------------------------------------

    async def _get_list(self, url: str, params) -> list[dict]:
        """GET → list. {"data": [...]} 래핑도 허용. 실패 시 빈 리스트."""
        data = await self._get_json(url, params)
        if isinstance(data, dict):
            data = data.get("data")
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    async def _get_dict(self, url: str, params) -> Optional[dict]:
        """GET → dict. 실패 시 None."""
        data = await self._get_json(url, params)
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        return data if isinstance(data, dict) else None

    async def _get_json(self, url: str, params):
        """GET → parsed JSON. 429시 지수 백오프. 실패 시 None (크래시 방지)."""
        await self.open()
        for attempt in range(1, self.max_retries + 1):
            try:
                async with self._session.get(url, params=params) as resp:
                    if resp.status == 200:
                        return await resp.json(content_type=None)
                    if resp.status == 429:
                        wait = 1.0 * (2 ** (attempt - 1))
                        logger.warning(
                            "API 429 rate limit %s (attempt %d/%d), backing off %.1fs",
                            url, attempt, self.max_retries, wait,
                        )
                        await asyncio.sleep(wait)
                        continue
                    if resp.status == 404:
                        return None
                    logger.warning(
                        "Gamma API %s returned %d (attempt %d/%d)",
                        url, resp.status, attempt, self.max_retries,
                    )
            except Exception as exc:
                logger.warning(
                    "Gamma API %s error (attempt %d/%d): %s",
                    url, attempt, self.max_retries, exc,
                )

            # exponential backoff (짧게 — 테스트에서 빠르게)
            if attempt < self.max_retries:
                await asyncio.sleep(0.1 * (2 ** (attempt - 1)))

        return None
