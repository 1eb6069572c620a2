"""CLOB order book source — both token books of a binary market as one OrderBook.

CLOB /book 은 토큰 단위이므로 MarketDirectory로 YES/NO 토큰을 찾은 뒤
두 오더북을 동시에 조회한다. 한쪽이라도 실패하면 None (스캔 결과 없음).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from polycopy.config import CLOB_API_URL
from polycopy.discovery.market_directory import MarketDirectory
from polycopy.models.orderbook import BookSide, OrderBook
from polycopy.models.trade import Outcome

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds


class ClobOrderbookSource:
    """Fetch order books from CLOB API (``{clob}/book?token_id=``)."""

    # Retry config for 429 errors
    MAX_RETRIES = 3
    BACKOFF_BASE = 0.5  # seconds

    def __init__(
        self,
        directory: MarketDirectory,
        base_url: str = CLOB_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.directory = directory
        self.book_url = f"{base_url.rstrip('/')}/book"
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def get_order_book(self, market_id: str) -> Optional[OrderBook]:
        """마켓 오더북 스냅샷. 마켓을 모르거나 조회 실패 시 None."""
        market = await self.directory.resolve(market_id)
        if market is None:
            logger.debug("Unknown market %s — no order book", market_id)
            return None

        yes_book, no_book = await asyncio.gather(
            self.fetch_token_book(market.yes_token_id),
            self.fetch_token_book(market.no_token_id),
        )
        if yes_book is None or no_book is None:
            return None

        return OrderBook(
            market_id=market.id,
            outcomes={Outcome.YES: yes_book, Outcome.NO: no_book},
            market_question=market.question,
        )

    async def fetch_token_book(self, token_id: str) -> Optional[BookSide]:
        """단일 토큰 오더북. 429시 지수 백오프 재시도. 실패 시 None."""
        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                session = await self._ensure_session()
                async with session.get(
                    self.book_url, params={"token_id": token_id},
                ) as resp:
                    if resp.status == 429:
                        wait = self.BACKOFF_BASE * (2 ** (attempt - 1))
                        logger.warning(
                            "CLOB API 429 for token %s (attempt %d/%d), backing off %.1fs",
                            token_id, attempt, self.MAX_RETRIES, wait,
                        )
                        await asyncio.sleep(wait)
                        continue
                    if resp.status != 200:
                        logger.warning(
                            "CLOB API returned %d for token %s", resp.status, token_id,
                        )
                        return None
                    data = await resp.json(content_type=None)
                    if not isinstance(data, dict):
                        return None
                    return BookSide.from_clob(data)
            except Exception as exc:
                logger.warning("CLOB fetch error for token %s: %s", token_id, exc)
                return None
        logger.warning("CLOB API exhausted retries for token %s", token_id)
        return None

    async def close(self) -> None:
        """Close owned aiohttp session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None
