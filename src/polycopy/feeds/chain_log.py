"""On-chain wallet trades — CTF Exchange ``OrderFilled`` logs via Polygon JSON-RPC.

OrderFilled(bytes32 indexed orderHash, address indexed maker, address indexed taker,
            uint256 makerAssetId, uint256 takerAssetId,
            uint256 makerAmountFilled, uint256 takerAmountFilled, uint256 fee)

asset id 0 = USDC (collateral), 그 외 = 포지션 토큰 (CLOB token id).
금액은 모두 6 decimals.

지갑 관점 해석:
    maker, makerAssetId == 0  → BUY  takerAssetId (USDC 지불)
    maker, makerAssetId != 0  → SELL makerAssetId
    taker, makerAssetId == 0  → SELL takerAssetId (maker가 USDC 지불)
    taker, makerAssetId != 0  → BUY  makerAssetId
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import aiohttp

from polycopy.config import POLYGON_RPC_URL
from polycopy.discovery.market_directory import MarketDirectory
from polycopy.models.trade import RawTrade, Side

logger = logging.getLogger(__name__)

# Polymarket CTF Exchange (Polygon)
CTF_EXCHANGE_ADDRESS = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
# keccak256("OrderFilled(bytes32,address,address,uint256,uint256,uint256,uint256,uint256)")
ORDER_FILLED_TOPIC = "0xd0a08e8c493f9c94f29311604c9de1b4e8c8d4c06bd0c789af57f2d65bfec0f6"

# 대부분의 public RPC가 getLogs 범위를 ~2000 블록으로 제한
BLOCK_CHUNK_SIZE = 1000
MAX_LOOKBACK_BLOCKS = 1000
POLYGON_BLOCK_TIME_SECONDS = 2.0
TOKEN_DECIMALS = 1_000_000
BLOCK_TIME_CACHE_SIZE = 4096  # 블록 timestamp 캐시 상한 (오래된 것부터 제거)
DEFAULT_TIMEOUT = 15  # seconds


class ChainRpcError(Exception):
    """JSON-RPC error response or malformed result."""


@dataclass(frozen=True)
class DecodedFill:
    """One OrderFilled log seen from the watched wallet's side."""

    token_id: str
    side: Side
    shares: float
    usdc: float
    tx_hash: str
    block_number: int

    @property
    def price(self) -> float:
        return self.usdc / self.shares if self.shares > 0 else 0.0


def address_topic(address: str) -> str:
    """20바이트 주소 → 32바이트 indexed topic."""
    return "0x" + address.lower().removeprefix("0x").rjust(64, "0")


def _topic_address(topic: str) -> str:
    return "0x" + topic[-40:].lower()


def _data_words(data: str) -> list[int]:
    body = data.removeprefix("0x")
    return [int(body[i:i + 64], 16) for i in range(0, len(body) - 63, 64)]


def decode_order_filled(log: dict, wallet_address: str) -> Optional[DecodedFill]:
    """OrderFilled 로그 → DecodedFill. 지갑이 maker/taker가 아니거나 형식 오류면 None."""
    try:
        topics = log["topics"]
        if len(topics) < 4 or topics[0].lower() != ORDER_FILLED_TOPIC:
            return None
        maker = _topic_address(topics[2])
        taker = _topic_address(topics[3])
        words = _data_words(log["data"])
        if len(words) < 4:
            return None
        block_number = int(log["blockNumber"], 16)
        tx_hash = log["transactionHash"]
    except (KeyError, TypeError, ValueError, AttributeError):
        return None

    maker_asset, taker_asset, maker_amount, taker_amount = words[:4]
    wallet = wallet_address.lower()

    if wallet == maker:
        if maker_asset == 0:
            token, side, shares, usdc = taker_asset, Side.BUY, taker_amount, maker_amount
        else:
            token, side, shares, usdc = maker_asset, Side.SELL, maker_amount, taker_amount
    elif wallet == taker:
        if maker_asset == 0:
            token, side, shares, usdc = taker_asset, Side.SELL, taker_amount, maker_amount
        else:
            token, side, shares, usdc = maker_asset, Side.BUY, maker_amount, taker_amount
    else:
        return None

    if token == 0 or shares == 0:
        return None

    return DecodedFill(
        token_id=str(token),
        side=side,
        shares=shares / TOKEN_DECIMALS,
        usdc=usdc / TOKEN_DECIMALS,
        tx_hash=tx_hash,
        block_number=block_number,
    )


class ChainLogProvider:
    """Trade provider reading OrderFilled logs for a wallet.

    Args:
        directory: token id → (market, outcome) 해석용.
        rpc_url: Polygon JSON-RPC 엔드포인트.
        max_lookback_blocks: since가 없거나 너무 오래된 경우 조회할 최대 블록 수.
    """

    name = "chain_log"

    def __init__(
        self,
        directory: MarketDirectory,
        rpc_url: str = POLYGON_RPC_URL,
        exchange_address: str = CTF_EXCHANGE_ADDRESS,
        max_lookback_blocks: int = MAX_LOOKBACK_BLOCKS,
        chunk_size: int = BLOCK_CHUNK_SIZE,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.directory = directory
        self.rpc_url = rpc_url
        self.exchange_address = exchange_address
        self.max_lookback_blocks = max_lookback_blocks
        self.chunk_size = max(1, chunk_size)
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._request_id = 0
        self._block_times: OrderedDict[int, datetime] = OrderedDict()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    # ------------------------------------------------------------------
    # Provider API
    # ------------------------------------------------------------------

    async def fetch(
        self, wallet_address: str, since: Optional[datetime],
    ) -> list[RawTrade]:
        """최근 블록 범위의 지갑 체결 → RawTrade. 실패 시 빈 리스트."""
        try:
            return await self._fetch(wallet_address, since)
        except (ChainRpcError, aiohttp.ClientError, TimeoutError, ValueError, TypeError) as exc:
            logger.debug("Chain log fetch failed for %s: %s", wallet_address, exc)
            return []

    async def _fetch(
        self, wallet_address: str, since: Optional[datetime],
    ) -> list[RawTrade]:
        head = int(await self._rpc("eth_blockNumber", []), 16)
        from_block = self._start_block(head, since)

        logs: list[dict] = []
        wallet_topic = address_topic(wallet_address)
        block = from_block
        while block <= head:
            to_block = min(block + self.chunk_size - 1, head)
            # maker 또는 taker로 참여한 체결
            logs.extend(await self._get_logs(block, to_block, [None, wallet_topic]))
            logs.extend(await self._get_logs(block, to_block, [None, None, wallet_topic]))
            block = to_block + 1

        trades: list[RawTrade] = []
        seen: set[tuple[str, str]] = set()
        for log in sorted(logs, key=_log_order):
            fill = decode_order_filled(log, wallet_address)
            if fill is None:
                continue
            key = (fill.tx_hash, log.get("logIndex", ""))
            if key in seen:
                continue
            seen.add(key)

            trade = await self._to_raw_trade(fill)
            if trade is None:
                continue
            if since is not None and trade.timestamp <= since:
                continue
            trades.append(trade)
        return trades

    def _start_block(self, head: int, since: Optional[datetime]) -> int:
        earliest = max(0, head - self.max_lookback_blocks)
        if since is None:
            return earliest
        elapsed = (datetime.now(tz=timezone.utc) - since).total_seconds()
        estimate = head - int(max(elapsed, 0) / POLYGON_BLOCK_TIME_SECONDS) - 1
        return max(earliest, min(estimate, head))

    async def _to_raw_trade(self, fill: DecodedFill) -> Optional[RawTrade]:
        resolved = await self.directory.resolve_token(fill.token_id)
        if resolved is None:
            logger.debug("Unknown token %s in tx %s", fill.token_id, fill.tx_hash)
            return None
        market, outcome = resolved
        if fill.price <= 0:
            return None

        return RawTrade(
            market_id=market.id,
            outcome=outcome,
            side=fill.side,
            price=fill.price,
            size=fill.shares,
            timestamp=await self._block_time(fill.block_number),
            market_question=market.question,
            tx_hash=fill.tx_hash,
            source=self.name,
        )

    # ------------------------------------------------------------------
    # JSON-RPC
    # ------------------------------------------------------------------

    async def _get_logs(self, from_block: int, to_block: int, topics: list) -> list[dict]:
        params = [{
            "address": self.exchange_address,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": [ORDER_FILLED_TOPIC, *topics],
        }]
        result = await self._rpc("eth_getLogs", params)
        if not isinstance(result, list):
            raise ChainRpcError(f"eth_getLogs returned {type(result).__name__}")
        return [log for log in result if isinstance(log, dict)]

    async def _block_time(self, block_number: int) -> datetime:
        cached = self._block_times.get(block_number)
        if cached is not None:
            return cached
        block = await self._rpc("eth_getBlockByNumber", [hex(block_number), False])
        if not isinstance(block, dict) or "timestamp" not in block:
            raise ChainRpcError(f"block {block_number} not found")
        when = datetime.fromtimestamp(int(block["timestamp"], 16), tz=timezone.utc)
        self._block_times[block_number] = when
        while len(self._block_times) > BLOCK_TIME_CACHE_SIZE:
            self._block_times.popitem(last=False)
        return when

    async def _rpc(self, method: str, params: list):
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        session = await self._ensure_session()
        async with session.post(self.rpc_url, json=payload) as resp:
            if resp.status != 200:
                raise ChainRpcError(f"{method} HTTP {resp.status}")
            body = await resp.json(content_type=None)
        if not isinstance(body, dict):
            raise ChainRpcError(f"{method} malformed response")
        if body.get("error"):
            error = body["error"]
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ChainRpcError(f"{method}: {message}")
        return body.get("result")

    async def close(self) -> None:
        """Close owned aiohttp session."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None


def _log_order(log: dict) -> tuple[int, int]:
    try:
        return int(log.get("blockNumber", "0x0"), 16), int(log.get("logIndex", "0x0"), 16)
    except (TypeError, ValueError):
        return 0, 0
