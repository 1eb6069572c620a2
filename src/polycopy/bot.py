"""Copy-arb bot — wires collaborators together and runs the loops.

Loops (asyncio.gather, 공통 stop_event):
    1) wallet watch   — WalletWatcher.run → bounded queue
    2) replication    — queue → 지갑별 ReplicationEngine
    3) arb scan       — 마켓 목록 갱신 + ArbitrageDetector.scan_markets
    4) status report  — StatusReport 주기 로그
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from polycopy.config import BotConfig
from polycopy.discovery.gamma_client import GammaClient
from polycopy.discovery.market_directory import MarketDirectory
from polycopy.discovery.market_filter import MarketFilter
from polycopy.execution.order_client import ClobOrderClient
from polycopy.execution.order_gateway import OrderClient, OrderGateway
from polycopy.execution.replication import ReplicationEngine, ReplicationResult
from polycopy.feeds.chain_log import ChainLogProvider
from polycopy.feeds.orderbook_source import ClobOrderbookSource
from polycopy.feeds.trade_sources import (
    ActivityProvider,
    FallbackTradeSource,
    PositionsProvider,
    TradesProvider,
)
from polycopy.models.trade import TradeEvent
from polycopy.monitoring.status_report import StatusReport
from polycopy.recency import RecencySet
from polycopy.risk.exposure_ledger import ExposureLedger
from polycopy.strategy.arbitrage_detector import ArbitrageDetector, OrderBookSource
from polycopy.strategy.opportunity_cache import OpportunityCache
from polycopy.watcher.wallet_watcher import TradeSource, WalletWatcher

logger = logging.getLogger(__name__)

# Gamma 마켓 목록 재조회 주기 (초)
MARKET_REFRESH_SECONDS = 60.0
# 스캔 대상에 추가되는 최근 복제 마켓 수 상한
MAX_TRADED_MARKETS = 500


class CopyArbBot:
    """Polymarket arbitrage-gated copy trading bot.

    Collaborators are injected so tests can replace any of them;
    from_config() builds the production set.
    """

    def __init__(
        self,
        config: BotConfig,
        gamma: GammaClient,
        directory: MarketDirectory,
        book_source: OrderBookSource,
        trade_source: TradeSource,
        order_client: OrderClient,
    ):
        self.config = config
        self.gamma = gamma
        self.directory = directory
        self.book_source = book_source
        self.trade_source = trade_source
        self.order_client = order_client

        self.cache = OpportunityCache(
            max_age_seconds=config.arbitrage.opportunity_max_age_seconds,
        )
        self.detector = ArbitrageDetector(config.arbitrage, book_source, self.cache)
        self.ledger = ExposureLedger(config.risk)
        self.gateway = OrderGateway(order_client)
        self.watcher = WalletWatcher(trade_source)
        self.market_filter = MarketFilter(
            enabled_markets=config.enabled_markets,
            min_volume_24h=config.min_market_volume_24h,
        )
        self.engines: dict[str, ReplicationEngine] = {
            wallet.address.lower(): ReplicationEngine(
                wallet, self.detector, self.ledger, self.gateway,
            )
            for wallet in config.enabled_wallets()
        }

        self._scan_markets: list[str] = []
        self._traded_markets = RecencySet(max_items=MAX_TRADED_MARKETS)
        self._markets_refreshed_at: Optional[float] = None
        self._scan_count = 0

    @classmethod
    def from_config(cls, config: BotConfig) -> CopyArbBot:
        """Production collaborators from config."""
        venue = config.venue
        gamma = GammaClient(base_url=venue.gamma_api_url)
        directory = MarketDirectory(gamma)
        book_source = ClobOrderbookSource(directory, base_url=venue.clob_api_url)

        providers = [PositionsProvider(base_url=venue.data_api_url)]
        if venue.rpc_url:
            providers.append(ChainLogProvider(directory, rpc_url=venue.rpc_url))
        providers.append(ActivityProvider(base_url=venue.data_api_url))
        providers.append(TradesProvider(base_url=venue.data_api_url))

        order_client = ClobOrderClient.from_config(
            venue, directory, dry_run=config.dry_run,
        )
        return cls(
            config=config,
            gamma=gamma,
            directory=directory,
            book_source=book_source,
            trade_source=FallbackTradeSource(providers),
            order_client=order_client,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, stop_event: asyncio.Event) -> None:
        """모든 루프 실행. stop_event가 set되면 각 루프가 다음 반복에서 종료."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.config.event_queue_size)
        wallets = self.config.enabled_wallets()

        logger.info(
            "Starting bot: %d wallets, internal arb %s, %s mode",
            len(wallets),
            "enabled" if self.config.arbitrage.internal_enabled else "disabled",
            "DRY RUN" if self.config.dry_run else "LIVE",
        )

        try:
            await asyncio.gather(
                self.watcher.run(
                    wallets, queue, stop_event, self.config.wallet_check_interval,
                ),
                self.replication_loop(queue, stop_event),
                self.arbitrage_scan_loop(stop_event),
                self.status_loop(stop_event),
            )
        finally:
            await self.close()

    async def close(self) -> None:
        for component in (self.trade_source, self.book_source, self.gamma):
            close = getattr(component, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as exc:
                logger.warning("Error closing %s: %s", type(component).__name__, exc)

    # ------------------------------------------------------------------
    # Replication
    # ------------------------------------------------------------------

    async def handle_event(self, event: TradeEvent) -> Optional[ReplicationResult]:
        """이벤트를 해당 지갑의 엔진으로 라우팅."""
        engine = self.engines.get(event.wallet_address.lower())
        if engine is None:
            logger.warning("No copy engine configured for wallet %s", event.wallet_address)
            return None

        if self.market_filter.enabled_markets is None or (
            event.market_id in self.market_filter.enabled_markets
        ):
            self._traded_markets.add(event.market_id)
        return await engine.process(event)

    async def replication_loop(
        self, queue: asyncio.Queue, stop_event: asyncio.Event,
    ) -> None:
        while not stop_event.is_set():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception("Error handling wallet trade from %s", event.wallet_name)
            finally:
                queue.task_done()

    # ------------------------------------------------------------------
    # Arbitrage scan
    # ------------------------------------------------------------------

    async def refresh_markets(self) -> list[str]:
        """Gamma에서 활성 마켓 조회 → 필터 → 디렉토리 등록."""
        markets = await self.gamma.list_markets(
            active_only=True, limit=self.config.market_scan_limit,
        )
        selected = self.market_filter.apply(markets)
        self.directory.register(selected)
        self._scan_markets = [m.id for m in selected]
        self._markets_refreshed_at = time.monotonic()
        logger.info(
            "[ARB] %d/%d markets selected for scanning", len(selected), len(markets),
        )
        return self._scan_markets

    def scan_targets(self) -> list[str]:
        """필터된 마켓 + 대상 지갑이 거래한 마켓 (중복 제거, 순서 유지)."""
        targets = list(self._scan_markets)
        seen = set(targets)
        for market_id in sorted(self._traded_markets):
            if market_id not in seen:
                targets.append(market_id)
                seen.add(market_id)
        return targets

    async def scan_once(self) -> int:
        """스캔 1회. 유효한 기회 개수 반환."""
        stale = (
            self._markets_refreshed_at is None
            or time.monotonic() - self._markets_refreshed_at >= MARKET_REFRESH_SECONDS
        )
        if stale:
            await self.refresh_markets()

        targets = self.scan_targets()
        if not targets:
            return 0

        opportunities = await self.detector.scan_markets(targets)
        self._scan_count += 1
        if opportunities:
            logger.info("[ARB] found %d arbitrage opportunities", len(opportunities))
            for opp in opportunities:
                logger.info(
                    "[ARB]   - %s: %.2f%% profit (%s)",
                    opp.market_question[:50],
                    opp.profit_pct * 100,
                    opp.opportunity_type.value,
                )
        return len(opportunities)

    async def arbitrage_scan_loop(self, stop_event: asyncio.Event) -> None:
        logger.info("Starting arbitrage scanning loop...")
        while not stop_event.is_set():
            try:
                await self.scan_once()
            except Exception:
                logger.exception("Error in arbitrage scan loop")

            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self.config.arb_scan_interval,
                )
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> StatusReport:
        return StatusReport.collect(
            ledger=self.ledger,
            gateway=self.gateway,
            cache=self.cache,
            watcher=self.watcher,
            engines=self.engines,
            wallets=self.config.enabled_wallets(),
            dry_run=self.config.dry_run,
        )

    async def status_loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self.config.status_interval,
                )
            except asyncio.TimeoutError:
                pass
            if stop_event.is_set():
                break

            try:
                report = self.status()
                logger.info("\n%s", report)
                for market_id in report.hedge_markets:
                    logger.warning("[RISK] exposure imbalance in %s — hedge advised", market_id)
            except Exception:
                logger.exception("Error in status report loop")
