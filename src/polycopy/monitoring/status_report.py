"""Periodic read-only status summary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from polycopy.models.order import OrderStatus
from polycopy.models.position import ExposureSnapshot

if TYPE_CHECKING:
    from polycopy.config import WalletWatchConfig
    from polycopy.execution.order_gateway import OrderGateway
    from polycopy.execution.replication import ReplicationEngine
    from polycopy.risk.exposure_ledger import ExposureLedger
    from polycopy.strategy.opportunity_cache import OpportunityCache
    from polycopy.watcher.wallet_watcher import WalletWatcher


@dataclass
class WalletLine:
    """지갑별 요약 한 줄."""

    name: str
    observed_trades: int = 0
    observed_volume_usd: float = 0.0
    copied: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class StatusReport:
    """Snapshot of exposure, orders, opportunities and wallet activity."""

    exposure: ExposureSnapshot
    orders_total: int = 0
    orders_pending: int = 0
    orders_cancelled: int = 0
    opportunities: int = 0
    hedge_markets: list[str] = field(default_factory=list)
    wallets: list[WalletLine] = field(default_factory=list)
    dry_run: bool = True

    @classmethod
    def collect(
        cls,
        ledger: ExposureLedger,
        gateway: OrderGateway,
        cache: OpportunityCache,
        watcher: WalletWatcher,
        engines: dict[str, ReplicationEngine],
        wallets: Sequence[WalletWatchConfig],
        dry_run: bool = True,
    ) -> StatusReport:
        orders = gateway.orders()
        lines = []
        for wallet in wallets:
            line = WalletLine(name=wallet.name)
            stats = watcher.wallet_stats(wallet.address)
            if stats:
                line.observed_trades = stats["total_trades"]
                line.observed_volume_usd = stats["total_volume_usd"]
            engine = engines.get(wallet.address.lower())
            if engine is not None:
                engine_stats = engine.stats()
                line.copied = engine_stats["copied"]
                line.skipped = engine_stats["skipped"]
                line.failed = engine_stats["failed"]
            lines.append(line)

        return cls(
            exposure=ledger.snapshot(),
            orders_total=len(orders),
            orders_pending=sum(1 for o in orders if o.status is OrderStatus.PENDING),
            orders_cancelled=sum(1 for o in orders if o.status is OrderStatus.CANCELLED),
            opportunities=len(cache.active()),
            hedge_markets=[m for m in ledger.markets() if ledger.should_hedge(m)],
            wallets=lines,
            dry_run=dry_run,
        )

    def __str__(self) -> str:
        mode = "DRY RUN" if self.dry_run else "LIVE"
        lines = [
            "═" * 50,
            f"  Bot Status ({mode})",
            "═" * 50,
            f"  Total exposure: ${self.exposure.total_exposure_usd:.2f}",
            f"  Available: ${self.exposure.available_exposure_usd:.2f}",
            f"  Daily PnL: ${self.exposure.daily_pnl_usd:.2f}",
            f"  Open positions: {self.exposure.open_positions}",
            f"  Orders: {self.orders_total} "
            f"(pending {self.orders_pending}, cancelled {self.orders_cancelled})",
            f"  Active opportunities: {self.opportunities}",
        ]
        if self.hedge_markets:
            lines.append(f"  Hedge signal: {', '.join(self.hedge_markets)}")
        for w in self.wallets:
            lines.append(
                f"  {w.name}: {w.observed_trades} trades "
                f"(${w.observed_volume_usd:.2f}) | "
                f"copied {w.copied} skipped {w.skipped} failed {w.failed}"
            )
        lines.append("═" * 50)
        return "\n".join(lines)
