"""Position and ExposureSnapshot data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from polycopy.models.trade import Outcome, Side


@dataclass(frozen=True)
class Position:
    """One open leg owned by the ExposureLedger."""

    market_id: str
    outcome: Outcome
    side: Side
    size_usd: float         # notional
    entry_price: float
    opened_at: datetime = field(
        default_factory=lambda: datetime.now(tz=timezone.utc)
    )


@dataclass(frozen=True)
class ExposureSnapshot:
    """Computed view of the ledger. Never stored."""

    total_exposure_usd: float
    daily_pnl_usd: float
    market_exposures: dict[str, float]
    open_positions: int
    available_exposure_usd: float

    def __str__(self) -> str:
        return (
            f"exposure=${self.total_exposure_usd:.2f} "
            f"daily_pnl=${self.daily_pnl_usd:.2f} "
            f"positions={self.open_positions} "
            f"available=${self.available_exposure_usd:.2f}"
        )
