"""Hedged pair transaction — YES + NO legs placed together or not at all.

State Machine:
    INIT → SUBMITTED → BOTH_PLACED → COMMITTED
                    → PARTIAL_YES → (cancel YES) → UNWOUND | UNWIND_FAILED
                    → PARTIAL_NO  → (cancel NO)  → UNWOUND | UNWIND_FAILED
                    → NONE_PLACED (terminal)

COMMITTED만 성공. 나머지 terminal 상태는 모두 실패로 보고 ledger에 기록하지 않는다.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Optional

from polycopy.models.order import Order
from polycopy.models.trade import Outcome, Side

if TYPE_CHECKING:
    from polycopy.execution.order_gateway import OrderGateway

logger = logging.getLogger(__name__)


class PairState(Enum):
    """Hedged pair transaction states."""
    INIT = auto()
    SUBMITTED = auto()
    BOTH_PLACED = auto()
    PARTIAL_YES = auto()      # YES placed, NO not
    PARTIAL_NO = auto()       # NO placed, YES not
    NONE_PLACED = auto()      # Neither placed (terminal)
    UNWOUND = auto()          # Placed leg cancelled (terminal)
    UNWIND_FAILED = auto()    # Placed leg could not be cancelled (terminal)
    COMMITTED = auto()        # Both legs live (terminal)


@dataclass
class LegStatus:
    """Status of a single leg (YES or NO)."""
    price: float = 0.0
    shares: float = 0.0
    order: Optional[Order] = None
    done: bool = False

    @property
    def placed(self) -> bool:
        return self.order is not None


@dataclass
class HedgedPairTransaction:
    """Tracks a paired YES/NO entry so that a half-placed pair is rolled back.

    Usage:
        txn = HedgedPairTransaction(market_id="0xabc")
        txn.submit(yes_price=0.48, no_price=0.49, yes_shares=10.4, no_shares=10.2)
        await txn.execute(gateway)
        if txn.state is PairState.COMMITTED:
            ...
    """

    market_id: str
    txn_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: PairState = PairState.INIT

    yes_leg: LegStatus = field(default_factory=LegStatus)
    no_leg: LegStatus = field(default_factory=LegStatus)

    def submit(
        self,
        yes_price: float,
        no_price: float,
        yes_shares: float,
        no_shares: float,
    ) -> None:
        """Set leg targets."""
        if self.state != PairState.INIT:
            raise ValueError(f"Cannot submit from state {self.state}")

        self.yes_leg = LegStatus(price=yes_price, shares=yes_shares)
        self.no_leg = LegStatus(price=no_price, shares=no_shares)
        self.state = PairState.SUBMITTED

        logger.info(
            "[PAIR-TXN] id=%s market=%s submit YES %.2f@$%.3f NO %.2f@$%.3f",
            self.txn_id, self.market_id, yes_shares, yes_price, no_shares, no_price,
        )

    def leg(self, outcome: Outcome) -> LegStatus:
        return self.yes_leg if outcome is Outcome.YES else self.no_leg

    def record_leg(self, outcome: Outcome, order: Optional[Order]) -> None:
        """배치 결과 기록 (order=None이면 실패)."""
        if self.state != PairState.SUBMITTED:
            raise ValueError(f"Cannot record leg in state {self.state}")

        leg = self.leg(outcome)
        leg.order = order
        leg.done = True
        self._update_state()

        logger.info(
            "[PAIR-STATE] id=%s %s placed=%s state=%s",
            self.txn_id, outcome.value, leg.placed, self.state.name,
        )

    def _update_state(self) -> None:
        """Update state based on leg statuses."""
        if not self.yes_leg.done or not self.no_leg.done:
            return  # Still waiting

        yes_ok = self.yes_leg.placed
        no_ok = self.no_leg.placed

        if yes_ok and no_ok:
            self.state = PairState.BOTH_PLACED
        elif yes_ok:
            self.state = PairState.PARTIAL_YES
        elif no_ok:
            self.state = PairState.PARTIAL_NO
        else:
            self.state = PairState.NONE_PLACED

    def needs_unwind(self) -> Optional[Outcome]:
        """Leg to cancel, if exactly one leg was placed."""
        if self.state == PairState.PARTIAL_YES:
            return Outcome.YES
        if self.state == PairState.PARTIAL_NO:
            return Outcome.NO
        return None

    def record_unwind(self, outcome: Outcome, success: bool) -> None:
        if self.needs_unwind() is not outcome:
            raise ValueError(f"Cannot unwind {outcome.value} from state {self.state}")

        self.state = PairState.UNWOUND if success else PairState.UNWIND_FAILED
        log = logger.info if success else logger.error
        log(
            "[UNWIND] id=%s leg=%s success=%s state=%s",
            self.txn_id, outcome.value, success, self.state.name,
        )

    def commit(self) -> None:
        """Commit the fully placed pair."""
        if self.state != PairState.BOTH_PLACED:
            raise ValueError(f"Cannot commit from state {self.state}")

        self.state = PairState.COMMITTED
        logger.info(
            "[PAIR-COMMIT] id=%s market=%s cost=$%.2f",
            self.txn_id, self.market_id, self.total_cost_usd,
        )

    @property
    def total_cost_usd(self) -> float:
        return (
            self.yes_leg.price * self.yes_leg.shares
            + self.no_leg.price * self.no_leg.shares
        )

    @property
    def orders(self) -> list[Order]:
        return [leg.order for leg in (self.yes_leg, self.no_leg) if leg.order is not None]

    def is_terminal(self) -> bool:
        return self.state in (
            PairState.COMMITTED,
            PairState.UNWOUND,
            PairState.UNWIND_FAILED,
            PairState.NONE_PLACED,
        )

    @property
    def succeeded(self) -> bool:
        return self.state is PairState.COMMITTED

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, gateway: OrderGateway) -> PairState:
        """양쪽 leg 동시 배치 → commit 또는 배치된 leg 취소."""
        if self.state != PairState.SUBMITTED:
            raise ValueError(f"Cannot execute from state {self.state}")

        yes_order, no_order = await asyncio.gather(
            gateway.place(
                self.market_id, Outcome.YES, Side.BUY,
                self.yes_leg.price, self.yes_leg.shares,
            ),
            gateway.place(
                self.market_id, Outcome.NO, Side.BUY,
                self.no_leg.price, self.no_leg.shares,
            ),
        )
        self.record_leg(Outcome.YES, yes_order)
        self.record_leg(Outcome.NO, no_order)

        if self.state == PairState.BOTH_PLACED:
            self.commit()
            return self.state

        unwind = self.needs_unwind()
        if unwind is not None:
            order = self.leg(unwind).order
            cancelled = await gateway.cancel(order.order_id)
            self.record_unwind(unwind, cancelled)

        return self.state
