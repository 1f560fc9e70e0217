"""Trade log dataclass.

One record per trade attempt.  Created ``pending`` at buy time and settled
exactly once by the contract-settlement callback.
"""

from dataclasses import asdict, dataclass
from typing import Optional


RESULT_PENDING = "pending"
RESULT_WIN = "win"
RESULT_LOSS = "loss"


@dataclass
class TradeLog:
    """A single contract purchase and its outcome."""

    id: str
    timestamp: float
    contract_id: str
    proposal_id: str
    buy_price: float
    payout: float
    entry_tick: Optional[int]
    strategy_id: str
    contract_type: str = ""
    barrier: Optional[str] = None
    result: str = RESULT_PENDING
    profit: float = 0.0
    exit_tick: Optional[float] = None
    closed_reason: Optional[str] = None  # set when tracking stops without a result

    @property
    def is_pending(self) -> bool:
        return self.result == RESULT_PENDING

    def settle(self, result: str, profit: float, exit_tick: Optional[float] = None) -> None:
        """Transition ``pending`` → ``win``/``loss``.

        Raises:
            ValueError: If the trade is already settled, was closed without a
                        result, or *result* is not ``win``/``loss``.
        """
        if result not in (RESULT_WIN, RESULT_LOSS):
            raise ValueError(f"result must be 'win' or 'loss', got {result!r}")
        if not self.is_pending:
            raise ValueError(f"Trade {self.id} already settled as {self.result}")
        if self.closed_reason is not None:
            raise ValueError(f"Trade {self.id} closed without result: {self.closed_reason}")
        self.result = result
        self.profit = profit
        self.exit_tick = exit_tick

    def close_unsettled(self, reason: str) -> None:
        """Stop tracking a pending trade; its result stays ``pending``."""
        if self.is_pending and self.closed_reason is None:
            self.closed_reason = reason

    def to_dict(self) -> dict:
        return asdict(self)
