"""Strategy configuration dataclass.

Represents one registered strategy instance in the multi-strategy engine.
"""

from dataclasses import dataclass


STRATEGY_TYPES: tuple[str, ...] = (
    "DIFFERS",
    "OVER3_UNDER6",
    "OVER2_UNDER7",
    "OVER1_UNDER8",
    "EVEN_ODD",
)

# ── Lifecycle states ─────────────────────────────────────────────────────

STATE_IDLE = "idle"
STATE_ANALYSING = "analysing"
STATE_TRADING = "trading"
STATE_PAUSED = "paused"
STATE_ERROR = "error"

LIFECYCLE_STATES: tuple[str, ...] = (
    STATE_IDLE,
    STATE_ANALYSING,
    STATE_TRADING,
    STATE_PAUSED,
    STATE_ERROR,
)

# ── Trade latch modes ────────────────────────────────────────────────────

LATCH_SETTLED = "settled"  # no new entries while a trade is pending settlement
LATCH_FREE = "free"        # only latched for the duration of submission


@dataclass(frozen=True)
class StrategyConfig:
    """Identity and tunables for a single strategy instance.

    Each strategy runs its own ``StrategyEngine`` with its own market,
    analysis window, stake schedule and lifecycle state.  Instances are
    frozen; edits go through ``dataclasses.replace``.
    """

    id: str
    type: str  # one of STRATEGY_TYPES
    market_symbol: str = "R_100"
    name: str = ""
    description: str = ""
    enabled: bool = True
    analysis_minutes: float = 1.0
    stake: float = 1.0
    martingale_multiplier: float = 2.0
    ticks_per_trade: int = 1
    target_profit: float = 10.0
    stop_loss: float = 50.0
    auto_restart: bool = True
    retry_delay: float = 5.0
    max_stake: float | None = None  # None = unbounded martingale growth
    trade_latch: str = LATCH_SETTLED
    warmup_ticks: int = 0
    state: str = STATE_IDLE

    @property
    def max_ticks(self) -> int:
        """Rolling buffer bound, assuming one tick per second."""
        return max(1, int(self.analysis_minutes * 60))
