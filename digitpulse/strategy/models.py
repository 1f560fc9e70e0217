"""Strategy data models — typed representations for engine inputs and outputs."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Tick:
    """One normalized market observation."""

    epoch: int
    quote: float
    digit: int  # last significant digit of the formatted quote, 0–9
    symbol: str


@dataclass(frozen=True)
class StrategyStats:
    """Snapshot of digit statistics over a tick buffer.

    Recomputed from scratch on every analysis tick; never persisted.
    """

    sample_size: int
    digit_frequencies: dict[int, int]
    over_percent: float
    under_percent: float
    even_percent: float
    odd_percent: float
    power: float
    momentum: str  # "rising", "falling" or "stable"
    decision_state: str  # "WAIT", "TRADE_NOW", "STRONG" or "TRADING"
    last_digits: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sample_size": self.sample_size,
            "digit_frequencies": {str(d): c for d, c in self.digit_frequencies.items()},
            "over_percent": round(self.over_percent, 2),
            "under_percent": round(self.under_percent, 2),
            "even_percent": round(self.even_percent, 2),
            "odd_percent": round(self.odd_percent, 2),
            "power": round(self.power, 2),
            "momentum": self.momentum,
            "decision_state": self.decision_state,
            "last_digits": list(self.last_digits),
        }


@dataclass(frozen=True)
class ContractSignal:
    """A concrete contract to buy, produced by an evaluator."""

    contract_type: str
    barrier: Optional[str]
    reason: str


# ── Constants ────────────────────────────────────────────────────────────

MOMENTUM_RISING = "rising"
MOMENTUM_FALLING = "falling"
MOMENTUM_STABLE = "stable"

DECISION_WAIT = "WAIT"
DECISION_TRADE_NOW = "TRADE_NOW"
DECISION_STRONG = "STRONG"
DECISION_TRADING = "TRADING"

DIGITDIFF = "DIGITDIFF"
DIGITOVER = "DIGITOVER"
DIGITUNDER = "DIGITUNDER"
DIGITEVEN = "DIGITEVEN"
DIGITODD = "DIGITODD"

QUOTE_DECIMALS = 5
