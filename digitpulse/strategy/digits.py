"""Digit strategies — one evaluator per strategy family.

Every evaluator implements ``EvaluatorProtocol``: a pure mapping from
the current statistics (and the raw window, where needed) to a
fire/no-fire decision and the contract to buy.
"""

from typing import Sequence

from digitpulse.models.strategy_config import StrategyConfig
from digitpulse.strategy.base import Evaluation
from digitpulse.strategy.models import (
    DIGITDIFF,
    DIGITEVEN,
    DIGITODD,
    DIGITOVER,
    DIGITUNDER,
    MOMENTUM_RISING,
    ContractSignal,
    StrategyStats,
    Tick,
)
from digitpulse.strategy.stats import over_share


class EvenOddStrategy:
    """Buy the dominant parity once it holds ≥56 % with rising momentum."""

    MIN_SHARE: float = 56.0

    def evaluate(
        self,
        config: StrategyConfig,
        stats: StrategyStats,
        buffer: Sequence[Tick],
    ) -> Evaluation:
        dominant = max(stats.even_percent, stats.odd_percent)
        checks = {
            "parity_dominant": dominant >= self.MIN_SHARE,
            "momentum_rising": stats.momentum == MOMENTUM_RISING,
        }
        if not all(checks.values()):
            return Evaluation(fire=False, checks=checks, reason="no_parity_edge")

        if stats.even_percent > stats.odd_percent:
            contract_type, share = DIGITEVEN, stats.even_percent
        else:
            contract_type, share = DIGITODD, stats.odd_percent
        return Evaluation(
            fire=True,
            checks=checks,
            signal=ContractSignal(
                contract_type=contract_type,
                barrier=None,
                reason=f"{contract_type} {share:.1f}% with rising momentum",
            ),
        )


class OverUnderStrategy:
    """Buy over/under once the share above the low barrier is ≥55 %.

    The contract side follows the overall over/under split (digits ≥5
    versus <5): over uses the low barrier, under the high one.

    Args:
        over_barrier:  Low barrier (e.g. 3 for OVER3_UNDER6).
        under_barrier: High barrier (e.g. 6 for OVER3_UNDER6).
    """

    MIN_SHARE: float = 55.0

    def __init__(self, over_barrier: int, under_barrier: int) -> None:
        self.over_barrier = over_barrier
        self.under_barrier = under_barrier

    def evaluate(
        self,
        config: StrategyConfig,
        stats: StrategyStats,
        buffer: Sequence[Tick],
    ) -> Evaluation:
        share = over_share(
            stats.digit_frequencies, stats.sample_size, self.over_barrier,
        )
        checks = {
            "over_share": share >= self.MIN_SHARE,
            "momentum_rising": stats.momentum == MOMENTUM_RISING,
        }
        if not all(checks.values()):
            return Evaluation(fire=False, checks=checks, reason="no_over_edge")

        if stats.over_percent > stats.under_percent:
            contract_type, barrier = DIGITOVER, str(self.over_barrier)
        else:
            contract_type, barrier = DIGITUNDER, str(self.under_barrier)
        return Evaluation(
            fire=True,
            checks=checks,
            signal=ContractSignal(
                contract_type=contract_type,
                barrier=barrier,
                reason=f"over {self.over_barrier} share {share:.1f}% with rising momentum",
            ),
        )


class PowerOverStrategy:
    """Buy DIGITOVER 1 when power is ≥58 % with rising momentum."""

    MIN_POWER: float = 58.0
    BARRIER: str = "1"

    def evaluate(
        self,
        config: StrategyConfig,
        stats: StrategyStats,
        buffer: Sequence[Tick],
    ) -> Evaluation:
        checks = {
            "power": stats.power >= self.MIN_POWER,
            "momentum_rising": stats.momentum == MOMENTUM_RISING,
        }
        if not all(checks.values()):
            return Evaluation(fire=False, checks=checks, reason="low_power")
        return Evaluation(
            fire=True,
            checks=checks,
            signal=ContractSignal(
                contract_type=DIGITOVER,
                barrier=self.BARRIER,
                reason=f"power {stats.power:.1f}% with rising momentum",
            ),
        )


class DiffersStrategy:
    """Bet that the next digit differs from a rare, recently absent digit.

    A candidate is any digit in 2–7 with frequency below 10 % of the
    sample that did not appear in the last 3 ticks.  The candidate with
    the lowest frequency wins; ties go to the lower digit.
    """

    TARGET_DIGITS: tuple[int, ...] = (2, 3, 4, 5, 6, 7)
    MAX_SHARE: float = 10.0
    ABSENCE_TICKS: int = 3

    def evaluate(
        self,
        config: StrategyConfig,
        stats: StrategyStats,
        buffer: Sequence[Tick],
    ) -> Evaluation:
        recent = [t.digit for t in list(buffer)[-self.ABSENCE_TICKS:]]
        checks = {
            "enough_ticks": len(recent) == self.ABSENCE_TICKS,
            "rare_digit": False,
            "absent_recently": False,
        }
        if not checks["enough_ticks"] or stats.sample_size == 0:
            return Evaluation(fire=False, checks=checks, reason="warming_up")

        rare = [
            d for d in self.TARGET_DIGITS
            if stats.digit_frequencies.get(d, 0) / stats.sample_size * 100.0
            < self.MAX_SHARE
        ]
        checks["rare_digit"] = bool(rare)
        candidates = [d for d in rare if d not in recent]
        checks["absent_recently"] = bool(candidates)
        if not candidates:
            return Evaluation(fire=False, checks=checks, reason="no_rare_digit")

        target = min(candidates, key=lambda d: (stats.digit_frequencies.get(d, 0), d))
        share = stats.digit_frequencies.get(target, 0) / stats.sample_size * 100.0
        return Evaluation(
            fire=True,
            checks=checks,
            signal=ContractSignal(
                contract_type=DIGITDIFF,
                barrier=str(target),
                reason=f"digit {target} at {share:.1f}% absent for {self.ABSENCE_TICKS} ticks",
            ),
        )
