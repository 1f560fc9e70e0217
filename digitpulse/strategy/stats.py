"""Digit statistics — pure functions over a tick window.

Computes the digit-frequency distribution, over/under and even/odd splits,
"power" (share of the single most frequent digit), momentum and the
decision state.  O(N) over a bounded buffer; safe to call every second.
"""

from typing import Iterable, Sequence

import numpy as np

from digitpulse.strategy.models import (
    DECISION_STRONG,
    DECISION_TRADE_NOW,
    DECISION_WAIT,
    MOMENTUM_FALLING,
    MOMENTUM_RISING,
    MOMENTUM_STABLE,
    StrategyStats,
    Tick,
)

MOMENTUM_WINDOW = 10
MOMENTUM_BAND = 2.0  # percentage points
STRONG_POWER = 60.0
TRADE_NOW_POWER = 55.0
LAST_DIGITS = 20


def digit_counts(digits: Sequence[int]) -> np.ndarray:
    """Return a length-10 array of occurrences of each digit 0–9."""
    if len(digits) == 0:
        return np.zeros(10, dtype=np.int64)
    return np.bincount(np.asarray(digits, dtype=np.int64), minlength=10)[:10]


def window_power(digits: Sequence[int]) -> float:
    """Percentage share of the most frequent digit (0 for an empty window)."""
    if len(digits) == 0:
        return 0.0
    return float(digit_counts(digits).max()) / len(digits) * 100.0


def classify_momentum(recent_power: float, older_power: float) -> str:
    """Compare two sub-window powers with a ±2 point dead band."""
    if recent_power > older_power + MOMENTUM_BAND:
        return MOMENTUM_RISING
    if recent_power < older_power - MOMENTUM_BAND:
        return MOMENTUM_FALLING
    return MOMENTUM_STABLE


def decision_state(power: float) -> str:
    """STRONG at ≥60 % power, TRADE_NOW at ≥55 %, else WAIT."""
    if power >= STRONG_POWER:
        return DECISION_STRONG
    if power >= TRADE_NOW_POWER:
        return DECISION_TRADE_NOW
    return DECISION_WAIT


def over_share(frequencies: dict[int, int], sample_size: int, barrier: int) -> float:
    """Percentage of digits strictly above *barrier*."""
    if sample_size == 0:
        return 0.0
    count = sum(frequencies.get(d, 0) for d in range(barrier + 1, 10))
    return count / sample_size * 100.0


def under_share(frequencies: dict[int, int], sample_size: int, barrier: int) -> float:
    """Percentage of digits strictly below *barrier*."""
    if sample_size == 0:
        return 0.0
    count = sum(frequencies.get(d, 0) for d in range(0, barrier))
    return count / sample_size * 100.0


def compute_stats(buffer: Iterable[Tick]) -> StrategyStats:
    """Compute a ``StrategyStats`` snapshot from a tick window.

    Momentum compares the power of the last 10 ticks against the 10
    before them.  With fewer than 20 ticks the missing sub-window
    contributes power 0, so momentum reads as a step during warm-up.
    """
    return compute_stats_from_digits([t.digit for t in buffer])


def compute_stats_from_digits(digits: Sequence[int]) -> StrategyStats:
    """Same as :func:`compute_stats` for a plain digit sequence."""
    digits = list(digits)
    total = len(digits)
    counts = digit_counts(digits)
    frequencies = {d: int(counts[d]) for d in range(10)}

    if total > 0:
        over_count = int(counts[5:].sum())
        even_count = int(counts[0::2].sum())
        over_percent = over_count / total * 100.0
        under_percent = 100.0 - over_percent
        even_percent = even_count / total * 100.0
        odd_percent = 100.0 - even_percent
        power = float(counts.max()) / total * 100.0
    else:
        over_percent = under_percent = 0.0
        even_percent = odd_percent = 0.0
        power = 0.0

    recent = digits[-MOMENTUM_WINDOW:]
    older = digits[-2 * MOMENTUM_WINDOW:-MOMENTUM_WINDOW]
    momentum = classify_momentum(window_power(recent), window_power(older))

    return StrategyStats(
        sample_size=total,
        digit_frequencies=frequencies,
        over_percent=over_percent,
        under_percent=under_percent,
        even_percent=even_percent,
        odd_percent=odd_percent,
        power=power,
        momentum=momentum,
        decision_state=decision_state(power),
        last_digits=digits[-LAST_DIGITS:],
    )


def empty_stats() -> StrategyStats:
    """Stats for a strategy that has not received any tick yet."""
    return compute_stats_from_digits([])
