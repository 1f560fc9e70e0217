"""Tests for the digit strategy evaluators and the registry."""

import pytest

from digitpulse.models.strategy_config import StrategyConfig
from digitpulse.strategy.base import Evaluation, EvaluatorProtocol
from digitpulse.strategy.digits import (
    DiffersStrategy,
    EvenOddStrategy,
    OverUnderStrategy,
    PowerOverStrategy,
)
from digitpulse.strategy.models import (
    DECISION_WAIT,
    DIGITDIFF,
    DIGITEVEN,
    DIGITODD,
    DIGITOVER,
    DIGITUNDER,
    MOMENTUM_FALLING,
    MOMENTUM_RISING,
    MOMENTUM_STABLE,
    StrategyStats,
)
from digitpulse.strategy.registry import STRATEGY_REGISTRY, get_strategy
from digitpulse.strategy.ticks import make_tick


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(**overrides) -> StrategyConfig:
    defaults = dict(id="s1", type="DIFFERS")
    defaults.update(overrides)
    return StrategyConfig(**defaults)


def _make_stats(**overrides) -> StrategyStats:
    defaults = dict(
        sample_size=100,
        digit_frequencies={d: 10 for d in range(10)},
        over_percent=50.0,
        under_percent=50.0,
        even_percent=50.0,
        odd_percent=50.0,
        power=10.0,
        momentum=MOMENTUM_STABLE,
        decision_state=DECISION_WAIT,
        last_digits=[],
    )
    defaults.update(overrides)
    return StrategyStats(**defaults)


def _ticks(digits):
    return [make_tick(i, 100 + d / 100000, "R_100") for i, d in enumerate(digits)]


# ── EVEN_ODD ─────────────────────────────────────────────────────────────


class TestEvenOdd:
    def test_even_dominant_and_rising_buys_even(self):
        stats = _make_stats(even_percent=57.0, odd_percent=43.0, momentum=MOMENTUM_RISING)
        result = EvenOddStrategy().evaluate(_make_config(type="EVEN_ODD"), stats, [])
        assert result.fire is True
        assert result.contract_type == DIGITEVEN
        assert result.barrier is None

    def test_odd_dominant_buys_odd(self):
        stats = _make_stats(even_percent=40.0, odd_percent=60.0, momentum=MOMENTUM_RISING)
        result = EvenOddStrategy().evaluate(_make_config(type="EVEN_ODD"), stats, [])
        assert result.fire is True
        assert result.contract_type == DIGITODD

    def test_threshold_is_inclusive(self):
        stats = _make_stats(even_percent=56.0, odd_percent=44.0, momentum=MOMENTUM_RISING)
        assert EvenOddStrategy().evaluate(_make_config(), stats, []).fire is True

    def test_weak_parity_waits(self):
        stats = _make_stats(even_percent=55.0, odd_percent=45.0, momentum=MOMENTUM_RISING)
        result = EvenOddStrategy().evaluate(_make_config(), stats, [])
        assert result.fire is False
        assert result.signal is None
        assert result.checks["parity_dominant"] is False

    def test_momentum_must_be_rising(self):
        stats = _make_stats(even_percent=70.0, odd_percent=30.0, momentum=MOMENTUM_FALLING)
        result = EvenOddStrategy().evaluate(_make_config(), stats, [])
        assert result.fire is False
        assert result.checks == {"parity_dominant": True, "momentum_rising": False}


# ── OVER / UNDER ─────────────────────────────────────────────────────────


class TestOverUnder:
    def _freqs(self, high=8, low=2):
        # digits 4–9 at `high`, 0–3 at `low`
        return {d: (high if d > 3 else low) for d in range(10)}

    def test_over_side_uses_low_barrier(self):
        freqs = self._freqs()
        n = sum(freqs.values())
        stats = _make_stats(
            sample_size=n, digit_frequencies=freqs,
            over_percent=70.0, under_percent=30.0, momentum=MOMENTUM_RISING,
        )
        result = OverUnderStrategy(3, 6).evaluate(_make_config(), stats, [])
        assert result.fire is True
        assert result.contract_type == DIGITOVER
        assert result.barrier == "3"

    def test_under_side_uses_high_barrier(self):
        freqs = self._freqs()
        n = sum(freqs.values())
        stats = _make_stats(
            sample_size=n, digit_frequencies=freqs,
            over_percent=45.0, under_percent=55.0, momentum=MOMENTUM_RISING,
        )
        result = OverUnderStrategy(2, 7).evaluate(_make_config(), stats, [])
        assert result.fire is True
        assert result.contract_type == DIGITUNDER
        assert result.barrier == "7"

    def test_low_over_share_waits(self):
        freqs = {d: 10 for d in range(10)}  # 60 % above 3
        stats = _make_stats(digit_frequencies=freqs, momentum=MOMENTUM_RISING)
        assert OverUnderStrategy(3, 6).evaluate(_make_config(), stats, []).fire is True
        freqs = {d: (20 if d <= 3 else 4) for d in range(10)}  # 23 % above 3
        stats = _make_stats(
            sample_size=sum(freqs.values()), digit_frequencies=freqs,
            momentum=MOMENTUM_RISING,
        )
        result = OverUnderStrategy(3, 6).evaluate(_make_config(), stats, [])
        assert result.fire is False
        assert result.checks["over_share"] is False

    def test_requires_rising_momentum(self):
        stats = _make_stats(momentum=MOMENTUM_STABLE)
        assert OverUnderStrategy(3, 6).evaluate(_make_config(), stats, []).fire is False


# ── OVER1_UNDER8 (power) ─────────────────────────────────────────────────


class TestPowerOver:
    def test_strong_power_buys_over_one(self):
        stats = _make_stats(power=58.0, momentum=MOMENTUM_RISING)
        result = PowerOverStrategy().evaluate(_make_config(), stats, [])
        assert result.fire is True
        assert result.contract_type == DIGITOVER
        assert result.barrier == "1"

    def test_low_power_waits(self):
        stats = _make_stats(power=57.9, momentum=MOMENTUM_RISING)
        assert PowerOverStrategy().evaluate(_make_config(), stats, []).fire is False

    def test_requires_rising_momentum(self):
        stats = _make_stats(power=90.0, momentum=MOMENTUM_STABLE)
        assert PowerOverStrategy().evaluate(_make_config(), stats, []).fire is False


# ── DIFFERS ──────────────────────────────────────────────────────────────


class TestDiffers:
    def test_rare_absent_digit_fires(self):
        freqs = {0: 10, 1: 10, 2: 12, 3: 10, 4: 8, 5: 10, 6: 10, 7: 10, 8: 10, 9: 10}
        stats = _make_stats(sample_size=100, digit_frequencies=freqs)
        result = DiffersStrategy().evaluate(_make_config(), stats, _ticks([1, 2, 9]))
        assert result.fire is True
        assert result.contract_type == DIGITDIFF
        assert result.barrier == "4"

    def test_recently_seen_digit_is_skipped(self):
        freqs = {0: 10, 1: 10, 2: 12, 3: 10, 4: 8, 5: 10, 6: 10, 7: 10, 8: 10, 9: 10}
        stats = _make_stats(sample_size=100, digit_frequencies=freqs)
        result = DiffersStrategy().evaluate(_make_config(), stats, _ticks([4, 2, 9]))
        assert result.fire is False
        assert result.checks["rare_digit"] is True
        assert result.checks["absent_recently"] is False

    def test_lowest_frequency_wins_ties_to_lower_digit(self):
        freqs = {0: 20, 1: 20, 2: 9, 3: 5, 4: 9, 5: 5, 6: 12, 7: 10, 8: 5, 9: 5}
        stats = _make_stats(sample_size=100, digit_frequencies=freqs)
        result = DiffersStrategy().evaluate(_make_config(), stats, _ticks([0, 1, 6]))
        assert result.barrier == "3"

    def test_only_digits_two_to_seven_qualify(self):
        freqs = {0: 1, 1: 1, 2: 14, 3: 14, 4: 14, 5: 14, 6: 14, 7: 14, 8: 1, 9: 13}
        stats = _make_stats(sample_size=100, digit_frequencies=freqs)
        result = DiffersStrategy().evaluate(_make_config(), stats, _ticks([2, 3, 4]))
        assert result.fire is False
        assert result.checks["rare_digit"] is False

    def test_warming_up_with_fewer_than_three_ticks(self):
        stats = _make_stats(sample_size=2, digit_frequencies={d: 0 for d in range(10)})
        result = DiffersStrategy().evaluate(_make_config(), stats, _ticks([1, 1]))
        assert result.fire is False
        assert result.reason == "warming_up"


# ── Registry ─────────────────────────────────────────────────────────────


class TestRegistry:
    def test_all_types_registered(self):
        assert set(STRATEGY_REGISTRY) == {
            "DIFFERS", "OVER3_UNDER6", "OVER2_UNDER7", "OVER1_UNDER8", "EVEN_ODD",
        }

    @pytest.mark.parametrize("name", sorted(STRATEGY_REGISTRY))
    def test_evaluators_satisfy_protocol(self, name):
        evaluator = get_strategy(name)
        assert isinstance(evaluator, EvaluatorProtocol)
        result = evaluator.evaluate(_make_config(type=name), _make_stats(), _ticks([0, 1, 2]))
        assert isinstance(result, Evaluation)

    def test_over_under_barriers(self):
        assert get_strategy("OVER3_UNDER6").over_barrier == 3
        assert get_strategy("OVER2_UNDER7").under_barrier == 7

    def test_unknown_strategy_raises(self):
        with pytest.raises(KeyError, match="Unknown strategy"):
            get_strategy("RISE_FALL")
