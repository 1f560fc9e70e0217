"""Tests for the risk module.

Covers martingale stake scaling, the max-stake ceiling, and session
target-profit / stop-loss limits.
"""

import pytest

from digitpulse.risk.martingale import MartingaleController
from digitpulse.risk.session_limits import check_session_limits


# ── Martingale ───────────────────────────────────────────────────────────


class TestMartingale:
    """Unit tests for MartingaleController."""

    def test_losses_compound(self):
        """Base 1.0 × 2.5: 1 → 2.5 → 6.25 → 15.625."""
        m = MartingaleController(base_stake=1.0, multiplier=2.5)
        assert m.current_stake == 1.0
        assert m.record_loss() == pytest.approx(2.5)
        assert m.record_loss() == pytest.approx(6.25)
        assert m.record_loss() == pytest.approx(15.625)
        assert m.loss_streak == 3

    def test_win_resets_to_base(self):
        m = MartingaleController(base_stake=0.5, multiplier=2.0)
        m.record_loss()
        m.record_loss()
        assert m.record_win() == 0.5
        assert m.loss_streak == 0

    def test_max_stake_caps_growth(self):
        m = MartingaleController(base_stake=1.0, multiplier=3.0, max_stake=5.0)
        assert m.record_loss() == 3.0
        assert m.record_loss() == 5.0
        assert m.record_loss() == 5.0

    def test_unbounded_without_ceiling(self):
        m = MartingaleController(base_stake=1.0, multiplier=2.0)
        for _ in range(10):
            m.record_loss()
        assert m.current_stake == 1024.0

    def test_record_dispatches_on_result(self):
        m = MartingaleController(base_stake=1.0, multiplier=2.0)
        assert m.record("loss") == 2.0
        assert m.record("win") == 1.0
        with pytest.raises(ValueError, match="result"):
            m.record("pending")

    def test_reconfigure_without_streak_moves_to_new_base(self):
        m = MartingaleController(base_stake=1.0, multiplier=2.0)
        m.reconfigure(2.0, 3.0, None)
        assert m.current_stake == 2.0
        assert m.record_loss() == 6.0

    def test_reconfigure_mid_streak_keeps_stake_under_cap(self):
        m = MartingaleController(base_stake=1.0, multiplier=2.0)
        m.record_loss()
        m.record_loss()
        m.reconfigure(1.0, 2.0, 3.0)
        assert m.current_stake == 3.0
        assert m.base_stake == 1.0

    def test_reset(self):
        m = MartingaleController(base_stake=1.0, multiplier=2.0)
        m.record_loss()
        m.reset()
        assert m.current_stake == 1.0
        assert m.loss_streak == 0

    @pytest.mark.parametrize("kwargs,match", [
        (dict(base_stake=0), "base_stake"),
        (dict(base_stake=1.0, multiplier=0), "multiplier"),
        (dict(base_stake=2.0, max_stake=1.0), "max_stake"),
    ])
    def test_rejects_invalid_settings(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            MartingaleController(**kwargs)


# ── Session limits ───────────────────────────────────────────────────────


class TestSessionLimits:
    def test_within_limits(self):
        assert check_session_limits(3.0, target_profit=10.0, stop_loss=50.0) is None
        assert check_session_limits(-49.99, target_profit=10.0, stop_loss=50.0) is None

    def test_target_reached(self):
        assert check_session_limits(10.0, 10.0, 50.0) == "target_profit"
        assert check_session_limits(12.5, 10.0, 50.0) == "target_profit"

    def test_stop_loss_reached(self):
        assert check_session_limits(-50.0, 10.0, 50.0) == "stop_loss"
        assert check_session_limits(-61.0, 10.0, 50.0) == "stop_loss"

    def test_non_positive_limits_disabled(self):
        assert check_session_limits(1_000.0, 0.0, 50.0) is None
        assert check_session_limits(-1_000.0, 10.0, 0.0) is None
