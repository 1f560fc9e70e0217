"""Tests for the console status dashboard."""

from digitpulse.cli.dashboard import print_status


class TestPrintStatus:
    def test_formats_snapshot(self, capsys):
        output = print_status({
            "id": "s1",
            "name": "Differs R_100",
            "type": "DIFFERS",
            "market_symbol": "R_100",
            "state": "analysing",
            "decision_state": "STRONG",
            "sample_size": 60,
            "current_stake": 2.5,
            "session_profit": -1.0,
            "wins": 3,
            "losses": 1,
            "win_rate": 0.75,
            "pending_trades": 1,
            "consecutive_errors": 0,
        })
        assert "Differs R_100 (DIFFERS)" in output
        assert "STRONG (60 ticks)" in output
        assert "2.50" in output
        assert "-1.00" in output
        assert "3 / 1 (75.0%)" in output
        assert output in capsys.readouterr().out

    def test_missing_fields(self):
        output = print_status({"id": "s2"})
        assert "s2 (N/A)" in output
        assert "Next Stake:      N/A" in output
