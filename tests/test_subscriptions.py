"""Tests for tick subscription bookkeeping (dedup, fan-out, throttle)."""

from digitpulse.broker.subscriptions import SubscriptionManager


class TestListeners:
    def test_first_listener_opens_symbol(self):
        subs = SubscriptionManager()
        handle, is_new = subs.add_listener("R_100", lambda t: None)
        assert is_new is True
        assert handle.startswith("R_100#")
        assert subs.is_subscribed("R_100")

    def test_second_listener_shares_symbol(self):
        subs = SubscriptionManager()
        h1, _ = subs.add_listener("R_100", lambda t: None)
        h2, is_new = subs.add_listener("R_100", lambda t: None)
        assert is_new is False
        assert h1 != h2
        assert subs.listener_count("R_100") == 2
        assert subs.symbols == ["R_100"]

    def test_remove_reports_last_listener(self):
        subs = SubscriptionManager()
        h1, _ = subs.add_listener("R_50", lambda t: None)
        h2, _ = subs.add_listener("R_50", lambda t: None)
        subs.bind("R_50", "sub-abc")
        assert subs.remove_listener(h1) == ("R_50", "sub-abc", False)
        assert subs.remove_listener(h2) == ("R_50", "sub-abc", True)
        assert not subs.is_subscribed("R_50")

    def test_remove_unknown_handle(self):
        subs = SubscriptionManager()
        assert subs.remove_listener("nope#1") == (None, None, False)

    def test_bind_ignores_unknown_symbol(self):
        subs = SubscriptionManager()
        subs.bind("R_10", "sub-x")
        assert subs.subscription_id("R_10") is None

    def test_clear(self):
        subs = SubscriptionManager()
        handle, _ = subs.add_listener("R_100", lambda t: None)
        subs.clear()
        assert subs.symbols == []
        assert subs.remove_listener(handle) == (None, None, False)

    def test_reset_returns_lost_hooks(self):
        subs = SubscriptionManager()
        lost = []
        subs.add_listener("R_100", lambda t: None, lost.append)
        h2, _ = subs.add_listener("R_100", lambda t: None, lambda exc: lost.append("b"))
        subs.add_listener("R_50", lambda t: None)
        subs.remove_listener(h2)

        hooks = subs.reset()
        assert len(hooks) == 1
        hooks[0]("gone")
        assert lost == ["gone"]
        assert subs.symbols == []
        _, is_new = subs.add_listener("R_100", lambda t: None)
        assert is_new


class TestDispatch:
    def test_fans_out_to_every_listener(self):
        subs = SubscriptionManager()
        a, b = [], []
        subs.add_listener("R_100", a.append)
        subs.add_listener("R_100", b.append)
        assert subs.dispatch("R_100", "tick") == 2
        assert a == ["tick"]
        assert b == ["tick"]

    def test_failing_listener_does_not_starve_others(self):
        subs = SubscriptionManager()
        received = []

        def broken(_):
            raise RuntimeError("boom")

        subs.add_listener("R_100", broken)
        subs.add_listener("R_100", received.append)
        assert subs.dispatch("R_100", "tick") == 1
        assert received == ["tick"]

    def test_unknown_symbol(self):
        assert SubscriptionManager().dispatch("R_100", "tick") == 0

    def test_throttle_drops_fast_ticks(self):
        subs = SubscriptionManager(tick_throttle=0.1)
        subs.add_listener("R_100", lambda t: None)
        assert subs.should_process("R_100", 10.0) is True
        assert subs.should_process("R_100", 10.05) is False
        assert subs.should_process("R_100", 10.2) is True

    def test_throttle_is_per_symbol(self):
        subs = SubscriptionManager(tick_throttle=0.1)
        subs.add_listener("R_100", lambda t: None)
        subs.add_listener("R_50", lambda t: None)
        assert subs.should_process("R_100", 10.0) is True
        assert subs.should_process("R_50", 10.01) is True

    def test_throttle_unsubscribed_symbol(self):
        assert SubscriptionManager().should_process("R_100", 1.0) is False
