"""Tick subscription bookkeeping — pure state, no I/O.

One broker subscription per symbol, fanned out to any number of listener
handles.  Every strategy registers its own listener so tick buffers stay
isolated while the wire subscription is deduplicated.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger("digitpulse.broker")


@dataclass
class SymbolSubscription:
    """Wire-level subscription state for one symbol."""

    symbol: str
    subscription_id: Optional[str] = None
    listeners: dict[str, Callable] = field(default_factory=dict)
    lost_hooks: dict[str, Callable] = field(default_factory=dict)
    last_tick_time: float = 0.0


class SubscriptionManager:
    """Deduplicates tick subscriptions and throttles tick dispatch.

    Args:
        tick_throttle: Minimum seconds between two processed ticks of the
                       same symbol.  Ticks arriving faster are dropped.
    """

    def __init__(self, tick_throttle: float = 0.1) -> None:
        self._tick_throttle = tick_throttle
        self._by_symbol: dict[str, SymbolSubscription] = {}
        self._handles: dict[str, str] = {}  # handle → symbol
        self._counter = itertools.count(1)

    # ── Listener registration ────────────────────────────────────────────

    def add_listener(
        self,
        symbol: str,
        callback: Callable,
        on_lost: Optional[Callable] = None,
    ) -> tuple[str, bool]:
        """Register *callback* for ticks of *symbol*.

        *on_lost* is called by :meth:`reset` when the connection carrying
        the subscription goes away.

        Returns:
            ``(handle, is_new_symbol)`` — the caller must open a broker
            subscription only when ``is_new_symbol`` is ``True``.
        """
        sub = self._by_symbol.get(symbol)
        is_new = sub is None
        if is_new:
            sub = SymbolSubscription(symbol=symbol)
            self._by_symbol[symbol] = sub

        handle = f"{symbol}#{next(self._counter)}"
        sub.listeners[handle] = callback
        if on_lost is not None:
            sub.lost_hooks[handle] = on_lost
        self._handles[handle] = symbol
        return handle, is_new

    def remove_listener(self, handle: str) -> tuple[Optional[str], Optional[str], bool]:
        """Remove a listener.

        Returns:
            ``(symbol, subscription_id, was_last)``.  When ``was_last`` is
            ``True`` the symbol entry is dropped and the caller should
            ``forget`` the broker subscription.  Unknown handles return
            ``(None, None, False)``.
        """
        symbol = self._handles.pop(handle, None)
        if symbol is None:
            return None, None, False

        sub = self._by_symbol[symbol]
        sub.listeners.pop(handle, None)
        sub.lost_hooks.pop(handle, None)
        if sub.listeners:
            return symbol, sub.subscription_id, False

        del self._by_symbol[symbol]
        return symbol, sub.subscription_id, True

    def bind(self, symbol: str, subscription_id: str) -> None:
        """Record the broker subscription id for *symbol*."""
        sub = self._by_symbol.get(symbol)
        if sub is not None:
            sub.subscription_id = subscription_id

    # ── Queries ──────────────────────────────────────────────────────────

    def is_subscribed(self, symbol: str) -> bool:
        return symbol in self._by_symbol

    def listener_count(self, symbol: str) -> int:
        sub = self._by_symbol.get(symbol)
        return len(sub.listeners) if sub else 0

    def subscription_id(self, symbol: str) -> Optional[str]:
        sub = self._by_symbol.get(symbol)
        return sub.subscription_id if sub else None

    @property
    def symbols(self) -> list[str]:
        return list(self._by_symbol.keys())

    # ── Dispatch ─────────────────────────────────────────────────────────

    def should_process(self, symbol: str, now: float) -> bool:
        """Throttle gate: ``True`` if a tick at *now* should be dispatched."""
        sub = self._by_symbol.get(symbol)
        if sub is None:
            return False
        if now - sub.last_tick_time < self._tick_throttle:
            return False
        sub.last_tick_time = now
        return True

    def dispatch(self, symbol: str, payload) -> int:
        """Deliver *payload* to every listener of *symbol*.

        A failing listener is logged and skipped so one strategy cannot
        starve the others.  Returns the number of listeners called.
        """
        sub = self._by_symbol.get(symbol)
        if sub is None:
            return 0
        delivered = 0
        for handle, callback in list(sub.listeners.items()):
            try:
                callback(payload)
                delivered += 1
            except Exception:
                logger.exception("Tick listener %s failed", handle)
        return delivered

    def clear(self) -> None:
        self._by_symbol.clear()
        self._handles.clear()

    def reset(self) -> list[Callable]:
        """Drop every subscription and return the listeners' lost hooks.

        Used when the socket dies: broker subscription ids do not survive
        it, so the next listener of any symbol must open a fresh one.
        """
        hooks = [
            hook
            for sub in self._by_symbol.values()
            for hook in sub.lost_hooks.values()
        ]
        self.clear()
        return hooks
