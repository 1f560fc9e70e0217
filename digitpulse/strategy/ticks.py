"""Tick ingestion — normalizes raw quotes into digits and keeps a rolling window."""

import logging
from collections import deque
from typing import Iterable, Iterator

from digitpulse.strategy.models import QUOTE_DECIMALS, Tick

logger = logging.getLogger("digitpulse")


def extract_last_digit(quote, decimals: int = QUOTE_DECIMALS) -> int:
    """Return the last digit of *quote* formatted to *decimals* places.

    ``1234.56780`` → ``0``.  Malformed quotes (``None``, non-numeric
    strings, NaN/inf) fall back to ``0``.
    """
    try:
        formatted = f"{float(quote):.{decimals}f}"
    except (TypeError, ValueError):
        logger.debug("Malformed quote %r — using digit 0", quote)
        return 0
    last = formatted[-1]
    if not last.isdigit():
        logger.debug("Malformed quote %r — using digit 0", quote)
        return 0
    return int(last)


def make_tick(epoch: int, quote, symbol: str) -> Tick:
    """Build a normalized ``Tick`` from raw broker fields."""
    digit = extract_last_digit(quote)
    try:
        price = float(quote)
    except (TypeError, ValueError):
        price = 0.0
    return Tick(epoch=int(epoch or 0), quote=price, digit=digit, symbol=symbol)


class TickBuffer:
    """Fixed-size rolling window of ticks, oldest first.

    Args:
        max_ticks: Window bound; the oldest tick is evicted once exceeded.
    """

    def __init__(self, max_ticks: int) -> None:
        if max_ticks <= 0:
            raise ValueError(f"max_ticks must be positive, got {max_ticks}")
        self._ticks: deque[Tick] = deque(maxlen=max_ticks)

    def append(self, tick: Tick) -> None:
        self._ticks.append(tick)

    def extend(self, ticks: Iterable[Tick]) -> None:
        self._ticks.extend(ticks)

    def resize(self, max_ticks: int) -> None:
        """Change the bound, keeping the most recent ticks."""
        if max_ticks <= 0:
            raise ValueError(f"max_ticks must be positive, got {max_ticks}")
        self._ticks = deque(self._ticks, maxlen=max_ticks)

    def clear(self) -> None:
        self._ticks.clear()

    @property
    def max_ticks(self) -> int:
        return self._ticks.maxlen

    @property
    def digits(self) -> list[int]:
        return [t.digit for t in self._ticks]

    def snapshot(self) -> list[Tick]:
        return list(self._ticks)

    def __len__(self) -> int:
        return len(self._ticks)

    def __iter__(self) -> Iterator[Tick]:
        return iter(self._ticks)
