"""Martingale stake scaling — pure math, no I/O.

Multiplies the stake after every loss and resets it to the base stake after
any win.  Growth is unbounded unless a ``max_stake`` ceiling is configured.
"""

from typing import Optional


class MartingaleController:
    """Tracks the current stake of one strategy.

    Args:
        base_stake: Stake used for the first trade and after every win.
        multiplier: Factor applied to the current stake after a loss.
        max_stake: Optional ceiling; ``None`` leaves growth unbounded.
    """

    def __init__(
        self,
        base_stake: float,
        multiplier: float = 2.0,
        max_stake: Optional[float] = None,
    ) -> None:
        if base_stake <= 0:
            raise ValueError(f"base_stake must be positive, got {base_stake}")
        if multiplier <= 0:
            raise ValueError(f"multiplier must be positive, got {multiplier}")
        if max_stake is not None and max_stake < base_stake:
            raise ValueError(
                f"max_stake ({max_stake}) must not be below base_stake ({base_stake})"
            )
        self._base_stake = base_stake
        self._multiplier = multiplier
        self._max_stake = max_stake
        self._current_stake = base_stake
        self._loss_streak = 0

    # ── Mutation ─────────────────────────────────────────────────────────

    def record_win(self) -> float:
        """Reset to the base stake and return it."""
        self._current_stake = self._base_stake
        self._loss_streak = 0
        return self._current_stake

    def record_loss(self) -> float:
        """Scale the stake by the multiplier (capped) and return it."""
        next_stake = self._current_stake * self._multiplier
        if self._max_stake is not None:
            next_stake = min(next_stake, self._max_stake)
        self._current_stake = next_stake
        self._loss_streak += 1
        return self._current_stake

    def record(self, result: str) -> float:
        """Apply a ``"win"`` or ``"loss"`` outcome."""
        if result == "win":
            return self.record_win()
        if result == "loss":
            return self.record_loss()
        raise ValueError(f"result must be 'win' or 'loss', got {result!r}")

    def reconfigure(
        self,
        base_stake: float,
        multiplier: float,
        max_stake: Optional[float],
    ) -> None:
        """Apply edited tunables; the current stake is kept unless capped."""
        self._base_stake = base_stake
        self._multiplier = multiplier
        self._max_stake = max_stake
        if self._loss_streak == 0:
            self._current_stake = base_stake
        elif max_stake is not None:
            self._current_stake = min(self._current_stake, max_stake)

    def reset(self) -> None:
        self._current_stake = self._base_stake
        self._loss_streak = 0

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def current_stake(self) -> float:
        """Stake for the next trade."""
        return self._current_stake

    @property
    def base_stake(self) -> float:
        return self._base_stake

    @property
    def loss_streak(self) -> int:
        """Consecutive losses since the last win."""
        return self._loss_streak
