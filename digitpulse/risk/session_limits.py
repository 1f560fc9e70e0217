"""Session limits — pure function, checks profit against target and stop loss."""

from typing import Optional


def check_session_limits(
    session_profit: float,
    target_profit: float,
    stop_loss: float,
) -> Optional[str]:
    """Return why a strategy must stop, or ``None`` to keep trading.

    ``"target_profit"`` once *session_profit* reaches *target_profit*;
    ``"stop_loss"`` once the session has lost at least *stop_loss*.
    A limit of zero or less is disabled.

    Args:
        session_profit: Realized profit since the strategy was registered.
        target_profit: Profit that ends the session (positive amount).
        stop_loss: Loss that ends the session (positive amount).
    """
    if target_profit > 0 and session_profit >= target_profit:
        return "target_profit"
    if stop_loss > 0 and session_profit <= -stop_loss:
        return "stop_loss"
    return None
