"""CLI dashboard — prints strategy status to the console."""


def print_status(status: dict) -> str:
    """Format and print the summary of one strategy.

    Args:
        status: Dict as returned by ``StrategyEngine.snapshot()``.

    Returns:
        The formatted string (also printed to stdout).
    """
    name = status.get("name") or status.get("id", "N/A")
    strategy_type = status.get("type", "N/A")
    symbol = status.get("market_symbol", "N/A")
    state = status.get("state", "unknown")
    decision = status.get("decision_state", "N/A")
    sample = status.get("sample_size", 0)
    stake = status.get("current_stake")
    profit = status.get("session_profit")
    wins = status.get("wins", 0)
    losses = status.get("losses", 0)
    win_rate = status.get("win_rate", 0.0)
    pending = status.get("pending_trades", 0)
    errors = status.get("consecutive_errors", 0)

    stake_str = f"{stake:,.2f}" if stake is not None else "N/A"
    profit_str = f"{profit:+,.2f}" if profit is not None else "N/A"

    lines = [
        "──────────────── DigitPulse Status ────────────────",
        f"  Strategy:        {name} ({strategy_type})",
        f"  Market:          {symbol}",
        f"  State:           {state}",
        f"  Decision:        {decision} ({sample} ticks)",
        f"  Next Stake:      {stake_str}",
        f"  Session P/L:     {profit_str}",
        f"  Wins / Losses:   {wins} / {losses} ({win_rate * 100:.1f}%)",
        f"  Pending Trades:  {pending}",
        f"  Errors in Row:   {errors}",
        "──────────────────────────────────────────────────",
    ]
    output = "\n".join(lines)
    print(output)
    return output
