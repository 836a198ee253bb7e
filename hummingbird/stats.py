"""Session statistics — pure functions over settled trade outcomes."""

from typing import Optional

from hummingbird.contracts.models import TradeOutcome


def calculate_stats(outcomes: list[TradeOutcome]) -> dict:
    """Summarise a session's settled trades.

    Returns:
        Dict with ``total_trades``, ``winning_trades``, ``losing_trades``,
        ``win_rate``, ``profit_factor``, ``net_pnl``, ``max_drawdown``,
        ``longest_losing_streak``, ``max_stake`` and ``total_staked``.
    """
    if not outcomes:
        return {
            "total_trades": 0,
            "winning_trades": 0,
            "losing_trades": 0,
            "win_rate": 0.0,
            "profit_factor": None,
            "net_pnl": 0.0,
            "max_drawdown": 0.0,
            "longest_losing_streak": 0,
            "max_stake": 0.0,
            "total_staked": 0.0,
        }

    pnls = [o.profit for o in outcomes]
    total = len(outcomes)
    winning = sum(1 for o in outcomes if o.is_win)
    losing = total - winning

    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p <= 0))
    profit_factor: Optional[float] = (
        gross_profit / gross_loss if gross_loss > 0 else None
    )

    return {
        "total_trades": total,
        "winning_trades": winning,
        "losing_trades": losing,
        "win_rate": round(winning / total, 4),
        "profit_factor": round(profit_factor, 4) if profit_factor is not None else None,
        "net_pnl": round(sum(pnls), 2),
        "max_drawdown": round(_max_drawdown(pnls), 4),
        "longest_losing_streak": _longest_losing_streak(outcomes),
        "max_stake": max(o.stake for o in outcomes),
        "total_staked": round(sum(o.stake for o in outcomes), 2),
    }


# ── Helpers ──────────────────────────────────────────────────────────────


def _max_drawdown(pnls: list[float]) -> float:
    """Largest peak-to-trough decline of the cumulative P&L, as a positive number."""
    cumulative = 0.0
    peak = 0.0
    max_dd = 0.0
    for p in pnls:
        cumulative += p
        peak = max(peak, cumulative)
        max_dd = max(max_dd, peak - cumulative)
    return max_dd


def _longest_losing_streak(outcomes: list[TradeOutcome]) -> int:
    longest = current = 0
    for o in outcomes:
        current = 0 if o.is_win else current + 1
        longest = max(longest, current)
    return longest
