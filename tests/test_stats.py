"""Tests for session statistics."""

import pytest

from hummingbird.contracts.models import TradeOutcome
from hummingbird.stats import calculate_stats


def _outcome(profit: float, stake: float = 1.0) -> TradeOutcome:
    return TradeOutcome(
        is_win=profit > 0,
        stake=stake,
        profit=profit,
        balance=100.0,
        timestamp=1_700_000_000,
        contract_id="c",
    )


class TestCalculateStats:
    def test_empty(self):
        stats = calculate_stats([])
        assert stats["total_trades"] == 0
        assert stats["profit_factor"] is None
        assert stats["longest_losing_streak"] == 0

    def test_mixed_sequence(self):
        outcomes = [
            _outcome(-1.0),
            _outcome(-2.9, stake=2.9),
            _outcome(8.17, stake=8.6),
            _outcome(-1.0),
        ]
        stats = calculate_stats(outcomes)
        assert stats["total_trades"] == 4
        assert stats["winning_trades"] == 1
        assert stats["losing_trades"] == 3
        assert stats["win_rate"] == 0.25
        assert stats["net_pnl"] == pytest.approx(3.27)
        assert stats["profit_factor"] == pytest.approx(8.17 / 4.9, abs=1e-4)
        assert stats["max_drawdown"] == pytest.approx(3.9)
        assert stats["longest_losing_streak"] == 2
        assert stats["max_stake"] == 8.6
        assert stats["total_staked"] == pytest.approx(13.5)

    def test_all_wins(self):
        stats = calculate_stats([_outcome(0.95), _outcome(0.95)])
        assert stats["profit_factor"] is None
        assert stats["max_drawdown"] == 0.0
        assert stats["win_rate"] == 1.0
