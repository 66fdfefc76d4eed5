"""Tests for EquityAggregator — drawdown, streaks, profit factor."""

import numpy as np
import pytest

from bids_matrix.risk.equity_aggregator import EquityAggregator, profit_factor, summarize_returns


class TestEquityAggregator:
    def test_cumulative_and_drawdown(self):
        agg = EquityAggregator(keep_curve=True)
        agg.extend([3.0, -2.0, -2.0, 5.0])
        s = agg.summary()
        assert s.total_return == pytest.approx(4.0)
        assert s.max_drawdown == pytest.approx(4.0)
        assert s.peak_equity == pytest.approx(4.0)
        assert [p.cumulative_return for p in agg.curve] == pytest.approx([3.0, 1.0, -1.0, 4.0])
        assert agg.curve[2].drawdown == pytest.approx(4.0)

    def test_peak_starts_at_zero(self):
        s = summarize_returns([-1.0, -1.0])
        assert s.max_drawdown == pytest.approx(2.0)
        assert s.peak_equity == 0.0

    def test_streaks(self):
        s = summarize_returns([1, 1, 1, -1, 0, -2, 1, 1])
        assert s.max_win_streak == 3
        assert s.max_loss_streak == 3  # 0 counts as a loss

    def test_win_rate_and_average(self):
        s = summarize_returns([2.0, -1.0, 0.0, 3.0])
        assert s.wins == 2
        assert s.win_rate == pytest.approx(50.0)
        assert s.avg_return == pytest.approx(1.0)

    def test_profit_factor(self):
        s = summarize_returns([3.0, -1.0, 1.0, -1.0])
        assert s.profit_factor == pytest.approx(2.0)

    def test_profit_factor_no_losses(self):
        assert profit_factor(5.0, 0.0) == 5.0
        assert summarize_returns([1.0, 2.0]).profit_factor == pytest.approx(3.0)

    def test_empty(self):
        s = summarize_returns([])
        assert s.trade_count == 0
        assert s.win_rate == 0.0
        assert s.max_drawdown == 0.0

    def test_curve_not_kept_by_default(self):
        agg = EquityAggregator()
        agg.add(1.0)
        assert agg.curve == []
        assert agg.cumulative_return == 1.0

    def test_drawdown_bounds(self):
        """0 <= max_drawdown <= max over i of (peak_i - min cumulative after i)."""
        rng = np.random.default_rng(11)
        for _ in range(200):
            returns = rng.normal(0.0, 2.0, size=int(rng.integers(1, 60))).tolist()
            agg = EquityAggregator(keep_curve=True)
            agg.extend(returns)
            s = agg.summary()
            cum = [p.cumulative_return for p in agg.curve]
            peaks = [p.peak_equity for p in agg.curve]
            bound = max(peaks[i] - min(cum[i:]) for i in range(len(cum)))
            assert s.max_drawdown >= 0
            assert s.max_drawdown <= bound + 1e-9

    def test_to_dict_rounding(self):
        d = summarize_returns([1.23456, -0.5]).to_dict()
        assert d["total_return"] == 0.73
        assert d["trade_count"] == 2
