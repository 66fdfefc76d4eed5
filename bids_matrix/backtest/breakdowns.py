"""Fixed-TP/SL breakdowns for comparative context next to the grid search.

All breakdowns use one fixed TP/SL pair (5% / 2% by default) so they stay
independent of whatever the optimizer picks.
"""

from __future__ import annotations

from collections import defaultdict

import numpy as np

from bids_matrix.core.data_types import Recommendation, WindowStats
from bids_matrix.strategy.outcome_model import evaluate

VOLUME_SEGMENTS = ("<2M", "2-5M", "5-10M", ">10M")


def volume_segment(volume: float) -> str:
    if volume < 2_000_000:
        return "<2M"
    if volume < 5_000_000:
        return "2-5M"
    if volume < 10_000_000:
        return "5-10M"
    return ">10M"


def boxplot_summary(values: list[float]) -> dict[str, float]:
    """min / q1 / median / q3 / max with linear interpolation."""
    if not values:
        return {"min": 0.0, "q1": 0.0, "median": 0.0, "q3": 0.0, "max": 0.0}
    arr = np.asarray(values, dtype=float)
    q1, median, q3 = np.percentile(arr, [25, 50, 75])
    return {
        "min": round(float(arr.min()), 2),
        "q1": round(float(q1), 2),
        "median": round(float(median), 2),
        "q3": round(float(q3), 2),
        "max": round(float(arr.max()), 2),
    }


class BreakdownAnalyzer:
    """Sector, RSI, volume-bucket and relative-volume views of a trade set."""

    def __init__(self, take_profit_pct: float = 5.0, stop_loss_pct: float = 2.0) -> None:
        self._tp = take_profit_pct
        self._sl = stop_loss_pct

    @classmethod
    def from_config(cls, config) -> BreakdownAnalyzer:
        return cls(
            take_profit_pct=config.get("backtest.breakdown_take_profit_pct", 5.0),
            stop_loss_pct=config.get("backtest.breakdown_stop_loss_pct", 2.0),
        )

    def by_sector(self, trades: list[tuple[Recommendation, WindowStats]]) -> list[dict]:
        groups: dict[str, list[float]] = defaultdict(list)
        for rec, stats in trades:
            groups[rec.sector or "Unknown"].append(evaluate(stats, self._tp, self._sl).clamped_return_pct)
        rows = [self._group_row({"sector": name}, returns) for name, returns in groups.items()]
        return sorted(rows, key=lambda r: r["avg_return"], reverse=True)

    def by_rsi(self, trades: list[tuple[Recommendation, WindowStats]]) -> list[dict]:
        groups: dict[int, list[float]] = defaultdict(list)
        for rec, stats in trades:
            groups[int(round(rec.rsi))].append(evaluate(stats, self._tp, self._sl).clamped_return_pct)
        return [self._group_row({"rsi": rsi}, groups[rsi]) for rsi in sorted(groups)]

    def by_volume(self, trades: list[tuple[Recommendation, WindowStats]]) -> list[dict]:
        """Volume buckets with the raw excursion distribution of each bucket."""
        values: dict[str, list[float]] = {s: [] for s in VOLUME_SEGMENTS}
        wins: dict[str, int] = {s: 0 for s in VOLUME_SEGMENTS}
        for rec, stats in trades:
            segment = volume_segment(rec.volume)
            raw = evaluate(stats, self._tp, self._sl).raw_excursion_pct
            values[segment].append(round(raw, 2))
            if raw >= self._tp:
                wins[segment] += 1

        rows = []
        for segment in VOLUME_SEGMENTS:
            seg_values = values[segment]
            count = len(seg_values)
            rows.append({
                "segment": segment,
                "avg_return": round(sum(seg_values) / count, 2) if count else 0.0,
                "win_rate": round(wins[segment] / count * 100, 1) if count else 0.0,
                "count": count,
                "values": seg_values,
                **boxplot_summary(seg_values),
            })
        return rows

    def relative_volume_scatter(self, trades: list[tuple[Recommendation, WindowStats]]) -> list[dict]:
        points = []
        for rec, stats in trades:
            outcome = evaluate(stats, self._tp, self._sl)
            points.append({
                "relative_volume": round(rec.relative_volume, 2),
                "return": outcome.clamped_return_pct,
                "raw_excursion": round(outcome.raw_excursion_pct, 2),
                "sector": rec.sector,
            })
        return points

    def all(self, trades: list[tuple[Recommendation, WindowStats]]) -> dict[str, list[dict]]:
        return {
            "sector": self.by_sector(trades),
            "rsi": self.by_rsi(trades),
            "volume": self.by_volume(trades),
            "relative_volume": self.relative_volume_scatter(trades),
        }

    @staticmethod
    def _group_row(label: dict, returns: list[float]) -> dict:
        count = len(returns)
        wins = sum(1 for r in returns if r > 0)
        return {
            **label,
            "avg_return": round(sum(returns) / count, 2) if count else 0.0,
            "win_rate": round(wins / count * 100, 1) if count else 0.0,
            "count": count,
        }
