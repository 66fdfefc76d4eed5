"""Grid-Search Backtest Engine — TP × SL sweep over historical recommendations.

Every (tp, sl) cell replays the same time-ordered, filtered trade set through
the outcome model and aggregates it with an EquityAggregator. Cells are
independent; evaluation order does not affect results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

import numpy as np

from bids_matrix.core.data_types import Recommendation, WindowStats
from bids_matrix.core.errors import InvalidReferencePrice
from bids_matrix.risk.equity_aggregator import EquityAggregator
from bids_matrix.strategy.outcome_model import evaluate, validate_ref_price

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BacktestFilters:
    """Optional pre-filters applied before any cell is evaluated."""

    min_volume: float = 0.0
    min_price: float = 0.0
    min_probability: float = 0.0
    start_date: date | None = None
    end_date: date | None = None

    def accepts(self, rec: Recommendation) -> bool:
        if self.start_date is not None and rec.day < self.start_date:
            return False
        if self.end_date is not None and rec.day > self.end_date:
            return False
        if rec.volume < self.min_volume:
            return False
        # Price filter applies to the entry proxy (reference price)
        if (rec.ref_price or 0.0) < self.min_price:
            return False
        if rec.probability < self.min_probability:
            return False
        return True


@dataclass(frozen=True)
class BacktestRun:
    """Aggregated metrics for one (take_profit_pct, stop_loss_pct) cell."""

    take_profit_pct: float
    stop_loss_pct: float
    total_return: float
    win_rate: float
    profit_factor: float
    max_drawdown: float
    max_win_streak: int
    max_loss_streak: int
    trade_count: int
    avg_return: float
    efficiency: float

    def to_dict(self) -> dict:
        return {
            "tp": self.take_profit_pct,
            "sl": self.stop_loss_pct,
            "total_return": round(self.total_return, 2),
            "win_rate": round(self.win_rate, 1),
            "profit_factor": round(self.profit_factor, 2),
            "max_drawdown": round(self.max_drawdown, 2),
            "max_win_streak": self.max_win_streak,
            "max_loss_streak": self.max_loss_streak,
            "count": self.trade_count,
            "avg_return": round(self.avg_return, 3),
            "efficiency": round(self.efficiency, 2),
        }


@dataclass
class GridSearchResult:
    """All cells ranked by total return (descending)."""

    runs: list[BacktestRun]
    tp_range: list[float]
    sl_range: list[float]
    trade_count: int
    skipped_count: int = 0
    filters: BacktestFilters = field(default_factory=BacktestFilters)

    @property
    def best(self) -> BacktestRun | None:
        return self.runs[0] if self.runs else None

    def cell(self, tp: float, sl: float) -> BacktestRun | None:
        for run in self.runs:
            if np.isclose(run.take_profit_pct, tp) and np.isclose(run.stop_loss_pct, sl):
                return run
        return None

    def to_dict(self) -> dict:
        best = self.best
        return {
            "tp_range": self.tp_range,
            "sl_range": self.sl_range,
            "runs": [r.to_dict() for r in self.runs],
            "best": best.to_dict() if best else {"tp": 0, "sl": 0, "total_return": 0},
            "trade_count": self.trade_count,
            "skipped_count": self.skipped_count,
        }


def grid_range(start: float, stop: float, step: float) -> list[float]:
    """Inclusive float range, rounded to avoid accumulation drift."""
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")
    if stop < start:
        return []
    values = np.arange(start, stop + step / 2.0, step)
    return [round(float(v), 6) for v in values]


def prepare_trades(
    recs: Iterable[Recommendation],
    filters: BacktestFilters | None = None,
) -> tuple[list[tuple[Recommendation, WindowStats]], int]:
    """Filter and time-order recommendations that carry valid window stats.

    Returns (trades, skipped) where skipped counts records with missing or
    invalid reference data.
    """
    filters = filters or BacktestFilters()
    trades: list[tuple[Recommendation, WindowStats]] = []
    skipped = 0
    for rec in recs:
        stats = rec.stats
        if stats is None:
            skipped += 1
            continue
        try:
            validate_ref_price(stats.ref_price, rec.symbol)
        except InvalidReferencePrice as e:
            logger.warning("Skipping %s on %s: %s", rec.symbol, rec.day, e)
            skipped += 1
            continue
        if not filters.accepts(rec):
            continue
        trades.append((rec, stats))

    trades.sort(key=lambda t: (t[0].day, t[0].symbol))
    return trades, skipped


def run_cell(stats_seq: list[WindowStats], tp: float, sl: float) -> BacktestRun | None:
    """Backtest one TP/SL pair. Returns None when there are no trades."""
    if not stats_seq:
        return None
    agg = EquityAggregator()
    for stats in stats_seq:
        agg.add(evaluate(stats, tp, sl).clamped_return_pct)
    s = agg.summary()
    return BacktestRun(
        take_profit_pct=tp,
        stop_loss_pct=sl,
        total_return=s.total_return,
        win_rate=s.win_rate,
        profit_factor=s.profit_factor,
        max_drawdown=s.max_drawdown,
        max_win_streak=s.max_win_streak,
        max_loss_streak=s.max_loss_streak,
        trade_count=s.trade_count,
        avg_return=s.avg_return,
        efficiency=s.total_return / sl if sl > 0 else 0.0,
    )


class GridSearchEngine:
    """Sweeps the TP × SL product over a historical recommendation set."""

    def __init__(
        self,
        tp_range: list[float] | None = None,
        sl_range: list[float] | None = None,
    ) -> None:
        self._tp_range = tp_range if tp_range is not None else grid_range(0.5, 12.0, 0.5)
        self._sl_range = sl_range if sl_range is not None else grid_range(0.5, 12.0, 0.5)

    @classmethod
    def from_config(cls, config) -> GridSearchEngine:
        return cls(
            tp_range=grid_range(
                config.get("backtest.tp_min", 0.5),
                config.get("backtest.tp_max", 12.0),
                config.get("backtest.tp_step", 0.5),
            ),
            sl_range=grid_range(
                config.get("backtest.sl_min", 0.5),
                config.get("backtest.sl_max", 12.0),
                config.get("backtest.sl_step", 0.5),
            ),
        )

    @property
    def cell_count(self) -> int:
        return len(self._tp_range) * len(self._sl_range)

    def run(
        self,
        recs: Iterable[Recommendation],
        filters: BacktestFilters | None = None,
    ) -> GridSearchResult:
        filters = filters or BacktestFilters()
        trades, skipped = prepare_trades(recs, filters)
        stats_seq = [stats for _, stats in trades]

        logger.info(
            "Grid search: %d trades (%d skipped) × %d cells",
            len(stats_seq), skipped, self.cell_count,
        )

        runs: list[BacktestRun] = []
        for tp in self._tp_range:
            for sl in self._sl_range:
                run = run_cell(stats_seq, tp, sl)
                if run is not None:
                    runs.append(run)

        # sorted() is stable: ties keep grid order
        runs = sorted(runs, key=lambda r: r.total_return, reverse=True)

        result = GridSearchResult(
            runs=runs,
            tp_range=list(self._tp_range),
            sl_range=list(self._sl_range),
            trade_count=len(stats_seq),
            skipped_count=skipped,
            filters=filters,
        )
        best = result.best
        if best is not None:
            logger.info(
                "Best: TP=%.2f%% SL=%.2f%% → total return %.2f%% (win rate %.1f%%)",
                best.take_profit_pct, best.stop_loss_pct, best.total_return, best.win_rate,
            )
        return result
