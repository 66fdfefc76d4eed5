"""Analysis report for a single TP/SL pair.

Complements the grid search with time and population views of one
configuration: per-date equity curve, excursion distribution, weekday
seasonality, ticker/sector leaders, daily averages and risk metrics.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from bids_matrix.backtest.grid_search import BacktestFilters, prepare_trades
from bids_matrix.core.data_types import Recommendation
from bids_matrix.core.types import OutcomeClass
from bids_matrix.risk.equity_aggregator import EquityAggregator
from bids_matrix.strategy.outcome_model import evaluate

logger = logging.getLogger(__name__)

DISTRIBUTION_BUCKETS = ("< 0%", "0-2%", "2-5%", "5-10%", "> 10%")
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri")
WEEKDAY_WIN_THRESHOLD_PCT = 0.5
TOP_TICKERS = 10
TOP_SECTORS = 5


def distribution_bucket(raw_pct: float) -> str:
    if raw_pct < 0:
        return "< 0%"
    if raw_pct < 2:
        return "0-2%"
    if raw_pct < 5:
        return "2-5%"
    if raw_pct < 10:
        return "5-10%"
    return "> 10%"


def analyze(
    recs: Iterable[Recommendation],
    take_profit_pct: float,
    stop_loss_pct: float,
    filters: BacktestFilters | None = None,
) -> dict:
    """Build the full analysis report for one TP/SL pair."""
    trades, skipped = prepare_trades(recs, filters)

    daily_returns: dict = defaultdict(list)
    daily_counts: dict = defaultdict(lambda: {"hit_tp": 0, "hit_sl": 0, "other": 0})
    daily_ref_prices: dict = defaultdict(list)
    distribution = {b: 0 for b in DISTRIBUTION_BUCKETS}
    weekday_returns: dict[str, list[float]] = {d: [] for d in WEEKDAYS}
    tickers: dict[str, list[float]] = defaultdict(list)
    sectors: dict[str, list[float]] = defaultdict(list)
    trade_returns = []

    agg = EquityAggregator()
    for rec, stats in trades:
        outcome = evaluate(stats, take_profit_pct, stop_loss_pct)
        r = outcome.clamped_return_pct
        agg.add(r)

        daily_returns[rec.day].append(r)
        daily_ref_prices[rec.day].append(stats.ref_price)
        counts = daily_counts[rec.day]
        if outcome.outcome_class == OutcomeClass.HIT_STOP_LOSS:
            counts["hit_sl"] += 1
        elif outcome.outcome_class == OutcomeClass.HIT_TAKE_PROFIT:
            counts["hit_tp"] += 1
        else:
            counts["other"] += 1

        distribution[distribution_bucket(outcome.raw_excursion_pct)] += 1

        weekday = rec.day.weekday()
        if weekday < len(WEEKDAYS):
            weekday_returns[WEEKDAYS[weekday]].append(r)

        tickers[rec.symbol].append(r)
        sectors[rec.sector or "Unknown"].append(r)

        trade_returns.append({
            "symbol": rec.symbol,
            "date": rec.day.isoformat(),
            "return": round(r, 4),
            "raw_excursion": round(outcome.raw_excursion_pct, 4),
            "probability": rec.probability,
        })

    report = {
        "take_profit_pct": take_profit_pct,
        "stop_loss_pct": stop_loss_pct,
        "trade_count": len(trades),
        "skipped_count": skipped,
        "equity_curve": _equity_curve(daily_returns, daily_counts),
        "distribution": [{"range": b, "count": distribution[b]} for b in DISTRIBUTION_BUCKETS],
        "weekday": [_weekday_row(d, weekday_returns[d]) for d in WEEKDAYS],
        "top_tickers": _top_tickers(tickers),
        "top_sectors": _top_sectors(sectors),
        "daily_averages": [
            {
                "date": day.isoformat(),
                "avg_return": round(_mean(daily_returns[day]), 3),
                "avg_ref_price": round(_mean(daily_ref_prices[day]), 2),
                "count": len(daily_returns[day]),
            }
            for day in sorted(daily_returns)
        ],
        "trade_returns": trade_returns,
        "risk_metrics": agg.summary().to_dict(),
    }
    logger.info(
        "Analysis TP=%.2f%% SL=%.2f%%: %d trades over %d days",
        take_profit_pct, stop_loss_pct, len(trades), len(daily_returns),
    )
    return report


def _equity_curve(daily_returns: dict, daily_counts: dict) -> list[dict]:
    """One point per trading date. Drawdown is reported as a negative number."""
    points = []
    equity = 0.0
    peak = 0.0
    for day in sorted(daily_returns):
        day_return = sum(daily_returns[day])
        equity += day_return
        peak = max(peak, equity)
        points.append({
            "date": day.isoformat(),
            "return": round(day_return, 3),
            "equity": round(equity, 3),
            "drawdown": round(equity - peak, 3),
            "count": len(daily_returns[day]),
            **daily_counts[day],
        })
    return points


def _weekday_row(day_name: str, returns: list[float]) -> dict:
    count = len(returns)
    wins = sum(1 for r in returns if r >= WEEKDAY_WIN_THRESHOLD_PCT)
    return {
        "day": day_name,
        "avg_return": round(_mean(returns), 3),
        "win_rate": round(wins / count * 100, 1) if count else 0.0,
        "count": count,
    }


def _top_tickers(tickers: dict[str, list[float]]) -> list[dict]:
    rows = [
        {"symbol": s, "count": len(rs), "avg_return": round(_mean(rs), 3)}
        for s, rs in tickers.items()
    ]
    rows.sort(key=lambda r: r["count"], reverse=True)
    return rows[:TOP_TICKERS]


def _top_sectors(sectors: dict[str, list[float]]) -> list[dict]:
    rows = [
        {"sector": s, "count": len(rs), "avg_return": round(_mean(rs), 3)}
        for s, rs in sectors.items()
    ]
    rows.sort(key=lambda r: r["avg_return"], reverse=True)
    return rows[:TOP_SECTORS]


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0
