"""Analytics endpoints — grid-search optimization and single-pair analysis."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Query

from bids_matrix.backtest.analysis import analyze
from bids_matrix.backtest.breakdowns import BreakdownAnalyzer
from bids_matrix.backtest.grid_search import BacktestFilters, GridSearchEngine, prepare_trades
from bids_matrix.server.state import BidsState

router = APIRouter(prefix="/api/stats", tags=["analytics"])


def _filters(
    min_volume: float,
    min_price: float,
    min_probability: float,
    start_date: date | None,
    end_date: date | None,
) -> BacktestFilters:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=422, detail="start_date must not be after end_date")
    return BacktestFilters(
        min_volume=min_volume,
        min_price=min_price,
        min_probability=min_probability,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/optimization")
def get_optimization(
    min_volume: float = Query(0.0, ge=0),
    min_price: float = Query(0.0, ge=0),
    min_probability: float = Query(0.0, ge=0),
    start_date: date | None = None,
    end_date: date | None = None,
):
    state = BidsState()
    state.ensure_configured()
    filters = _filters(min_volume, min_price, min_probability, start_date, end_date)
    recs = state.store.all()

    result = GridSearchEngine.from_config(state.config).run(recs, filters)
    trades, _ = prepare_trades(recs, filters)
    breakdowns = BreakdownAnalyzer.from_config(state.config).all(trades)
    return {**result.to_dict(), "breakdowns": breakdowns}


@router.get("/analysis")
def get_analysis(
    tp: float = Query(..., gt=0),
    sl: float = Query(..., gt=0),
    min_volume: float = Query(0.0, ge=0),
    min_price: float = Query(0.0, ge=0),
    min_probability: float = Query(0.0, ge=0),
    start_date: date | None = None,
    end_date: date | None = None,
):
    state = BidsState()
    state.ensure_configured()
    filters = _filters(min_volume, min_price, min_probability, start_date, end_date)
    return analyze(state.store.all(), tp, sl, filters)
