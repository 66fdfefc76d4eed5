"""Trading endpoints — config, trade logs and paper sessions.

Sessions started from the API always run against the PaperBroker; live
routing happens only through scripts/run_auto_trader.py.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from bids_matrix.brokerage.paper_broker import PaperBroker
from bids_matrix.execution.session import TradingSession
from bids_matrix.server.state import BidsState

router = APIRouter(prefix="/api/trading", tags=["trading"])


class RunRequest(BaseModel):
    day: date | None = None
    dry_run: bool = True
    portfolio_value: float = Field(100_000.0, gt=0)
    live_prices: dict[str, float] = Field(default_factory=dict)
    fill_attempt: int | None = Field(1, ge=1)


async def _no_wait(_seconds: float) -> None:
    return None


@router.get("/config")
def get_trading_config():
    return BidsState().snapshot_config()


@router.get("/logs")
def get_trading_logs(limit: int = Query(100, ge=0, le=1000)):
    return BidsState().snapshot_logs(limit)


@router.get("/summary")
def get_trading_summary():
    return BidsState().snapshot_summary()


@router.post("/run")
async def run_trading_session(req: RunRequest):
    state = BidsState()
    state.ensure_configured()

    day = req.day or state.store.latest_day()
    if day is None:
        raise HTTPException(status_code=409, detail="No recommendations loaded.")
    recs = state.store.for_day(day)
    if not recs:
        raise HTTPException(status_code=404, detail=f"No recommendations for {day.isoformat()}")

    broker = PaperBroker(
        portfolio_value=req.portfolio_value,
        live_prices=req.live_prices,
        default_fill_attempt=req.fill_attempt,
    )
    session = TradingSession(
        gateway=broker,
        provider=broker,
        selection=state.config.selection_config(),
        execution=state.config.execution_config(),
        trade_logger=state.trade_logger,
        event_bus=state.event_bus,
        sleep=_no_wait,
    )
    report = await session.run(recs, dry_run=req.dry_run, force=True)
    state.last_report = report
    return {"day": day.isoformat(), **report.to_dict()}
