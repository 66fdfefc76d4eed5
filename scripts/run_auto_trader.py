#!/usr/bin/env python3
"""Run one day's automated entry session.

Selects candidates from the day's recommendations, sizes them against the
portfolio value and runs one execution automaton per symbol.

Usage:
    python scripts/run_auto_trader.py --data data/recommendations.json --dry-run
    python scripts/run_auto_trader.py --profile paper --prices data/live_prices.json
    python scripts/run_auto_trader.py --prices data/live_prices.json --bars data/bars
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from bids_matrix.brokerage.paper_broker import PaperBroker
from bids_matrix.config.config_manager import ConfigManager
from bids_matrix.core.data_types import PricePath
from bids_matrix.core.event_bus import EventBus
from bids_matrix.core.types import EventType
from bids_matrix.database.recommendation_store import RecommendationStore
from bids_matrix.database.trade_logger import TradeLogger
from bids_matrix.execution.session import TradingSession


def parse_args():
    parser = argparse.ArgumentParser(description="bids_matrix auto trader")
    parser.add_argument("--data", type=str, default="data/recommendations.json",
                        help="Path to exported recommendations JSON")
    parser.add_argument("--day", type=date.fromisoformat, default=None,
                        help="Trading day (default: latest day in data)")
    parser.add_argument("--profile", type=str, default="paper",
                        help="Config profile (default: paper)")
    parser.add_argument("--prices", type=str, default=None,
                        help="JSON object of symbol → live price for the paper broker")
    parser.add_argument("--bars", type=str, default=None,
                        help="Directory of {SYMBOL}_{DATE}.npy minute bars; summarises fills as TP/SL outcomes")
    parser.add_argument("--portfolio-value", type=float, default=100_000.0,
                        help="Paper account value (default: 100000)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Select and size only; no orders are sent")
    parser.add_argument("--force", action="store_true",
                        help="Run even if execution.enabled is false")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args()


def _log_event(event) -> None:
    logging.getLogger("events").info("%s %s", event.type.value, event.payload)


async def run(args) -> int:
    config = ConfigManager()
    config.load(profile=args.profile)

    store = RecommendationStore()
    store.load_json(args.data)
    day = args.day or store.latest_day()
    if day is None:
        logging.error("No recommendations in %s", args.data)
        return 1
    recs = store.for_day(day)
    logging.info("Trading day %s: %d recommendations", day, len(recs))

    live_prices = {}
    if args.prices:
        with open(args.prices) as f:
            live_prices = {k: float(v) for k, v in json.load(f).items()}

    broker = PaperBroker(portfolio_value=args.portfolio_value, live_prices=live_prices)
    if args.bars:
        for rec in recs:
            bars_file = Path(args.bars) / f"{rec.symbol}_{day.isoformat()}.npy"
            if bars_file.exists():
                broker.add_price_path(PricePath(symbol=rec.symbol, day=day, bars=np.load(str(bars_file))))

    bus = EventBus()
    for event_type in EventType:
        bus.subscribe_sync(event_type, _log_event)

    trade_logger = TradeLogger(dsn=config.get("database.dsn", "") or None)
    await trade_logger.start()
    try:
        session = TradingSession(
            gateway=broker,
            provider=broker,
            selection=config.selection_config(),
            execution=config.execution_config(),
            trade_logger=trade_logger,
            event_bus=bus,
        )
        report = await session.run(recs, dry_run=args.dry_run, force=args.force)
        if args.bars and not report.dry_run:
            await session.realise(report, day)
    finally:
        await trade_logger.stop()

    if report.aborted_reason:
        logging.warning("Session aborted: %s", report.aborted_reason)
        return 0

    print(f"\n  Session {day} ({'dry run' if report.dry_run else 'paper'})")
    for entry in report.entries:
        print(
            f"  {entry.symbol:<6} {entry.status.value:<10} qty={entry.quantity:<5} "
            f"entry={entry.entry_price:<8.2f} TP={entry.take_profit_price:<8.2f} "
            f"SL={entry.stop_loss_price:<8.2f} attempts={entry.attempts}"
        )
    print(f"  Status: {report.by_status}")
    print(f"  Max planned loss: ${report.max_planned_loss:,.2f}")
    if report.risk is not None:
        risk = report.risk
        print(
            f"  Realised as TP/SL: {risk.trade_count} trades, total {risk.total_return:+.2f}%, "
            f"win rate {risk.win_rate:.1f}%, max DD {risk.max_drawdown:.2f}%"
        )
    print()
    return 0


def main():
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not Path(args.data).exists():
        logging.error("Data file not found: %s", args.data)
        sys.exit(1)

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
