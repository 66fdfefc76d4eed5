#!/usr/bin/env python3
"""Recompute reference-window stats for one trading day from minute bars.

Minute bars are read from .npy files (BAR_DTYPE) named
{SYMBOL}_{YYYY-MM-DD}.npy in the bars directory.

Usage:
    python scripts/refresh_day.py --data data/recommendations.json \\
        --bars data/bars --day 2025-03-14
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from bids_matrix.config.config_manager import ConfigManager
from bids_matrix.core.data_types import PricePath
from bids_matrix.database.recommendation_store import RecommendationStore
from bids_matrix.structure.excursion_calculator import ExcursionCalculator
from bids_matrix.structure.recommendation_refresher import RecommendationRefresher


class NpyPathProvider:
    """MarketDataProvider over a directory of per-symbol, per-day .npy files."""

    def __init__(self, bars_dir: Path) -> None:
        self._bars_dir = bars_dir

    async def fetch_price_path(self, symbol: str, day: date) -> PricePath | None:
        path = self._bars_dir / f"{symbol}_{day.isoformat()}.npy"
        if not path.exists():
            return None
        return PricePath(symbol=symbol, day=day, bars=np.load(str(path)))

    async def fetch_live_price(self, symbol: str) -> float | None:
        return None


def parse_args():
    parser = argparse.ArgumentParser(description="Refresh window stats for a trading day")
    parser.add_argument("--data", type=str, default="data/recommendations.json",
                        help="Recommendations JSON (updated in place unless --output is set)")
    parser.add_argument("--bars", type=str, default="data/bars",
                        help="Directory of {SYMBOL}_{DATE}.npy minute bars")
    parser.add_argument("--day", type=date.fromisoformat, default=None,
                        help="Day to refresh (default: latest day in data)")
    parser.add_argument("--symbols", type=str, nargs="*", default=None,
                        help="Restrict to these symbols")
    parser.add_argument("--output", type=str, default=None,
                        help="Write refreshed JSON here instead of overwriting --data")
    parser.add_argument("--db-dsn", type=str, default=None,
                        help="PostgreSQL DSN; upserts refreshed records when set")
    return parser.parse_args()


def main():
    args = parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    config = ConfigManager()
    config.load()

    store = RecommendationStore(dsn=args.db_dsn)
    store.load_json(args.data)
    day = args.day or store.latest_day()
    if day is None:
        logging.error("No recommendations in %s", args.data)
        sys.exit(1)

    calculator = ExcursionCalculator(
        windows=config.reference_windows(),
        market_tz=config.get("system.timezone", "US/Eastern"),
        session_close=config.get("system.session_close", "16:00"),
    )
    refresher = RecommendationRefresher(calculator, NpyPathProvider(Path(args.bars)), store)
    counts = asyncio.run(refresher.refresh_day(day, args.symbols))

    store.dump_json(args.output or args.data)
    if args.db_dsn:
        store.flush_to_db_sync()

    logging.info("Refresh %s complete: %s", day, counts)


if __name__ == "__main__":
    main()
