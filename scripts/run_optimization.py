#!/usr/bin/env python3
"""Run the TP/SL grid search over historical recommendations.

Usage:
    python scripts/run_optimization.py --data data/recommendations.json \\
        --min-volume 1000000 --start 2025-01-01 --end 2025-06-30 --top 10
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from bids_matrix.backtest.analysis import analyze
from bids_matrix.backtest.breakdowns import BreakdownAnalyzer
from bids_matrix.backtest.grid_search import BacktestFilters, GridSearchEngine, prepare_trades
from bids_matrix.config.config_manager import ConfigManager
from bids_matrix.database.recommendation_store import RecommendationStore


def parse_args():
    parser = argparse.ArgumentParser(description="bids_matrix TP/SL grid search")
    parser.add_argument("--data", type=str, default="data/recommendations.json",
                        help="Path to exported recommendations JSON")
    parser.add_argument("--profile", type=str, default=None,
                        help="Config profile (paper, live)")
    parser.add_argument("--min-volume", type=float, default=0.0)
    parser.add_argument("--min-price", type=float, default=0.0)
    parser.add_argument("--min-probability", type=float, default=0.0)
    parser.add_argument("--start", type=date.fromisoformat, default=None,
                        help="First date to include (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, default=None,
                        help="Last date to include (YYYY-MM-DD)")
    parser.add_argument("--top", type=int, default=10,
                        help="Number of best cells to print")
    parser.add_argument("--output", type=str, default="results/",
                        help="Output directory for result JSON")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args()


def main():
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    data_path = Path(args.data)
    if not data_path.exists():
        logging.error("Data file not found: %s", data_path)
        sys.exit(1)

    config = ConfigManager()
    config.load(profile=args.profile)

    store = RecommendationStore()
    store.load_json(data_path)
    recs = store.all()

    filters = BacktestFilters(
        min_volume=args.min_volume,
        min_price=args.min_price,
        min_probability=args.min_probability,
        start_date=args.start,
        end_date=args.end,
    )

    result = GridSearchEngine.from_config(config).run(recs, filters)
    if result.best is None:
        logging.error("No valid trades after filtering — nothing to optimize")
        sys.exit(1)

    trades, _ = prepare_trades(recs, filters)
    breakdowns = BreakdownAnalyzer.from_config(config).all(trades)
    best = result.best
    report = analyze(recs, best.take_profit_pct, best.stop_loss_pct, filters)

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)
    with open(output_dir / "optimization.json", "w") as f:
        json.dump({**result.to_dict(), "breakdowns": breakdowns}, f, indent=2)
    with open(output_dir / "analysis_best.json", "w") as f:
        json.dump(report, f, indent=2)

    print(f"\n  Top {args.top} of {len(result.runs)} cells ({result.trade_count} trades)\n")
    print(f"  {'TP%':>6} {'SL%':>6} {'Return%':>9} {'Win%':>6} {'PF':>6} {'MaxDD':>7} {'Eff':>7}")
    for run in result.runs[: args.top]:
        print(
            f"  {run.take_profit_pct:6.1f} {run.stop_loss_pct:6.1f} {run.total_return:9.2f} "
            f"{run.win_rate:6.1f} {run.profit_factor:6.2f} {run.max_drawdown:7.2f} {run.efficiency:7.2f}"
        )
    print()
    logging.info("Results saved to %s", output_dir)


if __name__ == "__main__":
    main()
