#!/usr/bin/env python3
"""Plot grid-search and analysis results.

Usage:
    python scripts/plot_results.py --results results/
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import numpy as np


def parse_args():
    parser = argparse.ArgumentParser(description="Plot bids_matrix optimization results")
    parser.add_argument("--results", type=str, default="results/",
                        help="Directory with optimization.json / analysis_best.json")
    parser.add_argument("--output", type=str, default="results/plots",
                        help="Output directory for PNG plots")
    return parser.parse_args()


def plot_return_heatmap(optimization: dict, output_dir: Path) -> None:
    """1. Total return over the TP × SL grid."""
    import matplotlib.pyplot as plt

    tp_range = optimization.get("tp_range", [])
    sl_range = optimization.get("sl_range", [])
    if not tp_range or not sl_range:
        return

    grid = np.full((len(sl_range), len(tp_range)), np.nan)
    tp_index = {round(v, 6): i for i, v in enumerate(tp_range)}
    sl_index = {round(v, 6): i for i, v in enumerate(sl_range)}
    for run in optimization.get("runs", []):
        i = sl_index.get(round(run["sl"], 6))
        j = tp_index.get(round(run["tp"], 6))
        if i is not None and j is not None:
            grid[i, j] = run["total_return"]

    fig, ax = plt.subplots(figsize=(12, 9))
    im = ax.imshow(grid, origin="lower", aspect="auto", cmap="RdYlGn",
                   extent=[tp_range[0], tp_range[-1], sl_range[0], sl_range[-1]])
    fig.colorbar(im, ax=ax, label="Total return (%)")

    best = optimization.get("best", {})
    if best.get("tp"):
        ax.scatter([best["tp"]], [best["sl"]], marker="*", s=300, color="black",
                   label=f"Best TP={best['tp']} SL={best['sl']}")
        ax.legend(loc="upper right")

    ax.set_title("Total Return by TP / SL", fontsize=14, fontweight="bold")
    ax.set_xlabel("Take profit (%)")
    ax.set_ylabel("Stop loss (%)")
    fig.tight_layout()
    fig.savefig(output_dir / "return_heatmap.png", dpi=150)
    plt.close(fig)


def plot_equity_curve(analysis: dict, output_dir: Path) -> None:
    """2. Per-date equity and drawdown for the analysed pair."""
    import matplotlib.pyplot as plt

    points = analysis.get("equity_curve", [])
    if not points:
        return

    x = np.arange(len(points))
    equity = [p["equity"] for p in points]
    drawdown = [p["drawdown"] for p in points]

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 7), sharex=True,
                                   gridspec_kw={"height_ratios": [3, 1]})
    ax1.plot(x, equity, color="#2196F3", linewidth=1.5)
    ax1.set_title(
        f"Equity Curve (TP={analysis['take_profit_pct']}%, SL={analysis['stop_loss_pct']}%)",
        fontsize=14, fontweight="bold",
    )
    ax1.set_ylabel("Cumulative return (%)")
    ax1.grid(True, alpha=0.3)

    ax2.fill_between(x, drawdown, 0, color="#F44336", alpha=0.4)
    ax2.set_ylabel("Drawdown (%)")
    ax2.grid(True, alpha=0.3)

    step = max(len(points) // 10, 1)
    ax2.set_xticks(x[::step])
    ax2.set_xticklabels([points[i]["date"] for i in range(0, len(points), step)], rotation=45)

    fig.tight_layout()
    fig.savefig(output_dir / "equity_curve.png", dpi=150)
    plt.close(fig)


def plot_distribution(analysis: dict, output_dir: Path) -> None:
    """3. Raw excursion distribution buckets."""
    import matplotlib.pyplot as plt

    buckets = analysis.get("distribution", [])
    if not buckets:
        return

    fig, ax = plt.subplots(figsize=(8, 5))
    ax.bar([b["range"] for b in buckets], [b["count"] for b in buckets], color="#4CAF50")
    ax.set_title("Peak Excursion Distribution", fontsize=14, fontweight="bold")
    ax.set_ylabel("Trades")
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()
    fig.savefig(output_dir / "distribution.png", dpi=150)
    plt.close(fig)


def main():
    args = parse_args()
    results_dir = Path(args.results)
    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    optimization_path = results_dir / "optimization.json"
    if optimization_path.exists():
        with open(optimization_path) as f:
            plot_return_heatmap(json.load(f), output_dir)

    analysis_path = results_dir / "analysis_best.json"
    if analysis_path.exists():
        with open(analysis_path) as f:
            analysis = json.load(f)
        plot_equity_curve(analysis, output_dir)
        plot_distribution(analysis, output_dir)

    print(f"Plots saved to {output_dir}")


if __name__ == "__main__":
    main()
