"""Risk/Equity Aggregator — running equity, drawdown, streaks, profit factor.

Shared by the grid search, the analysis report and live session summaries.
Returns are additive percentages; equity starts at 0 and so does the peak.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class EquityPoint:
    """Equity state after one trade."""

    trade_return: float
    cumulative_return: float
    peak_equity: float
    drawdown: float


@dataclass(frozen=True)
class RiskSummary:
    """Aggregated risk metrics over a return sequence."""

    trade_count: int
    wins: int
    total_return: float
    gross_win: float
    gross_loss: float
    profit_factor: float
    max_drawdown: float
    max_win_streak: int
    max_loss_streak: int
    peak_equity: float

    @property
    def win_rate(self) -> float:
        return self.wins / self.trade_count * 100.0 if self.trade_count else 0.0

    @property
    def avg_return(self) -> float:
        return self.total_return / self.trade_count if self.trade_count else 0.0

    def to_dict(self) -> dict:
        return {
            "trade_count": self.trade_count,
            "wins": self.wins,
            "win_rate": round(self.win_rate, 1),
            "total_return": round(self.total_return, 2),
            "avg_return": round(self.avg_return, 3),
            "profit_factor": round(self.profit_factor, 2),
            "max_drawdown": round(self.max_drawdown, 2),
            "max_win_streak": self.max_win_streak,
            "max_loss_streak": self.max_loss_streak,
        }


class EquityAggregator:
    """Accumulates a time-ordered sequence of clamped returns.

    A return > 0 counts as a win; anything else (including 0) counts as a loss
    and resets the win streak.
    """

    def __init__(self, keep_curve: bool = False) -> None:
        self._keep_curve = keep_curve
        self._curve: list[EquityPoint] = []
        self._count = 0
        self._wins = 0
        self._cumulative = 0.0
        self._peak = 0.0
        self._max_drawdown = 0.0
        self._gross_win = 0.0
        self._gross_loss = 0.0
        self._win_streak = 0
        self._loss_streak = 0
        self._max_win_streak = 0
        self._max_loss_streak = 0

    @property
    def curve(self) -> list[EquityPoint]:
        return self._curve

    @property
    def cumulative_return(self) -> float:
        return self._cumulative

    @property
    def current_drawdown(self) -> float:
        return self._peak - self._cumulative

    def add(self, trade_return: float) -> EquityPoint:
        """Add one trade return and return the updated equity point."""
        self._count += 1
        if trade_return > 0:
            self._wins += 1
            self._gross_win += trade_return
            self._win_streak += 1
            self._loss_streak = 0
            self._max_win_streak = max(self._max_win_streak, self._win_streak)
        else:
            self._gross_loss += abs(trade_return)
            self._loss_streak += 1
            self._win_streak = 0
            self._max_loss_streak = max(self._max_loss_streak, self._loss_streak)

        self._cumulative += trade_return
        if self._cumulative > self._peak:
            self._peak = self._cumulative
        drawdown = self._peak - self._cumulative
        if drawdown > self._max_drawdown:
            self._max_drawdown = drawdown

        point = EquityPoint(trade_return, self._cumulative, self._peak, drawdown)
        if self._keep_curve:
            self._curve.append(point)
        return point

    def extend(self, returns: Iterable[float]) -> EquityAggregator:
        for r in returns:
            self.add(r)
        return self

    def summary(self) -> RiskSummary:
        return RiskSummary(
            trade_count=self._count,
            wins=self._wins,
            total_return=self._cumulative,
            gross_win=self._gross_win,
            gross_loss=self._gross_loss,
            profit_factor=profit_factor(self._gross_win, self._gross_loss),
            max_drawdown=self._max_drawdown,
            max_win_streak=self._max_win_streak,
            max_loss_streak=self._max_loss_streak,
            peak_equity=self._peak,
        )


def profit_factor(gross_win: float, gross_loss: float) -> float:
    """gross_win / gross_loss, or gross_win itself when there are no losses."""
    return gross_win if gross_loss == 0 else gross_win / gross_loss


def summarize_returns(returns: Iterable[float]) -> RiskSummary:
    return EquityAggregator().extend(returns).summary()
