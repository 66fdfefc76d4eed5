"""Dataclasses for bids_matrix data structures."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import numpy as np

from bids_matrix.core.types import AutomatonState, EventType, OutcomeClass, TradeLogStatus


# Minute bars as delivered by the market-data provider (epoch milliseconds, UTC)
BAR_DTYPE = np.dtype([
    ("timestamp_ms", np.int64),
    ("open", np.float64),
    ("high", np.float64),
    ("low", np.float64),
    ("close", np.float64),
    ("volume", np.float64),
])


@dataclass(frozen=True)
class PricePath:
    """Minute bars for one symbol on one trading day, ascending by time."""

    symbol: str
    day: date
    bars: np.ndarray

    def __post_init__(self) -> None:
        bars = np.asarray(self.bars, dtype=BAR_DTYPE)
        bars.setflags(write=False)
        object.__setattr__(self, "bars", bars)

    def __len__(self) -> int:
        return len(self.bars)

    @classmethod
    def from_records(cls, symbol: str, day: date, records: list[dict]) -> PricePath:
        """Build from provider-style dicts ({t, o, h, l, c, v} or full names)."""
        bars = np.zeros(len(records), dtype=BAR_DTYPE)
        for i, r in enumerate(records):
            bars[i]["timestamp_ms"] = int(r.get("timestamp_ms", r.get("t", 0)))
            bars[i]["open"] = float(r.get("open", r.get("o", 0.0)))
            bars[i]["high"] = float(r.get("high", r.get("h", 0.0)))
            bars[i]["low"] = float(r.get("low", r.get("l", 0.0)))
            bars[i]["close"] = float(r.get("close", r.get("c", 0.0)))
            bars[i]["volume"] = float(r.get("volume", r.get("v", 0.0)))
        return cls(symbol=symbol, day=day, bars=bars)


@dataclass(frozen=True)
class ReferenceWindow:
    """Named cutoff time-of-day in market-local time."""

    name: str
    hour: int
    minute: int

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute


@dataclass(frozen=True)
class WindowStats:
    """Reference-window statistics derived from a PricePath."""

    ref_price: float
    peak_high: float
    trough_before_peak: float


@dataclass
class Recommendation:
    """Daily candidate. Unique per (symbol, day); refreshed in place."""

    symbol: str
    day: date
    price: float = 0.0
    volume: float = 0.0
    relative_volume: float = 0.0
    sector: str = "Unknown"
    probability: float = 0.0
    rsi: float = 50.0
    ref_price: float | None = None
    peak_high: float | None = None
    trough_before_peak: float | None = None
    windows: dict[str, WindowStats] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, date]:
        return (self.symbol, self.day)

    @property
    def stats(self) -> WindowStats | None:
        """Primary window stats, or None if any field is missing."""
        if self.ref_price is None or self.peak_high is None or self.trough_before_peak is None:
            return None
        return WindowStats(self.ref_price, self.peak_high, self.trough_before_peak)


@dataclass(frozen=True)
class TradeOutcome:
    """Result of evaluating one recommendation against a TP/SL pair."""

    raw_excursion_pct: float
    max_adverse_excursion_pct: float
    clamped_return_pct: float
    outcome_class: OutcomeClass

    @property
    def stopped_out(self) -> bool:
        return self.outcome_class == OutcomeClass.HIT_STOP_LOSS


@dataclass(frozen=True)
class OrderIntent:
    """Sized order produced by the candidate selector."""

    symbol: str
    quantity: int
    reference_price: float


@dataclass(frozen=True)
class OrderStatus:
    """Polling-shaped order status snapshot from the brokerage gateway."""

    order_id: int
    filled_qty: int
    remaining_qty: int
    status: str = "Submitted"
    avg_fill_price: float = 0.0


@dataclass(frozen=True)
class BracketIds:
    """Order ids of an attached OCA exit pair."""

    tp_order_id: int
    sl_order_id: int


@dataclass
class ExecutionState:
    """Per-symbol automaton state. Owned by exactly one automaton."""

    symbol: str
    attempt_number: int = 0
    last_limit_price: float = 0.0
    broker_order_id: int | None = None
    filled_quantity: int = 0
    status: AutomatonState = AutomatonState.IDLE


@dataclass(frozen=True)
class TradeLogEntry:
    """Append-only record of one automaton's terminal outcome."""

    symbol: str
    quantity: int
    status: TradeLogStatus
    entry_price: float = 0.0
    take_profit_price: float = 0.0
    stop_loss_price: float = 0.0
    parent_order_id: int | None = None
    tp_order_id: int | None = None
    sl_order_id: int | None = None
    attempts: int = 0
    filled_quantity: int = 0
    reason: str = ""
    executed_at_ns: int = field(default_factory=time.time_ns)

    def to_record(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "quantity": self.quantity,
            "status": self.status.value,
            "entry_price": self.entry_price,
            "take_profit_price": self.take_profit_price,
            "stop_loss_price": self.stop_loss_price,
            "parent_order_id": self.parent_order_id,
            "tp_order_id": self.tp_order_id,
            "sl_order_id": self.sl_order_id,
            "attempts": self.attempts,
            "filled_quantity": self.filled_quantity,
            "reason": self.reason,
            "executed_at_ns": self.executed_at_ns,
        }


@dataclass(frozen=True)
class Event:
    """Event bus message."""

    type: EventType
    timestamp_ns: int
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
