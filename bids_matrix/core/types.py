"""Core enums used across the bids_matrix system."""

from enum import Enum, auto


class OutcomeClass(Enum):
    HIT_TAKE_PROFIT = "hitTakeProfit"
    HIT_STOP_LOSS = "hitStopLoss"
    NEITHER = "neither"


class AutomatonState(Enum):
    IDLE = auto()
    QUOTING = auto()
    OBSERVING = auto()
    RETRYING = auto()
    FILLING = auto()
    ACTIVE = auto()  # terminal: entry filling, bracket attached
    EXHAUSTED = auto()  # terminal: no fills after max attempts
    FAILED = auto()  # terminal: broker rejected placement


TERMINAL_STATES = frozenset({AutomatonState.ACTIVE, AutomatonState.EXHAUSTED, AutomatonState.FAILED})


class TradeLogStatus(Enum):
    FILLING = "FILLING"
    EXHAUSTED = "EXHAUSTED"
    FAILED = "FAILED"
    DRY_RUN = "DRY_RUN"


class SortKey(Enum):
    GAIN = "gain"
    PROBABILITY = "probability"


class EventType(Enum):
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_FILLING = "ORDER_FILLING"
    BRACKET_ATTACHED = "BRACKET_ATTACHED"
    EXECUTION_EXHAUSTED = "EXECUTION_EXHAUSTED"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    SESSION_COMPLETED = "SESSION_COMPLETED"


class OrderType(Enum):
    LIMIT = "LMT"
    STOP = "STP"


class OrderSide(Enum):
    BUY = "BUY"
    SELL = "SELL"
