"""Error taxonomy for the trade-outcome model and the execution automaton.

All of these are per-record or per-symbol conditions. None of them is allowed
to abort a whole backtest or a whole execution session.
"""

from __future__ import annotations


class BidsMatrixError(Exception):
    """Base class for bids_matrix errors."""


class InvalidReferencePrice(BidsMatrixError):
    """Reference price is zero, missing or not finite. Skip the record."""

    def __init__(self, ref_price: float | None, symbol: str | None = None) -> None:
        self.ref_price = ref_price
        self.symbol = symbol
        where = f" for {symbol}" if symbol else ""
        super().__init__(f"Invalid reference price{where}: {ref_price!r}")


class NoDataForWindow(BidsMatrixError):
    """No bar at or after the window cutoff. The window is recorded as absent."""

    def __init__(self, window: str, symbol: str | None = None) -> None:
        self.window = window
        self.symbol = symbol
        super().__init__(f"No bar at/after cutoff for window {window} ({symbol or '?'})")


class OrderPlacementFailed(BidsMatrixError):
    """Broker rejected a submission. Terminal for that symbol only."""

    def __init__(self, symbol: str, reason: str = "") -> None:
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Order placement failed for {symbol}: {reason}")


class BracketPlacementFailed(BidsMatrixError):
    """Broker rejected the TP/SL exit pair after an entry started filling."""

    def __init__(self, symbol: str, reason: str = "") -> None:
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"Bracket placement failed for {symbol}: {reason}")


class FillTimeout(BidsMatrixError):
    """Zero fill after the observation wait. Triggers a bounded retry."""

    def __init__(self, symbol: str, order_id: int, attempt: int) -> None:
        self.symbol = symbol
        self.order_id = order_id
        self.attempt = attempt
        super().__init__(f"{symbol}: order {order_id} unfilled after attempt {attempt}")


class MaxAttemptsExhausted(BidsMatrixError):
    """All quoting attempts produced zero fills."""

    def __init__(self, symbol: str, attempts: int) -> None:
        self.symbol = symbol
        self.attempts = attempts
        super().__init__(f"{symbol}: failed after {attempts} attempts with 0 fills")
