"""Paper Broker — deterministic simulated gateway for dry runs and tests.

Fill behaviour is scripted per symbol and per attempt:
  fill_plans = {"AAPL": {3: 100}}   → AAPL fills 100 shares on its 3rd order
Symbols without a plan fill completely on `default_fill_attempt`, or never
when that is None. Implements both MarketDataProvider and BrokerageGateway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from itertools import count

from bids_matrix.core.data_types import BracketIds, OrderStatus, PricePath
from bids_matrix.core.errors import BracketPlacementFailed, OrderPlacementFailed
from bids_matrix.execution.execution_manager import ExecutionManager, OCABracket

logger = logging.getLogger(__name__)


@dataclass
class PaperOrder:
    """A simulated entry order."""

    order_id: int
    symbol: str
    quantity: int
    limit_price: float
    attempt: int
    filled_qty: int = 0
    cancelled: bool = False

    @property
    def is_open(self) -> bool:
        return not self.cancelled and self.filled_qty < self.quantity


@dataclass
class PaperBracket:
    """A simulated OCA exit pair attached to a filling entry."""

    symbol: str
    quantity: int
    entry_price: float
    ids: BracketIds
    bracket: OCABracket


class PaperBroker:
    """Scripted fills, zero latency, full audit trail of every call."""

    def __init__(
        self,
        portfolio_value: float | None = 100_000.0,
        live_prices: dict[str, float] | None = None,
        fill_plans: dict[str, dict[int, int]] | None = None,
        default_fill_attempt: int | None = 1,
        reject_orders: set[str] | None = None,
        reject_brackets: set[str] | None = None,
        price_paths: dict[tuple[str, date], PricePath] | None = None,
        execution_manager: ExecutionManager | None = None,
    ) -> None:
        self._portfolio_value = portfolio_value
        self._live_prices = dict(live_prices or {})
        self._fill_plans = fill_plans or {}
        self._default_fill_attempt = default_fill_attempt
        self._reject_orders = set(reject_orders or ())
        self._reject_brackets = set(reject_brackets or ())
        self._price_paths = dict(price_paths or {})
        self._execution = execution_manager or ExecutionManager()

        self._ids = count(1)
        self._orders: dict[int, PaperOrder] = {}
        self._attempts: dict[str, int] = {}
        self._max_outstanding: dict[str, int] = {}
        self._cancelled: list[int] = []
        self._brackets: list[PaperBracket] = []

    # --- Audit trail ---

    @property
    def orders(self) -> list[PaperOrder]:
        return list(self._orders.values())

    @property
    def cancelled(self) -> list[int]:
        return list(self._cancelled)

    @property
    def brackets(self) -> list[PaperBracket]:
        return list(self._brackets)

    def orders_for(self, symbol: str) -> list[PaperOrder]:
        return [o for o in self._orders.values() if o.symbol == symbol]

    def max_outstanding(self, symbol: str) -> int:
        """Highest number of simultaneously open orders seen for a symbol."""
        return self._max_outstanding.get(symbol, 0)

    # --- Scripting ---

    def set_live_price(self, symbol: str, price: float | None) -> None:
        if price is None:
            self._live_prices.pop(symbol, None)
        else:
            self._live_prices[symbol] = price

    def add_price_path(self, path: PricePath) -> None:
        self._price_paths[(path.symbol, path.day)] = path

    # --- MarketDataProvider ---

    async def fetch_price_path(self, symbol: str, day: date) -> PricePath | None:
        return self._price_paths.get((symbol, day))

    async def fetch_live_price(self, symbol: str) -> float | None:
        return self._live_prices.get(symbol)

    # --- BrokerageGateway ---

    async def place_limit_buy(self, symbol: str, quantity: int, limit_price: float) -> int:
        if symbol in self._reject_orders:
            raise OrderPlacementFailed(symbol, "rejected by paper broker")
        if quantity < 1 or limit_price <= 0:
            raise OrderPlacementFailed(symbol, f"invalid order {quantity} @ {limit_price}")

        attempt = self._attempts.get(symbol, 0) + 1
        self._attempts[symbol] = attempt

        order = PaperOrder(
            order_id=next(self._ids),
            symbol=symbol,
            quantity=quantity,
            limit_price=limit_price,
            attempt=attempt,
            filled_qty=self._planned_fill(symbol, attempt, quantity),
        )
        self._orders[order.order_id] = order

        outstanding = sum(1 for o in self.orders_for(symbol) if not o.cancelled and o.filled_qty == 0)
        if order.filled_qty > 0:
            outstanding += 1
        self._max_outstanding[symbol] = max(self._max_outstanding.get(symbol, 0), outstanding)

        logger.debug("Paper order %d: BUY %d %s @ %.2f (attempt %d)",
                     order.order_id, quantity, symbol, limit_price, attempt)
        return order.order_id

    async def get_order_status(self, order_id: int) -> OrderStatus:
        order = self._orders[order_id]
        if order.cancelled:
            status = "Cancelled"
        elif order.filled_qty >= order.quantity:
            status = "Filled"
        elif order.filled_qty > 0:
            status = "PartiallyFilled"
        else:
            status = "Submitted"
        return OrderStatus(
            order_id=order_id,
            filled_qty=order.filled_qty,
            remaining_qty=order.quantity - order.filled_qty,
            status=status,
            avg_fill_price=order.limit_price if order.filled_qty else 0.0,
        )

    async def cancel_order(self, order_id: int) -> None:
        order = self._orders[order_id]
        order.cancelled = True
        self._cancelled.append(order_id)

    async def place_bracket_exit(
        self,
        symbol: str,
        quantity: int,
        entry_price: float,
        take_profit_pct: float,
        stop_loss_pct: float,
    ) -> BracketIds:
        if symbol in self._reject_brackets:
            raise BracketPlacementFailed(symbol, "rejected by paper broker")

        bracket = self._execution.create_oca_bracket(
            symbol, quantity, entry_price, take_profit_pct, stop_loss_pct,
        )
        ids = BracketIds(tp_order_id=next(self._ids), sl_order_id=next(self._ids))
        self._brackets.append(PaperBracket(symbol, quantity, entry_price, ids, bracket))
        return ids

    async def get_portfolio_value(self) -> float | None:
        return self._portfolio_value

    def _planned_fill(self, symbol: str, attempt: int, quantity: int) -> int:
        plan = self._fill_plans.get(symbol)
        if plan is not None:
            return min(plan.get(attempt, 0), quantity)
        if self._default_fill_attempt is not None and attempt == self._default_fill_attempt:
            return quantity
        return 0
