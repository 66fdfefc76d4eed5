"""Push Adapter — turns push-style broker callbacks into the polling contract.

Streaming broker APIs report order progress through callbacks
(orderStatus / error). The automaton only ever polls get_order_status after its
observation wait, so this adapter keeps the latest snapshot per order id and
serves it on demand.

The wrapped client must provide:
    async submit_limit_buy(symbol, quantity, limit_price) -> int
    async submit_cancel(order_id) -> None
    async submit_bracket(symbol, quantity, tp_price, sl_price, oca_group) -> (int, int)
    async account_value() -> float | None
and the embedding code wires the client's callbacks to on_order_status /
on_error.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field

from bids_matrix.core.data_types import BracketIds, OrderStatus
from bids_matrix.core.errors import BracketPlacementFailed, OrderPlacementFailed
from bids_matrix.execution.execution_manager import ExecutionManager

logger = logging.getLogger(__name__)

# Broker error codes that are informational, not rejections
INFORMATIONAL_CODES = frozenset({2104, 2106, 2158, 399})

TERMINAL_STATUSES = frozenset({"Filled", "Cancelled", "ApiCancelled", "Inactive"})

# Bounds on callback state kept for orders that are finished or not yet known
MAX_FINISHED_ORDERS = 1000
MAX_EARLY_ORDERS = 256


@dataclass
class _OrderBook:
    """Latest known state of one order."""

    quantity: int
    filled_qty: int = 0
    remaining_qty: int = 0
    status: str = "PendingSubmit"
    avg_fill_price: float = 0.0
    error: str = ""
    acknowledged: asyncio.Event = field(default_factory=asyncio.Event)


class PushGatewayAdapter:
    """BrokerageGateway over a push-callback client."""

    def __init__(
        self,
        client,
        ack_timeout: float = 2.0,
        execution_manager: ExecutionManager | None = None,
    ) -> None:
        self._client = client
        self._ack_timeout = ack_timeout
        self._execution = execution_manager or ExecutionManager()
        self._orders: dict[int, _OrderBook] = {}
        self._finished: OrderedDict[int, _OrderBook] = OrderedDict()
        self._early_events: dict[int, list[tuple]] = {}

    @property
    def open_order_count(self) -> int:
        return len(self._orders)

    @property
    def buffered_order_count(self) -> int:
        return len(self._early_events)

    # --- Push callbacks ---

    def on_order_status(
        self,
        order_id: int,
        status: str,
        filled: float,
        remaining: float,
        avg_fill_price: float = 0.0,
    ) -> None:
        book = self._book(order_id)
        if book is None:
            # Status can arrive before submit returns the id
            self._buffer_early(order_id, ("status", status, filled, remaining, avg_fill_price))
            return
        book.status = status
        book.filled_qty = int(filled)
        book.remaining_qty = int(remaining)
        book.avg_fill_price = avg_fill_price
        book.acknowledged.set()
        self._retire_if_terminal(order_id, book)

    def on_error(self, order_id: int, code: int, message: str) -> None:
        if code in INFORMATIONAL_CODES:
            logger.debug("Broker info %d for order %d: %s", code, order_id, message)
            return
        if order_id < 0:
            logger.warning("Broker connection error %d: %s", code, message)
            return
        book = self._book(order_id)
        if book is None:
            self._buffer_early(order_id, ("error", code, message))
            return
        logger.warning("Broker error %d for order %d: %s", code, order_id, message)
        book.error = f"{code}: {message}"
        if book.filled_qty == 0:
            book.status = "Inactive"
        book.acknowledged.set()
        self._retire_if_terminal(order_id, book)

    # --- BrokerageGateway ---

    async def place_limit_buy(self, symbol: str, quantity: int, limit_price: float) -> int:
        try:
            order_id = await self._client.submit_limit_buy(symbol, quantity, limit_price)
        except Exception as e:
            raise OrderPlacementFailed(symbol, str(e)) from e

        book = _OrderBook(quantity=quantity, remaining_qty=quantity)
        self._orders[order_id] = book
        self._replay_early(order_id)

        try:
            await asyncio.wait_for(book.acknowledged.wait(), timeout=self._ack_timeout)
        except asyncio.TimeoutError:
            logger.debug("No acknowledgement for order %d within %.1fs", order_id, self._ack_timeout)

        if book.error and book.filled_qty == 0:
            raise OrderPlacementFailed(symbol, book.error)
        return order_id

    async def get_order_status(self, order_id: int) -> OrderStatus:
        book = self._book(order_id)
        if book is None:
            return OrderStatus(order_id=order_id, filled_qty=0, remaining_qty=0, status="Unknown")
        return OrderStatus(
            order_id=order_id,
            filled_qty=book.filled_qty,
            remaining_qty=book.remaining_qty,
            status=book.status,
            avg_fill_price=book.avg_fill_price,
        )

    async def cancel_order(self, order_id: int) -> None:
        await self._client.submit_cancel(order_id)

    async def place_bracket_exit(
        self,
        symbol: str,
        quantity: int,
        entry_price: float,
        take_profit_pct: float,
        stop_loss_pct: float,
    ) -> BracketIds:
        bracket = self._execution.create_oca_bracket(
            symbol, quantity, entry_price, take_profit_pct, stop_loss_pct,
        )
        try:
            tp_id, sl_id = await self._client.submit_bracket(
                symbol,
                quantity,
                bracket.take_profit.price,
                bracket.stop_loss.price,
                bracket.oca_group,
            )
        except Exception as e:
            raise BracketPlacementFailed(symbol, str(e)) from e
        return BracketIds(tp_order_id=tp_id, sl_order_id=sl_id)

    async def get_portfolio_value(self) -> float | None:
        return await self._client.account_value()

    def _replay_early(self, order_id: int) -> None:
        for event in self._early_events.pop(order_id, []):
            if event[0] == "status":
                self.on_order_status(order_id, *event[1:])
            else:
                self.on_error(order_id, *event[1:])

    def _book(self, order_id: int) -> _OrderBook | None:
        book = self._orders.get(order_id)
        if book is None:
            book = self._finished.get(order_id)
        return book

    def _retire_if_terminal(self, order_id: int, book: _OrderBook) -> None:
        """Move a finished order out of the open set, keeping its last snapshot."""
        if book.status not in TERMINAL_STATUSES or order_id not in self._orders:
            return
        del self._orders[order_id]
        self._finished[order_id] = book
        while len(self._finished) > MAX_FINISHED_ORDERS:
            self._finished.popitem(last=False)

    def _buffer_early(self, order_id: int, event: tuple) -> None:
        if order_id not in self._early_events and len(self._early_events) >= MAX_EARLY_ORDERS:
            dropped = next(iter(self._early_events))
            logger.debug("Dropping buffered callbacks for unknown order %d", dropped)
            del self._early_events[dropped]
        self._early_events.setdefault(order_id, []).append(event)
