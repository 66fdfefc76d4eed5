"""Order Execution Automaton — one symbol, one outstanding order at a time.

State transitions:
  IDLE → QUOTING: run() starts attempt 1
  QUOTING → OBSERVING: limit buy placed at live × (1 + buffer)
  QUOTING → FAILED: broker rejected the placement
  OBSERVING → FILLING: filled quantity > 0 (order kept, no more attempts)
  OBSERVING → RETRYING: zero fill, order cancelled, attempts remain
  OBSERVING → EXHAUSTED: zero fill on the last attempt
  RETRYING → QUOTING: next attempt with a possibly wider buffer
  FILLING → ACTIVE: OCA bracket attached (or bracket failure recorded)

Every terminal state writes exactly one TradeLogEntry. Once any quantity has
filled the entry is logged as FILLING, whatever error ends the run.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from bids_matrix.config.config_manager import ExecutionConfig
from bids_matrix.core.data_types import (
    BracketIds,
    Event,
    ExecutionState,
    OrderIntent,
    OrderStatus,
    TradeLogEntry,
)
from bids_matrix.core.errors import (
    BracketPlacementFailed,
    FillTimeout,
    MaxAttemptsExhausted,
    OrderPlacementFailed,
)
from bids_matrix.core.event_bus import EventBus
from bids_matrix.core.types import TERMINAL_STATES, AutomatonState, EventType, TradeLogStatus
from bids_matrix.database.trade_logger import TradeLogger
from bids_matrix.execution.execution_manager import ExecutionManager

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


class OrderAutomaton:
    """Drives one OrderIntent to a terminal state against a brokerage gateway."""

    def __init__(
        self,
        intent: OrderIntent,
        gateway,
        provider,
        config: ExecutionConfig | None = None,
        trade_logger: TradeLogger | None = None,
        event_bus: EventBus | None = None,
        execution_manager: ExecutionManager | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._intent = intent
        self._gateway = gateway
        self._provider = provider
        self._config = config or ExecutionConfig()
        self._trade_logger = trade_logger
        self._event_bus = event_bus
        self._execution = execution_manager or ExecutionManager(self._config)
        self._sleep = sleep
        self._exec_state = ExecutionState(symbol=intent.symbol)
        self._transition_callbacks: list = []
        self._result: TradeLogEntry | None = None

    @property
    def state(self) -> AutomatonState:
        return self._exec_state.status

    @property
    def execution_state(self) -> ExecutionState:
        return self._exec_state

    @property
    def intent(self) -> OrderIntent:
        return self._intent

    @property
    def result(self) -> TradeLogEntry | None:
        return self._result

    def register_transition_callback(self, callback) -> None:
        """Register callback for state transitions. Called with (old_state, new_state)."""
        self._transition_callbacks.append(callback)

    def transition_to(self, new_state: AutomatonState) -> None:
        if new_state == self._exec_state.status:
            return
        old_state = self._exec_state.status
        if old_state in TERMINAL_STATES:
            raise RuntimeError(f"{self._intent.symbol}: cannot leave terminal state {old_state.name}")
        self._exec_state.status = new_state
        logger.info("%s: %s → %s", self._intent.symbol, old_state.name, new_state.name)
        for cb in self._transition_callbacks:
            cb(old_state, new_state)

    async def run(self) -> TradeLogEntry:
        """Quote, observe and retry until a terminal state is reached."""
        if self._result is not None:
            return self._result

        symbol = self._intent.symbol
        attempt = 1
        while True:
            self._exec_state.attempt_number = attempt
            self.transition_to(AutomatonState.QUOTING)

            try:
                order_id = await self._quote(attempt)
            except OrderPlacementFailed as e:
                logger.error("%s: placement failed on attempt %d: %s", symbol, attempt, e.reason)
                return await self._finish(
                    AutomatonState.FAILED, TradeLogStatus.FAILED, reason=str(e),
                )

            self.transition_to(AutomatonState.OBSERVING)
            try:
                status = await self._observe(order_id, attempt)
            except FillTimeout as timeout:
                logger.info("%s: %s", symbol, timeout)
                await self._cancel(order_id)
                if attempt >= self._config.max_attempts:
                    exhausted = MaxAttemptsExhausted(symbol, attempt)
                    logger.warning("%s", exhausted)
                    return await self._finish(
                        AutomatonState.EXHAUSTED, TradeLogStatus.EXHAUSTED, reason=str(exhausted),
                    )
                self.transition_to(AutomatonState.RETRYING)
                attempt += 1
                continue

            return await self._on_fill(status)

    async def fail(self, reason: str) -> TradeLogEntry:
        """Force FAILED after an unexpected collaborator error. No-op once terminal.

        A working order with no fills is cancelled first. A partially filled
        entry keeps its FILLING log status and entry fields.
        """
        if self._result is not None:
            return self._result
        if self._exec_state.filled_quantity > 0:
            logger.error("%s: failing with a filled position: %s", self._intent.symbol, reason)
            return await self._finish(
                AutomatonState.FAILED, TradeLogStatus.FILLING, reason=reason, keep_entry=True,
            )
        order_id = self._exec_state.broker_order_id
        if order_id is not None and self._exec_state.filled_quantity == 0:
            try:
                await self._gateway.cancel_order(order_id)
                self._exec_state.broker_order_id = None
            except Exception as e:
                logger.warning("%s: could not cancel order %d while failing: %s", self._intent.symbol, order_id, e)
        return await self._finish(AutomatonState.FAILED, TradeLogStatus.FAILED, reason=reason)

    async def _live_price(self) -> float:
        symbol = self._intent.symbol
        try:
            price = await self._provider.fetch_live_price(symbol)
        except Exception as e:
            logger.warning("%s: live price lookup failed (%s), using reference price", symbol, e)
            price = None
        if not price or price <= 0:
            price = self._intent.reference_price
        return price

    async def _quote(self, attempt: int) -> int:
        """Place the entry order for this attempt. Returns the broker order id."""
        live = await self._live_price()
        ticket = self._execution.create_entry_order(
            self._intent.symbol, self._intent.quantity, live, attempt,
        )
        order_id = await self._gateway.place_limit_buy(ticket.symbol, ticket.quantity, ticket.price)

        self._exec_state.broker_order_id = order_id
        self._exec_state.last_limit_price = ticket.price
        logger.info(
            "%s: attempt %d/%d BUY %d @ %.2f (live %.2f, buffer %.1f%%)",
            ticket.symbol, attempt, self._config.max_attempts, ticket.quantity,
            ticket.price, live, self._execution.buffer_pct(attempt),
        )
        await self._publish(EventType.ORDER_PLACED, {
            "order_id": order_id,
            "attempt": attempt,
            "limit_price": ticket.price,
            "quantity": ticket.quantity,
        })
        return order_id

    async def _observe(self, order_id: int, attempt: int) -> OrderStatus:
        """Wait once, then poll. Raises FillTimeout on zero fill."""
        await self._sleep(self._config.wait_seconds)
        status = await self._gateway.get_order_status(order_id)
        if status.filled_qty <= 0:
            raise FillTimeout(self._intent.symbol, order_id, attempt)
        return status

    async def _cancel(self, order_id: int) -> None:
        await self._gateway.cancel_order(order_id)
        self._exec_state.broker_order_id = None
        await self._publish(EventType.ORDER_CANCELLED, {
            "order_id": order_id,
            "attempt": self._exec_state.attempt_number,
        })
        await self._sleep(self._config.cancel_pause_seconds)

    async def _on_fill(self, status: OrderStatus) -> TradeLogEntry:
        symbol = self._intent.symbol
        self._exec_state.filled_quantity = status.filled_qty
        self.transition_to(AutomatonState.FILLING)
        await self._publish(EventType.ORDER_FILLING, {
            "order_id": status.order_id,
            "filled_qty": status.filled_qty,
            "remaining_qty": status.remaining_qty,
        })

        entry_price = self._exec_state.last_limit_price
        try:
            ids = await self._gateway.place_bracket_exit(
                symbol,
                self._intent.quantity,
                entry_price,
                self._config.take_profit_pct,
                self._config.stop_loss_pct,
            )
        except BracketPlacementFailed as e:
            logger.error("%s: entry filling but bracket failed: %s", symbol, e.reason)
            return await self._finish(
                AutomatonState.ACTIVE, TradeLogStatus.FILLING, reason=str(e),
            )
        except Exception as e:
            logger.error("%s: entry filling but bracket call raised: %s", symbol, e)
            return await self._finish(
                AutomatonState.ACTIVE, TradeLogStatus.FILLING,
                reason=f"bracket placement failed: {type(e).__name__}: {e}",
            )

        await self._publish(EventType.BRACKET_ATTACHED, {
            "tp_order_id": ids.tp_order_id,
            "sl_order_id": ids.sl_order_id,
            "entry_price": entry_price,
        })
        return await self._finish(AutomatonState.ACTIVE, TradeLogStatus.FILLING, bracket=ids)

    async def _finish(
        self,
        state: AutomatonState,
        log_status: TradeLogStatus,
        reason: str = "",
        bracket: BracketIds | None = None,
        keep_entry: bool = False,
    ) -> TradeLogEntry:
        es = self._exec_state
        filled = state == AutomatonState.ACTIVE or keep_entry
        tp_price, sl_price = self._execution.bracket_prices(es.last_limit_price) if filled else (0.0, 0.0)
        entry = TradeLogEntry(
            symbol=self._intent.symbol,
            quantity=self._intent.quantity,
            status=log_status,
            entry_price=es.last_limit_price if filled else 0.0,
            take_profit_price=tp_price,
            stop_loss_price=sl_price,
            parent_order_id=es.broker_order_id if filled else None,
            tp_order_id=bracket.tp_order_id if bracket else None,
            sl_order_id=bracket.sl_order_id if bracket else None,
            attempts=es.attempt_number,
            filled_quantity=es.filled_quantity,
            reason=reason,
        )
        self.transition_to(state)
        self._result = entry

        if self._trade_logger is not None:
            await self._trade_logger.record(entry)
        if state == AutomatonState.EXHAUSTED:
            await self._publish(EventType.EXECUTION_EXHAUSTED, {"attempts": es.attempt_number})
        elif state == AutomatonState.FAILED:
            await self._publish(EventType.EXECUTION_FAILED, {"reason": reason})
        return entry

    async def _publish(self, event_type: EventType, payload: dict) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(Event(
            type=event_type,
            timestamp_ns=time.time_ns(),
            source=f"automaton:{self._intent.symbol}",
            payload={"symbol": self._intent.symbol, **payload},
        ))
