"""Execution Manager — limit pricing and bracket construction for entries.

Entry: limit buy at live price plus an attempt-dependent buffer.
Exit: OCA bracket of a TP limit sell and an SL stop sell around the entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bids_matrix.config.config_manager import ExecutionConfig
from bids_matrix.core.types import OrderSide, OrderType

logger = logging.getLogger(__name__)


@dataclass
class OrderTicket:
    """Represents an order to be submitted."""

    symbol: str
    order_type: OrderType
    side: OrderSide
    price: float
    quantity: int
    label: str = ""


@dataclass
class OCABracket:
    """One-cancels-all exit pair: take profit limit + stop loss stop."""

    take_profit: OrderTicket
    stop_loss: OrderTicket
    oca_group: str


class ExecutionManager:
    """Builds entry and exit tickets from the execution config.

    Buffer schedule by attempt number (1-based):
      attempt >= tier2_attempt → tier2_buffer_pct
      attempt >= tier1_attempt → tier1_buffer_pct
      otherwise                → base_buffer_pct
    """

    def __init__(self, config: ExecutionConfig | None = None) -> None:
        self._config = config or ExecutionConfig()

    @property
    def config(self) -> ExecutionConfig:
        return self._config

    def buffer_pct(self, attempt: int) -> float:
        if attempt >= self._config.tier2_attempt:
            return self._config.tier2_buffer_pct
        if attempt >= self._config.tier1_attempt:
            return self._config.tier1_buffer_pct
        return self._config.base_buffer_pct

    def limit_price(self, live_price: float, attempt: int) -> float:
        return round(live_price * (1 + self.buffer_pct(attempt) / 100.0), 2)

    def create_entry_order(self, symbol: str, quantity: int, live_price: float, attempt: int) -> OrderTicket:
        return OrderTicket(
            symbol=symbol,
            order_type=OrderType.LIMIT,
            side=OrderSide.BUY,
            price=self.limit_price(live_price, attempt),
            quantity=quantity,
            label=f"ENTRY_{symbol}_A{attempt}",
        )

    def bracket_prices(
        self,
        entry_price: float,
        take_profit_pct: float | None = None,
        stop_loss_pct: float | None = None,
    ) -> tuple[float, float]:
        """(tp_price, sl_price) rounded to cents."""
        tp = self._config.take_profit_pct if take_profit_pct is None else take_profit_pct
        sl = self._config.stop_loss_pct if stop_loss_pct is None else stop_loss_pct
        return (
            round(entry_price * (1 + tp / 100.0), 2),
            round(entry_price * (1 - sl / 100.0), 2),
        )

    def create_oca_bracket(
        self,
        symbol: str,
        quantity: int,
        entry_price: float,
        take_profit_pct: float | None = None,
        stop_loss_pct: float | None = None,
        oca_group: str | None = None,
    ) -> OCABracket:
        """Exit pair for a filling entry. Whichever leg executes cancels the other."""
        tp_price, sl_price = self.bracket_prices(entry_price, take_profit_pct, stop_loss_pct)
        group = oca_group or f"OCA_{symbol}"

        take_profit = OrderTicket(
            symbol=symbol,
            order_type=OrderType.LIMIT,
            side=OrderSide.SELL,
            price=tp_price,
            quantity=quantity,
            label="OCA_TP",
        )
        stop_loss = OrderTicket(
            symbol=symbol,
            order_type=OrderType.STOP,
            side=OrderSide.SELL,
            price=sl_price,
            quantity=quantity,
            label="OCA_STOP",
        )

        logger.debug(
            "Bracket %s: %d @ entry %.2f, TP=%.2f, SL=%.2f",
            group, quantity, entry_price, tp_price, sl_price,
        )
        return OCABracket(take_profit=take_profit, stop_loss=stop_loss, oca_group=group)
