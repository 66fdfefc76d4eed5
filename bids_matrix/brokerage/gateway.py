"""Collaborator contracts for market data and order routing.

Everything the automaton and selector touch outside the process goes through
these two protocols. All methods are coroutines.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol, runtime_checkable

from bids_matrix.core.data_types import BracketIds, OrderStatus, PricePath


@runtime_checkable
class MarketDataProvider(Protocol):
    async def fetch_price_path(self, symbol: str, day: date) -> PricePath | None:
        """Minute bars for one symbol and day, or None if unavailable."""
        ...

    async def fetch_live_price(self, symbol: str) -> float | None:
        """Latest trade price, or None if unavailable."""
        ...


@runtime_checkable
class BrokerageGateway(Protocol):
    async def place_limit_buy(self, symbol: str, quantity: int, limit_price: float) -> int:
        """Submit a limit buy. Returns the broker order id.

        Raises OrderPlacementFailed when the broker rejects the order.
        """
        ...

    async def get_order_status(self, order_id: int) -> OrderStatus:
        ...

    async def cancel_order(self, order_id: int) -> None:
        ...

    async def place_bracket_exit(
        self,
        symbol: str,
        quantity: int,
        entry_price: float,
        take_profit_pct: float,
        stop_loss_pct: float,
    ) -> BracketIds:
        """Attach a TP limit / SL stop OCA pair.

        Raises BracketPlacementFailed when either leg is rejected.
        """
        ...

    async def get_portfolio_value(self) -> float | None:
        ...
