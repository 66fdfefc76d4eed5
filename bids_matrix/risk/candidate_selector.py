"""Candidate Selector & Position Sizer — pre-execution gate for live sessions.

Evaluation order (cheapest-first):
  1. Liquidity gate: volume >= min_volume and listed price >= min_price
  2. Live gain gate: (live - ref) / ref * 100 <= max_gain_skip_pct
     (ref falls back to the primary-window reference computed from the
     intraday path, then to the listed price)
  3. Ranking: below-reference first (optional), then gain asc / probability desc
  4. Truncate to max_stocks
  5. Sizing: floor(portfolio_value * max_position_percent / 100 / live_price)

No brokerage writes happen here. A missing portfolio value or an empty
candidate set is an early abort with zero intents.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass

from bids_matrix.config.config_manager import SelectionConfig
from bids_matrix.core.data_types import OrderIntent, Recommendation
from bids_matrix.core.types import SortKey
from bids_matrix.structure.excursion_calculator import ExcursionCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """A recommendation that passed the gates, with its live pricing."""

    rec: Recommendation
    reference_price: float
    live_price: float
    live_gain_pct: float

    @property
    def symbol(self) -> str:
        return self.rec.symbol

    @property
    def below_reference(self) -> bool:
        return self.live_gain_pct < 0


def position_size(portfolio_value: float, max_position_percent: float, price: float) -> int:
    """Whole shares affordable within one position's share of the portfolio."""
    if price <= 0 or portfolio_value <= 0:
        return 0
    max_per_position = portfolio_value * max_position_percent / 100.0
    return max(math.floor(max_per_position / price), 0)


class CandidateSelector:
    """Filters, ranks and sizes today's recommendations into OrderIntents."""

    def __init__(
        self,
        config: SelectionConfig | None = None,
        calculator: ExcursionCalculator | None = None,
    ) -> None:
        self._config = config or SelectionConfig()
        self._calculator = calculator

    @property
    def config(self) -> SelectionConfig:
        return self._config

    def passes_liquidity(self, rec: Recommendation) -> bool:
        return rec.volume >= self._config.min_volume and rec.price >= self._config.min_price

    async def _live_prices(self, provider, recs: list[Recommendation]) -> list[float | None]:
        results = await asyncio.gather(
            *(provider.fetch_live_price(rec.symbol) for rec in recs),
            return_exceptions=True,
        )
        prices: list[float | None] = []
        for rec, result in zip(recs, results):
            if isinstance(result, Exception):
                logger.warning("Live price lookup failed for %s: %s", rec.symbol, result)
                prices.append(None)
            else:
                prices.append(result)
        return prices

    async def _reference_prices(self, provider, recs: list[Recommendation]) -> list[float | None]:
        """Stored reference, else the cached or freshly computed primary-window one."""

        async def lookup(rec: Recommendation) -> float | None:
            if rec.ref_price and rec.ref_price > 0:
                return rec.ref_price
            if self._calculator is None:
                return None
            try:
                return await self._calculator.reference_price(provider, rec.symbol, rec.day)
            except Exception as e:
                logger.warning("Reference lookup failed for %s: %s", rec.symbol, e)
                return None

        return list(await asyncio.gather(*(lookup(rec) for rec in recs)))

    def evaluate(
        self,
        rec: Recommendation,
        live_price: float | None,
        ref_price: float | None = None,
    ) -> Candidate | None:
        """Apply the gain gate to one liquid recommendation."""
        live = live_price if live_price else rec.price
        if not ref_price or ref_price <= 0:
            ref_price = rec.ref_price
        ref = ref_price if ref_price and ref_price > 0 else rec.price
        if ref <= 0 or live <= 0:
            logger.warning("Skipping %s: no usable price (ref=%s, live=%s)", rec.symbol, ref, live)
            return None

        gain = (live - ref) / ref * 100.0
        if gain > self._config.max_gain_skip_pct:
            logger.info(
                "Skipping %s: up %.2f%% from ref (max %.2f%%)",
                rec.symbol, gain, self._config.max_gain_skip_pct,
            )
            return None
        return Candidate(rec=rec, reference_price=ref, live_price=live, live_gain_pct=gain)

    def rank(self, candidates: list[Candidate]) -> list[Candidate]:
        if self._config.sort_by == SortKey.PROBABILITY:
            def order(c: Candidate):
                return -c.rec.probability
        else:
            def order(c: Candidate):
                return c.live_gain_pct

        if self._config.prioritize_below_ref:
            ranked = sorted(candidates, key=lambda c: (not c.below_reference, order(c)))
        else:
            ranked = sorted(candidates, key=order)
        return ranked[: self._config.max_stocks]

    def size(self, candidates: list[Candidate], portfolio_value: float) -> list[OrderIntent]:
        intents = []
        for c in candidates:
            qty = position_size(portfolio_value, self._config.max_position_percent, c.live_price)
            if qty < 1:
                logger.info("Skipping %s: position size 0 at %.2f", c.symbol, c.live_price)
                continue
            intents.append(OrderIntent(symbol=c.symbol, quantity=qty, reference_price=c.live_price))
        return intents

    async def select(
        self,
        recs: list[Recommendation],
        provider,
        portfolio_value: float | None,
    ) -> list[OrderIntent]:
        """Full selection: gates → rank → truncate → size.

        Returns an empty list on early abort.
        """
        if portfolio_value is None or portfolio_value <= 0:
            logger.warning("Portfolio value unavailable — cannot size positions")
            return []

        liquid = [rec for rec in recs if self.passes_liquidity(rec)]
        if not liquid:
            logger.info("No candidates passed the liquidity gate (%d recommendations)", len(recs))
            return []

        live_prices = await self._live_prices(provider, liquid)
        ref_prices = await self._reference_prices(provider, liquid)
        candidates = [
            c for c in (
                self.evaluate(rec, live, ref)
                for rec, live, ref in zip(liquid, live_prices, ref_prices)
            )
            if c is not None
        ]
        ranked = self.rank(candidates)
        intents = self.size(ranked, portfolio_value)

        logger.info(
            "Selected %d intents from %d recommendations (%d liquid, %d under gain cap)",
            len(intents), len(recs), len(liquid), len(candidates),
        )
        return intents
