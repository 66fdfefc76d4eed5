"""Recommendation Refresher — recompute window stats for a stored trading day."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import date

from bids_matrix.core.data_types import Recommendation
from bids_matrix.database.recommendation_store import RecommendationStore
from bids_matrix.structure.excursion_calculator import ExcursionCalculator

logger = logging.getLogger(__name__)


class RecommendationRefresher:
    """Fetches each symbol's minute path and writes the window stats back.

    The primary window's stats populate ref_price / peak_high /
    trough_before_peak; all windows land in Recommendation.windows. Without a
    primary bar the stored primary fields are left as they are.
    """

    def __init__(
        self,
        calculator: ExcursionCalculator,
        provider,
        store: RecommendationStore,
    ) -> None:
        self._calculator = calculator
        self._provider = provider
        self._store = store

    async def refresh_symbol(self, rec: Recommendation) -> Recommendation | None:
        """Return the refreshed record, or None when no usable data exists."""
        path = await self._provider.fetch_price_path(rec.symbol, rec.day)
        if path is None or len(path) == 0:
            logger.warning("No price path for %s on %s", rec.symbol, rec.day)
            return None

        results = self._calculator.compute_windows(path)
        windows = {name: stats for name, stats in results.items() if stats is not None}
        primary = results.get(self._calculator.primary_window.name)
        if primary is None:
            logger.warning("No %s bar for %s on %s", self._calculator.primary_window.name, rec.symbol, rec.day)
            if not windows:
                return None
            return replace(rec, windows=windows)

        return replace(
            rec,
            ref_price=primary.ref_price,
            peak_high=primary.peak_high,
            trough_before_peak=primary.trough_before_peak,
            windows=windows,
        )

    async def refresh_day(self, day: date, symbols: list[str] | None = None) -> dict[str, int]:
        """Refresh every stored record for a day. Returns {updated, skipped, errors}."""
        recs = self._store.for_day(day)
        if symbols is not None:
            wanted = set(symbols)
            recs = [r for r in recs if r.symbol in wanted]

        results = await asyncio.gather(
            *(self.refresh_symbol(rec) for rec in recs),
            return_exceptions=True,
        )

        counts = {"updated": 0, "skipped": 0, "errors": 0}
        for rec, result in zip(recs, results):
            if isinstance(result, Exception):
                logger.error("Refresh failed for %s on %s: %s", rec.symbol, day, result)
                counts["errors"] += 1
            elif result is None:
                counts["skipped"] += 1
            else:
                self._store.upsert(result)
                counts["updated"] += 1

        logger.info(
            "Refreshed %s: %d updated, %d skipped, %d errors",
            day, counts["updated"], counts["skipped"], counts["errors"],
        )
        return counts
