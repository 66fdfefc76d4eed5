"""Excursion Calculator — reference-window statistics from a minute price path.

For each named cutoff:
  1. ref_idx: first bar at/after the cutoff (US/Eastern local time)
  2. ref_price: close of that bar
  3. peak_high: max high from ref_idx until the regular session close
  4. trough_before_peak: min low over [ref_idx, peak_idx] inclusive

The trough deliberately stops at the peak bar; it is not the worst low of the
whole post-entry session.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

import numpy as np
import pytz

from bids_matrix.core.data_types import PricePath, ReferenceWindow, WindowStats
from bids_matrix.core.errors import NoDataForWindow

logger = logging.getLogger(__name__)

DEFAULT_WINDOWS = (
    ReferenceWindow("mvso_1020", 10, 20),
    ReferenceWindow("mvso_1120", 11, 20),
    ReferenceWindow("mvso_1220", 12, 20),
)


class ReferencePriceCache:
    """Reference prices for a single trading day.

    Scoped to one run or backtest invocation. Using a different date key
    evicts every entry.
    """

    def __init__(self) -> None:
        self._day: date | None = None
        self._prices: dict[str, float] = {}

    @property
    def day(self) -> date | None:
        return self._day

    def __len__(self) -> int:
        return len(self._prices)

    def _roll(self, day: date) -> None:
        if self._day != day:
            if self._prices:
                logger.debug("Reference cache cleared (%s → %s)", self._day, day)
            self._prices = {}
            self._day = day

    def get(self, symbol: str, day: date) -> float | None:
        self._roll(day)
        return self._prices.get(symbol)

    def put(self, symbol: str, day: date, price: float) -> None:
        self._roll(day)
        self._prices[symbol] = price


class ExcursionCalculator:
    """Computes WindowStats per reference window from a PricePath."""

    def __init__(
        self,
        windows: list[ReferenceWindow] | tuple[ReferenceWindow, ...] = DEFAULT_WINDOWS,
        market_tz: str = "US/Eastern",
        session_close: str = "16:00",
        cache: ReferencePriceCache | None = None,
    ) -> None:
        if not windows:
            raise ValueError("At least one reference window is required")
        self._windows = tuple(windows)
        self._tz = pytz.timezone(market_tz)
        close_h, close_m = (int(p) for p in session_close.split(":"))
        self._close_minute = close_h * 60 + close_m
        self._cache = cache if cache is not None else ReferencePriceCache()

    @property
    def windows(self) -> tuple[ReferenceWindow, ...]:
        return self._windows

    @property
    def primary_window(self) -> ReferenceWindow:
        return self._windows[0]

    @property
    def cache(self) -> ReferencePriceCache:
        return self._cache

    def local_minutes(self, path: PricePath) -> np.ndarray:
        """Minute-of-day in market-local time for each bar."""
        minutes = np.empty(len(path), dtype=np.int64)
        for i, ts_ms in enumerate(path.bars["timestamp_ms"]):
            utc_dt = datetime.fromtimestamp(int(ts_ms) / 1000.0, tz=timezone.utc)
            local = utc_dt.astimezone(self._tz)
            minutes[i] = local.hour * 60 + local.minute
        return minutes

    def compute_window(
        self,
        path: PricePath,
        window: ReferenceWindow,
        minutes: np.ndarray | None = None,
    ) -> WindowStats:
        """Compute stats for a single window.

        Raises NoDataForWindow if no bar exists at/after the cutoff.
        """
        if minutes is None:
            minutes = self.local_minutes(path)

        at_or_after = np.nonzero(minutes >= window.minute_of_day)[0]
        if len(at_or_after) == 0:
            raise NoDataForWindow(window.name, path.symbol)
        ref_idx = int(at_or_after[0])

        bars = path.bars
        ref_price = float(bars["close"][ref_idx])

        # Session segment: ref_idx up to (not including) the first bar at/after close
        after_close = np.nonzero(minutes[ref_idx:] >= self._close_minute)[0]
        end = ref_idx + int(after_close[0]) if len(after_close) else len(bars)

        if end <= ref_idx:
            return WindowStats(ref_price, ref_price, ref_price)

        highs = bars["high"][ref_idx:end]
        peak_offset = int(np.argmax(highs))  # first occurrence of the max
        peak_high = float(highs[peak_offset])
        peak_idx = ref_idx + peak_offset

        trough_before_peak = float(np.min(bars["low"][ref_idx:peak_idx + 1]))

        return WindowStats(ref_price, peak_high, trough_before_peak)

    def compute_windows(self, path: PricePath) -> dict[str, WindowStats | None]:
        """Compute every configured window independently from the same path.

        Windows with no bar at/after the cutoff map to None.
        """
        if len(path) == 0:
            return {w.name: None for w in self._windows}

        minutes = self.local_minutes(path)
        results: dict[str, WindowStats | None] = {}
        for window in self._windows:
            try:
                stats = self.compute_window(path, window, minutes)
            except NoDataForWindow:
                logger.debug("No bar at/after %s for %s on %s", window.name, path.symbol, path.day)
                results[window.name] = None
                continue
            results[window.name] = stats
            if window == self.primary_window:
                self._cache.put(path.symbol, path.day, stats.ref_price)
        return results

    async def reference_price(self, provider, symbol: str, day: date) -> float | None:
        """Primary-window reference price, cached for the current day."""
        cached = self._cache.get(symbol, day)
        if cached is not None:
            return cached

        path = await provider.fetch_price_path(symbol, day)
        if path is None or len(path) == 0:
            return None
        try:
            stats = self.compute_window(path, self.primary_window)
        except NoDataForWindow:
            logger.warning("No %s reference for %s on %s", self.primary_window.name, symbol, day)
            return None
        self._cache.put(symbol, day, stats.ref_price)
        return stats.ref_price
