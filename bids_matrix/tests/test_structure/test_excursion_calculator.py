"""Tests for ExcursionCalculator — window stats, trough-before-peak, cache eviction."""

from datetime import date

import pytest

from bids_matrix.brokerage.paper_broker import PaperBroker
from bids_matrix.core.data_types import ReferenceWindow
from bids_matrix.core.errors import NoDataForWindow
from bids_matrix.structure.excursion_calculator import ExcursionCalculator, ReferencePriceCache


class TestComputeWindow:
    def test_primary_window_stats(self, sample_path):
        calc = ExcursionCalculator()
        stats = calc.compute_window(sample_path, calc.primary_window)
        assert stats.ref_price == pytest.approx(10.00)
        assert stats.peak_high == pytest.approx(10.80)
        assert stats.trough_before_peak == pytest.approx(9.80)

    def test_trough_stops_at_peak(self, sample_path):
        """The 9.00 low after the 13:00 peak must not be the trough."""
        calc = ExcursionCalculator()
        stats = calc.compute_window(sample_path, calc.primary_window)
        assert stats.trough_before_peak > 9.00

    def test_bars_at_or_after_close_excluded(self, sample_path):
        """The 16:00 bar's 12.00 high is outside the regular session."""
        calc = ExcursionCalculator()
        stats = calc.compute_window(sample_path, calc.primary_window)
        assert stats.peak_high < 12.00

    def test_later_windows_independent(self, sample_path):
        calc = ExcursionCalculator()
        results = calc.compute_windows(sample_path)
        assert results["mvso_1120"].ref_price == pytest.approx(10.10)
        assert results["mvso_1120"].trough_before_peak == pytest.approx(9.88)
        assert results["mvso_1220"].ref_price == pytest.approx(10.30)
        assert results["mvso_1220"].peak_high == pytest.approx(10.80)
        assert results["mvso_1220"].trough_before_peak == pytest.approx(10.05)

    def test_first_bar_at_or_after_cutoff(self, path_factory):
        """No 10:20 bar: the next bar (10:25) is the reference."""
        path = path_factory("XYZ", date(2025, 3, 14), [
            (10, 15, 5.0, 5.1, 4.9, 5.0),
            (10, 25, 5.0, 5.2, 4.8, 5.1),
            (11, 0, 5.1, 5.5, 5.0, 5.4),
        ])
        stats = ExcursionCalculator().compute_window(path, ReferenceWindow("mvso_1020", 10, 20))
        assert stats.ref_price == pytest.approx(5.1)
        assert stats.peak_high == pytest.approx(5.5)
        assert stats.trough_before_peak == pytest.approx(4.8)

    def test_first_occurrence_of_peak(self, path_factory):
        path = path_factory("XYZ", date(2025, 3, 14), [
            (10, 20, 5.0, 5.0, 4.9, 5.0),
            (10, 30, 5.0, 6.0, 4.95, 5.5),
            (11, 0, 5.5, 5.6, 4.0, 5.0),
            (11, 30, 5.0, 6.0, 4.9, 5.5),
        ])
        stats = ExcursionCalculator().compute_window(path, ReferenceWindow("mvso_1020", 10, 20))
        assert stats.peak_high == pytest.approx(6.0)
        # Ties resolve to the earlier bar, so the 4.0 low is after the peak
        assert stats.trough_before_peak == pytest.approx(4.9)

    def test_window_without_data_raises(self, path_factory):
        path = path_factory("XYZ", date(2025, 3, 14), [(9, 30, 5.0, 5.1, 4.9, 5.0)])
        with pytest.raises(NoDataForWindow):
            ExcursionCalculator().compute_window(path, ReferenceWindow("mvso_1020", 10, 20))

    def test_absent_window_is_none(self, path_factory):
        path = path_factory("XYZ", date(2025, 3, 14), [
            (10, 20, 5.0, 5.1, 4.9, 5.0),
            (10, 40, 5.0, 5.3, 4.9, 5.2),
        ])
        results = ExcursionCalculator().compute_windows(path)
        assert results["mvso_1020"] is not None
        assert results["mvso_1120"] is None
        assert results["mvso_1220"] is None

    def test_empty_path(self, path_factory):
        path = path_factory("XYZ", date(2025, 3, 14), [])
        results = ExcursionCalculator().compute_windows(path)
        assert all(v is None for v in results.values())

    def test_reference_bar_at_close_only(self, path_factory):
        """Cutoff bar lands at the close: all stats collapse to ref price."""
        path = path_factory("XYZ", date(2025, 3, 14), [(16, 0, 5.0, 5.5, 4.5, 5.2)])
        calc = ExcursionCalculator(windows=[ReferenceWindow("late", 15, 59)])
        stats = calc.compute_window(path, calc.primary_window)
        assert stats.ref_price == stats.peak_high == stats.trough_before_peak == pytest.approx(5.2)

    def test_dst_boundary(self, path_factory):
        """Local cutoff applies in both EST and EDT."""
        winter = path_factory("XYZ", date(2025, 1, 15), [(10, 20, 5.0, 5.1, 4.9, 5.0)])
        summer = path_factory("XYZ", date(2025, 7, 15), [(10, 20, 5.0, 5.1, 4.9, 5.0)])
        calc = ExcursionCalculator()
        assert calc.local_minutes(winter)[0] == 10 * 60 + 20
        assert calc.local_minutes(summer)[0] == 10 * 60 + 20

    def test_requires_a_window(self):
        with pytest.raises(ValueError):
            ExcursionCalculator(windows=[])


class TestReferencePriceCache:
    def test_put_get_same_day(self):
        cache = ReferencePriceCache()
        cache.put("AAPL", date(2025, 3, 14), 190.0)
        assert cache.get("AAPL", date(2025, 3, 14)) == 190.0
        assert len(cache) == 1

    def test_cleared_on_date_change(self):
        cache = ReferencePriceCache()
        cache.put("AAPL", date(2025, 3, 14), 190.0)
        cache.put("MSFT", date(2025, 3, 14), 400.0)
        assert cache.get("AAPL", date(2025, 3, 17)) is None
        assert len(cache) == 0
        assert cache.day == date(2025, 3, 17)

    def test_compute_windows_populates_cache(self, sample_path):
        calc = ExcursionCalculator()
        calc.compute_windows(sample_path)
        assert calc.cache.get("XYZ", sample_path.day) == pytest.approx(10.00)

    @pytest.mark.asyncio
    async def test_reference_price_uses_cache(self, sample_path):
        broker = PaperBroker()
        broker.add_price_path(sample_path)
        calc = ExcursionCalculator()
        assert await calc.reference_price(broker, "XYZ", sample_path.day) == pytest.approx(10.00)

        # Cached: the provider is not consulted again
        empty = PaperBroker()
        assert await calc.reference_price(empty, "XYZ", sample_path.day) == pytest.approx(10.00)

    @pytest.mark.asyncio
    async def test_reference_price_missing_path(self):
        calc = ExcursionCalculator()
        assert await calc.reference_price(PaperBroker(), "NOPE", date(2025, 3, 14)) is None
