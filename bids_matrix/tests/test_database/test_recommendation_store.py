"""Tests for RecommendationStore — upsert keys, JSON import/export, aliases."""

import json
from datetime import date

from bids_matrix.database.recommendation_store import (
    RecommendationStore,
    recommendation_from_dict,
    recommendation_to_dict,
)


class TestRecommendationStore:
    def test_upsert_is_keyed_by_symbol_and_day(self, rec_factory):
        store = RecommendationStore()
        assert store.upsert(rec_factory("AAA", probability=60)) is True
        assert store.upsert(rec_factory("AAA", probability=80)) is False
        assert len(store) == 1
        assert store.get("AAA", rec_factory().day).probability == 80

    def test_days_and_for_day(self, rec_factory):
        store = RecommendationStore()
        store.upsert_many([
            rec_factory("BBB", day=date(2025, 3, 13)),
            rec_factory("AAA", day=date(2025, 3, 13)),
            rec_factory("AAA", day=date(2025, 3, 14)),
        ])
        assert store.days() == [date(2025, 3, 13), date(2025, 3, 14)]
        assert store.latest_day() == date(2025, 3, 14)
        assert [r.symbol for r in store.for_day(date(2025, 3, 13))] == ["AAA", "BBB"]

    def test_latest_day_empty(self):
        assert RecommendationStore().latest_day() is None

    def test_camel_case_aliases(self):
        rec = recommendation_from_dict({
            "ticker": "XYZ",
            "date": "2025-03-14T00:00:00Z",
            "price": 12.5,
            "volume": 2_000_000,
            "relativeVol": 2.1,
            "probabilityValue": "72.5",
            "refPrice1020": 12.4,
            "peakHigh": 13.0,
            "troughBeforePeak": 12.1,
        })
        assert rec.symbol == "XYZ"
        assert rec.day == date(2025, 3, 14)
        assert rec.relative_volume == 2.1
        assert rec.probability == 72.5
        assert rec.stats.ref_price == 12.4

    def test_missing_stats_stay_none(self):
        rec = recommendation_from_dict({"symbol": "XYZ", "date": "2025-03-14"})
        assert rec.ref_price is None
        assert rec.stats is None
        assert rec.sector == "Unknown"

    def test_json_load_and_dump(self, tmp_path, rec_factory):
        src = tmp_path / "recs.json"
        src.write_text(json.dumps({"recommendations": [
            recommendation_to_dict(rec_factory("AAA")),
            {"symbol": "BAD"},  # no date
            recommendation_to_dict(rec_factory("BBB")),
        ]}))
        store = RecommendationStore()
        assert store.load_json(src) == 2

        out = tmp_path / "out.json"
        store.dump_json(out)
        dumped = json.loads(out.read_text())
        assert [d["symbol"] for d in dumped] == ["AAA", "BBB"]
        assert dumped[0]["date"] == "2025-03-14"

    def test_flush_without_dsn(self, rec_factory):
        store = RecommendationStore()
        store.upsert(rec_factory())
        assert store.flush_to_db_sync() == 0
