"""Recommendation Store — daily candidates keyed by (symbol, date).

In-memory upsert store with a JSON loader for scripts and an optional
PostgreSQL flush (`recommendations` table, one row per symbol and date).
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

from bids_matrix.core.data_types import Recommendation, WindowStats

logger = logging.getLogger(__name__)

UPSERT_RECOMMENDATION = """
    INSERT INTO recommendations (
        symbol, date, price, volume, relative_volume, sector,
        probability, rsi, ref_price, peak_high, trough_before_peak, windows
    ) VALUES (
        %(symbol)s, %(date)s, %(price)s, %(volume)s, %(relative_volume)s, %(sector)s,
        %(probability)s, %(rsi)s, %(ref_price)s, %(peak_high)s, %(trough_before_peak)s, %(windows)s
    )
    ON CONFLICT (symbol, date) DO UPDATE SET
        price = EXCLUDED.price,
        volume = EXCLUDED.volume,
        relative_volume = EXCLUDED.relative_volume,
        sector = EXCLUDED.sector,
        probability = EXCLUDED.probability,
        rsi = EXCLUDED.rsi,
        ref_price = EXCLUDED.ref_price,
        peak_high = EXCLUDED.peak_high,
        trough_before_peak = EXCLUDED.trough_before_peak,
        windows = EXCLUDED.windows
"""

# Accepted spellings per field when loading exported JSON
_FIELD_ALIASES = {
    "symbol": ("symbol", "ticker"),
    "day": ("date", "day"),
    "price": ("price",),
    "volume": ("volume",),
    "relative_volume": ("relative_volume", "relativeVol", "relativeVolume"),
    "sector": ("sector",),
    "probability": ("probability", "probabilityValue"),
    "rsi": ("rsi",),
    "ref_price": ("ref_price", "refPrice1020", "refPrice"),
    "peak_high": ("peak_high", "peakHigh"),
    "trough_before_peak": ("trough_before_peak", "troughBeforePeak"),
}


def _pick(raw: dict, field_name: str, default: Any = None) -> Any:
    for alias in _FIELD_ALIASES[field_name]:
        if alias in raw and raw[alias] is not None:
            return raw[alias]
    return default


def _parse_day(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def recommendation_from_dict(raw: dict) -> Recommendation:
    """Build a Recommendation from an exported record."""
    probability = _pick(raw, "probability", 0.0)
    try:
        probability = float(probability)
    except (TypeError, ValueError):
        probability = 0.0

    windows = {
        name: WindowStats(**stats)
        for name, stats in (raw.get("windows") or {}).items()
        if stats is not None
    }
    return Recommendation(
        symbol=str(_pick(raw, "symbol")),
        day=_parse_day(_pick(raw, "day")),
        price=float(_pick(raw, "price", 0.0)),
        volume=float(_pick(raw, "volume", 0.0)),
        relative_volume=float(_pick(raw, "relative_volume", 0.0)),
        sector=str(_pick(raw, "sector", "Unknown")),
        probability=probability,
        rsi=float(_pick(raw, "rsi", 50.0)),
        ref_price=_optional_float(_pick(raw, "ref_price")),
        peak_high=_optional_float(_pick(raw, "peak_high")),
        trough_before_peak=_optional_float(_pick(raw, "trough_before_peak")),
        windows=windows,
    )


def recommendation_to_dict(rec: Recommendation) -> dict:
    return {
        "symbol": rec.symbol,
        "date": rec.day.isoformat(),
        "price": rec.price,
        "volume": rec.volume,
        "relative_volume": rec.relative_volume,
        "sector": rec.sector,
        "probability": rec.probability,
        "rsi": rec.rsi,
        "ref_price": rec.ref_price,
        "peak_high": rec.peak_high,
        "trough_before_peak": rec.trough_before_peak,
        "windows": {
            name: {
                "ref_price": s.ref_price,
                "peak_high": s.peak_high,
                "trough_before_peak": s.trough_before_peak,
            }
            for name, s in rec.windows.items()
        },
    }


class RecommendationStore:
    """Upsert store. At most one record per (symbol, date)."""

    def __init__(self, dsn: str | None = None) -> None:
        self._dsn = dsn or None
        self._records: dict[tuple[str, date], Recommendation] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: tuple[str, date]) -> bool:
        return key in self._records

    def upsert(self, rec: Recommendation) -> bool:
        """Insert or replace. Returns True if the key was new."""
        is_new = rec.key not in self._records
        self._records[rec.key] = rec
        return is_new

    def upsert_many(self, recs: Iterable[Recommendation]) -> int:
        return sum(1 for rec in recs if self.upsert(rec))

    def get(self, symbol: str, day: date) -> Recommendation | None:
        return self._records.get((symbol, day))

    def all(self) -> list[Recommendation]:
        return sorted(self._records.values(), key=lambda r: (r.day, r.symbol))

    def for_day(self, day: date) -> list[Recommendation]:
        return [r for r in self.all() if r.day == day]

    def days(self) -> list[date]:
        return sorted({key[1] for key in self._records})

    def latest_day(self) -> date | None:
        days = self.days()
        return days[-1] if days else None

    def load_json(self, path: str | Path) -> int:
        """Load an exported JSON array (or {"recommendations": [...]}).

        Returns number of records loaded. Malformed records are skipped.
        """
        with open(path) as f:
            payload = json.load(f)
        if isinstance(payload, dict):
            payload = payload.get("recommendations", [])

        loaded = 0
        for raw in payload:
            try:
                rec = recommendation_from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed record %r: %s", raw.get("symbol"), e)
                continue
            self.upsert(rec)
            loaded += 1
        logger.info("Loaded %d recommendations from %s", loaded, path)
        return loaded

    def dump_json(self, path: str | Path) -> None:
        with open(path, "w") as f:
            json.dump([recommendation_to_dict(r) for r in self.all()], f, indent=2)

    def flush_to_db_sync(self) -> int:
        """Upsert all records into PostgreSQL. Returns number of records written."""
        if not self._dsn:
            logger.info("No DSN — skipping DB flush (%d recommendations in memory)", len(self._records))
            return 0

        count = 0
        try:
            import psycopg
            from psycopg.types.json import Jsonb
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    for rec in self.all():
                        row = recommendation_to_dict(rec)
                        row["date"] = rec.day
                        row["windows"] = Jsonb(row["windows"])
                        cur.execute(UPSERT_RECOMMENDATION, row)
                        count += 1
                conn.commit()
            logger.info("Upserted %d recommendations to PostgreSQL", count)
        except Exception:
            logger.exception("Failed to flush recommendations to PostgreSQL")
            return 0
        return count
