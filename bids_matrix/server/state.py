"""BidsState — Singleton holding the recommendation store, trade log and config for the API."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any

from bids_matrix.config.config_manager import ConfigManager
from bids_matrix.core.event_bus import EventBus
from bids_matrix.database.recommendation_store import RecommendationStore
from bids_matrix.database.trade_logger import TradeLogger
from bids_matrix.execution.session import SessionReport

logger = logging.getLogger(__name__)

DATA_FILE_ENV = "BIDS_MATRIX_DATA"
PROFILE_ENV = "BIDS_MATRIX_PROFILE"


class BidsState:
    """Singleton shared by all routers."""

    _instance: BidsState | None = None
    _lock = threading.Lock()

    def __new__(cls) -> BidsState:
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self.config = ConfigManager()
        self.store = RecommendationStore()
        self.trade_logger = TradeLogger()
        self.event_bus = EventBus()
        self.last_report: SessionReport | None = None
        self.data_file: Path | None = None
        self._initialized = True

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    def configure(self, profile: str | None = None, data_file: str | Path | None = None) -> None:
        """Load config and recommendations. Defaults come from the environment."""
        profile = profile or os.environ.get(PROFILE_ENV) or None
        self.config.load(profile=profile)

        dsn = self.config.get("database.dsn", "") or None
        self.store = RecommendationStore(dsn=dsn)
        self.trade_logger = TradeLogger(dsn=dsn)

        data_file = data_file or os.environ.get(DATA_FILE_ENV)
        if data_file:
            self.data_file = Path(data_file)
            if self.data_file.exists():
                self.store.load_json(self.data_file)
            else:
                logger.warning("Data file %s not found — starting with an empty store", self.data_file)

    def ensure_configured(self) -> None:
        if not self.config.raw:
            self.configure()

    def snapshot_config(self) -> dict[str, Any]:
        self.ensure_configured()
        selection = self.config.selection_config()
        execution = self.config.execution_config()
        return {
            "live_mode": self.config.live_mode,
            "selection": {
                "min_volume": selection.min_volume,
                "min_price": selection.min_price,
                "max_gain_skip_pct": selection.max_gain_skip_pct,
                "max_stocks": selection.max_stocks,
                "max_position_percent": selection.max_position_percent,
                "prioritize_below_ref": selection.prioritize_below_ref,
                "sort_by": selection.sort_by.value,
            },
            "execution": {
                "enabled": execution.enabled,
                "take_profit_pct": execution.take_profit_pct,
                "stop_loss_pct": execution.stop_loss_pct,
                "max_attempts": execution.max_attempts,
                "wait_seconds": execution.wait_seconds,
                "buffer_tiers": [
                    {"from_attempt": 1, "buffer_pct": execution.base_buffer_pct},
                    {"from_attempt": execution.tier1_attempt, "buffer_pct": execution.tier1_buffer_pct},
                    {"from_attempt": execution.tier2_attempt, "buffer_pct": execution.tier2_buffer_pct},
                ],
            },
            "windows": [w.name for w in self.config.reference_windows()],
        }

    def snapshot_logs(self, limit: int = 100) -> list[dict]:
        entries = self.trade_logger.entries
        return [e.to_record() for e in reversed(entries[-limit:])] if limit > 0 else []

    def snapshot_summary(self) -> dict[str, Any]:
        summary = self.trade_logger.get_trade_summary()
        summary["last_session"] = self.last_report.to_dict() if self.last_report else None
        return summary
