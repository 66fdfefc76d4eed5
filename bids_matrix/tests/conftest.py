"""Shared fixtures for bids_matrix tests."""

from __future__ import annotations

from datetime import date, datetime

import numpy as np
import pytest
import pytz

from bids_matrix.brokerage.paper_broker import PaperBroker
from bids_matrix.config.config_manager import DEFAULT_CONFIG_PATH, ConfigManager, ExecutionConfig
from bids_matrix.core.data_types import BAR_DTYPE, PricePath, Recommendation
from bids_matrix.database.trade_logger import TradeLogger

ET = pytz.timezone("US/Eastern")
TRADING_DAY = date(2025, 3, 14)  # Friday


def et_ms(day: date, hour: int, minute: int) -> int:
    """Epoch milliseconds for a US/Eastern wall-clock time."""
    local = ET.localize(datetime(day.year, day.month, day.day, hour, minute))
    return int(local.timestamp() * 1000)


def make_path(symbol: str, day: date, bars: list[tuple]) -> PricePath:
    """Build a PricePath from (hour, minute, open, high, low, close) tuples in ET."""
    arr = np.zeros(len(bars), dtype=BAR_DTYPE)
    for i, (hh, mm, o, h, l, c) in enumerate(bars):
        arr[i] = (et_ms(day, hh, mm), o, h, l, c, 1000.0)
    return PricePath(symbol=symbol, day=day, bars=arr)


def make_rec(
    symbol: str = "AAPL",
    day: date = TRADING_DAY,
    ref_price: float | None = 10.0,
    peak_high: float | None = 10.6,
    trough_before_peak: float | None = 9.9,
    **kwargs,
) -> Recommendation:
    defaults = dict(price=10.0, volume=3_000_000, relative_volume=1.5, sector="Technology",
                    probability=70.0, rsi=55.0)
    defaults.update(kwargs)
    return Recommendation(
        symbol=symbol,
        day=day,
        ref_price=ref_price,
        peak_high=peak_high,
        trough_before_peak=trough_before_peak,
        **defaults,
    )


@pytest.fixture
def config():
    """Loaded ConfigManager with base settings."""
    ConfigManager.reset()
    cm = ConfigManager()
    cm.load(DEFAULT_CONFIG_PATH)
    yield cm
    ConfigManager.reset()


@pytest.fixture
def exec_config():
    """Execution config with default attempts and buffer tiers."""
    return ExecutionConfig(take_profit_pct=1.0, stop_loss_pct=3.0, max_attempts=10)


@pytest.fixture
def trade_logger():
    return TradeLogger()


@pytest.fixture
def broker():
    """Paper broker quoting XYZ at $100 that never fills unless scripted."""
    return PaperBroker(
        portfolio_value=100_000.0,
        live_prices={"XYZ": 100.0},
        default_fill_attempt=None,
    )


@pytest.fixture
def sample_path():
    """XYZ session: ref 10:20 close 10.00, dip to 9.80, peak 10.80 at 13:00, later low 9.00."""
    return make_path("XYZ", TRADING_DAY, [
        (9, 30, 9.90, 10.00, 9.85, 9.95),
        (10, 19, 9.95, 10.05, 9.90, 10.02),
        (10, 20, 10.02, 10.05, 9.95, 10.00),
        (10, 45, 10.00, 10.10, 9.80, 9.90),
        (11, 20, 9.90, 10.20, 9.88, 10.10),
        (12, 20, 10.10, 10.40, 10.05, 10.30),
        (13, 0, 10.30, 10.80, 10.25, 10.70),
        (14, 30, 10.70, 10.75, 9.00, 9.10),
        (15, 59, 9.10, 9.30, 9.05, 9.20),
        (16, 0, 9.20, 12.00, 9.20, 11.00),
    ])


@pytest.fixture
def rec_factory():
    """Recommendation builder (see make_rec)."""
    return make_rec


@pytest.fixture
def path_factory():
    """PricePath builder from ET (hour, minute, o, h, l, c) tuples."""
    return make_path


@pytest.fixture
def zero_sleep():
    """Sleep replacement that returns immediately and records requested waits."""
    waits: list[float] = []

    async def _sleep(seconds: float) -> None:
        waits.append(seconds)

    _sleep.waits = waits
    return _sleep
