"""Trade Outcome Model — excursion stats + TP/SL → clamped return and class.

    raw      = (peak_high - ref_price) / ref_price * 100
    mae      = (trough_before_peak - ref_price) / ref_price * 100
    stopped  = mae < -SL                       (stop-loss takes precedence)
    return   = -SL if stopped else min(raw, TP) for raw > 0, raw otherwise

Pure and deterministic. A zero, missing or non-finite reference price raises
InvalidReferencePrice.
"""

from __future__ import annotations

import math

from bids_matrix.core.data_types import TradeOutcome, WindowStats
from bids_matrix.core.errors import InvalidReferencePrice
from bids_matrix.core.types import OutcomeClass


def excursion_pct(price: float, ref_price: float) -> float:
    """Percentage move of price away from ref_price."""
    return (price - ref_price) / ref_price * 100.0


def validate_ref_price(ref_price: float | None, symbol: str | None = None) -> float:
    if ref_price is None or not math.isfinite(ref_price) or ref_price == 0:
        raise InvalidReferencePrice(ref_price, symbol)
    return float(ref_price)


def evaluate(stats: WindowStats, take_profit_pct: float, stop_loss_pct: float) -> TradeOutcome:
    """Evaluate one trade against a TP/SL pair."""
    ref_price = validate_ref_price(stats.ref_price)

    raw = excursion_pct(stats.peak_high, ref_price)
    mae = excursion_pct(stats.trough_before_peak, ref_price)

    stopped_out = mae < -stop_loss_pct
    effective = -stop_loss_pct if stopped_out else raw
    clamped = min(effective, take_profit_pct) if effective > 0 else effective

    if stopped_out:
        outcome_class = OutcomeClass.HIT_STOP_LOSS
    elif raw >= take_profit_pct:
        outcome_class = OutcomeClass.HIT_TAKE_PROFIT
    else:
        outcome_class = OutcomeClass.NEITHER

    return TradeOutcome(
        raw_excursion_pct=raw,
        max_adverse_excursion_pct=mae,
        clamped_return_pct=clamped,
        outcome_class=outcome_class,
    )
