from __future__ import annotations

from ...data_collection.models import Series
from ...features.indicators import IndicatorSnapshot
from .base import Side, Signal, StrategyVariant, clamp_strength

RANGE_BARS = 10
BREAKOUT_MARGIN = 0.02


class BreakoutStrategy:
    name = StrategyVariant.BREAKOUT.value
    variant = StrategyVariant.BREAKOUT
    min_history = RANGE_BARS

    def evaluate(self, window: Series, indicators: IndicatorSnapshot, *, lookback: int) -> Signal:
        current = window[-1]
        # Range excludes the current bar
        prior = window.bars[-(RANGE_BARS + 1):-1]
        highest = max(bar.high for bar in prior)
        lowest = min(bar.low for bar in prior)

        upper_trigger = highest * (1 + BREAKOUT_MARGIN)
        lower_trigger = lowest * (1 - BREAKOUT_MARGIN)

        if upper_trigger > 0 and current.close > upper_trigger:
            excess = current.close / upper_trigger - 1.0
            return Signal(Side.LONG, current.close * 1.03, clamp_strength(0.5 + 10 * excess), "range_breakout_up")
        if lower_trigger > 0 and current.close < lower_trigger:
            excess = 1.0 - current.close / lower_trigger
            return Signal(Side.SHORT, current.close * 0.97, clamp_strength(0.5 + 10 * excess), "range_breakout_down")

        return Signal.flat(current.close, "inside_range")
