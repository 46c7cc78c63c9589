from __future__ import annotations

from ...data_collection.models import Series
from ...features.indicators import IndicatorSnapshot
from .base import Side, Signal, StrategyVariant, clamp_strength


class MeanReversionStrategy:
    """Fade Bollinger band breaches back to the middle band."""
    name = StrategyVariant.MEAN_REVERSION.value
    variant = StrategyVariant.MEAN_REVERSION
    min_history = 0

    def evaluate(self, window: Series, indicators: IndicatorSnapshot, *, lookback: int) -> Signal:
        close = window[-1].close
        upper = indicators.bollinger_upper
        middle = indicators.bollinger_middle
        lower = indicators.bollinger_lower

        if middle <= 0:
            return Signal.flat(close, "bands_unavailable")

        half_width = upper - middle
        if close > upper:
            excess = (close - upper) / half_width if half_width > 0 else 1.0
            return Signal(Side.SHORT, middle, clamp_strength(0.5 + excess), "above_upper_band")
        if close < lower:
            excess = (lower - close) / half_width if half_width > 0 else 1.0
            return Signal(Side.LONG, middle, clamp_strength(0.5 + excess), "below_lower_band")

        return Signal.flat(close, "inside_bands")
