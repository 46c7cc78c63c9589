from __future__ import annotations

from ...data_collection.models import Series
from ...features.indicators import IndicatorSnapshot
from .base import Side, Signal, StrategyVariant, clamp_strength

RSI_HIGH = 70.0
RSI_LOW = 30.0


class MomentumStrategy:
    """Trend continuation: stretched RSI first, MACD histogram otherwise."""
    name = StrategyVariant.MOMENTUM.value
    variant = StrategyVariant.MOMENTUM
    min_history = 0

    def evaluate(self, window: Series, indicators: IndicatorSnapshot, *, lookback: int) -> Signal:
        close = window[-1].close

        if indicators.rsi > RSI_HIGH:
            return Signal(Side.LONG, close * 1.02, clamp_strength(abs(indicators.rsi - 50.0) / 50.0), "rsi_strength")
        if indicators.rsi < RSI_LOW:
            return Signal(Side.SHORT, close * 0.98, clamp_strength(abs(indicators.rsi - 50.0) / 50.0), "rsi_weakness")

        hist = indicators.macd_histogram
        # Histogram worth 1% of price counts as full strength
        strength = clamp_strength(abs(hist) / (0.01 * close)) if close > 0 else 0.0
        if hist > 0:
            return Signal(Side.LONG, close * 1.01, strength, "macd_positive")
        if hist < 0:
            return Signal(Side.SHORT, close * 0.99, strength, "macd_negative")

        return Signal.flat(close, "no_momentum")
