from __future__ import annotations

from ...data_collection.models import Series
from ...features.indicators import IndicatorSnapshot
from .base import Side, Signal, StrategyVariant, clamp_strength

VOLUME_SPIKE_RATIO = 2.0


class EventBasedStrategy:
    """Volume spikes stand in for news events; follow the latest bar's move."""
    name = StrategyVariant.EVENT_BASED.value
    variant = StrategyVariant.EVENT_BASED
    min_history = 1

    def evaluate(self, window: Series, indicators: IndicatorSnapshot, *, lookback: int) -> Signal:
        current = window[-1]
        previous = window[-2]
        history = window.bars[-(lookback + 1):-1]

        avg_volume = sum(bar.volume for bar in history) / len(history) if history else 0.0
        if avg_volume <= 0 or current.volume <= VOLUME_SPIKE_RATIO * avg_volume:
            return Signal.flat(current.close, "no_volume_event")

        if previous.close <= 0:
            return Signal.flat(current.close, "no_reference_price")

        last_return = (current.close - previous.close) / previous.close
        strength = clamp_strength(current.volume / avg_volume / (2 * VOLUME_SPIKE_RATIO))

        if last_return > 0:
            return Signal(Side.LONG, current.close * 1.02, strength, "volume_event_up")
        if last_return < 0:
            return Signal(Side.SHORT, current.close * 0.98, strength, "volume_event_down")
        return Signal.flat(current.close, "volume_event_unchanged")
