from __future__ import annotations

from typing import List, Tuple

from ...data_collection.models import Series
from ...features.indicators import IndicatorSnapshot
from .base import Signal, StrategyVariant, clamp_strength, direction_of

MIN_AGREEING = 2
SUB_SIGNALS = 4


class DefaultStrategy:
    """
    Contrarian composite of four sub-signals.

    Each sub-signal contributes an expected fractional price change:
      RSI            > 70 -> -1%,  < 30 -> +1%
      MACD histogram  > 0 -> +1%,   < 0 -> -1%
      Bollinger  above upper -> -1%, below lower -> +1%
      EMA distance  > +2% -> -0.5%, < -2% -> +0.5%

    At least two must fire before the summed change is used.
    """
    name = StrategyVariant.DEFAULT.value
    variant = StrategyVariant.DEFAULT
    min_history = 0

    def _sub_signals(self, close: float, ind: IndicatorSnapshot) -> List[Tuple[str, float]]:
        fired = []

        if ind.rsi > 70:
            fired.append(("rsi_overbought", -0.01))
        elif ind.rsi < 30:
            fired.append(("rsi_oversold", 0.01))

        if ind.macd_histogram > 0:
            fired.append(("macd_positive", 0.01))
        elif ind.macd_histogram < 0:
            fired.append(("macd_negative", -0.01))

        if ind.bollinger_middle > 0:
            if close > ind.bollinger_upper:
                fired.append(("above_upper_band", -0.01))
            elif close < ind.bollinger_lower:
                fired.append(("below_lower_band", 0.01))

        if ind.ema > 0:
            if close > ind.ema * 1.02:
                fired.append(("above_ema", -0.005))
            elif close < ind.ema * 0.98:
                fired.append(("below_ema", 0.005))

        return fired

    def evaluate(self, window: Series, indicators: IndicatorSnapshot, *, lookback: int) -> Signal:
        close = window[-1].close
        fired = self._sub_signals(close, indicators)

        if len(fired) < MIN_AGREEING:
            return Signal.flat(close, "insufficient_agreement")

        change = sum(delta for _, delta in fired)
        direction = direction_of(change)
        reason = ",".join(label for label, _ in fired)
        if change == 0:
            return Signal.flat(close, reason)

        return Signal(direction, close * (1 + change), clamp_strength(len(fired) / SUB_SIGNALS), reason)
