from __future__ import annotations

import logging
from typing import Optional, Union

from ...data_collection.models import Series
from ...features.indicators import IndicatorSnapshot
from .base import Side, Signal, StrategyFamily, StrategyVariant
from .default import DefaultStrategy
from .momentum import MomentumStrategy
from .mean_reversion import MeanReversionStrategy
from .breakout import BreakoutStrategy
from .event_based import EventBasedStrategy

logger = logging.getLogger(__name__)

STRATEGY_REGISTRY = {
    DefaultStrategy.variant: DefaultStrategy(),
    MomentumStrategy.variant: MomentumStrategy(),
    MeanReversionStrategy.variant: MeanReversionStrategy(),
    BreakoutStrategy.variant: BreakoutStrategy(),
    EventBasedStrategy.variant: EventBasedStrategy(),
}

ALL_VARIANTS = tuple(STRATEGY_REGISTRY.keys())


def get_strategy(variant: Union[StrategyVariant, str, None]) -> StrategyFamily:
    return STRATEGY_REGISTRY[StrategyVariant.parse(variant)]


def generate_signal(
    window: Series,
    indicators: Optional[IndicatorSnapshot],
    variant: Union[StrategyVariant, str, None] = StrategyVariant.DEFAULT,
    lookback: int = 20,
) -> Signal:
    """
    Signal for the last bar of ``window``; the bars before it are history.

    Never raises on short or empty input: too little history or missing
    indicators give a Flat signal at the current close (0.0 when empty).
    """
    if window is None or len(window) == 0:
        return Signal.flat(0.0, "empty_window")

    close = window[-1].close
    if indicators is None:
        return Signal.flat(close, "missing_indicators")

    strategy = get_strategy(variant)
    history = len(window) - 1
    if history < max(lookback, strategy.min_history):
        return Signal.flat(close, "insufficient_history")

    return strategy.evaluate(window, indicators, lookback=lookback)


__all__ = [
    "ALL_VARIANTS",
    "BreakoutStrategy",
    "DefaultStrategy",
    "EventBasedStrategy",
    "MeanReversionStrategy",
    "MomentumStrategy",
    "STRATEGY_REGISTRY",
    "Side",
    "Signal",
    "StrategyVariant",
    "generate_signal",
    "get_strategy",
]
