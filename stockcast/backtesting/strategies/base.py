from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from ...data_collection.models import Series
from ...features.indicators import IndicatorSnapshot


class Side(Enum):
    LONG = 1
    SHORT = -1
    FLAT = 0


class StrategyVariant(Enum):
    DEFAULT = "default"
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean-reversion"
    BREAKOUT = "breakout"
    EVENT_BASED = "event-based"

    @classmethod
    def parse(cls, name: Optional[str]) -> "StrategyVariant":
        """Map an external strategy name to a variant; unknown names are DEFAULT."""
        if isinstance(name, StrategyVariant):
            return name
        normalized = (name or "").strip().lower().replace("_", "-")
        for variant in cls:
            if variant.value == normalized:
                return variant
        return cls.DEFAULT


@dataclass(frozen=True)
class Signal:
    """Per-bar strategy output."""
    direction: Side
    predicted_price: float
    strength: float = 0.0
    reason: str = ""

    @classmethod
    def flat(cls, price: float, reason: str = "") -> "Signal":
        return cls(direction=Side.FLAT, predicted_price=float(price), strength=0.0, reason=reason)


def clamp_strength(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def direction_of(change: float) -> Side:
    if change > 0:
        return Side.LONG
    if change < 0:
        return Side.SHORT
    return Side.FLAT


class StrategyFamily(Protocol):
    name: str
    variant: StrategyVariant
    min_history: int

    def evaluate(self, window: Series, indicators: IndicatorSnapshot, *, lookback: int) -> Signal:
        """Return the signal for the last bar of the window."""
