"""
Technical indicators consumed by the strategy variants.

Every indicator is computed from a window of bars ending at the current bar,
so a snapshot never sees data after the bar it describes.
"""

from .indicators import (
    IndicatorSnapshot,
    get_indicators,
    get_window,
    compute_rsi,
    compute_macd,
    compute_bollinger,
    compute_directional,
    compute_stochastic,
    compute_mfi,
    compute_psar,
)

__all__ = [
    'IndicatorSnapshot',
    'get_indicators',
    'get_window',
    'compute_rsi',
    'compute_macd',
    'compute_bollinger',
    'compute_directional',
    'compute_stochastic',
    'compute_mfi',
    'compute_psar',
]
