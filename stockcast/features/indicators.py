"""
Technical indicators over a fixed window of bars.

The backtester asks for a window ending at the current bar and a snapshot of
indicator values at that bar. Everything here is a pure function of the window:
no state is carried between calls, so a snapshot never depends on bars outside
the window it was computed from.

Indicators that cannot be computed (too few bars, zero ranges) fall back to a
defined sentinel instead of NaN.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from ..data_collection.models import Bar, Series

logger = logging.getLogger(__name__)

SMA_PERIOD = 20
EMA_PERIOD = 14
RSI_PERIOD = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9
BOLLINGER_PERIOD = 20
BOLLINGER_STDDEV = 2.0
ATR_PERIOD = 14
ADX_PERIOD = 14
STOCH_K_PERIOD = 14
STOCH_D_PERIOD = 3
MFI_PERIOD = 14
PSAR_ACCELERATION = 0.02
PSAR_MAX_ACCELERATION = 0.2

_EPS = 1e-12


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values at the last bar of a window."""
    sma: float = 0.0
    ema: float = 0.0
    rsi: float = 50.0
    macd: float = 0.0
    macd_signal: float = 0.0
    macd_histogram: float = 0.0
    bollinger_upper: float = 0.0
    bollinger_middle: float = 0.0
    bollinger_lower: float = 0.0
    atr: float = 0.0
    adx: float = 0.0
    di_plus: float = 0.0
    di_minus: float = 0.0
    stochastic_k: float = 50.0
    stochastic_d: float = 50.0
    mfi: float = 50.0
    psar: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def get_window(series: Series, end_index: int, length: int) -> Series:
    """
    Bars ``end_index - length + 1 .. end_index`` (inclusive), clipped at 0.

    The window never reaches past end_index, so it cannot leak future bars.
    """
    if end_index < 0 or end_index >= len(series):
        raise IndexError(f"end_index {end_index} out of range for {series.symbol} ({len(series)} bars)")
    start = max(0, end_index - length + 1)
    return series[start:end_index + 1]


def _frame(window: Sequence[Bar]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "open": [b.open for b in window],
            "high": [b.high for b in window],
            "low": [b.low for b in window],
            "close": [b.close for b in window],
            "volume": [b.volume for b in window],
        }
    )


def _last(values: pd.Series, default: float) -> float:
    if values is None or len(values) == 0:
        return float(default)
    value = values.iloc[-1]
    if pd.isna(value) or not np.isfinite(value):
        return float(default)
    return float(value)


# =============================================================================
# Individual indicators
# =============================================================================

def compute_rsi(close: pd.Series, period: int = RSI_PERIOD) -> float:
    """Wilder RSI at the last bar. No losses -> 100, flat prices -> 50."""
    if len(close) < period + 1:
        return 50.0
    delta = close.diff().dropna()
    gain = delta.where(delta > 0, 0.0)
    loss = -delta.where(delta < 0, 0.0)
    avg_gain = gain.ewm(alpha=1.0 / period, adjust=False).mean().iloc[-1]
    avg_loss = loss.ewm(alpha=1.0 / period, adjust=False).mean().iloc[-1]
    if avg_loss < _EPS:
        return 100.0 if avg_gain > _EPS else 50.0
    rs = avg_gain / avg_loss
    return float(100.0 - 100.0 / (1.0 + rs))


def compute_macd(close: pd.Series) -> Dict[str, float]:
    ema_fast = close.ewm(span=MACD_FAST, adjust=False).mean()
    ema_slow = close.ewm(span=MACD_SLOW, adjust=False).mean()
    macd = ema_fast - ema_slow
    signal = macd.ewm(span=MACD_SIGNAL, adjust=False).mean()
    return {
        "macd": _last(macd, 0.0),
        "macd_signal": _last(signal, 0.0),
        "macd_histogram": _last(macd - signal, 0.0),
    }


def compute_bollinger(close: pd.Series, period: int = BOLLINGER_PERIOD,
                      num_std: float = BOLLINGER_STDDEV) -> Dict[str, float]:
    if len(close) < period:
        return {"bollinger_upper": 0.0, "bollinger_middle": 0.0, "bollinger_lower": 0.0}
    recent = close.iloc[-period:]
    middle = float(recent.mean())
    std = float(recent.std(ddof=0))
    return {
        "bollinger_upper": middle + num_std * std,
        "bollinger_middle": middle,
        "bollinger_lower": middle - num_std * std,
    }


def _true_range(df: pd.DataFrame) -> pd.Series:
    high, low, close = df["high"], df["low"], df["close"]
    tr1 = high - low
    tr2 = (high - close.shift()).abs()
    tr3 = (low - close.shift()).abs()
    return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)


def compute_directional(df: pd.DataFrame, period: int = ADX_PERIOD) -> Dict[str, float]:
    """ATR, ADX and DI+/DI- with simple rolling means."""
    tr = _true_range(df)
    atr = tr.rolling(period, min_periods=1).mean()

    up_move = df["high"] - df["high"].shift()
    down_move = df["low"].shift() - df["low"]
    plus_dm = up_move.where((up_move > down_move) & (up_move > 0), 0.0)
    minus_dm = down_move.where((down_move > up_move) & (down_move > 0), 0.0)

    atr_safe = atr.replace(0, np.nan)
    plus_di = 100 * plus_dm.rolling(period, min_periods=1).mean() / atr_safe
    minus_di = 100 * minus_dm.rolling(period, min_periods=1).mean() / atr_safe
    dx = 100 * (plus_di - minus_di).abs() / (plus_di + minus_di).replace(0, np.nan)
    adx = dx.rolling(period, min_periods=1).mean()

    return {
        "atr": _last(atr, 0.0),
        "adx": _last(adx, 0.0),
        "di_plus": _last(plus_di, 0.0),
        "di_minus": _last(minus_di, 0.0),
    }


def compute_stochastic(df: pd.DataFrame, k_period: int = STOCH_K_PERIOD,
                       d_period: int = STOCH_D_PERIOD) -> Dict[str, float]:
    lowest = df["low"].rolling(k_period, min_periods=1).min()
    highest = df["high"].rolling(k_period, min_periods=1).max()
    k = 100 * (df["close"] - lowest) / (highest - lowest).replace(0, np.nan)
    d = k.rolling(d_period, min_periods=1).mean()
    return {"stochastic_k": _last(k, 50.0), "stochastic_d": _last(d, 50.0)}


def compute_mfi(df: pd.DataFrame, period: int = MFI_PERIOD) -> float:
    """Money flow index. No negative flow -> 100, no flow at all -> 50."""
    if len(df) < period + 1:
        return 50.0
    typical = (df["high"] + df["low"] + df["close"]) / 3.0
    raw_flow = typical * df["volume"]
    direction = typical.diff()
    positive = raw_flow.where(direction > 0, 0.0).iloc[-period:].sum()
    negative = raw_flow.where(direction < 0, 0.0).iloc[-period:].sum()
    if negative < _EPS:
        return 100.0 if positive > _EPS else 50.0
    ratio = positive / negative
    return float(100.0 - 100.0 / (1.0 + ratio))


def compute_psar(df: pd.DataFrame, step: float = PSAR_ACCELERATION,
                 max_step: float = PSAR_MAX_ACCELERATION) -> float:
    """Parabolic SAR at the last bar."""
    if len(df) < 2:
        return _last(df["low"], 0.0) if len(df) else 0.0

    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)

    rising = high[1] >= high[0]
    sar = low[0] if rising else high[0]
    extreme = high[0] if rising else low[0]
    af = step

    for i in range(1, len(df)):
        sar = sar + af * (extreme - sar)
        if rising:
            sar = min(sar, low[i - 1], low[i - 2] if i >= 2 else low[i - 1])
            if low[i] < sar:
                rising = False
                sar = extreme
                extreme = low[i]
                af = step
            elif high[i] > extreme:
                extreme = high[i]
                af = min(af + step, max_step)
        else:
            sar = max(sar, high[i - 1], high[i - 2] if i >= 2 else high[i - 1])
            if high[i] > sar:
                rising = True
                sar = extreme
                extreme = high[i]
                af = step
            elif low[i] < extreme:
                extreme = low[i]
                af = min(af + step, max_step)

    return float(sar)


# =============================================================================
# Snapshot
# =============================================================================

def get_indicators(window: Sequence[Bar]) -> IndicatorSnapshot:
    """Compute every indicator at the last bar of the window."""
    if len(window) == 0:
        return IndicatorSnapshot()

    df = _frame(window)
    close = df["close"]

    sma = float(close.iloc[-SMA_PERIOD:].mean()) if len(close) >= SMA_PERIOD else 0.0
    ema = _last(close.ewm(span=EMA_PERIOD, adjust=False).mean(), 0.0) if len(close) >= EMA_PERIOD else 0.0

    values: Dict[str, float] = {
        "sma": sma,
        "ema": ema,
        "rsi": compute_rsi(close),
        "mfi": compute_mfi(df),
        "psar": compute_psar(df),
    }
    values.update(compute_macd(close))
    values.update(compute_bollinger(close))
    values.update(compute_directional(df))
    values.update(compute_stochastic(df))

    return IndicatorSnapshot(**values)
