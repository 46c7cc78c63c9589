import numpy as np
import pandas as pd
import pytest

from stockcast.backtesting.strategies import (
    ALL_VARIANTS,
    Side,
    StrategyVariant,
    generate_signal,
)
from stockcast.data_collection.models import Bar, Series
from stockcast.features.indicators import IndicatorSnapshot, get_indicators, get_window


def _series(closes, volumes=None, spread: float = 0.01, symbol: str = "TEST") -> Series:
    dates = pd.bdate_range("2024-01-01", periods=len(closes))
    volumes = volumes if volumes is not None else [1000.0] * len(closes)
    bars = [
        Bar(
            date=str(d.date()),
            open=float(c),
            high=float(c) * (1 + spread),
            low=float(c) * (1 - spread),
            close=float(c),
            volume=float(v),
        )
        for d, c, v in zip(dates, closes, volumes)
    ]
    return Series(symbol, bars)


def _signal(series: Series, variant, lookback: int = 20):
    window = get_window(series, len(series) - 1, lookback + 1)
    return generate_signal(window, get_indicators(window), variant, lookback)


def test_empty_window_is_flat_at_zero() -> None:
    signal = generate_signal(Series("TEST", ()), IndicatorSnapshot(), StrategyVariant.MOMENTUM)

    assert signal.direction == Side.FLAT
    assert signal.predicted_price == 0.0


@pytest.mark.parametrize("variant", ALL_VARIANTS)
def test_short_window_is_flat_at_current_close(variant) -> None:
    series = _series([100 + i for i in range(10)])

    signal = generate_signal(series, get_indicators(series), variant, lookback=20)

    assert signal.direction == Side.FLAT
    assert signal.predicted_price == pytest.approx(109.0)
    assert signal.strength == 0.0


def test_missing_indicators_give_flat_signal() -> None:
    series = _series([100 + i for i in range(25)])

    signal = generate_signal(series, None, StrategyVariant.DEFAULT)

    assert signal.direction == Side.FLAT
    assert signal.predicted_price == pytest.approx(124.0)


def test_momentum_never_shorts_a_monotonic_uptrend() -> None:
    series = _series([100.0 + i for i in range(80)])

    for j in range(20, len(series)):
        window = get_window(series, j, 21)
        signal = generate_signal(window, get_indicators(window), StrategyVariant.MOMENTUM)
        assert signal.direction != Side.SHORT


def test_momentum_goes_long_on_overbought_rsi() -> None:
    signal = _signal(_series([100.0 + i for i in range(30)]), StrategyVariant.MOMENTUM)

    assert signal.direction == Side.LONG
    assert signal.predicted_price == pytest.approx(129.0 * 1.02)


def test_breakout_fires_when_close_clears_prior_range() -> None:
    closes = [100.0] * 30 + [110.0]

    signal = _signal(_series(closes), StrategyVariant.BREAKOUT)

    assert signal.direction == Side.LONG
    assert signal.predicted_price == pytest.approx(110.0 * 1.03)
    assert 0.0 <= signal.strength <= 1.0


def test_breakout_down_and_inside_range() -> None:
    down = _signal(_series([100.0] * 30 + [90.0]), StrategyVariant.BREAKOUT)
    inside = _signal(_series([100.0] * 30 + [101.0]), StrategyVariant.BREAKOUT)

    assert down.direction == Side.SHORT
    assert inside.direction == Side.FLAT


def test_mean_reversion_shorts_above_upper_band_targeting_middle() -> None:
    closes = [100.0 if i % 2 else 101.0 for i in range(29)] + [120.0]
    series = _series(closes)
    window = get_window(series, len(series) - 1, 21)
    indicators = get_indicators(window)

    signal = generate_signal(window, indicators, StrategyVariant.MEAN_REVERSION)

    assert signal.direction == Side.SHORT
    assert signal.predicted_price == pytest.approx(indicators.bollinger_middle)


def test_event_based_follows_last_return_on_volume_spike() -> None:
    volumes = [1000.0] * 30 + [5000.0]

    up = _signal(_series([100.0] * 30 + [101.0], volumes), StrategyVariant.EVENT_BASED)
    down = _signal(_series([100.0] * 30 + [99.0], volumes), StrategyVariant.EVENT_BASED)
    unchanged = _signal(_series([100.0] * 31, volumes), StrategyVariant.EVENT_BASED)
    quiet = _signal(_series([100.0] * 30 + [101.0]), StrategyVariant.EVENT_BASED)

    assert up.direction == Side.LONG
    assert down.direction == Side.SHORT
    assert unchanged.direction == Side.FLAT
    assert quiet.direction == Side.FLAT


def test_default_needs_two_agreeing_sub_signals() -> None:
    # Steady uptrend: RSI overbought, MACD positive and close well above EMA
    signal = _signal(_series([100.0 * 1.01 ** i for i in range(40)]), StrategyVariant.DEFAULT)

    assert signal.direction != Side.FLAT
    assert signal.strength in (0.5, 0.75, 1.0)


@pytest.mark.parametrize("variant", ALL_VARIANTS)
def test_signals_are_deterministic_and_strength_is_bounded(variant) -> None:
    rng = np.random.RandomState(7)
    closes = 100 * np.exp(np.cumsum(rng.normal(0, 0.02, 120)))
    volumes = rng.uniform(500, 5000, 120)
    series = _series(closes, volumes)

    for j in range(20, len(series)):
        window = get_window(series, j, 21)
        first = generate_signal(window, get_indicators(window), variant)
        second = generate_signal(window, get_indicators(window), variant)
        assert first == second
        assert 0.0 <= first.strength <= 1.0


def test_variant_parse_maps_unknown_names_to_default() -> None:
    assert StrategyVariant.parse("mean-reversion") == StrategyVariant.MEAN_REVERSION
    assert StrategyVariant.parse("Event_Based") == StrategyVariant.EVENT_BASED
    assert StrategyVariant.parse("no-such-strategy") == StrategyVariant.DEFAULT
    assert StrategyVariant.parse(None) == StrategyVariant.DEFAULT
