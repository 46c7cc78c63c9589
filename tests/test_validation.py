import numpy as np
import pandas as pd
import pytest

from stockcast.backtesting.cv_splitters import Fold
from stockcast.backtesting.errors import InvalidParameterError
from stockcast.backtesting.metrics import ValidationMetrics
from stockcast.backtesting.strategies import StrategyVariant
from stockcast.backtesting.validation import (
    CrossValidator,
    aggregate_folds,
    perform_cross_validation,
    select_candidates,
)
from stockcast.config.settings import Config
from stockcast.data_collection.models import Bar, Series


def _series(symbol: str, n: int = 60, seed: int = 0) -> Series:
    rng = np.random.RandomState(seed)
    close = 50 * np.exp(np.cumsum(rng.normal(0.0, 0.02, n)))
    volume = rng.uniform(1000, 5000, n)
    dates = pd.bdate_range("2022-06-01", periods=n)
    bars = [
        Bar(str(d.date()), float(c), float(c * 1.01), float(c * 0.99), float(c), float(v))
        for d, c, v in zip(dates, close, volume)
    ]
    return Series(symbol, bars)


def _universe():
    return [_series("AAA", 60, 1), _series("BBB", 60, 2), _series("CCC", 60, 3)]


def _fold(index: int, accuracy: float) -> Fold:
    empty = Series("EMPTY", ())
    return Fold(index, empty, empty, (), (), metrics=ValidationMetrics(accuracy=accuracy, f1_score=accuracy / 2))


def test_cross_validation_end_to_end() -> None:
    results = CrossValidator().run(_universe(), 3)

    assert results.num_folds == 3
    accuracies = [f.metrics.accuracy for f in results.folds]
    assert results.average_metrics.accuracy == pytest.approx(np.mean(accuracies))
    assert results.standard_deviation == pytest.approx(np.std(accuracies))
    assert results.worst_metrics.accuracy <= results.average_metrics.accuracy <= results.best_metrics.accuracy
    assert all(f.variant in StrategyVariant for f in results.folds)
    assert [f.index for f in results.folds] == [0, 1, 2]


def test_single_model_type_is_used_for_every_fold() -> None:
    results = perform_cross_validation(_universe(), 3, "momentum")

    assert all(f.variant == StrategyVariant.MOMENTUM for f in results.folds)


def test_evaluating_on_training_data() -> None:
    config = Config()
    config.cross_validation.evaluate_on = "training"

    results = CrossValidator(config).run(_universe(), 3, ["breakout", "mean-reversion"])

    assert all(f.variant in (StrategyVariant.BREAKOUT, StrategyVariant.MEAN_REVERSION) for f in results.folds)
    assert all(f.metrics is not None for f in results.folds)


def test_unscorable_folds_are_zeroed_not_fatal() -> None:
    # 180 bars over 10 folds leaves 18 validation bars, under the 30-bar minimum
    results = CrossValidator().run(_universe(), 10)

    assert results.num_folds == 10
    assert all(f.metrics == ValidationMetrics() for f in results.folds)
    assert results.average_metrics == ValidationMetrics()
    assert results.standard_deviation == 0.0


def test_k_of_one_aborts() -> None:
    with pytest.raises(InvalidParameterError):
        CrossValidator().run(_universe(), 1)


def test_aggregation_picks_first_extreme_fold() -> None:
    folds = [_fold(0, 0.5), _fold(1, 0.7), _fold(2, 0.7), _fold(3, 0.2), _fold(4, 0.2)]

    results = aggregate_folds(folds)

    assert results.best_fold == 1
    assert results.worst_fold == 3
    assert results.best_metrics.accuracy == 0.7
    assert results.worst_metrics.accuracy == 0.2
    assert results.average_metrics.accuracy == pytest.approx(0.46)
    assert results.average_metrics.f1_score == pytest.approx(0.23)
    assert results.standard_deviation == pytest.approx(np.std([0.5, 0.7, 0.7, 0.2, 0.2]))


def test_select_candidates() -> None:
    assert len(select_candidates("")) == 5
    assert len(select_candidates("ALL")) == 5
    assert len(select_candidates(None)) == 5
    assert select_candidates("event-based") == [StrategyVariant.EVENT_BASED]


def test_process_pool_matches_serial_run() -> None:
    universe = [_series("AAA", 120, 4), _series("BBB", 120, 5)]
    parallel_config = Config()
    parallel_config.cross_validation.max_workers = 2

    serial = CrossValidator(Config()).run(universe, 3)
    parallel = CrossValidator(parallel_config).run(universe, 3)

    assert [f.index for f in parallel.folds] == [0, 1, 2]
    assert [f.metrics for f in parallel.folds] == [f.metrics for f in serial.folds]
    assert [f.variant for f in parallel.folds] == [f.variant for f in serial.folds]
    assert parallel.average_metrics == serial.average_metrics
    assert parallel.best_fold == serial.best_fold


def test_invalid_cross_validation_config_is_rejected() -> None:
    config = Config()
    config.cross_validation.evaluate_on = "holdout"

    with pytest.raises(InvalidParameterError):
        CrossValidator(config).run(_universe(), 3)
