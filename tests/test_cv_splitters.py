import pytest

from stockcast.backtesting.cv_splitters import create_kfold_splits, fold_sizes
from stockcast.backtesting.errors import InsufficientDataError, InvalidParameterError
from stockcast.data_collection.models import Bar, Series


def _series(symbol: str, n: int) -> Series:
    bars = [
        Bar(date=f"2024-01-{i + 1:02d}", open=100.0 + i, high=101.0 + i, low=99.0 + i, close=100.0 + i, volume=1000.0)
        for i in range(n)
    ]
    return Series(symbol, bars)


def _all_keys(securities):
    return {(s.symbol, i) for s in securities for i in range(len(s))}


def test_three_securities_of_ten_bars_split_into_five_folds_of_six() -> None:
    securities = [_series("AAA", 10), _series("BBB", 10), _series("CCC", 10)]

    folds = create_kfold_splits(securities, 5)

    assert len(folds) == 5
    assert [f.validation_size for f in folds] == [6, 6, 6, 6, 6]
    assert all(f.training_size == 24 for f in folds)


def test_validation_blocks_partition_every_bar_exactly_once() -> None:
    securities = [_series("AAA", 11), _series("BBB", 7), _series("CCC", 13)]
    everything = _all_keys(securities)

    folds = create_kfold_splits(securities, 4)

    seen = []
    for fold in folds:
        seen.extend(fold.validation_keys)
        assert set(fold.training_keys).isdisjoint(fold.validation_keys)
        assert set(fold.training_keys) | set(fold.validation_keys) == everything
    assert len(seen) == len(everything)
    assert set(seen) == everything


def test_fold_sizes_differ_by_at_most_one_and_larger_folds_come_first() -> None:
    securities = [_series("AAA", 16), _series("BBB", 15)]

    sizes = [f.validation_size for f in create_kfold_splits(securities, 5)]

    assert sizes == [7, 6, 6, 6, 6]
    assert max(sizes) - min(sizes) <= 1
    assert fold_sizes(10, 3) == [4, 3, 3]


def test_validation_cursor_walks_securities_in_symbol_order_across_boundaries() -> None:
    securities = [_series("BBB", 10), _series("AAA", 10), _series("CCC", 10)]

    folds = create_kfold_splits(securities, 5)

    assert folds[0].validation_keys[0] == ("AAA", 0)
    assert folds[1].validation_keys == (
        ("AAA", 6), ("AAA", 7), ("AAA", 8), ("AAA", 9), ("BBB", 0), ("BBB", 1),
    )


def test_fold_series_carry_the_bars_named_by_their_keys() -> None:
    securities = [_series("AAA", 10), _series("BBB", 10)]
    by_symbol = {s.symbol: s for s in securities}

    for fold in create_kfold_splits(securities, 3):
        assert len(fold.validation_data) == fold.validation_size
        for (symbol, idx), bar in zip(fold.validation_keys, fold.validation_data):
            assert bar is by_symbol[symbol][idx]
        for (symbol, idx), bar in zip(fold.training_keys, fold.training_data):
            assert bar is by_symbol[symbol][idx]


@pytest.mark.parametrize("k", [1, 0, -3])
def test_k_of_one_or_less_is_rejected(k: int) -> None:
    with pytest.raises(InvalidParameterError):
        create_kfold_splits([_series("AAA", 10)], k)


def test_more_folds_than_bars_is_rejected() -> None:
    with pytest.raises(InsufficientDataError):
        create_kfold_splits([_series("AAA", 3), _series("BBB", 2)], 6)


def test_no_securities_is_rejected() -> None:
    with pytest.raises(InvalidParameterError):
        create_kfold_splits([], 3)
