import numpy as np
import pytest

from stockcast.backtesting.errors import InvalidParameterError
from stockcast.backtesting.ledger import PositionLedger
from stockcast.backtesting.metrics import max_drawdown
from stockcast.backtesting.strategies import Side, Signal
from stockcast.config.settings import BacktestConfig
from stockcast.data_collection.models import Bar


def _bar(close: float, day: int = 1) -> Bar:
    return Bar(date=f"2024-02-{day:02d}", open=close, high=close, low=close, close=close, volume=1000.0)


def _ledger(**overrides) -> PositionLedger:
    params = dict(initial_capital=10000.0, position_size=0.1, trading_cost=0.001)
    params.update(overrides)
    return PositionLedger(BacktestConfig(**params))


def test_long_round_trip_adds_exactly_99() -> None:
    ledger = _ledger()

    assert ledger.apply(Signal(Side.LONG, 105.0, 1.0), _bar(100.0), 0, "AAA") == []
    trades = ledger.close_all(_bar(110.0, 2), 5)

    assert len(trades) == 1
    assert trades[0].trade_return == pytest.approx(0.099)
    assert trades[0].profit == pytest.approx(99.0)
    assert ledger.capital == pytest.approx(10099.0)
    assert ledger.side == Side.FLAT


def test_opposite_signal_closes_then_opens() -> None:
    ledger = _ledger()
    ledger.apply(Signal(Side.LONG, 101.0, 1.0), _bar(100.0), 0, "AAA")

    closed = ledger.apply(Signal(Side.SHORT, 99.0, 1.0), _bar(110.0, 2), 3, "AAA")

    assert len(closed) == 1
    assert closed[0].side == Side.LONG
    assert (closed[0].entry_index, closed[0].exit_index) == (0, 3)
    assert ledger.side == Side.SHORT
    assert ledger.position.entry_price == 110.0
    assert ledger.position.entry_index == 3


def test_short_trade_return_uses_side_sign() -> None:
    ledger = _ledger()
    ledger.apply(Signal(Side.SHORT, 95.0, 1.0), _bar(100.0), 0)

    trade = ledger.close_all(_bar(90.0, 2), 1)[0]

    assert trade.trade_return == pytest.approx(0.1 - 0.001)


def test_short_signal_without_shorting_goes_flat() -> None:
    ledger = _ledger(allow_short=False)

    assert ledger.apply(Signal(Side.SHORT, 95.0, 1.0), _bar(100.0), 0) == []
    assert ledger.side == Side.FLAT

    ledger.apply(Signal(Side.LONG, 105.0, 1.0), _bar(100.0, 2), 1)
    closed = ledger.apply(Signal(Side.SHORT, 95.0, 1.0), _bar(98.0, 3), 2)

    assert len(closed) == 1
    assert ledger.side == Side.FLAT


def test_weak_same_side_and_flat_signals_do_nothing() -> None:
    ledger = _ledger(entry_threshold=0.5)

    assert ledger.apply(Signal(Side.LONG, 101.0, 0.25), _bar(100.0), 0) == []
    assert ledger.side == Side.FLAT

    ledger.apply(Signal(Side.LONG, 101.0, 0.75), _bar(100.0), 1)
    assert ledger.apply(Signal(Side.LONG, 102.0, 1.0), _bar(101.0), 2) == []
    assert ledger.apply(Signal.flat(101.0), _bar(101.0), 3) == []
    assert ledger.side == Side.LONG
    assert ledger.total_trades == 0


def test_mark_records_position_return_or_zero() -> None:
    ledger = _ledger()

    assert ledger.mark(110.0, 100.0) == 0.0
    ledger.apply(Signal(Side.SHORT, 95.0, 1.0), _bar(100.0), 0)
    assert ledger.mark(110.0, 100.0) == pytest.approx(-0.1)
    assert ledger.daily_returns == [0.0, pytest.approx(-0.1)]


def test_one_trade_per_close_and_profitable_never_exceeds_total() -> None:
    rng = np.random.RandomState(3)
    ledger = _ledger()
    sides = [Side.LONG, Side.SHORT, Side.FLAT]

    for i in range(200):
        side = sides[rng.randint(0, 3)]
        price = 100.0 + rng.normal(0, 5)
        ledger.apply(Signal(side, price, rng.uniform(0, 1)), _bar(price), i)
    ledger.close_all(_bar(100.0), 200)

    assert len(ledger.trades) == ledger.total_trades
    assert len(ledger.trade_returns) == ledger.total_trades
    assert 0 <= ledger.profitable_trades <= ledger.total_trades
    assert ledger.profitable_trades == sum(1 for t in ledger.trades if t.profit > 0)


def test_drawdown_resets_trough_on_new_peak() -> None:
    ledger = _ledger(trading_cost=0.0, position_size=1.0)

    ledger.apply(Signal(Side.LONG, 0.0, 1.0), _bar(100.0), 0)
    ledger.close_all(_bar(120.0), 1)       # 10000 -> 12000 (new peak)
    ledger.apply(Signal(Side.LONG, 0.0, 1.0), _bar(100.0), 2)
    ledger.close_all(_bar(75.0), 3)        # 12000 -> 9000

    assert ledger.peak_capital == pytest.approx(12000.0)
    assert ledger.trough_capital == pytest.approx(9000.0)
    assert ledger.max_drawdown == pytest.approx(0.25)
    assert ledger.equity_curve == pytest.approx([10000.0, 12000.0, 9000.0])
    assert max_drawdown(ledger.equity_curve) == pytest.approx(ledger.max_drawdown)


def test_close_all_when_flat_is_a_no_op() -> None:
    ledger = _ledger()

    assert ledger.close_all(_bar(100.0), 0) == []
    assert ledger.capital == 10000.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"position_size": 0.0},
        {"position_size": 1.5},
        {"initial_capital": -1.0},
        {"trading_cost": -0.01},
        {"entry_threshold": 2.0},
    ],
)
def test_impossible_config_is_rejected(overrides) -> None:
    with pytest.raises(InvalidParameterError):
        _ledger(**overrides)
