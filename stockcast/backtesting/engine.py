"""
Backtesting engine for the stockcast system.

Replays a strategy variant bar-by-bar over one or more securities:

1. Window of the last ``lookback`` bars plus the current bar
2. Indicator snapshot for that window
3. Strategy signal (direction, predicted price, strength)
4. Prediction recorded against the close ``horizon`` bars later
5. Position ledger marked and the signal applied at the current close

Any open position is force-closed at the last simulated bar of each security.
The engine is deterministic: identical inputs always give identical results.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from ..config.settings import BacktestConfig
from ..data_collection.models import DateLike, Series
from ..features.indicators import get_indicators, get_window
from .errors import BacktestTimeoutError, InsufficientDataError, InvalidParameterError
from .ledger import PositionLedger, Trade
from .metrics import (
    TradingPerformance,
    ValidationMetrics,
    calculate_direction_metrics,
    calculate_price_prediction_metrics,
    calculate_trading_performance,
)
from .strategies import ALL_VARIANTS, StrategyVariant, generate_signal

logger = logging.getLogger(__name__)

MIN_EVALUATION_BARS = 100

VariantLike = Union[StrategyVariant, str, None]


@dataclass
class BacktestResult:
    """Outcome of a multi-security backtest."""
    variant: StrategyVariant
    # Price-prediction metrics (MAE/RMSE/R2 and step accuracy)
    event_detection_metrics: ValidationMetrics
    price_direction_metrics: ValidationMetrics
    total_predictions: int
    correct_predictions: int
    profit_loss: float      # percent
    max_drawdown: float     # percent
    sharpe_ratio: float
    detailed_report: str = ""
    trades: List[Trade] = field(default_factory=list)
    performance: TradingPerformance = field(default_factory=TradingPerformance)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    securities_analyzed: int = 0

    @property
    def combined_metrics(self) -> ValidationMetrics:
        """Direction metrics with error metrics taken from the price predictions."""
        return ValidationMetrics(
            accuracy=self.price_direction_metrics.accuracy,
            precision=self.price_direction_metrics.precision,
            recall=self.price_direction_metrics.recall,
            f1_score=self.price_direction_metrics.f1_score,
            mean_absolute_error=self.event_detection_metrics.mean_absolute_error,
            root_mean_square_error=self.event_detection_metrics.root_mean_square_error,
            r2_score=self.event_detection_metrics.r2_score,
        )


@dataclass
class ModelEvaluation:
    """Train/test split evaluation of one variant on one series."""
    variant: StrategyVariant
    split_index: int
    train_performance: TradingPerformance
    test_performance: TradingPerformance

    @property
    def overfit_ratio(self) -> float:
        """Test Sharpe over train Sharpe (0 when train Sharpe is not positive)."""
        if self.train_performance.sharpe_ratio <= 0:
            return 0.0
        return self.test_performance.sharpe_ratio / self.train_performance.sharpe_ratio


@dataclass
class _Predictions:
    predicted: List[float] = field(default_factory=list)
    actual: List[float] = field(default_factory=list)
    current: List[float] = field(default_factory=list)

    def __len__(self):
        return len(self.predicted)


class Backtester:
    """Bar-by-bar strategy replay with a single position ledger per run."""

    def __init__(self, config: Optional[BacktestConfig] = None):
        self.config = config or BacktestConfig()
        try:
            self.config.validate()
        except ValueError as e:
            raise InvalidParameterError(f"invalid backtest config: {e}") from e

    def _replay(
        self,
        series: Series,
        first: int,
        last: int,
        variant: StrategyVariant,
        ledger: PositionLedger,
        predictions: Optional[_Predictions] = None,
    ) -> int:
        """Simulate bars first..last inclusive; returns the number of bars visited."""
        lookback = self.config.lookback_period
        horizon = self.config.prediction_horizon
        closes = series.closes()
        visited = 0

        for j in range(first, last + 1):
            bar = series[j]
            window = get_window(series, j, lookback + 1)
            indicators = get_indicators(window)
            signal = generate_signal(window, indicators, variant, lookback)

            if predictions is not None and j + horizon < len(series):
                predictions.predicted.append(signal.predicted_price)
                predictions.actual.append(closes[j + horizon])
                predictions.current.append(closes[j])

            ledger.mark(closes[j], closes[j - 1] if j > 0 else closes[j])

            # No new position on the final bar; whatever is open closes there
            if j == last:
                ledger.close_all(bar, j)
            else:
                ledger.apply(signal, bar, j, series.symbol)
            visited += 1

        return visited

    def run(
        self,
        securities: Sequence[Series],
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        variant: VariantLike = StrategyVariant.DEFAULT,
        deadline: Optional[float] = None,
    ) -> BacktestResult:
        """
        Backtest one variant over every security within [start_date, end_date].

        Securities with fewer than ``min_bars`` bars in range are skipped.
        ``deadline`` is a time.monotonic() value checked between securities.
        """
        if not securities:
            raise InvalidParameterError("no securities to backtest")

        variant = StrategyVariant.parse(variant)
        cfg = self.config
        ledger = PositionLedger(cfg)
        predictions = _Predictions()
        analyzed = 0
        first_date = last_date = None
        total_bars = 0

        logger.info(f"Backtesting '{variant.value}' on {len(securities)} securities")

        for series in securities:
            if deadline is not None and time.monotonic() > deadline:
                raise BacktestTimeoutError(f"backtest deadline exceeded before {series.symbol}", symbol=series.symbol)

            data = series.between(start_date, end_date)
            if len(data) < cfg.min_bars:
                logger.warning(f"Skipping {series.symbol}: {len(data)} bars in range, need {cfg.min_bars}")
                continue

            last = len(data) - cfg.prediction_horizon - 1
            if last < cfg.lookback_period:
                logger.warning(f"Skipping {series.symbol}: not enough bars for lookback and horizon")
                continue

            total_bars += self._replay(data, cfg.lookback_period, last, variant, ledger, predictions)
            analyzed += 1
            first_date = min(first_date, data.start_date) if first_date else data.start_date
            last_date = max(last_date, data.end_date) if last_date else data.end_date

        if len(predictions) == 0:
            raise InsufficientDataError("no predictions were generated for any security")

        price_metrics = calculate_price_prediction_metrics(predictions.predicted, predictions.actual)
        direction_metrics = calculate_direction_metrics(
            predictions.predicted, predictions.actual, predictions.current
        )
        performance = calculate_trading_performance(ledger, periods=total_bars)

        total = len(predictions)
        result = BacktestResult(
            variant=variant,
            event_detection_metrics=price_metrics,
            price_direction_metrics=direction_metrics,
            total_predictions=total,
            correct_predictions=int(round(direction_metrics.accuracy * total)),
            profit_loss=performance.total_return * 100.0,
            max_drawdown=performance.max_drawdown * 100.0,
            sharpe_ratio=performance.sharpe_ratio,
            trades=list(ledger.trades),
            performance=performance,
            start_date=str(start_date) if start_date is not None else first_date,
            end_date=str(end_date) if end_date is not None else last_date,
            securities_analyzed=analyzed,
        )
        result.detailed_report = format_backtest_report(result)

        logger.info(
            f"Backtest '{variant.value}' done: {total} predictions, "
            f"accuracy {direction_metrics.accuracy:.2%}, P&L {result.profit_loss:.2f}%"
        )
        return result

    def backtest_strategy(
        self,
        series: Series,
        start_index: int,
        end_index: int,
        variant: VariantLike = StrategyVariant.DEFAULT,
    ) -> Tuple[PositionLedger, TradingPerformance]:
        """Single-series run over bars start_index..end_index (inclusive)."""
        if series is None or len(series) == 0:
            raise InvalidParameterError("empty series")
        if start_index < 0 or start_index >= end_index or end_index >= len(series):
            raise InvalidParameterError(
                f"invalid index range [{start_index}, {end_index}] for {len(series)} bars",
                symbol=series.symbol,
            )

        ledger = PositionLedger(self.config)
        bars = self._replay(series, start_index, end_index, StrategyVariant.parse(variant), ledger)
        return ledger, calculate_trading_performance(ledger, periods=bars)

    def evaluate_model(
        self,
        series: Series,
        train_fraction: float = 0.7,
        variant: VariantLike = StrategyVariant.DEFAULT,
    ) -> ModelEvaluation:
        """Backtest the first ``train_fraction`` of a series and then the rest."""
        if not 0 < train_fraction < 1:
            raise InvalidParameterError(f"train_fraction must be in (0, 1), got {train_fraction}")
        if len(series) < MIN_EVALUATION_BARS:
            raise InsufficientDataError(
                f"{series.symbol} has {len(series)} bars, need {MIN_EVALUATION_BARS}", symbol=series.symbol
            )

        variant = StrategyVariant.parse(variant)
        split = int(len(series) * train_fraction)
        _, train_perf = self.backtest_strategy(series, 0, split - 1, variant)
        _, test_perf = self.backtest_strategy(series, split, len(series) - 1, variant)

        evaluation = ModelEvaluation(
            variant=variant, split_index=split, train_performance=train_perf, test_performance=test_perf
        )
        logger.info(f"{series.symbol} '{variant.value}': train {train_perf} || test {test_perf}")
        if train_perf.sharpe_ratio > 0 and evaluation.overfit_ratio < 0.5:
            logger.warning(
                f"{series.symbol} '{variant.value}': test Sharpe keeps only "
                f"{evaluation.overfit_ratio:.0%} of train Sharpe"
            )
        return evaluation

    def optimize_strategy(
        self,
        series: Series,
        start_index: int,
        end_index: int,
        candidates: Optional[Sequence[VariantLike]] = None,
    ) -> Tuple[StrategyVariant, TradingPerformance]:
        """Variant with the highest Sharpe ratio on the index range; ties keep the earlier one."""
        candidates = [StrategyVariant.parse(c) for c in candidates] if candidates else list(ALL_VARIANTS)

        best_variant = None
        best_perf = None
        for variant in candidates:
            _, perf = self.backtest_strategy(series, start_index, end_index, variant)
            logger.debug(f"{series.symbol} '{variant.value}': sharpe={perf.sharpe_ratio:.3f}")
            if best_perf is None or perf.sharpe_ratio > best_perf.sharpe_ratio:
                best_variant, best_perf = variant, perf

        return best_variant, best_perf


def format_backtest_report(result: BacktestResult) -> str:
    perf = result.performance
    direction = result.price_direction_metrics
    price = result.event_detection_metrics
    hit_rate = result.correct_predictions / result.total_predictions * 100.0 if result.total_predictions else 0.0

    lines = [
        "Backtesting Report",
        "=================",
        f"Period: {result.start_date} to {result.end_date}",
        f"Strategy: {result.variant.value}",
        f"Stocks analyzed: {result.securities_analyzed}",
        f"Total predictions: {result.total_predictions}",
        f"Correct predictions: {result.correct_predictions} ({hit_rate:.1f}%)",
        "",
        "Trading Performance",
        "------------------",
        f"Initial Capital: ${perf.initial_capital:.2f}",
        f"Final Capital: ${perf.final_capital:.2f}",
        f"Profit/Loss: {result.profit_loss:.1f}%",
        f"Total Trades: {perf.num_trades}",
        f"Profitable Trades: {perf.profitable_trades} ({perf.win_rate * 100.0:.1f}%)",
        f"Maximum Drawdown: {result.max_drawdown:.1f}%",
        f"Sharpe Ratio: {result.sharpe_ratio:.2f}",
        "",
        "Prediction Quality Metrics",
        "-------------------------",
        f"Direction Accuracy: {direction.accuracy * 100.0:.2f}%",
        f"Direction Precision: {direction.precision * 100.0:.2f}%",
        f"Direction Recall: {direction.recall * 100.0:.2f}%",
        f"Direction F1 Score: {direction.f1_score:.2f}",
        f"Mean Absolute Error: {price.mean_absolute_error:.4f}",
        f"Root Mean Square Error: {price.root_mean_square_error:.4f}",
        f"R-squared: {price.r2_score:.4f}",
    ]
    return "\n".join(lines) + "\n"


def perform_backtest(
    securities: Sequence[Series],
    start_date: Optional[DateLike] = None,
    end_date: Optional[DateLike] = None,
    strategy_name: Optional[str] = None,
    config: Optional[BacktestConfig] = None,
) -> BacktestResult:
    """Run a backtest for a strategy given by its external name."""
    return Backtester(config).run(securities, start_date, end_date, StrategyVariant.parse(strategy_name))
