"""
k-fold cross-validation of strategy variants.

For every fold:
1. Hold out the last ``tuning_fraction`` of the fold's training bars
2. Backtest each candidate variant on the remaining training bars
3. Keep the variant with the highest direction accuracy
4. Re-run the winner on the fold's validation bars (or its training bars)

Fold metrics are then averaged, and the best and worst folds (by accuracy)
are reported together with the spread of per-fold accuracy.
"""

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config.settings import BacktestConfig, Config, CrossValidationConfig
from ..data_collection.models import Series
from .cv_splitters import Fold, create_kfold_splits
from .engine import Backtester
from .errors import BacktestError, InvalidParameterError, ValidationFailure
from .metrics import ValidationMetrics
from .strategies import ALL_VARIANTS, StrategyVariant

logger = logging.getLogger(__name__)


@dataclass
class CrossValidationResults:
    folds: List[Fold]
    average_metrics: ValidationMetrics
    best_metrics: ValidationMetrics
    worst_metrics: ValidationMetrics
    standard_deviation: float
    best_fold: int = 0
    worst_fold: int = 0

    @property
    def num_folds(self) -> int:
        return len(self.folds)

    def summarize(self) -> Dict:
        variants = [f.variant.value for f in self.folds if f.variant is not None]
        return {
            'num_folds': self.num_folds,
            'avg_accuracy': self.average_metrics.accuracy,
            'avg_f1': self.average_metrics.f1_score,
            'avg_rmse': self.average_metrics.root_mean_square_error,
            'best_accuracy': self.best_metrics.accuracy,
            'worst_accuracy': self.worst_metrics.accuracy,
            'accuracy_std': self.standard_deviation,
            'variants': {v: variants.count(v) for v in sorted(set(variants))},
        }


def select_candidates(model_type: Optional[str]) -> List[StrategyVariant]:
    """A named variant as the sole candidate; empty or "all" means every variant."""
    if model_type is None or model_type.strip().lower() in ("", "all"):
        return list(ALL_VARIANTS)
    return [StrategyVariant.parse(model_type)]


def _tune_variant(
    training: Series,
    candidates: Sequence[StrategyVariant],
    backtest_config: BacktestConfig,
    tuning_fraction: float,
) -> StrategyVariant:
    held_out = int(len(training) * tuning_fraction)
    tuning_data = training[:len(training) - held_out]
    backtester = Backtester(backtest_config)

    best_variant = candidates[0]
    best_accuracy = 0.0
    for variant in candidates:
        try:
            result = backtester.run([tuning_data], variant=variant)
        except BacktestError as e:
            logger.debug(f"Tuning run for '{variant.value}' failed: {e}")
            continue
        accuracy = result.price_direction_metrics.accuracy
        if accuracy > best_accuracy:
            best_accuracy = accuracy
            best_variant = variant

    return best_variant


def evaluate_fold(
    fold: Fold,
    candidates: Sequence[StrategyVariant],
    backtest_config: BacktestConfig,
    cv_config: CrossValidationConfig,
) -> Fold:
    """Tune and score one fold; raises ValidationFailure if the fold cannot be scored."""
    variant = _tune_variant(fold.training_data, candidates, backtest_config, cv_config.tuning_fraction)

    data = fold.validation_data if cv_config.evaluate_on == "validation" else fold.training_data
    try:
        result = Backtester(backtest_config).run([data], variant=variant)
    except BacktestError as e:
        raise ValidationFailure(f"fold {fold.index + 1} evaluation failed: {e}") from e

    return replace(fold, metrics=result.combined_metrics, variant=variant)


def _evaluate_or_zero(
    fold: Fold,
    candidates: Sequence[StrategyVariant],
    backtest_config: BacktestConfig,
    cv_config: CrossValidationConfig,
) -> Fold:
    try:
        return evaluate_fold(fold, candidates, backtest_config, cv_config)
    except ValidationFailure as e:
        logger.warning(f"{e}; scoring fold as zero")
        return replace(fold, metrics=ValidationMetrics(), variant=candidates[0])


def aggregate_folds(folds: Sequence[Fold]) -> CrossValidationResults:
    metrics = [f.metrics or ValidationMetrics() for f in folds]
    names = ValidationMetrics.field_names()

    average = ValidationMetrics(
        **{name: float(np.mean([getattr(m, name) for m in metrics])) for name in names}
    )

    best = worst = 0
    for i, m in enumerate(metrics):
        if m.accuracy > metrics[best].accuracy:
            best = i
        if m.accuracy < metrics[worst].accuracy:
            worst = i

    accuracies = np.array([m.accuracy for m in metrics], dtype=float)

    return CrossValidationResults(
        folds=list(folds),
        average_metrics=average,
        best_metrics=replace(metrics[best]),
        worst_metrics=replace(metrics[worst]),
        standard_deviation=float(np.std(accuracies)),
        best_fold=best,
        worst_fold=worst,
    )


class CrossValidator:
    """
    k-fold strategy selection and validation.

    With ``max_workers`` set, folds run in a process pool; each worker builds
    its own Backtester and ledger, and results are collected in fold order.
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()

    def run(
        self,
        securities: Sequence[Series],
        k: Optional[int] = None,
        candidates: Optional[Sequence] = None,
    ) -> CrossValidationResults:
        cv_config = self.config.cross_validation
        try:
            cv_config.validate()
            self.config.backtest.validate()
        except ValueError as e:
            raise InvalidParameterError(f"invalid cross-validation config: {e}") from e
        k = k if k is not None else cv_config.folds

        if candidates:
            variants = [StrategyVariant.parse(c) for c in candidates]
        else:
            variants = [StrategyVariant.parse(c) for c in cv_config.candidates] or list(ALL_VARIANTS)

        folds = create_kfold_splits(securities, k)
        logger.info(
            f"Cross-validation: {k} folds over {len(securities)} securities, "
            f"candidates={[v.value for v in variants]}, evaluate_on={cv_config.evaluate_on}"
        )

        bt_config = self.config.backtest
        if cv_config.max_workers and cv_config.max_workers > 1:
            with ProcessPoolExecutor(max_workers=cv_config.max_workers) as executor:
                futures = [
                    executor.submit(_evaluate_or_zero, fold, variants, bt_config, cv_config)
                    for fold in folds
                ]
                evaluated = [future.result() for future in futures]
        else:
            evaluated = [_evaluate_or_zero(fold, variants, bt_config, cv_config) for fold in folds]

        for fold in evaluated:
            logger.info(f"  Fold {fold.index + 1}: '{fold.variant.value}' {fold.metrics}")

        results = aggregate_folds(evaluated)
        logger.info(
            f"Cross-validation done: avg accuracy {results.average_metrics.accuracy:.4f} "
            f"(std {results.standard_deviation:.4f})"
        )
        return results

    def print_summary(self, results: CrossValidationResults):
        """Print formatted summary."""
        summary = results.summarize()

        print("\n" + "=" * 60)
        print("CROSS-VALIDATION SUMMARY")
        print("=" * 60)
        print(f"Folds: {summary['num_folds']}")
        print(f"\nAccuracy:")
        print(f"  Average: {summary['avg_accuracy']:.4f}")
        print(f"  Best:    {summary['best_accuracy']:.4f} (fold {results.best_fold + 1})")
        print(f"  Worst:   {summary['worst_accuracy']:.4f} (fold {results.worst_fold + 1})")
        print(f"  Std:     {summary['accuracy_std']:.4f}")
        print(f"\nAvg F1:   {summary['avg_f1']:.4f}")
        print(f"Avg RMSE: {summary['avg_rmse']:.4f}")
        print(f"\nSelected variants:")
        for name, count in summary['variants'].items():
            print(f"  {name:<16} {count}")
        print("=" * 60)


def perform_cross_validation(
    securities: Sequence[Series],
    folds: int,
    model_type: Optional[str] = None,
    config: Optional[Config] = None,
) -> CrossValidationResults:
    """Cross-validate one named variant, or every variant for empty/"all"."""
    return CrossValidator(config).run(securities, folds, select_candidates(model_type))
