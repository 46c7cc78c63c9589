#!/usr/bin/env python3
"""
Backtest and cross-validation runner.

Reads one CSV of daily OHLCV bars per symbol (``<SYMBOL>.csv``) from a data
directory and either backtests strategy variants over it or cross-validates
the variant selection.

Usage:
    stockcast-backtest backtest --data-dir ./data --strategy momentum
    stockcast-backtest backtest --data-dir ./data --strategy all --save results.txt
    stockcast-backtest cv --data-dir ./data --folds 5 --model-type all
    stockcast-backtest regression --data-dir ./data --baseline baseline_metrics.txt
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .backtesting.engine import Backtester, BacktestResult
from .backtesting.errors import BacktestError
from .backtesting.reports import (
    export_metrics_table,
    format_validation_metrics,
    generate_validation_report,
    perform_regression_test,
    save_backtest_results,
    save_validation_results,
)
from .backtesting.strategies import ALL_VARIANTS, StrategyVariant
from .backtesting.validation import CrossValidator, select_candidates
from .config.settings import Config
from .data_collection.loader import load_universe

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = "./data"


def print_variant_table(results: List[BacktestResult]):
    print(f"\n  {'Strategy':<16} {'Acc':>7} {'F1':>7} {'P&L':>9} {'Sharpe':>8} {'MaxDD':>8} {'Trades':>7} {'Win%':>6}")
    print(f"  {'-'*74}")
    for r in results:
        d = r.price_direction_metrics
        p = r.performance
        print(f"  {r.variant.value:<16} {d.accuracy:>7.4f} {d.f1_score:>7.4f} {r.profit_loss:>8.2f}% "
              f"{r.sharpe_ratio:>8.2f} {r.max_drawdown:>7.2f}% {p.num_trades:>7} {p.win_rate*100:>5.1f}%")

    if len(results) > 1:
        best = max(results, key=lambda x: x.price_direction_metrics.accuracy)
        print(f"\n  BEST: {best.variant.value} (accuracy {best.price_direction_metrics.accuracy:.4f})")


def cmd_backtest(args, config: Config, securities) -> int:
    if args.strategy.lower() == "all":
        variants = list(ALL_VARIANTS)
    else:
        variants = [StrategyVariant.parse(args.strategy)]

    backtester = Backtester(config.backtest)
    results = []
    for variant in variants:
        try:
            results.append(backtester.run(securities, args.start, args.end, variant))
        except BacktestError as e:
            logger.warning(f"Backtest '{variant.value}' failed: {e}")

    if not results:
        print("No backtest produced results.")
        return 1

    print("=" * 80)
    print("BACKTEST RESULTS")
    print("=" * 80)
    print_variant_table(results)

    if args.report:
        for r in results:
            print()
            print(r.detailed_report)

    if args.save:
        save_path = Path(args.save)
        for r in results:
            path = save_path if len(results) == 1 else save_path.with_name(f"{save_path.stem}_{r.variant.value}{save_path.suffix}")
            save_backtest_results(r, path)
            print(f"Saved {r.variant.value} results to {path}")

    if args.export:
        export_metrics_table([r.combined_metrics for r in results], [r.variant.value for r in results], args.export)
        print(f"Metrics table written to {args.export}")

    return 0


def cmd_cv(args, config: Config, securities) -> int:
    cv = config.cross_validation
    cv.evaluate_on = args.evaluate_on
    if args.workers:
        cv.max_workers = args.workers

    validator = CrossValidator(config)
    results = validator.run(securities, args.folds, select_candidates(args.model_type))
    validator.print_summary(results)

    print()
    print(generate_validation_report(results.average_metrics, f"{args.model_type or 'all'} ({results.num_folds}-fold average)"))
    print(format_validation_metrics(results.best_metrics, "Best Fold"))
    print(format_validation_metrics(results.worst_metrics, "Worst Fold"))

    if args.save:
        save_validation_results(results.average_metrics, args.save)
        print(f"\nAverage metrics saved to {args.save}")

    if args.export:
        metrics = [f.metrics for f in results.folds]
        labels = [f"fold_{f.index + 1}_{f.variant.value}" for f in results.folds]
        export_metrics_table(metrics, labels, args.export)
        print(f"Per-fold table written to {args.export}")

    return 0


def cmd_regression(args, config: Config, securities) -> int:
    report = perform_regression_test(args.baseline, securities, args.strategy, config)

    print(format_validation_metrics(report.baseline, "Baseline"))
    print(format_validation_metrics(report.current, "Current"))
    if report.passed:
        print("\nRegression test PASSED")
        return 0

    print("\nRegression test FAILED:")
    for failure in report.failures:
        print(f"  {failure}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stock strategy backtesting and cross-validation")
    parser.add_argument("--data-dir", type=str, default=DEFAULT_DATA_DIR)
    parser.add_argument("--symbols", type=str, nargs="+", help="Specific symbols to load")

    sub = parser.add_subparsers(dest="command", required=True)

    bt = sub.add_parser("backtest", help="Backtest one or all strategy variants")
    bt.add_argument("--strategy", type=str, default="default", help="Variant name or 'all'")
    bt.add_argument("--start", type=str, help="First date (YYYY-MM-DD)")
    bt.add_argument("--end", type=str, help="Last date (YYYY-MM-DD)")
    bt.add_argument("--report", action="store_true", help="Print the detailed report")
    bt.add_argument("--save", type=str, help="Save results to this file")
    bt.add_argument("--export", type=str, help="Write a CSV metrics table")

    cv = sub.add_parser("cv", help="k-fold cross-validation of strategy selection")
    cv.add_argument("--folds", type=int, help="Number of folds (default: STOCKCAST_CV_FOLDS or 5)")
    cv.add_argument("--model-type", type=str, default="all", help="Variant name or 'all'")
    cv.add_argument("--evaluate-on", choices=["validation", "training"], default="validation")
    cv.add_argument("--workers", type=int, help="Run folds in a process pool")
    cv.add_argument("--save", type=str, help="Save average metrics to this file")
    cv.add_argument("--export", type=str, help="Write a per-fold CSV table")

    reg = sub.add_parser("regression", help="Compare a fresh backtest against baseline metrics")
    reg.add_argument("--baseline", type=str, required=True)
    reg.add_argument("--strategy", type=str, default="default")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = Config.from_environment()
    logging.basicConfig(level=config.logging.level.upper(), format=config.logging.format)

    securities = load_universe(Path(args.data_dir), args.symbols)
    if not securities:
        print(f"No price files found in {args.data_dir}")
        return 1

    print(f"Loaded {len(securities)} securities: {[s.symbol for s in securities]}")

    commands = {
        "backtest": cmd_backtest,
        "cv": cmd_cv,
        "regression": cmd_regression,
    }
    try:
        return commands[args.command](args, config, securities)
    except BacktestError as e:
        logger.error(f"{args.command} failed [{e.code}]: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
