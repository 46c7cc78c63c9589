"""
Text reports, result persistence and regression checks.

Metrics are stored as plain ``Label: value`` lines, one per metric with four
decimals, under a short header. Backtest results use the same line format
grouped into indented sections, followed by the free-form detailed report.
"""

import logging
import re
import time
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pandas as pd

from ..config.settings import Config
from ..data_collection.models import Series
from .engine import Backtester, BacktestResult
from .errors import InvalidParameterError
from .metrics import TradingPerformance, ValidationMetrics
from .strategies import StrategyVariant

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

VALIDATION_HEADER = "Stockcast Validation Metrics"
BACKTEST_HEADER = "Stockcast Backtest Results"

METRIC_LABELS = [
    ("Accuracy", "accuracy"),
    ("Precision", "precision"),
    ("Recall", "recall"),
    ("F1 Score", "f1_score"),
    ("Mean Absolute Error", "mean_absolute_error"),
    ("Root Mean Square Error", "root_mean_square_error"),
    ("R-squared", "r2_score"),
]

# Every spelling the loaders accept, lower-cased
_LABEL_ALIASES = {
    "accuracy": "accuracy",
    "precision": "precision",
    "recall": "recall",
    "f1 score": "f1_score",
    "mean absolute error": "mean_absolute_error",
    "root mean square error": "root_mean_square_error",
    "root mean sq. error": "root_mean_square_error",
    "r-squared": "r2_score",
    "r² score": "r2_score",
    "r2 score": "r2_score",
}

_LINE = re.compile(r"^\s*([^:]+):\s*(.*)$")


def _parse_number(raw: str) -> float:
    token = raw.strip().split()[0] if raw.strip() else ""
    return float(token.rstrip("%").lstrip("$"))


def _header(title: str) -> List[str]:
    return [title, "=" * len(title), f"Timestamp: {int(time.time())}", ""]


# =============================================================================
# Text reports
# =============================================================================

def generate_validation_report(metrics: ValidationMetrics, model_name: Optional[str] = None) -> str:
    if metrics is None:
        raise InvalidParameterError("metrics must not be None")
    lines = [
        f"Validation Report for {model_name or 'Unknown Model'}",
        "===========================",
        f"Accuracy:             {metrics.accuracy:.4f}",
        f"Precision:            {metrics.precision:.4f}",
        f"Recall:               {metrics.recall:.4f}",
        f"F1 Score:             {metrics.f1_score:.4f}",
        f"Mean Absolute Error:  {metrics.mean_absolute_error:.4f}",
        f"Root Mean Sq. Error:  {metrics.root_mean_square_error:.4f}",
        f"R-squared:            {metrics.r2_score:.4f}",
    ]
    return "\n".join(lines) + "\n"


def format_validation_metrics(metrics: ValidationMetrics, title: Optional[str] = None) -> str:
    """Indented metric block for console output."""
    lines = [f"{title or 'Validation Metrics'}:"]
    for label, name in METRIC_LABELS:
        lines.append(f"  {label + ':':<24}{getattr(metrics, name):.4f}")
    return "\n".join(lines)


# =============================================================================
# Validation metrics files
# =============================================================================

def save_validation_results(metrics: ValidationMetrics, path: PathLike) -> Path:
    if metrics is None:
        raise InvalidParameterError("metrics must not be None")
    path = Path(path)
    lines = _header(VALIDATION_HEADER)
    for label, name in METRIC_LABELS:
        lines.append(f"{label + ':':<24}{getattr(metrics, name):.4f}")

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")

    logger.info(f"Validation metrics saved to {path}")
    return path


def _read_metric_lines(lines: Sequence[str]) -> Dict[str, float]:
    values = {}
    for line in lines:
        match = _LINE.match(line)
        if not match:
            continue
        name = _LABEL_ALIASES.get(match.group(1).strip().lower())
        if name is None or not match.group(2).strip():
            continue
        values[name] = _parse_number(match.group(2))
    return values


def load_validation_results(path: PathLike) -> ValidationMetrics:
    """Parse a metrics file; plain and two-space-indented lines are both accepted."""
    with open(path, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()

    values = _read_metric_lines(lines)
    if not values:
        raise InvalidParameterError(f"no validation metrics found in {path}")
    return ValidationMetrics(**values)


# =============================================================================
# Backtest result files
# =============================================================================

def save_backtest_results(result: BacktestResult, path: PathLike) -> Path:
    if result is None:
        raise InvalidParameterError("result must not be None")
    path = Path(path)
    events = result.event_detection_metrics
    direction = result.price_direction_metrics
    hit_rate = result.correct_predictions / result.total_predictions * 100.0 if result.total_predictions else 0.0

    lines = _header(BACKTEST_HEADER)
    lines += [
        "Event Detection Metrics:",
        f"  Accuracy:  {events.accuracy:.4f}",
        f"  Precision: {events.precision:.4f}",
        f"  Recall:    {events.recall:.4f}",
        f"  F1 Score:  {events.f1_score:.4f}",
        "",
        "Event Impact Metrics:",
        f"  Mean Absolute Error:    {events.mean_absolute_error:.4f}",
        f"  Root Mean Square Error: {events.root_mean_square_error:.4f}",
        f"  R-squared:              {events.r2_score:.4f}",
        "",
        "Price Direction Metrics:",
        f"  Accuracy:  {direction.accuracy:.4f}",
        f"  Precision: {direction.precision:.4f}",
        f"  Recall:    {direction.recall:.4f}",
        f"  F1 Score:  {direction.f1_score:.4f}",
        "",
        "Overall Results:",
        f"  Strategy:              {result.variant.value}",
        f"  Total Predictions:     {result.total_predictions}",
        f"  Correct Predictions:   {result.correct_predictions} ({hit_rate:.1f}%)",
        f"  Profit/Loss:           {result.profit_loss:.2f}%",
        f"  Maximum Drawdown:      {result.max_drawdown:.2f}%",
        f"  Sharpe Ratio:          {result.sharpe_ratio:.4f}",
        "",
    ]
    if result.detailed_report:
        lines += ["Detailed Report:", "---------------", result.detailed_report.rstrip("\n")]

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")

    logger.info(f"Backtest results saved to {path}")
    return path


def load_backtest_results(path: PathLike) -> BacktestResult:
    """
    Parse a file written by save_backtest_results.

    Trades and the full TradingPerformance are not persisted; the loaded
    result carries an empty trade list and default performance.
    """
    with open(path, "r", encoding="utf-8") as f:
        lines = f.read().splitlines()

    sections: Dict[str, List[str]] = {}
    report_lines: List[str] = []
    current = None
    in_report = False

    for line in lines:
        if in_report:
            report_lines.append(line)
            continue
        stripped = line.strip()
        if stripped == "Detailed Report:":
            in_report = True
            continue
        if stripped.endswith(":") and not line.startswith(" "):
            current = stripped[:-1]
            sections[current] = []
        elif current and stripped:
            sections[current].append(line)

    if report_lines and set(report_lines[0].strip()) == {"-"}:
        report_lines = report_lines[1:]

    if "Overall Results" not in sections:
        raise InvalidParameterError(f"no backtest results found in {path}")

    events = _read_metric_lines(sections.get("Event Detection Metrics", []))
    events.update(_read_metric_lines(sections.get("Event Impact Metrics", [])))
    direction = _read_metric_lines(sections.get("Price Direction Metrics", []))

    overall = {}
    for line in sections["Overall Results"]:
        match = _LINE.match(line)
        if match:
            overall[match.group(1).strip().lower()] = match.group(2).strip()

    return BacktestResult(
        variant=StrategyVariant.parse(overall.get("strategy")),
        event_detection_metrics=ValidationMetrics(**events),
        price_direction_metrics=ValidationMetrics(**direction),
        total_predictions=int(_parse_number(overall.get("total predictions", "0"))),
        correct_predictions=int(_parse_number(overall.get("correct predictions", "0"))),
        profit_loss=_parse_number(overall.get("profit/loss", "0")),
        max_drawdown=_parse_number(overall.get("maximum drawdown", "0")),
        sharpe_ratio=_parse_number(overall.get("sharpe ratio", "0")),
        detailed_report="\n".join(report_lines).strip("\n") + ("\n" if report_lines else ""),
        trades=[],
        performance=TradingPerformance(),
    )


# =============================================================================
# Tables
# =============================================================================

def export_metrics_table(
    metrics: Sequence[ValidationMetrics],
    labels: Sequence[str],
    path: Optional[PathLike] = None,
) -> pd.DataFrame:
    """One row per label with every metric as a column; written as CSV when path is given."""
    if len(metrics) != len(labels):
        raise InvalidParameterError(f"{len(metrics)} metric sets but {len(labels)} labels")

    columns = [f.name for f in fields(ValidationMetrics)]
    df = pd.DataFrame([m.to_dict() for m in metrics], index=pd.Index(list(labels), name="label"), columns=columns)

    if path is not None:
        df.to_csv(path, float_format="%.6f")
        logger.info(f"Metrics table ({len(df)} rows) written to {path}")
    return df


# =============================================================================
# Regression check
# =============================================================================

HIGHER_IS_BETTER = ("accuracy", "precision", "recall", "f1_score", "r2_score")
LOWER_IS_BETTER = ("mean_absolute_error", "root_mean_square_error")


@dataclass
class RegressionReport:
    passed: bool
    current: ValidationMetrics
    baseline: ValidationMetrics
    failures: List[str] = field(default_factory=list)
    results_path: Optional[Path] = None


def compare_to_baseline(
    current: ValidationMetrics,
    baseline: ValidationMetrics,
    min_ratio: float = 0.95,
    max_error_ratio: float = 1.05,
) -> List[str]:
    """
    Names and values of every metric that regressed past its tolerance.

    Tolerances are relative to the baseline's magnitude, so a negative
    baseline (R-squared can be) still allows the same slack below it.
    """
    failures = []
    for name in HIGHER_IS_BETTER:
        cur, base = getattr(current, name), getattr(baseline, name)
        if cur < base - abs(base) * (1 - min_ratio):
            failures.append(f"{name}: {cur:.4f} vs baseline {base:.4f}")
    for name in LOWER_IS_BETTER:
        cur, base = getattr(current, name), getattr(baseline, name)
        if cur > base + abs(base) * (max_error_ratio - 1):
            failures.append(f"{name}: {cur:.4f} vs baseline {base:.4f}")
    return failures


def perform_regression_test(
    baseline_path: PathLike,
    securities: Sequence[Series],
    variant: Union[StrategyVariant, str, None] = StrategyVariant.DEFAULT,
    config: Optional[Config] = None,
) -> RegressionReport:
    """
    Re-run a backtest and compare it against saved baseline metrics.

    The fresh metrics are written next to the baseline as
    ``<baseline>.<unix timestamp>``.
    """
    config = config or Config()
    baseline_path = Path(baseline_path)
    baseline = load_validation_results(baseline_path)

    result = Backtester(config.backtest).run(securities, variant=variant)
    current = result.combined_metrics

    failures = compare_to_baseline(
        current, baseline, config.regression.min_ratio, config.regression.max_error_ratio
    )
    for failure in failures:
        logger.warning(f"Regression: {failure}")

    results_path = baseline_path.with_name(f"{baseline_path.name}.{int(time.time())}")
    save_validation_results(current, results_path)

    if failures:
        logger.warning(f"Regression test failed: {len(failures)} metrics regressed")
    else:
        logger.info("Regression test passed")

    return RegressionReport(
        passed=not failures,
        current=current,
        baseline=baseline,
        failures=failures,
        results_path=results_path,
    )
