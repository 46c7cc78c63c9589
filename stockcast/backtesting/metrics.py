"""
Validation and trading metrics.

All functions are pure: they read their inputs and return new values. Degenerate
inputs (zero variance, no trades, zero denominators) resolve to fixed sentinels
so no metric is ever NaN or infinite.
"""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidParameterError

logger = logging.getLogger(__name__)

# Moves smaller than this count as "no change" for direction agreement
DIRECTION_TOLERANCE = 1e-4

# Reported when a run has gains and no losses
PROFIT_FACTOR_CAP = 999.0


@dataclass(frozen=True)
class ValidationMetrics:
    accuracy: float = 0.0
    precision: float = 0.0
    recall: float = 0.0
    f1_score: float = 0.0
    mean_absolute_error: float = 0.0
    root_mean_square_error: float = 0.0
    r2_score: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def __str__(self):
        return (
            f"Acc: {self.accuracy:.4f} | "
            f"P: {self.precision:.4f} | "
            f"R: {self.recall:.4f} | "
            f"F1: {self.f1_score:.4f} | "
            f"MAE: {self.mean_absolute_error:.4f} | "
            f"RMSE: {self.root_mean_square_error:.4f} | "
            f"R2: {self.r2_score:.4f}"
        )


@dataclass(frozen=True)
class TradingPerformance:
    initial_capital: float = 0.0
    final_capital: float = 0.0
    total_return: float = 0.0
    annualized_return: float = 0.0
    sharpe_ratio: float = 0.0
    win_rate: float = 0.0
    average_profit: float = 0.0
    average_loss: float = 0.0
    profit_factor: float = 0.0
    max_drawdown: float = 0.0
    recovery_factor: float = 0.0
    avg_trade_return: float = 0.0
    calmar_ratio: float = 0.0
    num_trades: int = 0
    profitable_trades: int = 0

    def to_dict(self) -> Dict:
        return {
            'initial_capital': f"${self.initial_capital:,.2f}",
            'final_capital': f"${self.final_capital:,.2f}",
            'total_return': f"{self.total_return*100:.2f}%",
            'annualized_return': f"{self.annualized_return*100:.2f}%",
            'sharpe_ratio': f"{self.sharpe_ratio:.2f}",
            'win_rate': f"{self.win_rate*100:.1f}%",
            'profit_factor': f"{self.profit_factor:.2f}",
            'max_drawdown': f"{self.max_drawdown*100:.2f}%",
            'recovery_factor': f"{self.recovery_factor:.2f}",
            'calmar_ratio': f"{self.calmar_ratio:.2f}",
            'avg_trade_return': f"{self.avg_trade_return*100:.4f}%",
            'num_trades': self.num_trades,
            'profitable_trades': self.profitable_trades,
        }

    def __str__(self):
        return (
            f"Return: {self.total_return*100:.2f}% | "
            f"Sharpe: {self.sharpe_ratio:.2f} | "
            f"MaxDD: {self.max_drawdown*100:.2f}% | "
            f"Trades: {self.num_trades} | "
            f"WinRate: {self.win_rate*100:.1f}%"
        )


def _as_arrays(*arrays: Sequence[float]) -> Tuple[np.ndarray, ...]:
    if any(a is None for a in arrays):
        raise InvalidParameterError("metric inputs must not be None")
    out = tuple(np.asarray(a, dtype=float) for a in arrays)
    n = len(out[0])
    if n == 0:
        raise InvalidParameterError("metric inputs must not be empty")
    if any(len(a) != n for a in out):
        raise InvalidParameterError(f"metric inputs differ in length: {[len(a) for a in out]}")
    return out


def _same_direction(a: float, b: float) -> bool:
    if abs(a) < DIRECTION_TOLERANCE and abs(b) < DIRECTION_TOLERANCE:
        return True
    return (a > 0 and b > 0) or (a < 0 and b < 0)


def precision_recall_f1(tp: int, fp: int, fn: int) -> Tuple[float, float, float]:
    precision = tp / (tp + fp) if (tp + fp) > 0 else 0.0
    recall = tp / (tp + fn) if (tp + fn) > 0 else 0.0
    f1 = 2 * precision * recall / (precision + recall) if (precision + recall) > 0 else 0.0
    return float(precision), float(recall), float(f1)


def _error_metrics(predicted: np.ndarray, actual: np.ndarray) -> Tuple[float, float, float]:
    errors = predicted - actual
    mae = float(np.mean(np.abs(errors)))
    rmse = float(np.sqrt(np.mean(errors ** 2)))

    sse = float(np.sum(errors ** 2))
    sst = float(np.sum((actual - actual.mean()) ** 2))
    if sst == 0:
        r2 = 1.0 if sse == 0 else 0.0
    else:
        r2 = 1.0 - sse / sst
    return mae, rmse, float(r2)


# =============================================================================
# Price prediction
# =============================================================================

def calculate_price_prediction_metrics(predicted: Sequence[float], actual: Sequence[float]) -> ValidationMetrics:
    """
    Error metrics plus step-direction agreement between two price paths.

    accuracy is the share of consecutive steps where predicted and actual
    prices move the same way (or both stay put). A single point has no steps
    and scores 0.0. precision/recall/F1 stay at 0; calculate_direction_metrics
    carries them.
    """
    pred, act = _as_arrays(predicted, actual)
    mae, rmse, r2 = _error_metrics(pred, act)

    if len(pred) < 2:
        return ValidationMetrics(mean_absolute_error=mae, root_mean_square_error=rmse, r2_score=r2)

    pred_steps = np.diff(pred)
    act_steps = np.diff(act)

    correct = sum(_same_direction(p, a) for p, a in zip(pred_steps, act_steps))
    accuracy = correct / len(pred_steps)

    return ValidationMetrics(
        accuracy=float(accuracy),
        mean_absolute_error=mae,
        root_mean_square_error=rmse,
        r2_score=r2,
    )


def calculate_direction_metrics(
    predicted: Sequence[float],
    actual: Sequence[float],
    current: Sequence[float],
) -> ValidationMetrics:
    """
    Direction-of-move metrics relative to the price at prediction time.

    A prediction is correct when predicted - current and actual - current
    share a sign (or are both negligible). The confusion matrix compares
    predicted[i] and actual[i] against the previous actual price; the first
    element is compared against itself.
    """
    pred, act, cur = _as_arrays(predicted, actual, current)

    correct = sum(_same_direction(p - c, a - c) for p, a, c in zip(pred, act, cur))
    accuracy = correct / len(pred)

    reference = np.concatenate(([act[0]], act[:-1]))
    pred_up = (pred - reference) > 0
    act_up = (act - reference) > 0
    tp = int(np.sum(pred_up & act_up))
    fp = int(np.sum(pred_up & ~act_up))
    fn = int(np.sum(~pred_up & act_up))
    precision, recall, f1 = precision_recall_f1(tp, fp, fn)

    return ValidationMetrics(accuracy=float(accuracy), precision=precision, recall=recall, f1_score=f1)


# =============================================================================
# Returns-based metrics
# =============================================================================

def sharpe_ratio(
    returns: Sequence[float],
    risk_free_rate: float = 0.02,
    periods_per_year: int = 252,
    annualize: bool = True,
) -> float:
    """Mean excess return over population std, optionally scaled by sqrt(periods)."""
    if returns is None or len(returns) < 1:
        return 0.0
    r = np.asarray(returns, dtype=float)
    std = float(np.std(r))
    if std < 1e-12 or not np.isfinite(std):
        return 0.0
    excess = float(np.mean(r)) - risk_free_rate / periods_per_year
    ratio = excess / std
    if annualize:
        ratio *= np.sqrt(periods_per_year)
    return float(ratio)


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline of an equity curve, as a fraction of the peak."""
    if equity is None or len(equity) == 0:
        return 0.0
    curve = np.asarray(equity, dtype=float)
    running_max = np.maximum.accumulate(curve)
    with np.errstate(divide='ignore', invalid='ignore'):
        drawdown = np.where(running_max > 0, (running_max - curve) / running_max, 0.0)
    return float(max(0.0, np.max(drawdown)))


def profit_factor(profits: Sequence[float]) -> float:
    gains = sum(p for p in profits if p > 0)
    losses = abs(sum(p for p in profits if p < 0))
    if losses == 0:
        return PROFIT_FACTOR_CAP if gains > 0 else 0.0
    return float(gains / losses)


def calculate_trading_performance(
    ledger,
    periods: Optional[int] = None,
    periods_per_year: Optional[int] = None,
) -> TradingPerformance:
    """Summarize a finished PositionLedger."""
    config = ledger.config
    periods_per_year = periods_per_year or config.periods_per_year
    periods = periods if periods is not None else len(ledger.daily_returns)

    total_return = ledger.total_return
    if periods > 0 and total_return > -1:
        with np.errstate(over='ignore'):
            annualized = np.power(1 + total_return, periods_per_year / periods) - 1
        if not np.isfinite(annualized):
            annualized = 0.0
    else:
        annualized = 0.0 if periods <= 0 else -1.0

    profits = [t.profit for t in ledger.trades]
    wins = [p for p in profits if p > 0]
    losses = [p for p in profits if p < 0]
    num_trades = ledger.total_trades

    dd = max_drawdown(ledger.equity_curve)

    return TradingPerformance(
        initial_capital=ledger.initial_capital,
        final_capital=ledger.capital,
        total_return=total_return,
        annualized_return=float(annualized),
        sharpe_ratio=sharpe_ratio(
            ledger.trade_returns, config.risk_free_rate, periods_per_year, config.annualize_sharpe
        ),
        win_rate=ledger.profitable_trades / num_trades if num_trades > 0 else 0.0,
        average_profit=float(np.mean(wins)) if wins else 0.0,
        average_loss=float(np.mean(losses)) if losses else 0.0,
        profit_factor=profit_factor(profits),
        max_drawdown=dd,
        recovery_factor=total_return / dd if dd > 0 else 0.0,
        avg_trade_return=float(np.mean(ledger.trade_returns)) if ledger.trade_returns else 0.0,
        calmar_ratio=float(annualized) / dd if dd > 0 else 0.0,
        num_trades=num_trades,
        profitable_trades=ledger.profitable_trades,
    )
