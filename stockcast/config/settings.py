"""
Configuration settings for the stockcast backtesting system.

Every tunable lives here with environment-based overrides. Configs are plain
dataclasses passed explicitly into the Backtester and CrossValidator; there is
no process-wide instance.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


ALL_STRATEGY_NAMES = ["default", "momentum", "mean-reversion", "breakout", "event-based"]


@dataclass
class BacktestConfig:
    """Simulation parameters for a single backtest run."""

    # Capital and sizing
    initial_capital: float = field(default_factory=lambda: _env_float("STOCKCAST_INITIAL_CAPITAL", 10000.0))
    position_size: float = 0.1        # fraction of capital per trade
    trading_cost: float = 0.001       # flat cost per round trip, as a return
    allow_short: bool = field(default_factory=lambda: _env_bool("STOCKCAST_ALLOW_SHORT", True))
    entry_threshold: float = 0.25     # minimum signal strength to act

    # Windows
    lookback_period: int = 20
    prediction_horizon: int = 5
    min_bars: int = 30

    # Risk-adjusted returns
    risk_free_rate: float = 0.02      # annual
    periods_per_year: int = 252
    annualize_sharpe: bool = True

    def validate(self):
        if self.initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {self.initial_capital}")
        if not 0 < self.position_size <= 1:
            raise ValueError(f"position_size must be in (0, 1], got {self.position_size}")
        if self.trading_cost < 0:
            raise ValueError(f"trading_cost must be non-negative, got {self.trading_cost}")
        if not 0 <= self.entry_threshold <= 1:
            raise ValueError(f"entry_threshold must be in [0, 1], got {self.entry_threshold}")
        if self.lookback_period < 1 or self.prediction_horizon < 1:
            raise ValueError("lookback_period and prediction_horizon must be >= 1")
        if self.min_bars < 1:
            raise ValueError(f"min_bars must be >= 1, got {self.min_bars}")
        if self.periods_per_year <= 0:
            raise ValueError(f"periods_per_year must be positive, got {self.periods_per_year}")


@dataclass
class CrossValidationConfig:
    """k-fold cross-validation settings."""

    folds: int = field(default_factory=lambda: _env_int("STOCKCAST_CV_FOLDS", 5))
    tuning_fraction: float = 0.1      # tail of training data held out while tuning
    evaluate_on: str = "validation"   # "validation" or "training"
    candidates: List[str] = field(default_factory=lambda: list(ALL_STRATEGY_NAMES))
    max_workers: Optional[int] = None  # None runs folds in-process

    def validate(self):
        if self.evaluate_on not in ("validation", "training"):
            raise ValueError(f"evaluate_on must be 'validation' or 'training', got {self.evaluate_on!r}")
        if not 0 <= self.tuning_fraction < 1:
            raise ValueError(f"tuning_fraction must be in [0, 1), got {self.tuning_fraction}")


@dataclass
class RegressionConfig:
    """Tolerances for comparing fresh metrics against a saved baseline."""

    min_ratio: float = 0.95           # accuracy-type metrics must keep 95% of baseline
    max_error_ratio: float = 1.05     # error metrics may grow at most 5%


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: os.environ.get("STOCKCAST_LOG_LEVEL", "INFO"))
    format: str = "%(asctime)s | %(levelname)s | %(message)s"


@dataclass
class Config:
    """Main configuration class aggregating all settings."""

    environment: Environment = Environment.DEVELOPMENT

    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    cross_validation: CrossValidationConfig = field(default_factory=CrossValidationConfig)
    regression: RegressionConfig = field(default_factory=RegressionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_environment(cls) -> "Config":
        """Create configuration based on environment variables."""
        env_str = os.environ.get("STOCKCAST_ENV", "development").lower()
        try:
            env = Environment(env_str)
        except ValueError:
            env = Environment.DEVELOPMENT

        config = cls(environment=env)

        if env == Environment.PRODUCTION and "STOCKCAST_LOG_LEVEL" not in os.environ:
            config.logging.level = "WARNING"

        return config
