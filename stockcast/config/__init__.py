from .settings import (
    ALL_STRATEGY_NAMES,
    BacktestConfig,
    Config,
    CrossValidationConfig,
    Environment,
    LoggingConfig,
    RegressionConfig,
)

__all__ = [
    'ALL_STRATEGY_NAMES',
    'BacktestConfig',
    'Config',
    'CrossValidationConfig',
    'Environment',
    'LoggingConfig',
    'RegressionConfig',
]
