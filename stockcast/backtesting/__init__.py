"""
Backtesting module for the stockcast system.
"""

from .engine import (
    Backtester,
    BacktestResult,
    ModelEvaluation,
    perform_backtest,
)

from .ledger import (
    PositionLedger,
    Position,
    Trade,
)

from .metrics import (
    TradingPerformance,
    ValidationMetrics,
    calculate_direction_metrics,
    calculate_price_prediction_metrics,
    calculate_trading_performance,
)

from .event_metrics import calculate_event_detection_metrics

from .cv_splitters import Fold, create_kfold_splits

from .validation import (
    CrossValidator,
    CrossValidationResults,
    perform_cross_validation,
)

from .reports import (
    RegressionReport,
    export_metrics_table,
    generate_validation_report,
    load_backtest_results,
    load_validation_results,
    perform_regression_test,
    save_backtest_results,
    save_validation_results,
)

from .strategies import (
    Side,
    Signal,
    StrategyVariant,
    generate_signal,
)

from .errors import (
    BacktestError,
    BacktestTimeoutError,
    InsufficientDataError,
    InvalidParameterError,
    ValidationFailure,
)

__all__ = [
    'Backtester',
    'BacktestResult',
    'ModelEvaluation',
    'perform_backtest',
    'PositionLedger',
    'Position',
    'Trade',
    'TradingPerformance',
    'ValidationMetrics',
    'calculate_direction_metrics',
    'calculate_price_prediction_metrics',
    'calculate_trading_performance',
    'calculate_event_detection_metrics',
    'Fold',
    'create_kfold_splits',
    'CrossValidator',
    'CrossValidationResults',
    'perform_cross_validation',
    'RegressionReport',
    'export_metrics_table',
    'generate_validation_report',
    'load_backtest_results',
    'load_validation_results',
    'perform_regression_test',
    'save_backtest_results',
    'save_validation_results',
    'Side',
    'Signal',
    'StrategyVariant',
    'generate_signal',
    'BacktestError',
    'BacktestTimeoutError',
    'InsufficientDataError',
    'InvalidParameterError',
    'ValidationFailure',
]
