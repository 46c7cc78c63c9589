from __future__ import annotations

from typing import Optional


class BacktestError(Exception):
    """Base class for backtesting and validation errors."""

    code = "BACKTEST_ERROR"

    def __init__(self, message: str, *, symbol: Optional[str] = None) -> None:
        super().__init__(message)
        self.symbol = symbol


class InvalidParameterError(BacktestError, ValueError):
    code = "INVALID_PARAMETER"


class InsufficientDataError(BacktestError):
    code = "INSUFFICIENT_DATA"


class ValidationFailure(BacktestError):
    code = "VALIDATION_FAILED"


class BacktestTimeoutError(BacktestError):
    code = "TIMEOUT"
