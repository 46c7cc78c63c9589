"""
stockcast: strategy backtesting and cross-validation for daily stock data.
"""

__version__ = "0.1.0"
