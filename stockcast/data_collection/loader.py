"""
Load OHLCV series from CSV files.

Expected layout is one file per symbol, ``<SYMBOL>.csv`` or
``<SYMBOL>_prices.csv``, with a date column and open/high/low/close/volume
columns (adj_close optional).
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

import pandas as pd

from .models import Series

logger = logging.getLogger(__name__)


def load_series_from_csv(data_dir: Path, symbol: str) -> Optional[Series]:
    """Load a single symbol, or None if no file matches."""
    patterns = [
        f"{symbol}.csv",
        f"{symbol.replace('-', '_')}.csv",
        f"{symbol}_prices.csv",
    ]

    for pattern in patterns:
        filepath = Path(data_dir) / pattern
        if filepath.exists():
            df = pd.read_csv(filepath)
            series = Series.from_frame(symbol, df)
            logger.debug(f"Loaded {len(series)} bars for {symbol} from {filepath}")
            return series

    return None


def discover_symbols(data_dir: Path) -> List[str]:
    """Symbols for every CSV file in data_dir."""
    symbols = []
    for f in sorted(Path(data_dir).glob("*.csv")):
        symbols.append(f.stem.replace("_prices", ""))
    return symbols


def load_universe(data_dir: Path, symbols: Optional[Iterable[str]] = None) -> List[Series]:
    """Load every requested symbol, skipping missing files with a warning."""
    symbols = list(symbols) if symbols else discover_symbols(data_dir)
    universe = []
    for symbol in symbols:
        series = load_series_from_csv(data_dir, symbol)
        if series is None:
            logger.warning(f"No price file found for {symbol} in {data_dir}")
            continue
        universe.append(series)
    return universe
