"""
Data model and ingestion for the stockcast system.

This module provides:
- Immutable bar and series types
- Event records for event-detection scoring
- CSV / DataFrame loading of daily OHLCV files
"""

from .models import (
    Bar,
    Series,
    EventData,
    to_date,
)

from .loader import (
    load_series_from_csv,
    discover_symbols,
    load_universe,
)

__all__ = [
    "Bar",
    "Series",
    "EventData",
    "to_date",
    "load_series_from_csv",
    "discover_symbols",
    "load_universe",
]
