"""
Data models for the stock backtesting system.

Bars and series are immutable once ingested: the engine only ever reads them,
and fold construction copies bars into new series instead of mutating the
source data.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

import pandas as pd

DateLike = Union[str, date, datetime, pd.Timestamp]

BAR_COLUMNS = ["open", "high", "low", "close", "volume", "adj_close"]


def to_date(value: DateLike) -> date:
    """Normalize an ISO string, date, datetime or Timestamp to a date."""
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(str(value)).date()


@dataclass(frozen=True)
class Bar:
    """One OHLCV time step of a security."""
    date: str  # ISO "YYYY-MM-DD"
    open: float
    high: float
    low: float
    close: float
    volume: float
    adj_close: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "adj_close": self.adj_close,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bar":
        close = float(data["close"])
        adj_close = data.get("adj_close")
        return cls(
            date=str(to_date(data["date"])),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=close,
            volume=float(data.get("volume", 0.0)),
            adj_close=float(adj_close) if adj_close is not None and not pd.isna(adj_close) else close,
        )


@dataclass(frozen=True)
class Series:
    """
    Ordered, date-indexed sequence of bars for one symbol.

    Slicing returns a new Series sharing the same (immutable) Bar objects.
    """
    symbol: str
    bars: Tuple[Bar, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not isinstance(self.bars, tuple):
            object.__setattr__(self, "bars", tuple(self.bars))

    def __len__(self) -> int:
        return len(self.bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self.bars)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return Series(self.symbol, self.bars[item])
        return self.bars[item]

    @property
    def start_date(self) -> Optional[str]:
        return self.bars[0].date if self.bars else None

    @property
    def end_date(self) -> Optional[str]:
        return self.bars[-1].date if self.bars else None

    def closes(self) -> List[float]:
        return [bar.close for bar in self.bars]

    def between(self, start: Optional[DateLike] = None, end: Optional[DateLike] = None) -> "Series":
        """Bars with start <= date <= end (either bound optional)."""
        lo = to_date(start) if start is not None else None
        hi = to_date(end) if end is not None else None
        kept = [
            bar for bar in self.bars
            if (lo is None or to_date(bar.date) >= lo) and (hi is None or to_date(bar.date) <= hi)
        ]
        return Series(self.symbol, tuple(kept))

    def to_frame(self) -> pd.DataFrame:
        """Bars as a DataFrame indexed by date."""
        if not self.bars:
            return pd.DataFrame(columns=BAR_COLUMNS, index=pd.DatetimeIndex([], name="date"))
        df = pd.DataFrame([bar.to_dict() for bar in self.bars])
        df["date"] = pd.to_datetime(df["date"])
        return df.set_index("date")[BAR_COLUMNS]

    @classmethod
    def from_frame(cls, symbol: str, df: pd.DataFrame) -> "Series":
        """Build a series from a DataFrame with a date index or a 'date' column."""
        frame = df.copy()
        frame.columns = [str(c).strip().lower().replace(" ", "_") for c in frame.columns]
        if "date" not in frame.columns:
            frame = frame.reset_index()
            frame = frame.rename(columns={frame.columns[0]: "date"})
        if "adjclose" in frame.columns and "adj_close" not in frame.columns:
            frame = frame.rename(columns={"adjclose": "adj_close"})
        frame = frame.sort_values("date")
        bars = tuple(Bar.from_dict(row) for row in frame.to_dict("records"))
        return cls(symbol=symbol, bars=bars)

    @classmethod
    def from_bars(cls, symbol: str, bars: Iterable[Bar]) -> "Series":
        return cls(symbol=symbol, bars=tuple(bars))


@dataclass(frozen=True)
class EventData:
    """
    A market event, either detected by a model or observed in the news.

    sentiment is in [-1, 1]; impact_score is on a 0-10 scale.
    """
    date: str
    title: str
    symbol: str = ""
    description: str = ""
    sentiment: float = 0.0
    impact_score: int = 0
    magnitude: float = 0.0
    event_type: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "date": self.date,
            "title": self.title,
            "description": self.description,
            "sentiment": self.sentiment,
            "impact_score": self.impact_score,
            "magnitude": self.magnitude,
            "event_type": self.event_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventData":
        return cls(
            symbol=str(data.get("symbol", "")),
            date=str(data["date"]),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            sentiment=float(data.get("sentiment", 0.0)),
            impact_score=int(data.get("impact_score", 0)),
            magnitude=float(data.get("magnitude", 0.0)),
            event_type=str(data.get("event_type", "unknown")),
        )
