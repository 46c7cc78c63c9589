"""
Position ledger for a single simulated account.

Holds at most one position at a time. Signals flip the position (close then
open) and every close realizes a Trade against capital:

    trade_return = (exit - entry) / entry * side - trading_cost
    capital     += capital * position_size * trade_return

Capital is not floored; a long run of losses can drive it toward zero.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..config.settings import BacktestConfig
from ..data_collection.models import Bar
from .errors import InvalidParameterError
from .strategies.base import Side, Signal

logger = logging.getLogger(__name__)


@dataclass
class Position:
    """Current position; side FLAT means no exposure."""
    side: Side = Side.FLAT
    entry_price: float = 0.0
    entry_index: int = -1
    symbol: str = ""

    @property
    def is_open(self) -> bool:
        return self.side != Side.FLAT


@dataclass(frozen=True)
class Trade:
    """Closed round trip."""
    entry_index: int
    exit_index: int
    entry_price: float
    exit_price: float
    side: Side
    trade_return: float
    profit: float
    symbol: str = ""

    @property
    def is_profitable(self) -> bool:
        return self.profit > 0


class PositionLedger:
    """Capital, position and trade history for one backtest run."""

    def __init__(self, config: Optional[BacktestConfig] = None):
        self.config = config or BacktestConfig()
        try:
            self.config.validate()
        except ValueError as e:
            raise InvalidParameterError(f"invalid ledger config: {e}") from e

        self.initial_capital = self.config.initial_capital
        self.capital = self.initial_capital
        self.peak_capital = self.initial_capital
        self.trough_capital = self.initial_capital
        self.max_drawdown = 0.0

        self.position = Position()
        self.trades: List[Trade] = []
        self.daily_returns: List[float] = []
        self.trade_returns: List[float] = []
        self.equity_curve: List[float] = [self.initial_capital]

        self.total_trades = 0
        self.profitable_trades = 0

    @property
    def side(self) -> Side:
        return self.position.side

    @property
    def total_return(self) -> float:
        return (self.capital - self.initial_capital) / self.initial_capital

    def mark(self, close: float, prev_close: float) -> float:
        """Record the bar's return on the open position (0 when flat)."""
        if not self.position.is_open or prev_close == 0:
            ret = 0.0
        else:
            ret = (close - prev_close) / prev_close * self.position.side.value
        self.daily_returns.append(ret)
        return ret

    def apply(self, signal: Signal, bar: Bar, index: int, symbol: str = "") -> List[Trade]:
        """
        Act on a signal at this bar's close.

        Returns the trades closed by this call (empty or one).
        """
        if signal.direction == Side.FLAT or signal.strength < self.config.entry_threshold:
            return []

        target = signal.direction
        if target == Side.SHORT and not self.config.allow_short:
            target = Side.FLAT

        if target == self.position.side:
            return []

        closed = []
        if self.position.is_open:
            closed.append(self._close(bar.close, index))

        if target != Side.FLAT:
            self.position = Position(side=target, entry_price=bar.close, entry_index=index, symbol=symbol)
            logger.debug(f"OPEN {target.name} {symbol} @ {bar.close:.4f} (bar {index}, {signal.reason})")

        return closed

    def close_all(self, bar: Bar, index: int) -> List[Trade]:
        """Force-close the open position, e.g. at the end of a simulation."""
        if not self.position.is_open:
            return []
        return [self._close(bar.close, index)]

    def _close(self, exit_price: float, index: int) -> Trade:
        pos = self.position
        if pos.entry_price > 0:
            gross = (exit_price - pos.entry_price) / pos.entry_price * pos.side.value
        else:
            gross = 0.0
        trade_return = gross - self.config.trading_cost
        profit = self.capital * self.config.position_size * trade_return

        self.capital += profit
        self.total_trades += 1
        if profit > 0:
            self.profitable_trades += 1
        self.trade_returns.append(trade_return)
        self.equity_curve.append(self.capital)
        self._update_drawdown()

        trade = Trade(
            entry_index=pos.entry_index,
            exit_index=index,
            entry_price=pos.entry_price,
            exit_price=exit_price,
            side=pos.side,
            trade_return=trade_return,
            profit=profit,
            symbol=pos.symbol,
        )
        self.trades.append(trade)
        self.position = Position()

        logger.debug(
            f"CLOSE {trade.side.name} {trade.symbol} {trade.entry_price:.4f} -> {trade.exit_price:.4f} "
            f"return={trade_return:+.4%} capital={self.capital:.2f}"
        )
        return trade

    def _update_drawdown(self):
        if self.capital > self.peak_capital:
            self.peak_capital = self.capital
            self.trough_capital = self.capital
        elif self.capital < self.trough_capital:
            self.trough_capital = self.capital

        if self.peak_capital > 0:
            drawdown = (self.peak_capital - self.trough_capital) / self.peak_capital
            self.max_drawdown = max(self.max_drawdown, drawdown)
