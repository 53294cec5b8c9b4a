"""Backtest data models — positions, trades, equity samples and results."""

from dataclasses import dataclass
from typing import Optional, Union

from cryptopulse.strategy.models import Direction


@dataclass
class Position:
    """The single open position owned by a backtest run."""

    direction: Direction
    entry_price: float
    quantity: float
    collateral: float
    stop_loss: float
    take_profit1: float
    take_profit2: float
    entry_time: int

    def pnl_at(self, price: float) -> float:
        """P&L if the position were closed at *price*."""
        if self.direction == "BUY":
            return (price - self.entry_price) * self.quantity
        return (self.entry_price - price) * self.quantity


@dataclass(frozen=True)
class Trade:
    """A closed backtest trade."""

    id: int  # bar index of the exit
    symbol: str
    direction: Direction
    entry_price: float
    exit_price: float
    pnl: float
    pnl_percent: float  # pnl / collateral × 100
    entry_time: int
    exit_time: int
    reason: str  # "Stop Loss", "Take Profit" or "End of Backtest"


@dataclass(frozen=True)
class EquityPoint:
    """Mark-to-market account value after a bar.

    ``balance`` is free cash and ``open_collateral`` the capital locked in
    the open position, so ``balance + open_collateral`` always equals the
    initial capital plus the P&L of every closed trade.
    """

    time: int
    value: float
    balance: Optional[float] = None
    open_collateral: float = 0.0


@dataclass(frozen=True)
class FiniteProfitFactor:
    value: float


@dataclass(frozen=True)
class InfiniteProfitFactor:
    """Profit factor when there are winning trades and no losses."""


ProfitFactor = Union[FiniteProfitFactor, InfiniteProfitFactor]


@dataclass(frozen=True)
class BacktestStats:
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float  # percent
    net_profit: float
    net_profit_percent: float
    max_drawdown: float  # percent
    profit_factor: ProfitFactor
    sharpe_ratio: float


@dataclass(frozen=True)
class BacktestResult:
    symbol: str
    interval: str
    stats: BacktestStats
    trades: list[Trade]  # newest first
    equity_curve: list[EquityPoint]
