"""Backtest statistics — pure functions for trade-series analysis."""

import math
from typing import Sequence

from cryptopulse.backtest.models import (
    BacktestStats,
    EquityPoint,
    FiniteProfitFactor,
    InfiniteProfitFactor,
    ProfitFactor,
    Trade,
)


def calculate_stats(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
) -> BacktestStats:
    """Compute summary statistics for a finished backtest.

    Win rate counts trades with ``pnl > 0`` as winners and everything else
    as losers.  Net profit is measured from the final equity sample, so it
    includes any position still open at the end.

    Returns:
        ``BacktestStats`` with percentages rounded to 2 decimals.
    """
    if initial_capital <= 0:
        raise ValueError(f"initial_capital must be positive, got {initial_capital}")

    pnls = [t.pnl for t in trades]
    total = len(pnls)
    winners = [p for p in pnls if p > 0]
    losers = [p for p in pnls if p <= 0]
    win_rate = len(winners) / total * 100 if total else 0.0

    final_equity = equity_curve[-1].value if equity_curve else initial_capital
    net_profit = final_equity - initial_capital

    return BacktestStats(
        total_trades=total,
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=round(win_rate, 2),
        net_profit=round(net_profit, 2),
        net_profit_percent=round(net_profit / initial_capital * 100, 2),
        max_drawdown=round(_max_drawdown_pct(equity_curve), 2),
        profit_factor=profit_factor(pnls),
        sharpe_ratio=round(_sharpe(pnls), 4),
    )


def profit_factor(pnls: Sequence[float]) -> ProfitFactor:
    """Gross profit ÷ gross loss.

    Infinite when there is profit but no loss; ``0.0`` when there is
    neither.
    """
    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p <= 0))
    if gross_loss == 0:
        if gross_profit > 0:
            return InfiniteProfitFactor()
        return FiniteProfitFactor(0.0)
    return FiniteProfitFactor(round(gross_profit / gross_loss, 2))


def format_profit_factor(pf: ProfitFactor) -> str:
    if isinstance(pf, InfiniteProfitFactor):
        return "∞"
    return f"{pf.value:.2f}"


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(pnls: Sequence[float]) -> float:
    """Annualised Sharpe ratio from a P&L series.

    Uses sample standard deviation (n − 1).  Returns 0.0 when the series
    has fewer than 2 observations or zero variance.
    """
    n = len(pnls)
    if n < 2:
        return 0.0
    mean = sum(pnls) / n
    variance = sum((p - mean) ** 2 for p in pnls) / (n - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0
    return (mean / std) * math.sqrt(252)


def _max_drawdown_pct(equity_curve: Sequence[EquityPoint]) -> float:
    """Largest peak-to-trough decline of the equity curve, in percent."""
    peak = -math.inf
    max_dd = 0.0
    for point in equity_curve:
        if point.value > peak:
            peak = point.value
        if peak > 0:
            dd = (peak - point.value) / peak * 100
            if dd > max_dd:
                max_dd = dd
    return max_dd
