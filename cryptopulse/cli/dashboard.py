"""CLI dashboard — prints signal, GP and backtest summaries to the console."""

from typing import Mapping, Sequence

from cryptopulse.backtest.models import BacktestResult
from cryptopulse.backtest.stats import format_profit_factor
from cryptopulse.ml.gp_moving_average import GPResult
from cryptopulse.strategy.models import Signal


_RULE = "──────────────────────────────────────────────────"


def _banner(title: str) -> str:
    return f"──────────────── {title} ────────────────"


def print_signals(signals: Sequence[Signal], mode: str) -> str:
    """Format and print a signal scan.

    Returns:
        The formatted string (also printed to stdout).
    """
    lines = [_banner(f"CryptoPulse Signals ({mode})")]
    if not signals:
        lines.append("  No signals emitted.")
    for s in signals:
        lines.append(
            f"  {s.symbol:<10} {s.direction:<4} score {s.score:>3} ({s.confidence})"
            f"  entry {s.levels.entry:,.4f}  SL {s.levels.stop_loss:,.4f}"
            f"  TP1 {s.levels.take_profit1:,.4f}  R:R {s.risk_reward:.2f}"
        )
        for warning in s.warnings:
            lines.append(f"      ! {warning}")
    lines.append(_RULE)
    output = "\n".join(lines)
    print(output)
    return output


def print_ml_signals(results: Mapping[str, GPResult]) -> str:
    """Format and print GP extremity results, one line per symbol."""
    lines = [_banner("CryptoPulse ML Bands")]
    if not results:
        lines.append("  No results.")
    for symbol, r in results.items():
        signal = r.signal or "-"
        lines.append(
            f"  {symbol:<10} {signal:<20} price {r.price:,.4f}"
            f"  band [{r.lower:,.4f} .. {r.upper:,.4f}]"
            f"  score {r.score:>3} {r.signal_quality}"
        )
    lines.append(_RULE)
    output = "\n".join(lines)
    print(output)
    return output


def print_backtest(result: BacktestResult) -> str:
    """Format and print a backtest summary."""
    stats = result.stats
    lines = [
        _banner(f"Backtest {result.symbol} {result.interval}"),
        f"  Trades:          {stats.total_trades}",
        f"  Win rate:        {stats.win_rate:.2f}%",
        f"  Net profit:      ${stats.net_profit:,.2f} ({stats.net_profit_percent:.2f}%)",
        f"  Max drawdown:    {stats.max_drawdown:.2f}%",
        f"  Profit factor:   {format_profit_factor(stats.profit_factor)}",
        f"  Sharpe:          {stats.sharpe_ratio:.2f}",
        _RULE,
    ]
    output = "\n".join(lines)
    print(output)
    return output
