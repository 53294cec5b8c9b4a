"""Backtest engine — replays historical candles through analysis and signals.

Iterates candle data chronologically.  At every bar after the warm-up the
full indicator pipeline is recomputed on the history seen so far, so the
simulated decisions match what the live signal generator would have
produced.  Recomputing from scratch is O(n²) over the run, which is fine
for the 1000-candle histories the exchange returns.

No real orders are placed.
"""

import logging
from typing import Optional, Sequence, Union

from cryptopulse.backtest.models import BacktestResult, EquityPoint, Position, Trade
from cryptopulse.backtest.stats import calculate_stats
from cryptopulse.errors import InsufficientDataError
from cryptopulse.exchange.binance_client import CandleProvider
from cryptopulse.strategy.analysis import perform_technical_analysis, timeframe_context
from cryptopulse.strategy.models import Candle
from cryptopulse.strategy.modes import ModeConfig, SignalMode, parse_mode
from cryptopulse.strategy.signals import generate_signal

logger = logging.getLogger("cryptopulse")

MIN_BACKTEST_CANDLES = 200


class BacktestEngine:
    """Simulates a single-position strategy on historical candles.

    Args:
        mode: Signal mode used for entries.
        signal_config: Replacement ``ModeConfig`` (defaults to the mode's).
        entry_score: Minimum signal score (0-100) to open a position.
        warmup: Bars skipped before the first evaluation.
        position_fraction: Share of cash committed as collateral per trade.
    """

    def __init__(
        self,
        mode: Union[SignalMode, str] = SignalMode.BALANCED,
        signal_config: Optional[ModeConfig] = None,
        entry_score: int = 60,
        warmup: int = MIN_BACKTEST_CANDLES,
        position_fraction: float = 0.10,
    ) -> None:
        if not 0 < position_fraction <= 1:
            raise ValueError(
                f"position_fraction must be in (0, 1], got {position_fraction}"
            )
        self._mode = parse_mode(mode)
        self._signal_config = signal_config
        self._entry_score = entry_score
        self._warmup = warmup
        self._position_fraction = position_fraction

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        candles: Sequence[Candle],
        symbol: str,
        interval: str = "1h",
        initial_capital: float = 10_000.0,
    ) -> BacktestResult:
        """Execute a full backtest.

        Args:
            candles: Candle history, oldest-first.
            symbol: Trading pair, echoed into trades and the result.
            interval: Candle interval label for the single-timeframe context.
            initial_capital: Starting cash.

        Returns:
            ``BacktestResult`` with stats, trades (newest first) and the
            equity curve (one sample per evaluated bar plus the start).

        Raises:
            InsufficientDataError: Fewer than 200 candles.
        """
        if len(candles) < MIN_BACKTEST_CANDLES:
            raise InsufficientDataError(
                f"Need at least {MIN_BACKTEST_CANDLES} candles for backtesting, "
                f"got {len(candles)}"
            )
        if initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {initial_capital}")

        logger.info(
            "Backtesting %s %s over %d candles (%s mode).",
            symbol, interval, len(candles), self._mode.value,
        )

        balance = initial_capital
        position: Optional[Position] = None
        trades: list[Trade] = []
        equity_curve = [
            EquityPoint(time=candles[0].close_time, value=balance, balance=balance),
        ]
        last_index = len(candles) - 1

        for i in range(self._warmup, len(candles)):
            candle = candles[i]

            # 1. Check open position for SL / TP exit
            if position is not None:
                exit_ = self._check_exit(position, candle)
                if exit_ is None and i == last_index:
                    exit_ = (candle.close, "End of Backtest")
                if exit_ is not None:
                    exit_price, reason = exit_
                    pnl = position.pnl_at(exit_price)
                    balance += position.collateral + pnl
                    trades.append(
                        Trade(
                            id=i,
                            symbol=symbol,
                            direction=position.direction,
                            entry_price=position.entry_price,
                            exit_price=exit_price,
                            pnl=pnl,
                            pnl_percent=pnl / position.collateral * 100,
                            entry_time=position.entry_time,
                            exit_time=candle.close_time,
                            reason=reason,
                        )
                    )
                    position = None

            # 2. Evaluate entry on the history seen so far
            if position is None and i < last_index:
                position = self._try_entry(candles[: i + 1], symbol, interval, balance)
                if position is not None:
                    balance -= position.collateral

            # 3. Mark to market
            equity = balance
            collateral = 0.0
            if position is not None:
                collateral = position.collateral
                equity += collateral + position.pnl_at(candle.close)
            equity_curve.append(
                EquityPoint(
                    time=candle.close_time,
                    value=equity,
                    balance=balance,
                    open_collateral=collateral,
                )
            )

        stats = calculate_stats(trades, equity_curve, initial_capital)
        logger.info(
            "Backtest %s finished: %d trades, net %.2f.",
            symbol, stats.total_trades, stats.net_profit,
        )
        return BacktestResult(
            symbol=symbol,
            interval=interval,
            stats=stats,
            trades=list(reversed(trades)),
            equity_curve=equity_curve,
        )

    # ── Helpers ──────────────────────────────────────────────────────────

    def _try_entry(
        self,
        history: Sequence[Candle],
        symbol: str,
        interval: str,
        balance: float,
    ) -> Optional[Position]:
        analysis = perform_technical_analysis(history)
        context = {interval: timeframe_context(analysis)}
        signal = generate_signal(
            analysis, symbol, context, self._mode, self._signal_config,
        )
        if signal is None or signal.score < self._entry_score:
            return None

        price = history[-1].close
        collateral = balance * self._position_fraction
        return Position(
            direction=signal.direction,
            entry_price=price,
            quantity=collateral / price,
            collateral=collateral,
            stop_loss=signal.levels.stop_loss,
            take_profit1=signal.levels.take_profit1,
            take_profit2=signal.levels.take_profit2,
            entry_time=history[-1].close_time,
        )

    @staticmethod
    def _check_exit(position: Position, candle: Candle) -> Optional[tuple[float, str]]:
        """Check if *candle* triggers an SL or TP1 exit.

        Returns ``(exit_price, reason)`` or ``None``.
        When both are hit in the same candle, SL is assumed first.
        """
        if position.direction == "BUY":
            sl_hit = candle.low <= position.stop_loss
            tp_hit = candle.high >= position.take_profit1
        else:
            sl_hit = candle.high >= position.stop_loss
            tp_hit = candle.low <= position.take_profit1

        if sl_hit:
            return position.stop_loss, "Stop Loss"
        if tp_hit:
            return position.take_profit1, "Take Profit"
        return None


async def run_backtest(
    provider: CandleProvider,
    symbol: str,
    interval: str = "1h",
    initial_capital: float = 10_000.0,
    mode: Union[SignalMode, str] = SignalMode.BALANCED,
    limit: int = 1000,
) -> BacktestResult:
    """Fetch up to *limit* candles from *provider* and backtest them."""
    candles = await provider.fetch_candles(symbol, interval, limit)
    engine = BacktestEngine(mode=mode)
    return engine.run(candles, symbol, interval, initial_capital)
