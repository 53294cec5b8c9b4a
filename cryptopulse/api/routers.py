"""Internal API routers — /analysis, /signals, /ml-signals, /backtest endpoints.

No business logic. Delegates to the candle provider and the analysis core.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from cryptopulse.backtest.engine import run_backtest
from cryptopulse.backtest.models import BacktestResult, InfiniteProfitFactor
from cryptopulse.errors import InsufficientDataError
from cryptopulse.exchange.binance_client import (
    CandleProvider,
    build_timeframe_context,
    fetch_symbols,
)
from cryptopulse.ml.gp_moving_average import scan_ml_signals
from cryptopulse.strategy.analysis import TechnicalAnalysis, perform_technical_analysis
from cryptopulse.strategy.models import Signal
from cryptopulse.strategy.modes import parse_mode
from cryptopulse.strategy.signals import (
    CONFIDENCE_RANK,
    analyze_multiple_symbols,
    filter_signals_by_confidence,
)

logger = logging.getLogger("cryptopulse")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_provider: Optional[CandleProvider] = None  # Set via configure_routers()
_default_symbols: tuple[str, ...] = ("BTCUSDT", "ETHUSDT")
_default_interval = "1h"
_default_mode = "BALANCED"


def configure_routers(
    provider: Optional[CandleProvider],
    symbols: Optional[tuple[str, ...]] = None,
    interval: Optional[str] = None,
    mode: Optional[str] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        provider: A ``BinanceClient`` (or any ``CandleProvider``; tests pass
            an in-memory fake).
        symbols: Default symbols for the scan endpoints.
        interval: Default candle interval.
        mode: Default signal mode name.
    """
    global _provider, _default_symbols, _default_interval, _default_mode  # noqa: PLW0603
    _provider = provider
    if symbols:
        _default_symbols = tuple(symbols)
    if interval:
        _default_interval = interval
    if mode:
        _default_mode = parse_mode(mode).value


def _require_provider() -> CandleProvider:
    if _provider is None:
        raise HTTPException(status_code=503, detail="No candle provider configured")
    return _provider


def _symbols_param(symbols: Optional[str]) -> list[str]:
    if not symbols:
        return list(_default_symbols)
    return [s.strip().upper() for s in symbols.split(",") if s.strip()]


def _mode_param(mode: Optional[str]) -> str:
    try:
        return parse_mode(mode or _default_mode).value
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None


# ── Serialisers ──────────────────────────────────────────────────────────


def signal_to_dict(signal: Signal) -> dict:
    return asdict(signal)


def analysis_to_dict(analysis: TechnicalAnalysis, include_series: bool = False) -> dict:
    data = asdict(analysis)
    if not include_series:
        data.pop("full_data")
    return data


def backtest_to_dict(result: BacktestResult) -> dict:
    data = asdict(result)
    pf = result.stats.profit_factor
    infinite = isinstance(pf, InfiniteProfitFactor)
    data["stats"]["profit_factor"] = None if infinite else pf.value
    data["stats"]["profit_factor_infinite"] = infinite
    return data


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/analysis/{symbol}")
async def get_analysis(
    symbol: str,
    interval: Optional[str] = Query(default=None),
    limit: int = Query(default=250, ge=2, le=1000),
    full: bool = Query(default=False),
):
    """Return the technical-analysis snapshot for one symbol."""
    provider = _require_provider()
    candles = await provider.fetch_candles(symbol.upper(), interval or _default_interval, limit)
    try:
        analysis = perform_technical_analysis(candles)
    except InsufficientDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return {"symbol": symbol.upper(), "analysis": analysis_to_dict(analysis, full)}


@router.get("/signals")
async def get_signals(
    symbols: Optional[str] = Query(default=None),
    interval: Optional[str] = Query(default=None),
    mode: Optional[str] = Query(default=None),
    min_confidence: str = Query(default="LOW"),
    limit: int = Query(default=250, ge=50, le=1000),
):
    """Scan symbols and return emitted signals, highest score first."""
    provider = _require_provider()
    mode_name = _mode_param(mode)
    min_confidence = min_confidence.upper()
    if min_confidence not in CONFIDENCE_RANK:
        raise HTTPException(status_code=400, detail=f"Unknown confidence '{min_confidence}'")

    names = _symbols_param(symbols)
    data = await fetch_symbols(provider, names, interval or _default_interval, limit)
    contexts = {name: await build_timeframe_context(provider, name) for name in data}

    signals = analyze_multiple_symbols(data, contexts, mode_name)
    signals = filter_signals_by_confidence(signals, min_confidence)
    logger.info("Signal scan (%s): %d of %d symbols emitted.", mode_name, len(signals), len(names))
    return {"mode": mode_name, "signals": [signal_to_dict(s) for s in signals]}


@router.get("/ml-signals")
async def get_ml_signals(
    symbols: Optional[str] = Query(default=None),
    interval: Optional[str] = Query(default=None),
    extended: bool = Query(default=False),
    limit: int = Query(default=100, ge=31, le=1000),
):
    """Run the GP extremity detector over each symbol's closes."""
    provider = _require_provider()
    data = await fetch_symbols(
        provider, _symbols_param(symbols), interval or _default_interval, limit,
    )
    prices = {name: [c.close for c in candles] for name, candles in data.items()}

    results = scan_ml_signals(prices, extended=extended)
    return {
        "results": {symbol: asdict(result) for symbol, result in results.items()},
    }


@router.post("/backtest")
async def post_backtest(body: dict):
    """Run a backtest.

    Body: ``symbol`` (required), ``interval``, ``initial_capital``, ``mode``.
    """
    provider = _require_provider()
    symbol = str(body.get("symbol", "")).upper()
    if not symbol:
        raise HTTPException(status_code=400, detail="symbol is required")
    interval = body.get("interval") or _default_interval
    mode_name = _mode_param(body.get("mode"))
    try:
        initial_capital = float(body.get("initial_capital", 10_000.0))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="initial_capital must be a number") from None
    if initial_capital <= 0:
        raise HTTPException(status_code=400, detail="initial_capital must be positive")

    try:
        result = await run_backtest(provider, symbol, interval, initial_capital, mode_name)
    except InsufficientDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from None
    return backtest_to_dict(result)
