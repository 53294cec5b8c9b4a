"""CryptoPulse — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
signal scans, GP band scans and backtests.
"""

import logging

from fastapi import FastAPI

from cryptopulse.api.routers import router

app = FastAPI(title="CryptoPulse Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("cryptopulse")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli(argv=None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command."""
    import argparse
    import asyncio

    from cryptopulse.config import load_config
    from cryptopulse.exchange.binance_client import BinanceClient

    parser = argparse.ArgumentParser(description="CryptoPulse signal engine")
    parser.add_argument(
        "command",
        choices=["scan", "ml", "backtest", "serve"],
        help="scan: technical signals, ml: GP bands, backtest: replay history, "
        "serve: run the API",
    )
    parser.add_argument("--symbols", help="Comma-separated pairs (default: from .env)")
    parser.add_argument("--interval", help="Kline interval (default: from .env)")
    parser.add_argument(
        "--mode",
        choices=["CONSERVATIVE", "BALANCED", "RISKY", "SCALPING"],
        help="Signal mode (default: from .env)",
    )
    parser.add_argument("--capital", type=float, help="Backtest starting capital")
    parser.add_argument("--extended", action="store_true", help="Extended GP signals")
    parser.add_argument("--env", dest="env_path", help="Path to a .env file")
    args = parser.parse_args(argv)

    config = load_config(args.env_path)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    symbols = (
        tuple(s.strip().upper() for s in args.symbols.split(",") if s.strip())
        if args.symbols else config.symbols
    )
    interval = args.interval or config.interval
    mode = args.mode or config.trading_mode
    client = BinanceClient(config)

    if args.command == "scan":
        asyncio.run(_scan(client, symbols, interval, mode))
    elif args.command == "ml":
        asyncio.run(_ml_scan(client, symbols, interval, args.extended))
    elif args.command == "backtest":
        capital = args.capital if args.capital is not None else config.initial_capital
        asyncio.run(_backtest(client, symbols, interval, mode, capital))
    else:
        _serve(client, symbols, interval, mode, config.api_port)


async def _scan(client, symbols, interval: str, mode: str) -> None:
    from cryptopulse.cli.dashboard import print_signals
    from cryptopulse.strategy.signals import analyze_multiple_symbols

    data = await client.fetch_multiple_symbols(symbols, interval, 250)
    contexts = {s: await client.fetch_multi_timeframe(s) for s in data}
    signals = analyze_multiple_symbols(data, contexts, mode)
    print_signals(signals, mode)


async def _ml_scan(client, symbols, interval: str, extended: bool) -> None:
    from cryptopulse.cli.dashboard import print_ml_signals
    from cryptopulse.ml.gp_moving_average import scan_ml_signals

    data = await client.fetch_multiple_symbols(symbols, interval, 100)
    prices = {s: [c.close for c in candles] for s, candles in data.items()}
    print_ml_signals(scan_ml_signals(prices, extended=extended))


async def _backtest(client, symbols, interval: str, mode: str, capital: float) -> None:
    from cryptopulse.backtest.engine import run_backtest
    from cryptopulse.cli.dashboard import print_backtest

    for symbol in symbols:
        result = await run_backtest(client, symbol, interval, capital, mode)
        print_backtest(result)


def _serve(client, symbols, interval: str, mode: str, port: int) -> None:
    """Start the API server with the Binance client injected."""
    import uvicorn

    from cryptopulse.api.routers import configure_routers

    configure_routers(provider=client, symbols=symbols, interval=interval, mode=mode)
    logger.info("CryptoPulse API available at http://localhost:%d", port)
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


if __name__ == "__main__":
    _run_cli()
