"""CryptoPulse — application configuration.

Loads .env variables into a typed config object.
Validates values on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from cryptopulse.strategy.modes import SignalMode


_DEFAULT_SYMBOLS = "BTCUSDT,ETHUSDT,SOLUSDT,BNBUSDT,XRPUSDT"
_VALID_INTERVALS = {
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w", "1M",
}


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    binance_base_url: str
    symbols: tuple[str, ...]
    interval: str
    trading_mode: str  # one of SignalMode
    initial_capital: float
    request_timeout: float
    log_level: str
    api_port: int


def _parse_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable has a default, so an empty environment is valid.
    Raises ``ValueError`` with a message naming the variable when a value
    is malformed or out of range.
    """
    load_dotenv(dotenv_path=env_path)

    symbols = tuple(
        s.strip().upper()
        for s in os.environ.get("SYMBOLS", _DEFAULT_SYMBOLS).split(",")
        if s.strip()
    )
    if not symbols:
        raise ValueError("SYMBOLS must list at least one trading pair")

    interval = os.environ.get("INTERVAL", "1h")
    if interval not in _VALID_INTERVALS:
        raise ValueError(f"INTERVAL '{interval}' is not a Binance kline interval")

    trading_mode = os.environ.get("TRADING_MODE", "BALANCED").upper()
    if trading_mode not in SignalMode.__members__:
        raise ValueError(
            f"TRADING_MODE must be one of {', '.join(SignalMode.__members__)}, "
            f"got '{trading_mode}'"
        )

    initial_capital = _parse_float("INITIAL_CAPITAL", "10000")
    if initial_capital <= 0:
        raise ValueError(f"INITIAL_CAPITAL must be positive, got {initial_capital}")

    request_timeout = _parse_float("REQUEST_TIMEOUT", "30")
    if request_timeout <= 0:
        raise ValueError(f"REQUEST_TIMEOUT must be positive, got {request_timeout}")

    raw_port = os.environ.get("API_PORT", "8080")
    try:
        api_port = int(raw_port)
    except ValueError:
        raise ValueError(f"API_PORT must be an integer, got '{raw_port}'") from None

    return Config(
        binance_base_url=os.environ.get("BINANCE_BASE_URL", "https://api.binance.com").rstrip("/"),
        symbols=symbols,
        interval=interval,
        trading_mode=trading_mode,
        initial_capital=initial_capital,
        request_timeout=request_timeout,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        api_port=api_port,
    )
