"""Binance public REST API async client.

Fetches klines and turns them into ``Candle`` records for the analysis
core.  Only public market-data endpoints are used; no API key is needed.
"""

import asyncio
import logging
from typing import Optional, Protocol, Sequence

import httpx

from cryptopulse.config import Config
from cryptopulse.errors import InsufficientDataError
from cryptopulse.strategy.analysis import (
    TimeframeContext,
    perform_technical_analysis,
    timeframe_context,
)
from cryptopulse.strategy.models import Candle

logger = logging.getLogger("cryptopulse")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}
_MAX_KLINES = 1000
HIGHER_TIMEFRAMES = ("4h", "1d")


class CandleProvider(Protocol):
    """Anything that can supply ordered candles for a symbol and interval."""

    async def fetch_candles(
        self, symbol: str, interval: str, limit: int = 100,
    ) -> list[Candle]:
        ...


def parse_kline(row: Sequence) -> Candle:
    """Convert one ``/api/v3/klines`` array into a ``Candle``.

    Layout: ``[openTime, o, h, l, c, v, closeTime, quoteVolume, trades,
    takerBuyBase, takerBuyQuote, ignore]``.
    """
    return Candle(
        open_time=int(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
        close_time=int(row[6]),
        quote_volume=float(row[7]),
        trade_count=int(row[8]),
        taker_buy_base_volume=float(row[9]),
        taker_buy_quote_volume=float(row[10]),
    )


def _backoff_delay(attempt: int, resp: Optional[httpx.Response] = None) -> float:
    """Exponential backoff, stretched to honour a ``Retry-After`` header."""
    delay = _RETRY_BASE_DELAY * (2 ** attempt)
    if resp is not None:
        retry_after = resp.headers.get("retry-after")
        if retry_after is not None and retry_after.isdigit():
            delay = max(delay, float(retry_after))
    return delay


# ── Provider-agnostic batch helpers ──────────────────────────────────────


async def fetch_symbols(
    provider: CandleProvider,
    symbols: Sequence[str],
    interval: str,
    limit: int,
) -> dict[str, list[Candle]]:
    """Fetch candles for several symbols concurrently.

    A symbol whose request fails is logged and left out of the result.
    """
    results = await asyncio.gather(
        *(provider.fetch_candles(s, interval, limit) for s in symbols),
        return_exceptions=True,
    )
    data: dict[str, list[Candle]] = {}
    for symbol, result in zip(symbols, results):
        if isinstance(result, Exception):
            logger.error("Failed to fetch %s %s: %s", symbol, interval, result)
            continue
        data[symbol] = result
    return data


async def _fetch_intervals(
    provider: CandleProvider,
    symbol: str,
    intervals: Sequence[str],
    limit: int,
) -> dict[str, list[Candle]]:
    results = await asyncio.gather(
        *(provider.fetch_candles(symbol, i, limit) for i in intervals),
        return_exceptions=True,
    )
    data: dict[str, list[Candle]] = {}
    for interval, result in zip(intervals, results):
        if isinstance(result, Exception):
            logger.error("Failed to fetch %s %s: %s", symbol, interval, result)
            continue
        data[interval] = result
    return data


async def build_timeframe_context(
    provider: CandleProvider,
    symbol: str,
    intervals: Sequence[str] = HIGHER_TIMEFRAMES,
    limit: int = 250,
) -> dict[str, TimeframeContext]:
    """Build the ``{interval: TimeframeContext}`` map for *symbol*.

    Intervals that fail to fetch or have too little history are
    logged and omitted; the signal generator degrades to the
    single-timeframe bias for them.
    """
    data = await _fetch_intervals(provider, symbol, intervals, limit)
    context: dict[str, TimeframeContext] = {}
    for interval, candles in data.items():
        try:
            analysis = perform_technical_analysis(candles)
        except InsufficientDataError as exc:
            logger.warning("Skipping %s %s context: %s", symbol, interval, exc)
            continue
        context[interval] = timeframe_context(analysis)
    return context


class BinanceClient:
    """Async client wrapping the Binance spot market-data API."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.binance_base_url
        self._timeout = config.request_timeout

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504), rate-limits
        (429) and transport failures.  A 429 waits at least as long as the
        ``Retry-After`` header asks.  A 418 (IP banned for ignoring
        rate-limits) is raised immediately like any other client error.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        timeout=self._timeout,
                        **kwargs,
                    )
            except httpx.TransportError as exc:
                delay = _backoff_delay(attempt)
                logger.warning(
                    "Binance %s transport error (%s), retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)
                continue

            if resp.status_code not in _RETRYABLE_STATUS_CODES:
                resp.raise_for_status()
                return resp

            delay = _backoff_delay(attempt, resp)
            logger.warning(
                "Binance %s returned %d (used weight %s), retry %d/%d in %.1fs",
                url, resp.status_code, resp.headers.get("x-mbx-used-weight-1m", "?"),
                attempt + 1, _MAX_RETRIES, delay,
            )
            last_exc = httpx.HTTPStatusError(
                f"Binance returned '{resp.status_code}'",
                request=resp.request,
                response=resp,
            )
            await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Candle data ──────────────────────────────────────────────────────

    async def fetch_candles(
        self,
        symbol: str,
        interval: str = "1h",
        limit: int = 100,
    ) -> list[Candle]:
        """Fetch klines from Binance.

        Args:
            symbol: e.g. ``"BTCUSDT"``
            interval: e.g. ``"1h"``, ``"4h"``, ``"1d"``
            limit: number of candles to request (max 1000)

        Returns:
            List of ``Candle`` objects ordered oldest-first.
        """
        if not 1 <= limit <= _MAX_KLINES:
            raise ValueError(f"limit must be between 1 and {_MAX_KLINES}, got {limit}")

        url = f"{self._base_url}/api/v3/klines"
        params = {"symbol": symbol.upper(), "interval": interval, "limit": limit}
        resp = await self._request_with_retry("get", url, params=params)
        return [parse_kline(row) for row in resp.json()]

    async def fetch_multiple_symbols(
        self,
        symbols: Sequence[str],
        interval: str = "1h",
        limit: int = 100,
    ) -> dict[str, list[Candle]]:
        """Fetch candles for several symbols, skipping any that fail."""
        return await fetch_symbols(self, symbols, interval, limit)

    async def fetch_multi_timeframe(
        self,
        symbol: str,
        intervals: Sequence[str] = HIGHER_TIMEFRAMES,
        limit: int = 250,
    ) -> dict[str, TimeframeContext]:
        return await build_timeframe_context(self, symbol, intervals, limit)
