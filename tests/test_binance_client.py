"""Tests for cryptopulse.exchange — Binance client with mocked HTTP responses."""

import httpx
import pytest

from cryptopulse.config import Config
from cryptopulse.exchange import binance_client
from cryptopulse.exchange.binance_client import BinanceClient, parse_kline
from cryptopulse.strategy.models import Candle


def _make_config() -> Config:
    return Config(
        binance_base_url="https://api.binance.test",
        symbols=("BTCUSDT",),
        interval="1h",
        trading_mode="BALANCED",
        initial_capital=10_000.0,
        request_timeout=5.0,
        log_level="INFO",
        api_port=8080,
    )


def _kline(i, close, spread=2.0, body=1.0):
    return [
        i * 3_600_000, f"{close - body:.2f}", f"{close + spread:.2f}", f"{close - spread:.2f}",
        f"{close:.2f}", "12.5", i * 3_600_000 + 3_599_999, "1250.0", 42,
        "7.5", "750.0", "0",
    ]


# ── Mock Binance responses ───────────────────────────────────────────────

MOCK_KLINES_RESPONSE = [_kline(0, 100.0), _kline(1, 101.0)]


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch):
    monkeypatch.setattr(binance_client, "_RETRY_BASE_DELAY", 0.0)


# ── Tests ────────────────────────────────────────────────────────────────


def test_parse_kline():
    c = parse_kline(_kline(3, 250.0))
    assert isinstance(c, Candle)
    assert c.open_time == 10_800_000
    assert c.close_time == 14_399_999
    assert c.open == pytest.approx(249.0)
    assert c.high == pytest.approx(252.0)
    assert c.low == pytest.approx(248.0)
    assert c.close == pytest.approx(250.0)
    assert c.volume == pytest.approx(12.5)
    assert c.quote_volume == pytest.approx(1250.0)
    assert c.trade_count == 42
    assert c.taker_buy_base_volume == pytest.approx(7.5)
    assert c.taker_buy_quote_volume == pytest.approx(750.0)


@pytest.mark.asyncio
async def test_fetch_candles(monkeypatch):
    """Request goes to /api/v3/klines with symbol, interval and limit."""
    client = BinanceClient(_make_config())
    captured = {}

    async def _mock_get(self, url, *, params=None, timeout=None):
        captured.update(url=url, params=params, timeout=timeout)
        return httpx.Response(200, json=MOCK_KLINES_RESPONSE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_candles("btcusdt", "4h", limit=2)
    assert [c.close for c in candles] == [100.0, 101.0]
    assert captured["url"] == "https://api.binance.test/api/v3/klines"
    assert captured["params"] == {"symbol": "BTCUSDT", "interval": "4h", "limit": 2}
    assert captured["timeout"] == 5.0


@pytest.mark.asyncio
async def test_fetch_candles_rejects_bad_limit():
    client = BinanceClient(_make_config())
    with pytest.raises(ValueError, match="limit"):
        await client.fetch_candles("BTCUSDT", "1h", limit=1001)


@pytest.mark.asyncio
async def test_retries_transient_errors(monkeypatch):
    """A 503 followed by a 200 succeeds on the second attempt."""
    client = BinanceClient(_make_config())
    statuses = [503, 200]
    calls = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        status = statuses[len(calls)]
        calls.append(status)
        body = MOCK_KLINES_RESPONSE if status == 200 else {"msg": "busy"}
        return httpx.Response(status, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    candles = await client.fetch_candles("BTCUSDT")
    assert len(candles) == 2
    assert calls == [503, 200]


@pytest.mark.asyncio
async def test_gives_up_after_max_retries(monkeypatch):
    client = BinanceClient(_make_config())
    calls = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        calls.append(url)
        return httpx.Response(429, json={}, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.HTTPStatusError):
        await client.fetch_candles("BTCUSDT")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after(monkeypatch):
    """A 429 waits at least as long as Binance's Retry-After header asks."""
    client = BinanceClient(_make_config())
    delays = []
    calls = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        calls.append(url)
        request = httpx.Request("GET", url)
        if len(calls) == 1:
            return httpx.Response(429, headers={"Retry-After": "7"}, json={}, request=request)
        return httpx.Response(200, json=MOCK_KLINES_RESPONSE, request=request)

    async def _record_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)
    monkeypatch.setattr(binance_client.asyncio, "sleep", _record_sleep)

    assert len(await client.fetch_candles("BTCUSDT")) == 2
    assert delays == [7.0]


@pytest.mark.asyncio
async def test_ip_ban_is_not_retried(monkeypatch):
    client = BinanceClient(_make_config())
    calls = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        calls.append(url)
        return httpx.Response(
            418, headers={"Retry-After": "120"}, json={}, request=httpx.Request("GET", url),
        )

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.HTTPStatusError):
        await client.fetch_candles("BTCUSDT")
    assert len(calls) == 1


def test_backoff_delay():
    response = httpx.Response(429, headers={"Retry-After": "1"})
    assert binance_client._backoff_delay(0) == 0.0
    assert binance_client._backoff_delay(0, response) == 1.0
    assert binance_client._backoff_delay(0, httpx.Response(503)) == 0.0


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(monkeypatch):
    client = BinanceClient(_make_config())
    calls = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        calls.append(url)
        return httpx.Response(400, json={"msg": "Invalid symbol."}, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    with pytest.raises(httpx.HTTPStatusError):
        await client.fetch_candles("NOPE")
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transport_errors_are_retried(monkeypatch):
    client = BinanceClient(_make_config())
    calls = []

    async def _mock_get(self, url, *, params=None, timeout=None):
        calls.append(url)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused")
        return httpx.Response(200, json=MOCK_KLINES_RESPONSE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    assert len(await client.fetch_candles("BTCUSDT")) == 2
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_fetch_multiple_symbols_skips_failures(monkeypatch):
    client = BinanceClient(_make_config())

    async def _mock_get(self, url, *, params=None, timeout=None):
        request = httpx.Request("GET", url)
        if params["symbol"] == "BADUSDT":
            return httpx.Response(400, json={"msg": "Invalid symbol."}, request=request)
        return httpx.Response(200, json=MOCK_KLINES_RESPONSE, request=request)

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    data = await client.fetch_multiple_symbols(["BTCUSDT", "BADUSDT", "ETHUSDT"])
    assert list(data) == ["BTCUSDT", "ETHUSDT"]


@pytest.mark.asyncio
async def test_fetch_multi_timeframe(monkeypatch):
    """Intervals with too little history are left out of the context map."""
    client = BinanceClient(_make_config())
    long_history = [
        _kline(i, 100.0 + 0.5 * i, spread=0.35, body=0.5) for i in range(250)
    ]

    async def _mock_get(self, url, *, params=None, timeout=None):
        body = long_history if params["interval"] == "4h" else [_kline(0, 100.0)]
        return httpx.Response(200, json=body, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)

    context = await client.fetch_multi_timeframe("BTCUSDT")
    assert list(context) == ["4h"]
    assert context["4h"].regime == "TRENDING_BULL"
    assert context["4h"].indicators.ema20 > context["4h"].indicators.ema50
