"""Technical indicators — SMA, EMA, RSI, MACD, Bollinger, ATR, ADX and friends.

Pure functions, no I/O.  Series functions return a list the same length as
their input with ``None`` in every slot before the lookback window is full;
they never raise on short input.  Scalar functions raise
``InsufficientDataError`` when no value can be produced.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from cryptopulse.errors import InsufficientDataError
from cryptopulse.strategy.models import Candle


Series = list[Optional[float]]


@dataclass(frozen=True)
class MACDSeries:
    macd: Series
    signal: Series
    histogram: Series


@dataclass(frozen=True)
class ADXSeries:
    adx: Series
    plus_di: Series
    minus_di: Series


@dataclass(frozen=True)
class StochasticSeries:
    k: Series
    d: Series
    histogram: Series


@dataclass(frozen=True)
class BuyerPressure:
    """Share of volume bought by takers, in percent."""

    current: float  # average over the lookback
    last: float  # most recent candle
    signal: str  # "BULLISH", "BEARISH" or "NEUTRAL"


def _defined_tail(series: Series) -> tuple[int, list[float]]:
    """Return ``(offset, values)`` for the run of defined values at the end."""
    offset = len(series)
    while offset > 0 and series[offset - 1] is not None:
        offset -= 1
    return offset, [v for v in series[offset:]]  # type: ignore[misc]


def _true_ranges(candles: Sequence[Candle]) -> list[float]:
    """True range per bar; index 0 has no previous close and is ``0.0``."""
    trs = [0.0]
    for i in range(1, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        trs.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return trs


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_sma(values: Sequence[float], period: int) -> Series:
    """Simple Moving Average over *period* points."""
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    sma: Series = [None] * len(values)
    for i in range(period - 1, len(values)):
        sma[i] = sum(values[i - period + 1 : i + 1]) / period
    return sma


def calculate_ema(values: Sequence[float], period: int) -> Series:
    """Calculate an Exponential Moving Average series.

    The first EMA value is seeded with the SMA of the first *period*
    points, placed at index ``period - 1``.  Afterwards::

        ema[i] = (x[i] - ema[i-1]) × k + ema[i-1],   k = 2 / (period + 1)

    Shorter input yields an all-``None`` series.
    """
    if period <= 0:
        raise ValueError(f"period must be positive, got {period}")
    ema: Series = [None] * len(values)
    if len(values) < period:
        return ema

    k = 2.0 / (period + 1)
    prev = sum(values[:period]) / period
    ema[period - 1] = prev
    for i in range(period, len(values)):
        prev = (values[i] - prev) * k + prev
        ema[i] = prev
    return ema


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(closes: Sequence[float], period: int = 14) -> Series:
    """Relative Strength Index using plain windowed averages.

    For each index ``i >= period`` the average gain and loss are the means
    of the *period* close-to-close deltas ending at ``i``.  This is not
    Wilder's smoothed average; downstream score thresholds were tuned
    against these values.

    RSI is exactly 100 when the window holds no losses.
    """
    rsi: Series = [None] * len(closes)
    gains = [max(closes[i] - closes[i - 1], 0.0) for i in range(1, len(closes))]
    losses = [max(closes[i - 1] - closes[i], 0.0) for i in range(1, len(closes))]

    for i in range(period, len(closes)):
        avg_gain = sum(gains[i - period : i]) / period
        avg_loss = sum(losses[i - period : i]) / period
        if avg_loss == 0:
            rsi[i] = 100.0
        else:
            rs = avg_gain / avg_loss
            rsi[i] = 100.0 - 100.0 / (1.0 + rs)
    return rsi


# ── MACD ─────────────────────────────────────────────────────────────────


def calculate_macd(
    closes: Sequence[float],
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
) -> MACDSeries:
    """MACD line, signal line (EMA of the MACD line) and histogram."""
    fast = calculate_ema(closes, fast_period)
    slow = calculate_ema(closes, slow_period)

    macd_line: Series = [
        f - s if f is not None and s is not None else None
        for f, s in zip(fast, slow)
    ]

    offset, defined = _defined_tail(macd_line)
    signal_tail = calculate_ema(defined, signal_period)
    signal_line: Series = [None] * offset + signal_tail

    histogram: Series = [
        m - s if m is not None and s is not None else None
        for m, s in zip(macd_line, signal_line)
    ]
    return MACDSeries(macd=macd_line, signal=signal_line, histogram=histogram)


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger(
    closes: Sequence[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[Series, Series, Series]:
    """Calculate Bollinger Bands.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_dev* × σ
    Lower  = middle − *std_dev* × σ

    σ is the population standard deviation of the window.

    Returns ``(upper, middle, lower)``.
    """
    n = len(closes)
    middle = calculate_sma(closes, period)
    upper: Series = [None] * n
    lower: Series = [None] * n

    for i in range(period - 1, n):
        window = closes[i - period + 1 : i + 1]
        mean = middle[i]
        variance = sum((x - mean) ** 2 for x in window) / period
        sigma = math.sqrt(variance)
        upper[i] = mean + std_dev * sigma
        lower[i] = mean - std_dev * sigma

    return upper, middle, lower


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> Series:
    """Average True Range series.

    Uses the standard True Range definition:
        TR = max(high - low, |high - prev_close|, |low - prev_close|)

    The first ATR (index *period*) is the SMA of ``TR[1..period]``.
    Subsequent values use an EMA-style recurrence with EMA's smoothing
    constant rather than Wilder's ``1/period``::

        atr[i] = (TR[i] - atr[i-1]) × 2 / (period + 1) + atr[i-1]
    """
    atr: Series = [None] * len(candles)
    if len(candles) < period + 1:
        return atr

    trs = _true_ranges(candles)
    k = 2.0 / (period + 1)
    prev = sum(trs[1 : period + 1]) / period
    atr[period] = prev
    for i in range(period + 1, len(candles)):
        prev = (trs[i] - prev) * k + prev
        atr[i] = prev
    return atr


# ── ADX ──────────────────────────────────────────────────────────────────


def calculate_adx(candles: Sequence[Candle], period: int = 14) -> ADXSeries:
    """Calculate the Average Directional Index with +DI / −DI.

    Algorithm:
        1. +DM / -DM directional movement per bar.
        2. Wilder-smooth +DM, -DM, and TR over *period*.
        3. +DI = 100 × smoothed_+DM / smoothed_TR
        4. -DI = 100 × smoothed_-DM / smoothed_TR
        5. DX = 100 × |+DI − −DI| / (+DI + −DI)
        6. ADX = SMA of DX over *period*.

    DI values start at candle index *period*; ADX at ``2 × period − 1``.
    """
    n = len(candles)
    adx: Series = [None] * n
    plus_di: Series = [None] * n
    minus_di: Series = [None] * n
    if n < period + 1:
        return ADXSeries(adx=adx, plus_di=plus_di, minus_di=minus_di)

    plus_dm_raw: list[float] = [0.0]
    minus_dm_raw: list[float] = [0.0]
    for i in range(1, n):
        up_move = candles[i].high - candles[i - 1].high
        down_move = candles[i - 1].low - candles[i].low
        plus_dm_raw.append(up_move if (up_move > down_move and up_move > 0) else 0.0)
        minus_dm_raw.append(down_move if (down_move > up_move and down_move > 0) else 0.0)
    tr_raw = _true_ranges(candles)

    smoothed_plus_dm = sum(plus_dm_raw[1 : period + 1])
    smoothed_minus_dm = sum(minus_dm_raw[1 : period + 1])
    smoothed_tr = sum(tr_raw[1 : period + 1])

    dx: Series = [None] * n
    for i in range(period, n):
        if i > period:
            smoothed_plus_dm = smoothed_plus_dm - smoothed_plus_dm / period + plus_dm_raw[i]
            smoothed_minus_dm = smoothed_minus_dm - smoothed_minus_dm / period + minus_dm_raw[i]
            smoothed_tr = smoothed_tr - smoothed_tr / period + tr_raw[i]

        if smoothed_tr == 0:
            pdi = mdi = 0.0
        else:
            pdi = 100.0 * smoothed_plus_dm / smoothed_tr
            mdi = 100.0 * smoothed_minus_dm / smoothed_tr
        plus_di[i] = pdi
        minus_di[i] = mdi
        di_sum = pdi + mdi
        dx[i] = 0.0 if di_sum == 0 else 100.0 * abs(pdi - mdi) / di_sum

    offset, defined = _defined_tail(dx)
    adx_tail = calculate_sma(defined, period)
    adx = [None] * offset + adx_tail
    return ADXSeries(adx=adx, plus_di=plus_di, minus_di=minus_di)


# ── Stochastic ───────────────────────────────────────────────────────────


def calculate_stochastic(
    candles: Sequence[Candle],
    period: int = 14,
    smooth_k: int = 3,
    smooth_d: int = 3,
) -> StochasticSeries:
    """Slow stochastic oscillator.

    Raw %K = 100 × (close − lowest low) / (highest high − lowest low) over
    *period* bars (50 when the window has no range).  %K is the SMA of raw
    %K over *smooth_k*; %D is the SMA of %K over *smooth_d*.
    """
    n = len(candles)
    raw_k: Series = [None] * n
    for i in range(period - 1, n):
        window = candles[i - period + 1 : i + 1]
        highest = max(c.high for c in window)
        lowest = min(c.low for c in window)
        if highest == lowest:
            raw_k[i] = 50.0
        else:
            raw_k[i] = 100.0 * (candles[i].close - lowest) / (highest - lowest)

    offset, defined = _defined_tail(raw_k)
    k_series: Series = [None] * offset + calculate_sma(defined, smooth_k)
    offset, defined = _defined_tail(k_series)
    d_series: Series = [None] * offset + calculate_sma(defined, smooth_d)

    histogram: Series = [
        k - d if k is not None and d is not None else None
        for k, d in zip(k_series, d_series)
    ]
    return StochasticSeries(k=k_series, d=d_series, histogram=histogram)


# ── Volume-based ─────────────────────────────────────────────────────────


def calculate_obv(candles: Sequence[Candle]) -> list[float]:
    """On-Balance Volume, starting at 0 on the first candle."""
    obv: list[float] = []
    running = 0.0
    for i, candle in enumerate(candles):
        if i > 0:
            if candle.close > candles[i - 1].close:
                running += candle.volume
            elif candle.close < candles[i - 1].close:
                running -= candle.volume
        obv.append(running)
    return obv


def calculate_vwap(candles: Sequence[Candle]) -> Series:
    """Cumulative volume-weighted average of the typical price."""
    vwap: Series = []
    cum_pv = 0.0
    cum_vol = 0.0
    for candle in candles:
        typical = (candle.high + candle.low + candle.close) / 3.0
        cum_pv += typical * candle.volume
        cum_vol += candle.volume
        vwap.append(cum_pv / cum_vol if cum_vol > 0 else None)
    return vwap


def calculate_average_volume(candles: Sequence[Candle], period: int = 20) -> float:
    """Sum of the last *period* volumes divided by *period*."""
    if not candles:
        raise InsufficientDataError("Need at least 1 candle for average volume")
    recent = candles[-period:]
    return sum(c.volume for c in recent) / period


def has_volume_spike(candles: Sequence[Candle], threshold: float = 1.5) -> bool:
    """``True`` when the last volume exceeds *threshold* × the prior average."""
    if len(candles) < 2:
        return False
    avg_volume = calculate_average_volume(candles[:-1], 20)
    return candles[-1].volume > avg_volume * threshold


def calculate_buyer_pressure(
    candles: Sequence[Candle], period: int = 20,
) -> Optional[BuyerPressure]:
    """Taker-buy share of volume, averaged over the last *period* candles.

    Candles without taker volume (or with zero volume) are skipped.
    Returns ``None`` when no candle in the window can be used.

    Classification: BULLISH above 60 %, BEARISH below 40 %.
    """
    ratios = [
        100.0 * c.taker_buy_base_volume / c.volume
        for c in candles[-period:]
        if c.taker_buy_base_volume is not None and c.volume > 0
    ]
    if not ratios:
        return None

    current = sum(ratios) / len(ratios)
    if current > 60:
        signal = "BULLISH"
    elif current < 40:
        signal = "BEARISH"
    else:
        signal = "NEUTRAL"
    return BuyerPressure(current=current, last=ratios[-1], signal=signal)


# ── Choppiness ───────────────────────────────────────────────────────────


def calculate_choppiness(candles: Sequence[Candle], period: int = 14) -> float:
    """Choppiness Index of the last *period* bars.

        CI = 100 × log10(ΣTR / (highest high − lowest low)) / log10(period)

    Values above 61.8 indicate sideways, non-trending conditions; below
    38.2 a directional move.  A window with no range scores 100.

    Requires ``period + 1`` candles.
    """
    if len(candles) < period + 1:
        raise InsufficientDataError(
            f"Need at least {period + 1} candles for choppiness({period}), "
            f"got {len(candles)}"
        )
    trs = _true_ranges(candles)[-period:]
    window = candles[-period:]
    price_range = max(c.high for c in window) - min(c.low for c in window)
    if price_range <= 0:
        return 100.0
    ci = 100.0 * math.log10(sum(trs) / price_range) / math.log10(period)
    return min(100.0, max(0.0, ci))
