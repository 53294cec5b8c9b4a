"""Technical analysis snapshot — aggregates every indicator for one window.

``perform_technical_analysis()`` is the single entry point used by the
signal generator, the backtest engine and the API.  It recomputes every
series from scratch on each call and returns an immutable snapshot.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from cryptopulse.errors import InsufficientDataError
from cryptopulse.strategy.indicators import (
    BuyerPressure,
    Series,
    calculate_adx,
    calculate_atr,
    calculate_average_volume,
    calculate_bollinger,
    calculate_buyer_pressure,
    calculate_choppiness,
    calculate_ema,
    calculate_macd,
    calculate_obv,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
    calculate_vwap,
    has_volume_spike,
)
from cryptopulse.strategy.levels import calculate_pivot_points, find_support_resistance
from cryptopulse.strategy.models import Candle, PivotPoints
from cryptopulse.strategy.patterns import detect_patterns


Regime = Literal["TRENDING_BULL", "TRENDING_BEAR", "CHOPPY"]

CHOPPY_THRESHOLD = 61.8
TRENDING_THRESHOLD = 38.2
WEAK_ADX = 20.0


@dataclass(frozen=True)
class Indicators:
    """Latest value of every indicator; ``None`` while undefined."""

    rsi: Optional[float] = None
    rsi_velocity: Optional[float] = None  # rsi[-1] - rsi[-2]
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None
    bb_upper: Optional[float] = None
    bb_middle: Optional[float] = None
    bb_lower: Optional[float] = None
    ema9: Optional[float] = None
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    sma200: Optional[float] = None
    atr: Optional[float] = None
    adx: Optional[float] = None
    plus_di: Optional[float] = None
    minus_di: Optional[float] = None
    stoch_k: Optional[float] = None
    stoch_d: Optional[float] = None
    stoch_histogram: Optional[float] = None
    prev_stoch_k: Optional[float] = None
    prev_stoch_d: Optional[float] = None
    vwap: Optional[float] = None
    obv: Optional[float] = None


@dataclass(frozen=True)
class Levels:
    support: float
    resistance: float
    pivot: Optional[PivotPoints] = None


@dataclass(frozen=True)
class VolumeStats:
    current: float
    average: float
    spike: bool


@dataclass(frozen=True)
class Divergence:
    bullish: bool = False
    bearish: bool = False
    strength: float = 0.0  # 0-1


@dataclass(frozen=True)
class Divergences:
    rsi: Divergence
    macd: Divergence


@dataclass(frozen=True)
class Accumulation:
    is_accumulating: bool = False
    strength: float = 0.0  # 0-1


@dataclass(frozen=True)
class FullData:
    """Full indicator series aligned with the input candles, for charting."""

    closes: list[float]
    rsi: Series
    macd: Series
    macd_signal: Series
    macd_histogram: Series
    bb_upper: Series
    bb_middle: Series
    bb_lower: Series
    ema20: Series
    ema50: Series
    sma200: Series
    atr: Series
    adx: Series
    stoch_k: Series
    stoch_d: Series
    vwap: Series
    obv: list[float]


@dataclass(frozen=True)
class TechnicalAnalysis:
    """Everything the signal generator needs to evaluate one bar."""

    price: float
    timestamp: int  # close time of the evaluated candle, epoch ms
    indicators: Indicators
    levels: Levels
    patterns: dict[str, bool]
    volume: VolumeStats
    buyer_pressure: Optional[BuyerPressure]
    divergence: Divergences
    accumulation: Accumulation
    choppiness: Optional[float]
    regime: Regime
    full_data: FullData


@dataclass(frozen=True)
class TimeframeContext:
    """Per-interval entry of the multi-timeframe map."""

    indicators: Indicators
    regime: Regime


# ── Public API ───────────────────────────────────────────────────────────


def detect_divergence(
    prices: Sequence[Optional[float]],
    indicator: Sequence[Optional[float]],
    lookback: int = 5,
) -> Divergence:
    """Compare the direction of price and indicator over *lookback* bars.

    Bullish when price falls while the indicator rises; bearish the
    inverse.  Strength is the mean of the normalised price change
    (5 % move saturates) and the relative indicator change.
    """
    if len(prices) <= lookback or len(indicator) <= lookback:
        return Divergence()

    p0, p1 = prices[-lookback - 1], prices[-1]
    i0, i1 = indicator[-lookback - 1], indicator[-1]
    if p0 is None or p1 is None or i0 is None or i1 is None or p0 == 0:
        return Divergence()

    price_change = p1 - p0
    indicator_change = i1 - i0
    bullish = price_change < 0 < indicator_change
    bearish = indicator_change < 0 < price_change
    if not (bullish or bearish):
        return Divergence()

    price_magnitude = min(1.0, abs(price_change / p0) * 20)
    denom = max(abs(i0), abs(i1))
    indicator_magnitude = min(1.0, abs(indicator_change) / denom) if denom > 0 else 0.0
    strength = (price_magnitude + indicator_magnitude) / 2.0
    return Divergence(bullish=bullish, bearish=bearish, strength=strength)


def detect_accumulation(
    candles: Sequence[Candle],
    obv: Sequence[float],
    buyer_pressure: Optional[BuyerPressure],
    lookback: int = 20,
) -> Accumulation:
    """Detect quiet accumulation: a tight range with rising OBV and buyers
    in control.

    Conditions over the last *lookback* candles:
        - high/low range under 8 % of the low
        - OBV higher than at the start of the window
        - average buyer pressure at least 50 %
    """
    if len(candles) < lookback or len(obv) < lookback or buyer_pressure is None:
        return Accumulation()

    recent = candles[-lookback:]
    highest = max(c.high for c in recent)
    lowest = min(c.low for c in recent)
    if lowest <= 0:
        return Accumulation()

    range_pct = (highest - lowest) / lowest * 100
    obv_rising = obv[-1] > obv[-lookback]
    if range_pct >= 8 or not obv_rising or buyer_pressure.current < 50:
        return Accumulation()

    tightness = 1.0 - range_pct / 8.0
    pressure = min(1.0, (buyer_pressure.current - 50) / 20.0)
    return Accumulation(is_accumulating=True, strength=(tightness + pressure) / 2.0)


def classify_regime(indicators: Indicators, choppiness: Optional[float]) -> Regime:
    """Label the market TRENDING_BULL, TRENDING_BEAR or CHOPPY.

    Choppiness above 61.8 or ADX below 20 is CHOPPY regardless of the
    EMAs.  Otherwise the EMA20/EMA50 ordering picks the direction.
    """
    if choppiness is not None and choppiness > CHOPPY_THRESHOLD:
        return "CHOPPY"
    if indicators.adx is None or indicators.adx < WEAK_ADX:
        return "CHOPPY"
    if indicators.ema20 is None or indicators.ema50 is None:
        return "CHOPPY"
    if indicators.ema20 > indicators.ema50:
        return "TRENDING_BULL"
    if indicators.ema20 < indicators.ema50:
        return "TRENDING_BEAR"
    return "CHOPPY"


def perform_technical_analysis(candles: Sequence[Candle]) -> TechnicalAnalysis:
    """Compute the full indicator snapshot for the last candle.

    Args:
        candles: Candle history, oldest-first.  At least 2 are required;
            indicators whose window is not yet full are reported as ``None``.

    Returns:
        ``TechnicalAnalysis`` for the most recent candle.

    Raises:
        InsufficientDataError: Fewer than 2 candles.
    """
    if len(candles) < 2:
        raise InsufficientDataError(
            f"Need at least 2 candles for technical analysis, got {len(candles)}"
        )

    closes = [c.close for c in candles]
    rsi = calculate_rsi(closes, 14)
    macd = calculate_macd(closes)
    bb_upper, bb_middle, bb_lower = calculate_bollinger(closes, 20, 2.0)
    ema9 = calculate_ema(closes, 9)
    ema20 = calculate_ema(closes, 20)
    ema50 = calculate_ema(closes, 50)
    sma200 = calculate_sma(closes, 200)
    atr = calculate_atr(candles, 14)
    adx = calculate_adx(candles, 14)
    stoch = calculate_stochastic(candles, 14, 3, 3)
    vwap = calculate_vwap(candles)
    obv = calculate_obv(candles)

    rsi_velocity = None
    if rsi[-1] is not None and rsi[-2] is not None:
        rsi_velocity = rsi[-1] - rsi[-2]

    indicators = Indicators(
        rsi=rsi[-1],
        rsi_velocity=rsi_velocity,
        macd=macd.macd[-1],
        macd_signal=macd.signal[-1],
        macd_histogram=macd.histogram[-1],
        bb_upper=bb_upper[-1],
        bb_middle=bb_middle[-1],
        bb_lower=bb_lower[-1],
        ema9=ema9[-1],
        ema20=ema20[-1],
        ema50=ema50[-1],
        sma200=sma200[-1],
        atr=atr[-1],
        adx=adx.adx[-1],
        plus_di=adx.plus_di[-1],
        minus_di=adx.minus_di[-1],
        stoch_k=stoch.k[-1],
        stoch_d=stoch.d[-1],
        stoch_histogram=stoch.histogram[-1],
        prev_stoch_k=stoch.k[-2],
        prev_stoch_d=stoch.d[-2],
        vwap=vwap[-1],
        obv=obv[-1],
    )

    support, resistance = find_support_resistance(candles, 20)
    levels = Levels(
        support=support,
        resistance=resistance,
        pivot=calculate_pivot_points(candles),
    )

    volume = VolumeStats(
        current=candles[-1].volume,
        average=calculate_average_volume(candles, 20),
        spike=has_volume_spike(candles, 1.5),
    )

    buyer_pressure = calculate_buyer_pressure(candles, 20)
    divergence = Divergences(
        rsi=detect_divergence(closes, rsi, 5),
        macd=detect_divergence(closes, macd.histogram, 5),
    )
    accumulation = detect_accumulation(candles, obv, buyer_pressure, 20)

    choppiness = calculate_choppiness(candles, 14) if len(candles) > 14 else None
    regime = classify_regime(indicators, choppiness)

    return TechnicalAnalysis(
        price=closes[-1],
        timestamp=candles[-1].close_time,
        indicators=indicators,
        levels=levels,
        patterns=detect_patterns(candles),
        volume=volume,
        buyer_pressure=buyer_pressure,
        divergence=divergence,
        accumulation=accumulation,
        choppiness=choppiness,
        regime=regime,
        full_data=FullData(
            closes=closes,
            rsi=rsi,
            macd=macd.macd,
            macd_signal=macd.signal,
            macd_histogram=macd.histogram,
            bb_upper=bb_upper,
            bb_middle=bb_middle,
            bb_lower=bb_lower,
            ema20=ema20,
            ema50=ema50,
            sma200=sma200,
            atr=atr,
            adx=adx.adx,
            stoch_k=stoch.k,
            stoch_d=stoch.d,
            vwap=vwap,
            obv=obv,
        ),
    )


def timeframe_context(analysis: TechnicalAnalysis) -> TimeframeContext:
    """Reduce a snapshot to the multi-timeframe map entry."""
    return TimeframeContext(indicators=analysis.indicators, regime=analysis.regime)
