"""ML moving average — Gaussian-Process regression with an RBF kernel.

The smoother fits a GP over synthetic x-coordinates ``0..window-1`` and
forecasts ``forecast`` steps ahead.  Because the x-grid is fixed, the
forecast reduces to a constant weight vector applied to the mean-centred
price window; the mean absolute error around the smoothed value, scaled
by ``mult``, gives the band.

Signals:
    UPPER_EXTREMITY   close above the upper band while the curve rises
    LOWER_EXTREMITY   close below the lower band while the curve falls

With ``extended=True`` two early/late variants are also reported:
    APPROACHING_UPPER / APPROACHING_LOWER
        close inside the outer 20 % of the band, curve moving toward it
    MEAN_REVERSION_DOWN / MEAN_REVERSION_UP
        previous close outside the band, current close back inside
"""

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional, Sequence

from cryptopulse.errors import SingularMatrixError
from cryptopulse.ml.matrix import Matrix

logger = logging.getLogger("cryptopulse")

UPPER_SIGNALS = ("UPPER_EXTREMITY", "APPROACHING_UPPER", "MEAN_REVERSION_DOWN")
LOWER_SIGNALS = ("LOWER_EXTREMITY", "APPROACHING_LOWER", "MEAN_REVERSION_UP")
SIGNAL_MODES = {
    "UPPER_EXTREMITY": "EXTREMITY",
    "LOWER_EXTREMITY": "EXTREMITY",
    "APPROACHING_UPPER": "APPROACHING",
    "APPROACHING_LOWER": "APPROACHING",
    "MEAN_REVERSION_DOWN": "MEAN_REVERSION",
    "MEAN_REVERSION_UP": "MEAN_REVERSION",
}
APPROACH_ZONE = 0.2


@dataclass(frozen=True)
class BandPoint:
    out: float
    upper: float
    lower: float
    close: float


@dataclass(frozen=True)
class GPResult:
    """Smoothed value, band and extremity signal for the latest bar."""

    value: float
    upper: float
    lower: float
    signal: Optional[str]
    prev_value: float
    price: float
    signal_strength: int  # 0-100
    signal_quality: str  # WEAK / MODERATE / STRONG
    score: int  # 0-100
    velocity: float  # % change of the curve
    confidence: int  # 20-100, tighter band is higher
    rsi: float
    rsi_confirmed: bool
    trend_direction: str  # BULLISH / BEARISH vs SMA20
    trend_aligned: bool
    band_width_percent: float
    deviation: float  # % beyond the band
    signal_mode: Optional[str] = None


# ── Kernel ───────────────────────────────────────────────────────────────


def _rbf(x1: float, x2: float, length_scale: float) -> float:
    return math.exp(-((x1 - x2) ** 2) / (2.0 * length_scale**2))


def _kernel_matrix(xs1: Sequence[float], xs2: Sequence[float], length_scale: float) -> Matrix:
    km = Matrix(len(xs1), len(xs2))
    for i, a in enumerate(xs1):
        for j, b in enumerate(xs2):
            km.set(i, j, _rbf(a, b, length_scale))
    return km


def training_kernel(window: int, sigma: float) -> Matrix:
    """``K(xtrain, xtrain) + sigma² · I`` with length-scale = *window*."""
    xtrain = list(range(window))
    raw = _kernel_matrix(xtrain, xtrain, window)
    return raw.add(Matrix.identity(window).multiply(sigma * sigma))


@lru_cache(maxsize=32)
def gp_forecast_weights(window: int = 30, forecast: int = 2, sigma: float = 0.125) -> tuple[float, ...]:
    """Weights projecting a centred price window onto the forecast point.

    Row ``window + forecast - 1`` of ``K(xtest, xtrain) · Ktrain⁻¹``.

    Raises:
        SingularMatrixError: The regularised kernel cannot be inverted.
    """
    if window < 2:
        raise ValueError(f"window must be at least 2, got {window}")
    if forecast < 0:
        raise ValueError(f"forecast must be non-negative, got {forecast}")

    xtrain = list(range(window))
    xtest = list(range(window + forecast))
    k_inv = training_kernel(window, sigma).inverse()
    k_star = _kernel_matrix(xtrain, xtest, window)
    weights = k_star.transpose().multiply(k_inv)
    return tuple(weights.row(window + forecast - 1))


def _compute_point(
    prices: Sequence[float],
    idx: int,
    weights: Sequence[float],
    window: int,
    mult: float,
) -> Optional[BandPoint]:
    start = idx - window + 1
    if start < 0:
        return None
    window_prices = prices[start : idx + 1]
    mean = sum(window_prices) / window
    dot = sum(w * (p - mean) for w, p in zip(weights, window_prices))
    out = dot + mean
    mae = sum(abs(p - out) for p in window_prices) / window * mult
    return BandPoint(out=out, upper=out + mae, lower=out - mae, close=window_prices[-1])


def _core_signal(prev: BandPoint, curr: BandPoint) -> Optional[str]:
    if curr.close > curr.upper and curr.out > prev.out:
        return "UPPER_EXTREMITY"
    if curr.close < curr.lower and curr.out < prev.out:
        return "LOWER_EXTREMITY"
    return None


def _extended_signal(prev: BandPoint, curr: BandPoint) -> Optional[str]:
    inside = curr.lower <= curr.close <= curr.upper
    if prev.close > prev.upper and inside:
        return "MEAN_REVERSION_DOWN"
    if prev.close < prev.lower and inside:
        return "MEAN_REVERSION_UP"

    zone = (curr.upper - curr.lower) * APPROACH_ZONE
    if zone > 0 and inside:
        if curr.close >= curr.upper - zone and curr.out > prev.out:
            return "APPROACHING_UPPER"
        if curr.close <= curr.lower + zone and curr.out < prev.out:
            return "APPROACHING_LOWER"
    return None


def _window_rsi(prices: Sequence[float]) -> float:
    """RSI of the last 15 prices; an all-gain window gives RS = 100."""
    recent = prices[-15:]
    gains = losses = 0.0
    for a, b in zip(recent, recent[1:]):
        change = b - a
        if change > 0:
            gains += change
        else:
            losses -= change
    avg_gain = gains / 14
    avg_loss = losses / 14
    rs = 100.0 if avg_loss == 0 else avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


# ── Public API ───────────────────────────────────────────────────────────


def calculate_ml_moving_average(
    prices: Sequence[float],
    window: int = 30,
    forecast: int = 2,
    sigma: float = 0.125,
    mult: float = 1.75,
    extended: bool = False,
) -> Optional[GPResult]:
    """Evaluate the GP smoother on the last two bars of *prices*.

    Args:
        prices: Close prices, oldest-first.
        window: Training window and RBF length-scale.
        forecast: Bars ahead of the window the curve is projected to.
        sigma: Noise term added to the kernel diagonal.
        mult: Band width as a multiple of the mean absolute error.
        extended: Also classify APPROACHING_* and MEAN_REVERSION_* states.

    Returns:
        ``GPResult`` for the latest bar, or ``None`` with fewer than
        ``window + 1`` prices.

    Raises:
        SingularMatrixError: The kernel could not be inverted.
    """
    if len(prices) < window + 1:
        return None

    weights = gp_forecast_weights(window, forecast, sigma)
    prev = _compute_point(prices, len(prices) - 2, weights, window, mult)
    curr = _compute_point(prices, len(prices) - 1, weights, window, mult)
    if prev is None or curr is None:
        return None

    velocity = (curr.out - prev.out) / prev.out * 100 if prev.out != 0 else 0.0
    band_width_percent = (curr.upper - curr.lower) / curr.out * 100 if curr.out != 0 else 0.0

    deviation = 0.0
    if curr.close > curr.upper and curr.upper != 0:
        deviation = (curr.close - curr.upper) / curr.upper * 100
    elif curr.close < curr.lower and curr.lower != 0:
        deviation = (curr.lower - curr.close) / curr.lower * 100
    signal_strength = min(100, round(deviation * 20))
    confidence = max(20, min(100, round(100 - band_width_percent * 10)))

    rsi = _window_rsi(prices)
    sma20 = sum(prices[-20:]) / 20
    above_sma20 = curr.close > sma20

    signal = _core_signal(prev, curr)
    if signal is None and extended:
        signal = _extended_signal(prev, curr)

    quality = "WEAK"
    rsi_confirmed = False
    trend_aligned = False
    score = 0
    if signal is not None:
        if signal in UPPER_SIGNALS:
            rsi_confirmed = rsi > 70
            trend_aligned = not above_sma20
        else:
            rsi_confirmed = rsi < 30
            trend_aligned = above_sma20

        if rsi_confirmed and signal_strength > 50:
            quality = "STRONG"
        elif rsi_confirmed or signal_strength > 30:
            quality = "MODERATE"

        total = float(signal_strength)
        if rsi_confirmed:
            total += 25
        if trend_aligned:
            total += 15
        if abs(velocity) > 0.5:
            total += 10
        score = min(100, round(total))

    return GPResult(
        value=curr.out,
        upper=curr.upper,
        lower=curr.lower,
        signal=signal,
        prev_value=prev.out,
        price=curr.close,
        signal_strength=signal_strength,
        signal_quality=quality,
        score=score,
        velocity=velocity,
        confidence=confidence,
        rsi=rsi,
        rsi_confirmed=rsi_confirmed,
        trend_direction="BULLISH" if above_sma20 else "BEARISH",
        trend_aligned=trend_aligned,
        band_width_percent=band_width_percent,
        deviation=deviation,
        signal_mode=SIGNAL_MODES.get(signal) if signal else None,
    )


def ml_signal_series(
    prices: Sequence[float],
    window: int = 30,
    forecast: int = 2,
    sigma: float = 0.125,
    mult: float = 1.75,
) -> list[Optional[str]]:
    """Core extremity signal at every bar.

    Entry ``i`` is what ``calculate_ml_moving_average(prices[:i + 1])``
    reports as its signal; bars before ``window`` are always ``None``.
    """
    signals: list[Optional[str]] = [None] * len(prices)
    if len(prices) < window + 1:
        return signals

    weights = gp_forecast_weights(window, forecast, sigma)
    prev = _compute_point(prices, window - 1, weights, window, mult)
    for idx in range(window, len(prices)):
        curr = _compute_point(prices, idx, weights, window, mult)
        signals[idx] = _core_signal(prev, curr)
        prev = curr
    return signals


def scan_ml_signals(
    prices_by_symbol: Mapping[str, Sequence[float]],
    window: int = 30,
    forecast: int = 2,
    sigma: float = 0.125,
    mult: float = 1.75,
    extended: bool = False,
) -> dict[str, GPResult]:
    """Run the smoother for several symbols.

    A symbol with too little data or a singular kernel is logged and left
    out of the result; the other symbols are unaffected.
    """
    results: dict[str, GPResult] = {}
    for symbol, prices in prices_by_symbol.items():
        try:
            result = calculate_ml_moving_average(
                prices, window, forecast, sigma, mult, extended,
            )
        except SingularMatrixError as exc:
            logger.error("GP smoother failed for %s: %s", symbol, exc)
            continue
        if result is None:
            logger.warning(
                "Skipping %s: %d prices (need %d).", symbol, len(prices), window + 1,
            )
            continue
        results[symbol] = result
    return results
