"""Support/resistance and pivot levels — pure functions."""

from typing import Sequence

from cryptopulse.errors import InsufficientDataError
from cryptopulse.strategy.models import Candle, PivotPoints


def find_swing_highs(candles: Sequence[Candle], window: int = 3) -> list[int]:
    """Return indices of swing highs.

    A swing high is a candle whose high is higher than the highs of the
    *window* candles on each side.
    """
    indices: list[int] = []
    for i in range(window, len(candles) - window):
        high = candles[i].high
        is_swing = True
        for j in range(1, window + 1):
            if candles[i - j].high >= high or candles[i + j].high >= high:
                is_swing = False
                break
        if is_swing:
            indices.append(i)
    return indices


def find_swing_lows(candles: Sequence[Candle], window: int = 3) -> list[int]:
    """Return indices of swing lows.

    A swing low is a candle whose low is lower than the lows of the
    *window* candles on each side.
    """
    indices: list[int] = []
    for i in range(window, len(candles) - window):
        low = candles[i].low
        is_swing = True
        for j in range(1, window + 1):
            if candles[i - j].low <= low or candles[i + j].low <= low:
                is_swing = False
                break
        if is_swing:
            indices.append(i)
    return indices


def find_support_resistance(
    candles: Sequence[Candle], lookback: int = 20,
) -> tuple[float, float]:
    """Return ``(support, resistance)`` over the last *lookback* candles.

    Support is the lowest low, resistance the highest high.
    """
    if not candles:
        raise InsufficientDataError("Need at least 1 candle for support/resistance")
    recent = candles[-lookback:]
    return min(c.low for c in recent), max(c.high for c in recent)


def calculate_pivot_points(candles: Sequence[Candle]) -> PivotPoints:
    """Classic floor-trader pivots from the last completed candle.

    The final candle is treated as still forming, so the pivots use
    ``candles[-2]``.
    """
    if len(candles) < 2:
        raise InsufficientDataError(
            f"Need at least 2 candles for pivot points, got {len(candles)}"
        )
    prev = candles[-2]
    p = (prev.high + prev.low + prev.close) / 3.0
    span = prev.high - prev.low
    return PivotPoints(
        p=p,
        r1=2 * p - prev.low,
        r2=p + span,
        r3=prev.high + 2 * (p - prev.low),
        s1=2 * p - prev.high,
        s2=p - span,
        s3=prev.low - 2 * (prev.high - p),
    )
