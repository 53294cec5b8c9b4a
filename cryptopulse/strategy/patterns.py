"""Candlestick pattern recognition — pure boolean predicates.

Single-candle predicates never match a candle with zero range.
Multi-candle predicates take the trailing candles of a sequence.
"""

from typing import Sequence

from cryptopulse.strategy.levels import find_swing_highs, find_swing_lows
from cryptopulse.strategy.models import Candle


BULLISH_PATTERNS = (
    "bullish_engulfing",
    "three_white_soldiers",
    "morning_star",
    "double_bottom",
    "hammer",
)
BEARISH_PATTERNS = (
    "bearish_engulfing",
    "three_black_crows",
    "evening_star",
    "double_top",
    "shooting_star",
)
BULLISH_REVERSALS = ("hammer", "bullish_engulfing", "morning_star")
BEARISH_REVERSALS = ("shooting_star", "bearish_engulfing", "evening_star")


def _body(candle: Candle) -> float:
    return abs(candle.close - candle.open)


def _upper_wick(candle: Candle) -> float:
    return candle.high - max(candle.close, candle.open)


def _lower_wick(candle: Candle) -> float:
    return min(candle.close, candle.open) - candle.low


def _is_bullish(candle: Candle) -> bool:
    return candle.close > candle.open


def _is_bearish(candle: Candle) -> bool:
    return candle.close < candle.open


# ── Single candle ────────────────────────────────────────────────────────


def is_hammer(candle: Candle) -> bool:
    """Small body, long lower wick, short upper wick."""
    total_range = candle.high - candle.low
    if total_range <= 0:
        return False
    body = _body(candle)
    return (
        _lower_wick(candle) > body * 2
        and _upper_wick(candle) < body * 0.5
        and body / total_range < 0.3
    )


def is_shooting_star(candle: Candle) -> bool:
    """Small body, long upper wick, short lower wick."""
    total_range = candle.high - candle.low
    if total_range <= 0:
        return False
    body = _body(candle)
    return (
        _upper_wick(candle) > body * 2
        and _lower_wick(candle) < body * 0.5
        and body / total_range < 0.3
    )


def is_doji(candle: Candle) -> bool:
    """Body under 10 % of the candle's range."""
    total_range = candle.high - candle.low
    if total_range <= 0:
        return False
    return _body(candle) / total_range < 0.1


# ── Two / three candles ──────────────────────────────────────────────────


def is_bullish_engulfing(prev: Candle, current: Candle) -> bool:
    """A bearish candle followed by a bullish body that swallows it."""
    return (
        _is_bearish(prev)
        and _is_bullish(current)
        and current.open < prev.close
        and current.close > prev.open
    )


def is_bearish_engulfing(prev: Candle, current: Candle) -> bool:
    """A bullish candle followed by a bearish body that swallows it."""
    return (
        _is_bullish(prev)
        and _is_bearish(current)
        and current.open > prev.close
        and current.close < prev.open
    )


def _is_strong_body(candle: Candle) -> bool:
    total_range = candle.high - candle.low
    return total_range > 0 and _body(candle) / total_range >= 0.5


def is_three_white_soldiers(candles: Sequence[Candle]) -> bool:
    """Three strong bullish candles, each opening inside the prior body
    and closing higher."""
    if len(candles) < 3:
        return False
    a, b, c = candles[-3:]
    if not all(_is_bullish(x) and _is_strong_body(x) for x in (a, b, c)):
        return False
    return (
        a.open <= b.open <= a.close
        and b.open <= c.open <= b.close
        and c.close > b.close > a.close
    )


def is_three_black_crows(candles: Sequence[Candle]) -> bool:
    """Three strong bearish candles, each opening inside the prior body
    and closing lower."""
    if len(candles) < 3:
        return False
    a, b, c = candles[-3:]
    if not all(_is_bearish(x) and _is_strong_body(x) for x in (a, b, c)):
        return False
    return (
        a.close <= b.open <= a.open
        and b.close <= c.open <= b.open
        and c.close < b.close < a.close
    )


def is_morning_star(candles: Sequence[Candle]) -> bool:
    """Long bearish candle, a small-bodied pause, then a bullish candle
    closing above the midpoint of the first body."""
    if len(candles) < 3:
        return False
    first, star, last = candles[-3:]
    if not (_is_bearish(first) and _is_strong_body(first) and _is_bullish(last)):
        return False
    midpoint = (first.open + first.close) / 2.0
    return _body(star) < _body(first) * 0.3 and last.close > midpoint


def is_evening_star(candles: Sequence[Candle]) -> bool:
    """Long bullish candle, a small-bodied pause, then a bearish candle
    closing below the midpoint of the first body."""
    if len(candles) < 3:
        return False
    first, star, last = candles[-3:]
    if not (_is_bullish(first) and _is_strong_body(first) and _is_bearish(last)):
        return False
    midpoint = (first.open + first.close) / 2.0
    return _body(star) < _body(first) * 0.3 and last.close < midpoint


# ── Chart patterns ───────────────────────────────────────────────────────


def is_double_bottom(
    candles: Sequence[Candle],
    lookback: int = 50,
    tolerance: float = 0.015,
    min_bounce: float = 0.02,
) -> bool:
    """Two recent swing lows within *tolerance* of each other, separated
    by a rally of at least *min_bounce*, with price now above both lows.
    """
    recent = candles[-lookback:]
    lows = find_swing_lows(recent)
    if len(lows) < 2:
        return False
    i, j = lows[-2], lows[-1]
    low1, low2 = recent[i].low, recent[j].low
    floor = min(low1, low2)
    if floor <= 0 or abs(low1 - low2) / floor > tolerance:
        return False
    peak = max(c.high for c in recent[i : j + 1])
    if peak < max(low1, low2) * (1 + min_bounce):
        return False
    return recent[-1].close > max(low1, low2)


def is_double_top(
    candles: Sequence[Candle],
    lookback: int = 50,
    tolerance: float = 0.015,
    min_pullback: float = 0.02,
) -> bool:
    """Two recent swing highs within *tolerance* of each other, separated
    by a pullback of at least *min_pullback*, with price now below both.
    """
    recent = candles[-lookback:]
    highs = find_swing_highs(recent)
    if len(highs) < 2:
        return False
    i, j = highs[-2], highs[-1]
    high1, high2 = recent[i].high, recent[j].high
    ceiling = max(high1, high2)
    if ceiling <= 0 or abs(high1 - high2) / ceiling > tolerance:
        return False
    trough = min(c.low for c in recent[i : j + 1])
    if trough > min(high1, high2) * (1 - min_pullback):
        return False
    return recent[-1].close < min(high1, high2)


# ── Aggregate ────────────────────────────────────────────────────────────


def detect_patterns(candles: Sequence[Candle]) -> dict[str, bool]:
    """Run every recognizer against the tail of *candles*."""
    if not candles:
        return {name: False for name in BULLISH_PATTERNS + BEARISH_PATTERNS + ("doji",)}

    current = candles[-1]
    prev = candles[-2] if len(candles) >= 2 else None
    return {
        "hammer": is_hammer(current),
        "shooting_star": is_shooting_star(current),
        "doji": is_doji(current),
        "bullish_engulfing": prev is not None and is_bullish_engulfing(prev, current),
        "bearish_engulfing": prev is not None and is_bearish_engulfing(prev, current),
        "three_white_soldiers": is_three_white_soldiers(candles),
        "three_black_crows": is_three_black_crows(candles),
        "morning_star": is_morning_star(candles),
        "evening_star": is_evening_star(candles),
        "double_bottom": is_double_bottom(candles),
        "double_top": is_double_top(candles),
    }
