"""Stop-loss and take-profit calculation — pure math, no I/O.

The stop is placed ``ATR × multiplier`` away from entry, where the
multiplier widens with choppiness inside the mode's range.  A stop that
would sit well beyond the nearest structural level is pulled in to that
level with a 2 % buffer.  Targets are fixed multiples of the resulting
risk distance: TP1 at 1.5 R, TP2 at 3 R.
"""

from typing import Optional

from cryptopulse.strategy.models import Direction
from cryptopulse.strategy.modes import ModeConfig


TREND_CHOPPINESS = 38.2
RANGE_CHOPPINESS = 61.8
STRUCTURE_BUFFER = 0.02
FALLBACK_RISK_PCT = 0.02
TP1_R_MULTIPLE = 1.5
TP2_R_MULTIPLE = 3.0


def _check_direction(direction: str) -> None:
    if direction not in ("BUY", "SELL"):
        raise ValueError(f"direction must be 'BUY' or 'SELL', got '{direction}'")


def volatility_multiplier(config: ModeConfig, choppiness: Optional[float]) -> float:
    """Interpolate the mode's ATR stop multiplier on choppiness.

    CI at or below 38.2 uses the minimum, at or above 61.8 the maximum,
    and values in between scale linearly.  Unknown choppiness uses the
    midpoint of the range.
    """
    low = config.stop_multiplier_min
    high = config.stop_multiplier_max
    if choppiness is None:
        return (low + high) / 2.0
    t = (choppiness - TREND_CHOPPINESS) / (RANGE_CHOPPINESS - TREND_CHOPPINESS)
    t = max(0.0, min(1.0, t))
    return low + t * (high - low)


def calculate_stop_loss(
    entry_price: float,
    direction: Direction,
    atr: Optional[float],
    multiplier: float,
    support: Optional[float] = None,
    resistance: Optional[float] = None,
) -> float:
    """Calculate the stop-loss price.

    Args:
        entry_price: Trade entry price.
        direction: ``"BUY"`` or ``"SELL"``.
        atr: Current ATR(14); when missing or non-positive the stop falls
            back to 2 % of entry.
        multiplier: ATR multiple (see ``volatility_multiplier``).
        support: Nearest support, used to tighten BUY stops.
        resistance: Nearest resistance, used to tighten SELL stops.

    Returns:
        Stop-loss price, always on the losing side of entry.
    """
    _check_direction(direction)

    if atr is not None and atr > 0:
        distance = atr * multiplier
    else:
        distance = entry_price * FALLBACK_RISK_PCT

    if direction == "BUY":
        stop = entry_price - distance
        if support is not None and support < entry_price:
            floor = support * (1 - STRUCTURE_BUFFER)
            if stop < floor < entry_price:
                stop = floor
        return stop

    stop = entry_price + distance
    if resistance is not None and resistance > entry_price:
        ceiling = resistance * (1 + STRUCTURE_BUFFER)
        if entry_price < ceiling < stop:
            stop = ceiling
    return stop


def calculate_take_profits(
    entry_price: float, direction: Direction, stop_loss: float,
) -> tuple[float, float]:
    """Return ``(tp1, tp2)`` at 1.5 R and 3 R from *entry_price*."""
    _check_direction(direction)
    risk = abs(entry_price - stop_loss)
    sign = 1.0 if direction == "BUY" else -1.0
    return (
        entry_price + sign * risk * TP1_R_MULTIPLE,
        entry_price + sign * risk * TP2_R_MULTIPLE,
    )


def risk_reward(entry_price: float, stop_loss: float, take_profit: float) -> float:
    """Reward distance divided by risk distance (0 when risk is zero)."""
    risk = abs(entry_price - stop_loss)
    if risk == 0:
        return 0.0
    return abs(take_profit - entry_price) / risk
