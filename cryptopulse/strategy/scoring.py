"""Category scorers and mode boosters for the signal generator.

Every scorer is direction-aware and returns a ``CategoryScore`` in [0, 1].
Mode-specific bonuses are declared as ``Booster`` rules tagged with the
modes they apply to, so one generic pipeline serves all four modes.
"""

from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from cryptopulse.strategy.analysis import TechnicalAnalysis, TimeframeContext
from cryptopulse.strategy.models import Direction, Reason
from cryptopulse.strategy.modes import ModeConfig, SignalMode
from cryptopulse.strategy.patterns import (
    BEARISH_PATTERNS,
    BEARISH_REVERSALS,
    BULLISH_PATTERNS,
    BULLISH_REVERSALS,
)


MultiTimeframe = Mapping[str, TimeframeContext]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def percent(value: float) -> int:
    return round(value * 100)


@dataclass(frozen=True)
class CategoryScore:
    value: float
    reasons: tuple[Reason, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass
class ScoringContext:
    """Inputs shared by every scorer and booster predicate."""

    analysis: TechnicalAnalysis
    direction: Direction
    config: ModeConfig
    multi_timeframe: Optional[MultiTimeframe] = None
    subscores: dict[str, float] = field(default_factory=dict)

    @property
    def sign(self) -> float:
        return 1.0 if self.direction == "BUY" else -1.0

    def aligned(self, a: Optional[float], b: Optional[float]) -> bool:
        """``a > b`` for BUY, ``a < b`` for SELL; ``False`` if either is missing."""
        if a is None or b is None:
            return False
        return (a - b) * self.sign > 0


# ── Category scorers ─────────────────────────────────────────────────────


def _rsi_zone(rsi: float) -> float:
    """Score RSI oriented so that higher is stronger for the direction."""
    if rsi < 30:
        return 0.8
    if rsi < 40:
        return 0.5
    if rsi < 50:
        return 0.7
    if rsi <= 70:
        return 1.0
    if rsi <= 80:
        return 0.6
    return 0.3


def score_momentum(ctx: ScoringContext) -> CategoryScore:
    """RSI zone, MACD line and histogram, Stochastic cross, RSI velocity
    (and EMA9 alignment in modes that use it), normalised per mode."""
    ind = ctx.analysis.indicators
    warnings: list[str] = []
    raw = 0.0

    if ind.rsi is not None:
        oriented = ind.rsi if ctx.direction == "BUY" else 100.0 - ind.rsi
        raw += 1.5 * _rsi_zone(oriented)
        if oriented > 80:
            label = "overbought" if ctx.direction == "BUY" else "oversold"
            warnings.append(f"RSI {label} ({ind.rsi:.1f})")

    if ctx.aligned(ind.macd, ind.macd_signal):
        raw += 1.0
    if ctx.aligned(ind.macd_histogram, 0.0):
        raw += 1.0

    if ctx.aligned(ind.stoch_k, ind.stoch_d):
        crossed = (
            ind.prev_stoch_k is not None
            and ind.prev_stoch_d is not None
            and not ctx.aligned(ind.prev_stoch_k, ind.prev_stoch_d)
        )
        raw += 1.0 if crossed else 0.5

    if ctx.aligned(ind.rsi_velocity, 0.0):
        raw += 1.0

    if ctx.config.uses_ema9 and ctx.aligned(ind.ema9, ind.ema20):
        raw += 1.0

    value = clamp(raw / ctx.config.momentum_divisor)
    reasons = (Reason("Momentum aligned", percent(value)),) if value > 0 else ()
    return CategoryScore(value, reasons, tuple(warnings))


def score_trend(ctx: ScoringContext) -> CategoryScore:
    """EMA20 vs EMA50 alignment plus a continuation or pullback bonus."""
    ind = ctx.analysis.indicators
    price = ctx.analysis.price
    if ind.ema20 is None or ind.ema50 is None:
        return CategoryScore(0.0)

    reasons: list[Reason] = []
    if ctx.aligned(ind.ema20, ind.ema50):
        value = 0.6
        if ctx.aligned(price, ind.ema20):
            value += 0.4
            reasons.append(Reason("Trend continuation", 40))
        elif ctx.aligned(price, ind.ema50):
            value += 0.4
            reasons.append(Reason("Pullback within trend", 40))
    elif ctx.aligned(price, ind.ema20):
        value = 0.2
    else:
        value = 0.0

    value = clamp(value)
    if value > 0:
        reasons.insert(0, Reason("EMA trend favourable", percent(value)))
    return CategoryScore(value, tuple(reasons))


def score_trend_strength(ctx: ScoringContext) -> CategoryScore:
    """ADX scaled linearly from 25 (0) to 50 (1)."""
    adx = ctx.analysis.indicators.adx
    if adx is None:
        return CategoryScore(0.0)
    value = clamp((adx - 25.0) / 25.0)
    if value == 0:
        return CategoryScore(0.0)
    return CategoryScore(value, (Reason(f"Strong trend (ADX {adx:.1f})", percent(value)),))


def score_levels(ctx: ScoringContext) -> CategoryScore:
    """Proximity to support (BUY) or resistance (SELL), the outer
    Bollinger band and the nearer pivot levels."""
    analysis = ctx.analysis
    price = analysis.price
    ind = analysis.indicators
    levels = analysis.levels
    if price <= 0:
        return CategoryScore(0.0)

    if ctx.direction == "BUY":
        level = levels.support
        band = ind.bb_lower
        target = levels.resistance
        pivots = (levels.pivot.s1, levels.pivot.s2) if levels.pivot else ()
    else:
        level = levels.resistance
        band = ind.bb_upper
        target = levels.support
        pivots = (levels.pivot.r1, levels.pivot.r2) if levels.pivot else ()

    level_score = 0.0
    distance = abs(price - level) / price * 100
    if distance <= 2:
        level_score = 1.0
    elif distance <= 5:
        level_score = 0.5

    band_score = 0.0
    if band is not None:
        if ctx.aligned(band, price) or band == price:
            band_score = 1.0
        elif abs(price - band) / price * 100 < 2:
            band_score = 0.7

    pivot_score = 0.0
    if any(abs(price - p) / price * 100 < 1.5 for p in pivots):
        pivot_score = 0.8

    value = clamp(max(level_score, band_score, pivot_score))
    reasons = (Reason("Favourable price levels", percent(value)),) if value > 0 else ()

    warnings: tuple[str, ...] = ()
    room = (target - price) * ctx.sign / price * 100
    if room < ctx.config.target_room_pct:
        name = "resistance" if ctx.direction == "BUY" else "support"
        warnings = (f"Limited room to {name} ({room:.1f}%)",)
    return CategoryScore(value, reasons, warnings)


def score_volume(ctx: ScoringContext) -> CategoryScore:
    """Volume spike plus taker pressure in the signal's direction."""
    analysis = ctx.analysis
    spike = 1.0 if analysis.volume.spike else 0.0

    buyer = 0.0
    if analysis.buyer_pressure is not None:
        pressure = analysis.buyer_pressure.current
        oriented = pressure if ctx.direction == "BUY" else 100.0 - pressure
        if oriented > 60:
            buyer = 1.0
        elif oriented > 50:
            buyer = (oriented - 50) / 10.0

    value = clamp(0.6 * spike + 0.4 * buyer)
    reasons = (Reason("Volume confirms", percent(value)),) if value > 0 else ()
    return CategoryScore(value, reasons)


def score_patterns(ctx: ScoringContext) -> CategoryScore:
    names = BULLISH_PATTERNS if ctx.direction == "BUY" else BEARISH_PATTERNS
    count = sum(1 for name in names if ctx.analysis.patterns.get(name))
    value = clamp(count / 3.0)
    reasons = (Reason("Candlestick patterns", percent(value)),) if value > 0 else ()
    return CategoryScore(value, reasons)


def score_divergence(ctx: ScoringContext) -> CategoryScore:
    div = ctx.analysis.divergence
    if ctx.direction == "BUY":
        rsi_hit, macd_hit = div.rsi.bullish, div.macd.bullish
    else:
        rsi_hit, macd_hit = div.rsi.bearish, div.macd.bearish

    value = 0.0
    if rsi_hit:
        value = max(value, div.rsi.strength)
    if macd_hit:
        value = max(value, div.macd.strength * 0.8)
    value = clamp(value)
    reasons = (Reason("Divergence", percent(value)),) if value > 0 else ()
    return CategoryScore(value, reasons)


def score_accumulation(ctx: ScoringContext) -> CategoryScore:
    acc = ctx.analysis.accumulation
    if ctx.direction != "BUY" or not acc.is_accumulating:
        return CategoryScore(0.0)
    value = clamp(acc.strength)
    return CategoryScore(value, (Reason("Accumulation", percent(value)),))


SCORERS: dict[str, Callable[[ScoringContext], CategoryScore]] = {
    "momentum": score_momentum,
    "trend": score_trend,
    "trend_strength": score_trend_strength,
    "levels": score_levels,
    "volume": score_volume,
    "patterns": score_patterns,
    "divergence": score_divergence,
    "accumulation": score_accumulation,
}


# ── Boosters ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Booster:
    """An additive bonus applied when *predicate* holds in one of *modes*."""

    name: str
    modes: frozenset[SignalMode]
    bonus: float
    predicate: Callable[[ScoringContext], bool]


def _triple_alignment(ctx: ScoringContext) -> bool:
    ind = ctx.analysis.indicators
    return (
        ctx.aligned(ctx.analysis.price, ind.ema20)
        and ctx.aligned(ind.ema20, ind.ema50)
        and ctx.aligned(ind.ema50, ind.sma200)
    )


def _strong_adx(ctx: ScoringContext) -> bool:
    adx = ctx.analysis.indicators.adx
    return adx is not None and adx > 30


def _trend_confirmation(ctx: ScoringContext) -> bool:
    return (
        ctx.subscores.get("trend", 0.0) >= 0.8
        and ctx.subscores.get("trend_strength", 0.0) >= 0.5
    )


def _higher_timeframe_agrees(ctx: ScoringContext) -> bool:
    if not ctx.multi_timeframe:
        return False
    for interval in ("4h", "1d"):
        context = ctx.multi_timeframe.get(interval)
        if context is None:
            continue
        if ctx.aligned(context.indicators.ema20, context.indicators.ema50):
            return True
    return False


def _reversal_candle(ctx: ScoringContext) -> bool:
    names = BULLISH_REVERSALS if ctx.direction == "BUY" else BEARISH_REVERSALS
    return any(ctx.analysis.patterns.get(name) for name in names)


def _scalp_momentum(ctx: ScoringContext) -> bool:
    return ctx.subscores.get("momentum", 0.0) >= 0.6


def _ema9_alignment(ctx: ScoringContext) -> bool:
    ind = ctx.analysis.indicators
    return ctx.aligned(ind.ema9, ind.ema20)


BOOSTERS: tuple[Booster, ...] = (
    Booster("Triple EMA/SMA200 alignment", frozenset({SignalMode.CONSERVATIVE}), 0.20, _triple_alignment),
    Booster("ADX above 30", frozenset({SignalMode.CONSERVATIVE}), 0.15, _strong_adx),
    Booster("Confirmed trend", frozenset({SignalMode.BALANCED}), 0.10, _trend_confirmation),
    Booster(
        "Higher timeframe agrees",
        frozenset({SignalMode.CONSERVATIVE, SignalMode.BALANCED, SignalMode.RISKY}),
        0.05,
        _higher_timeframe_agrees,
    ),
    Booster("Reversal candle", frozenset({SignalMode.RISKY}), 0.20, _reversal_candle),
    Booster("Momentum burst", frozenset({SignalMode.SCALPING}), 0.20, _scalp_momentum),
    Booster("EMA9 over EMA20", frozenset({SignalMode.SCALPING}), 0.15, _ema9_alignment),
)


# ── Aggregate ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ScoreResult:
    aggregate: float  # 0-1
    subscores: dict[str, float]
    categories_aligned: int
    reasons: tuple[Reason, ...]
    warnings: tuple[str, ...]


def score_signal(
    analysis: TechnicalAnalysis,
    direction: Direction,
    config: ModeConfig,
    multi_timeframe: Optional[MultiTimeframe] = None,
) -> ScoreResult:
    """Weighted sum of category subscores plus applicable boosts, clamped
    to [0, 1]."""
    ctx = ScoringContext(analysis, direction, config, multi_timeframe)
    weights = config.weights.as_dict()

    reasons: list[Reason] = []
    warnings: list[str] = []
    aggregate = 0.0
    for name, scorer in SCORERS.items():
        result = scorer(ctx)
        ctx.subscores[name] = result.value
        aggregate += result.value * weights[name]
        reasons.extend(result.reasons)
        warnings.extend(result.warnings)

    for booster in BOOSTERS:
        if config.mode in booster.modes and booster.predicate(ctx):
            aggregate += booster.bonus
            reasons.append(Reason(booster.name, percent(booster.bonus)))

    aligned = sum(
        1 for value in ctx.subscores.values() if value >= config.convergence_threshold
    )
    return ScoreResult(
        aggregate=clamp(aggregate),
        subscores=dict(ctx.subscores),
        categories_aligned=aligned,
        reasons=tuple(reasons),
        warnings=tuple(warnings),
    )
