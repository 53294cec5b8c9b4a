"""Signal generator — gates, scores and emits directional trade signals.

``generate_signal()`` is a pure function of the analysis snapshot, the
optional multi-timeframe context and the mode's fixed config.  Gates run in
order and any of them may reject the tick by returning ``None``:

    1. Regime      — choppiness and weak-ADX checks.
    2. Bias        — pick a direction from the daily / 4h regime or SMA200.
    3. Scoring     — weighted category subscores plus mode boosters.
    4. Emission    — aggregate and convergence thresholds.
    5. Levels      — ATR stop clamped to structure, 1.5 R / 3 R targets.
"""

import logging
from dataclasses import asdict
from typing import Literal, Mapping, Optional, Sequence, Union

from cryptopulse.risk.sl_tp import (
    calculate_stop_loss,
    calculate_take_profits,
    risk_reward,
    volatility_multiplier,
)
from cryptopulse.strategy.analysis import (
    CHOPPY_THRESHOLD,
    WEAK_ADX,
    TechnicalAnalysis,
    TimeframeContext,
    perform_technical_analysis,
)
from cryptopulse.strategy.models import Candle, Confidence, Direction, Signal, SignalLevels
from cryptopulse.strategy.modes import ModeConfig, SignalMode, get_mode_config
from cryptopulse.strategy.scoring import MultiTimeframe, percent, score_signal

logger = logging.getLogger("cryptopulse")

Bias = Literal["BULLISH", "BEARISH", "NEUTRAL"]

MIN_SCAN_CANDLES = 50
CONFIDENCE_RANK: dict[str, int] = {"LOW": 0, "MEDIUM": 1, "HIGH": 2}


# ── Public API ───────────────────────────────────────────────────────────


def generate_signal(
    analysis: TechnicalAnalysis,
    symbol: str,
    multi_timeframe: Optional[MultiTimeframe] = None,
    mode: Union[SignalMode, str] = SignalMode.BALANCED,
    config: Optional[ModeConfig] = None,
) -> Optional[Signal]:
    """Evaluate one analysis snapshot and return a ``Signal`` or ``None``.

    Args:
        analysis: Snapshot from ``perform_technical_analysis``.
        symbol: Trading pair, echoed into the signal.
        multi_timeframe: Optional ``{interval: TimeframeContext}`` map used
            to refine the bias gate and the higher-timeframe booster.
        mode: Signal mode (enum or name).
        config: Replacement config; defaults to the mode's table entry.

    Returns:
        ``Signal`` when every gate passes, otherwise ``None``.
    """
    config = config or get_mode_config(mode)
    ind = analysis.indicators
    price = analysis.price
    warnings: list[str] = []

    # 1. Regime gate
    chop = analysis.choppiness
    if chop is not None and chop > CHOPPY_THRESHOLD and not config.ignores_choppiness:
        if config.strict:
            return None
        warnings.append(f"Choppy market (CI {chop:.1f})")
    if ind.adx is not None and ind.adx < WEAK_ADX:
        if config.strict:
            return None
        warnings.append(f"Weak trend (ADX {ind.adx:.1f})")

    # 2. Bias / direction gate
    bias = derive_bias(analysis, multi_timeframe)
    direction = _direction_for(bias, analysis)
    if config.strict:
        if bias == "NEUTRAL":
            return None
        if (direction == "BUY" and analysis.regime == "TRENDING_BEAR") or (
            direction == "SELL" and analysis.regime == "TRENDING_BULL"
        ):
            return None
    if ind.sma200 is not None:
        wrong_side = price < ind.sma200 if direction == "BUY" else price > ind.sma200
        if wrong_side:
            if config.strict:
                return None
            side = "below" if direction == "BUY" else "above"
            warnings.append(f"Price {side} SMA200 against the {direction} direction")

    # 3. Scoring
    scored = score_signal(analysis, direction, config, multi_timeframe)
    warnings.extend(scored.warnings)

    # 4. Emission gate
    if scored.aggregate <= config.score_to_emit:
        return None
    if scored.categories_aligned < config.required_categories:
        return None
    if scored.subscores["momentum"] < config.min_momentum:
        return None

    # 5. Level construction
    multiplier = volatility_multiplier(config, chop)
    stop_loss = calculate_stop_loss(
        price, direction, ind.atr, multiplier,
        support=analysis.levels.support,
        resistance=analysis.levels.resistance,
    )
    tp1, tp2 = calculate_take_profits(price, direction, stop_loss)

    score = percent(scored.aggregate)
    return Signal(
        symbol=symbol,
        direction=direction,
        timestamp=analysis.timestamp,
        price=price,
        score=score,
        confidence=confidence_for(score),
        categories_aligned=scored.categories_aligned,
        subscores={name: percent(value) for name, value in scored.subscores.items()},
        reasons=scored.reasons,
        warnings=tuple(warnings),
        levels=SignalLevels(
            entry=price,
            stop_loss=stop_loss,
            take_profit1=tp1,
            take_profit2=tp2,
            support=analysis.levels.support,
            resistance=analysis.levels.resistance,
            pivot=analysis.levels.pivot,
        ),
        risk_reward=round(risk_reward(price, stop_loss, tp1), 2),
        indicators=asdict(ind),
        patterns=tuple(sorted(name for name, hit in analysis.patterns.items() if hit)),
        volume_spike=analysis.volume.spike,
        regime=analysis.regime,
        mode=config.mode.value,
    )


def derive_bias(
    analysis: TechnicalAnalysis,
    multi_timeframe: Optional[Mapping[str, TimeframeContext]] = None,
) -> Bias:
    """Market bias from the daily regime, else the 4h regime, else SMA200.

    The first higher timeframe present in *multi_timeframe* decides; a
    CHOPPY regime there yields NEUTRAL.
    """
    if multi_timeframe:
        for interval in ("1d", "4h"):
            context = multi_timeframe.get(interval)
            if context is None:
                continue
            if context.regime == "TRENDING_BULL":
                return "BULLISH"
            if context.regime == "TRENDING_BEAR":
                return "BEARISH"
            return "NEUTRAL"

    sma200 = analysis.indicators.sma200
    if sma200 is None or analysis.price == sma200:
        return "NEUTRAL"
    return "BULLISH" if analysis.price > sma200 else "BEARISH"


def confidence_for(score: int) -> Confidence:
    if score >= 80:
        return "HIGH"
    if score >= 60:
        return "MEDIUM"
    return "LOW"


def analyze_multiple_symbols(
    symbols_data: Mapping[str, Sequence[Candle]],
    multi_timeframe: Optional[Mapping[str, MultiTimeframe]] = None,
    mode: Union[SignalMode, str] = SignalMode.BALANCED,
) -> list[Signal]:
    """Run the full pipeline for several symbols.

    Symbols with fewer than 50 candles are skipped, and a failure in one
    symbol is logged without affecting the others.

    Returns:
        Emitted signals, highest score first.
    """
    signals: list[Signal] = []
    for symbol, candles in symbols_data.items():
        if len(candles) < MIN_SCAN_CANDLES:
            logger.warning(
                "Skipping %s: %d candles (need %d).",
                symbol, len(candles), MIN_SCAN_CANDLES,
            )
            continue
        try:
            analysis = perform_technical_analysis(candles)
            context = multi_timeframe.get(symbol) if multi_timeframe else None
            signal = generate_signal(analysis, symbol, context, mode)
        except Exception as exc:
            logger.error("Analysis failed for %s: %s", symbol, exc)
            continue
        if signal is not None:
            signals.append(signal)

    signals.sort(key=lambda s: s.score, reverse=True)
    return signals


def filter_signals_by_confidence(
    signals: Sequence[Signal], min_confidence: Confidence = "LOW",
) -> list[Signal]:
    """Keep signals at or above *min_confidence*."""
    if min_confidence not in CONFIDENCE_RANK:
        raise ValueError(
            f"min_confidence must be LOW, MEDIUM or HIGH, got '{min_confidence}'"
        )
    floor = CONFIDENCE_RANK[min_confidence]
    return [s for s in signals if CONFIDENCE_RANK[s.confidence] >= floor]


# ── Helpers ──────────────────────────────────────────────────────────────


def _direction_for(bias: Bias, analysis: TechnicalAnalysis) -> Direction:
    if bias == "BULLISH":
        return "BUY"
    if bias == "BEARISH":
        return "SELL"
    ind = analysis.indicators
    if ind.ema20 is not None and ind.ema50 is not None and ind.ema20 < ind.ema50:
        return "SELL"
    return "BUY"
