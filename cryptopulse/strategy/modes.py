"""Signal modes — the fixed per-mode weight and threshold table.

Each ``SignalMode`` maps to one frozen ``ModeConfig``.  The table is built
once at import time and never mutated; callers that need a variant (for
example a stricter emission threshold in a test or a parameter sweep) use
``dataclasses.replace`` to get a new object.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Union


class SignalMode(str, Enum):
    CONSERVATIVE = "CONSERVATIVE"
    BALANCED = "BALANCED"
    RISKY = "RISKY"
    SCALPING = "SCALPING"


CATEGORIES = (
    "momentum",
    "trend",
    "trend_strength",
    "levels",
    "volume",
    "patterns",
    "divergence",
    "accumulation",
)


@dataclass(frozen=True)
class CategoryWeights:
    """Weight applied to each category subscore in the aggregate."""

    momentum: float
    trend: float
    trend_strength: float
    levels: float
    volume: float
    patterns: float
    divergence: float
    accumulation: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ModeConfig:
    """Scoring and gating parameters for one signal mode.

    Attributes:
        mode: The mode this config belongs to.
        weights: Category weights for the aggregate score.
        convergence_threshold: A category counts as aligned at or above
            this subscore.
        required_categories: Minimum aligned categories to emit.
        score_to_emit: Aggregate must be strictly above this to emit.
        momentum_divisor: Normaliser for the raw momentum sum.
        stop_multiplier_min: ATR multiple for the stop in trending markets.
        stop_multiplier_max: ATR multiple for the stop in choppy markets.
        min_momentum: Momentum subscore floor (0 disables the check).
        strict: Regime and bias warnings become hard rejections.
        ignores_choppiness: Skip the choppiness check entirely.
        uses_ema9: Fold EMA9/EMA20 alignment into momentum.
        target_room_pct: Warn when the opposing level is closer than this.
    """

    mode: SignalMode
    weights: CategoryWeights
    convergence_threshold: float
    required_categories: int
    score_to_emit: float
    momentum_divisor: float
    stop_multiplier_min: float
    stop_multiplier_max: float
    min_momentum: float = 0.0
    strict: bool = False
    ignores_choppiness: bool = False
    uses_ema9: bool = False
    target_room_pct: float = 4.0


MODE_CONFIGS: dict[SignalMode, ModeConfig] = {
    SignalMode.CONSERVATIVE: ModeConfig(
        mode=SignalMode.CONSERVATIVE,
        weights=CategoryWeights(
            momentum=0.25, trend=0.30, trend_strength=0.20, levels=0.10,
            volume=0.05, patterns=0.05, divergence=0.05,
        ),
        convergence_threshold=0.4,
        required_categories=2,
        score_to_emit=0.65,
        momentum_divisor=4.0,
        stop_multiplier_min=2.0,
        stop_multiplier_max=2.5,
        strict=True,
    ),
    SignalMode.BALANCED: ModeConfig(
        mode=SignalMode.BALANCED,
        weights=CategoryWeights(
            momentum=0.30, trend=0.25, trend_strength=0.15, levels=0.10,
            volume=0.10, patterns=0.05, divergence=0.05,
        ),
        convergence_threshold=0.4,
        required_categories=1,
        score_to_emit=0.40,
        momentum_divisor=3.5,
        stop_multiplier_min=1.5,
        stop_multiplier_max=2.0,
    ),
    SignalMode.RISKY: ModeConfig(
        mode=SignalMode.RISKY,
        weights=CategoryWeights(
            momentum=0.35, trend=0.10, trend_strength=0.05, levels=0.10,
            volume=0.10, patterns=0.15, divergence=0.10, accumulation=0.05,
        ),
        convergence_threshold=0.4,
        required_categories=1,
        score_to_emit=0.40,
        momentum_divisor=3.0,
        stop_multiplier_min=1.5,
        stop_multiplier_max=2.0,
        min_momentum=0.4,
    ),
    SignalMode.SCALPING: ModeConfig(
        mode=SignalMode.SCALPING,
        weights=CategoryWeights(
            momentum=0.45, trend=0.15, trend_strength=0.05, levels=0.05,
            volume=0.20, patterns=0.05, divergence=0.05,
        ),
        convergence_threshold=0.4,
        required_categories=1,
        score_to_emit=0.45,
        momentum_divisor=4.0,
        stop_multiplier_min=0.8,
        stop_multiplier_max=1.2,
        ignores_choppiness=True,
        uses_ema9=True,
        target_room_pct=1.0,
    ),
}


def parse_mode(mode: Union[SignalMode, str, None]) -> SignalMode:
    """Accept a ``SignalMode``, its name (any case) or ``None`` (BALANCED)."""
    if mode is None:
        return SignalMode.BALANCED
    if isinstance(mode, SignalMode):
        return mode
    try:
        return SignalMode(mode.upper())
    except ValueError:
        raise ValueError(
            f"Unknown signal mode '{mode}'. "
            f"Available: {', '.join(m.value for m in SignalMode)}"
        ) from None


def get_mode_config(mode: Union[SignalMode, str, None] = None) -> ModeConfig:
    """Look up the config for *mode* (default BALANCED)."""
    return MODE_CONFIGS[parse_mode(mode)]
