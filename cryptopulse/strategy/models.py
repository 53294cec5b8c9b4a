"""Strategy data models — typed representations for market data and signals."""

from dataclasses import dataclass
from typing import Literal, Optional


Direction = Literal["BUY", "SELL"]
Confidence = Literal["LOW", "MEDIUM", "HIGH"]


@dataclass(frozen=True)
class Candle:
    """A single kline bar as delivered by the exchange.

    Times are epoch milliseconds.  Taker volumes are ``None`` when the
    data source does not report them.
    """

    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int = 0
    quote_volume: float = 0.0
    trade_count: int = 0
    taker_buy_base_volume: Optional[float] = None
    taker_buy_quote_volume: Optional[float] = None


@dataclass(frozen=True)
class Reason:
    """One human-readable contribution to a signal's score."""

    text: str
    weight: int  # percentage points


@dataclass(frozen=True)
class PivotPoints:
    """Classic floor-trader pivots from the last completed candle."""

    p: float
    r1: float
    r2: float
    r3: float
    s1: float
    s2: float
    s3: float


@dataclass(frozen=True)
class SignalLevels:
    """Price levels attached to an emitted signal."""

    entry: float
    stop_loss: float
    take_profit1: float
    take_profit2: float
    support: Optional[float] = None
    resistance: Optional[float] = None
    pivot: Optional[PivotPoints] = None


@dataclass(frozen=True)
class Signal:
    """A directional trade signal produced by the signal generator."""

    symbol: str
    direction: Direction
    timestamp: int
    price: float
    score: int  # 0-100
    confidence: Confidence
    categories_aligned: int
    subscores: dict[str, int]
    reasons: tuple[Reason, ...]
    warnings: tuple[str, ...]
    levels: SignalLevels
    risk_reward: float
    indicators: dict[str, Optional[float]]
    patterns: tuple[str, ...] = ()
    volume_spike: bool = False
    regime: str = "CHOPPY"
    mode: str = "BALANCED"
