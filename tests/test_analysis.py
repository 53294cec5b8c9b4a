"""Tests for cryptopulse.strategy.analysis — snapshot, divergence, regime."""

import pytest

from cryptopulse.errors import InsufficientDataError
from cryptopulse.strategy.analysis import (
    Indicators,
    classify_regime,
    detect_accumulation,
    detect_divergence,
    perform_technical_analysis,
    timeframe_context,
)
from cryptopulse.strategy.indicators import BuyerPressure, calculate_buyer_pressure, calculate_obv
from cryptopulse.strategy.models import Candle


# ── Candle fixtures ──────────────────────────────────────────────────────


def _make_candle(i, o, h, l, c, vol=1000.0, taker=None):
    return Candle(
        open_time=i * 3_600_000,
        open=o,
        high=h,
        low=l,
        close=c,
        volume=vol,
        close_time=i * 3_600_000 + 3_599_999,
        taker_buy_base_volume=taker,
    )


def _trend_candles(n, start=100.0, step=0.5):
    """Steady trend: each candle opens at the prior close and moves *step*."""
    candles = []
    prev = start - step
    for i in range(n):
        close = start + step * i
        vol = 2000.0 if i % 10 == 0 else 1000.0
        candles.append(
            _make_candle(
                i, prev, max(prev, close) + 0.2, min(prev, close) - 0.2, close,
                vol=vol, taker=0.7 * vol,
            )
        )
        prev = close
    return candles


def _quiet_candles(n=20):
    """Tight range, closes inching up, buyers in control."""
    return [
        _make_candle(i, 100 + 0.1 * i, 100 + 0.1 * i + 0.2, 100 + 0.1 * i - 0.2,
                     100 + 0.1 * i, vol=100.0, taker=70.0)
        for i in range(n)
    ]


# ── Divergence ───────────────────────────────────────────────────────────


class TestDivergence:
    def test_bullish(self):
        prices = [10, 9.8, 9.6, 9.4, 9.2, 9.0]
        rsi = [30, 32, 34, 36, 38, 40]
        div = detect_divergence(prices, rsi, 5)
        assert div.bullish is True
        assert div.bearish is False
        assert div.strength == pytest.approx((1.0 + 0.25) / 2)

    def test_bearish(self):
        prices = [9.0, 9.2, 9.4, 9.6, 9.8, 10]
        rsi = [40, 38, 36, 34, 32, 30]
        div = detect_divergence(prices, rsi, 5)
        assert div.bearish is True
        assert div.bullish is False

    def test_confirming_move_is_not_divergence(self):
        div = detect_divergence([1, 2, 3, 4, 5, 6], [10, 20, 30, 40, 50, 60], 5)
        assert not div.bullish and not div.bearish
        assert div.strength == 0.0

    def test_short_input(self):
        assert detect_divergence([1, 2], [3, 4], 5).strength == 0.0

    def test_undefined_indicator(self):
        div = detect_divergence([10, 9, 8, 7, 6, 5], [None] * 6, 5)
        assert not div.bullish


# ── Accumulation ─────────────────────────────────────────────────────────


class TestAccumulation:
    def test_detected(self):
        candles = _quiet_candles()
        result = detect_accumulation(
            candles, calculate_obv(candles), calculate_buyer_pressure(candles),
        )
        assert result.is_accumulating is True
        assert 0.0 < result.strength <= 1.0

    def test_wide_range(self):
        candles = _quiet_candles()
        candles[5] = _make_candle(5, 100, 120, 99, 100.5, vol=100.0, taker=70.0)
        result = detect_accumulation(
            candles, calculate_obv(candles), calculate_buyer_pressure(candles),
        )
        assert result.is_accumulating is False

    def test_sellers_in_control(self):
        candles = _quiet_candles()
        weak = BuyerPressure(current=45.0, last=45.0, signal="NEUTRAL")
        assert detect_accumulation(candles, calculate_obv(candles), weak).is_accumulating is False

    def test_without_buyer_pressure(self):
        candles = _quiet_candles()
        assert detect_accumulation(candles, calculate_obv(candles), None).is_accumulating is False


# ── Regime ───────────────────────────────────────────────────────────────


class TestClassifyRegime:
    def test_trending_bull(self):
        ind = Indicators(adx=30.0, ema20=2.0, ema50=1.0)
        assert classify_regime(ind, 30.0) == "TRENDING_BULL"

    def test_trending_bear(self):
        ind = Indicators(adx=30.0, ema20=1.0, ema50=2.0)
        assert classify_regime(ind, 30.0) == "TRENDING_BEAR"

    def test_choppy_index_overrides(self):
        ind = Indicators(adx=30.0, ema20=2.0, ema50=1.0)
        assert classify_regime(ind, 70.0) == "CHOPPY"

    def test_weak_adx(self):
        ind = Indicators(adx=15.0, ema20=2.0, ema50=1.0)
        assert classify_regime(ind, 30.0) == "CHOPPY"

    def test_unknown_adx(self):
        assert classify_regime(Indicators(ema20=2.0, ema50=1.0), None) == "CHOPPY"


# ── Snapshot ─────────────────────────────────────────────────────────────


class TestPerformTechnicalAnalysis:
    def test_requires_two_candles(self):
        with pytest.raises(InsufficientDataError, match="at least 2"):
            perform_technical_analysis(_trend_candles(1))

    def test_minimal_input(self):
        analysis = perform_technical_analysis(_trend_candles(2))
        assert analysis.indicators.rsi is None
        assert analysis.indicators.sma200 is None
        assert analysis.choppiness is None
        assert analysis.regime == "CHOPPY"
        assert analysis.levels.pivot is not None

    def test_uptrend_snapshot(self):
        candles = _trend_candles(250)
        analysis = perform_technical_analysis(candles)
        ind = analysis.indicators

        assert analysis.price == candles[-1].close
        assert analysis.timestamp == candles[-1].close_time
        assert ind.rsi == 100.0
        assert ind.ema20 > ind.ema50 > ind.sma200
        assert ind.atr == pytest.approx(0.9)
        assert ind.adx == pytest.approx(100.0)
        assert analysis.choppiness < 38.2
        assert analysis.regime == "TRENDING_BULL"
        assert analysis.patterns["three_white_soldiers"] is True
        assert analysis.buyer_pressure.signal == "BULLISH"

    def test_full_data_aligned_with_input(self):
        candles = _trend_candles(120)
        full = perform_technical_analysis(candles).full_data
        assert len(full.closes) == len(full.rsi) == len(full.sma200) == len(full.obv) == 120
        assert all(v is None for v in full.sma200)

    def test_downtrend_regime(self):
        analysis = perform_technical_analysis(_trend_candles(250, start=300.0, step=-0.5))
        assert analysis.regime == "TRENDING_BEAR"
        assert analysis.indicators.rsi == 0.0

    def test_deterministic(self):
        candles = _trend_candles(220)
        assert perform_technical_analysis(candles) == perform_technical_analysis(candles)

    def test_does_not_mutate_input(self):
        candles = _trend_candles(60)
        snapshot = list(candles)
        perform_technical_analysis(candles)
        assert candles == snapshot

    def test_timeframe_context(self):
        analysis = perform_technical_analysis(_trend_candles(250))
        context = timeframe_context(analysis)
        assert context.regime == analysis.regime
        assert context.indicators is analysis.indicators
