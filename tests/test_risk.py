"""Tests for cryptopulse.risk.sl_tp — stop-loss and take-profit math."""

import pytest

from cryptopulse.risk.sl_tp import (
    calculate_stop_loss,
    calculate_take_profits,
    risk_reward,
    volatility_multiplier,
)
from cryptopulse.strategy.modes import get_mode_config


class TestVolatilityMultiplier:
    def test_trending_uses_minimum(self):
        assert volatility_multiplier(get_mode_config("BALANCED"), 30.0) == 1.5

    def test_choppy_uses_maximum(self):
        assert volatility_multiplier(get_mode_config("BALANCED"), 70.0) == 2.0

    def test_linear_in_between(self):
        assert volatility_multiplier(get_mode_config("BALANCED"), 50.0) == pytest.approx(1.75)

    def test_unknown_choppiness_uses_midpoint(self):
        assert volatility_multiplier(get_mode_config("CONSERVATIVE"), None) == pytest.approx(2.25)

    def test_scalping_range(self):
        config = get_mode_config("SCALPING")
        assert volatility_multiplier(config, 10.0) == 0.8
        assert volatility_multiplier(config, 90.0) == pytest.approx(1.2)


class TestStopLoss:
    def test_buy_atr_stop(self):
        assert calculate_stop_loss(100.0, "BUY", 2.0, 1.5) == pytest.approx(97.0)

    def test_sell_atr_stop(self):
        assert calculate_stop_loss(100.0, "SELL", 2.0, 1.5) == pytest.approx(103.0)

    def test_buy_pulled_in_to_support(self):
        stop = calculate_stop_loss(100.0, "BUY", 2.0, 1.5, support=99.0)
        assert stop == pytest.approx(99.0 * 0.98)

    def test_buy_distant_support_ignored(self):
        stop = calculate_stop_loss(100.0, "BUY", 2.0, 1.5, support=90.0)
        assert stop == pytest.approx(97.0)

    def test_sell_pulled_in_to_resistance(self):
        stop = calculate_stop_loss(100.0, "SELL", 2.0, 1.5, resistance=100.5)
        assert stop == pytest.approx(100.5 * 1.02)

    def test_sell_distant_resistance_ignored(self):
        stop = calculate_stop_loss(100.0, "SELL", 2.0, 1.5, resistance=101.0)
        assert stop == pytest.approx(103.0)

    def test_missing_atr_falls_back_to_two_percent(self):
        assert calculate_stop_loss(100.0, "BUY", None, 1.5) == pytest.approx(98.0)
        assert calculate_stop_loss(100.0, "SELL", 0.0, 1.5) == pytest.approx(102.0)

    def test_invalid_direction(self):
        with pytest.raises(ValueError, match="direction"):
            calculate_stop_loss(100.0, "HOLD", 2.0, 1.5)


class TestTakeProfits:
    def test_buy(self):
        tp1, tp2 = calculate_take_profits(100.0, "BUY", 98.0)
        assert tp1 == pytest.approx(103.0)
        assert tp2 == pytest.approx(106.0)

    def test_sell(self):
        tp1, tp2 = calculate_take_profits(100.0, "SELL", 102.0)
        assert tp1 == pytest.approx(97.0)
        assert tp2 == pytest.approx(94.0)

    def test_risk_reward(self):
        assert risk_reward(100.0, 98.0, 103.0) == pytest.approx(1.5)
        assert risk_reward(100.0, 100.0, 103.0) == 0.0
