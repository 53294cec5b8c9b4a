"""Tests for the Gaussian-Process smoother and its matrix helper."""

import logging

import numpy as np
import pytest

from cryptopulse.errors import SingularMatrixError
from cryptopulse.ml import gp_moving_average
from cryptopulse.ml.gp_moving_average import (
    calculate_ml_moving_average,
    gp_forecast_weights,
    ml_signal_series,
    scan_ml_signals,
    training_kernel,
)
from cryptopulse.ml.matrix import Matrix


SPIKE_PRICES = [100.0] * 60 + [120.0] + [100.0] * 40


# ── Matrix ───────────────────────────────────────────────────────────────


class TestMatrix:
    def test_inverse(self):
        inv = Matrix.from_array([[4.0, 7.0], [2.0, 6.0]]).inverse()
        assert np.allclose(inv.to_numpy(), [[0.6, -0.7], [-0.2, 0.4]])

    def test_inverse_swaps_on_zero_pivot(self):
        inv = Matrix.from_array([[0.0, 1.0], [1.0, 0.0]]).inverse()
        assert np.allclose(inv.to_numpy(), [[0.0, 1.0], [1.0, 0.0]])

    def test_singular(self):
        with pytest.raises(SingularMatrixError):
            Matrix.from_array([[1.0, 2.0], [2.0, 4.0]]).inverse()

    def test_inverse_requires_square(self):
        with pytest.raises(ValueError, match="square"):
            Matrix(2, 3).inverse()

    def test_multiply_dimension_mismatch(self):
        with pytest.raises(ValueError, match="mismatch"):
            Matrix(2, 3).multiply(Matrix(2, 3))

    def test_arithmetic(self):
        m = Matrix.from_array([[1.0, 2.0], [3.0, 4.0]])
        assert m.transpose().row(0) == [1.0, 3.0]
        assert m.multiply(2.0).get(1, 1) == 8.0
        assert m.add(Matrix.identity(2)).row(0) == [2.0, 2.0]
        assert m.multiply(Matrix.identity(2)).to_numpy().tolist() == [[1.0, 2.0], [3.0, 4.0]]

    def test_invalid_shapes(self):
        with pytest.raises(ValueError):
            Matrix(0, 3)
        with pytest.raises(ValueError, match="2-D"):
            Matrix.from_array([1.0, 2.0])

    @pytest.mark.parametrize("window", [10, 30])
    def test_kernel_round_trip(self, window):
        kernel = training_kernel(window, 0.125)
        product = kernel.multiply(kernel.inverse())
        assert np.allclose(product.to_numpy(), np.eye(window), atol=1e-6)


# ── GP smoother ──────────────────────────────────────────────────────────


class TestGPWeights:
    def test_length(self):
        assert len(gp_forecast_weights(30, 2, 0.125)) == 30

    def test_recent_prices_dominate(self):
        weights = gp_forecast_weights(30, 2, 0.125)
        assert weights[-1] > abs(weights[0])

    def test_invalid_window(self):
        with pytest.raises(ValueError, match="window"):
            gp_forecast_weights(1, 2, 0.125)


class TestCalculateMLMovingAverage:
    def test_short_input(self):
        assert calculate_ml_moving_average([100.0] * 30, window=30) is None

    def test_flat_prices(self):
        result = calculate_ml_moving_average([100.0] * 40)
        assert result.value == pytest.approx(100.0)
        assert result.upper == pytest.approx(100.0)
        assert result.lower == pytest.approx(100.0)
        assert result.signal is None
        assert result.signal_mode is None
        assert result.score == 0
        assert result.velocity == pytest.approx(0.0)
        assert result.confidence == 100
        assert result.rsi == pytest.approx(100.0 - 100.0 / 101.0)

    def test_spike_is_upper_extremity(self):
        result = calculate_ml_moving_average(SPIKE_PRICES[:61], window=30, mult=1.2)
        assert result.signal == "UPPER_EXTREMITY"
        assert result.signal_mode == "EXTREMITY"
        assert result.price == 120.0
        assert result.deviation > 0
        assert result.signal_strength > 0
        assert result.velocity > 0

    def test_mean_reversion_is_extended_only(self):
        prices = [100.0] * 40 + [120.0, 100.0]
        plain = calculate_ml_moving_average(prices, mult=1.2)
        extended = calculate_ml_moving_average(prices, mult=1.2, extended=True)
        assert plain.signal is None
        assert extended.signal == "MEAN_REVERSION_DOWN"
        assert extended.signal_mode == "MEAN_REVERSION"

    def test_lower_extremity(self):
        prices = [100.0] * 60 + [80.0]
        result = calculate_ml_moving_average(prices, mult=1.2)
        assert result.signal == "LOWER_EXTREMITY"
        assert result.trend_direction == "BEARISH"


class TestSignalSeries:
    def test_single_spike(self):
        signals = ml_signal_series(SPIKE_PRICES, window=30, mult=1.2)
        assert len(signals) == len(SPIKE_PRICES)
        assert [i for i, s in enumerate(signals) if s is not None] == [60]
        assert signals[60] == "UPPER_EXTREMITY"

    def test_spike_at_default_settings(self):
        signals = ml_signal_series(SPIKE_PRICES)
        assert [i for i, s in enumerate(signals) if s is not None] == [60]
        assert signals[60] == "UPPER_EXTREMITY"

    def test_matches_point_evaluation(self):
        signals = ml_signal_series(SPIKE_PRICES, window=30, mult=1.2)
        for i in (45, 60, 61, 75):
            result = calculate_ml_moving_average(SPIKE_PRICES[: i + 1], window=30, mult=1.2)
            assert result.signal == signals[i]

    def test_short_input(self):
        assert ml_signal_series([1.0] * 10) == [None] * 10


class TestScan:
    def test_skips_short_series(self, caplog):
        with caplog.at_level(logging.WARNING, logger="cryptopulse"):
            results = scan_ml_signals({"OK": [100.0] * 40, "SHORT": [100.0] * 10})
        assert list(results) == ["OK"]
        assert "Skipping SHORT" in caplog.text

    def test_singular_kernel_is_isolated(self, monkeypatch, caplog):
        real = gp_moving_average.gp_forecast_weights
        calls = []

        def flaky(*args):
            calls.append(args)
            if len(calls) == 1:
                raise SingularMatrixError("Matrix is singular (no pivot in column 0)")
            return real(*args)

        monkeypatch.setattr(gp_moving_average, "gp_forecast_weights", flaky)
        with caplog.at_level(logging.ERROR, logger="cryptopulse"):
            results = scan_ml_signals({"BAD": [100.0] * 40, "OK": [100.0] * 40})
        assert list(results) == ["OK"]
        assert "GP smoother failed for BAD" in caplog.text
