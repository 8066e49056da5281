"""Tests for token refill arithmetic."""

import math

import pytest

from bucketlimit.core.refill import RefillRate, refill_amount, validate_limit
from bucketlimit.exceptions import InvalidConfigurationError


class TestRefillRate:
    """Tests for RefillRate.from_limit."""

    def test_derives_constants(self):
        rate = RefillRate.from_limit(5, 1.0)
        assert rate.limit == 5
        assert rate.window_ms == 1000.0
        assert rate.tokens_per_ms == pytest.approx(0.005)
        assert rate.ms_per_token == pytest.approx(200.0)

    def test_fractional_window(self):
        rate = RefillRate.from_limit(3, 0.5)
        assert rate.window_ms == 500.0
        assert rate.ms_per_token == pytest.approx(500.0 / 3)

    def test_ms_per_token_floored_at_one(self):
        """More than one token per millisecond still refills at 1ms granularity."""
        rate = RefillRate.from_limit(10_000, 1.0)
        assert rate.ms_per_token == 1.0
        assert rate.tokens_per_ms == pytest.approx(10.0)

    @pytest.mark.parametrize(
        "limit,window_sec",
        [(0, 1.0), (-1, 1.0), (5, 0), (5, -2.5), (True, 1.0), (5.0, 1.0), ("5", 1.0)],
    )
    def test_rejects_invalid_limits(self, limit, window_sec):
        with pytest.raises(InvalidConfigurationError):
            RefillRate.from_limit(limit, window_sec)

    def test_validate_limit_accepts_valid(self):
        validate_limit(1, 0.001)

    @pytest.mark.parametrize("window_sec", ["1", None, True, float("nan")])
    def test_rejects_non_numeric_window(self, window_sec):
        with pytest.raises(InvalidConfigurationError):
            validate_limit(5, window_sec)


class TestRefillAmount:
    """Tests for refill_amount."""

    def test_zero_elapsed_returns_baseline(self):
        assert refill_amount(3.0, 0, 0.005, 5) == 3.0

    def test_partial_refill(self):
        assert refill_amount(1.0, 200, 0.005, 5) == pytest.approx(2.0)

    def test_saturates_at_capacity(self):
        assert refill_amount(1.0, 10_000_000, 0.005, 5) == 5
        assert refill_amount(0.0, math.inf, 0.005, 5) == 5

    def test_negative_baseline_clamped_to_zero(self):
        assert refill_amount(-3.0, 100, 0.005, 5) == pytest.approx(0.5)
        assert refill_amount(-3.0, 0, 0.005, 5) == 0.0

    def test_negative_elapsed_adds_nothing(self):
        assert refill_amount(2.0, -500, 0.005, 5) == 2.0

    def test_baseline_above_capacity_is_capped(self):
        assert refill_amount(7.0, 0, 0.005, 5) == 5
