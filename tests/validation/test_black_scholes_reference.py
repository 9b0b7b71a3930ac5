"""
Closed-form Black-Scholes reference values.

[T1] The Monte Carlo validation suite compares against these functions,
so they are pinned to textbook answers first.

See: Hull, "Options, Futures, and Other Derivatives" (10th ed.) Ch. 15
"""

import numpy as np
import pytest
from scipy import stats

from basket_pricing.options.pricing.black_scholes import (
    black_scholes_call,
    black_scholes_call_delta,
    black_scholes_put,
)

pytestmark = pytest.mark.validation


class TestKnownAnswers:
    """Hull textbook examples."""

    def test_hull_example_15_6_call(self):
        """S=42, K=40, r=10%, σ=20%, T=0.5 → C ≈ 4.76."""
        assert black_scholes_call(42.0, 40.0, 0.10, 0.20, 0.5) == pytest.approx(4.76, abs=0.01)

    def test_hull_example_15_6_put(self):
        """Same inputs → P ≈ 0.81."""
        assert black_scholes_put(42.0, 40.0, 0.10, 0.20, 0.5) == pytest.approx(0.81, abs=0.01)

    def test_atm_one_year_call(self):
        assert black_scholes_call(100.0, 100.0, 0.05, 0.20, 1.0) == pytest.approx(10.4506, abs=1e-4)

    def test_atm_one_year_put(self):
        assert black_scholes_put(100.0, 100.0, 0.05, 0.20, 1.0) == pytest.approx(5.5735, abs=1e-4)

    def test_atm_call_delta(self):
        """d1 = (0.05 + 0.02) / 0.2 = 0.35."""
        expected = stats.norm.cdf(0.35)
        assert black_scholes_call_delta(100.0, 100.0, 0.05, 0.20, 1.0) == pytest.approx(expected, abs=1e-12)


class TestIdentities:
    """No-arbitrage identities."""

    @pytest.mark.parametrize("spot", [80.0, 100.0, 120.0])
    @pytest.mark.parametrize("maturity", [0.25, 1.0, 3.0])
    def test_put_call_parity(self, spot, maturity, tolerances):
        """[T1] C − P = S − K·e^(−rT)."""
        strike, rate, vol = 100.0, 0.04, 0.25
        call = black_scholes_call(spot, strike, rate, vol, maturity)
        put = black_scholes_put(spot, strike, rate, vol, maturity)
        assert call - put == pytest.approx(spot - strike * np.exp(-rate * maturity), abs=tolerances.validation)

    def test_delta_matches_finite_difference(self):
        h = 1e-4
        up = black_scholes_call(100.0 + h, 100.0, 0.05, 0.20, 1.0)
        down = black_scholes_call(100.0 - h, 100.0, 0.05, 0.20, 1.0)
        assert black_scholes_call_delta(100.0, 100.0, 0.05, 0.20, 1.0) == pytest.approx(
            (up - down) / (2 * h), abs=1e-6
        )

    def test_expiry_is_intrinsic(self):
        assert black_scholes_call(110.0, 100.0, 0.05, 0.20, 0.0) == 10.0
        assert black_scholes_put(110.0, 100.0, 0.05, 0.20, 0.0) == 0.0
        assert black_scholes_call_delta(90.0, 100.0, 0.05, 0.20, 0.0) == 0.0


class TestInputValidation:

    @pytest.mark.parametrize(
        "args, field",
        [
            ((0.0, 100.0, 0.05, 0.2, 1.0), "spot"),
            ((100.0, -1.0, 0.05, 0.2, 1.0), "strike"),
            ((100.0, 100.0, 0.05, 0.0, 1.0), "volatility"),
            ((100.0, 100.0, 0.05, 0.2, -0.5), "time_to_expiry"),
        ],
    )
    def test_invalid_inputs_raise(self, args, field):
        with pytest.raises(ValueError, match=field):
            black_scholes_call(*args)
