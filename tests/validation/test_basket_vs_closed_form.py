"""
Validation of Monte Carlo prices against closed-form Black-Scholes.

[T1] A one-asset basket call is a European call: C(100, 100, 5%, 20%, 1y) = 10.4506
[T1] Perfectly correlated identical assets collapse the basket to one asset
[T1] Discounted basket value is a martingale: strike 0 prices at Σ λ S_0

See: Hull (2018) Ch. 15, Glasserman (2003) Ch. 1
"""

import numpy as np
import pytest

from basket_pricing.config.tolerances import DELTA_MC_TOLERANCE
from basket_pricing.options.payoffs.basket import BasketOption, PerformanceOption
from basket_pricing.options.pricing.black_scholes import (
    black_scholes_call,
    black_scholes_call_delta,
)
from basket_pricing.options.simulation.black_scholes_model import BlackScholesModel
from basket_pricing.options.simulation.model import ModelParameters
from basket_pricing.options.simulation.monte_carlo import MonteCarloEngine

#: Seeds for coverage checks
CI_SEEDS: list[int] = [42, 123, 456]


@pytest.fixture
def hull_call_price() -> float:
    return black_scholes_call(100.0, 100.0, 0.05, 0.20, 1.0)


def _call_engine(params, seed, n_samples=100_000, **kwargs) -> MonteCarloEngine:
    payoff = BasketOption(1.0, 50, params.size, 1.0 / params.size, 100.0)
    return MonteCarloEngine(
        BlackScholesModel(params), payoff, n_samples=n_samples, source=seed, **kwargs
    )


@pytest.mark.validation
class TestEuropeanCall:
    """One-asset basket vs the Black-Scholes formula."""

    def test_closed_form_reference(self, hull_call_price):
        assert hull_call_price == pytest.approx(10.4506, abs=1e-4)

    def test_error_within_three_standard_errors(self, single_asset_params, hull_call_price):
        estimate = _call_engine(single_asset_params, 42).price()
        error = abs(estimate.price - hull_call_price)
        assert error < 3 * estimate.standard_error, (
            f"Error {error:.6f} exceeds 3 SE ({3 * estimate.standard_error:.6f})"
        )

    def test_interval_covers_closed_form(self, single_asset_params, hull_call_price):
        """95% intervals should cover 10.45 for (almost) every seed."""
        covered = 0
        for seed in CI_SEEDS:
            low, high = _call_engine(single_asset_params, seed).price().confidence_interval
            covered += low <= hull_call_price <= high
        assert covered >= len(CI_SEEDS) - 1

    def test_half_width_magnitude(self, single_asset_params):
        """Payoff std ≈ 14.7 gives a 100k-trial half-width near 0.09."""
        estimate = _call_engine(single_asset_params, 42).price()
        assert 0.07 < estimate.confidence_half_width < 0.11


@pytest.mark.validation
class TestCorrelationLimits:
    """Perfect correlation turns the basket into a single asset."""

    def test_perfectly_correlated_basket(self, hull_call_price):
        params = ModelParameters(
            size=4, spot=[100.0] * 4, volatility=[0.2] * 4,
            correlation=1.0, rate=0.05, trend=[0.05] * 4,
        )
        estimate = _call_engine(params, 42).price()
        assert abs(estimate.price - hull_call_price) < 3 * estimate.standard_error

    def test_diversification_lowers_price(self, hull_call_price):
        params = ModelParameters(
            size=4, spot=[100.0] * 4, volatility=[0.2] * 4,
            correlation=0.0, rate=0.05, trend=[0.05] * 4,
        )
        estimate = _call_engine(params, 42, n_samples=50_000).price()
        # basket vol ≈ 0.2 / √4, arithmetic basket is close to lognormal
        assert estimate.price < hull_call_price - 2.0
        assert estimate.price == pytest.approx(black_scholes_call(100.0, 100.0, 0.05, 0.10, 1.0), abs=0.25)


@pytest.mark.validation
class TestMartingale:
    """[T1] E[e^(−rT) Σ λ S_T] = Σ λ S_0."""

    def test_zero_strike_basket(self, basket_params):
        weights = [0.2, 0.3, 0.5]
        payoff = BasketOption(2.0, 8, 3, weights, 0.0)
        engine = MonteCarloEngine(BlackScholesModel(basket_params), payoff, n_samples=50_000, source=7)
        estimate = engine.price()
        expected = float(np.dot(weights, basket_params.spot))
        assert abs(estimate.price - expected) < 3 * estimate.standard_error


@pytest.mark.validation
class TestPerformanceOption:
    """[T1] One period: e^(−rT)·(1 + E[(S_T/S_0 − 1)+]) = e^(−rT) + C(1, 1)."""

    def test_single_period(self, single_asset_params):
        payoff = PerformanceOption(1.0, 1, 1, 1.0)
        engine = MonteCarloEngine(
            BlackScholesModel(single_asset_params), payoff, n_samples=100_000, source=42
        )
        estimate = engine.price()
        expected = np.exp(-0.05) + black_scholes_call(1.0, 1.0, 0.05, 0.20, 1.0)
        assert abs(estimate.price - expected) < 3 * estimate.standard_error


@pytest.mark.validation
class TestDelta:
    """Finite-difference delta vs N(d1)."""

    def test_centered_delta_matches_closed_form(self, single_asset_params):
        engine = _call_engine(single_asset_params, 42, fd_step=0.01)
        delta = engine.delta(np.array([[100.0]]), 0.0, scheme="centered")
        expected = black_scholes_call_delta(100.0, 100.0, 0.05, 0.20, 1.0)
        assert delta.delta[0] == pytest.approx(expected, abs=DELTA_MC_TOLERANCE)

    def test_delta_after_observation(self, single_asset_params):
        """At t with spot S_t, the call delta is N(d1) with T − t remaining."""
        engine = _call_engine(single_asset_params, 42, fd_step=0.01)
        past = np.array([[100.0]] * 26 + [[108.0]])
        delta = engine.delta(past, 0.51, scheme="centered")
        expected = black_scholes_call_delta(108.0, 100.0, 0.05, 0.20, 0.49)
        assert delta.delta[0] == pytest.approx(expected, abs=DELTA_MC_TOLERANCE)
