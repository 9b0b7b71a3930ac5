"""
Basket, Asian and performance payoffs on weighted asset baskets.

[T1] Basket:      (Σ_d λ_d S_T^d − K)+
[T1] Asian:       ((1/(N+1)) Σ_i Σ_d λ_d S_{t_i}^d − K)+
[T1] Performance: 1 + Σ_{i=1..N} (Σ_d λ_d S_{t_i}^d / Σ_d λ_d S_{t_{i-1}}^d − 1)+

A single-asset European call is the basket with one asset and weight 1.
"""

import numpy as np

from basket_pricing.data.parameters import ParameterSource
from basket_pricing.errors import ConfigurationError
from basket_pricing.options.payoffs.base import BasePayoff, OptionType


class WeightedBasketPayoff(BasePayoff):
    """Shared weight handling for payoffs on Σ_d λ_d S^d."""

    def __init__(self, maturity: float, n_time_steps: int, size: int, weights):
        super().__init__(maturity, n_time_steps, size)
        weights = np.array(weights, dtype=float).reshape(-1)
        if weights.size == 1:
            weights = np.full(self.size, weights[0])
        if weights.size != self.size:
            raise ConfigurationError(
                f"CRITICAL: weights must have {self.size} entries, got {weights.size}"
            )
        weights.setflags(write=False)
        self.weights = weights

    def basket_values(self, paths: np.ndarray) -> np.ndarray:
        """Weighted basket value at every date, shape (..., n_time_steps + 1)."""
        return self._check_shape(paths) @ self.weights

    def evaluate(self, path: np.ndarray) -> float:
        return float(self.evaluate_batch(np.asarray(path, dtype=float)[np.newaxis])[0])


class BasketOption(WeightedBasketPayoff):
    """
    Call on the weighted basket at maturity.

    Parameters
    ----------
    maturity : float
        Option maturity T in years
    n_time_steps : int
        Number of grid steps
    size : int
        Number of underlying assets
    weights : array-like
        Basket weights λ
    strike : float
        Strike K
    """

    option_type = OptionType.BASKET

    def __init__(self, maturity: float, n_time_steps: int, size: int, weights, strike: float):
        super().__init__(maturity, n_time_steps, size, weights)
        self.strike = float(strike)

    def evaluate_batch(self, paths: np.ndarray) -> np.ndarray:
        terminal = self.basket_values(paths)[..., -1]
        return np.maximum(terminal - self.strike, 0.0)


class AsianOption(WeightedBasketPayoff):
    """Call on the arithmetic average of the basket over all grid dates."""

    option_type = OptionType.ASIAN

    def __init__(self, maturity: float, n_time_steps: int, size: int, weights, strike: float):
        super().__init__(maturity, n_time_steps, size, weights)
        self.strike = float(strike)

    def evaluate_batch(self, paths: np.ndarray) -> np.ndarray:
        average = self.basket_values(paths).mean(axis=-1)
        return np.maximum(average - self.strike, 0.0)


class PerformanceOption(WeightedBasketPayoff):
    """Sum of positive period-over-period basket performances, plus 1."""

    option_type = OptionType.PERFORMANCE

    def evaluate_batch(self, paths: np.ndarray) -> np.ndarray:
        basket = self.basket_values(paths)
        performance = basket[..., 1:] / basket[..., :-1] - 1.0
        return 1.0 + np.maximum(performance, 0.0).sum(axis=-1)


def create_payoff(source: ParameterSource) -> BasePayoff:
    """
    Build the payoff named by ``option type`` in a parameter source.

    Keys: ``option type``, ``option size``, ``maturity``, ``timestep number``,
    ``payoff coefficients`` and, for basket/asian, ``strike``.

    Raises
    ------
    ConfigurationError
        If the option type is unknown or a key is missing
    """
    name = source.extract_string("option type").strip().lower()
    try:
        option_type = OptionType(name)
    except ValueError:
        known = ", ".join(t.value for t in OptionType)
        raise ConfigurationError(
            f"CRITICAL: unknown option type '{name}'. Known: {known}"
        ) from None

    size = source.extract_int("option size")
    maturity = source.extract_scalar("maturity")
    n_time_steps = source.extract_int("timestep number")
    weights = source.extract_vector("payoff coefficients", size)

    if option_type is OptionType.PERFORMANCE:
        return PerformanceOption(maturity, n_time_steps, size, weights)

    strike = source.extract_scalar("strike")
    if option_type is OptionType.ASIAN:
        return AsianOption(maturity, n_time_steps, size, weights, strike)
    return BasketOption(maturity, n_time_steps, size, weights, strike)
