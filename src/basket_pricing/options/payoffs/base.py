"""
Base classes for option payoffs.

A payoff maps a simulated price path of shape (n_time_steps + 1, size)
to an undiscounted scalar. The Monte Carlo engine is agnostic to the
variant plugged in; it only calls ``evaluate`` / ``evaluate_batch``.
"""

from abc import ABC, abstractmethod
from enum import Enum

import numpy as np

from basket_pricing.errors import ConfigurationError


class OptionType(Enum):
    """Option variants understood by ``create_payoff``."""

    BASKET = "basket"
    ASIAN = "asian"
    PERFORMANCE = "performance"


class BasePayoff(ABC):
    """
    Abstract base class for path payoffs.

    All payoff implementations must:
    1. Implement evaluate() on a single path
    2. Be pure: same path in, same payoff out, no side effects

    Parameters
    ----------
    maturity : float
        Option maturity T in years
    n_time_steps : int
        Number of grid steps the payoff observes
    size : int
        Number of underlying assets
    """

    option_type: OptionType

    def __init__(self, maturity: float, n_time_steps: int, size: int):
        if maturity <= 0:
            raise ConfigurationError(f"CRITICAL: maturity must be > 0, got {maturity}")
        if n_time_steps <= 0:
            raise ConfigurationError(f"CRITICAL: n_time_steps must be > 0, got {n_time_steps}")
        if size < 1:
            raise ConfigurationError(f"CRITICAL: size must be >= 1, got {size}")

        self.maturity = float(maturity)
        self.n_time_steps = int(n_time_steps)
        self.size = int(size)

    @property
    def timestep(self) -> float:
        """Grid spacing T / n_time_steps."""
        return self.maturity / self.n_time_steps

    @abstractmethod
    def evaluate(self, path: np.ndarray) -> float:
        """
        Calculate the undiscounted payoff of one path.

        Parameters
        ----------
        path : np.ndarray
            Simulated prices, shape (n_time_steps + 1, size)

        Returns
        -------
        float
            Payoff
        """
        pass

    def evaluate_batch(self, paths: np.ndarray) -> np.ndarray:
        """
        Calculate payoffs for a batch of paths.

        Default implementation loops over ``evaluate``; variants override it
        with a vectorized formula that must agree with the loop.

        Parameters
        ----------
        paths : np.ndarray
            Shape (n_paths, n_time_steps + 1, size)

        Returns
        -------
        np.ndarray
            Payoffs, shape (n_paths,)
        """
        return np.array([self.evaluate(path) for path in paths], dtype=float)

    def _check_shape(self, paths: np.ndarray) -> np.ndarray:
        paths = np.asarray(paths, dtype=float)
        expected = (self.n_time_steps + 1, self.size)
        if paths.shape[-2:] != expected:
            raise ValueError(
                f"CRITICAL: path shape must end with {expected}, got {paths.shape}"
            )
        return paths

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(maturity={self.maturity}, "
            f"n_time_steps={self.n_time_steps}, size={self.size})"
        )
