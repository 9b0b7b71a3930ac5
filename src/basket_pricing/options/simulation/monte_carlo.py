"""
Monte Carlo pricing engine for basket options.

Implements:
- Moment accumulation (sum, sum of squares, trial count) that merges
  across disjoint trial sets
- Price and 95% confidence half-width at t = 0 and at t given the past
- Finite-difference deltas on common random numbers

[T1] MC converges to the true price at rate 1/√N
[T1] price = D·Σf/N, variance = D²(Σf²/N − (Σf/N)²), half-width = z·√(variance/N)

See: Glasserman (2003) "Monte Carlo Methods in Financial Engineering", Ch. 1 and 7
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

import numpy as np

from basket_pricing.config.settings import SETTINGS
from basket_pricing.errors import ConfigurationError, NumericalDegenerateError
from basket_pricing.options.payoffs.base import BasePayoff
from basket_pricing.options.simulation.black_scholes_model import BlackScholesModel, shift_path
from basket_pricing.options.simulation.random_source import NormalSource, as_source

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accumulator:
    """
    Running first and second moments of realized payoffs.

    Accumulators over disjoint trial sets merge by component-wise addition,
    which is what makes the trial budget splittable across processes.

    Attributes
    ----------
    sum : float
        Σ payoff
    sum_square : float
        Σ payoff²
    trial_count : int
        Number of trials accumulated
    """

    sum: float = 0.0
    sum_square: float = 0.0
    trial_count: int = 0

    def __post_init__(self) -> None:
        """Validate trial count."""
        if self.trial_count < 0:
            raise NumericalDegenerateError(f"CRITICAL: trial_count must be >= 0, got {self.trial_count}")

    @classmethod
    def from_payoffs(cls, payoffs: np.ndarray) -> "Accumulator":
        """Accumulate a sample of payoffs."""
        payoffs = np.asarray(payoffs, dtype=float).reshape(-1)
        return cls(
            sum=float(payoffs.sum()),
            sum_square=float(payoffs @ payoffs),
            trial_count=int(payoffs.size),
        )

    def merge(self, other: "Accumulator") -> "Accumulator":
        """Combine with an accumulator over a disjoint set of trials."""
        return Accumulator(
            sum=self.sum + other.sum,
            sum_square=self.sum_square + other.sum_square,
            trial_count=self.trial_count + other.trial_count,
        )

    def __add__(self, other: "Accumulator") -> "Accumulator":
        if not isinstance(other, Accumulator):
            return NotImplemented
        return self.merge(other)

    @classmethod
    def merge_all(cls, accumulators: Iterable["Accumulator"]) -> "Accumulator":
        """Merge any number of accumulators."""
        total = cls()
        for accumulator in accumulators:
            total = total.merge(accumulator)
        return total

    @property
    def mean(self) -> float:
        """Sample mean of the accumulated payoffs."""
        if self.trial_count == 0:
            raise NumericalDegenerateError("CRITICAL: mean of zero trials is undefined")
        return self.sum / self.trial_count


@dataclass(frozen=True)
class PriceEstimate:
    """
    Monte Carlo price estimate derived from an Accumulator.

    Attributes
    ----------
    price : float
        Discounted mean payoff
    variance : float
        Variance of the discounted payoff
    confidence_half_width : float
        z·√(variance / N)
    trial_count : int
        Number of trials N behind the estimate
    discount_factor : float
        Discount factor applied to the payoffs
    """

    price: float
    variance: float
    confidence_half_width: float
    trial_count: int
    discount_factor: float

    @classmethod
    def from_accumulator(
        cls,
        accumulator: Accumulator,
        discount_factor: float = 1.0,
        z_score: Optional[float] = None,
    ) -> "PriceEstimate":
        """
        Derive price, variance and half-width.

        Parameters
        ----------
        accumulator : Accumulator
            Undiscounted payoff moments, trial_count > 0
        discount_factor : float, default 1.0
            Discount applied to every payoff
        z_score : float, optional
            Normal quantile, default from SETTINGS (≈1.96)
        """
        if accumulator.trial_count == 0:
            raise NumericalDegenerateError("CRITICAL: cannot estimate a price from zero trials")
        if z_score is None:
            z_score = SETTINGS.monte_carlo.z_score

        n = accumulator.trial_count
        mean = accumulator.sum / n
        price = discount_factor * mean
        # Clamp: rounding can push a zero variance slightly negative
        variance = max(discount_factor**2 * (accumulator.sum_square / n - mean**2), 0.0)
        return cls(
            price=price,
            variance=variance,
            confidence_half_width=z_score * np.sqrt(variance / n),
            trial_count=n,
            discount_factor=discount_factor,
        )

    @property
    def standard_error(self) -> float:
        """Standard error √(variance / N)."""
        return float(np.sqrt(self.variance / self.trial_count))

    @property
    def confidence_interval(self) -> tuple[float, float]:
        """Symmetric confidence interval around the price."""
        return (
            self.price - self.confidence_half_width,
            self.price + self.confidence_half_width,
        )


@dataclass(frozen=True)
class DeltaEstimate:
    """
    Finite-difference delta estimate, one entry per asset.

    Attributes
    ----------
    delta : np.ndarray
        ∂price/∂S_i, shape (n,)
    confidence_half_width : np.ndarray
        Per-asset half-widths, shape (n,)
    trial_count : int
        Number of trials
    """

    delta: np.ndarray
    confidence_half_width: np.ndarray
    trial_count: int


class MonteCarloEngine:
    """
    Monte Carlo pricing engine.

    Parameters
    ----------
    model : BlackScholesModel
        Path simulator
    payoff : BasePayoff
        Payoff evaluator (carries maturity and time grid)
    n_samples : int, optional
        Number of trials per pricing call (default SETTINGS)
    fd_step : float, optional
        Relative bump for finite differences (default SETTINGS)
    source : NormalSource or int, optional
        Normal draws; an int seeds a numpy Generator
    batch_size : int, optional
        Paths simulated per vectorized batch (default SETTINGS)

    Examples
    --------
    >>> engine = MonteCarloEngine(model, BasketOption(1.0, 50, 1, [1.0], 100.0),
    ...                           n_samples=100_000, source=42)
    >>> estimate = engine.price()
    >>> print(f"Price: {estimate.price:.4f} ± {estimate.confidence_half_width:.4f}")
    """

    def __init__(
        self,
        model: BlackScholesModel,
        payoff: BasePayoff,
        n_samples: Optional[int] = None,
        fd_step: Optional[float] = None,
        source: Optional[NormalSource] = None,
        batch_size: Optional[int] = None,
    ):
        config = SETTINGS.monte_carlo
        n_samples = config.n_samples if n_samples is None else n_samples
        fd_step = config.fd_step if fd_step is None else fd_step
        batch_size = config.batch_size if batch_size is None else batch_size

        if n_samples <= 0:
            raise ConfigurationError(f"CRITICAL: n_samples must be > 0, got {n_samples}")
        if fd_step <= 0:
            raise ConfigurationError(f"CRITICAL: fd_step must be > 0, got {fd_step}")
        if batch_size <= 0:
            raise ConfigurationError(f"CRITICAL: batch_size must be > 0, got {batch_size}")
        if payoff.size != model.size:
            raise ConfigurationError(
                f"CRITICAL: payoff has {payoff.size} assets, model has {model.size}"
            )

        self.model = model
        self.payoff = payoff
        self.n_samples = int(n_samples)
        self.fd_step = float(fd_step)
        self.batch_size = int(batch_size)
        self.source = as_source(source)

    @property
    def maturity(self) -> float:
        return self.payoff.maturity

    @property
    def n_time_steps(self) -> int:
        return self.payoff.n_time_steps

    def discount_factor(self, t: float = 0.0) -> float:
        """Discount factor e^(−r(T−t))."""
        return float(np.exp(-self.model.params.rate * (self.maturity - t)))

    def _batches(self, n_trials: int) -> Iterator[int]:
        remaining = n_trials
        while remaining > 0:
            size = min(self.batch_size, remaining)
            remaining -= size
            yield size

    def simulate(self, n_paths: int, past: Optional[np.ndarray] = None, t: float = 0.0) -> np.ndarray:
        """Simulate a batch of paths on the payoff's time grid."""
        if past is None:
            return self.model.simulate_forward(
                self.maturity, self.n_time_steps, self.source, n_paths
            )
        return self.model.simulate_continuation(
            t, self.maturity, self.n_time_steps, self.source, past, n_paths
        )

    def accumulate(
        self,
        n_trials: int,
        past: Optional[np.ndarray] = None,
        t: float = 0.0,
    ) -> Accumulator:
        """
        Run trials and return the moments of the undiscounted payoffs.

        Parameters
        ----------
        n_trials : int
            Number of trials (0 yields an empty accumulator)
        past : np.ndarray, optional
            Observed trajectory up to t; None prices from t = 0
        t : float, default 0.0
            Observation time

        Returns
        -------
        Accumulator
            (Σf, Σf², n_trials)
        """
        if n_trials < 0:
            raise ConfigurationError(f"CRITICAL: n_trials must be >= 0, got {n_trials}")

        accumulator = Accumulator()
        for size in self._batches(n_trials):
            payoffs = self.payoff.evaluate_batch(self.simulate(size, past, t))
            accumulator = accumulator + Accumulator.from_payoffs(payoffs)
        logger.debug(f"Accumulated {accumulator.trial_count} trials (t={t})")
        return accumulator

    def estimate(self, accumulator: Accumulator, t: float = 0.0) -> PriceEstimate:
        """Price estimate at time t from undiscounted payoff moments."""
        return PriceEstimate.from_accumulator(accumulator, self.discount_factor(t))

    def price(self) -> PriceEstimate:
        """
        Price at t = 0.

        Returns
        -------
        PriceEstimate
            Discounted mean payoff and 95% half-width over n_samples trials
        """
        return self.estimate(self.accumulate(self.n_samples))

    def price_at(self, past: np.ndarray, t: float) -> PriceEstimate:
        """
        Price at time t given the trajectory observed up to t.

        Parameters
        ----------
        past : np.ndarray
            Grid dates up to t followed by the spot at t, shape (rows, n)
        t : float
            Observation time

        Returns
        -------
        PriceEstimate
            Discounted by e^(−r(T−t))
        """
        return self.estimate(self.accumulate(self.n_samples, past, t), t)

    def delta(
        self,
        past: np.ndarray,
        t: float,
        scheme: str = "forward",
    ) -> DeltaEstimate:
        """
        Finite-difference delta of every asset at time t.

        Bumped and unbumped payoffs are evaluated on the same simulated
        paths, and the difference quotient is averaged trial by trial.

        [T1] forward:  (f(S·(1+h)) − f(S)) / (S_i(t)·h)
        [T1] centered: (f(S·(1+h)) − f(S·(1−h))) / (2·S_i(t)·h)

        Parameters
        ----------
        past : np.ndarray
            Observed trajectory up to t, last row is the spot at t
        t : float
            Observation time
        scheme : str, default "forward"
            "forward" or "centered"

        Returns
        -------
        DeltaEstimate
            Per-asset delta and half-width
        """
        if scheme not in ("forward", "centered"):
            raise ConfigurationError(f"CRITICAL: scheme must be 'forward' or 'centered', got {scheme!r}")

        past = np.asarray(past, dtype=float)
        if past.ndim == 1:
            past = past.reshape(1, -1)
        spot_t = past[-1]
        step = self.payoff.timestep
        h = self.fd_step
        n_assets = self.model.size

        sums = np.zeros(n_assets)
        sums_square = np.zeros(n_assets)
        for size in self._batches(self.n_samples):
            paths = self.simulate(size, past, t)
            base = self.payoff.evaluate_batch(paths) if scheme == "forward" else None
            for asset in range(n_assets):
                up = self.payoff.evaluate_batch(shift_path(paths, asset, h, t, step))
                if scheme == "forward":
                    samples = (up - base) / (spot_t[asset] * h)
                else:
                    down = self.payoff.evaluate_batch(shift_path(paths, asset, -h, t, step))
                    samples = (up - down) / (2.0 * spot_t[asset] * h)
                sums[asset] += samples.sum()
                sums_square[asset] += samples @ samples

        n = self.n_samples
        discount = self.discount_factor(t)
        mean = sums / n
        variance = np.maximum(discount**2 * (sums_square / n - mean**2), 0.0)
        return DeltaEstimate(
            delta=discount * mean,
            confidence_half_width=SETTINGS.monte_carlo.z_score * np.sqrt(variance / n),
            trial_count=n,
        )
