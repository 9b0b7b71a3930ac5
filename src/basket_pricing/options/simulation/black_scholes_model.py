"""
Correlated multi-asset Black-Scholes path simulation.

Implements exact log-normal stepping on a regular time grid:
- Forward simulation from t = 0 under the risk-neutral measure
- Continuation from an observed past trajectory at time t
- Historical-measure simulation (trend instead of rate)
- Path shifting for finite-difference deltas

[T1] S_i(t+Δ) = S_i(t) · exp((μ_i − σ_i²/2)Δ + σ_i √Δ (L G)_i)
with μ = r (risk-neutral) or μ = trend (historical), G ~ N(0, I_n) and
L the Cholesky factor of the correlation matrix.

Paths have shape (n_steps + 1, n_assets), or (n_paths, n_steps + 1, n_assets)
when a batch is requested.

See: Glasserman (2003) "Monte Carlo Methods in Financial Engineering", Ch. 3
"""

import math
from typing import Optional

import numpy as np

from basket_pricing.config.tolerances import GRID_ALIGNMENT_TOLERANCE
from basket_pricing.errors import NumericalDegenerateError
from basket_pricing.options.simulation.model import ModelParameters
from basket_pricing.options.simulation.random_source import NormalSource


def timestep(maturity: float, n_steps: int) -> float:
    """Grid spacing Δ = T / n_steps."""
    if n_steps <= 0:
        raise NumericalDegenerateError(f"CRITICAL: n_steps must be > 0, got {n_steps}")
    if maturity <= 0:
        raise NumericalDegenerateError(f"CRITICAL: maturity must be > 0, got {maturity}")
    return maturity / n_steps


def is_grid_aligned(t: float, step: float) -> bool:
    """
    Whether t is a multiple of the grid step (t mod Δ == 0).

    The remainder is compared against a tolerance relative to Δ so that
    values such as t = 0.3, Δ = 0.1 are recognised as grid dates.
    """
    if step <= 0:
        raise NumericalDegenerateError(f"CRITICAL: timestep must be > 0, got {step}")
    remainder = math.fmod(t, step)
    slack = GRID_ALIGNMENT_TOLERANCE * step
    return remainder <= slack or step - remainder <= slack


def first_grid_index(t: float, step: float) -> int:
    """Index of the first grid date at or after t."""
    if not math.isfinite(t) or t < 0:
        raise NumericalDegenerateError(f"CRITICAL: t must be finite and >= 0, got {t}")
    if is_grid_aligned(t, step):
        return int(round(t / step))
    return int(math.floor(t / step)) + 1


class BlackScholesModel:
    """
    Path generator for a basket of correlated Black-Scholes assets.

    Parameters
    ----------
    params : ModelParameters
        Validated model parameters (holds the Cholesky factor)

    Examples
    --------
    >>> params = ModelParameters(size=2, spot=[100, 100], volatility=[0.2, 0.25],
    ...                          correlation=0.3, rate=0.05, trend=[0.07, 0.08])
    >>> model = BlackScholesModel(params)
    >>> path = model.simulate_forward(1.0, 12, GeneratorSource(42))
    >>> path.shape
    (13, 2)
    """

    def __init__(self, params: ModelParameters):
        self.params = params

    @property
    def size(self) -> int:
        return self.params.size

    def _growth(
        self,
        dts: np.ndarray,
        drift: np.ndarray,
        source: NormalSource,
        lead: tuple[int, ...],
    ) -> np.ndarray:
        """
        Cumulative growth factors over consecutive steps of lengths ``dts``.

        Returns an array of shape lead + (len(dts), n) to be multiplied
        onto the starting prices.
        """
        if np.any(dts <= 0):
            raise NumericalDegenerateError(
                f"CRITICAL: simulation step must be > 0, got {dts[dts <= 0][0]}"
            )
        n = self.params.size
        draws = np.asarray(source.standard_normal(lead + (len(dts), n)), dtype=float)
        shocks = draws @ self.params.cholesky.T

        sigma = self.params.volatility
        dt_col = dts[:, np.newaxis]
        log_returns = (drift - 0.5 * sigma**2) * dt_col + sigma * np.sqrt(dt_col) * shocks
        return np.exp(np.cumsum(log_returns, axis=-2))

    def _from_start(
        self,
        maturity: float,
        n_steps: int,
        source: NormalSource,
        drift: np.ndarray,
        n_paths: Optional[int],
    ) -> np.ndarray:
        step = timestep(maturity, n_steps)
        lead = _lead_shape(n_paths)

        path = np.empty(lead + (n_steps + 1, self.params.size))
        path[..., 0, :] = self.params.spot
        dts = np.full(n_steps, step)
        path[..., 1:, :] = self.params.spot * self._growth(dts, drift, source, lead)
        return path

    def simulate_forward(
        self,
        maturity: float,
        n_steps: int,
        source: NormalSource,
        n_paths: Optional[int] = None,
    ) -> np.ndarray:
        """
        Simulate from t = 0 under the risk-neutral measure.

        Parameters
        ----------
        maturity : float
            Horizon T in years
        n_steps : int
            Number of grid steps (Δ = T / n_steps)
        source : NormalSource
            Standard-normal draws
        n_paths : int, optional
            Batch size; None returns a single (n_steps + 1, n) path

        Returns
        -------
        np.ndarray
            Simulated path(s), row 0 equal to the spot
        """
        drift = np.full(self.params.size, self.params.rate)
        return self._from_start(maturity, n_steps, source, drift, n_paths)

    def simulate_historical(
        self,
        maturity: float,
        n_dates: int,
        source: NormalSource,
        n_paths: Optional[int] = None,
    ) -> np.ndarray:
        """
        Simulate a market scenario under the historical measure.

        Same recurrence as ``simulate_forward`` with the trend vector in
        place of the risk-free rate.
        """
        return self._from_start(maturity, n_dates, source, self.params.trend, n_paths)

    def simulate_continuation(
        self,
        t: float,
        maturity: float,
        n_steps: int,
        source: NormalSource,
        past: np.ndarray,
        n_paths: Optional[int] = None,
    ) -> np.ndarray:
        """
        Simulate the rest of the grid given the trajectory observed up to t.

        ``past`` holds the grid dates up to t followed by the spot at t.
        When t is a grid date the whole of ``past`` is copied and the
        simulation continues with regular steps. Otherwise its last row is
        not a grid date: it is left out of the copy, and the first simulated
        step starts from it with the irregular length (rows(past) − 1)·Δ − t.

        Parameters
        ----------
        t : float
            Observation time, 0 <= t <= maturity
        maturity : float
            Horizon T in years
        n_steps : int
            Number of grid steps
        source : NormalSource
            Standard-normal draws
        past : np.ndarray
            Observed trajectory, shape (rows, n)
        n_paths : int, optional
            Batch size; None returns a single path

        Returns
        -------
        np.ndarray
            Path(s) of shape (..., n_steps + 1, n)
        """
        step = timestep(maturity, n_steps)
        if not math.isfinite(t) or t < 0 or t > maturity:
            raise NumericalDegenerateError(f"CRITICAL: t must be in [0, {maturity}], got {t}")
        past = self._validate_past(past)
        aligned = is_grid_aligned(t, step)
        observed = past if aligned else past[:-1]
        if not aligned:
            # past[-1] is the spot at t, past[-2] the last grid date before t
            first = (past.shape[0] - 1) * step - t
            if not 0 < first < step:
                raise NumericalDegenerateError(
                    f"CRITICAL: first step after t={t} must be in (0, {step}), got {first} "
                    f"from a past of {past.shape[0]} rows"
                )

        n_observed = observed.shape[0]
        if n_observed > n_steps + 1:
            raise NumericalDegenerateError(
                f"CRITICAL: past has {n_observed} grid rows, grid only has {n_steps + 1}"
            )

        lead = _lead_shape(n_paths)
        path = np.empty(lead + (n_steps + 1, self.params.size))
        path[..., :n_observed, :] = observed

        n_new = n_steps + 1 - n_observed
        if n_new == 0:
            return path

        dts = np.full(n_new, step)
        if not aligned:
            dts[0] = first

        rate = np.full(self.params.size, self.params.rate)
        path[..., n_observed:, :] = past[-1] * self._growth(dts, rate, source, lead)
        return path

    def shift_path(
        self,
        path: np.ndarray,
        asset: int,
        bump: float,
        t: float,
        step: float,
    ) -> np.ndarray:
        """
        Copy of ``path`` with one asset bumped by (1 + bump) from t onward.

        Rows from the first grid index at or after t are scaled, for the
        given asset column only. Accepts single paths and batches.
        """
        return shift_path(path, asset, bump, t, step)

    def _validate_past(self, past: np.ndarray) -> np.ndarray:
        past = np.asarray(past, dtype=float)
        if past.ndim == 1:
            past = past.reshape(1, -1)
        if past.ndim != 2 or past.shape[0] < 1:
            raise NumericalDegenerateError(
                f"CRITICAL: past must have at least one row, got shape {past.shape}"
            )
        if past.shape[1] != self.params.size:
            raise NumericalDegenerateError(
                f"CRITICAL: past must have {self.params.size} columns, got {past.shape[1]}"
            )
        return past


def shift_path(
    path: np.ndarray,
    asset: int,
    bump: float,
    t: float,
    step: float,
) -> np.ndarray:
    """Module-level form of ``BlackScholesModel.shift_path``."""
    path = np.asarray(path, dtype=float)
    n_assets = path.shape[-1]
    if not 0 <= asset < n_assets:
        raise NumericalDegenerateError(
            f"CRITICAL: asset index must be in [0, {n_assets}), got {asset}"
        )
    start = first_grid_index(t, step)
    shifted = path.copy()
    shifted[..., start:, asset] *= 1.0 + bump
    return shifted


def _lead_shape(n_paths: Optional[int]) -> tuple[int, ...]:
    if n_paths is None:
        return ()
    if n_paths <= 0:
        raise NumericalDegenerateError(f"CRITICAL: n_paths must be > 0, got {n_paths}")
    return (int(n_paths),)
