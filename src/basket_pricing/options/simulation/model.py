"""
Multi-asset Black-Scholes model parameters.

Holds the per-run market description (spot, volatility, trend, constant
correlation, risk-free rate) and the Cholesky factor of the correlation
matrix, computed once and reused for every simulated path.

[T1] Equicorrelation matrix C = (1 - ρ) I + ρ 11ᵀ is positive
semi-definite iff -1/(n-1) <= ρ <= 1.

See: Glasserman (2003) Section 2.3 "Generating Correlated Normals"
"""

from dataclasses import dataclass, field

import numpy as np

from basket_pricing.config.tolerances import CHOLESKY_PIVOT_TOLERANCE
from basket_pricing.data.parameters import ParameterSource
from basket_pricing.errors import ConfigurationError


def correlation_matrix(size: int, rho: float) -> np.ndarray:
    """Build the n×n matrix with 1 on the diagonal and ρ elsewhere."""
    matrix = np.full((size, size), float(rho))
    np.fill_diagonal(matrix, 1.0)
    return matrix


def cholesky_lower(matrix: np.ndarray, pivot_tol: float = CHOLESKY_PIVOT_TOLERANCE) -> np.ndarray:
    """
    Lower-triangular factor L with L @ L.T == matrix.

    Uses numpy's LAPACK factorization for definite matrices and falls back
    to a column-by-column factorization that zeroes vanishing pivots for
    singular semi-definite input (e.g. ρ = 1).

    Raises
    ------
    ConfigurationError
        If the matrix is not symmetric positive semi-definite
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ConfigurationError(f"CRITICAL: correlation matrix must be square, got {matrix.shape}")
    if not np.allclose(matrix, matrix.T):
        raise ConfigurationError("CRITICAL: correlation matrix must be symmetric")

    try:
        return np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError:
        pass

    n = matrix.shape[0]
    lower = np.zeros_like(matrix)
    for j in range(n):
        pivot = matrix[j, j] - lower[j, :j] @ lower[j, :j]
        if pivot < -pivot_tol:
            raise ConfigurationError(
                f"CRITICAL: correlation matrix is not positive semi-definite (pivot {pivot:.3e} at {j})"
            )
        if pivot <= pivot_tol:
            # Zero pivot: the column must vanish below the diagonal too.
            residual = matrix[j + 1:, j] - lower[j + 1:, :j] @ lower[j, :j]
            if np.any(np.abs(residual) > np.sqrt(pivot_tol)):
                raise ConfigurationError(
                    f"CRITICAL: correlation matrix is not positive semi-definite (column {j})"
                )
            continue
        lower[j, j] = np.sqrt(pivot)
        lower[j + 1:, j] = (matrix[j + 1:, j] - lower[j + 1:, :j] @ lower[j, :j]) / lower[j, j]
    return lower


def _as_vector(name: str, values, size: int) -> np.ndarray:
    vector = np.array(values, dtype=float).reshape(-1)
    if vector.size != size:
        raise ConfigurationError(
            f"CRITICAL: {name} must have {size} entries, got {vector.size}"
        )
    if not np.all(np.isfinite(vector)):
        raise ConfigurationError(f"CRITICAL: {name} must be finite, got {vector}")
    vector.setflags(write=False)
    return vector


@dataclass(frozen=True, eq=False)
class ModelParameters:
    """
    Immutable model configuration, one per process.

    Attributes
    ----------
    size : int
        Number of underlying assets n
    spot : np.ndarray
        Initial prices, shape (n,), each > 0
    volatility : np.ndarray
        Annualized volatilities, shape (n,), each >= 0
    correlation : float
        Constant pairwise correlation ρ
    rate : float
        Risk-free rate (annualized, decimal)
    trend : np.ndarray
        Historical drift per asset, shape (n,)
    cholesky : np.ndarray
        Lower Cholesky factor of the correlation matrix (derived)
    """

    size: int
    spot: np.ndarray
    volatility: np.ndarray
    correlation: float
    rate: float
    trend: np.ndarray
    cholesky: np.ndarray = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate parameters and factor the correlation matrix."""
        if int(self.size) != self.size or self.size < 1:
            raise ConfigurationError(f"CRITICAL: size must be an integer >= 1, got {self.size}")
        n = int(self.size)
        object.__setattr__(self, "size", n)
        object.__setattr__(self, "spot", _as_vector("spot", self.spot, n))
        object.__setattr__(self, "volatility", _as_vector("volatility", self.volatility, n))
        object.__setattr__(self, "trend", _as_vector("trend", self.trend, n))
        object.__setattr__(self, "correlation", float(self.correlation))
        object.__setattr__(self, "rate", float(self.rate))

        if np.any(self.spot <= 0):
            raise ConfigurationError(f"CRITICAL: spot must be > 0, got {self.spot}")
        if np.any(self.volatility < 0):
            raise ConfigurationError(f"CRITICAL: volatility must be >= 0, got {self.volatility}")
        if not np.isfinite(self.rate):
            raise ConfigurationError(f"CRITICAL: rate must be finite, got {self.rate}")
        if not -1.0 <= self.correlation <= 1.0:
            raise ConfigurationError(
                f"CRITICAL: correlation must be in [-1, 1], got {self.correlation}"
            )
        if n > 1 and self.correlation < -1.0 / (n - 1):
            raise ConfigurationError(
                f"CRITICAL: correlation must be >= -1/(n-1) = {-1.0 / (n - 1):.6f} "
                f"for {n} assets, got {self.correlation}"
            )

        lower = cholesky_lower(correlation_matrix(n, self.correlation))
        lower.setflags(write=False)
        object.__setattr__(self, "cholesky", lower)

    @property
    def correlation_matrix(self) -> np.ndarray:
        """Full n×n correlation matrix."""
        return correlation_matrix(self.size, self.correlation)

    @classmethod
    def from_source(cls, source: ParameterSource) -> "ModelParameters":
        """
        Read model parameters through the typed accessor contract.

        Keys: ``option size``, ``spot``, ``volatility``, ``interest rate``,
        ``correlation``, ``trend``.
        """
        size = source.extract_int("option size")
        if size < 1:
            raise ConfigurationError(f"CRITICAL: option size must be >= 1, got {size}")
        return cls(
            size=size,
            spot=source.extract_vector("spot", size),
            volatility=source.extract_vector("volatility", size),
            correlation=source.extract_scalar("correlation"),
            rate=source.extract_scalar("interest rate"),
            trend=source.extract_vector("trend", size),
        )
