"""
Centralized tolerance framework for basket pricing.

All tolerances are derived from precision requirements, not ad hoc tuning.

Tolerance Tiers:
    Tier 1 (Analytical): Machine-precision achievable, deterministic results
    Tier 3 (Stochastic): CLT-derived, Monte Carlo estimates

References:
    [T1] Higham (2002) "Accuracy and Stability of Numerical Algorithms"
    [T1] Glasserman (2003) Ch. 3-4 - Monte Carlo error bounds
"""

from typing import Final

import numpy as np

# =============================================================================
# Tier 1: Analytical Tolerances (Deterministic)
# =============================================================================

#: Cholesky reconstruction: L @ L.T must equal the correlation matrix
CHOLESKY_TOLERANCE: Final[float] = 1e-10

#: Pivot below which a semi-definite Cholesky column is treated as zero
CHOLESKY_PIVOT_TOLERANCE: Final[float] = 1e-12

#: Relative slack on t mod dt == 0, absorbs float representation of t and dt
GRID_ALIGNMENT_TOLERANCE: Final[float] = 1e-12

#: Deterministic path replay and merge comparisons
ANTI_PATTERN_TOLERANCE: Final[float] = 1e-10


# =============================================================================
# Tier 3: Stochastic Tolerances (CLT-Derived)
# =============================================================================


def mc_tolerance(n_paths: int, sigma: float = 0.20, confidence: float = 3.0) -> float:
    """
    Calculate CLT-derived Monte Carlo tolerance.

    [T1] Standard error of MC estimate is σ/√N.
    3σ gives 99.7% confidence interval.

    Parameters
    ----------
    n_paths : int
        Number of Monte Carlo paths
    sigma : float
        Estimated volatility of payoff (default 0.20 for options)
    confidence : float
        Number of standard deviations (default 3 for 99.7% CI)

    Returns
    -------
    float
        Tolerance for MC vs analytical comparison
    """
    return confidence * sigma / np.sqrt(n_paths)


#: MC tolerance for 10,000 paths: 3 * 0.20 / sqrt(10000) ≈ 0.006
MC_10K_TOLERANCE: Final[float] = 0.006

#: MC tolerance for 100,000 paths, conservative for basket payoffs
MC_100K_TOLERANCE: Final[float] = 0.01

#: Finite-difference delta vs closed-form N(d1)
DELTA_MC_TOLERANCE: Final[float] = 0.02


TOLERANCE_REGISTRY: dict[str, float] = {
    # Tier 1: Analytical
    "cholesky": CHOLESKY_TOLERANCE,
    "cholesky_pivot": CHOLESKY_PIVOT_TOLERANCE,
    "grid_alignment": GRID_ALIGNMENT_TOLERANCE,
    "anti_pattern": ANTI_PATTERN_TOLERANCE,
    # Tier 3: Stochastic
    "mc_10k": MC_10K_TOLERANCE,
    "mc_100k": MC_100K_TOLERANCE,
    "delta_mc": DELTA_MC_TOLERANCE,
}


def get_tolerance(name: str) -> float:
    """
    Get tolerance by name from registry.

    Raises
    ------
    KeyError
        If tolerance name not found
    """
    if name not in TOLERANCE_REGISTRY:
        available = ", ".join(sorted(TOLERANCE_REGISTRY.keys()))
        raise KeyError(f"Unknown tolerance '{name}'. Available: {available}")
    return TOLERANCE_REGISTRY[name]
