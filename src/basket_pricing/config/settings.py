"""
Frozen configuration settings for basket pricing.

All configuration is immutable (frozen dataclasses) to ensure reproducibility.
"""

import os
from dataclasses import dataclass

from scipy import stats

# =============================================================================
# Monte Carlo Configuration
# =============================================================================


@dataclass(frozen=True)
class MonteCarloConfig:
    """
    Immutable Monte Carlo configuration. [T1: Academic standard]

    Attributes
    ----------
    n_samples : int
        Default number of Monte Carlo trials
    seed : int
        Random seed for reproducibility
    fd_step : float
        Relative bump for finite-difference deltas
    batch_size : int
        Paths simulated per vectorized batch
    confidence_level : float
        Two-sided confidence level of the reported interval
    """

    n_samples: int = 50_000
    seed: int = 42
    fd_step: float = 0.1
    batch_size: int = 10_000
    confidence_level: float = 0.95

    @property
    def z_score(self) -> float:
        """Two-sided normal quantile, ≈1.96 at 95%."""
        return float(stats.norm.ppf(0.5 + self.confidence_level / 2))


# =============================================================================
# Cluster Configuration
# =============================================================================


def _resolve_recv_timeout() -> float:
    """
    Resolve the blocking-receive timeout with environment variable override.

    Priority:
    1. BASKET_PRICING_RECV_TIMEOUT environment variable (seconds, if set)
    2. Default: 600 seconds

    Returns
    -------
    float
        Timeout in seconds
    """
    env_timeout = os.environ.get("BASKET_PRICING_RECV_TIMEOUT")
    if env_timeout:
        return float(env_timeout)
    return 600.0


@dataclass(frozen=True)
class ClusterConfig:
    """
    Immutable cluster configuration.

    Attributes
    ----------
    world_size : int
        Default number of processes (master included)
    recv_timeout : float
        Upper bound on any blocking receive, in seconds.
        Override with BASKET_PRICING_RECV_TIMEOUT environment variable.
    join_timeout : float
        Seconds to wait for worker processes to exit before terminating them
    start_method : str
        multiprocessing start method for worker processes
    """

    world_size: int = 1
    recv_timeout: float = None  # type: ignore[assignment]  # Set in __post_init__
    join_timeout: float = 10.0
    start_method: str = "spawn"

    def __post_init__(self) -> None:
        """Initialize recv_timeout using resolver function."""
        # Frozen dataclass workaround: use object.__setattr__
        if self.recv_timeout is None:
            object.__setattr__(self, "recv_timeout", _resolve_recv_timeout())


# =============================================================================
# Master Configuration
# =============================================================================


@dataclass(frozen=True)
class Settings:
    """
    Master frozen configuration combining all sub-configs.

    Usage
    -----
    >>> from basket_pricing.config.settings import SETTINGS
    >>> SETTINGS.monte_carlo.z_score
    """

    monte_carlo: MonteCarloConfig = MonteCarloConfig()
    cluster: ClusterConfig = ClusterConfig()


# Singleton instance - import this
SETTINGS = Settings()
