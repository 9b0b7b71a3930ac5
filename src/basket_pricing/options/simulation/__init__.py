"""
Monte Carlo simulation for basket option pricing.

Provides:
- Correlated multi-asset Black-Scholes path generation
- Continuation of an observed trajectory from time t
- Moment accumulation, price and delta estimation
"""

from basket_pricing.options.simulation.black_scholes_model import (
    BlackScholesModel,
    first_grid_index,
    is_grid_aligned,
    shift_path,
    timestep,
)
from basket_pricing.options.simulation.model import (
    ModelParameters,
    cholesky_lower,
    correlation_matrix,
)
from basket_pricing.options.simulation.monte_carlo import (
    Accumulator,
    DeltaEstimate,
    MonteCarloEngine,
    PriceEstimate,
)
from basket_pricing.options.simulation.random_source import (
    FixedSource,
    GeneratorSource,
    NormalSource,
    as_source,
)

__all__ = [
    # Model
    "ModelParameters",
    "cholesky_lower",
    "correlation_matrix",
    # Paths
    "BlackScholesModel",
    "first_grid_index",
    "is_grid_aligned",
    "shift_path",
    "timestep",
    # Monte Carlo
    "Accumulator",
    "DeltaEstimate",
    "MonteCarloEngine",
    "PriceEstimate",
    # Randomness
    "FixedSource",
    "GeneratorSource",
    "NormalSource",
    "as_source",
]
