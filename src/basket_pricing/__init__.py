"""
basket-pricing: Distributed Monte Carlo pricing of basket options.

Quick Start
-----------
>>> from basket_pricing import ModelParameters, BlackScholesModel, BasketOption, MonteCarloEngine
>>> params = ModelParameters(size=1, spot=100.0, volatility=0.2, correlation=0.0,
...                          rate=0.05, trend=0.05)
>>> engine = MonteCarloEngine(BlackScholesModel(params), BasketOption(1.0, 50, 1, [1.0], 100.0),
...                           n_samples=100_000, source=42)
>>> estimate = engine.price()

Distributed run from a parameter file:

>>> from basket_pricing import launch_cluster, run_rank
>>> report = launch_cluster(4, run_rank, "data/basket.dat")

Version: 0.1.0
"""

__version__ = "0.1.0"

# =============================================================================
# Model and simulation
# =============================================================================
from basket_pricing.options.simulation.model import ModelParameters
from basket_pricing.options.simulation.black_scholes_model import BlackScholesModel
from basket_pricing.options.simulation.monte_carlo import (
    Accumulator,
    DeltaEstimate,
    MonteCarloEngine,
    PriceEstimate,
)
from basket_pricing.options.simulation.random_source import FixedSource, GeneratorSource

# =============================================================================
# Payoffs
# =============================================================================
from basket_pricing.options.payoffs.base import BasePayoff, OptionType
from basket_pricing.options.payoffs.basket import (
    AsianOption,
    BasketOption,
    PerformanceOption,
    create_payoff,
)

# =============================================================================
# Parameters and configuration
# =============================================================================
from basket_pricing.data.parameters import ParameterFile
from basket_pricing.config.settings import SETTINGS

# =============================================================================
# Distribution
# =============================================================================
from basket_pricing.distributed.cluster import launch_cluster
from basket_pricing.distributed.coordinator import (
    DistributionCoordinator,
    PricingReport,
    run_rank,
    split_trials,
)

# =============================================================================
# Hedging
# =============================================================================
from basket_pricing.hedging.portfolio import HedgeResult, simulate_hedge

# =============================================================================
# Errors
# =============================================================================
from basket_pricing.errors import (
    ClusterAborted,
    CommunicationError,
    ConfigurationError,
    NumericalDegenerateError,
    PricingError,
)

__all__ = [
    "__version__",
    "ModelParameters",
    "BlackScholesModel",
    "Accumulator",
    "DeltaEstimate",
    "MonteCarloEngine",
    "PriceEstimate",
    "FixedSource",
    "GeneratorSource",
    "BasePayoff",
    "OptionType",
    "AsianOption",
    "BasketOption",
    "PerformanceOption",
    "create_payoff",
    "ParameterFile",
    "SETTINGS",
    "launch_cluster",
    "DistributionCoordinator",
    "PricingReport",
    "run_rank",
    "split_trials",
    "HedgeResult",
    "simulate_hedge",
    "ClusterAborted",
    "CommunicationError",
    "ConfigurationError",
    "NumericalDegenerateError",
    "PricingError",
]
