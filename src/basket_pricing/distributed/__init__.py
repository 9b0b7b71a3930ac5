"""
Distributed Monte Carlo over a master/worker process cluster.

Provides:
- ClusterContext and its multiprocessing-pipe implementation
- Binary wire format for parameters, rounds and results
- DistributionCoordinator: trial splitting, gather and resumption
"""

from basket_pricing.distributed.cluster import (
    MASTER_RANK,
    ClusterContext,
    PipeClusterContext,
    launch_cluster,
)
from basket_pricing.distributed.coordinator import (
    DistributionCoordinator,
    PricingReport,
    run_rank,
    split_trials,
)

__all__ = [
    "MASTER_RANK",
    "ClusterContext",
    "PipeClusterContext",
    "launch_cluster",
    "DistributionCoordinator",
    "PricingReport",
    "run_rank",
    "split_trials",
]
