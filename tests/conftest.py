"""
Centralized pytest fixtures for the basket-pricing test suite.

Fixture Categories:
1. Tolerance tiers - Deterministic vs stochastic comparisons
2. Model parameters - Single-asset and basket markets
3. Parameter files - Written to tmp_path for loader and cluster tests
4. In-memory cluster - Thread-backed ClusterContext for protocol tests
"""

import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import numpy as np
import pytest

from basket_pricing.distributed.cluster import MASTER_RANK, ClusterContext
from basket_pricing.errors import CommunicationError
from basket_pricing.options.payoffs.basket import BasketOption
from basket_pricing.options.simulation.black_scholes_model import BlackScholesModel
from basket_pricing.options.simulation.model import ModelParameters
from basket_pricing.options.simulation.monte_carlo import MonteCarloEngine

DATA_DIR = Path(__file__).parent.parent / "data"


# =============================================================================
# TOLERANCE TIERS
# =============================================================================


@dataclass(frozen=True)
class ToleranceTiers:
    """Tiered tolerance framework for different test types."""

    # Deterministic replays, merges and reconstructions
    anti_pattern: float = 1e-10

    # Closed-form references
    validation: float = 1e-6

    # Monte Carlo vs analytical
    mc_100k_paths: float = 0.01


TOLERANCES = ToleranceTiers()


@pytest.fixture(scope="session")
def tolerances() -> ToleranceTiers:
    """Provide tiered tolerance settings for all tests."""
    return TOLERANCES


# =============================================================================
# MODEL FIXTURES
# =============================================================================


@pytest.fixture
def single_asset_params() -> ModelParameters:
    """Hull-style ATM market: S=100, σ=20%, r=5%."""
    return ModelParameters(
        size=1,
        spot=[100.0],
        volatility=[0.20],
        correlation=0.0,
        rate=0.05,
        trend=[0.05],
    )


@pytest.fixture
def basket_params() -> ModelParameters:
    """Three correlated assets with distinct spots and volatilities."""
    return ModelParameters(
        size=3,
        spot=[100.0, 90.0, 110.0],
        volatility=[0.20, 0.25, 0.15],
        correlation=0.3,
        rate=0.03,
        trend=[0.06, 0.07, 0.05],
    )


@pytest.fixture
def call_engine(single_asset_params) -> MonteCarloEngine:
    """European call (one-asset basket) engine, 20k trials, seed 42."""
    payoff = BasketOption(1.0, 10, 1, [1.0], 100.0)
    return MonteCarloEngine(
        BlackScholesModel(single_asset_params), payoff, n_samples=20_000, source=42
    )


# =============================================================================
# PARAMETER FILES
# =============================================================================


CALL_FILE = """\
# one-asset basket
option size <int>: 1
spot <vector>: 100
maturity <float>: 1
volatility <vector>: 0.2
interest rate <float>: 0.05
correlation <float>: 0.0
trend <vector>: 0.05
strike <float>: 100
option type <string>: basket
payoff coefficients <vector>: 1
timestep number <int>: 4
sample number <long>: 4000
fd step <float>: 0.1
hedging dates number <int>: 8
"""


@pytest.fixture
def call_file_text() -> str:
    return CALL_FILE


@pytest.fixture
def call_file(tmp_path) -> Path:
    """Small one-asset parameter file on disk."""
    path = tmp_path / "call.dat"
    path.write_text(CALL_FILE)
    return path


@pytest.fixture
def write_parameter_file(tmp_path) -> Callable[[str, str], Path]:
    """Write arbitrary parameter-file text under tmp_path."""

    def _write(text: str, name: str = "params.dat") -> Path:
        path = tmp_path / name
        path.write_text(text)
        return path

    return _write


# =============================================================================
# IN-MEMORY CLUSTER
# =============================================================================


class QueueClusterContext(ClusterContext):
    """ClusterContext over in-process queues, one per directed edge."""

    def __init__(self, rank: int, world_size: int, mailboxes: dict, recv_timeout: float = 5.0):
        self.rank = rank
        self.world_size = world_size
        self.recv_timeout = recv_timeout
        self._mailboxes = mailboxes
        self.sent: list[tuple[int, bytes]] = []

    def send(self, dest: int, frame: bytes) -> None:
        self.sent.append((dest, frame))
        self._mailboxes[(self.rank, dest)].put(frame)

    def recv(self, source: int, timeout: Optional[float] = None) -> bytes:
        timeout = self.recv_timeout if timeout is None else timeout
        try:
            return self._mailboxes[(source, self.rank)].get(timeout=timeout)
        except queue.Empty:
            raise CommunicationError(
                f"CRITICAL: rank {self.rank} timed out after {timeout}s waiting for rank {source}"
            ) from None


def make_queue_cluster(world_size: int, recv_timeout: float = 5.0) -> list[QueueClusterContext]:
    """Star-connected contexts, index = rank."""
    mailboxes = {}
    for worker in range(1, world_size):
        mailboxes[(MASTER_RANK, worker)] = queue.Queue()
        mailboxes[(worker, MASTER_RANK)] = queue.Queue()
    return [QueueClusterContext(rank, world_size, mailboxes, recv_timeout) for rank in range(world_size)]


def run_workers(contexts: list[QueueClusterContext], body: Callable) -> tuple[list[threading.Thread], list]:
    """Start ``body(context)`` on a thread for every worker context."""
    errors: list = []

    def _run(context):
        try:
            body(context)
        except Exception as exc:
            errors.append(exc)

    threads = [
        threading.Thread(target=_run, args=(context,), daemon=True)
        for context in contexts[1:]
    ]
    for thread in threads:
        thread.start()
    return threads, errors


@pytest.fixture
def queue_cluster() -> Callable[..., list[QueueClusterContext]]:
    return make_queue_cluster


@pytest.fixture
def start_workers() -> Callable:
    return run_workers


@pytest.fixture
def fixed_seed() -> int:
    return 42


@pytest.fixture
def rng(fixed_seed) -> np.random.Generator:
    return np.random.default_rng(fixed_seed)
