"""
Distributed Monte Carlo accumulation.

Protocol (rank 0 = master, ranks 1..W-1 = workers):
1. Master sends the model parameters once; workers block until received.
2. Per pricing round the master sends RUN(total trials, t, past); every
   rank derives its own share from ``split_trials`` (workers get
   total // W, the master also takes the remainder).
3. Every rank accumulates (Σf, Σf²) over its share.
4. Workers send RESULT(Σf, Σf²); the master rebuilds each trial count from
   the shares, merges all accumulators and derives the estimate.
5. Rounds can resume from a previous accumulator; estimates always use the
   cumulative trial count.
6. STOP ends the workers' loop.

Any error frame, timeout or malformed payload is fatal for the run.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np

from basket_pricing.config.settings import SETTINGS
from basket_pricing.data.parameters import ParameterFile
from basket_pricing.distributed.cluster import MASTER_RANK, ClusterContext
from basket_pricing.distributed.wire import (
    FrameKind,
    RunCommand,
    decode_frame,
    decode_parameters,
    decode_reason,
    decode_result,
    decode_run,
    encode_frame,
    encode_parameters,
    encode_result,
    encode_run,
)
from basket_pricing.errors import ClusterAborted, CommunicationError, ConfigurationError
from basket_pricing.hedging.portfolio import HedgeResult, simulate_hedge
from basket_pricing.options.payoffs.basket import create_payoff
from basket_pricing.options.simulation.black_scholes_model import BlackScholesModel
from basket_pricing.options.simulation.model import ModelParameters
from basket_pricing.options.simulation.monte_carlo import (
    Accumulator,
    DeltaEstimate,
    MonteCarloEngine,
    PriceEstimate,
)
from basket_pricing.options.simulation.random_source import GeneratorSource

logger = logging.getLogger(__name__)

EngineFactory = Callable[[ModelParameters], MonteCarloEngine]


def split_trials(n_trials: int, world_size: int) -> list[int]:
    """
    Per-rank trial shares summing exactly to ``n_trials``.

    Every rank gets n_trials // world_size; the master (index 0) also
    takes the remainder.

    Examples
    --------
    >>> split_trials(10, 3)
    [4, 3, 3]
    """
    if world_size <= 0:
        raise ConfigurationError(f"CRITICAL: world_size must be > 0, got {world_size}")
    if n_trials < 0:
        raise ConfigurationError(f"CRITICAL: n_trials must be >= 0, got {n_trials}")
    share, remainder = divmod(n_trials, world_size)
    shares = [share] * world_size
    shares[MASTER_RANK] += remainder
    return shares


class DistributionCoordinator:
    """
    Runs the broadcast/gather protocol for one rank.

    Parameters
    ----------
    context : ClusterContext
        This rank's view of the cluster
    engine_factory : Callable[[ModelParameters], MonteCarloEngine]
        Builds the local engine once parameters are known
    timeout : float, optional
        Receive bound in seconds (default: the context's own)
    """

    def __init__(
        self,
        context: ClusterContext,
        engine_factory: EngineFactory,
        timeout: Optional[float] = None,
    ):
        self.context = context
        self.engine_factory = engine_factory
        self.timeout = timeout
        self.params: Optional[ModelParameters] = None
        self.engine: Optional[MonteCarloEngine] = None

    @property
    def rank(self) -> int:
        return self.context.rank

    @property
    def world_size(self) -> int:
        return self.context.world_size

    def _require_master(self, operation: str) -> None:
        if not self.context.is_master:
            raise CommunicationError(f"CRITICAL: {operation} is master-only, called on rank {self.rank}")

    def _require_engine(self) -> MonteCarloEngine:
        if self.engine is None:
            raise CommunicationError(
                f"CRITICAL: rank {self.rank} has no engine, share_parameters() must run first"
            )
        return self.engine

    def _receive(self, source: int, expected: FrameKind) -> tuple[FrameKind, bytes]:
        kind, body = decode_frame(self.context.recv(source, self.timeout))
        if kind is FrameKind.ERROR:
            raise CommunicationError(f"CRITICAL: rank {source} failed: {decode_reason(body)}")
        if kind is FrameKind.ABORT:
            raise ClusterAborted(f"CRITICAL: rank {source} aborted the run: {decode_reason(body)}")
        if kind is not expected and not (expected is FrameKind.RUN and kind is FrameKind.STOP):
            raise CommunicationError(
                f"CRITICAL: rank {self.rank} expected {expected.name} from rank {source}, got {kind.name}"
            )
        return kind, body

    def share_parameters(self, params: Optional[ModelParameters] = None) -> ModelParameters:
        """
        Distribute model parameters and build the local engine.

        The master sends ``params`` to every worker; workers block until
        they receive them.
        """
        if self.context.is_master:
            if params is None:
                raise ConfigurationError("CRITICAL: master must provide model parameters")
            frame = encode_frame(FrameKind.PARAMETERS, encode_parameters(params))
            for worker in self.context.worker_ranks:
                self.context.send(worker, frame)
            logger.info(f"Sent parameters ({params.size} assets) to {self.world_size - 1} worker(s)")
        else:
            _, body = self._receive(MASTER_RANK, FrameKind.PARAMETERS)
            params = decode_parameters(body)
            logger.debug(f"Rank {self.rank} received parameters ({params.size} assets)")

        self.params = params
        self.engine = self.engine_factory(params)
        return params

    def price(
        self,
        n_trials: Optional[int] = None,
        past: Optional[np.ndarray] = None,
        t: float = 0.0,
        previous: Optional[Accumulator] = None,
    ) -> tuple[PriceEstimate, Accumulator]:
        """
        Run one distributed pricing round (master only).

        Parameters
        ----------
        n_trials : int, optional
            Trials in this round across all ranks (default: engine n_samples)
        past : np.ndarray, optional
            Observed trajectory up to t; None prices from t = 0
        t : float, default 0.0
            Observation time
        previous : Accumulator, optional
            Moments already collected in earlier rounds

        Returns
        -------
        tuple[PriceEstimate, Accumulator]
            Estimate over the cumulative trials, and the cumulative accumulator
        """
        self._require_master("price")
        engine = self._require_engine()
        n_trials = engine.n_samples if n_trials is None else n_trials
        if past is not None:
            past = np.atleast_2d(np.asarray(past, dtype=float))

        # before any RUN frame leaves the master
        shares = split_trials(n_trials, self.world_size)
        frame = encode_frame(FrameKind.RUN, encode_run(RunCommand(n_trials, t, past)))
        for worker in self.context.worker_ranks:
            self.context.send(worker, frame)

        partials = [engine.accumulate(shares[MASTER_RANK], past, t)]
        for worker in self.context.worker_ranks:
            _, body = self._receive(worker, FrameKind.RESULT)
            sum_, sum_square = decode_result(body)
            partials.append(Accumulator(sum_, sum_square, shares[worker]))

        total = Accumulator.merge_all(partials)
        if previous is not None:
            total = previous + total
        estimate = engine.estimate(total, t)
        logger.info(
            f"Round of {n_trials} trials on {self.world_size} rank(s): "
            f"price={estimate.price:.6f} ± {estimate.confidence_half_width:.6f} "
            f"(cumulative {total.trial_count})"
        )
        return estimate, total

    def price_to_precision(
        self,
        target_half_width: float,
        batch_trials: Optional[int] = None,
        max_trials: Optional[int] = None,
        past: Optional[np.ndarray] = None,
        t: float = 0.0,
    ) -> tuple[PriceEstimate, Accumulator]:
        """
        Add rounds until the half-width reaches the target or the trial cap.

        Parameters
        ----------
        target_half_width : float
            Required 95% half-width
        batch_trials : int, optional
            Trials per round (default: engine n_samples)
        max_trials : int, optional
            Cumulative trial cap (default: 100 rounds)
        """
        if target_half_width <= 0:
            raise ConfigurationError(f"CRITICAL: target_half_width must be > 0, got {target_half_width}")
        engine = self._require_engine()
        batch_trials = engine.n_samples if batch_trials is None else batch_trials
        max_trials = 100 * batch_trials if max_trials is None else max_trials

        estimate, total = self.price(batch_trials, past, t)
        while estimate.confidence_half_width > target_half_width and total.trial_count < max_trials:
            estimate, total = self.price(batch_trials, past, t, previous=total)
        if estimate.confidence_half_width > target_half_width:
            logger.warning(
                f"Stopped at {total.trial_count} trials with half-width "
                f"{estimate.confidence_half_width:.6f} > target {target_half_width}"
            )
        return estimate, total

    def serve(self) -> int:
        """
        Worker loop: answer RUN rounds until STOP.

        Returns
        -------
        int
            Number of rounds served
        """
        if self.context.is_master:
            raise CommunicationError("CRITICAL: serve() runs on workers only")
        engine = self._require_engine()

        rounds = 0
        while True:
            kind, body = self._receive(MASTER_RANK, FrameKind.RUN)
            if kind is FrameKind.STOP:
                logger.debug(f"Rank {self.rank} stopping after {rounds} round(s)")
                return rounds
            command = decode_run(body)
            share = split_trials(command.total_trials, self.world_size)[self.rank]
            local = engine.accumulate(share, command.past, command.t)
            self.context.send(
                MASTER_RANK,
                encode_frame(FrameKind.RESULT, encode_result(local.sum, local.sum_square)),
            )
            rounds += 1

    def shutdown(self) -> None:
        """Release the workers (master only)."""
        self._require_master("shutdown")
        frame = encode_frame(FrameKind.STOP)
        for worker in self.context.worker_ranks:
            self.context.send(worker, frame)


# =============================================================================
# Rank entry point
# =============================================================================


@dataclass(frozen=True)
class PricingReport:
    """
    Master-side outcome of a run.

    Attributes
    ----------
    estimate : PriceEstimate
        Price and half-width at t = 0
    accumulator : Accumulator
        Merged payoff moments behind the estimate
    world_size : int
        Number of processes that contributed
    delta : DeltaEstimate, optional
        Deltas at t = 0, if requested
    hedge : HedgeResult, optional
        Hedging simulation, if requested
    """

    estimate: PriceEstimate
    accumulator: Accumulator
    world_size: int
    delta: Optional[DeltaEstimate] = None
    hedge: Optional[HedgeResult] = None


def run_rank(
    context: ClusterContext,
    parameter_path: Union[str, Path],
    seed: Optional[int] = None,
    n_samples: Optional[int] = None,
    compute_delta: bool = False,
    hedge: bool = False,
    precision: Optional[float] = None,
) -> Optional[PricingReport]:
    """
    Body of every rank: load, share parameters, price, report.

    Every rank reads the payoff description from the parameter file; only
    the master reads the model parameters, which workers receive over the
    wire. Each rank draws from its own child of SeedSequence(seed).

    Returns
    -------
    PricingReport or None
        The report on the master, None on workers
    """
    source = ParameterFile.from_path(parameter_path)
    payoff = create_payoff(source)
    n_samples = source.extract_int("sample number") if n_samples is None else n_samples
    fd_step = source.get_scalar("fd step", SETTINGS.monte_carlo.fd_step)
    seed = SETTINGS.monte_carlo.seed if seed is None else seed
    # One extra stream for the historical market path used by hedging
    streams = np.random.SeedSequence(seed).spawn(context.world_size + 1)

    def engine_factory(params: ModelParameters) -> MonteCarloEngine:
        return MonteCarloEngine(
            BlackScholesModel(params),
            payoff,
            n_samples=n_samples,
            fd_step=fd_step,
            source=GeneratorSource(streams[context.rank]),
        )

    coordinator = DistributionCoordinator(context, engine_factory)
    if not context.is_master:
        coordinator.share_parameters()
        coordinator.serve()
        return None

    params = coordinator.share_parameters(ModelParameters.from_source(source))
    if precision is None:
        estimate, accumulator = coordinator.price()
    else:
        estimate, accumulator = coordinator.price_to_precision(precision)
    coordinator.shutdown()

    engine = coordinator.engine
    delta = None
    if compute_delta:
        delta = engine.delta(params.spot.reshape(1, -1), 0.0)

    hedge_result = None
    if hedge:
        n_rebalancing = source.extract_int("hedging dates number")
        market_path = engine.model.simulate_historical(
            payoff.maturity, n_rebalancing, GeneratorSource(streams[-1])
        )
        hedge_result = simulate_hedge(engine, market_path, n_rebalancing)

    return PricingReport(
        estimate=estimate,
        accumulator=accumulator,
        world_size=context.world_size,
        delta=delta,
        hedge=hedge_result,
    )
