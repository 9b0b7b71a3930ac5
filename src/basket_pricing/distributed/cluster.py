"""
Process cluster: explicit rank/size context and message passing.

A ClusterContext is the only handle a rank has on its peers. It is passed
into the coordinator explicitly; there is no process-global communicator.

PipeClusterContext connects the master (rank 0) to every worker through a
duplex multiprocessing pipe (star topology: workers never talk to each
other). Every blocking receive is bounded by a timeout, and a failing rank
triggers an abort broadcast so no peer is left waiting.
"""

import logging
import multiprocessing as mp
from abc import ABC, abstractmethod
from multiprocessing.connection import Connection
from typing import Any, Callable, Optional

from basket_pricing.config.settings import SETTINGS
from basket_pricing.distributed.wire import (
    FrameKind,
    encode_frame,
    encode_reason,
)
from basket_pricing.errors import ClusterAborted, CommunicationError, ConfigurationError

logger = logging.getLogger(__name__)

MASTER_RANK = 0


class ClusterContext(ABC):
    """
    Rank, world size and point-to-point messaging for one process.

    Attributes
    ----------
    rank : int
        This process's rank, 0 for the master
    world_size : int
        Number of processes, master included
    """

    rank: int
    world_size: int

    @property
    def is_master(self) -> bool:
        return self.rank == MASTER_RANK

    @property
    def worker_ranks(self) -> range:
        return range(1, self.world_size)

    @abstractmethod
    def send(self, dest: int, frame: bytes) -> None:
        """Send one frame to rank ``dest``."""
        pass

    @abstractmethod
    def recv(self, source: int, timeout: Optional[float] = None) -> bytes:
        """Block until a frame from rank ``source`` arrives, at most ``timeout`` seconds."""
        pass

    def abort(self, reason: str) -> None:
        """
        Tell every reachable peer to stop.

        Best effort: peers that already exited are skipped.
        """
        frame = encode_frame(FrameKind.ABORT, encode_reason(reason))
        peers = self.worker_ranks if self.is_master else [MASTER_RANK]
        for peer in peers:
            try:
                self.send(peer, frame)
            except CommunicationError as exc:
                logger.warning(f"Rank {self.rank}: abort not delivered to rank {peer}: {exc}")

    def close(self) -> None:
        pass


class PipeClusterContext(ClusterContext):
    """
    ClusterContext over multiprocessing pipes.

    Parameters
    ----------
    rank : int
        This process's rank
    world_size : int
        Number of processes
    connections : dict[int, Connection]
        Pipe end per reachable peer rank
    recv_timeout : float, optional
        Default receive bound in seconds (default SETTINGS)
    """

    def __init__(
        self,
        rank: int,
        world_size: int,
        connections: dict[int, Connection],
        recv_timeout: Optional[float] = None,
    ):
        if world_size < 1:
            raise ConfigurationError(f"CRITICAL: world_size must be >= 1, got {world_size}")
        if not 0 <= rank < world_size:
            raise ConfigurationError(f"CRITICAL: rank must be in [0, {world_size}), got {rank}")

        self.rank = rank
        self.world_size = world_size
        self.recv_timeout = SETTINGS.cluster.recv_timeout if recv_timeout is None else recv_timeout
        self._connections = dict(connections)

    def _connection(self, peer: int) -> Connection:
        if peer not in self._connections:
            raise CommunicationError(f"CRITICAL: rank {self.rank} has no channel to rank {peer}")
        return self._connections[peer]

    def send(self, dest: int, frame: bytes) -> None:
        try:
            self._connection(dest).send_bytes(frame)
        except (OSError, EOFError) as exc:
            raise CommunicationError(
                f"CRITICAL: rank {self.rank} could not send to rank {dest}: {exc}"
            ) from exc

    def recv(self, source: int, timeout: Optional[float] = None) -> bytes:
        timeout = self.recv_timeout if timeout is None else timeout
        connection = self._connection(source)
        try:
            if not connection.poll(timeout):
                raise CommunicationError(
                    f"CRITICAL: rank {self.rank} timed out after {timeout}s waiting for rank {source}"
                )
            return connection.recv_bytes()
        except (OSError, EOFError) as exc:
            raise CommunicationError(
                f"CRITICAL: rank {self.rank} lost the channel to rank {source}: {exc}"
            ) from exc

    def close(self) -> None:
        for connection in self._connections.values():
            connection.close()


def _worker_main(
    rank: int,
    world_size: int,
    connection: Connection,
    recv_timeout: float,
    log_level: int,
    target: Callable[..., Any],
    args: tuple,
) -> None:
    """Entry point of a spawned worker process."""
    logging.basicConfig(level=log_level, format=f"%(asctime)s rank {rank} %(levelname)s %(name)s: %(message)s")
    context = PipeClusterContext(rank, world_size, {MASTER_RANK: connection}, recv_timeout)
    try:
        target(context, *args)
    except ClusterAborted as exc:
        logger.warning(f"Rank {rank} stopped by master: {exc}")
        raise SystemExit(1)
    except Exception as exc:
        logger.error(f"Rank {rank} failed: {exc!r}")
        frame = encode_frame(FrameKind.ERROR, encode_reason(f"{type(exc).__name__}: {exc}"))
        try:
            context.send(MASTER_RANK, frame)
        except CommunicationError as send_exc:
            logger.warning(f"Rank {rank}: failure report not delivered: {send_exc}")
        raise
    finally:
        context.close()


def launch_cluster(
    world_size: int,
    target: Callable[..., Any],
    *args: Any,
    recv_timeout: Optional[float] = None,
) -> Any:
    """
    Run ``target(context, *args)`` on ``world_size`` processes.

    Rank 0 runs in the calling process; ranks 1..world_size-1 are spawned.
    ``target`` must be importable by the workers (a module-level function).

    Parameters
    ----------
    world_size : int
        Number of processes, master included
    target : Callable
        Rank body, called with the rank's ClusterContext first
    *args
        Extra arguments passed to every rank
    recv_timeout : float, optional
        Receive bound in seconds (default SETTINGS)

    Returns
    -------
    Any
        The master's return value

    Raises
    ------
    Exception
        Whatever the master raised; workers are aborted and terminated first
    """
    if world_size < 1:
        raise ConfigurationError(f"CRITICAL: world_size must be >= 1, got {world_size}")
    config = SETTINGS.cluster
    recv_timeout = config.recv_timeout if recv_timeout is None else recv_timeout
    mp_context = mp.get_context(config.start_method)
    log_level = logging.getLogger().getEffectiveLevel()

    master_ends: dict[int, Connection] = {}
    processes = []
    for rank in range(1, world_size):
        master_end, worker_end = mp_context.Pipe(duplex=True)
        process = mp_context.Process(
            target=_worker_main,
            args=(rank, world_size, worker_end, recv_timeout, log_level, target, args),
            name=f"basket-pricing-rank-{rank}",
            daemon=True,
        )
        process.start()
        worker_end.close()
        master_ends[rank] = master_end
        processes.append(process)
    logger.info(f"Launched cluster of {world_size} process(es)")

    context = PipeClusterContext(MASTER_RANK, world_size, master_ends, recv_timeout)
    try:
        return target(context, *args)
    except Exception as exc:
        logger.warning(f"Master failed, aborting cluster: {exc}")
        context.abort(str(exc))
        raise
    finally:
        for process in processes:
            process.join(config.join_timeout)
            if process.is_alive():
                logger.warning(f"{process.name} did not exit, terminating")
                process.terminate()
                process.join()
            elif process.exitcode != 0:
                logger.warning(f"{process.name} exited with code {process.exitcode}")
        context.close()
