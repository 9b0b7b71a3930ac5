"""
Discrete delta hedging along a simulated market path.

The seller receives the option price at t = 0 and holds δ(t_i) units of
each asset, rebalancing on H equally spaced dates. The cash account
accrues at the risk-free rate between dates.

[T1] V_0 = P_0 − δ_0·S_0
[T1] V_i = V_{i−1}·e^(rT/H) − (δ_i − δ_{i−1})·S_{t_i}
[T1] P&L = V_H + δ_H·S_T − payoff

With exact deltas and continuous rebalancing the P&L is zero; discrete
rebalancing and Monte Carlo deltas leave a small tracking error.

See: Hull (2018) Ch. 19 "The Greek Letters"
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import numpy as np

from basket_pricing.errors import ConfigurationError

if TYPE_CHECKING:
    from basket_pricing.options.simulation.monte_carlo import MonteCarloEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HedgeResult:
    """
    Outcome of a hedging simulation.

    Attributes
    ----------
    pnl : float
        Final portfolio value minus the option payoff
    initial_price : float
        Price received at t = 0
    payoff : float
        Option payoff on the option-grid restriction of the market path
    times : np.ndarray
        Rebalancing dates, shape (H + 1,)
    portfolio_values : np.ndarray
        Hedge portfolio value at each date, shape (H + 1,)
    deltas : np.ndarray
        Holdings at each date, shape (H + 1, n)
    """

    pnl: float
    initial_price: float
    payoff: float
    times: np.ndarray
    portfolio_values: np.ndarray
    deltas: np.ndarray

    @property
    def relative_pnl(self) -> float:
        """P&L as a fraction of the initial price."""
        if abs(self.initial_price) < 1e-12:
            return float("inf")
        return self.pnl / self.initial_price


def _rebalancing_ratio(n_rebalancing: int, n_time_steps: int) -> int:
    if n_rebalancing <= 0:
        raise ConfigurationError(f"CRITICAL: n_rebalancing must be > 0, got {n_rebalancing}")
    if n_rebalancing % n_time_steps != 0:
        raise ConfigurationError(
            f"CRITICAL: hedging dates ({n_rebalancing}) must be a multiple of "
            f"the option time steps ({n_time_steps})"
        )
    return n_rebalancing // n_time_steps


def build_past(
    market_path: np.ndarray,
    index: int,
    n_time_steps: int,
    n_rebalancing: int,
) -> np.ndarray:
    """
    Observed past at rebalancing date ``index`` on the option grid.

    Returns the option-grid dates up to t followed, when t is not itself a
    grid date, by the current spot.

    Parameters
    ----------
    market_path : np.ndarray
        Market prices on the rebalancing dates, shape (H + 1, n)
    index : int
        Rebalancing date index, 0 <= index <= H
    n_time_steps : int
        Option grid steps N
    n_rebalancing : int
        Rebalancing dates H (multiple of N)

    Returns
    -------
    np.ndarray
        Past trajectory, shape (rows, n)
    """
    ratio = _rebalancing_ratio(n_rebalancing, n_time_steps)
    grid_rows = market_path[0:index + 1:ratio]
    if index % ratio == 0:
        return grid_rows.copy()
    return np.vstack([grid_rows, market_path[index]])


def simulate_hedge(
    engine: "MonteCarloEngine",
    market_path: np.ndarray,
    n_rebalancing: Optional[int] = None,
) -> HedgeResult:
    """
    Delta-hedge the engine's option along ``market_path``.

    Parameters
    ----------
    engine : MonteCarloEngine
        Prices the option and its deltas at each date
    market_path : np.ndarray
        Market scenario on the rebalancing grid, shape (H + 1, n),
        e.g. from ``BlackScholesModel.simulate_historical``
    n_rebalancing : int, optional
        H, defaults to len(market_path) − 1

    Returns
    -------
    HedgeResult
        Portfolio trajectory and final P&L
    """
    market_path = np.asarray(market_path, dtype=float)
    if n_rebalancing is None:
        n_rebalancing = market_path.shape[0] - 1
    if market_path.ndim != 2 or market_path.shape[0] != n_rebalancing + 1:
        raise ConfigurationError(
            f"CRITICAL: market path must have {n_rebalancing + 1} rows, got shape {market_path.shape}"
        )
    n_time_steps = engine.n_time_steps
    ratio = _rebalancing_ratio(n_rebalancing, n_time_steps)

    maturity = engine.maturity
    growth = np.exp(engine.model.params.rate * maturity / n_rebalancing)
    times = np.array([i * maturity / n_rebalancing for i in range(n_rebalancing + 1)])

    initial_past = market_path[:1]
    initial_price = engine.price_at(initial_past, 0.0).price
    holdings = engine.delta(initial_past, 0.0).delta
    cash = initial_price - holdings @ market_path[0]

    values = [initial_price]
    deltas = [holdings]
    for index in range(1, n_rebalancing + 1):
        spot = market_path[index]
        if index < n_rebalancing:
            past = build_past(market_path, index, n_time_steps, n_rebalancing)
            new_holdings = engine.delta(past, times[index]).delta
        else:
            new_holdings = holdings
        cash = cash * growth - (new_holdings - holdings) @ spot
        holdings = new_holdings
        values.append(cash + holdings @ spot)
        deltas.append(holdings)

    payoff = engine.payoff.evaluate(market_path[::ratio])
    pnl = values[-1] - payoff
    logger.info(
        f"Hedged over {n_rebalancing} dates: price={initial_price:.4f}, "
        f"payoff={payoff:.4f}, P&L={pnl:.4f}"
    )
    return HedgeResult(
        pnl=float(pnl),
        initial_price=float(initial_price),
        payoff=float(payoff),
        times=times,
        portfolio_values=np.array(values),
        deltas=np.array(deltas),
    )
