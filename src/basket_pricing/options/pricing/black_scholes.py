"""
Closed-form Black-Scholes reference prices.

Used to validate the Monte Carlo engine on single-asset baskets, where
the basket call reduces to a European call.

References
----------
[T1] Black, F., & Scholes, M. (1973). The pricing of options and corporate liabilities.
[T1] Hull, J. C. (2018). Options, Futures, and Other Derivatives (10th ed.).
"""

import numpy as np
from scipy import stats


def _calculate_d1_d2(
    spot: float,
    strike: float,
    rate: float,
    volatility: float,
    time_to_expiry: float,
) -> tuple[float, float]:
    """
    Calculate d1 and d2 parameters.

    [T1] d1 = (ln(S/K) + (r + σ²/2)T) / (σ√T)
    [T1] d2 = d1 - σ√T
    """
    vol_sqrt_t = volatility * np.sqrt(time_to_expiry)
    d1 = (np.log(spot / strike) + (rate + 0.5 * volatility**2) * time_to_expiry) / vol_sqrt_t
    return d1, d1 - vol_sqrt_t


def black_scholes_call(
    spot: float,
    strike: float,
    rate: float,
    volatility: float,
    time_to_expiry: float,
) -> float:
    """
    Price European call option using Black-Scholes.

    [T1] C = S·N(d1) − K·e^(−rT)·N(d2)

    Examples
    --------
    >>> round(black_scholes_call(100, 100, 0.05, 0.20, 1.0), 2)
    10.45
    """
    _validate_inputs(spot, strike, volatility, time_to_expiry)

    if time_to_expiry == 0:
        return max(spot - strike, 0.0)

    d1, d2 = _calculate_d1_d2(spot, strike, rate, volatility, time_to_expiry)
    price = spot * stats.norm.cdf(d1) - strike * np.exp(-rate * time_to_expiry) * stats.norm.cdf(d2)
    return float(price)


def black_scholes_put(
    spot: float,
    strike: float,
    rate: float,
    volatility: float,
    time_to_expiry: float,
) -> float:
    """
    Price European put option using Black-Scholes.

    [T1] P = K·e^(−rT)·N(−d2) − S·N(−d1)
    """
    _validate_inputs(spot, strike, volatility, time_to_expiry)

    if time_to_expiry == 0:
        return max(strike - spot, 0.0)

    d1, d2 = _calculate_d1_d2(spot, strike, rate, volatility, time_to_expiry)
    price = strike * np.exp(-rate * time_to_expiry) * stats.norm.cdf(-d2) - spot * stats.norm.cdf(-d1)
    return float(price)


def black_scholes_call_delta(
    spot: float,
    strike: float,
    rate: float,
    volatility: float,
    time_to_expiry: float,
) -> float:
    """[T1] Call delta N(d1)."""
    _validate_inputs(spot, strike, volatility, time_to_expiry)

    if time_to_expiry == 0:
        return 1.0 if spot > strike else 0.0

    d1, _ = _calculate_d1_d2(spot, strike, rate, volatility, time_to_expiry)
    return float(stats.norm.cdf(d1))


def _validate_inputs(
    spot: float,
    strike: float,
    volatility: float,
    time_to_expiry: float,
) -> None:
    """Validate Black-Scholes inputs."""
    if spot <= 0:
        raise ValueError(f"CRITICAL: spot must be > 0, got {spot}")
    if strike <= 0:
        raise ValueError(f"CRITICAL: strike must be > 0, got {strike}")
    if volatility <= 0:
        raise ValueError(f"CRITICAL: volatility must be > 0, got {volatility}")
    if time_to_expiry < 0:
        raise ValueError(f"CRITICAL: time_to_expiry must be >= 0, got {time_to_expiry}")
