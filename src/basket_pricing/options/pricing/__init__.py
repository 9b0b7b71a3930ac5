"""
Closed-form reference pricing.

Provides:
- Black-Scholes call and put prices
- Black-Scholes call delta

Single-asset baskets reduce to these, which is how the Monte Carlo engine
is validated.
"""

from basket_pricing.options.pricing.black_scholes import (
    black_scholes_call,
    black_scholes_call_delta,
    black_scholes_put,
)

__all__ = [
    "black_scholes_call",
    "black_scholes_call_delta",
    "black_scholes_put",
]
