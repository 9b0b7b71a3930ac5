"""
Sources of standard-normal draws for path simulation.

The simulator only ever asks for "an array of N(0, 1) draws of this
shape". Live pricing backs that with a numpy Generator; reproducible
tests back it with a fixed, pre-supplied sample.
"""

from typing import Optional, Protocol, Union

import numpy as np

from basket_pricing.errors import NumericalDegenerateError


class NormalSource(Protocol):
    """Anything that can hand out standard-normal draws."""

    def standard_normal(self, shape: tuple[int, ...]) -> np.ndarray:
        ...


class GeneratorSource:
    """
    Standard normals from a numpy random Generator.

    Parameters
    ----------
    seed : int, SeedSequence or Generator, optional
        Seed material passed to ``np.random.default_rng``; an existing
        Generator is used as is.
    """

    def __init__(
        self,
        seed: Union[int, np.random.SeedSequence, np.random.Generator, None] = None,
    ):
        if isinstance(seed, np.random.Generator):
            self.rng = seed
        else:
            self.rng = np.random.default_rng(seed)

    def standard_normal(self, shape: tuple[int, ...]) -> np.ndarray:
        return self.rng.standard_normal(shape)


class FixedSource:
    """
    Deterministic draws from a pre-supplied sample.

    A sample whose size equals the last requested dimension (one draw per
    asset) is reused for every date and every path. A sample with exactly
    as many values as requested is reshaped. Anything else is rejected.

    Parameters
    ----------
    values : array-like
        Fixed normal sample
    """

    def __init__(self, values):
        self.values = np.array(values, dtype=float)
        self.values.setflags(write=False)

    def standard_normal(self, shape: tuple[int, ...]) -> np.ndarray:
        shape = tuple(shape)
        if self.values.size == int(np.prod(shape)):
            return self.values.reshape(shape).copy()
        if shape and self.values.ndim == 1 and self.values.size == shape[-1]:
            return np.broadcast_to(self.values, shape).copy()
        raise NumericalDegenerateError(
            f"CRITICAL: fixed sample of size {self.values.size} cannot fill shape {shape}"
        )


def as_source(source: Optional[Union[NormalSource, int]]) -> NormalSource:
    """Wrap a seed (or None) in a GeneratorSource; pass sources through."""
    if source is None or isinstance(source, (int, np.integer, np.random.SeedSequence)):
        return GeneratorSource(source)
    return source
