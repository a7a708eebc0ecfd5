"""Vectorized Monte-Carlo values.

A simulation value is a scalar, a fixed-size sample array or an error. Errors are
ordinary values: they flow through ``add``/``max_``/``percentile90`` untouched so a
missing estimate upstream shows up as a message downstream instead of an exception.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Generic, Optional, Sequence, TypeVar, Union

import numpy as np


SAMPLES = 1000

# 5th/95th percentiles of a normal distribution are 1.645 sigma either side of the mean.
_SPREAD_90 = 3.29

T = TypeVar("T")


@dataclass(frozen=True)
class NPScalar:
    scalar: float


@dataclass(frozen=True, eq=False)
class NPArray:
    array: np.ndarray

    def __post_init__(self) -> None:
        if self.array.shape != (SAMPLES,):
            raise ValueError(f"sample arrays must have shape ({SAMPLES},), got {self.array.shape}")


@dataclass(frozen=True)
class NPError:
    message: str


NPValue = Union[NPScalar, NPArray, NPError]


@dataclass(frozen=True)
class NPPercentile(Generic[T]):
    lb: T
    med: T
    ub: T


NPPercentileOrError = Union[NPPercentile[T], NPError]

UNDEF = NPError("undefined")


def rand_norm90(lb: float, ub: float, rng: Optional[np.random.Generator] = None) -> NPArray:
    """Sample a normal distribution whose 5th and 95th percentiles are ``lb`` and ``ub``.

    Uses the Box-Muller transform, two samples per uniform pair. Samples are floored
    to integers and clamped at zero.
    """
    if rng is None:
        rng = np.random.default_rng()
    sigma = (ub - lb) / _SPREAD_90
    mean = (ub + lb) / 2
    u1 = 1.0 - rng.random(SAMPLES // 2)
    u2 = rng.random(SAMPLES // 2)
    mag = sigma * np.sqrt(-2.0 * np.log(u1))
    out = np.empty(SAMPLES, dtype=np.float64)
    out[0::2] = np.floor(mag * np.cos(2 * np.pi * u2) + mean)
    out[1::2] = np.floor(mag * np.sin(2 * np.pi * u2) + mean)
    return NPArray(np.maximum(out, 0).astype(np.int64))


def _coalesce(values: Sequence[NPValue]) -> tuple[Optional[NPError], list[float], list[np.ndarray]]:
    # TODO: collect every error message instead of returning the first one.
    for v in values:
        if isinstance(v, NPError):
            return v, [], []
    scalars = [v.scalar for v in values if isinstance(v, NPScalar)]
    arrays = [v.array for v in values if isinstance(v, NPArray)]
    return None, scalars, arrays


def add(values: Sequence[NPValue]) -> NPValue:
    err, scalars, arrays = _coalesce(values)
    if err is not None:
        return err
    scalar = sum(scalars)
    if not arrays:
        return NPScalar(scalar)
    return NPArray(np.sum(np.stack(arrays), axis=0) + scalar)


def max_(values: Sequence[NPValue]) -> NPValue:
    err, scalars, arrays = _coalesce(values)
    if err is not None:
        return err
    scalar = max(scalars, default=-math.inf)
    if not arrays:
        return NPScalar(scalar)
    out = np.max(np.stack(arrays), axis=0)
    if scalars:
        out = np.maximum(out, scalar)
    return NPArray(out)


def mean(value: NPValue) -> NPValue:
    if isinstance(value, NPArray):
        return NPScalar(float(value.array.mean()))
    return value


def percentile90(value: NPValue) -> NPPercentileOrError[float]:
    if isinstance(value, NPError):
        return value
    if isinstance(value, NPScalar):
        return NPPercentile(lb=value.scalar, med=value.scalar, ub=value.scalar)
    b = np.sort(value.array)
    n = len(b)
    return NPPercentile(
        lb=b[math.floor(n * 0.05)].item(),
        med=b[math.floor(n * 0.5)].item(),
        ub=b[math.floor(n * 0.95)].item(),
    )
