"""Discretized delay kernels: gamma delays as daily probability mass."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.stats import gamma as gamma_dist


def _check_positive(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a positive finite number, got {value!r}")
    return value


def discretize_gamma(mean: float, sd: float, max_support: int) -> NDArray[np.float64]:
    """Discretize a gamma distribution into daily bins.

    Bin ``i`` holds the mass the continuous distribution puts in
    ``[i, i + 1)``. The kernel is truncated at ``max_support`` bins and
    renormalized to sum to one.

    Args:
        mean: Mean of the continuous gamma distribution.
        sd: Standard deviation of the continuous gamma distribution.
        max_support: Number of daily bins to keep.

    Returns:
        Non-negative float array of length ``max_support``.

    Raises:
        ValueError: If mean or sd is not positive, max_support is below 1,
            or the truncated support carries no mass.
    """
    mean = _check_positive("mean", mean)
    sd = _check_positive("sd", sd)
    if int(max_support) != max_support or max_support < 1:
        raise ValueError(f"max_support must be a positive integer, got {max_support!r}")
    max_support = int(max_support)

    shape = (mean / sd) ** 2
    scale = sd**2 / mean
    cdf = gamma_dist.cdf(np.arange(max_support + 1), a=shape, scale=scale)
    pmf = np.maximum(np.diff(cdf), 0.0)

    total = pmf.sum()
    if not total > 0:
        raise ValueError(
            f"Gamma(mean={mean}, sd={sd}) has no mass within {max_support} days"
        )
    return pmf / total


def combine_delays(*pmfs: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convolve delay kernels into the kernel of their sum."""
    if not pmfs:
        raise ValueError("At least one delay kernel is required")
    combined = np.asarray(pmfs[0], dtype=np.float64)
    for pmf in pmfs[1:]:
        combined = np.convolve(combined, np.asarray(pmf, dtype=np.float64))
    return combined / combined.sum()


@dataclass(frozen=True)
class DelayDistribution:
    """A gamma-distributed delay, e.g. generation time or reporting lag."""

    mean: float
    sd: float
    max_support: int

    def __post_init__(self):
        _check_positive("mean", self.mean)
        _check_positive("sd", self.sd)
        if int(self.max_support) != self.max_support or self.max_support < 1:
            raise ValueError(
                f"max_support must be a positive integer, got {self.max_support!r}"
            )
        object.__setattr__(self, "max_support", int(self.max_support))

    @property
    def pmf(self) -> NDArray[np.float64]:
        return discretize_gamma(self.mean, self.sd, self.max_support)
