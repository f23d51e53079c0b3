"""Convert between Rt and exponential growth rate under a gamma generation time.

With a gamma generation time of mean ``m`` and coefficient of variation
squared ``k = (sd / m)^2``:

    r = (R^k - 1) / (k * m)
    R = (1 + k * r * m)^(1 / k)

As ``k -> 0`` (a fixed generation time) these tend to ``log(R) / m`` and
``exp(r * m)``, which is what is returned when ``sd == 0``.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import ArrayLike, NDArray


def _shape_term(gt_mean: float, gt_sd: float) -> float:
    if not math.isfinite(gt_mean) or gt_mean <= 0:
        raise ValueError(f"gt_mean must be positive, got {gt_mean!r}")
    if not math.isfinite(gt_sd) or gt_sd < 0:
        raise ValueError(f"gt_sd must be non-negative, got {gt_sd!r}")
    return (gt_sd / gt_mean) ** 2


def rt_to_growth(rt: ArrayLike, gt_mean: float, gt_sd: float) -> NDArray[np.float64]:
    """Element-wise growth rate for a series of reproduction numbers."""
    rt = np.asarray(rt, dtype=np.float64)
    k = _shape_term(gt_mean, gt_sd)
    if k == 0:
        return np.log(rt) / gt_mean
    return (rt**k - 1) / (k * gt_mean)


def growth_to_rt(growth: ArrayLike, gt_mean: float, gt_sd: float) -> NDArray[np.float64]:
    """Inverse of :func:`rt_to_growth`."""
    growth = np.asarray(growth, dtype=np.float64)
    k = _shape_term(gt_mean, gt_sd)
    if k == 0:
        return np.exp(growth * gt_mean)
    return (1 + k * growth * gt_mean) ** (1 / k)


def doubling_time(growth: ArrayLike) -> NDArray[np.float64]:
    """Days to double (negative: days to halve); infinite for zero growth."""
    growth = np.asarray(growth, dtype=np.float64)
    with np.errstate(divide="ignore"):
        return np.log(2) / growth
