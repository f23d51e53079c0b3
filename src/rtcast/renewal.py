"""Renewal equation: infectiousness, Rt from infections, and the reverse."""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

from rtcast.delays import DelayDistribution

# Added to infectiousness so Rt never divides by zero.
INFECTIOUSNESS_FLOOR = 1e-5


def _as_trajectory(infections: ArrayLike) -> NDArray[np.float64]:
    series = np.asarray(infections, dtype=np.float64)
    if series.ndim != 1:
        raise ValueError(f"infections must be one-dimensional, got shape {series.shape}")
    if series.size == 0:
        raise ValueError("infections must not be empty")
    if not np.all(np.isfinite(series)):
        raise ValueError("infections must be finite")
    if np.any(series < 0):
        raise ValueError("infections must be non-negative")
    return series


def _check_seeding_time(seeding_time: int, total_days: int) -> int:
    if int(seeding_time) != seeding_time or seeding_time < 0:
        raise ValueError(f"seeding_time must be a non-negative integer, got {seeding_time!r}")
    if seeding_time >= total_days:
        raise ValueError(
            f"seeding_time ({seeding_time}) must be less than the number of "
            f"modelled days ({total_days})"
        )
    return int(seeding_time)


def trailing_convolution(
    series: ArrayLike, pmf: ArrayLike, offset: int = 0
) -> NDArray[np.float64]:
    """Weighted sum of each day's history.

    ``out[t] = sum_i pmf[i] * series[t - i - offset]`` over the indices that
    exist, so the window is truncated at the start of the series.

    Args:
        series: Daily values, oldest first.
        pmf: Kernel weights; ``pmf[0]`` applies to the most recent day in
            the window.
        offset: Days between ``t`` and the most recent day in the window.
            1 excludes the current day (transmission), 0 includes it
            (same-day reporting).
    """
    series = np.asarray(series, dtype=np.float64)
    pmf = np.asarray(pmf, dtype=np.float64)
    if offset < 0:
        raise ValueError(f"offset must be non-negative, got {offset}")

    n = len(series)
    out = np.zeros(n)
    # Kernel reversed so the oldest lag lines up with the start of the window.
    rev_pmf = pmf[::-1]
    for t in range(n):
        end = t - offset + 1
        if end <= 0:
            continue
        start = max(0, end - len(pmf))
        out[t] = np.dot(rev_pmf[len(rev_pmf) - (end - start) :], series[start:end])
    return out


def infectiousness(
    infections: ArrayLike, gt_pmf: ArrayLike, seeding_time: int
) -> NDArray[np.float64]:
    """Infection pressure on each post-seeding day.

    ``gt_pmf[i]`` is the probability of a generation time of ``i + 1`` days.
    """
    series = _as_trajectory(infections)
    seeding_time = _check_seeding_time(seeding_time, len(series))
    pressure = trailing_convolution(series, gt_pmf, offset=1)
    return INFECTIOUSNESS_FLOOR + pressure[seeding_time:]


def compute_rt(
    infections: ArrayLike,
    seeding_time: int,
    gt_mean: float,
    gt_sd: float,
    max_gt: int,
) -> NDArray[np.float64]:
    """Reproduction number implied by an infection trajectory.

    Args:
        infections: Daily infections including the seeding period.
        seeding_time: Number of leading days with no Rt output.
        gt_mean: Mean generation time in days.
        gt_sd: Standard deviation of the generation time in days.
        max_gt: Longest generation time considered, in days.

    Returns:
        Array of length ``len(infections) - seeding_time``.

    Raises:
        ValueError: If the trajectory is malformed, seeding_time is out of
            range, or the generation time parameters are invalid.
    """
    series = _as_trajectory(infections)
    seeding_time = _check_seeding_time(seeding_time, len(series))
    gt_pmf = DelayDistribution(gt_mean, gt_sd, max_gt).pmf
    return series[seeding_time:] / infectiousness(series, gt_pmf, seeding_time)


def propagate_infections(
    initial_infections: ArrayLike, rt: ArrayLike, gt_pmf: ArrayLike
) -> NDArray[np.float64]:
    """Expected infections from seed infections and an Rt path.

    Returns the seed infections followed by one value per entry of ``rt``.
    """
    seed = _as_trajectory(initial_infections)
    rt = np.asarray(rt, dtype=np.float64)
    gt_pmf = np.asarray(gt_pmf, dtype=np.float64)
    if np.any(rt < 0):
        raise ValueError("rt must be non-negative")

    infections = np.concatenate([seed, np.zeros(len(rt))])
    for step in range(len(seed), len(infections)):
        current_infectious = 0.0
        for lag in range(min(step, len(gt_pmf))):
            current_infectious += infections[step - lag - 1] * gt_pmf[lag]
        infections[step] = rt[step - len(seed)] * current_infectious
    return infections
