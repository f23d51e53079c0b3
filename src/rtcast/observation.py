"""Observation model: delayed, noisy reporting of infections."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.random import Generator
from numpy.typing import ArrayLike, NDArray
from scipy.stats import nbinom, poisson

from rtcast.renewal import _as_trajectory, _check_seeding_time, trailing_convolution

logger = logging.getLogger(__name__)

# Upper bound on expected counts passed to the samplers.
MAX_EXPECTED_REPORTS = 1e8
# Above this the negative binomial is indistinguishable from Poisson.
PHI_POISSON_THRESHOLD = 1e4


def _clamp_expected(expected: ArrayLike) -> NDArray[np.float64]:
    expected = np.asarray(expected, dtype=np.float64)
    if np.any(np.isnan(expected)) or np.any(expected < 0):
        raise ValueError("expected reports must be non-negative numbers")
    return np.minimum(expected, MAX_EXPECTED_REPORTS)


class NoiseModel(ABC):
    """Count distribution for reports around their expected value."""

    @abstractmethod
    def sample(self, expected: ArrayLike, rng: Generator) -> NDArray[np.int64]: ...

    @abstractmethod
    def log_likelihood(self, observed: ArrayLike, expected: ArrayLike) -> float: ...


@dataclass(frozen=True)
class PoissonNoise(NoiseModel):
    def sample(self, expected: ArrayLike, rng: Generator) -> NDArray[np.int64]:
        return rng.poisson(_clamp_expected(expected)).astype(np.int64)

    def log_likelihood(self, observed: ArrayLike, expected: ArrayLike) -> float:
        return float(np.sum(poisson.logpmf(observed, _clamp_expected(expected))))


@dataclass(frozen=True)
class NegativeBinomialNoise(NoiseModel):
    """Negative binomial with mean ``mu`` and variance ``mu + mu^2 / phi``."""

    phi: float

    def __post_init__(self):
        if not self.phi > 0:
            raise ValueError(f"phi must be positive, got {self.phi!r}")

    def _p(self, mu: NDArray[np.float64]) -> NDArray[np.float64]:
        return self.phi / (self.phi + mu)

    def sample(self, expected: ArrayLike, rng: Generator) -> NDArray[np.int64]:
        mu = _clamp_expected(expected)
        return rng.negative_binomial(self.phi, self._p(mu)).astype(np.int64)

    def log_likelihood(self, observed: ArrayLike, expected: ArrayLike) -> float:
        mu = _clamp_expected(expected)
        return float(np.sum(nbinom.logpmf(observed, self.phi, self._p(mu))))


def select_noise_model(phi: float | Sequence[float] | None, model_type: int) -> NoiseModel:
    """Pick the report noise model for a run.

    Args:
        phi: Dispersion per report stream. A scalar is treated as a single
            stream.
        model_type: 0 for Poisson; ``k > 0`` for negative binomial with
            ``phi[k - 1]``.

    Raises:
        ValueError: If model_type is negative or phi has no usable entry.
    """
    if int(model_type) != model_type or model_type < 0:
        raise ValueError(f"model_type must be a non-negative integer, got {model_type!r}")
    if model_type == 0:
        return PoissonNoise()

    phis = np.atleast_1d(np.asarray(phi, dtype=np.float64)) if phi is not None else []
    if len(phis) < model_type:
        raise ValueError(
            f"model_type {model_type} needs at least {model_type} phi values, "
            f"got {len(phis)}"
        )
    selected = float(phis[int(model_type) - 1])
    if selected > PHI_POISSON_THRESHOLD:
        logger.info(
            "phi=%g exceeds %g, sampling reports from a Poisson distribution",
            selected,
            PHI_POISSON_THRESHOLD,
        )
        return PoissonNoise()
    return NegativeBinomialNoise(phi=selected)


def sample_reports(
    expected_reports: ArrayLike,
    phi: float | Sequence[float] | None,
    model_type: int,
    rng: Generator,
) -> NDArray[np.int64]:
    """Draw report counts around their expected values.

    Expected values are capped at ``MAX_EXPECTED_REPORTS`` before sampling.
    The draw depends only on ``rng``, so a seeded generator reproduces it.
    """
    return select_noise_model(phi, model_type).sample(expected_reports, rng)


def expected_reports(
    infections: ArrayLike, delay_pmf: ArrayLike, seeding_time: int = 0
) -> NDArray[np.float64]:
    """Expected reports per day after delaying infections by ``delay_pmf``.

    ``delay_pmf[i]`` is the probability of a report ``i`` days after
    infection. The seeding period is dropped from the result.
    """
    series = _as_trajectory(infections)
    seeding_time = _check_seeding_time(seeding_time, len(series))
    return trailing_convolution(series, delay_pmf, offset=0)[seeding_time:]
