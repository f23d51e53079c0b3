"""Derived quantities for posterior draws of the infection trajectory."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from numpy.random import Generator, SeedSequence, default_rng
from numpy.typing import NDArray

from rtcast.delays import DelayDistribution, combine_delays
from rtcast.growth import rt_to_growth
from rtcast.horizon import check_reported_cases
from rtcast.observation import expected_reports, select_noise_model
from rtcast.renewal import compute_rt

logger = logging.getLogger(__name__)

DEFAULT_QUANTILES = (
    0.01, 0.025, 0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4, 0.45, 0.5,
    0.55, 0.6, 0.65, 0.7, 0.75, 0.8, 0.85, 0.9, 0.95, 0.975, 0.99,
)  # fmt: skip

_DRAW_KEYS = ("infections", "gt_mean", "gt_sd")

VARIABLES = ("infections", "R", "growth_rate", "expected_reports", "reported_cases")


@dataclass
class Settings:
    seeding_time: int
    max_gt: int = 15
    max_delay: int = 15
    model_type: int = 1

    def __post_init__(self):
        for name in ("seeding_time", "model_type"):
            value = getattr(self, name)
            if int(value) != value or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
            setattr(self, name, int(value))
        for name in ("max_gt", "max_delay"):
            value = getattr(self, name)
            if int(value) != value or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")
            setattr(self, name, int(value))


@dataclass
class Draw:
    """One posterior draw.

    ``delays`` holds the (mean, sd) of each delay between infection and
    report, applied in order (e.g. incubation period then reporting lag).
    """

    infections: NDArray[np.float64]
    gt_mean: float
    gt_sd: float
    delays: list[tuple[float, float]] = field(default_factory=list)
    phi: float | list[float] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Draw:
        """Build a draw from a JSON-style mapping.

        Raises:
            ValueError: If a required key is missing or a delay is not a
                (mean, sd) pair.
        """
        if not isinstance(data, dict):
            raise ValueError(f"draw must be an object, got {type(data).__name__}")
        missing = [key for key in _DRAW_KEYS if key not in data]
        if missing:
            raise ValueError(f"draw is missing key(s): {', '.join(missing)}")

        delays = []
        for delay in data.get("delays", []):
            if isinstance(delay, dict) and {"mean", "sd"} <= delay.keys():
                delays.append((float(delay["mean"]), float(delay["sd"])))
            elif isinstance(delay, (list, tuple)) and len(delay) == 2:
                mean, sd = delay
                delays.append((float(mean), float(sd)))
            else:
                raise ValueError(f"delay must be a (mean, sd) pair, got {delay!r}")
        return cls(
            infections=np.asarray(data["infections"], dtype=np.float64),
            gt_mean=float(data["gt_mean"]),
            gt_sd=float(data["gt_sd"]),
            delays=delays,
            phi=data.get("phi"),
        )


@dataclass
class Estimates:
    samples: pd.DataFrame
    summarised: pd.DataFrame
    fit: Any = None
    args: dict[str, Any] = field(default_factory=dict)


def spawn_rngs(seed: int, n: int) -> list[Generator]:
    """Independent generators, one per draw, derived from a single seed."""
    return [default_rng(child) for child in SeedSequence(seed).spawn(n)]


def report_delay(draw: Draw, settings: Settings) -> NDArray[np.float64]:
    """Combined infection-to-report kernel; same-day reporting if no delays."""
    if not draw.delays:
        return np.ones(1)
    return combine_delays(
        *(DelayDistribution(mean, sd, settings.max_delay).pmf for mean, sd in draw.delays)
    )


def derive(draw: Draw, settings: Settings, rng: Generator) -> dict[str, NDArray]:
    """Rt, growth rate and reports for one draw, over the post-seeding days."""
    s = settings.seeding_time
    rt = compute_rt(draw.infections, s, draw.gt_mean, draw.gt_sd, settings.max_gt)
    expected = expected_reports(draw.infections, report_delay(draw, settings), s)
    noise = select_noise_model(draw.phi, settings.model_type)
    return {
        "infections": np.asarray(draw.infections, dtype=np.float64)[s:],
        "R": rt,
        "growth_rate": rt_to_growth(rt, draw.gt_mean, draw.gt_sd),
        "expected_reports": expected,
        "reported_cases": noise.sample(expected, rng),
    }


def process_draws(
    draws: Sequence[Draw],
    settings: Settings,
    dates: pd.DatetimeIndex,
    seed: int = 0,
) -> pd.DataFrame:
    """Long table of derived quantities with columns date, variable, sample, value.

    Each draw gets its own generator, so results do not depend on the
    order in which draws are processed.
    """
    if not draws:
        raise ValueError("At least one posterior draw is required")

    frames = []
    for sample, (draw, rng) in enumerate(zip(draws, spawn_rngs(seed, len(draws))), 1):
        for variable, values in derive(draw, settings, rng).items():
            if len(values) != len(dates):
                raise ValueError(
                    f"Draw {sample} gives {len(values)} days of {variable} "
                    f"but {len(dates)} dates were supplied"
                )
            frames.append(
                pd.DataFrame(
                    {
                        "date": dates,
                        "variable": variable,
                        "sample": sample,
                        "value": np.asarray(values, dtype=np.float64),
                    }
                )
            )
    logger.debug("Processed %d draws over %d days", len(draws), len(dates))
    return pd.concat(frames, ignore_index=True)


def summarise_samples(
    samples: pd.DataFrame,
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
    last_observed: pd.Timestamp | None = None,
) -> pd.DataFrame:
    """Per date and variable: mean, sd, median and the requested quantiles.

    Rows after ``last_observed`` are typed ``forecast``, the rest ``estimate``.
    """
    for q in quantiles:
        if not 0 < q < 1:
            raise ValueError(f"quantiles must lie in (0, 1), got {q!r}")

    grouped = samples.groupby(["date", "variable"], sort=True)["value"]
    summary = grouped.agg(["mean", "std", "median"]).rename(columns={"std": "sd"})
    for q in quantiles:
        summary[f"q{q:g}"] = grouped.quantile(q)
    summary = summary.reset_index()

    if last_observed is None:
        kind = "estimate"
    else:
        kind = np.where(summary["date"] > pd.Timestamp(last_observed), "forecast", "estimate")
    summary.insert(2, "type", kind)
    return summary


def estimate(
    draws: Sequence[Draw],
    reported_cases: pd.DataFrame,
    settings: Settings,
    *,
    horizon: int = 0,
    seed: int = 0,
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
    fit: Any = None,
) -> Estimates:
    """Samples and summaries of derived quantities for a set of draws.

    The first post-seeding model day is the first report date; each draw
    must cover the observed days plus ``horizon`` forecast days.

    Raises:
        ValueError: If the horizon is negative or a draw has the wrong
            number of days.
    """
    if horizon < 0:
        raise ValueError(f"horizon must be non-negative, got {horizon}")

    cases = check_reported_cases(reported_cases)
    first, last = cases["date"].min(), cases["date"].max()
    n_days = (last - first).days + 1 + horizon
    dates = pd.date_range(first, periods=n_days, freq="D")

    expected_length = settings.seeding_time + n_days
    for i, draw in enumerate(draws, 1):
        if len(draw.infections) != expected_length:
            raise ValueError(
                f"Draw {i} has {len(draw.infections)} days of infections; expected "
                f"{expected_length} ({settings.seeding_time} seeding + "
                f"{n_days - horizon} observed + {horizon} forecast)"
            )

    samples = process_draws(draws, settings, dates, seed=seed)
    return Estimates(
        samples=samples,
        summarised=summarise_samples(samples, quantiles, last_observed=last),
        fit=fit,
        args={
            "settings": asdict(settings),
            "horizon": horizon,
            "seed": seed,
            "quantiles": list(quantiles),
        },
    )
