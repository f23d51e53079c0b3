"""Saving results and assembling the output of a nowcast run."""

from __future__ import annotations

import datetime as dt
import logging
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from rtcast.growth import doubling_time
from rtcast.horizon import check_reported_cases, latest_date, update_horizon
from rtcast.posterior import DEFAULT_QUANTILES, Draw, Estimates, Settings, estimate

logger = logging.getLogger(__name__)

MODEL_NAME = "gp_rt"


def _save(obj: Any, target_folder: str | Path, filename: str) -> None:
    path = Path(target_folder) / filename
    pd.to_pickle(obj, path)
    logger.debug("Saved %s", path)


def setup_target_folder(
    target_dir: str | Path | None, target_date: str | dt.date | pd.Timestamp
) -> tuple[Path | None, Path | None]:
    """Create ``<target_dir>/<target_date>`` and return it with ``<target_dir>/latest``."""
    if target_dir is None:
        return None, None
    root = Path(target_dir)
    target_folder = root / pd.Timestamp(target_date).strftime("%Y-%m-%d")
    target_folder.mkdir(parents=True, exist_ok=True)
    return target_folder, root / "latest"


def save_input(reported_cases: pd.DataFrame, target_folder: str | Path | None) -> None:
    """Save the reported cases and their latest positive date."""
    if target_folder is None:
        return
    _save(latest_date(reported_cases), target_folder, "latest_date.pkl")
    _save(reported_cases, target_folder, "reported_cases.pkl")


def save_estimates(
    estimates: Estimates,
    target_folder: str | Path | None = None,
    samples: bool = True,
    return_fit: bool = True,
) -> None:
    """Save samples, summaries and optionally the fit and its arguments."""
    if target_folder is None:
        return
    if samples:
        _save(estimates.samples, target_folder, "estimate_samples.pkl")
    _save(estimates.summarised, target_folder, "summarised_estimates.pkl")
    if return_fit:
        _save(estimates.fit, target_folder, "model_fit.pkl")
        _save(estimates.args, target_folder, "model_args.pkl")


def estimates_by_report_date(
    estimates: Estimates,
    target_folder: str | Path | None = None,
    samples: bool = True,
) -> dict[str, pd.DataFrame]:
    """Extract cases by date of report from a set of estimates.

    Returns:
        A dict with ``summarised`` and, when ``samples`` is true, ``samples``
        (columns date, sample, cases, type).
    """
    out: dict[str, pd.DataFrame] = {}
    if samples:
        reported = estimates.samples[estimates.samples["variable"] == "reported_cases"]
        out["samples"] = pd.DataFrame(
            {
                "date": reported["date"].to_numpy(),
                "sample": reported["sample"].to_numpy(),
                "cases": reported["value"].to_numpy(),
                "type": MODEL_NAME,
            }
        )
    summarised = estimates.summarised[
        estimates.summarised["variable"] == "reported_cases"
    ].drop(columns="variable")
    out["summarised"] = summarised.assign(type=MODEL_NAME).reset_index(drop=True)

    if target_folder is not None:
        if samples:
            _save(out["samples"], target_folder, "estimated_reported_cases_samples.pkl")
        _save(out["summarised"], target_folder, "summarised_estimated_reported_cases.pkl")
    return out


def copy_results_to_latest(
    target_folder: str | Path | None = None, latest_folder: str | Path | None = None
) -> None:
    """Replace ``latest_folder`` with a copy of ``target_folder``."""
    if target_folder is None:
        return
    if latest_folder is None:
        raise ValueError("latest_folder is required when target_folder is given")
    latest = Path(latest_folder)
    if latest.exists():
        shutil.rmtree(latest)
    latest.mkdir(parents=True)
    shutil.copytree(target_folder, latest, dirs_exist_ok=True)
    logger.info("Copied %s to %s", target_folder, latest)


def report_summary(summarised: pd.DataFrame, interval: float = 0.9) -> pd.DataFrame:
    """Median and central interval of key measures on the latest estimate date."""
    lower_col = f"q{(1 - interval) / 2:g}"
    upper_col = f"q{1 - (1 - interval) / 2:g}"
    missing = [c for c in (lower_col, upper_col) if c not in summarised.columns]
    if missing:
        raise ValueError(f"summarised estimates lack quantile column(s) {missing}")

    estimates = summarised[summarised["type"] == "estimate"]
    latest = estimates[estimates["date"] == estimates["date"].max()].set_index("variable")

    rows = []
    for variable, measure in [
        ("reported_cases", "New confirmed cases by report date"),
        ("R", "Effective reproduction no."),
        ("growth_rate", "Rate of growth"),
    ]:
        if variable in latest.index:
            row = latest.loc[variable]
            rows.append((measure, row["median"], row[lower_col], row[upper_col]))

    if "growth_rate" in latest.index:
        row = latest.loc["growth_rate"]
        # Doubling time decreases as growth increases, so the bounds swap.
        rows.append(
            (
                "Doubling/halving time (days)",
                float(doubling_time(row["median"])),
                float(doubling_time(row[upper_col])),
                float(doubling_time(row[lower_col])),
            )
        )

    return pd.DataFrame(rows, columns=["measure", "median", "lower", "upper"])


def construct_output(
    estimates: Estimates,
    estimated_reported_cases: dict[str, pd.DataFrame],
    plots: dict[str, Any] | None = None,
    summary: pd.DataFrame | None = None,
    samples: bool = True,
) -> dict[str, Any]:
    """Combine the pieces of a run into a single result dict."""
    out: dict[str, Any] = {
        "estimates": {
            "samples": estimates.samples,
            "summarised": estimates.summarised,
            "fit": estimates.fit,
            "args": estimates.args,
        },
        "estimated_reported_cases": estimated_reported_cases,
        "summary": summary,
    }
    if not samples:
        del out["estimates"]["samples"]
    if plots is not None:
        out["plots"] = plots
    return out


def nowcast(
    reported_cases: pd.DataFrame,
    draws: Sequence[Draw],
    settings: Settings,
    *,
    horizon: int = 7,
    target_date: str | dt.date | pd.Timestamp | None = None,
    target_dir: str | Path | None = None,
    samples: bool = True,
    return_fit: bool = True,
    seed: int = 0,
    quantiles: Sequence[float] = DEFAULT_QUANTILES,
    fit: Any = None,
) -> dict[str, Any]:
    """Derive, save and assemble estimates for one set of posterior draws.

    The horizon is extended by the gap between ``target_date`` and the last
    report so the forecast always ends ``horizon`` days after the target.
    Draws must cover the adjusted horizon.
    """
    cases = check_reported_cases(reported_cases)
    if target_date is None:
        target_date = cases["date"].max()
    target_date = pd.Timestamp(target_date)

    adjusted = update_horizon(horizon, target_date, cases)
    if adjusted != horizon:
        logger.info("Forecast horizon adjusted from %d to %d days", horizon, adjusted)
    if adjusted < 0:
        raise ValueError(
            f"target_date {target_date.date()} is more than {horizon} days before "
            f"the last report ({cases['date'].max().date()})"
        )

    target_folder, latest_folder = setup_target_folder(target_dir, target_date)
    save_input(cases, target_folder)

    estimates = estimate(
        draws,
        cases,
        settings,
        horizon=adjusted,
        seed=seed,
        quantiles=quantiles,
        fit=fit,
    )
    save_estimates(estimates, target_folder, samples=samples, return_fit=return_fit)

    by_report = estimates_by_report_date(estimates, target_folder, samples=samples)
    summary = report_summary(estimates.summarised) if _has_interval(quantiles) else None
    if target_folder is not None and summary is not None:
        _save(summary, target_folder, "summary.pkl")

    copy_results_to_latest(target_folder, latest_folder)
    return construct_output(estimates, by_report, summary=summary, samples=samples)


def _has_interval(quantiles: Sequence[float]) -> bool:
    return bool(np.isclose(quantiles, 0.05).any() and np.isclose(quantiles, 0.95).any())
