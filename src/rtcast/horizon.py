"""Reported case tables and the forecast horizon."""

from __future__ import annotations

import datetime as dt

import pandas as pd

REQUIRED_COLUMNS = ("date", "confirm")


def check_reported_cases(reported_cases: pd.DataFrame) -> pd.DataFrame:
    """Validate a reported cases table and return it sorted by date."""
    missing = [c for c in REQUIRED_COLUMNS if c not in reported_cases.columns]
    if missing:
        raise ValueError(f"reported_cases is missing column(s): {', '.join(missing)}")
    if reported_cases.empty:
        raise ValueError("reported_cases has no rows")
    cases = reported_cases.copy()
    cases["date"] = pd.to_datetime(cases["date"])
    return cases.sort_values("date", ignore_index=True)


def latest_date(reported_cases: pd.DataFrame) -> pd.Timestamp:
    """Latest date with a positive confirmed count."""
    cases = check_reported_cases(reported_cases)
    positive = cases[cases["confirm"] > 0]
    if positive.empty:
        raise ValueError("reported_cases has no positive confirmed counts")
    return positive["date"].max()


def update_horizon(
    horizon: int,
    target_date: str | dt.date | pd.Timestamp,
    reported_cases: pd.DataFrame,
) -> int:
    """Stretch the horizon so forecasts reach ``horizon`` days past ``target_date``.

    A horizon of 0 means no forecast and is returned unchanged. A target
    date before the last report shrinks the horizon, possibly below zero;
    callers are expected to check.
    """
    if horizon == 0:
        return horizon
    cases = check_reported_cases(reported_cases)
    gap = pd.Timestamp(target_date).normalize() - cases["date"].max().normalize()
    return int(horizon + gap.days)
