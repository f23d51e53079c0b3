from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from rtcast.output import (
    construct_output,
    copy_results_to_latest,
    estimates_by_report_date,
    nowcast,
    report_summary,
    save_estimates,
    save_input,
    setup_target_folder,
)
from rtcast.posterior import Draw, Settings, estimate

_SETTINGS = Settings(seeding_time=5, max_gt=5, max_delay=5, model_type=1)


def _cases() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "date": pd.date_range("2020-04-01", periods=5, freq="D"),
            "confirm": [12, 9, 15, 11, 0],
        }
    )


def _draws(n_days: int, n: int = 4) -> list[Draw]:
    rng = np.random.default_rng(0)
    return [
        Draw(
            infections=100 * np.exp(0.02 * np.arange(n_days)) * rng.uniform(0.9, 1.1),
            gt_mean=3.0,
            gt_sd=2.0,
            delays=[(2.0, 1.0)],
            phi=[15.0],
        )
        for _ in range(n)
    ]


@pytest.fixture
def estimates():
    return estimate(_draws(12), _cases(), _SETTINGS, horizon=2, seed=1, fit={"chains": 4})


class TestSetupTargetFolder:
    def test_creates_dated_folder(self, tmp_path):
        target, latest = setup_target_folder(tmp_path, "2020-04-05")
        assert target == tmp_path / "2020-04-05"
        assert target.is_dir()
        assert latest == tmp_path / "latest"
        assert not latest.exists()

    def test_no_target(self):
        assert setup_target_folder(None, "2020-04-05") == (None, None)


class TestSaveInput:
    def test_saves_cases_and_latest_date(self, tmp_path):
        save_input(_cases(), tmp_path)
        assert pd.read_pickle(tmp_path / "latest_date.pkl") == pd.Timestamp("2020-04-04")
        pd.testing.assert_frame_equal(pd.read_pickle(tmp_path / "reported_cases.pkl"), _cases())

    def test_noop_without_folder(self, tmp_path):
        save_input(_cases(), None)
        assert list(tmp_path.iterdir()) == []


class TestSaveEstimates:
    def test_saves_all(self, tmp_path, estimates):
        save_estimates(estimates, tmp_path)
        names = {p.name for p in tmp_path.iterdir()}
        assert names == {
            "estimate_samples.pkl",
            "summarised_estimates.pkl",
            "model_fit.pkl",
            "model_args.pkl",
        }
        assert pd.read_pickle(tmp_path / "model_fit.pkl") == {"chains": 4}

    def test_without_samples_or_fit(self, tmp_path, estimates):
        save_estimates(estimates, tmp_path, samples=False, return_fit=False)
        assert {p.name for p in tmp_path.iterdir()} == {"summarised_estimates.pkl"}


class TestEstimatesByReportDate:
    def test_extracts_reported_cases(self, estimates):
        out = estimates_by_report_date(estimates)
        assert list(out["samples"].columns) == ["date", "sample", "cases", "type"]
        assert len(out["samples"]) == 4 * 7
        assert set(out["samples"]["type"]) == {"gp_rt"}
        assert "variable" not in out["summarised"].columns
        assert len(out["summarised"]) == 7
        assert set(out["summarised"]["type"]) == {"gp_rt"}

    def test_saves(self, tmp_path, estimates):
        estimates_by_report_date(estimates, tmp_path)
        assert (tmp_path / "estimated_reported_cases_samples.pkl").exists()
        assert (tmp_path / "summarised_estimated_reported_cases.pkl").exists()

    def test_without_samples(self, tmp_path, estimates):
        out = estimates_by_report_date(estimates, tmp_path, samples=False)
        assert "samples" not in out
        assert not (tmp_path / "estimated_reported_cases_samples.pkl").exists()


class TestCopyResultsToLatest:
    def test_replaces_latest(self, tmp_path):
        target = tmp_path / "2020-04-05"
        (target / "nested").mkdir(parents=True)
        (target / "a.pkl").write_bytes(b"new")
        (target / "nested" / "b.pkl").write_bytes(b"deep")
        latest = tmp_path / "latest"
        latest.mkdir()
        (latest / "stale.pkl").write_bytes(b"old")

        copy_results_to_latest(target, latest)

        assert {p.name for p in latest.iterdir()} == {"a.pkl", "nested"}
        assert (latest / "nested" / "b.pkl").read_bytes() == b"deep"

    def test_noop_without_target(self, tmp_path):
        copy_results_to_latest(None, tmp_path / "latest")
        assert not (tmp_path / "latest").exists()

    def test_requires_latest_folder(self, tmp_path):
        with pytest.raises(ValueError):
            copy_results_to_latest(tmp_path, None)


class TestReportSummary:
    def test_measures(self, estimates):
        summary = report_summary(estimates.summarised)
        assert list(summary.columns) == ["measure", "median", "lower", "upper"]
        assert len(summary) == 4
        r = summary.set_index("measure").loc["Effective reproduction no."]
        assert r["lower"] <= r["median"] <= r["upper"]

    def test_uses_latest_estimate_date(self, estimates):
        summarised = estimates.summarised
        latest = summarised[summarised["type"] == "estimate"]["date"].max()
        expected = summarised[(summarised["date"] == latest) & (summarised["variable"] == "R")]
        summary = report_summary(summarised).set_index("measure")
        assert summary.loc["Effective reproduction no.", "median"] == pytest.approx(
            expected["median"].iloc[0]
        )

    def test_doubling_time(self, estimates):
        summary = report_summary(estimates.summarised).set_index("measure")
        growth = summary.loc["Rate of growth", "median"]
        assert summary.loc["Doubling/halving time (days)", "median"] == pytest.approx(
            math.log(2) / growth
        )

    def test_missing_quantiles(self, estimates):
        summarised = estimates.summarised.drop(columns=["q0.05"])
        with pytest.raises(ValueError, match="q0.05"):
            report_summary(summarised)


class TestConstructOutput:
    def test_with_samples(self, estimates):
        out = construct_output(estimates, {"summarised": pd.DataFrame()}, summary=None)
        assert out["estimates"]["samples"] is estimates.samples
        assert "plots" not in out

    def test_without_samples(self, estimates):
        out = construct_output(estimates, {}, plots={"R": object()}, samples=False)
        assert "samples" not in out["estimates"]
        assert "R" in out["plots"]


class TestNowcast:
    def test_full_run(self, tmp_path):
        # Target is two days after the last report, so the horizon grows to 9
        result = nowcast(
            _cases(),
            _draws(5 + 5 + 9),
            _SETTINGS,
            horizon=7,
            target_date="2020-04-07",
            target_dir=tmp_path,
            seed=4,
        )
        assert result["estimates"]["args"]["horizon"] == 9
        assert result["summary"] is not None
        dated = tmp_path / "2020-04-07"
        latest = tmp_path / "latest"
        assert (dated / "summarised_estimates.pkl").exists()
        assert (dated / "summary.pkl").exists()
        assert {p.name for p in dated.iterdir()} == {p.name for p in latest.iterdir()}

    def test_defaults_target_to_last_report(self):
        result = nowcast(_cases(), _draws(5 + 5 + 7), _SETTINGS, horizon=7)
        assert result["estimates"]["args"]["horizon"] == 7

    def test_no_forecast(self):
        result = nowcast(_cases(), _draws(10), _SETTINGS, horizon=0, samples=False)
        assert "samples" not in result["estimates"]
        assert set(result["estimates"]["summarised"]["type"]) == {"estimate"}

    def test_stale_target_rejected(self):
        with pytest.raises(ValueError, match="before"):
            nowcast(_cases(), _draws(10), _SETTINGS, horizon=1, target_date="2020-04-01")

    def test_summary_skipped_without_interval_quantiles(self):
        result = nowcast(_cases(), _draws(10), _SETTINGS, horizon=0, quantiles=(0.5,))
        assert result["summary"] is None
