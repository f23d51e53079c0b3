"""rtcast: Rt, growth rate and report forecasts from posterior infection draws."""

__version__ = "0.1.0"

from rtcast.delays import DelayDistribution, combine_delays, discretize_gamma
from rtcast.growth import doubling_time, growth_to_rt, rt_to_growth
from rtcast.horizon import latest_date, update_horizon
from rtcast.observation import (
    NegativeBinomialNoise,
    NoiseModel,
    PoissonNoise,
    expected_reports,
    sample_reports,
    select_noise_model,
)
from rtcast.output import nowcast
from rtcast.posterior import Draw, Estimates, Settings, estimate
from rtcast.renewal import compute_rt, infectiousness, propagate_infections

__all__ = [
    "DelayDistribution",
    "Draw",
    "Estimates",
    "NegativeBinomialNoise",
    "NoiseModel",
    "PoissonNoise",
    "Settings",
    "combine_delays",
    "compute_rt",
    "discretize_gamma",
    "doubling_time",
    "estimate",
    "expected_reports",
    "growth_to_rt",
    "infectiousness",
    "latest_date",
    "nowcast",
    "propagate_infections",
    "rt_to_growth",
    "sample_reports",
    "select_noise_model",
    "update_horizon",
]
