from __future__ import annotations

import math

import numpy as np
import pytest

from rtcast.growth import doubling_time, growth_to_rt, rt_to_growth


class TestRtToGrowth:
    @pytest.mark.parametrize("gt_mean,gt_sd", [(3.0, 2.0), (6.5, 4.0), (1.0, 0.1), (5.0, 0.0)])
    def test_zero_growth_at_rt_one(self, gt_mean, gt_sd):
        growth = rt_to_growth(np.ones(4), gt_mean, gt_sd)
        np.testing.assert_allclose(growth, 0.0, atol=1e-12)

    def test_closed_form(self):
        k = (2.0 / 3.0) ** 2
        expected = (1.5**k - 1) / (k * 3.0)
        assert rt_to_growth([1.5], 3.0, 2.0)[0] == pytest.approx(expected)

    def test_sign_follows_rt(self):
        growth = rt_to_growth([0.5, 1.0, 2.0], 4.0, 2.0)
        assert growth[0] < 0 < growth[2]

    def test_exponential_distribution_case(self):
        # sd == mean gives k == 1: r = (R - 1) / mean
        growth = rt_to_growth([2.0], 5.0, 5.0)
        assert growth[0] == pytest.approx(0.2)

    def test_zero_sd_uses_limit(self):
        growth = rt_to_growth([2.0], 4.0, 0.0)
        assert growth[0] == pytest.approx(math.log(2.0) / 4.0)

    def test_small_sd_approaches_limit(self):
        assert rt_to_growth([2.0], 4.0, 1e-4)[0] == pytest.approx(
            math.log(2.0) / 4.0, rel=1e-6
        )

    @pytest.mark.parametrize("gt_mean,gt_sd", [(0.0, 1.0), (-2.0, 1.0), (3.0, -1.0)])
    def test_rejects_invalid_generation_time(self, gt_mean, gt_sd):
        with pytest.raises(ValueError):
            rt_to_growth([1.2], gt_mean, gt_sd)


class TestGrowthToRt:
    @pytest.mark.parametrize("gt_sd", [0.0, 1.5, 3.0])
    def test_inverse(self, gt_sd):
        rt = np.array([0.6, 0.95, 1.0, 1.3, 2.4])
        growth = rt_to_growth(rt, 3.0, gt_sd)
        np.testing.assert_allclose(growth_to_rt(growth, 3.0, gt_sd), rt)


class TestDoublingTime:
    def test_doubling(self):
        assert float(doubling_time(math.log(2) / 7)) == pytest.approx(7.0)

    def test_halving_is_negative(self):
        assert float(doubling_time(-0.1)) < 0

    def test_zero_growth_is_infinite(self):
        assert np.isinf(doubling_time(0.0))
