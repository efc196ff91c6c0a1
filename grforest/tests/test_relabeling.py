# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import unittest
import numpy as np
import pytest
from grforest.commons import Data, Observations
from grforest.relabeling import (RegressionRelabelingStrategy, QuantileRelabelingStrategy,
                                 InstrumentalRelabelingStrategy, LLRelabelingStrategy)


def _observations(X, y, T=None, Z=None, sample_weight=None):
    data = Data.from_arrays(X, y, T=T, Z=Z, sample_weight=sample_weight)
    return data, Observations.from_data(data)


class TestRelabeling(unittest.TestCase):

    def test_regression_returns_outcomes(self):
        y = np.array([3., 1., 2., 5.])
        _, observations = _observations(np.zeros((4, 1)), y)
        samples = np.array([3, 0, 2])
        np.testing.assert_array_equal(RegressionRelabelingStrategy().relabel(samples, observations), y[samples])
        assert RegressionRelabelingStrategy().relabel(np.array([1]), observations) is None

    def test_quantile_buckets(self):
        y = np.random.RandomState(123).permutation(100).astype(np.float64)
        _, observations = _observations(np.zeros((100, 1)), y)
        labels = QuantileRelabelingStrategy([0.1, 0.5, 0.9]).relabel(np.arange(100), observations)
        expected = np.zeros(100)
        expected[y >= 10] = 1
        expected[y >= 50] = 2
        expected[y >= 90] = 3
        np.testing.assert_array_equal(labels, expected)

    def test_quantile_constant_outcome(self):
        _, observations = _observations(np.zeros((10, 1)), np.ones(10))
        assert QuantileRelabelingStrategy([0.5]).relabel(np.arange(10), observations) is None

    def test_quantile_validation(self):
        for quantiles in [[], [0.], [1.], [0.5, 1.2], [np.nan]]:
            with pytest.raises(ValueError):
                QuantileRelabelingStrategy(quantiles)

    def test_instrumental_pseudo_outcomes(self):
        rs = np.random.RandomState(0)
        n = 50
        Z = rs.binomial(1, .5, size=n).astype(np.float64)
        T = Z + rs.normal(scale=.1, size=n)
        y = 2 * T + rs.normal(size=n)
        _, observations = _observations(np.zeros((n, 1)), y, T=T, Z=Z)
        samples = np.arange(n)
        labels = InstrumentalRelabelingStrategy().relabel(samples, observations)

        Zc, Tc, yc = Z - Z.mean(), T - T.mean(), y - y.mean()
        tau = np.sum(Zc * yc) / np.sum(Zc * Tc)
        np.testing.assert_allclose(labels, Zc * (yc - tau * Tc))
        # the moment condition holds exactly at the local estimate
        np.testing.assert_allclose(np.sum(labels), 0, atol=1e-8)

    def test_instrumental_reduced_form_weight(self):
        rs = np.random.RandomState(1)
        n = 30
        Z = rs.normal(size=n)
        T = Z + rs.normal(size=n)
        y = T + rs.normal(size=n)
        _, observations = _observations(np.zeros((n, 1)), y, T=T, Z=Z)
        labels = InstrumentalRelabelingStrategy(reduced_form_weight=1.).relabel(np.arange(n), observations)
        Zc, Tc, yc = Z - Z.mean(), T - T.mean(), y - y.mean()
        tau = np.sum(Zc * yc) / np.sum(Zc * Tc)
        np.testing.assert_allclose(labels, Tc * (yc - tau * Tc))
        with pytest.raises(ValueError):
            InstrumentalRelabelingStrategy(reduced_form_weight=1.5)

    def test_instrumental_without_variation(self):
        n = 20
        _, observations = _observations(np.zeros((n, 1)), np.arange(n, dtype=np.float64),
                                        T=np.arange(n, dtype=np.float64), Z=np.ones(n))
        assert InstrumentalRelabelingStrategy().relabel(np.arange(n), observations) is None

    def test_local_linear_residuals(self):
        rs = np.random.RandomState(2)
        n = 40
        X = rs.normal(size=(n, 3))
        y = 1 + 2 * X[:, 0] - X[:, 2] + rs.normal(scale=.1, size=n)
        data, observations = _observations(X, y)
        samples = np.arange(n)
        residuals = LLRelabelingStrategy(0., False, [0, 2]).relabel(samples, observations, data)
        design = np.column_stack([np.ones(n), X[:, [0, 2]]])
        coef = np.linalg.lstsq(design, y, rcond=None)[0]
        np.testing.assert_allclose(residuals, y - design @ coef, atol=1e-8)
        # residuals are orthogonal to the design
        np.testing.assert_allclose(design.T @ residuals, 0, atol=1e-8)

    def test_local_linear_needs_data(self):
        _, observations = _observations(np.zeros((5, 1)), np.arange(5.))
        with pytest.raises(ValueError):
            LLRelabelingStrategy(.1, False, [0]).relabel(np.arange(5), observations)
        with pytest.raises(ValueError):
            LLRelabelingStrategy(-1., False, [0])
