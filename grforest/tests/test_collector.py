# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import unittest
import warnings
import numpy as np
import pytest
from grforest.commons import Data
from grforest.forest import ForestOptions, regression_trainer, quantile_trainer
from grforest.prediction import (PredictionCollector, QueryCoverageError, Prediction, stack_predictions,
                                 regression_predictor, quantile_predictor)
from grforest.prediction._collector import weights_to_arrays
from grforest.tree import TreeOptions


def _forest(n=200, num_trees=20, ci_group_size=2, sample_fraction=.5, seed=0):
    rs = np.random.RandomState(seed)
    X = rs.normal(size=(n, 2))
    y = X[:, 0] + rs.normal(scale=.1, size=n)
    data = Data.from_arrays(X, y)
    options = ForestOptions(num_trees, ci_group_size, sample_fraction, TreeOptions(2, 5), random_seed=seed)
    return regression_trainer().train(data, options), data


class TestPredictionCollector(unittest.TestCase):

    def test_weights_sum_to_one(self):
        forest, data = _forest()
        collector = PredictionCollector()
        X_test = np.random.RandomState(1).normal(size=(5, 2))
        leaf_nodes = collector.leaf_nodes_by_tree(forest, X_test)
        assert leaf_nodes.shape == (5, len(forest))
        valid = collector.trees_by_sample(forest, 5, False)
        for row in range(5):
            weights = collector.compute_weights(row, forest, leaf_nodes, valid)
            assert all(w > 0 for w in weights.values())
            np.testing.assert_allclose(sum(weights.values()), 1.)
            samples, values = weights_to_arrays(weights)
            assert np.all(np.diff(samples) > 0)
            np.testing.assert_allclose(np.sum(values), 1.)

    def test_weights_reproduce_optimized_prediction(self):
        forest, data = _forest()
        X_test = np.random.RandomState(2).normal(size=(3, 2))
        collector = PredictionCollector()
        leaf_nodes = collector.leaf_nodes_by_tree(forest, X_test)
        valid = collector.trees_by_sample(forest, 3, False)
        point, _ = stack_predictions(regression_predictor(1).predict(forest, data, Data(X_test)))
        for row in range(3):
            samples, weights = weights_to_arrays(collector.compute_weights(row, forest, leaf_nodes, valid))
            np.testing.assert_allclose(point[row, 0], np.dot(weights, data.get_outcomes(samples)))

    def test_oob_excludes_drawn_trees(self):
        forest, data = _forest()
        valid = PredictionCollector().trees_by_sample(forest, data.num_rows, True)
        for t, tree in enumerate(forest):
            assert not np.any(valid[tree.drawn_samples, t])
            assert np.sum(valid[:, t]) == data.num_rows - tree.drawn_samples.shape[0]

    def test_full_sample_has_no_oob_trees(self):
        forest, data = _forest(num_trees=4, ci_group_size=1, sample_fraction=1.)
        collector = PredictionCollector()
        leaf_nodes = collector.leaf_nodes_by_tree(forest, data.matrix)
        valid = collector.trees_by_sample(forest, data.num_rows, True)
        with pytest.raises(QueryCoverageError):
            collector.compute_weights(0, forest, leaf_nodes, valid)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            predictions = regression_predictor(1).predict_oob(forest, data)
        assert len(predictions) == data.num_rows
        assert all(p.failed for p in predictions)
        assert isinstance(predictions[0].error, QueryCoverageError)
        assert np.all(np.isnan(stack_predictions(predictions)[0]))


class TestForestPredictor(unittest.TestCase):

    def test_independent_of_num_threads(self):
        forest, data = _forest()
        X_test = Data(np.random.RandomState(3).normal(size=(17, 2)))
        serial = stack_predictions(regression_predictor(1).predict(forest, data, X_test, estimate_variance=True))
        parallel = stack_predictions(regression_predictor(4).predict(forest, data, X_test, estimate_variance=True))
        np.testing.assert_array_equal(serial[0], parallel[0])
        np.testing.assert_array_equal(serial[1], parallel[1])
        assert np.all(serial[1] >= 0)

    def test_variance_needs_ci_groups(self):
        forest, data = _forest(num_trees=10, ci_group_size=1)
        with pytest.warns(UserWarning):
            predictions = regression_predictor(1).predict(forest, data, Data(np.zeros((2, 2))),
                                                          estimate_variance=True)
        assert predictions[0].variance_estimates is None
        assert stack_predictions(predictions)[1] is None

    def test_input_checks(self):
        forest, data = _forest()
        with pytest.raises(ValueError):
            regression_predictor(1).predict(forest, Data(data.matrix[:10], outcome_index=2), Data(np.zeros((2, 2))))
        if forest.num_split_features == 2:
            with pytest.raises(ValueError):
                regression_predictor(1).predict(forest, data, Data(np.zeros((2, 1))))
        quantile_forest = quantile_trainer([.5]).train(data, forest.options)
        with pytest.raises(ValueError):
            # leaf summaries are only precomputed for the regression strategy
            regression_predictor(1).predict(quantile_forest, data, Data(np.zeros((2, 2))))
        with pytest.raises(ValueError):
            quantile_predictor(1, [.5]).predict(quantile_forest, data, Data(np.zeros((2, 2))),
                                                estimate_variance=True)
        assert regression_predictor(1).predict(forest, data, Data(np.zeros((0, 2)))) == []

    def test_quantile_predictions(self):
        rs = np.random.RandomState(4)
        n = 300
        X = rs.uniform(size=(n, 1))
        y = rs.normal(size=n) + 5 * (X[:, 0] > .5)
        data = Data.from_arrays(X, y)
        options = ForestOptions(20, 1, .5, TreeOptions(1, 5))
        forest = quantile_trainer([.1, .5, .9]).train(data, options)
        predictions = quantile_predictor(1, [.1, .5, .9]).predict(forest, data, Data(np.array([[.25], [.75]])))
        point, variance = stack_predictions(predictions)
        assert point.shape == (2, 3)
        assert variance is None
        assert np.all(np.diff(point, axis=1) >= 0)
        assert point[1, 1] > point[0, 1] + 3

    def test_zero_weight_rows_fail(self):
        rs = np.random.RandomState(5)
        X = rs.normal(size=(60, 2))
        data = Data.from_arrays(X, X[:, 0], sample_weight=np.zeros(60))
        forest = regression_trainer().train(data, ForestOptions(4, 2, .5, TreeOptions(2, 5), random_seed=5))
        predictions = regression_predictor(1).predict(forest, data, Data(X[:3]), estimate_variance=True)
        for prediction in predictions:
            assert prediction.failed
            assert isinstance(prediction.error, QueryCoverageError)
            assert np.all(np.isnan(prediction.predictions))
            assert np.all(np.isnan(prediction.variance_estimates))

    def test_prediction_repr(self):
        prediction = Prediction(np.array([1.]))
        assert not prediction.failed
        assert "Prediction(" in repr(prediction)
