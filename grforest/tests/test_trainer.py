# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import unittest
import numpy as np
import pytest
from grforest.commons import Data
from grforest.forest import (ForestOptions, ForestTrainer, RandomSampler, regression_trainer,
                             quantile_trainer, instrumental_trainer, ll_regression_trainer)
from grforest.forest._sampling import group_samples_by_cluster
from grforest.forest._trainer import _tree_ranges
from grforest.prediction import regression_predictor, stack_predictions
from grforest.relabeling import RegressionRelabelingStrategy
from grforest.tree import TreeOptions


def _options(num_trees=20, ci_group_size=2, sample_fraction=.5, mtry=2, min_node_size=5, **kwargs):
    return ForestOptions(num_trees, ci_group_size, sample_fraction, TreeOptions(mtry, min_node_size),
                         **kwargs)


def _step_data(n=500, seed=0):
    rs = np.random.RandomState(seed)
    X = rs.uniform(size=(n, 3))
    signal = 10 * (X[:, 0] > .5)
    y = signal + rs.normal(scale=.5, size=n)
    return Data.from_arrays(X, y), signal


class TestForestTrainer(unittest.TestCase):

    def test_independent_of_num_threads(self):
        data, _ = _step_data(n=200)
        forest_serial = regression_trainer().train(data, _options(random_seed=7, num_threads=1))
        forest_parallel = regression_trainer().train(data, _options(random_seed=7, num_threads=4))
        assert forest_serial.trees == forest_parallel.trees
        forest_other = regression_trainer().train(data, _options(random_seed=8, num_threads=4))
        assert forest_serial.trees != forest_other.trees

    def test_oob_accuracy(self):
        data, signal = _step_data()
        forest = regression_trainer().train(data, _options(num_trees=100, ci_group_size=1, random_seed=1))
        point, _ = stack_predictions(regression_predictor(num_threads=2).predict_oob(forest, data))
        mse = np.mean((point[:, 0] - signal) ** 2)
        assert mse < .1 * np.var(signal)

    def test_oob_error_on_linear_signal(self):
        rs = np.random.RandomState(2)
        X = rs.uniform(size=(500, 2))
        y = X[:, 0]
        data = Data.from_arrays(X, y)
        forest = regression_trainer().train(data, _options(num_trees=100, ci_group_size=1, random_seed=2))
        point, _ = stack_predictions(regression_predictor(num_threads=2).predict_oob(forest, data))
        assert np.mean((point[:, 0] - y) ** 2) < .05 * np.var(y)

    def test_ci_groups_share_a_half_sample(self):
        data, _ = _step_data(n=100)
        forest = regression_trainer().train(data, _options(num_trees=6, ci_group_size=2, random_seed=3))
        assert len(forest) == 6
        for tree in forest:
            assert tree.drawn_samples.shape[0] == 50
        # with a sample fraction of one half every tree of a group draws the whole half-sample
        np.testing.assert_array_equal(forest[0].drawn_samples, forest[1].drawn_samples)
        np.testing.assert_array_equal(forest[2].drawn_samples, forest[3].drawn_samples)
        assert not np.array_equal(forest[0].drawn_samples, forest[2].drawn_samples)

    def test_ci_group_subsamples(self):
        data, _ = _step_data(n=100)
        forest = regression_trainer().train(data, _options(num_trees=4, ci_group_size=2, sample_fraction=.2))
        for group in range(2):
            first, second = forest[2 * group], forest[2 * group + 1]
            assert first.drawn_samples.shape[0] == 20
            assert second.drawn_samples.shape[0] == 20
            assert len(set(first.drawn_samples.tolist()) | set(second.drawn_samples.tolist())) <= 50

    def test_clusters(self):
        data, _ = _step_data(n=120)
        clusters = np.repeat(np.arange(30), 4)
        forest = regression_trainer().train(data, _options(num_trees=4, ci_group_size=1, clusters=clusters,
                                                           samples_per_cluster=2, min_node_size=1))
        for tree in forest:
            counts = np.bincount(clusters[tree.drawn_samples], minlength=30)
            assert np.sum(counts > 0) == 15
            assert np.all(counts[counts > 0] == 2)

    def test_split_variables_respect_disallowed_columns(self):
        data, _ = _step_data(n=200)
        forest = regression_trainer().train(data, _options(num_trees=4))
        # the outcome column is never split on
        for tree in forest:
            assert np.all(tree.feature < 3)
        options = ForestOptions(4, 2, .5, TreeOptions(2, 5, disallowed_split_variables=[0]))
        forest = regression_trainer().train(data, options)
        for tree in forest:
            assert not np.any(tree.feature == 0)

    def test_trainer_errors(self):
        data, _ = _step_data(n=50)
        with pytest.raises(ValueError):
            regression_trainer().train(data, _options(mtry=4))
        with pytest.raises(ValueError):
            regression_trainer().train(data, ForestOptions(2, 1, .5, TreeOptions(1, 5, disallowed_split_variables=[9])))
        with pytest.raises(ValueError):
            regression_trainer().train(data, ForestOptions(2, 1, .5, TreeOptions(1, 5,
                                                                                 disallowed_split_variables=[0, 1, 2])))
        with pytest.raises(ValueError):
            regression_trainer().train(data, ForestOptions(2, 1, .01, TreeOptions(1, 5)))
        with pytest.raises(ValueError):
            ForestTrainer(RegressionRelabelingStrategy(), "unknown")

    def test_tree_ranges(self):
        n_jobs, bounds = _tree_ranges(10, 4)
        assert n_jobs == 4
        assert bounds == [0, 3, 6, 8, 10]
        # never more jobs than trees
        n_jobs, bounds = _tree_ranges(2, 8)
        assert n_jobs == 2
        assert bounds == [0, 1, 2]

    def test_other_trainers(self):
        rs = np.random.RandomState(0)
        n = 100
        X = rs.normal(size=(n, 2))
        T = rs.binomial(1, .5, size=n).astype(np.float64)
        y = X[:, 0] * T + rs.normal(size=n)
        data = Data.from_arrays(X, y, T=T, Z=T)
        for trainer in [quantile_trainer([.1, .9]), instrumental_trainer(), ll_regression_trainer(.1, False, [0, 1])]:
            forest = trainer.train(data, _options(num_trees=4))
            assert len(forest) == 4
        assert instrumental_trainer().train(data, _options(num_trees=2))[0].prediction_values.shape[1] == 6
        assert quantile_trainer([.5]).train(data, _options(num_trees=2))[0].prediction_values is None


class TestForestOptions(unittest.TestCase):

    def test_validation(self):
        tree_options = TreeOptions(1, 1)
        with pytest.raises(ValueError):
            ForestOptions(5, 2, .5, tree_options)
        with pytest.raises(ValueError):
            ForestOptions(4, 2, .6, tree_options)
        with pytest.raises(ValueError):
            ForestOptions(4, 1, 0., tree_options)
        with pytest.raises(ValueError):
            ForestOptions(4, 1, 1.5, tree_options)
        with pytest.raises(ValueError):
            ForestOptions(4, 1, .5, tree_options, random_seed=-1)
        with pytest.raises(ValueError):
            ForestOptions(4, 1, .5, tree_options, clusters=[.5, 1.5])
        with pytest.raises(TypeError):
            ForestOptions(4, 1, .5, {"mtry": 1})
        # a full sample is allowed without confidence intervals
        assert ForestOptions(4, 1, 1., tree_options).sample_fraction == 1.

    def test_num_threads_default(self):
        assert _options().num_threads == -1
        assert _options(num_threads=0).num_threads == -1
        assert _options(num_threads=3).num_threads == 3

    def test_dict_round_trip(self):
        options = _options(clusters=np.arange(10) % 3, samples_per_cluster=2)
        assert ForestOptions.from_dict(options.to_dict()) == options


class TestRandomSampler(unittest.TestCase):

    def test_subsample(self):
        drawn, rest = RandomSampler(0).subsample(np.arange(10), .35)
        assert drawn.shape[0] == 4
        np.testing.assert_array_equal(np.sort(np.concatenate([drawn, rest])), np.arange(10))

    def test_sample_clusters(self):
        clusters = RandomSampler(0).sample_clusters(10, .35)
        assert clusters.shape[0] == 3
        assert len(set(clusters.tolist())) == 3
        with pytest.raises(ValueError):
            RandomSampler(0).sample_clusters(10, .05)

    def test_group_samples_by_cluster(self):
        groups = group_samples_by_cluster(np.array([2, 0, 2, 1, 0]), 5)
        assert [g.tolist() for g in groups] == [[1, 4], [3], [0, 2]]
        assert [g.tolist() for g in group_samples_by_cluster(None, 3)] == [[0], [1], [2]]

    def test_sample_from_clusters_defaults_to_smallest_cluster(self):
        groups = group_samples_by_cluster(np.array([0, 0, 0, 1, 1]), 5)
        drawn = RandomSampler(0).sample_from_clusters([0, 1], groups)
        assert drawn.shape[0] == 4
        np.testing.assert_array_equal(drawn[-2:], [3, 4])
