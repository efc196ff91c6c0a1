# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import unittest
import numpy as np
import pytest
from grforest.commons import Data, Observations
from grforest.prediction import RegressionPredictionStrategy
from grforest.relabeling import RegressionRelabelingStrategy, QuantileRelabelingStrategy
from grforest.tree import (Tree, TreeOptions, TreeTrainer, TREE_LEAF, TREE_UNDEFINED,
                           RegressionSplittingRule, ProbabilitySplittingRule, InstrumentalSplittingRule)
from grforest.tree._trainer import _prune_empty_leaves


def _hand_built_tree(X, samples):
    return Tree.from_node_arrays([1, TREE_LEAF, 3, TREE_LEAF, TREE_LEAF],
                                 [2, TREE_LEAF, 4, TREE_LEAF, TREE_LEAF],
                                 [0, TREE_UNDEFINED, 1, TREE_UNDEFINED, TREE_UNDEFINED],
                                 [.5, TREE_UNDEFINED, 0., TREE_UNDEFINED, TREE_UNDEFINED],
                                 X, samples, samples, samples)


class TestSplittingRules(unittest.TestCase):

    def test_step_function(self):
        n = 20
        X = np.column_stack([np.arange(n) % 2, np.linspace(0, 1, n)]).astype(np.float64)
        y = (X[:, 1] > .5).astype(np.float64)
        data = Data.from_arrays(X, y)
        observations = Observations.from_data(data)
        samples = np.arange(n)
        split = RegressionSplittingRule().find_best_split(data, samples, y, np.array([0, 1]), observations)
        assert split == (1, X[9, 1])

    def test_tie_picks_lowest_variable(self):
        rs = np.random.RandomState(0)
        x = rs.normal(size=30)
        X = np.column_stack([x, x])
        y = x + rs.normal(scale=.1, size=30)
        data = Data.from_arrays(X, y)
        observations = Observations.from_data(data)
        split = RegressionSplittingRule().find_best_split(data, np.arange(30), y, np.array([1, 0]), observations)
        assert split is not None
        assert split[0] == 0

    def test_constant_response_does_not_split(self):
        X = np.random.RandomState(0).normal(size=(20, 2))
        y = np.full(20, 3.)
        data = Data.from_arrays(X, y)
        observations = Observations.from_data(data)
        assert RegressionSplittingRule().find_best_split(data, np.arange(20), y, np.array([0, 1]),
                                                         observations) is None

    def test_min_child_size(self):
        n = 20
        X = np.arange(n, dtype=np.float64).reshape(-1, 1)
        y = np.zeros(n)
        y[-1] = 10.
        data = Data.from_arrays(X, y)
        observations = Observations.from_data(data)
        # the best unconstrained split isolates the last sample; alpha forces at least 5 per child
        split = RegressionSplittingRule(alpha=.25).find_best_split(data, np.arange(n), y, np.array([0]),
                                                                   observations)
        assert split == (0, 14.)

    def test_probability_rule(self):
        n = 40
        X = np.column_stack([np.arange(n) % 3, np.arange(n)]).astype(np.float64)
        y = np.arange(n, dtype=np.float64)
        data = Data.from_arrays(X, y)
        observations = Observations.from_data(data)
        labels = QuantileRelabelingStrategy([.5]).relabel(np.arange(n), observations)
        split = ProbabilitySplittingRule().find_best_split(data, np.arange(n), labels, np.array([0, 1]),
                                                           observations)
        assert split == (1, 19.)

    def test_instrumental_stabilized_splits(self):
        n = 20
        X = np.arange(n, dtype=np.float64).reshape(-1, 1)
        Z = (np.arange(n) >= 10).astype(np.float64)
        responses = Z.copy()
        data = Data.from_arrays(X, np.zeros(n), T=Z, Z=Z)
        observations = Observations.from_data(data)
        # without the constraint the split separates the instrument perfectly
        assert InstrumentalSplittingRule().find_best_split(data, np.arange(n), responses, np.array([0]),
                                                           observations) == (0, 9.)
        # with it, every child must keep instrument values on both sides of the mean
        assert InstrumentalSplittingRule(stabilize_splits=True).find_best_split(
            data, np.arange(n), responses, np.array([0]), observations) is None


class TestTree(unittest.TestCase):

    def test_apply(self):
        X = np.array([[0., 0.], [1., -1.], [1., 1.], [.5, 5.], [.6, 0.]])
        tree = _hand_built_tree(X, np.arange(5))
        np.testing.assert_array_equal(tree.apply(X), [1, 3, 4, 1, 3])
        np.testing.assert_array_equal(tree.get_leaf_samples(3), [1, 4])
        np.testing.assert_array_equal(tree.get_leaf_samples(0), [])
        np.testing.assert_array_equal(tree.leaves, [1, 3, 4])
        np.testing.assert_array_equal(tree.depth, [0, 1, 1, 2, 2])
        assert tree.node_count == 5
        assert tree.n_leaves == 3
        assert tree.max_depth == 2
        assert tree.is_leaf(1) and not tree.is_leaf(2)
        np.testing.assert_array_equal(tree.leaf_sizes, [0, 2, 0, 2, 1])

    def test_nan_goes_right(self):
        X = np.array([[0., 0.], [1., -1.]])
        tree = _hand_built_tree(X, np.arange(2))
        np.testing.assert_array_equal(tree.apply(np.array([[np.nan, np.nan]])), [4])

    def test_equality_and_validation(self):
        X = np.array([[0., 0.], [1., -1.], [1., 1.]])
        assert _hand_built_tree(X, np.arange(3)) == _hand_built_tree(X, np.arange(3))
        assert _hand_built_tree(X, np.arange(3)) != _hand_built_tree(X, np.arange(2))
        with pytest.raises(ValueError):
            Tree([TREE_LEAF], [TREE_LEAF, TREE_LEAF], [TREE_UNDEFINED], [TREE_UNDEFINED],
                 [], [0, 0], [], [0, 0], [])
        with pytest.raises(ValueError):
            Tree([TREE_LEAF], [TREE_LEAF], [TREE_UNDEFINED], [TREE_UNDEFINED],
                 [0], [0, 0], [], [0, 0], [0])

    def test_read_only(self):
        tree = _hand_built_tree(np.zeros((2, 2)), np.arange(2))
        with pytest.raises(ValueError):
            tree.threshold[0] = 1.


class TestTreeTrainer(unittest.TestCase):

    def _train(self, honesty=True, prune=True, seed=0):
        rs = np.random.RandomState(seed)
        n = 200
        X = rs.normal(size=(n, 3))
        y = X[:, 0] + (X[:, 1] > 0) + rs.normal(scale=.5, size=n)
        data = Data.from_arrays(X, y)
        observations = Observations.from_data(data)
        samples = np.sort(rs.choice(n, 100, replace=False))
        options = TreeOptions(2, 3, honesty=honesty, honesty_prune_leaves=prune)
        trainer = TreeTrainer(RegressionRelabelingStrategy(), RegressionSplittingRule(),
                              RegressionPredictionStrategy())
        return trainer.train(data, observations, samples, options, seed, np.array([0, 1, 2])), samples

    def test_honesty_halves_are_disjoint(self):
        tree, samples = self._train()
        estimation = set(tree.leaf_samples.tolist())
        selection = set(tree.split_samples.tolist())
        assert not estimation & selection
        assert estimation | selection == set(samples.tolist())
        assert len(selection) == 50
        np.testing.assert_array_equal(tree.drawn_samples, samples)

    def test_no_empty_leaves_after_pruning(self):
        for seed in range(5):
            tree, _ = self._train(seed=seed)
            assert tree.node_count > 1
            assert np.all(tree.leaf_sizes[tree.leaves] > 0)
            # children always have larger ids than their parents
            internal = np.flatnonzero(tree.children_left != TREE_LEAF)
            assert np.all(tree.children_left[internal] > internal)
            assert np.all(tree.children_right[internal] > internal)

    def test_without_honesty(self):
        tree, samples = self._train(honesty=False)
        np.testing.assert_array_equal(np.sort(tree.leaf_samples), samples)
        np.testing.assert_array_equal(np.sort(tree.split_samples), samples)

    def test_prediction_values(self):
        tree, _ = self._train()
        assert tree.prediction_values.shape == (tree.node_count, 2)
        internal = np.flatnonzero(tree.children_left != TREE_LEAF)
        assert np.all(np.isnan(tree.prediction_values[internal]))
        np.testing.assert_allclose(tree.prediction_values[tree.leaves, 1], 1.)

    def test_deterministic(self):
        assert self._train(seed=3)[0] == self._train(seed=3)[0]

    def test_prune_collapses_empty_leaves(self):
        assert _prune_empty_leaves([1, TREE_LEAF, TREE_LEAF], [2, TREE_LEAF, TREE_LEAF],
                                   [0, TREE_UNDEFINED, TREE_UNDEFINED], [.5, TREE_UNDEFINED, TREE_UNDEFINED],
                                   [0, 3, 0]) == ([TREE_LEAF], [TREE_LEAF], [TREE_UNDEFINED], [TREE_UNDEFINED])
        # an empty left leaf is replaced by the right subtree
        pruned = _prune_empty_leaves([1, TREE_LEAF, 3, TREE_LEAF, TREE_LEAF],
                                     [2, TREE_LEAF, 4, TREE_LEAF, TREE_LEAF],
                                     [0, TREE_UNDEFINED, 1, TREE_UNDEFINED, TREE_UNDEFINED],
                                     [.5, TREE_UNDEFINED, 0., TREE_UNDEFINED, TREE_UNDEFINED],
                                     [0, 0, 0, 2, 2])
        assert pruned == ([1, TREE_LEAF, TREE_LEAF], [2, TREE_LEAF, TREE_LEAF],
                          [1, TREE_UNDEFINED, TREE_UNDEFINED], [0., TREE_UNDEFINED, TREE_UNDEFINED])


class TestTreeOptions(unittest.TestCase):

    def test_validation(self):
        for kwargs in [dict(mtry=0, min_node_size=1), dict(mtry=1, min_node_size=0),
                       dict(mtry=1.5, min_node_size=1), dict(mtry=1, min_node_size=1, honesty_fraction=1.),
                       dict(mtry=1, min_node_size=1, alpha=.3), dict(mtry=1, min_node_size=1, imbalance_penalty=-1),
                       dict(mtry=1, min_node_size=1, disallowed_split_variables=[-1])]:
            with pytest.raises(ValueError):
                TreeOptions(**kwargs)

    def test_dict_round_trip(self):
        options = TreeOptions(3, 5, disallowed_split_variables=[4], honesty_fraction=.7, alpha=.1)
        assert TreeOptions.from_dict(options.to_dict()) == options
