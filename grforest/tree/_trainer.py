# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numpy as np
from sklearn.utils import check_random_state

from ._tree import Tree, TREE_LEAF, TREE_UNDEFINED

__all__ = ["TreeTrainer"]


def _prune_empty_leaves(children_left, children_right, feature, threshold, leaf_counts):
    """
    Collapse every split with a child leaf that holds no estimation samples into its other child,
    then renumber the nodes still reachable from the root (children keep larger ids than parents).
    """
    children_left = list(children_left)
    children_right = list(children_right)
    feature = list(feature)
    threshold = list(threshold)
    leaf_counts = list(leaf_counts)

    def _replace(node, child):
        children_left[node] = children_left[child]
        children_right[node] = children_right[child]
        feature[node] = feature[child]
        threshold[node] = threshold[child]
        leaf_counts[node] = leaf_counts[child]

    for node in range(len(children_left) - 1, -1, -1):
        left, right = children_left[node], children_right[node]
        if left == TREE_LEAF:
            continue
        if children_left[right] == TREE_LEAF and leaf_counts[right] == 0:
            _replace(node, left)
        elif children_left[left] == TREE_LEAF and leaf_counts[left] == 0:
            _replace(node, right)

    new_ids = {}
    order = []
    stack = [0]
    while stack:
        node = stack.pop()
        new_ids[node] = len(order)
        order.append(node)
        if children_left[node] != TREE_LEAF:
            stack.append(children_right[node])
            stack.append(children_left[node])
    return ([new_ids[children_left[n]] if children_left[n] != TREE_LEAF else TREE_LEAF for n in order],
            [new_ids[children_right[n]] if children_right[n] != TREE_LEAF else TREE_LEAF for n in order],
            [feature[n] for n in order],
            [threshold[n] for n in order])


class TreeTrainer:
    """
    Grows a single tree.

    Parameters
    ----------
    relabeling_strategy : object
        Provides ``relabel(samples, observations, data)``.
    splitting_rule : object
        Provides ``find_best_split(data, samples, responses, split_variables, observations)``.
    prediction_strategy : object or None, default None
        When it is an optimized strategy, its leaf summaries are precomputed into the tree.
    """

    def __init__(self, relabeling_strategy, splitting_rule, prediction_strategy=None):
        self.relabeling_strategy = relabeling_strategy
        self.splitting_rule = splitting_rule
        self.prediction_strategy = prediction_strategy

    def train(self, data, observations, samples, options, random_state, allowed_split_variables):
        """
        Grow a tree on `samples`.

        Parameters
        ----------
        data : Data
            The training data.
        observations : Observations
            The observation table of `data`.
        samples : array-like of int
            The samples drawn for this tree.
        options : TreeOptions
            Tree options.
        random_state : int or RandomState
            Source of the honesty split and of the split-variable draws.
        allowed_split_variables : ndarray of int
            Columns that may be split on.

        Returns
        -------
        tree : Tree
        """
        random_state = check_random_state(random_state)
        samples = np.asarray(samples, dtype=np.intp)
        if options.honesty:
            shuffled = random_state.permutation(samples)
            num_selection = int(np.ceil(shuffled.shape[0] * options.honesty_fraction))
            selection_samples = np.sort(shuffled[:num_selection])
            estimation_samples = np.sort(shuffled[num_selection:])
        else:
            selection_samples = estimation_samples = np.sort(samples)

        children_left, children_right, feature, threshold = self._grow(
            data, observations, selection_samples, options, random_state, allowed_split_variables)

        if options.honesty and options.honesty_prune_leaves:
            skeleton = Tree(children_left, children_right, feature, threshold,
                            [], np.zeros(len(children_left) + 1), [], np.zeros(len(children_left) + 1),
                            samples)
            leaf_counts = np.bincount(skeleton.apply(data.matrix[estimation_samples]),
                                      minlength=skeleton.node_count)
            children_left, children_right, feature, threshold = _prune_empty_leaves(
                children_left, children_right, feature, threshold, leaf_counts)

        tree = Tree.from_node_arrays(children_left, children_right, feature, threshold, data.matrix,
                                     estimation_samples, selection_samples, np.sort(samples))
        if self.prediction_strategy is not None and getattr(self.prediction_strategy, "optimized", False):
            tree = tree.with_prediction_values(
                self.prediction_strategy.precompute_prediction_values(tree, observations))
        return tree

    def _grow(self, data, observations, samples, options, random_state, allowed_split_variables):
        children_left = [TREE_LEAF]
        children_right = [TREE_LEAF]
        feature = [TREE_UNDEFINED]
        threshold = [TREE_UNDEFINED]
        node_samples = {0: samples}

        stack = [0]
        while stack:
            node = stack.pop()
            samples = node_samples.pop(node)
            split = self._find_split(data, observations, samples, options, random_state, allowed_split_variables)
            if split is None:
                continue
            var, value = split
            goes_left = data.get_values(samples, var) <= value
            left, right = len(children_left), len(children_left) + 1
            for _ in range(2):
                children_left.append(TREE_LEAF)
                children_right.append(TREE_LEAF)
                feature.append(TREE_UNDEFINED)
                threshold.append(TREE_UNDEFINED)
            children_left[node], children_right[node] = left, right
            feature[node], threshold[node] = var, value
            node_samples[left] = samples[goes_left]
            node_samples[right] = samples[~goes_left]
            stack.append(right)
            stack.append(left)
        return children_left, children_right, feature, threshold

    def _find_split(self, data, observations, samples, options, random_state, allowed_split_variables):
        if samples.shape[0] <= options.min_node_size or len(allowed_split_variables) == 0:
            return None
        responses = self.relabeling_strategy.relabel(samples, observations, data)
        if responses is None:
            return None
        num_vars = min(options.mtry, len(allowed_split_variables))
        split_variables = np.sort(random_state.choice(allowed_split_variables, num_vars, replace=False))
        return self.splitting_rule.find_best_split(data, samples, responses, split_variables, observations)
