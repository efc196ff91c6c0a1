# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numpy as np

from ..tree import TREE_LEAF

__all__ = ["Forest"]


class Forest:
    """
    An ordered collection of trees together with the options that grew them.

    Consecutive runs of `ci_group_size` trees form the ci-groups used for variance estimation.

    Parameters
    ----------
    trees : list of Tree
    options : ForestOptions
    num_samples : int
        Number of rows of the training data.
    num_features : int
        Number of columns of the training data.
    """

    def __init__(self, trees, options, num_samples, num_features):
        if len(trees) != options.num_trees:
            raise ValueError("Expected {} trees but got {}.".format(options.num_trees, len(trees)))
        self._trees = tuple(trees)
        self._options = options
        self._num_samples = int(num_samples)
        self._num_features = int(num_features)

    @property
    def trees(self):
        return self._trees

    @property
    def options(self):
        return self._options

    @property
    def ci_group_size(self):
        return self._options.ci_group_size

    @property
    def num_samples(self):
        return self._num_samples

    @property
    def num_features(self):
        return self._num_features

    @property
    def num_split_features(self):
        """ Number of leading columns a query needs for the trees to route it. """
        return max([int(np.max(tree.feature)) + 1 for tree in self._trees] + [0])

    def __len__(self):
        return len(self._trees)

    def __getitem__(self, index):
        return self._trees[index]

    def __iter__(self):
        return iter(self._trees)

    def __eq__(self, other):
        if not isinstance(other, Forest):
            return NotImplemented
        return (self._options == other._options and self._num_samples == other._num_samples and
                self._num_features == other._num_features and self._trees == other._trees)

    __hash__ = None

    def split_frequencies(self, max_depth=4):
        """
        Count how often each variable was split on at each depth.

        Returns
        -------
        frequencies : ndarray of int of shape (max_depth, num_features)
            Entry ``[d, j]`` is the number of splits on variable ``j`` at depth ``d`` over all trees.
        """
        frequencies = np.zeros((max_depth, self._num_features), dtype=np.intp)
        for tree in self._trees:
            depth = tree.depth
            internal = (tree.children_left != TREE_LEAF) & (depth < max_depth)
            np.add.at(frequencies, (depth[internal], tree.feature[internal]), 1)
        return frequencies
