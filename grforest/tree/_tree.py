# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numpy as np

__all__ = ["Tree", "TREE_LEAF", "TREE_UNDEFINED"]

TREE_LEAF = -1
TREE_UNDEFINED = -2


def _readonly(array, dtype):
    array = np.array(array, dtype=dtype)
    array.flags.writeable = False
    return array


def _build_leaf_table(leaf_ids, samples, num_nodes):
    """ Group `samples` by the node they reached into a flat array plus per-node offsets. """
    order = np.lexsort((samples, leaf_ids))
    counts = np.bincount(leaf_ids, minlength=num_nodes)
    ptr = np.zeros(num_nodes + 1, dtype=np.intp)
    np.cumsum(counts, out=ptr[1:])
    return samples[order], ptr


class Tree:
    """
    A grown tree: parallel node arrays plus the samples that reached each leaf.

    Node ``0`` is the root and every child has a larger id than its parent. Leaf membership is
    stored arena-style: the samples of node ``i`` are ``leaf_samples[leaf_samples_ptr[i]:leaf_samples_ptr[i + 1]]``.
    `leaf_samples` holds the estimation samples, whose values populate the leaf statistics, and
    `split_samples` holds the samples that were used to choose the splits. Without honesty the two
    tables coincide.

    Parameters
    ----------
    children_left, children_right : array-like of int of shape (num_nodes,)
        Child ids, ``TREE_LEAF`` at leaves.
    feature : array-like of int of shape (num_nodes,)
        Split variable, ``TREE_UNDEFINED`` at leaves.
    threshold : array-like of float of shape (num_nodes,)
        Split value. Samples with ``x[feature] <= threshold`` go left.
    leaf_samples, leaf_samples_ptr : array-like of int
        Estimation samples per node.
    split_samples, split_samples_ptr : array-like of int
        Split-selection samples per node.
    drawn_samples : array-like of int
        Every sample the tree was grown from, both halves included.
    prediction_values : array-like of float of shape (num_nodes, k) or None
        Precomputed leaf summaries, NaN for internal and empty nodes.
    """

    def __init__(self, children_left, children_right, feature, threshold,
                 leaf_samples, leaf_samples_ptr, split_samples, split_samples_ptr,
                 drawn_samples, prediction_values=None):
        self.children_left = _readonly(children_left, np.intp)
        self.children_right = _readonly(children_right, np.intp)
        self.feature = _readonly(feature, np.intp)
        self.threshold = _readonly(threshold, np.float64)
        self.leaf_samples = _readonly(leaf_samples, np.intp)
        self.leaf_samples_ptr = _readonly(leaf_samples_ptr, np.intp)
        self.split_samples = _readonly(split_samples, np.intp)
        self.split_samples_ptr = _readonly(split_samples_ptr, np.intp)
        self.drawn_samples = _readonly(drawn_samples, np.intp)
        self.prediction_values = None if prediction_values is None else _readonly(prediction_values, np.float64)

        num_nodes = self.children_left.shape[0]
        if num_nodes == 0:
            raise ValueError("A tree must have at least a root node.")
        for name in ["children_right", "feature", "threshold"]:
            if getattr(self, name).shape != (num_nodes,):
                raise ValueError("`{}` must have one entry per node.".format(name))
        for name in ["leaf_samples_ptr", "split_samples_ptr"]:
            if getattr(self, name).shape != (num_nodes + 1,):
                raise ValueError("`{}` must have num_nodes + 1 entries.".format(name))
        if self.leaf_samples_ptr[-1] != self.leaf_samples.shape[0] or \
                self.split_samples_ptr[-1] != self.split_samples.shape[0]:
            raise ValueError("Leaf offsets do not match the number of stored samples.")
        if self.prediction_values is not None and \
                (self.prediction_values.ndim != 2 or self.prediction_values.shape[0] != num_nodes):
            raise ValueError("`prediction_values` must have shape (num_nodes, k).")

    @classmethod
    def from_node_arrays(cls, children_left, children_right, feature, threshold, X,
                         estimation_samples, selection_samples, drawn_samples, prediction_values=None):
        """ Build a tree from its node arrays, routing the estimation and selection samples
        (rows of `X`) to their leaves. """
        skeleton = cls(children_left, children_right, feature, threshold,
                       [], np.zeros(len(children_left) + 1), [], np.zeros(len(children_left) + 1),
                       drawn_samples)
        estimation_samples = np.asarray(estimation_samples, dtype=np.intp)
        selection_samples = np.asarray(selection_samples, dtype=np.intp)
        leaf_samples, leaf_ptr = _build_leaf_table(skeleton.apply(X[estimation_samples]),
                                                   estimation_samples, skeleton.node_count)
        split_samples, split_ptr = _build_leaf_table(skeleton.apply(X[selection_samples]),
                                                     selection_samples, skeleton.node_count)
        return cls(children_left, children_right, feature, threshold,
                   leaf_samples, leaf_ptr, split_samples, split_ptr, drawn_samples, prediction_values)

    def with_prediction_values(self, prediction_values):
        return Tree(self.children_left, self.children_right, self.feature, self.threshold,
                    self.leaf_samples, self.leaf_samples_ptr, self.split_samples, self.split_samples_ptr,
                    self.drawn_samples, prediction_values)

    @property
    def node_count(self):
        return self.children_left.shape[0]

    @property
    def n_leaves(self):
        return int(np.sum(self.children_left == TREE_LEAF))

    @property
    def leaves(self):
        return np.flatnonzero(self.children_left == TREE_LEAF)

    def is_leaf(self, node):
        return self.children_left[node] == TREE_LEAF

    @property
    def depth(self):
        """ Depth of every node, the root having depth zero. """
        depth = np.zeros(self.node_count, dtype=np.intp)
        for node in range(self.node_count):
            if self.children_left[node] != TREE_LEAF:
                depth[self.children_left[node]] = depth[node] + 1
                depth[self.children_right[node]] = depth[node] + 1
        return depth

    @property
    def max_depth(self):
        return int(np.max(self.depth))

    def get_leaf_samples(self, node):
        return self.leaf_samples[self.leaf_samples_ptr[node]:self.leaf_samples_ptr[node + 1]]

    def get_split_samples(self, node):
        return self.split_samples[self.split_samples_ptr[node]:self.split_samples_ptr[node + 1]]

    @property
    def leaf_sizes(self):
        return np.diff(self.leaf_samples_ptr)

    def apply(self, X):
        """ Return the id of the leaf each row of `X` falls into. """
        X = np.asarray(X, dtype=np.float64)
        nodes = np.zeros(X.shape[0], dtype=np.intp)
        active = np.flatnonzero(self.children_left[nodes] != TREE_LEAF)
        while active.shape[0] > 0:
            current = nodes[active]
            go_left = X[active, self.feature[current]] <= self.threshold[current]
            nodes[active] = np.where(go_left, self.children_left[current], self.children_right[current])
            active = active[self.children_left[nodes[active]] != TREE_LEAF]
        return nodes

    find_leaf = apply

    def __eq__(self, other):
        if not isinstance(other, Tree):
            return NotImplemented
        for name in ["children_left", "children_right", "feature", "threshold", "leaf_samples",
                     "leaf_samples_ptr", "split_samples", "split_samples_ptr", "drawn_samples"]:
            if not np.array_equal(getattr(self, name), getattr(other, name)):
                return False
        if (self.prediction_values is None) != (other.prediction_values is None):
            return False
        return self.prediction_values is None or \
            np.array_equal(self.prediction_values, other.prediction_values, equal_nan=True)

    __hash__ = None
