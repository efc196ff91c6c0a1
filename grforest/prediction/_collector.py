# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numpy as np

__all__ = ["PredictionCollector", "QueryCoverageError"]


class QueryCoverageError(ValueError):
    """ Raised when no tree of the forest contributes to a query. """


class PredictionCollector:
    """ Turns the leaf co-memberships of a query across the trees into forest weights. """

    def leaf_nodes_by_tree(self, forest, X):
        """ The leaf every row of `X` reaches in every tree, as an array of shape (n_rows, n_trees). """
        X = np.asarray(X, dtype=np.float64)
        leaf_nodes = np.empty((X.shape[0], len(forest)), dtype=np.intp)
        for t, tree in enumerate(forest):
            leaf_nodes[:, t] = tree.apply(X)
        return leaf_nodes

    def trees_by_sample(self, forest, num_samples, oob_prediction):
        """
        Boolean mask of shape (num_samples, n_trees) of the trees each row may use. For out-of-bag
        prediction the rows are the training samples and a tree is excluded for every sample it drew.
        """
        valid = np.ones((num_samples, len(forest)), dtype=bool)
        if oob_prediction:
            for t, tree in enumerate(forest):
                valid[tree.drawn_samples, t] = False
        return valid

    def compute_weights(self, sample, forest, leaf_nodes, valid_trees):
        """
        Forest weights of one query row.

        Parameters
        ----------
        sample : int
            Row of the query.
        forest : Forest
        leaf_nodes : ndarray of shape (n_rows, n_trees)
            Output of :meth:`leaf_nodes_by_tree`.
        valid_trees : ndarray of shape (n_rows, n_trees)
            Output of :meth:`trees_by_sample`.

        Returns
        -------
        weights : dict of {int: float}
            Non-negative weight of every training sample that shares a leaf with the query,
            summing to one.
        """
        weights = {}
        num_trees = 0
        for t, tree in enumerate(forest):
            if not valid_trees[sample, t]:
                continue
            neighbors = tree.get_leaf_samples(leaf_nodes[sample, t])
            if neighbors.shape[0] == 0:
                continue
            num_trees += 1
            sample_weight = 1. / neighbors.shape[0]
            for neighbor in neighbors.tolist():
                weights[neighbor] = weights.get(neighbor, 0.) + sample_weight
        if num_trees == 0:
            raise QueryCoverageError("No tree of the forest contributes to query row {}.".format(sample))
        for neighbor in weights:
            weights[neighbor] /= num_trees
        return weights


def weights_to_arrays(weights):
    """ Sorted sample ids and matching weights of a forest-weight dict. """
    samples = np.fromiter(sorted(weights), dtype=np.intp, count=len(weights))
    return samples, np.array([weights[s] for s in samples.tolist()], dtype=np.float64)
