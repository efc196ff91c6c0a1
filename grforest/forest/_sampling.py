# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numpy as np
from sklearn.utils import check_random_state

__all__ = ["RandomSampler", "group_samples_by_cluster"]


def group_samples_by_cluster(clusters, num_samples):
    """ The samples of every cluster, in cluster order. Without clusters each sample is its own cluster. """
    if clusters is None:
        return [np.array([i], dtype=np.intp) for i in range(num_samples)]
    clusters = np.asarray(clusters)
    if clusters.shape[0] != num_samples:
        raise ValueError("`clusters` has {} entries but the data has {} rows.".format(clusters.shape[0],
                                                                                     num_samples))
    ids, inverse = np.unique(clusters, return_inverse=True)
    order = np.argsort(inverse, kind='stable')
    bounds = np.cumsum(np.bincount(inverse, minlength=ids.shape[0]))[:-1]
    return np.split(order.astype(np.intp), bounds)


class RandomSampler:
    """
    Cluster-aware subsampling without replacement, drawn from a private random state.

    Parameters
    ----------
    random_state : int or RandomState
        Seed or random state the draws come from.
    samples_per_cluster : int or None, default None
        Maximum number of samples taken from each drawn cluster.
    """

    def __init__(self, random_state, samples_per_cluster=None):
        self.random_state = check_random_state(random_state)
        self.samples_per_cluster = samples_per_cluster

    def subsample_with_size(self, items, size):
        items = np.asarray(items, dtype=np.intp)
        return np.sort(items[self.random_state.choice(items.shape[0], size, replace=False)])

    def subsample(self, items, sample_fraction):
        """ Split `items` into a drawn part of ``ceil(len(items) * sample_fraction)`` items and the rest. """
        items = np.asarray(items, dtype=np.intp)
        permuted = self.random_state.permutation(items)
        size = int(np.ceil(items.shape[0] * sample_fraction))
        return np.sort(permuted[:size]), np.sort(permuted[size:])

    def sample_clusters(self, num_clusters, sample_fraction):
        """ Draw ``floor(num_clusters * sample_fraction)`` cluster ids. """
        size = int(np.floor(num_clusters * sample_fraction))
        if size < 1:
            raise ValueError("The sample fraction {} is too small to draw a single cluster out of "
                             "{}.".format(sample_fraction, num_clusters))
        return self.subsample_with_size(np.arange(num_clusters), size)

    def sample_from_clusters(self, cluster_ids, samples_by_cluster):
        """ The samples of the drawn clusters, at most `samples_per_cluster` from each. """
        samples_per_cluster = self.samples_per_cluster
        if samples_per_cluster is None:
            samples_per_cluster = min(len(samples) for samples in samples_by_cluster)
        drawn = []
        for cluster in cluster_ids:
            samples = samples_by_cluster[cluster]
            if samples.shape[0] <= samples_per_cluster:
                drawn.append(samples)
            else:
                drawn.append(self.subsample_with_size(samples, samples_per_cluster))
        if len(drawn) == 0:
            return np.zeros(0, dtype=np.intp)
        return np.sort(np.concatenate(drawn))
