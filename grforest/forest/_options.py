# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numbers
import numpy as np

from ..tree import TreeOptions

__all__ = ["ForestOptions"]


class ForestOptions:
    """
    Options of a forest training run.

    Parameters
    ----------
    num_trees : int
        Number of trees. Must be divisible by `ci_group_size`.
    ci_group_size : int
        Number of trees grown from each half-sample. Variance estimates need at least 2.
    sample_fraction : float
        Fraction of the clusters (samples, if there are no clusters) drawn for each tree.
        Must be at most 0.5 when `ci_group_size` is at least 2.
    tree_options : TreeOptions
        Options shared by every tree.
    num_threads : int or None, default None
        Number of parallel jobs. None or 0 means all cores.
    random_seed : int, default 0
        Seed every random draw of the run derives from.
    clusters : array-like of int or None, default None
        Cluster id of every sample. Without clusters every sample is its own cluster.
    samples_per_cluster : int or None, default None
        Number of samples drawn from each drawn cluster. Defaults to the size of the smallest cluster.
    """

    def __init__(self, num_trees, ci_group_size, sample_fraction, tree_options,
                 num_threads=None, random_seed=0, clusters=None, samples_per_cluster=None):
        if not isinstance(num_trees, numbers.Integral) or num_trees < 1:
            raise ValueError("`num_trees` must be a positive integer, got {}".format(num_trees))
        if not isinstance(ci_group_size, numbers.Integral) or ci_group_size < 1:
            raise ValueError("`ci_group_size` must be a positive integer, got {}".format(ci_group_size))
        if num_trees % ci_group_size != 0:
            raise ValueError("The number of trees must be divisible by `ci_group_size`. Asked to build "
                             "`num_trees={}` with `ci_group_size={}`.".format(num_trees, ci_group_size))
        if not isinstance(sample_fraction, numbers.Real) or not (0 < sample_fraction <= 1):
            raise ValueError("`sample_fraction` must be in (0, 1], got {}".format(sample_fraction))
        if ci_group_size >= 2 and sample_fraction > 0.5:
            raise ValueError("`sample_fraction` must be in (0, .5] when `ci_group_size` is at least 2. "
                             "Got value {}".format(sample_fraction))
        if not isinstance(tree_options, TreeOptions):
            raise TypeError("`tree_options` must be a TreeOptions instance, got {}".format(type(tree_options)))
        if num_threads is not None and (not isinstance(num_threads, numbers.Integral) or
                                        isinstance(num_threads, bool)):
            raise ValueError("`num_threads` must be an integer or None, got {!r}".format(num_threads))
        if not isinstance(random_seed, numbers.Integral) or random_seed < 0:
            raise ValueError("`random_seed` must be a non-negative integer, got {}".format(random_seed))
        if clusters is not None:
            clusters = np.asarray(clusters)
            if clusters.ndim != 1 or not np.issubdtype(clusters.dtype, np.integer):
                raise ValueError("`clusters` must be a one-dimensional array of integer cluster ids.")
            clusters = clusters.astype(np.intp)
            clusters.flags.writeable = False
        if samples_per_cluster is not None and \
                (not isinstance(samples_per_cluster, numbers.Integral) or samples_per_cluster < 1):
            raise ValueError("`samples_per_cluster` must be a positive integer, got {}".format(samples_per_cluster))

        self._num_trees = int(num_trees)
        self._ci_group_size = int(ci_group_size)
        self._sample_fraction = float(sample_fraction)
        self._tree_options = tree_options
        self._num_threads = -1 if num_threads is None or num_threads == 0 else int(num_threads)
        self._random_seed = int(random_seed)
        self._clusters = clusters
        self._samples_per_cluster = None if samples_per_cluster is None else int(samples_per_cluster)

    num_trees = property(lambda self: self._num_trees)
    ci_group_size = property(lambda self: self._ci_group_size)
    sample_fraction = property(lambda self: self._sample_fraction)
    tree_options = property(lambda self: self._tree_options)
    num_threads = property(lambda self: self._num_threads)
    random_seed = property(lambda self: self._random_seed)
    clusters = property(lambda self: self._clusters)
    samples_per_cluster = property(lambda self: self._samples_per_cluster)

    def to_dict(self):
        return {"num_trees": self._num_trees,
                "ci_group_size": self._ci_group_size,
                "sample_fraction": self._sample_fraction,
                "tree_options": self._tree_options.to_dict(),
                "num_threads": self._num_threads,
                "random_seed": self._random_seed,
                "clusters": None if self._clusters is None else self._clusters.tolist(),
                "samples_per_cluster": self._samples_per_cluster}

    @classmethod
    def from_dict(cls, options):
        options = dict(options)
        options["tree_options"] = TreeOptions.from_dict(options["tree_options"])
        return cls(**options)

    def __eq__(self, other):
        if not isinstance(other, ForestOptions):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None

    def __repr__(self):
        return "ForestOptions({})".format(", ".join("{}={!r}".format(k, v) for k, v in self.to_dict().items()
                                                   if k != "clusters"))
