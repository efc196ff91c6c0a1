# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import logging
import numpy as np
from joblib import Parallel, delayed, effective_n_jobs
from sklearn.utils import check_random_state

from ..commons import Observations
from ..relabeling import (RegressionRelabelingStrategy, QuantileRelabelingStrategy,
                          InstrumentalRelabelingStrategy, LLRelabelingStrategy)
from ..prediction import RegressionPredictionStrategy, InstrumentalPredictionStrategy
from ..tree import TreeTrainer, SPLITTING_RULES
from ._forest import Forest
from ._sampling import RandomSampler, group_samples_by_cluster

__all__ = ["ForestTrainer",
           "regression_trainer",
           "quantile_trainer",
           "instrumental_trainer",
           "ll_regression_trainer"]

logger = logging.getLogger(__name__)

MAX_INT = np.iinfo(np.int32).max


def _tree_ranges(num_trees, n_jobs):
    """
    Split the tree indices ``0..num_trees`` into contiguous ranges, one per job, with sizes
    differing by at most one. Returns the number of jobs and the ``n_jobs + 1`` range bounds.
    """
    n_jobs = min(effective_n_jobs(n_jobs), num_trees)
    sizes = np.full(n_jobs, num_trees // n_jobs, dtype=int)
    sizes[:num_trees % n_jobs] += 1
    return n_jobs, [0] + np.cumsum(sizes).tolist()


class ForestTrainer:
    """
    Grows the trees of a forest in parallel.

    Parameters
    ----------
    relabeling_strategy : object
        Relabeling strategy shared by every tree.
    splitting_rule : str, default "regression"
        Key of :data:`~grforest.tree.SPLITTING_RULES`.
    prediction_strategy : object or None, default None
        Optimized strategies get their leaf summaries precomputed into each tree.
    splitting_rule_params : dict or None, default None
        Extra keyword arguments of the splitting rule, besides `alpha` and `imbalance_penalty`.
    """

    def __init__(self, relabeling_strategy, splitting_rule="regression", prediction_strategy=None,
                 splitting_rule_params=None):
        if splitting_rule not in SPLITTING_RULES:
            raise ValueError("Unknown splitting rule {!r}; expected one of {}".format(
                splitting_rule, sorted(SPLITTING_RULES)))
        self.relabeling_strategy = relabeling_strategy
        self.splitting_rule = splitting_rule
        self.prediction_strategy = prediction_strategy
        self.splitting_rule_params = splitting_rule_params or {}

    def _allowed_split_variables(self, data, tree_options):
        disallowed = set(data.disallowed_split_variables) | set(tree_options.disallowed_split_variables)
        out_of_range = [var for var in disallowed if var >= data.num_cols]
        if out_of_range:
            raise ValueError("Disallowed split variables {} are out of range for data with {} "
                             "columns".format(sorted(out_of_range), data.num_cols))
        allowed = np.array([var for var in range(data.num_cols) if var not in disallowed], dtype=np.intp)
        if allowed.shape[0] == 0:
            raise ValueError("There are no variables left to split on.")
        if tree_options.mtry > allowed.shape[0]:
            raise ValueError("`mtry`={} is larger than the number of allowed split variables "
                             "({}).".format(tree_options.mtry, allowed.shape[0]))
        return allowed

    def train(self, data, options, verbose=0):
        """
        Train a forest.

        Parameters
        ----------
        data : Data
            The training data, with the observation columns the relabeling strategy needs.
        options : ForestOptions
            Forest options.
        verbose : int, default 0
            Verbosity of the joblib parallel loop.

        Returns
        -------
        forest : Forest
        """
        allowed = self._allowed_split_variables(data, options.tree_options)
        observations = Observations.from_data(data)
        samples_by_cluster = group_samples_by_cluster(options.clusters, data.num_rows)
        num_clusters = len(samples_by_cluster)
        if int(np.floor(num_clusters * options.sample_fraction)) < 1:
            raise ValueError("The sample fraction {} is too small to draw a single cluster out of "
                             "{}.".format(options.sample_fraction, num_clusters))

        # All seeds are drawn up front so that the forest does not depend on the number of jobs.
        random_state = check_random_state(options.random_seed)
        num_groups = options.num_trees // options.ci_group_size
        group_seeds = random_state.randint(MAX_INT, size=num_groups)
        tree_seeds = random_state.randint(MAX_INT, size=options.num_trees)

        n_jobs, starts = _tree_ranges(options.num_trees, options.num_threads)
        logger.debug("Training %d trees in %d groups over %d jobs", options.num_trees, num_groups, n_jobs)
        batches = Parallel(n_jobs=n_jobs, verbose=verbose, backend='threading')(
            delayed(self._train_batch)(data, observations, options, samples_by_cluster, allowed,
                                       group_seeds, tree_seeds, starts[i], starts[i + 1])
            for i in range(n_jobs))
        trees = [tree for batch in batches for tree in batch]
        return Forest(trees, options, data.num_rows, data.num_cols)

    def _make_tree_trainer(self, tree_options):
        splitting_rule = SPLITTING_RULES[self.splitting_rule](alpha=tree_options.alpha,
                                                              imbalance_penalty=tree_options.imbalance_penalty,
                                                              **self.splitting_rule_params)
        return TreeTrainer(self.relabeling_strategy, splitting_rule, self.prediction_strategy)

    def _draw_samples(self, options, samples_by_cluster, group_seed, tree_random_state):
        num_clusters = len(samples_by_cluster)
        if options.ci_group_size == 1:
            sampler = RandomSampler(tree_random_state, options.samples_per_cluster)
            clusters = sampler.sample_clusters(num_clusters, options.sample_fraction)
        else:
            half_sample = RandomSampler(group_seed).sample_clusters(num_clusters, 0.5)
            sampler = RandomSampler(tree_random_state, options.samples_per_cluster)
            clusters = sampler.subsample_with_size(half_sample,
                                                   int(np.floor(num_clusters * options.sample_fraction)))
        return sampler.sample_from_clusters(clusters, samples_by_cluster)

    def _train_batch(self, data, observations, options, samples_by_cluster, allowed,
                     group_seeds, tree_seeds, start, end):
        tree_trainer = self._make_tree_trainer(options.tree_options)
        trees = []
        for t in range(start, end):
            tree_random_state = check_random_state(tree_seeds[t])
            samples = self._draw_samples(options, samples_by_cluster,
                                         group_seeds[t // options.ci_group_size], tree_random_state)
            trees.append(tree_trainer.train(data, observations, samples, options.tree_options,
                                            tree_random_state, allowed))
        return trees


def regression_trainer():
    """ A trainer for conditional-mean forests. """
    return ForestTrainer(RegressionRelabelingStrategy(), "regression", RegressionPredictionStrategy())


def quantile_trainer(quantiles):
    """ A trainer for quantile forests, splitting on the bucket labels of `quantiles`. """
    return ForestTrainer(QuantileRelabelingStrategy(quantiles), "probability")


def instrumental_trainer(reduced_form_weight=0., stabilize_splits=True):
    """ A trainer for instrumental (and, with the treatment as instrument, causal) forests. """
    return ForestTrainer(InstrumentalRelabelingStrategy(reduced_form_weight, stabilize_splits),
                         "instrumental", InstrumentalPredictionStrategy(),
                         splitting_rule_params={"stabilize_splits": stabilize_splits})


def ll_regression_trainer(split_lambda, weight_penalty, split_variables):
    """ A trainer for local-linear forests that split on ridge residuals of `split_variables`. """
    return ForestTrainer(LLRelabelingStrategy(split_lambda, weight_penalty, split_variables), "regression")
