# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import logging
from warnings import warn
import numpy as np
from joblib import Parallel, delayed, effective_n_jobs

from ._collector import PredictionCollector, QueryCoverageError, weights_to_arrays
from ._strategies import (RegressionPredictionStrategy, InstrumentalPredictionStrategy,
                          QuantilePredictionStrategy, LocalLinearPredictionStrategy,
                          LocalLinearCausalPredictionStrategy)

__all__ = ["Prediction",
           "ForestPredictor",
           "stack_predictions",
           "regression_predictor",
           "instrumental_predictor",
           "quantile_predictor",
           "local_linear_predictor",
           "ll_causal_predictor"]

logger = logging.getLogger(__name__)


class Prediction:
    """
    The output of a forest for one query row.

    Parameters
    ----------
    predictions : ndarray of float
        The strategy output, NaN when the row failed.
    variance_estimates : ndarray of float or None
        Variance of each output, when requested.
    error : Exception or None
        Why the row failed, if it did.
    """

    def __init__(self, predictions, variance_estimates=None, error=None):
        self.predictions = predictions
        self.variance_estimates = variance_estimates
        self.error = error

    @property
    def failed(self):
        return self.error is not None

    def __repr__(self):
        return "Prediction(predictions={!r}, variance_estimates={!r}, error={!r})".format(
            self.predictions, self.variance_estimates, self.error)


def stack_predictions(predictions):
    """ Stack a list of :class:`Prediction` into arrays of shape (n_rows, prediction_length).
    The variance array is None unless every row carries one. """
    point = np.array([p.predictions for p in predictions], dtype=np.float64)
    if len(predictions) > 0 and all(p.variance_estimates is not None for p in predictions):
        return point, np.array([p.variance_estimates for p in predictions], dtype=np.float64)
    return point, None


class ForestPredictor:
    """
    Computes the predictions of a forest, in parallel over the query rows.

    Parameters
    ----------
    num_threads : int or None
        Number of parallel jobs, None or 0 for all cores.
    strategy : object
        The prediction strategy.
    verbose : int, default 0
        Verbosity of the joblib parallel loop.
    """

    def __init__(self, num_threads, strategy, verbose=0):
        self.num_threads = -1 if num_threads is None or num_threads == 0 else num_threads
        self.strategy = strategy
        self.verbose = verbose
        self.collector = PredictionCollector()

    def predict(self, forest, train_data, data, estimate_variance=False):
        """
        Predict every row of `data`.

        Parameters
        ----------
        forest : Forest
        train_data : Data
            The data the forest was trained on.
        data : Data
            Query rows, with the same covariate columns as `train_data`.
        estimate_variance : bool, default False
            Whether to estimate the variance of each prediction.

        Returns
        -------
        predictions : list of Prediction
        """
        return self._predict(forest, train_data, data, estimate_variance, oob_prediction=False)

    def predict_oob(self, forest, train_data, estimate_variance=False):
        """ Out-of-bag predictions of the training rows, each using only the trees that did not draw it. """
        return self._predict(forest, train_data, train_data, estimate_variance, oob_prediction=True)

    def _predict(self, forest, train_data, data, estimate_variance, oob_prediction):
        if train_data.num_rows != forest.num_samples:
            raise ValueError("The forest was trained on {} rows but the training data has {}.".format(
                forest.num_samples, train_data.num_rows))
        if data.num_cols < forest.num_split_features:
            raise ValueError("The forest splits on {} columns but the query data has only {}.".format(
                forest.num_split_features, data.num_cols))
        if self.strategy.optimized and any(tree.prediction_values is None for tree in forest):
            raise ValueError("{} needs trees with precomputed leaf values.".format(type(self.strategy).__name__))
        if not self.strategy.optimized:
            self.strategy.check_columns(train_data, data)
        if estimate_variance and not self.strategy.supports_variance:
            raise ValueError("{} does not support variance estimates.".format(type(self.strategy).__name__))
        if estimate_variance and forest.ci_group_size < 2:
            warn("Variance estimates need a forest grown with `ci_group_size` of at least 2; "
                 "no variance is computed.", UserWarning)
            estimate_variance = False

        num_rows = data.num_rows
        if num_rows == 0:
            return []
        leaf_nodes = self.collector.leaf_nodes_by_tree(forest, data.matrix)
        valid_trees = self.collector.trees_by_sample(forest, num_rows, oob_prediction)

        n_jobs = min(effective_n_jobs(self.num_threads), num_rows)
        bounds = np.linspace(0, num_rows, n_jobs + 1).astype(int)
        logger.debug("Predicting %d rows over %d jobs", num_rows, n_jobs)
        batches = Parallel(n_jobs=n_jobs, verbose=self.verbose, backend='threading')(
            delayed(self._predict_rows)(forest, train_data, data, leaf_nodes, valid_trees,
                                        estimate_variance, bounds[i], bounds[i + 1])
            for i in range(n_jobs))
        return [prediction for batch in batches for prediction in batch]

    def _predict_rows(self, forest, train_data, data, leaf_nodes, valid_trees, estimate_variance, start, end):
        predictions = []
        for row in range(start, end):
            try:
                if self.strategy.optimized:
                    predictions.append(self._predict_optimized(forest, leaf_nodes, valid_trees,
                                                               estimate_variance, row))
                else:
                    predictions.append(self._predict_default(forest, train_data, data, leaf_nodes,
                                                             valid_trees, estimate_variance, row))
            except QueryCoverageError as exc:
                variance = np.full(self.strategy.prediction_length, np.nan) if estimate_variance else None
                predictions.append(Prediction(np.full(self.strategy.prediction_length, np.nan), variance, exc))
        return predictions

    def _predict_optimized(self, forest, leaf_nodes, valid_trees, estimate_variance, row):
        leaf_values = np.full((len(forest), forest[0].prediction_values.shape[1]), np.nan)
        for t, tree in enumerate(forest):
            if valid_trees[row, t]:
                leaf_values[t] = tree.prediction_values[leaf_nodes[row, t]]
        contributing = ~np.isnan(leaf_values[:, 0])
        if not np.any(contributing):
            raise QueryCoverageError("No tree of the forest contributes to query row {}.".format(row))
        average = np.mean(leaf_values[contributing], axis=0)
        point = self.strategy.predict(average)
        variance = None
        if estimate_variance:
            variance = self.strategy.compute_variance(average, leaf_values, forest.ci_group_size)
        return Prediction(point, variance)

    def _predict_default(self, forest, train_data, data, leaf_nodes, valid_trees, estimate_variance, row):
        samples, weights = weights_to_arrays(
            self.collector.compute_weights(row, forest, leaf_nodes, valid_trees))
        point = self.strategy.predict(samples, weights, train_data, data, row)
        variance = None
        if estimate_variance:
            samples_by_tree = [tree.get_leaf_samples(leaf_nodes[row, t]) if valid_trees[row, t] else None
                               for t, tree in enumerate(forest)]
            variance = self.strategy.compute_variance(samples, weights, train_data, data, row,
                                                      samples_by_tree, forest.ci_group_size)
        return Prediction(point, variance)


def regression_predictor(num_threads=None, verbose=0):
    return ForestPredictor(num_threads, RegressionPredictionStrategy(), verbose=verbose)


def instrumental_predictor(num_threads=None, verbose=0):
    return ForestPredictor(num_threads, InstrumentalPredictionStrategy(), verbose=verbose)


def quantile_predictor(num_threads, quantiles, verbose=0):
    return ForestPredictor(num_threads, QuantilePredictionStrategy(quantiles), verbose=verbose)


def local_linear_predictor(num_threads, lambdas, weight_penalty, linear_correction_variables, verbose=0):
    return ForestPredictor(num_threads,
                           LocalLinearPredictionStrategy(lambdas, weight_penalty, linear_correction_variables),
                           verbose=verbose)


def ll_causal_predictor(num_threads, lambdas, weight_penalty, linear_correction_variables, verbose=0):
    return ForestPredictor(num_threads,
                           LocalLinearCausalPredictionStrategy(lambdas, weight_penalty, linear_correction_variables),
                           verbose=verbose)
