# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numbers
import numpy as np

from ..commons import Data
from ..forest import (ForestTrainer, regression_trainer, quantile_trainer, instrumental_trainer,
                      ll_regression_trainer)
from ..prediction import (regression_predictor, instrumental_predictor, quantile_predictor,
                          local_linear_predictor, ll_causal_predictor)
from ..relabeling import RegressionRelabelingStrategy
from ..utilities import check_inputs
from ._base_grf import BaseGRF

__all__ = ["RegressionForest",
           "QuantileForest",
           "CausalForest",
           "InstrumentalForest",
           "LocalLinearForest"]

# =============================================================================
# Regression and quantile forests
# =============================================================================


class RegressionForest(BaseGRF):
    """
    An honest regression forest estimating the conditional mean ``E[y | X = x]``.

    Parameters
    ----------
    n_estimators : int, default=100
        Number of trees. Must be divisible by `ci_group_size`.

    mtry : int or None, default=None
        Number of variables tried at each split. None means ``min(ceil(sqrt(n_features) + 20), n_features)``.

    min_node_size : int, default=5
        A node with at most this many samples is not split.

    sample_fraction : float, default=.5
        Fraction of the samples (of the clusters, with clustered data) drawn for each tree. Must be
        at most .5 when `ci_group_size` is at least 2.

    honest : bool, default=True
        Whether splits are chosen on one part of each tree's sample and leaves are populated with the other.

    honesty_fraction : float, default=.5
        Fraction of each tree's sample used to choose the splits when `honest=True`.

    honesty_prune_leaves : bool, default=True
        Whether leaves that receive no estimation samples are pruned.

    alpha : float, default=.05
        Each child of a split keeps at least this fraction of the samples of its parent.

    imbalance_penalty : float, default=0.
        Penalty on splits that produce small children.

    ci_group_size : int, default=2
        Number of trees grown on each half-sample. Variance estimates need at least 2.

    samples_per_cluster : int or None, default=None
        Number of samples drawn from each drawn cluster, when `clusters` are passed to fit.
        None means the size of the smallest cluster.

    compute_oob_predictions : bool, default=False
        Whether to store the out-of-bag predictions of the training samples in `oob_prediction_` at fit time.

    n_jobs : int or None, default=-1
        The number of parallel jobs to be used for parallelism; follows joblib semantics.
        `n_jobs=-1` means all available cpu cores, and so do `n_jobs=None` and `n_jobs=0`.

    random_state : int, RandomState instance or None, default=None
        Controls all the randomness of the forest.

    verbose : int, default=0
        Controls the verbosity when fitting and predicting.

    Attributes
    ----------
    forest_ : Forest
        The fitted forest.

    train_data_ : Data
        The training data, the support of the forest weights.

    oob_prediction_ : ndarray of shape (n_samples, 1)
        Out-of-bag predictions, when `compute_oob_predictions=True`.
    """

    def _get_trainer(self):
        return regression_trainer()

    def _get_predictor(self):
        return regression_predictor(self.n_jobs, verbose=self.verbose)

    def _make_train_data(self, X, y, *, sample_weight=None, clusters=None):
        X, y, _, _, sample_weight, clusters = check_inputs(X, y, sample_weight=sample_weight, clusters=clusters)
        return Data.from_arrays(X, y, sample_weight=sample_weight), X.shape[1], clusters

    def fit(self, X, y, *, sample_weight=None, clusters=None):
        """
        Build a forest of trees from the training set (X, y).

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            The training input samples.
        y : array-like of shape (n_samples,)
            The outcome values.
        sample_weight : array-like of shape (n_samples,), default=None
            Non-negative sample weights. If None, samples are equally weighted.
        clusters : array-like of int of shape (n_samples,), default=None
            Cluster id of every sample; subsampling then draws whole clusters.

        Returns
        -------
        self : object
        """
        train_data, n_features, clusters = self._make_train_data(X, y, sample_weight=sample_weight,
                                                                 clusters=clusters)
        return self._fit(train_data, n_features, clusters)

    def deserialize(self, blob, X, y, *, sample_weight=None):
        """
        Load a forest produced by :meth:`serialize`. The forest weights are supported on the training
        data, so the same (X, y, sample_weight) the forest was fitted on must be passed again.
        """
        train_data, n_features, _ = self._make_train_data(X, y, sample_weight=sample_weight)
        return self._load(blob, train_data, n_features)


class QuantileForest(RegressionForest):
    """
    A quantile forest estimating conditional quantiles of y given X = x. Splits separate the
    quantile buckets of the outcome, and each prediction is a quantile of the training outcomes
    under the forest weights. Quantile forests provide no variance estimates.

    Parameters
    ----------
    quantiles : sequence of float, default=(0.1, 0.5, 0.9)
        Quantiles to estimate, each in (0, 1). Predictions have one column per quantile.

    The other parameters are those of :class:`RegressionForest`; `ci_group_size` defaults to 1.
    """

    def __init__(self,
                 n_estimators=100, *,
                 quantiles=(0.1, 0.5, 0.9),
                 mtry=None,
                 min_node_size=5,
                 sample_fraction=.5,
                 honest=True,
                 honesty_fraction=.5,
                 honesty_prune_leaves=True,
                 alpha=.05,
                 imbalance_penalty=0.,
                 ci_group_size=1,
                 samples_per_cluster=None,
                 compute_oob_predictions=False,
                 n_jobs=-1,
                 random_state=None,
                 verbose=0):
        self.quantiles = quantiles
        super().__init__(n_estimators=n_estimators, mtry=mtry, min_node_size=min_node_size,
                         sample_fraction=sample_fraction, honest=honest, honesty_fraction=honesty_fraction,
                         honesty_prune_leaves=honesty_prune_leaves, alpha=alpha,
                         imbalance_penalty=imbalance_penalty, ci_group_size=ci_group_size,
                         samples_per_cluster=samples_per_cluster,
                         compute_oob_predictions=compute_oob_predictions, n_jobs=n_jobs,
                         random_state=random_state, verbose=verbose)

    def _get_trainer(self):
        return quantile_trainer(self.quantiles)

    def _get_predictor(self):
        return quantile_predictor(self.n_jobs, self.quantiles, verbose=self.verbose)


# =============================================================================
# Causal and instrumental forests
# =============================================================================


class InstrumentalForest(RegressionForest):
    """
    An instrumental forest estimating the conditional local average treatment effect

        tau(x) = Cov(Z, y | X = x) / Cov(Z, T | X = x)

    of a scalar treatment T on the outcome y, with the scalar instrument Z.

    Parameters
    ----------
    reduced_form_weight : float, default=0.
        Weight in [0, 1] of the treatment in the instrument used to relabel the samples for splitting.
        Zero splits on the instrumental-variables moment, one on the reduced form.

    stabilize_splits : bool, default=True
        Whether each child of a split must keep at least the minimum child size of samples on
        either side of the node's mean instrument.

    The other parameters are those of :class:`RegressionForest`.
    """

    def __init__(self,
                 n_estimators=100, *,
                 reduced_form_weight=0.,
                 stabilize_splits=True,
                 mtry=None,
                 min_node_size=5,
                 sample_fraction=.5,
                 honest=True,
                 honesty_fraction=.5,
                 honesty_prune_leaves=True,
                 alpha=.05,
                 imbalance_penalty=0.,
                 ci_group_size=2,
                 samples_per_cluster=None,
                 compute_oob_predictions=False,
                 n_jobs=-1,
                 random_state=None,
                 verbose=0):
        self.reduced_form_weight = reduced_form_weight
        self.stabilize_splits = stabilize_splits
        super().__init__(n_estimators=n_estimators, mtry=mtry, min_node_size=min_node_size,
                         sample_fraction=sample_fraction, honest=honest, honesty_fraction=honesty_fraction,
                         honesty_prune_leaves=honesty_prune_leaves, alpha=alpha,
                         imbalance_penalty=imbalance_penalty, ci_group_size=ci_group_size,
                         samples_per_cluster=samples_per_cluster,
                         compute_oob_predictions=compute_oob_predictions, n_jobs=n_jobs,
                         random_state=random_state, verbose=verbose)

    def _get_trainer(self):
        return instrumental_trainer(self.reduced_form_weight, self.stabilize_splits)

    def _get_predictor(self):
        return instrumental_predictor(self.n_jobs, verbose=self.verbose)

    def _make_train_data(self, X, T, y, *, Z, sample_weight=None, clusters=None):
        X, y, T, Z, sample_weight, clusters = check_inputs(X, y, T=T, Z=Z, sample_weight=sample_weight,
                                                           clusters=clusters)
        return Data.from_arrays(X, y, T=T, Z=Z, sample_weight=sample_weight), X.shape[1], clusters

    def fit(self, X, T, y, *, Z, sample_weight=None, clusters=None):
        """
        Build an instrumental forest from the training set (X, T, y, Z).

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            The training input samples.
        T : array-like of shape (n_samples,)
            The treatment.
        y : array-like of shape (n_samples,)
            The outcome.
        Z : array-like of shape (n_samples,)
            The instrument.
        sample_weight : array-like of shape (n_samples,), default=None
            Non-negative sample weights. If None, samples are equally weighted.
        clusters : array-like of int of shape (n_samples,), default=None
            Cluster id of every sample; subsampling then draws whole clusters.

        Returns
        -------
        self : object
        """
        train_data, n_features, clusters = self._make_train_data(X, T, y, Z=Z, sample_weight=sample_weight,
                                                                 clusters=clusters)
        return self._fit(train_data, n_features, clusters)

    def deserialize(self, blob, X, T, y, *, Z, sample_weight=None):
        """ Load a forest produced by :meth:`serialize`, given the data it was fitted on. """
        train_data, n_features, _ = self._make_train_data(X, T, y, Z=Z, sample_weight=sample_weight)
        return self._load(blob, train_data, n_features)


class CausalForest(InstrumentalForest):
    """
    A causal forest estimating the conditional average treatment effect of a scalar treatment T
    on the outcome y under unconfoundedness given X. It is an instrumental forest where the
    treatment is its own instrument. T and y are typically residualized (centered on estimates
    of their conditional means) before fitting.

    Parameters
    ----------
    ll_lambda : float, list of float or None, default=None
        Ridge penalties of local linear effect estimates. When set, each effect is the coefficient
        of T in a forest-weighted ridge regression of y on ``[1, x - x0, T, T (x - x0)]``, and
        predictions have one column per penalty. None gives the plain forest estimate.

    ll_weight_penalty : bool, default=False
        Whether the local linear penalty of each variable is scaled by its weighted second moment.

    linear_correction_variables : list of int or None, default=None
        Covariates of the local linear regressions. None means all of them.

    The other parameters are those of :class:`InstrumentalForest`.
    """

    def __init__(self,
                 n_estimators=100, *,
                 ll_lambda=None,
                 ll_weight_penalty=False,
                 linear_correction_variables=None,
                 reduced_form_weight=0.,
                 stabilize_splits=True,
                 mtry=None,
                 min_node_size=5,
                 sample_fraction=.5,
                 honest=True,
                 honesty_fraction=.5,
                 honesty_prune_leaves=True,
                 alpha=.05,
                 imbalance_penalty=0.,
                 ci_group_size=2,
                 samples_per_cluster=None,
                 compute_oob_predictions=False,
                 n_jobs=-1,
                 random_state=None,
                 verbose=0):
        self.ll_lambda = ll_lambda
        self.ll_weight_penalty = ll_weight_penalty
        self.linear_correction_variables = linear_correction_variables
        super().__init__(n_estimators=n_estimators, reduced_form_weight=reduced_form_weight,
                         stabilize_splits=stabilize_splits, mtry=mtry, min_node_size=min_node_size,
                         sample_fraction=sample_fraction, honest=honest, honesty_fraction=honesty_fraction,
                         honesty_prune_leaves=honesty_prune_leaves, alpha=alpha,
                         imbalance_penalty=imbalance_penalty, ci_group_size=ci_group_size,
                         samples_per_cluster=samples_per_cluster,
                         compute_oob_predictions=compute_oob_predictions, n_jobs=n_jobs,
                         random_state=random_state, verbose=verbose)

    def _make_predictor(self, n_features):
        if self.ll_lambda is None:
            return instrumental_predictor(self.n_jobs, verbose=self.verbose)
        lambdas, variables = _check_ll_options(self.ll_lambda, self.linear_correction_variables, n_features)
        return ll_causal_predictor(self.n_jobs, lambdas, self.ll_weight_penalty, variables,
                                   verbose=self.verbose)

    def _get_predictor(self):
        return self._make_predictor(self.n_features_in_)

    def _make_train_data(self, X, T, y, *, Z=None, sample_weight=None, clusters=None):
        return super()._make_train_data(X, T, y, Z=T, sample_weight=sample_weight, clusters=clusters)

    def fit(self, X, T, y, *, sample_weight=None, clusters=None):
        """
        Build a causal forest from the training set (X, T, y).

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            The training input samples.
        T : array-like of shape (n_samples,)
            The treatment.
        y : array-like of shape (n_samples,)
            The outcome.
        sample_weight : array-like of shape (n_samples,), default=None
            Non-negative sample weights. If None, samples are equally weighted.
        clusters : array-like of int of shape (n_samples,), default=None
            Cluster id of every sample; subsampling then draws whole clusters.

        Returns
        -------
        self : object
        """
        train_data, n_features, clusters = self._make_train_data(X, T, y, sample_weight=sample_weight,
                                                                 clusters=clusters)
        # invalid local linear options fail before any tree is grown
        self._make_predictor(n_features)
        return self._fit(train_data, n_features, clusters)

    def deserialize(self, blob, X, T, y, *, sample_weight=None):
        """ Load a forest produced by :meth:`serialize`, given the data it was fitted on. """
        return super().deserialize(blob, X, T, y, Z=T, sample_weight=sample_weight)


# =============================================================================
# Local linear forests
# =============================================================================


def _check_variables(variables, n_features, name):
    if variables is None:
        return np.arange(n_features, dtype=np.intp)
    variables = np.asarray(variables).reshape(-1)
    if variables.shape[0] == 0 or \
            not all(isinstance(v, numbers.Integral) and 0 <= v < n_features for v in variables.tolist()):
        raise ValueError("`{}` must be a non-empty list of column indices in [0, {}), got {}".format(
            name, n_features, variables.tolist()))
    return variables.astype(np.intp)


def _check_ll_options(ll_lambda, linear_correction_variables, n_features):
    lambdas = np.atleast_1d(np.asarray(ll_lambda, dtype=np.float64)).reshape(-1)
    if lambdas.shape[0] == 0:
        raise ValueError("At least one value of `ll_lambda` is required.")
    if np.any(~(lambdas >= 0)):
        raise ValueError("`ll_lambda` must be non-negative, got {}".format(lambdas.tolist()))
    return lambdas, _check_variables(linear_correction_variables, n_features, "linear_correction_variables")


class LocalLinearForest(RegressionForest):
    """
    A local linear forest: the forest weights of a query define a kernel under which a ridge
    regression of y on the covariates, centered at the query, is fitted; its intercept is the
    prediction. Predictions have one column per value of `ll_lambda`.

    Parameters
    ----------
    enable_ll_split : bool, default=False
        Whether trees split on the residuals of a ridge regression on `ll_split_variables`
        instead of on the raw outcome.

    ll_split_lambda : float, default=.1
        Ridge penalty of the regressions used for splitting.

    ll_split_weight_penalty : bool, default=False
        Whether the splitting penalty of each variable is scaled by its variance.

    ll_split_variables : list of int or None, default=None
        Covariates of the splitting regressions. None means all of them.

    ll_lambda : float or list of float, default=.1
        Ridge penalties of the prediction regressions.

    ll_weight_penalty : bool, default=False
        Whether the prediction penalty of each variable is scaled by its weighted second moment.

    linear_correction_variables : list of int or None, default=None
        Covariates of the prediction regressions. None means all of them.

    The other parameters are those of :class:`RegressionForest`.
    """

    def __init__(self,
                 n_estimators=100, *,
                 enable_ll_split=False,
                 ll_split_lambda=.1,
                 ll_split_weight_penalty=False,
                 ll_split_variables=None,
                 ll_lambda=.1,
                 ll_weight_penalty=False,
                 linear_correction_variables=None,
                 mtry=None,
                 min_node_size=5,
                 sample_fraction=.5,
                 honest=True,
                 honesty_fraction=.5,
                 honesty_prune_leaves=True,
                 alpha=.05,
                 imbalance_penalty=0.,
                 ci_group_size=2,
                 samples_per_cluster=None,
                 compute_oob_predictions=False,
                 n_jobs=-1,
                 random_state=None,
                 verbose=0):
        self.enable_ll_split = enable_ll_split
        self.ll_split_lambda = ll_split_lambda
        self.ll_split_weight_penalty = ll_split_weight_penalty
        self.ll_split_variables = ll_split_variables
        self.ll_lambda = ll_lambda
        self.ll_weight_penalty = ll_weight_penalty
        self.linear_correction_variables = linear_correction_variables
        super().__init__(n_estimators=n_estimators, mtry=mtry, min_node_size=min_node_size,
                         sample_fraction=sample_fraction, honest=honest, honesty_fraction=honesty_fraction,
                         honesty_prune_leaves=honesty_prune_leaves, alpha=alpha,
                         imbalance_penalty=imbalance_penalty, ci_group_size=ci_group_size,
                         samples_per_cluster=samples_per_cluster,
                         compute_oob_predictions=compute_oob_predictions, n_jobs=n_jobs,
                         random_state=random_state, verbose=verbose)

    def _get_trainer(self):
        if self.enable_ll_split:
            split_variables = _check_variables(self.ll_split_variables, self.n_features_in_, "ll_split_variables")
            return ll_regression_trainer(self.ll_split_lambda, self.ll_split_weight_penalty, split_variables)
        return ForestTrainer(RegressionRelabelingStrategy(), "regression")

    def _make_predictor(self, n_features):
        lambdas, variables = _check_ll_options(self.ll_lambda, self.linear_correction_variables, n_features)
        return local_linear_predictor(self.n_jobs, lambdas, self.ll_weight_penalty, variables,
                                      verbose=self.verbose)

    def _get_predictor(self):
        return self._make_predictor(self.n_features_in_)

    def fit(self, X, y, *, sample_weight=None, clusters=None):
        """
        Build a local linear forest from the training set (X, y). Invalid `ll_lambda`,
        `linear_correction_variables` or `ll_split_variables` raise a ValueError before any tree is grown.
        Parameters are those of :meth:`RegressionForest.fit`.
        """
        train_data, n_features, clusters = self._make_train_data(X, y, sample_weight=sample_weight,
                                                                 clusters=clusters)
        self._make_predictor(n_features)
        if self.enable_ll_split:
            _check_variables(self.ll_split_variables, n_features, "ll_split_variables")
        return self._fit(train_data, n_features, clusters)
