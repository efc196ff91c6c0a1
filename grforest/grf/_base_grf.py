# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numbers
from warnings import warn
from abc import ABCMeta, abstractmethod
import numpy as np
from sklearn.base import BaseEstimator
from sklearn.utils import check_random_state, check_array
from sklearn.utils.validation import check_is_fitted

from ..commons import Data
from ..forest import ForestOptions
from ..prediction import stack_predictions
from ..serialization import serialize_forest, deserialize_forest
from ..tree import TreeOptions
from ..utilities import _safe_norm_ppf

__all__ = ["BaseGRF"]

MAX_INT = np.iinfo(np.int32).max


def _default_mtry(n_features):
    return min(int(np.ceil(np.sqrt(n_features) + 20)), n_features)


class BaseGRF(BaseEstimator, metaclass=ABCMeta):
    """
    Base class for the generalized random forest estimators. It stores the training data next to
    the forest, since every prediction uses the training samples as the support of the forest
    weights.

    Warning: This class should not be used directly. Use derived classes
    instead.
    """

    def __init__(self,
                 n_estimators=100, *,
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
        self.n_estimators = n_estimators
        self.mtry = mtry
        self.min_node_size = min_node_size
        self.sample_fraction = sample_fraction
        self.honest = honest
        self.honesty_fraction = honesty_fraction
        self.honesty_prune_leaves = honesty_prune_leaves
        self.alpha = alpha
        self.imbalance_penalty = imbalance_penalty
        self.ci_group_size = ci_group_size
        self.samples_per_cluster = samples_per_cluster
        self.compute_oob_predictions = compute_oob_predictions
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.verbose = verbose

    @abstractmethod
    def _get_trainer(self):
        pass

    @abstractmethod
    def _get_predictor(self):
        pass

    def _check_X(self, X):
        return check_array(X, dtype=np.float64, ensure_min_features=1)

    def _make_options(self, n_features, clusters):
        mtry = _default_mtry(n_features) if self.mtry is None else self.mtry
        if isinstance(mtry, numbers.Integral) and mtry > n_features:
            raise ValueError("`mtry` must be at most the number of features ({}), got {}".format(n_features, mtry))
        tree_options = TreeOptions(mtry, self.min_node_size,
                                   honesty=self.honest,
                                   honesty_fraction=self.honesty_fraction,
                                   honesty_prune_leaves=self.honesty_prune_leaves,
                                   alpha=self.alpha,
                                   imbalance_penalty=self.imbalance_penalty)
        return ForestOptions(self.n_estimators, self.ci_group_size, self.sample_fraction, tree_options,
                             num_threads=self.n_jobs, random_seed=int(self.random_seed_),
                             clusters=clusters, samples_per_cluster=self.samples_per_cluster)

    def _fit(self, train_data, n_features, clusters):
        """ Grow the forest on an already assembled training :class:`Data`, whose first
        `n_features` columns are the covariates. """
        self.n_features_in_ = n_features
        self.random_seed_ = check_random_state(self.random_state).randint(MAX_INT)
        options = self._make_options(n_features, clusters)
        self.train_data_ = train_data
        self.forest_ = self._get_trainer().train(train_data, options, verbose=self.verbose)
        if self.compute_oob_predictions:
            self.oob_prediction_ = self.oob_predict()
        return self

    def _warn_failed(self, predictions):
        failed = [i for i, p in enumerate(predictions) if p.failed]
        if failed:
            warn("{} of {} rows are not covered by any tree and were predicted as NaN: {}".format(
                len(failed), len(predictions), failed[:10]), UserWarning)

    def _predict_point_and_var(self, X, var=False):
        check_is_fitted(self, 'forest_')
        X = self._check_X(X)
        if X.shape[1] != self.n_features_in_:
            raise ValueError("Number of features of the model must "
                             "match the input. Model n_features is %s and "
                             "input n_features is %s "
                             % (self.n_features_in_, X.shape[1]))
        predictions = self._get_predictor().predict(self.forest_, self.train_data_, Data(X),
                                                    estimate_variance=var)
        self._warn_failed(predictions)
        return self._stack(predictions, var, X.shape[0])

    def _stack(self, predictions, var, n_rows):
        point, pred_var = stack_predictions(predictions)
        point = point.reshape(n_rows, -1)
        if var:
            if pred_var is None:
                pred_var = np.full(point.shape, np.nan)
            return point, pred_var.reshape(point.shape)
        return point

    def oob_predict(self, estimate_variance=False):
        """ Return the out-of-bag prediction of every training sample, using only the trees that
        did not draw it.

        Parameters
        ----------
        estimate_variance : bool, default=False
            Whether to also return the variance of each prediction.

        Returns
        -------
        theta(x) : array-like of shape (n_samples, n_outputs)
            The out-of-bag estimate for each training row
        var(theta(x)) : array-like of shape (n_samples, n_outputs)
            Its variance. Return value is omitted if `estimate_variance=False`.
        """
        check_is_fitted(self, 'forest_')
        predictions = self._get_predictor().predict_oob(self.forest_, self.train_data_,
                                                        estimate_variance=estimate_variance)
        self._warn_failed(predictions)
        return self._stack(predictions, estimate_variance, self.train_data_.num_rows)

    def predict(self, X, interval=False, alpha=0.05):
        """ Return the estimate for each x in X.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            The input samples. Internally, it will be converted to
            ``dtype=np.float64``.
        interval : bool, default=False
            Whether to return a confidence interval too
        alpha : float in (0, 1), default=0.05
            The confidence level of the confidence interval. Returns a symmetric (alpha/2, 1-alpha/2)
            confidence interval.

        Returns
        -------
        theta(x) : array-like of shape (n_samples, n_outputs)
            The estimate for each row x of X
        lb(x), ub(x) : array-like of shape (n_samples, n_outputs)
            The lower and upper end of the confidence interval for each output. Return value is omitted if
            `interval=False`.
        """
        if interval:
            point, pred_var = self._predict_point_and_var(X, var=True)
            scale = np.sqrt(pred_var)
            lb = _safe_norm_ppf(alpha / 2, loc=point, scale=scale)
            ub = _safe_norm_ppf(1 - alpha / 2, loc=point, scale=scale)
            return point, lb, ub
        return self._predict_point_and_var(X, var=False)

    def predict_interval(self, X, alpha=0.05):
        """ Return the confidence interval of the estimate for each x in X.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            The input samples. Internally, it will be converted to
            ``dtype=np.float64``.
        alpha : float in (0, 1), default=0.05
            The confidence level of the confidence interval. Returns a symmetric (alpha/2, 1-alpha/2)
            confidence interval.

        Returns
        -------
        lb(x), ub(x) : array-like of shape (n_samples, n_outputs)
            The lower and upper end of the confidence interval for each output.
        """
        _, lb, ub = self.predict(X, interval=True, alpha=alpha)
        return lb, ub

    def predict_and_var(self, X):
        """ Return the estimate for each x in X and its variance.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            The input samples. Internally, it will be converted to
            ``dtype=np.float64``.

        Returns
        -------
        theta(x) : array-like of shape (n_samples, n_outputs)
            The estimate for each row of X
        var(theta(x)) : array-like of shape (n_samples, n_outputs)
            The variance of each output
        """
        return self._predict_point_and_var(X, var=True)

    def predict_var(self, X):
        """ Return the variance of the estimate for each x in X. """
        return self._predict_point_and_var(X, var=True)[1]

    def prediction_stderr(self, X):
        """ Return the standard deviation of the estimate for each x in X. """
        return np.sqrt(self.predict_var(X))

    def get_subsample_inds(self,):
        """ The training samples drawn by each tree, both honesty halves included.
        """
        check_is_fitted(self, 'forest_')
        return [tree.drawn_samples for tree in self.forest_]

    def feature_importances(self, max_depth=4, depth_decay_exponent=2.0):
        """
        The feature importances based on how often each feature is split on near the root.
        At each depth the split counts are normalized to frequencies; the frequencies of depth ``d``
        are re-weighted by ``(1 + d)**-depth_decay_exponent`` and averaged over depths.

        Parameters
        ----------
        max_depth : int, default=4
            Splits of depth larger than `max_depth` are not used in this calculation
        depth_decay_exponent: double, default=2.0
            The contribution of each split to the total score is re-weighted by 1 / (1 + `depth`)**2.0.

        Returns
        -------
        feature_importances_ : ndarray of shape (n_features,)
            Normalized split-frequency importance of each feature
        """
        check_is_fitted(self, 'forest_')
        frequencies = self.forest_.split_frequencies(max_depth)[:, :self.n_features_in_].astype(np.float64)
        frequencies /= np.maximum(1., np.sum(frequencies, axis=1, keepdims=True))
        depth_weights = np.arange(1, max_depth + 1, dtype=np.float64) ** -depth_decay_exponent
        return depth_weights @ frequencies / np.sum(depth_weights)

    @property
    def feature_importances_(self):
        return self.feature_importances()

    def serialize(self):
        """ The fitted forest as bytes, loadable with :meth:`deserialize` given the same training data. """
        check_is_fitted(self, 'forest_')
        return serialize_forest(self.forest_)

    def _load(self, blob, train_data, n_features):
        forest = deserialize_forest(blob)
        if forest.num_samples != train_data.num_rows or forest.num_features != train_data.num_cols:
            raise ValueError("The serialized forest was trained on data of shape ({}, {}) but the given "
                             "training data has shape ({}, {}).".format(forest.num_samples, forest.num_features,
                                                                       train_data.num_rows, train_data.num_cols))
        self.n_features_in_ = n_features
        self.random_seed_ = forest.options.random_seed
        self.train_data_ = train_data
        self.forest_ = forest
        return self

    def __len__(self):
        """Return the number of trees in the forest."""
        check_is_fitted(self, 'forest_')
        return len(self.forest_)

    def __getitem__(self, index):
        """Return the index'th tree in the forest."""
        check_is_fitted(self, 'forest_')
        return self.forest_[index]

    def __iter__(self):
        """Return iterator over trees in the forest."""
        check_is_fitted(self, 'forest_')
        return iter(self.forest_)
