# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

"""
Prediction strategies.

Optimized strategies precompute a vector of leaf summaries for every tree at training time; a
prediction averages the summaries of the leaves a query falls into. Default strategies instead
receive the forest weights of the query over the training samples.

Variance estimates follow the little-bags construction: trees come in ci-groups grown on the same
half-sample, and the between-group variance of per-tree influence values is debiased by the
within-group noise.
"""

import numbers
import numpy as np

from ..commons import ObservationType
from ._collector import QueryCoverageError
from ._debiaser import ObjectiveBayesDebiaser

__all__ = ["RegressionPredictionStrategy",
           "InstrumentalPredictionStrategy",
           "QuantilePredictionStrategy",
           "LocalLinearPredictionStrategy",
           "LocalLinearCausalPredictionStrategy",
           "PREDICTION_STRATEGIES"]


def _grouped_variance(psi, ci_group_size, debiaser):
    """
    Debiased variance of the forest average of the per-tree values `psi` of shape (num_trees,).
    Trees that did not contribute carry NaN, and any group holding such a tree is skipped.
    """
    groups = np.asarray(psi, dtype=np.float64).reshape(-1, ci_group_size)
    good_groups = groups[~np.any(np.isnan(groups), axis=1)]
    num_good_groups = good_groups.shape[0]
    if num_good_groups == 0:
        return np.nan
    var_between = np.mean(np.mean(good_groups, axis=1) ** 2)
    var_total = np.mean(good_groups ** 2)
    group_noise = (var_total - var_between) / (ci_group_size - 1)
    return debiaser.debias(var_between, group_noise, num_good_groups)


def _leaf_means(tree, columns):
    """ Per-node means of the rows of `columns` indexed by each leaf's estimation samples.
    Internal and empty nodes get NaN. """
    values = np.full((tree.node_count, columns.shape[1]), np.nan)
    sizes = tree.leaf_sizes
    for node in np.flatnonzero(sizes > 0):
        values[node] = np.mean(columns[tree.get_leaf_samples(node)], axis=0)
    return values


class RegressionPredictionStrategy:
    """ Weighted conditional mean of the outcome. Leaf summaries are the means of ``w * y`` and ``w``. """

    optimized = True
    prediction_length = 1
    supports_variance = True

    OUTCOME = 0
    WEIGHT = 1

    def __init__(self):
        self.debiaser = ObjectiveBayesDebiaser()

    def precompute_prediction_values(self, tree, observations):
        weights = observations[ObservationType.WEIGHT]
        columns = np.column_stack([weights * observations[ObservationType.OUTCOME], weights])
        return _leaf_means(tree, columns)

    def predict(self, average):
        if not average[self.WEIGHT] > 0:
            raise QueryCoverageError("The leaves covering the query hold no sample weight.")
        return np.array([average[self.OUTCOME] / average[self.WEIGHT]])

    def compute_variance(self, average, leaf_values, ci_group_size):
        average_weight = average[self.WEIGHT]
        mu = average[self.OUTCOME] / average_weight
        psi = leaf_values[:, self.OUTCOME] - leaf_values[:, self.WEIGHT] * mu
        variance = _grouped_variance(psi, ci_group_size, self.debiaser)
        return np.array([variance / average_weight ** 2])


class InstrumentalPredictionStrategy:
    """
    Local instrumental-variables estimate of the treatment effect

        tau = (E[ZY] - E[Z] E[Y]) / (E[ZW] - E[Z] E[W])

    where the expectations are forest-weighted. With the treatment as its own instrument this is
    the causal forest estimate under unconfoundedness.
    """

    optimized = True
    prediction_length = 1
    supports_variance = True

    OUTCOME = 0
    TREATMENT = 1
    INSTRUMENT = 2
    OUTCOME_INSTRUMENT = 3
    TREATMENT_INSTRUMENT = 4
    WEIGHT = 5

    def __init__(self):
        self.debiaser = ObjectiveBayesDebiaser()

    def precompute_prediction_values(self, tree, observations):
        weights = observations[ObservationType.WEIGHT]
        outcomes = observations[ObservationType.OUTCOME]
        treatments = observations[ObservationType.TREATMENT]
        instruments = observations[ObservationType.INSTRUMENT]
        columns = np.column_stack([weights * outcomes,
                                   weights * treatments,
                                   weights * instruments,
                                   weights * outcomes * instruments,
                                   weights * treatments * instruments,
                                   weights])
        return _leaf_means(tree, columns)

    def _estimate(self, average):
        total_weight = average[self.WEIGHT]
        outcome = average[self.OUTCOME] / total_weight
        treatment = average[self.TREATMENT] / total_weight
        instrument = average[self.INSTRUMENT] / total_weight
        outcome_instrument = average[self.OUTCOME_INSTRUMENT] / total_weight
        treatment_instrument = average[self.TREATMENT_INSTRUMENT] / total_weight
        denominator = treatment_instrument - treatment * instrument
        tau = (outcome_instrument - outcome * instrument) / denominator
        mu = outcome - tau * treatment
        return tau, mu, instrument, denominator

    def predict(self, average):
        if not average[self.WEIGHT] > 0:
            raise QueryCoverageError("The leaves covering the query hold no sample weight.")
        with np.errstate(divide='ignore', invalid='ignore'):
            tau, _, _, _ = self._estimate(average)
        return np.array([tau])

    def compute_variance(self, average, leaf_values, ci_group_size):
        with np.errstate(divide='ignore', invalid='ignore'):
            tau, mu, instrument, denominator = self._estimate(average)
        if not np.isfinite(tau):
            return np.array([np.nan])
        psi_instrument = (leaf_values[:, self.OUTCOME_INSTRUMENT] - leaf_values[:, self.INSTRUMENT] * mu -
                          leaf_values[:, self.TREATMENT_INSTRUMENT] * tau)
        psi_outcome = (leaf_values[:, self.OUTCOME] - leaf_values[:, self.TREATMENT] * tau -
                       leaf_values[:, self.WEIGHT] * mu)
        psi = (psi_instrument - instrument * psi_outcome) / (denominator * average[self.WEIGHT])
        return np.array([_grouped_variance(psi, ci_group_size, self.debiaser)])


class QuantilePredictionStrategy:
    """
    Quantiles of the training outcomes under the forest weights times the sample weights.

    Parameters
    ----------
    quantiles : array-like of float
        Quantiles to predict, each in (0, 1).
    """

    optimized = False
    supports_variance = False

    def __init__(self, quantiles):
        quantiles = np.asarray(quantiles, dtype=np.float64).reshape(-1)
        if quantiles.shape[0] == 0 or np.any(~(quantiles > 0) | ~(quantiles < 1)):
            raise ValueError("Quantiles must lie strictly between 0 and 1, got {}".format(quantiles.tolist()))
        self.quantiles = quantiles

    @property
    def prediction_length(self):
        return self.quantiles.shape[0]

    def check_columns(self, train_data, data):
        if train_data.outcome_index is None:
            raise ValueError("Quantile prediction needs training data with an outcome column.")

    def predict(self, samples, weights, train_data, data, row):
        outcomes = train_data.get_outcomes(samples)
        weights = weights * train_data.get_weights(samples)
        order = np.argsort(outcomes, kind='stable')
        cumulative = np.cumsum(weights[order])
        if not cumulative[-1] > 0:
            return np.full(self.prediction_length, np.nan)
        cumulative /= cumulative[-1]
        positions = np.searchsorted(cumulative, self.quantiles, side='left')
        return outcomes[order][np.minimum(positions, order.shape[0] - 1)]


class LocalLinearPredictionStrategy:
    """
    Forest-weighted local linear regression.

    For each penalty ``lambda`` in `lambdas`, fits a ridge regression of the outcome on the
    correction variables centered at the query point, with the forest weights as observation
    weights and an unpenalized intercept, and predicts the intercept. The weighted Gram matrix is
    shared across the regularization path.

    Parameters
    ----------
    lambdas : array-like of float
        Ridge penalties, each non-negative.
    weight_penalty : bool
        Whether the penalty of each variable is scaled by the diagonal of the Gram matrix.
    linear_correction_variables : array-like of int
        Covariate columns of the regression.
    """

    optimized = False
    supports_variance = True

    def __init__(self, lambdas, weight_penalty, linear_correction_variables):
        lambdas = np.asarray(lambdas, dtype=np.float64).reshape(-1)
        if lambdas.shape[0] == 0:
            raise ValueError("At least one value of `lambda` is required for local linear prediction.")
        if np.any(~(lambdas >= 0)):
            raise ValueError("Local linear penalties must be non-negative, got {}".format(lambdas.tolist()))
        variables = np.asarray(linear_correction_variables).reshape(-1)
        if variables.shape[0] == 0 or not all(isinstance(v, numbers.Integral) for v in variables.tolist()):
            raise ValueError("`linear_correction_variables` must be a non-empty list of column indices.")
        self.lambdas = lambdas
        self.weight_penalty = bool(weight_penalty)
        self.linear_correction_variables = variables.astype(np.intp)
        self.debiaser = ObjectiveBayesDebiaser()

    @property
    def prediction_length(self):
        return self.lambdas.shape[0]

    def check_columns(self, train_data, data):
        if train_data.outcome_index is None:
            raise ValueError("Local linear prediction needs training data with an outcome column.")
        num_cols = min(train_data.num_cols, data.num_cols)
        if np.any(self.linear_correction_variables < 0) or np.any(self.linear_correction_variables >= num_cols):
            raise ValueError("Linear correction variables {} are out of range for data with {} columns".format(
                self.linear_correction_variables.tolist(), num_cols))

    def _design(self, samples, train_data, data, row):
        query = data.get_columns([row], self.linear_correction_variables)[0]
        design = np.ones((samples.shape[0], self.linear_correction_variables.shape[0] + 1))
        design[:, 1:] = train_data.get_columns(samples, self.linear_correction_variables) - query
        return design

    def _target(self):
        """ Index of the predicted coefficient in the design. """
        return 0

    def _penalized(self, gram, penalty):
        penalized = gram.copy()
        ridge = np.full(gram.shape[0], penalty)
        if self.weight_penalty:
            ridge *= np.diag(gram)
        # the intercept and the predicted coefficient are never shrunk
        ridge[0] = 0
        ridge[self._target()] = 0
        penalized[np.diag_indices_from(penalized)] += ridge
        return penalized

    def _solve(self, gram, rhs):
        try:
            solution = np.linalg.solve(gram, rhs)
        except np.linalg.LinAlgError:
            return None
        if not np.all(np.isfinite(solution)):
            return None
        return solution

    def predict(self, samples, weights, train_data, data, row):
        design = self._design(samples, train_data, data, row)
        weights = weights * train_data.get_weights(samples)
        outcomes = train_data.get_outcomes(samples)
        gram = design.T @ (weights[:, np.newaxis] * design)
        rhs = design.T @ (weights * outcomes)
        predictions = np.full(self.prediction_length, np.nan)
        for i, penalty in enumerate(self.lambdas):
            theta = self._solve(self._penalized(gram, penalty), rhs)
            if theta is not None:
                predictions[i] = theta[self._target()]
        return predictions

    def compute_variance(self, samples, weights, train_data, data, row, samples_by_tree, ci_group_size):
        """
        Variance of the prediction at every penalty. `samples_by_tree` holds, for every tree, the
        training samples of the leaf the query falls into, or None when the tree is excluded.

        The influence of sample ``i`` on the predicted coefficient is the pseudo-residual
        ``w_i (e' M^-1 x_i) (y_i - x_i' theta)``, with ``e`` the unit vector of that coefficient;
        its per-tree leaf averages feed the grouped variance estimate.
        """
        design = self._design(samples, train_data, data, row)
        sample_weights = train_data.get_weights(samples)
        weights = weights * sample_weights
        outcomes = train_data.get_outcomes(samples)
        gram = design.T @ (weights[:, np.newaxis] * design)
        rhs = design.T @ (weights * outcomes)
        e_target = np.zeros(gram.shape[0])
        e_target[self._target()] = 1.

        position = {sample: i for i, sample in enumerate(samples.tolist())}
        leaves = [None if leaf_samples is None or leaf_samples.shape[0] == 0
                  else np.array([position[s] for s in leaf_samples.tolist()], dtype=np.intp)
                  for leaf_samples in samples_by_tree]

        variances = np.full(self.prediction_length, np.nan)
        for i, penalty in enumerate(self.lambdas):
            penalized = self._penalized(gram, penalty)
            theta = self._solve(penalized, rhs)
            zeta = self._solve(penalized, e_target)
            if theta is None or zeta is None:
                continue
            pseudo_residuals = sample_weights * (design @ zeta) * (outcomes - design @ theta)
            psi = np.array([np.nan if leaf is None else np.mean(pseudo_residuals[leaf]) for leaf in leaves])
            variances[i] = _grouped_variance(psi, ci_group_size, self.debiaser)
        return variances


class LocalLinearCausalPredictionStrategy(LocalLinearPredictionStrategy):
    """
    Forest-weighted local linear treatment effect.

    For each penalty, fits a weighted ridge regression of the outcome on
    ``[1, x - x0, W, W (x - x0)]``, where ``W`` is the treatment and ``x0`` the query, and predicts
    the coefficient of ``W``. Only the slopes are penalized. Parameters are those of
    :class:`LocalLinearPredictionStrategy`.
    """

    def check_columns(self, train_data, data):
        super().check_columns(train_data, data)
        if train_data.treatment_index is None:
            raise ValueError("Local linear causal prediction needs training data with a treatment column.")

    def _target(self):
        return self.linear_correction_variables.shape[0] + 1

    def _design(self, samples, train_data, data, row):
        base = super()._design(samples, train_data, data, row)
        treatments = train_data.get_treatments(samples)
        return np.column_stack([base, treatments[:, np.newaxis] * base])


PREDICTION_STRATEGIES = {"regression": RegressionPredictionStrategy,
                         "instrumental": InstrumentalPredictionStrategy,
                         "quantile": QuantilePredictionStrategy,
                         "local_linear": LocalLinearPredictionStrategy,
                         "local_linear_causal": LocalLinearCausalPredictionStrategy}
