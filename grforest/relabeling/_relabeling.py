# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

"""
Relabeling strategies turn the raw observations of the samples in a node into the
per-sample pseudo-outcomes that drive the choice of a split. Every strategy returns
an array aligned with the order of the `samples` it was given, or ``None`` when the
node should not be split.
"""

import numbers
import numpy as np

from ..commons import ObservationType

__all__ = ["RegressionRelabelingStrategy",
           "QuantileRelabelingStrategy",
           "InstrumentalRelabelingStrategy",
           "LLRelabelingStrategy",
           "RELABELING_STRATEGIES"]


def _check_quantiles(quantiles):
    quantiles = np.asarray(quantiles, dtype=np.float64).reshape(-1)
    if quantiles.shape[0] == 0:
        raise ValueError("At least one quantile must be given.")
    if np.any(~np.isfinite(quantiles)) or np.any(quantiles <= 0) or np.any(quantiles >= 1):
        raise ValueError("Quantiles must lie strictly between 0 and 1, got {}".format(quantiles.tolist()))
    return quantiles


class RegressionRelabelingStrategy:
    """ Splits on the raw outcome. """

    def relabel(self, samples, observations, data=None):
        if len(samples) < 2:
            return None
        return np.array(observations[ObservationType.OUTCOME][samples])


class QuantileRelabelingStrategy:
    """
    Replaces each outcome by the index of the quantile bucket it falls into.

    The cutoff of quantile ``q`` is the order statistic of the node's outcomes at position
    ``ceil(n * q) - 1``. The label of a sample is the number of cutoffs strictly below its outcome.

    Parameters
    ----------
    quantiles : array-like of float
        Target quantiles, each in (0, 1).
    """

    def __init__(self, quantiles):
        self.quantiles = _check_quantiles(quantiles)

    def relabel(self, samples, observations, data=None):
        num_samples = len(samples)
        if num_samples < 2:
            return None
        outcomes = observations[ObservationType.OUTCOME][samples]
        sorted_outcomes = np.sort(outcomes, kind='stable')
        positions = np.ceil(num_samples * self.quantiles).astype(np.intp) - 1
        positions = np.clip(positions, 0, num_samples - 1)
        cutoffs = np.unique(sorted_outcomes[positions])
        labels = np.searchsorted(cutoffs, outcomes, side='left').astype(np.float64)
        if np.unique(labels).shape[0] < 2:
            return None
        return labels


class InstrumentalRelabelingStrategy:
    """
    Pseudo-outcomes from the local instrumental-variables moment condition.

    Within a node the local effect is
    ``tau = sum w (Z - Zbar) (Y - Ybar) / sum w (Z - Zbar) (W - Wbar)``
    and the pseudo-outcome of a sample is ``(Zt - Ztbar) * ((Y - Ybar) - tau (W - Wbar))``
    where ``Zt = (1 - reduced_form_weight) Z + reduced_form_weight W``.

    Parameters
    ----------
    reduced_form_weight : float, default 0
        How much weight to put on the reduced form (treatment) in place of the instrument.
    stabilize_splits : bool, default False
        Whether splits are constrained to keep instrument variation in each child. The
        constraint itself is enforced by :class:`~grforest.tree.InstrumentalSplittingRule`.
    """

    def __init__(self, reduced_form_weight=0., stabilize_splits=False):
        if not isinstance(reduced_form_weight, numbers.Real) or not (0 <= reduced_form_weight <= 1):
            raise ValueError("`reduced_form_weight` must be in [0, 1], got {}".format(reduced_form_weight))
        self.reduced_form_weight = float(reduced_form_weight)
        self.stabilize_splits = bool(stabilize_splits)

    def relabel(self, samples, observations, data=None):
        if len(samples) < 2:
            return None
        weights = observations[ObservationType.WEIGHT][samples]
        total_weight = np.sum(weights)
        if total_weight <= 0:
            return None
        outcomes = observations[ObservationType.OUTCOME][samples]
        treatments = observations[ObservationType.TREATMENT][samples]
        instruments = observations[ObservationType.INSTRUMENT][samples]

        centered_outcomes = outcomes - np.dot(weights, outcomes) / total_weight
        centered_treatments = treatments - np.dot(weights, treatments) / total_weight
        centered_instruments = instruments - np.dot(weights, instruments) / total_weight

        denominator = np.sum(weights * centered_instruments * centered_treatments)
        if abs(denominator) <= 1e-10:
            return None
        local_effect = np.sum(weights * centered_instruments * centered_outcomes) / denominator

        residuals = centered_outcomes - local_effect * centered_treatments
        regularized_instruments = ((1 - self.reduced_form_weight) * centered_instruments +
                                   self.reduced_form_weight * centered_treatments)
        return regularized_instruments * residuals


class LLRelabelingStrategy:
    """
    Residuals of a ridge regression of the outcome on a subset of the covariates.

    Parameters
    ----------
    split_lambda : float
        Ridge penalty. The intercept is never penalized.
    weight_penalty : bool
        Whether the penalty of each variable is scaled by the diagonal of the Gram matrix.
    split_variables : array-like of int
        Covariate columns the regression is fitted on.
    """

    def __init__(self, split_lambda, weight_penalty, split_variables):
        if not isinstance(split_lambda, numbers.Real) or split_lambda < 0:
            raise ValueError("`split_lambda` must be a non-negative number, got {}".format(split_lambda))
        self.split_lambda = float(split_lambda)
        self.weight_penalty = bool(weight_penalty)
        self.split_variables = np.asarray(split_variables, dtype=np.intp).reshape(-1)

    def relabel(self, samples, observations, data=None):
        num_samples = len(samples)
        if num_samples < 2:
            return None
        if data is None:
            raise ValueError("Local linear relabeling needs the training data.")
        design = np.ones((num_samples, self.split_variables.shape[0] + 1))
        design[:, 1:] = data.get_columns(samples, self.split_variables)
        outcomes = observations[ObservationType.OUTCOME][samples]

        gram = design.T @ design
        penalty = np.full(design.shape[1], self.split_lambda)
        if self.weight_penalty:
            penalty *= np.diag(gram)
        penalty[0] = 0
        gram[np.diag_indices_from(gram)] += penalty
        try:
            coefficients = np.linalg.solve(gram, design.T @ outcomes)
        except np.linalg.LinAlgError:
            return None
        if not np.all(np.isfinite(coefficients)):
            return None
        return outcomes - design @ coefficients


RELABELING_STRATEGIES = {"regression": RegressionRelabelingStrategy,
                         "quantile": QuantileRelabelingStrategy,
                         "instrumental": InstrumentalRelabelingStrategy,
                         "local_linear": LLRelabelingStrategy}
