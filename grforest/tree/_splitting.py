# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numpy as np

from ..commons import ObservationType

__all__ = ["RegressionSplittingRule",
           "ProbabilitySplittingRule",
           "InstrumentalSplittingRule",
           "SPLITTING_RULES"]


class RegressionSplittingRule:
    """
    Chooses the split that maximizes the between-children heterogeneity of the responses.

    For a candidate split the criterion is::

        sum_k S_L[k]**2 / W_L + sum_k S_R[k]**2 / W_R - imbalance_penalty * (1 / n_L + 1 / n_R)

    where ``S`` are the weighted sums of the node-centered responses and ``W`` the total weights of
    each child. A split is only accepted if it strictly improves on the unsplit node.

    Parameters
    ----------
    alpha : float, default 0.05
        Each child holds at least ``max(ceil(alpha * n), 1)`` samples.
    imbalance_penalty : float, default 0
        Penalty on small children.
    """

    def __init__(self, alpha=0.05, imbalance_penalty=0.):
        self.alpha = alpha
        self.imbalance_penalty = imbalance_penalty

    def _response_matrix(self, responses):
        return np.asarray(responses, dtype=np.float64).reshape(-1, 1)

    def _child_constraints(self, samples, observations, min_child_size):
        """ Extra per-sample indicators that each child must hold at least `min_child_size` of. """
        return None

    def find_best_split(self, data, samples, responses, split_variables, observations):
        """
        Parameters
        ----------
        data : Data
            The training data.
        samples : ndarray of int
            The samples in the node.
        responses : ndarray of float of shape (len(samples),)
            Pseudo-outcomes of those samples, aligned with `samples`.
        split_variables : ndarray of int
            The candidate split variables, scanned in ascending order.
        observations : Observations
            The observation table the weights are read from.

        Returns
        -------
        split : tuple of (int, float) or None
            The best split variable and value, or None if no admissible split improves the node.
        """
        num_samples = len(samples)
        min_child_size = max(int(np.ceil(num_samples * self.alpha)), 1)
        if num_samples < 2 * min_child_size:
            return None

        weights = observations[ObservationType.WEIGHT][samples]
        total_weight = np.sum(weights)
        if total_weight <= 0:
            return None
        raw_values = self._response_matrix(responses)
        values = raw_values - weights @ raw_values / total_weight
        sums = weights[:, np.newaxis] * values
        total_sums = np.sum(sums, axis=0)
        parent_score = np.sum(total_sums ** 2) / total_weight
        tolerance = max(1e-10 * np.sum(weights[:, np.newaxis] * values ** 2),
                        1e-20 * np.sum(weights[:, np.newaxis] * raw_values ** 2))
        constraints = self._child_constraints(samples, observations, min_child_size)

        num_left = np.arange(1, num_samples)
        num_right = num_samples - num_left
        size_ok = (num_left >= min_child_size) & (num_right >= min_child_size)
        penalty = self.imbalance_penalty * (1. / num_left + 1. / num_right)

        best_score = parent_score + tolerance
        best_split = None
        for var in np.sort(split_variables):
            x = data.get_values(samples, var)
            order = np.argsort(x, kind='stable')
            sorted_x = x[order]
            weight_left = np.cumsum(weights[order])[:-1]
            weight_right = total_weight - weight_left
            valid = size_ok & (sorted_x[:-1] < sorted_x[1:]) & (weight_left > 0) & (weight_right > 0)
            if constraints is not None:
                for indicator in constraints:
                    count_left = np.cumsum(indicator[order])[:-1]
                    count_right = np.sum(indicator) - count_left
                    valid &= (count_left >= min_child_size) & (count_right >= min_child_size)
            if not np.any(valid):
                continue
            sum_left = np.cumsum(sums[order], axis=0)[:-1]
            sum_right = total_sums - sum_left
            with np.errstate(divide='ignore', invalid='ignore'):
                score = (np.sum(sum_left ** 2, axis=1) / weight_left +
                         np.sum(sum_right ** 2, axis=1) / weight_right - penalty)
            score[~valid] = -np.inf
            pos = int(np.argmax(score))
            if score[pos] > best_score:
                best_score = score[pos]
                best_split = (int(var), float(sorted_x[pos]))
        return best_split


class ProbabilitySplittingRule(RegressionSplittingRule):
    """ Splitting on class labels (e.g. quantile buckets): the criterion sums the squared weighted
    class counts of each child. """

    def _response_matrix(self, responses):
        labels = np.asarray(responses).astype(np.intp)
        num_classes = int(np.max(labels)) + 1
        one_hot = np.zeros((labels.shape[0], num_classes))
        one_hot[np.arange(labels.shape[0]), labels] = 1.
        return one_hot


class InstrumentalSplittingRule(RegressionSplittingRule):
    """
    Regression splitting on instrumental pseudo-outcomes. With `stabilize_splits`, each child must
    also hold at least the minimum child size of samples whose instrument lies below, and of samples
    whose instrument lies above, the node's weighted mean instrument.
    """

    def __init__(self, alpha=0.05, imbalance_penalty=0., stabilize_splits=False):
        super().__init__(alpha=alpha, imbalance_penalty=imbalance_penalty)
        self.stabilize_splits = stabilize_splits

    def _child_constraints(self, samples, observations, min_child_size):
        if not self.stabilize_splits:
            return None
        instruments = observations[ObservationType.INSTRUMENT][samples]
        weights = observations[ObservationType.WEIGHT][samples]
        mean_instrument = np.dot(weights, instruments) / np.sum(weights)
        below = (instruments < mean_instrument).astype(np.intp)
        return [below, 1 - below]


SPLITTING_RULES = {"regression": RegressionSplittingRule,
                   "probability": ProbabilitySplittingRule,
                   "instrumental": InstrumentalSplittingRule}
