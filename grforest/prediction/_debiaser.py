# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numpy as np
from scipy.special import log_ndtr
from scipy.stats import norm

__all__ = ["ObjectiveBayesDebiaser"]


class ObjectiveBayesDebiaser:
    """
    Removes the Monte Carlo noise of a finite forest from the between-group variance.

    The raw estimate ``var_between - group_noise`` is noisy when there are few ci-groups. Under a
    flat prior on the true variance restricted to be non-negative, with a normal approximation of
    the raw estimate whose standard error is ``max(var_between, group_noise) * sqrt(2 / num_good_groups)``,
    the posterior mean is::

        initial + se * phi(initial / se) / Phi(initial / se)

    which is always non-negative and converges to the raw estimate as the number of groups grows.
    """

    def debias(self, var_between, group_noise, num_good_groups):
        if num_good_groups <= 0:
            return np.nan
        initial_estimate = var_between - group_noise
        initial_se = max(var_between, group_noise) * np.sqrt(2. / num_good_groups)
        if not initial_se > 0:
            return max(initial_estimate, 0.)
        ratio = initial_estimate / initial_se
        # phi(r) / Phi(r) in log space stays finite far in the left tail
        correction = initial_se * np.exp(norm.logpdf(ratio) - log_ndtr(ratio))
        return max(initial_estimate + correction, 0.)
