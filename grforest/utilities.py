# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

"""Utility methods."""

import numpy as np
import scipy.stats
from sklearn.utils import check_X_y, check_consistent_length, column_or_1d
from sklearn.utils.validation import _check_sample_weight


def check_inputs(X, y, T=None, Z=None, sample_weight=None, clusters=None):
    """
    Input validation for forest estimators.

    Checks X, y, T, Z, sample_weight and clusters for consistent length and enforces X to be 2d
    and every other input to be 1d. Converts regular Python lists and pandas objects to numpy arrays.

    Parameters
    ----------
    X : array_like, shape (n, d_x)
        Covariates the forest splits on.

    y : array_like, shape (n, )
        Outcome.

    T : array_like, shape (n, ), optional
        Treatment.

    Z : array_like, shape (n, ), optional
        Instrument.

    sample_weight : array_like, shape (n, ), optional
        Non-negative weights of the samples.

    clusters : array_like of int, shape (n, ), optional
        Cluster id of each sample.

    Returns
    -------
    X, y, T, Z, sample_weight, clusters : ndarray
        Converted and validated inputs; the optional ones stay None when not given.
    """
    X, y = check_X_y(X, y, y_numeric=True, dtype=np.float64)
    if T is not None:
        T = column_or_1d(T).astype(np.float64)
    if Z is not None:
        Z = column_or_1d(Z).astype(np.float64)
    if clusters is not None:
        clusters = column_or_1d(clusters)
        if not np.issubdtype(clusters.dtype, np.integer):
            raise ValueError("Cluster ids must be integers.")
    check_consistent_length(*[a for a in (X, y, T, Z, clusters) if a is not None])
    if sample_weight is not None:
        sample_weight = _check_sample_weight(sample_weight, X, dtype=np.float64)
        if np.any(sample_weight < 0):
            raise ValueError("Sample weights must be non-negative.")
    for name, a in [("T", T), ("Z", Z)]:
        if a is not None and not np.all(np.isfinite(a)):
            raise ValueError("Input {} contains NaN or infinity.".format(name))
    return X, y, T, Z, sample_weight, clusters


def _safe_norm_ppf(q, loc=0, scale=1):
    """ Normal quantiles that collapse to `loc` where the scale is zero and are NaN where it is unknown. """
    loc = np.asarray(loc, dtype=np.float64)
    scale = np.broadcast_to(np.asarray(scale, dtype=np.float64), loc.shape)
    prelim = loc.copy()
    positive = scale > 0
    if np.any(positive):
        prelim[positive] = scipy.stats.norm.ppf(q, loc=loc[positive], scale=scale[positive])
    prelim[np.isnan(scale)] = np.nan
    return prelim
