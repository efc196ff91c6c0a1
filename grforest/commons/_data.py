# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numbers
import numpy as np
import scipy.sparse
from sklearn.utils import check_array

__all__ = ["Data"]


def _check_index(index, num_cols, name):
    if index is None:
        return None
    if not isinstance(index, numbers.Integral) or isinstance(index, bool):
        raise ValueError("`{}` must be an integer column index, got {!r}".format(name, index))
    if not (0 <= index < num_cols):
        raise ValueError("`{}`={} is out of range for data with {} columns".format(name, index, num_cols))
    return int(index)


class Data:
    """
    A dense training (or query) matrix with named index slots for the outcome, treatment,
    instrument and weight columns.

    Columns bound to one of the slots are never used as split variables.

    Parameters
    ----------
    matrix : array-like or scipy sparse matrix of shape (num_rows, num_cols)
        The data. Sparse input is densified.
    outcome_index, treatment_index, instrument_index, weight_index : int or None, default None
        Column index of each observation. Indices are validated against the column count.
    """

    def __init__(self, matrix, *, outcome_index=None, treatment_index=None,
                 instrument_index=None, weight_index=None):
        if scipy.sparse.issparse(matrix):
            matrix = matrix.toarray()
        matrix = check_array(matrix, dtype=np.float64, ensure_min_samples=0, ensure_min_features=0,
                             copy=True)
        matrix.flags.writeable = False
        self._matrix = matrix
        num_cols = matrix.shape[1]
        self._outcome_index = _check_index(outcome_index, num_cols, "outcome_index")
        self._treatment_index = _check_index(treatment_index, num_cols, "treatment_index")
        self._instrument_index = _check_index(instrument_index, num_cols, "instrument_index")
        self._weight_index = _check_index(weight_index, num_cols, "weight_index")
        if self._weight_index is not None and np.any(matrix[:, self._weight_index] < 0):
            raise ValueError("Sample weights must be non-negative.")

    @classmethod
    def from_arrays(cls, X, y=None, T=None, Z=None, sample_weight=None):
        """ Stack covariates and the optional observation columns into a single matrix.

        The covariates occupy the first columns, so that column ``j`` of the result is
        column ``j`` of `X`; the observation columns follow in the order y, T, Z, sample_weight.
        """
        X = np.asarray(X, dtype=np.float64)
        columns = [X]
        indices = {}
        next_index = X.shape[1]
        for name, values in [("outcome_index", y), ("treatment_index", T),
                             ("instrument_index", Z), ("weight_index", sample_weight)]:
            if values is None:
                continue
            values = np.asarray(values, dtype=np.float64).reshape(-1)
            if values.shape[0] != X.shape[0]:
                raise ValueError("Found input variables with inconsistent numbers of samples: "
                                 "[{}, {}]".format(X.shape[0], values.shape[0]))
            columns.append(values.reshape(-1, 1))
            indices[name] = next_index
            next_index += 1
        return cls(np.hstack(columns), **indices)

    @property
    def matrix(self):
        return self._matrix

    @property
    def num_rows(self):
        return self._matrix.shape[0]

    @property
    def num_cols(self):
        return self._matrix.shape[1]

    @property
    def outcome_index(self):
        return self._outcome_index

    @property
    def treatment_index(self):
        return self._treatment_index

    @property
    def instrument_index(self):
        return self._instrument_index

    @property
    def weight_index(self):
        return self._weight_index

    @property
    def disallowed_split_variables(self):
        """ The columns bound to an observation slot. """
        return frozenset(index for index in (self._outcome_index, self._treatment_index,
                                             self._instrument_index, self._weight_index)
                         if index is not None)

    def get(self, row, col):
        return self._matrix[row, col]

    def get_values(self, rows, col):
        """ The values of column `col` at the given rows. """
        return self._matrix[rows, col]

    def get_columns(self, rows, cols):
        return self._matrix[np.ix_(rows, cols)]

    def _get_slot(self, index, name, rows):
        if index is None:
            raise ValueError("Data has no {} column.".format(name))
        if rows is None:
            return self._matrix[:, index]
        return self._matrix[rows, index]

    def get_outcomes(self, rows=None):
        return self._get_slot(self._outcome_index, "outcome", rows)

    def get_treatments(self, rows=None):
        return self._get_slot(self._treatment_index, "treatment", rows)

    def get_instruments(self, rows=None):
        return self._get_slot(self._instrument_index, "instrument", rows)

    def get_weights(self, rows=None):
        if self._weight_index is None:
            num = self.num_rows if rows is None else len(rows)
            return np.ones(num, dtype=np.float64)
        return self._matrix[:, self._weight_index] if rows is None else self._matrix[rows, self._weight_index]
