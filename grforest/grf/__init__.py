# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

""" Scikit-learn style estimators backed by generalized random forests. """

from .classes import RegressionForest, QuantileForest, CausalForest, InstrumentalForest, LocalLinearForest

__all__ = ["RegressionForest",
           "QuantileForest",
           "CausalForest",
           "InstrumentalForest",
           "LocalLinearForest"]
