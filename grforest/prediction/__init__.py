# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

from ._debiaser import ObjectiveBayesDebiaser
from ._collector import PredictionCollector, QueryCoverageError
from ._strategies import (RegressionPredictionStrategy, InstrumentalPredictionStrategy,
                          QuantilePredictionStrategy, LocalLinearPredictionStrategy,
                          LocalLinearCausalPredictionStrategy, PREDICTION_STRATEGIES)
from ._predictor import (Prediction, ForestPredictor, stack_predictions, regression_predictor,
                         instrumental_predictor, quantile_predictor, local_linear_predictor,
                         ll_causal_predictor)

__all__ = ["ObjectiveBayesDebiaser",
           "PredictionCollector",
           "QueryCoverageError",
           "RegressionPredictionStrategy",
           "InstrumentalPredictionStrategy",
           "QuantilePredictionStrategy",
           "LocalLinearPredictionStrategy",
           "LocalLinearCausalPredictionStrategy",
           "PREDICTION_STRATEGIES",
           "Prediction",
           "ForestPredictor",
           "stack_predictions",
           "regression_predictor",
           "instrumental_predictor",
           "quantile_predictor",
           "local_linear_predictor",
           "ll_causal_predictor"]
