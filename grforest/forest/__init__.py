# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

from ._options import ForestOptions
from ._forest import Forest
from ._sampling import RandomSampler
from ._trainer import (ForestTrainer, regression_trainer, quantile_trainer,
                       instrumental_trainer, ll_regression_trainer)

__all__ = ["ForestOptions",
           "Forest",
           "RandomSampler",
           "ForestTrainer",
           "regression_trainer",
           "quantile_trainer",
           "instrumental_trainer",
           "ll_regression_trainer"]
