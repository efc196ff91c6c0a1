# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

from ._relabeling import (RegressionRelabelingStrategy, QuantileRelabelingStrategy,
                          InstrumentalRelabelingStrategy, LLRelabelingStrategy,
                          RELABELING_STRATEGIES)

__all__ = ["RegressionRelabelingStrategy",
           "QuantileRelabelingStrategy",
           "InstrumentalRelabelingStrategy",
           "LLRelabelingStrategy",
           "RELABELING_STRATEGIES"]
