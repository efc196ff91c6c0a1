# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

from ._data import Data
from ._observations import Observations, ObservationType

__all__ = ["Data",
           "Observations",
           "ObservationType"]
