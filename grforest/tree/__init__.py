# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

from ._options import TreeOptions
from ._tree import Tree, TREE_LEAF, TREE_UNDEFINED
from ._splitting import (RegressionSplittingRule, ProbabilitySplittingRule,
                         InstrumentalSplittingRule, SPLITTING_RULES)
from ._trainer import TreeTrainer

__all__ = ["TreeOptions",
           "Tree",
           "TREE_LEAF",
           "TREE_UNDEFINED",
           "RegressionSplittingRule",
           "ProbabilitySplittingRule",
           "InstrumentalSplittingRule",
           "SPLITTING_RULES",
           "TreeTrainer"]
