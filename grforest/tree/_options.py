# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import numbers

__all__ = ["TreeOptions"]


class TreeOptions:
    """
    Options shared (read-only) by every tree of a forest.

    Parameters
    ----------
    mtry : int
        Number of candidate split variables drawn at each node.
    min_node_size : int
        A node with at most this many samples is not split further.
    disallowed_split_variables : iterable of int, default ()
        Columns that are never used to split.
    honesty : bool, default True
        Whether splits are chosen on one half of the tree's sample and leaves populated with the other.
    honesty_fraction : float, default 0.5
        Fraction of the tree's sample used to choose splits when `honesty` is on.
    honesty_prune_leaves : bool, default True
        Whether leaves left empty by the estimation half are pruned away.
    alpha : float, default 0.05
        Each child of a split holds at least ``ceil(alpha * n)`` of the node's samples.
    imbalance_penalty : float, default 0
        Penalty on splits with small children.
    """

    def __init__(self, mtry, min_node_size, disallowed_split_variables=(), honesty=True,
                 honesty_fraction=0.5, honesty_prune_leaves=True, alpha=0.05, imbalance_penalty=0.):
        if not isinstance(mtry, numbers.Integral) or mtry < 1:
            raise ValueError("`mtry` must be a positive integer, got {}".format(mtry))
        if not isinstance(min_node_size, numbers.Integral) or min_node_size < 1:
            raise ValueError("`min_node_size` must be a positive integer, got {}".format(min_node_size))
        if not isinstance(honesty_fraction, numbers.Real) or not (0 < honesty_fraction < 1):
            raise ValueError("`honesty_fraction` must be in the open interval (0, 1), "
                             "got {}".format(honesty_fraction))
        if not isinstance(alpha, numbers.Real) or not (0 <= alpha < 0.25):
            raise ValueError("`alpha` must be in [0, 0.25), got {}".format(alpha))
        if not isinstance(imbalance_penalty, numbers.Real) or imbalance_penalty < 0:
            raise ValueError("`imbalance_penalty` must be non-negative, got {}".format(imbalance_penalty))
        disallowed = []
        for var in disallowed_split_variables:
            if not isinstance(var, numbers.Integral) or var < 0:
                raise ValueError("Disallowed split variables must be non-negative column indices, "
                                 "got {!r}".format(var))
            disallowed.append(int(var))
        self._mtry = int(mtry)
        self._min_node_size = int(min_node_size)
        self._disallowed_split_variables = frozenset(disallowed)
        self._honesty = bool(honesty)
        self._honesty_fraction = float(honesty_fraction)
        self._honesty_prune_leaves = bool(honesty_prune_leaves)
        self._alpha = float(alpha)
        self._imbalance_penalty = float(imbalance_penalty)

    mtry = property(lambda self: self._mtry)
    min_node_size = property(lambda self: self._min_node_size)
    disallowed_split_variables = property(lambda self: self._disallowed_split_variables)
    honesty = property(lambda self: self._honesty)
    honesty_fraction = property(lambda self: self._honesty_fraction)
    honesty_prune_leaves = property(lambda self: self._honesty_prune_leaves)
    alpha = property(lambda self: self._alpha)
    imbalance_penalty = property(lambda self: self._imbalance_penalty)

    def to_dict(self):
        return {"mtry": self._mtry,
                "min_node_size": self._min_node_size,
                "disallowed_split_variables": sorted(self._disallowed_split_variables),
                "honesty": self._honesty,
                "honesty_fraction": self._honesty_fraction,
                "honesty_prune_leaves": self._honesty_prune_leaves,
                "alpha": self._alpha,
                "imbalance_penalty": self._imbalance_penalty}

    @classmethod
    def from_dict(cls, options):
        return cls(**options)

    def __eq__(self, other):
        if not isinstance(other, TreeOptions):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash(tuple(sorted((k, tuple(v) if isinstance(v, list) else v)
                                 for k, v in self.to_dict().items())))

    def __repr__(self):
        return "TreeOptions({})".format(", ".join("{}={!r}".format(k, v) for k, v in self.to_dict().items()))
