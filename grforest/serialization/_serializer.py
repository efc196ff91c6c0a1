# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

import io
import json
import logging
import struct
import zipfile
import numpy as np

from ..forest import Forest, ForestOptions
from ..tree import Tree

__all__ = ["ForestSerializer",
           "SerializationError",
           "serialize_forest",
           "deserialize_forest"]

logger = logging.getLogger(__name__)

MAGIC = b"GRFF"
FORMAT_VERSION = 1
_HEADER = struct.Struct("<4sH")

_TREE_ARRAYS = ["children_left", "children_right", "feature", "threshold",
                "leaf_samples", "leaf_samples_ptr", "split_samples", "split_samples_ptr",
                "drawn_samples"]


class SerializationError(ValueError):
    """ Raised when a byte stream does not hold a valid serialized forest. """


class ForestSerializer:
    """
    Converts a :class:`~grforest.forest.Forest` to and from bytes.

    The stream starts with the magic bytes ``GRFF`` and a little-endian uint16 format version,
    followed by an uncompressed ``.npz`` archive holding the forest options as JSON and the node
    arrays, leaf tables and precomputed leaf values of every tree. Arrays are stored verbatim, so
    a round trip reproduces every float bit for bit.
    """

    def serialize(self, forest):
        arrays = {"options": np.frombuffer(json.dumps(forest.options.to_dict()).encode("utf-8"), dtype=np.uint8),
                  "shape": np.array([len(forest), forest.num_samples, forest.num_features], dtype=np.int64)}
        for t, tree in enumerate(forest):
            for name in _TREE_ARRAYS:
                arrays["{}_{}".format(name, t)] = getattr(tree, name)
            if tree.prediction_values is not None:
                arrays["prediction_values_{}".format(t)] = tree.prediction_values
        buffer = io.BytesIO()
        np.savez(buffer, **arrays)
        blob = _HEADER.pack(MAGIC, FORMAT_VERSION) + buffer.getvalue()
        logger.debug("Serialized a forest of %d trees into %d bytes", len(forest), len(blob))
        return blob

    def deserialize(self, blob):
        blob = bytes(blob)
        if len(blob) < _HEADER.size:
            raise SerializationError("The stream is too short to hold a serialized forest.")
        magic, version = _HEADER.unpack_from(blob)
        if magic != MAGIC:
            raise SerializationError("The stream does not start with the forest magic bytes.")
        if version != FORMAT_VERSION:
            raise SerializationError("Unsupported forest format version {}; expected {}.".format(
                version, FORMAT_VERSION))
        try:
            with np.load(io.BytesIO(blob[_HEADER.size:]), allow_pickle=False) as archive:
                options = ForestOptions.from_dict(json.loads(archive["options"].tobytes().decode("utf-8")))
                num_trees, num_samples, num_features = (int(v) for v in archive["shape"])
                trees = []
                for t in range(num_trees):
                    tree_arrays = {name: archive["{}_{}".format(name, t)] for name in _TREE_ARRAYS}
                    key = "prediction_values_{}".format(t)
                    prediction_values = archive[key] if key in archive.files else None
                    trees.append(Tree(prediction_values=prediction_values, **tree_arrays))
                return Forest(trees, options, num_samples, num_features)
        except SerializationError:
            raise
        except (KeyError, ValueError, TypeError, OSError, EOFError, zipfile.BadZipFile) as exc:
            raise SerializationError("Malformed forest stream: {}".format(exc)) from exc


def serialize_forest(forest):
    return ForestSerializer().serialize(forest)


def deserialize_forest(blob):
    return ForestSerializer().deserialize(blob)
