# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

from ._serializer import ForestSerializer, SerializationError, serialize_forest, deserialize_forest

__all__ = ["ForestSerializer",
           "SerializationError",
           "serialize_forest",
           "deserialize_forest"]
