# Copyright (c) PyWhy contributors. All rights reserved.
# Licensed under the MIT License.

__all__ = ['commons',
           'relabeling',
           'tree',
           'forest',
           'prediction',
           'serialization',
           'grf',
           'utilities',
           '__version__']

from ._version import __version__
