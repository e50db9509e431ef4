# Copyright Red Hat
#
# snapcmp/__init__.py - Snapshot compare package initialisation
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Snapcmp top-level package.
"""
from ._snapcmp import *  # noqa: F401, F403
from ._snapcmp import __all__  # noqa: F401

__version__ = "0.1.0"
