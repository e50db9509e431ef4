# Copyright Red Hat
#
# snapcmp/history/__init__.py - Snapshot compare history package
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File history package.

Locates the snapshot storage governing a file, enumerates the copies of the
file held in each snapshot, and reduces them to the snapshots at which the
file's content changed. The main entry points are ``enumerate_snapshots``
and ``filter_differing``.
"""
from ._locate import ancestors, locate_snapshot_root
from ._enumerate import enumerate_snapshots, parse_snapshot_time, read_snapshot_time
from ._changes import files_identical, filter_changes, filter_differing

__all__ = [
    "ancestors",
    "enumerate_snapshots",
    "files_identical",
    "filter_changes",
    "filter_differing",
    "locate_snapshot_root",
    "parse_snapshot_time",
    "read_snapshot_time",
]
