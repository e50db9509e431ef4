# Copyright Red Hat
#
# snapcmp/history/_locate.py - Snapshot storage root discovery
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Locate the snapshot storage directory that governs a path.
"""
from os.path import dirname, isdir, join, realpath
import logging

from snapcmp import (
    SNAPSHOTS_DIR,
    SNAPCMP_SUBSYSTEM_HISTORY,
    SnapcmpUnconfiguredError,
)

_log = logging.getLogger(__name__)


def _log_debug_history(msg, *args, **kwargs):
    """A wrapper for history subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_HISTORY}, **kwargs)


def ancestors(path: str):
    """
    Yield ``path`` followed by each of its ancestors up to and including
    the root directory.
    """
    while True:
        yield path
        parent = dirname(path)
        if parent == path:
            return
        path = parent


def locate_snapshot_root(path: str, snapshots_dir: str = SNAPSHOTS_DIR) -> str:
    """
    Find the snapshot storage directory for the volume containing ``path``.

    The path is canonicalised (following symbolic links) and each ancestor,
    nearest first, is tested for a ``snapshots_dir`` sub-directory. The path
    itself need not exist, provided it resolves to a real ancestor chain.

    :param path: The path of a file or directory.
    :type path: ``str``
    :param snapshots_dir: The name of the snapshot storage directory.
    :type snapshots_dir: ``str``
    :returns: The absolute path of the nearest snapshot storage directory.
    :rtype: ``str``
    :raises SnapcmpUnconfiguredError: If no ancestor of ``path`` holds a
                                      snapshot storage directory.
    """
    resolved = realpath(path)
    for ancestor in ancestors(resolved):
        candidate = join(ancestor, snapshots_dir)
        if isdir(candidate):
            _log_debug_history("Found snapshot root %s for %s", candidate, resolved)
            return candidate
    raise SnapcmpUnconfiguredError(
        f"Snapshots are not configured for the volume containing {resolved}"
    )
