# Copyright Red Hat
#
# snapcmp/history/_changes.py - Content change filtering
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Reduce a file's snapshot history to the snapshots where its content changed.
"""
from os.path import realpath
from typing import List, Optional
import logging
import os

from snapcmp import (
    SNAPCMP_SUBSYSTEM_HISTORY,
    SnapshotEntry,
)

from ._enumerate import enumerate_snapshots

_log = logging.getLogger(__name__)

_log_info = _log.info

#: Read size for content comparison
_CHUNK_SIZE = 65536


def _log_debug_history(msg, *args, **kwargs):
    """A wrapper for history subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_HISTORY}, **kwargs)


def files_identical(path_a: str, path_b: str) -> bool:
    """
    Compare the content of two files byte for byte.

    :param path_a: The first file.
    :type path_a: ``str``
    :param path_b: The second file.
    :type path_b: ``str``
    :returns: ``True`` if both files hold exactly the same bytes.
    :rtype: ``bool``
    :raises OSError: If either file cannot be read.
    """
    if os.stat(path_a).st_size != os.stat(path_b).st_size:
        return False
    with open(path_a, "rb") as fa, open(path_b, "rb") as fb:
        for chunk_a in iter(lambda: fa.read(_CHUNK_SIZE), b""):
            if chunk_a != fb.read(len(chunk_a)):
                return False
        return fb.read(1) == b""


def filter_changes(
    path: str, snapshots: List[SnapshotEntry]
) -> List[SnapshotEntry]:
    """
    Select the entries of ``snapshots`` at which the content of ``path``
    changed.

    ``snapshots`` is walked from newest to oldest, comparing each copy with
    the most recently retained one (initially the live file at ``path``).
    Copies identical to that reference are dropped. The result keeps the
    ascending order of ``snapshots``.

    :param path: The path of the live file.
    :type path: ``str``
    :param snapshots: Snapshot copies of ``path`` in ascending order.
    :type snapshots: ``List[SnapshotEntry]``
    :returns: The entries whose content differs from their successor.
    :rtype: ``List[SnapshotEntry]``
    """
    last_different = path
    changed = []
    for entry in reversed(snapshots):
        if files_identical(entry.pathname, last_different):
            _log_debug_history("%s: identical to %s", entry, last_different)
            continue
        _log_debug_history("%s: differs from %s", entry, last_different)
        last_different = entry.pathname
        changed.append(entry)
    changed.reverse()
    return changed


def filter_differing(
    path: str, snapshots: Optional[List[SnapshotEntry]] = None
) -> List[SnapshotEntry]:
    """
    Return the snapshot copies of the file at ``path`` that represent a
    distinct version of its content, in ascending chronological order.

    :param path: The path of the live file.
    :type path: ``str``
    :param snapshots: An optional, already enumerated, snapshot list for
                      ``path``. If omitted ``enumerate_snapshots()`` is
                      called.
    :type snapshots: ``Optional[List[SnapshotEntry]]``
    :returns: The differing snapshot list.
    :rtype: ``List[SnapshotEntry]``
    :raises SnapcmpError: As for ``enumerate_snapshots()``.
    :raises OSError: If a snapshot copy cannot be read.
    """
    resolved = realpath(path)
    if snapshots is None:
        snapshots = enumerate_snapshots(resolved)
    changed = filter_changes(resolved, snapshots)
    _log_info(
        "%d of %d snapshot copies of %s differ", len(changed), len(snapshots), resolved
    )
    return changed
