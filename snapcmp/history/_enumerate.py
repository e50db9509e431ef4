# Copyright Red Hat
#
# snapcmp/history/_enumerate.py - Snapshot copy enumeration
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Enumerate the historical copies of a file held in a volume's snapshots.
"""
from datetime import datetime, timezone
from os.path import dirname, exists, isfile, join, realpath, relpath
from typing import List
import logging
import os
import re

from snapcmp import (
    SNAPSHOTS_DIR,
    SNAPSHOT_SUBTREE,
    SNAPSHOT_INFO,
    SNAPCMP_SUBSYSTEM_HISTORY,
    SnapcmpMetadataError,
    SnapcmpNotFoundError,
    SnapshotEntry,
    format_label,
)

from ._locate import locate_snapshot_root

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_history(msg, *args, **kwargs):
    """A wrapper for history subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_HISTORY}, **kwargs)


_DATE_RE = re.compile(r"<date>([^<]*)</date>")

_DATE_FMT = "%Y-%m-%d %H:%M:%S"


def parse_snapshot_time(info: str) -> datetime:
    """
    Extract the snapshot creation time from the text of a snapshot
    metadata document.

    :param info: The content of an ``info.xml`` document.
    :type info: ``str``
    :returns: The creation time as a UTC ``datetime``.
    :rtype: ``datetime``
    :raises SnapcmpMetadataError: If no well formed ``<date>`` is present.
    """
    match = _DATE_RE.search(info)
    if not match:
        raise SnapcmpMetadataError("No <date> element in snapshot metadata")
    date_str = match.group(1).strip()
    try:
        return datetime.strptime(date_str, _DATE_FMT).replace(tzinfo=timezone.utc)
    except ValueError as err:
        raise SnapcmpMetadataError(
            f"Invalid snapshot date '{date_str}': {err}"
        ) from err


def read_snapshot_time(snapshot_dir: str) -> datetime:
    """
    Read and parse the creation time of the snapshot at ``snapshot_dir``.

    :param snapshot_dir: Path to a snapshot instance directory.
    :type snapshot_dir: ``str``
    :returns: The creation time as a UTC ``datetime``.
    :rtype: ``datetime``
    :raises SnapcmpMetadataError: If the metadata document is missing,
                                  unreadable, or malformed.
    """
    info_path = join(snapshot_dir, SNAPSHOT_INFO)
    try:
        with open(info_path, "r", encoding="utf8") as fp:
            info = fp.read()
    except (OSError, UnicodeDecodeError) as err:
        raise SnapcmpMetadataError(
            f"Cannot read snapshot metadata {info_path}: {err}"
        ) from err
    try:
        return parse_snapshot_time(info)
    except SnapcmpMetadataError as err:
        raise SnapcmpMetadataError(f"{info_path}: {err}") from err


def _snapshot_sort_key(entry: SnapshotEntry):
    """
    Sort key for ``SnapshotEntry`` values: creation time, then snapshot
    name with numeric names ordered numerically.
    """
    name = entry.snapshot
    name_key = (0, int(name), "") if name.isdigit() else (1, 0, name)
    return (entry.timestamp, name_key)


def enumerate_snapshots(
    path: str,
    snapshots_dir: str = SNAPSHOTS_DIR,
    subtree: str = SNAPSHOT_SUBTREE,
) -> List[SnapshotEntry]:
    """
    Return the snapshot copies of the file at ``path`` in ascending
    chronological order.

    Snapshots that do not contain a regular file at the corresponding
    location are skipped.

    :param path: The path of the live file.
    :type path: ``str``
    :param snapshots_dir: The name of the snapshot storage directory.
    :type snapshots_dir: ``str``
    :param subtree: The name of the file system tree inside each snapshot.
    :type subtree: ``str``
    :returns: A list of ``SnapshotEntry`` sorted by creation time.
    :rtype: ``List[SnapshotEntry]``
    :raises SnapcmpNotFoundError: If ``path`` does not exist.
    :raises SnapcmpUnconfiguredError: If no snapshot storage governs ``path``.
    :raises SnapcmpMetadataError: If a snapshot holding the file has missing
                                  or malformed metadata.
    """
    resolved = realpath(path)
    if not exists(resolved):
        raise SnapcmpNotFoundError(f"No such file or directory: {path}")

    root = locate_snapshot_root(resolved, snapshots_dir=snapshots_dir)
    relative = relpath(resolved, dirname(root))
    _log_debug_history("Enumerating %s in %s (relative=%s)", resolved, root, relative)

    entries = []
    with os.scandir(root) as it:
        for child in it:
            if not child.is_dir():
                continue
            candidate = join(child.path, subtree, relative)
            if not isfile(candidate):
                _log_debug_history("Snapshot %s has no copy of %s", child.name, relative)
                continue
            timestamp = read_snapshot_time(child.path)
            entry = SnapshotEntry(
                snapshot=child.name,
                timestamp=timestamp,
                label=format_label(timestamp),
                pathname=candidate,
            )
            _log_debug_history("Found snapshot copy %s", entry)
            entries.append(entry)

    entries.sort(key=_snapshot_sort_key)
    _log_info("Found %d snapshot copies of %s", len(entries), resolved)
    return entries
