# Copyright Red Hat
#
# snapcmp/export.py - Temporary snapshot copy export
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Export snapshot copies to a temporary location readable by unprivileged
programs, and remove them again.

Exports live at ``<tmpdir>/snapcmp-<sanitized-label>/<basename>``. The
directory name is a pure function of the label so that ``remove_temp()``
can recompute it without trusting a caller supplied directory.
"""
from os.path import basename, dirname, isfile, join, lexists, realpath
from tempfile import gettempdir
import logging
import shutil
import stat
import os

from snapcmp import (
    SNAPSHOTS_DIR,
    SNAPSHOT_SUBTREE,
    SNAPSHOT_INFO,
    TEMP_EXPORT_PREFIX,
    SNAPCMP_SUBSYSTEM_HELPER,
    SnapcmpValidationError,
    sanitize_label,
)
from snapcmp.history import ancestors

_log = logging.getLogger(__name__)

_log_info = _log.info

#: Permissions for export directories
_EXPORT_DIR_MODE = 0o755

#: Permissions for exported files
_EXPORT_FILE_MODE = 0o644

#: Flags used to create exported files
_EXPORT_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL | os.O_NOFOLLOW


def _log_debug_helper(msg, *args, **kwargs):
    """A wrapper for helper subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_HELPER}, **kwargs)


def temp_dir_for_label(label: str) -> str:
    """
    Return the export directory used for snapshot label ``label``.

    :param label: A validated snapshot label.
    :type label: ``str``
    :rtype: ``str``
    """
    return join(gettempdir(), TEMP_EXPORT_PREFIX + sanitize_label(label))


def _make_export_dir(export_dir: str):
    """
    Create ``export_dir``, or accept an existing one only if it is a real
    directory owned by the effective user.

    :param export_dir: The export directory path.
    :type export_dir: ``str``
    :raises SnapcmpValidationError: If a pre-existing ``export_dir`` is a
                                    symlink, not a directory, or owned by
                                    another user.
    """
    try:
        os.mkdir(export_dir, _EXPORT_DIR_MODE)
    except FileExistsError:
        st = os.lstat(export_dir)
        if not stat.S_ISDIR(st.st_mode) or st.st_uid != os.geteuid():
            raise SnapcmpValidationError(
                f"Refusing to use export directory {export_dir}: "
                "not a directory owned by the current user"
            ) from None
        _log_debug_helper("Reusing export directory %s", export_dir)
    os.chmod(export_dir, _EXPORT_DIR_MODE)


def export_temp(label: str, snapshot_path: str) -> str:
    """
    Copy the snapshot copy at ``snapshot_path`` into the export directory
    for ``label``, keeping its base name.

    The copy is always created as a new file: a stale entry with the same
    name is unlinked first and symlinks are never followed.

    :param label: A validated snapshot label.
    :type label: ``str``
    :param snapshot_path: Path of a regular file inside a snapshot.
    :type snapshot_path: ``str``
    :returns: The path of the exported copy.
    :rtype: ``str``
    """
    export_dir = temp_dir_for_label(label)
    dest_path = join(export_dir, basename(snapshot_path))
    _log_info("Exporting %s -> %s", snapshot_path, dest_path)

    _make_export_dir(export_dir)
    if lexists(dest_path):
        _log_debug_helper("Removing stale export %s", dest_path)
        os.unlink(dest_path)

    with open(snapshot_path, "rb") as src:
        fd = os.open(dest_path, _EXPORT_FLAGS, _EXPORT_FILE_MODE)
        with os.fdopen(fd, "wb") as dst:
            os.fchmod(dst.fileno(), _EXPORT_FILE_MODE)
            shutil.copyfileobj(src, dst)
    _log_debug_helper("Exported %s (%d bytes)", dest_path, os.stat(dest_path).st_size)
    return dest_path


def check_snapshot_path(snapshot_path: str) -> str:
    """
    Verify that ``snapshot_path`` resolves to a file inside the tree of a
    snapshot instance (``<volume>/.snapshots/<id>/snapshot/...``).

    :param snapshot_path: The snapshot copy path to check.
    :type snapshot_path: ``str``
    :returns: The snapshot instance directory holding ``snapshot_path``.
    :rtype: ``str``
    :raises SnapcmpValidationError: If ``snapshot_path`` is not inside a
                                    snapshot tree.
    """
    resolved = realpath(snapshot_path)
    for ancestor in ancestors(dirname(resolved)):
        snapshot_dir = dirname(ancestor)
        if (
            basename(ancestor) == SNAPSHOT_SUBTREE
            and basename(dirname(snapshot_dir)) == SNAPSHOTS_DIR
            and isfile(join(snapshot_dir, SNAPSHOT_INFO))
        ):
            return snapshot_dir
    raise SnapcmpValidationError(f"{snapshot_path} is not a snapshot copy")


def check_temp_path(label: str, tempfile_path: str):
    """
    Verify that ``tempfile_path`` lies directly inside the export directory
    for ``label``.

    :param label: A validated snapshot label.
    :type label: ``str``
    :param tempfile_path: The exported file path to check.
    :type tempfile_path: ``str``
    :raises SnapcmpValidationError: If ``tempfile_path`` is outside the
                                    export directory for ``label``.
    """
    export_dir = realpath(temp_dir_for_label(label))
    if dirname(realpath(tempfile_path)) != export_dir:
        raise SnapcmpValidationError(
            f"{tempfile_path} is not an export for snapshot '{label}'"
        )


def remove_temp(label: str, tempfile_path: str):
    """
    Remove the export directory for ``label`` and everything in it.

    :param label: A validated snapshot label.
    :type label: ``str``
    :param tempfile_path: The exported file path (used for logging).
    :type tempfile_path: ``str``
    """
    export_dir = temp_dir_for_label(label)
    _log_info("Removing export %s (%s)", export_dir, tempfile_path)
    shutil.rmtree(export_dir)
