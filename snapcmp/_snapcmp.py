# Copyright Red Hat
#
# snapcmp/_snapcmp.py - Snapshot compare global definitions
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level snapcmp package.
"""
from dataclasses import dataclass
from datetime import datetime
from os.path import expanduser, join
import logging
import os
import re

_log = logging.getLogger("snapcmp")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Snapcmp debugging subsystem mask
SNAPCMP_DEBUG_HISTORY = 1
SNAPCMP_DEBUG_HELPER = 2
SNAPCMP_DEBUG_COMMAND = 4
SNAPCMP_DEBUG_ALL = SNAPCMP_DEBUG_HISTORY | SNAPCMP_DEBUG_HELPER | SNAPCMP_DEBUG_COMMAND

# Snapcmp debugging subsystem names
SNAPCMP_SUBSYSTEM_HISTORY = "snapcmp.history"
SNAPCMP_SUBSYSTEM_HELPER = "snapcmp.helper"
SNAPCMP_SUBSYSTEM_COMMAND = "snapcmp.command"

_DEBUG_MASK_TO_SUBSYSTEM = {
    SNAPCMP_DEBUG_HISTORY: SNAPCMP_SUBSYSTEM_HISTORY,
    SNAPCMP_DEBUG_HELPER: SNAPCMP_SUBSYSTEM_HELPER,
    SNAPCMP_DEBUG_COMMAND: SNAPCMP_SUBSYSTEM_COMMAND,
}

_debug_subsystems = set()

#: Name of the per-volume snapshot storage directory
SNAPSHOTS_DIR = ".snapshots"

#: Name of the file system tree inside each snapshot instance
SNAPSHOT_SUBTREE = "snapshot"

#: Name of the per-snapshot metadata document
SNAPSHOT_INFO = "info.xml"

#: Prefix for temporary export directories
TEMP_EXPORT_PREFIX = "snapcmp-"

#: Log file names, relative to the state directory
SNAPCMP_LOG = "snapcmp.log"
SNAPCMP_HELPER_LOG = "snapcmp-helper.log"

#: Label validation: "Ddd MM/DD H:MM AM|PM" with an optional leading space
#: for single digit hours.
_LABEL_RE = re.compile(
    r"[A-Z][a-z]{2} \d{2}/\d{2} (?:1[0-2]| ?[1-9]):[0-5]\d (?:AM|PM)"
)

# Constants for snapshot record keys
SNAPSHOT_LABEL = "label"
SNAPSHOT_PATHNAME = "pathname"
SNAPSHOT_ID = "snapshot"


class SubsystemFilter(logging.Filter):
    """
    Filters DEBUG records based on a set of enabled subsystem names.
    Non-DEBUG records or DEBUG records without a 'subsystem' attribute
    are always passed through.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = set(_debug_subsystems)

    def filter(self, record):
        # Always pass non-DEBUG messages.
        if record.levelno != logging.DEBUG:
            return True

        # Always pass DEBUG messages that aren't for a specific subsystem.
        if not hasattr(record, "subsystem"):
            return True

        # For subsystem-specific DEBUG messages, check if the subsystem is enabled.
        return record.subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def get_debug_mask():
    """
    Return the current debug mask for the ``snapcmp`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    enabled_subsystems = set(_debug_subsystems)
    snapcmp_log = logging.getLogger("snapcmp")

    for handler in snapcmp_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                enabled_subsystems.update(f.enabled_subsystems)

    mask_map = {v: k for k, v in _DEBUG_MASK_TO_SUBSYSTEM.items()}
    mask = 0
    for subsystem_name in enabled_subsystems:
        mask |= mask_map.get(subsystem_name, 0)
    return mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``snapcmp`` package.

    :param mask: the logical OR of the ``SNAPCMP_DEBUG_*``
                 values to log.
    :rtype: None
    """
    # pylint: disable=global-statement
    global _debug_subsystems

    if mask < 0 or mask > SNAPCMP_DEBUG_ALL:
        raise ValueError(f"Invalid snapcmp debug mask: {mask}")

    enabled_subsystems = []
    for flag, subsystem_name in _DEBUG_MASK_TO_SUBSYSTEM.items():
        if mask & flag:
            enabled_subsystems.append(subsystem_name)

    snapcmp_log = logging.getLogger("snapcmp")
    for handler in snapcmp_log.handlers:
        for f in handler.filters:
            if isinstance(f, SubsystemFilter):
                f.set_debug_subsystems(enabled_subsystems)

    _debug_subsystems = set(enabled_subsystems)


def parse_debug_arg(debug_arg):
    """
    Convert a comma separated list of subsystem names into a debug mask.

    :param debug_arg: A string such as ``"history,helper"`` or ``"all"``.
    :returns: The corresponding ``SNAPCMP_DEBUG_*`` mask.
    :rtype: int
    :raises ValueError: If an unknown subsystem name is given.
    """
    mask_map = {
        "history": SNAPCMP_DEBUG_HISTORY,
        "helper": SNAPCMP_DEBUG_HELPER,
        "command": SNAPCMP_DEBUG_COMMAND,
        "all": SNAPCMP_DEBUG_ALL,
    }

    mask = 0
    for name in debug_arg.split(","):
        if name not in mask_map:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= mask_map[name]
    return mask


def setup_logging(verbose, log_file=None):
    """
    Set up snapcmp logging.

    Installs a console handler on ``sys.stderr`` and, if ``log_file`` is
    given, an append-mode file handler. The caller owns the returned handlers
    and must pass them to ``shutdown_logging()`` before exiting.

    :param verbose: Verbosity count from the command line (0, 1, 2...).
    :param log_file: Optional path of a log file to append to.
    :returns: The list of installed handlers.
    :rtype: ``List[logging.Handler]``
    """
    level = logging.WARNING
    if verbose and verbose > 1:
        level = logging.DEBUG
    elif verbose and verbose > 0:
        level = logging.INFO

    snapcmp_log = logging.getLogger("snapcmp")
    snapcmp_log.setLevel(logging.DEBUG)
    if snapcmp_log.hasHandlers():
        snapcmp_log.handlers.clear()

    # Subsystem log filtering
    subsystem_filter = SubsystemFilter("snapcmp")

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
    console_handler.addFilter(subsystem_filter)
    snapcmp_log.addHandler(console_handler)
    handlers = [console_handler]

    if log_file:
        os.makedirs(os.path.dirname(log_file), exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf8")
        file_handler.setLevel(logging.DEBUG if verbose and verbose > 1 else logging.INFO)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(process)d %(levelname)s %(message)s")
        )
        file_handler.addFilter(subsystem_filter)
        snapcmp_log.addHandler(file_handler)
        handlers.append(file_handler)

    return handlers


def shutdown_logging(handlers):
    """
    Shut down snapcmp logging: detach and close ``handlers``.

    :param handlers: The handlers returned by ``setup_logging()``.
    """
    snapcmp_log = logging.getLogger("snapcmp")
    for handler in handlers:
        snapcmp_log.removeHandler(handler)
        handler.close()


def get_state_dir():
    """
    Return the directory used for snapcmp log files.

    Honours ``XDG_STATE_HOME`` and falls back to ``~/.local/state``.

    :returns: The absolute path of the snapcmp state directory.
    :rtype: str
    """
    state_home = os.environ.get("XDG_STATE_HOME") or expanduser("~/.local/state")
    return join(state_home, "snapcmp")


#
# Snapcmp exception types
#


class SnapcmpError(Exception):
    """
    Base class for snapshot compare errors.
    """


class SnapcmpNotFoundError(SnapcmpError):
    """
    The requested path does not exist.
    """


class SnapcmpUnconfiguredError(SnapcmpError):
    """
    No snapshot storage governs the volume containing a path.
    """


class SnapcmpMetadataError(SnapcmpError):
    """
    A snapshot metadata document is missing or cannot be parsed.
    """


class SnapcmpValidationError(SnapcmpError):
    """
    An argument passed to the privileged helper failed validation.
    """


class SnapcmpCalloutError(SnapcmpError):
    """
    An error calling out to an external program: the privileged helper
    exited with a non-zero status or returned unparsable output.
    """

    def __init__(self, msg: str, status: int = 1):
        """
        Initialise a new ``SnapcmpCalloutError`` exception.

        :param msg: The error message reported by the external program.
        :param status: The exit status of the external program.
        """
        self.status = status
        super().__init__(msg)


#
# Snapshot labels
#


def format_label(timestamp: datetime) -> str:
    """
    Render ``timestamp`` as a snapshot label in local time.

    Labels take the form ``"Ddd MM/DD H:MM AM|PM"`` with the hour right
    aligned in a two column field, for example ``"Tue 01/02  3:04 PM"``.

    :param timestamp: A timezone-aware ``datetime``.
    :returns: The label string.
    :rtype: str
    """
    local = timestamp.astimezone()
    hour = local.hour % 12 or 12
    return f"{local:%a %m/%d} {hour:>2}:{local:%M %p}"


def is_valid_label(label: str) -> bool:
    """
    Test whether ``label`` matches the snapshot label grammar exactly.

    :param label: The string to test.
    :returns: ``True`` if ``label`` is well formed or ``False`` otherwise.
    :rtype: bool
    """
    return bool(label) and _LABEL_RE.fullmatch(label) is not None


def sanitize_label(label: str) -> str:
    """
    Convert a snapshot label into a string usable as a file name.

    :param label: A snapshot label.
    :returns: ``label`` with spaces replaced by ``_`` and path separators
              replaced by ``-``.
    :rtype: str
    """
    return label.replace(" ", "_").replace("/", "-")


@dataclass(frozen=True)
class SnapshotEntry:
    """
    One historical copy of a file inside a snapshot.
    """

    #: Name of the snapshot instance directory (for e.g. "42")
    snapshot: str
    #: Snapshot creation time (timezone-aware)
    timestamp: datetime
    #: Human readable rendering of ``timestamp``
    label: str
    #: Absolute path of the file copy inside the snapshot
    pathname: str

    def __str__(self):
        return f"{self.label} -> {self.pathname}"

    def to_dict(self):
        """
        Return a dictionary representation of this ``SnapshotEntry`` suitable
        for JSON serialisation.

        :rtype: dict
        """
        return {
            SNAPSHOT_LABEL: self.label,
            SNAPSHOT_PATHNAME: self.pathname,
            SNAPSHOT_ID: self.snapshot,
        }


__all__ = [
    # Debug logging
    "SNAPCMP_DEBUG_HISTORY",
    "SNAPCMP_DEBUG_HELPER",
    "SNAPCMP_DEBUG_COMMAND",
    "SNAPCMP_DEBUG_ALL",
    "SNAPCMP_SUBSYSTEM_HISTORY",
    "SNAPCMP_SUBSYSTEM_HELPER",
    "SNAPCMP_SUBSYSTEM_COMMAND",
    "SubsystemFilter",
    "get_debug_mask",
    "set_debug_mask",
    "parse_debug_arg",
    "setup_logging",
    "shutdown_logging",
    # Layout constants
    "SNAPSHOTS_DIR",
    "SNAPSHOT_SUBTREE",
    "SNAPSHOT_INFO",
    "TEMP_EXPORT_PREFIX",
    "SNAPCMP_LOG",
    "SNAPCMP_HELPER_LOG",
    "SNAPSHOT_LABEL",
    "SNAPSHOT_PATHNAME",
    "SNAPSHOT_ID",
    "get_state_dir",
    # Exceptions
    "SnapcmpError",
    "SnapcmpNotFoundError",
    "SnapcmpUnconfiguredError",
    "SnapcmpMetadataError",
    "SnapcmpValidationError",
    "SnapcmpCalloutError",
    # Labels and entries
    "format_label",
    "is_valid_label",
    "sanitize_label",
    "SnapshotEntry",
]
