# Copyright Red Hat
#
# snapcmp/helper.py - Privileged snapshot access helper
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``snapcmp.helper`` module implements ``snapcmp-helper``: the only
part of snapcmp that reads snapshot storage. It is intended to run as root
(for e.g. via a ``sudoers`` rule for a fixed path) and exposes exactly three
operations:

``list-differing LOCAL_PATH``
    Print ``[{"label": ..., "pathname": ..., "snapshot": ...}, ...]``.
``export-temp LABEL SNAPSHOT_PATH``
    Copy a snapshot copy to a temporary directory, print ``{"path": ...}``.
``remove-temp LABEL TEMPFILE_PATH``
    Remove a previous export, print nothing.

Every argument is validated before the file system is touched. Failures
print ``{"error": MESSAGE}`` and exit with status 1. Each invocation is
recorded in an append-only audit log before output is written.
"""
from argparse import ArgumentParser
from os.path import basename, isfile, join
from json import dumps
import logging
import shlex
import sys

from snapcmp import (
    SNAPCMP_HELPER_LOG,
    SNAPCMP_SUBSYSTEM_HELPER,
    SnapcmpError,
    SnapcmpValidationError,
    get_state_dir,
    is_valid_label,
    parse_debug_arg,
    set_debug_mask,
    setup_logging,
    shutdown_logging,
)
from snapcmp.history import filter_differing

from .export import check_snapshot_path, check_temp_path, export_temp, remove_temp

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_helper(msg, *args, **kwargs):
    """A wrapper for helper subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_HELPER}, **kwargs)


class _HelperArgumentParser(ArgumentParser):
    """
    An ``ArgumentParser`` that raises ``SnapcmpValidationError`` instead of
    printing usage and exiting, so that argument errors are reported as a
    structured error record. Help text goes to ``sys.stderr`` so that
    ``sys.stdout`` carries nothing but records.
    """

    def error(self, message):
        raise SnapcmpValidationError(message)

    def print_help(self, file=None):
        super().print_help(file or sys.stderr)

    def print_usage(self, file=None):
        super().print_usage(file or sys.stderr)


def _check_label(label):
    """
    Validate a snapshot label argument.

    :raises SnapcmpValidationError: If ``label`` is malformed.
    """
    if not is_valid_label(label):
        raise SnapcmpValidationError(
            f"arg 1 (snapshot-label) is not in correct format: {label!r}"
        )


def _check_file(arg, name, path):
    """
    Validate that a path argument names an existing regular file.

    :raises SnapcmpValidationError: If ``path`` is not a regular file.
    """
    if not path or not isfile(path):
        raise SnapcmpValidationError(
            f"arg {arg} ({name}) is not a file or does not exist: {path!r}"
        )


def list_differing(local_path):
    """
    List the snapshots in which the content of ``local_path`` differs.

    :param local_path: Path to a regular file on a snapshot-managed volume.
    :returns: A list of snapshot record dictionaries.
    """
    _check_file(1, "local-path", local_path)
    snapshots = filter_differing(local_path)
    for snapshot in snapshots:
        _log_info("  %s", snapshot)
    return [snapshot.to_dict() for snapshot in snapshots]


def copy_to_temp(label, snapshot_path):
    """
    Export ``snapshot_path`` to a temporary file for unprivileged readers.

    :param label: The label of the snapshot holding ``snapshot_path``.
    :param snapshot_path: Path to a file copy inside a snapshot.
    :returns: A dictionary containing the exported path.
    """
    _check_label(label)
    _check_file(2, "snapshot-path", snapshot_path)
    check_snapshot_path(snapshot_path)
    return {"path": export_temp(label, snapshot_path)}


def delete_temp(label, tempfile_path):
    """
    Remove a file previously exported by ``copy_to_temp()``.

    :param label: The label used for the export.
    :param tempfile_path: Path of the exported file.
    """
    _check_label(label)
    _check_file(2, "tempfile-path", tempfile_path)
    check_temp_path(label, tempfile_path)
    remove_temp(label, tempfile_path)


def _list_differing_cmd(cmd_args):
    """
    List differing snapshots command handler.

    :param cmd_args: Command line arguments for the command
    :returns: The record to print.
    """
    return list_differing(cmd_args.local_path)


def _export_temp_cmd(cmd_args):
    """
    Export to temporary file command handler.

    :param cmd_args: Command line arguments for the command
    :returns: The record to print.
    """
    return copy_to_temp(cmd_args.label, cmd_args.snapshot_path)


def _remove_temp_cmd(cmd_args):
    """
    Remove temporary file command handler.

    :param cmd_args: Command line arguments for the command
    :returns: ``None``: nothing is printed on success.
    """
    delete_temp(cmd_args.label, cmd_args.tempfile_path)
    return None


def _emit(record):
    """
    Write one JSON record to ``sys.stdout``.
    """
    print(dumps(record))
    sys.stdout.flush()


def _fail(err):
    """
    Log and report a failed invocation.

    :param err: The exception or message describing the failure.
    :returns: The exit status for a failed invocation.
    """
    msg = str(err)
    _log_error("ERROR: %s", msg)
    _emit({"error": msg})
    return 1


def _build_parser(prog):
    """
    Construct the ``snapcmp-helper`` argument parser.
    """
    parser = _HelperArgumentParser(
        description="Snapshot compare privileged helper", prog=prog
    )
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    command_subparser = parser.add_subparsers(dest="command", help="Command")

    list_parser = command_subparser.add_parser(
        "list-differing", help="List snapshots where a file's content differs"
    )
    list_parser.add_argument("local_path", metavar="LOCAL_PATH", type=str)
    list_parser.set_defaults(func=_list_differing_cmd)

    export_parser = command_subparser.add_parser(
        "export-temp", help="Copy a snapshot copy to a temporary file"
    )
    export_parser.add_argument("label", metavar="LABEL", type=str)
    export_parser.add_argument("snapshot_path", metavar="SNAPSHOT_PATH", type=str)
    export_parser.set_defaults(func=_export_temp_cmd)

    remove_parser = command_subparser.add_parser(
        "remove-temp", help="Remove a temporary snapshot copy"
    )
    remove_parser.add_argument("label", metavar="LABEL", type=str)
    remove_parser.add_argument("tempfile_path", metavar="TEMPFILE_PATH", type=str)
    remove_parser.set_defaults(func=_remove_temp_cmd)

    return parser


def main(args):
    """
    Main entry point for snapcmp-helper.

    :param args: The argument vector, in the form of ``sys.argv``.
    :returns: The process exit status.
    """
    prog = basename(args[0])
    parser = _build_parser(prog)

    parse_error = None
    cmd_args = None
    try:
        cmd_args = parser.parse_args(args[1:])
    except SnapcmpValidationError as err:
        parse_error = err

    verbose = getattr(cmd_args, "verbose", None)
    try:
        handlers = setup_logging(verbose, join(get_state_dir(), SNAPCMP_HELPER_LOG))
    except OSError as err:
        _emit({"error": f"Cannot open audit log: {err}"})
        return 1

    try:
        _log_info("--- %s %s", prog, shlex.join(args[1:]))

        if parse_error:
            return _fail(parse_error)

        if cmd_args.debug:
            try:
                set_debug_mask(parse_debug_arg(cmd_args.debug))
            except ValueError as err:
                return _fail(err)

        if "func" not in cmd_args:
            return _fail("No command given")

        _log_debug_helper("Parsed %s", cmd_args)
        try:
            record = cmd_args.func(cmd_args)
        except (SnapcmpError, OSError) as err:
            return _fail(err)
        # pylint: disable=broad-except
        except Exception as err:
            _log_error("Unexpected error: %s", err, exc_info=True)
            return _fail(err)

        _log_info("SUCCESS")
        if record is not None:
            _emit(record)
        return 0
    finally:
        shutdown_logging(handlers)


# vim: set et ts=4 sw=4 :
