# Copyright Red Hat
#
# snapcmp/command.py - Snapshot compare command interface
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""The ``snapcmp.command`` module provides the ``snapcmp`` command line
interface: the unprivileged front end that asks ``snapcmp-helper`` which
snapshots hold a different version of a file and runs a diff viewer against
a temporary copy of the chosen snapshot.
"""
from argparse import ArgumentParser
from os.path import basename, join, realpath
from subprocess import run
from json import dumps
from typing import List, Optional
import logging
import sys

from snapcmp import (
    SNAPCMP_LOG,
    SNAPCMP_SUBSYSTEM_COMMAND,
    SnapcmpCalloutError,
    SnapcmpError,
    SnapcmpNotFoundError,
    get_state_dir,
    parse_debug_arg,
    set_debug_mask,
    setup_logging,
    shutdown_logging,
    __version__,
)

from .client import HelperClient, SnapshotRecord
from .config import SnapcmpConfig, get_config_path
from .filetypes import FileTypeDetector

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_COMMAND}, **kwargs)


NO_DIFFERING_SNAPSHOTS = "No snapshots with different contents from current"


def print_snapshots(snapshots: List[SnapshotRecord], json: bool = False):
    """
    Print a list of differing snapshots, oldest first.

    :param snapshots: The snapshots to print.
    :param json: Print as a JSON array instead of a table.
    """
    if json:
        print(
            dumps(
                [
                    {
                        "index": index,
                        "label": snapshot.label,
                        "pathname": snapshot.pathname,
                        "snapshot": snapshot.snapshot,
                    }
                    for index, snapshot in enumerate(snapshots, start=1)
                ],
                indent=4,
            )
        )
        return

    for index, snapshot in enumerate(snapshots, start=1):
        print(f"{index:>3}  {snapshot.label}  {snapshot.pathname}")


def select_snapshot(
    snapshots: List[SnapshotRecord],
    label: Optional[str] = None,
    index: Optional[int] = None,
    snapshot_id: Optional[str] = None,
) -> SnapshotRecord:
    """
    Select one snapshot from ``snapshots``.

    With no criteria the most recent differing snapshot is returned.

    :param snapshots: A non-empty list of differing snapshots.
    :param label: Select the snapshot with this label.
    :param index: Select the snapshot at this 1-based position.
    :param snapshot_id: Select the snapshot with this identifier.
    :returns: The selected snapshot.
    :rtype: ``SnapshotRecord``
    :raises SnapcmpNotFoundError: If no snapshot matches.
    """
    if snapshot_id is not None:
        for snapshot in snapshots:
            if snapshot.snapshot == snapshot_id:
                return snapshot
        raise SnapcmpNotFoundError(f"No differing snapshot with id {snapshot_id}")
    if label is not None:
        matches = [snapshot for snapshot in snapshots if snapshot.label == label]
        if not matches:
            raise SnapcmpNotFoundError(f"No differing snapshot with label '{label}'")
        if len(matches) > 1:
            _log_warn("Label '%s' matches %d snapshots: using latest", label, len(matches))
        return matches[-1]
    if index is not None:
        if index < 1 or index > len(snapshots):
            raise SnapcmpNotFoundError(
                f"Snapshot index {index} out of range (1-{len(snapshots)})"
            )
        return snapshots[index - 1]
    return snapshots[-1]


def show_diff(
    client: HelperClient, config: SnapcmpConfig, path: str, snapshot: SnapshotRecord
) -> int:
    """
    Export ``snapshot`` and run the configured viewer to compare it with
    the live file at ``path``. The export is removed when the viewer exits.

    :param client: The helper client to use.
    :param config: The active configuration.
    :param path: The path of the live file.
    :param snapshot: The snapshot to compare with.
    :returns: integer status code returned from ``main()``
    """
    file_type = FileTypeDetector().detect_file_type(path)
    viewer = config.viewer if file_type.is_text else config.binary_viewer
    _log_info("Comparing snapshot %s with current %s", snapshot, path)

    with client.exported(snapshot) as tempfile_path:
        cmd = viewer + [tempfile_path, path]
        _log_debug_command("Running viewer: %s", " ".join(cmd))
        try:
            result = run(cmd, check=False)
        except FileNotFoundError as err:
            raise SnapcmpNotFoundError(f"Viewer command not found: {viewer[0]}") from err
        except OSError as err:
            raise SnapcmpCalloutError(f"Could not run viewer {viewer[0]}: {err}") from err

    # diff(1) and cmp(1) exit 1 when the inputs differ.
    if result.returncode > 1:
        _log_error("Viewer '%s' failed with status %d", viewer[0], result.returncode)
        return 1
    return 0


def _load_config(cmd_args) -> SnapcmpConfig:
    return SnapcmpConfig.from_file(cmd_args.config or get_config_path())


def _list_cmd(cmd_args):
    """
    List differing snapshots command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    config = _load_config(cmd_args)
    client = HelperClient(config.helper)
    snapshots = client.differing_snapshots(realpath(cmd_args.path))
    if not snapshots and not cmd_args.json:
        print(NO_DIFFERING_SNAPSHOTS)
        return 0
    print_snapshots(snapshots, json=cmd_args.json)
    return 0


def _diff_cmd(cmd_args):
    """
    Diff against snapshot command handler.

    :param cmd_args: Command line arguments for the command
    :returns: integer status code returned from ``main()``
    """
    config = _load_config(cmd_args)
    client = HelperClient(config.helper)
    path = realpath(cmd_args.path)
    snapshots = client.differing_snapshots(path)
    if not snapshots:
        _log_info("differing snapshots: NONE")
        print(NO_DIFFERING_SNAPSHOTS)
        return 0
    snapshot = select_snapshot(
        snapshots,
        label=cmd_args.label,
        index=cmd_args.index,
        snapshot_id=cmd_args.snapshot,
    )
    return show_diff(client, config, path, snapshot)


def _add_path_arg(parser):
    parser.add_argument(
        "path",
        metavar="PATH",
        type=str,
        help="The file to compare with its snapshots",
    )


def main(args):
    """
    Main entry point for snapcmp.
    """
    parser = ArgumentParser(
        description="Compare a file with its snapshots", prog=basename(args[0])
    )

    # Global arguments
    parser.add_argument(
        "-c",
        "--config",
        metavar="CONFIG",
        type=str,
        help="Path to an alternate configuration file",
    )
    parser.add_argument(
        "-d",
        "--debug",
        metavar="DEBUGOPTS",
        type=str,
        help="A list of debug options to enable",
    )
    parser.add_argument("-v", "--verbose", help="Enable verbose output", action="count")
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        help="Report the version number of snapcmp",
        version=__version__,
    )
    command_subparser = parser.add_subparsers(dest="command", help="Command")

    list_parser = command_subparser.add_parser(
        "list", help="List snapshots in which a file's content differs"
    )
    _add_path_arg(list_parser)
    list_parser.add_argument(
        "--json", action="store_true", help="Output snapshots as JSON"
    )
    list_parser.set_defaults(func=_list_cmd)

    diff_parser = command_subparser.add_parser(
        "diff", help="Compare a file with one of its snapshots"
    )
    _add_path_arg(diff_parser)
    select_group = diff_parser.add_mutually_exclusive_group()
    select_group.add_argument(
        "-l", "--label", metavar="LABEL", type=str, help="Select snapshot by label"
    )
    select_group.add_argument(
        "-i",
        "--index",
        metavar="INDEX",
        type=int,
        help="Select snapshot by position in the list output",
    )
    select_group.add_argument(
        "-s",
        "--snapshot",
        metavar="ID",
        type=str,
        help="Select snapshot by snapshot identifier",
    )
    diff_parser.set_defaults(func=_diff_cmd)

    cmd_args = parser.parse_args(args[1:])

    status = 1

    try:
        if cmd_args.debug:
            set_debug_mask(parse_debug_arg(cmd_args.debug))
    except ValueError as err:
        print(err)
        parser.print_help()
        return status

    try:
        handlers = setup_logging(cmd_args.verbose, join(get_state_dir(), SNAPCMP_LOG))
    except OSError as err:
        print(f"Cannot open log file: {err}", file=sys.stderr)
        return status

    try:
        _log_debug_command("Parsed %s", " ".join(args[1:]))

        if "func" not in cmd_args:
            parser.print_help()
            return status

        if cmd_args.debug:
            status = cmd_args.func(cmd_args)
        else:
            try:
                status = cmd_args.func(cmd_args)
            except KeyboardInterrupt:  # pragma: no cover
                _log_info("Exiting on user cancel")
            except (SnapcmpError, OSError, ValueError) as err:
                _log_error("Command failed: %s", err)
    finally:
        shutdown_logging(handlers)

    return status


# vim: set et ts=4 sw=4 :
