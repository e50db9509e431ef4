# Copyright Red Hat
#
# snapcmp/client.py - Unprivileged interface to snapcmp-helper
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Caller side of the privileged helper protocol.

``HelperClient`` runs ``snapcmp-helper`` as a subprocess for each operation
and converts its JSON records into Python values. The caller never reads
snapshot storage directly.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from subprocess import run
from json import loads, JSONDecodeError
from typing import Iterator, List, Sequence
import logging

from snapcmp import (
    SNAPCMP_SUBSYSTEM_COMMAND,
    SNAPSHOT_ID,
    SNAPSHOT_LABEL,
    SNAPSHOT_PATHNAME,
    SnapcmpCalloutError,
    SnapcmpError,
    SnapcmpNotFoundError,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_COMMAND}, **kwargs)


@dataclass(frozen=True)
class SnapshotRecord:
    """
    A differing snapshot as reported by ``snapcmp-helper``.
    """

    #: Human readable snapshot time
    label: str
    #: Path of the (privileged) snapshot copy
    pathname: str
    #: Snapshot instance identifier
    snapshot: str = ""

    def __str__(self):
        return f"{self.label} -> {self.pathname}"


class HelperClient:
    """
    Run ``snapcmp-helper`` operations on behalf of an unprivileged caller.
    """

    def __init__(self, helper_cmd: Sequence[str]):
        """
        Initialise a new ``HelperClient``.

        :param helper_cmd: The command used to invoke the helper, for e.g.
                           ``["sudo", "-n", "snapcmp-helper"]``.
        :type helper_cmd: ``Sequence[str]``
        """
        self.helper_cmd = list(helper_cmd)

    def _call(self, *args: str):
        """
        Invoke the helper with ``args`` and return its decoded JSON record,
        or ``None`` if it printed nothing.

        :raises SnapcmpNotFoundError: If the helper command cannot be run.
        :raises SnapcmpCalloutError: If the helper fails or its output cannot
                                     be parsed.
        """
        cmd = self.helper_cmd + list(args)
        _log_debug_command("Calling helper: %s", " ".join(cmd))
        try:
            result = run(cmd, capture_output=True, encoding="utf8", check=False)
        except FileNotFoundError as err:
            raise SnapcmpNotFoundError(
                f"Helper command not found: {self.helper_cmd[0]}"
            ) from err
        except OSError as err:
            raise SnapcmpCalloutError(
                f"Could not run helper command {self.helper_cmd[0]}: {err}"
            ) from err

        _log_debug_command("Helper %s exited with status %d", args[0], result.returncode)
        output = result.stdout.strip()
        record = None
        if output:
            try:
                record = loads(output)
            except JSONDecodeError as err:
                if result.returncode == 0:
                    raise SnapcmpCalloutError(
                        f"Could not parse {args[0]} output: {err}"
                    ) from err

        if result.returncode != 0:
            if isinstance(record, dict) and "error" in record:
                msg = record["error"]
            else:
                msg = result.stderr.strip() or f"{args[0]} failed"
            _log_error(
                "Helper %s failed (exit status %d): %s", args[0], result.returncode, msg
            )
            raise SnapcmpCalloutError(msg, status=result.returncode)
        return record

    def differing_snapshots(self, path: str) -> List[SnapshotRecord]:
        """
        Return the snapshots in which the content of ``path`` differs, in
        ascending chronological order.

        :param path: The path of the live file.
        :type path: ``str``
        :rtype: ``List[SnapshotRecord]``
        """
        records = self._call("list-differing", path)
        if not isinstance(records, list):
            raise SnapcmpCalloutError("Unexpected list-differing output")
        try:
            return [
                SnapshotRecord(
                    label=record[SNAPSHOT_LABEL],
                    pathname=record[SNAPSHOT_PATHNAME],
                    snapshot=record.get(SNAPSHOT_ID, ""),
                )
                for record in records
            ]
        except (KeyError, TypeError, AttributeError) as err:
            raise SnapcmpCalloutError(
                f"Malformed list-differing record: {err}"
            ) from err

    def export_temp(self, snapshot: SnapshotRecord) -> str:
        """
        Export ``snapshot`` to a file readable by the caller.

        :param snapshot: The snapshot to export.
        :type snapshot: ``SnapshotRecord``
        :returns: The path of the exported copy.
        :rtype: ``str``
        """
        record = self._call("export-temp", snapshot.label, snapshot.pathname)
        if not isinstance(record, dict) or "path" not in record:
            raise SnapcmpCalloutError("Unexpected export-temp output")
        _log_info("Exported %s to %s", snapshot, record["path"])
        return record["path"]

    def remove_temp(self, label: str, tempfile_path: str):
        """
        Remove a copy previously exported with ``export_temp()``.

        :param label: The label of the exported snapshot.
        :type label: ``str``
        :param tempfile_path: The path returned by ``export_temp()``.
        :type tempfile_path: ``str``
        """
        self._call("remove-temp", label, tempfile_path)
        _log_info("Removed exported copy %s", tempfile_path)

    @contextmanager
    def exported(self, snapshot: SnapshotRecord) -> Iterator[str]:
        """
        Context manager yielding the path of a temporary export of
        ``snapshot``. The export is removed when the block exits, however
        it exits.

        :param snapshot: The snapshot to export.
        :type snapshot: ``SnapshotRecord``
        """
        tempfile_path = self.export_temp(snapshot)
        try:
            yield tempfile_path
        except BaseException:
            # Keep the original error if cleanup also fails.
            try:
                self.remove_temp(snapshot.label, tempfile_path)
            except SnapcmpError as err:
                _log_error("Could not remove exported copy %s: %s", tempfile_path, err)
            raise
        self.remove_temp(snapshot.label, tempfile_path)
