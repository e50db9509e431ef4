# Copyright Red Hat
#
# tests/test_client.py - Helper client tests
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch, call
from subprocess import CompletedProcess
import json
import logging

from snapcmp import SnapcmpCalloutError, SnapcmpNotFoundError
from snapcmp.client import HelperClient, SnapshotRecord

log = logging.getLogger()

HELPER = ["sudo", "-n", "snapcmp-helper"]

LABEL = "Tue 01/02  3:04 PM"
SNAP_PATH = "/home/.snapshots/4/snapshot/user/a.txt"
TEMP_PATH = "/tmp/snapcmp-Tue_01-02__3:04_PM/a.txt"


def _completed(returncode=0, stdout="", stderr=""):
    return CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class HelperClientTests(unittest.TestCase):
    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.client = HelperClient(HELPER)
        self.snapshot = SnapshotRecord(LABEL, SNAP_PATH, "4")

    @patch("snapcmp.client.run")
    def test_differing_snapshots(self, run):
        records = [
            {"label": LABEL, "pathname": SNAP_PATH, "snapshot": "4"},
            {"label": "Wed 01/03  3:04 PM", "pathname": "/x"},
        ]
        run.return_value = _completed(stdout=json.dumps(records) + "\n")
        snapshots = self.client.differing_snapshots("/home/user/a.txt")
        run.assert_called_once_with(
            HELPER + ["list-differing", "/home/user/a.txt"],
            capture_output=True,
            encoding="utf8",
            check=False,
        )
        self.assertEqual(snapshots[0], self.snapshot)
        self.assertEqual(snapshots[1].snapshot, "")
        self.assertEqual(str(snapshots[0]), f"{LABEL} -> {SNAP_PATH}")

    @patch("snapcmp.client.run")
    def test_differing_snapshots_error_verbatim(self, run):
        msg = "Snapshots are not configured for the volume containing /x"
        run.return_value = _completed(1, stdout=json.dumps({"error": msg}))
        with self.assertRaises(SnapcmpCalloutError) as cm:
            self.client.differing_snapshots("/x")
        self.assertEqual(str(cm.exception), msg)
        self.assertEqual(cm.exception.status, 1)

    @patch("snapcmp.client.run")
    def test_nonzero_exit_without_record(self, run):
        run.return_value = _completed(1, stdout="", stderr="sudo: a password is required")
        with self.assertRaises(SnapcmpCalloutError) as cm:
            self.client.differing_snapshots("/x")
        self.assertIn("password", str(cm.exception))

    @patch("snapcmp.client.run")
    def test_unparsable_output(self, run):
        run.return_value = _completed(0, stdout="not json")
        with self.assertRaises(SnapcmpCalloutError):
            self.client.differing_snapshots("/x")

    @patch("snapcmp.client.run")
    def test_wrong_shape_output(self, run):
        run.return_value = _completed(0, stdout=json.dumps({"path": "/x"}))
        with self.assertRaises(SnapcmpCalloutError):
            self.client.differing_snapshots("/x")
        run.return_value = _completed(0, stdout=json.dumps([{"label": LABEL}]))
        with self.assertRaises(SnapcmpCalloutError):
            self.client.differing_snapshots("/x")

    @patch("snapcmp.client.run")
    def test_helper_not_found(self, run):
        run.side_effect = FileNotFoundError("sudo")
        with self.assertRaises(SnapcmpNotFoundError):
            self.client.differing_snapshots("/x")

    @patch("snapcmp.client.run")
    def test_export_temp(self, run):
        run.return_value = _completed(stdout=json.dumps({"path": TEMP_PATH}))
        self.assertEqual(self.client.export_temp(self.snapshot), TEMP_PATH)
        run.assert_called_once_with(
            HELPER + ["export-temp", LABEL, SNAP_PATH],
            capture_output=True,
            encoding="utf8",
            check=False,
        )

    @patch("snapcmp.client.run")
    def test_export_temp_bad_output(self, run):
        run.return_value = _completed(stdout=json.dumps([]))
        with self.assertRaises(SnapcmpCalloutError):
            self.client.export_temp(self.snapshot)

    @patch("snapcmp.client.run")
    def test_remove_temp(self, run):
        run.return_value = _completed()
        self.client.remove_temp(LABEL, TEMP_PATH)
        run.assert_called_once_with(
            HELPER + ["remove-temp", LABEL, TEMP_PATH],
            capture_output=True,
            encoding="utf8",
            check=False,
        )

    @patch("snapcmp.client.run")
    def test_exported_removes_on_success(self, run):
        run.side_effect = [
            _completed(stdout=json.dumps({"path": TEMP_PATH})),
            _completed(),
        ]
        with self.client.exported(self.snapshot) as path:
            self.assertEqual(path, TEMP_PATH)
        self.assertEqual(run.call_count, 2)
        self.assertEqual(run.call_args_list[1][0][0], HELPER + ["remove-temp", LABEL, TEMP_PATH])

    @patch("snapcmp.client.run")
    def test_exported_removes_on_error(self, run):
        run.side_effect = [
            _completed(stdout=json.dumps({"path": TEMP_PATH})),
            _completed(),
        ]
        with self.assertRaises(RuntimeError):
            with self.client.exported(self.snapshot):
                raise RuntimeError("viewer crashed")
        self.assertEqual(
            run.call_args_list[1],
            call(
                HELPER + ["remove-temp", LABEL, TEMP_PATH],
                capture_output=True,
                encoding="utf8",
                check=False,
            ),
        )

    @patch("snapcmp.client.run")
    def test_exported_no_remove_when_export_fails(self, run):
        run.return_value = _completed(1, stdout=json.dumps({"error": "bad label"}))
        with self.assertRaises(SnapcmpCalloutError):
            with self.client.exported(self.snapshot):
                self.fail("export should not succeed")
        self.assertEqual(run.call_count, 1)

    @patch("snapcmp.client.run")
    def test_helper_not_executable(self, run):
        run.side_effect = PermissionError(13, "Permission denied")
        with self.assertRaises(SnapcmpCalloutError):
            self.client.differing_snapshots("/x")

    @patch("snapcmp.client.run")
    def test_exported_keeps_error_when_remove_fails(self, run):
        run.side_effect = [
            _completed(stdout=json.dumps({"path": TEMP_PATH})),
            _completed(1, stdout=json.dumps({"error": "remove failed"})),
        ]
        with self.assertRaises(RuntimeError):
            with self.client.exported(self.snapshot):
                raise RuntimeError("viewer crashed")
        self.assertEqual(run.call_count, 2)

    @patch("snapcmp.client.run")
    def test_exported_remove_failure_reported(self, run):
        run.side_effect = [
            _completed(stdout=json.dumps({"path": TEMP_PATH})),
            _completed(1, stdout=json.dumps({"error": "remove failed"})),
        ]
        with self.assertRaises(SnapcmpCalloutError) as cm:
            with self.client.exported(self.snapshot):
                pass
        self.assertEqual(str(cm.exception), "remove failed")
