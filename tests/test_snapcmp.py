# Copyright Red Hat
#
# tests/test_snapcmp.py - snapcmp package unit tests
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
from datetime import datetime, timezone
import dataclasses
import logging
import os
import tempfile

import snapcmp

log = logging.getLogger()


class SnapcmpTestsSimple(unittest.TestCase):
    """Test snapcmp module"""

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)

    def tearDown(self):
        log.debug("Tearing down (%s)", self._testMethodName)
        snapcmp.set_debug_mask(0)

    def test_set_debug_mask(self):
        snapcmp.set_debug_mask(snapcmp.SNAPCMP_DEBUG_ALL)
        self.assertEqual(snapcmp.get_debug_mask(), snapcmp.SNAPCMP_DEBUG_ALL)

    def test_set_debug_mask_bad_mask(self):
        with self.assertRaises(ValueError):
            snapcmp.set_debug_mask(snapcmp.SNAPCMP_DEBUG_ALL + 1)

    def test_SubsystemFilter(self):
        snapcmp.set_debug_mask(0)
        sf = snapcmp.SubsystemFilter("snapcmp")
        self.assertEqual(sf.enabled_subsystems, set())

        snapcmp.set_debug_mask(snapcmp.SNAPCMP_DEBUG_HISTORY)
        sf = snapcmp.SubsystemFilter("snapcmp")
        self.assertEqual(sf.enabled_subsystems, {snapcmp.SNAPCMP_SUBSYSTEM_HISTORY})

        record = logging.LogRecord("snapcmp", logging.DEBUG, "", 0, "msg", (), None)
        self.assertTrue(sf.filter(record))
        record.subsystem = snapcmp.SNAPCMP_SUBSYSTEM_HELPER
        self.assertFalse(sf.filter(record))
        record.subsystem = snapcmp.SNAPCMP_SUBSYSTEM_HISTORY
        self.assertTrue(sf.filter(record))

        info = logging.LogRecord("snapcmp", logging.INFO, "", 0, "msg", (), None)
        info.subsystem = snapcmp.SNAPCMP_SUBSYSTEM_HELPER
        self.assertTrue(sf.filter(info))

    def test_parse_debug_arg(self):
        self.assertEqual(
            snapcmp.parse_debug_arg("history,helper"),
            snapcmp.SNAPCMP_DEBUG_HISTORY | snapcmp.SNAPCMP_DEBUG_HELPER,
        )
        self.assertEqual(snapcmp.parse_debug_arg("all"), snapcmp.SNAPCMP_DEBUG_ALL)

    def test_parse_debug_arg_bad(self):
        with self.assertRaises(ValueError):
            snapcmp.parse_debug_arg("history,nosuch")

    def test_format_label_afternoon(self):
        ts = datetime(2024, 1, 2, 15, 4, 5, tzinfo=timezone.utc)
        self.assertEqual(snapcmp.format_label(ts), "Tue 01/02  3:04 PM")

    def test_format_label_two_digit_hour(self):
        ts = datetime(2024, 1, 2, 10, 30, tzinfo=timezone.utc)
        self.assertEqual(snapcmp.format_label(ts), "Tue 01/02 10:30 AM")

    def test_format_label_midnight(self):
        ts = datetime(2024, 3, 9, 0, 5, tzinfo=timezone.utc)
        self.assertEqual(snapcmp.format_label(ts), "Sat 03/09 12:05 AM")

    def test_format_label_is_valid(self):
        for hour in range(24):
            ts = datetime(2024, 6, 1, hour, 0, tzinfo=timezone.utc)
            label = snapcmp.format_label(ts)
            self.assertTrue(snapcmp.is_valid_label(label), label)

    def test_is_valid_label(self):
        self.assertTrue(snapcmp.is_valid_label("Tue 01/02  3:04 PM"))
        self.assertTrue(snapcmp.is_valid_label("Tue 01/02 3:04 PM"))
        self.assertTrue(snapcmp.is_valid_label("Tue 01/02 12:59 AM"))

    def test_is_valid_label_bad(self):
        bad_labels = [
            "",
            "Tue 01/02 3:04",
            "tue 01/02  3:04 PM",
            "Tue 1/02  3:04 PM",
            "Tue 01/02 03:04 PM",
            "Tue 01/02 13:04 PM",
            "Tue 01/02  3:60 PM",
            "Tue 01/02  3:04 PM/../../etc",
            "x Tue 01/02  3:04 PM",
            "../Tue 01/02  3:04 PM",
        ]
        for label in bad_labels:
            self.assertFalse(snapcmp.is_valid_label(label), label)

    def test_sanitize_label(self):
        self.assertEqual(
            snapcmp.sanitize_label("Tue 01/02  3:04 PM"), "Tue_01-02__3:04_PM"
        )

    def test_SnapshotEntry(self):
        ts = datetime(2024, 1, 2, 15, 4, tzinfo=timezone.utc)
        entry = snapcmp.SnapshotEntry("12", ts, "Tue 01/02  3:04 PM", "/a/b")
        self.assertEqual(str(entry), "Tue 01/02  3:04 PM -> /a/b")
        self.assertEqual(
            entry.to_dict(),
            {"label": "Tue 01/02  3:04 PM", "pathname": "/a/b", "snapshot": "12"},
        )
        with self.assertRaises(dataclasses.FrozenInstanceError):
            entry.label = "other"

    def test_SnapcmpCalloutError(self):
        err = snapcmp.SnapcmpCalloutError("boom", status=3)
        self.assertEqual(str(err), "boom")
        self.assertEqual(err.status, 3)
        self.assertIsInstance(err, snapcmp.SnapcmpError)

    def test_get_state_dir_env(self):
        with patch.dict(os.environ, {"XDG_STATE_HOME": "/var/tmp/state"}):
            self.assertEqual(snapcmp.get_state_dir(), "/var/tmp/state/snapcmp")

    def test_get_state_dir_default(self):
        env = {k: v for k, v in os.environ.items() if k != "XDG_STATE_HOME"}
        env["HOME"] = "/home/user"
        with patch.dict(os.environ, env, clear=True):
            self.assertEqual(
                snapcmp.get_state_dir(), "/home/user/.local/state/snapcmp"
            )

    def test_setup_logging_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            log_file = os.path.join(tmp, "state", "test.log")
            handlers = snapcmp.setup_logging(0, log_file)
            try:
                self.assertEqual(len(handlers), 2)
                logging.getLogger("snapcmp.test").info("hello audit")
            finally:
                snapcmp.shutdown_logging(handlers)
            self.assertEqual(logging.getLogger("snapcmp").handlers, [])
            with open(log_file, encoding="utf8") as f:
                self.assertIn("hello audit", f.read())
