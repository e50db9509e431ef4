# Copyright Red Hat
#
# tests/history/__init__.py - File history test package
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
