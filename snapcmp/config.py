# Copyright Red Hat
#
# snapcmp/config.py - Snapshot compare configuration
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Configuration for the unprivileged ``snapcmp`` command.

The privileged helper deliberately reads no configuration.
"""
from configparser import ConfigParser, Error as ConfigParserError
from dataclasses import dataclass, field
from os.path import exists, expanduser, join
from typing import List
import logging
import os
import shlex

_log = logging.getLogger(__name__)

_log_debug = _log.debug

#: Global configuration section
_SNAPCMP_CFG_GLOBAL = "global"

#: Configuration keys
_SNAPCMP_CFG_HELPER = "helper"
_SNAPCMP_CFG_VIEWER = "viewer"
_SNAPCMP_CFG_BINARY_VIEWER = "binary_viewer"

#: Configuration file name
SNAPCMP_CONF = "snapcmp.conf"

DEFAULT_HELPER = "sudo -n snapcmp-helper"
DEFAULT_VIEWER = "diff -u"
DEFAULT_BINARY_VIEWER = "cmp"


def get_config_path() -> str:
    """
    Return the default configuration file path, honouring
    ``XDG_CONFIG_HOME``.

    :rtype: ``str``
    """
    config_home = os.environ.get("XDG_CONFIG_HOME") or expanduser("~/.config")
    return join(config_home, "snapcmp", SNAPCMP_CONF)


@dataclass
class SnapcmpConfig:
    """
    Snapcmp configuration.
    """

    #: Command used to run the privileged helper
    helper: List[str] = field(default_factory=lambda: shlex.split(DEFAULT_HELPER))
    #: Command used to compare text files: invoked as ``viewer OLD NEW``
    viewer: List[str] = field(default_factory=lambda: shlex.split(DEFAULT_VIEWER))
    #: Command used to compare binary files
    binary_viewer: List[str] = field(
        default_factory=lambda: shlex.split(DEFAULT_BINARY_VIEWER)
    )

    @classmethod
    def from_file(cls, config_file: str) -> "SnapcmpConfig":
        """
        Load ``SnapcmpConfig`` from an INI-style configuration file located at
        ``config_file``.

        :param config_file: path to snapcmp.conf
        :type config_file: ``str``.
        :returns: A ``SnapcmpConfig`` instance initialised from ``config_file``.
        :rtype: ``SnapcmpConfig``
        """
        config = SnapcmpConfig()

        if not exists(config_file):
            return config

        _log_debug("Loading configuration from '%s'", config_file)
        cfg = ConfigParser()
        try:
            cfg.read([config_file])
        except ConfigParserError as err:
            raise ValueError(f"Invalid configuration file {config_file}: {err}") from err
        if cfg.has_section(_SNAPCMP_CFG_GLOBAL):
            section = cfg[_SNAPCMP_CFG_GLOBAL]
            for key in (
                _SNAPCMP_CFG_HELPER,
                _SNAPCMP_CFG_VIEWER,
                _SNAPCMP_CFG_BINARY_VIEWER,
            ):
                if cfg.has_option(_SNAPCMP_CFG_GLOBAL, key):
                    value = shlex.split(section[key])
                    if not value:
                        raise ValueError(f"Empty '{key}' in {config_file}")
                    setattr(config, key, value)

        return config
