# Copyright Red Hat
#
# snapcmp/filetypes.py - Snapshot compare file types
#
# This file is part of the snapcmp project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File type information support.
"""
from typing import Optional
from pathlib import Path
from enum import Enum
import logging
import magic

from snapcmp import SNAPCMP_SUBSYSTEM_COMMAND

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_command(msg, *args, **kwargs):
    """A wrapper for command subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": SNAPCMP_SUBSYSTEM_COMMAND}, **kwargs)


#: Number of bytes inspected when sniffing for binary content
_SNIFF_SIZE = 8192

#: MIME types outside text/ that hold text content
_TEXT_MIME_TYPES = (
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-sh",
    "application/x-shellscript",
    "application/x-yaml",
    "application/yaml",
    "application/toml",
    "application/x-empty",
    "inode/x-empty",
)


class FileTypeCategory(Enum):
    """
    Broad categories of file content.
    """

    TEXT = "text"
    BINARY = "binary"
    UNKNOWN = "unknown"


class FileTypeInfo:
    """
    File type information for one file.
    """

    def __init__(
        self,
        mime_type: str,
        description: str,
        category: FileTypeCategory,
        encoding: Optional[str] = None,
    ):
        """
        Initialise a new ``FileTypeInfo`` object.

        :param mime_type: The detected MIME type.
        :param description: Type description returned by magic.
        :param category: The ``FileTypeCategory`` for the file.
        :param encoding: The detected character encoding, if known.
        """
        self.mime_type = mime_type
        self.description = description
        self.category = category
        self.encoding = encoding

    def __str__(self):
        return (
            f"mime_type: {self.mime_type}, "
            f"description: {self.description}, "
            f"category: {self.category.value}, "
            f"encoding: {self.encoding}"
        )

    @property
    def is_text(self) -> bool:
        """
        ``True`` if the file holds text content.
        """
        return self.category == FileTypeCategory.TEXT


def _sniff_is_binary(file_path: Path) -> bool:
    """
    Guess whether ``file_path`` holds binary data from the presence of NUL
    bytes near the start of the file.
    """
    with open(file_path, "rb") as f:
        return b"\0" in f.read(_SNIFF_SIZE)


class FileTypeDetector:
    """
    Detect file types using ``magic`` from python3-file-magic.
    """

    def detect_file_type(self, file_path: Path, use_magic=True) -> FileTypeInfo:
        """
        Detect file type information, optionally using file-magic for
        MIME type detection.

        :param file_path: The path to the file to inspect.
        :type file_path: ``Path``.
        :param use_magic: Use file-magic to detect the MIME type.
        :type use_magic: ``bool``
        :returns: File type information for ``file_path``.
        :rtype: ``FileTypeInfo``
        """
        if use_magic:
            # c9s magic does not have magic.error
            if hasattr(magic, "error"):
                magic_errors = (magic.error, OSError, ValueError)
            else:
                magic_errors = (OSError, ValueError)

            try:
                fm = magic.detect_from_filename(str(file_path))
                category = self._categorize_file(fm.mime_type)
                info = FileTypeInfo(fm.mime_type, fm.name, category, fm.encoding)
                _log_debug_command("Detected file type for %s: %s", file_path, info)
                return info
            except magic_errors as err:
                _log_warn("Error detecting file type for %s: %s", str(file_path), err)

        return self._guess_file_type(file_path)

    @staticmethod
    def _categorize_file(mime_type: str) -> FileTypeCategory:
        """
        Categorize file based on MIME type.

        :param mime_type: Detected file MIME type.
        :type mime_type: ``str``
        :returns: File type categorization.
        :rtype: ``FileTypeCategory``
        """
        mime_type = mime_type.lower()
        if mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES:
            return FileTypeCategory.TEXT
        return FileTypeCategory.BINARY

    @staticmethod
    def _guess_file_type(file_path: Path) -> FileTypeInfo:
        """
        Guess the file type by sniffing content without file-magic.

        :param file_path: The path to guess file type for.
        :type file_path: ``Path``
        :returns: A best-effort ``FileTypeInfo``.
        :rtype: ``FileTypeInfo``
        """
        try:
            binary = _sniff_is_binary(file_path)
        except OSError as err:
            _log_warn("Cannot read %s: %s", str(file_path), err)
            return FileTypeInfo(
                "application/octet-stream", "unknown", FileTypeCategory.UNKNOWN
            )
        if binary:
            return FileTypeInfo("application/octet-stream", "data", FileTypeCategory.BINARY)
        return FileTypeInfo("text/plain", "text", FileTypeCategory.TEXT)
