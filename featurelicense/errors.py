"""
Feature License - Error Types

Exceptions raised by the binary and text codecs.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

from typing import Optional


class LicenseError(Exception):
    """Base exception for license codec operations."""
    pass


class CorruptFormatError(LicenseError):
    """Raised when binary license or feature data cannot be decoded."""

    def __init__(self, message: str, offset: Optional[int] = None):
        if offset is not None:
            message = f"{message} (at byte offset {offset})"
        super().__init__(message)
        self.offset = offset


class ParseError(LicenseError):
    """Raised when the text form of a license or feature is malformed."""

    def __init__(self, message: str, line: Optional[int] = None):
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
        self.line = line
