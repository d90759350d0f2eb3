"""
Feature License - Reading and Writing Licenses

Reads and writes a license in one of the three interchange formats over
binary streams.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import base64
import logging
from enum import Enum
from typing import BinaryIO

from .errors import ParseError
from .license import License


logger = logging.getLogger(__name__)

# Licenses are small; refuse to load anything larger than this
DEFAULT_MAX_SIZE = 1 << 20


class IOFormat(str, Enum):
    """Interchange formats of a license."""
    BINARY = "binary"
    BASE64 = "base64"
    STRING = "string"


def encode_license(license: License, fmt: IOFormat = IOFormat.BINARY) -> bytes:
    """Return the license in the given format as bytes."""
    if fmt == IOFormat.BINARY:
        return license.serialized()
    elif fmt == IOFormat.BASE64:
        return base64.b64encode(license.serialized())
    elif fmt == IOFormat.STRING:
        return str(license).encode("utf-8")
    else:
        raise ValueError(f"Unsupported license format: {fmt}")


def decode_license(data: bytes, fmt: IOFormat = IOFormat.BINARY) -> License:
    """Create a license from bytes in the given format."""
    if fmt == IOFormat.BINARY:
        return License.from_bytes(data)
    elif fmt == IOFormat.BASE64:
        return License.from_base64(data)
    elif fmt == IOFormat.STRING:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"License text is not valid UTF-8: {e}") from e
        return License.from_string(text)
    else:
        raise ValueError(f"Unsupported license format: {fmt}")


def write_license(
    stream: BinaryIO,
    license: License,
    fmt: IOFormat = IOFormat.BINARY,
) -> None:
    data = encode_license(license, fmt)
    stream.write(data)
    logger.debug("Wrote %d bytes of %s license", len(data), fmt.value)


def read_license(
    stream: BinaryIO,
    fmt: IOFormat = IOFormat.BINARY,
    max_size: int = DEFAULT_MAX_SIZE,
) -> License:
    """
    Read a license from a binary stream.

    Raises ValueError if the stream holds more than `max_size` bytes.
    """
    data = stream.read(max_size + 1)
    if len(data) > max_size:
        raise ValueError(f"License input is larger than {max_size} bytes")
    logger.debug("Read %d bytes of %s license", len(data), fmt.value)
    return decode_license(data, fmt)
