"""
Feature License - Reference Implementation

Typed, signed license records exchanged in three interoperable forms:

- Binary wire form (magic number + length-prefixed features)
- Base64 transport form of the binary
- Canonical, human-editable text form with heredoc framing for
  multi-line values
- RSA signature over a digest of the license, stored in the license
  itself as a feature

SPDX-License-Identifier: AGPL-3.0-or-later
"""

__version__ = "0.1.0"

from .errors import LicenseError, CorruptFormatError, ParseError
from .feature import (
    Feature,
    FeatureType,
    binary_feature,
    string_feature,
    byte_feature,
    short_feature,
    int_feature,
    long_feature,
    float_feature,
    double_feature,
    big_integer_feature,
    big_decimal_feature,
    date_feature,
    uuid_feature,
)
from .license import License
from .crypto import LicenseKeyPair
from .io import IOFormat, read_license, write_license

__all__ = [
    "LicenseError",
    "CorruptFormatError",
    "ParseError",
    "Feature",
    "FeatureType",
    "binary_feature",
    "string_feature",
    "byte_feature",
    "short_feature",
    "int_feature",
    "long_feature",
    "float_feature",
    "double_feature",
    "big_integer_feature",
    "big_decimal_feature",
    "date_feature",
    "uuid_feature",
    "License",
    "LicenseKeyPair",
    "IOFormat",
    "read_license",
    "write_license",
]
