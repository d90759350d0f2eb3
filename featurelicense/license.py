"""
Feature License - License Record

A license is a name-keyed set of features. It can be converted to a binary
form, a base64 form of the binary, and a line-oriented text form. All
serialized forms list the features sorted by name, so equal licenses have
equal serializations.

Binary layout (all integers 4-byte big-endian):

    [MAGIC]([feature length][feature bytes])*

The signature is stored as the `licenseSignature` BINARY feature and the
digest algorithm used to create it as the `signatureDigest` STRING feature.
The signed bytes are the binary form without `licenseSignature`.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import base64
import binascii
import hmac
import logging
import struct
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional, Union
from uuid import UUID, uuid4

from . import crypto, multiline
from .errors import CorruptFormatError, ParseError
from .feature import (
    Feature,
    FeatureType,
    binary_feature,
    date_feature,
    parse_feature,
    split_line,
    string_feature,
    uuid_feature,
)


logger = logging.getLogger(__name__)

MAGIC = 0x21CE4E5E

SIGNATURE_KEY = "licenseSignature"
DIGEST_KEY = "signatureDigest"
EXPIRY_DATE = "expiryDate"
LICENSE_ID = "licenseId"

# Reserved feature names and the only type they may have
RESERVED_TYPES = {
    SIGNATURE_KEY: FeatureType.BINARY,
    DIGEST_KEY: FeatureType.STRING,
}

FINGERPRINT_DIGEST = "SHA-512"

_INT = struct.Struct(">i")


class License:
    """
    Mutable collection of features.

    Adding a feature with a name that is already present replaces the old
    one. A License is not safe for concurrent mutation; a fully built
    instance can be shared read-only.
    """

    def __init__(self, features: Iterable[Feature] = ()):
        self._features: dict[str, Feature] = {}
        for feature in features:
            self.add(feature)

    # Collection

    def add(self, feature: Feature) -> None:
        """Add a feature, replacing any feature of the same name."""
        required = RESERVED_TYPES.get(feature.name)
        if required is not None and not feature.is_type(required):
            raise ValueError(
                f"Feature '{feature.name}' has to be {required.name}, "
                f"got {feature.type.name}"
            )
        self._features[feature.name] = feature

    def get(self, name: str) -> Optional[Feature]:
        return self._features.get(name)

    def remove(self, name: str) -> Optional[Feature]:
        return self._features.pop(name, None)

    def features(self) -> list[Feature]:
        """Return the features sorted by name."""
        return [self._features[name] for name in sorted(self._features)]

    def copy(self) -> "License":
        return License(self._features.values())

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features())

    def __len__(self) -> int:
        return len(self._features)

    def __contains__(self, name: object) -> bool:
        return name in self._features

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, License):
            return NotImplemented
        return self._features == other._features

    __hash__ = None

    def __repr__(self) -> str:
        return f"License({sorted(self._features)!r})"

    # Binary form

    def serialized(self, excluded: Iterable[str] = ()) -> bytes:
        """
        Serialize the license to its binary form.

        Features named in `excluded` are left out.
        """
        excluded = set(excluded)
        parts = [_INT.pack(MAGIC)]
        for feature in self.features():
            if feature.name in excluded:
                continue
            feature_bytes = feature.serialized()
            parts.append(_INT.pack(len(feature_bytes)))
            parts.append(feature_bytes)
        return b"".join(parts)

    def unsigned(self) -> bytes:
        """Binary form without the signature; this is what gets signed."""
        return self.serialized({SIGNATURE_KEY})

    @classmethod
    def from_bytes(cls, data: bytes) -> "License":
        """
        Decode a license from its binary form.

        Raises CorruptFormatError on a wrong magic number or on any corrupt,
        truncated or over-long feature block. Nothing is returned unless the
        whole buffer decodes.
        """
        data = bytes(data)
        if len(data) < _INT.size or _INT.unpack_from(data, 0)[0] != MAGIC:
            raise CorruptFormatError("License does not start with the magic number", offset=0)

        features = []
        offset = _INT.size
        while offset < len(data):
            if len(data) - offset < _INT.size:
                raise CorruptFormatError("License is truncated in a feature length", offset=offset)
            (length,) = _INT.unpack_from(data, offset)
            if length < 0:
                raise CorruptFormatError("Feature length is negative", offset=offset)
            offset += _INT.size
            if offset + length > len(data):
                raise CorruptFormatError(
                    f"License is truncated, feature needs {length} bytes, "
                    f"{len(data) - offset} left",
                    offset=offset,
                )
            try:
                features.append(Feature.from_bytes(data[offset:offset + length]))
            except CorruptFormatError as e:
                raise CorruptFormatError(
                    f"Corrupt feature block: {e}", offset=offset + (e.offset or 0)
                ) from e
            offset += length

        license = cls()
        for feature in features:
            try:
                license.add(feature)
            except ValueError as e:
                raise CorruptFormatError(str(e)) from e
        logger.debug("Decoded binary license with %d features", len(license))
        return license

    # Base64 form

    def to_base64(self) -> str:
        return base64.b64encode(self.serialized()).decode("ascii")

    @classmethod
    def from_base64(cls, encoded: Union[str, bytes]) -> "License":
        """Decode a license from base64; whitespace in the input is ignored."""
        if isinstance(encoded, str):
            encoded = encoded.encode("ascii", errors="replace")
        try:
            data = base64.b64decode(b"".join(encoded.split()), validate=True)
        except binascii.Error as e:
            raise CorruptFormatError(f"License is not valid base64: {e}") from e
        return cls.from_bytes(data)

    # Text form

    def __str__(self) -> str:
        return "".join(f"{feature}\n" for feature in self.features())

    @classmethod
    def from_string(cls, text: str) -> "License":
        """
        Decode a license from its text form.

        Each non-blank line is a `name[:TYPE]=value` feature; framed values
        continue on the following lines up to their delimiter.
        """
        license = cls()
        lines = enumerate(text.split("\n"), start=1)
        for number, line in lines:
            if not line.strip():
                continue
            try:
                name, type_name, value = split_line(line.rstrip("\r"))
                if multiline.is_framed(value):
                    value = multiline.decode(value, (raw for _, raw in lines))
                license.add(parse_feature(name, type_name, value))
            except ParseError as e:
                raise ParseError(str(e), line=number) from e
            except (ValueError, TypeError) as e:
                raise ParseError(str(e), line=number) from e
        logger.debug("Parsed text license with %d features", len(license))
        return license

    # Signature

    def sign(self, private_key, digest: str = crypto.DEFAULT_DIGEST) -> None:
        """
        Sign the license in place.

        Adds the `signatureDigest` feature, computes the digest of the
        unsigned form (which includes `signatureDigest`) and stores the
        digest encrypted with the private key as `licenseSignature`.
        """
        if not crypto.is_signing_key(private_key):
            raise ValueError(
                f"Key of type {type(private_key).__name__} cannot sign a license"
            )
        crypto.hash_algorithm(digest)

        self.add(string_feature(DIGEST_KEY, digest))
        digest_value = crypto.digest(digest, self.unsigned())
        signature = crypto.encrypt_digest(private_key, digest_value)
        self.add(binary_feature(SIGNATURE_KEY, signature))
        logger.debug("Signed license with %s, %d byte signature", digest, len(signature))

    def is_ok(self, public_key) -> bool:
        """
        Check the signature of the license against the public key.

        Returns False for an unsigned license, for a missing digest name,
        and for any failure of the cryptographic primitives. Never raises.
        """
        digest_feature = self.get(DIGEST_KEY)
        signature_feature = self.get(SIGNATURE_KEY)
        if digest_feature is None or signature_feature is None:
            logger.debug("License is not signed")
            return False

        try:
            name = digest_feature.get_string()
            expected = crypto.digest(name, self.unsigned())
            recovered = crypto.recover_digest(public_key, signature_feature.get_binary())
        except Exception as e:
            logger.debug("License signature verification failed: %r", e)
            return False

        verified = hmac.compare_digest(recovered, expected)
        if not verified:
            logger.debug("License digest does not match the signature")
        return verified

    def get_signature(self) -> Optional[bytes]:
        feature = self.get(SIGNATURE_KEY)
        return None if feature is None else feature.get_binary()

    def fingerprint(self) -> UUID:
        """
        Identify the license content independently of its signature.

        Both `licenseSignature` and `signatureDigest` are left out, so
        re-signing with another key or digest keeps the fingerprint.
        """
        value = crypto.digest(
            FINGERPRINT_DIGEST, self.serialized({SIGNATURE_KEY, DIGEST_KEY})
        )
        return UUID(bytes=value[:16])

    # Well-known features

    def set_expiry(self, expiry: datetime) -> None:
        self.add(date_feature(EXPIRY_DATE, expiry))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """A license without an expiry date never expires."""
        feature = self.get(EXPIRY_DATE)
        if feature is None:
            return False
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return feature.get_date() < now

    def set_license_id(self, license_id: Optional[UUID] = None) -> UUID:
        """Store the license id; a random one is generated if not given."""
        if license_id is None:
            license_id = uuid4()
        self.add(uuid_feature(LICENSE_ID, license_id))
        return license_id

    def get_license_id(self) -> Optional[UUID]:
        feature = self.get(LICENSE_ID)
        return None if feature is None else feature.get_uuid()
