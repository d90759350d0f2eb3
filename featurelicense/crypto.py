"""
Feature License - Cryptographic Primitives

Digest computation and the RSA transform used to sign a license digest.
Signing encrypts the digest with the private key (PKCS#1 v1.5), and
verification recovers the digest with the public key, so a license can be
checked by comparing the recovered digest with a freshly computed one.

Keys are stored as `cipher || 0x00 || DER`, where the cipher string names
the algorithm the key pair was created for.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils
from cryptography.hazmat.primitives.asymmetric.rsa import (
    RSAPrivateKey,
    RSAPublicKey,
)


logger = logging.getLogger(__name__)

DEFAULT_DIGEST = "SHA-512"
DEFAULT_CIPHER = "RSA"
DEFAULT_KEY_SIZE = 2048

DIGESTS: dict[str, type[hashes.HashAlgorithm]] = {
    "SHA-512": hashes.SHA512,
    "SHA-384": hashes.SHA384,
    "SHA-256": hashes.SHA256,
    "SHA-224": hashes.SHA224,
    "SHA-1": hashes.SHA1,
    "MD5": hashes.MD5,
    "SHA3-256": hashes.SHA3_256,
    "SHA3-512": hashes.SHA3_512,
}


def hash_algorithm(name: str) -> hashes.HashAlgorithm:
    """Look up a digest algorithm by its name, e.g. "SHA-512"."""
    try:
        return DIGESTS[name]()
    except KeyError:
        raise UnsupportedAlgorithm(f"Unknown digest algorithm: {name}") from None


def digest(name: str, data: bytes) -> bytes:
    """Compute the digest of data with the named algorithm."""
    hasher = hashes.Hash(hash_algorithm(name))
    hasher.update(data)
    return hasher.finalize()


def is_signing_key(key) -> bool:
    """Return True if the key can be used to sign a license."""
    return isinstance(key, RSAPrivateKey)


def encrypt_digest(private_key: RSAPrivateKey, digest_value: bytes) -> bytes:
    """
    Encrypt a digest with the private key, producing the signature.

    The digest bytes are padded as a PKCS#1 v1.5 type 1 block without a
    DigestInfo wrapper, so the signature decrypts to the bare digest.
    """
    if not is_signing_key(private_key):
        raise ValueError(
            f"Key of type {type(private_key).__name__} cannot sign a license"
        )
    return private_key.sign(
        digest_value,
        padding.PKCS1v15(),
        utils.NoDigestInfo(),
    )


def recover_digest(public_key: RSAPublicKey, signature: bytes) -> bytes:
    """
    Recover the digest from a signature with the public key.

    Raises cryptography.exceptions.InvalidSignature if the signature was not
    made by the matching private key.
    """
    return public_key.recover_data_from_signature(
        signature,
        padding.PKCS1v15(),
        None,
    )


def algorithm_prefix(cipher: str) -> str:
    """Return the algorithm part of an `algorithm/mode/padding` cipher string."""
    return cipher.split("/", 1)[0]


def _split_key_bytes(encoded: bytes) -> tuple[str, bytes]:
    separator = encoded.find(b"\x00")
    if separator < 0:
        raise ValueError("Key does not contain algorithm specification")
    return encoded[:separator].decode("utf-8"), encoded[separator + 1:]


@dataclass
class LicenseKeyPair:
    """
    A private and/or public key together with the cipher string they were
    created for. Either key may be missing, e.g. an application that only
    verifies licenses loads the public key alone.
    """
    cipher: str
    private_key: Optional[RSAPrivateKey] = None
    public_key: Optional[RSAPublicKey] = None

    @classmethod
    def generate(
        cls,
        cipher: str = DEFAULT_CIPHER,
        size: int = DEFAULT_KEY_SIZE,
    ) -> "LicenseKeyPair":
        """
        Generate a new key pair.

        The cipher may carry mode and padding (`RSA/ECB/PKCS1Padding`);
        only the algorithm part is used for key generation.
        """
        algorithm = algorithm_prefix(cipher)
        if algorithm != "RSA":
            raise UnsupportedAlgorithm(f"Unsupported key algorithm: {algorithm}")
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=size,
        )
        logger.debug("Generated %d bit %s key pair", size, cipher)
        return cls(cipher, private_key, private_key.public_key())

    def private_bytes(self) -> bytes:
        """Encode the private key as cipher, zero byte, PKCS#8 DER."""
        if self.private_key is None:
            raise ValueError("Key pair does not have the private key")
        der = self.private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return self.cipher.encode("utf-8") + b"\x00" + der

    def public_bytes(self) -> bytes:
        """Encode the public key as cipher, zero byte, SubjectPublicKeyInfo DER."""
        if self.public_key is None:
            raise ValueError("Key pair does not have the public key")
        der = self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return self.cipher.encode("utf-8") + b"\x00" + der

    @classmethod
    def from_private_bytes(cls, encoded: bytes) -> "LicenseKeyPair":
        cipher, der = _split_key_bytes(encoded)
        return cls(cipher, private_key=serialization.load_der_private_key(der, password=None))

    @classmethod
    def from_public_bytes(cls, encoded: bytes) -> "LicenseKeyPair":
        cipher, der = _split_key_bytes(encoded)
        return cls(cipher, public_key=serialization.load_der_public_key(der))

    @classmethod
    def from_bytes(cls, private_encoded: bytes, public_encoded: bytes) -> "LicenseKeyPair":
        """
        Load both keys. The cipher is taken from the public key; the keys are
        not checked to belong together.
        """
        cipher, public_der = _split_key_bytes(public_encoded)
        _, private_der = _split_key_bytes(private_encoded)
        return cls(
            cipher,
            private_key=serialization.load_der_private_key(private_der, password=None),
            public_key=serialization.load_der_public_key(public_der),
        )
