"""Cryptographic helpers for certificate construction.

Provides key identifier computation, public-key comparison, serial numbers
and the signature hash matching a signing key.
"""

import secrets

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificatePublicKeyTypes,
)

from microca.errors import CryptoError

# Serial numbers are drawn from [1, 2**63 - 1]; X.509 requires them positive.
SERIAL_NUMBER_LIMIT = 2**63 - 1


def random_serial_number() -> int:
    """Draw an independent random serial number strictly below 2**63."""
    return secrets.randbelow(SERIAL_NUMBER_LIMIT) + 1


def compute_skid(public_key: CertificatePublicKeyTypes) -> bytes:
    """Compute the Subject Key Identifier of a public key.

    The identifier is the SHA-1 digest of the subjectPublicKey BIT STRING
    payload of the key's SubjectPublicKeyInfo, not of the whole structure
    (RFC 5280 section 4.2.1.2, method 1).

    Raises:
        CryptoError: If the key cannot be encoded.
    """
    try:
        return x509.SubjectKeyIdentifier.from_public_key(public_key).digest
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Failed to compute subject key identifier: {e}") from e


def public_key_der(public_key: CertificatePublicKeyTypes) -> bytes:
    """Canonical DER SubjectPublicKeyInfo encoding of a public key."""
    try:
        return public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    except (ValueError, TypeError) as e:
        raise CryptoError(f"Failed to encode public key: {e}") from e


def public_keys_equal(a: CertificatePublicKeyTypes, b: CertificatePublicKeyTypes) -> bool:
    """Return True if both keys have byte-identical SubjectPublicKeyInfo encodings."""
    return public_key_der(a) == public_key_der(b)


def signature_hash(private_key: CertificateIssuerPrivateKeyTypes) -> hashes.HashAlgorithm | None:
    """Pick the digest used when signing with ``private_key``.

    Ed25519 signs the message directly, so no digest is used.
    """
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return None
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        if isinstance(private_key.curve, ec.SECP521R1):
            return hashes.SHA512()
        if isinstance(private_key.curve, ec.SECP384R1):
            return hashes.SHA384()
        return hashes.SHA256()
    if isinstance(private_key, rsa.RSAPrivateKey):
        return hashes.SHA256()
    raise CryptoError(f"Unsupported signing key type {type(private_key).__name__}")
