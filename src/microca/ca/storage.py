"""PEM persistence for keys and certificates.

New material is written with create-exclusive semantics (never overwrite);
existing material is parsed strictly by PEM label.
"""

import base64
import binascii
import logging
import os
import re
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificatePublicKeyTypes,
)

from microca.errors import CryptoError, ResourceConflictError, StorageError, ValidationError

logger = logging.getLogger(__name__)

PRIVATE_KEY_LABEL = "PRIVATE KEY"
CERTIFICATE_LABEL = "CERTIFICATE"

FILE_MODE = 0o600

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([^-\r\n]*)-----\r?\n(.*?)-----END \1-----",
    re.DOTALL,
)


def decode_pem_block(data: bytes) -> tuple[str, bytes]:
    """Return the label and DER payload of the first PEM block in ``data``.

    Raises:
        ValidationError: If no PEM block is found or its body is not base64.
    """
    match = _PEM_BLOCK_RE.search(data)
    if match is None:
        raise ValidationError("no PEM found")

    label = match.group(1).decode("ascii", errors="replace")
    body = b"".join(match.group(2).split())
    try:
        der = base64.b64decode(body, validate=True)
    except binascii.Error as e:
        raise ValidationError(f"malformed PEM body in {label} block: {e}") from e
    return label, der


def parse_private_key(data: bytes) -> CertificateIssuerPrivateKeyTypes:
    """Parse a PKCS8 ``PRIVATE KEY`` PEM block.

    Only RSA, ECDSA and Ed25519 keys are accepted.
    """
    label, der = decode_pem_block(data)
    if label != PRIVATE_KEY_LABEL:
        raise ValidationError(f"incorrect PEM type {label}")

    try:
        key = serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"invalid PKCS8 private key: {e}") from e

    if not isinstance(
        key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey)
    ):
        raise ValidationError(f"unsupported private key type {type(key).__name__}")
    return key


def parse_certificate(data: bytes) -> x509.Certificate:
    """Parse a ``CERTIFICATE`` PEM block."""
    label, der = decode_pem_block(data)
    if label != CERTIFICATE_LABEL:
        raise ValidationError(f"incorrect PEM type {label}")

    try:
        return x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise ValidationError(f"invalid X.509 certificate: {e}") from e


def _read_bytes(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise StorageError(f"reading {path}: {e}") from e


def read_private_key(path: Path) -> CertificateIssuerPrivateKeyTypes:
    """Read and parse a private key file."""
    data = _read_bytes(path)
    try:
        return parse_private_key(data)
    except ValidationError as e:
        raise ValidationError(f"reading private key from {path}: {e}") from e


def read_certificate(path: Path) -> x509.Certificate:
    """Read and parse a certificate file."""
    data = _read_bytes(path)
    try:
        return parse_certificate(data)
    except ValidationError as e:
        raise ValidationError(f"reading certificate from {path}: {e}") from e


def certificate_public_key(
    certificate: x509.Certificate, path: Path
) -> CertificatePublicKeyTypes:
    """Extract the public key of a certificate read from ``path``."""
    try:
        return certificate.public_key()
    except (UnsupportedAlgorithm, ValueError) as e:
        raise ValidationError(f"reading public key from certificate {path}: {e}") from e


def write_exclusive(path: Path, data: bytes) -> None:
    """Create ``path`` with owner-only permissions and write ``data`` to it.

    Raises:
        ResourceConflictError: If ``path`` already exists.
        StorageError: If the file cannot be created or written.
    """
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, FILE_MODE)
    except FileExistsError as e:
        raise ResourceConflictError(f"refusing to overwrite existing file {path}") from e
    except OSError as e:
        raise StorageError(f"creating {path}: {e}") from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except OSError as e:
        raise StorageError(f"writing {path}: {e}") from e

    logger.debug("file_written", extra={"path": str(path), "bytes": len(data)})


def private_key_pem(key: CertificateIssuerPrivateKeyTypes) -> bytes:
    """Serialize a private key as an unencrypted PKCS8 PEM block."""
    try:
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    except (ValueError, TypeError) as e:
        raise CryptoError(f"encoding private key: {e}") from e


def write_private_key(path: Path, key: CertificateIssuerPrivateKeyTypes) -> None:
    write_exclusive(path, private_key_pem(key))


def write_certificate(path: Path, certificate: x509.Certificate) -> None:
    write_exclusive(path, certificate.public_bytes(serialization.Encoding.PEM))
