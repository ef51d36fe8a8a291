"""Asymmetric key generation.

A key is selected by a ``KeySpec``: the algorithm tag plus its parameter
set (RSA modulus size or ECDSA curve name). Selection priority follows the
command line: Ed25519 beats RSA, RSA beats the ECDSA default.
"""

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificatePublicKeyTypes,
)

from microca.ca.storage import write_private_key
from microca.errors import ConfigurationError, CryptoError
from microca.metrics import ca_metrics

if TYPE_CHECKING:
    from microca.shared.config import Settings

logger = logging.getLogger(__name__)


class KeyAlgorithm(StrEnum):
    RSA = "rsa"
    ECDSA = "ecdsa"
    ED25519 = "ed25519"


CURVES: dict[str, type[ec.EllipticCurve]] = {
    "P224": ec.SECP224R1,
    "P256": ec.SECP256R1,
    "P384": ec.SECP384R1,
    "P521": ec.SECP521R1,
}

DEFAULT_CURVE = "P256"
DEFAULT_RSA_BITS = 4096
RSA_PUBLIC_EXPONENT = 65537


@dataclass(frozen=True)
class KeySpec:
    """Algorithm and parameters for a new private key."""

    algorithm: KeyAlgorithm
    rsa_bits: int = DEFAULT_RSA_BITS
    curve: str = DEFAULT_CURVE

    def __post_init__(self) -> None:
        if self.algorithm == KeyAlgorithm.ECDSA and self.curve not in CURVES:
            raise ConfigurationError(f"unrecognized curve: {self.curve!r}")

    @classmethod
    def from_settings(cls, settings: "Settings") -> "KeySpec":
        """Pick the key algorithm from settings (Ed25519 > RSA > ECDSA)."""
        if settings.USE_ED25519:
            algorithm = KeyAlgorithm.ED25519
        elif settings.USE_RSA:
            algorithm = KeyAlgorithm.RSA
        else:
            algorithm = KeyAlgorithm.ECDSA
        return cls(algorithm=algorithm, rsa_bits=settings.RSA_BITS, curve=settings.ECDSA_CURVE)

    def __str__(self) -> str:
        if self.algorithm == KeyAlgorithm.RSA:
            return f"RSA-{self.rsa_bits}"
        if self.algorithm == KeyAlgorithm.ECDSA:
            return f"ECDSA-{self.curve}"
        return "Ed25519"


def generate_private_key(spec: KeySpec) -> CertificateIssuerPrivateKeyTypes:
    """Generate a new private key for ``spec``.

    Raises:
        CryptoError: If the underlying library rejects the parameters.
    """
    try:
        if spec.algorithm == KeyAlgorithm.ED25519:
            key: CertificateIssuerPrivateKeyTypes = ed25519.Ed25519PrivateKey.generate()
        elif spec.algorithm == KeyAlgorithm.RSA:
            key = rsa.generate_private_key(
                public_exponent=RSA_PUBLIC_EXPONENT,
                key_size=spec.rsa_bits,
            )
        else:
            key = ec.generate_private_key(CURVES[spec.curve]())
    except (ValueError, TypeError) as e:
        raise CryptoError(f"generating {spec} key: {e}") from e

    ca_metrics.record_key_generated(spec.algorithm.value)
    return key


def create_private_key(spec: KeySpec, path: Path) -> CertificateIssuerPrivateKeyTypes:
    """Generate a key and persist it to ``path``, failing if ``path`` exists."""
    key = generate_private_key(spec)
    write_private_key(path, key)
    logger.info("private_key_created", extra={"path": str(path), "algorithm": str(spec)})
    return key


def key_algorithm(
    key: CertificateIssuerPrivateKeyTypes | CertificatePublicKeyTypes,
) -> KeyAlgorithm:
    """Return the algorithm tag of a private or public key."""
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return KeyAlgorithm.RSA
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        return KeyAlgorithm.ECDSA
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey)):
        return KeyAlgorithm.ED25519
    raise CryptoError(f"unsupported key type {type(key).__name__}")


def describe_key(key: CertificateIssuerPrivateKeyTypes | CertificatePublicKeyTypes) -> str:
    """Get a log-friendly algorithm name, e.g. ``RSA-4096`` or ``ECDSA-secp256r1``."""
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return f"RSA-{key.key_size}"
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        return f"ECDSA-{key.curve.name}"
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey)):
        return "Ed25519"
    return "UNKNOWN"


_PUBLIC_KEY_ALGORITHM_NAMES = {
    KeyAlgorithm.RSA: "RSA",
    KeyAlgorithm.ECDSA: "ECDSA",
    KeyAlgorithm.ED25519: "Ed25519",
}


def public_key_algorithm_name(public_key: CertificatePublicKeyTypes) -> str:
    """Name of a certificate's public-key algorithm as shown in reports."""
    try:
        return _PUBLIC_KEY_ALGORITHM_NAMES[key_algorithm(public_key)]
    except CryptoError:
        return type(public_key).__name__
