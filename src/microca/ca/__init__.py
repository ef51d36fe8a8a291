"""Certificate Authority module for microca.

This module provides:
- Authority key management (loading, first-run generation, verification)
- Key generation for RSA, ECDSA and Ed25519
- X.509 root and leaf certificate generation and signing
- PEM persistence with create-exclusive writes
"""

from microca.ca.certificate_generator import CertificateGenerator, generate_root_certificate
from microca.ca.key_manager import KeyManager, load_issuer
from microca.ca.keys import KeyAlgorithm, KeySpec
from microca.ca.models import Issuer, LeafIdentity

__all__ = [
    "CertificateGenerator",
    "Issuer",
    "KeyAlgorithm",
    "KeyManager",
    "KeySpec",
    "LeafIdentity",
    "generate_root_certificate",
    "load_issuer",
]
