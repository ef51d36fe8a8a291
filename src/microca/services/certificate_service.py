"""Leaf issuance: key generation, signing and persistence per invocation."""

import logging
from collections.abc import Sequence
from pathlib import Path

from opentelemetry import trace

from microca.ca.certificate_generator import (
    CertificateGenerator,
    leaf_common_name,
    parse_ip_addresses,
)
from microca.ca.keys import KeySpec, create_private_key
from microca.ca.models import Issuer, LeafIdentity
from microca.ca.storage import write_certificate
from microca.errors import ConfigurationError, ResourceConflictError, StorageError
from microca.metrics import ca_metrics
from microca.shared.config import Settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LEAF_KEY_FILENAME = "key.pem"
LEAF_CERT_FILENAME = "cert.pem"
DIRECTORY_MODE = 0o700


def leaf_slug(domains: Sequence[str], ip_addresses: Sequence[str]) -> str:
    """Directory name for a leaf: its CN source with ``*`` replaced by ``_``.

    Raises:
        ConfigurationError: If no domain/IP is given or the name is only dots.
    """
    slug = leaf_common_name(domains, ip_addresses).replace("*", "_")
    if not slug.strip("."):
        raise ConfigurationError(f"invalid leaf directory name {slug!r}")
    return slug


def _ensure_directory(directory: Path) -> None:
    try:
        directory.mkdir(mode=DIRECTORY_MODE, exist_ok=True)
    except OSError as e:
        raise StorageError(f"creating directory {directory}: {e}") from e


def issue_leaf(settings: Settings, issuer: Issuer, base_dir: Path) -> LeafIdentity:
    """Generate a key and a certificate signed by ``issuer`` under ``base_dir``.

    Material lands in ``<base_dir>/<slug>/key.pem`` and ``cert.pem``. Inputs
    are validated before anything is written, and existing leaf material is
    never overwritten.

    Args:
        settings: Domains, IP addresses and key algorithm for the leaf.
        issuer: The loaded authority.
        base_dir: Directory holding the per-leaf directories.

    Returns:
        The persisted LeafIdentity.

    Raises:
        ConfigurationError: If no domain/IP is given, an IP is invalid, or the
            curve is unknown.
        ResourceConflictError: If the leaf already has a key or certificate.
        StorageError: If the directory or files cannot be created.
        CryptoError: If key generation or signing fails.
    """
    with tracer.start_as_current_span("issue_leaf") as span:
        domains = settings.DOMAINS
        ip_addresses = settings.IP_ADDRESSES

        slug = leaf_slug(domains, ip_addresses)
        parse_ip_addresses(ip_addresses)
        spec = KeySpec.from_settings(settings)
        span.set_attribute("slug", slug)
        span.set_attribute("algorithm", str(spec))

        directory = base_dir / slug
        key_path = directory / LEAF_KEY_FILENAME
        cert_path = directory / LEAF_CERT_FILENAME

        _ensure_directory(directory)
        for path in (key_path, cert_path):
            if path.exists():
                raise ResourceConflictError(
                    f"leaf {slug} already has {path.name}; refusing to overwrite {path}"
                )

        private_key = create_private_key(spec, key_path)
        generator = CertificateGenerator(issuer)
        certificate = generator.generate(private_key.public_key(), domains, ip_addresses)
        write_certificate(cert_path, certificate)

        ca_metrics.record_leaf_issued()
        logger.info(
            "leaf_issued",
            extra={
                "slug": slug,
                "key_path": str(key_path),
                "cert_path": str(cert_path),
                "not_after": certificate.not_valid_after_utc.isoformat(),
            },
        )

        return LeafIdentity(
            slug=slug,
            directory=directory,
            key_path=key_path,
            certificate_path=cert_path,
            private_key=private_key,
            certificate=certificate,
        )
