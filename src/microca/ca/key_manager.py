"""Authority key management: loading or bootstrapping the CA identity.

On first run, when neither the key file nor the certificate file exists, a
new key and self-signed root certificate are generated and persisted, then
loaded back from disk. Every later run reuses the persisted pair.
"""

import dataclasses
import logging
from pathlib import Path

from opentelemetry import trace

from microca.ca.certificate_generator import generate_root_certificate
from microca.ca.crypto import public_keys_equal
from microca.ca.keys import KeySpec, create_private_key, describe_key
from microca.ca.models import Issuer
from microca.ca.storage import (
    certificate_public_key,
    read_certificate,
    read_private_key,
    write_certificate,
)
from microca.errors import StorageError, ValidationError
from microca.metrics import ca_metrics
from microca.shared.config import Settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def load_issuer(key_path: Path, cert_path: Path) -> Issuer:
    """Load the authority from existing files and verify they belong together.

    Raises:
        StorageError: If either file cannot be read.
        ValidationError: If either file is malformed or the certificate's
            public key does not match the private key.
    """
    private_key = read_private_key(key_path)
    certificate = read_certificate(cert_path)
    public_key = certificate_public_key(certificate, cert_path)

    if not public_keys_equal(private_key.public_key(), public_key):
        raise ValidationError(
            f"public key in CA certificate {cert_path} doesn't match private key in {key_path}"
        )

    return Issuer(
        private_key=private_key,
        certificate=certificate,
        key_path=key_path,
        certificate_path=cert_path,
        source="loaded",
    )


class KeyManager:
    """Manages loading and first-run generation of the authority identity."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def key_path(self) -> Path:
        return self._settings.CA_KEY_PATH

    @property
    def cert_path(self) -> Path:
        return self._settings.CA_CERT_PATH

    def load_or_generate(self) -> Issuer:
        """Load the authority, creating it first if neither file exists.

        Returns:
            The verified Issuer; ``source`` is ``"generated"`` when this call
            created the files.

        Raises:
            StorageError: If exactly one of the two files exists.
            ValidationError: If the persisted material is invalid.
            ResourceConflictError: If another process created a file first.
        """
        with tracer.start_as_current_span("KeyManager.load_or_generate") as span:
            key_exists = self.key_path.exists()
            cert_exists = self.cert_path.exists()

            if not key_exists and not cert_exists:
                self._generate_new()
                issuer = dataclasses.replace(
                    load_issuer(self.key_path, self.cert_path), source="generated"
                )
            elif not key_exists:
                raise StorageError(f"{self.key_path} does not exist (but {self.cert_path} exists)")
            elif not cert_exists:
                raise StorageError(f"{self.cert_path} does not exist (but {self.key_path} exists)")
            else:
                issuer = load_issuer(self.key_path, self.cert_path)

            span.set_attribute("source", issuer.source)
            span.set_attribute("algorithm", describe_key(issuer.private_key))
            span.set_attribute(
                "ca_cert_expires", issuer.certificate.not_valid_after_utc.isoformat()
            )
            self._log_loaded(issuer)
            return issuer

    def _generate_new(self) -> None:
        """Generate and persist a new authority key and root certificate."""
        spec = KeySpec.from_settings(self._settings)
        logger.info(
            "authority_generating",
            extra={"algorithm": str(spec), "key_path": str(self.key_path)},
        )

        private_key = create_private_key(spec, self.key_path)
        certificate = generate_root_certificate(private_key, self._settings.CA_NAME)
        write_certificate(self.cert_path, certificate)

        logger.info(
            "authority_saved",
            extra={"key_path": str(self.key_path), "cert_path": str(self.cert_path)},
        )

    def _log_loaded(self, issuer: Issuer) -> None:
        logger.info(
            "authority_loaded",
            extra={
                "source": issuer.source,
                "algorithm": describe_key(issuer.private_key),
                "ca_cert_expires": issuer.certificate.not_valid_after_utc.isoformat(),
            },
        )
        ca_metrics.record_authority_loaded(issuer.source)
