"""Value types produced by the certificate authority."""

from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes


@dataclass(frozen=True)
class Issuer:
    """Authority private key paired with its self-signed certificate.

    The certificate's public key is verified against the private key every
    time an Issuer is loaded from disk.
    """

    private_key: CertificateIssuerPrivateKeyTypes
    certificate: x509.Certificate
    key_path: Path
    certificate_path: Path
    source: str  # "loaded" or "generated"

    @property
    def subject_key_identifier(self) -> bytes | None:
        try:
            ext = self.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
        except x509.ExtensionNotFound:
            return None
        return ext.value.digest


@dataclass(frozen=True)
class LeafIdentity:
    """A freshly issued end-entity key and certificate on disk."""

    slug: str
    directory: Path
    key_path: Path
    certificate_path: Path
    private_key: CertificateIssuerPrivateKeyTypes
    certificate: x509.Certificate
