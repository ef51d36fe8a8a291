"""X.509 certificate generation for the authority and its leaves.

Builds the self-signed root certificate and end-entity certificates signed
by the authority key.
"""

import ipaddress
import logging
import time
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificatePublicKeyTypes,
)
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from opentelemetry import trace

from microca.ca.crypto import compute_skid, random_serial_number, signature_hash
from microca.ca.keys import describe_key
from microca.ca.models import Issuer
from microca.errors import ConfigurationError, CryptoError
from microca.metrics import ca_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ROOT_VALIDITY_YEARS = 100

# Two years and thirty days keeps leaves under the 825-day ceiling that
# iOS 13 and macOS 10.15 enforce on TLS server certificates.
LEAF_VALIDITY_YEARS = 2
LEAF_VALIDITY_EXTRA_DAYS = 30

SERVER_AND_CLIENT_AUTH = x509.ExtendedKeyUsage(
    [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
)


def add_years(moment: datetime, years: int) -> datetime:
    """Add calendar years, rolling Feb 29 over to Mar 1 in non-leap years."""
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        return moment.replace(year=moment.year + years, month=3, day=1)


def _key_usage(
    *, digital_signature: bool, key_encipherment: bool, key_cert_sign: bool
) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=digital_signature,
        key_encipherment=key_encipherment,
        key_cert_sign=key_cert_sign,
        crl_sign=False,
        content_commitment=False,
        data_encipherment=False,
        key_agreement=False,
        encipher_only=False,
        decipher_only=False,
    )


def _sign(
    builder: x509.CertificateBuilder, private_key: CertificateIssuerPrivateKeyTypes
) -> x509.Certificate:
    try:
        return builder.sign(private_key, signature_hash(private_key))
    except (ValueError, TypeError) as e:
        raise CryptoError(f"signing certificate: {e}") from e


def generate_root_certificate(
    private_key: CertificateIssuerPrivateKeyTypes,
    common_name: str,
    now: datetime | None = None,
) -> x509.Certificate:
    """Build and self-sign the authority certificate.

    The certificate is valid for 100 years, may sign end-entity certificates
    only (path length zero), and carries identical subject and authority key
    identifiers.

    Args:
        private_key: The authority's private key.
        common_name: Subject and issuer CN.
        now: Start of the validity window, defaults to the current time.

    Returns:
        The signed root certificate.

    Raises:
        CryptoError: If the key identifier cannot be computed or signing fails.
    """
    with tracer.start_as_current_span("generate_root_certificate") as span:
        span.set_attribute("common_name", common_name)
        start_time = time.time()

        if now is None:
            now = datetime.now(timezone.utc)
        public_key = private_key.public_key()
        skid = compute_skid(public_key)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        serial_number = random_serial_number()

        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(now)
            .not_valid_after(add_years(now, ROOT_VALIDITY_YEARS))
            .add_extension(x509.SubjectKeyIdentifier(skid), critical=False)
            .add_extension(
                x509.AuthorityKeyIdentifier(
                    key_identifier=skid,
                    authority_cert_issuer=None,
                    authority_cert_serial_number=None,
                ),
                critical=False,
            )
            .add_extension(
                _key_usage(digital_signature=True, key_encipherment=False, key_cert_sign=True),
                critical=True,
            )
            .add_extension(SERVER_AND_CLIENT_AUTH, critical=False)
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        )
        certificate = _sign(builder, private_key)

        duration = time.time() - start_time
        ca_metrics.record_certificate_issued("root", duration)
        logger.info(
            "certificate_signed",
            extra={
                "kind": "root",
                "common_name": common_name,
                "serial": format(serial_number, "x"),
                "algorithm": describe_key(private_key),
                "not_after": certificate.not_valid_after_utc.isoformat(),
            },
        )
        return certificate


def leaf_common_name(domains: Sequence[str], ip_addresses: Sequence[str]) -> str:
    """First domain if any, else first IP address.

    Raises:
        ConfigurationError: If neither a domain nor an IP address is given.
    """
    if domains:
        return domains[0]
    if ip_addresses:
        return ip_addresses[0]
    raise ConfigurationError("must specify at least one domain name or IP address")


def parse_ip_addresses(
    ip_addresses: Sequence[str],
) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    """Parse IP literals, rejecting any that are not valid addresses."""
    parsed = []
    for value in ip_addresses:
        try:
            parsed.append(ipaddress.ip_address(value))
        except ValueError as e:
            raise ConfigurationError(f"invalid IP address {value}") from e
    return parsed


class CertificateGenerator:
    """Generates end-entity certificates signed by the authority.

    Certificate attributes:
    - Subject: CN=<first domain, else first IP>
    - SAN: every domain and IP address
    - Validity: now() to now() + 2 years + 30 days
    - Key Usage: Digital Signature (+ Key Encipherment for RSA keys only)
    - Extended Key Usage: Server Authentication, Client Authentication
    """

    def __init__(self, issuer: Issuer) -> None:
        """Initialize generator with the authority.

        Args:
            issuer: The authority's private key and certificate for signing.
        """
        self._issuer = issuer

    def _authority_key_identifier(self) -> x509.AuthorityKeyIdentifier:
        skid = self._issuer.subject_key_identifier
        if skid is None:
            return x509.AuthorityKeyIdentifier.from_issuer_public_key(
                self._issuer.certificate.public_key()  # type: ignore[arg-type]
            )
        return x509.AuthorityKeyIdentifier(
            key_identifier=skid,
            authority_cert_issuer=None,
            authority_cert_serial_number=None,
        )

    def generate(
        self,
        public_key: CertificatePublicKeyTypes,
        domains: Sequence[str],
        ip_addresses: Sequence[str],
        now: datetime | None = None,
    ) -> x509.Certificate:
        """Generate a leaf certificate for ``public_key``.

        Args:
            public_key: The leaf's public key.
            domains: DNS names, in order; the first becomes the CN.
            ip_addresses: IP literals, used as CN only when no domain is given.
            now: Start of the validity window, defaults to the current time.

        Returns:
            The signed leaf certificate.

        Raises:
            ConfigurationError: If no SAN is given or an IP literal is invalid.
            CryptoError: If signing fails.
        """
        with tracer.start_as_current_span("CertificateGenerator.generate") as span:
            common_name = leaf_common_name(domains, ip_addresses)
            parsed_ips = parse_ip_addresses(ip_addresses)
            span.set_attribute("common_name", common_name)

            start_time = time.time()
            if now is None:
                now = datetime.now(timezone.utc)
            not_after = add_years(now, LEAF_VALIDITY_YEARS) + timedelta(
                days=LEAF_VALIDITY_EXTRA_DAYS
            )
            serial_number = random_serial_number()
            span.set_attribute("serial", format(serial_number, "x"))

            sans: list[x509.GeneralName] = [x509.DNSName(d) for d in domains]
            sans.extend(x509.IPAddress(ip) for ip in parsed_ips)

            # Key encipherment only makes sense for RSA key transport.
            key_encipherment = isinstance(public_key, rsa.RSAPublicKey)

            builder = (
                x509.CertificateBuilder()
                .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
                .issuer_name(self._issuer.certificate.subject)
                .public_key(public_key)
                .serial_number(serial_number)
                .not_valid_before(now)
                .not_valid_after(not_after)
                .add_extension(x509.SubjectAlternativeName(sans), critical=False)
                .add_extension(x509.SubjectKeyIdentifier(compute_skid(public_key)), critical=False)
                .add_extension(self._authority_key_identifier(), critical=False)
                .add_extension(
                    _key_usage(
                        digital_signature=True,
                        key_encipherment=key_encipherment,
                        key_cert_sign=False,
                    ),
                    critical=True,
                )
                .add_extension(SERVER_AND_CLIENT_AUTH, critical=False)
                .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            )
            certificate = _sign(builder, self._issuer.private_key)

            duration = time.time() - start_time
            ca_metrics.record_certificate_issued("leaf", duration)
            logger.info(
                "certificate_signed",
                extra={
                    "kind": "leaf",
                    "common_name": common_name,
                    "serial": format(serial_number, "x"),
                    "algorithm": describe_key(public_key),
                    "not_after": not_after.isoformat(),
                },
            )
            return certificate
