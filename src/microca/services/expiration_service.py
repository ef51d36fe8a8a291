"""Expiration report over the persisted authority and leaf certificates.

The report is computed in full before anything is printed: first the
authority-level certificates found directly in the base directory, then
every leaf ``cert.pem`` found in its subdirectories.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from cryptography import x509
from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from microca.ca.keys import public_key_algorithm_name
from microca.ca.storage import certificate_public_key, read_certificate
from microca.services.certificate_service import LEAF_CERT_FILENAME

logger = logging.getLogger(__name__)

CERTIFICATE_SUFFIX = ".pem"
PRIVATE_KEY_MARKER = "key.pem"

EXPIRATION_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
EXPIRATION_WIDTH = len("0000-00-00 00:00:00 UTC")


@dataclass(frozen=True)
class CertificateSummary:
    """One row of the expiration report."""

    name: str
    path: Path
    key_algorithm: str
    not_after: datetime


@dataclass
class ExpirationReport:
    authorities: list[CertificateSummary] = field(default_factory=list)
    leaves: list[CertificateSummary] = field(default_factory=list)


def _summarize(name: str, path: Path, certificate: x509.Certificate) -> CertificateSummary:
    public_key = certificate_public_key(certificate, path)
    return CertificateSummary(
        name=name,
        path=path,
        key_algorithm=public_key_algorithm_name(public_key),
        not_after=certificate.not_valid_after_utc,
    )


def _leaf_names(certificate: x509.Certificate) -> str:
    """Comma-separated DNS names of a leaf.

    A leaf issued for IP addresses only has no DNS names; its row lists the
    IP addresses instead so it is not shown blank.
    """
    try:
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return ""
    names = san.get_values_for_type(x509.DNSName)
    if not names:
        names = [str(ip) for ip in san.get_values_for_type(x509.IPAddress)]
    return ", ".join(names)


def collect_authority_certificates(base_dir: Path) -> list[CertificateSummary]:
    """Summarize top-level ``*.pem`` files that are not private keys, by name."""
    summaries = []
    for path in sorted(base_dir.glob(f"*{CERTIFICATE_SUFFIX}")):
        if PRIVATE_KEY_MARKER in path.name or not path.is_file():
            continue
        certificate = read_certificate(path)
        name = f"{certificate.subject.rfc4514_string()} ({path.name})"
        summaries.append(_summarize(name, path, certificate))
    return summaries


def collect_leaf_certificates(base_dir: Path) -> list[CertificateSummary]:
    """Summarize ``cert.pem`` in every subdirectory, walked in lexical order."""
    summaries = []
    for dirpath, dirnames, _ in os.walk(base_dir):
        dirnames.sort()
        directory = Path(dirpath)
        if directory == base_dir:
            continue
        cert_path = directory / LEAF_CERT_FILENAME
        if not cert_path.is_file():
            continue
        certificate = read_certificate(cert_path)
        summaries.append(_summarize(_leaf_names(certificate), cert_path, certificate))
    return summaries


def build_expiration_report(base_dir: Path) -> ExpirationReport:
    """Collect authority and leaf summaries under ``base_dir``.

    Raises:
        StorageError: If a certificate file cannot be read.
        ValidationError: If a certificate file is not a valid certificate.
    """
    report = ExpirationReport(
        authorities=collect_authority_certificates(base_dir),
        leaves=collect_leaf_certificates(base_dir),
    )
    logger.info(
        "expiration_report_built",
        extra={
            "base_dir": str(base_dir),
            "authorities": len(report.authorities),
            "leaves": len(report.leaves),
        },
    )
    return report


def _format_expiration(moment: datetime) -> str:
    return moment.strftime(EXPIRATION_FORMAT)


def _table(heading: str, rows: list[CertificateSummary]) -> Table:
    table = Table(box=box.SIMPLE_HEAD, show_header=True, header_style="bold", pad_edge=False)
    # Only the name column may wrap; type and expiration are never cut.
    table.add_column(heading, overflow="fold")
    table.add_column("Type", no_wrap=True, min_width=len("Ed25519"))
    table.add_column("Expiration", no_wrap=True, width=EXPIRATION_WIDTH)
    for row in rows:
        table.add_row(Text(row.name), row.key_algorithm, _format_expiration(row.not_after))
    return table


def render_expiration_report(report: ExpirationReport, console: Console) -> None:
    """Print the authority table, then the leaf table."""
    console.print(_table("CA Certificate", report.authorities))
    console.print(_table("Leaf Certificate", report.leaves))
