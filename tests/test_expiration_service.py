"""Tests for the expiration report."""

import io
from unittest.mock import MagicMock, patch

import pytest
from cryptography.exceptions import UnsupportedAlgorithm
from rich.console import Console

from microca.errors import ValidationError
from microca.services.certificate_service import issue_leaf
from microca.services.expiration_service import (
    build_expiration_report,
    collect_authority_certificates,
    collect_leaf_certificates,
    render_expiration_report,
)


@pytest.fixture
def populated_dir(make_settings, issuer, tmp_path):
    """An authority plus leaves for b.test, a.test and 10.0.0.5."""
    for overrides in (
        {"DOMAINS": ["b.test"]},
        {"DOMAINS": ["a.test", "www.a.test"]},
        {"IP_ADDRESSES": ["10.0.0.5"]},
    ):
        issue_leaf(make_settings(**overrides), issuer, tmp_path)
    return tmp_path


def render(report, width: int = 200) -> str:
    buffer = io.StringIO()
    render_expiration_report(report, Console(file=buffer, width=width, highlight=False))
    return buffer.getvalue()


class TestCollectAuthorityCertificates:
    """Tests for top-level certificate discovery."""

    def test_skips_private_keys(self, populated_dir, issuer):
        """Test only the certificate is listed, not microca-key.pem."""
        summaries = collect_authority_certificates(populated_dir)

        assert [s.path.name for s in summaries] == ["microca.pem"]
        assert summaries[0].name == "CN=microca root (microca.pem)"
        assert summaries[0].key_algorithm == "ECDSA"
        assert summaries[0].not_after == issuer.certificate.not_valid_after_utc

    def test_lexical_order(self, populated_dir):
        """Test several top-level certificates are listed by file name."""
        (populated_dir / "aaa.pem").write_bytes((populated_dir / "microca.pem").read_bytes())
        summaries = collect_authority_certificates(populated_dir)
        assert [s.path.name for s in summaries] == ["aaa.pem", "microca.pem"]

    def test_invalid_certificate_propagates(self, populated_dir):
        """Test a non-certificate .pem file fails the report."""
        (populated_dir / "broken.pem").write_bytes(b"not a certificate")
        with pytest.raises(ValidationError, match="broken.pem"):
            collect_authority_certificates(populated_dir)

    def test_unsupported_key_names_file(self, populated_dir):
        """Test a certificate with an unusable key fails with its path."""
        certificate = MagicMock()
        certificate.public_key.side_effect = UnsupportedAlgorithm("unknown key type")

        with patch(
            "microca.services.expiration_service.read_certificate", return_value=certificate
        ):
            with pytest.raises(ValidationError, match="microca.pem"):
                collect_authority_certificates(populated_dir)


class TestCollectLeafCertificates:
    """Tests for leaf discovery."""

    def test_walks_subdirectories_in_order(self, populated_dir):
        """Test leaves are found in lexical directory order."""
        summaries = collect_leaf_certificates(populated_dir)
        assert [s.path.parent.name for s in summaries] == ["10.0.0.5", "a.test", "b.test"]

    def test_names_are_dns_names(self, populated_dir):
        """Test leaf rows list DNS names, or IPs when there are none."""
        names = [s.name for s in collect_leaf_certificates(populated_dir)]
        assert names == ["10.0.0.5", "a.test, www.a.test", "b.test"]

    def test_nested_directories(self, populated_dir):
        """Test leaves in nested directories are found."""
        nested = populated_dir / "archive" / "old"
        nested.mkdir(parents=True)
        (nested / "cert.pem").write_bytes((populated_dir / "a.test" / "cert.pem").read_bytes())

        dirs = [s.path.parent for s in collect_leaf_certificates(populated_dir)]
        assert nested in dirs

    def test_empty_directory(self, tmp_path):
        assert collect_leaf_certificates(tmp_path) == []


class TestRenderExpirationReport:
    """Tests for report rendering."""

    def test_authority_block_before_leaf_block(self, populated_dir):
        """Test the CA table is printed entirely before the leaf table."""
        output = render(build_expiration_report(populated_dir))

        ca_header = output.index("CA Certificate")
        ca_row = output.index("CN=microca root (microca.pem)")
        leaf_header = output.index("Leaf Certificate")
        leaf_rows = [output.index(name) for name in ("10.0.0.5", "a.test, www.a.test", "b.test")]

        assert ca_header < ca_row < leaf_header
        assert leaf_header < leaf_rows[0] < leaf_rows[1] < leaf_rows[2]

    def test_columns(self, populated_dir, issuer):
        """Test algorithm and expiration are shown."""
        output = render(build_expiration_report(populated_dir))
        expires = issuer.certificate.not_valid_after_utc.strftime("%Y-%m-%d %H:%M:%S UTC")
        assert "ECDSA" in output
        assert expires in output

    def test_empty_report_still_has_headers(self, tmp_path):
        output = render(build_expiration_report(tmp_path))
        assert "CA Certificate" in output
        assert "Leaf Certificate" in output

    def test_narrow_console_keeps_every_name_and_date(self, make_settings, issuer, tmp_path):
        """Test long SAN lists wrap instead of being cut on an 80-column console."""
        domains = [f"service-number-{i}.internal.example.com" for i in range(4)]
        leaf = issue_leaf(make_settings(DOMAINS=domains), issuer, tmp_path)

        output = render(build_expiration_report(tmp_path), width=80)

        for domain in domains:
            assert domain in output
        expires = leaf.certificate.not_valid_after_utc.strftime("%Y-%m-%d %H:%M:%S UTC")
        assert expires in output
        assert issuer.certificate.not_valid_after_utc.strftime("%Y-%m-%d %H:%M:%S UTC") in output
        assert "…" not in output
