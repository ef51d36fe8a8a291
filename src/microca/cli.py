"""Command line entry point for microca."""

import logging
from pathlib import Path

import click
from rich.console import Console

from microca.ca.key_manager import KeyManager
from microca.errors import MicroCAError
from microca.services.certificate_service import issue_leaf
from microca.services.expiration_service import build_expiration_report, render_expiration_report
from microca.shared.config import load_settings
from microca.shared.logging import setup_logging, teardown_logging
from microca.shared.telemetry import setup_telemetry

logger = logging.getLogger(__name__)

HELP = """\
microca is a simple CA intended for use in situations where the CA operator
also operates each host where a certificate will be used. It automatically
generates both a key and a certificate when asked to produce a certificate.
It does not offer OCSP or CRL services. microca is appropriate, for instance,
for generating certificates for RPC systems or microservices.

\b
On first run, microca will generate a keypair and a root certificate in the
current directory, and will reuse that same keypair and root certificate
unless they are deleted.

\b
On each run, microca will generate a new keypair and sign an end-entity (leaf)
certificate for that keypair. The certificate will contain a list of DNS names
and/or IP addresses from the command line flags. The key and certificate are
placed in a new directory whose name is chosen as the first domain name from
the certificate, or the first IP address if no domain names are present. It
will not overwrite existing keys or certificates.
"""


def _split(value: str | None) -> list[str] | None:
    if value is None:
        return None
    if not value:
        return []
    return value.split(",")


@click.command(help=HELP, context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--ca-key",
    default=None,
    help="Root private key filename, PEM encoded.  [default: microca-key.pem]",
)
@click.option(
    "--ca-cert",
    default=None,
    help="Root certificate filename, PEM encoded.  [default: microca.pem]",
)
@click.option(
    "--domains",
    default=None,
    help="Comma separated domain names to include as Subject Alternative Names.",
)
@click.option(
    "--ip-addresses",
    default=None,
    help="Comma separated IP addresses to include as Subject Alternative Names.",
)
@click.option("--ed25519", "use_ed25519", is_flag=True, help="Generate Ed25519 keys.")
@click.option("--rsa", "use_rsa", is_flag=True, help="Generate RSA keys.")
@click.option("--rsa-bits", type=int, default=None, help="RSA key size in bits.  [default: 4096]")
@click.option(
    "--ecdsa-curve",
    default=None,
    help="ECDSA curve used when generating keys (P224, P256 (default), P384, P521).",
)
@click.option(
    "--ca-name",
    default=None,
    help="Common Name used in root certificate.  [default: microca root]",
)
@click.option("--show-expire", is_flag=True, help="Show the expiration date for each certificate.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Log level for diagnostics on stderr.  [default: WARNING]",
)
@click.option("--telemetry-console", is_flag=True, help="Export telemetry to stderr.")
@click.argument("extra", nargs=-1)
@click.pass_context
def main(
    ctx: click.Context,
    extra: tuple[str, ...],
    ca_key: str | None,
    ca_cert: str | None,
    domains: str | None,
    ip_addresses: str | None,
    use_ed25519: bool,
    use_rsa: bool,
    rsa_bits: int | None,
    ecdsa_curve: str | None,
    ca_name: str | None,
    show_expire: bool,
    log_level: str | None,
    telemetry_console: bool,
) -> None:
    if extra:
        raise click.UsageError(
            f"Extra arguments: {' '.join(extra)} (maybe there are spaces in your domain list?)"
        )

    try:
        settings = load_settings(
            CA_KEY_PATH=ca_key,
            CA_CERT_PATH=ca_cert,
            DOMAINS=_split(domains),
            IP_ADDRESSES=_split(ip_addresses),
            # Flags only override the environment when given
            USE_ED25519=use_ed25519 or None,
            USE_RSA=use_rsa or None,
            RSA_BITS=rsa_bits,
            ECDSA_CURVE=ecdsa_curve,
            CA_NAME=ca_name,
            SHOW_EXPIRE=show_expire or None,
            LOG_LEVEL=log_level,
            TELEMETRY_CONSOLE=telemetry_console or None,
        )
    except MicroCAError as e:
        raise click.ClickException(str(e)) from e

    if not settings.SHOW_EXPIRE and not settings.DOMAINS and not settings.IP_ADDRESSES:
        click.echo(ctx.get_help(), err=True)
        ctx.exit(1)

    logger_provider = setup_logging(settings)
    telemetry = setup_telemetry(settings)
    try:
        base_dir = Path.cwd()
        if settings.SHOW_EXPIRE:
            report = build_expiration_report(base_dir)
            render_expiration_report(report, Console(highlight=False))
            return

        issuer = KeyManager(settings).load_or_generate()
        if issuer.source == "generated":
            click.echo(str(issuer.key_path))
            click.echo(str(issuer.certificate_path))

        leaf = issue_leaf(settings, issuer, base_dir)
        click.echo(str(leaf.key_path.relative_to(base_dir)))
        click.echo(str(leaf.certificate_path.relative_to(base_dir)))
    except MicroCAError as e:
        logger.error("microca_failed", extra={"error": str(e), "error_type": type(e).__name__})
        raise click.ClickException(str(e)) from e
    finally:
        telemetry.shutdown()
        teardown_logging(logger_provider)
