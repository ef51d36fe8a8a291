"""OpenTelemetry metrics for microca."""

from collections.abc import Iterator

from opentelemetry import metrics

meter = metrics.get_meter("microca")

keys_generated_total = meter.create_counter(
    name="microca_keys_generated_total",
    description="Total private keys generated",
    unit="1",
)

certificates_issued_total = meter.create_counter(
    name="microca_certificates_issued_total",
    description="Total certificates signed",
    unit="1",
)

certificate_signing_duration = meter.create_histogram(
    name="microca_certificate_signing_duration_seconds",
    description="Certificate build and signing duration in seconds",
    unit="s",
)

leaves_issued_total = meter.create_counter(
    name="microca_leaves_issued_total",
    description="Total leaf identities persisted",
    unit="1",
)

# Authority loaded gauge - track whether it was loaded or generated
_authority_source: str | None = None


def _get_authority_loaded(
    options: metrics.CallbackOptions,
) -> Iterator[metrics.Observation]:
    """Callback to report authority loaded status."""
    if _authority_source:
        yield metrics.Observation(1, {"source": _authority_source})
    else:
        yield metrics.Observation(0, {"source": "none"})


authority_loaded_gauge = meter.create_observable_gauge(
    name="microca_authority_loaded",
    description="Authority loaded (1=yes, 0=no)",
    unit="1",
    callbacks=[_get_authority_loaded],
)


class CAMetrics:
    """Facade for microca metrics with proper labels."""

    def record_key_generated(self, algorithm: str) -> None:
        """Record key generation. Labels: algorithm=rsa|ecdsa|ed25519"""
        keys_generated_total.add(1, {"algorithm": algorithm})

    def record_certificate_issued(self, kind: str, duration_seconds: float) -> None:
        """Record a signed certificate. Labels: kind=root|leaf"""
        certificates_issued_total.add(1, {"kind": kind})
        certificate_signing_duration.record(duration_seconds, {"kind": kind})

    def record_leaf_issued(self) -> None:
        leaves_issued_total.add(1)

    def record_authority_loaded(self, source: str) -> None:
        """Record authority loaded with its source (loaded|generated)."""
        global _authority_source
        _authority_source = source


# Singleton instance
ca_metrics = CAMetrics()
