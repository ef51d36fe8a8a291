"""OpenTelemetry tracing and metrics providers.

The command line is a one-shot process, so providers are only installed
when console export is requested, and are shut down before exit to flush
pending batches.
"""

import sys
from dataclasses import dataclass, field

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

from .config import Settings

SERVICE_NAME = "microca"


def setup_tracing(resource: Resource) -> TracerProvider:
    provider = TracerProvider(resource=resource)

    # Export traces to stderr, stdout carries command output
    processor = BatchSpanProcessor(ConsoleSpanExporter(out=sys.stderr))
    provider.add_span_processor(processor)

    trace.set_tracer_provider(provider)
    return provider


def setup_metrics(resource: Resource) -> MeterProvider:
    """Configure OpenTelemetry metrics with a console reader."""
    console_reader = PeriodicExportingMetricReader(ConsoleMetricExporter(out=sys.stderr))
    provider = MeterProvider(resource=resource, metric_readers=[console_reader])

    metrics.set_meter_provider(provider)
    return provider


@dataclass
class Telemetry:
    """Handles to the installed providers."""

    tracer_provider: TracerProvider | None = None
    meter_provider: MeterProvider | None = None
    _shut_down: bool = field(default=False, repr=False)

    def shutdown(self) -> None:
        if self._shut_down:
            return
        if self.tracer_provider is not None:
            self.tracer_provider.shutdown()
        if self.meter_provider is not None:
            self.meter_provider.shutdown()
        self._shut_down = True


def setup_telemetry(settings: Settings) -> Telemetry:
    """Install tracing and metrics providers when TELEMETRY_CONSOLE is set."""
    if not settings.TELEMETRY_CONSOLE:
        return Telemetry()

    resource = Resource.create({"service.name": SERVICE_NAME})
    return Telemetry(
        tracer_provider=setup_tracing(resource),
        meter_provider=setup_metrics(resource),
    )
