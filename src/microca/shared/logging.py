import logging
import sys

from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, ConsoleLogRecordExporter

from .config import Settings

_STREAM_HANDLER_NAME = "microca-stream"
_OTEL_HANDLER_NAME = "microca-otel"


def _replace_handler(handler: logging.Handler, name: str) -> None:
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == name:
            root.removeHandler(existing)
    handler.set_name(name)
    root.addHandler(handler)


def setup_logging(settings: Settings) -> LoggerProvider | None:
    """Configure logging to stderr, optionally mirrored through OpenTelemetry.

    stdout is reserved for command output, so every handler writes to stderr.
    Calling this again replaces the handlers installed by the previous call.

    Returns:
        The OpenTelemetry LoggerProvider when TELEMETRY_CONSOLE is set, so the
        caller can flush it on exit; otherwise None.
    """
    level = getattr(logging, settings.LOG_LEVEL)
    root = logging.getLogger()
    root.setLevel(level)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    _replace_handler(stream_handler, _STREAM_HANDLER_NAME)

    if not settings.TELEMETRY_CONSOLE:
        return None

    # Export log records as OTel JSON alongside the plain stream
    logger_provider = LoggerProvider()
    logger_provider.add_log_record_processor(
        BatchLogRecordProcessor(ConsoleLogRecordExporter(out=sys.stderr))
    )
    set_logger_provider(logger_provider)

    otel_handler = LoggingHandler(level=level, logger_provider=logger_provider)
    _replace_handler(otel_handler, _OTEL_HANDLER_NAME)
    return logger_provider


def teardown_logging(logger_provider: LoggerProvider | None) -> None:
    """Detach the handlers installed by setup_logging and flush OpenTelemetry."""
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() in (_STREAM_HANDLER_NAME, _OTEL_HANDLER_NAME):
            root.removeHandler(existing)
    if logger_provider is not None:
        logger_provider.shutdown()

