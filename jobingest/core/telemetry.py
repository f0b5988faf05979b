"""Tracing and log setup shared by the ingestion pipeline and the CLI scripts.

Spans stay in-process unless an OTLP endpoint is configured. Log records always
carry trace_id/span_id so a rejected or failed record can be matched to the
ingest span that handled it.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
import os
from typing import Any, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import DEPLOYMENT_ENVIRONMENT, SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import Span, Status, StatusCode

from jobingest.core.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s trace_id=%(trace_id)s span_id=%(span_id)s %(message)s"
_ZERO_TRACE_ID = "0" * 32
_ZERO_SPAN_ID = "0" * 16

_BASE_LOG_RECORD_FACTORY = logging.getLogRecordFactory()

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("jobingest")


@dataclass(slots=True)
class TelemetryRuntime:
    enabled: bool
    provider: TracerProvider | None


def configure_logging(level: int = logging.INFO) -> None:
    _install_log_correlation()
    if logging.getLogger().handlers:
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)


def setup_telemetry(settings: Settings) -> TelemetryRuntime:
    if not settings.otel_enabled:
        return TelemetryRuntime(enabled=False, provider=None)

    if settings.otel_log_correlation:
        _install_log_correlation()

    provider = TracerProvider(
        resource=Resource.create(
            {
                SERVICE_NAME: settings.otel_service_name,
                DEPLOYMENT_ENVIRONMENT: settings.environment,
                "jobingest.cache_backend": settings.cache_backend,
                "jobingest.base_currency": settings.base_currency,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(settings.otel_trace_sample_ratio)),
    )
    exporter = _build_exporter(settings)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return TelemetryRuntime(enabled=True, provider=provider)


def shutdown_telemetry(runtime: TelemetryRuntime) -> None:
    if runtime.provider is None:
        return
    runtime.provider.force_flush()
    runtime.provider.shutdown()


@contextmanager
def telemetry_session(settings: Settings) -> Iterator[TelemetryRuntime]:
    """Configure logging and tracing for a script run and flush spans on exit."""
    configure_logging()
    runtime = setup_telemetry(settings)
    try:
        yield runtime
    finally:
        shutdown_telemetry(runtime)


@contextmanager
def pipeline_step(name: str, **attributes: Any) -> Iterator[Span]:
    """Open an ``ingest.<name>`` span; failures are recorded on it and re-raised."""
    with tracer.start_as_current_span(f"ingest.{name}", record_exception=False, set_status_on_exception=False) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(f"job.{key}", value)
        try:
            yield span
        except Exception as exc:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, exc.__class__.__name__))
            raise


def _build_exporter(settings: Settings) -> OTLPSpanExporter | None:
    endpoint = (
        settings.otel_exporter_otlp_endpoint
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    )
    if not endpoint:
        logger.info("no OTLP endpoint configured; ingest spans stay local service=%s", settings.otel_service_name)
        return None
    return OTLPSpanExporter(endpoint=endpoint, headers=_otlp_headers(settings) or None)


def _otlp_headers(settings: Settings) -> dict[str, str]:
    """Headers from ``key=value`` pairs; pairs without ``=`` or with a blank key are ignored."""
    raw = settings.otel_exporter_otlp_headers or os.getenv("OTEL_EXPORTER_OTLP_HEADERS") or ""
    pairs = (item.partition("=") for item in raw.split(","))
    return {key.strip(): value.strip() for key, separator, value in pairs if separator and key.strip()}


def _correlated_record(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _BASE_LOG_RECORD_FACTORY(*args, **kwargs)
    context = trace.get_current_span().get_span_context()
    if context.is_valid:
        record.trace_id = format(context.trace_id, "032x")
        record.span_id = format(context.span_id, "016x")
    else:
        record.trace_id = _ZERO_TRACE_ID
        record.span_id = _ZERO_SPAN_ID
    return record


def _install_log_correlation() -> None:
    if logging.getLogRecordFactory() is not _correlated_record:
        logging.setLogRecordFactory(_correlated_record)
