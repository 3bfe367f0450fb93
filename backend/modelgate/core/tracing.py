"""
OpenTelemetry tracing for selection and verification.

Spans are created around ModelSelector.select and EnsembleVerifier.verify so
a single verification can be followed across panel assembly, fan-out and
safety evaluation. Until configure_tracing runs, spans go to whatever global
provider is installed (a no-op one by default).
"""
from typing import Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.trace import Status, StatusCode, Tracer

from modelgate import __version__

from .logging import get_logger

logger = get_logger(__name__)

_tracer: Optional[Tracer] = None


def configure_tracing(
    service_name: str = "modelgate",
    otlp_endpoint: Optional[str] = None,
    sampling_rate: float = 1.0,
) -> TracerProvider:
    """
    Install an SDK tracer provider.

    Spans are exported over OTLP only when otlp_endpoint is given. A failing
    exporter setup is logged and tracing continues without export.
    """
    global _tracer

    resource = Resource.create({
        "service.name": service_name,
        "service.version": __version__,
    })

    if sampling_rate < 1.0:
        provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sampling_rate))
    else:
        provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        try:
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
            logger.info("tracing_otlp_configured", endpoint=otlp_endpoint, sampling_rate=sampling_rate)
        except Exception as e:
            logger.warning(
                "tracing_otlp_configuration_failed",
                endpoint=otlp_endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )

    trace.set_tracer_provider(provider)
    _tracer = provider.get_tracer(__name__)

    logger.info(
        "tracing_configured",
        service_name=service_name,
        sampling_rate=sampling_rate,
        otlp_enabled=bool(otlp_endpoint),
    )
    return provider


def get_tracer() -> Tracer:
    if _tracer is not None:
        return _tracer
    return trace.get_tracer(__name__)


def current_trace_id() -> Optional[str]:
    """Hex trace id of the active span, or None outside a recorded span."""
    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return format(span_context.trace_id, "032x")
    return None


def set_span_status(status_code: StatusCode, description: Optional[str] = None) -> None:
    trace.get_current_span().set_status(Status(status_code, description))


def record_exception(exception: Exception) -> None:
    """Record an exception on the current span and mark it as an error."""
    current_span = trace.get_current_span()
    current_span.record_exception(exception)
    current_span.set_status(Status(StatusCode.ERROR, str(exception)))
