"""
One-call setup of logging and tracing from Settings.

Library code never configures observability on import; entry points
(scripts, services embedding the gateway) call configure_observability once
at startup.
"""
from typing import Optional

from opentelemetry.sdk.trace import TracerProvider

from .config import Settings, get_settings
from .logging import configure_logging, get_logger
from .tracing import configure_tracing

logger = get_logger(__name__)


def configure_observability(settings: Optional[Settings] = None) -> TracerProvider:
    """
    Apply LOG_LEVEL / LOG_JSON and the OTEL_* settings.

    Args:
        settings: Settings to apply (defaults to get_settings())

    Returns:
        The installed tracer provider, so callers can shut it down on exit.
    """
    observability = (settings or get_settings()).observability

    configure_logging(
        log_level=observability.log_level,
        service_name=observability.service_name,
        json_output=observability.log_json,
    )
    provider = configure_tracing(
        service_name=observability.service_name,
        otlp_endpoint=observability.otlp_endpoint,
        sampling_rate=observability.sampling_rate,
    )
    logger.info(
        "observability_configured",
        log_level=observability.log_level,
        log_json=observability.log_json,
        otlp_endpoint=observability.otlp_endpoint,
    )
    return provider
