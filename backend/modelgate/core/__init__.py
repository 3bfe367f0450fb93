"""
Core modules.
Contains logging, metrics, tracing, configuration and resilience helpers.
"""
from .config import ConfigurationError, Settings, get_settings
from .observability import configure_observability

__all__ = ["ConfigurationError", "Settings", "configure_observability", "get_settings"]
