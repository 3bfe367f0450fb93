"""
Structured logging for the model gateway.

Every event carries:
- timestamp (ISO 8601, UTC)
- level and logger name
- service (service name identifier)
- request_id / trace_id (bound once per verify() or top-level select() call)
- user_id / project_id of the call (unless the event sets them explicitly)

Nested calls (the selections made while assembling a verification panel)
share the request_id of the enclosing call.
"""
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

import structlog
from structlog.types import Processor

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
project_id_var: ContextVar[Optional[str]] = ContextVar("project_id", default=None)

SERVICE_NAME = "modelgate"


def add_trace_context(
    logger: structlog.BoundLogger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Processor that copies the bound call context into each event."""
    trace_id = trace_id_var.get()
    if trace_id:
        event_dict["trace_id"] = trace_id

    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    # Explicit user_id fields on the event win over the context value
    user_id = user_id_var.get()
    if user_id and "user_id" not in event_dict:
        event_dict["user_id"] = user_id

    project_id = project_id_var.get()
    if project_id and "project_id" not in event_dict:
        event_dict["project_id"] = project_id

    event_dict["service"] = SERVICE_NAME

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()

    return event_dict


def configure_logging(
    log_level: str = "INFO",
    service_name: Optional[str] = None,
    json_output: bool = True
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        service_name: Value of the `service` field (defaults to SERVICE_NAME)
        json_output: JSON lines when True, console rendering otherwise
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_trace_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Logger for a module; pass __name__."""
    return structlog.get_logger(name)


def generate_request_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def call_context(
    user_id: Optional[str] = None,
    project_id: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> Iterator[str]:
    """
    Bind correlation fields for one verification or selection call.

    Yields the request_id. If a request_id is already bound (an enclosing
    call), it is reused and nothing is rebound. Otherwise a fresh one is
    generated, trace_id defaults to it, and every field is restored on exit.
    """
    existing = request_id_var.get()
    if existing is not None:
        yield existing
        return

    request_id = generate_request_id()
    tokens = [
        (request_id_var, request_id_var.set(request_id)),
        (trace_id_var, trace_id_var.set(trace_id or request_id)),
        (user_id_var, user_id_var.set(user_id)),
        (project_id_var, project_id_var.set(project_id)),
    ]
    try:
        yield request_id
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
