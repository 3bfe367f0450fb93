"""
Audit trail for verification outcomes.

Sinks receive one event per terminal verification state:
verification_success or verification_failure. The verifier only ever talks
to a BestEffortAuditSink, which redacts secrets, bounds the write with a
timeout and swallows sink errors so auditing can never change a verdict.
"""
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

from modelgate.core.logging import get_logger
from modelgate.core.metrics import record_audit_failure
from modelgate.core.redaction import redact_secrets_from_object

logger = get_logger(__name__)

VERIFICATION_SUCCESS = "verification_success"
VERIFICATION_FAILURE = "verification_failure"


class AuditSink(Protocol):
    async def record(self, event_kind: str, payload: Dict[str, Any]) -> None:
        ...


class InMemoryAuditSink:
    """Keeps events in a list. Used by tests and local runs."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def record(self, event_kind: str, payload: Dict[str, Any]) -> None:
        self.events.append((event_kind, payload))

    def of_kind(self, event_kind: str) -> List[Dict[str, Any]]:
        return [payload for kind, payload in self.events if kind == event_kind]


class LoggingAuditSink:
    """Writes audit events to the structured log."""

    async def record(self, event_kind: str, payload: Dict[str, Any]) -> None:
        logger.info("audit_event", event_kind=event_kind, **payload)


class JsonlAuditSink:
    """Appends one JSON object per event to a file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    async def record(self, event_kind: str, payload: Dict[str, Any]) -> None:
        line = json.dumps(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "event": event_kind,
                "data": payload,
            },
            default=str,
        )
        await asyncio.to_thread(self._append, line)

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


class BestEffortAuditSink:
    """
    Wraps any sink: redacts payloads, applies a timeout, never raises.

    Returns True if the event was written, False otherwise.
    """

    def __init__(self, sink: AuditSink, timeout_seconds: Optional[float] = 2.0):
        self.sink = sink
        self.timeout_seconds = timeout_seconds

    async def record(self, event_kind: str, payload: Dict[str, Any]) -> bool:
        redacted = redact_secrets_from_object(payload)
        try:
            await asyncio.wait_for(self.sink.record(event_kind, redacted), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "audit_sink_timeout",
                event_kind=event_kind,
                timeout_seconds=self.timeout_seconds,
            )
            record_audit_failure(event_kind)
            return False
        except Exception as exc:
            logger.warning(
                "audit_sink_failed",
                event_kind=event_kind,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            record_audit_failure(event_kind)
            return False
        return True
