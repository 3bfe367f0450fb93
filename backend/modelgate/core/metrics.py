"""
Prometheus metrics collection module.

Metrics Categories:
- Selection Metrics: routing decisions per role and reason, canary routing, model scores
- Verification Metrics: outcomes, panel member executions, agreement scores
- Safety Metrics: failed safety checks by check and severity
- Audit Metrics: best-effort audit sink failures

All metrics follow Prometheus naming conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for duration, _distribution for distributions
"""
from typing import Optional
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    REGISTRY,
    CONTENT_TYPE_LATEST,
)

from modelgate.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# SELECTION METRICS
# ============================================================================

model_selections_total = Counter(
    "model_selections_total",
    "Total number of model selections",
    ["role", "reason"],
    registry=registry,
)

model_selection_not_found_total = Counter(
    "model_selection_not_found_total",
    "Total number of selections that found no eligible model",
    ["role", "cause"],  # "no_models" or "no_capable_models"
    registry=registry,
)

canary_routing_decisions_total = Counter(
    "canary_routing_decisions_total",
    "Canary routing decisions for roles with canary candidates",
    ["role", "decision"],  # "canary" or "stable"
    registry=registry,
)

model_score_distribution = Histogram(
    "model_score_distribution",
    "Distribution of computed model performance scores",
    ["role"],
    buckets=[0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
    registry=registry,
)

# ============================================================================
# VERIFICATION METRICS
# ============================================================================

verifications_total = Counter(
    "verifications_total",
    "Total number of ensemble verifications",
    ["operation", "result"],  # result: "accepted" or a failure reason
    registry=registry,
)

verification_duration_seconds = Histogram(
    "verification_duration_seconds",
    "End-to-end ensemble verification latency in seconds",
    ["operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=registry,
)

panel_member_executions_total = Counter(
    "panel_member_executions_total",
    "Panel member executions by model and status",
    ["model_id", "status"],  # status: "success", "failure", "timeout", "circuit_open"
    registry=registry,
)

panel_member_duration_seconds = Histogram(
    "panel_member_duration_seconds",
    "Panel member execution latency in seconds",
    ["model_id"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=registry,
)

agreement_score_distribution = Histogram(
    "agreement_score_distribution",
    "Distribution of ensemble agreement scores",
    ["operation"],
    buckets=[0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
    registry=registry,
)

# ============================================================================
# SAFETY & AUDIT METRICS
# ============================================================================

safety_check_failures_total = Counter(
    "safety_check_failures_total",
    "Total number of failed safety checks",
    ["check", "severity"],
    registry=registry,
)

audit_sink_failures_total = Counter(
    "audit_sink_failures_total",
    "Total number of audit events that could not be recorded",
    ["event_kind"],
    registry=registry,
)


def record_model_selection(role: str, reason: str) -> None:
    """
    Record a successful model selection.

    Args:
        role: Role the model was selected for
        reason: Selection reason (stable, canary, performance_based, fallback)
    """
    model_selections_total.labels(role=role, reason=reason).inc()


def record_selection_not_found(role: str, cause: str) -> None:
    """Record a selection that returned no model."""
    model_selection_not_found_total.labels(role=role, cause=cause).inc()


def record_canary_decision(role: str, use_canary: bool) -> None:
    """Record whether canary routing was applied for a role with canary candidates."""
    canary_routing_decisions_total.labels(
        role=role,
        decision="canary" if use_canary else "stable",
    ).inc()


def record_model_score(role: str, score: float) -> None:
    """
    Record a model performance score for distribution analysis.

    Args:
        role: Role of the scored model
        score: Performance score (0.0 to 1.0)
    """
    model_score_distribution.labels(role=role).observe(score)


def record_verification(
    operation: str,
    failure_reason: Optional[str],
    duration_seconds: float,
) -> None:
    """
    Record a verification outcome.

    Args:
        operation: Verification operation kind
        failure_reason: Failure reason, or None when the result was accepted
        duration_seconds: Total verification duration in seconds
    """
    verifications_total.labels(
        operation=operation,
        result=failure_reason or "accepted",
    ).inc()
    verification_duration_seconds.labels(operation=operation).observe(duration_seconds)


def record_panel_member(model_id: str, status: str, duration_seconds: float) -> None:
    """Record one panel member execution."""
    panel_member_executions_total.labels(model_id=model_id, status=status).inc()
    panel_member_duration_seconds.labels(model_id=model_id).observe(duration_seconds)


def record_agreement_score(operation: str, score: float) -> None:
    """Record an ensemble agreement score."""
    agreement_score_distribution.labels(operation=operation).observe(score)


def record_safety_check_failure(check: str, severity: str) -> None:
    """Record a failed safety check."""
    safety_check_failures_total.labels(check=check, severity=severity).inc()


def record_audit_failure(event_kind: str) -> None:
    """Record an audit event that could not be delivered."""
    audit_sink_failures_total.labels(event_kind=event_kind).inc()


def get_metrics() -> bytes:
    """
    Get Prometheus metrics in text format.

    Returns:
        Prometheus metrics text format
    """
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    """Get content type for a metrics scrape response."""
    return CONTENT_TYPE_LATEST
