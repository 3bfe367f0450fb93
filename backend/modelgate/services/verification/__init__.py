"""
Ensemble verification of schema operations.
"""
from .audit import BestEffortAuditSink, InMemoryAuditSink, JsonlAuditSink, LoggingAuditSink
from .executor import ExecutionOutcome, PanelRunner, TaskExecutor
from .safety import SafetyCheckSuite
from .schema import (
    FailureReason,
    PanelMemberResult,
    SafetyCheckResult,
    SafetySeverity,
    VerificationContext,
    VerificationOperation,
    VerificationOutcome,
)
from .verifier import EnsembleVerifier, verify_operation

__all__ = [
    "BestEffortAuditSink",
    "EnsembleVerifier",
    "ExecutionOutcome",
    "FailureReason",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "LoggingAuditSink",
    "PanelMemberResult",
    "PanelRunner",
    "SafetyCheckResult",
    "SafetyCheckSuite",
    "SafetySeverity",
    "TaskExecutor",
    "VerificationContext",
    "VerificationOperation",
    "VerificationOutcome",
    "verify_operation",
]
