"""
Pydantic models for ensemble verification.

These are internal control-plane objects: the caller builds a
VerificationContext, the verifier returns a VerificationOutcome that always
carries the full panel results and safety checks for diagnostics.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from modelgate.services.models.schema import ModelRole


class VerificationOperation(str, Enum):
    DESIGN = "design"
    MIGRATE = "migrate"
    OPTIMIZE = "optimize"
    VALIDATE = "validate"


DESTRUCTIVE_OPERATIONS = frozenset({VerificationOperation.MIGRATE, VerificationOperation.OPTIMIZE})


class SafetySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FailureReason(str, Enum):
    PANEL_ASSEMBLY_FAILED = "panel_assembly_failed"
    ALL_MODELS_FAILED = "all_models_failed"
    CRITICAL_SAFETY_VIOLATION = "critical_safety_violation"
    INSUFFICIENT_QUORUM = "insufficient_quorum"
    INSUFFICIENT_AGREEMENT = "insufficient_agreement"


class VerificationContext(BaseModel):
    """
    Input to EnsembleVerifier.verify.

    quorum_size falls back to the configured default (2). panel_size is how
    many distinct models to run; it defaults to, and is never below, the
    quorum size.
    """

    operation: VerificationOperation
    inputs: Dict[str, Any] = Field(default_factory=dict)
    role: ModelRole = ModelRole.SCHEMA
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    require_quorum: bool = True
    quorum_size: Optional[int] = Field(None, ge=1)
    panel_size: Optional[int] = Field(None, ge=1)

    def is_destructive(self) -> bool:
        """Migrate/optimize operations, or inputs that declare one."""
        if self.operation in DESTRUCTIVE_OPERATIONS:
            return True
        declared = self.inputs.get("operation")
        return isinstance(declared, str) and declared.lower() in {op.value for op in DESTRUCTIVE_OPERATIONS}


class PanelMemberResult(BaseModel):
    """Outcome of running the task on one panel member."""

    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    model_name: str
    success: bool
    result: Optional[Any] = None
    execution_time_ms: float = Field(0.0, ge=0.0)
    error: Optional[str] = None


class SafetyCheckResult(BaseModel):
    check: str
    passed: bool
    severity: SafetySeverity
    message: str
    details: Optional[Dict[str, Any]] = None

    @property
    def is_critical_violation(self) -> bool:
        return not self.passed and self.severity == SafetySeverity.CRITICAL

    def summary(self) -> Dict[str, Any]:
        return {"check": self.check, "passed": self.passed, "severity": self.severity.value}


class VerificationMetadata(BaseModel):
    models_used: List[str] = Field(default_factory=list)
    agreement_score: float = Field(0.0, ge=0.0, le=1.0)
    destructive_operations: List[str] = Field(default_factory=list)
    has_safety_violations: bool = False
    successful_count: int = 0
    quorum_size: int = 0
    quorum_required: bool = False
    agreement_threshold: float = 0.0
    duration_ms: float = 0.0


class VerificationOutcome(BaseModel):
    """
    Result of EnsembleVerifier.verify.

    success is true only if at least one member succeeded, no critical safety
    check failed and, when quorum applies, both quorum and agreement were met.
    """

    success: bool
    consensus: bool
    results: List[PanelMemberResult] = Field(default_factory=list)
    safety_checks: List[SafetyCheckResult] = Field(default_factory=list)
    final_result: Optional[Any] = None
    error: Optional[str] = None
    failure_reason: Optional[FailureReason] = None
    metadata: VerificationMetadata = Field(default_factory=VerificationMetadata)
