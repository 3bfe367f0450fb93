"""
Pydantic models for the model catalog and selection results.

A ModelDescriptor is what the registry hands out; SelectionContext and
SelectionResult are the input and output of ModelSelector.select.
"""
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field


class ModelRole(str, Enum):
    """Task categories a backend can serve. The registry is indexed by role."""

    SCHEMA = "schema"
    CODE_GENERATOR = "code_generator"
    CODE_ARCHITECT = "code_architect"
    CONVERSATIONAL = "conversational"
    SECURITY_CHECKER = "security_checker"
    RESEARCH = "research"
    SYSTEMS_DEBUGGER = "systems_debugger"
    KNOWLEDGE_SYNTHESIZER = "knowledge_synthesizer"
    RETRIEVER = "retriever"
    CREATIVE = "creative"


class ModelStatus(str, Enum):
    """Lifecycle status of a backend."""

    STABLE = "stable"
    CANARY = "canary"
    DISABLED = "disabled"


class SelectionReason(str, Enum):
    STABLE = "stable"
    CANARY = "canary"
    PERFORMANCE_BASED = "performance_based"
    FALLBACK = "fallback"


class ModelDescriptor(BaseModel):
    """
    Catalog entry for one model backend.

    Immutable once loaded; the registry replaces descriptors wholesale on
    refresh or status change.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str = Field(..., min_length=1)
    name: str
    role: ModelRole
    status: ModelStatus = ModelStatus.STABLE
    capabilities: FrozenSet[str] = Field(default_factory=frozenset)
    provider: Optional[str] = None
    version_tag: Optional[str] = None
    is_active: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)

    def has_capabilities(self, required: FrozenSet[str]) -> bool:
        return required <= self.capabilities


class SelectionContext(BaseModel):
    """Input to a single selection call."""

    model_config = ConfigDict(frozen=True)

    role: ModelRole
    is_critical: bool = False
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    task_type: Optional[str] = None
    required_capabilities: FrozenSet[str] = Field(default_factory=frozenset)
    excluded_model_ids: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Model ids that must not be returned (used to build panels of distinct models)",
    )


class SelectionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate_count: int = Field(..., ge=0)
    canary_enabled: bool
    canary_active: bool
    performance_ranked: bool
    fallback_used: bool


class SelectionResult(BaseModel):
    """
    Result of ModelSelector.select.

    Transient: produced fresh per call and never persisted.
    """

    model_config = ConfigDict(frozen=True)

    model: ModelDescriptor
    reason: SelectionReason
    confidence: float = Field(..., ge=0.0, le=1.0)
    metadata: SelectionMetadata
