"""
Pydantic models for model performance telemetry.

PerformanceWindow is the aggregate the selector ranks on. ModelRun is the
per-execution record the aggregator folds into windows.
"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PerformanceWindow(BaseModel):
    """Aggregated performance of one model over one time window (e.g. "7d")."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    window: str
    success_rate: float = Field(..., ge=0.0, le=1.0)
    avg_confidence: float = Field(..., ge=0.0, le=1.0)
    correction_rate: float = Field(..., ge=0.0, le=1.0)
    cost_per_run: float = Field(..., ge=0.0, description="Average cost per run in currency units")
    mean_time_to_fix_ms: float = Field(..., ge=0.0)
    total_runs: int = Field(..., ge=0)


class ModelRun(BaseModel):
    """One recorded execution of a model."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    created_at: datetime
    success: bool
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    cost_usd: Optional[float] = Field(None, ge=0.0)
    runtime_ms: Optional[float] = Field(None, ge=0.0)
    feedback_count: int = Field(0, ge=0)
    corrections_count: int = Field(0, ge=0)

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
