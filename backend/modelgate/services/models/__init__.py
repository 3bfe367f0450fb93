"""
Model catalog and selection.
"""
from .registry import ModelLifecycleError, ModelRegistry, RegistryUnavailableError
from .schema import (
    ModelDescriptor,
    ModelRole,
    ModelStatus,
    SelectionContext,
    SelectionReason,
    SelectionResult,
)
from .selector import ModelSelector, select_model_for_task

__all__ = [
    "ModelDescriptor",
    "ModelLifecycleError",
    "ModelRegistry",
    "ModelRole",
    "ModelSelector",
    "ModelStatus",
    "RegistryUnavailableError",
    "SelectionContext",
    "SelectionReason",
    "SelectionResult",
    "select_model_for_task",
]
