"""
Verification panel assembly.

The primary member is chosen as a critical selection for the caller. Each
secondary member is selected as user "verification-<i>", non-critical, with
every already chosen model excluded, so a panel never repeats a model.
Assembly stops at the requested size or when the selector runs out of
candidates.
"""
from typing import List, Optional

from modelgate.core.logging import get_logger
from modelgate.services.models.schema import ModelDescriptor, SelectionContext
from modelgate.services.models.selector import ModelSelector
from modelgate.services.verification.schema import VerificationContext

logger = get_logger(__name__)


def secondary_user_id(index: int) -> str:
    return f"verification-{index}"


async def assemble_panel(
    selector: ModelSelector,
    context: VerificationContext,
    panel_size: int,
) -> List[ModelDescriptor]:
    """
    Select up to panel_size distinct models for the context's role.

    May return fewer than panel_size models (including none).
    RegistryUnavailableError from the selector propagates.
    """
    panel: List[ModelDescriptor] = []

    primary = await selector.select(
        SelectionContext(
            role=context.role,
            is_critical=True,
            user_id=context.user_id,
            project_id=context.project_id,
            task_type=context.operation.value,
        )
    )
    if primary is None:
        return panel
    panel.append(primary.model)

    for index in range(1, panel_size):
        secondary = await selector.select(
            SelectionContext(
                role=context.role,
                is_critical=False,
                user_id=secondary_user_id(index),
                project_id=context.project_id,
                task_type=context.operation.value,
                excluded_model_ids=frozenset(model.id for model in panel),
            )
        )
        if secondary is None:
            break
        panel.append(secondary.model)

    if len(panel) < panel_size:
        logger.info(
            "verification_panel_short",
            role=context.role.value,
            requested=panel_size,
            assembled=len(panel),
        )
    return panel


def resolve_panel_size(quorum_size: int, requested: Optional[int]) -> int:
    """Panel size defaults to, and never drops below, the quorum size."""
    if requested is None:
        return quorum_size
    return max(requested, quorum_size)
