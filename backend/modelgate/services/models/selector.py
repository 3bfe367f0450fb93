"""
Model selection with canary routing and performance ranking.

Given a role and context, the selector picks one backend:

1. Candidates for the role from the registry, filtered by required
   capabilities (and minus explicitly excluded ids).
2. Deterministic canary bucketing on (user, project, role); eligible calls
   are served by the best-ranked canary model.
3. Otherwise the best-ranked stable model (reason "performance_based" when
   its score is above 0.8, "stable" otherwise).
4. With no stable model left, the first eligible candidate ("fallback").

select() never raises for "no match"; it returns None. Registry failures
propagate as RegistryUnavailableError.
"""
import asyncio
from typing import List, Optional, Tuple

from opentelemetry.trace import Span
from pydantic import ValidationError

from modelgate.core.config import CanaryConfig, ConfigurationError, get_settings
from modelgate.core.logging import call_context, get_logger
from modelgate.core.metrics import (
    record_canary_decision,
    record_model_score,
    record_model_selection,
    record_selection_not_found,
)
from modelgate.core.tracing import current_trace_id, get_tracer
from modelgate.services.models.canary import canary_bucket, is_canary_eligible
from modelgate.services.models.registry import ModelRegistry, ModelRegistryProtocol
from modelgate.services.models.schema import (
    ModelDescriptor,
    ModelRole,
    ModelStatus,
    SelectionContext,
    SelectionMetadata,
    SelectionReason,
    SelectionResult,
)
from modelgate.services.performance.score import compute_model_score
from modelgate.services.performance.source import InMemoryMetricsSource, MetricsSource

logger = get_logger(__name__)

PREFERRED_WINDOW = "7d"
FALLBACK_WINDOW = "30d"

SINGLE_CANDIDATE_CONFIDENCE = 0.8
FALLBACK_CONFIDENCE = 0.5
SCORE_ERROR_DEFAULT = 0.5
PERFORMANCE_BASED_MIN_SCORE = 0.8


class ModelSelector:
    """Routes a task to one model backend."""

    def __init__(
        self,
        registry: ModelRegistryProtocol,
        metrics_source: MetricsSource,
        canary_config: Optional[CanaryConfig] = None,
    ):
        self._registry = registry
        self._metrics_source = metrics_source
        self._canary_config = canary_config or CanaryConfig()

        logger.info(
            "model_selector_initialized",
            canary_enabled=self._canary_config.enabled,
            canary_percentage=self._canary_config.percentage,
            canary_critical_only=self._canary_config.critical_only,
            canary_excluded_roles=sorted(self._canary_config.excluded_roles),
        )

    @property
    def canary_config(self) -> CanaryConfig:
        return self._canary_config

    def update_canary_config(self, **updates) -> CanaryConfig:
        """
        Adjust canary routing at runtime.

        Raises:
            ConfigurationError if the resulting config is invalid (e.g. percentage > 100).
        """
        try:
            updated = CanaryConfig.model_validate({**self._canary_config.model_dump(), **updates})
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid canary config update: {exc}") from exc

        self._canary_config = updated
        logger.info(
            "canary_config_updated",
            canary_enabled=updated.enabled,
            canary_percentage=updated.percentage,
            canary_critical_only=updated.critical_only,
            canary_excluded_roles=sorted(updated.excluded_roles),
        )
        return updated

    def canary_bucket(self, context: SelectionContext) -> int:
        """Deterministic bucket in [1, 100] for the context's (user, project, role)."""
        return canary_bucket(context.user_id, context.project_id, context.role.value)

    async def select(self, context: SelectionContext) -> Optional[SelectionResult]:
        """
        Select the best model for a context.

        Returns:
            SelectionResult, or None when no model is eligible.

        Raises:
            RegistryUnavailableError if the catalog cannot be read.
        """
        with get_tracer().start_as_current_span("model_selector.select") as span:
            with call_context(context.user_id, context.project_id, current_trace_id()):
                return await self._select(context, span)

    async def _select(self, context: SelectionContext, span: Span) -> Optional[SelectionResult]:
        role = context.role.value

        span.set_attribute("model.role", role)
        span.set_attribute("selection.is_critical", context.is_critical)

        candidates = await self._registry.list_by_role(context.role)
        if not candidates:
            logger.warning("model_selection_no_models", role=role)
            record_selection_not_found(role, "no_models")
            return None

        eligible = [
            model for model in candidates
            if model.has_capabilities(context.required_capabilities)
            and model.id not in context.excluded_model_ids
        ]
        if not eligible:
            logger.warning(
                "model_selection_no_capable_models",
                role=role,
                required_capabilities=sorted(context.required_capabilities),
                excluded_model_ids=sorted(context.excluded_model_ids),
            )
            record_selection_not_found(role, "no_capable_models")
            return None

        stable_models = [m for m in eligible if m.status == ModelStatus.STABLE]
        canary_models = [m for m in eligible if m.status == ModelStatus.CANARY]

        config = self._canary_config
        use_canary = is_canary_eligible(
            config,
            role=role,
            is_critical=context.is_critical,
            bucket=self.canary_bucket(context),
            has_canary_candidates=bool(canary_models),
        )
        if config.enabled and canary_models:
            record_canary_decision(role, use_canary)

        performance_ranked = False
        if use_canary:
            model, confidence, performance_ranked = await self._select_best_performing(canary_models)
            reason = SelectionReason.CANARY
        elif stable_models:
            model, confidence, performance_ranked = await self._select_best_performing(stable_models)
            reason = (
                SelectionReason.PERFORMANCE_BASED
                if confidence > PERFORMANCE_BASED_MIN_SCORE
                else SelectionReason.STABLE
            )
        else:
            model = eligible[0]
            confidence = FALLBACK_CONFIDENCE
            reason = SelectionReason.FALLBACK

        result = SelectionResult(
            model=model,
            reason=reason,
            confidence=confidence,
            metadata=SelectionMetadata(
                candidate_count=len(eligible),
                canary_enabled=config.enabled,
                canary_active=use_canary,
                performance_ranked=performance_ranked,
                fallback_used=reason == SelectionReason.FALLBACK,
            ),
        )

        span.set_attribute("model.selected_id", model.id)
        span.set_attribute("selection.reason", reason.value)
        record_model_selection(role, reason.value)
        logger.info(
            "model_selected",
            role=role,
            model_id=model.id,
            reason=reason.value,
            confidence=confidence,
            candidate_count=len(eligible),
            canary_active=use_canary,
        )
        return result

    async def score_model(self, model: ModelDescriptor) -> float:
        """
        Performance score for one model from its latest window.

        Prefers the 7-day window, falls back to 30 days, and uses a neutral
        score when neither exists. A failing metrics source yields 0.5.
        """
        try:
            window = await self._metrics_source.get_window(model.id, PREFERRED_WINDOW)
            if window is None:
                window = await self._metrics_source.get_window(model.id, FALLBACK_WINDOW)
        except Exception as exc:
            logger.warning(
                "model_score_metrics_failed",
                model_id=model.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return SCORE_ERROR_DEFAULT

        score = compute_model_score(window)
        record_model_score(model.role.value, score)
        logger.debug(
            "model_scored",
            model_id=model.id,
            score=score,
            window=window.window if window else None,
            total_runs=window.total_runs if window else 0,
        )
        return score

    async def _select_best_performing(
        self, models: List[ModelDescriptor]
    ) -> Tuple[ModelDescriptor, float, bool]:
        """Best model by score; ties keep catalog order. Returns (model, confidence, ranked)."""
        if len(models) == 1:
            return models[0], SINGLE_CANDIDATE_CONFIDENCE, False

        scores = await asyncio.gather(*(self.score_model(model) for model in models))
        ranked = sorted(zip(models, scores), key=lambda pair: pair[1], reverse=True)
        best_model, best_score = ranked[0]
        return best_model, min(best_score, 1.0), True


_model_selector: Optional[ModelSelector] = None


def get_model_selector() -> ModelSelector:
    """
    Global accessor for callers that do not wire their own selector.

    The default instance reads canary settings from the environment and
    starts with an empty registry; use set_model_selector to install a
    configured one.
    """
    global _model_selector
    if _model_selector is None:
        settings = get_settings()
        _model_selector = ModelSelector(
            registry=ModelRegistry(cache_ttl_seconds=settings.registry_cache_ttl_seconds),
            metrics_source=InMemoryMetricsSource(),
            canary_config=settings.canary,
        )
    return _model_selector


def set_model_selector(selector: Optional[ModelSelector]) -> None:
    """Install (or with None, reset) the global selector."""
    global _model_selector
    _model_selector = selector


async def select_model_for_task(
    role: ModelRole,
    selector: Optional[ModelSelector] = None,
    **options,
) -> Optional[SelectionResult]:
    """Convenience wrapper: build a SelectionContext from keyword options and select."""
    selector = selector or get_model_selector()
    return await selector.select(SelectionContext(role=role, **options))
