"""
Ensemble verification for schema operations.

Flow:
1. Assemble a panel of distinct models for the role (primary + secondaries).
2. Run the task on every member concurrently; member failures are captured.
3. Run safety checks on successful outputs; a critical failure rejects.
4. For destructive operations with quorum required, enforce quorum size and
   agreement threshold; otherwise accept.
5. Audit the terminal state (best effort) and return the outcome.

No retries. Every verify() call returns a VerificationOutcome, except when
the model registry itself is unreachable: that is audited and re-raised.
"""
import time
from typing import Any, Dict, List, Optional

from opentelemetry.trace import Span, StatusCode

from modelgate.core.circuit_breaker import CircuitBreakerRegistry
from modelgate.core.config import VerificationConfig, get_settings
from modelgate.core.logging import call_context, get_logger, request_id_var
from modelgate.core.metrics import record_agreement_score, record_verification
from modelgate.core.tracing import current_trace_id, get_tracer, record_exception, set_span_status
from modelgate.services.models.registry import RegistryUnavailableError
from modelgate.services.models.selector import ModelSelector
from modelgate.services.verification.audit import (
    VERIFICATION_FAILURE,
    VERIFICATION_SUCCESS,
    AuditSink,
    BestEffortAuditSink,
    LoggingAuditSink,
)
from modelgate.services.verification.consensus import SimilarityFn, calculate_consensus, length_ratio_similarity
from modelgate.services.verification.executor import PanelRunner, TaskExecutor
from modelgate.services.verification.panel import assemble_panel, resolve_panel_size
from modelgate.services.verification.safety import SafetyCheckSuite, extract_destructive_operations
from modelgate.services.verification.schema import (
    FailureReason,
    PanelMemberResult,
    SafetyCheckResult,
    VerificationContext,
    VerificationMetadata,
    VerificationOutcome,
)

logger = get_logger(__name__)

NO_MODELS_ERROR = "no models available for verification"
ALL_FAILED_ERROR = "all verification models failed"


class EnsembleVerifier:
    """Runs a task on a panel of models and decides whether to accept it."""

    def __init__(
        self,
        selector: ModelSelector,
        executor: TaskExecutor,
        audit_sink: Optional[AuditSink] = None,
        config: Optional[VerificationConfig] = None,
        similarity: SimilarityFn = length_ratio_similarity,
        safety_suite: Optional[SafetyCheckSuite] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
    ):
        self.config = config or get_settings().verification
        self._selector = selector
        self._runner = PanelRunner(executor, self.config.member_timeout_seconds, breakers)
        self._audit = BestEffortAuditSink(
            audit_sink or LoggingAuditSink(),
            timeout_seconds=self.config.audit_timeout_seconds,
        )
        self._similarity = similarity
        self._safety_suite = safety_suite or SafetyCheckSuite()

    async def verify(self, context: VerificationContext) -> VerificationOutcome:
        """
        Verify one operation.

        Raises:
            RegistryUnavailableError if the model catalog cannot be read.
        """
        with get_tracer().start_as_current_span("ensemble_verifier.verify") as span:
            with call_context(context.user_id, context.project_id, current_trace_id()) as request_id:
                span.set_attribute("verification.request_id", request_id)
                return await self._verify(context, span)

    async def _verify(self, context: VerificationContext, span: Span) -> VerificationOutcome:
        start = time.perf_counter()
        operation = context.operation.value
        quorum_size = context.quorum_size or self.config.quorum_size
        panel_size = resolve_panel_size(quorum_size, context.panel_size)
        threshold = self.config.agreement_threshold

        span.set_attribute("verification.operation", operation)
        span.set_attribute("verification.role", context.role.value)
        span.set_attribute("verification.panel_size", panel_size)

        logger.info(
            "verification_started",
            operation=operation,
            role=context.role.value,
            panel_size=panel_size,
            quorum_size=quorum_size,
        )

        try:
            panel = await assemble_panel(self._selector, context, panel_size)
        except RegistryUnavailableError as exc:
            record_exception(exc)
            logger.error("verification_registry_unavailable", operation=operation, error=str(exc))
            await self._audit.record(
                VERIFICATION_FAILURE,
                self._failure_payload(context, str(exc), None, [], []),
            )
            record_verification(operation, "registry_unavailable", time.perf_counter() - start)
            raise

        models_used = [model.id for model in panel]
        span.set_attribute("verification.models", models_used)

        if not panel:
            return await self._reject(
                context, start,
                error=NO_MODELS_ERROR,
                reason=FailureReason.PANEL_ASSEMBLY_FAILED,
                results=[],
                safety_checks=[],
                metadata=VerificationMetadata(quorum_size=quorum_size, agreement_threshold=threshold),
            )

        payload = {"operation": operation, "inputs": context.inputs}
        results = await self._runner.run(panel, payload)
        successful = [member for member in results if member.success]
        span.set_attribute("verification.successful_count", len(successful))

        if not successful:
            return await self._reject(
                context, start,
                error=ALL_FAILED_ERROR,
                reason=FailureReason.ALL_MODELS_FAILED,
                results=results,
                safety_checks=[],
                metadata=VerificationMetadata(
                    models_used=models_used,
                    quorum_size=quorum_size,
                    agreement_threshold=threshold,
                ),
            )

        safety_checks = self._safety_suite.run(successful, context)
        destructive_operations = extract_destructive_operations(successful)
        critical = [check for check in safety_checks if check.is_critical_violation]

        if critical:
            return await self._reject(
                context, start,
                error="critical safety violations: " + "; ".join(check.message for check in critical),
                reason=FailureReason.CRITICAL_SAFETY_VIOLATION,
                results=results,
                safety_checks=safety_checks,
                metadata=VerificationMetadata(
                    models_used=models_used,
                    destructive_operations=destructive_operations,
                    has_safety_violations=True,
                    successful_count=len(successful),
                    quorum_size=quorum_size,
                    agreement_threshold=threshold,
                ),
            )

        agreement_score, consensus_result = calculate_consensus(successful, self._similarity)
        record_agreement_score(operation, agreement_score)

        quorum_required = context.require_quorum and context.is_destructive()
        metadata = VerificationMetadata(
            models_used=models_used,
            agreement_score=agreement_score,
            destructive_operations=destructive_operations,
            has_safety_violations=False,
            successful_count=len(successful),
            quorum_size=quorum_size,
            quorum_required=quorum_required,
            agreement_threshold=threshold,
        )

        if quorum_required and len(successful) < quorum_size:
            return await self._reject(
                context, start,
                error=f"insufficient quorum: {len(successful)}/{quorum_size} models succeeded",
                reason=FailureReason.INSUFFICIENT_QUORUM,
                results=results,
                safety_checks=safety_checks,
                metadata=metadata,
            )

        if quorum_required and agreement_score < threshold:
            return await self._reject(
                context, start,
                error=f"insufficient agreement: {agreement_score:.2f} < {threshold:.2f}",
                reason=FailureReason.INSUFFICIENT_AGREEMENT,
                results=results,
                safety_checks=safety_checks,
                metadata=metadata,
            )

        metadata.duration_ms = _elapsed_ms(start)
        await self._audit.record(
            VERIFICATION_SUCCESS,
            self._success_payload(context, results, safety_checks, agreement_score),
        )
        record_verification(operation, None, metadata.duration_ms / 1000.0)
        logger.info(
            "verification_completed",
            operation=operation,
            models=models_used,
            agreement_score=agreement_score,
            quorum_required=quorum_required,
            duration_ms=metadata.duration_ms,
        )

        return VerificationOutcome(
            success=True,
            consensus=agreement_score >= threshold,
            results=results,
            safety_checks=safety_checks,
            final_result=consensus_result,
            metadata=metadata,
        )

    async def _reject(
        self,
        context: VerificationContext,
        start: float,
        error: str,
        reason: FailureReason,
        results: List[PanelMemberResult],
        safety_checks: List[SafetyCheckResult],
        metadata: VerificationMetadata,
    ) -> VerificationOutcome:
        metadata.duration_ms = _elapsed_ms(start)
        set_span_status(StatusCode.ERROR, error)
        logger.warning(
            "verification_rejected",
            operation=context.operation.value,
            failure_reason=reason.value,
            error=error,
            models=metadata.models_used,
            successful_count=metadata.successful_count,
            agreement_score=metadata.agreement_score,
        )
        await self._audit.record(
            VERIFICATION_FAILURE,
            self._failure_payload(context, error, reason, results, safety_checks),
        )
        record_verification(context.operation.value, reason.value, metadata.duration_ms / 1000.0)

        return VerificationOutcome(
            success=False,
            consensus=False,
            results=results,
            safety_checks=safety_checks,
            error=error,
            failure_reason=reason,
            metadata=metadata,
        )

    def _failure_payload(
        self,
        context: VerificationContext,
        error: str,
        reason: Optional[FailureReason],
        results: List[PanelMemberResult],
        safety_checks: List[SafetyCheckResult],
    ) -> Dict[str, Any]:
        return {
            **_base_payload(context, results, safety_checks),
            "reason": error,
            "failure_reason": reason.value if reason else "registry_unavailable",
            "failure_details": [member.error for member in results if not member.success],
        }

    def _success_payload(
        self,
        context: VerificationContext,
        results: List[PanelMemberResult],
        safety_checks: List[SafetyCheckResult],
        agreement_score: float,
    ) -> Dict[str, Any]:
        return {
            **_base_payload(context, results, safety_checks),
            "agreement_score": agreement_score,
            "total_execution_time_ms": sum(member.execution_time_ms for member in results),
        }


def _base_payload(
    context: VerificationContext,
    results: List[PanelMemberResult],
    safety_checks: List[SafetyCheckResult],
) -> Dict[str, Any]:
    return {
        "request_id": request_id_var.get(),
        "operation": context.operation.value,
        "user_id": context.user_id,
        "project_id": context.project_id,
        "models": [{"model_id": member.model_id, "success": member.success} for member in results],
        "safety_checks": [check.summary() for check in safety_checks],
    }


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


async def verify_operation(
    verifier: EnsembleVerifier,
    operation: str,
    inputs: Dict[str, Any],
    user_id: Optional[str] = None,
    project_id: Optional[str] = None,
    **options,
) -> VerificationOutcome:
    """Convenience wrapper: build a VerificationContext and verify."""
    context = VerificationContext(
        operation=operation,
        inputs=inputs,
        user_id=user_id,
        project_id=project_id,
        **options,
    )
    return await verifier.verify(context)
