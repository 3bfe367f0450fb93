"""
Safety checks over the successful panel outputs.

Each check looks at migration artifacts in member results, i.e. entries of
result["artifacts"] with type "migration" and string content, and returns
exactly one SafetyCheckResult, passing or not.

Only the destructive-operations check can report a critical failure, which
vetoes the verification regardless of quorum. The narrower checks report
low/medium/high findings for operators.
"""
import re
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from modelgate.core.logging import get_logger
from modelgate.core.metrics import record_safety_check_failure
from modelgate.services.verification.schema import (
    PanelMemberResult,
    SafetyCheckResult,
    SafetySeverity,
    VerificationContext,
)

logger = get_logger(__name__)

SafetyCheck = Callable[[Sequence[PanelMemberResult], VerificationContext], SafetyCheckResult]

# Keyword -> pattern over upper-cased migration content
DESTRUCTIVE_KEYWORDS: Dict[str, re.Pattern] = {
    "DROP": re.compile(r"\bDROP\b"),
    "DELETE": re.compile(r"\bDELETE\b"),
    "TRUNCATE": re.compile(r"\bTRUNCATE\b"),
    "ALTER TABLE": re.compile(r"\bALTER\s+TABLE\b"),
    "DROP COLUMN": re.compile(r"\bDROP\s+COLUMN\b"),
}
REPORTED_DESTRUCTIVE_KEYWORDS = ("DROP", "DELETE", "TRUNCATE", "ALTER TABLE")

BACKUP_MARKERS = ("BACKUP", "-- ROLLBACK")
CONFIRMATION_MARKERS = ("-- CONFIRMED", "-- SAFE")
ROLLBACK_MARKERS = ("-- ROLLBACK", "-- DOWN")

DATA_LOSS_PATTERNS: Dict[str, re.Pattern] = {
    "DROP TABLE": re.compile(r"\bDROP\s+TABLE\b"),
    "DROP COLUMN": re.compile(r"\bDROP\s+COLUMN\b"),
    "TRUNCATE": re.compile(r"\bTRUNCATE\b"),
}

_ADD_COLUMN = re.compile(r"\bADD\s+(?:COLUMN\s+)?(?!CONSTRAINT\b)")
_NOT_NULL = re.compile(r"\bNOT\s+NULL\b")
_DEFAULT = re.compile(r"\bDEFAULT\b")
_SET_NOT_NULL = re.compile(r"\bALTER\s+COLUMN\s+[\w\"]+\s+SET\s+NOT\s+NULL\b")
_DROP_TABLE_NAME = re.compile(r"\bDROP\s+TABLE\s+(?:IF\s+EXISTS\s+)?([\w\".]+)")
_REFERENCES_NAME = re.compile(r"\bREFERENCES\s+([\w\".]+)")


def iter_migration_contents(results: Sequence[PanelMemberResult]) -> Iterator[Tuple[str, str]]:
    """Yield (model_id, upper-cased content) for every migration artifact."""
    for member in results:
        payload = member.result
        if not isinstance(payload, dict):
            continue
        artifacts = payload.get("artifacts")
        if not isinstance(artifacts, list):
            continue
        for artifact in artifacts:
            if not isinstance(artifact, dict) or artifact.get("type") != "migration":
                continue
            content = artifact.get("content")
            if isinstance(content, str) and content:
                yield member.model_id, content.upper()


def find_destructive_keywords(content: str, keywords: Sequence[str] = tuple(DESTRUCTIVE_KEYWORDS)) -> List[str]:
    return [keyword for keyword in keywords if DESTRUCTIVE_KEYWORDS[keyword].search(content)]


def _has_marker(content: str, markers: Sequence[str]) -> bool:
    return any(marker in content for marker in markers)


def _split_statements(content: str) -> List[str]:
    return [statement.strip() for statement in content.split(";") if statement.strip()]


def _table_name(raw: str) -> str:
    return raw.replace('"', "").lower()


def extract_destructive_operations(results: Sequence[PanelMemberResult]) -> List[str]:
    """Destructive keywords present in any migration artifact, in a fixed order."""
    found = set()
    for _, content in iter_migration_contents(results):
        found.update(find_destructive_keywords(content, REPORTED_DESTRUCTIVE_KEYWORDS))
    return [keyword for keyword in REPORTED_DESTRUCTIVE_KEYWORDS if keyword in found]


def check_destructive_operations(
    results: Sequence[PanelMemberResult], context: VerificationContext
) -> SafetyCheckResult:
    """Destructive statements need a backup reference or an explicit confirmation marker."""
    for model_id, content in iter_migration_contents(results):
        keywords = find_destructive_keywords(content)
        if not keywords:
            continue
        if _has_marker(content, BACKUP_MARKERS) or _has_marker(content, CONFIRMATION_MARKERS):
            continue
        return SafetyCheckResult(
            check="destructive_operations",
            passed=False,
            severity=SafetySeverity.CRITICAL,
            message="Destructive operations detected without safety guards",
            details={"keywords": keywords, "model_id": model_id},
        )

    return SafetyCheckResult(
        check="destructive_operations",
        passed=True,
        severity=SafetySeverity.LOW,
        message="No unsafe destructive operations detected",
    )


def check_data_loss_risk(
    results: Sequence[PanelMemberResult], context: VerificationContext
) -> SafetyCheckResult:
    findings = []
    for model_id, content in iter_migration_contents(results):
        if _has_marker(content, BACKUP_MARKERS):
            continue
        statements = [name for name, pattern in DATA_LOSS_PATTERNS.items() if pattern.search(content)]
        if statements:
            findings.append({"model_id": model_id, "statements": statements})

    if findings:
        return SafetyCheckResult(
            check="data_loss_risk",
            passed=False,
            severity=SafetySeverity.HIGH,
            message="Migration removes data without a backup reference",
            details={"findings": findings},
        )
    return SafetyCheckResult(
        check="data_loss_risk",
        passed=True,
        severity=SafetySeverity.LOW,
        message="No significant data loss risk detected",
    )


def check_constraint_violations(
    results: Sequence[PanelMemberResult], context: VerificationContext
) -> SafetyCheckResult:
    """NOT NULL added to existing tables without a DEFAULT fails on populated rows."""
    findings = []
    for model_id, content in iter_migration_contents(results):
        for statement in _split_statements(content):
            if _SET_NOT_NULL.search(statement):
                findings.append({"model_id": model_id, "statement": statement[:200]})
            elif (
                statement.startswith("ALTER TABLE")
                and _ADD_COLUMN.search(statement)
                and _NOT_NULL.search(statement)
                and not _DEFAULT.search(statement)
            ):
                findings.append({"model_id": model_id, "statement": statement[:200]})

    if findings:
        return SafetyCheckResult(
            check="constraint_violations",
            passed=False,
            severity=SafetySeverity.MEDIUM,
            message="NOT NULL constraint added without a default value",
            details={"findings": findings},
        )
    return SafetyCheckResult(
        check="constraint_violations",
        passed=True,
        severity=SafetySeverity.LOW,
        message="No constraint violations detected",
    )


def check_rollback_safety(
    results: Sequence[PanelMemberResult], context: VerificationContext
) -> SafetyCheckResult:
    missing = []
    for model_id, content in iter_migration_contents(results):
        if find_destructive_keywords(content) and not _has_marker(content, ROLLBACK_MARKERS):
            missing.append(model_id)

    if missing:
        return SafetyCheckResult(
            check="rollback_safety",
            passed=False,
            severity=SafetySeverity.HIGH,
            message="Destructive migration has no rollback section",
            details={"model_ids": sorted(set(missing))},
        )
    return SafetyCheckResult(
        check="rollback_safety",
        passed=True,
        severity=SafetySeverity.MEDIUM,
        message="Rollback procedures are adequate",
    )


def check_foreign_key_consistency(
    results: Sequence[PanelMemberResult], context: VerificationContext
) -> SafetyCheckResult:
    """A migration must not reference a table it drops."""
    findings = []
    for model_id, content in iter_migration_contents(results):
        dropped = {_table_name(name) for name in _DROP_TABLE_NAME.findall(content)}
        referenced = {_table_name(name) for name in _REFERENCES_NAME.findall(content)}
        dangling = sorted(dropped & referenced)
        if dangling:
            findings.append({"model_id": model_id, "tables": dangling})

    if findings:
        return SafetyCheckResult(
            check="foreign_key_consistency",
            passed=False,
            severity=SafetySeverity.HIGH,
            message="Foreign keys reference tables dropped by the same migration",
            details={"findings": findings},
        )
    return SafetyCheckResult(
        check="foreign_key_consistency",
        passed=True,
        severity=SafetySeverity.MEDIUM,
        message="Foreign key relationships are consistent",
    )


DEFAULT_CHECKS: Tuple[SafetyCheck, ...] = (
    check_destructive_operations,
    check_data_loss_risk,
    check_constraint_violations,
    check_rollback_safety,
    check_foreign_key_consistency,
)


class SafetyCheckSuite:
    """Runs every check and returns one result per check, in order."""

    def __init__(
        self,
        checks: Sequence[SafetyCheck] = DEFAULT_CHECKS,
        extra_checks: Optional[Sequence[SafetyCheck]] = None,
    ):
        self.checks: List[SafetyCheck] = list(checks) + list(extra_checks or ())

    def run(
        self,
        results: Sequence[PanelMemberResult],
        context: VerificationContext,
    ) -> List[SafetyCheckResult]:
        """
        Evaluate all checks over successful member results.

        A check that raises is reported as a failed critical result so that
        an unevaluable check can never let a destructive change through.
        """
        successful = [member for member in results if member.success]
        outcomes: List[SafetyCheckResult] = []
        for check in self.checks:
            name = _check_name(check)
            try:
                outcome = check(successful, context)
            except Exception as exc:
                logger.error(
                    "safety_check_errored",
                    check=name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    exc_info=True,
                )
                outcome = SafetyCheckResult(
                    check=name,
                    passed=False,
                    severity=SafetySeverity.CRITICAL,
                    message=f"Safety check {name} could not be evaluated: {exc}",
                )
            if not outcome.passed:
                record_safety_check_failure(outcome.check, outcome.severity.value)
                logger.warning(
                    "safety_check_failed",
                    check=outcome.check,
                    severity=outcome.severity.value,
                    safety_message=outcome.message,
                )
            outcomes.append(outcome)
        return outcomes


def _check_name(check: Any) -> str:
    name = getattr(check, "__name__", type(check).__name__)
    return name[len("check_"):] if name.startswith("check_") else name
