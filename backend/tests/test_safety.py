"""
Unit tests for migration safety checks.
"""
import pytest

from modelgate.services.verification.safety import (
    SafetyCheckSuite,
    check_constraint_violations,
    check_data_loss_risk,
    check_destructive_operations,
    check_foreign_key_consistency,
    check_rollback_safety,
    extract_destructive_operations,
)
from modelgate.services.verification.schema import (
    PanelMemberResult,
    SafetyCheckResult,
    SafetySeverity,
    VerificationContext,
    VerificationOperation,
)

CONTEXT = VerificationContext(operation=VerificationOperation.MIGRATE)


def migration(content, model_id="m1", success=True):
    return PanelMemberResult(
        model_id=model_id,
        model_name=model_id,
        success=success,
        result={"artifacts": [{"type": "migration", "content": content}]},
    )


def test_destructive_without_guard_is_critical():
    result = check_destructive_operations([migration("drop table users;")], CONTEXT)

    assert not result.passed
    assert result.severity == SafetySeverity.CRITICAL
    assert result.is_critical_violation
    assert "DROP" in result.details["keywords"]


@pytest.mark.parametrize("marker", ["-- backup: users_2024", "-- ROLLBACK", "-- CONFIRMED", "-- SAFE"])
def test_destructive_with_guard_passes(marker):
    result = check_destructive_operations([migration(f"{marker}\nDROP TABLE users;")], CONTEXT)
    assert result.passed


def test_non_migration_artifacts_are_ignored():
    member = PanelMemberResult(
        model_id="m1",
        model_name="m1",
        success=True,
        result={"artifacts": [{"type": "doc", "content": "DROP TABLE users;"}], "notes": "DROP everything"},
    )
    assert check_destructive_operations([member], CONTEXT).passed
    assert extract_destructive_operations([member]) == []


def test_keywords_match_whole_words():
    result = check_destructive_operations([migration("CREATE TABLE dropdowns (deleted_at timestamp);")], CONTEXT)
    assert result.passed


def test_extract_destructive_operations_order():
    results = [
        migration("TRUNCATE logs; ALTER TABLE users ADD COLUMN age int;", "m1"),
        migration("DELETE FROM sessions; DROP TABLE old;", "m2"),
    ]
    assert extract_destructive_operations(results) == ["DROP", "DELETE", "TRUNCATE", "ALTER TABLE"]


def test_data_loss_risk():
    risky = check_data_loss_risk([migration("ALTER TABLE users DROP COLUMN email;")], CONTEXT)
    assert not risky.passed
    assert risky.severity == SafetySeverity.HIGH

    backed_up = check_data_loss_risk([migration("-- BACKUP users\nALTER TABLE users DROP COLUMN email;")], CONTEXT)
    assert backed_up.passed
    assert backed_up.severity == SafetySeverity.LOW


def test_constraint_violations():
    no_default = check_constraint_violations(
        [migration("ALTER TABLE users ADD COLUMN age int NOT NULL;")], CONTEXT
    )
    assert not no_default.passed
    assert no_default.severity == SafetySeverity.MEDIUM

    set_not_null = check_constraint_violations(
        [migration("ALTER TABLE users ALTER COLUMN email SET NOT NULL;")], CONTEXT
    )
    assert not set_not_null.passed

    with_default = check_constraint_violations(
        [migration("ALTER TABLE users ADD COLUMN age int NOT NULL DEFAULT 0;")], CONTEXT
    )
    assert with_default.passed

    new_table = check_constraint_violations(
        [migration("CREATE TABLE t (id int NOT NULL);")], CONTEXT
    )
    assert new_table.passed


def test_rollback_safety():
    missing = check_rollback_safety([migration("DROP TABLE users;")], CONTEXT)
    assert not missing.passed
    assert missing.severity == SafetySeverity.HIGH

    with_down = check_rollback_safety([migration("DROP TABLE users;\n-- DOWN\nCREATE TABLE users (id int);")], CONTEXT)
    assert with_down.passed
    assert with_down.severity == SafetySeverity.MEDIUM

    additive = check_rollback_safety([migration("CREATE TABLE t (id int);")], CONTEXT)
    assert additive.passed


def test_foreign_key_consistency():
    dangling = check_foreign_key_consistency(
        [migration('DROP TABLE "teams"; CREATE TABLE members (team_id int REFERENCES teams(id));')],
        CONTEXT,
    )
    assert not dangling.passed
    assert dangling.details["findings"][0]["tables"] == ["teams"]

    consistent = check_foreign_key_consistency(
        [migration("DROP TABLE old_teams; CREATE TABLE members (team_id int REFERENCES teams(id));")],
        CONTEXT,
    )
    assert consistent.passed


def test_narrow_checks_never_critical():
    content = (
        'DROP TABLE teams; TRUNCATE logs; ALTER TABLE users ADD COLUMN a int NOT NULL; '
        'CREATE TABLE m (t int REFERENCES teams(id));'
    )
    results = [migration(content)]
    for check in [check_data_loss_risk, check_constraint_violations, check_rollback_safety, check_foreign_key_consistency]:
        outcome = check(results, CONTEXT)
        assert not outcome.passed
        assert outcome.severity != SafetySeverity.CRITICAL


def test_suite_runs_every_check_on_successful_results_only():
    suite = SafetyCheckSuite()
    results = [
        migration("CREATE TABLE t (id int);", "m1"),
        migration("DROP TABLE users;", "m2", success=False),
    ]

    outcomes = suite.run(results, CONTEXT)

    assert [o.check for o in outcomes] == [
        "destructive_operations",
        "data_loss_risk",
        "constraint_violations",
        "rollback_safety",
        "foreign_key_consistency",
    ]
    assert all(o.passed for o in outcomes)


def test_suite_accepts_custom_checks():
    def check_no_sequences(results, context):
        return SafetyCheckResult(
            check="no_sequences",
            passed=False,
            severity=SafetySeverity.LOW,
            message="Sequences are not allowed",
        )

    outcomes = SafetyCheckSuite(extra_checks=[check_no_sequences]).run([migration("SELECT 1;")], CONTEXT)
    assert outcomes[-1].check == "no_sequences"
    assert not outcomes[-1].passed


def test_suite_treats_crashing_check_as_critical():
    def check_flaky(results, context):
        raise RuntimeError("parser exploded")

    outcomes = SafetyCheckSuite(checks=[check_flaky]).run([migration("SELECT 1;")], CONTEXT)
    assert outcomes[0].check == "flaky"
    assert outcomes[0].is_critical_violation
