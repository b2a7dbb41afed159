"""Тесты агрегации результатов прогона."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from conftest import make_detected_error, make_run_summary, make_suite_result

from vigil.models.analysis import ActionItem
from vigil.models.common import (
    EffortLevel,
    ErrorType,
    ImpactLevel,
    OverallStatus,
    RiskLevel,
    RoleStability,
    Severity,
    SuiteStatus,
    TaskCategory,
    TaskPriority,
    UserExperienceImpact,
)
from vigil.services.aggregation_service import (
    ResultAggregator,
    categorize_task,
    dedupe_errors,
    errors_by_role,
    map_priority,
    save_aggregated_results,
    summarize_suites,
)


# ---------------------------------------------------------------------------
# Сценарии прогона
# ---------------------------------------------------------------------------


def test_clean_run_is_excellent() -> None:
    """Ноль ошибок и упавших наборов → excellent, стабильность 100, риск low."""
    results = [make_suite_result(role=role) for role in ("developer", "manager")]

    aggregated = ResultAggregator().aggregate(results, [])

    assert aggregated.executive_summary.overall_status is OverallStatus.EXCELLENT
    assert aggregated.executive_summary.risk_level is RiskLevel.LOW
    assert aggregated.quality_metrics.stability_score == 100
    assert aggregated.quality_metrics.user_experience_impact is UserExperienceImpact.MINIMAL
    assert aggregated.quality_metrics.critical_error_rate == 0.0
    assert aggregated.developer_tasks == []
    assert aggregated.trend_analysis.regression_risk is RiskLevel.LOW
    assert aggregated.executive_summary.business_impact.startswith("Minimal impact")


def test_critical_auth_error_makes_run_critical() -> None:
    error = make_detected_error(
        type=ErrorType.NETWORK,
        severity=Severity.CRITICAL,
        message="HTTP 500: http://app/api/auth/session",
        url="http://app/api/auth/session",
    )

    aggregated = ResultAggregator().aggregate([make_suite_result()], [error])

    executive = aggregated.executive_summary
    assert executive.overall_status is OverallStatus.CRITICAL
    assert executive.risk_level is RiskLevel.HIGH
    assert executive.business_impact.startswith("High impact: 1 critical errors")
    assert executive.next_steps[0] == "Stop all non-critical development work"
    assert executive.next_steps[-1] == "Schedule follow-up comprehensive testing after fixes"
    assert aggregated.quality_metrics.critical_error_rate == 1.0
    assert aggregated.trend_analysis.critical_path_issues == [
        "network error in developer role: HTTP 500: http://app/api/auth/session",
    ]
    titles = [t.title for t in aggregated.developer_tasks]
    assert "Implement Error Monitoring" in titles


def test_one_failed_suite_is_stable_two_need_attention() -> None:
    aggregator = ResultAggregator()

    one = aggregator.overall_status(make_run_summary(passed_suites=3, failed_suites=1), [])
    two = aggregator.overall_status(make_run_summary(passed_suites=2, failed_suites=2), [])

    assert one is OverallStatus.STABLE
    assert two is OverallStatus.NEEDS_ATTENTION


def test_three_high_errors_need_attention() -> None:
    errors = [make_detected_error(severity=Severity.HIGH) for _ in range(3)]

    status = ResultAggregator().overall_status(make_run_summary(), errors)

    assert status is OverallStatus.NEEDS_ATTENTION


def test_suite_errors_alone_make_run_stable() -> None:
    """Ошибки из вывода наборов без ошибок наблюдателя — тоже «есть ошибки»."""
    status = ResultAggregator().overall_status(make_run_summary(total_errors=2), [])

    assert status is OverallStatus.STABLE


# ---------------------------------------------------------------------------
# Стабильность
# ---------------------------------------------------------------------------


def test_stability_score_penalties_and_clamp() -> None:
    aggregator = ResultAggregator()
    errors = [
        make_detected_error(severity=Severity.CRITICAL),
        make_detected_error(severity=Severity.HIGH),
        make_detected_error(severity=Severity.MEDIUM),
    ]

    # 100 − 20 − 10 − 5 − 15
    assert aggregator.stability_score(make_run_summary(failed_suites=1), errors) == 50
    many = [make_detected_error(severity=Severity.CRITICAL) for _ in range(10)]
    assert aggregator.stability_score(make_run_summary(), many) == 0


def test_stability_score_is_monotonic() -> None:
    aggregator = ResultAggregator()
    errors: list = []
    previous = aggregator.stability_score(make_run_summary(), errors)
    for severity in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL) * 3:
        errors.append(make_detected_error(severity=severity))
        score = aggregator.stability_score(make_run_summary(), errors)
        assert 0 <= score <= previous
        previous = score


# ---------------------------------------------------------------------------
# Задачи
# ---------------------------------------------------------------------------


def test_failed_suite_adds_stability_task() -> None:
    results = [
        make_suite_result(),
        make_suite_result(suite_name="Manager", role="manager", status=SuiteStatus.FAILED, errors=2),
    ]

    aggregated = ResultAggregator().aggregate(results, [])

    [task] = aggregated.developer_tasks
    assert task.id == "TASK-001"
    assert task.title == "Improve Test Suite Stability"
    assert task.priority is TaskPriority.P1
    assert task.category is TaskCategory.TESTING
    assert task.description.startswith("1 test suite(s) failed")


def test_tasks_sorted_by_priority() -> None:
    errors = [
        make_detected_error(severity=Severity.CRITICAL, url="http://app/x"),
        *[make_detected_error(severity=Severity.LOW, url="http://app/y") for _ in range(2)],
    ]
    results = [make_suite_result(status=SuiteStatus.FAILED)]

    tasks = ResultAggregator().aggregate(results, errors).developer_tasks

    orders = [t.priority.order for t in tasks]
    assert orders == sorted(orders)
    assert tasks[0].priority is TaskPriority.P0
    assert tasks[0].estimated_hours == 8.0
    assert tasks[0].dependencies == ["No dependencies - can be worked on immediately"]


def _action(severity: Severity, effort: EffortLevel | None = None) -> ActionItem:
    return ActionItem(
        id="action-1", priority=3, title="Fix x", description="d",
        severity=severity, estimated_impact=ImpactLevel.LOW, estimated_effort=effort,
    )


@pytest.mark.parametrize(
    "severity, effort, hours",
    [
        (Severity.CRITICAL, None, 8.0),
        (Severity.HIGH, None, 4.0),
        (Severity.MEDIUM, None, 2.0),
        (Severity.LOW, None, 2.0),
        (Severity.LOW, EffortLevel.HIGH, 8.0),
        (Severity.CRITICAL, EffortLevel.LOW, 2.0),
        (Severity.HIGH, EffortLevel.MEDIUM, 4.0),
    ],
)
def test_estimate_hours(severity, effort, hours) -> None:
    """Явный тег трудозатрат приоритетнее оценки по серьёзности."""
    assert ResultAggregator().estimate_hours(_action(severity, effort)) == hours


def test_map_priority_and_category() -> None:
    assert [map_priority(p) for p in (1, 2, 3, 5, 7)] == [
        TaskPriority.P0, TaskPriority.P1, TaskPriority.P1, TaskPriority.P2, TaskPriority.P3,
    ]
    assert categorize_task("Fix network errors") is TaskCategory.BUG_FIX
    assert categorize_task("Investigate slowness") is TaskCategory.INVESTIGATION
    assert categorize_task("Improve Test Suite Stability") is TaskCategory.TESTING
    assert categorize_task("Implement Error Monitoring") is TaskCategory.ENHANCEMENT


# ---------------------------------------------------------------------------
# Тренды и метрики
# ---------------------------------------------------------------------------


def test_trend_analysis() -> None:
    errors = [make_detected_error(type=ErrorType.NETWORK) for _ in range(4)]
    errors.append(make_detected_error(type=ErrorType.RUNTIME))

    trend = ResultAggregator().build_trend_analysis(
        make_run_summary(), errors, {"developer": 6, "manager": 1},
    )

    assert trend.error_trends.increasing == ["network"]
    assert trend.error_trends.stable == ["runtime"]
    assert trend.role_stability == {
        "developer": RoleStability.DEGRADING,
        "manager": RoleStability.STABLE,
    }
    assert trend.regression_risk is RiskLevel.LOW


def test_regression_risk() -> None:
    aggregator = ResultAggregator()

    assert aggregator.regression_risk(make_run_summary(failed_suites=2), []) is RiskLevel.HIGH
    assert aggregator.regression_risk(make_run_summary(total_errors=6), []) is RiskLevel.MEDIUM
    assert aggregator.regression_risk(make_run_summary(total_errors=5), []) is RiskLevel.LOW


def test_quality_metrics_coverage() -> None:
    metrics = ResultAggregator().build_quality_metrics(
        make_run_summary(failed_suites=1, passed_suites=3),
        [make_detected_error(severity=Severity.LOW) for _ in range(6)],
        {"developer": 3, "manager": 12},
    )

    assert metrics.test_coverage.overall == 75.0
    assert metrics.test_coverage.by_role == {"developer": 70.0, "manager": 0.0}
    assert metrics.errors_per_role == {"developer": 3, "manager": 12}
    assert metrics.user_experience_impact is UserExperienceImpact.MINOR


# ---------------------------------------------------------------------------
# Сводка наборов и дедупликация
# ---------------------------------------------------------------------------


def test_summarize_suites_counts_declared_suites() -> None:
    results = [
        make_suite_result(status=SuiteStatus.PASSED, errors=0, warnings=1, duration=10),
        make_suite_result(status=SuiteStatus.FAILED, errors=3, duration=20),
        make_suite_result(status=SuiteStatus.TIMEOUT, duration=30),
    ]

    summary = summarize_suites(results, total_suites=4)

    assert summary.total_suites == 4
    assert (summary.passed_suites, summary.failed_suites, summary.timeout_suites) == (1, 1, 1)
    assert summary.total_duration == 60
    assert summary.total_errors == 3
    assert summary.total_warnings == 1


def test_errors_by_role_sums_to_total() -> None:
    results = [
        make_suite_result(role="developer", errors=2),
        make_suite_result(role="developer", errors=1),
        make_suite_result(role="manager", errors=4),
    ]

    role_errors = errors_by_role(results)

    assert role_errors == {"developer": 3, "manager": 4}
    assert sum(role_errors.values()) == sum(r.errors for r in results)


def test_dedupe_is_idempotent_and_keeps_first() -> None:
    first = make_detected_error(id="error-dup", message="first")
    second = make_detected_error(id="error-dup", message="second")
    other = make_detected_error()

    once = dedupe_errors([first, other, second])

    assert [e.message for e in once if e.id == "error-dup"] == ["first"]
    assert dedupe_errors(once) == once
    aggregated = ResultAggregator().aggregate([], [first, second, other])
    assert len(aggregated.detected_errors) == 2


def test_aggregate_does_not_mutate_inputs() -> None:
    errors = [make_detected_error(), make_detected_error()]
    errors.append(errors[0])
    results = [make_suite_result()]

    ResultAggregator().aggregate(results, errors)

    assert len(errors) == 3
    assert len(results) == 1


def test_save_aggregated_results(tmp_path) -> None:
    aggregated = ResultAggregator().aggregate(
        [make_suite_result()], [make_detected_error()],
        generated_at=datetime(2026, 1, 31, tzinfo=timezone.utc),
    )

    path = save_aggregated_results(aggregated, tmp_path / "nested" / "aggregated.json")

    assert path is not None
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["executiveSummary"]["overallStatus"] == "stable"
    assert data["qualityMetrics"]["stabilityScore"] == 95
    assert data["generatedAt"].startswith("2026-01-31")


def test_save_aggregated_results_failure_returns_none(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    aggregated = ResultAggregator().aggregate([], [])

    assert save_aggregated_results(aggregated, blocker / "aggregated.json") is None
