"""Агрегация результатов прогона в итоговый артефакт.

Сводит результаты наборов и обнаруженные ошибки в ``AggregatedTestResults``:
анализ ошибок, сводку для руководства, задачи для разработчиков, анализ
трендов и метрики качества. Все правила детерминированы, пороги собраны
в ``AggregationConfig``. Входные данные не изменяются.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from vigil.models.analysis import (
    ActionItem,
    DeveloperTask,
    ErrorAnalysis,
    ErrorTrends,
    ExecutiveSummary,
    QualityMetrics,
    TestCoverage,
    TrendAnalysis,
)
from vigil.models.common import (
    EffortLevel,
    OverallStatus,
    RiskLevel,
    RoleStability,
    Severity,
    SuiteStatus,
    TaskCategory,
    TaskPriority,
    UserExperienceImpact,
)
from vigil.models.errors import DetectedError, ErrorSummary
from vigil.models.results import AggregatedTestResults, RunSummary
from vigil.models.suite import TestExecutionResult
from vigil.services.error_analysis_service import ErrorAnalysisService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AggregationConfig:
    """Пороговые значения правил агрегации.

    Значения эмпирические; вынесены сюда, чтобы их можно было менять
    без правки правил.
    """

    # Статус и риск
    attention_high_errors: int = 2
    attention_failed_suites: int = 1
    business_medium_total_errors: int = 10

    # Стабильность: 100 − Σ штрафов
    critical_penalty: int = 20
    high_penalty: int = 10
    medium_penalty: int = 5
    failed_suite_penalty: int = 15

    # Влияние на пользователей
    ux_moderate_high_errors: int = 3
    ux_minor_total_errors: int = 5

    # Тренды и регрессии
    increasing_type_threshold: int = 3
    degrading_role_threshold: int = 5
    regression_medium_total_errors: int = 5
    max_critical_path_issues: int = 5

    # Покрытие
    role_coverage_penalty: float = 10.0

    # Трудозатраты задач, часы
    effort_hours: dict[EffortLevel, float] = field(default_factory=lambda: {
        EffortLevel.LOW: 2.0,
        EffortLevel.MEDIUM: 4.0,
        EffortLevel.HIGH: 8.0,
    })
    severity_hours: dict[Severity, float] = field(default_factory=lambda: {
        Severity.CRITICAL: 8.0,
        Severity.HIGH: 4.0,
    })
    default_hours: float = 2.0


_ACCEPTANCE_CRITERIA = [
    "Error is no longer reproducible",
    "All related test cases pass",
    "No regression in other functionality",
    "Code review completed and approved",
]

_NEXT_STEPS: dict[OverallStatus, list[str]] = {
    OverallStatus.CRITICAL: [
        "Stop all non-critical development work",
        "Assign senior developers to critical error resolution",
        "Implement hotfixes for critical issues",
    ],
    OverallStatus.NEEDS_ATTENTION: [
        "Prioritize error fixes in next sprint",
        "Review and improve testing processes",
        "Schedule team review of problematic areas",
    ],
    OverallStatus.STABLE: [
        "Address remaining minor issues in upcoming releases",
        "Continue regular testing schedule",
        "Monitor for any new issues",
    ],
    OverallStatus.EXCELLENT: [
        "Maintain current quality standards",
        "Consider expanding test coverage",
        "Share best practices with other teams",
    ],
}

_RISK_BY_STATUS: dict[OverallStatus, RiskLevel] = {
    OverallStatus.CRITICAL: RiskLevel.HIGH,
    OverallStatus.NEEDS_ATTENTION: RiskLevel.MEDIUM,
    OverallStatus.STABLE: RiskLevel.LOW,
    OverallStatus.EXCELLENT: RiskLevel.LOW,
}


# ---------------------------------------------------------------------------
# Helpers shared with the orchestrator
# ---------------------------------------------------------------------------

def dedupe_errors(errors: list[DetectedError]) -> list[DetectedError]:
    """Убрать повторы по ``id``; остаётся первое вхождение. Идемпотентно."""
    seen: set[str] = set()
    unique: list[DetectedError] = []
    for error in errors:
        if error.id in seen:
            continue
        seen.add(error.id)
        unique.append(error)
    return unique


def summarize_suites(results: list[TestExecutionResult], total_suites: int) -> RunSummary:
    """Счётчики прогона по результатам наборов.

    ``total_suites`` — число объявленных наборов, а не полученных результатов:
    при отмене часть наборов не запускается.
    """
    statuses = Counter(r.status for r in results)
    return RunSummary(
        total_suites=total_suites,
        passed_suites=statuses.get(SuiteStatus.PASSED, 0),
        failed_suites=statuses.get(SuiteStatus.FAILED, 0),
        skipped_suites=statuses.get(SuiteStatus.SKIPPED, 0),
        timeout_suites=statuses.get(SuiteStatus.TIMEOUT, 0),
        total_duration=sum(r.duration for r in results),
        total_errors=sum(r.errors for r in results),
        total_warnings=sum(r.warnings for r in results),
    )


def errors_by_role(results: list[TestExecutionResult]) -> dict[str, int]:
    """Сумма ``errors`` результатов наборов по ролям."""
    totals: dict[str, int] = defaultdict(int)
    for result in results:
        totals[result.role] += result.errors
    return dict(totals)


# ---------------------------------------------------------------------------
# ResultAggregator
# ---------------------------------------------------------------------------

class ResultAggregator:
    """Детерминированно сводит результаты прогона в ``AggregatedTestResults``."""

    def __init__(
        self,
        config: AggregationConfig | None = None,
        analysis_service: ErrorAnalysisService | None = None,
    ) -> None:
        self._config = config or AggregationConfig()
        self._analysis = analysis_service or ErrorAnalysisService()

    def aggregate(
        self,
        suite_results: list[TestExecutionResult],
        detected_errors: list[DetectedError],
        *,
        summary: RunSummary | None = None,
        role_errors: dict[str, int] | None = None,
        generated_at: datetime | None = None,
    ) -> AggregatedTestResults:
        """Построить итоговый артефакт прогона.

        Args:
            suite_results: Результаты наборов в порядке получения.
            detected_errors: Ошибки наблюдателя; повторы по id отбрасываются.
            summary: Сводка прогона; по умолчанию считается по ``suite_results``.
            role_errors: Ошибки наборов по ролям; по умолчанию считается по ``suite_results``.
            generated_at: Момент создания артефакта (для воспроизводимых тестов).
        """
        results = list(suite_results)
        errors = dedupe_errors(list(detected_errors))
        summary = summary or summarize_suites(results, len(results))
        role_errors = dict(role_errors) if role_errors is not None else errors_by_role(results)

        analysis = self._analysis.analyze(errors)
        executive = self.build_executive_summary(summary, errors, analysis)
        tasks = self.build_developer_tasks(analysis, summary)
        trend = self.build_trend_analysis(summary, errors, role_errors)
        metrics = self.build_quality_metrics(summary, errors, role_errors)

        logger.info(
            "Агрегация: статус=%s, задач=%d, стабильность=%d, риск регрессии=%s",
            executive.overall_status.value, len(tasks),
            metrics.stability_score, trend.regression_risk.value,
        )
        return AggregatedTestResults(
            generated_at=generated_at or datetime.now(timezone.utc),
            summary=summary,
            test_results=results,
            errors_by_role=role_errors,
            detected_errors=errors,
            error_analysis=analysis,
            executive_summary=executive,
            developer_tasks=tasks,
            trend_analysis=trend,
            quality_metrics=metrics,
        )

    # ------------------------------------------------------------------
    # Executive summary
    # ------------------------------------------------------------------

    def overall_status(self, summary: RunSummary, errors: list[DetectedError]) -> OverallStatus:
        counts = ErrorSummary.from_errors(errors)
        cfg = self._config
        if counts.critical > 0:
            return OverallStatus.CRITICAL
        if counts.high > cfg.attention_high_errors or summary.failed_suites > cfg.attention_failed_suites:
            return OverallStatus.NEEDS_ATTENTION
        if counts.total > 0 or summary.total_errors > 0 or summary.failed_suites > 0:
            return OverallStatus.STABLE
        return OverallStatus.EXCELLENT

    def build_executive_summary(
        self,
        summary: RunSummary,
        errors: list[DetectedError],
        analysis: ErrorAnalysis,
    ) -> ExecutiveSummary:
        status = self.overall_status(summary, errors)
        return ExecutiveSummary(
            overall_status=status,
            key_findings=_key_findings(summary, analysis),
            business_impact=self._business_impact(summary, analysis),
            recommended_actions=_recommended_actions(summary, analysis),
            time_to_resolution=analysis.executive_summary.estimated_fix_time,
            risk_level=_RISK_BY_STATUS[status],
            next_steps=[*_NEXT_STEPS[status], "Schedule follow-up comprehensive testing after fixes"],
        )

    def _business_impact(self, summary: RunSummary, analysis: ErrorAnalysis) -> str:
        critical = analysis.executive_summary.critical_issues_count
        total = analysis.executive_summary.total_issues_found
        failed = summary.failed_suites

        if critical > 0:
            return (
                f"High impact: {critical} critical errors could prevent users from completing "
                "core tasks, potentially affecting user retention and satisfaction."
            )
        if total > self._config.business_medium_total_errors or failed > self._config.attention_failed_suites:
            return (
                "Medium impact: Multiple errors may create friction in user experience, "
                "potentially leading to decreased user satisfaction."
            )
        if total > 0 or failed > 0:
            return (
                "Low impact: Minor issues present but unlikely to significantly affect "
                "user experience or business metrics."
            )
        return (
            "Minimal impact: System is functioning well with no significant issues "
            "affecting user experience."
        )

    # ------------------------------------------------------------------
    # Developer tasks
    # ------------------------------------------------------------------

    def build_developer_tasks(self, analysis: ErrorAnalysis, summary: RunSummary) -> list[DeveloperTask]:
        tasks: list[DeveloperTask] = []

        def next_id() -> str:
            return f"TASK-{len(tasks) + 1:03d}"

        for item in analysis.action_items:
            tasks.append(DeveloperTask(
                id=next_id(),
                title=item.title,
                description=item.description,
                priority=map_priority(item.priority),
                category=categorize_task(item.title),
                estimated_hours=self.estimate_hours(item),
                related_errors=list(item.related_errors),
                acceptance_criteria=list(_ACCEPTANCE_CRITERIA),
                testing_notes=(
                    f"Test across all affected roles: {', '.join(item.affected_users)}. "
                    "Verify fix with comprehensive test suite."
                ),
                dependencies=[
                    "No dependencies - can be worked on immediately"
                    if item.priority == 1
                    else "Wait for higher priority fixes to be completed"
                ],
            ))

        if summary.failed_suites > 0:
            tasks.append(DeveloperTask(
                id=next_id(),
                title="Improve Test Suite Stability",
                description=(
                    f"{summary.failed_suites} test suite(s) failed. "
                    "Investigate and fix test reliability issues."
                ),
                priority=TaskPriority.P1,
                category=TaskCategory.TESTING,
                estimated_hours=4.0,
                acceptance_criteria=[
                    "All test suites pass consistently",
                    "Test execution time is optimized",
                    "Flaky tests are identified and fixed",
                ],
                testing_notes="Run comprehensive test suite multiple times to verify stability",
            ))

        if analysis.executive_summary.critical_issues_count > 0:
            tasks.append(DeveloperTask(
                id=next_id(),
                title="Implement Error Monitoring",
                description="Set up monitoring and alerting for critical errors to prevent future issues",
                priority=TaskPriority.P2,
                category=TaskCategory.ENHANCEMENT,
                estimated_hours=6.0,
                acceptance_criteria=[
                    "Error monitoring is configured for production",
                    "Alerts are set up for critical error thresholds",
                    "Error tracking dashboard is accessible to team",
                ],
                testing_notes="Verify monitoring captures errors correctly in test environment",
                dependencies=["Fix critical errors first"],
            ))

        return sorted(tasks, key=lambda task: task.priority.order)

    def estimate_hours(self, item: ActionItem) -> float:
        """Явный тег трудозатрат приоритетнее оценки по серьёзности."""
        if item.estimated_effort is not None:
            return self._config.effort_hours[item.estimated_effort]
        return self._config.severity_hours.get(item.severity, self._config.default_hours)

    # ------------------------------------------------------------------
    # Trend analysis
    # ------------------------------------------------------------------

    def build_trend_analysis(
        self,
        summary: RunSummary,
        errors: list[DetectedError],
        role_errors: dict[str, int],
    ) -> TrendAnalysis:
        cfg = self._config
        by_type = Counter(e.type.value for e in errors)

        role_stability = {
            role: (
                RoleStability.DEGRADING
                if count > cfg.degrading_role_threshold
                else RoleStability.STABLE
            )
            for role, count in role_errors.items()
        }

        critical_path = [
            f"{e.type.value} error in {e.user_role} role: {e.message}"
            for e in errors
            if e.severity is Severity.CRITICAL
        ][: cfg.max_critical_path_issues]

        return TrendAnalysis(
            error_trends=ErrorTrends(
                increasing=[t for t, n in by_type.items() if n > cfg.increasing_type_threshold],
                decreasing=[],
                stable=[t for t, n in by_type.items() if n <= cfg.increasing_type_threshold],
            ),
            role_stability=role_stability,
            critical_path_issues=critical_path,
            regression_risk=self.regression_risk(summary, errors),
        )

    def regression_risk(self, summary: RunSummary, errors: list[DetectedError]) -> RiskLevel:
        if summary.failed_suites > 1 or any(e.severity is Severity.CRITICAL for e in errors):
            return RiskLevel.HIGH
        total = max(len(errors), summary.total_errors)
        if total > self._config.regression_medium_total_errors:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    # ------------------------------------------------------------------
    # Quality metrics
    # ------------------------------------------------------------------

    def stability_score(self, summary: RunSummary, errors: list[DetectedError]) -> int:
        counts = ErrorSummary.from_errors(errors)
        cfg = self._config
        score = (
            100
            - cfg.critical_penalty * counts.critical
            - cfg.high_penalty * counts.high
            - cfg.medium_penalty * counts.medium
            - cfg.failed_suite_penalty * summary.failed_suites
        )
        return max(0, min(100, score))

    def user_experience_impact(self, errors: list[DetectedError]) -> UserExperienceImpact:
        counts = ErrorSummary.from_errors(errors)
        if counts.critical > 0:
            return UserExperienceImpact.SEVERE
        if counts.high > self._config.ux_moderate_high_errors:
            return UserExperienceImpact.MODERATE
        if counts.total > self._config.ux_minor_total_errors:
            return UserExperienceImpact.MINOR
        return UserExperienceImpact.MINIMAL

    def build_quality_metrics(
        self,
        summary: RunSummary,
        errors: list[DetectedError],
        role_errors: dict[str, int],
    ) -> QualityMetrics:
        counts = ErrorSummary.from_errors(errors)
        if summary.total_suites > 0:
            overall = max(0.0, 100.0 - summary.failed_suites / summary.total_suites * 100.0)
        else:
            overall = 100.0

        return QualityMetrics(
            test_coverage=TestCoverage(
                overall=overall,
                by_role={
                    role: max(0.0, 100.0 - self._config.role_coverage_penalty * count)
                    for role, count in role_errors.items()
                },
            ),
            errors_per_role=dict(role_errors),
            critical_error_rate=counts.critical / counts.total if counts.total else 0.0,
            stability_score=self.stability_score(summary, errors),
            user_experience_impact=self.user_experience_impact(errors),
        )


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

def map_priority(action_priority: int) -> TaskPriority:
    if action_priority <= 1:
        return TaskPriority.P0
    if action_priority <= 3:
        return TaskPriority.P1
    if action_priority <= 6:
        return TaskPriority.P2
    return TaskPriority.P3


def categorize_task(title: str) -> TaskCategory:
    lowered = title.lower()
    if "fix" in lowered:
        return TaskCategory.BUG_FIX
    if "investigate" in lowered:
        return TaskCategory.INVESTIGATION
    if "test" in lowered:
        return TaskCategory.TESTING
    return TaskCategory.ENHANCEMENT


def _key_findings(summary: RunSummary, analysis: ErrorAnalysis) -> list[str]:
    findings: list[str] = []
    if summary.failed_suites > 0:
        findings.append(
            f"{summary.failed_suites} out of {summary.total_suites} test suites failed"
        )
    critical = analysis.executive_summary.critical_issues_count
    if critical > 0:
        findings.append(f"{critical} critical errors require immediate attention")
    if analysis.error_patterns:
        findings.append(
            f"{len(analysis.error_patterns)} error patterns identified for efficient resolution"
        )
    role = analysis.role_comparison.most_problematic_role
    if role != "none":
        count = analysis.role_comparison.role_error_counts.get(role, 0)
        findings.append(f"{role} role has the most issues ({count} errors)")
    return findings


def _recommended_actions(summary: RunSummary, analysis: ErrorAnalysis) -> list[str]:
    actions: list[str] = []
    if analysis.executive_summary.critical_issues_count > 0:
        actions.append("Immediately address all critical errors before any new feature development")
    if len(analysis.error_patterns) > 3:
        actions.append("Focus on fixing error patterns to resolve multiple issues efficiently")
    if summary.failed_suites > 0:
        actions.append("Investigate and fix test suite failures to improve development confidence")
    actions.append("Implement automated monitoring to catch similar issues in the future")
    actions.append("Schedule regular comprehensive testing to maintain quality standards")
    return actions


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def save_aggregated_results(results: AggregatedTestResults, path: Path) -> Path | None:
    """Записать JSON-снимок агрегата для аудита. Ошибка записи только логируется."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(results.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.error("Не удалось сохранить агрегированные результаты в %s: %s", path, exc)
        return None
    logger.info("Агрегированные результаты сохранены: %s", path)
    return path
