"""Итоговые модели прогона: сводка оркестратора и агрегированный результат."""

from __future__ import annotations

from datetime import datetime

from vigil.models.analysis import (
    DeveloperTask,
    ErrorAnalysis,
    ExecutiveSummary,
    QualityMetrics,
    TrendAnalysis,
)
from vigil.models.common import CamelModel
from vigil.models.errors import DetectedError
from vigil.models.suite import TestExecutionResult


class RunSummary(CamelModel):
    """Счётчики по наборам за весь прогон."""

    total_suites: int = 0
    passed_suites: int = 0
    failed_suites: int = 0
    skipped_suites: int = 0
    timeout_suites: int = 0
    total_duration: float = 0.0
    total_errors: int = 0
    total_warnings: int = 0


class AggregatedTestResults(CamelModel):
    """Терминальный артефакт прогона. Создаётся один раз, только для чтения.

    Это единственный вход для рендеринга отчётов.
    """

    generated_at: datetime
    summary: RunSummary
    test_results: list[TestExecutionResult]
    errors_by_role: dict[str, int] = {}
    detected_errors: list[DetectedError]
    error_analysis: ErrorAnalysis
    executive_summary: ExecutiveSummary
    developer_tasks: list[DeveloperTask]
    trend_analysis: TrendAnalysis
    quality_metrics: QualityMetrics


class ComprehensiveTestResults(CamelModel):
    """Результат ``SuiteOrchestrator.execute_all_tests``."""

    summary: RunSummary
    suite_results: list[TestExecutionResult]
    errors_by_role: dict[str, int] = {}
    critical_issues: list[str] = []
    recommendations: list[str] = []
    report_paths: list[str] = []
    detected_errors: list[DetectedError] = []
    aggregated_results: AggregatedTestResults | None = None


class SuiteCounts(CamelModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    timeout: int = 0


class ErrorCounts(CamelModel):
    total: int = 0
    by_role: dict[str, int] = {}
    critical: int = 0


class ExecutionSummary(CamelModel):
    """Содержимое ``execution-summary.json``; пишется в конце каждого прогона."""

    timestamp: datetime
    status: str
    duration: float
    configuration: dict = {}
    results: SuiteCounts
    errors: ErrorCounts
    recommendations: list[str] = []
    report_paths: list[str] = []


class ExecutionErrorReport(CamelModel):
    """Содержимое ``execution-error.json`` при ошибке уровня прогона."""

    timestamp: datetime
    error: str
    error_type: str
    stack: str | None = None
    problems: list[str] = []
    completed_suites: int = 0
    total_suites: int = 0
    configuration: dict = {}
