"""Модели анализа ошибок и производных артефактов агрегатора."""

from __future__ import annotations

from pydantic import Field

from vigil.models.common import (
    CamelModel,
    EffortLevel,
    ImpactLevel,
    OverallHealth,
    OverallStatus,
    RiskLevel,
    RoleStability,
    Severity,
    TaskCategory,
    TaskPriority,
    UserExperienceImpact,
)
from vigil.models.errors import ErrorCategories


class ErrorPattern(CamelModel):
    """Группа повторяющихся ошибок с одинаковым ключом ``type-url-severity``."""

    id: str
    pattern: str
    frequency: int
    affected_roles: list[str]
    severity: Severity
    description: str
    common_cause: str
    suggested_fix: str
    related_errors: list[str]


class RoleComparison(CamelModel):
    total_roles: int = 0
    role_error_counts: dict[str, int] = {}
    shared_issues: list[str] = []
    role_specific_issues: dict[str, list[str]] = {}
    most_problematic_role: str = "none"
    least_problematic_role: str = "none"


class ActionItem(CamelModel):
    """Приоритизированное действие: паттерн ошибок или одиночная критическая ошибка.

    ``priority`` — целое число, меньше = срочнее. ``estimated_effort`` —
    явный тег трудозатрат; если не задан, часы считаются по ``severity``.
    """

    id: str
    priority: int
    title: str
    description: str
    severity: Severity
    estimated_impact: ImpactLevel
    estimated_effort: EffortLevel | None = None
    affected_users: list[str] = []
    related_errors: list[str] = []
    action_steps: list[str] = []


class ErrorAnalysisSummary(CamelModel):
    overall_health: OverallHealth
    total_issues_found: int
    critical_issues_count: int
    estimated_fix_time: str
    top_priorities: list[str] = []
    risk_assessment: str = ""
    recommendations: list[str] = []


class ErrorAnalysis(CamelModel):
    """Анализ списка обнаруженных ошибок: корзины, паттерны, роли, действия."""

    categorized_errors: ErrorCategories
    error_patterns: list[ErrorPattern] = []
    role_comparison: RoleComparison = Field(default_factory=RoleComparison)
    action_items: list[ActionItem] = []
    executive_summary: ErrorAnalysisSummary


class ExecutiveSummary(CamelModel):
    overall_status: OverallStatus
    key_findings: list[str] = []
    business_impact: str
    recommended_actions: list[str] = []
    time_to_resolution: str
    risk_level: RiskLevel
    next_steps: list[str] = []


class DeveloperTask(CamelModel):
    """Задача для разработчиков, выведенная из ошибок и упавших наборов."""

    id: str
    title: str
    description: str
    priority: TaskPriority
    category: TaskCategory
    estimated_hours: float
    assigned_to: str | None = None
    related_errors: list[str] = []
    acceptance_criteria: list[str] = []
    testing_notes: str = ""
    dependencies: list[str] = []


class ErrorTrends(CamelModel):
    increasing: list[str] = []
    decreasing: list[str] = []
    stable: list[str] = []


class TrendAnalysis(CamelModel):
    """Эвристика одного прогона: истории между прогонами нет."""

    error_trends: ErrorTrends = Field(default_factory=ErrorTrends)
    role_stability: dict[str, RoleStability] = {}
    critical_path_issues: list[str] = []
    regression_risk: RiskLevel


class TestCoverage(CamelModel):
    overall: float
    by_role: dict[str, float] = {}


class QualityMetrics(CamelModel):
    test_coverage: TestCoverage
    errors_per_role: dict[str, int] = {}
    critical_error_rate: float = Field(ge=0, le=1)
    stability_score: int = Field(ge=0, le=100)
    user_experience_impact: UserExperienceImpact
