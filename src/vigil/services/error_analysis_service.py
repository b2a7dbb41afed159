"""Анализ списка обнаруженных ошибок: паттерны, роли, приоритетные действия.

Алгоритм:
1. Ошибки группируются по ключу ``type-normalizedUrl-severity``; группа
   из двух и более ошибок становится паттерном.
2. Паттерны упорядочиваются по ``вес серьёзности × частота``.
3. Сравнение ролей: типы ошибок, встречающиеся в нескольких ролях (общие),
   и типы, встречающиеся только в одной роли.
4. Каждый паттерн даёт действие; критические ошибки вне паттернов дают
   отдельные действия с приоритетом 1.
5. Сводка: здоровье системы, оценка времени исправления, приоритеты, риск.

Анализ детерминирован и не меняет входной список.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass

from vigil.models.analysis import (
    ActionItem,
    ErrorAnalysis,
    ErrorAnalysisSummary,
    ErrorPattern,
    RoleComparison,
)
from vigil.models.common import (
    EffortLevel,
    ErrorType,
    ImpactLevel,
    OverallHealth,
    Severity,
)
from vigil.models.errors import DetectedError, ErrorCategories
from vigil.utils.url_patterns import common_url_prefix, normalize_url_pattern

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorAnalysisConfig:
    """Пороговые значения анализа ошибок."""

    min_pattern_frequency: int = 2
    top_patterns_in_priorities: int = 3
    max_top_priorities: int = 5
    # Паттерн с такой частотой или охватом ролей получает явный тег трудозатрат high
    high_effort_frequency: int = 5
    high_effort_roles: int = 2


_ACTION_SEVERITY_WEIGHT: dict[Severity, int] = {
    Severity.CRITICAL: 1,
    Severity.HIGH: 2,
    Severity.MEDIUM: 3,
    Severity.LOW: 4,
}

_FIX_HOURS: dict[Severity, float] = {
    Severity.CRITICAL: 4.0,
    Severity.HIGH: 2.0,
    Severity.MEDIUM: 1.0,
    Severity.LOW: 0.5,
}

_COMMON_CAUSE: dict[ErrorType, str] = {
    ErrorType.NETWORK: "API endpoint or network connectivity issues",
    ErrorType.RUNTIME: "JavaScript execution errors or missing dependencies",
    ErrorType.RENDERING: "UI component rendering or CSS loading issues",
    ErrorType.NAVIGATION: "Routing or permission-related navigation problems",
    ErrorType.COMPONENT: "Component props, state or lifecycle handling issues",
    ErrorType.IMPORT: "Unresolved modules, missing exports or circular imports",
    ErrorType.API: "Backend API contract or integration failures",
}

_SUGGESTED_FIX: dict[ErrorType, str] = {
    ErrorType.NETWORK: "Check API endpoint implementation and error handling",
    ErrorType.RUNTIME: "Review JavaScript code and fix syntax/logic errors",
    ErrorType.RENDERING: "Verify component props and CSS dependencies",
    ErrorType.NAVIGATION: "Check route definitions and permission middleware",
    ErrorType.COMPONENT: "Review component inputs and add error boundaries",
    ErrorType.IMPORT: "Fix module paths and exported names, break import cycles",
    ErrorType.API: "Verify request payloads, response handling and endpoint availability",
}

_UNKNOWN_CAUSE = "Unknown cause - requires investigation"
_UNKNOWN_FIX = "Investigate error details and stack traces"


class ErrorAnalysisService:
    """Строит ``ErrorAnalysis`` по списку ``DetectedError``."""

    def __init__(self, config: ErrorAnalysisConfig | None = None) -> None:
        self._config = config or ErrorAnalysisConfig()

    def analyze(self, errors: list[DetectedError]) -> ErrorAnalysis:
        patterns = self.find_patterns(errors)
        role_comparison = self.compare_roles(errors)
        action_items = self.build_action_items(errors, patterns)
        summary = self.summarize(errors, patterns, role_comparison)

        logger.info(
            "Анализ ошибок: %d ошибок, %d паттернов, %d действий, здоровье=%s",
            len(errors), len(patterns), len(action_items), summary.overall_health.value,
        )
        return ErrorAnalysis(
            categorized_errors=ErrorCategories.from_errors(errors),
            error_patterns=patterns,
            role_comparison=role_comparison,
            action_items=action_items,
            executive_summary=summary,
        )

    # ------------------------------------------------------------------
    # Паттерны
    # ------------------------------------------------------------------

    def find_patterns(self, errors: list[DetectedError]) -> list[ErrorPattern]:
        groups: dict[str, list[DetectedError]] = defaultdict(list)
        for error in errors:
            groups[pattern_key(error)].append(error)

        patterns: list[ErrorPattern] = []
        for key, group in groups.items():
            if len(group) < self._config.min_pattern_frequency:
                continue
            first_type = group[0].type
            patterns.append(ErrorPattern(
                id=f"pattern-{len(patterns) + 1}",
                pattern=key,
                frequency=len(group),
                affected_roles=_unique(e.user_role for e in group),
                severity=_max_severity(group),
                description=f"{first_type.value} errors on "
                            f"{common_url_prefix([e.url for e in group])}",
                common_cause=_COMMON_CAUSE.get(first_type, _UNKNOWN_CAUSE),
                suggested_fix=_SUGGESTED_FIX.get(first_type, _UNKNOWN_FIX),
                related_errors=[e.id for e in group],
            ))

        return sorted(patterns, key=lambda p: p.severity.weight * p.frequency, reverse=True)

    # ------------------------------------------------------------------
    # Роли
    # ------------------------------------------------------------------

    def compare_roles(self, errors: list[DetectedError]) -> RoleComparison:
        role_counts: Counter[str] = Counter(e.user_role for e in errors)

        roles_by_type: dict[ErrorType, list[str]] = defaultdict(list)
        for error in errors:
            if error.user_role not in roles_by_type[error.type]:
                roles_by_type[error.type].append(error.user_role)

        shared: list[str] = []
        specific: dict[str, list[str]] = defaultdict(list)
        for error_type, roles in roles_by_type.items():
            if len(roles) > 1:
                shared.append(error_type.value)
            else:
                specific[roles[0]].append(error_type.value)

        # Стабильная сортировка: при равенстве раньше встреченная роль идёт первой
        ranked = sorted(role_counts.items(), key=lambda item: item[1], reverse=True)
        return RoleComparison(
            total_roles=len(role_counts),
            role_error_counts=dict(role_counts),
            shared_issues=shared,
            role_specific_issues=dict(specific),
            most_problematic_role=ranked[0][0] if ranked else "none",
            least_problematic_role=ranked[-1][0] if ranked else "none",
        )

    # ------------------------------------------------------------------
    # Действия
    # ------------------------------------------------------------------

    def build_action_items(
        self,
        errors: list[DetectedError],
        patterns: list[ErrorPattern],
    ) -> list[ActionItem]:
        errors_by_id = {e.id: e for e in errors}
        items: list[ActionItem] = []

        for pattern in patterns:
            related = [errors_by_id[i] for i in pattern.related_errors if i in errors_by_id]
            affected = _unique(e.user_role for e in related)
            items.append(ActionItem(
                id=f"action-{len(items) + 1}",
                priority=action_priority(pattern),
                title=f"Fix {pattern.description}",
                description=(
                    f"Address {pattern.frequency} occurrences of {pattern.pattern} "
                    f"affecting {', '.join(affected)} roles"
                ),
                severity=pattern.severity,
                estimated_impact=estimate_impact(pattern),
                estimated_effort=self._effort_tag(pattern),
                affected_users=affected,
                related_errors=list(pattern.related_errors),
                action_steps=[
                    f"Investigate {pattern.frequency} occurrences of {pattern.pattern}",
                    "Review error details and stack traces",
                    pattern.suggested_fix,
                    f"Test fix across all affected roles: {', '.join(pattern.affected_roles)}",
                    "Verify resolution with comprehensive test suite",
                ],
            ))

        covered = {error_id for p in patterns for error_id in p.related_errors}
        for error in errors:
            if error.severity is not Severity.CRITICAL or error.id in covered:
                continue
            items.append(ActionItem(
                id=f"action-{len(items) + 1}",
                priority=1,
                title=f"Fix critical error: {error.message}",
                description=f"Address critical error in {error.user_role} role: {error.message}",
                severity=Severity.CRITICAL,
                estimated_impact=ImpactLevel.HIGH,
                affected_users=[error.user_role],
                related_errors=[error.id],
                action_steps=[
                    f"Investigate critical error: {error.message}",
                    f"Review stack trace: {error.stack_trace or 'No stack trace available'}",
                    f"Test reproduction steps in {error.user_role} role",
                    "Implement fix and verify resolution",
                    "Run comprehensive tests to ensure no regression",
                ],
            ))

        return sorted(items, key=lambda item: item.priority)

    def _effort_tag(self, pattern: ErrorPattern) -> EffortLevel | None:
        if (
            pattern.frequency > self._config.high_effort_frequency
            or len(pattern.affected_roles) > self._config.high_effort_roles
        ):
            return EffortLevel.HIGH
        return None

    # ------------------------------------------------------------------
    # Сводка
    # ------------------------------------------------------------------

    def summarize(
        self,
        errors: list[DetectedError],
        patterns: list[ErrorPattern],
        role_comparison: RoleComparison,
    ) -> ErrorAnalysisSummary:
        critical = sum(1 for e in errors if e.severity is Severity.CRITICAL)
        return ErrorAnalysisSummary(
            overall_health=overall_health(errors),
            total_issues_found=len(errors),
            critical_issues_count=critical,
            estimated_fix_time=estimate_fix_time(errors, patterns),
            top_priorities=self._top_priorities(critical, patterns, role_comparison),
            risk_assessment=risk_assessment(errors),
            recommendations=_recommendations(errors, patterns, role_comparison),
        )

    def _top_priorities(
        self,
        critical: int,
        patterns: list[ErrorPattern],
        role_comparison: RoleComparison,
    ) -> list[str]:
        priorities: list[str] = []
        if critical > 0:
            priorities.append(f"Fix {critical} critical error(s) immediately")
        for pattern in patterns[: self._config.top_patterns_in_priorities]:
            priorities.append(f"Address {pattern.description} ({pattern.frequency} occurrences)")
        role = role_comparison.most_problematic_role
        if role != "none":
            count = role_comparison.role_error_counts.get(role, 0)
            priorities.append(f"Focus on {role} role issues ({count} errors)")
        return priorities[: self._config.max_top_priorities]


# ---------------------------------------------------------------------------
# Чистые функции правил
# ---------------------------------------------------------------------------

def pattern_key(error: DetectedError) -> str:
    return f"{error.type.value}-{normalize_url_pattern(error.url)}-{error.severity.value}"


def action_priority(pattern: ErrorPattern) -> int:
    """Меньше = срочнее: вес серьёзности + редкость + узость охвата ролей."""
    frequency_weight = max(1, 5 - pattern.frequency)
    role_weight = max(1, 4 - len(pattern.affected_roles))
    return _ACTION_SEVERITY_WEIGHT[pattern.severity] + frequency_weight + role_weight


def estimate_impact(pattern: ErrorPattern) -> ImpactLevel:
    if pattern.severity is Severity.CRITICAL or len(pattern.affected_roles) > 2:
        return ImpactLevel.HIGH
    if pattern.severity is Severity.HIGH or pattern.frequency > 3:
        return ImpactLevel.MEDIUM
    return ImpactLevel.LOW


def overall_health(errors: list[DetectedError]) -> OverallHealth:
    counts = Counter(e.severity for e in errors)
    total = len(errors)
    if counts[Severity.CRITICAL] > 0:
        return OverallHealth.CRITICAL
    if counts[Severity.HIGH] > 3 or total > 10:
        return OverallHealth.POOR
    if counts[Severity.HIGH] > 1 or total > 5:
        return OverallHealth.FAIR
    if total > 0:
        return OverallHealth.GOOD
    return OverallHealth.EXCELLENT


def estimate_fix_time(errors: list[DetectedError], patterns: list[ErrorPattern]) -> str:
    """Оценка времени исправления: часы по серьёзности минус экономия на паттернах."""
    hours = sum(_FIX_HOURS[e.severity] for e in errors)
    for pattern in patterns:
        hours = max(0.0, hours - (pattern.frequency - 1) * 0.5)
    return format_duration_hours(hours)


def format_duration_hours(hours: float) -> str:
    if hours < 1:
        return "< 1 hour"
    if hours < 8:
        return f"{math.ceil(hours)} hours"
    if hours < 40:
        return f"{math.ceil(hours / 8)} days"
    return f"{math.ceil(hours / 40)} weeks"


def risk_assessment(errors: list[DetectedError]) -> str:
    counts = Counter(e.severity for e in errors)
    critical = counts[Severity.CRITICAL]
    high = counts[Severity.HIGH]
    if critical > 0:
        return f"High risk: {critical} critical error(s) could prevent core functionality"
    if high > 2:
        return f"Medium risk: {high} high-severity errors may impact user experience"
    if len(errors) > 5:
        return "Low-medium risk: Multiple minor issues could accumulate to impact usability"
    if errors:
        return "Low risk: Minor issues present but unlikely to significantly impact users"
    return "Minimal risk: No significant issues detected"


def _recommendations(
    errors: list[DetectedError],
    patterns: list[ErrorPattern],
    role_comparison: RoleComparison,
) -> list[str]:
    result: list[str] = []
    if any(e.severity is Severity.CRITICAL for e in errors):
        result.append("Prioritize critical error fixes before any new feature development")
    if len(patterns) > 3:
        result.append("Focus on fixing error patterns to resolve multiple issues efficiently")
    if role_comparison.shared_issues:
        result.append("Address shared issues first to improve experience across all roles")
    if len(role_comparison.role_error_counts) > 1:
        result.append(
            f"Conduct focused testing on {role_comparison.most_problematic_role} role functionality"
        )
    if errors:
        result.append("Implement automated regression tests for fixed issues")
        result.append("Consider increasing test coverage in problematic areas")
    return result


def _max_severity(errors: list[DetectedError]) -> Severity:
    present = {e.severity for e in errors}
    for severity in Severity.ordered():
        if severity in present:
            return severity
    return Severity.LOW


def _unique(values) -> list[str]:
    return list(dict.fromkeys(values))
