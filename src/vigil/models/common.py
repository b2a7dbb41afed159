"""Общие перечисления и базовая модель для JSON-артефактов."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Базовая неизменяемая модель с camelCase-алиасами.

    Артефакты прогона (``execution-summary.json``, ``aggregated-results-*.json``,
    пачки ``error-reports/*.json``) пишутся и читаются в camelCase, а в коде
    используются snake_case-имена.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SuiteStatus(str, Enum):
    """Итоговый статус одного запуска набора."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class OrchestrationStatus(str, Enum):
    """Состояние оркестратора: ``idle → running → {completed | failed | cancelled}``."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OrchestrationStatus.COMPLETED,
            OrchestrationStatus.FAILED,
            OrchestrationStatus.CANCELLED,
        )


class ErrorType(str, Enum):
    """Тип аномалии, обнаруженной в браузерной сессии."""

    RUNTIME = "runtime"
    NETWORK = "network"
    RENDERING = "rendering"
    NAVIGATION = "navigation"
    IMPORT = "import"
    COMPONENT = "component"
    API = "api"


class Severity(str, Enum):
    """Порядковая серьёзность: critical > high > medium > low."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def weight(self) -> int:
        """Вес для ранжирования паттернов (critical=4 … low=1)."""
        return _SEVERITY_WEIGHT[self]

    @classmethod
    def ordered(cls) -> list[Severity]:
        """От самой серьёзной к наименее серьёзной."""
        return [cls.CRITICAL, cls.HIGH, cls.MEDIUM, cls.LOW]


_SEVERITY_WEIGHT = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class OverallStatus(str, Enum):
    CRITICAL = "critical"
    NEEDS_ATTENTION = "needs-attention"
    STABLE = "stable"
    EXCELLENT = "excellent"


class RiskLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class UserExperienceImpact(str, Enum):
    SEVERE = "severe"
    MODERATE = "moderate"
    MINOR = "minor"
    MINIMAL = "minimal"


class OverallHealth(str, Enum):
    CRITICAL = "critical"
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"


class TaskPriority(str, Enum):
    """Приоритет задачи разработчика; P0 — самый срочный."""

    P0 = "P0"
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"

    @property
    def order(self) -> int:
        return int(self.value[1])


class TaskCategory(str, Enum):
    BUG_FIX = "bug-fix"
    ENHANCEMENT = "enhancement"
    INVESTIGATION = "investigation"
    TESTING = "testing"


class EffortLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RoleStability(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"


class ImpactLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
