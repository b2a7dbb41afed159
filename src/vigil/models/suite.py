"""Модели наборов тестов, результатов их запуска и прогресса оркестрации."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from vigil.models.common import CamelModel, OrchestrationStatus, SuiteStatus


class TestSuiteInfo(CamelModel):
    """Статическое описание набора: задаётся при старте и не меняется."""

    name: str
    role: str
    file: str
    description: str = ""
    estimated_duration: float = Field(default=0.0, ge=0, description="Ожидаемая длительность, сек")
    args: list[str] = Field(default=[], description="Дополнительные аргументы раннера для набора")
    timeout: float | None = Field(default=None, gt=0, description="Собственный бюджет времени, сек")


class TestProgress(CamelModel):
    """Счётчики тестов внутри набора, собранные из вывода раннера."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    current_test: str | None = None

    @property
    def completed(self) -> int:
        return self.passed + self.failed


class ErrorDetails(CamelModel):
    """Диагностика неуспешного запуска.

    Для процесса, завершившегося сам или по таймауту, заполняются
    ``exit_code``/``signal``/``stderr``/``last_output``. Для синтетического
    результата (исключение при запуске или супервизии) — ``error``/``stack``.
    """

    exit_code: int | None = None
    signal: str | None = None
    stderr: str | None = None
    test_progress: TestProgress | None = None
    last_output: list[str] = []
    error: str | None = None
    stack: str | None = None
    timestamp: datetime | None = None


class TestExecutionResult(CamelModel):
    """Результат одного набора. Создаётся после выхода процесса, далее не меняется."""

    suite_name: str
    role: str
    status: SuiteStatus
    start_time: datetime
    end_time: datetime
    duration: float = Field(ge=0, description="Длительность, сек")
    errors: int = 0
    warnings: int = 0
    output: str = ""
    error_details: ErrorDetails | None = None
    attempts: int = 1


class ProgressReport(CamelModel):
    """Снимок прогресса прогона; пересчитывается на каждой границе набора."""

    total_suites: int
    completed_suites: int
    failed_suites: int
    current_suite: str | None = None
    active_suites: list[str] = Field(default=[], description="Наборы, выполняемые сейчас (в порядке запуска)")
    percent_complete: float
    estimated_time_remaining: float | None = Field(default=None, description="ETA, сек")
    total_errors: int = 0
    total_warnings: int = 0
    status: OrchestrationStatus
