"""Оркестратор прогона: подготовка окружения, запуск наборов, сборка результатов.

Цепочка одного прогона: проверка окружения → очистка прошлых артефактов →
наборы (последовательно или пакетами) → агрегация → отчёты → архив.
``execution-summary.json`` пишется всегда, в том числе при ошибке прогона.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from pydantic import ValidationError

from vigil.clients.base import ApplicationProbe
from vigil.config import Settings
from vigil.exceptions import EnvironmentValidationError
from vigil.execution.events import EventBus, EventKind
from vigil.execution.janitor import EnvironmentJanitor
from vigil.execution.layout import OutputLayout, run_stamp
from vigil.execution.output_parser import SuiteOutputParser, count_errors, count_warnings
from vigil.execution.suites import (
    build_command,
    build_environment,
    resolve_suites,
    suite_path,
    suite_timeout,
)
from vigil.execution.supervisor import ProcessOutcome, SupervisedProcess
from vigil.models.common import OrchestrationStatus, Severity, SuiteStatus
from vigil.models.errors import DetectedError
from vigil.models.results import (
    ComprehensiveTestResults,
    ErrorCounts,
    ExecutionErrorReport,
    ExecutionSummary,
    RunSummary,
    SuiteCounts,
)
from vigil.models.suite import ErrorDetails, ProgressReport, TestExecutionResult, TestSuiteInfo
from vigil.report.base import ReportRenderer
from vigil.services.aggregation_service import (
    ResultAggregator,
    dedupe_errors,
    errors_by_role,
    save_aggregated_results,
    summarize_suites,
)

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]

_LAST_OUTPUT_LINES = 10
_SLOW_SUITE_SECONDS = 180.0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def plan_batches(suites: list[TestSuiteInfo], size: int) -> list[list[TestSuiteInfo]]:
    """Разбить наборы на пакеты фиксированного размера в исходном порядке."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [suites[i:i + size] for i in range(0, len(suites), size)]


def classify_outcome(outcome: ProcessOutcome) -> SuiteStatus:
    """Статус набора по итогу процесса.

    Остановленный по отмене процесс — ``skipped``: набор не был доведён
    до конца, но и не упал сам.
    """
    if outcome.cancelled:
        return SuiteStatus.SKIPPED
    if outcome.timed_out:
        return SuiteStatus.TIMEOUT
    if outcome.exit_code == 0:
        return SuiteStatus.PASSED
    return SuiteStatus.FAILED


def critical_issues(results: list[TestExecutionResult]) -> list[str]:
    return [
        f"{r.suite_name}: {r.errors} errors detected"
        for r in results
        if r.status is SuiteStatus.FAILED and r.errors > 0
    ]


def build_recommendations(
    results: list[TestExecutionResult],
    role_errors: dict[str, int],
) -> list[str]:
    """Рекомендации по итогам прогона (падения, проблемная роль, скорость)."""
    recommendations: list[str] = []

    failed = sum(1 for r in results if r.status is SuiteStatus.FAILED)
    if failed > 0:
        recommendations.append(
            f"{failed} test suite(s) failed. Review error details and fix critical issues first."
        )

    if role_errors:
        role, count = max(role_errors.items(), key=lambda item: item[1])
        if count > 0:
            recommendations.append(f"Focus on {role} role issues - {count} errors detected.")

    if results:
        average = sum(r.duration for r in results) / len(results)
        if average > _SLOW_SUITE_SECONDS:
            recommendations.append(
                "Consider optimizing test performance - average suite duration exceeds 3 minutes."
            )

    return recommendations


def load_error_reports(directory: Path) -> list[DetectedError]:
    """Прочитать ошибки наблюдателя из ``error-reports/*.json``.

    Файл содержит список ошибок или объект ``{"errors": [...]}``. Битые
    файлы пропускаются с предупреждением. Повторы по id отбрасываются,
    остаётся первое вхождение (файлы читаются в порядке имён).
    """
    if not directory.is_dir():
        return []

    errors: list[DetectedError] = []
    files = sorted(directory.glob("*.json"))
    for path in files:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            items = data.get("errors", []) if isinstance(data, dict) else data
            if not isinstance(items, list):
                raise ValueError("expected a list of errors")
            batch = [DetectedError.model_validate(item) for item in items]
            errors.extend(batch)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Пропущен отчёт об ошибках %s: %s", path.name, exc)

    unique = dedupe_errors(errors)
    logger.info(
        "Загружено ошибок наблюдателя: %d (файлов: %d)",
        len(unique), len(files),
    )
    return unique


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SuiteOrchestrator:
    """Запуск ролевых наборов e2e-тестов в изоляции друг от друга.

    Состояния: ``idle → running → {completed | failed | cancelled}``.
    Один набор не может уронить прогон: любое исключение при запуске
    превращается в синтетический ``failed``-результат.

    Args:
        settings: Настройки прогона.
        suites: Наборы прогона; по умолчанию манифест или встроенный каталог.
        probe: Проверка доступности приложения; по умолчанию HTTP-проба.
        janitor: Очистка окружения; по умолчанию по ``settings``.
        aggregator: Сводка результатов.
        renderer: Рендерер отчётов; по умолчанию HTML + CSV.
        events: Шина событий прогона.
        sleep: Функция ожидания (для тестов).
    """

    def __init__(
        self,
        settings: Settings,
        *,
        suites: list[TestSuiteInfo] | None = None,
        probe: ApplicationProbe | None = None,
        janitor: EnvironmentJanitor | None = None,
        aggregator: ResultAggregator | None = None,
        renderer: ReportRenderer | None = None,
        events: EventBus | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._layout = OutputLayout.from_dir(settings.output_dir)
        self._suites = list(suites) if suites is not None else resolve_suites(settings)

        self._owns_probe = probe is None
        if probe is None:
            from vigil.clients.app_probe import HttpApplicationProbe

            probe = HttpApplicationProbe.from_settings(settings)
        self._probe = probe

        if renderer is None:
            from vigil.report.renderer import FileReportRenderer

            renderer = FileReportRenderer()
        self._renderer = renderer

        self._janitor = janitor or EnvironmentJanitor.from_settings(settings, self._layout)
        self._aggregator = aggregator or ResultAggregator()
        self.events = events or EventBus()
        self._sleep = sleep

        self._status = OrchestrationStatus.IDLE
        self._cancelled = False
        self._results: list[TestExecutionResult] = []
        self._active: dict[str, SupervisedProcess] = {}
        self._running: list[str] = []
        self._started_at: float | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def status(self) -> OrchestrationStatus:
        return self._status

    @property
    def layout(self) -> OutputLayout:
        return self._layout

    def get_test_suites(self) -> list[TestSuiteInfo]:
        return list(self._suites)

    def get_current_results(self) -> list[TestExecutionResult]:
        return list(self._results)

    def get_status(self) -> ProgressReport:
        """Снимок прогресса. ETA = среднее время набора × оставшиеся наборы."""
        total = len(self._suites)
        completed = len(self._results)
        eta: float | None = None
        if self._started_at is not None and 0 < completed:
            elapsed = time.monotonic() - self._started_at
            eta = elapsed / completed * max(total - completed, 0)

        return ProgressReport(
            total_suites=total,
            completed_suites=completed,
            failed_suites=sum(1 for r in self._results if r.status is SuiteStatus.FAILED),
            current_suite=self._running[-1] if self._running else None,
            active_suites=list(self._running),
            percent_complete=round(completed / total * 100, 1) if total else 100.0,
            estimated_time_remaining=eta,
            total_errors=sum(r.errors for r in self._results),
            total_warnings=sum(r.warnings for r in self._results),
            status=self._status,
        )

    def cancel(self) -> None:
        """Отменить прогон: остановить активные процессы, новые не запускать.

        Повторный вызов ничего не делает.
        """
        if self._status is OrchestrationStatus.CANCELLED:
            return

        logger.warning("Прогон отменён: останавливаю активные наборы (%d)", len(self._active))
        self._cancelled = True
        self._status = OrchestrationStatus.CANCELLED
        for process in list(self._active.values()):
            process.request_termination()
        self.events.emit(EventKind.CANCELLED, payload=self.get_status())

    async def execute_all_tests(self) -> ComprehensiveTestResults:
        """Выполнить все наборы и собрать результаты.

        Returns:
            ComprehensiveTestResults со сводкой, результатами наборов,
            агрегатом и путями отчётов.

        Raises:
            EnvironmentValidationError: Приложение недоступно или нет файлов наборов.
            VigilError: Прочие ошибки уровня прогона (после записи отчёта об ошибке).
        """
        if self._status is OrchestrationStatus.RUNNING:
            raise RuntimeError("Test execution is already running")

        self._cancelled = False
        self._results = []
        self._running = []
        self._status = OrchestrationStatus.RUNNING
        self._started_at = time.monotonic()
        stamp = run_stamp()

        estimated = sum(suite.estimated_duration for suite in self._suites)
        logger.info(
            "Старт прогона: %d наборов, режим=%s, ожидаемая длительность %.0f сек",
            len(self._suites), "parallel" if self._settings.parallel else "sequential", estimated,
        )
        self.events.emit(
            EventKind.STARTED,
            payload={"total_suites": len(self._suites), "estimated_duration": estimated},
        )

        try:
            # 1. Проверка и подготовка окружения
            await self._prepare()

            # 2. Наборы
            if self._settings.parallel:
                await self._run_parallel()
            else:
                await self._run_sequential()

            # 3. Агрегация, отчёты, архив
            results = await self._finalize(stamp)
        except Exception as exc:
            self._status = OrchestrationStatus.FAILED
            logger.error("Прогон прерван ошибкой: %s", exc)
            self._write_execution_error(exc)
            self._write_execution_summary(self._summary(), errors_by_role(self._results), [], [])
            self.events.emit(EventKind.ERROR, payload=exc)
            raise
        finally:
            self._running = []
            if self._owns_probe:
                await self._probe.close()

        if not self._cancelled:
            self._status = OrchestrationStatus.COMPLETED
            self.events.emit(EventKind.COMPLETED, payload=results)

        logger.info(
            "Прогон завершён (%s): passed=%d, failed=%d, timeout=%d, skipped=%d",
            self._status.value,
            results.summary.passed_suites, results.summary.failed_suites,
            results.summary.timeout_suites, results.summary.skipped_suites,
        )
        return results

    # ------------------------------------------------------------------
    # Preparation
    # ------------------------------------------------------------------

    async def _prepare(self) -> None:
        problems: list[str] = []

        if not await self._probe.is_reachable():
            problems.append(f"Application is not reachable at {self._settings.base_url}")

        tests_dir = Path(self._settings.tests_dir)
        if not tests_dir.is_dir():
            problems.append(f"Tests directory not found: {tests_dir}")
        else:
            for suite in self._suites:
                path = suite_path(self._settings, suite)
                if not path.is_file():
                    problems.append(f"Suite file not found: {path}")

        if problems:
            for problem in problems:
                logger.error("Окружение не готово: %s", problem)
            raise EnvironmentValidationError(problems)

        removed = self._janitor.clean_previous_run()
        self._janitor.ensure_directories()
        logger.info("Окружение готово, удалено артефактов прошлого прогона: %d", removed)

    async def _check_health(self) -> None:
        if not await self._probe.check_health():
            logger.warning("Health-check приложения не прошёл, продолжаю прогон")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run_sequential(self) -> None:
        last = len(self._suites) - 1
        for index, suite in enumerate(self._suites):
            if self._cancelled:
                break

            await self._janitor.cleanup_between_suites()
            await self._check_health()

            if self._cancelled:
                break

            result = await self._execute_suite(suite)
            if result is None:
                break
            if result.status in (SuiteStatus.FAILED, SuiteStatus.TIMEOUT) and not self._cancelled:
                await self._janitor.recover()

            if index < last and not self._cancelled:
                logger.debug("Пауза между наборами: %.1f сек", self._settings.inter_suite_delay)
                await self._sleep(self._settings.inter_suite_delay)

    async def _run_parallel(self) -> None:
        batches = plan_batches(self._suites, self._settings.max_concurrency)
        logger.info(
            "Параллельный режим: %d пакетов по %d",
            len(batches), self._settings.max_concurrency,
        )
        last = len(batches) - 1
        for index, batch in enumerate(batches):
            if self._cancelled:
                break

            await self._janitor.cleanup_between_suites()
            await self._check_health()

            if self._cancelled:
                break

            outcomes = await asyncio.gather(*(self._execute_suite(suite) for suite in batch))
            results = [r for r in outcomes if r is not None]
            failed = any(
                r.status in (SuiteStatus.FAILED, SuiteStatus.TIMEOUT) for r in results
            )
            if failed and not self._cancelled:
                await self._janitor.recover()

            if index < last and not self._cancelled:
                await self._sleep(self._settings.inter_suite_delay)

    async def _execute_suite(self, suite: TestSuiteInfo) -> TestExecutionResult | None:
        """Запустить набор с повторами; исключения не выходят наружу.

        После отмены набор не запускается и не попадает в результаты (None).
        """
        if self._cancelled:
            return None

        self._running.append(suite.name)
        try:
            return await self._execute_with_retries(suite)
        finally:
            self._running.remove(suite.name)

    async def _execute_with_retries(self, suite: TestSuiteInfo) -> TestExecutionResult:
        self.events.emit(EventKind.SUITE_STARTED, suite=suite.name, payload=suite)
        logger.info("Набор '%s' (роль %s): старт", suite.name, suite.role)

        max_attempts = self._settings.suite_retries + 1
        attempt = 0
        while True:
            attempt += 1
            started = _now()
            try:
                result = await self._run_suite_once(suite, attempt)
            except Exception as exc:
                logger.error("Набор '%s': ошибка запуска: %s", suite.name, exc)
                result = self._synthetic_failure(suite, started, exc, attempt)

            if (
                result.status is SuiteStatus.FAILED
                and attempt < max_attempts
                and not self._cancelled
            ):
                logger.warning(
                    "Набор '%s' упал, повтор %d/%d",
                    suite.name, attempt, self._settings.suite_retries,
                )
                continue
            break

        self._record(result)
        return result

    async def _run_suite_once(self, suite: TestSuiteInfo, attempt: int) -> TestExecutionResult:
        if self._cancelled:
            # отмена из обработчика suite_started: процесс не запускаем
            logger.info("Набор '%s' пропущен: прогон отменён", suite.name)
            now = _now()
            return TestExecutionResult(
                suite_name=suite.name,
                role=suite.role,
                status=SuiteStatus.SKIPPED,
                start_time=now,
                end_time=now,
                duration=0.0,
                attempts=attempt,
            )

        settings = self._settings
        parser = SuiteOutputParser()

        def on_stdout(line: str) -> None:
            if settings.verbose:
                logger.info("[%s] %s", suite.name, line)
            for signal in parser.feed_stdout(line):
                self.events.emit(signal.kind, suite=suite.name, payload=signal)

        def on_stderr(line: str) -> None:
            if settings.verbose:
                logger.warning("[%s] %s", suite.name, line)
            for signal in parser.feed_stderr(line):
                self.events.emit(signal.kind, suite=suite.name, payload=signal)

        process = SupervisedProcess(
            build_command(settings, suite),
            timeout=suite_timeout(settings, suite),
            grace_period=settings.kill_grace_period,
            env=build_environment(settings, suite, self._layout),
            on_stdout=on_stdout,
            on_stderr=on_stderr,
            name=suite.name,
        )

        started = _now()
        self._active[suite.name] = process
        try:
            outcome = await process.run()
        finally:
            self._active.pop(suite.name, None)
        ended = _now()

        status = classify_outcome(outcome)
        output = outcome.stdout
        if outcome.stderr:
            output = f"{output}\n{outcome.stderr}" if output else outcome.stderr

        details = None
        if status is not SuiteStatus.PASSED:
            details = ErrorDetails(
                exit_code=outcome.exit_code,
                signal=outcome.signal,
                stderr=outcome.stderr or None,
                test_progress=parser.progress,
                last_output=outcome.tail(_LAST_OUTPUT_LINES),
            )

        return TestExecutionResult(
            suite_name=suite.name,
            role=suite.role,
            status=status,
            start_time=started,
            end_time=ended,
            duration=round(outcome.duration, 3),
            errors=count_errors(output),
            warnings=count_warnings(output),
            output=output,
            error_details=details,
            attempts=attempt,
        )

    def _synthetic_failure(
        self,
        suite: TestSuiteInfo,
        started: datetime,
        exc: Exception,
        attempt: int,
    ) -> TestExecutionResult:
        ended = _now()
        return TestExecutionResult(
            suite_name=suite.name,
            role=suite.role,
            status=SuiteStatus.FAILED,
            start_time=started,
            end_time=ended,
            duration=max((ended - started).total_seconds(), 0.0),
            errors=1,
            warnings=0,
            output="",
            error_details=ErrorDetails(
                error=str(exc),
                stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                timestamp=ended,
            ),
            attempts=attempt,
        )

    def _record(self, result: TestExecutionResult) -> None:
        self._results.append(result)
        logger.info(
            "Набор '%s': %s за %.1f сек (ошибок: %d, предупреждений: %d)",
            result.suite_name, result.status.value, result.duration,
            result.errors, result.warnings,
        )
        self.events.emit(EventKind.SUITE_COMPLETED, suite=result.suite_name, payload=result)
        self.events.emit(EventKind.PROGRESS, payload=self.get_status())

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _summary(self) -> RunSummary:
        return summarize_suites(self._results, len(self._suites))

    async def _finalize(self, stamp: str) -> ComprehensiveTestResults:
        results = list(self._results)
        summary = self._summary()
        role_errors = errors_by_role(results)
        detected = load_error_reports(self._layout.error_reports)

        aggregated = self._aggregator.aggregate(
            results, detected, summary=summary, role_errors=role_errors,
        )

        report_paths: list[str] = []
        saved = save_aggregated_results(aggregated, self._layout.aggregated_results(stamp))
        if saved is not None:
            report_paths.append(str(saved))

        try:
            rendered = self._renderer.render(aggregated, self._layout.root)
        except Exception as exc:
            logger.error("Не удалось сформировать отчёты: %s", exc)
        else:
            report_paths.extend(str(path) for path in rendered)

        issues = critical_issues(results)
        recommendations = build_recommendations(results, role_errors)

        archive = await self._janitor.final_cleanup(stamp)
        if archive is not None:
            report_paths.append(str(archive))

        self._write_execution_summary(summary, role_errors, recommendations, report_paths, detected)

        return ComprehensiveTestResults(
            summary=summary,
            suite_results=results,
            errors_by_role=role_errors,
            critical_issues=issues,
            recommendations=recommendations,
            report_paths=report_paths,
            detected_errors=detected,
            aggregated_results=aggregated,
        )

    def _configuration(self) -> dict:
        settings = self._settings
        return {
            "baseUrl": settings.base_url,
            "parallel": settings.parallel,
            "maxConcurrency": settings.max_concurrency,
            "headless": settings.headless,
            "suiteTimeout": settings.suite_timeout,
            "suiteRetries": settings.suite_retries,
            "outputDir": settings.output_dir,
        }

    def _elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return round(time.monotonic() - self._started_at, 3)

    def _write_execution_summary(
        self,
        summary: RunSummary,
        role_errors: dict[str, int],
        recommendations: list[str],
        report_paths: list[str],
        detected: list[DetectedError] | None = None,
    ) -> None:
        status = self._status
        if status is OrchestrationStatus.RUNNING:
            status = OrchestrationStatus.COMPLETED
        document = ExecutionSummary(
            timestamp=_now(),
            status=status.value,
            duration=self._elapsed(),
            configuration=self._configuration(),
            results=SuiteCounts(
                total=summary.total_suites,
                passed=summary.passed_suites,
                failed=summary.failed_suites,
                skipped=summary.skipped_suites,
                timeout=summary.timeout_suites,
            ),
            errors=ErrorCounts(
                total=summary.total_errors,
                by_role=role_errors,
                critical=sum(1 for e in detected or [] if e.severity is Severity.CRITICAL),
            ),
            recommendations=recommendations,
            report_paths=report_paths,
        )
        self._write_json(self._layout.execution_summary, document.model_dump_json(by_alias=True, indent=2))

    def _write_execution_error(self, exc: Exception) -> None:
        document = ExecutionErrorReport(
            timestamp=_now(),
            error=str(exc),
            error_type=type(exc).__name__,
            stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            problems=getattr(exc, "problems", []),
            completed_suites=len(self._results),
            total_suites=len(self._suites),
            configuration=self._configuration(),
        )
        self._write_json(self._layout.execution_error, document.model_dump_json(by_alias=True, indent=2))

    def _write_json(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            logger.error("Не удалось записать %s: %s", path, exc)
        else:
            logger.info("Записан %s", path)
