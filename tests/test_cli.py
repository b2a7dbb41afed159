"""Тесты CLI: флаги, переопределения настроек, коды выхода, рамочный вывод."""

from __future__ import annotations

import pytest
from conftest import make_run_summary

import vigil.logging_config
import vigil.orchestrator
from vigil.cli import (
    EXIT_CANCELLED,
    EXIT_CONFIG,
    EXIT_FAILED,
    EXIT_OK,
    _render_box,
    _summary_lines,
    async_main,
    build_parser,
    main,
    settings_overrides,
)
from vigil.exceptions import EnvironmentValidationError, ManifestError
from vigil.models.common import OrchestrationStatus
from vigil.models.results import ComprehensiveTestResults


def _results(**summary_overrides) -> ComprehensiveTestResults:
    return ComprehensiveTestResults(
        summary=make_run_summary(**summary_overrides),
        suite_results=[],
        critical_issues=["Manager Suite: 2 errors detected"],
        recommendations=["Focus on manager role issues - 2 errors detected."],
        report_paths=["out/comprehensive-report.html"],
    )


class _FakeOrchestrator:
    """Оркестратор без наборов: отдаёт заранее заданный итог."""

    outcome: object = None
    final_status = OrchestrationStatus.COMPLETED
    created: list = []

    def __init__(self, settings) -> None:
        self.settings = settings
        self.status = OrchestrationStatus.IDLE
        self.cancelled = False
        _FakeOrchestrator.created.append(self)

    def cancel(self) -> None:
        self.cancelled = True

    async def execute_all_tests(self) -> ComprehensiveTestResults:
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        self.status = self.final_status
        return self.outcome


@pytest.fixture
def fake_orchestrator(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)  # изоляция от .env в корне проекта
    monkeypatch.setattr(vigil.logging_config, "setup_logging", lambda level: None)
    monkeypatch.setattr(vigil.orchestrator, "SuiteOrchestrator", _FakeOrchestrator)
    _FakeOrchestrator.outcome = _results()
    _FakeOrchestrator.final_status = OrchestrationStatus.COMPLETED
    _FakeOrchestrator.created = []
    return _FakeOrchestrator


# ---------------------------------------------------------------------------
# Парсер и переопределения
# ---------------------------------------------------------------------------


def test_parser_defaults_leave_settings_untouched() -> None:
    args = build_parser().parse_args([])

    assert settings_overrides(args) == {}


def test_parser_flags_map_to_settings_fields() -> None:
    args = build_parser().parse_args([
        "--verbose", "--headed", "--parallel",
        "--base-url", "http://staging:8080",
        "--timeout", "120",
        "--output-dir", "/tmp/vigil-out",
        "--log-level", "DEBUG",
    ])

    assert settings_overrides(args) == {
        "verbose": True,
        "headless": False,
        "parallel": True,
        "base_url": "http://staging:8080",
        "suite_timeout": 120.0,
        "output_dir": "/tmp/vigil-out",
        "log_level": "DEBUG",
    }


def test_parser_rejects_unknown_log_level() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--log-level", "TRACE"])


# ---------------------------------------------------------------------------
# Вывод
# ---------------------------------------------------------------------------


def test_render_box_pads_lines_to_same_width() -> None:
    box = _render_box(["short", "a longer line"])

    assert box[0] == "╔" + "═" * 15 + "╗"
    assert box[1] == "║ short         ║"
    assert box[2] == "║ a longer line ║"
    assert box[-1] == "╚" + "═" * 15 + "╝"
    assert _render_box([]) == []


def test_summary_lines_include_issues_and_reports() -> None:
    lines = _summary_lines(_results(failed_suites=1, passed_suites=3))

    assert "Наборов: 4 | Успешно: 3 | Упало: 1 | Таймаут: 0 | Пропущено: 0" in lines
    assert "  - Manager Suite: 2 errors detected" in lines
    assert "  out/comprehensive-report.html" in lines


# ---------------------------------------------------------------------------
# Коды выхода
# ---------------------------------------------------------------------------


def _args(*argv: str):
    return build_parser().parse_args(list(argv))


@pytest.mark.asyncio
async def test_clean_run_exits_zero(fake_orchestrator, capsys) -> None:
    code = await async_main(_args("--base-url", "http://app.test"))

    assert code == EXIT_OK
    [orchestrator] = fake_orchestrator.created
    assert orchestrator.settings.base_url == "http://app.test"
    output = capsys.readouterr().out
    assert output.count("╔") == 1
    assert "vigil: итоги прогона" in output


@pytest.mark.asyncio
async def test_failed_suite_exits_one(fake_orchestrator) -> None:
    fake_orchestrator.outcome = _results(failed_suites=1, passed_suites=3)

    assert await async_main(_args()) == EXIT_FAILED


@pytest.mark.asyncio
async def test_timeout_only_run_exits_zero(fake_orchestrator) -> None:
    """Таймаут без упавших наборов прогон не проваливает."""
    fake_orchestrator.outcome = _results(timeout_suites=1, passed_suites=3)

    assert await async_main(_args()) == EXIT_OK


@pytest.mark.asyncio
async def test_cancelled_run_exits_130(fake_orchestrator) -> None:
    fake_orchestrator.final_status = OrchestrationStatus.CANCELLED

    assert await async_main(_args()) == EXIT_CANCELLED


@pytest.mark.asyncio
async def test_environment_error_exits_one(fake_orchestrator) -> None:
    fake_orchestrator.outcome = EnvironmentValidationError(["Application is not reachable"])

    assert await async_main(_args()) == EXIT_FAILED


@pytest.mark.asyncio
async def test_invalid_settings_exit_two(fake_orchestrator, capsys) -> None:
    code = await async_main(_args("--timeout", "-5"))

    assert code == EXIT_CONFIG
    assert "Ошибка конфигурации" in capsys.readouterr().err
    assert fake_orchestrator.created == []


@pytest.mark.asyncio
async def test_manifest_error_exits_two(fake_orchestrator, monkeypatch) -> None:
    def broken(settings):
        raise ManifestError("suites.yaml: no suites defined")

    monkeypatch.setattr(vigil.orchestrator, "SuiteOrchestrator", broken)

    assert await async_main(_args()) == EXIT_CONFIG


def test_main_exits_with_code(fake_orchestrator) -> None:
    fake_orchestrator.outcome = _results(failed_suites=1, passed_suites=3)

    with pytest.raises(SystemExit) as exc_info:
        main([])

    assert exc_info.value.code == EXIT_FAILED
