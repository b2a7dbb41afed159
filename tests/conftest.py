"""Общие фабрики и фикстуры для тестов vigil."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

from vigil.config import Settings
from vigil.models.common import ErrorType, Severity, SuiteStatus
from vigil.models.errors import DetectedError
from vigil.models.results import RunSummary
from vigil.models.suite import TestExecutionResult, TestSuiteInfo

BASE_TIME = datetime(2026, 1, 31, 10, 15, 0, tzinfo=timezone.utc)

_error_counter = 0


def make_detected_error(**overrides) -> DetectedError:
    """Фабрика DetectedError с разумными дефолтами и уникальным id."""
    global _error_counter
    _error_counter += 1
    defaults: dict = {
        "id": f"error-{_error_counter}",
        "type": ErrorType.RUNTIME,
        "severity": Severity.MEDIUM,
        "message": "Something went wrong",
        "url": "http://localhost:3000/dashboard",
        "user_role": "developer",
        "mock_user": "dev-user-1",
        "timestamp": BASE_TIME,
    }
    defaults.update(overrides)
    return DetectedError.model_validate(defaults)


def make_suite_info(**overrides) -> TestSuiteInfo:
    """Фабрика TestSuiteInfo с разумными дефолтами."""
    defaults: dict = {
        "name": "Developer Role Comprehensive Tests",
        "role": "developer",
        "file": "developer_suite.py",
        "estimated_duration": 0.0,
    }
    defaults.update(overrides)
    return TestSuiteInfo.model_validate(defaults)


def make_suite_result(**overrides) -> TestExecutionResult:
    """Фабрика TestExecutionResult (успешный набор по умолчанию)."""
    duration = overrides.pop("duration", 12.5)
    defaults: dict = {
        "suite_name": "Developer Role Comprehensive Tests",
        "role": "developer",
        "status": SuiteStatus.PASSED,
        "start_time": BASE_TIME,
        "end_time": BASE_TIME + timedelta(seconds=duration),
        "duration": duration,
    }
    defaults.update(overrides)
    return TestExecutionResult.model_validate(defaults)


def make_run_summary(**overrides) -> RunSummary:
    """Фабрика RunSummary: четыре успешных набора без ошибок."""
    defaults: dict = {
        "total_suites": 4,
        "passed_suites": 4,
        "total_duration": 120.0,
    }
    defaults.update(overrides)
    return RunSummary.model_validate(defaults)


def make_settings(tmp_path: Path, **overrides) -> Settings:
    """Settings для тестов оркестрации.

    Наборы — Python-скрипты в ``tmp_path/suites``, раннер — текущий
    интерпретатор, все паузы нулевые, имена браузеров заведомо не существуют.
    """
    tests_dir = tmp_path / "suites"
    tests_dir.mkdir(exist_ok=True)
    defaults: dict = {
        "base_url": "http://app.test",
        "tests_dir": str(tests_dir),
        "output_dir": str(tmp_path / "out"),
        "runner_command": [sys.executable],
        "suite_timeout": 30.0,
        "kill_grace_period": 2.0,
        "inter_suite_delay": 0.0,
        "recovery_delay": 0.0,
        "pre_suite_settle": 0.0,
        "cleanup_timeout": 1.0,
        "browser_process_names": ["vigil-no-such-browser"],
    }
    defaults.update(overrides)
    return Settings(**defaults)


def write_suite(settings: Settings, name: str, body: str) -> str:
    """Записать скрипт набора в ``tests_dir`` и вернуть имя файла."""
    path = Path(settings.tests_dir) / name
    path.write_text(body, encoding="utf-8")
    return name


class FakeProbe:
    """Проба приложения без сети: ответы задаются флагами."""

    def __init__(self, *, reachable: bool = True, healthy: bool = True) -> None:
        self.reachable = reachable
        self.healthy = healthy
        self.health_checks = 0
        self.closed = False

    async def is_reachable(self) -> bool:
        return self.reachable

    async def check_health(self) -> bool:
        self.health_checks += 1
        return self.healthy

    async def close(self) -> None:
        self.closed = True


class RecordingRenderer:
    """Рендерер, запоминающий переданный агрегат вместо записи файлов."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.rendered = []

    def render(self, results, output_dir: Path) -> list[Path]:
        if self.fail:
            raise OSError("disk full")
        self.rendered.append(results)
        return [output_dir / "report.html"]


class FakePage:
    """Минимальная замена playwright Page."""

    def __init__(
        self,
        *,
        url: str = "http://app.test/dashboard",
        evaluate_results: list | None = None,
        fail_screenshot: bool = False,
    ) -> None:
        self.url = url
        self.viewport_size = {"width": 1280, "height": 720}
        self.context = SimpleNamespace(browser=None)
        self.handlers: dict[str, object] = {}
        self.init_scripts: list[str] = []
        self.screenshots: list[str] = []
        self._evaluate_results = list(evaluate_results or [])
        self._fail_screenshot = fail_screenshot

    def on(self, event: str, handler) -> None:
        self.handlers[event] = handler

    def remove_listener(self, event: str, handler) -> None:
        self.handlers.pop(event, None)

    async def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    async def screenshot(self, path: str, full_page: bool = False) -> None:
        if self._fail_screenshot:
            raise RuntimeError("Target closed")
        self.screenshots.append(path)

    async def content(self) -> str:
        return "<html><body>dashboard</body></html>"

    async def evaluate(self, script: str):
        result = self._evaluate_results.pop(0) if self._evaluate_results else []
        if isinstance(result, Exception):
            raise result
        return result
