"""Тесты pytest-плагина: фикстура error_detector внутри процесса набора."""

from __future__ import annotations

import json

import pytest
from conftest import FakePage

from vigil.observer import pytest_plugin
from vigil.observer.pytest_plugin import observed_page


@pytest.fixture
def logging_sources(monkeypatch) -> list:
    sources: list = []

    def fake_setup_logging(level: str = "INFO", *, source=None) -> None:
        sources.append(source)

    monkeypatch.setattr(pytest_plugin, "setup_logging", fake_setup_logging)
    return sources


def _suite_env(tmp_path) -> dict[str, str]:
    return {
        "VIGIL_SUITE_NAME": "Manager Role Comprehensive Tests",
        "VIGIL_SUITE_ROLE": "manager",
        "VIGIL_ERROR_REPORTS_DIR": str(tmp_path / "error-reports"),
    }


@pytest.mark.asyncio
async def test_observed_page_attaches_and_saves_report(tmp_path, logging_sources) -> None:
    page = FakePage()

    async with observed_page(page, _suite_env(tmp_path)) as detector:
        assert "pageerror" in page.handlers
        assert len(page.init_scripts) == 1
        await detector.handle_page_error(RuntimeError("Cannot read properties of undefined"))

    assert page.handlers == {}
    assert logging_sources == ["Manager Role Comprehensive Tests"]
    [report] = (tmp_path / "error-reports").glob("errors-manager-*.json")
    [error] = json.loads(report.read_text(encoding="utf-8"))["errors"]
    assert error["userRole"] == "manager"
    assert error["mockUser"] == "mock-manager"


@pytest.mark.asyncio
async def test_observed_page_saves_report_when_test_fails(tmp_path, logging_sources) -> None:
    """Упавший тест не теряет собранные ошибки."""
    page = FakePage()

    with pytest.raises(AssertionError):
        async with observed_page(page, _suite_env(tmp_path)):
            raise AssertionError("dashboard did not load")

    assert len(list((tmp_path / "error-reports").glob("*.json"))) == 1


@pytest.mark.asyncio
async def test_observed_page_without_reports_dir_writes_nothing(tmp_path, logging_sources) -> None:
    page = FakePage()
    env = {"VIGIL_SUITE_ROLE": "developer", "VIGIL_MOCK_USER": "dev-user-1"}

    async with observed_page(page, env) as detector:
        detector.add_reproduction_step("open dashboard")

    assert list(tmp_path.iterdir()) == []
    assert logging_sources == [None]


def test_error_detector_fixture_in_suite_process(pytester, monkeypatch, tmp_path) -> None:
    """Фикстура доступна наборам без импорта: плагин подключается через entry point."""
    reports = tmp_path / "suite-reports"
    monkeypatch.setenv("VIGIL_SUITE_NAME", "Developer Role Comprehensive Tests")
    monkeypatch.setenv("VIGIL_SUITE_ROLE", "developer")
    monkeypatch.setenv("VIGIL_ERROR_REPORTS_DIR", str(reports))
    pytester.makeconftest(
        """
        import pytest

        class Page:
            url = "http://app.test/"

            def __init__(self):
                self.handlers = {}

            def on(self, event, handler):
                self.handlers[event] = handler

            def remove_listener(self, event, handler):
                self.handlers.pop(event, None)

            async def add_init_script(self, script):
                pass

        @pytest.fixture
        def page():
            return Page()
        """
    )
    pytester.makepyfile(
        """
        import pytest

        @pytest.mark.asyncio(loop_scope="session")
        async def test_dashboard(page, error_detector):
            assert "pageerror" in page.handlers
        """
    )

    result = pytester.runpytest_subprocess()

    result.assert_outcomes(passed=1)
    assert len(list(reports.glob("errors-developer-*.json"))) == 1
