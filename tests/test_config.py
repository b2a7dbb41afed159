"""Тесты загрузки конфигурации Settings из переменных окружения."""

from __future__ import annotations

import sys

import pytest
from pydantic import ValidationError

from vigil.config import Settings


def test_settings_defaults_are_applied(monkeypatch, tmp_path) -> None:
    """Без переменных окружения все поля имеют дефолты."""
    monkeypatch.chdir(tmp_path)  # изоляция от .env в корне проекта

    settings = Settings()

    assert settings.base_url == "http://localhost:3000"
    assert settings.suite_timeout == 300.0
    assert settings.kill_grace_period == 5.0
    assert settings.suite_retries == 0
    assert settings.parallel is False
    assert settings.max_concurrency == 2
    assert settings.headless is True
    assert settings.inter_suite_delay == 3.0
    assert settings.recovery_delay == 5.0
    assert settings.health_path == "/api/health"
    assert settings.runner_command == [sys.executable, "-m", "pytest", "-v"]
    assert settings.suites_manifest is None
    assert settings.max_console_messages == 1000
    assert settings.max_network_requests == 500


def test_settings_loads_from_env_vars(monkeypatch, tmp_path) -> None:
    """Settings читает VIGIL_* переменные окружения."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VIGIL_BASE_URL", "https://staging.example.com")
    monkeypatch.setenv("VIGIL_SUITE_TIMEOUT", "120")
    monkeypatch.setenv("VIGIL_PARALLEL", "true")
    monkeypatch.setenv("VIGIL_BROWSER_PROCESS_NAMES", '["chrome"]')

    settings = Settings()

    assert settings.base_url == "https://staging.example.com"
    assert settings.suite_timeout == 120.0
    assert settings.parallel is True
    assert settings.browser_process_names == ["chrome"]


def test_settings_reads_dotenv_file(monkeypatch, tmp_path) -> None:
    """Значения из .env в рабочей директории подхватываются."""
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("VIGIL_OUTPUT_DIR=/tmp/vigil-out\n", encoding="utf-8")

    settings = Settings()

    assert settings.output_dir == "/tmp/vigil-out"


def test_kwargs_override_env(monkeypatch, tmp_path) -> None:
    """Явные аргументы (флаги CLI) приоритетнее окружения."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VIGIL_HEADLESS", "true")

    settings = Settings(headless=False)

    assert settings.headless is False


@pytest.mark.parametrize(
    "field, value",
    [
        ("suite_timeout", 0),
        ("kill_grace_period", -1),
        ("suite_retries", 6),
        ("max_concurrency", 0),
        ("max_console_messages", 0),
    ],
)
def test_settings_rejects_out_of_range_values(monkeypatch, tmp_path, field, value) -> None:
    """Значения вне допустимых границ → ValidationError."""
    monkeypatch.chdir(tmp_path)

    with pytest.raises(ValidationError):
        Settings(**{field: value})
