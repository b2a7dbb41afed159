"""Каталог наборов тестов и сборка команды запуска.

По умолчанию используется встроенный каталог из четырёх ролевых наборов.
YAML-манифест (``VIGIL_SUITES_MANIFEST``) полностью заменяет каталог::

    suites:
      - name: Developer Role Comprehensive Tests
        role: developer
        file: test_developer_role.py
        estimated_duration: 120
        args: ["--browser", "chromium"]
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from vigil.config import Settings
from vigil.exceptions import ManifestError
from vigil.execution.layout import OutputLayout
from vigil.models.suite import TestSuiteInfo

logger = logging.getLogger(__name__)


DEFAULT_SUITES: tuple[TestSuiteInfo, ...] = (
    TestSuiteInfo(
        name="Developer Role Comprehensive Tests",
        role="developer",
        file="test_developer_role.py",
        description="Функции разработчика, навигация и права доступа",
        estimated_duration=120.0,
    ),
    TestSuiteInfo(
        name="Team Lead Role Comprehensive Tests",
        role="team-lead",
        file="test_team_lead_role.py",
        description="Управление командой, аналитика и права тимлида",
        estimated_duration=180.0,
    ),
    TestSuiteInfo(
        name="Manager Role Comprehensive Tests",
        role="manager",
        file="test_manager_role.py",
        description="Администрирование, системные настройки и права менеджера",
        estimated_duration=150.0,
    ),
    TestSuiteInfo(
        name="Cross-Role Comprehensive Tests",
        role="cross-role",
        file="test_cross_role.py",
        description="Переключение ролей, границы прав и общие компоненты",
        estimated_duration=90.0,
    ),
)


def load_manifest(path: str | Path) -> list[TestSuiteInfo]:
    """Загрузить список наборов из YAML-манифеста.

    Файл содержит либо список наборов, либо словарь с ключом ``suites``.

    Raises:
        ManifestError: Файл не читается, не является YAML, пуст или
            содержит невалидное описание набора / повторяющиеся имена.
    """
    manifest = Path(path)
    try:
        with open(manifest, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ManifestError(f"Cannot read suite manifest {manifest}: {exc}") from exc

    items = data.get("suites") if isinstance(data, dict) else data
    if not isinstance(items, list) or not items:
        raise ManifestError(f"Suite manifest {manifest} declares no suites")

    suites: list[TestSuiteInfo] = []
    seen: set[str] = set()
    for index, item in enumerate(items):
        try:
            suite = TestSuiteInfo.model_validate(item)
        except ValidationError as exc:
            raise ManifestError(
                f"Invalid suite #{index + 1} in {manifest}: {exc}"
            ) from exc
        if suite.name in seen:
            raise ManifestError(f"Duplicate suite name {suite.name!r} in {manifest}")
        seen.add(suite.name)
        suites.append(suite)

    logger.info("Загружено наборов из манифеста %s: %d", manifest, len(suites))
    return suites


def resolve_suites(settings: Settings) -> list[TestSuiteInfo]:
    """Наборы прогона: манифест, если задан, иначе встроенный каталог."""
    if settings.suites_manifest:
        return load_manifest(settings.suites_manifest)
    return list(DEFAULT_SUITES)


def suite_path(settings: Settings, suite: TestSuiteInfo) -> Path:
    return Path(settings.tests_dir) / suite.file


def build_command(settings: Settings, suite: TestSuiteInfo) -> list[str]:
    """Команда запуска набора: ``runner_command + args набора + путь к файлу``."""
    command = [*settings.runner_command, *suite.args, str(suite_path(settings, suite))]
    if not settings.headless:
        command.append("--headed")
    return command


def build_environment(
    settings: Settings,
    suite: TestSuiteInfo,
    layout: OutputLayout,
    base_env: dict[str, str] | None = None,
) -> dict[str, str]:
    """Окружение дочернего процесса: наследуемое + контекст набора."""
    env = dict(os.environ if base_env is None else base_env)
    env.update({
        "VIGIL_SUITE_NAME": suite.name,
        "VIGIL_SUITE_ROLE": suite.role,
        "VIGIL_BASE_URL": settings.base_url,
        "VIGIL_ERROR_REPORTS_DIR": str(layout.error_reports.resolve()),
        "VIGIL_ARTIFACTS_DIR": str(layout.artifacts.resolve()),
        "CI": "true",
    })
    return env


def suite_timeout(settings: Settings, suite: TestSuiteInfo) -> float:
    return suite.timeout if suite.timeout is not None else settings.suite_timeout
