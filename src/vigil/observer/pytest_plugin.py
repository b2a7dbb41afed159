"""pytest-плагин для процессов наборов: наблюдатель ошибок на каждой странице.

Регистрируется через entry point ``pytest11``, поэтому доступен в любом
наборе, запущенном оркестратором (``python -m pytest -v <файл набора>``).
Страницу даёт фикстура ``page`` из pytest-playwright-asyncio::

    @pytest.mark.asyncio(loop_scope="session")
    async def test_dashboard(page, error_detector):
        await page.goto(base_url)
        await error_detector.detect_rendering_issues()

Контекст набора берётся из окружения, которое выставляет оркестратор:
``VIGIL_SUITE_NAME``, ``VIGIL_SUITE_ROLE``, ``VIGIL_ERROR_REPORTS_DIR``.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import pytest_asyncio

from vigil.logging_config import setup_logging
from vigil.observer.detector import ErrorDetector

logger = logging.getLogger(__name__)

ROLE_ENV_VAR = "VIGIL_SUITE_ROLE"
MOCK_USER_ENV_VAR = "VIGIL_MOCK_USER"
REPORTS_ENV_VAR = "VIGIL_ERROR_REPORTS_DIR"
SUITE_ENV_VAR = "VIGIL_SUITE_NAME"


@asynccontextmanager
async def observed_page(
    page: Any,
    environ: Mapping[str, str] | None = None,
) -> AsyncIterator[ErrorDetector]:
    """Подключить детектор к странице на время теста.

    На выходе детектор отписывается от страницы и пишет накопленные ошибки
    в ``VIGIL_ERROR_REPORTS_DIR``, даже если тест упал.
    """
    env = os.environ if environ is None else environ
    role = env.get(ROLE_ENV_VAR, "unknown")
    setup_logging(source=env.get(SUITE_ENV_VAR))

    detector = ErrorDetector(reports_dir=env.get(REPORTS_ENV_VAR))
    await detector.attach(page)
    detector.set_context(role, env.get(MOCK_USER_ENV_VAR, f"mock-{role}"))
    try:
        yield detector
    finally:
        detector.detach()
        if env.get(REPORTS_ENV_VAR):
            detector.save_report()
        else:
            logger.debug("VIGIL_ERROR_REPORTS_DIR не задан, отчёт не пишется")


@pytest_asyncio.fixture(loop_scope="session")
async def error_detector(page: Any) -> AsyncIterator[ErrorDetector]:
    """Детектор ошибок, подключённый к ``page`` текущего теста."""
    async with observed_page(page) as detector:
        yield detector
