"""Очистка окружения между наборами.

Браузеры и временные файлы — единственные ресурсы, общие для наборов.
Очистка выполняется безусловно перед каждым набором: ни один набор не
может рассчитывать, что предшественник оставил окружение чистым.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Awaitable, Callable

import psutil

from vigil.config import Settings
from vigil.execution.layout import SENTINEL_NAME, OutputLayout

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class EnvironmentJanitor:
    """Убивает зависшие браузеры и чистит временные файлы прогона."""

    def __init__(
        self,
        layout: OutputLayout,
        *,
        browser_names: list[str],
        cleanup_timeout: float = 5.0,
        settle_delay: float = 2.0,
        recovery_delay: float = 5.0,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._layout = layout
        self._browser_names = [name.lower() for name in browser_names if name]
        self._cleanup_timeout = cleanup_timeout
        self._settle_delay = settle_delay
        self._recovery_delay = recovery_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, layout: OutputLayout) -> EnvironmentJanitor:
        return cls(
            layout,
            browser_names=settings.browser_process_names,
            cleanup_timeout=settings.cleanup_timeout,
            settle_delay=settings.pre_suite_settle,
            recovery_delay=settings.recovery_delay,
        )

    # ------------------------------------------------------------------
    # Процессы
    # ------------------------------------------------------------------

    async def kill_stray_browsers(self) -> int:
        """Завершить процессы браузеров по имени. Возвращает число найденных процессов."""
        if not self._browser_names:
            return 0
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._kill_by_name),
                timeout=self._cleanup_timeout + 1.0,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Завершение браузеров не уложилось в %.1f с", self._cleanup_timeout,
            )
            return 0

    def _kill_by_name(self) -> int:
        own_pid = os.getpid()
        targets: list[psutil.Process] = []
        for proc in psutil.process_iter(["pid", "name"]):
            name = (proc.info.get("name") or "").lower()
            if proc.pid == own_pid or not name:
                continue
            if any(browser in name for browser in self._browser_names):
                targets.append(proc)

        if not targets:
            return 0

        for proc in targets:
            try:
                proc.terminate()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

        _, alive = psutil.wait_procs(targets, timeout=self._cleanup_timeout)
        for proc in alive:
            try:
                proc.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass

        logger.info(
            "Завершено процессов браузеров: %d (принудительно: %d)", len(targets), len(alive),
        )
        return len(targets)

    # ------------------------------------------------------------------
    # Файлы
    # ------------------------------------------------------------------

    def clear_transient_files(self) -> int:
        """Удалить lock-файлы раннера. Отсутствующие файлы не считаются ошибкой."""
        removed = 0
        for path in self._layout.lock_files:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Не удалось удалить %s: %s", path, exc)
        return removed

    def ensure_directories(self) -> None:
        self._layout.artifacts.mkdir(parents=True, exist_ok=True)
        self._layout.error_reports.mkdir(parents=True, exist_ok=True)

    def clean_previous_run(self) -> int:
        """Очистить ``artifacts/`` и ``error-reports/``, сохранив ``.gitkeep``.

        Идемпотентно: отсутствующие директории пропускаются.
        """
        removed = 0
        for directory in (self._layout.artifacts, self._layout.error_reports):
            if not directory.is_dir():
                continue
            for entry in directory.iterdir():
                if entry.name == SENTINEL_NAME:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry, ignore_errors=True)
                else:
                    entry.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info("Артефакты предыдущего прогона удалены: %d", removed)
        return removed

    def archive_artifacts(self, stamp: str) -> Path | None:
        """Скопировать артефакты и отчёты об ошибках в ``archive-<stamp>/``."""
        sources = [
            d for d in (self._layout.artifacts, self._layout.error_reports)
            if d.is_dir() and any(e.name != SENTINEL_NAME for e in d.iterdir())
        ]
        if not sources:
            return None

        archive = self._layout.archive(stamp)
        for source in sources:
            shutil.copytree(
                source,
                archive / source.name,
                ignore=shutil.ignore_patterns(SENTINEL_NAME),
                dirs_exist_ok=True,
            )
        logger.info("Артефакты заархивированы: %s", archive)
        return archive

    # ------------------------------------------------------------------
    # Сценарии
    # ------------------------------------------------------------------

    async def cleanup_between_suites(self) -> None:
        """Очистка перед набором: браузеры → ожидание завершения → временные файлы."""
        await self.kill_stray_browsers()
        await self._sleep(self._settle_delay)
        self.clear_transient_files()

    async def recover(self) -> None:
        """Восстановление после упавшего набора. Ошибки только логируются."""
        logger.info("Восстановление окружения после сбоя набора")
        try:
            await self.kill_stray_browsers()
            self.clear_transient_files()
            await self._sleep(self._recovery_delay)
        except Exception as exc:
            logger.warning("Восстановление окружения: ошибка: %s", exc)

    async def final_cleanup(self, stamp: str) -> Path | None:
        """Финальная очистка прогона. Ошибки только логируются."""
        try:
            await self.kill_stray_browsers()
            self.clear_transient_files()
            return self.archive_artifacts(stamp)
        except Exception as exc:
            logger.warning("Финальная очистка: ошибка: %s", exc)
            return None
