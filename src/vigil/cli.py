"""Точка входа CLI для прогона e2e-наборов vigil."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import TYPE_CHECKING

from vigil import __version__

if TYPE_CHECKING:
    from vigil.models.results import ComprehensiveTestResults

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vigil",
        description="Прогон ролевых e2e-наборов с наблюдением за ошибками и сводным отчётом",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Транслировать вывод тест-раннера в лог",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Запускать браузер с окном (переопределяет VIGIL_HEADLESS)",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Запускать наборы пакетами параллельно",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="URL тестируемого приложения (переопределяет VIGIL_BASE_URL)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Бюджет времени на набор в секундах (переопределяет VIGIL_SUITE_TIMEOUT)",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Директория артефактов и отчётов (переопределяет VIGIL_OUTPUT_DIR)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Уровень логирования (переопределяет VIGIL_LOG_LEVEL)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vigil {__version__}",
    )
    return parser


def settings_overrides(args: argparse.Namespace) -> dict[str, object]:
    """Поля ``Settings``, заданные флагами командной строки."""
    overrides: dict[str, object] = {}
    if args.verbose:
        overrides["verbose"] = True
    if args.headed:
        overrides["headless"] = False
    if args.parallel:
        overrides["parallel"] = True
    if args.base_url is not None:
        overrides["base_url"] = args.base_url
    if args.timeout is not None:
        overrides["suite_timeout"] = args.timeout
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return overrides


async def async_main(args: argparse.Namespace) -> int:
    """Собрать зависимости и выполнить прогон. Возвращает код выхода."""
    # Отложенные импорты — чтобы --help работал быстро
    from pydantic import ValidationError

    from vigil.config import Settings
    from vigil.exceptions import ConfigurationError, ManifestError, VigilError
    from vigil.logging_config import setup_logging
    from vigil.models.common import OrchestrationStatus
    from vigil.orchestrator import SuiteOrchestrator

    # 1. Загрузка настроек
    try:
        settings = Settings(**settings_overrides(args))  # type: ignore[arg-type]
    except ValidationError as exc:
        print(f"Ошибка конфигурации: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    # 2. Настройка логирования
    setup_logging(settings.log_level)

    # 3. Сборка оркестратора
    try:
        orchestrator = SuiteOrchestrator(settings)
    except (ConfigurationError, ManifestError) as exc:
        logger.error("Ошибка конфигурации: %s", exc)
        return EXIT_CONFIG

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)
    except (NotImplementedError, RuntimeError):
        # Windows: остаётся KeyboardInterrupt
        pass

    # 4. Прогон
    try:
        results = await orchestrator.execute_all_tests()
    except ConfigurationError as exc:
        logger.error("Ошибка конфигурации: %s", exc)
        return EXIT_CONFIG
    except VigilError as exc:
        logger.error("Ошибка: %s", exc)
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.info("Прервано пользователем")
        return EXIT_CANCELLED
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    # 5. Вывод сводки
    for line in _render_box(_summary_lines(results)):
        print(line)

    if orchestrator.status is OrchestrationStatus.CANCELLED:
        return EXIT_CANCELLED
    if results.summary.failed_suites > 0:
        return EXIT_FAILED
    return EXIT_OK


def _summary_lines(results: ComprehensiveTestResults) -> list[str]:
    """Строки итоговой сводки прогона для рамочного вывода."""
    summary = results.summary
    lines = [
        "vigil: итоги прогона",
        "",
        f"Наборов: {summary.total_suites}"
        f" | Успешно: {summary.passed_suites}"
        f" | Упало: {summary.failed_suites}"
        f" | Таймаут: {summary.timeout_suites}"
        f" | Пропущено: {summary.skipped_suites}",
        f"Ошибок: {summary.total_errors}"
        f" | Предупреждений: {summary.total_warnings}"
        f" | Длительность: {summary.total_duration:.1f} сек",
    ]

    aggregated = results.aggregated_results
    if aggregated is not None:
        executive = aggregated.executive_summary
        lines.append(
            f"Статус: {executive.overall_status.value}"
            f" | Стабильность: {aggregated.quality_metrics.stability_score}/100"
            f" | Задач: {len(aggregated.developer_tasks)}"
        )

    if results.critical_issues:
        lines.append("")
        lines.append("Критичные проблемы:")
        lines.extend(f"  - {issue}" for issue in results.critical_issues)

    if results.recommendations:
        lines.append("")
        lines.append("Рекомендации:")
        lines.extend(f"  - {item}" for item in results.recommendations)

    if results.report_paths:
        lines.append("")
        lines.append("Отчёты:")
        lines.extend(f"  {path}" for path in results.report_paths)

    return lines


def _render_box(lines: list[str]) -> list[str]:
    """Отрендерить список строк в Unicode-рамку."""
    if not lines:
        return []

    width = max(len(line) for line in lines)
    top = f"╔{'═' * (width + 2)}╗"
    bottom = f"╚{'═' * (width + 2)}╝"
    body = [f"║ {line.ljust(width)} ║" for line in lines]

    return [top, *body, bottom]


def main(argv: list[str] | None = None) -> None:
    """Синхронная точка входа для CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        exit_code = asyncio.run(async_main(args))
    except KeyboardInterrupt:
        exit_code = EXIT_CANCELLED
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
