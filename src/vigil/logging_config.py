"""Настройка логирования для прогона vigil.

Оркестратор и процессы наборов пишут в один stderr, поэтому каждая запись
помечается меткой источника: ``run`` для оркестратора, имя набора для
наблюдателя внутри дочернего процесса (берётся из ``VIGIL_SUITE_NAME``).
"""

from __future__ import annotations

import logging
import os
import sys

RUN_SOURCE = "run"
SUITE_ENV_VAR = "VIGIL_SUITE_NAME"

_FORMAT = "%(asctime)s | %(levelname)-7s | %(source)s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "playwright")


class SourceFilter(logging.Filter):
    """Проставляет ``record.source``, если его не задали через ``extra``."""

    def __init__(self, source: str) -> None:
        super().__init__()
        self.source = source

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "source"):
            record.source = self.source
        return True


def resolve_source(source: str | None = None) -> str:
    """Метка источника: явная, из окружения набора или ``run``."""
    return source or os.environ.get(SUITE_ENV_VAR) or RUN_SOURCE


def setup_logging(level: str = "INFO", *, source: str | None = None) -> None:
    """Настроить корневой логгер.

    Args:
        level: Имя уровня логирования (DEBUG, INFO, WARNING, ERROR).
        source: Метка источника записей; по умолчанию см. :func:`resolve_source`.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(SourceFilter(resolve_source(source)))
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT))

    root = logging.getLogger()
    root.setLevel(numeric_level)
    # Повторный вызов не должен дублировать обработчики
    root.handlers.clear()
    root.addHandler(handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))
