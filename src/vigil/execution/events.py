"""Типизированная шина событий оркестратора.

Набор видов событий закрыт (``EventKind``); подписчик выбирает вид
события, а не строку. Обработчики вызываются синхронно в порядке
подписки; исключение в обработчике логируется и не прерывает прогон.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    STARTED = "started"
    PROGRESS = "progress"
    SUITE_STARTED = "suite_started"
    SUITE_COMPLETED = "suite_completed"
    TEST_STARTED = "test_started"
    TEST_PROGRESS = "test_progress"
    TEST_PASSED = "test_passed"
    TEST_FAILED = "test_failed"
    REAL_TIME_ERROR = "real_time_error"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RunEvent:
    """Одно событие прогона.

    Attributes:
        kind: Вид события.
        suite: Имя набора, к которому относится событие (None для событий прогона).
        payload: Данные события: ``ProgressReport``, ``TestExecutionResult``,
            ``TestProgress``, строка вывода или исключение — в зависимости от вида.
    """

    kind: EventKind
    suite: str | None = None
    payload: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[RunEvent], None]


class EventBus:
    """Шина событий с подпиской по виду."""

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[EventHandler]] = defaultdict(list)
        self._wildcard: list[EventHandler] = []

    def subscribe(self, kind: EventKind, handler: EventHandler) -> Callable[[], None]:
        """Подписаться на один вид событий. Возвращает функцию отписки."""
        self._handlers[kind].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[kind]:
                self._handlers[kind].remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: EventHandler) -> Callable[[], None]:
        """Подписаться на все события (логирование, консольный вывод)."""
        self._wildcard.append(handler)

        def unsubscribe() -> None:
            if handler in self._wildcard:
                self._wildcard.remove(handler)

        return unsubscribe

    def emit(
        self,
        kind: EventKind,
        *,
        suite: str | None = None,
        payload: Any = None,
    ) -> RunEvent:
        event = RunEvent(kind=kind, suite=suite, payload=payload)
        for handler in [*self._handlers.get(kind, ()), *self._wildcard]:
            try:
                handler(event)
            except Exception as exc:
                logger.warning(
                    "Обработчик события %s упал: %s", kind.value, exc, exc_info=True,
                )
        return event
