"""Абстрактный интерфейс проверки доступности тестируемого приложения."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ApplicationProbe(Protocol):
    """Протокол HTTP-проверки приложения под тестом.

    Реализации:
    - HttpApplicationProbe: httpx-запросы к base URL и health-эндпоинту
    - В тестах: заглушка с фиксированными ответами
    """

    async def is_reachable(self) -> bool:
        """Отвечает ли приложение на базовом URL (любой HTTP-ответ < 500)."""
        ...

    async def check_health(self) -> bool:
        """Вернул ли health-эндпоинт успешный статус."""
        ...

    async def close(self) -> None:
        """Освободить ресурсы клиента."""
        ...
