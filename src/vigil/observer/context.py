"""Снимок окружения, передаваемый в каждый захват ошибки."""

from __future__ import annotations

from dataclasses import dataclass, field

from vigil.models.errors import BrowserInfo, ConsoleMessage, NetworkRequest


@dataclass(frozen=True)
class ObservationContext:
    """Контекст, активный в момент обнаружения аномалии.

    Детектор собирает его заново на каждое событие из текущих роли,
    пользователя, шагов воспроизведения и копий буферов. Захват ошибки
    работает только с этим значением и не читает изменяемое состояние детектора.
    """

    url: str = ""
    user_role: str = "unknown"
    mock_user: str = "unknown"
    reproduction_steps: tuple[str, ...] = ()
    console_messages: tuple[ConsoleMessage, ...] = ()
    network_requests: tuple[NetworkRequest, ...] = ()
    browser_info: BrowserInfo = field(default_factory=BrowserInfo)
