"""Таблица правил классификации аномалий браузерной сессии.

Вся политика серьёзности собрана в одном упорядоченном списке правил.
Сообщение прогоняется по таблице один раз, побеждает первое совпавшее
правило. Слои (в порядке проверки):

1. маркеры аутентификации/сессии → critical;
2. обращение к null/undefined, «is not a function», маркеры
   lifecycle/render → critical для runtime, high для компонентов;
3. маркеры сети/API/fetch/графиков/данных → high;
4. «warning»/«deprecated»/стили → medium;
5. по умолчанию — medium (runtime) или low (консоль).

Внутри слоёв 2–4 есть правила, специфичные для источника сигнала
(ошибки импорта, API-интеграции, props/state компонентов). Правило
применяется только к источникам, перечисленным в его ``severities``.

Сетевые ответы классифицируются отдельной таблицей по URL и коду статуса.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal

from vigil.models.common import ErrorType, Severity


class SignalSource(str, Enum):
    """Откуда пришёл сигнал; определяет тип ошибки и применимые правила."""

    RUNTIME = "runtime"  # pageerror
    CONSOLE = "console"  # console.error
    COMPONENT = "component"  # монитор: ошибка компонента
    IMPORT = "import"  # монитор: ошибка импорта / динамического импорта
    API = "api"  # монитор: ошибка API / fetch


_ERROR_TYPE_BY_SOURCE: dict[SignalSource, ErrorType] = {
    SignalSource.RUNTIME: ErrorType.RUNTIME,
    SignalSource.CONSOLE: ErrorType.RUNTIME,
    SignalSource.COMPONENT: ErrorType.COMPONENT,
    SignalSource.IMPORT: ErrorType.IMPORT,
    SignalSource.API: ErrorType.API,
}


@dataclass(frozen=True)
class ClassificationRule:
    """Одно правило: если текст содержит любой из маркеров — назначить серьёзность.

    Attributes:
        name: Имя правила (попадает в лог для аудита классификации).
        markers: Подстроки в нижнем регистре.
        severities: Серьёзность по источнику; источники вне словаря правило пропускает.
        target: Где искать маркеры: в сообщении, в стек-трейсе или в обоих.
    """

    name: str
    markers: tuple[str, ...]
    severities: dict[SignalSource, Severity]
    target: Literal["message", "stack", "any"] = "message"

    def matches(self, source: SignalSource, message: str, stack: str) -> bool:
        if source not in self.severities:
            return False
        if self.target == "message":
            haystacks = (message,)
        elif self.target == "stack":
            haystacks = (stack,)
        else:
            haystacks = (message, stack)
        return any(marker in text for text in haystacks for marker in self.markers)


@dataclass(frozen=True)
class Classification:
    error_type: ErrorType
    severity: Severity
    rule: str


_ALL = tuple(SignalSource)


def _for(sources: tuple[SignalSource, ...], severity: Severity) -> dict[SignalSource, Severity]:
    return {source: severity for source in sources}


DEFAULT_RULES: tuple[ClassificationRule, ...] = (
    # 1. Аутентификация / сессия
    ClassificationRule(
        name="auth-session-path",
        markers=("/api/auth", "/api/session"),
        severities=_for(_ALL, Severity.CRITICAL),
        target="any",
    ),
    ClassificationRule(
        name="auth-session-stack",
        markers=("auth", "session"),
        severities={SignalSource.RUNTIME: Severity.CRITICAL},
        target="stack",
    ),
    ClassificationRule(
        name="auth-console",
        markers=("authentication", "authorization", "uncaught", "fatal", "critical"),
        severities={SignalSource.CONSOLE: Severity.CRITICAL},
    ),
    # 2. Сломанные обращения и жизненный цикл
    ClassificationRule(
        name="null-access",
        markers=(
            "cannot read property",
            "cannot read properties",
            "is not a function",
            "undefined is not an object",
        ),
        severities={
            SignalSource.RUNTIME: Severity.CRITICAL,
            SignalSource.COMPONENT: Severity.HIGH,
        },
    ),
    ClassificationRule(
        name="render-lifecycle",
        markers=("render", "lifecycle"),
        severities={
            SignalSource.RUNTIME: Severity.CRITICAL,
            SignalSource.COMPONENT: Severity.HIGH,
        },
    ),
    ClassificationRule(
        name="component-props-state",
        markers=("props", "state"),
        severities={SignalSource.COMPONENT: Severity.HIGH},
    ),
    ClassificationRule(
        name="import-unresolved",
        markers=("cannot resolve", "module not found", "syntax error"),
        severities={SignalSource.IMPORT: Severity.CRITICAL},
    ),
    ClassificationRule(
        name="import-circular",
        markers=("circular dependency",),
        severities={SignalSource.IMPORT: Severity.HIGH},
    ),
    ClassificationRule(
        name="api-server-failure",
        markers=("500", "503", "network error", "timeout"),
        severities={SignalSource.API: Severity.CRITICAL},
    ),
    ClassificationRule(
        name="api-client-failure",
        markers=("404", "401", "403"),
        severities={SignalSource.API: Severity.HIGH},
    ),
    # 3. Сеть и данные
    ClassificationRule(
        name="network-data",
        markers=("network error", "fetch", "api", "chart", "data"),
        severities={SignalSource.RUNTIME: Severity.HIGH},
    ),
    ClassificationRule(
        name="network-console",
        markers=("failed to fetch", "network", "404", "500"),
        severities={SignalSource.CONSOLE: Severity.HIGH},
    ),
    # 4. Предупреждения и стили
    ClassificationRule(
        name="warning-style",
        markers=("warning", "deprecated", "style", "css"),
        severities={SignalSource.RUNTIME: Severity.MEDIUM},
    ),
    ClassificationRule(
        name="warning-console",
        markers=("warning", "deprecated"),
        severities={SignalSource.CONSOLE: Severity.MEDIUM},
    ),
)

# 5. По умолчанию
DEFAULT_SEVERITY: dict[SignalSource, Severity] = {
    SignalSource.RUNTIME: Severity.MEDIUM,
    SignalSource.CONSOLE: Severity.LOW,
    SignalSource.COMPONENT: Severity.MEDIUM,
    SignalSource.IMPORT: Severity.MEDIUM,
    SignalSource.API: Severity.MEDIUM,
}


def classify_message(
    source: SignalSource,
    message: str,
    stack: str | None = None,
    *,
    rules: tuple[ClassificationRule, ...] = DEFAULT_RULES,
) -> Classification:
    """Классифицировать текстовый сигнал по таблице правил (первое совпадение)."""
    lowered_message = (message or "").lower()
    lowered_stack = (stack or "").lower()
    error_type = _ERROR_TYPE_BY_SOURCE[source]

    for rule in rules:
        if rule.matches(source, lowered_message, lowered_stack):
            return Classification(error_type, rule.severities[source], rule.name)

    return Classification(error_type, DEFAULT_SEVERITY[source], "default")


# ---------------------------------------------------------------------------
# Сетевые ответы
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NetworkRule:
    name: str
    predicate: Callable[[str, int | None], bool]
    severity: Severity


def _is_auth_endpoint(url: str, status: int | None) -> bool:
    return "/api/auth" in url or "/api/session" in url


def _is_not_found_or_server_error(url: str, status: int | None) -> bool:
    return status is not None and (status == 404 or status >= 500)


def _is_api_client_error(url: str, status: int | None) -> bool:
    return status is not None and status >= 400 and "/api/" in url


def _is_client_error(url: str, status: int | None) -> bool:
    return status is not None and 400 <= status < 500


NETWORK_RULES: tuple[NetworkRule, ...] = (
    NetworkRule("auth-endpoint", _is_auth_endpoint, Severity.CRITICAL),
    NetworkRule("not-found-or-5xx", _is_not_found_or_server_error, Severity.HIGH),
    NetworkRule("api-4xx", _is_api_client_error, Severity.HIGH),
    NetworkRule("client-4xx", _is_client_error, Severity.MEDIUM),
)


def is_error_status(status: int) -> bool:
    return status >= 400


def classify_network(
    url: str,
    status: int | None = None,
    *,
    rules: tuple[NetworkRule, ...] = NETWORK_RULES,
) -> Classification:
    """Классифицировать сетевую ошибку по URL и коду ответа.

    ``status=None`` — запрос не получил ответа (requestfailed). Вызывающая
    сторона отвечает за то, чтобы успешные ответы сюда не попадали.
    """
    for rule in rules:
        if rule.predicate(url, status):
            return Classification(ErrorType.NETWORK, rule.severity, rule.name)
    return Classification(ErrorType.NETWORK, Severity.LOW, "default")


# ---------------------------------------------------------------------------
# Проверки рендеринга (по запросу, не по событиям)
# ---------------------------------------------------------------------------

RENDERING_SEVERITY: dict[str, Severity] = {
    "broken-image": Severity.MEDIUM,
    "missing-css": Severity.HIGH,
    "zero-size": Severity.MEDIUM,
}
