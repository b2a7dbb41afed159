"""Детектор ошибок браузерной сессии.

Подписывается на события страницы Playwright (``pageerror``, ``console``,
``response``, ``requestfailed``), внедряет клиентский монитор и превращает
сигналы в типизированный поток ``DetectedError`` с серьёзностью и контекстом
для воспроизведения.

Классификация синхронна и выполняется до любого ``await``: снимок контекста
и серьёзность фиксируются в момент события. Асинхронны только best-effort
шаги (скриншот, DOM), их сбой логируется и не мешает записи ошибки.
Ни один публичный метод не пробрасывает исключения конвейера обнаружения:
сломанный детектор не должен ронять тестируемый набор.
"""

from __future__ import annotations

import functools
import json
import logging
import platform
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from vigil.models.common import ErrorType, Severity
from vigil.models.errors import (
    ApiErrorInfo,
    ApiErrorSummary,
    BrowserInfo,
    ComponentErrorInfo,
    ComponentErrorSummary,
    ConsoleMessage,
    DetectedError,
    ErrorCategories,
    ErrorSummary,
    ImportErrorInfo,
    NetworkRequest,
)
from vigil.observer.buffer import BoundedBuffer
from vigil.observer.context import ObservationContext
from vigil.observer.extractors import extract_api_info, extract_component_info, extract_import_info
from vigil.observer.monitor_script import (
    MONITOR_SCRIPT,
    MonitorEvent,
    is_monitor_message,
    parse_monitor_message,
)
from vigil.observer.rules import (
    DEFAULT_RULES,
    NETWORK_RULES,
    RENDERING_SEVERITY,
    Classification,
    ClassificationRule,
    NetworkRule,
    SignalSource,
    classify_message,
    classify_network,
    is_error_status,
)

if TYPE_CHECKING:
    from playwright.async_api import Page

    from vigil.config import Settings

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

_BROKEN_IMAGES_JS = """
() => Array.from(document.querySelectorAll('img'))
  .filter((img) => !img.complete || img.naturalWidth === 0)
  .map((img) => ({ src: img.src, alt: img.alt || '' }))
"""

_MISSING_CSS_JS = """
() => Array.from(document.querySelectorAll('link[rel="stylesheet"]'))
  .filter((link) => link.sheet === null && link.href)
  .map((link) => link.href)
"""

_ZERO_SIZE_JS = """
() => {
  const issues = [];
  for (const el of document.querySelectorAll('body *')) {
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') continue;
    const rect = el.getBoundingClientRect();
    if (rect.width === 0 && rect.height === 0 && el.children.length > 0) {
      const cls = (typeof el.className === 'string' && el.className.trim())
        ? '.' + el.className.trim().split(/\\s+/).join('.') : '';
      issues.push(el.tagName + (el.id ? '#' + el.id : '') + cls);
    }
  }
  return issues;
}
"""


@dataclass(frozen=True)
class MonitoringOptions:
    """Какие сигналы собирать и сколько истории хранить."""

    capture_console_errors: bool = True
    monitor_network_requests: bool = True
    detect_component_failures: bool = True
    detect_import_errors: bool = True
    detect_api_integration_failures: bool = True
    capture_artifacts: bool = True
    max_console_messages: int = 1000
    max_network_requests: int = 500

    @classmethod
    def from_settings(cls, settings: Settings) -> MonitoringOptions:
        return cls(
            max_console_messages=settings.max_console_messages,
            max_network_requests=settings.max_network_requests,
        )


def _never_raise(handler: F) -> F:
    """Обернуть обработчик события: исключения логируются и гасятся."""

    @functools.wraps(handler)
    async def wrapper(self: ErrorDetector, *args: Any, **kwargs: Any) -> Any:
        try:
            return await handler(self, *args, **kwargs)
        except Exception as exc:
            logger.warning("Детектор: ошибка в %s: %s", handler.__name__, exc)
            return None

    return wrapper  # type: ignore[return-value]


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def new_error_id() -> str:
    """Уникальный id вида ``error-<ms>-<9 hex>``."""
    millis = int(_now().timestamp() * 1000)
    return f"error-{millis}-{uuid.uuid4().hex[:9]}"


class ErrorDetector:
    """Наблюдатель одной страницы браузера.

    Использование внутри набора::

        detector = ErrorDetector(reports_dir=os.environ["VIGIL_ERROR_REPORTS_DIR"])
        await detector.attach(page)
        detector.set_context("developer", "dev-user-1")
        ...
        await detector.detect_rendering_issues()
        detector.save_report()
    """

    def __init__(
        self,
        *,
        options: MonitoringOptions | None = None,
        reports_dir: str | Path | None = None,
        rules: tuple[ClassificationRule, ...] = DEFAULT_RULES,
        network_rules: tuple[NetworkRule, ...] = NETWORK_RULES,
    ) -> None:
        self._options = options or MonitoringOptions()
        self._reports_dir = Path(reports_dir) if reports_dir is not None else None
        self._rules = rules
        self._network_rules = network_rules

        self._page: Page | None = None
        self._errors: list[DetectedError] = []
        self._console: BoundedBuffer[ConsoleMessage] = BoundedBuffer(self._options.max_console_messages)
        self._network: BoundedBuffer[NetworkRequest] = BoundedBuffer(self._options.max_network_requests)
        self._reproduction_steps: list[str] = []
        self._user_role = "unknown"
        self._mock_user = "unknown"

    # --- Подключение к странице ---

    async def attach(self, page: Page) -> None:
        """Подписаться на события страницы и внедрить клиентский монитор."""
        self._page = page
        page.on("pageerror", self.handle_page_error)
        if self._options.capture_console_errors:
            page.on("console", self.handle_console)
        if self._options.monitor_network_requests:
            page.on("response", self.handle_response)
            page.on("requestfailed", self.handle_request_failed)

        try:
            await page.add_init_script(script=MONITOR_SCRIPT)
        except Exception as exc:
            logger.warning("Не удалось внедрить клиентский монитор: %s", exc)

    def detach(self) -> None:
        """Отписаться от событий страницы. Накопленные ошибки сохраняются."""
        page = self._page
        if page is None:
            return
        for event, handler in (
            ("pageerror", self.handle_page_error),
            ("console", self.handle_console),
            ("response", self.handle_response),
            ("requestfailed", self.handle_request_failed),
        ):
            try:
                page.remove_listener(event, handler)
            except Exception as exc:
                logger.debug("remove_listener(%s): %s", event, exc)
        self._page = None

    # --- Контекст ---

    def set_context(self, role: str, user_id: str) -> None:
        """Задать роль и синтетического пользователя для последующих захватов."""
        self._user_role = role
        self._mock_user = user_id

    def add_reproduction_step(self, step: str) -> None:
        self._reproduction_steps.append(f"{_now().isoformat()}: {step}")

    def clear_reproduction_steps(self) -> None:
        self._reproduction_steps = []

    def _snapshot_context(self, *, with_console: bool = True, with_network: bool = True) -> ObservationContext:
        return ObservationContext(
            url=self._page_url(),
            user_role=self._user_role,
            mock_user=self._mock_user,
            reproduction_steps=tuple(self._reproduction_steps),
            console_messages=self._console.snapshot() if with_console else (),
            network_requests=self._network.snapshot() if with_network else (),
            browser_info=self._browser_info(),
        )

    def _page_url(self) -> str:
        if self._page is None:
            return ""
        try:
            return str(self._page.url)
        except Exception:
            return ""

    def _browser_info(self) -> BrowserInfo:
        if self._page is None:
            return BrowserInfo(platform=platform.system().lower())
        name = version = "unknown"
        width = height = 0
        try:
            viewport = self._page.viewport_size or {}
            width = int(viewport.get("width", 0))
            height = int(viewport.get("height", 0))
            browser = self._page.context.browser
            if browser is not None:
                name = browser.browser_type.name
                version = browser.version
        except Exception as exc:
            logger.debug("Нет данных о браузере: %s", exc)
        return BrowserInfo(
            name=name,
            version=version,
            platform=platform.system().lower(),
            viewport_width=width,
            viewport_height=height,
        )

    # --- Обработчики событий страницы ---

    @_never_raise
    async def handle_page_error(self, error: Any) -> None:
        """``pageerror``: необработанное исключение в скрипте страницы."""
        message = str(getattr(error, "message", None) or error)
        stack = getattr(error, "stack", None)
        classification = classify_message(SignalSource.RUNTIME, message, stack, rules=self._rules)
        await self._record(
            self._snapshot_context(),
            classification,
            message,
            stack_trace=stack,
        )

    @_never_raise
    async def handle_console(self, msg: Any) -> None:
        """``console``: буферизация сообщения, ошибки консоли и строки монитора."""
        text = str(msg.text)
        msg_type = str(msg.type)

        if is_monitor_message(text):
            event = parse_monitor_message(text)
            if event is not None:
                await self._handle_monitor_event(event)
            return

        location = getattr(msg, "location", None) or {}
        self._console.append(
            ConsoleMessage(
                type=msg_type,
                text=text,
                timestamp=_now(),
                location=location.get("url") if isinstance(location, dict) else None,
            )
        )

        if msg_type == "error":
            classification = classify_message(SignalSource.CONSOLE, text, rules=self._rules)
            await self._record(
                self._snapshot_context(with_network=False),
                classification,
                f"Console Error: {text}",
                include_network=False,
            )

    @_never_raise
    async def handle_response(self, response: Any) -> None:
        """``response``: буферизация запроса, ответы 4xx/5xx становятся ошибками."""
        url = str(response.url)
        status = int(response.status)
        status_text = str(getattr(response, "status_text", "") or "")
        method = str(response.request.method)

        self._network.append(
            NetworkRequest(
                url=url,
                method=method,
                status=status,
                status_text=status_text,
                timestamp=_now(),
            )
        )

        if not is_error_status(status):
            return

        classification = classify_network(url, status, rules=self._network_rules)
        status_line = f"HTTP {status} {status_text}" if status_text else f"HTTP {status}"
        await self._record(
            self._snapshot_context(with_console=False),
            classification,
            f"{status_line}: {url}",
            include_console=False,
        )

    @_never_raise
    async def handle_request_failed(self, request: Any) -> None:
        """``requestfailed``: запрос не получил ответа."""
        url = str(request.url)
        method = str(request.method)
        failure = getattr(request, "failure", None) or "Unknown error"

        self._network.append(
            NetworkRequest(url=url, method=method, timestamp=_now(), error=str(failure))
        )

        classification = classify_network(url, None, rules=self._network_rules)
        await self._record(
            self._snapshot_context(with_console=False),
            classification,
            f"Failed Request: {method} {url} - {failure}",
            include_console=False,
        )

    async def _handle_monitor_event(self, event: MonitorEvent) -> None:
        opts = self._options
        component_info: ComponentErrorInfo | None = None
        import_info: ImportErrorInfo | None = None
        api_info: ApiErrorInfo | None = None

        if event.source is SignalSource.COMPONENT:
            if not opts.detect_component_failures:
                return
            prefix = "Component Error"
            component_info = extract_component_info(event.message)
        elif event.source is SignalSource.IMPORT:
            if not opts.detect_import_errors:
                return
            prefix = "Import Error"
            import_info = extract_import_info(event.message)
        elif event.source is SignalSource.API:
            if not opts.detect_api_integration_failures:
                return
            prefix = "API Integration Error"
            api_info = extract_api_info(
                event.message, url=event.url, method=event.method, status=event.status,
            )
        else:
            prefix = "Unhandled Promise Rejection"

        classification = classify_message(event.source, event.message, event.stack, rules=self._rules)
        await self._record(
            self._snapshot_context(),
            classification,
            f"{prefix}: {event.message}",
            stack_trace=event.stack,
            component_info=component_info,
            import_error=import_info,
            api_error=api_info,
        )

    # --- Проверки рендеринга ---

    async def detect_rendering_issues(self) -> list[DetectedError]:
        """Проверить страницу на битые картинки, непривязанные стили и схлопнутые блоки.

        Запускается по запросу. Каждая найденная проблема — одна ошибка типа
        ``rendering``. Возвращает только что добавленные ошибки.
        """
        if self._page is None:
            logger.warning("detect_rendering_issues: детектор не подключён к странице")
            return []

        found: list[tuple[str, str]] = []
        for image in await self._evaluate_check("broken-image", _BROKEN_IMAGES_JS):
            found.append(("broken-image", f'Broken Image: {image["src"]} (alt: "{image["alt"]}")'))
        for href in await self._evaluate_check("missing-css", _MISSING_CSS_JS):
            found.append(("missing-css", f"Missing CSS: {href}"))
        for element in await self._evaluate_check("zero-size", _ZERO_SIZE_JS):
            found.append(("zero-size", f"Layout Issue: Element with zero dimensions: {element}"))

        added: list[DetectedError] = []
        for check, message in found:
            classification = Classification(ErrorType.RENDERING, RENDERING_SEVERITY[check], check)
            error = await self._record(
                self._snapshot_context(with_console=False, with_network=False),
                classification,
                message,
                include_console=False,
                include_network=False,
                capture=False,
            )
            added.append(error)
        return added

    async def _evaluate_check(self, check: str, script: str) -> list[Any]:
        """Одна проверка рендеринга; её сбой не отменяет остальные."""
        try:
            return list(await self._page.evaluate(script) or [])
        except Exception as exc:
            logger.warning("Ошибка проверки рендеринга %s: %s", check, exc)
            return []

    # --- Запись ошибки ---

    async def _record(
        self,
        ctx: ObservationContext,
        classification: Classification,
        message: str,
        *,
        stack_trace: str | None = None,
        include_console: bool = True,
        include_network: bool = True,
        capture: bool = True,
        component_info: ComponentErrorInfo | None = None,
        import_error: ImportErrorInfo | None = None,
        api_error: ApiErrorInfo | None = None,
    ) -> DetectedError:
        error_id = new_error_id()
        timestamp = _now()

        screenshot: str | None = None
        dom_snapshot: str | None = None
        if capture:
            screenshot, dom_snapshot = await self._capture_artifacts(error_id)

        error = DetectedError(
            id=error_id,
            type=classification.error_type,
            severity=classification.severity,
            message=message,
            stack_trace=stack_trace,
            url=ctx.url,
            user_role=ctx.user_role,
            mock_user=ctx.mock_user,
            timestamp=timestamp,
            reproduction_steps=list(ctx.reproduction_steps),
            screenshot=screenshot,
            dom_snapshot=dom_snapshot,
            browser_info=ctx.browser_info,
            console_messages=list(ctx.console_messages) if include_console else None,
            network_requests=list(ctx.network_requests) if include_network else None,
            component_info=component_info,
            import_error=import_error,
            api_error=api_error,
        )
        self._errors.append(error)
        logger.debug(
            "Обнаружена ошибка %s [%s/%s, правило %s]: %.200s",
            error_id, error.type.value, error.severity.value, classification.rule, message,
        )
        return error

    async def _capture_artifacts(self, error_id: str) -> tuple[str | None, str | None]:
        """Скриншот и DOM. Каждый шаг best-effort: сбой даёт None и запись в лог."""
        if not self._options.capture_artifacts or self._page is None:
            return None, None

        screenshot: str | None = None
        if self._reports_dir is not None:
            path = self._reports_dir / f"screenshot-{error_id}.png"
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                await self._page.screenshot(path=str(path), full_page=True)
                screenshot = str(path)
            except Exception as exc:
                logger.warning("Скриншот для %s не снят: %s", error_id, exc)

        dom_snapshot: str | None = None
        try:
            dom_snapshot = await self._page.content()
        except Exception as exc:
            logger.warning("DOM-снимок для %s не снят: %s", error_id, exc)

        return screenshot, dom_snapshot

    # --- Чтение результатов ---

    def get_errors(self) -> list[DetectedError]:
        return list(self._errors)

    def get_categorized_errors(self) -> ErrorCategories:
        return ErrorCategories.from_errors(self._errors)

    def get_error_summary(self) -> ErrorSummary:
        return ErrorSummary.from_errors(self._errors)

    def get_error_stats_by_type(self) -> dict[str, int]:
        return dict(Counter(e.type.value for e in self._errors))

    def get_component_error_summary(self) -> ComponentErrorSummary:
        component_errors = [e for e in self._errors if e.type is ErrorType.COMPONENT]
        kinds = Counter(
            e.component_info.error_type for e in component_errors if e.component_info
        )
        names = Counter(
            (e.component_info.component_name if e.component_info else None) or "unknown"
            for e in component_errors
        )
        return ComponentErrorSummary(
            total_component_errors=len(component_errors),
            import_errors=sum(1 for e in self._errors if e.type is ErrorType.IMPORT),
            render_errors=kinds.get("render", 0),
            props_errors=kinds.get("props", 0),
            lifecycle_errors=kinds.get("lifecycle", 0),
            common_components=[name for name, _ in names.most_common(5)],
        )

    def get_api_error_summary(self) -> ApiErrorSummary:
        api_errors = [e for e in self._errors if e.type is ErrorType.API]
        codes = Counter(e.api_error.status_code if e.api_error else 0 for e in api_errors)
        endpoints = Counter(e.api_error.endpoint if e.api_error else "unknown" for e in api_errors)
        return ApiErrorSummary(
            total_api_errors=len(api_errors),
            integration_failures=sum(
                1 for e in api_errors if e.api_error and e.api_error.integration_failure
            ),
            status_code_breakdown=dict(codes),
            common_endpoints=[endpoint for endpoint, _ in endpoints.most_common(5)],
        )

    def has_critical_errors(self) -> bool:
        """Есть ли ошибки уровня critical или high."""
        return any(e.severity in (Severity.CRITICAL, Severity.HIGH) for e in self._errors)

    def clear_errors(self) -> None:
        """Сбросить ошибки и буферы консоли/сети. Шаги воспроизведения сохраняются."""
        self._errors = []
        self._console.clear()
        self._network.clear()

    # --- Сохранение ---

    def save_report(self, directory: str | Path | None = None) -> Path | None:
        """Записать накопленные ошибки пачкой ``{"errors": [...]}`` в error-reports.

        Возвращает путь к файлу или None, если писать некуда или запись не удалась.
        """
        target = Path(directory) if directory is not None else self._reports_dir
        if target is None:
            logger.warning("save_report: не задана директория error-reports")
            return None

        stamp = _now().strftime("%Y%m%dT%H%M%S%f")
        path = target / f"errors-{self._user_role}-{stamp}.json"
        payload = {
            "errors": [e.model_dump(mode="json", by_alias=True) for e in self._errors],
        }
        try:
            target.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            logger.warning("Не удалось сохранить отчёт об ошибках в %s: %s", path, exc)
            return None

        logger.info("Сохранено ошибок: %d → %s", len(self._errors), path)
        return path
