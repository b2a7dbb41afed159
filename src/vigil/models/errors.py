"""Модели ошибок, обнаруженных наблюдателем браузерной сессии."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from vigil.models.common import CamelModel, ErrorType, Severity


class BrowserInfo(CamelModel):
    name: str = "unknown"
    version: str = "unknown"
    platform: str = "unknown"
    viewport_width: int = 0
    viewport_height: int = 0


class ConsoleMessage(CamelModel):
    """Одно сообщение консоли браузера из скользящего буфера."""

    type: str
    text: str
    timestamp: datetime
    location: str | None = None


class NetworkRequest(CamelModel):
    """Один сетевой запрос страницы из скользящего буфера."""

    url: str
    method: str = "GET"
    status: int = 0
    status_text: str = ""
    timestamp: datetime
    response_time: float = 0.0
    error: str | None = None


class ComponentErrorInfo(CamelModel):
    component_name: str | None = None
    component_path: str | None = None
    error_type: Literal["import", "render", "props", "lifecycle"] = "render"
    missing_dependencies: list[str] = []
    broken_imports: list[str] = []


class ImportErrorInfo(CamelModel):
    module_path: str = "unknown"
    import_type: Literal["default", "named", "namespace"] = "default"
    missing_exports: list[str] = []
    circular_dependency: bool = False
    syntax_error: bool = False


class ApiErrorInfo(CamelModel):
    endpoint: str = "unknown"
    method: str = "GET"
    status_code: int = 0
    response_body: str | None = None
    request_payload: Any = None
    integration_failure: bool = False


class DetectedError(CamelModel):
    """Одна классифицированная аномалия браузерной сессии.

    Создаётся наблюдателем в момент классификации и далее не меняется.
    ``id`` уникален в пределах прогона, по нему идёт дедупликация.
    """

    id: str
    type: ErrorType
    severity: Severity
    message: str
    stack_trace: str | None = None
    url: str = ""
    user_role: str = "unknown"
    mock_user: str = "unknown"
    timestamp: datetime
    reproduction_steps: list[str] = []
    screenshot: str | None = None
    dom_snapshot: str | None = None
    browser_info: BrowserInfo = Field(default_factory=BrowserInfo)
    console_messages: list[ConsoleMessage] | None = None
    network_requests: list[NetworkRequest] | None = None
    component_info: ComponentErrorInfo | None = None
    import_error: ImportErrorInfo | None = None
    api_error: ApiErrorInfo | None = None


class ErrorCategories(CamelModel):
    """Ошибки, разложенные по корзинам серьёзности."""

    critical: list[DetectedError] = []
    high: list[DetectedError] = []
    medium: list[DetectedError] = []
    low: list[DetectedError] = []

    @classmethod
    def from_errors(cls, errors: list[DetectedError]) -> ErrorCategories:
        buckets: dict[str, list[DetectedError]] = {s.value: [] for s in Severity}
        for error in errors:
            buckets[error.severity.value].append(error)
        return cls(**buckets)

    def bucket(self, severity: Severity) -> list[DetectedError]:
        return getattr(self, severity.value)


class ErrorSummary(CamelModel):
    """Счётчики ошибок по серьёзности."""

    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def from_errors(cls, errors: list[DetectedError]) -> ErrorSummary:
        counts = Counter(e.severity for e in errors)
        return cls(
            total=len(errors),
            critical=counts.get(Severity.CRITICAL, 0),
            high=counts.get(Severity.HIGH, 0),
            medium=counts.get(Severity.MEDIUM, 0),
            low=counts.get(Severity.LOW, 0),
        )


class ComponentErrorSummary(CamelModel):
    total_component_errors: int = 0
    import_errors: int = 0
    render_errors: int = 0
    props_errors: int = 0
    lifecycle_errors: int = 0
    common_components: list[str] = []


class ApiErrorSummary(CamelModel):
    total_api_errors: int = 0
    integration_failures: int = 0
    status_code_breakdown: dict[int, int] = {}
    common_endpoints: list[str] = []
