"""Извлечение типоспецифичных деталей из текста ошибки.

Функции чистые и работают только со строками. Возвращаемые модели
прикрепляются к ``DetectedError`` в полях ``component_info``,
``import_error`` и ``api_error``.
"""

from __future__ import annotations

import re

from vigil.models.errors import ApiErrorInfo, ComponentErrorInfo, ImportErrorInfo

# ---------------------------------------------------------------------------
# Compiled patterns
# ---------------------------------------------------------------------------

_COMPONENT_NAME_RE = re.compile(r"component[:\s]+([A-Z][a-zA-Z0-9]*)", re.IGNORECASE)
_COMPONENT_PATH_RE = re.compile(r"at\s+([^\s()]+\.(?:tsx?|jsx?))")
_MISSING_MODULE_RE = re.compile(r"cannot find module[:\s]+['\"]([^'\"]+)['\"]", re.IGNORECASE)
_IMPORT_RE = re.compile(r"import[:\s]+['\"]([^'\"]+)['\"]", re.IGNORECASE)
_MODULE_PATH_RE = re.compile(r"module[:\s]+['\"]([^'\"]+)['\"]", re.IGNORECASE)
_EXPORT_RE = re.compile(r"export[:\s]+['\"]([^'\"]+)['\"]", re.IGNORECASE)

_ENDPOINT_RE = re.compile(r"(?:url|endpoint)[:\s]+([^\s]+)", re.IGNORECASE)
_METHOD_RE = re.compile(r"\b(GET|POST|PUT|DELETE|PATCH|HEAD|OPTIONS)\b", re.IGNORECASE)
_STATUS_RE = re.compile(r"status[:\s]+(\d{3})", re.IGNORECASE)
_RESPONSE_RE = re.compile(r"response[:\s]+(.+)", re.IGNORECASE)

_INTEGRATION_MARKERS = ("integration", "connection", "timeout", "network")


# ---------------------------------------------------------------------------
# Компоненты
# ---------------------------------------------------------------------------

def component_error_type(message: str) -> str:
    lowered = message.lower()
    if "import" in lowered or "module" in lowered:
        return "import"
    if "render" in lowered:
        return "render"
    if "props" in lowered:
        return "props"
    if "lifecycle" in lowered or "mount" in lowered or "update" in lowered:
        return "lifecycle"
    return "render"


def extract_component_info(message: str) -> ComponentErrorInfo:
    name = _COMPONENT_NAME_RE.search(message)
    path = _COMPONENT_PATH_RE.search(message)
    return ComponentErrorInfo(
        component_name=name.group(1) if name else None,
        component_path=path.group(1) if path else None,
        error_type=component_error_type(message),
        missing_dependencies=_MISSING_MODULE_RE.findall(message),
        broken_imports=_IMPORT_RE.findall(message),
    )


# ---------------------------------------------------------------------------
# Импорты
# ---------------------------------------------------------------------------

def import_type(message: str) -> str:
    if "import * as" in message:
        return "namespace"
    if "import {" in message:
        return "named"
    return "default"


def extract_import_info(message: str) -> ImportErrorInfo:
    lowered = message.lower()
    module = _MODULE_PATH_RE.search(message)
    return ImportErrorInfo(
        module_path=module.group(1) if module else "unknown",
        import_type=import_type(message),
        missing_exports=_EXPORT_RE.findall(message),
        circular_dependency="circular" in lowered or "cycle" in lowered,
        syntax_error="syntax error" in lowered or "unexpected token" in lowered,
    )


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------

def is_integration_failure(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _INTEGRATION_MARKERS)


def extract_api_info(
    message: str,
    *,
    url: str | None = None,
    method: str | None = None,
    status: int | None = None,
) -> ApiErrorInfo:
    """Детали API-ошибки. Структурные поля монитора приоритетнее разбора текста."""
    endpoint = url
    if endpoint is None:
        match = _ENDPOINT_RE.search(message)
        endpoint = match.group(1) if match else "unknown"

    if method is None:
        match = _METHOD_RE.search(message)
        method = match.group(1) if match else "GET"

    if status is None:
        match = _STATUS_RE.search(message)
        status = int(match.group(1)) if match else 0

    body = _RESPONSE_RE.search(message)
    return ApiErrorInfo(
        endpoint=endpoint,
        method=method.upper(),
        status_code=status,
        response_body=body.group(1) if body else None,
        integration_failure=is_integration_failure(message),
    )
