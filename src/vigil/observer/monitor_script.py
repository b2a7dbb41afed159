"""Клиентский скрипт-монитор и разбор его сообщений.

Скрипт внедряется в страницу через ``page.add_init_script`` до загрузки
приложения. Он перехватывает то, что Playwright не видит как отдельные
события, и переизлучает каждое событие одной строкой ``console.log``:

    [vigil-monitor] {"kind": "...", "message": "...", ...}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from vigil.observer.rules import SignalSource

logger = logging.getLogger(__name__)

MONITOR_PREFIX = "[vigil-monitor]"

MONITOR_SCRIPT = """
(() => {
  if (window.__vigilMonitorInstalled) return;
  window.__vigilMonitorInstalled = true;

  const PREFIX = "%(prefix)s";
  const originalLog = console.log.bind(console);
  const emit = (payload) => {
    try {
      payload.timestamp = new Date().toISOString();
      originalLog(PREFIX + " " + JSON.stringify(payload));
    } catch (e) { /* монитор не должен ломать страницу */ }
  };
  const stackOf = (err) => (err && err.stack) ? String(err.stack) : "";

  window.addEventListener("unhandledrejection", (event) => {
    const reason = event.reason;
    emit({
      kind: "unhandled-rejection",
      message: reason ? String(reason) : "Unknown rejection reason",
      stack: stackOf(reason),
    });
  });

  const originalError = console.error;
  console.error = function (...args) {
    const message = args.map((a) => {
      if (a instanceof Error) return a.message;
      if (typeof a === "object") { try { return JSON.stringify(a); } catch (e) { return String(a); } }
      return String(a);
    }).join(" ");
    const stack = stackOf(new Error());

    if (/React|component|render|props/.test(message)) {
      emit({ kind: "component", message, stack });
    }
    if (/import|export|module|Cannot resolve/.test(message)) {
      emit({ kind: "import", message, stack });
    }
    if (/fetch|API|endpoint|request failed/.test(message)) {
      emit({ kind: "api", message, stack });
    }
    return originalError.apply(console, args);
  };

  const originalFetch = window.fetch;
  if (typeof originalFetch === "function") {
    window.fetch = function (input, init) {
      const url = (input && input.url) ? input.url : String(input);
      const method = ((init && init.method) || (input && input.method) || "GET").toUpperCase();
      return originalFetch.apply(this, arguments).then((response) => {
        if (!response.ok) {
          emit({
            kind: "fetch-error",
            message: "Fetch error " + method + " url: " + url + " status: " + response.status,
            url, method, status: response.status, statusText: response.statusText,
          });
        }
        return response;
      }).catch((error) => {
        emit({
          kind: "fetch-failure",
          message: "Fetch failure " + method + " url: " + url + " network error: " + String(error),
          url, method, stack: stackOf(error),
        });
        throw error;
      });
    };
  }

  const XHR = window.XMLHttpRequest;
  if (typeof XHR === "function" && XHR.prototype) {
    const originalOpen = XHR.prototype.open;
    const originalSend = XHR.prototype.send;
    XHR.prototype.open = function (method, url) {
      this.__vigilRequest = { method: String(method || "GET").toUpperCase(), url: String(url) };
      return originalOpen.apply(this, arguments);
    };
    XHR.prototype.send = function () {
      const request = this.__vigilRequest || { method: "GET", url: "" };
      let failed = false;
      const onFailure = (reason) => () => {
        failed = true;
        emit({
          kind: "xhr-failure",
          message: "XHR failure " + request.method + " url: " + request.url + " network error: " + reason,
          url: request.url, method: request.method,
        });
      };
      this.addEventListener("error", onFailure("error"));
      this.addEventListener("timeout", onFailure("timeout"));
      this.addEventListener("loadend", () => {
        if (!failed && this.status >= 400) {
          emit({
            kind: "xhr-error",
            message: "XHR error " + request.method + " url: " + request.url + " status: " + this.status,
            url: request.url, method: request.method, status: this.status, statusText: this.statusText,
          });
        }
      });
      return originalSend.apply(this, arguments);
    };
  }

  window.addEventListener("error", (event) => {
    const target = event.target;
    if (target && target.tagName === "SCRIPT" && target.type === "module") {
      emit({
        kind: "dynamic-import",
        message: "Module script failed to load: module: '" + target.src + "'",
      });
    }
  }, true);
})();
""" % {"prefix": MONITOR_PREFIX}


_SOURCE_BY_KIND: dict[str, SignalSource] = {
    "unhandled-rejection": SignalSource.RUNTIME,
    "component": SignalSource.COMPONENT,
    "import": SignalSource.IMPORT,
    "dynamic-import": SignalSource.IMPORT,
    "api": SignalSource.API,
    "fetch-error": SignalSource.API,
    "fetch-failure": SignalSource.API,
    "xhr-error": SignalSource.API,
    "xhr-failure": SignalSource.API,
}


@dataclass(frozen=True)
class MonitorEvent:
    """Разобранное сообщение монитора."""

    kind: str
    source: SignalSource
    message: str
    stack: str | None = None
    url: str | None = None
    method: str | None = None
    status: int | None = None
    status_text: str | None = None


def is_monitor_message(text: str) -> bool:
    return text.startswith(MONITOR_PREFIX)


def parse_monitor_message(text: str) -> MonitorEvent | None:
    """Разобрать строку монитора. Некорректные строки возвращают None."""
    if not is_monitor_message(text):
        return None

    raw = text[len(MONITOR_PREFIX):].strip()
    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.debug("Монитор: невалидный JSON (%s): %.200s", exc, raw)
        return None
    if not isinstance(payload, dict):
        return None

    kind = str(payload.get("kind", ""))
    source = _SOURCE_BY_KIND.get(kind)
    if source is None:
        logger.debug("Монитор: неизвестный kind=%r", kind)
        return None

    status = payload.get("status")
    return MonitorEvent(
        kind=kind,
        source=source,
        message=str(payload.get("message") or ""),
        stack=payload.get("stack") or None,
        url=payload.get("url") or None,
        method=payload.get("method") or None,
        status=int(status) if isinstance(status, (int, float)) else None,
        status_text=payload.get("statusText") or None,
    )
