"""Инкрементальный разбор вывода тест-раннера.

Понимает построчный вывод Playwright (list-репортёр) и pytest:

- ``Running 12 tests using 2 workers`` / ``collected 12 items`` — общее число тестов;
- ``✓ 1 [chromium] › login.spec.ts:3:5 › ...`` / ``test_x.py::test_a PASSED`` — тест прошёл;
- ``✘ 2 [chromium] › ...`` / ``test_x.py::test_b FAILED`` — тест упал;
- строки stderr с ``Error:``/``TypeError:``/... — ошибка в реальном времени.

Итоговые счётчики ошибок и предупреждений берутся из сводной строки
(``3 failed``, ``2 warnings``) по полному выводу.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from vigil.execution.events import EventKind
from vigil.models.suite import TestProgress

_TOTAL_RE = re.compile(r"\bRunning (\d+) tests?\b|\bcollected (\d+) items?\b")
_PASSED_MARKERS = ("✓", "✔")
_FAILED_MARKERS = ("✗", "✘", "×")
_PYTEST_RESULT_RE = re.compile(r"^(\S+::\S+)\s+(PASSED|FAILED|ERROR)\b")
_FAILED_COUNT_RE = re.compile(r"(\d+) failed")
_WARNING_COUNT_RE = re.compile(r"(\d+) warnings?")
_RUNTIME_ERROR_MARKERS = (
    "Error:",
    "TypeError:",
    "ReferenceError:",
    "TimeoutError:",
    "NetworkError:",
)
_LEADING_INDEX_RE = re.compile(r"^\d+\s+")


@dataclass(frozen=True)
class OutputSignal:
    """Событие, выделенное из одной строки вывода."""

    kind: EventKind
    line: str
    progress: TestProgress


class SuiteOutputParser:
    """Состояние разбора вывода одного запуска набора."""

    def __init__(self) -> None:
        self._total = 0
        self._passed = 0
        self._failed = 0
        self._current_test: str | None = None

    @property
    def progress(self) -> TestProgress:
        return TestProgress(
            total=self._total,
            passed=self._passed,
            failed=self._failed,
            current_test=self._current_test,
        )

    def feed_stdout(self, line: str) -> list[OutputSignal]:
        signals: list[OutputSignal] = []
        stripped = line.strip()
        if not stripped:
            return signals

        total = _TOTAL_RE.search(stripped)
        if total:
            self._total = int(total.group(1) or total.group(2))
            signals.append(self._signal(EventKind.TEST_STARTED, line))
            return signals

        outcome = self._outcome(stripped)
        if outcome is None:
            return signals

        kind, test_name = outcome
        self._current_test = test_name
        if kind is EventKind.TEST_PASSED:
            self._passed += 1
        else:
            self._failed += 1
        signals.append(self._signal(kind, line))
        signals.append(self._signal(EventKind.TEST_PROGRESS, line))
        return signals

    def feed_stderr(self, line: str) -> list[OutputSignal]:
        if any(marker in line for marker in _RUNTIME_ERROR_MARKERS):
            return [self._signal(EventKind.REAL_TIME_ERROR, line)]
        return []

    # ------------------------------------------------------------------

    def _outcome(self, stripped: str) -> tuple[EventKind, str] | None:
        for marker in _PASSED_MARKERS:
            if stripped.startswith(marker):
                return EventKind.TEST_PASSED, _test_name(stripped[len(marker):])
        for marker in _FAILED_MARKERS:
            if stripped.startswith(marker):
                return EventKind.TEST_FAILED, _test_name(stripped[len(marker):])

        match = _PYTEST_RESULT_RE.match(stripped)
        if match:
            kind = EventKind.TEST_PASSED if match.group(2) == "PASSED" else EventKind.TEST_FAILED
            return kind, match.group(1)
        return None

    def _signal(self, kind: EventKind, line: str) -> OutputSignal:
        return OutputSignal(kind=kind, line=line, progress=self.progress)


def _test_name(rest: str) -> str:
    return _LEADING_INDEX_RE.sub("", rest.strip())


def count_errors(output: str) -> int:
    """Число упавших тестов по последней сводной строке ``N failed``."""
    matches = _FAILED_COUNT_RE.findall(output)
    return int(matches[-1]) if matches else 0


def count_warnings(output: str) -> int:
    """Число предупреждений по последней строке ``N warning(s)``."""
    matches = _WARNING_COUNT_RE.findall(output)
    return int(matches[-1]) if matches else 0
