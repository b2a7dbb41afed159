"""Тесты инкрементального разбора вывода тест-раннера."""

from __future__ import annotations

from vigil.execution.events import EventKind
from vigil.execution.output_parser import SuiteOutputParser, count_errors, count_warnings


def _kinds(signals) -> list[EventKind]:
    return [s.kind for s in signals]


def test_playwright_list_reporter_lines() -> None:
    parser = SuiteOutputParser()

    started = parser.feed_stdout("Running 3 tests using 1 worker")
    passed = parser.feed_stdout("  ✓  1 [chromium] › login.spec.ts:3:5 › logs in (1.2s)")
    failed = parser.feed_stdout("  ✘  2 [chromium] › team.spec.ts:8:5 › shows team (3.0s)")

    assert _kinds(started) == [EventKind.TEST_STARTED]
    assert _kinds(passed) == [EventKind.TEST_PASSED, EventKind.TEST_PROGRESS]
    assert _kinds(failed) == [EventKind.TEST_FAILED, EventKind.TEST_PROGRESS]
    progress = parser.progress
    assert (progress.total, progress.passed, progress.failed) == (3, 1, 1)
    assert progress.completed == 2
    assert "team.spec.ts" in (progress.current_test or "")


def test_pytest_lines() -> None:
    parser = SuiteOutputParser()

    parser.feed_stdout("collected 2 items")
    parser.feed_stdout("tests/test_a.py::test_ok PASSED")
    signals = parser.feed_stdout("tests/test_a.py::test_bad FAILED")

    assert parser.progress.total == 2
    assert parser.progress.passed == 1
    assert parser.progress.failed == 1
    assert parser.progress.current_test == "tests/test_a.py::test_bad"
    # снимок прогресса фиксируется на момент строки
    assert signals[0].progress.failed == 1


def test_irrelevant_lines_produce_no_signals() -> None:
    parser = SuiteOutputParser()

    assert parser.feed_stdout("") == []
    assert parser.feed_stdout("  some log line") == []
    assert parser.progress.total == 0


def test_stderr_runtime_errors() -> None:
    parser = SuiteOutputParser()

    assert _kinds(parser.feed_stderr("TypeError: x is undefined")) == [EventKind.REAL_TIME_ERROR]
    assert parser.feed_stderr("DeprecationWarning: punycode") == []


def test_count_errors_and_warnings_use_summary_line() -> None:
    output = "1 failed earlier\n  3 failed\n  5 passed (12.3s)\n  2 warnings"

    assert count_errors(output) == 3
    assert count_warnings(output) == 2


def test_counts_default_to_zero() -> None:
    assert count_errors("5 passed") == 0
    assert count_warnings("") == 0
