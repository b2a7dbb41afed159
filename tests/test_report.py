"""Тесты HTML-отчёта, CSV задач и файлового рендерера."""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone

from conftest import make_detected_error, make_suite_result

from vigil.models.analysis import DeveloperTask
from vigil.models.common import Severity, SuiteStatus, TaskCategory, TaskPriority
from vigil.report.base import ReportRenderer
from vigil.report.csv_export import CSV_HEADERS, generate_tasks_csv, task_row
from vigil.report.html_report import generate_html_report
from vigil.report.renderer import FileReportRenderer
from vigil.services.aggregation_service import ResultAggregator

GENERATED_AT = datetime(2026, 1, 31, 10, 15, 0, 123000, tzinfo=timezone.utc)


def _aggregated(results=None, errors=None):
    return ResultAggregator().aggregate(
        results if results is not None else [make_suite_result()],
        errors or [],
        generated_at=GENERATED_AT,
    )


def _task(**overrides) -> DeveloperTask:
    defaults: dict = {
        "id": "TASK-001",
        "title": "Fix network errors on /api/users",
        "description": 'Address 3 occurrences, "quoted", with comma',
        "priority": TaskPriority.P1,
        "category": TaskCategory.BUG_FIX,
        "estimated_hours": 4.0,
        "related_errors": ["error-1", "error-2"],
        "acceptance_criteria": ["Error is no longer reproducible", "All related test cases pass"],
        "testing_notes": "Test across all affected roles: developer.",
        "dependencies": ["Wait for higher priority fixes to be completed"],
    }
    defaults.update(overrides)
    return DeveloperTask.model_validate(defaults)


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


def test_html_report_contains_sections() -> None:
    results = [
        make_suite_result(suite_name="Developer Suite"),
        make_suite_result(suite_name="Manager Suite", role="manager", status=SuiteStatus.FAILED, errors=2),
    ]
    errors = [make_detected_error(severity=Severity.CRITICAL, message="Cannot read properties of undefined")]

    html = generate_html_report(_aggregated(results, errors))

    assert html.startswith("<!DOCTYPE html>")
    assert "2026-01-31 10:15 UTC" in html
    assert "Сводка для руководства" in html
    assert "Developer Suite" in html
    assert "Manager Suite" in html
    assert "Задачи для разработчиков" in html
    assert "Cannot read properties of undefined" in html
    assert "status-critical" in html


def test_html_report_escapes_untrusted_text() -> None:
    errors = [make_detected_error(message="<script>alert('x')</script>", url="http://app/?a=1&b=2")]

    html = generate_html_report(_aggregated(errors=errors))

    assert "<script>alert" not in html
    assert "&lt;script&gt;alert" in html
    assert "a=1&amp;b=2" in html


def test_html_report_for_clean_run() -> None:
    html = generate_html_report(_aggregated())

    assert "Ошибок не обнаружено." in html
    assert "status-excellent" in html
    assert "Задачи для разработчиков" not in html


def test_html_report_without_suites() -> None:
    html = generate_html_report(_aggregated(results=[]))

    assert "Ни один набор не был запущен." in html


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def test_task_row_formats_lists_and_hours() -> None:
    row = task_row(_task(estimated_hours=2.5))

    assert len(row) == len(CSV_HEADERS)
    assert row[3] == "P1"
    assert row[4] == "bug-fix"
    assert row[5] == "2.5"
    assert row[6] == "Open"
    assert row[7] == "error-1; error-2"
    assert row[8] == "Error is no longer reproducible; All related test cases pass"


def test_generate_tasks_csv_round_trips_through_csv_reader() -> None:
    text = generate_tasks_csv([_task(), _task(id="TASK-002", estimated_hours=8.0)])

    rows = list(csv.reader(io.StringIO(text)))

    assert rows[0] == CSV_HEADERS
    assert len(rows) == 3
    assert rows[1][2] == 'Address 3 occurrences, "quoted", with comma'
    assert rows[2][0] == "TASK-002"
    assert rows[2][5] == "8"


def test_generate_tasks_csv_header_only() -> None:
    assert generate_tasks_csv([]) == ",".join(CSV_HEADERS) + "\n"


# ---------------------------------------------------------------------------
# Рендерер
# ---------------------------------------------------------------------------


def test_file_renderer_writes_html_and_csv(tmp_path) -> None:
    renderer = FileReportRenderer()
    aggregated = _aggregated(
        [make_suite_result(status=SuiteStatus.FAILED, errors=1)],
        [make_detected_error()],
    )

    paths = renderer.render(aggregated, tmp_path / "out")

    html_path, csv_path = paths
    assert html_path.name == "comprehensive-report-2026-01-31T10-15-00-123Z.html"
    assert csv_path.name == "developer-tasks-2026-01-31T10-15-00-123Z.csv"
    assert "<!DOCTYPE html>" in html_path.read_text(encoding="utf-8")
    lines = csv_path.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("Task ID,Title")
    assert len(lines) == 1 + len(aggregated.developer_tasks)


def test_file_renderer_satisfies_protocol() -> None:
    assert isinstance(FileReportRenderer(), ReportRenderer)
