"""Файловый рендерер: HTML-отчёт и CSV задач в выходной директории."""

from __future__ import annotations

import logging
from pathlib import Path

from vigil.execution.layout import run_stamp
from vigil.models.results import AggregatedTestResults
from vigil.report.csv_export import generate_tasks_csv
from vigil.report.html_report import generate_html_report

logger = logging.getLogger(__name__)


class FileReportRenderer:
    """Пишет ``comprehensive-report-<ts>.html`` и ``developer-tasks-<ts>.csv``.

    Реализует протокол :class:`~vigil.report.base.ReportRenderer`.
    """

    def render(self, results: AggregatedTestResults, output_dir: Path) -> list[Path]:
        output_dir.mkdir(parents=True, exist_ok=True)
        stamp = run_stamp(results.generated_at)

        html_path = output_dir / f"comprehensive-report-{stamp}.html"
        html_path.write_text(generate_html_report(results), encoding="utf-8")
        logger.info("HTML-отчёт сохранён: %s", html_path)

        csv_path = output_dir / f"developer-tasks-{stamp}.csv"
        csv_path.write_text(generate_tasks_csv(results.developer_tasks), encoding="utf-8")
        logger.info("CSV задач сохранён: %s (%d задач)", csv_path, len(results.developer_tasks))

        return [html_path, csv_path]
