"""Экспорт задач для разработчиков в CSV для трекеров задач."""

from __future__ import annotations

import csv
import io

from vigil.models.analysis import DeveloperTask

CSV_HEADERS = [
    "Task ID",
    "Title",
    "Description",
    "Priority",
    "Category",
    "Estimated Hours",
    "Status",
    "Related Errors",
    "Acceptance Criteria",
    "Testing Notes",
    "Dependencies",
]

_LIST_SEPARATOR = "; "


def task_row(task: DeveloperTask) -> list[str]:
    return [
        task.id,
        task.title,
        task.description,
        task.priority.value,
        task.category.value,
        f"{task.estimated_hours:g}",
        "Open",
        _LIST_SEPARATOR.join(task.related_errors),
        _LIST_SEPARATOR.join(task.acceptance_criteria),
        task.testing_notes,
        _LIST_SEPARATOR.join(task.dependencies),
    ]


def generate_tasks_csv(tasks: list[DeveloperTask]) -> str:
    """CSV с заголовком и одной строкой на задачу (экранирование — модуль csv)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for task in tasks:
        writer.writerow(task_row(task))
    return buffer.getvalue()
