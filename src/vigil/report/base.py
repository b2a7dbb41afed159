"""Контракт рендеринга отчётов."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from vigil.models.results import AggregatedTestResults


@runtime_checkable
class ReportRenderer(Protocol):
    """Превращает ``AggregatedTestResults`` в документы для людей.

    Рендерер получает только агрегат и ничего не знает об оркестраторе
    и агрегаторе. Возвращает пути созданных файлов.
    """

    def render(self, results: AggregatedTestResults, output_dir: Path) -> list[Path]:
        ...
