"""Раскладка выходной директории прогона."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

SENTINEL_NAME = ".gitkeep"
LOCK_FILE_NAMES = (".last-run.json", ".lock", "playwright.lock")


def run_stamp(moment: datetime | None = None) -> str:
    """Метка времени для имён файлов: ``2026-01-31T10-15-00-123Z``."""
    moment = moment or datetime.now(timezone.utc)
    stamp = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{stamp}-{moment.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class OutputLayout:
    """Пути внутри ``<output_dir>``, на которые опираются агрегатор и отчёты."""

    root: Path

    @classmethod
    def from_dir(cls, output_dir: str | Path) -> OutputLayout:
        return cls(Path(output_dir))

    @property
    def artifacts(self) -> Path:
        return self.root / "artifacts"

    @property
    def error_reports(self) -> Path:
        return self.root / "error-reports"

    @property
    def execution_summary(self) -> Path:
        return self.root / "execution-summary.json"

    @property
    def execution_error(self) -> Path:
        return self.root / "execution-error.json"

    @property
    def lock_files(self) -> list[Path]:
        return [self.artifacts / name for name in LOCK_FILE_NAMES]

    def aggregated_results(self, stamp: str) -> Path:
        return self.root / f"aggregated-results-{stamp}.json"

    def archive(self, stamp: str) -> Path:
        return self.root / f"archive-{stamp}"
