"""Report generation for pipeline results.

Rendering of human-facing formats (html, pdf, junit) is left to generators
supplied by the embedding application. The JSON generator here writes the
machine-readable result.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, get_args

import structlog

from ..config import ReportFormat, ReportingConfig

if TYPE_CHECKING:
    from ..orchestrator.models import PipelineResult

logger = structlog.get_logger()

REPORT_FORMATS: tuple[str, ...] = get_args(ReportFormat)

SECONDS_PER_DAY = 86400


class ReportError(Exception):
    """Base exception for report errors."""
    pass


class UnsupportedReportFormatError(ReportError):
    def __init__(self, format: str, supported: tuple[str, ...]):
        self.format = format
        super().__init__(f"Unsupported report format '{format}' (supported: {', '.join(supported)})")


class ReportGenerator(ABC):
    """Turns a PipelineResult into a report file."""

    supported_formats: tuple[str, ...] = REPORT_FORMATS

    @abstractmethod
    async def generate(self, result: "PipelineResult", format: str) -> str:
        """Write a report.

        Returns:
            Path of the written report

        Raises:
            UnsupportedReportFormatError: If the format is not handled
        """

    async def archive_old_reports(self) -> int:
        """Remove reports past their retention. Returns how many were removed."""
        return 0


class JsonReportGenerator(ReportGenerator):
    """Writes ``<pipeline_id>.json`` into the report directory."""

    supported_formats = ("json",)

    def __init__(self, config: Optional[ReportingConfig] = None):
        self.config = config or ReportingConfig()
        self.output_dir = Path(self.config.output_dir)
        self.log = logger.bind(component="json_report")

    async def generate(self, result: "PipelineResult", format: str) -> str:
        if format not in self.supported_formats:
            raise UnsupportedReportFormatError(format, self.supported_formats)

        output_path = self.output_dir / f"{result.pipeline_id}.json"
        report = self._build(result)
        await asyncio.to_thread(self._write, output_path, report)

        self.log.debug("Generated JSON report", path=str(output_path))
        return str(output_path)

    def _build(self, result: "PipelineResult") -> dict[str, Any]:
        report = result.to_dict()
        for suite in report["suite_results"].values():
            for by_test in suite["environment_results"].values():
                for test in by_test.values():
                    if not self.config.include_screenshots:
                        test["screenshots"] = []
                    if not self.config.include_videos:
                        test["videos"] = []
                    if not self.config.include_network_logs:
                        test["network_activity"] = []
        return report

    async def archive_old_reports(self) -> int:
        """Delete JSON reports older than ``archive_after_days``. Zero keeps everything."""
        if self.config.archive_after_days == 0:
            return 0
        cutoff = time.time() - self.config.archive_after_days * SECONDS_PER_DAY
        removed = await asyncio.to_thread(self._remove_older_than, cutoff)
        if removed:
            self.log.info("Archived old reports", removed=removed, older_than_days=self.config.archive_after_days)
        return removed

    def _remove_older_than(self, cutoff: float) -> int:
        if not self.output_dir.is_dir():
            return 0
        removed = 0
        for path in self.output_dir.glob("*.json"):
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        return removed

    @staticmethod
    def _write(path: Path, report: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(report, indent=2, default=str))
