"""Pipeline report generation."""

from .generator import (
    REPORT_FORMATS,
    JsonReportGenerator,
    ReportError,
    ReportGenerator,
    UnsupportedReportFormatError,
)

__all__ = [
    "ReportGenerator",
    "JsonReportGenerator",
    "ReportError",
    "UnsupportedReportFormatError",
    "REPORT_FORMATS",
]
