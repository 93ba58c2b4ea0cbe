"""Diagnostic records captured when an operation finally fails."""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from ..browser import BrowserPage


@dataclass
class EnvironmentInfo:
    user_agent: str = "unknown"
    viewport: dict[str, int] = field(default_factory=lambda: {"width": 0, "height": 0})
    platform: str = "unknown"
    browser_version: str = "unknown"


@dataclass
class ErrorContext:
    """Everything known about a terminal failure."""

    test_id: str
    environment: str
    url: str
    timestamp: str
    error_type: str
    message: str
    stack_trace: str
    screenshot: Optional[str] = None
    console_errors: list[str] = field(default_factory=list)
    network_errors: list[str] = field(default_factory=list)
    environment_info: EnvironmentInfo = field(default_factory=EnvironmentInfo)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RetryContext:
    """Identifies an operation to the retry handler.

    The handler fills ``diagnostics`` before re-raising a terminal failure,
    so callers can attach it to their results.
    """

    test_id: str = "unknown"
    environment: str = "unknown"
    url: Optional[str] = None
    page: Optional[BrowserPage] = None
    operation: Optional[str] = None
    diagnostics: Optional[ErrorContext] = None
    attempts: int = 0


@dataclass
class ErrorSummary:
    total_errors: int
    errors_by_type: dict[str, int]
    errors_by_environment: dict[str, int]
    recent_errors: list[ErrorContext]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "errors_by_type": self.errors_by_type,
            "errors_by_environment": self.errors_by_environment,
            "recent_errors": [e.to_dict() for e in self.recent_errors],
        }
