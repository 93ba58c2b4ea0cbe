"""Data models for test execution.

This module defines the structures the ExecutionEngine consumes and produces:
- StepAction / TestStatus: closed vocabularies
- TestStep / TestCase: immutable test definitions
- NetworkActivity / PerformanceMetrics: per-run observations
- TestResult: outcome of one (test case, environment) execution
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from ..config import Priority
from ..recovery import ErrorContext


class StepAction(str, Enum):
    """Actions a test step can perform."""

    NAVIGATE = "navigate"
    CLICK = "click"
    FILL = "fill"
    WAIT = "wait"  # Fixed delay or load state
    SCREENSHOT = "screenshot"
    API_CALL = "api_call"  # Rate-limited HTTP call
    WAIT_FOR_TEXT = "wait_for_text"
    WAIT_FOR_COUNT = "wait_for_count"
    WAIT_FOR_NETWORK_IDLE = "wait_for_network_idle"
    WAIT_FOR_STABILITY = "wait_for_stability"  # Page, or element when target is set


class TestStatus(str, Enum):
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class ExecutionError(Exception):
    """Base exception for execution errors."""
    pass


class StepExecutionError(ExecutionError):
    """A step failed after its retries. Carries the failure diagnostics."""

    def __init__(
        self,
        step_index: int,
        action: str,
        cause: BaseException,
        diagnostics: Optional[ErrorContext] = None,
    ):
        self.step_index = step_index
        self.action = action
        self.cause = cause
        self.diagnostics = diagnostics
        super().__init__(f"Step {step_index} ({action}) failed: {cause}")


@dataclass(frozen=True)
class TestStep:
    """One step of a test case.

    Example:
        TestStep(action="fill", target="#email", value="ada@example.test")
        TestStep(action="api_call", target="/api/cities", method="GET")
        TestStep(action="wait", custom_wait_ms=500)
    """

    __test__ = False

    action: str
    target: Optional[str] = None
    value: Optional[str] = None
    expected_result: Optional[str] = None
    screenshot: bool = False  # Capture after the step
    wait_strategy: Optional[str] = None  # LoadStrategy value
    custom_wait_ms: Optional[int] = None
    method: str = "GET"  # api_call only
    body: Any = None  # api_call only


@dataclass(frozen=True)
class TestCase:
    """Immutable test definition."""

    __test__ = False

    id: str
    name: str
    steps: tuple[TestStep, ...] = ()
    description: str = ""
    objective: str = ""
    expected_outcome: str = ""
    tags: tuple[str, ...] = ()
    priority: Priority = Priority.MEDIUM
    timeout_ms: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "tags", tuple(self.tags))


@dataclass
class NetworkActivity:
    url: str
    method: str
    status: int = 0
    response_time_ms: int = 0
    size: int = 0
    timestamp: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PerformanceMetrics:
    """Page performance readings. Zero when unavailable."""

    page_load_time: float = 0
    first_contentful_paint: float = 0
    largest_contentful_paint: float = 0
    cumulative_layout_shift: float = 0
    first_input_delay: float = 0
    time_to_interactive: float = 0
    memory_usage: float = 0
    cpu_usage: float = 0

    @classmethod
    def from_page(cls, raw: Optional[dict[str, Any]]) -> "PerformanceMetrics":
        """Build from the camelCase dict the in-page script returns."""
        raw = raw or {}
        return cls(
            page_load_time=raw.get("pageLoadTime") or 0,
            first_contentful_paint=raw.get("firstContentfulPaint") or 0,
            largest_contentful_paint=raw.get("largestContentfulPaint") or 0,
            cumulative_layout_shift=raw.get("cumulativeLayoutShift") or 0,
            first_input_delay=raw.get("firstInputDelay") or 0,
            time_to_interactive=raw.get("timeToInteractive") or 0,
            memory_usage=raw.get("memoryUsage") or 0,
            cpu_usage=raw.get("cpuUsage") or 0,
        )

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class TestResult:
    """Outcome of one (test case, environment) execution. Never mutated."""

    __test__ = False

    test_id: str
    environment: str
    status: TestStatus
    duration_ms: int
    error: Optional[str] = None
    error_type: Optional[str] = None
    failed_step: Optional[int] = None
    screenshots: tuple[str, ...] = ()
    videos: tuple[str, ...] = ()
    traces: tuple[str, ...] = ()
    logs: tuple[str, ...] = ()
    network_activity: tuple[NetworkActivity, ...] = ()
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    diagnostics: Optional[ErrorContext] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def passed(self) -> bool:
        return self.status == TestStatus.PASSED

    @classmethod
    def failure(cls, test_id: str, environment: str, error: BaseException, duration_ms: int = 0) -> "TestResult":
        """Failed result for an execution that never produced its own."""
        return cls(
            test_id=test_id,
            environment=environment,
            status=TestStatus.FAILED,
            duration_ms=duration_ms,
            error=str(error),
            error_type=type(error).__name__,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_id": self.test_id,
            "environment": self.environment,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "error_type": self.error_type,
            "failed_step": self.failed_step,
            "screenshots": list(self.screenshots),
            "videos": list(self.videos),
            "traces": list(self.traces),
            "logs": list(self.logs),
            "network_activity": [n.to_dict() for n in self.network_activity],
            "performance_metrics": self.performance_metrics.to_dict(),
            "diagnostics": self.diagnostics.to_dict() if self.diagnostics else None,
            "started_at": self.started_at.isoformat(),
        }
