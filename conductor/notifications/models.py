"""Notification payloads and the text builders for pipeline events."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from ..orchestrator.models import PipelineResult

NOTIFICATION_SOURCE = "test-automation"

STATUS_EMOJI = {
    "passed": "✅",
    "failed": "❌",
    "partial": "⚠️",
}


class NotificationType(str, Enum):
    START = "start"
    COMPLETION = "completion"
    FAILURE = "failure"
    TEST = "test"


class NotificationError(Exception):
    """A channel could not deliver a notification."""

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"{channel}: {message}")


@dataclass(frozen=True)
class Notification:
    """One message, fanned out to every enabled channel."""

    type: NotificationType
    subject: str
    message: str
    pipeline_id: str
    environment: str
    data: dict[str, Any] = field(default_factory=dict)
    urgent: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_payload(self) -> dict[str, Any]:
        """Structured form posted by machine-facing channels."""
        return {
            "source": NOTIFICATION_SOURCE,
            "type": self.type.value,
            "pipeline_id": self.pipeline_id,
            "environment": self.environment,
            "timestamp": self.timestamp.isoformat(),
            "subject": self.subject,
            "message": self.message,
            "urgent": self.urgent,
            "data": self.data,
        }


def format_duration(milliseconds: float) -> str:
    """Format a duration as ``1h 2m 3s``, ``2m 3s`` or ``3s``."""
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def build_start_notification(
    pipeline_id: str,
    environment: str,
    triggered_by: str,
    timestamp: Optional[datetime] = None,
) -> Notification:
    timestamp = timestamp or datetime.now(UTC)
    message = (
        "🚀 Test Pipeline Started\n\n"
        f"Pipeline ID: {pipeline_id}\n"
        f"Environment: {environment}\n"
        f"Triggered by: {triggered_by}\n"
        f"Timestamp: {timestamp.isoformat()}"
    )
    return Notification(
        type=NotificationType.START,
        subject="Test Pipeline Started",
        message=message,
        pipeline_id=pipeline_id,
        environment=environment,
        data={"triggered_by": triggered_by},
        timestamp=timestamp,
    )


def build_completion_notification(result: "PipelineResult") -> Notification:
    """Summary of a finished run: status, duration, pass rate and counts."""
    status = result.status.value
    summary = result.summary
    message = (
        f"{STATUS_EMOJI.get(status, '❔')} Test Pipeline Completed\n\n"
        f"Pipeline ID: {result.pipeline_id}\n"
        f"Environment: {result.environment}\n"
        f"Status: {status}\n"
        f"Duration: {format_duration(result.duration_ms)}\n"
        f"Pass Rate: {summary.pass_rate:.1f}%\n"
        f"Tests: {summary.passed_tests}/{summary.total_tests} passed"
    )
    return Notification(
        type=NotificationType.COMPLETION,
        subject=f"Test Pipeline {status}",
        message=message,
        pipeline_id=result.pipeline_id,
        environment=result.environment,
        data={"status": status, "summary": summary.to_dict(), "artifacts": list(result.artifacts)},
        timestamp=result.timestamp,
    )


def build_failure_notification(
    pipeline_id: str,
    environment: str,
    error: BaseException,
    duration_ms: float,
) -> Notification:
    message = (
        "❌ Test Pipeline Failed\n\n"
        f"Pipeline ID: {pipeline_id}\n"
        f"Environment: {environment}\n"
        f"Duration: {format_duration(duration_ms)}\n"
        f"Error: {error}"
    )
    return Notification(
        type=NotificationType.FAILURE,
        subject="Test Pipeline Failed",
        message=message,
        pipeline_id=pipeline_id,
        environment=environment,
        data={"error": str(error), "error_type": type(error).__name__, "duration_ms": duration_ms},
        urgent=True,
    )


def build_test_notification() -> Notification:
    return Notification(
        type=NotificationType.TEST,
        subject="Test Notification",
        message="🧪 Test notification from automation system",
        pipeline_id="test-pipeline",
        environment="test",
        data={"message": "Test notification from automation system"},
    )
