"""Tests for notification builders."""

from datetime import UTC, datetime

import pytest


class TestFormatDuration:
    @pytest.mark.parametrize(
        "ms,expected",
        [(0, "0s"), (3_400, "3s"), (123_000, "2m 3s"), (3_723_000, "1h 2m 3s")],
    )
    def test_format_duration(self, ms, expected):
        from conductor.notifications import format_duration

        assert format_duration(ms) == expected


class TestBuilders:
    """Tests for the start, completion and failure messages."""

    def test_start_notification(self):
        from conductor.notifications import NotificationType, build_start_notification

        timestamp = datetime(2024, 5, 1, 2, 0, tzinfo=UTC)
        notification = build_start_notification("pipeline-1", "staging", "schedule", timestamp)

        assert notification.type == NotificationType.START
        assert notification.message.startswith("🚀 Test Pipeline Started")
        assert "Triggered by: schedule" in notification.message
        assert "Timestamp: 2024-05-01T02:00:00+00:00" in notification.message

    def test_completion_notification(self):
        from conductor.execution import TestResult, TestStatus
        from conductor.notifications import build_completion_notification
        from conductor.orchestrator import PipelineResult, SuiteResult

        results = {
            "a": TestResult(test_id="a", environment="Chrome Desktop", status=TestStatus.PASSED, duration_ms=1),
            "b": TestResult(test_id="b", environment="Chrome Desktop", status=TestStatus.PASSED, duration_ms=1),
            "c": TestResult(test_id="c", environment="Chrome Desktop", status=TestStatus.FAILED, duration_ms=1),
        }
        suite = SuiteResult.from_results("smoke", 10, {"Chrome Desktop": results})
        pipeline = PipelineResult.from_suites("pipeline-7", "staging", 125_000, {"smoke": suite})

        notification = build_completion_notification(pipeline)

        assert notification.subject == "Test Pipeline partial"
        assert notification.message.startswith("⚠️ Test Pipeline Completed")
        assert "Duration: 2m 5s" in notification.message
        assert "Pass Rate: 66.7%" in notification.message
        assert "Tests: 2/3 passed" in notification.message
        assert notification.data["summary"]["failed_tests"] == 1

    def test_failure_notification_is_urgent(self):
        from conductor.notifications import build_failure_notification

        notification = build_failure_notification("pipeline-9", "staging", OSError("disk full"), 4_000)

        assert notification.urgent is True
        assert "Error: disk full" in notification.message
        assert notification.data["error_type"] == "OSError"

    def test_payload(self):
        from conductor.notifications import build_test_notification

        payload = build_test_notification().to_payload()

        assert payload["source"] == "test-automation"
        assert payload["type"] == "test"
        assert payload["urgent"] is False
