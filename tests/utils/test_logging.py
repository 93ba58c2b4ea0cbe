"""Tests for logging utilities."""

import pytest
import structlog
from structlog.testing import capture_logs


class TestLogOperation:
    """Tests for log_operation()."""

    def test_success(self):
        from conductor.utils.logging import log_operation

        with capture_logs() as logs:
            with log_operation("seed_data", project="cityguide") as op:
                op["rows"] = 3

        assert [entry["event"] for entry in logs] == ["seed_data started", "seed_data completed"]
        assert logs[-1]["success"] is True
        assert logs[-1]["project"] == "cityguide"

    def test_failure_is_logged_and_raised(self):
        from conductor.utils.logging import log_operation

        with capture_logs() as logs:
            with pytest.raises(OSError):
                with log_operation("create_dirs"):
                    raise OSError("read-only file system")

        assert logs[-1]["event"] == "create_dirs failed"
        assert logs[-1]["error"] == "read-only file system"
        assert logs[-1]["log_level"] == "error"


class TestLogContext:
    def test_binds_and_resets_contextvars(self):
        from conductor.utils.logging import LogContext

        with LogContext(pipeline_id="pipeline-1"):
            assert structlog.contextvars.get_contextvars()["pipeline_id"] == "pipeline-1"

        assert "pipeline_id" not in structlog.contextvars.get_contextvars()


class TestExecutionLogger:
    def test_entries(self):
        from conductor.utils.logging import ExecutionLogger

        exec_log = ExecutionLogger("login", "Login", "Chrome Desktop")
        exec_log.step_started(0, "navigate", "/login")
        exec_log.step_failed(0, "navigate", "timeout")
        exec_log.screenshot_taken("login.png")

        assert exec_log.entries == [
            "Executing step 0: navigate /login",
            "Step 0 (navigate) failed: timeout",
            "Screenshot saved: login.png",
        ]
        assert exec_log.step_count == 1


class TestConfigureLogging:
    def test_renderer_selection(self):
        from conductor.utils.logging import configure_logging

        try:
            configure_logging("DEBUG", json_format=True)
            assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)

            configure_logging("INFO", json_format=False)
            assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)
        finally:
            structlog.reset_defaults()

    def test_timestamp_can_be_left_out(self):
        from conductor.utils.logging import configure_logging

        def has_timestamper():
            return any(
                isinstance(p, structlog.processors.TimeStamper) for p in structlog.get_config()["processors"]
            )

        try:
            configure_logging("INFO", include_timestamp=True)
            assert has_timestamper()

            configure_logging("INFO", include_timestamp=False)
            assert not has_timestamper()
        finally:
            structlog.reset_defaults()
