"""Tests for the PipelineOrchestrator.

This module tests:
- Run order of notifications, suites and reports
- Collaborator failures that must not fail the run
- Orchestration faults that must
- Manual runs, health checks and scheduled runs
- Sequential and worker-capped suite fan-out
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conductor.execution import TestCase, TestResult, TestStatus
from conductor.notifications import NotificationChannel
from conductor.reporting import ReportGenerator


class RecordingChannel(NotificationChannel):
    name = "recording"

    def __init__(self, events: list):
        self.events = events
        self.notifications = []

    async def send(self, notification):
        self.events.append(f"notify:{notification.type.value}")
        self.notifications.append(notification)


class RecordingReporter(ReportGenerator):
    def __init__(self, events: list, output_dir, fail: bool = False):
        self.events = events
        self.output_dir = output_dir
        self.fail = fail

    async def generate(self, result, format):
        self.events.append(f"report:{format}")
        if self.fail:
            raise OSError("report disk full")
        return str(self.output_dir / f"{result.pipeline_id}.{format}")


def make_engine(events: list, failing: tuple[str, ...] = (), crashing: tuple[str, ...] = ()):
    async def run(case, environment):
        events.append(f"run:{case.id}@{environment.name}")
        if case.id in crashing:
            raise RuntimeError("engine crashed")
        status = TestStatus.FAILED if case.id in failing else TestStatus.PASSED
        return TestResult(test_id=case.id, environment=environment.name, status=status, duration_ms=5)

    engine = MagicMock()
    engine.run = AsyncMock(side_effect=run)
    engine.limiter = None
    return engine


@pytest.fixture
def events():
    return []


@pytest.fixture
def settings(tmp_path):
    from conductor.config import Settings

    return Settings(
        output_dir=str(tmp_path / "results"),
        screenshot_dir=str(tmp_path / "results" / "screenshots"),
        error_log_dir=str(tmp_path / "results" / "error-logs"),
        setup_logging=False,
    )


@pytest.fixture
def suites():
    from conductor.orchestrator import TestSuite

    return [
        TestSuite(name="smoke", test_cases=[TestCase(id="login", name="Login"), TestCase(id="search", name="Search")]),
        TestSuite(name="reviews", test_cases=[TestCase(id="write-review", name="Write review")], parallel=False),
    ]


@pytest.fixture
def make_orchestrator(events, settings, suites, desktop_env, mobile_env, tmp_path):
    from conductor.config import PipelineConfig, ReportingConfig
    from conductor.notifications import NotificationService
    from conductor.orchestrator import PipelineOrchestrator

    counter = iter(range(1, 100))

    def _make(engine=None, reporter=None, config=None, **kwargs):
        config = config or PipelineConfig(
            environment="staging",
            reporting=ReportingConfig(formats=["json", "html"], output_dir=str(tmp_path / "reports")),
        )
        channel = RecordingChannel(events)
        orchestrator = PipelineOrchestrator(
            config,
            suites,
            [desktop_env, mobile_env],
            engine or make_engine(events),
            notifier=NotificationService(channels=[channel]),
            reporter=reporter or RecordingReporter(events, tmp_path / "reports"),
            settings=settings,
            id_factory=lambda: f"pipeline-{next(counter)}",
            **kwargs,
        )
        orchestrator.channel = channel
        return orchestrator

    return _make


class TestRunPipeline:
    """Tests for run_pipeline()."""

    @pytest.mark.asyncio
    async def test_run_order(self, make_orchestrator, events):
        from conductor.orchestrator import AggregateStatus

        orchestrator = make_orchestrator()

        result = await orchestrator.run_pipeline(triggered_by="ci")

        assert events[0] == "notify:start"
        assert events[-3:] == ["report:json", "report:html", "notify:completion"]
        runs = [e for e in events if e.startswith("run:")]
        assert runs[-2:] == ["run:write-review@Chrome Desktop", "run:write-review@Chrome Mobile"]
        assert len(runs) == 6

        assert result.status == AggregateStatus.PASSED
        assert result.pipeline_id == "pipeline-1"
        assert result.environment == "staging"
        assert result.triggered_by == "ci"
        assert result.summary.total_tests == 6
        assert [a.rsplit("/", 1)[-1] for a in result.artifacts] == ["pipeline-1.json", "pipeline-1.html"]
        assert orchestrator.last_result is result

    @pytest.mark.asyncio
    async def test_completion_message_reports_partial(self, make_orchestrator, events):
        orchestrator = make_orchestrator(engine=make_engine(events, failing=("search",)))

        result = await orchestrator.run_pipeline()

        assert result.status.value == "partial"
        assert result.suite_results["smoke"].status.value == "partial"
        assert result.suite_results["reviews"].status.value == "passed"
        completion = orchestrator.channel.notifications[-1]
        assert "Status: partial" in completion.message
        assert "Tests: 4/6 passed" in completion.message
        assert "Pass Rate: 66.7%" in completion.message

    @pytest.mark.asyncio
    async def test_engine_crash_becomes_failed_result(self, make_orchestrator, events):
        orchestrator = make_orchestrator(engine=make_engine(events, crashing=("login", "write-review")))

        result = await orchestrator.run_pipeline()

        login = result.suite_results["smoke"].environment_results["Chrome Desktop"]["login"]
        review = result.suite_results["reviews"].environment_results["Chrome Mobile"]["write-review"]
        assert login.status == TestStatus.FAILED
        assert login.error == "engine crashed"
        assert review.status == TestStatus.FAILED
        assert result.summary.failed_tests == 4

    @pytest.mark.asyncio
    async def test_report_failure_is_skipped(self, make_orchestrator, events, tmp_path):
        orchestrator = make_orchestrator(reporter=RecordingReporter(events, tmp_path, fail=True))

        result = await orchestrator.run_pipeline()

        assert result.artifacts == ()
        assert events[-1] == "notify:completion"

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_run(self, make_orchestrator):
        orchestrator = make_orchestrator()
        orchestrator.channel.send = AsyncMock(side_effect=RuntimeError("smtp down"))

        result = await orchestrator.run_pipeline()

        assert result.status.value == "passed"

    @pytest.mark.asyncio
    async def test_setup_fault_raises_and_notifies(self, make_orchestrator, events, settings, tmp_path):
        from conductor.orchestrator import AggregateStatus, PipelineSetupError

        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        settings.screenshot_dir = str(blocker / "screenshots")
        orchestrator = make_orchestrator()

        with pytest.raises(PipelineSetupError):
            await orchestrator.run_pipeline()

        assert events == ["notify:failure"]
        failure = orchestrator.channel.notifications[0]
        assert failure.urgent is True
        assert orchestrator.last_result.status == AggregateStatus.FAILED
        assert orchestrator.last_result.summary.total_tests == 0


class TestManualRun:
    """Tests for trigger_manual_run()."""

    @pytest.mark.asyncio
    async def test_filters_suites_and_environments(self, make_orchestrator, events):
        orchestrator = make_orchestrator()

        result = await orchestrator.trigger_manual_run(["smoke", "nightly"], ["Chrome Mobile"])

        assert [e for e in events if e.startswith("run:")] == [
            "run:login@Chrome Mobile",
            "run:search@Chrome Mobile",
        ]
        assert list(result.suite_results) == ["smoke"]
        assert result.triggered_by == "manual-api"

    @pytest.mark.asyncio
    async def test_none_selects_everything(self, make_orchestrator):
        result = await make_orchestrator().trigger_manual_run()

        assert result.summary.total_tests == 6


class TestLifecycle:
    """Tests for initialize(), health_check() and shutdown()."""

    @pytest.mark.asyncio
    async def test_initialize_creates_directories(self, make_orchestrator, tmp_path):
        orchestrator = make_orchestrator()

        await orchestrator.initialize()

        assert (tmp_path / "reports").is_dir()
        assert (tmp_path / "results" / "screenshots").is_dir()
        assert (tmp_path / "results" / "videos").is_dir()
        assert orchestrator.scheduler is None

    @pytest.mark.asyncio
    async def test_health_check(self, make_orchestrator):
        orchestrator = make_orchestrator()
        await orchestrator.run_pipeline()

        health = orchestrator.health_check()

        assert health["status"] == "healthy"
        assert health["config"]["suite_count"] == 2
        assert health["config"]["browser_count"] == 2
        assert health["last_run"] == {"pipeline_id": "pipeline-1", "status": "passed"}
        assert "scheduler" not in health

    @pytest.mark.asyncio
    async def test_scheduled_run(self, make_orchestrator, tmp_path):
        from conductor.config import PipelineConfig, ReportingConfig, SchedulingConfig
        from conductor.scheduling import Scheduler

        start = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)
        config = PipelineConfig(
            scheduling=SchedulingConfig(enabled=True, cron="*/5 * * * *"),
            reporting=ReportingConfig(output_dir=str(tmp_path / "reports")),
        )
        scheduler = Scheduler(config.scheduling, run_timers=False, clock=lambda: start)
        orchestrator = make_orchestrator(config=config, scheduler=scheduler)

        await orchestrator.initialize()

        task = scheduler.get_task(orchestrator.scheduled_task_id)
        assert task.name == "cityguide-pipeline"
        assert orchestrator.health_check()["scheduler"]["total_tasks"] == 1

        await scheduler.run_pending(start + timedelta(minutes=5))

        assert orchestrator.last_result.triggered_by == "schedule"

        await orchestrator.shutdown()
        assert scheduler.is_initialized is False

    @pytest.mark.asyncio
    async def test_invalid_cron_is_setup_error(self, make_orchestrator, tmp_path):
        from conductor.config import PipelineConfig, ReportingConfig, SchedulingConfig
        from conductor.orchestrator import PipelineSetupError

        config = PipelineConfig(
            scheduling=SchedulingConfig(enabled=True, cron="every day"),
            reporting=ReportingConfig(output_dir=str(tmp_path / "reports")),
        )

        with pytest.raises(PipelineSetupError, match="Scheduler setup failed"):
            await make_orchestrator(config=config).initialize()

    @pytest.mark.asyncio
    async def test_shutdown_releases_collaborators(self, make_orchestrator, events):
        engine = make_engine(events)
        engine.limiter = AsyncMock()
        orchestrator = make_orchestrator(engine=engine)
        orchestrator.notifier.close = AsyncMock()

        await orchestrator.shutdown()

        engine.limiter.stop.assert_awaited_once()
        orchestrator.notifier.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_starts_limiter_sweep(self, make_orchestrator, events):
        from conductor.config import RateLimitConfig
        from conductor.ratelimit import RateLimiter

        engine = make_engine(events)
        engine.limiter = RateLimiter(RateLimitConfig())
        orchestrator = make_orchestrator(engine=engine)

        await orchestrator.initialize()
        assert engine.limiter.sweeper_running is True

        await orchestrator.shutdown()
        assert engine.limiter.sweeper_running is False

    @pytest.mark.asyncio
    async def test_initialize_configures_logging(self, make_orchestrator, settings):
        settings.setup_logging = True
        settings.log_level = "DEBUG"
        settings.log_json = True
        orchestrator = make_orchestrator()

        with patch("conductor.orchestrator.pipeline.configure_logging") as configure:
            await orchestrator.initialize()

        configure.assert_called_once_with("DEBUG", True)

    @pytest.mark.asyncio
    async def test_logging_left_alone_when_disabled(self, make_orchestrator):
        orchestrator = make_orchestrator()

        with patch("conductor.orchestrator.pipeline.configure_logging") as configure:
            await orchestrator.initialize()

        configure.assert_not_called()


def make_tracking_engine(events: list):
    """Engine whose runs yield to the loop, recording start and end."""
    import asyncio

    active = 0
    engine = MagicMock()
    engine.limiter = None
    engine.peak = 0

    async def run(case, environment):
        nonlocal active
        active += 1
        engine.peak = max(engine.peak, active)
        events.append(f"start:{case.id}@{environment.name}")
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        events.append(f"end:{case.id}@{environment.name}")
        active -= 1
        return TestResult(test_id=case.id, environment=environment.name, status=TestStatus.PASSED, duration_ms=1)

    engine.run = AsyncMock(side_effect=run)
    return engine


class TestSuiteExecution:
    """Tests for how suites fan out their cases."""

    @pytest.mark.asyncio
    async def test_sequential_suite_runs_in_declaration_order(self, make_orchestrator, events):
        from conductor.orchestrator import TestSuite

        engine = make_tracking_engine(events)
        orchestrator = make_orchestrator(engine=engine)
        orchestrator.suites = [
            TestSuite(
                name="checkout",
                test_cases=[TestCase(id=case_id, name=case_id) for case_id in ("cart", "address", "payment")],
                parallel=False,
            )
        ]

        await orchestrator.run_pipeline()

        desktop = [e for e in events if e.endswith("@Chrome Desktop")]
        assert desktop == [
            "start:cart@Chrome Desktop",
            "end:cart@Chrome Desktop",
            "start:address@Chrome Desktop",
            "end:address@Chrome Desktop",
            "start:payment@Chrome Desktop",
            "end:payment@Chrome Desktop",
        ]
        assert engine.peak == 1
        assert events.index("end:payment@Chrome Desktop") < events.index("start:cart@Chrome Mobile")

    @pytest.mark.asyncio
    async def test_parallel_suite_capped_by_profile(self, make_orchestrator, events):
        from conductor.orchestrator import TestSuite

        cases = [TestCase(id=f"shot-{i}", name=f"Shot {i}") for i in range(4)]
        engine = make_tracking_engine(events)
        orchestrator = make_orchestrator(engine=engine)
        orchestrator.suites = [TestSuite(name="gallery", test_cases=cases, profile="visual-testing")]

        result = await orchestrator.run_pipeline()

        assert engine.peak == 1
        assert result.summary.total_tests == 8

    @pytest.mark.asyncio
    async def test_parallel_suite_runs_cases_together(self, make_orchestrator, events):
        from conductor.orchestrator import TestSuite

        cases = [TestCase(id=f"unit-{i}", name=f"Unit {i}") for i in range(3)]
        engine = make_tracking_engine(events)
        orchestrator = make_orchestrator(engine=engine)
        orchestrator.suites = [TestSuite(name="unit-testing", test_cases=cases)]

        await orchestrator.run_pipeline()

        assert engine.peak == 3

    @pytest.mark.asyncio
    async def test_archiving_failure_does_not_fail_run(self, make_orchestrator, events, tmp_path):
        reporter = RecordingReporter(events, tmp_path)
        reporter.archive_old_reports = AsyncMock(side_effect=OSError("permission denied"))
        orchestrator = make_orchestrator(reporter=reporter)

        result = await orchestrator.run_pipeline()

        reporter.archive_old_reports.assert_awaited_once()
        assert result.status.value == "passed"
        assert len(result.artifacts) == 2
