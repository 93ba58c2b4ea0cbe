"""
Pipeline orchestrator.

Runs every suite against every browser environment through the
ExecutionEngine, aggregates the results and drives the report and
notification collaborators.

Run order:
    start notification ─► suites (sequential) ─► aggregate ─► reports
        ─► completion notification

Only orchestration faults leave ``run_pipeline``. They produce a failed
zero-total result and a best-effort failure notification, then re-raise.
"""

import asyncio
import time
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from ..browser import BrowserEnvironment
from ..config import PipelineConfig, Settings, get_settings, get_suite_config
from ..execution import ExecutionEngine, TestCase, TestResult
from ..notifications import NotificationService
from ..reporting import JsonReportGenerator, ReportGenerator
from ..scheduling import Scheduler, SchedulerError
from ..utils.logging import LogContext, configure_logging, log_operation
from .models import PipelineResult, SuiteResult, TestSuite

logger = structlog.get_logger()


class PipelineError(Exception):
    """Base exception for pipeline errors."""
    pass


class PipelineSetupError(PipelineError):
    """Directories or the scheduler could not be prepared."""
    pass


def generate_pipeline_id() -> str:
    return f"pipeline-{int(time.time() * 1000)}"


class PipelineOrchestrator:
    """Runs suites x environments and reports on the outcome.

    Usage:
        orchestrator = PipelineOrchestrator(config, suites, environments, engine)
        await orchestrator.initialize()
        result = await orchestrator.run_pipeline(triggered_by="ci")
        await orchestrator.shutdown()
    """

    def __init__(
        self,
        config: PipelineConfig,
        suites: list[TestSuite],
        environments: list[BrowserEnvironment],
        engine: ExecutionEngine,
        notifier: Optional[NotificationService] = None,
        reporter: Optional[ReportGenerator] = None,
        scheduler: Optional[Scheduler] = None,
        settings: Optional[Settings] = None,
        id_factory: Callable[[], str] = generate_pipeline_id,
    ):
        self.config = config
        self.suites = list(suites)
        self.environments = list(environments)
        self.engine = engine
        self.notifier = notifier or NotificationService(config.notifications)
        self.reporter = reporter or JsonReportGenerator(config.reporting)
        self.scheduler = scheduler
        self.settings = settings or get_settings()
        self._id_factory = id_factory
        self.scheduled_task_id: Optional[str] = None
        self.last_result: Optional[PipelineResult] = None
        self.is_initialized = False
        self.log = logger.bind(component="pipeline", project=config.project_name)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        """Configure logging, create artifact directories, start the limiter
        sweep and register the scheduled run.

        Raises:
            PipelineSetupError: If a directory or the scheduler fails
        """
        if self.settings.setup_logging:
            configure_logging(self.settings.log_level, self.settings.log_json)

        with log_operation("initialize_pipeline", self.log):
            await self._ensure_directories()
            if self.engine.limiter is not None:
                self.engine.limiter.start_sweeper()

            if self.config.scheduling.enabled:
                try:
                    if self.scheduler is None:
                        self.scheduler = Scheduler(self.config.scheduling)
                    await self.scheduler.initialize()
                    self.scheduled_task_id = self.scheduler.schedule(
                        self.config.scheduling.cron,
                        self._scheduled_run,
                        name=f"{self.config.project_name}-pipeline",
                    )
                except SchedulerError as e:
                    raise PipelineSetupError(f"Scheduler setup failed: {e}") from e

            self.is_initialized = True

    async def shutdown(self) -> None:
        """Stop the scheduler and release collaborator resources."""
        self.log.info("Shutting down pipeline")

        if self.scheduler is not None:
            await self.scheduler.stop()
            self.scheduled_task_id = None
        if self.engine.limiter is not None:
            await self.engine.limiter.stop()
        await self.notifier.close()

        self.is_initialized = False
        self.log.info("Pipeline shutdown complete")

    def health_check(self) -> dict[str, Any]:
        health: dict[str, Any] = {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "config": {
                "project_name": self.config.project_name,
                "environment": self.config.environment,
                "suite_count": len(self.suites),
                "browser_count": len(self.environments),
                "scheduling_enabled": self.config.scheduling.enabled,
            },
        }
        if self.scheduler is not None and self.scheduler.is_initialized:
            health["scheduler"] = self.scheduler.get_stats().to_dict()
        if self.last_result is not None:
            health["last_run"] = {
                "pipeline_id": self.last_result.pipeline_id,
                "status": self.last_result.status.value,
            }
        return health

    # =========================================================================
    # Runs
    # =========================================================================

    async def run_pipeline(self, triggered_by: str = "manual") -> PipelineResult:
        """Run every suite on every environment."""
        return await self._run(triggered_by, self.suites, self.environments)

    async def trigger_manual_run(
        self,
        suite_names: Optional[list[str]] = None,
        environment_names: Optional[list[str]] = None,
    ) -> PipelineResult:
        """Run a subset of suites and environments, selected by name.

        None selects everything.
        """
        suites = self.suites
        if suite_names is not None:
            suites = [s for s in self.suites if s.name in suite_names]
            self._warn_unknown("suite", suite_names, [s.name for s in self.suites])

        environments = self.environments
        if environment_names is not None:
            environments = [e for e in self.environments if e.name in environment_names]
            self._warn_unknown("environment", environment_names, [e.name for e in self.environments])

        return await self._run("manual-api", suites, environments)

    async def _scheduled_run(self) -> None:
        await self.run_pipeline(triggered_by="schedule")

    async def _run(
        self,
        triggered_by: str,
        suites: list[TestSuite],
        environments: list[BrowserEnvironment],
    ) -> PipelineResult:
        pipeline_id = self._id_factory()
        started = time.monotonic()

        with LogContext(pipeline_id=pipeline_id):
            self.log.info(
                "Starting pipeline",
                triggered_by=triggered_by,
                suites=len(suites),
                environments=len(environments),
            )
            try:
                await self._ensure_directories()
                await self.notifier.send_start(pipeline_id, self.config.environment, triggered_by)

                suite_results: dict[str, SuiteResult] = {}
                for suite in suites:
                    self.log.info("Executing test suite", suite=suite.name)
                    suite_results[suite.name] = await self._execute_suite(suite, environments)

                result = PipelineResult.from_suites(
                    pipeline_id,
                    self.config.environment,
                    self._elapsed_ms(started),
                    suite_results,
                    policy=self.config.aggregation,
                    triggered_by=triggered_by,
                )
                artifacts = await self._generate_reports(result)
                result = replace(result, artifacts=tuple(artifacts))

                await self.notifier.send_completion(result)
            except Exception as e:
                duration_ms = self._elapsed_ms(started)
                self.last_result = PipelineResult.setup_failure(
                    pipeline_id, self.config.environment, duration_ms, e, triggered_by
                )
                self.log.error("Pipeline failed", error=str(e), error_type=type(e).__name__)
                await self.notifier.send_failure(pipeline_id, self.config.environment, e, duration_ms)
                raise

            self.last_result = result
            self.log.info(
                "Pipeline completed",
                status=result.status.value,
                total=result.summary.total_tests,
                passed=result.summary.passed_tests,
                duration_ms=result.duration_ms,
            )
            return result

    async def _execute_suite(
        self,
        suite: TestSuite,
        environments: list[BrowserEnvironment],
    ) -> SuiteResult:
        started = time.monotonic()
        environment_results: dict[str, dict[str, TestResult]] = {}

        for environment in environments:
            self.log.info("Running suite", suite=suite.name, environment=environment.name)
            if suite.parallel:
                workers = asyncio.Semaphore(self._suite_workers(suite))

                async def run_bounded(case: TestCase) -> TestResult:
                    async with workers:
                        return await self.engine.run(case, environment)

                outcomes = await asyncio.gather(
                    *(run_bounded(case) for case in suite.test_cases),
                    return_exceptions=True,
                )
            else:
                outcomes = []
                for case in suite.test_cases:
                    outcomes.append(await self._run_case_safely(case, environment))

            by_test: dict[str, TestResult] = {}
            for case, outcome in zip(suite.test_cases, outcomes):
                if isinstance(outcome, BaseException):
                    self.log.error("Test case crashed", test_id=case.id, error=str(outcome))
                    outcome = TestResult.failure(case.id, environment.name, outcome)
                by_test[case.id] = outcome
            environment_results[environment.name] = by_test

        suite_result = SuiteResult.from_results(
            suite.name,
            self._elapsed_ms(started),
            environment_results,
            policy=self.config.aggregation,
        )
        self.log.info("Suite finished", suite=suite.name, status=suite_result.status.value)
        return suite_result

    def _suite_workers(self, suite: TestSuite) -> int:
        """Concurrent cases allowed for a suite under the active environment profile."""
        profile = get_suite_config(suite.profile or suite.name, self.settings.test_environment)
        return profile.parallelism.max_workers

    async def _run_case_safely(
        self,
        case: TestCase,
        environment: BrowserEnvironment,
    ) -> TestResult | Exception:
        try:
            return await self.engine.run(case, environment)
        except Exception as e:
            return e

    # =========================================================================
    # Collaborators
    # =========================================================================

    async def _generate_reports(self, result: PipelineResult) -> list[str]:
        artifacts: list[str] = []
        for report_format in self.config.reporting.formats:
            try:
                artifacts.append(await self.reporter.generate(result, report_format))
            except Exception as e:
                self.log.warning("Report generation failed", format=report_format, error=str(e))

        try:
            await self.reporter.archive_old_reports()
        except Exception as e:
            self.log.warning("Report archiving failed", error=str(e))
        return artifacts

    async def _ensure_directories(self) -> None:
        dirs = [self.config.reporting.output_dir, *self.settings.artifact_dirs]
        try:
            for directory in dirs:
                await asyncio.to_thread(Path(directory).mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise PipelineSetupError(f"Cannot create artifact directory: {e}") from e

    def _warn_unknown(self, kind: str, requested: list[str], known: list[str]) -> None:
        unknown = sorted(set(requested) - set(known))
        if unknown:
            self.log.warning(f"Unknown {kind} names ignored", names=unknown)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
