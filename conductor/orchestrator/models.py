"""Suite and pipeline result models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Iterator, Optional

from ..config import AggregationPolicy, Priority
from ..execution import TestCase, TestResult, TestStatus
from .aggregation import AggregateStatus, compute_status, pass_rate


@dataclass
class TestSuite:
    """A named group of test cases sharing run policy."""
    __test__ = False

    name: str
    test_cases: list[TestCase]
    description: str = ""
    tags: list[str] = field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    parallel: bool = True
    # Suite profile name (visual-testing, api-testing, ...); defaults to the suite name
    profile: Optional[str] = None


@dataclass(frozen=True)
class SuiteResult:
    """Results of one suite across every environment.

    ``environment_results`` maps environment name to test id to result.
    """

    suite_name: str
    status: AggregateStatus
    duration_ms: int
    environment_results: dict[str, dict[str, TestResult]]

    @classmethod
    def from_results(
        cls,
        suite_name: str,
        duration_ms: int,
        environment_results: dict[str, dict[str, TestResult]],
        policy: Optional[AggregationPolicy] = None,
    ) -> "SuiteResult":
        results = [r for by_test in environment_results.values() for r in by_test.values()]
        return cls(
            suite_name=suite_name,
            status=compute_status(results, policy),
            duration_ms=duration_ms,
            environment_results=environment_results,
        )

    def results(self) -> Iterator[TestResult]:
        for by_test in self.environment_results.values():
            yield from by_test.values()

    def to_dict(self) -> dict[str, Any]:
        return {
            "suite_name": self.suite_name,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "environment_results": {
                env: {test_id: r.to_dict() for test_id, r in by_test.items()}
                for env, by_test in self.environment_results.items()
            },
        }


@dataclass(frozen=True)
class PipelineSummary:
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    skipped_tests: int = 0
    pass_rate: float = 0.0

    @classmethod
    def from_results(cls, results: list[TestResult]) -> "PipelineSummary":
        passed = sum(1 for r in results if r.status == TestStatus.PASSED)
        return cls(
            total_tests=len(results),
            passed_tests=passed,
            failed_tests=sum(1 for r in results if r.status == TestStatus.FAILED),
            skipped_tests=sum(1 for r in results if r.status == TestStatus.SKIPPED),
            pass_rate=pass_rate(passed, len(results)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_tests": self.total_tests,
            "passed_tests": self.passed_tests,
            "failed_tests": self.failed_tests,
            "skipped_tests": self.skipped_tests,
            "pass_rate": round(self.pass_rate, 1),
        }


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pipeline run."""

    pipeline_id: str
    environment: str
    status: AggregateStatus
    duration_ms: int
    summary: PipelineSummary
    suite_results: dict[str, SuiteResult] = field(default_factory=dict)
    artifacts: tuple[str, ...] = ()
    triggered_by: str = "manual"
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_suites(
        cls,
        pipeline_id: str,
        environment: str,
        duration_ms: int,
        suite_results: dict[str, SuiteResult],
        policy: Optional[AggregationPolicy] = None,
        triggered_by: str = "manual",
    ) -> "PipelineResult":
        """Aggregate over the union of every suite's results."""
        results = [r for suite in suite_results.values() for r in suite.results()]
        return cls(
            pipeline_id=pipeline_id,
            environment=environment,
            status=compute_status(results, policy),
            duration_ms=duration_ms,
            summary=PipelineSummary.from_results(results),
            suite_results=suite_results,
            triggered_by=triggered_by,
        )

    @classmethod
    def setup_failure(
        cls,
        pipeline_id: str,
        environment: str,
        duration_ms: int,
        error: BaseException,
        triggered_by: str = "manual",
    ) -> "PipelineResult":
        """Failed run with zero totals, used when the pipeline itself broke."""
        return cls(
            pipeline_id=pipeline_id,
            environment=environment,
            status=AggregateStatus.FAILED,
            duration_ms=duration_ms,
            summary=PipelineSummary(),
            triggered_by=triggered_by,
            error=str(error),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pipeline_id": self.pipeline_id,
            "timestamp": self.timestamp.isoformat(),
            "environment": self.environment,
            "triggered_by": self.triggered_by,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "summary": self.summary.to_dict(),
            "suite_results": {name: s.to_dict() for name, s in self.suite_results.items()},
            "artifacts": list(self.artifacts),
            "error": self.error,
        }
