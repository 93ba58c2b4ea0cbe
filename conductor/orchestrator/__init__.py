"""Pipeline orchestration: suites x environments, aggregation, reporting."""

from .aggregation import AggregateStatus, compute_status, pass_rate
from .models import PipelineResult, PipelineSummary, SuiteResult, TestSuite
from .pipeline import (
    PipelineError,
    PipelineOrchestrator,
    PipelineSetupError,
    generate_pipeline_id,
)

__all__ = [
    "PipelineOrchestrator",
    "PipelineError",
    "PipelineSetupError",
    "PipelineResult",
    "PipelineSummary",
    "SuiteResult",
    "TestSuite",
    "AggregateStatus",
    "compute_status",
    "pass_rate",
    "generate_pipeline_id",
]
