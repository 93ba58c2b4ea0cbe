"""Status aggregation over test results.

A pass rate is mapped onto three states by an AggregationPolicy. With the
default thresholds the rule is strict: ``passed`` only when every result
passed, ``failed`` only when none did, ``partial`` otherwise.
"""

from collections.abc import Iterable
from enum import Enum

from ..config import AggregationPolicy
from ..execution import TestResult, TestStatus


class AggregateStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    PARTIAL = "partial"


def pass_rate(passed: int, total: int) -> float:
    """Percentage of passed results; 0 when there are none."""
    if total <= 0:
        return 0.0
    return passed / total * 100


def compute_status(
    results: Iterable[TestResult],
    policy: AggregationPolicy | None = None,
) -> AggregateStatus:
    """Derive the aggregate status of a set of results.

    An empty set is vacuously ``passed``.
    """
    policy = policy or AggregationPolicy()
    statuses = [r.status for r in results]
    if not statuses:
        return AggregateStatus.PASSED

    rate = pass_rate(statuses.count(TestStatus.PASSED), len(statuses))
    if rate >= policy.passed_threshold:
        return AggregateStatus.PASSED
    if rate <= policy.failed_threshold:
        return AggregateStatus.FAILED
    return AggregateStatus.PARTIAL
