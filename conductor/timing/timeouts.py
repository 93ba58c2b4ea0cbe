"""
Timeout policy.

Turns a base duration into a concrete wait budget by scaling it for network
condition, workflow complexity, an explicit complexity factor and the retry
attempt:

    timeout = round(base * network * workflow * complexity * (1 + retry * 0.5))

The calculation is pure; the same inputs always give the same budget.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class NetworkCondition(str, Enum):
    FAST = "fast"
    SLOW = "slow"
    OFFLINE = "offline"


class WorkflowType(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"
    CRITICAL = "critical"


NETWORK_MULTIPLIERS: dict[NetworkCondition, float] = {
    NetworkCondition.FAST: 1.0,
    NetworkCondition.SLOW: 2.5,
    NetworkCondition.OFFLINE: 5.0,
}

WORKFLOW_MULTIPLIERS: dict[WorkflowType, float] = {
    WorkflowType.SIMPLE: 1.0,
    WorkflowType.COMPLEX: 2.0,
    WorkflowType.CRITICAL: 3.0,
}

RETRY_GROWTH = 0.5

BASE_TIMEOUTS_MS: dict[str, int] = {
    "default": 30000,
    "navigation": 30000,
    "authentication": 60000,
    "api_call": 15000,
    "element_wait": 10000,
    "network_idle": 5000,
    "form_submission": 20000,
    "page_load": 30000,
    "database_operation": 10000,
}

# Auth-heavy flows wait on email delivery and server-side processing
WORKFLOW_TIMEOUTS_MS: dict[str, int] = {
    "registration": 90000,
    "login": 60000,
    "logout": 30000,
    "profile_update": 45000,
    "password_reset": 120000,
    "email_verification": 180000,
}


def _lookup(table: dict, key: Any, enum_type: Optional[type] = None, kind: str = "key") -> Any:
    try:
        if enum_type is not None:
            key = enum_type(key)
        return table[key]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown {kind}: {key!r}") from None


@dataclass(frozen=True)
class TimeoutPolicy:
    """Timeout budgets for operations and workflows.

    Example:
        policy = TimeoutPolicy()
        policy.calculate(1000, network_condition="slow", workflow_type="critical", retry_attempt=1)
        # 11250
        policy.for_workflow("login")  # complex by default -> 120000
    """

    base_timeouts_ms: dict[str, int] = field(default_factory=lambda: dict(BASE_TIMEOUTS_MS))
    workflow_timeouts_ms: dict[str, int] = field(default_factory=lambda: dict(WORKFLOW_TIMEOUTS_MS))

    def calculate(
        self,
        base_timeout_ms: float,
        complexity_multiplier: float = 1.0,
        network_condition: NetworkCondition | str = NetworkCondition.FAST,
        workflow_type: WorkflowType | str = WorkflowType.SIMPLE,
        retry_attempt: int = 0,
    ) -> int:
        """Compute a wait budget in milliseconds.

        Raises:
            ValueError: On an unknown network condition or workflow type
        """
        network = _lookup(NETWORK_MULTIPLIERS, network_condition, NetworkCondition, "network condition")
        workflow = _lookup(WORKFLOW_MULTIPLIERS, workflow_type, WorkflowType, "workflow type")
        timeout = base_timeout_ms * network * workflow * complexity_multiplier * (1 + retry_attempt * RETRY_GROWTH)
        return round(timeout)

    def base_timeout(self, operation: str) -> int:
        return _lookup(self.base_timeouts_ms, operation, kind="operation")

    def workflow_timeout(self, workflow: str) -> int:
        return _lookup(self.workflow_timeouts_ms, workflow, kind="workflow")

    def for_operation(self, operation: str, **adjustments) -> int:
        """Budget for a base operation, e.g. ``for_operation("navigation", network_condition="slow")``."""
        return self.calculate(self.base_timeout(operation), **adjustments)

    def for_workflow(self, workflow: str, **adjustments) -> int:
        """Budget for an authentication workflow. Workflows count as complex unless told otherwise."""
        adjustments.setdefault("workflow_type", WorkflowType.COMPLEX)
        return self.calculate(self.workflow_timeout(workflow), **adjustments)

    def summary(self) -> dict[str, Any]:
        return {
            "base": dict(self.base_timeouts_ms),
            "workflows": dict(self.workflow_timeouts_ms),
            "multipliers": {
                "network": {k.value: v for k, v in NETWORK_MULTIPLIERS.items()},
                "workflow": {k.value: v for k, v in WORKFLOW_MULTIPLIERS.items()},
            },
        }


def calculate_timeout(base_timeout_ms: float, **options) -> int:
    """Shorthand for ``TimeoutPolicy().calculate``."""
    return TimeoutPolicy().calculate(base_timeout_ms, **options)
