"""Browser test-orchestration engine.

Schedules, rate-limits, executes, retries and aggregates results for
browser-driven test suites across a matrix of browser/device environments.
"""

__version__ = "0.1.0"
