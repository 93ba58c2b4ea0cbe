"""Configuration management for the test-orchestration engine."""

import math
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TestEnvironment(str, Enum):
    """Named rate-limit environments."""
    __test__ = False

    DEVELOPMENT = "development"
    CI = "ci"
    PRODUCTION = "production"
    LOAD = "load"


class Priority(str, Enum):
    """Request and suite priority."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


ReportFormat = Literal["html", "json", "junit", "pdf"]


class RateLimitConfig(BaseModel):
    """Throttling ceilings and retry policy for outbound calls."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_requests_per_minute: int = Field(30, gt=0, description="Requests allowed in any 60s window")
    delay_between_requests_ms: int = Field(2000, ge=0, description="Minimum gap between requests (medium priority)")
    burst_limit: int = Field(5, gt=0, description="Requests allowed in any 10s window")
    cooldown_period_ms: int = Field(10000, ge=0, description="Pause after the burst limit is reached")
    retry_attempts: int = Field(3, ge=1, description="Attempts per request, including the first")
    backoff_multiplier: float = Field(1.5, ge=1.0, description="Exponential backoff factor")
    max_backoff_ms: int = Field(30000, ge=0, description="Upper bound for a single backoff sleep")
    max_gate_wait_ms: int = Field(120000, gt=0, description="Longest the throttling gate may block")
    request_log_window_ms: int = Field(300000, gt=0, description="How long request log entries are kept")
    sweep_interval_ms: int = Field(60000, gt=0, description="Interval of the background sweep")


class MockingConfig(BaseModel):
    """API mocking behaviour for an environment."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    simulate_latency: bool = True
    latency_range_ms: tuple[int, int] = (50, 200)
    simulate_errors: bool = False
    error_rate: float = Field(0.0, ge=0.0, le=1.0)

    @field_validator("latency_range_ms")
    @classmethod
    def validate_latency_range(cls, v: tuple[int, int]) -> tuple[int, int]:
        low, high = v
        if low < 0 or high < low:
            raise ValueError(f"Invalid latency range: {v}")
        return v


class CachingConfig(BaseModel):
    """Response caching for an environment."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    default_ttl_ms: int = Field(300000, ge=0, description="Cache TTL when the caller gives none")
    max_cache_size: int = Field(1000, gt=0, description="Oldest entries are evicted beyond this")


class ParallelismConfig(BaseModel):
    """Worker and retry limits for an environment."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_workers: int = Field(4, gt=0)
    test_timeout_ms: int = Field(30000, gt=0)
    retry_attempts: int = Field(2, ge=0)


class EnvironmentConfig(BaseModel):
    """Complete rate-limit profile for a test environment."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    rate_limits: RateLimitConfig
    mocking: MockingConfig = Field(default_factory=MockingConfig)
    caching: CachingConfig = Field(default_factory=CachingConfig)
    parallelism: ParallelismConfig = Field(default_factory=ParallelismConfig)


class SuiteProfile(BaseModel):
    """Per-suite adjustments applied on top of an environment profile."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    rate_limit_multiplier: float = Field(..., gt=0.0, le=1.0)
    mocking_enabled: bool = True
    caching_enabled: bool = True
    parallelism: int = Field(..., gt=0)


class EndpointPolicy(BaseModel):
    """Known endpoint with its own request budget."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    max_requests_per_hour: int = Field(..., gt=0)
    priority: Priority = Priority.MEDIUM
    cache_ttl_ms: int = Field(..., ge=0)
    mocking_required: bool = False


TEST_ENVIRONMENTS: dict[TestEnvironment, EnvironmentConfig] = {
    # Most permissive
    TestEnvironment.DEVELOPMENT: EnvironmentConfig(
        name="development",
        rate_limits=RateLimitConfig(
            max_requests_per_minute=60,
            delay_between_requests_ms=1000,
            burst_limit=10,
            cooldown_period_ms=5000,
        ),
        mocking=MockingConfig(latency_range_ms=(50, 200)),
        caching=CachingConfig(default_ttl_ms=300000, max_cache_size=1000),
        parallelism=ParallelismConfig(max_workers=4, test_timeout_ms=30000, retry_attempts=2),
    ),
    TestEnvironment.CI: EnvironmentConfig(
        name="ci",
        rate_limits=RateLimitConfig(
            max_requests_per_minute=30,
            delay_between_requests_ms=2000,
            burst_limit=5,
            cooldown_period_ms=10000,
        ),
        mocking=MockingConfig(latency_range_ms=(100, 300), simulate_errors=True, error_rate=0.02),
        caching=CachingConfig(default_ttl_ms=600000, max_cache_size=500),
        # Single worker keeps CI under the shared API budgets
        parallelism=ParallelismConfig(max_workers=1, test_timeout_ms=45000, retry_attempts=3),
    ),
    TestEnvironment.PRODUCTION: EnvironmentConfig(
        name="production",
        rate_limits=RateLimitConfig(
            max_requests_per_minute=15,
            delay_between_requests_ms=4000,
            burst_limit=3,
            cooldown_period_ms=15000,
        ),
        mocking=MockingConfig(enabled=False, simulate_latency=False, latency_range_ms=(0, 0)),
        caching=CachingConfig(default_ttl_ms=1800000, max_cache_size=200),
        parallelism=ParallelismConfig(max_workers=1, test_timeout_ms=60000, retry_attempts=5),
    ),
    TestEnvironment.LOAD: EnvironmentConfig(
        name="load",
        rate_limits=RateLimitConfig(
            max_requests_per_minute=120,
            delay_between_requests_ms=500,
            burst_limit=20,
            cooldown_period_ms=2000,
        ),
        mocking=MockingConfig(latency_range_ms=(10, 100), simulate_errors=True, error_rate=0.05),
        caching=CachingConfig(default_ttl_ms=60000, max_cache_size=2000),
        parallelism=ParallelismConfig(max_workers=8, test_timeout_ms=20000, retry_attempts=1),
    ),
}

SUITE_PROFILES: dict[str, SuiteProfile] = {
    "visual-testing": SuiteProfile(rate_limit_multiplier=0.5, parallelism=1),
    "api-testing": SuiteProfile(rate_limit_multiplier=0.3, parallelism=1),
    "e2e-testing": SuiteProfile(rate_limit_multiplier=0.7, parallelism=2),
    "unit-testing": SuiteProfile(rate_limit_multiplier=1.0, caching_enabled=False, parallelism=4),
}

DEFAULT_SUITE_PROFILE = "e2e-testing"

ENDPOINT_POLICIES: dict[str, EndpointPolicy] = {
    # External APIs are the most restricted
    "api.unsplash.com": EndpointPolicy(
        max_requests_per_hour=50, priority=Priority.LOW, cache_ttl_ms=3600000, mocking_required=True
    ),
    "/api/cities": EndpointPolicy(max_requests_per_hour=200, priority=Priority.MEDIUM, cache_ttl_ms=300000),
    "/api/health": EndpointPolicy(max_requests_per_hour=100, priority=Priority.HIGH, cache_ttl_ms=60000),
    # Auth responses are never cached
    "/api/auth": EndpointPolicy(
        max_requests_per_hour=50, priority=Priority.HIGH, cache_ttl_ms=0, mocking_required=True
    ),
}


class SchedulingConfig(BaseModel):
    """Cron scheduling of pipeline runs."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(False, description="Register the pipeline cron on initialize")
    cron: str = Field("0 2 * * *", description="Five-field cron expression")
    timezone: str = Field("UTC", description="IANA timezone the cron is evaluated in")
    retry_on_failure: bool = Field(True, description="Retry a failed scheduled run")
    max_retries: int = Field(2, ge=0, description="Retries after a failed scheduled run")
    retry_delay_ms: int = Field(2000, ge=0, description="Delay before the first retry")
    backoff_multiplier: float = Field(2.0, ge=1.0, description="Growth factor between retries")


class SeedConfig(BaseModel):
    """Entity counts and determinism for generated fixtures."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    cities: int = Field(20, ge=0)
    users: int = Field(10, ge=0)
    reviews: int = Field(50, ge=0)
    clear_existing: bool = True
    use_fixed_seed: bool = True
    seed_value: int = 12345

    @model_validator(mode="after")
    def _reviews_need_parents(self) -> "SeedConfig":
        if self.reviews and (self.cities == 0 or self.users == 0):
            raise ValueError("reviews require at least one city and one user")
        return self


class IntegrityMode(str, Enum):
    """How a session checks the live store against its snapshot."""

    COUNTS = "counts"  # Compare entity counts only
    CHECKSUM = "checksum"  # Compare counts and the content checksum


class DatabaseTestConfig(BaseModel):
    """Lifecycle policy for a seeded test-data session."""

    model_config = ConfigDict(extra="forbid")

    use_seeded_data: bool = True
    seed_config: SeedConfig = Field(
        default_factory=lambda: SeedConfig(cities=10, users=5, reviews=20)
    )
    cleanup_after_test: bool = True
    verify_integrity: bool = True
    isolate_tests: bool = True
    integrity_mode: IntegrityMode = IntegrityMode.COUNTS


class ExecutionConfig(BaseModel):
    """How test cases fan out across environments."""

    model_config = ConfigDict(extra="forbid")

    parallel: bool = True
    max_workers: int = Field(4, gt=0)
    retry_attempts: int = Field(3, ge=1, description="Attempts per step for retryable errors")
    timeout_ms: int = Field(30000, gt=0, description="Default per-case timeout")
    screenshot_on_failure: bool = True
    video_on_failure: bool = True
    trace_on_failure: bool = True

    @classmethod
    def for_environment(cls, environment: EnvironmentConfig, **overrides) -> "ExecutionConfig":
        """Take workers, case timeout and retries from an environment profile."""
        parallelism = environment.parallelism
        values = {
            "max_workers": parallelism.max_workers,
            "timeout_ms": parallelism.test_timeout_ms,
            # Profile counts retries, the engine counts attempts
            "retry_attempts": parallelism.retry_attempts + 1,
            **overrides,
        }
        return cls(**values)


class RetryConfig(BaseModel):
    """Retry policy of the recoverable-error handler."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(3, ge=1)
    delay_ms: int = Field(1000, ge=0)
    backoff_multiplier: float = Field(2.0, ge=1.0)
    retryable_errors: list[str] = Field(
        default_factory=lambda: [
            "timeout",
            "network",
            "protocol",
            "target closed",
            "navigation timeout",
            "waiting for selector",
            "element not found",
        ]
    )


class ReportingConfig(BaseModel):
    """Which reports are generated and where artifacts go."""

    model_config = ConfigDict(extra="forbid")

    formats: list[ReportFormat] = Field(default_factory=lambda: ["json"])
    output_dir: str = "./test-results/reports"
    include_screenshots: bool = True
    include_videos: bool = False
    include_network_logs: bool = True
    archive_after_days: int = Field(30, ge=0)


class EmailChannelConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    recipients: list[str] = Field(default_factory=list)


class SlackChannelConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    webhook_url: Optional[str] = None
    channel: Optional[str] = None


class WebhookChannelConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    url: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)


class NotificationConfig(BaseModel):
    """Enabled notification channels."""

    model_config = ConfigDict(extra="forbid")

    email: EmailChannelConfig = Field(default_factory=EmailChannelConfig)
    slack: SlackChannelConfig = Field(default_factory=SlackChannelConfig)
    webhook: WebhookChannelConfig = Field(default_factory=WebhookChannelConfig)


class AggregationPolicy(BaseModel):
    """Thresholds that map a pass rate onto a three-state status.

    The defaults give the strict rule: ``passed`` only when every result
    passed, ``failed`` only when none did, ``partial`` otherwise.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    passed_threshold: float = Field(100.0, gt=0.0, le=100.0, description="Minimum pass rate for 'passed'")
    failed_threshold: float = Field(0.0, ge=0.0, lt=100.0, description="Pass rate at or below which status is 'failed'")

    @model_validator(mode="after")
    def _ordered(self) -> "AggregationPolicy":
        if self.failed_threshold >= self.passed_threshold:
            raise ValueError("failed_threshold must be below passed_threshold")
        return self


class Settings(BaseSettings):
    """Process-level settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CONDUCTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    test_environment: TestEnvironment = Field(
        TestEnvironment.DEVELOPMENT, description="Rate-limit profile to run under"
    )

    # Paths
    output_dir: str = Field("./test-results", description="Root directory for artifacts")
    screenshot_dir: str = Field("./test-results/screenshots", description="Screenshots")
    error_log_dir: str = Field("./test-results/error-logs", description="Per-day error logs")

    # Logging
    log_level: str = Field("INFO", description="Root log level")
    log_json: bool = Field(False, description="Render logs as JSON")
    setup_logging: bool = Field(True, description="Configure structlog when a pipeline initializes")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def video_dir(self) -> str:
        return f"{self.output_dir}/videos"

    @property
    def trace_dir(self) -> str:
        return f"{self.output_dir}/traces"

    @property
    def artifact_dirs(self) -> list[str]:
        """Directories a pipeline creates before it runs."""
        return [
            self.screenshot_dir,
            self.video_dir,
            self.trace_dir,
            self.error_log_dir,
        ]


def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


def get_environment_config(environment: TestEnvironment | str | None = None) -> EnvironmentConfig:
    """Return the rate-limit profile for an environment.

    Args:
        environment: Environment name; defaults to the one in Settings.

    Raises:
        ValueError: If the environment name is unknown.
    """
    if environment is None:
        environment = get_settings().test_environment
    return TEST_ENVIRONMENTS[TestEnvironment(environment)]


def get_suite_config(
    suite_name: str,
    environment: TestEnvironment | str | None = None,
) -> EnvironmentConfig:
    """Apply a suite profile on top of an environment profile.

    Unknown suites fall back to the e2e profile. The request delay is divided
    by the suite multiplier (slower suites wait longer) and workers are capped
    by the suite's own parallelism.
    """
    base = get_environment_config(environment)
    suite = SUITE_PROFILES.get(suite_name, SUITE_PROFILES[DEFAULT_SUITE_PROFILE])

    delay = math.floor(base.rate_limits.delay_between_requests_ms / suite.rate_limit_multiplier)
    return base.model_copy(
        update={
            "rate_limits": base.rate_limits.model_copy(update={"delay_between_requests_ms": delay}),
            "mocking": base.mocking.model_copy(
                update={"enabled": base.mocking.enabled and suite.mocking_enabled}
            ),
            "caching": base.caching.model_copy(
                update={"enabled": base.caching.enabled and suite.caching_enabled}
            ),
            "parallelism": base.parallelism.model_copy(
                update={"max_workers": min(base.parallelism.max_workers, suite.parallelism)}
            ),
        }
    )


def match_endpoint_policy(
    endpoint: str,
    policies: Optional[dict[str, EndpointPolicy]] = None,
) -> tuple[str, EndpointPolicy] | None:
    """Find the first policy whose key occurs in the endpoint URL, with its key."""
    for key, policy in (ENDPOINT_POLICIES if policies is None else policies).items():
        if key in endpoint:
            return key, policy
    return None


def get_endpoint_policy(endpoint: str) -> EndpointPolicy | None:
    """Find the policy whose key occurs in the endpoint URL."""
    match = match_endpoint_policy(endpoint)
    return match[1] if match else None


class PipelineConfig(BaseModel):
    """Everything a pipeline run needs besides its suites and environments."""

    model_config = ConfigDict(extra="forbid")

    project_name: str = Field("cityguide", min_length=1)
    environment: str = Field("development", description="Label of the deployment under test")
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    aggregation: AggregationPolicy = Field(default_factory=AggregationPolicy)
