"""Tests for configuration models and profile lookups."""

import pytest
from pydantic import ValidationError


class TestEnvironmentProfiles:
    """Tests for get_environment_config() and get_suite_config()."""

    def test_ci_profile(self):
        from conductor.config import get_environment_config

        ci = get_environment_config("ci")

        assert ci.rate_limits.max_requests_per_minute == 30
        assert ci.rate_limits.delay_between_requests_ms == 2000
        assert ci.parallelism.max_workers == 1

    def test_unknown_environment(self):
        from conductor.config import get_environment_config

        with pytest.raises(ValueError):
            get_environment_config("staging")

    def test_default_from_settings(self, monkeypatch):
        from conductor.config import get_environment_config

        monkeypatch.setenv("CONDUCTOR_TEST_ENVIRONMENT", "production")

        assert get_environment_config().name == "production"

    @pytest.mark.parametrize(
        "environment,suite,delay,workers",
        [
            ("ci", "api-testing", 6666, 1),
            ("development", "e2e-testing", 1428, 2),
            ("load", "unit-testing", 500, 4),
            ("development", "exploratory", 1428, 2),
        ],
    )
    def test_suite_overrides(self, environment, suite, delay, workers):
        from conductor.config import get_suite_config

        config = get_suite_config(suite, environment)

        assert config.rate_limits.delay_between_requests_ms == delay
        assert config.parallelism.max_workers == workers

    def test_suite_can_disable_caching(self):
        from conductor.config import get_suite_config

        assert get_suite_config("unit-testing", "development").caching.enabled is False
        assert get_suite_config("api-testing", "production").mocking.enabled is False

    def test_endpoint_policy(self):
        from conductor.config import Priority, get_endpoint_policy

        assert get_endpoint_policy("http://localhost:3000/api/auth/login").cache_ttl_ms == 0
        assert get_endpoint_policy("https://api.unsplash.com/photos").priority == Priority.LOW
        assert get_endpoint_policy("/api/unknown") is None

    def test_match_endpoint_policy_returns_key(self):
        from conductor.config import EndpointPolicy, match_endpoint_policy

        assert match_endpoint_policy("https://api.unsplash.com/photos")[0] == "api.unsplash.com"

        own = {"/api/reviews": EndpointPolicy(max_requests_per_hour=5, cache_ttl_ms=0)}
        assert match_endpoint_policy("/api/reviews/42", own) == ("/api/reviews", own["/api/reviews"])
        assert match_endpoint_policy("/api/cities", own) is None

    def test_execution_config_from_profile(self):
        from conductor.config import ExecutionConfig, get_environment_config

        config = ExecutionConfig.for_environment(get_environment_config("ci"), screenshot_on_failure=False)

        assert config.max_workers == 1
        assert config.retry_attempts == get_environment_config("ci").parallelism.retry_attempts + 1
        assert config.screenshot_on_failure is False

    def test_mocking_latency_range_validated(self):
        from conductor.config import MockingConfig

        with pytest.raises(ValidationError):
            MockingConfig(latency_range_ms=(300, 100))


class TestModels:
    """Tests for config validation."""

    def test_rate_limit_config_is_frozen(self):
        from conductor.config import RateLimitConfig

        config = RateLimitConfig()

        with pytest.raises(ValidationError):
            config.burst_limit = 10

    def test_unknown_fields_rejected(self):
        from conductor.config import ExecutionConfig

        with pytest.raises(ValidationError):
            ExecutionConfig(workers=3)

    def test_report_formats_are_closed(self):
        from conductor.config import ReportingConfig

        assert ReportingConfig(formats=["json", "junit"]).formats == ["json", "junit"]
        with pytest.raises(ValidationError):
            ReportingConfig(formats=["docx"])

    def test_pipeline_config_defaults(self):
        from conductor.config import PipelineConfig

        config = PipelineConfig()

        assert config.scheduling.enabled is False
        assert config.scheduling.cron == "0 2 * * *"
        assert config.execution.max_workers == 4
        assert config.aggregation.passed_threshold == 100

    def test_settings_from_env(self, monkeypatch):
        from conductor.config import Settings

        monkeypatch.setenv("CONDUCTOR_LOG_LEVEL", "debug")
        monkeypatch.setenv("CONDUCTOR_OUTPUT_DIR", "/tmp/results")

        settings = Settings()

        assert settings.log_level == "DEBUG"
        assert "/tmp/results/videos" in settings.artifact_dirs
        assert settings.trace_dir == "/tmp/results/traces"

    def test_settings_reject_unknown_log_level(self, monkeypatch):
        from conductor.config import Settings

        monkeypatch.setenv("CONDUCTOR_LOG_LEVEL", "chatty")

        with pytest.raises(ValidationError):
            Settings()
