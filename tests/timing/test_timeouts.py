"""Tests for TimeoutPolicy."""

import pytest


class TestCalculate:
    """Tests for the timeout formula."""

    def test_slow_critical_first_retry(self):
        from conductor.timing import TimeoutPolicy

        assert TimeoutPolicy().calculate(
            1000,
            network_condition="slow",
            workflow_type="critical",
            retry_attempt=1,
        ) == 11250

    def test_defaults_leave_base_unchanged(self):
        from conductor.timing import calculate_timeout

        assert calculate_timeout(30000) == 30000

    @pytest.mark.parametrize(
        "options,expected",
        [
            ({"network_condition": "offline"}, 5000),
            ({"workflow_type": "complex"}, 2000),
            ({"complexity_multiplier": 1.5}, 1500),
            ({"retry_attempt": 2}, 2000),
        ],
    )
    def test_each_multiplier(self, options, expected):
        from conductor.timing import calculate_timeout

        assert calculate_timeout(1000, **options) == expected

    def test_result_is_rounded(self):
        from conductor.timing import calculate_timeout

        assert calculate_timeout(333, complexity_multiplier=1.5) == 500

    def test_unknown_network_condition_rejected(self):
        from conductor.timing import calculate_timeout

        with pytest.raises(ValueError, match="network condition"):
            calculate_timeout(1000, network_condition="satellite")

    def test_unknown_workflow_type_rejected(self):
        from conductor.timing import calculate_timeout

        with pytest.raises(ValueError, match="workflow type"):
            calculate_timeout(1000, workflow_type="heroic")


class TestLookups:
    """Tests for operation and workflow budgets."""

    def test_for_operation(self):
        from conductor.timing import TimeoutPolicy

        policy = TimeoutPolicy()

        assert policy.for_operation("element_wait") == 10000
        assert policy.for_operation("navigation", network_condition="slow") == 75000

    def test_for_workflow_is_complex_by_default(self):
        from conductor.timing import TimeoutPolicy

        policy = TimeoutPolicy()

        assert policy.for_workflow("login") == 120000
        assert policy.for_workflow("login", workflow_type="simple") == 60000

    def test_unknown_operation_rejected(self):
        from conductor.timing import TimeoutPolicy

        with pytest.raises(ValueError, match="operation"):
            TimeoutPolicy().base_timeout("teleport")

    def test_custom_tables(self):
        from conductor.timing import TimeoutPolicy

        policy = TimeoutPolicy(base_timeouts_ms={"navigation": 5000})

        assert policy.for_operation("navigation") == 5000
        assert policy.summary()["base"] == {"navigation": 5000}
