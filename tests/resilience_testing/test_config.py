"""
Tests for configuration and the exception hierarchy.
"""

import pytest

from resilience_testing import (
    BackpressurePolicy,
    ChaosLevel,
    ConfigurationError,
    EngineConfig,
    HarnessConfig,
    RecordCorruptError,
    ResilienceError,
)


class TestHarnessConfig:

    def test_defaults_are_valid(self):
        assert HarnessConfig().validate() == []

    @pytest.mark.parametrize("level,rate", [
        (ChaosLevel.LOW, 0.1),
        (ChaosLevel.MEDIUM, 0.5),
        (ChaosLevel.HIGH, 0.9),
        (ChaosLevel.ALWAYS, 1.0),
    ])
    def test_chaos_levels(self, level, rate):
        assert HarnessConfig.for_chaos_level(level).failure_rate == rate

    def test_override_beats_level(self):
        config = HarnessConfig.for_chaos_level(ChaosLevel.HIGH, failure_rate=0.25)
        assert config.failure_rate == 0.25

    def test_invalid_values(self):
        errors = HarnessConfig(
            failure_rate=-0.1,
            max_concurrent_failures=0,
            test_timeout_seconds=0,
            response_time_tolerance=0.9,
        ).validate()
        assert len(errors) == 4


class TestEngineConfig:

    def test_defaults_are_valid(self):
        assert EngineConfig().validate() == []

    def test_invalid_engine_values(self):
        errors = EngineConfig(alert_threshold=150, log_level="LOUD", output_dir="").validate()
        assert len(errors) == 3

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RESILIENCE_CHAOS_LEVEL", "low")
        monkeypatch.setenv("RESILIENCE_MAX_CONCURRENT_FAILURES", "4")
        monkeypatch.setenv("RESILIENCE_BACKPRESSURE", "defer")
        monkeypatch.setenv("RESILIENCE_SEED", "42")
        monkeypatch.setenv("RESILIENCE_JOURNAL", "false")
        monkeypatch.setenv("DATABASE_URL", "sqlite:///records.db")
        monkeypatch.delenv("RESILIENCE_FAILURE_RATE", raising=False)

        config = EngineConfig.from_env()

        assert config.chaos_level == ChaosLevel.LOW
        assert config.harness.failure_rate == 0.1
        assert config.harness.max_concurrent_failures == 4
        assert config.harness.backpressure == BackpressurePolicy.DEFER
        assert config.harness.journal is False
        assert config.seed == 42
        assert config.database_url == "sqlite:///records.db"

    def test_explicit_rate_from_env(self, monkeypatch):
        monkeypatch.setenv("RESILIENCE_CHAOS_LEVEL", "low")
        monkeypatch.setenv("RESILIENCE_FAILURE_RATE", "0.75")
        assert EngineConfig.from_env().harness.failure_rate == 0.75


class TestExceptions:

    def test_configuration_error_carries_errors(self):
        error = ConfigurationError("bad", errors=["a", "b"])
        assert error.errors == ["a", "b"]
        assert error.context["errors"] == ["a", "b"]
        assert isinstance(error, ResilienceError)

    def test_cause_recorded(self):
        cause = ValueError("bad json")
        error = RecordCorruptError("summary", "bad json", cause=cause)
        data = error.to_dict()
        assert data["type"] == "RecordCorruptError"
        assert data["context"]["cause_type"] == "ValueError"
        assert error.name == "summary"
