"""
Shared fixtures for resilience testing tests.

Timings are kept short so the harness tests run in well
under a second each.
"""

import pytest

from resilience_testing import (
    EngineConfig,
    HarnessConfig,
    InMemoryRecordStore,
    RecoveryPath,
    RecoveryPathRegistry,
    SimulatedComponent,
    SimulatedSystem,
)


@pytest.fixture
def fast_harness_config():
    """Always inject, short faults, quick polling."""
    return HarnessConfig(
        failure_rate=1.0,
        max_concurrent_failures=1,
        test_timeout_seconds=5.0,
        admission_timeout_seconds=5.0,
        fault_duration_seconds=0.1,
        recovery_poll_interval_seconds=0.01,
        recovery_timeout_seconds=2.0,
    )


@pytest.fixture
def small_system():
    """Database <- Cache, plus an independent Redis Memory."""
    return SimulatedSystem([
        SimulatedComponent(
            "Database",
            self_heal_probability=1.0,
            recovery_probabilities={"Connection Pool Reset": 1.0},
            seed=1,
        ),
        SimulatedComponent(
            "Cache",
            response_time_ms=40.0,
            dependencies=["Database"],
            self_heal_probability=1.0,
            recovery_probabilities={"Reconnect": 1.0},
            seed=1,
        ),
        SimulatedComponent(
            "Redis Memory",
            response_time_ms=30.0,
            self_heal_probability=1.0,
            seed=1,
        ),
    ])


@pytest.fixture
def small_registry():
    """Recovery paths whose primary strategy always works."""
    return RecoveryPathRegistry([
        RecoveryPath("Database", "Connection Pool Reset", "Replica Failover", "Read-Only Mode", 5000),
        RecoveryPath("Cache", "Reconnect", None, "Rebuild from Database", 2000),
    ])


@pytest.fixture
def memory_store():
    return InMemoryRecordStore()


@pytest.fixture
def engine_config(fast_harness_config, tmp_path):
    return EngineConfig(
        harness=fast_harness_config,
        seed=7,
        output_dir=str(tmp_path / "reports"),
    )
