"""
Tests for recovery paths and their validation.
"""

import pytest

from resilience_testing import (
    InMemoryRecordStore,
    RecoveryPath,
    RecoveryPathRegistry,
    RecoveryPathValidator,
    RecoveryTier,
    TargetUnreachableError,
    default_recovery_paths,
)
from resilience_testing.persistence import RECOVERY_PATHS_RECORD


class ScriptedTarget:
    """Succeeds only for the listed strategies."""

    def __init__(self, working=(), unreachable=False, crashing=()):
        self.working = set(working)
        self.unreachable = unreachable
        self.crashing = set(crashing)
        self.attempted = []

    async def attempt_recovery(self, strategy):
        self.attempted.append(strategy)
        if self.unreachable:
            raise TargetUnreachableError("Database")
        if strategy in self.crashing:
            raise RuntimeError("recovery endpoint crashed")
        return strategy in self.working


@pytest.fixture
def database_path():
    return RecoveryPath("Database", "Connection Pool Reset", "Replica Failover", "Read-Only Mode", 5000)


class TestRecoveryPathRegistry:

    def test_default_catalog(self):
        registry = RecoveryPathRegistry(default_recovery_paths())
        assert len(registry) == 7
        assert "Voice Module" in registry.get_unique_components()
        assert registry.get("Cache")[0].secondary is None

    def test_unknown_component(self):
        assert RecoveryPathRegistry().get("Nope") == []

    def test_multiple_paths_per_component(self, database_path):
        registry = RecoveryPathRegistry([database_path, RecoveryPath("Database", "Restart")])
        assert len(registry.get("Database")) == 2
        assert registry.get_unique_components() == ["Database"]

    def test_components_without_fallback(self, database_path):
        registry = RecoveryPathRegistry([database_path, RecoveryPath("Queue", "Restart")])
        assert registry.components_without_fallback() == ["Queue"]

    def test_load_seeds_defaults_when_absent(self):
        store = InMemoryRecordStore()
        assert len(RecoveryPathRegistry.load(store)) == 0
        assert len(RecoveryPathRegistry.load(store, seed_defaults=True)) == 7

    def test_save_then_load(self, database_path):
        store = InMemoryRecordStore()
        RecoveryPathRegistry([database_path]).save(store)

        loaded = RecoveryPathRegistry.load(store, seed_defaults=True)

        assert loaded.paths == [database_path]

    def test_corrupt_record_falls_back(self):
        store = InMemoryRecordStore()
        store.write_raw(RECOVERY_PATHS_RECORD, "][")
        assert len(RecoveryPathRegistry.load(store, seed_defaults=True)) == 7


class TestRecoveryPathValidator:

    @pytest.mark.asyncio
    async def test_primary_success(self, database_path):
        target = ScriptedTarget(working={"Connection Pool Reset"})
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]), {"Database": target}
        )

        assert result.primary_success == 1
        assert result.ux_impacts[0].severity == 2
        assert target.attempted == ["Connection Pool Reset"]

    @pytest.mark.asyncio
    async def test_escalates_to_fallback(self, database_path):
        target = ScriptedTarget(working={"Read-Only Mode"})
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]), {"Database": target}
        )

        validation = result.validations[0]
        assert validation.succeeded_tier == RecoveryTier.FALLBACK
        assert validation.attempts == ["Connection Pool Reset", "Replica Failover", "Read-Only Mode"]
        assert result.fallback_success == 1
        assert result.ux_impacts[0].severity == 4

    @pytest.mark.asyncio
    async def test_secondary_severity(self, database_path):
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]),
            {"Database": ScriptedTarget(working={"Replica Failover"})},
        )
        assert result.secondary_success == 1
        assert result.ux_impacts[0].severity == 3

    @pytest.mark.asyncio
    async def test_complete_failure(self, database_path):
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]), {"Database": ScriptedTarget()}
        )

        assert result.complete_fail == 1
        assert result.success_rate == 0.0
        assert result.ux_impacts[0].severity == 5

    @pytest.mark.asyncio
    async def test_errors_count_as_failed_attempts(self, database_path):
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]),
            {"Database": ScriptedTarget(unreachable=True)},
        )
        assert result.complete_fail == 1
        assert len(result.validations[0].attempts) == 3

    @pytest.mark.asyncio
    async def test_crashing_strategy_escalates(self, database_path):
        target = ScriptedTarget(working={"Replica Failover"}, crashing={"Connection Pool Reset"})
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]), {"Database": target}
        )

        assert result.secondary_success == 1
        assert target.attempted == ["Connection Pool Reset", "Replica Failover"]

    @pytest.mark.asyncio
    async def test_crash_on_every_tier_is_complete_failure(self, database_path):
        target = ScriptedTarget(
            crashing={"Connection Pool Reset", "Replica Failover", "Read-Only Mode"}
        )
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]), {"Database": target}
        )

        assert result.complete_fail == 1
        assert len(result.validations[0].attempts) == 3

    @pytest.mark.asyncio
    async def test_missing_target_is_complete_failure(self, database_path):
        result = await RecoveryPathValidator().validate(RecoveryPathRegistry([database_path]), {})
        assert result.complete_fail == 1
        assert result.validations[0].attempts == []

    @pytest.mark.asyncio
    async def test_to_dict(self, database_path):
        result = await RecoveryPathValidator().validate(
            RecoveryPathRegistry([database_path]),
            {"Database": ScriptedTarget(working={"Connection Pool Reset"})},
        )
        data = result.to_dict()
        assert data["success_rate"] == 1.0
        assert data["validations"][0]["succeeded_tier"] == "primary"
