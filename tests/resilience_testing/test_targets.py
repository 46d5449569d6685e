"""
Tests for the simulated system under test.
"""

import asyncio

import pytest

from resilience_testing import (
    InjectedFaultException,
    SimulatedComponent,
    SimulatedSystem,
    TargetUnreachableError,
    default_simulated_system,
)
from resilience_testing.targets import simulate_resource_pressure


class TestSimulatedComponent:

    @pytest.mark.asyncio
    async def test_healthy_sample_near_baseline(self):
        component = SimulatedComponent("API", response_time_ms=100.0, seed=3)
        reading = await component.sample()
        assert 95.0 <= reading["response_time_ms"] <= 105.0
        assert reading["error_rate"] == pytest.approx(0.005)

    @pytest.mark.asyncio
    async def test_fault_degrades_and_invoke_raises(self):
        component = SimulatedComponent("API", self_heal_probability=0.0, seed=3)
        await component.inject_fault("api-timeout", 10.0)

        reading = await component.sample()

        assert reading["response_time_ms"] > 300.0
        with pytest.raises(InjectedFaultException):
            await component.invoke()

    @pytest.mark.asyncio
    async def test_fault_self_heals_after_duration(self):
        component = SimulatedComponent("API", self_heal_probability=1.0, seed=3)
        await component.inject_fault("api-timeout", 0.01)
        await asyncio.sleep(0.05)

        assert not component.is_faulted
        assert (await component.invoke())["status"] == "ok"

    @pytest.mark.asyncio
    async def test_non_healing_fault_persists_until_cleared(self):
        component = SimulatedComponent("API", self_heal_probability=0.0, seed=3)
        await component.inject_fault("api-timeout", 0.0)
        assert component.is_faulted

        await component.clear_fault()
        assert not component.is_faulted

    @pytest.mark.asyncio
    async def test_unreachable(self):
        component = SimulatedComponent("API")
        component.unreachable = True
        with pytest.raises(TargetUnreachableError):
            await component.sample()

    @pytest.mark.asyncio
    async def test_recovery_probability(self):
        component = SimulatedComponent(
            "API",
            self_heal_probability=0.0,
            recovery_probabilities={"Reset": 1.0, "Pray": 0.0},
            seed=3,
        )
        await component.inject_fault("api-timeout", 10.0)

        assert await component.attempt_recovery("Pray") is False
        assert component.is_faulted
        assert await component.attempt_recovery("Reset") is True
        assert not component.is_faulted


class TestSimulatedSystem:

    @pytest.mark.asyncio
    async def test_dependency_fault_degrades_dependent(self, small_system):
        cache = small_system.get("Cache")
        await small_system.get("Database").inject_fault("network-partition", 10.0)

        reading = await cache.sample()

        assert cache.has_degraded_dependency
        assert reading["response_time_ms"] > 60.0
        assert (await cache.invoke())["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_isolated_component_ignores_dependencies(self):
        system = SimulatedSystem([
            SimulatedComponent("Database", self_heal_probability=0.0),
            SimulatedComponent("Cache", dependencies=["Database"], isolated=True),
        ])
        await system.get("Database").inject_fault("network-partition", 10.0)
        assert not system.get("Cache").has_degraded_dependency

    def test_default_topology(self):
        system = default_simulated_system(seed=1)
        assert system.names == [
            "Database", "Cache", "API", "Frontend",
            "Voice Module", "Intent Parser", "Redis Memory",
        ]
        assert system.get("API").dependencies == ["Database", "Cache"]
        assert system.get("Cache").recovery_probabilities["Rebuild from Database"] == 0.8


class TestResourcePressure:

    def test_memory(self):
        simulate_resource_pressure("memory", 1)

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            simulate_resource_pressure("disk", 1)
