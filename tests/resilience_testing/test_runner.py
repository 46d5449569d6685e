"""
Tests for the run orchestrator.

============================================================
TEST COVERAGE
============================================================
1. Live run end to end on a small simulated system
2. History across consecutive runs
3. Deferred tests re-queued
4. Records-only analysis
============================================================
"""

import json
from pathlib import Path

import pytest

from resilience_testing import (
    BackpressurePolicy,
    ConfigurationError,
    InMemoryRecordStore,
    LoggingAlertSink,
    ResilienceRunner,
    RunAbortedError,
    Summary,
    SimulatedComponent,
    SimulatedSystem,
    SummaryBuilder,
    TestOutcome,
    OutcomeStatus,
    analyze_records,
)
from resilience_testing.persistence import (
    ANOMALIES_RECORD,
    CASCADE_MAP_RECORD,
    HISTORY_RECORD,
    JOURNAL_FILENAME,
    RECOVERY_PATHS_RECORD,
    SUMMARY_RECORD,
    UX_IMPACT_RECORD,
)


class CrashingRecoveryComponent(SimulatedComponent):
    """Recovery endpoint that always blows up."""

    async def attempt_recovery(self, strategy):
        raise RuntimeError("recovery endpoint crashed")


class TestResilienceRunner:

    @pytest.mark.asyncio
    async def test_live_run(self, engine_config, small_system, small_registry, memory_store):
        runner = ResilienceRunner(
            engine_config,
            small_system.targets(),
            store=memory_store,
            registry=small_registry,
        )

        result = await runner.execute(["api-timeout", "network-partition"])

        assert result.summary.total_tests == 6
        assert result.summary.passed_tests == 6
        assert result.summary.recovery_success_rate == 1.0
        assert 0 <= result.score.score <= 100
        assert result.summary.resilience_score == result.score.score
        assert result.comparison.has_prior is False
        assert result.telemetry_report.metrics_observed > 0
        assert result.recovery_validation.primary_success == 2
        assert len(result.outcomes) == 6

        for name in (SUMMARY_RECORD, UX_IMPACT_RECORD, ANOMALIES_RECORD,
                     CASCADE_MAP_RECORD, RECOVERY_PATHS_RECORD, HISTORY_RECORD):
            assert memory_store.read(name) is not None

    @pytest.mark.asyncio
    async def test_outputs_written(self, engine_config, small_system, small_registry, memory_store):
        runner = ResilienceRunner(
            engine_config, small_system.targets(), store=memory_store, registry=small_registry
        )

        result = await runner.execute(["api-timeout"])

        output_dir = Path(engine_config.output_dir)
        assert (output_dir / "resilience-report.md").read_text(encoding="utf-8") == result.report
        assert (output_dir / "component-resilience.md").exists()
        graph = json.loads((output_dir / "cascade-map.json").read_text(encoding="utf-8"))
        assert {n["id"] for n in graph["nodes"]} >= {"Database", "Cache"}
        assert (output_dir / "system-resilience.dot").exists()
        journal = (output_dir / JOURNAL_FILENAME).read_text(encoding="utf-8").splitlines()
        assert len(journal) == 3

    @pytest.mark.asyncio
    async def test_second_run_compares_with_first(self, engine_config, small_system,
                                                  small_registry, memory_store):
        runner = ResilienceRunner(
            engine_config, small_system.targets(), store=memory_store,
            registry=small_registry, write_outputs=False,
        )

        first = await runner.execute(["api-timeout"])
        second = await runner.execute(["api-timeout"])

        assert second.comparison.has_prior
        assert second.comparison.previous == first.history_entry
        assert second.comparison.score_delta == second.score.score - first.score.score
        assert len(memory_store.read(HISTORY_RECORD)) == 2
        assert "## Historical Comparison" in second.report

    @pytest.mark.asyncio
    async def test_alert_raised_below_threshold(self, engine_config, small_system,
                                                small_registry, memory_store):
        engine_config.alert_threshold = 100
        sink = LoggingAlertSink()
        runner = ResilienceRunner(
            engine_config, small_system.targets(), store=memory_store,
            registry=small_registry, alert_hooks=[sink], write_outputs=False,
        )

        result = await runner.execute(["api-timeout"])

        # Faults always produce some UX impact, so 100 is out of reach
        assert result.alerted
        assert sink.delivered == [result.alert]

    @pytest.mark.asyncio
    async def test_deferred_tests_are_requeued(self, engine_config, small_system,
                                               small_registry, memory_store):
        engine_config.harness.backpressure = BackpressurePolicy.DEFER
        engine_config.max_deferral_retries = 10
        engine_config.recovery_validation = False
        runner = ResilienceRunner(
            engine_config, small_system.targets(), store=memory_store,
            registry=small_registry, write_outputs=False,
        )

        result = await runner.execute(["api-timeout"])

        summary = result.summary
        assert summary.total_tests + summary.deferred_tests == 3
        assert summary.total_tests >= 1
        assert result.recovery_validation is None

    @pytest.mark.asyncio
    async def test_invalid_config(self, engine_config, small_system, memory_store):
        engine_config.harness.failure_rate = 2.0
        runner = ResilienceRunner(engine_config, small_system.targets(), store=memory_store)

        with pytest.raises(ConfigurationError) as excinfo:
            await runner.execute()

        assert "failure_rate must be within [0, 1]" in excinfo.value.errors

    @pytest.mark.asyncio
    async def test_crashing_recovery_does_not_abort_run(self, engine_config, small_registry,
                                                        memory_store):
        system = SimulatedSystem([
            CrashingRecoveryComponent("Database", self_heal_probability=1.0, seed=1),
            SimulatedComponent("Cache", dependencies=["Database"],
                               self_heal_probability=1.0,
                               recovery_probabilities={"Reconnect": 1.0}, seed=1),
        ])
        runner = ResilienceRunner(
            engine_config, system.targets(), store=memory_store, registry=small_registry
        )

        result = await runner.execute(["api-timeout"])

        assert result.recovery_validation.complete_fail == 1
        assert result.recovery_validation.primary_success == 1
        assert "Unrecoverable: Database" in result.report
        assert (Path(engine_config.output_dir) / "resilience-report.md").exists()

    @pytest.mark.asyncio
    async def test_report_sections(self, engine_config, small_system, small_registry,
                                   memory_store):
        runner = ResilienceRunner(
            engine_config, small_system.targets(), store=memory_store,
            registry=small_registry, write_outputs=False,
        )

        result = await runner.execute(["network-partition"])

        assert "## Failure Cascades" in result.report
        assert "| Database | - | Cache |" in result.report
        assert "## Recovery Path Validation" in result.report
        assert "| Primary strategy | 2 |" in result.report

    @pytest.mark.asyncio
    async def test_missing_live_data_annotated(self, engine_config, small_system,
                                               small_registry, memory_store):
        engine_config.harness.failure_rate = 0.0
        engine_config.recovery_validation = False
        runner = ResilienceRunner(
            engine_config, small_system.targets(), store=memory_store,
            registry=small_registry, write_outputs=False,
        )

        result = await runner.execute(["api-timeout"])

        assert len(result.missing) == 2
        assert "## Missing Data" in result.report
        assert "No telemetry readings collected" in result.report

    def test_default_registry_seeded(self, engine_config, small_system, memory_store):
        runner = ResilienceRunner(engine_config, small_system.targets(), store=memory_store)
        assert len(runner.registry) == 7


class TestAnalyzeRecords:

    @pytest.mark.asyncio
    async def test_no_summary_aborts(self, memory_store):
        with pytest.raises(RunAbortedError):
            await analyze_records(memory_store, write_outputs=False)

    @pytest.mark.asyncio
    async def test_summary_only(self, memory_store):
        outcomes = [
            TestOutcome("API", "api-timeout", n < 8, 100.0 if n < 8 else -1.0,
                        status=OutcomeStatus.PASSED if n < 8 else OutcomeStatus.FAILED)
            for n in range(10)
        ]
        memory_store.write(SUMMARY_RECORD, SummaryBuilder(outcomes).build().to_dict())

        result = await analyze_records(memory_store, write_outputs=False)

        # 100 * (0.4 * 0.8 + 0.3 * 1 + 0.3 * 0) = 62
        assert result.score.score == 62
        assert result.score.rating == "Needs Work"
        assert len(result.missing) == 2
        assert "## Missing Data" in result.report

    @pytest.mark.asyncio
    async def test_reference_records_score_82(self, memory_store):
        summary = Summary(total_tests=10, passed_tests=8, failed_tests=2, recovery_success_rate=0.8)
        memory_store.write(SUMMARY_RECORD, summary.to_dict())
        memory_store.write(UX_IMPACT_RECORD, {"total_impacts": 4, "avg_severity": 1.5})
        memory_store.write(ANOMALIES_RECORD, {
            "metrics_observed": 20,
            "anomalies": [{
                "metric": "response_time_ms",
                "description": "slow",
                "observed_value": 900.0,
                "expected_range": [50.0, 300.0],
            }],
        })

        result = await analyze_records(memory_store, write_outputs=False)

        assert result.score.score == 82
        assert result.score.rating == "Strong"
        assert result.missing == []
        assert load_summary_score(memory_store) == 82

    @pytest.mark.asyncio
    async def test_corrupt_ux_record_is_reported_missing(self, memory_store):
        memory_store.write(SUMMARY_RECORD, Summary(total_tests=1, passed_tests=1).to_dict())
        memory_store.write_raw(UX_IMPACT_RECORD, "{oops")

        result = await analyze_records(memory_store, write_outputs=False)

        assert any("UX impact" in m for m in result.missing)


def load_summary_score(store):
    return store.read(SUMMARY_RECORD)["resilience_score"]


class TestMalformedRecords:

    @pytest.mark.asyncio
    async def test_non_dict_tally_aborts(self, memory_store):
        memory_store.write(SUMMARY_RECORD, {
            "total_tests": 5,
            "passed_tests": 5,
            "tests_by_component": {"A": 5},
        })

        with pytest.raises(RunAbortedError):
            await analyze_records(memory_store, write_outputs=False)

    @pytest.mark.asyncio
    async def test_wrong_shape_side_records_use_defaults(self, memory_store):
        memory_store.write(SUMMARY_RECORD, Summary(total_tests=2, passed_tests=2).to_dict())
        memory_store.write(UX_IMPACT_RECORD, {"impacts": ["not an impact"]})
        memory_store.write(ANOMALIES_RECORD, {"anomalies": [7]})
        memory_store.write(CASCADE_MAP_RECORD, ["Database", 1])
        memory_store.write(RECOVERY_PATHS_RECORD, [None, "Cache"])
        memory_store.write(HISTORY_RECORD, ["garbage"])

        result = await analyze_records(memory_store, write_outputs=False)

        assert len(result.missing) == 2
        assert result.comparison.has_prior is False
