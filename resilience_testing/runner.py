"""
Resilience Testing - Run Orchestrator.

============================================================
PURPOSE
============================================================
Drives a complete resilience run:

    Harness -> Summary / cascades / telemetry
            -> Anomaly Detector -> UX report
            -> Recovery validation (optional)
            -> Resilience Scorer -> History Tracker
            -> Alerting -> Report / Graph Emitter
            -> Persisted records

The concurrent phase runs every (component, failure type)
pair per round, shuffled by the seeded RNG, and keeps
starting rounds until the run duration elapses. Deferred
tests are re-queued, never dropped.

The analysis phase only starts after the concurrent phase
has fully drained.

============================================================
RECORDS-ONLY MODE
============================================================
analyze_records() re-scores persisted records without
running any test. It is the only place a run aborts: with no
stored Summary there is nothing to score.

============================================================
"""

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .alerts import ResilienceAlert, ScoreAlertMonitor
from .anomaly import AnomalyDetector, TelemetryReport, build_telemetry_report
from .cascade import CascadeMapper
from .config import EngineConfig
from .exceptions import ConfigurationError, RunAbortedError
from .graphs import render_cascade_graph, render_recovery_graph, render_system_graph
from .harness import ConcurrencyGate, FaultInjectionHarness
from .history import HistoryTracker
from .models import (
    FailureType,
    HistoryComparison,
    HistoryEntry,
    OutcomeStatus,
    ScoreResult,
    Summary,
    TestOutcome,
    TestRequest,
    UXImpactReport,
    utcnow,
)
from .persistence import (
    ANOMALIES_RECORD,
    JOURNAL_FILENAME,
    SUMMARY_RECORD,
    UX_IMPACT_RECORD,
    JsonFileRecordStore,
    RecordStore,
    RunJournal,
    SqlRecordStore,
    load_record,
)
from .recovery import RecoveryPathRegistry, RecoveryPathValidator, RecoveryValidationResult
from .reporting import render_component_resilience, render_report
from .scoring import ResilienceScorer, performance_benchmark_pass_rate
from .summary import SummaryBuilder, load_summary
from .telemetry import TelemetrySeries
from .ux_impact import UXImpactTracker, load_ux_report, severity_from_degradation


logger = logging.getLogger(__name__)


# ============================================================
# RESULT
# ============================================================

@dataclass
class RunResult:
    """Everything a run produced."""
    summary: Summary
    score: ScoreResult
    history_entry: HistoryEntry
    comparison: HistoryComparison
    ux_report: Optional[UXImpactReport] = None
    telemetry_report: Optional[TelemetryReport] = None
    recovery_validation: Optional[RecoveryValidationResult] = None
    alert: Optional[ResilienceAlert] = None
    report: str = ""
    component_document: str = ""
    outcomes: List[TestOutcome] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)

    @property
    def alerted(self) -> bool:
        return self.alert is not None


def create_record_store(config: EngineConfig) -> RecordStore:
    """Database store when a URL is configured, else JSON files."""
    if config.database_url:
        return SqlRecordStore(config.database_url)
    return JsonFileRecordStore(Path(config.output_dir) / "records")


# ============================================================
# ANALYSIS PHASE (shared by live and records-only runs)
# ============================================================

async def _finalize(
    config: EngineConfig,
    store: RecordStore,
    summary: Summary,
    ux_report: Optional[UXImpactReport],
    telemetry_report: Optional[TelemetryReport],
    registry: RecoveryPathRegistry,
    mapper: CascadeMapper,
    monitor: ScoreAlertMonitor,
    missing: List[str],
    write_outputs: bool,
    validation: Optional[RecoveryValidationResult] = None,
) -> RunResult:
    # Score
    if telemetry_report is not None:
        pass_rate = performance_benchmark_pass_rate(
            telemetry_report.total_anomalies,
            telemetry_report.metrics_observed,
        )
    else:
        pass_rate = 0.0
    avg_ux = ux_report.avg_severity if ux_report is not None else 0.0

    score = ResilienceScorer().score(summary.recovery_success_rate, avg_ux, pass_rate)
    summary.resilience_score = score.score
    summary.resilience_rating = score.rating

    # History
    history = HistoryTracker.load(store)
    prior = history.entries
    entry = HistoryEntry(
        timestamp=utcnow(),
        resilience_score=score.score,
        recovery_success_rate=summary.recovery_success_rate,
        avg_ux_severity=avg_ux,
        performance_benchmark_pass_rate=pass_rate,
        anomaly_count=telemetry_report.total_anomalies if telemetry_report else 0,
    )
    comparison = history.compare_to_latest(entry)
    history.append(entry)
    history.save(store)

    if comparison.has_prior:
        logger.info(
            f"Score change since last run: {comparison.score_delta:+d} "
            f"(recovery {comparison.recovery_rate_delta_pct:+.1f} pp)"
        )

    # Alert
    alert = await monitor.evaluate(score, context={
        "recovery_success_rate": summary.recovery_success_rate,
        "avg_ux_severity": avg_ux,
        "worst_component": ux_report.worst_component if ux_report else None,
        "output_dir": config.output_dir,
    })

    # Report
    report = render_report(
        summary,
        ux_report,
        telemetry_report,
        prior,
        registry,
        cascades=mapper,
        validation=validation,
    )
    if missing:
        report += "\n## Missing Data\n\n" + "\n".join(f"- {m}" for m in missing) + "\n"
    component_document = render_component_resilience(registry, mapper)

    # Records
    store.write(SUMMARY_RECORD, summary.to_dict())
    if ux_report is not None:
        store.write(UX_IMPACT_RECORD, ux_report.to_dict())
    if telemetry_report is not None:
        store.write(ANOMALIES_RECORD, telemetry_report.to_dict())
    mapper.save(store)
    registry.save(store)

    result = RunResult(
        summary=summary,
        score=score,
        history_entry=entry,
        comparison=comparison,
        ux_report=ux_report,
        telemetry_report=telemetry_report,
        recovery_validation=validation,
        alert=alert,
        report=report,
        component_document=component_document,
        missing=list(missing),
    )

    if write_outputs:
        result.outputs = write_run_outputs(result, registry, mapper, Path(config.output_dir))

    return result


def write_run_outputs(
    result: RunResult,
    registry: RecoveryPathRegistry,
    mapper: CascadeMapper,
    output_dir: Path,
) -> Dict[str, str]:
    """Write the report, component document and graphs."""
    output_dir.mkdir(parents=True, exist_ok=True)
    outputs: Dict[str, str] = {}

    def write(filename: str, content: str) -> None:
        path = output_dir / filename
        path.write_text(content, encoding="utf-8")
        outputs[filename] = str(path)

    write("resilience-report.md", result.report)
    write("component-resilience.md", result.component_document)

    graphs = {
        "cascade-map": render_cascade_graph(mapper.cascades),
        "recovery-paths": render_recovery_graph(registry.paths),
        "system-resilience": render_system_graph(registry.paths, mapper.cascades),
    }
    for name, graph in graphs.items():
        write(f"{name}.dot", graph.to_dot())
        write(f"{name}.json", json.dumps(graph.to_dict(), indent=2))

    logger.info(f"Wrote {len(outputs)} output files to {output_dir}")
    return outputs


# ============================================================
# LIVE RUN
# ============================================================

class ResilienceRunner:
    """Runs fault-injection tests against targets and scores the run."""

    def __init__(
        self,
        config: EngineConfig,
        targets: Mapping[str, Any],
        store: Optional[RecordStore] = None,
        registry: Optional[RecoveryPathRegistry] = None,
        alert_hooks: Optional[Iterable[Callable]] = None,
        write_outputs: bool = True,
    ):
        self._config = config
        self._targets = dict(targets)
        self._store = store or create_record_store(config)
        self._registry = registry or RecoveryPathRegistry.load(self._store, seed_defaults=True)
        self._monitor = ScoreAlertMonitor(config.alert_threshold, alert_hooks)
        self._write_outputs = write_outputs

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def registry(self) -> RecoveryPathRegistry:
        return self._registry

    async def execute(self, failure_types: Optional[List[str]] = None) -> RunResult:
        """Run the concurrent phase, then analyse, score and report."""
        errors = self._config.validate()
        if errors:
            raise ConfigurationError("Invalid engine configuration", errors=errors)

        config = self._config
        failure_types = failure_types or [f.value for f in FailureType]
        components = list(self._targets)
        rng = random.Random(config.seed)

        journal = None
        if config.harness.journal:
            journal_path = Path(config.output_dir) / JOURNAL_FILENAME if self._write_outputs else None
            journal = RunJournal(journal_path)

        mapper = CascadeMapper()
        series = TelemetrySeries()
        harness = FaultInjectionHarness(
            targets=self._targets,
            config=config.harness,
            gate=ConcurrencyGate(config.harness.max_concurrent_failures),
            cascade_mapper=mapper,
            telemetry_series=series,
            journal=journal,
            rng=rng,
        )
        builder = SummaryBuilder()
        ux_tracker = UXImpactTracker()

        logger.info(
            f"Starting resilience run: {len(components)} components x "
            f"{len(failure_types)} failure types, seed={config.seed}"
        )

        started = time.monotonic()
        rounds = 0
        while True:
            rounds += 1
            plan = [TestRequest(c, f) for c in components for f in failure_types]
            rng.shuffle(plan)
            await self._run_round(harness, plan, builder, ux_tracker)
            if time.monotonic() - started >= config.run_duration_seconds:
                break

        summary = builder.build()
        logger.info(
            f"Concurrent phase complete after {rounds} rounds: "
            f"{summary.passed_tests}/{summary.total_tests} recovered, "
            f"{summary.control_tests} control, {summary.deferred_tests} deferred"
        )

        # Analysis phase
        detector = AnomalyDetector(config.anomaly_threshold)
        snapshots = series.snapshots()
        telemetry_report = build_telemetry_report(snapshots, detector.detect_all(snapshots))

        validation = None
        if config.recovery_validation and len(self._registry):
            validation = await RecoveryPathValidator().validate(self._registry, self._targets)
            for impact in validation.ux_impacts:
                ux_tracker.add(impact)

        ux_report = ux_tracker.report()
        missing = self._missing_data(telemetry_report, ux_report)

        result = await _finalize(
            config=config,
            store=self._store,
            summary=summary,
            ux_report=ux_report,
            telemetry_report=telemetry_report,
            registry=self._registry,
            mapper=mapper,
            monitor=self._monitor,
            missing=missing,
            write_outputs=self._write_outputs,
            validation=validation,
        )
        result.outcomes = builder.outcomes

        logger.info(f"Resilience run complete: score {result.score.score} ({result.score.rating})")
        return result

    async def _run_round(
        self,
        harness: FaultInjectionHarness,
        plan: List[TestRequest],
        builder: SummaryBuilder,
        ux_tracker: UXImpactTracker,
    ) -> None:
        pending = plan
        while pending:
            outcomes = await asyncio.gather(
                *(harness.run_test(r.component, r.failure_type) for r in pending)
            )

            retry: List[TestRequest] = []
            for request, outcome in zip(pending, outcomes):
                if (
                    outcome.status == OutcomeStatus.DEFERRED
                    and request.attempt <= self._config.max_deferral_retries
                ):
                    retry.append(request.retry())
                    continue

                builder.add(outcome)
                self._record_ux(outcome, ux_tracker)

            if retry:
                logger.info(f"Re-queueing {len(retry)} deferred tests")
            pending = retry

    @staticmethod
    def _missing_data(
        telemetry_report: TelemetryReport,
        ux_report: UXImpactReport,
    ) -> List[str]:
        missing: List[str] = []
        if telemetry_report.metrics_observed == 0:
            missing.append("No telemetry readings collected; performance pass rate scored as 0")
        if ux_report.total_impacts == 0:
            missing.append("No UX impacts recorded; UX severity scored as 0")
        return missing

    @staticmethod
    def _record_ux(outcome: TestOutcome, ux_tracker: UXImpactTracker) -> None:
        """One UX impact per observed user-facing degradation."""
        if outcome.status not in (OutcomeStatus.PASSED, OutcomeStatus.FAILED, OutcomeStatus.TIMEOUT):
            return

        severity = severity_from_degradation(outcome.degradation, outcome.passed)
        if severity == 0:
            return

        ux_tracker.record_impact(
            component=outcome.component,
            severity=severity,
            recovery_time_ms=max(outcome.recovery_time_ms, 0.0),
            description=f"{outcome.failure_type} ({outcome.status.value})",
        )


# ============================================================
# RECORDS-ONLY RUN
# ============================================================

async def analyze_records(
    store: RecordStore,
    config: Optional[EngineConfig] = None,
    alert_hooks: Optional[Iterable[Callable]] = None,
    write_outputs: bool = True,
) -> RunResult:
    """
    Score previously persisted records.

    Raises:
        RunAbortedError: no usable Summary is stored
    """
    config = config or EngineConfig()

    summary = load_summary(store)
    if summary is None:
        raise RunAbortedError("No usable summary record; nothing to analyse")

    missing: List[str] = []

    ux_report = load_ux_report(store)
    if ux_report is None:
        missing.append("UX impact record unavailable; UX severity scored as 0")

    telemetry_report = None
    data = load_record(store, ANOMALIES_RECORD, default=None)
    if isinstance(data, dict):
        try:
            telemetry_report = TelemetryReport.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Telemetry record is malformed: {e}")
    if telemetry_report is None:
        missing.append("Telemetry record unavailable; performance pass rate scored as 0")

    logger.info(f"Analysing stored records ({summary.total_tests} tests)")

    return await _finalize(
        config=config,
        store=store,
        summary=summary,
        ux_report=ux_report,
        telemetry_report=telemetry_report,
        registry=RecoveryPathRegistry.load(store),
        mapper=CascadeMapper.load(store),
        monitor=ScoreAlertMonitor(config.alert_threshold, alert_hooks),
        missing=missing,
        write_outputs=write_outputs,
    )
