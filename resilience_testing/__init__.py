"""
Resilience Testing Module.

============================================================
RESILIENCE TESTING ENGINE
Fault Injection, Cascade Mapping & Resilience Scoring
============================================================

PURPOSE:
--------
This module deliberately breaks components of a running
system, measures how they degrade and recover, and reduces
every run to a comparable 0-100 resilience score.

It answers:

1. Does each component recover from each failure type?
2. Which components take others down with them?
3. How badly do users feel it?
4. Is the system getting better or worse run over run?

PHILOSOPHY:
-----------
- A broken target is a test result, not a crash
- Every requested test ends up somewhere in the Summary
- The score formula is fixed so runs stay comparable

============================================================
PIPELINE
============================================================

    FaultInjectionHarness  (concurrent, many tests)
        -> TelemetryCollector / CascadeMapper / SummaryBuilder
    AnomalyDetector / UXImpactTracker / RecoveryPathValidator
        -> ResilienceScorer -> HistoryTracker
        -> ScoreAlertMonitor -> Reports and graphs

============================================================
USAGE
============================================================

    from resilience_testing import (
        EngineConfig,
        ResilienceRunner,
        default_simulated_system,
    )

    config = EngineConfig(seed=42)
    system = default_simulated_system(seed=42)
    result = await ResilienceRunner(config, system.targets()).execute()
    print(result.score.score, result.score.rating)

Re-score stored records without running tests:

    result = await analyze_records(JsonFileRecordStore("reports/records"))

Command line:

    resilience-testing --chaos-level high --seed 42

============================================================
"""

# Models
from .models import (
    DID_NOT_RECOVER,
    HARNESS_ERROR_TAG,
    METRIC_NAMES,
    Anomaly,
    ComponentTally,
    Degradation,
    FailureCascade,
    FailureType,
    HistoryComparison,
    HistoryEntry,
    MetricsSnapshot,
    OutcomeStatus,
    RecoveryPath,
    RecoveryTier,
    ResilienceRating,
    ScoreResult,
    Summary,
    TestOutcome,
    TestRequest,
    UXImpact,
    UXImpactReport,
)

# Exceptions
from .exceptions import (
    CollectionWindowError,
    ConfigurationError,
    InjectedFaultException,
    RecordCorruptError,
    ResilienceError,
    RunAbortedError,
    TargetUnreachableError,
)

# Configuration
from .config import (
    BackpressurePolicy,
    ChaosLevel,
    EngineConfig,
    HarnessConfig,
)

# Persistence
from .persistence import (
    InMemoryRecordStore,
    JsonFileRecordStore,
    RecordStore,
    RunJournal,
    SqlRecordStore,
    load_record,
)

# Telemetry
from .telemetry import (
    TelemetryCollector,
    TelemetrySeries,
    is_degraded,
    is_recovered,
)

# Harness
from .harness import (
    ConcurrencyGate,
    FaultInjectionHarness,
)

# Analysis
from .cascade import CascadeMapper, CascadeRelations
from .recovery import (
    RecoveryPathRegistry,
    RecoveryPathValidator,
    RecoveryValidationResult,
    default_recovery_paths,
)
from .anomaly import AnomalyDetector, TelemetryReport, build_telemetry_report
from .ux_impact import UXImpactTracker, severity_from_degradation
from .scoring import ResilienceScorer, performance_benchmark_pass_rate, rating_for
from .history import HistoryTracker
from .summary import SummaryBuilder

# Output
from .graphs import (
    GraphDescription,
    render_cascade_graph,
    render_recovery_graph,
    render_system_graph,
)
from .reporting import recommendations, render_component_resilience, render_report
from .alerts import (
    LoggingAlertSink,
    ResilienceAlert,
    ScoreAlertMonitor,
    WebhookAlertSink,
)

# Targets
from .targets import (
    SimulatedComponent,
    SimulatedSystem,
    TargetComponent,
    default_simulated_system,
)

# Orchestration
from .runner import (
    ResilienceRunner,
    RunResult,
    analyze_records,
    create_record_store,
)


__all__ = [
    # Models
    "DID_NOT_RECOVER",
    "HARNESS_ERROR_TAG",
    "METRIC_NAMES",
    "Anomaly",
    "ComponentTally",
    "Degradation",
    "FailureCascade",
    "FailureType",
    "HistoryComparison",
    "HistoryEntry",
    "MetricsSnapshot",
    "OutcomeStatus",
    "RecoveryPath",
    "RecoveryTier",
    "ResilienceRating",
    "ScoreResult",
    "Summary",
    "TestOutcome",
    "TestRequest",
    "UXImpact",
    "UXImpactReport",

    # Exceptions
    "CollectionWindowError",
    "ConfigurationError",
    "InjectedFaultException",
    "RecordCorruptError",
    "ResilienceError",
    "RunAbortedError",
    "TargetUnreachableError",

    # Configuration
    "BackpressurePolicy",
    "ChaosLevel",
    "EngineConfig",
    "HarnessConfig",

    # Persistence
    "InMemoryRecordStore",
    "JsonFileRecordStore",
    "RecordStore",
    "RunJournal",
    "SqlRecordStore",
    "load_record",

    # Telemetry
    "TelemetryCollector",
    "TelemetrySeries",
    "is_degraded",
    "is_recovered",

    # Harness
    "ConcurrencyGate",
    "FaultInjectionHarness",

    # Analysis
    "CascadeMapper",
    "CascadeRelations",
    "RecoveryPathRegistry",
    "RecoveryPathValidator",
    "RecoveryValidationResult",
    "default_recovery_paths",
    "AnomalyDetector",
    "TelemetryReport",
    "build_telemetry_report",
    "UXImpactTracker",
    "severity_from_degradation",
    "ResilienceScorer",
    "performance_benchmark_pass_rate",
    "rating_for",
    "HistoryTracker",
    "SummaryBuilder",

    # Output
    "GraphDescription",
    "render_cascade_graph",
    "render_recovery_graph",
    "render_system_graph",
    "recommendations",
    "render_component_resilience",
    "render_report",
    "LoggingAlertSink",
    "ResilienceAlert",
    "ScoreAlertMonitor",
    "WebhookAlertSink",

    # Targets
    "SimulatedComponent",
    "SimulatedSystem",
    "TargetComponent",
    "default_simulated_system",

    # Orchestration
    "ResilienceRunner",
    "RunResult",
    "analyze_records",
    "create_record_store",
]
