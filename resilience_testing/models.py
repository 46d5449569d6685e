"""
Resilience Testing Models.

============================================================
PURPOSE
============================================================
Data models for fault injection, telemetry, cascade mapping,
recovery paths, scoring and run history.

PHILOSOPHY:
- A broken target is a test result, not a crash
- Every requested test ends up somewhere in the Summary
- History is append-only
- Scores must stay comparable across runs

============================================================
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


# ============================================================
# CONSTANTS
# ============================================================

DID_NOT_RECOVER = -1.0
"""Recovery time sentinel for outcomes that never recovered."""

HARNESS_ERROR_TAG = "harness-error"
"""Failure-type tag for outcomes the harness itself could not execute."""

METRIC_NAMES: Tuple[str, ...] = ("response_time_ms", "render_time_ms", "error_rate")
"""Metrics carried by every snapshot."""


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a persisted timestamp.

    Accepts ISO-8601 strings and epoch milliseconds (the format
    older JSON records were written in).
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return utcnow()


def _unique(items: Iterable[str]) -> List[str]:
    """De-duplicate while keeping first-seen order."""
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


# ============================================================
# ENUMS
# ============================================================

class FailureType(Enum):
    """Failure types the harness knows how to request."""
    API_TIMEOUT = "api-timeout"
    DATA_CORRUPTION = "data-corruption"
    NETWORK_PARTITION = "network-partition"
    MEMORY_PRESSURE = "memory-pressure"
    CPU_PRESSURE = "cpu-pressure"
    DISK_PRESSURE = "disk-pressure"
    DEPENDENCY_FAILURE = "dependency-failure"
    RATE_LIMITING = "rate-limiting"
    PERMISSION_DENIED = "permission-denied"
    INVALID_STATE = "invalid-state"


class OutcomeStatus(Enum):
    """Status of a single test outcome."""
    PASSED = "PASSED"           # Recovered within the timeout
    FAILED = "FAILED"           # Did not return to baseline
    TIMEOUT = "TIMEOUT"         # Test exceeded its overall timeout
    ERROR = "ERROR"             # Harness infrastructure error
    DEFERRED = "DEFERRED"       # Concurrency cap reached, re-queued
    CONTROL = "CONTROL"         # Failure-rate gate did not fire, no fault


class RecoveryTier(Enum):
    """Ordered recovery strategy tiers."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    FALLBACK = "fallback"


class ResilienceRating(Enum):
    """Rating tiers. Lower bounds are inclusive."""
    PLATINUM = "Platinum"
    STRONG = "Strong"
    STABLE = "Stable"
    NEEDS_WORK = "Needs Work"


# ============================================================
# TELEMETRY
# ============================================================

@dataclass(frozen=True)
class MetricsSnapshot:
    """
    Point-in-time metrics for one component.

    Immutable once captured.
    """
    component: str
    response_time_ms: float
    render_time_ms: float
    error_rate: float
    timestamp: datetime = field(default_factory=utcnow)

    def value(self, metric: str) -> float:
        """Get a metric value by name."""
        if metric not in METRIC_NAMES:
            raise KeyError(f"Unknown metric: {metric}")
        return float(getattr(self, metric))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "response_time_ms": self.response_time_ms,
            "render_time_ms": self.render_time_ms,
            "error_rate": self.error_rate,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricsSnapshot":
        return cls(
            component=str(data.get("component", "unknown")),
            response_time_ms=float(data.get("response_time_ms", 0.0)),
            render_time_ms=float(data.get("render_time_ms", 0.0)),
            error_rate=float(data.get("error_rate", 0.0)),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass(frozen=True)
class Degradation:
    """
    Degradation between two snapshots.

    Ratios above 1 mean slower; the error-rate delta is signed.
    """
    response_time_ratio: float
    render_time_ratio: float
    error_rate_delta: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "response_time_ratio": self.response_time_ratio,
            "render_time_ratio": self.render_time_ratio,
            "error_rate_delta": self.error_rate_delta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Degradation":
        return cls(
            response_time_ratio=float(data.get("response_time_ratio", 1.0)),
            render_time_ratio=float(data.get("render_time_ratio", 1.0)),
            error_rate_delta=float(data.get("error_rate_delta", 0.0)),
        )


# ============================================================
# TEST EXECUTION
# ============================================================

@dataclass(frozen=True)
class TestRequest:
    """A requested test: one failure type against one component."""
    __test__ = False

    component: str
    failure_type: str
    attempt: int = 1

    def retry(self) -> "TestRequest":
        """Same request, next attempt."""
        return TestRequest(self.component, self.failure_type, self.attempt + 1)


@dataclass
class TestOutcome:
    """
    Result of one injected fault (or one control run).
    """
    __test__ = False

    component: str
    failure_type: str
    passed: bool
    recovery_time_ms: float
    status: OutcomeStatus = OutcomeStatus.PASSED
    injected: bool = True
    degradation: Optional[Degradation] = None
    error_message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utcnow)
    outcome_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def recovered(self) -> bool:
        """Whether a recovery time was measured."""
        return self.recovery_time_ms >= 0

    @property
    def counts_toward_recovery(self) -> bool:
        """Control and deferred outcomes are kept out of recovery totals."""
        return self.status not in (OutcomeStatus.CONTROL, OutcomeStatus.DEFERRED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome_id": self.outcome_id,
            "component": self.component,
            "failure_type": self.failure_type,
            "passed": self.passed,
            "recovery_time_ms": self.recovery_time_ms,
            "status": self.status.value,
            "injected": self.injected,
            "degradation": self.degradation.to_dict() if self.degradation else None,
            "error_message": self.error_message,
            "details": self.details,
            "started_at": self.started_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestOutcome":
        degradation = data.get("degradation")
        return cls(
            component=str(data["component"]),
            failure_type=str(data["failure_type"]),
            passed=bool(data["passed"]),
            recovery_time_ms=float(data.get("recovery_time_ms", DID_NOT_RECOVER)),
            status=OutcomeStatus(data.get("status", OutcomeStatus.FAILED.value)),
            injected=bool(data.get("injected", True)),
            degradation=Degradation.from_dict(degradation) if degradation else None,
            error_message=data.get("error_message"),
            details=dict(data.get("details") or {}),
            started_at=parse_timestamp(data.get("started_at")),
            outcome_id=data.get("outcome_id") or str(uuid.uuid4()),
        )


# ============================================================
# SUMMARY
# ============================================================

@dataclass
class ComponentTally:
    """Pass/fail counts for one component or failure type."""
    total: int = 0
    passed: int = 0
    failed: int = 0

    def record(self, passed: bool) -> None:
        self.total += 1
        if passed:
            self.passed += 1
        else:
            self.failed += 1

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.passed / self.total

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "passed": self.passed, "failed": self.failed}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentTally":
        return cls(
            total=int(data.get("total", 0)),
            passed=int(data.get("passed", 0)),
            failed=int(data.get("failed", 0)),
        )


@dataclass
class Summary:
    """
    Aggregate of a run's outcomes.

    Score fields are filled in by the scorer as a later pass.
    """
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    recovery_success_rate: float = 0.0
    average_recovery_time: float = 0.0
    tests_by_component: Dict[str, ComponentTally] = field(default_factory=dict)
    tests_by_failure_type: Dict[str, ComponentTally] = field(default_factory=dict)

    # Outcomes kept out of the recovery totals
    control_tests: int = 0
    deferred_tests: int = 0

    # Breakdown of failures
    error_tests: int = 0
    timed_out_tests: int = 0

    resilience_score: Optional[int] = None
    resilience_rating: Optional[str] = None
    generated_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def rate(passed: int, total: int) -> float:
        """passed/total, defined as 0 when nothing ran."""
        if total <= 0:
            return 0.0
        return passed / total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "total_tests": self.total_tests,
            "passed_tests": self.passed_tests,
            "failed_tests": self.failed_tests,
            "recovery_success_rate": self.recovery_success_rate,
            "average_recovery_time": self.average_recovery_time,
            "tests_by_component": {
                k: v.to_dict() for k, v in self.tests_by_component.items()
            },
            "tests_by_failure_type": {
                k: v.to_dict() for k, v in self.tests_by_failure_type.items()
            },
            "control_tests": self.control_tests,
            "deferred_tests": self.deferred_tests,
            "error_tests": self.error_tests,
            "timed_out_tests": self.timed_out_tests,
            "resilience_score": self.resilience_score,
            "resilience_rating": self.resilience_rating,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Summary":
        total = int(data.get("total_tests", 0))
        passed = int(data.get("passed_tests", 0))
        score = data.get("resilience_score")
        return cls(
            total_tests=total,
            passed_tests=passed,
            failed_tests=int(data.get("failed_tests", total - passed)),
            # Recomputed so a hand-edited record cannot break the invariant
            recovery_success_rate=cls.rate(passed, total),
            average_recovery_time=float(data.get("average_recovery_time", 0.0)),
            tests_by_component={
                k: ComponentTally.from_dict(v)
                for k, v in (data.get("tests_by_component") or {}).items()
            },
            tests_by_failure_type={
                k: ComponentTally.from_dict(v)
                for k, v in (data.get("tests_by_failure_type") or {}).items()
            },
            control_tests=int(data.get("control_tests", 0)),
            deferred_tests=int(data.get("deferred_tests", 0)),
            error_tests=int(data.get("error_tests", 0)),
            timed_out_tests=int(data.get("timed_out_tests", 0)),
            resilience_score=int(score) if score is not None else None,
            resilience_rating=data.get("resilience_rating"),
            generated_at=parse_timestamp(data.get("generated_at")),
        )


# ============================================================
# UX IMPACT
# ============================================================

@dataclass(frozen=True)
class UXImpact:
    """One observed user-facing degradation."""
    component: str
    severity: int
    recovery_time_ms: float
    description: str = ""
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not 0 <= self.severity <= 5:
            raise ValueError(f"UX severity must be within 0..5, got {self.severity}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "severity": self.severity,
            "recovery_time_ms": self.recovery_time_ms,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UXImpact":
        return cls(
            component=str(data["component"]),
            severity=int(data["severity"]),
            recovery_time_ms=float(data.get("recovery_time_ms", 0.0)),
            description=str(data.get("description", "")),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


@dataclass
class UXImpactReport:
    """Aggregated UX impact for a run."""
    total_impacts: int = 0
    avg_severity: float = 0.0
    avg_recovery_time_ms: float = 0.0
    worst_component: Optional[str] = None
    impacts_by_severity: Dict[int, int] = field(
        default_factory=lambda: {level: 0 for level in range(6)}
    )
    impacts_by_component: Dict[str, int] = field(default_factory=dict)
    impacts: List[UXImpact] = field(default_factory=list)
    generated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "total_impacts": self.total_impacts,
            "avg_severity": self.avg_severity,
            "avg_recovery_time_ms": self.avg_recovery_time_ms,
            "worst_component": self.worst_component,
            "impacts_by_severity": {
                str(level): count for level, count in self.impacts_by_severity.items()
            },
            "impacts_by_component": dict(self.impacts_by_component),
            "impacts": [impact.to_dict() for impact in self.impacts],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UXImpactReport":
        histogram = {level: 0 for level in range(6)}
        for level, count in (data.get("impacts_by_severity") or {}).items():
            histogram[int(level)] = int(count)
        return cls(
            total_impacts=int(data.get("total_impacts", 0)),
            avg_severity=float(data.get("avg_severity", 0.0)),
            avg_recovery_time_ms=float(data.get("avg_recovery_time_ms", 0.0)),
            worst_component=data.get("worst_component"),
            impacts_by_severity=histogram,
            impacts_by_component={
                k: int(v) for k, v in (data.get("impacts_by_component") or {}).items()
            },
            impacts=[UXImpact.from_dict(i) for i in data.get("impacts") or []],
            generated_at=parse_timestamp(data.get("generated_at")),
        )


# ============================================================
# RECOVERY PATHS
# ============================================================

@dataclass(frozen=True)
class RecoveryPath:
    """
    Ordered recovery strategies for one component.

    Seeded ahead of a run; read by the report emitter.
    """
    component: str
    primary: str
    secondary: Optional[str] = None
    fallback: Optional[str] = None
    recovery_time_ms: float = 0.0

    def tiers(self) -> List[Tuple[RecoveryTier, str]]:
        """Strategies in escalation order, skipping absent tiers."""
        tiers = [(RecoveryTier.PRIMARY, self.primary)]
        if self.secondary:
            tiers.append((RecoveryTier.SECONDARY, self.secondary))
        if self.fallback:
            tiers.append((RecoveryTier.FALLBACK, self.fallback))
        return tiers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "primary": self.primary,
            "secondary": self.secondary,
            "fallback": self.fallback,
            "recovery_time_ms": self.recovery_time_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecoveryPath":
        recovery_time = data.get("recovery_time_ms", data.get("recoveryTime", 0.0))
        return cls(
            component=str(data["component"]),
            primary=str(data["primary"]),
            secondary=data.get("secondary") or None,
            fallback=data.get("fallback") or None,
            recovery_time_ms=float(recovery_time or 0.0),
        )


# ============================================================
# CASCADES
# ============================================================

@dataclass(frozen=True)
class FailureCascade:
    """
    Collateral effects of one root failure.

    Use ``create`` to build one: it enforces that the root never
    appears in its own lists and that effects and resilient
    components are disjoint.
    """
    root: str
    effects: Tuple[str, ...]
    resilient_components: Tuple[str, ...]
    timestamp: datetime
    duration_ms: float

    @classmethod
    def create(
        cls,
        root: str,
        effects: Iterable[str],
        resilient_components: Iterable[str],
        duration_ms: float = 0.0,
        timestamp: Optional[datetime] = None,
    ) -> "FailureCascade":
        clean_effects = [c for c in _unique(effects) if c != root]
        affected = set(clean_effects)
        clean_resilient = [
            c for c in _unique(resilient_components)
            if c != root and c not in affected
        ]
        return cls(
            root=root,
            effects=tuple(clean_effects),
            resilient_components=tuple(clean_resilient),
            timestamp=timestamp or utcnow(),
            duration_ms=float(duration_ms),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root,
            "effects": list(self.effects),
            "resilient_components": list(self.resilient_components),
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FailureCascade":
        return cls.create(
            root=str(data["root"]),
            effects=data.get("effects") or [],
            resilient_components=(
                data.get("resilient_components") or data.get("resilientComponents") or []
            ),
            duration_ms=float(data.get("duration_ms", data.get("duration", 0.0)) or 0.0),
            timestamp=parse_timestamp(data.get("timestamp")),
        )


# ============================================================
# ANOMALIES
# ============================================================

@dataclass(frozen=True)
class Anomaly:
    """A reading outside mean ± threshold·stddev for its metric."""
    metric: str
    description: str
    observed_value: float
    expected_range: Tuple[float, float]
    component: Optional[str] = None
    timestamp: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "description": self.description,
            "observed_value": self.observed_value,
            "expected_range": list(self.expected_range),
            "component": self.component,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Anomaly":
        low, high = data.get("expected_range") or (0.0, 0.0)
        timestamp = data.get("timestamp")
        return cls(
            metric=str(data["metric"]),
            description=str(data.get("description", "")),
            observed_value=float(data.get("observed_value", 0.0)),
            expected_range=(float(low), float(high)),
            component=data.get("component"),
            timestamp=parse_timestamp(timestamp) if timestamp else None,
        )


# ============================================================
# SCORING
# ============================================================

@dataclass(frozen=True)
class ScoreResult:
    """Composite resilience score and its inputs."""
    score: int
    rating: str
    recovery_success_rate: float
    avg_ux_severity: float
    performance_benchmark_pass_rate: float


# ============================================================
# HISTORY
# ============================================================

@dataclass(frozen=True)
class HistoryEntry:
    """One scored run. Append-only."""
    timestamp: datetime
    resilience_score: int
    recovery_success_rate: float
    avg_ux_severity: float
    performance_benchmark_pass_rate: float
    anomaly_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "resilience_score": self.resilience_score,
            "recovery_success_rate": self.recovery_success_rate,
            "avg_ux_severity": self.avg_ux_severity,
            "performance_benchmark_pass_rate": self.performance_benchmark_pass_rate,
            "anomaly_count": self.anomaly_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            timestamp=parse_timestamp(data.get("timestamp")),
            resilience_score=int(data["resilience_score"]),
            recovery_success_rate=float(data["recovery_success_rate"]),
            avg_ux_severity=float(data.get("avg_ux_severity", 0.0)),
            performance_benchmark_pass_rate=float(
                data.get("performance_benchmark_pass_rate", 0.0)
            ),
            anomaly_count=int(data.get("anomaly_count", 0)),
        )


@dataclass(frozen=True)
class HistoryComparison:
    """
    Deltas against the most recent prior entry.

    ``has_prior`` is False (and all deltas None) when history is empty.
    """
    has_prior: bool
    previous: Optional[HistoryEntry] = None
    score_delta: Optional[int] = None
    recovery_rate_delta_pct: Optional[float] = None
    ux_severity_delta: Optional[float] = None

    @classmethod
    def no_prior(cls) -> "HistoryComparison":
        return cls(has_prior=False)
