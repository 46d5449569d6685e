"""
Resilience Testing - UX Impact Tracker.

============================================================
PURPOSE
============================================================
Records user-facing degradations (severity 0..5) and
aggregates them into a report: average severity, worst
component and a severity histogram.

SEVERITY SCALE:
    0 none | 1 minor | 2 moderate | 3 significant
    4 severe | 5 critical (did not recover)

============================================================
"""

import logging
import threading
from typing import Dict, List, Optional

from .models import Degradation, UXImpact, UXImpactReport
from .persistence import UX_IMPACT_RECORD, RecordStore, load_record


logger = logging.getLogger(__name__)


# Failure severity (1..5) to UX severity
_FAILURE_SEVERITY_TO_UX: Dict[int, int] = {
    1: 1,   # minor
    2: 2,   # moderate
    3: 3,   # significant
    4: 4,   # severe
    5: 5,   # critical
}
DEFAULT_UX_SEVERITY = 2


def severity_from_failure_severity(level: int) -> int:
    """Map a 1..5 failure severity to a UX severity; unknown is moderate."""
    return _FAILURE_SEVERITY_TO_UX.get(level, DEFAULT_UX_SEVERITY)


def severity_from_degradation(degradation: Optional[Degradation], recovered: bool) -> int:
    """
    Derive a UX severity from a test's worst degradation.

    Not recovered is always 5. Otherwise the worst timing ratio
    sets the level and an error-rate jump above 10 points adds one
    (capped at 4).
    """
    if not recovered:
        return 5
    if degradation is None:
        return 0

    worst = max(degradation.response_time_ratio, degradation.render_time_ratio)
    if worst < 1.1:
        severity = 0
    elif worst < 1.5:
        severity = 1
    elif worst < 2.0:
        severity = 2
    elif worst < 3.0:
        severity = 3
    else:
        severity = 4

    if degradation.error_rate_delta > 0.1:
        severity = min(severity + 1, 4)

    return severity


class UXImpactTracker:
    """Accumulates UX impacts across a run."""

    def __init__(self, impacts: Optional[List[UXImpact]] = None):
        self._impacts: List[UXImpact] = list(impacts or [])
        self._lock = threading.Lock()

    def record_impact(
        self,
        component: str,
        severity: int,
        recovery_time_ms: float,
        description: str = "",
    ) -> UXImpact:
        impact = UXImpact(
            component=component,
            severity=severity,
            recovery_time_ms=recovery_time_ms,
            description=description,
        )
        self.add(impact)
        return impact

    def add(self, impact: UXImpact) -> None:
        with self._lock:
            self._impacts.append(impact)
        if impact.severity >= 4:
            logger.warning(
                f"Severe UX impact on {impact.component}: "
                f"severity {impact.severity} ({impact.description})"
            )

    @property
    def impacts(self) -> List[UXImpact]:
        with self._lock:
            return list(self._impacts)

    def report(self) -> UXImpactReport:
        """Aggregate everything recorded so far."""
        impacts = self.impacts
        report = UXImpactReport(impacts=impacts, total_impacts=len(impacts))

        if not impacts:
            return report

        report.avg_severity = sum(i.severity for i in impacts) / len(impacts)
        report.avg_recovery_time_ms = sum(i.recovery_time_ms for i in impacts) / len(impacts)

        severities_by_component: Dict[str, List[int]] = {}
        for impact in impacts:
            report.impacts_by_severity[impact.severity] += 1
            severities_by_component.setdefault(impact.component, []).append(impact.severity)

        report.impacts_by_component = {
            component: len(levels) for component, levels in severities_by_component.items()
        }

        worst_mean = -1.0
        for component, levels in severities_by_component.items():
            mean = sum(levels) / len(levels)
            if mean > worst_mean:
                worst_mean = mean
                report.worst_component = component

        return report


def load_ux_report(store: RecordStore) -> Optional[UXImpactReport]:
    """Persisted UX report, or None when absent or unreadable."""
    data = load_record(store, UX_IMPACT_RECORD, default=None)
    if not isinstance(data, dict):
        return None
    try:
        return UXImpactReport.from_dict(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"UX impact record is malformed: {e}")
        return None
