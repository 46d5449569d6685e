"""
Resilience Testing - Report Generator.

============================================================
PURPOSE
============================================================
Renders a run into human-readable Markdown.

render_report sections:
- Resilience score and rating
- Summary table (recovery rate, recovery time, UX, anomalies)
- Results by component and by failure type
- UX severity distribution and most impacted components
- Anomaly list
- Failure cascades
- Recovery path validation
- Historical comparison against the previous run
- Recommendations

A partially failed run still gets a complete report: any
section without data says so instead of being dropped.

render_component_resilience documents each component's
recovery strategies, failure triggers and cascade effects.

============================================================
"""

import logging
from typing import Dict, List, Optional, Sequence

from .anomaly import TelemetryReport
from .cascade import CascadeMapper
from .models import (
    ComponentTally,
    HistoryEntry,
    Summary,
    UXImpactReport,
    utcnow,
)
from .recovery import RecoveryPathRegistry, RecoveryValidationResult


logger = logging.getLogger(__name__)


SEVERITY_LABELS = {
    0: "None",
    1: "Minor",
    2: "Moderate",
    3: "Significant",
    4: "Severe",
    5: "Critical",
}

LOW_SUCCESS_RATE = 0.8
HIGH_UX_SEVERITY = 4
AVG_UX_SEVERITY_LIMIT = 2.0
ANOMALY_LIMIT = 5


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def _signed(value: float, fmt: str = "{:+.2f}") -> str:
    return fmt.format(value)


def _unavailable(what: str) -> str:
    return f"_{what} unavailable for this run._"


# ============================================================
# RECOMMENDATIONS
# ============================================================

def recommendations(
    summary: Summary,
    ux_report: Optional[UXImpactReport] = None,
    telemetry_report: Optional[TelemetryReport] = None,
    registry: Optional[RecoveryPathRegistry] = None,
) -> List[str]:
    """Actionable guidance derived from a run."""
    items = ["Continue running resilience tests regularly to track the trend."]

    for component, tally in sorted(summary.tests_by_component.items()):
        if tally.total and tally.success_rate < LOW_SUCCESS_RATE:
            items.append(
                f"Improve recovery of {component}: "
                f"{_pct(tally.success_rate)} of its tests recovered."
            )

    if ux_report is not None:
        severe = sorted({i.component for i in ux_report.impacts if i.severity >= HIGH_UX_SEVERITY})
        for component in severe:
            items.append(
                f"Add a circuit breaker in front of {component} to contain user-facing impact."
            )

    if summary.total_tests and summary.recovery_success_rate < LOW_SUCCESS_RATE:
        items.append(
            f"Overall recovery rate is {_pct(summary.recovery_success_rate)}, "
            f"below {_pct(LOW_SUCCESS_RATE)}: review primary recovery strategies."
        )

    if ux_report is not None and ux_report.avg_severity > AVG_UX_SEVERITY_LIMIT:
        items.append(
            f"Average UX severity is {ux_report.avg_severity:.2f}: "
            f"add graceful degradation to user-facing paths."
        )

    if telemetry_report is not None and telemetry_report.total_anomalies > ANOMALY_LIMIT:
        items.append(
            f"{telemetry_report.total_anomalies} telemetry anomalies detected: "
            f"investigate performance stability under failure."
        )

    if registry is not None:
        failing = {c for c, t in summary.tests_by_component.items() if t.failed > 0}
        for component in registry.components_without_fallback():
            if component in failing:
                items.append(f"Add a fallback recovery strategy for {component}.")

    return items


# ============================================================
# REPORT
# ============================================================

def _tally_table(title: str, key_label: str, tallies: Dict[str, ComponentTally]) -> List[str]:
    lines = [f"## {title}", ""]
    if not tallies:
        lines.append(_unavailable("Test results"))
        lines.append("")
        return lines

    lines.append(f"| {key_label} | Total | Passed | Failed | Success Rate |")
    lines.append("| --- | ---: | ---: | ---: | ---: |")
    for key, tally in sorted(tallies.items()):
        lines.append(
            f"| {key} | {tally.total} | {tally.passed} | {tally.failed} | "
            f"{_pct(tally.success_rate)} |"
        )
    lines.append("")
    return lines


def render_report(
    summary: Summary,
    ux_report: Optional[UXImpactReport] = None,
    telemetry_report: Optional[TelemetryReport] = None,
    history: Optional[Sequence[HistoryEntry]] = None,
    registry: Optional[RecoveryPathRegistry] = None,
    cascades: Optional[CascadeMapper] = None,
    validation: Optional[RecoveryValidationResult] = None,
) -> str:
    """
    Render the run report as Markdown.

    ``history`` holds the entries recorded before this run; the
    trend section compares against its last entry.
    """
    lines: List[str] = [
        "# Resilience Test Report",
        "",
        f"Generated: {utcnow().isoformat()}",
        "",
        "## Resilience Score",
        "",
    ]

    if summary.resilience_score is not None:
        lines.append(f"**{summary.resilience_score} / 100**: {summary.resilience_rating}")
    else:
        lines.append(_unavailable("Resilience score"))
    lines.append("")

    # Summary
    lines.extend([
        "## Summary",
        "",
        "| Metric | Value |",
        "| --- | --- |",
        f"| Tests run | {summary.total_tests} |",
        f"| Passed | {summary.passed_tests} |",
        f"| Failed | {summary.failed_tests} |",
        f"| Recovery success rate | {_pct(summary.recovery_success_rate)} |",
        f"| Average recovery time | {summary.average_recovery_time:.0f} ms |",
        f"| Harness errors | {summary.error_tests} |",
        f"| Timeouts | {summary.timed_out_tests} |",
        f"| Control runs (no fault injected) | {summary.control_tests} |",
        f"| Deferred (concurrency cap) | {summary.deferred_tests} |",
    ])
    if ux_report is not None:
        lines.extend([
            f"| UX impacts | {ux_report.total_impacts} |",
            f"| Average UX severity | {ux_report.avg_severity:.2f} / 5 |",
            f"| Worst component | {ux_report.worst_component or 'n/a'} |",
        ])
    else:
        lines.append("| UX impacts | unavailable |")
    if telemetry_report is not None:
        lines.extend([
            f"| Anomalies | {telemetry_report.total_anomalies} |",
            f"| Metrics observed | {telemetry_report.metrics_observed} |",
            f"| Readings observed | {telemetry_report.readings_observed} |",
        ])
        if telemetry_report.time_range:
            start, end = telemetry_report.time_range
            lines.append(f"| Test duration | {(end - start).total_seconds():.1f} s |")
    else:
        lines.append("| Anomalies | unavailable |")
    lines.append("")

    lines.extend(_tally_table("Results by Component", "Component", summary.tests_by_component))
    lines.extend(_tally_table("Results by Failure Type", "Failure Type", summary.tests_by_failure_type))

    # UX
    lines.extend(["## UX Severity Distribution", ""])
    if ux_report is not None:
        lines.append("| Severity | Label | Count |")
        lines.append("| ---: | --- | ---: |")
        for level in range(6):
            lines.append(
                f"| {level} | {SEVERITY_LABELS[level]} | "
                f"{ux_report.impacts_by_severity.get(level, 0)} |"
            )
        lines.append("")

        lines.extend(["### Most Impacted Components", ""])
        top = sorted(
            ux_report.impacts_by_component.items(),
            key=lambda item: (-item[1], item[0]),
        )[:5]
        if top:
            for component, count in top:
                lines.append(f"- {component}: {count} impacts")
        else:
            lines.append("- None")
    else:
        lines.append(_unavailable("UX impact data"))
    lines.append("")

    # Anomalies
    lines.extend(["## Anomalies", ""])
    if telemetry_report is None:
        lines.append(_unavailable("Telemetry data"))
    elif not telemetry_report.anomalies:
        lines.append("No anomalies detected.")
    else:
        lines.append("| Metric | Count | Example |")
        lines.append("| --- | ---: | --- |")
        for metric, anomalies in sorted(telemetry_report.anomalies_by_metric.items()):
            lines.append(f"| {metric} | {len(anomalies)} | {anomalies[0].description} |")
    lines.append("")

    # Cascades
    lines.extend(["## Failure Cascades", ""])
    if cascades is None:
        lines.append(_unavailable("Cascade data"))
    elif not cascades.cascades:
        lines.append("No cascades recorded.")
    else:
        lines.append("| Component | Triggered by | Affects |")
        lines.append("| --- | --- | --- |")
        for component in cascades.components():
            relations = cascades.get_cascades_for_component(component)
            lines.append(
                f"| {component} | {', '.join(relations.triggers) or '-'} | "
                f"{', '.join(relations.affects) or '-'} |"
            )
        lines.append("")
        lines.append(f"Cascade relationships: {cascades.relationship_count()}")
    lines.append("")

    # Recovery validation
    lines.extend(["## Recovery Path Validation", ""])
    if validation is None:
        lines.append("Recovery path validation was not run.")
    else:
        lines.extend([
            "| Result | Paths |",
            "| --- | ---: |",
            f"| Primary strategy | {validation.primary_success} |",
            f"| Secondary strategy | {validation.secondary_success} |",
            f"| Fallback strategy | {validation.fallback_success} |",
            f"| Complete failure | {validation.complete_fail} |",
            "",
            f"Success rate: {_pct(validation.success_rate)} of {validation.total_paths} paths, "
            f"average recovery {validation.average_recovery_time_ms:.0f} ms",
        ])
        failed = [v.component for v in validation.validations if not v.succeeded]
        if failed:
            lines.append("")
            lines.append(f"Unrecoverable: {', '.join(failed)}")
    lines.append("")

    # History
    lines.extend(["## Historical Comparison", ""])
    previous = history[-1] if history else None
    if previous is None:
        lines.append("No previous run to compare against.")
    else:
        lines.append("| Metric | Current | Previous | Change |")
        lines.append("| --- | ---: | ---: | ---: |")
        if summary.resilience_score is not None:
            lines.append(
                f"| Resilience score | {summary.resilience_score} | "
                f"{previous.resilience_score} | "
                f"{summary.resilience_score - previous.resilience_score:+d} |"
            )
        lines.append(
            f"| Recovery rate | {_pct(summary.recovery_success_rate)} | "
            f"{_pct(previous.recovery_success_rate)} | "
            f"{(summary.recovery_success_rate - previous.recovery_success_rate) * 100:+.1f} pp |"
        )
        if ux_report is not None:
            lines.append(
                f"| Average UX severity | {ux_report.avg_severity:.2f} | "
                f"{previous.avg_ux_severity:.2f} | "
                f"{_signed(ux_report.avg_severity - previous.avg_ux_severity)} |"
            )
    lines.append("")

    # Recommendations
    lines.extend(["## Recommendations", ""])
    for item in recommendations(summary, ux_report, telemetry_report, registry):
        lines.append(f"- {item}")
    lines.append("")

    return "\n".join(lines)


# ============================================================
# COMPONENT RESILIENCE DOCUMENT
# ============================================================

def render_component_resilience(
    registry: RecoveryPathRegistry,
    cascades: CascadeMapper,
) -> str:
    """Per-component recovery strategies and cascade relations."""
    components = list(registry.get_unique_components())
    for component in cascades.components():
        if component not in components:
            components.append(component)

    paths = registry.paths
    lines = [
        "# Component Resilience",
        "",
        f"Generated: {utcnow().isoformat()}",
        "",
        "## System-wide Resilience",
        "",
        f"- Recovery paths: {len(paths)}",
        f"- Recovery paths with a fallback: {sum(1 for p in paths if p.fallback)}",
        f"- Cascade relationships: {cascades.relationship_count()}",
        "",
    ]

    for component in components:
        relations = cascades.get_cascades_for_component(component)
        lines.extend([f"## {component}", "", "### Recovery Strategies", ""])

        component_paths = registry.get(component)
        if not component_paths:
            lines.append("- No recovery path recorded")
        for path in component_paths:
            lines.append(f"- Primary: {path.primary}")
            if path.secondary:
                lines.append(f"- Secondary: {path.secondary}")
            if path.fallback:
                lines.append(f"- Fallback: {path.fallback}")
            lines.append(f"- Expected recovery time: {path.recovery_time_ms:.0f} ms")

        lines.extend(["", "### Failure Triggers", ""])
        lines.extend(f"- {t}" for t in relations.triggers)
        if not relations.triggers:
            lines.append("- None observed")

        lines.extend(["", "### Cascade Effects", ""])
        lines.extend(f"- {a}" for a in relations.affects)
        if not relations.affects:
            lines.append("- None observed")
        lines.append("")

    return "\n".join(lines)
