"""
Tests for Markdown reports and recommendations.
"""

from datetime import datetime, timezone

import pytest

from resilience_testing import (
    CascadeMapper,
    HistoryEntry,
    RecoveryPath,
    RecoveryPathRegistry,
    SummaryBuilder,
    TestOutcome,
    OutcomeStatus,
    UXImpactTracker,
    recommendations,
    render_component_resilience,
    render_report,
)
from resilience_testing.anomaly import TelemetryReport
from resilience_testing.models import Anomaly, RecoveryTier
from resilience_testing.recovery import PathValidation, RecoveryValidationResult


@pytest.fixture
def summary():
    outcomes = [
        TestOutcome("API", "api-timeout", True, 400.0, status=OutcomeStatus.PASSED),
        TestOutcome("Cache", "api-timeout", False, -1.0, status=OutcomeStatus.FAILED),
    ]
    summary = SummaryBuilder(outcomes).build()
    summary.resilience_score = 64
    summary.resilience_rating = "Needs Work"
    return summary


@pytest.fixture
def ux_report():
    tracker = UXImpactTracker()
    tracker.record_impact("Cache", 5, 0.0, "did not recover")
    tracker.record_impact("API", 1, 400.0)
    return tracker.report()


class TestRecommendations:

    def test_always_recommends_regular_runs(self):
        items = recommendations(SummaryBuilder().build())
        assert items == ["Continue running resilience tests regularly to track the trend."]

    def test_low_success_component(self, summary):
        items = recommendations(summary)
        assert any("Improve recovery of Cache" in i for i in items)
        assert not any("Improve recovery of API" in i for i in items)

    def test_circuit_breaker_for_severe_impact(self, summary, ux_report):
        items = recommendations(summary, ux_report)
        assert any("circuit breaker in front of Cache" in i for i in items)
        assert any("Average UX severity is 3.00" in i for i in items)

    def test_missing_fallback(self, summary):
        registry = RecoveryPathRegistry([RecoveryPath("Cache", "Reconnect")])
        items = recommendations(summary, registry=registry)
        assert "Add a fallback recovery strategy for Cache." in items

    def test_many_anomalies(self, summary):
        anomalies = [Anomaly("error_rate", "spike", 0.9, (0.0, 0.1)) for _ in range(6)]
        items = recommendations(summary, telemetry_report=TelemetryReport(metrics_observed=50, anomalies=anomalies))
        assert any("6 telemetry anomalies" in i for i in items)


class TestRenderReport:

    def test_full_report_sections(self, summary, ux_report):
        report = render_report(summary, ux_report, TelemetryReport(metrics_observed=20))

        for heading in (
            "# Resilience Test Report",
            "## Resilience Score",
            "## Summary",
            "## Results by Component",
            "## Results by Failure Type",
            "## UX Severity Distribution",
            "### Most Impacted Components",
            "## Anomalies",
            "## Historical Comparison",
            "## Recommendations",
        ):
            assert heading in report
        assert "**64 / 100**: Needs Work" in report
        assert "No previous run to compare against." in report
        assert "No anomalies detected." in report

    def test_missing_sections_are_marked(self, summary):
        report = render_report(summary)
        assert "_UX impact data unavailable for this run._" in report
        assert "_Telemetry data unavailable for this run._" in report

    def test_cascade_and_validation_sections(self, summary):
        mapper = CascadeMapper()
        mapper.record_cascade("Database", ["Cache", "API"], ["Redis Memory"])
        validation = RecoveryValidationResult(
            total_paths=2,
            primary_success=1,
            complete_fail=1,
            validations=[
                PathValidation("Cache", RecoveryTier.PRIMARY, "Reconnect", 120.0, 2000.0),
                PathValidation("Database", None, None, 300.0, 5000.0),
            ],
        )

        report = render_report(summary, cascades=mapper, validation=validation)

        assert "## Failure Cascades" in report
        assert "| Database | - | Cache, API |" in report
        assert "| Cache | Database | - |" in report
        assert "Cascade relationships: 2" in report
        assert "## Recovery Path Validation" in report
        assert "| Primary strategy | 1 |" in report
        assert "| Complete failure | 1 |" in report
        assert "Success rate: 50.0% of 2 paths, average recovery 120 ms" in report
        assert "Unrecoverable: Database" in report

    def test_validation_not_run(self, summary):
        report = render_report(summary)
        assert "Recovery path validation was not run." in report
        assert "_Cascade data unavailable for this run._" in report

    def test_historical_comparison(self, summary, ux_report):
        previous = HistoryEntry(
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            resilience_score=70,
            recovery_success_rate=0.75,
            avg_ux_severity=2.0,
            performance_benchmark_pass_rate=1.0,
            anomaly_count=0,
        )
        report = render_report(summary, ux_report, history=[previous])

        assert "| Resilience score | 64 | 70 | -6 |" in report
        assert "| Recovery rate | 50.0% | 75.0% | -25.0 pp |" in report
        assert "| Average UX severity | 3.00 | 2.00 | +1.00 |" in report


class TestComponentResilience:

    def test_document(self):
        registry = RecoveryPathRegistry([
            RecoveryPath("Database", "Connection Pool Reset", "Replica Failover", "Read-Only Mode", 5000),
        ])
        mapper = CascadeMapper()
        mapper.record_cascade("Database", ["Cache"], ["Redis Memory"])

        document = render_component_resilience(registry, mapper)

        assert "- Recovery paths: 1" in document
        assert "- Cascade relationships: 1" in document
        assert "## Database" in document
        assert "- Secondary: Replica Failover" in document
        assert "## Cache" in document
        cache_section = document.split("## Cache")[1].split("## Redis Memory")[0]
        assert "### Failure Triggers\n\n- Database" in cache_section
        assert "- No recovery path recorded" in cache_section
