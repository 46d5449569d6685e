"""
Tests for the Anomaly Detector.
"""

import pytest

from resilience_testing import (
    AnomalyDetector,
    MetricsSnapshot,
    TelemetryReport,
    build_telemetry_report,
    performance_benchmark_pass_rate,
)


def make_series(values, metric="response_time_ms"):
    series = []
    for value in values:
        readings = {"response_time_ms": 100.0, "render_time_ms": 20.0, "error_rate": 0.01}
        readings[metric] = value
        series.append(MetricsSnapshot("API", **readings))
    return series


class TestAnomalyDetector:

    def test_constant_series_has_no_anomalies(self):
        detector = AnomalyDetector()
        assert detector.detect(make_series([100.0] * 10), "response_time_ms") == []

    def test_single_point_has_no_anomalies(self):
        assert AnomalyDetector().detect(make_series([500.0]), "response_time_ms") == []

    def test_empty_series(self):
        assert AnomalyDetector().detect_all([]) == []

    def test_outlier_detected(self):
        series = make_series([100.0] * 9 + [1000.0])

        anomalies = AnomalyDetector(2.0).detect(series, "response_time_ms")

        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.observed_value == 1000.0
        assert anomaly.component == "API"
        low, high = anomaly.expected_range
        assert low < 100.0 < high < 1000.0

    def test_boundary_is_not_an_anomaly(self):
        # mean 0, pstdev 1: both points sit exactly at 1 sigma
        series = make_series([-1.0, 1.0])
        assert AnomalyDetector(1.0).detect(series, "response_time_ms") == []

    def test_unknown_metric(self):
        with pytest.raises(KeyError):
            AnomalyDetector().detect(make_series([1.0, 2.0]), "cpu")

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValueError):
            AnomalyDetector(0)

    def test_detect_all_covers_every_metric(self):
        series = make_series([0.01] * 9 + [0.9], metric="error_rate")
        anomalies = AnomalyDetector().detect_all(series)
        assert [a.metric for a in anomalies] == ["error_rate"]


class TestTelemetryReport:

    def test_build_report(self):
        series = make_series([100.0] * 9 + [1000.0])
        anomalies = AnomalyDetector().detect_all(series)

        report = build_telemetry_report(series, anomalies)

        assert report.metrics_observed == 3
        assert report.readings_observed == 10
        assert report.total_anomalies == 1
        assert report.statistics["response_time_ms"].max == 1000.0
        assert report.time_range is not None

    def test_to_dict_from_dict(self):
        series = make_series([100.0] * 9 + [1000.0])
        report = build_telemetry_report(series, AnomalyDetector().detect_all(series))

        restored = TelemetryReport.from_dict(report.to_dict())

        assert restored.metrics_observed == 3
        assert restored.readings_observed == 10
        assert restored.total_anomalies == 1
        assert list(restored.anomalies_by_metric) == ["response_time_ms"]

    def test_empty_report(self):
        report = build_telemetry_report([], [])
        assert report.metrics_observed == 0
        assert report.readings_observed == 0
        assert report.time_range is None

    def test_pass_rate_denominator_is_metric_count(self):
        # 20 readings of 3 metrics with one outlier: 1 - 1/3
        series = make_series([100.0] * 19 + [5000.0])
        report = build_telemetry_report(series, AnomalyDetector().detect_all(series))

        pass_rate = performance_benchmark_pass_rate(report.total_anomalies, report.metrics_observed)

        assert report.total_anomalies == 1
        assert pass_rate == pytest.approx(2 / 3)

    def test_metric_count_derived_from_statistics(self):
        report = TelemetryReport.from_dict({
            "statistics": {
                "response_time_ms": {"count": 4},
                "render_time_ms": {"count": 4},
                "error_rate": {"count": 0},
            },
        })
        assert report.metrics_observed == 2
