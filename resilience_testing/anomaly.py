"""
Resilience Testing - Anomaly Detector.

============================================================
PURPOSE
============================================================
Scans a metric's time series for statistical outliers.

METHODOLOGY:
1. Mean and (population) standard deviation of the metric
2. Acceptable range = mean ± threshold·stddev
3. Any reading strictly outside the range is an anomaly

Degenerate series (fewer than 2 points, zero variance) yield
no anomalies. The detector is stateless per call and is
re-run over the full accumulated series.

============================================================
"""

import logging
import statistics
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import METRIC_NAMES, Anomaly, MetricsSnapshot, parse_timestamp, utcnow


logger = logging.getLogger(__name__)


DEFAULT_THRESHOLD_SIGMAS = 2.0


# ============================================================
# DETECTOR
# ============================================================

class AnomalyDetector:
    """Outlier detection over a metrics series."""

    def __init__(self, threshold_sigmas: float = DEFAULT_THRESHOLD_SIGMAS):
        if threshold_sigmas <= 0:
            raise ValueError("threshold_sigmas must be positive")
        self._threshold = threshold_sigmas

    @property
    def threshold_sigmas(self) -> float:
        return self._threshold

    def detect(self, series: Sequence[MetricsSnapshot], metric_name: str) -> List[Anomaly]:
        """Anomalies of ``metric_name`` across ``series``."""
        if metric_name not in METRIC_NAMES:
            raise KeyError(f"Unknown metric: {metric_name}")

        if len(series) < 2:
            return []

        values = [snapshot.value(metric_name) for snapshot in series]
        mean = statistics.mean(values)
        stddev = statistics.pstdev(values, mu=mean)

        if stddev == 0:
            return []

        low = mean - self._threshold * stddev
        high = mean + self._threshold * stddev

        anomalies = []
        for snapshot, value in zip(series, values):
            if abs(value - mean) > self._threshold * stddev:
                anomalies.append(Anomaly(
                    metric=metric_name,
                    description=(
                        f"{metric_name} of {snapshot.component} was {value:.4g}, "
                        f"outside the expected range {low:.4g} to {high:.4g}"
                    ),
                    observed_value=value,
                    expected_range=(low, high),
                    component=snapshot.component,
                    timestamp=snapshot.timestamp,
                ))

        if anomalies:
            logger.info(f"Detected {len(anomalies)} anomalies in {metric_name}")

        return anomalies

    def detect_all(self, series: Sequence[MetricsSnapshot]) -> List[Anomaly]:
        """Anomalies for every metric."""
        anomalies: List[Anomaly] = []
        for metric in METRIC_NAMES:
            anomalies.extend(self.detect(series, metric))
        return anomalies


# ============================================================
# TELEMETRY REPORT
# ============================================================

@dataclass
class MetricStatistics:
    """Descriptive statistics of one metric."""
    count: int = 0
    min: float = 0.0
    max: float = 0.0
    mean: float = 0.0
    stddev: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "min": self.min,
            "max": self.max,
            "mean": self.mean,
            "stddev": self.stddev,
        }

    @classmethod
    def from_values(cls, values: Sequence[float]) -> "MetricStatistics":
        if not values:
            return cls()
        return cls(
            count=len(values),
            min=min(values),
            max=max(values),
            mean=statistics.mean(values),
            stddev=statistics.pstdev(values) if len(values) > 1 else 0.0,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricStatistics":
        return cls(
            count=int(data.get("count", 0)),
            min=float(data.get("min", 0.0)),
            max=float(data.get("max", 0.0)),
            mean=float(data.get("mean", 0.0)),
            stddev=float(data.get("stddev", 0.0)),
        )


@dataclass
class TelemetryReport:
    """
    Statistics and anomalies for a run's telemetry.

    ``metrics_observed`` counts distinct metrics with at least one
    reading and is the denominator of the performance benchmark
    pass rate. ``readings_observed`` counts the snapshots scanned.
    """
    metrics_observed: int = 0
    readings_observed: int = 0
    statistics: Dict[str, MetricStatistics] = field(default_factory=dict)
    anomalies: List[Anomaly] = field(default_factory=list)
    time_range: Optional[Tuple[datetime, datetime]] = None
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def total_anomalies(self) -> int:
        return len(self.anomalies)

    @property
    def anomalies_by_metric(self) -> Dict[str, List[Anomaly]]:
        grouped: Dict[str, List[Anomaly]] = {}
        for anomaly in self.anomalies:
            grouped.setdefault(anomaly.metric, []).append(anomaly)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "metrics_observed": self.metrics_observed,
            "readings_observed": self.readings_observed,
            "statistics": {k: v.to_dict() for k, v in self.statistics.items()},
            "time_range": (
                [self.time_range[0].isoformat(), self.time_range[1].isoformat()]
                if self.time_range else None
            ),
            "total_anomalies": self.total_anomalies,
            "anomalies": [a.to_dict() for a in self.anomalies],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TelemetryReport":
        time_range = data.get("time_range")
        stats = {
            k: MetricStatistics.from_dict(v)
            for k, v in (data.get("statistics") or {}).items()
        }
        observed = data.get("metrics_observed")
        if observed is None:
            observed = sum(1 for s in stats.values() if s.count)
        return cls(
            metrics_observed=int(observed),
            readings_observed=int(data.get("readings_observed", 0)),
            statistics=stats,
            anomalies=[Anomaly.from_dict(a) for a in data.get("anomalies") or []],
            time_range=(
                (parse_timestamp(time_range[0]), parse_timestamp(time_range[1]))
                if time_range else None
            ),
            generated_at=parse_timestamp(data.get("generated_at")),
        )


def build_telemetry_report(
    series: Sequence[MetricsSnapshot],
    anomalies: Sequence[Anomaly],
) -> TelemetryReport:
    """
    Summarise a run's telemetry.

    Only metrics with at least one reading count towards
    ``metrics_observed``.
    """
    stats = {
        metric: MetricStatistics.from_values([s.value(metric) for s in series])
        for metric in METRIC_NAMES
    }

    time_range = None
    if series:
        timestamps = [s.timestamp for s in series]
        time_range = (min(timestamps), max(timestamps))

    return TelemetryReport(
        metrics_observed=sum(1 for s in stats.values() if s.count),
        readings_observed=len(series),
        statistics=stats,
        anomalies=list(anomalies),
        time_range=time_range,
    )
