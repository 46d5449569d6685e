"""
Resilience Testing - Telemetry Collector.

============================================================
PURPOSE
============================================================
Captures metrics snapshots for a component and computes
degradation between two snapshots.

Collection is bracketed by a window:

    collector.start_collection("API")
    baseline = await collector.capture_baseline()
    ...
    current = await collector.capture_metrics()
    degradation = collector.calculate_degradation(baseline, current)
    collector.end_collection("API")

Capturing outside a window raises CollectionWindowError.
There is no smoothing here: the anomaly detector works over
the accumulated series.

Sampling may be slow (the target can be under simulated
resource pressure), so captures are coroutines.

============================================================
"""

import logging
import math
import threading
from typing import Any, Dict, List, Optional

from .exceptions import CollectionWindowError
from .models import Degradation, MetricsSnapshot, utcnow


logger = logging.getLogger(__name__)


# ============================================================
# SHARED SERIES
# ============================================================

class TelemetrySeries:
    """
    Every snapshot captured during a run.

    Many collectors append concurrently; reads return copies.
    """

    def __init__(self, snapshots: Optional[List[MetricsSnapshot]] = None):
        self._snapshots: List[MetricsSnapshot] = list(snapshots or [])
        self._lock = threading.Lock()

    def add(self, snapshot: MetricsSnapshot) -> None:
        with self._lock:
            self._snapshots.append(snapshot)

    def snapshots(self, component: Optional[str] = None) -> List[MetricsSnapshot]:
        with self._lock:
            if component is None:
                return list(self._snapshots)
            return [s for s in self._snapshots if s.component == component]

    def components(self) -> List[str]:
        seen: Dict[str, None] = {}
        for snapshot in self.snapshots():
            seen.setdefault(snapshot.component, None)
        return list(seen)

    def __len__(self) -> int:
        with self._lock:
            return len(self._snapshots)


# ============================================================
# DEGRADATION
# ============================================================

def _ratio(current: float, baseline: float) -> float:
    if baseline <= 0:
        return 1.0 if current <= 0 else math.inf
    return current / baseline


def is_recovered(
    degradation: Degradation,
    response_time_tolerance: float = 1.10,
    error_rate_tolerance: float = 0.01,
) -> bool:
    """Whether a snapshot is baseline-equivalent within tolerance."""
    return (
        degradation.response_time_ratio <= response_time_tolerance
        and degradation.render_time_ratio <= response_time_tolerance
        and degradation.error_rate_delta <= error_rate_tolerance
    )


def is_degraded(
    degradation: Degradation,
    response_time_tolerance: float = 1.10,
    error_rate_tolerance: float = 0.01,
) -> bool:
    """Whether any metric is outside tolerance."""
    return not is_recovered(degradation, response_time_tolerance, error_rate_tolerance)


# ============================================================
# COLLECTOR
# ============================================================

class TelemetryCollector:
    """
    Telemetry collector for one target component.

    The target only needs an async ``sample()`` returning a dict
    with any of response_time_ms, render_time_ms and error_rate.
    Missing keys read as 0.
    """

    def __init__(self, target: Any, series: Optional[TelemetrySeries] = None):
        self._target = target
        self._series = series
        self._active_component: Optional[str] = None
        self._baseline: Optional[MetricsSnapshot] = None
        self._window: List[MetricsSnapshot] = []

    @property
    def active_component(self) -> Optional[str]:
        return self._active_component

    @property
    def baseline(self) -> Optional[MetricsSnapshot]:
        return self._baseline

    def start_collection(self, component: str) -> None:
        """Open a measurement window for ``component``."""
        if self._active_component is not None:
            logger.warning(
                f"Collection for {self._active_component} still open; "
                f"replacing with {component}"
            )
        self._active_component = component
        self._baseline = None
        self._window = []
        logger.debug(f"Telemetry collection started for {component}")

    def end_collection(self, component: str) -> List[MetricsSnapshot]:
        """Close the window and return the snapshots it captured."""
        if self._active_component is None:
            logger.debug(f"end_collection({component}) with no open window")
            return []

        if component != self._active_component:
            logger.warning(
                f"end_collection({component}) closes window of {self._active_component}"
            )

        captured = self._window
        self._active_component = None
        self._window = []
        logger.debug(f"Telemetry collection ended for {component} ({len(captured)} snapshots)")
        return captured

    async def capture_baseline(self) -> MetricsSnapshot:
        """Capture and remember the baseline snapshot of the window."""
        snapshot = await self._capture("capture_baseline")
        self._baseline = snapshot
        return snapshot

    async def capture_metrics(self) -> MetricsSnapshot:
        """Capture a snapshot inside the window."""
        return await self._capture("capture_metrics")

    async def _capture(self, operation: str) -> MetricsSnapshot:
        component = self._active_component
        if component is None:
            raise CollectionWindowError(operation)

        reading = await self._target.sample() or {}
        snapshot = MetricsSnapshot(
            component=component,
            response_time_ms=float(reading.get("response_time_ms", 0.0)),
            render_time_ms=float(reading.get("render_time_ms", 0.0)),
            error_rate=float(reading.get("error_rate", 0.0)),
            timestamp=utcnow(),
        )

        self._window.append(snapshot)
        if self._series is not None:
            self._series.add(snapshot)

        logger.debug(
            f"{operation} {component}: rt={snapshot.response_time_ms:.1f}ms "
            f"render={snapshot.render_time_ms:.1f}ms err={snapshot.error_rate:.4f}"
        )
        return snapshot

    @staticmethod
    def calculate_degradation(
        baseline: MetricsSnapshot,
        current: MetricsSnapshot,
    ) -> Degradation:
        """
        Ratios current/baseline for timings, signed difference for errors.

        A zero baseline gives a ratio of 1.0 when the current value is
        also zero, and infinity otherwise.
        """
        return Degradation(
            response_time_ratio=_ratio(current.response_time_ms, baseline.response_time_ms),
            render_time_ratio=_ratio(current.render_time_ms, baseline.render_time_ms),
            error_rate_delta=current.error_rate - baseline.error_rate,
        )
