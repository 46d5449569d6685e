"""
Resilience Testing - Summary Builder.

============================================================
PURPOSE
============================================================
Folds TestOutcomes into a Summary.

Many concurrent producers, one writer at a time on the
aggregate. CONTROL and DEFERRED outcomes are counted on their
own and kept out of the recovery totals.

============================================================
"""

import logging
import threading
from typing import Iterable, List, Optional

from .models import (
    ComponentTally,
    OutcomeStatus,
    Summary,
    TestOutcome,
)
from .persistence import SUMMARY_RECORD, RecordStore, load_record


logger = logging.getLogger(__name__)


class SummaryBuilder:
    """Thread-safe accumulator of test outcomes."""

    def __init__(self, outcomes: Optional[Iterable[TestOutcome]] = None):
        self._outcomes: List[TestOutcome] = []
        self._lock = threading.Lock()
        for outcome in outcomes or []:
            self.add(outcome)

    def add(self, outcome: TestOutcome) -> None:
        with self._lock:
            self._outcomes.append(outcome)

    @property
    def outcomes(self) -> List[TestOutcome]:
        with self._lock:
            return list(self._outcomes)

    def build(self) -> Summary:
        """Summary of everything added so far."""
        outcomes = self.outcomes
        summary = Summary()
        recovery_times: List[float] = []

        for outcome in outcomes:
            if outcome.status == OutcomeStatus.CONTROL:
                summary.control_tests += 1
                continue
            if outcome.status == OutcomeStatus.DEFERRED:
                summary.deferred_tests += 1
                continue

            summary.total_tests += 1
            if outcome.passed:
                summary.passed_tests += 1
            else:
                summary.failed_tests += 1

            if outcome.status == OutcomeStatus.ERROR:
                summary.error_tests += 1
            elif outcome.status == OutcomeStatus.TIMEOUT:
                summary.timed_out_tests += 1

            if outcome.recovered:
                recovery_times.append(outcome.recovery_time_ms)

            summary.tests_by_component.setdefault(
                outcome.component, ComponentTally()
            ).record(outcome.passed)
            summary.tests_by_failure_type.setdefault(
                outcome.failure_type, ComponentTally()
            ).record(outcome.passed)

        summary.recovery_success_rate = Summary.rate(summary.passed_tests, summary.total_tests)
        if recovery_times:
            summary.average_recovery_time = sum(recovery_times) / len(recovery_times)

        return summary


def load_summary(store: RecordStore) -> Optional[Summary]:
    """Persisted Summary, or None when absent or unreadable."""
    data = load_record(store, SUMMARY_RECORD, default=None)
    if not isinstance(data, dict):
        return None
    try:
        return Summary.from_dict(data)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Summary record is malformed: {e}")
        return None
