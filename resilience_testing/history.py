"""
Resilience Testing - History Tracker.

============================================================
PURPOSE
============================================================
Append-only log of scored runs for run-over-run comparison.

Comparison is always against the single most recent prior
entry. Deltas are current minus prior, in native units:
score points, percentage points, severity points.

============================================================
"""

import logging
from typing import Any, Iterable, List, Optional, Tuple

from .models import HistoryComparison, HistoryEntry
from .persistence import HISTORY_RECORD, RecordStore, load_record


logger = logging.getLogger(__name__)


class HistoryTracker:
    """Chronological, append-only run history."""

    def __init__(self, entries: Optional[Iterable[HistoryEntry]] = None):
        self._entries: List[HistoryEntry] = list(entries or [])

    @property
    def entries(self) -> Tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)
        logger.info(
            f"History entry appended: score={entry.resilience_score} "
            f"({len(self._entries)} entries)"
        )

    def latest(self) -> Optional[HistoryEntry]:
        if not self._entries:
            return None
        return self._entries[-1]

    def compare_to_latest(self, entry: HistoryEntry) -> HistoryComparison:
        """Deltas of ``entry`` against the most recent stored entry."""
        previous = self.latest()
        if previous is None:
            return HistoryComparison.no_prior()

        return HistoryComparison(
            has_prior=True,
            previous=previous,
            score_delta=entry.resilience_score - previous.resilience_score,
            recovery_rate_delta_pct=(
                (entry.recovery_success_rate - previous.recovery_success_rate) * 100.0
            ),
            ux_severity_delta=entry.avg_ux_severity - previous.avg_ux_severity,
        )

    # ========================================================
    # RECORDS
    # ========================================================

    def to_records(self) -> List[dict]:
        return [entry.to_dict() for entry in self._entries]

    @classmethod
    def from_records(cls, records: Any) -> "HistoryTracker":
        if not isinstance(records, list):
            if records is not None:
                logger.warning("History record is not a list; starting empty")
            return cls()

        entries = []
        for record in records:
            try:
                entries.append(HistoryEntry.from_dict(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed history entry: {e}")
        return cls(entries)

    @classmethod
    def load(cls, store: RecordStore) -> "HistoryTracker":
        return cls.from_records(load_record(store, HISTORY_RECORD, default=[]))

    def save(self, store: RecordStore) -> None:
        store.write(HISTORY_RECORD, self.to_records())
