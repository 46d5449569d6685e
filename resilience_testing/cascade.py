"""
Resilience Testing - Cascade Mapper.

============================================================
PURPOSE
============================================================
Accumulates which components were affected (or stayed
resilient) when a root component failed, and answers
"what triggers X" / "what does X affect" queries.

The mapper performs no injection. The harness feeds it with
its observations of collateral effects during a test.

INVARIANTS:
- A cascade root never appears in its own effects or
  resilient components
- effects and resilient components are disjoint
- Query results never contain duplicates

============================================================
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .models import FailureCascade, _unique
from .persistence import CASCADE_MAP_RECORD, RecordStore, load_record


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeRelations:
    """Result of a per-component cascade query."""
    triggers: List[str] = field(default_factory=list)
    affects: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {"triggers": list(self.triggers), "affects": list(self.affects)}


class CascadeMapper:
    """Cascade set accumulated across a run."""

    def __init__(self, cascades: Optional[Iterable[FailureCascade]] = None):
        self._cascades: List[FailureCascade] = list(cascades or [])
        self._lock = threading.Lock()

    # ========================================================
    # WRITE SIDE
    # ========================================================

    def record_cascade(
        self,
        root: str,
        effects: Iterable[str],
        resilient_components: Iterable[str],
        duration_ms: float = 0.0,
    ) -> FailureCascade:
        """Record one root-failure event."""
        cascade = FailureCascade.create(
            root=root,
            effects=effects,
            resilient_components=resilient_components,
            duration_ms=duration_ms,
        )

        with self._lock:
            self._cascades.append(cascade)

        logger.info(
            f"Cascade recorded: {root} -> affects {list(cascade.effects)}, "
            f"resilient {list(cascade.resilient_components)}"
        )
        return cascade

    # ========================================================
    # READ SIDE
    # ========================================================

    @property
    def cascades(self) -> List[FailureCascade]:
        with self._lock:
            return list(self._cascades)

    def get_cascades_for_component(self, component: str) -> CascadeRelations:
        """
        Cascade relations of one component.

        triggers: roots whose cascades list ``component`` as an effect.
        affects: union of effects of cascades rooted at ``component``.
        """
        cascades = self.cascades
        triggers = _unique(c.root for c in cascades if component in c.effects)
        affects = _unique(
            effect
            for c in cascades
            if c.root == component
            for effect in c.effects
        )
        return CascadeRelations(triggers=triggers, affects=affects)

    def components(self) -> List[str]:
        """Every component named by any cascade, first-seen order."""
        names: List[str] = []
        for c in self.cascades:
            names.append(c.root)
            names.extend(c.effects)
            names.extend(c.resilient_components)
        return _unique(names)

    def relationship_count(self) -> int:
        """Number of distinct root -> effect edges."""
        return len({(c.root, e) for c in self.cascades for e in c.effects})

    # ========================================================
    # RECORDS
    # ========================================================

    def to_records(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self.cascades]

    @classmethod
    def from_records(cls, records: Optional[List[Dict[str, Any]]]) -> "CascadeMapper":
        cascades = []
        for record in records or []:
            try:
                cascades.append(FailureCascade.from_dict(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed cascade record: {e}")
        return cls(cascades)

    @classmethod
    def load(cls, store: RecordStore) -> "CascadeMapper":
        records = load_record(store, CASCADE_MAP_RECORD, default=[])
        if not isinstance(records, list):
            logger.warning("Cascade map record is not a list; starting empty")
            records = []
        return cls.from_records(records)

    def save(self, store: RecordStore) -> None:
        store.write(CASCADE_MAP_RECORD, self.to_records())
