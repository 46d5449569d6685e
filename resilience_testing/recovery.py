"""
Resilience Testing - Recovery Paths.

============================================================
PURPOSE
============================================================
Per-component catalog of ordered recovery strategies
(primary, secondary, fallback) and a validator that walks
those strategies against live targets.

The registry is read-mostly: entries are seeded ahead of a
run and consulted by the report emitter. A component may
carry more than one path (one per tested failure type).

============================================================
VALIDATION
============================================================
For each path the validator escalates:

    primary -> secondary (if any) -> fallback (if any)

and stops at the first strategy the target reports as
successful. Every path yields one UX impact:

    primary 2 | secondary 3 | fallback 4 | complete failure 5

============================================================
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .exceptions import ResilienceError
from .models import RecoveryPath, RecoveryTier, UXImpact, _unique
from .persistence import RECOVERY_PATHS_RECORD, RecordStore, load_record


logger = logging.getLogger(__name__)


TIER_UX_SEVERITY: Dict[RecoveryTier, int] = {
    RecoveryTier.PRIMARY: 2,
    RecoveryTier.SECONDARY: 3,
    RecoveryTier.FALLBACK: 4,
}
COMPLETE_FAILURE_SEVERITY = 5


# ============================================================
# DEFAULT CATALOG
# ============================================================

def default_recovery_paths() -> List[RecoveryPath]:
    """Seed catalog for the built-in demo topology."""
    return [
        RecoveryPath("Database", "Connection Pool Reset", "Replica Failover", "Read-Only Mode", 5000),
        RecoveryPath("Cache", "Reconnect", None, "Rebuild from Database", 2000),
        RecoveryPath("API", "Circuit Breaker Reset", "Rate Limiting", "Static Response", 3000),
        RecoveryPath("Frontend", "Retry with Backoff", None, "Offline Mode", 1000),
        RecoveryPath("Voice Module", "Restart Recognition Engine", None, "Fallback to Text Input", 4000),
        RecoveryPath("Intent Parser", "Reset Parser State", "Use Cached Intents", "Direct Command Mode", 2500),
        RecoveryPath("Redis Memory", "Flush Specific Keys", "Reconnect Client", "Local Memory Cache", 1500),
    ]


# ============================================================
# REGISTRY
# ============================================================

class RecoveryPathRegistry:
    """Catalog of recovery paths, keyed by component."""

    def __init__(self, paths: Optional[Iterable[RecoveryPath]] = None):
        self._paths: List[RecoveryPath] = []
        for path in paths or []:
            self.add(path)

    def add(self, path: RecoveryPath) -> None:
        self._paths.append(path)

    @property
    def paths(self) -> List[RecoveryPath]:
        return list(self._paths)

    def get(self, component: str) -> List[RecoveryPath]:
        """All paths recorded for ``component`` (empty when unknown)."""
        return [p for p in self._paths if p.component == component]

    def get_unique_components(self) -> List[str]:
        return _unique(p.component for p in self._paths)

    def components_without_fallback(self) -> List[str]:
        """Components none of whose paths has a fallback strategy."""
        return [
            component for component in self.get_unique_components()
            if not any(p.fallback for p in self.get(component))
        ]

    def __len__(self) -> int:
        return len(self._paths)

    # ========================================================
    # RECORDS
    # ========================================================

    def to_records(self) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in self._paths]

    @classmethod
    def from_records(cls, records: Optional[List[Dict[str, Any]]]) -> "RecoveryPathRegistry":
        paths = []
        for record in records or []:
            try:
                paths.append(RecoveryPath.from_dict(record))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed recovery path record: {e}")
        return cls(paths)

    @classmethod
    def load(cls, store: RecordStore, seed_defaults: bool = False) -> "RecoveryPathRegistry":
        """
        Load the catalog from ``store``.

        When the record is absent (or corrupt) and ``seed_defaults``
        is set, the default catalog is used instead of an empty one.
        """
        records = load_record(store, RECOVERY_PATHS_RECORD, default=None)
        if not isinstance(records, list) or not records:
            if seed_defaults:
                logger.info("Seeding default recovery path catalog")
                return cls(default_recovery_paths())
            return cls()
        return cls.from_records(records)

    def save(self, store: RecordStore) -> None:
        store.write(RECOVERY_PATHS_RECORD, self.to_records())


# ============================================================
# VALIDATION
# ============================================================

@dataclass
class PathValidation:
    """Outcome of walking one recovery path."""
    component: str
    succeeded_tier: Optional[RecoveryTier]
    strategy: Optional[str]
    recovery_time_ms: float
    expected_recovery_time_ms: float
    attempts: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.succeeded_tier is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "succeeded_tier": self.succeeded_tier.value if self.succeeded_tier else None,
            "strategy": self.strategy,
            "recovery_time_ms": self.recovery_time_ms,
            "expected_recovery_time_ms": self.expected_recovery_time_ms,
            "attempts": list(self.attempts),
        }


@dataclass
class RecoveryValidationResult:
    """Aggregate of a validation pass over the registry."""
    total_paths: int = 0
    primary_success: int = 0
    secondary_success: int = 0
    fallback_success: int = 0
    complete_fail: int = 0
    validations: List[PathValidation] = field(default_factory=list)
    ux_impacts: List[UXImpact] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_paths == 0:
            return 0.0
        return (self.total_paths - self.complete_fail) / self.total_paths

    @property
    def average_recovery_time_ms(self) -> float:
        times = [v.recovery_time_ms for v in self.validations if v.succeeded]
        if not times:
            return 0.0
        return sum(times) / len(times)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_paths": self.total_paths,
            "primary_success": self.primary_success,
            "secondary_success": self.secondary_success,
            "fallback_success": self.fallback_success,
            "complete_fail": self.complete_fail,
            "success_rate": self.success_rate,
            "average_recovery_time_ms": self.average_recovery_time_ms,
            "validations": [v.to_dict() for v in self.validations],
        }


class RecoveryPathValidator:
    """Walks each registered path against its target."""

    async def validate(
        self,
        registry: RecoveryPathRegistry,
        targets: Mapping[str, Any],
    ) -> RecoveryValidationResult:
        result = RecoveryValidationResult()

        for path in registry.paths:
            validation = await self._validate_path(path, targets.get(path.component))
            result.total_paths += 1
            result.validations.append(validation)

            if validation.succeeded_tier == RecoveryTier.PRIMARY:
                result.primary_success += 1
            elif validation.succeeded_tier == RecoveryTier.SECONDARY:
                result.secondary_success += 1
            elif validation.succeeded_tier == RecoveryTier.FALLBACK:
                result.fallback_success += 1
            else:
                result.complete_fail += 1

            if validation.succeeded:
                severity = TIER_UX_SEVERITY[validation.succeeded_tier]
                description = (
                    f"Recovered via {validation.succeeded_tier.value} strategy "
                    f"'{validation.strategy}'"
                )
            else:
                severity = COMPLETE_FAILURE_SEVERITY
                description = "All recovery strategies failed"

            result.ux_impacts.append(UXImpact(
                component=path.component,
                severity=severity,
                recovery_time_ms=validation.recovery_time_ms,
                description=description,
            ))

        logger.info(
            f"Recovery validation: {result.total_paths} paths, "
            f"primary={result.primary_success} secondary={result.secondary_success} "
            f"fallback={result.fallback_success} failed={result.complete_fail}"
        )
        return result

    async def _validate_path(self, path: RecoveryPath, target: Any) -> PathValidation:
        started = time.monotonic()
        attempts: List[str] = []

        if target is None:
            logger.warning(f"No target for recovery path of {path.component}")
            return PathValidation(
                component=path.component,
                succeeded_tier=None,
                strategy=None,
                recovery_time_ms=0.0,
                expected_recovery_time_ms=path.recovery_time_ms,
            )

        for tier, strategy in path.tiers():
            attempts.append(strategy)
            try:
                recovered = await target.attempt_recovery(strategy)
            except ResilienceError as e:
                logger.warning(f"{path.component}: {tier.value} strategy '{strategy}' errored: {e}")
                recovered = False
            except Exception as e:
                logger.error(
                    f"{path.component}: {tier.value} strategy '{strategy}' crashed: "
                    f"{type(e).__name__}: {e}"
                )
                recovered = False

            if recovered:
                elapsed_ms = (time.monotonic() - started) * 1000.0
                logger.info(f"{path.component}: recovered via {tier.value} '{strategy}'")
                return PathValidation(
                    component=path.component,
                    succeeded_tier=tier,
                    strategy=strategy,
                    recovery_time_ms=elapsed_ms,
                    expected_recovery_time_ms=path.recovery_time_ms,
                    attempts=attempts,
                )

        elapsed_ms = (time.monotonic() - started) * 1000.0
        logger.warning(f"{path.component}: every recovery strategy failed")
        return PathValidation(
            component=path.component,
            succeeded_tier=None,
            strategy=None,
            recovery_time_ms=elapsed_ms,
            expected_recovery_time_ms=path.recovery_time_ms,
            attempts=attempts,
        )
