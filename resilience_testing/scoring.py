"""
Resilience Testing - Resilience Scorer.

============================================================
PURPOSE
============================================================
Reduces a run to one 0-100 composite score and a rating.

FORMULA (fixed, for cross-run comparability):

    normalized_ux = avg_ux_severity / 5
    score = round(100 * (0.4 * recovery_success_rate
                         + 0.3 * (1 - normalized_ux)
                         + 0.3 * performance_benchmark_pass_rate))

Rounding is half-up, computed in Decimal so 81.5 becomes 82
regardless of float representation.

RATINGS (inclusive lower bounds):
    >= 90 Platinum | >= 80 Strong | >= 70 Stable | Needs Work

============================================================
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Tuple

from .models import ResilienceRating, ScoreResult


logger = logging.getLogger(__name__)


RECOVERY_WEIGHT = Decimal("0.4")
UX_WEIGHT = Decimal("0.3")
PERFORMANCE_WEIGHT = Decimal("0.3")
MAX_UX_SEVERITY = Decimal("5")

RATING_THRESHOLDS: List[Tuple[int, ResilienceRating]] = [
    (90, ResilienceRating.PLATINUM),
    (80, ResilienceRating.STRONG),
    (70, ResilienceRating.STABLE),
]


def _to_decimal(value: float, default: float) -> Decimal:
    if value is None or not math.isfinite(value):
        return Decimal(str(default))
    return Decimal(str(value))


def rating_for(score: int) -> str:
    """Rating label for a score."""
    for threshold, rating in RATING_THRESHOLDS:
        if score >= threshold:
            return rating.value
    return ResilienceRating.NEEDS_WORK.value


def performance_benchmark_pass_rate(total_anomalies: int, total_metrics_observed: int) -> float:
    """
    1 - anomalies/metrics, clamped to [0, 1].

    No observed metrics means no claim to a pass: 0.
    """
    if total_metrics_observed <= 0:
        return 0.0
    rate = 1.0 - (total_anomalies / total_metrics_observed)
    return max(0.0, min(1.0, rate))


class ResilienceScorer:
    """Composite resilience scorer."""

    def score(
        self,
        recovery_success_rate: float,
        avg_ux_severity: float,
        performance_benchmark_pass_rate: float,
    ) -> ScoreResult:
        """
        Score a run.

        Non-finite inputs are treated as the worst case, so a
        degenerate run scores low instead of producing NaN.
        """
        recovery = _to_decimal(recovery_success_rate, 0.0)
        ux = _to_decimal(avg_ux_severity, 5.0)
        performance = _to_decimal(performance_benchmark_pass_rate, 0.0)

        normalized_ux = ux / MAX_UX_SEVERITY
        composite = Decimal(100) * (
            RECOVERY_WEIGHT * recovery
            + UX_WEIGHT * (Decimal(1) - normalized_ux)
            + PERFORMANCE_WEIGHT * performance
        )

        score = int(composite.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        score = max(0, min(100, score))
        rating = rating_for(score)

        logger.info(
            f"Resilience score {score} ({rating}) from recovery={recovery_success_rate:.3f} "
            f"ux={avg_ux_severity:.2f} performance={performance_benchmark_pass_rate:.3f}"
        )

        return ScoreResult(
            score=score,
            rating=rating,
            recovery_success_rate=recovery_success_rate,
            avg_ux_severity=avg_ux_severity,
            performance_benchmark_pass_rate=performance_benchmark_pass_rate,
        )
