"""
Resilience Testing - Alerting.

============================================================
PURPOSE
============================================================
Decides that a run's score warrants an alert and hands the
alert to injected hooks.

The engine never depends on a transport. Hooks are plain
callables (sync or async) taking a ResilienceAlert:

- LoggingAlertSink: writes the alert to the log
- WebhookAlertSink: POSTs the alert as JSON (aiohttp)

SAFETY REQUIREMENTS:
- A failing hook is logged, never raised
- One hook failing does not stop the others

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

import aiohttp

from .models import ScoreResult, utcnow


logger = logging.getLogger(__name__)


DEFAULT_ALERT_THRESHOLD = 70


# ============================================================
# ALERT
# ============================================================

@dataclass
class ResilienceAlert:
    """A score below the critical threshold."""

    score: int
    """Composite resilience score of the run."""

    rating: str
    """Rating of the score."""

    threshold: int
    """Threshold the score fell below."""

    message: str
    """Human-readable summary."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional context (report location, worst component, ...)."""

    timestamp: datetime = field(default_factory=utcnow)
    """When the alert was raised."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "rating": self.rating,
            "threshold": self.threshold,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# MONITOR
# ============================================================

class ScoreAlertMonitor:
    """Raises an alert when a score falls below the threshold."""

    def __init__(
        self,
        threshold: int = DEFAULT_ALERT_THRESHOLD,
        hooks: Optional[Iterable[Callable]] = None,
    ):
        self._threshold = threshold
        self._hooks: List[Callable] = list(hooks or [])

    @property
    def threshold(self) -> int:
        return self._threshold

    def add_hook(self, hook: Callable) -> None:
        self._hooks.append(hook)

    async def evaluate(
        self,
        result: ScoreResult,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[ResilienceAlert]:
        """Alert (and notify hooks) when ``result.score`` is below threshold."""
        if result.score >= self._threshold:
            return None

        alert = ResilienceAlert(
            score=result.score,
            rating=result.rating,
            threshold=self._threshold,
            message=(
                f"Resilience score {result.score} ({result.rating}) is below "
                f"the critical threshold of {self._threshold}"
            ),
            details=dict(context or {}),
        )
        logger.warning(alert.message)

        for hook in self._hooks:
            try:
                await self._call_hook(hook, alert)
            except Exception as e:
                logger.error(f"Alert hook failed: {e}")

        return alert

    async def _call_hook(self, hook: Callable, *args) -> None:
        """Call a hook; sinks may be objects with an async __call__."""
        result = hook(*args)
        if asyncio.iscoroutine(result):
            await result


# ============================================================
# SINKS
# ============================================================

class LoggingAlertSink:
    """Writes alerts to the log."""

    def __init__(self, level: int = logging.WARNING):
        self._level = level
        self.delivered: List[ResilienceAlert] = []

    def __call__(self, alert: ResilienceAlert) -> None:
        self.delivered.append(alert)
        logger.log(self._level, f"ALERT: {alert.message} | details={alert.details}")


class WebhookAlertSink:
    """
    POSTs alerts as JSON to a webhook (Slack and Teams style).

    Pass a session to share one; otherwise the sink opens its own
    on first use and closes it in ``close``.
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 10.0,
    ):
        self._url = url
        self._session = session
        self._owns_session = session is None
        self._timeout_seconds = timeout_seconds

    def _payload(self, alert: ResilienceAlert) -> Dict[str, Any]:
        return {
            "text": f":rotating_light: {alert.message}",
            "alert": alert.to_dict(),
        }

    async def __call__(self, alert: ResilienceAlert) -> bool:
        return await self.send(alert)

    async def send(self, alert: ResilienceAlert) -> bool:
        """Deliver one alert. Returns whether the webhook accepted it."""
        try:
            if self._session is None:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self._timeout_seconds)
                )

            async with self._session.post(self._url, json=self._payload(alert)) as response:
                if 200 <= response.status < 300:
                    logger.info(f"Alert delivered to webhook (score={alert.score})")
                    return True
                body = await response.text()
                logger.error(f"Webhook error {response.status}: {body}")
                return False

        except Exception as e:
            logger.error(f"Failed to deliver webhook alert: {e}")
            return False

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
