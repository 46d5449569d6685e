"""
Resilience Testing - Fault Injection Harness.

============================================================
PURPOSE
============================================================
Runs one fault-injection test against one target component
and turns whatever happens into a TestOutcome.

A TEST:
1. Failure-rate gate decides whether to inject (else CONTROL)
2. Concurrency gate admits the fault (else DEFERRED)
3. Baseline snapshot of the target and its peers
4. Inject the fault and invoke the target
5. Post-failure snapshot; peers sampled for collateral effects
6. Poll until baseline-equivalent or the recovery timeout
7. Clear the fault, close the collection window

============================================================
FAILURE SEMANTICS
============================================================
- The injected fault firing is data, never an error
- An overall test timeout is a failed TIMEOUT outcome
- Any harness error (target unreachable, ...) is a failed
  ERROR outcome tagged "harness-error"

Nothing raised inside a test escapes run_test, so one bad
component cannot abort a run.

============================================================
"""

import asyncio
import logging
import random
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .cascade import CascadeMapper
from .config import BackpressurePolicy, HarnessConfig
from .exceptions import InjectedFaultException, ResilienceError
from .models import (
    DID_NOT_RECOVER,
    HARNESS_ERROR_TAG,
    Degradation,
    MetricsSnapshot,
    OutcomeStatus,
    TestOutcome,
    utcnow,
)
from .persistence import RunJournal
from .telemetry import TelemetryCollector, TelemetrySeries, is_degraded, is_recovered


logger = logging.getLogger(__name__)


# ============================================================
# CONCURRENCY GATE
# ============================================================

class ConcurrencyGate:
    """
    System-wide cap on simultaneously active faults.

    Share one gate between every harness of a run. The semaphore
    is created on first use so the gate can be built outside a
    running event loop.
    """

    def __init__(self, max_concurrent: int = 1):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._active = 0
        self._peak = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def active(self) -> int:
        """Faults currently holding a slot."""
        return self._active

    @property
    def peak(self) -> int:
        """Highest number of simultaneously held slots."""
        return self._peak

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_concurrent)
        return self._semaphore

    async def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Take a slot.

        timeout None waits indefinitely; 0 never waits. Returns
        False when no slot became free in time.
        """
        semaphore = self._get_semaphore()

        if timeout is not None and timeout <= 0:
            if semaphore.locked():
                return False
            await semaphore.acquire()
        elif timeout is None:
            await semaphore.acquire()
        else:
            try:
                await asyncio.wait_for(semaphore.acquire(), timeout=timeout)
            except asyncio.TimeoutError:
                return False

        self._active += 1
        self._peak = max(self._peak, self._active)
        return True

    def release(self) -> None:
        if self._active <= 0:
            raise RuntimeError("ConcurrencyGate released more times than acquired")
        self._active -= 1
        self._get_semaphore().release()


# ============================================================
# HARNESS
# ============================================================

class FaultInjectionHarness:
    """Fault injection harness over a set of target components."""

    def __init__(
        self,
        targets: Mapping[str, Any],
        config: Optional[HarnessConfig] = None,
        gate: Optional[ConcurrencyGate] = None,
        cascade_mapper: Optional[CascadeMapper] = None,
        telemetry_series: Optional[TelemetrySeries] = None,
        journal: Optional[RunJournal] = None,
        rng: Optional[random.Random] = None,
    ):
        self._targets = dict(targets)
        self._config = config or HarnessConfig()
        self._gate = gate or ConcurrencyGate(self._config.max_concurrent_failures)
        self._cascade_mapper = cascade_mapper
        self._series = telemetry_series if telemetry_series is not None else TelemetrySeries()
        self._journal = journal
        self._rng = rng or random.Random()

        self._after_test_hooks: List[Callable] = []

        logger.info(
            f"FaultInjectionHarness initialized: {len(self._targets)} targets, "
            f"failure_rate={self._config.failure_rate}, "
            f"max_concurrent={self._gate.max_concurrent}"
        )

    @property
    def config(self) -> HarnessConfig:
        return self._config

    @property
    def gate(self) -> ConcurrencyGate:
        return self._gate

    @property
    def telemetry_series(self) -> TelemetrySeries:
        return self._series

    def add_after_test_hook(self, hook: Callable) -> None:
        """Add a hook called with every outcome."""
        self._after_test_hooks.append(hook)

    # ========================================================
    # SINGLE TEST
    # ========================================================

    async def run_test(self, component: str, failure_type: str) -> TestOutcome:
        """
        Run one test and return its outcome.

        Never raises for target or harness problems.
        """
        started_at = utcnow()
        target = self._targets.get(component)

        if target is None:
            outcome = self._error_outcome(
                component, failure_type, started_at,
                f"Unknown target component: {component}",
            )
        elif self._rng.random() >= self._config.failure_rate:
            outcome = await self._run_control(target, component, failure_type, started_at)
        else:
            outcome = await self._run_admitted(target, component, failure_type, started_at)

        await self._finish(outcome)
        return outcome

    async def _run_admitted(
        self,
        target: Any,
        component: str,
        failure_type: str,
        started_at,
    ) -> TestOutcome:
        timeout = (
            self._config.admission_timeout_seconds
            if self._config.backpressure == BackpressurePolicy.BLOCK
            else 0
        )

        if not await self._gate.acquire(timeout=timeout):
            logger.warning(
                f"Deferred {failure_type} on {component}: "
                f"{self._gate.active}/{self._gate.max_concurrent} faults active"
            )
            return TestOutcome(
                component=component,
                failure_type=failure_type,
                passed=False,
                recovery_time_ms=DID_NOT_RECOVER,
                status=OutcomeStatus.DEFERRED,
                started_at=started_at,
                error_message="Concurrency cap reached",
            )

        try:
            logger.info(f"Running {failure_type} against {component}")
            return await asyncio.wait_for(
                self._execute(target, component, failure_type, started_at),
                timeout=self._config.test_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Test {failure_type} on {component} timed out after "
                f"{self._config.test_timeout_seconds}s"
            )
            return TestOutcome(
                component=component,
                failure_type=failure_type,
                passed=False,
                recovery_time_ms=DID_NOT_RECOVER,
                status=OutcomeStatus.TIMEOUT,
                started_at=started_at,
                error_message=f"Test timed out after {self._config.test_timeout_seconds} seconds",
            )
        except Exception as e:
            logger.error(f"Harness error running {failure_type} on {component}: {e}")
            return self._error_outcome(component, failure_type, started_at, str(e))
        finally:
            self._gate.release()

    async def _run_control(
        self,
        target: Any,
        component: str,
        failure_type: str,
        started_at,
    ) -> TestOutcome:
        """Failure-rate gate did not fire: exercise the target without a fault."""
        try:
            await target.invoke()
        except Exception as e:
            logger.error(f"Harness error in control run of {component}: {e}")
            return self._error_outcome(component, failure_type, started_at, str(e))

        logger.debug(f"Control run of {component} ({failure_type} not injected)")
        return TestOutcome(
            component=component,
            failure_type=failure_type,
            passed=True,
            recovery_time_ms=0.0,
            status=OutcomeStatus.CONTROL,
            injected=False,
            started_at=started_at,
        )

    async def _execute(
        self,
        target: Any,
        component: str,
        failure_type: str,
        started_at,
    ) -> TestOutcome:
        config = self._config
        collector = TelemetryCollector(target, self._series)
        peers: Dict[str, Tuple[TelemetryCollector, MetricsSnapshot]] = {}

        collector.start_collection(component)
        try:
            baseline = await collector.capture_baseline()
            peers = await self._peer_baselines(component)

            await target.inject_fault(failure_type, config.fault_duration_seconds)
            injected_at = time.monotonic()

            invoke_error = None
            try:
                await target.invoke()
            except InjectedFaultException as e:
                invoke_error = e.message

            post_failure = await collector.capture_metrics()
            degradation = collector.calculate_degradation(baseline, post_failure)

            effects, resilient = await self._observe_peers(peers)
            if self._cascade_mapper is not None:
                self._cascade_mapper.record_cascade(
                    root=component,
                    effects=effects,
                    resilient_components=resilient,
                    duration_ms=(time.monotonic() - injected_at) * 1000.0,
                )

            recovered_at = await self._await_recovery(collector, baseline, injected_at)
        finally:
            try:
                await target.clear_fault()
            except Exception as e:
                logger.error(f"Failed to clear fault on {component}: {e}")
            collector.end_collection(component)
            for name, (peer_collector, _) in peers.items():
                peer_collector.end_collection(name)

        passed = recovered_at is not None
        recovery_time_ms = (recovered_at - injected_at) * 1000.0 if passed else DID_NOT_RECOVER

        if passed:
            logger.info(f"{component} recovered from {failure_type} in {recovery_time_ms:.0f}ms")
        else:
            logger.warning(f"{component} did not recover from {failure_type}")

        return TestOutcome(
            component=component,
            failure_type=failure_type,
            passed=passed,
            recovery_time_ms=recovery_time_ms,
            status=OutcomeStatus.PASSED if passed else OutcomeStatus.FAILED,
            degradation=degradation,
            started_at=started_at,
            details={
                "invoke_error": invoke_error,
                "effects": effects,
                "resilient_components": resilient,
                "baseline": baseline.to_dict(),
                "post_failure": post_failure.to_dict(),
            },
        )

    async def _peer_baselines(
        self,
        component: str,
    ) -> Dict[str, Tuple[TelemetryCollector, MetricsSnapshot]]:
        peers = {}
        for name, peer in self._targets.items():
            if name == component:
                continue
            peer_collector = TelemetryCollector(peer)
            peer_collector.start_collection(name)
            try:
                peers[name] = (peer_collector, await peer_collector.capture_baseline())
            except ResilienceError as e:
                logger.debug(f"Peer {name} not observable: {e}")
                peer_collector.end_collection(name)
        return peers

    async def _observe_peers(
        self,
        peers: Dict[str, Tuple[TelemetryCollector, MetricsSnapshot]],
    ) -> Tuple[List[str], List[str]]:
        effects: List[str] = []
        resilient: List[str] = []
        for name, (peer_collector, peer_baseline) in peers.items():
            try:
                current = await peer_collector.capture_metrics()
            except ResilienceError as e:
                logger.debug(f"Peer {name} not observable: {e}")
                continue

            degradation = peer_collector.calculate_degradation(peer_baseline, current)
            if self._degraded(degradation):
                effects.append(name)
            else:
                resilient.append(name)
        return effects, resilient

    async def _await_recovery(
        self,
        collector: TelemetryCollector,
        baseline: MetricsSnapshot,
        injected_at: float,
    ) -> Optional[float]:
        """Monotonic time of recovery detection, or None."""
        config = self._config
        deadline = injected_at + config.recovery_timeout_seconds

        while True:
            current = await collector.capture_metrics()
            degradation = collector.calculate_degradation(baseline, current)
            if is_recovered(
                degradation,
                config.response_time_tolerance,
                config.error_rate_tolerance,
            ):
                return time.monotonic()
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(config.recovery_poll_interval_seconds)

    def _degraded(self, degradation: Degradation) -> bool:
        return is_degraded(
            degradation,
            self._config.response_time_tolerance,
            self._config.error_rate_tolerance,
        )

    # ========================================================
    # HELPERS
    # ========================================================

    def _error_outcome(
        self,
        component: str,
        failure_type: str,
        started_at,
        message: str,
    ) -> TestOutcome:
        return TestOutcome(
            component=component,
            failure_type=HARNESS_ERROR_TAG,
            passed=False,
            recovery_time_ms=DID_NOT_RECOVER,
            status=OutcomeStatus.ERROR,
            started_at=started_at,
            error_message=message,
            details={"requested_failure_type": failure_type},
        )

    async def _finish(self, outcome: TestOutcome) -> None:
        if self._config.journal and self._journal is not None:
            self._journal.append(outcome.to_dict())

        for hook in self._after_test_hooks:
            try:
                await self._call_hook(hook, outcome)
            except Exception as e:
                logger.error(f"After-test hook failed: {e}")

    async def _call_hook(self, hook: Callable, *args) -> None:
        """Call a hook function."""
        if asyncio.iscoroutinefunction(hook):
            await hook(*args)
        else:
            hook(*args)
