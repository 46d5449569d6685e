"""
Resilience Testing - Target Components.

============================================================
PURPOSE
============================================================
The interface the engine needs from the system under test,
and a simulated system implementing it.

TARGET INTERFACE:
- invoke()                  exercise the component
- sample()                  observable metrics
- inject_fault(type, secs)  start a fault
- clear_fault()             stop it
- attempt_recovery(name)    run one recovery strategy

The engine never cares what a target actually is.

============================================================
SIMULATION
============================================================
SimulatedComponent degrades while faulted, passes collateral
degradation to components that depend on it, and self-heals
with a configurable probability once the fault expires.
Setting ``unreachable`` makes every call raise
TargetUnreachableError (a harness infrastructure error).

============================================================
"""

import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import InjectedFaultException, TargetUnreachableError
from .models import RecoveryTier
from .recovery import default_recovery_paths


logger = logging.getLogger(__name__)


# ============================================================
# TARGET INTERFACE
# ============================================================

class TargetComponent(ABC):
    """A unit of the system under test."""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    async def invoke(self) -> Any:
        """Exercise the component. May raise InjectedFaultException."""
        pass

    @abstractmethod
    async def sample(self) -> Dict[str, float]:
        """Current response_time_ms, render_time_ms and error_rate."""
        pass

    @abstractmethod
    async def inject_fault(self, failure_type: str, duration_seconds: float) -> None:
        pass

    @abstractmethod
    async def clear_fault(self) -> None:
        pass

    @abstractmethod
    async def attempt_recovery(self, strategy: str) -> bool:
        """Run one recovery strategy; True when it worked."""
        pass


# ============================================================
# RESOURCE PRESSURE
# ============================================================

def simulate_resource_pressure(kind: str, amount: float) -> None:
    """
    Put the process under load.

    cpu: busy-wait for amount * 100 ms.
    memory: allocate amount MB, then release it.

    Blocking; run it in a worker thread from async code.
    """
    if kind == "cpu":
        deadline = time.perf_counter() + (amount * 100.0) / 1000.0
        while time.perf_counter() < deadline:
            pass
    elif kind == "memory":
        block = bytearray(int(amount * 1024 * 1024))
        del block
    else:
        raise ValueError(f"Unknown resource pressure kind: {kind}")


# ============================================================
# SIMULATED COMPONENT
# ============================================================

@dataclass
class _ActiveFault:
    failure_type: str
    expires_at: float
    heals: bool


class SimulatedComponent(TargetComponent):
    """In-process stand-in for a real component."""

    # Multipliers applied while faulted
    FAULT_RESPONSE_FACTOR = 4.0
    FAULT_RENDER_FACTOR = 2.0
    FAULT_ERROR_INCREASE = 0.2

    # Collateral degradation while a dependency is faulted
    COLLATERAL_RESPONSE_FACTOR = 2.0
    COLLATERAL_ERROR_INCREASE = 0.05

    JITTER = 0.02

    def __init__(
        self,
        name: str,
        response_time_ms: float = 100.0,
        render_time_ms: float = 20.0,
        error_rate: float = 0.005,
        dependencies: Iterable[str] = (),
        isolated: bool = False,
        self_heal_probability: float = 0.9,
        recovery_probabilities: Optional[Dict[str, float]] = None,
        cpu_pressure: float = 0.0,
        seed: Optional[Any] = None,
    ):
        super().__init__(name)
        self.response_time_ms = response_time_ms
        self.render_time_ms = render_time_ms
        self.error_rate = error_rate
        self.dependencies = list(dependencies)
        self.isolated = isolated
        self.self_heal_probability = self_heal_probability
        self.recovery_probabilities = dict(recovery_probabilities or {})
        self.cpu_pressure = cpu_pressure
        self.unreachable = False

        self._rng = random.Random(f"{seed}-{name}") if seed is not None else random.Random()
        self._fault: Optional[_ActiveFault] = None
        self._system: Optional["SimulatedSystem"] = None
        self.invocations = 0

    # ========================================================
    # STATE
    # ========================================================

    @property
    def is_faulted(self) -> bool:
        fault = self._fault
        if fault is None:
            return False
        if fault.heals and time.monotonic() >= fault.expires_at:
            logger.debug(f"{self.name}: fault {fault.failure_type} self-healed")
            self._fault = None
            return False
        return True

    @property
    def has_degraded_dependency(self) -> bool:
        if self.isolated or self._system is None:
            return False
        return any(self._system.is_faulted(dep) for dep in self.dependencies)

    def _check_reachable(self) -> None:
        if self.unreachable:
            raise TargetUnreachableError(self.name)

    def _jitter(self, value: float) -> float:
        return value * (1.0 + self._rng.uniform(-self.JITTER, self.JITTER))

    # ========================================================
    # TARGET INTERFACE
    # ========================================================

    async def invoke(self) -> Dict[str, Any]:
        self._check_reachable()
        self.invocations += 1
        await asyncio.sleep(0)

        if self.is_faulted:
            raise InjectedFaultException(self._fault.failure_type, component=self.name)

        status = "degraded" if self.has_degraded_dependency else "ok"
        return {"component": self.name, "status": status}

    async def sample(self) -> Dict[str, float]:
        self._check_reachable()

        response = self.response_time_ms
        render = self.render_time_ms
        errors = self.error_rate

        if self.is_faulted:
            response *= self.FAULT_RESPONSE_FACTOR
            render *= self.FAULT_RENDER_FACTOR
            errors += self.FAULT_ERROR_INCREASE
            if self.cpu_pressure > 0:
                await asyncio.to_thread(simulate_resource_pressure, "cpu", self.cpu_pressure)
        elif self.has_degraded_dependency:
            response *= self.COLLATERAL_RESPONSE_FACTOR
            errors += self.COLLATERAL_ERROR_INCREASE
        else:
            await asyncio.sleep(0)

        return {
            "response_time_ms": self._jitter(response),
            "render_time_ms": self._jitter(render),
            "error_rate": min(1.0, errors),
        }

    async def inject_fault(self, failure_type: str, duration_seconds: float) -> None:
        self._check_reachable()
        heals = self._rng.random() < self.self_heal_probability
        self._fault = _ActiveFault(
            failure_type=failure_type,
            expires_at=time.monotonic() + duration_seconds,
            heals=heals,
        )
        logger.info(
            f"{self.name}: injected {failure_type} for {duration_seconds:.2f}s"
            f"{'' if heals else ' (will not self-heal)'}"
        )

    async def clear_fault(self) -> None:
        if self._fault is not None:
            logger.debug(f"{self.name}: cleared fault {self._fault.failure_type}")
        self._fault = None

    async def attempt_recovery(self, strategy: str) -> bool:
        self._check_reachable()
        await asyncio.sleep(0)
        probability = self.recovery_probabilities.get(strategy, 0.7)
        recovered = self._rng.random() < probability
        if recovered:
            self._fault = None
        return recovered


# ============================================================
# SIMULATED SYSTEM
# ============================================================

class SimulatedSystem:
    """A set of simulated components that know about each other."""

    def __init__(self, components: Optional[Iterable[SimulatedComponent]] = None):
        self._components: Dict[str, SimulatedComponent] = {}
        for component in components or []:
            self.add(component)

    def add(self, component: SimulatedComponent) -> None:
        component._system = self
        self._components[component.name] = component

    def get(self, name: str) -> Optional[SimulatedComponent]:
        return self._components.get(name)

    def is_faulted(self, name: str) -> bool:
        component = self._components.get(name)
        return component is not None and component.is_faulted

    @property
    def names(self) -> List[str]:
        return list(self._components)

    def targets(self) -> Dict[str, SimulatedComponent]:
        return dict(self._components)


# Success probability of each recovery tier in the demo topology
_TIER_PROBABILITY = {
    RecoveryTier.PRIMARY: 0.7,
    RecoveryTier.SECONDARY: 0.6,
    RecoveryTier.FALLBACK: 0.8,
}

_DEMO_TOPOLOGY = [
    # name, response ms, render ms, dependencies
    ("Database", 100.0, 20.0, []),
    ("Cache", 40.0, 10.0, ["Database"]),
    ("API", 120.0, 20.0, ["Database", "Cache"]),
    ("Frontend", 80.0, 30.0, ["API"]),
    ("Voice Module", 150.0, 25.0, []),
    ("Intent Parser", 90.0, 15.0, ["Voice Module"]),
    ("Redis Memory", 30.0, 10.0, []),
]


def default_simulated_system(
    seed: Optional[int] = None,
    self_heal_probability: float = 0.9,
) -> SimulatedSystem:
    """Demo topology used by the command line runner."""
    probabilities: Dict[str, Dict[str, float]] = {}
    for path in default_recovery_paths():
        table = probabilities.setdefault(path.component, {})
        for tier, strategy in path.tiers():
            table[strategy] = _TIER_PROBABILITY[tier]

    system = SimulatedSystem()
    for name, response, render, deps in _DEMO_TOPOLOGY:
        system.add(SimulatedComponent(
            name=name,
            response_time_ms=response,
            render_time_ms=render,
            dependencies=deps,
            self_heal_probability=self_heal_probability,
            recovery_probabilities=probabilities.get(name),
            seed=seed,
        ))
    return system
