"""
Resilience Testing - Configuration.

============================================================
RESPONSIBILITY
============================================================
Configuration dataclasses for the harness and the run engine.

- Chaos levels and their injection probabilities
- Backpressure policy for the concurrency cap
- Environment loading (.env honoured via python-dotenv)
- Validation returning a list of errors

Everything is passed explicitly at construction. There is
no process-wide configuration state.

============================================================
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from dotenv import load_dotenv


# ============================================================
# CHAOS LEVEL
# ============================================================

class ChaosLevel(Enum):
    """
    Preset failure-injection probabilities.

    An explicit failure rate always overrides the level.
    """

    LOW = "low"
    """Inject in roughly one test out of ten."""

    MEDIUM = "medium"
    """Inject in half of the tests."""

    HIGH = "high"
    """Inject in nearly every test."""

    ALWAYS = "always"
    """Inject in every test."""

    @property
    def failure_rate(self) -> float:
        """Injection probability for this level."""
        return {
            ChaosLevel.LOW: 0.1,
            ChaosLevel.MEDIUM: 0.5,
            ChaosLevel.HIGH: 0.9,
            ChaosLevel.ALWAYS: 1.0,
        }[self]


# ============================================================
# BACKPRESSURE
# ============================================================

class BackpressurePolicy(Enum):
    """What a test does when the concurrency cap is reached."""

    BLOCK = "block"
    """Wait up to the admission timeout for a free slot."""

    DEFER = "defer"
    """Return a DEFERRED outcome immediately."""


# ============================================================
# HARNESS CONFIG
# ============================================================

@dataclass
class HarnessConfig:
    """Configuration for the fault injection harness."""

    failure_rate: float = 0.2
    """Probability that a test actually injects its fault."""

    max_concurrent_failures: int = 1
    """Maximum number of faults active at once, system-wide."""

    journal: bool = True
    """Append every raw outcome to the run journal."""

    # Timing
    test_timeout_seconds: float = 10.0
    """Overall timeout of one test, injection to recovery."""

    admission_timeout_seconds: float = 5.0
    """Bounded wait for a concurrency slot under BLOCK."""

    backpressure: BackpressurePolicy = BackpressurePolicy.BLOCK
    """Policy applied when the concurrency cap is reached."""

    fault_duration_seconds: float = 0.5
    """How long an injected fault stays active on the target."""

    recovery_poll_interval_seconds: float = 0.05
    """Interval between recovery checks."""

    recovery_timeout_seconds: float = 5.0
    """Time allowed to return to baseline before the test fails."""

    # Recovery detection
    response_time_tolerance: float = 1.10
    """Max current/baseline timing ratio still considered recovered."""

    error_rate_tolerance: float = 0.01
    """Max error-rate increase still considered recovered."""

    @classmethod
    def for_chaos_level(cls, level: ChaosLevel, **overrides) -> "HarnessConfig":
        """Build a config whose failure rate follows the chaos level."""
        overrides.setdefault("failure_rate", level.failure_rate)
        return cls(**overrides)

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not 0.0 <= self.failure_rate <= 1.0:
            errors.append("failure_rate must be within [0, 1]")

        if self.max_concurrent_failures < 1:
            errors.append("max_concurrent_failures must be at least 1")

        if self.test_timeout_seconds <= 0:
            errors.append("test_timeout_seconds must be positive")

        if self.admission_timeout_seconds < 0:
            errors.append("admission_timeout_seconds must not be negative")

        if self.fault_duration_seconds < 0:
            errors.append("fault_duration_seconds must not be negative")

        if self.recovery_poll_interval_seconds <= 0:
            errors.append("recovery_poll_interval_seconds must be positive")

        if self.recovery_timeout_seconds <= 0:
            errors.append("recovery_timeout_seconds must be positive")

        if self.response_time_tolerance < 1.0:
            errors.append("response_time_tolerance must be at least 1.0")

        if self.error_rate_tolerance < 0:
            errors.append("error_rate_tolerance must not be negative")

        return errors


# ============================================================
# ENGINE CONFIG
# ============================================================

def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class EngineConfig:
    """Configuration for a complete resilience run."""

    harness: HarnessConfig = field(default_factory=HarnessConfig)
    """Harness settings."""

    chaos_level: ChaosLevel = ChaosLevel.MEDIUM
    """Chaos level the failure rate was derived from."""

    # Run settings
    run_duration_seconds: float = 0.0
    """Keep starting new rounds until this elapses (at least one round)."""

    seed: Optional[int] = None
    """Random seed for reproducible fault selection."""

    max_deferral_retries: int = 3
    """Times a DEFERRED test is re-queued before it is counted as deferred."""

    recovery_validation: bool = True
    """Run recovery path validation after the concurrent phase."""

    # Output
    output_dir: str = "resilience-reports"
    """Directory for reports, graphs, records and the journal."""

    database_url: Optional[str] = None
    """Store records in this database instead of the output directory."""

    # Analysis
    anomaly_threshold: float = 2.0
    """Anomaly threshold in standard deviations."""

    # Alerting
    alert_threshold: int = 70
    """Scores below this raise an alert."""

    alert_webhook_url: Optional[str] = None
    """Webhook receiving alert payloads."""

    # Logging
    log_level: str = "INFO"
    """Logging level."""

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables (and .env)."""
        load_dotenv()

        level = ChaosLevel(os.getenv("RESILIENCE_CHAOS_LEVEL", "medium").lower())
        explicit_rate = os.getenv("RESILIENCE_FAILURE_RATE")
        seed = os.getenv("RESILIENCE_SEED")

        harness = HarnessConfig(
            failure_rate=float(explicit_rate) if explicit_rate else level.failure_rate,
            max_concurrent_failures=int(os.getenv("RESILIENCE_MAX_CONCURRENT_FAILURES", "1")),
            journal=_env_bool("RESILIENCE_JOURNAL", "true"),
            test_timeout_seconds=float(os.getenv("RESILIENCE_TEST_TIMEOUT_SECONDS", "10")),
            admission_timeout_seconds=float(os.getenv("RESILIENCE_ADMISSION_TIMEOUT_SECONDS", "5")),
            backpressure=BackpressurePolicy(os.getenv("RESILIENCE_BACKPRESSURE", "block").lower()),
        )

        return cls(
            harness=harness,
            chaos_level=level,
            run_duration_seconds=float(os.getenv("RESILIENCE_RUN_DURATION_SECONDS", "0")),
            seed=int(seed) if seed else None,
            output_dir=os.getenv("RESILIENCE_OUTPUT_DIR", "resilience-reports"),
            database_url=os.getenv("DATABASE_URL") or None,
            anomaly_threshold=float(os.getenv("RESILIENCE_ANOMALY_THRESHOLD", "2.0")),
            alert_threshold=int(os.getenv("RESILIENCE_ALERT_THRESHOLD", "70")),
            alert_webhook_url=os.getenv("RESILIENCE_ALERT_WEBHOOK_URL") or None,
            log_level=os.getenv("RESILIENCE_LOG_LEVEL", "INFO").upper(),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = list(self.harness.validate())

        if self.run_duration_seconds < 0:
            errors.append("run_duration_seconds must not be negative")

        if self.max_deferral_retries < 0:
            errors.append("max_deferral_retries must not be negative")

        if self.anomaly_threshold <= 0:
            errors.append("anomaly_threshold must be positive")

        if not 0 <= self.alert_threshold <= 100:
            errors.append("alert_threshold must be within [0, 100]")

        if not self.output_dir:
            errors.append("output_dir is required")

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"log_level {self.log_level!r} is not a logging level")

        return errors
