"""
Resilience Testing - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the exception hierarchy for the resilience engine.

- Separates target failures (data) from harness errors
- Carries context for debugging
- Only the run orchestrator raises out of a run

============================================================
EXCEPTION HIERARCHY
============================================================
ResilienceError (base)
├── ConfigurationError
├── CollectionWindowError
├── TargetUnreachableError
├── InjectedFaultException
├── RecordCorruptError
└── RunAbortedError

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# BASE EXCEPTION
# ============================================================

class ResilienceError(Exception):
    """
    Base exception for all resilience engine errors.

    All exceptions carry:
    - context: for debugging
    - timestamp: when the error occurred
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION
# ============================================================

class ConfigurationError(ResilienceError):
    """Invalid configuration detected at startup."""

    def __init__(self, message: str, errors: Optional[list] = None, **kwargs):
        context = kwargs.pop("context", {})
        if errors:
            context["errors"] = list(errors)
        super().__init__(message, context=context, **kwargs)
        self.errors = list(errors or [])


# ============================================================
# TELEMETRY
# ============================================================

class CollectionWindowError(ResilienceError):
    """A capture was requested with no active collection window."""

    def __init__(self, operation: str, component: Optional[str] = None):
        super().__init__(
            message=f"{operation} called outside an active collection window",
            context={"operation": operation, "component": component},
        )


# ============================================================
# TARGETS
# ============================================================

class TargetUnreachableError(ResilienceError):
    """A target component could not be invoked or sampled."""

    def __init__(self, component: str, reason: str = "unreachable", **kwargs):
        context = kwargs.pop("context", {})
        context["component"] = component
        context["reason"] = reason
        super().__init__(
            f"Target component '{component}' is {reason}",
            context=context,
            **kwargs,
        )
        self.component = component


class InjectedFaultException(ResilienceError):
    """
    Raised by a target while an injected fault is active.

    This is the fault working as intended. The harness records it
    as test data, never as a harness error.
    """

    def __init__(self, fault_type: str, message: Optional[str] = None, component: Optional[str] = None):
        super().__init__(
            message or f"Injected fault: {fault_type}",
            context={"fault_type": fault_type, "component": component},
        )
        self.fault_type = fault_type


# ============================================================
# PERSISTENCE
# ============================================================

class RecordCorruptError(ResilienceError):
    """A persisted record could not be decoded."""

    def __init__(self, name: str, reason: str, **kwargs):
        super().__init__(
            f"Record '{name}' is corrupt: {reason}",
            context={"record": name, "reason": reason},
            **kwargs,
        )
        self.name = name


# ============================================================
# ORCHESTRATION
# ============================================================

class RunAbortedError(ResilienceError):
    """No usable Summary could be obtained for the run."""
