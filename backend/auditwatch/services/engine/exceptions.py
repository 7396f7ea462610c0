"""
Engine Module Exceptions

This module defines the exception hierarchy for the scan orchestration engine.
All AuditWatch exceptions inherit from AuditWatchError, enabling consistent
error handling across the registries, executors, orchestrator and API layer.

Exception Hierarchy:
    AuditWatchError (base)
    ├── InvalidRequestError (bad input, no executors dispatched)
    ├── UnknownFrameworkError (framework id not in the catalog)
    ├── AgentNotFoundError (agent id never registered)
    ├── AgentUnavailableError (agent registered but offline)
    ├── ScanNotFoundError (no scan with the given id)
    ├── ScheduleNotFoundError (no schedule with the given id)
    ├── ExecutionError (per-unit failure; folded into the report)
    │   └── kinds: timeout, cancelled, transport_failure, check_fault
    ├── TargetUnreachableError (raised by probes; becomes transport_failure)
    └── AggregationFault (malformed outcome payload; absorbed by the aggregator)

Design Principles:
- All exceptions include context for debugging
- Exceptions are serializable for logging and API responses
- Error codes enable programmatic error handling
- Only the message ever reaches API clients; context stays server-side
"""

from enum import Enum
from typing import Any, Dict, Optional


class AuditWatchError(Exception):
    """
    Base exception for all AuditWatch operations.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error identifier
        context: Additional context for debugging
        cause: Original exception if wrapping another error

    Usage:
        try:
            await orchestrator.submit(request)
        except AuditWatchError as e:
            logger.error(f"Scan error {e.error_code}: {e.message}")
            if e.context:
                logger.debug(f"Context: {e.context}")
    """

    def __init__(
        self,
        message: str,
        error_code: str = "AUDITWATCH_ERROR",
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for JSON serialization.

        Returns:
            Dictionary representation for structured logs.
        """
        return {
            "error": self.error_code,
            "message": self.message,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }

    def __str__(self) -> str:
        """Format exception for logging."""
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context:
            parts.append(f" (context: {self.context})")
        if self.cause:
            parts.append(f" (caused by: {self.cause})")
        return "".join(parts)


# =============================================================================
# Request Exceptions
# =============================================================================


class InvalidRequestError(AuditWatchError):
    """
    Raised when a scan request fails validation.

    Validation happens before any execution unit is dispatched, so no
    partial report exists when this is raised.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        cause: Optional[Exception] = None,
    ):
        context = {"field": field} if field else {}
        super().__init__(message, "INVALID_REQUEST", context, cause)
        self.field = field


class UnknownFrameworkError(AuditWatchError):
    """Raised when a framework id is not present in the catalog."""

    def __init__(self, framework_id: str):
        super().__init__(
            f"Unknown framework: {framework_id}",
            "UNKNOWN_FRAMEWORK",
            {"framework_id": framework_id},
        )
        self.framework_id = framework_id


# =============================================================================
# Agent Exceptions
# =============================================================================


class AgentNotFoundError(AuditWatchError):
    """Raised when an agent id was never registered."""

    def __init__(self, agent_id: str):
        super().__init__(
            f"Agent not found: {agent_id}",
            "AGENT_NOT_FOUND",
            {"agent_id": agent_id},
        )
        self.agent_id = agent_id


class AgentUnavailableError(AuditWatchError):
    """
    Raised when an agent is registered but cannot receive work.

    An agent reported or swept offline stays unavailable until a later
    heartbeat reports it online again.
    """

    def __init__(self, agent_id: str, status: str = "offline"):
        super().__init__(
            f"Agent {agent_id} is unavailable (status: {status})",
            "AGENT_UNAVAILABLE",
            {"agent_id": agent_id, "status": status},
        )
        self.agent_id = agent_id
        self.status = status


# =============================================================================
# Lookup Exceptions
# =============================================================================


class ScanNotFoundError(AuditWatchError):
    """Raised when no scan exists with the given id."""

    def __init__(self, scan_id: str):
        super().__init__(f"Scan not found: {scan_id}", "SCAN_NOT_FOUND", {"scan_id": scan_id})
        self.scan_id = scan_id


class ScheduleNotFoundError(AuditWatchError):
    """Raised when no schedule exists with the given id."""

    def __init__(self, schedule_id: str):
        super().__init__(
            f"Schedule not found: {schedule_id}",
            "SCHEDULE_NOT_FOUND",
            {"schedule_id": schedule_id},
        )
        self.schedule_id = schedule_id


# =============================================================================
# Execution Exceptions
# =============================================================================


class ExecutionErrorKind(str, Enum):
    """
    Classification of a failed execution unit.

    Attributes:
        TIMEOUT: Unit exceeded its timeout or the scan deadline
        CANCELLED: Scan was cancelled before the unit settled
        TRANSPORT_FAILURE: Target or agent could not be reached
        CHECK_FAULT: Probe or agent-side check raised or is missing
    """

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    TRANSPORT_FAILURE = "transport_failure"
    CHECK_FAULT = "check_fault"


class ExecutionError(AuditWatchError):
    """
    Failure of a single (check, executor) execution unit.

    Never raised to API callers. The executor captures it in a UnitOutcome
    and the aggregator folds it into a synthetic failing finding.
    """

    def __init__(
        self,
        kind: ExecutionErrorKind,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, f"EXECUTION_{kind.value.upper()}", context, cause)
        self.kind = kind


class TargetUnreachableError(AuditWatchError):
    """
    Raised by probes when the scan target cannot be contacted.

    The executor maps it to ExecutionErrorKind.TRANSPORT_FAILURE.
    """

    def __init__(self, target: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Target unreachable: {target}",
            "TARGET_UNREACHABLE",
            {"target": target},
            cause,
        )
        self.target = target


class AggregationFault(AuditWatchError):
    """
    Internal invariant violation detected while folding outcomes.

    Typically a malformed probe or agent payload. Logged and replaced by a
    synthetic failing finding so the scan still completes.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, "AGGREGATION_FAULT", context)
