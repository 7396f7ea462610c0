"""
AuditWatch Scan Execution Engine

Executes individual (check, executor) units locally through registered
probes or remotely through the agent transport, and defines the exception
hierarchy shared by the rest of the application.

Usage:
    from auditwatch.services.engine import (
        LocalExecutor,
        ProbeRegistry,
        ScanExecutor,
    )
"""

from .exceptions import (
    AgentNotFoundError,
    AgentUnavailableError,
    AggregationFault,
    AuditWatchError,
    ExecutionError,
    ExecutionErrorKind,
    InvalidRequestError,
    ScanNotFoundError,
    ScheduleNotFoundError,
    TargetUnreachableError,
    UnknownFrameworkError,
)
from .executor import Probe, ProbeRegistry, ScanExecutor, interrupted_outcome
from .models import (
    DEPTH_PROFILES,
    LOCAL_EXECUTOR_KEY,
    CheckClass,
    CheckSpec,
    DepthProfile,
    ExecutionMode,
    Executor,
    LocalExecutor,
    RemoteExecutor,
    UnitOutcome,
    get_depth_profile,
    script_check,
)
from .transport import AgentEnvelope, AgentTransport, HttpAgentTransport, decode_envelope

__all__ = [
    # Exceptions
    "AuditWatchError",
    "AgentNotFoundError",
    "AgentUnavailableError",
    "AggregationFault",
    "ExecutionError",
    "ExecutionErrorKind",
    "InvalidRequestError",
    "ScanNotFoundError",
    "ScheduleNotFoundError",
    "TargetUnreachableError",
    "UnknownFrameworkError",
    # Models
    "CheckClass",
    "CheckSpec",
    "DEPTH_PROFILES",
    "DepthProfile",
    "ExecutionMode",
    "Executor",
    "LOCAL_EXECUTOR_KEY",
    "LocalExecutor",
    "RemoteExecutor",
    "UnitOutcome",
    "get_depth_profile",
    "script_check",
    # Execution
    "Probe",
    "ProbeRegistry",
    "ScanExecutor",
    "interrupted_outcome",
    # Transport
    "AgentEnvelope",
    "AgentTransport",
    "HttpAgentTransport",
    "decode_envelope",
]
