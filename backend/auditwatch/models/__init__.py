"""
AuditWatch data models.

API-facing records are pydantic models serialized with camelCase aliases.
Engine internals live in auditwatch.services.engine.models.
"""

from .agent_models import Agent, AgentRegistration, Heartbeat
from .enums import (
    AgentResultStatus,
    AgentStatus,
    FindingStatus,
    ScanDepth,
    ScanInterval,
    ScanState,
    ScanStatus,
    Severity,
)
from .framework_models import ComplianceFramework, ControlDefinition, FrameworkSummary
from .scan_models import (
    AgentScanResult,
    Finding,
    Recommendation,
    ScanError,
    ScanOptions,
    ScanProgress,
    ScanRequest,
    ScanResult,
    ScanSummary,
    Vulnerability,
)

__all__ = [
    "Agent",
    "AgentRegistration",
    "AgentResultStatus",
    "AgentScanResult",
    "AgentStatus",
    "ComplianceFramework",
    "ControlDefinition",
    "Finding",
    "FindingStatus",
    "FrameworkSummary",
    "Heartbeat",
    "Recommendation",
    "ScanDepth",
    "ScanError",
    "ScanInterval",
    "ScanOptions",
    "ScanProgress",
    "ScanRequest",
    "ScanResult",
    "ScanState",
    "ScanStatus",
    "ScanSummary",
    "Severity",
    "Vulnerability",
]
