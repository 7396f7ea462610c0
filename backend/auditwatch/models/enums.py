"""
Shared Enums

Common enumeration types used across models, services and routes.
These are kept separate to avoid circular imports between
routes, services, and models.

Usage:
    from auditwatch.models.enums import ScanDepth, ScanStatus
"""

from enum import Enum


class ScanStatus(str, Enum):
    """
    Externally visible status of a ScanResult.

    A result is created as RUNNING when the scan is accepted and is replaced
    by a frozen COMPLETED or FAILED record once the scan settles.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanState(str, Enum):
    """
    Internal lifecycle state tracked by the orchestrator.

    accepted -> running -> {completed, failed}
    """

    ACCEPTED = "accepted"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.FAILED)


class ScanDepth(str, Enum):
    """
    Scan depth profiles.

    Depth controls check breadth and per-check timeout:
    basic < standard < comprehensive < deep.
    """

    BASIC = "basic"
    STANDARD = "standard"
    COMPREHENSIVE = "comprehensive"
    DEEP = "deep"


class ScanInterval(str, Enum):
    """Recurrence intervals for scheduled scans (UTC wall-clock boundaries)."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class FindingStatus(str, Enum):
    """Outcome of evaluating one control."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"


class Severity(str, Enum):
    """Severity levels, shared by findings, vulnerabilities and frameworks."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AgentStatus(str, Enum):
    """Remote agent status as reported by heartbeats or the liveness sweep."""

    ONLINE = "online"
    OFFLINE = "offline"
    SCANNING = "scanning"


class AgentResultStatus(str, Enum):
    """Outcome of one agent's contribution to a distributed scan."""

    SUCCESS = "success"
    ERROR = "error"
