"""
Scan Models

Request and result records for compliance scans. A ScanResult is created
as a running placeholder when a scan is accepted and replaced by a frozen
terminal record produced by the result aggregator.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field

from .base import ApiModel, FrozenApiModel
from .enums import (
    AgentResultStatus,
    FindingStatus,
    ScanDepth,
    ScanInterval,
    ScanState,
    ScanStatus,
    Severity,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScanOptions(FrozenApiModel):
    """
    Optional behaviour flags carried with a scan request.

    Only alert_threshold is interpreted by the engine. The remaining flags are
    hooks for external post-processing collaborators and are passed through.
    """

    model_config = ConfigDict(extra="allow")

    alert_threshold: Optional[int] = Field(
        default=None,
        ge=0,
        le=100,
        description="Override of the configured alert threshold for this scan",
    )
    real_time_monitoring: bool = False
    auto_remediation: bool = False
    ai_analysis: bool = False
    threat_intelligence: bool = False


class ScanRequest(FrozenApiModel):
    """
    A request to audit a target and/or a set of agents.

    Local scans name a target; distributed audits name agent_ids and may
    leave target empty. Semantic validation (non-empty target or agents,
    at least one framework) is performed by the orchestrator so that it
    surfaces as InvalidRequestError.
    """

    target: str = Field(default="", description="URL or host to audit; empty for agent-only audits")
    frameworks: List[str] = Field(default_factory=list, description="Framework identifiers to evaluate")
    depth: ScanDepth = ScanDepth.STANDARD
    include_vuln_scan: bool = False
    include_penetration_test: bool = False
    agent_ids: List[str] = Field(default_factory=list)
    custom_script: Optional[str] = Field(
        default=None,
        max_length=65536,
        description="Script executed on each agent; output is kept opaque",
    )
    scheduled: bool = False
    interval: Optional[ScanInterval] = None
    options: ScanOptions = Field(default_factory=ScanOptions)

    @property
    def is_distributed(self) -> bool:
        return bool(self.agent_ids)


class Finding(FrozenApiModel):
    """Outcome of evaluating one control on one executor."""

    id: str
    control_id: str
    framework: str
    executor: str = Field(description="'local' or the agent identifier")
    status: FindingStatus
    severity: Severity
    description: str
    evidence: str = ""
    remediation: str = ""


class Vulnerability(FrozenApiModel):
    """A detected weakness, independent of framework controls."""

    id: str
    type: str
    severity: Severity
    description: str
    impact: str = ""
    solution: str = ""
    cvss: float = Field(ge=0.0, le=10.0)
    executor: str = "local"


class AgentScanResult(FrozenApiModel):
    """One agent's contribution to a distributed scan."""

    agent_id: str
    agent_name: str
    status: AgentResultStatus
    data: Dict[str, Any] = Field(default_factory=dict)
    execution_time: float = 0.0


class Recommendation(FrozenApiModel):
    """Remediation advice derived from one distinct failing control."""

    control_id: str
    framework: str
    severity: Severity
    text: str
    affected_executors: int = 1


class ScanError(FrozenApiModel):
    """A non-fatal or terminal error recorded against a scan."""

    code: str
    message: str
    agent_id: Optional[str] = None


class ScanSummary(FrozenApiModel):
    """Counts over the findings of a scan."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    vulnerabilities: int = 0
    by_severity: Dict[str, Dict[str, int]] = Field(
        default_factory=dict,
        description="Breakdown by severity: {high: {passed: X, failed: Y, warning: Z}, ...}",
    )


class ScanResult(FrozenApiModel):
    """
    Aggregate report for one scan.

    Owned by the orchestrator while running; immutable once status is
    completed or failed.
    """

    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    frameworks: List[str]
    target: str = ""
    depth: ScanDepth = ScanDepth.STANDARD
    status: ScanStatus = ScanStatus.RUNNING
    score: int = Field(default=0, ge=0, le=100)
    findings: List[Finding] = Field(default_factory=list)
    recommendations: List[Recommendation] = Field(default_factory=list)
    agent_data: Optional[List[AgentScanResult]] = None
    execution_time: float = 0.0
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)
    summary: ScanSummary = Field(default_factory=ScanSummary)
    errors: List[ScanError] = Field(default_factory=list)
    schedule_id: Optional[str] = None
    units_total: int = Field(default=0, description="Execution units dispatched, scripts included")

    @property
    def is_terminal(self) -> bool:
        return self.status != ScanStatus.RUNNING


class ScanProgress(ApiModel):
    """Live progress of a scan, for status polling."""

    scan_id: str
    state: ScanState
    units_total: int = 0
    units_completed: int = 0
    started_at: datetime = Field(default_factory=utc_now)
    cancel_requested: bool = False
