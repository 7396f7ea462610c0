"""
API request and response models

Request bodies for the scan endpoints are narrower than ScanRequest: a
local scan never names agents, and a remote audit never needs a target.
Both are converted to a ScanRequest before reaching the orchestrator.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..models.base import ApiModel
from ..models.enums import ScanDepth, ScanInterval
from ..models.scan_models import ScanOptions, ScanRequest


class LocalScanRequest(ApiModel):
    """Body of POST /api/scan"""

    target: str = Field(min_length=1, max_length=2048)
    frameworks: List[str] = Field(default_factory=list)
    depth: ScanDepth = ScanDepth.STANDARD
    include_vuln_scan: bool = False
    include_penetration_test: bool = False
    options: ScanOptions = Field(default_factory=ScanOptions)

    def to_scan_request(self) -> ScanRequest:
        return ScanRequest(
            target=self.target.strip(),
            frameworks=self.frameworks,
            depth=self.depth,
            include_vuln_scan=self.include_vuln_scan,
            include_penetration_test=self.include_penetration_test,
            options=self.options,
        )


class RemoteAuditRequest(ApiModel):
    """Body of POST /api/remote-audit"""

    agent_ids: List[str] = Field(default_factory=list)
    frameworks: List[str] = Field(default_factory=list)
    target: str = ""
    depth: ScanDepth = ScanDepth.STANDARD
    custom_script: Optional[str] = Field(default=None, max_length=65536)
    scheduled: bool = False
    interval: Optional[ScanInterval] = None
    options: ScanOptions = Field(default_factory=ScanOptions)

    def to_scan_request(self) -> ScanRequest:
        return ScanRequest(
            target=self.target.strip(),
            frameworks=self.frameworks,
            depth=self.depth,
            agent_ids=self.agent_ids,
            custom_script=self.custom_script or None,
            scheduled=self.scheduled,
            interval=self.interval,
            options=self.options,
        )


class ScanListItem(ApiModel):
    """Compact scan entry for listings"""

    id: str
    timestamp: datetime
    frameworks: List[str]
    target: str
    status: str
    score: int
    findings: int
    agents: Optional[int] = None
    schedule_id: Optional[str] = None


class ScanListResponse(ApiModel):
    scans: List[ScanListItem]
    total: int


class DashboardStats(ApiModel):
    """Fleet and scan overview for GET /api/dashboard"""

    agents_online: int
    agents_total: int
    scans_running: int
    scans_completed: int
    scans_failed: int
    average_score: float
    critical_findings: int
    high_findings: int
    active_schedules: int
